"""Tests for CLI commands."""

import asyncio
import json

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool
from typer.testing import CliRunner

from dental_os import __version__
from dental_os.cli import commands
from dental_os.cli.commands import app
from dental_os.core.models import Base

runner = CliRunner()

# Far enough ahead that the real clock never makes it a past date.
FUTURE_TUESDAY = "2030-01-08"
FUTURE_SUNDAY = "2030-01-06"


@pytest.fixture
def seeded_db(tmp_path, monkeypatch, seed):
    """File-backed clinic database wired into the CLI's session factory."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}", poolclass=NullPool)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async def _prepare():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        async with factory() as session:
            return await seed(session)

    clinic = asyncio.run(_prepare())
    monkeypatch.setattr(commands, "_session_factory", lambda: factory)
    return clinic


class TestGridCommand:
    """Tests for the grid preview command."""

    def test_grid_lists_blocks(self):
        result = runner.invoke(app, ["grid", "09:00", "17:00"])

        assert result.exit_code == 0
        assert "09:00" in result.output
        assert "16:30" in result.output
        assert "12:00" not in result.output

    def test_grid_marks_runs_that_cross_lunch(self):
        result = runner.invoke(app, ["grid", "09:00", "13:00", "--minutes", "90"])

        assert result.exit_code == 0
        assert "no" in result.output
        assert "10:30" in result.output

    def test_grid_invalid_time(self):
        result = runner.invoke(app, ["grid", "9am", "17:00"])

        assert result.exit_code == 1
        assert "Invalid open time" in result.output

    def test_grid_without_blocks(self):
        result = runner.invoke(app, ["grid", "12:00", "13:00"])

        assert result.exit_code == 0
        assert "No bookable blocks" in result.output


class TestSlotsCommand:
    """Tests for the slots command."""

    def test_slots_for_open_day(self, seeded_db):
        result = runner.invoke(app, ["slots", FUTURE_TUESDAY, str(seeded_db.cleaning)])

        assert result.exit_code == 0
        assert "09:00" in result.output
        assert "16:30" in result.output

    def test_slots_json(self, seeded_db):
        result = runner.invoke(
            app, ["slots", FUTURE_TUESDAY, str(seeded_db.extraction), "--patient", str(seeded_db.ana), "--json"]
        )

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["slots"][0] == "09:00:00"
        assert "11:00:00" not in data["slots"]

    def test_slots_closed_day(self, seeded_db):
        result = runner.invoke(app, ["slots", FUTURE_SUNDAY, str(seeded_db.cleaning)])

        assert result.exit_code == 0
        assert "No available slots" in result.output

    def test_slots_invalid_date(self):
        result = runner.invoke(app, ["slots", "tomorrow", "00000000-0000-0000-0000-000000000001"])

        assert result.exit_code == 1
        assert "Invalid date" in result.output

    def test_slots_unknown_service(self, seeded_db):
        result = runner.invoke(app, ["slots", FUTURE_TUESDAY, "00000000-0000-0000-0000-000000000001"])

        assert result.exit_code == 1
        assert "Service not found" in result.output


class TestDayCommand:
    def test_day_closed(self, seeded_db):
        result = runner.invoke(app, ["day", FUTURE_SUNDAY])

        assert result.exit_code == 0
        assert "closed" in result.output

    def test_day_open(self, seeded_db):
        result = runner.invoke(app, ["day", FUTURE_TUESDAY])

        assert result.exit_code == 0
        assert "09:00" in result.output
        assert "16:30" in result.output


class TestVersionCommand:
    """Tests for the version command."""

    def test_version(self):
        result = runner.invoke(app, ["version"])

        assert result.exit_code == 0
        assert f"DentalOS v{__version__}" in result.output
