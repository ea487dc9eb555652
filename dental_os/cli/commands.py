"""CLI commands for DentalOS."""

import asyncio
import json
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from dental_os.config import get_settings
from dental_os.scheduling.engine import contiguous_run
from dental_os.scheduling.grid import blocks_for_minutes, build_blocks, format_time, parse_time, run_end

app = typer.Typer(
    name="dental-os",
    help="Dental clinic appointment scheduling",
    add_completion=False,
)
console = Console()


def _session_factory():
    from dental_os.core.database import _get_session_factory

    return _get_session_factory()


def _parse_time_option(value: str, name: str):
    try:
        return parse_time(value)
    except ValueError:
        console.print(f"[red]Invalid {name}: {value}. Use HH:MM[/red]")
        raise typer.Exit(1)


@app.command()
def grid(
    open_time: str = typer.Argument(..., help="Clinic opening time (HH:MM)"),
    close_time: str = typer.Argument(..., help="Clinic closing time (HH:MM)"),
    minutes: int = typer.Option(30, "--minutes", "-m", help="Service length in minutes"),
):
    """Preview the 30-minute booking grid for a set of clinic hours."""
    start = _parse_time_option(open_time, "open time")
    end = _parse_time_option(close_time, "close time")
    blocks = build_blocks(start, end)
    if not blocks:
        console.print("[yellow]No bookable blocks for these hours.[/yellow]")
        return

    duration = blocks_for_minutes(minutes)
    table = Table(title=f"Grid {format_time(start)}-{format_time(end)} ({duration} block(s) per booking)")
    table.add_column("Start")
    table.add_column("Ends")
    table.add_column("Fits")

    grid_set = set(blocks)
    for block in blocks:
        run = contiguous_run(block, duration, grid_set)
        fits = "[green]yes[/green]" if run else "[red]no[/red]"
        ends = format_time(run_end(block, duration)) if run else "-"
        table.add_row(format_time(block), ends, fits)
    console.print(table)


@app.command()
def slots(
    day: str = typer.Argument(..., help="Date (YYYY-MM-DD)"),
    service_id: str = typer.Argument(..., help="Service ID"),
    patient_id: Optional[str] = typer.Option(None, "--patient", "-p", help="Patient ID"),
    honor: bool = typer.Option(True, "--honor/--no-honor", help="Honor the preferred dentist"),
    teeth: Optional[int] = typer.Option(None, "--teeth", "-t", help="Teeth count for per-tooth services"),
    output_json: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """List bookable start times for a date and service."""
    import uuid

    from dental_os.scheduling.calendar import parse_date
    from dental_os.scheduling.exceptions import SchedulingError
    from dental_os.scheduling.service import BookingService

    try:
        target = parse_date(day)
        sid = uuid.UUID(service_id)
        pid = uuid.UUID(patient_id) if patient_id else None
    except (SchedulingError, ValueError) as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    async def _run():
        async with _session_factory()() as session:
            service = BookingService(session, settings=get_settings())
            return await service.available_slots(
                target, sid, patient_id=pid, honor_preferred=honor, teeth_count=teeth
            )

    try:
        result = asyncio.run(_run())
    except SchedulingError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    if output_json:
        console.print(result.model_dump_json(indent=2))
        return

    if not result.slots:
        console.print(f"[yellow]No available slots on {target}.[/yellow]")
    else:
        console.print(Panel(", ".join(format_time(s) for s in result.slots), title=f"Available on {target}"))
    if result.preferred_dentist_id:
        status = "honored" if result.effective_honor_preferred_dentist else "not honored"
        name = result.preferred_dentist.name if result.preferred_dentist else str(result.preferred_dentist_id)
        console.print(f"Preferred dentist: {name} ({status})")


@app.command()
def day(
    target: str = typer.Argument(..., help="Date (YYYY-MM-DD)"),
):
    """Show the day board: blocks with approved and completed bookings."""
    from dental_os.scheduling.calendar import parse_date
    from dental_os.scheduling.exceptions import SchedulingError
    from dental_os.scheduling.service import BookingService

    try:
        parsed = parse_date(target)
    except SchedulingError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    async def _run():
        async with _session_factory()() as session:
            return await BookingService(session, settings=get_settings()).day_board(parsed)

    board = asyncio.run(_run())
    if not board.is_open:
        console.print(f"[yellow]Clinic is closed on {parsed}.[/yellow]")
        return

    table = Table(title=f"{parsed} ({format_time(board.open_time)}-{format_time(board.close_time)}, capacity {board.capacity})")
    table.add_column("Block")
    table.add_column("Count")
    table.add_column("Bookings")
    for block in board.blocks:
        names = "; ".join(f"{a.patient_name} - {a.service_name} [{a.reference_code}]" for a in block.appointments)
        table.add_row(format_time(block.time), str(block.count), names)
    console.print(table)


@app.command("init-db")
def init_db(
    seed: bool = typer.Option(True, "--seed/--no-seed", help="Seed a default clinic week"),
):
    """Create the database tables."""
    from dental_os.core.database import init_db as _init_db

    asyncio.run(_init_db(seed=seed))
    console.print(f"[green]Database initialized: {get_settings().database_url}[/green]")


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", "-h", help="Host to bind"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port to bind"),
    reload: bool = typer.Option(False, "--reload", help="Enable auto-reload"),
):
    """Start the REST API server."""
    import uvicorn

    settings = get_settings()
    host = host or settings.api_host
    port = port or settings.api_port
    console.print(f"Starting DentalOS API server on {host}:{port}")
    uvicorn.run(
        "dental_os.api.app:create_app",
        host=host,
        port=port,
        reload=reload,
        factory=True,
    )


@app.command()
def version():
    """Show version information."""
    from dental_os import __version__

    console.print(f"DentalOS v{__version__}")


@app.command()
def config():
    """Show the effective configuration."""
    settings = get_settings()
    console.print(json.dumps(settings.model_dump(), indent=2, default=str))
