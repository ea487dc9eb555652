"""Health check endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from dental_os import __version__
from dental_os.core.database import get_db

router = APIRouter()


@router.get("/health")
async def health_check(db: AsyncSession = Depends(get_db)) -> dict:
    """Basic health check, including a database round trip."""
    try:
        await db.execute(text("SELECT 1"))
        database = "ok"
    except Exception as e:
        database = f"error: {e}"
    return {
        "status": "healthy" if database == "ok" else "degraded",
        "service": "dental-os",
        "version": __version__,
        "database": database,
    }


@router.get("/health/live")
async def liveness_check() -> dict:
    """Liveness check - basic process health."""
    return {"status": "alive"}
