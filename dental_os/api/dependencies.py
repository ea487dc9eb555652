"""FastAPI dependencies shared by the route modules."""

from __future__ import annotations

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from dental_os.config import get_settings
from dental_os.core.database import get_db
from dental_os.scheduling.service import BookingService


async def get_booking_service(db: AsyncSession = Depends(get_db)) -> BookingService:
    """Booking service bound to the request's session."""
    return BookingService(db, settings=get_settings())
