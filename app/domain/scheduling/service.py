"""Scheduling service - counselor availability lookups"""

import logging
from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...config import APP_TIMEZONE
from ...shared.validators import parse_hhmm
from .availability import Booking, calculate_available_slots, parse_sources
from .repository import SchedulingRepository

logger = logging.getLogger(__name__)

MIN_DURATION = 30
MAX_DURATION = 180


def local_now() -> datetime:
    """Current wall-clock time in the platform timezone"""
    return datetime.now(ZoneInfo(APP_TIMEZONE))


class SchedulingService:
    """Service layer for counselor availability"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = SchedulingRepository()

    def get_available_slots(
        self,
        counselor_id: int,
        date_str: Optional[str],
        duration: int = 60,
        now: Optional[datetime] = None,
    ) -> dict:
        if not date_str:
            raise HTTPException(status_code=400, detail="Date parameter is required")

        if duration < MIN_DURATION or duration > MAX_DURATION:
            raise HTTPException(
                status_code=400,
                detail=f"Duration must be between {MIN_DURATION} and {MAX_DURATION} minutes",
            )

        try:
            target_date = datetime.strptime(date_str, "%Y-%m-%d").date()
        except ValueError:
            raise HTTPException(
                status_code=400, detail="Invalid date format. Expected YYYY-MM-DD"
            ) from None

        counselor = self.repo.get_bookable_counselor(self.db, counselor_id)
        if not counselor:
            raise HTTPException(status_code=404, detail="Counselor not found or not available")

        bookings = []
        for appointment in self.repo.get_blocking_appointments(self.db, counselor_id, target_date):
            try:
                bookings.append(
                    Booking(start=parse_hhmm(appointment.appointment_time), duration=appointment.duration)
                )
            except ValueError:
                logger.warning(
                    f"⚠️ Appointment {appointment.id} has invalid time {appointment.appointment_time!r}, ignoring"
                )

        result = calculate_available_slots(
            parse_sources(counselor.availability, counselor.schedule),
            target_date,
            duration,
            bookings,
            now or local_now(),
        )
        logger.info(
            f"📅 Counselor {counselor_id} has {len(result.slots)} open slots on {date_str} ({result.day_of_week})"
        )

        return {
            "message": result.message,
            "data": {
                "counselor": {
                    "id": counselor.id,
                    "name": counselor.full_name,
                    "username": counselor.username,
                    "specialization": counselor.specialization,
                },
                "date": date_str,
                "dayOfWeek": result.day_of_week,
                "duration": duration,
                "availableSlots": result.slots,
                "totalSlots": len(result.slots),
            },
        }
