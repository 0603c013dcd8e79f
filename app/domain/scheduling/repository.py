"""Scheduling repository - Database operations for counselor availability"""

from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from ...models import Appointment, Counselor

BLOCKING_APPOINTMENT_STATUSES = ("confirmed", "pending")


class SchedulingRepository:
    """Repository for counselor and appointment lookups"""

    @staticmethod
    def get_bookable_counselor(db: Session, counselor_id: int) -> Optional[Counselor]:
        """Counselor that is verified, active and accepting sessions"""
        return (
            db.query(Counselor)
            .filter(
                Counselor.id == counselor_id,
                Counselor.is_verified.is_(True),
                Counselor.is_active.is_(True),
                Counselor.is_available.is_(True),
            )
            .first()
        )

    @staticmethod
    def get_blocking_appointments(
        db: Session, counselor_id: int, appointment_date: date
    ) -> list[Appointment]:
        return (
            db.query(Appointment)
            .filter(
                Appointment.counselor_id == counselor_id,
                Appointment.appointment_date == appointment_date,
                Appointment.status.in_(BLOCKING_APPOINTMENT_STATUSES),
            )
            .order_by(Appointment.appointment_time)
            .all()
        )
