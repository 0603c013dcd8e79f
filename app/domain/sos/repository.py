"""SOS repository - Database operations for SOS alerts"""

from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session, selectinload

from ...models import User
from ...models_sos import SOSAlert

ACTIVE_ALERT_WINDOW = timedelta(hours=24)


class SOSRepository:
    """Repository for SOS alert database operations"""

    @staticmethod
    def create_alert(db: Session, alert: SOSAlert) -> SOSAlert:
        db.add(alert)
        db.commit()
        db.refresh(alert)
        return alert

    @staticmethod
    def save(db: Session, alert: SOSAlert) -> SOSAlert:
        db.commit()
        db.refresh(alert)
        return alert

    @staticmethod
    def get_alert(db: Session, sos_id: int) -> Optional[SOSAlert]:
        return (
            db.query(SOSAlert)
            .options(selectinload(SOSAlert.contacts))
            .filter(SOSAlert.id == sos_id)
            .first()
        )

    @staticmethod
    def get_alert_for_user(db: Session, sos_id: int, user_id: int) -> Optional[SOSAlert]:
        """Get an alert only if it belongs to the user"""
        return (
            db.query(SOSAlert)
            .options(selectinload(SOSAlert.contacts))
            .filter(SOSAlert.id == sos_id, SOSAlert.user_id == user_id)
            .first()
        )

    @staticmethod
    def get_history(
        db: Session, user_id: int, status: Optional[str], limit: int, skip: int
    ) -> tuple[list[SOSAlert], int]:
        """Newest-first page of a user's alerts plus the total count"""
        query = db.query(SOSAlert).filter(SOSAlert.user_id == user_id)
        if status:
            query = query.filter(SOSAlert.status == status)

        total = query.count()
        items = (
            query.options(selectinload(SOSAlert.contacts))
            .order_by(SOSAlert.created_at.desc(), SOSAlert.id.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )
        return items, total

    @staticmethod
    def get_active_alert(
        db: Session, user_id: Optional[int] = None, guest_session_id: Optional[str] = None
    ) -> Optional[SOSAlert]:
        """Most recent pending/sent alert from the last 24 hours"""
        query = db.query(SOSAlert).filter(
            SOSAlert.status.in_(["pending", "sent"]),
            SOSAlert.created_at >= datetime.utcnow() - ACTIVE_ALERT_WINDOW,
        )
        if user_id is not None:
            query = query.filter(SOSAlert.user_id == user_id)
        elif guest_session_id:
            query = query.filter(SOSAlert.guest_session_id == guest_session_id)
        else:
            return None

        return (
            query.options(selectinload(SOSAlert.contacts))
            .order_by(SOSAlert.created_at.desc(), SOSAlert.id.desc())
            .first()
        )

    @staticmethod
    def get_user(db: Session, user_id: int) -> Optional[User]:
        return db.query(User).filter(User.id == user_id).first()
