"""Guest session repository - Database operations for anonymous sessions"""

from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ...models import GuestSession

GUEST_SESSION_TTL = timedelta(hours=24)


class GuestSessionRepository:
    """Repository for guest session database operations"""

    @staticmethod
    def create_session(
        db: Session, session_id: str, ip_address: str, user_agent: Optional[str]
    ) -> GuestSession:
        session = GuestSession(
            session_id=session_id,
            ip_address=ip_address,
            user_agent=user_agent,
            last_activity=datetime.utcnow(),
            created_at=datetime.utcnow(),
        )
        db.add(session)
        db.commit()
        db.refresh(session)
        return session

    @staticmethod
    def get_active_session(db: Session, session_id: str) -> Optional[GuestSession]:
        """Get an active session created within the TTL window"""
        cutoff = datetime.utcnow() - GUEST_SESSION_TTL
        return (
            db.query(GuestSession)
            .filter(
                GuestSession.session_id == session_id,
                GuestSession.is_active.is_(True),
                GuestSession.created_at >= cutoff,
            )
            .first()
        )

    @staticmethod
    def touch(db: Session, session: GuestSession) -> None:
        session.last_activity = datetime.utcnow()
        db.commit()
