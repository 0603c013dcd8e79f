"""
SOS Alert Models
Emergency alert aggregate and its per-contact SMS delivery ledger
"""

from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base

ALERT_STATUSES = ("pending", "sent", "failed", "cancelled", "resolved")


class AlertOwnershipError(ValueError):
    """Raised when an alert has both or neither of user_id / guest_session_id"""


class SOSAlert(Base):
    """One emergency trigger event, owned by a user or by a guest session"""

    __tablename__ = "sos_alerts"
    __table_args__ = (
        CheckConstraint(
            "(user_id IS NULL) <> (guest_session_id IS NULL)", name="ck_sos_alert_single_owner"
        ),
        Index("ix_sos_alerts_user_created", "user_id", "created_at"),
        Index("ix_sos_alerts_user_status", "user_id", "status"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    guest_session_id = Column(String(64), nullable=True, index=True)
    is_guest = Column(Boolean, default=False, nullable=False)

    status = Column(String(20), default="pending", nullable=False, index=True)

    # Location is an address string only, raw coordinates are never stored
    location_address = Column(String(500), nullable=True)
    custom_note = Column(String(500), nullable=True)
    was_offline = Column(Boolean, default=False, nullable=False)
    alert_metadata = Column("metadata", JSON, default=dict, nullable=True)

    # Guest flow only: [{"name", "phoneNumber", "relationship"}], index-aligned with contacts
    guest_contacts = Column(JSON, default=list, nullable=True)

    triggered_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    cancelled_at = Column(DateTime, nullable=True)
    resolved_at = Column(DateTime, nullable=True)
    last_dispatched_at = Column(DateTime, nullable=True)

    # Optimistic concurrency guard for concurrent retries on the same alert
    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime, default=datetime.utcnow, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    contacts = relationship(
        "SOSContactDelivery",
        back_populates="alert",
        order_by="SOSContactDelivery.position",
        cascade="all, delete-orphan",
    )
    user = relationship("User")

    __mapper_args__ = {"version_id_col": version}

    def __init__(self, **kwargs):
        user_id = kwargs.get("user_id")
        guest_session_id = kwargs.get("guest_session_id")
        if user_id is None and not guest_session_id:
            raise AlertOwnershipError("Either user_id or guest_session_id must be provided")
        if user_id is not None and guest_session_id:
            raise AlertOwnershipError("Cannot have both user_id and guest_session_id")
        kwargs["is_guest"] = bool(guest_session_id)
        super().__init__(**kwargs)

    @property
    def duration_seconds(self) -> float:
        """Seconds from trigger to resolution/cancellation (or now while open)"""
        end = self.resolved_at or self.cancelled_at or datetime.utcnow()
        return (end - self.triggered_at).total_seconds()


class SOSContactDelivery(Base):
    """Delivery ledger entry for one target contact of an SOS alert"""

    __tablename__ = "sos_contact_deliveries"

    id = Column(Integer, primary_key=True, index=True)
    sos_alert_id = Column(Integer, ForeignKey("sos_alerts.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False)  # index into the alert's contact list

    # Null for guest contacts; contact rows may be deleted later, snapshot stays
    contact_id = Column(
        Integer, ForeignKey("emergency_contacts.id", ondelete="SET NULL"), nullable=True
    )

    # Snapshot taken at trigger time, never updated afterwards
    snapshot_name = Column(String(100), nullable=True)
    snapshot_relationship = Column(String(20), nullable=True)
    snapshot_phone_number = Column(String(20), nullable=True)

    status = Column(String(20), default="pending", nullable=False)  # pending, sent, failed
    channel = Column(String(20), default="sms", nullable=False)
    last_attempt_at = Column(DateTime, nullable=True)
    last_error = Column(Text, nullable=True)
    provider_message_id = Column(String(255), nullable=True)

    # Append-only attempt log: [{"channel", "status", "sentAt", "metadata"}]
    history = Column(JSON, default=list, nullable=False)

    alert = relationship("SOSAlert", back_populates="contacts")
    contact = relationship("EmergencyContact")
