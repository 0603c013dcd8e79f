from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    username = Column(String(100), unique=True, index=True, nullable=True)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    phone_number = Column(String(20), nullable=True)  # E.164, shared with contacts as callback number
    role = Column(String(20), default="user", nullable=False)  # user, counselor, admin
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    emergency_contacts = relationship(
        "EmergencyContact", back_populates="user", cascade="all, delete-orphan"
    )

    @property
    def display_name(self) -> str:
        """First + last name, else username, else email, else 'Someone'"""
        names = " ".join(n for n in (self.first_name, self.last_name) if n).strip()
        return names or self.username or self.email or "Someone"


class EmergencyContact(Base):
    """A person the owning user has consented to alert in an emergency"""

    __tablename__ = "emergency_contacts"
    __table_args__ = (UniqueConstraint("user_id", "email", name="uq_emergency_contact_user_email"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    name = Column(String(100), nullable=False)
    relationship_type = Column(
        "relationship", String(20), default="other", nullable=False
    )  # family, friend, partner, colleague, other
    phone_number = Column(String(20), nullable=True)  # E.164; required before SOS dispatch
    email = Column(String(255), nullable=False)
    priority = Column(Integer, default=0, nullable=False)  # 0-10, higher alerted first
    notes = Column(String(500), nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)
    consent_given = Column(Boolean, default=False, nullable=False)
    consent_given_at = Column(DateTime, nullable=True)
    verification_status = Column(String(20), default="pending", nullable=False)  # pending, verified, failed

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="emergency_contacts")


class GuestSession(Base):
    """Ephemeral session for unauthenticated visitors (expires after 24h)"""

    __tablename__ = "guest_sessions"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(String(64), unique=True, index=True, nullable=False)
    ip_address = Column(String(64), nullable=False)
    user_agent = Column(String(500), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    last_activity = Column(DateTime, server_default=func.now())

    created_at = Column(DateTime, server_default=func.now())


class Counselor(Base):
    __tablename__ = "counselors"

    id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    username = Column(String(100), unique=True, index=True, nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    specialization = Column(String(255), nullable=True)

    is_verified = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    is_available = Column(Boolean, default=True, nullable=False)

    # Recurring weekly availability, two legacy shapes:
    # availability: [{"day": "Monday", "slots": [{"startTime": "09:00", "endTime": "12:00"}]}]
    # schedule: [{"dayOfWeek": "Monday", "isAvailable": true, "startTime": "09:00", "endTime": "17:00"}]
    availability = Column(JSON, default=list, nullable=True)
    schedule = Column(JSON, default=list, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    appointments = relationship("Appointment", back_populates="counselor")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class Appointment(Base):
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    counselor_id = Column(Integer, ForeignKey("counselors.id"), nullable=False, index=True)

    appointment_date = Column(Date, nullable=False, index=True)
    appointment_time = Column(String(5), nullable=False)  # HH:MM
    duration = Column(Integer, default=60, nullable=False)  # minutes, 30-180
    status = Column(
        String(20), default="pending", nullable=False
    )  # pending, confirmed, in-progress, completed, cancelled, no-show
    reason = Column(Text, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    counselor = relationship("Counselor", back_populates="appointments")
