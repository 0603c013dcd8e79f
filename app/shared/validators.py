"""Shared validation utilities"""

import re
from datetime import datetime
from typing import Optional

# E.164: "+" then 2-15 digits, no leading zero in the country code
E164_PATTERN = re.compile(r"^\+[1-9]\d{1,14}$")

TIME_PATTERN = re.compile(r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$")

RELATIONSHIPS = ("family", "friend", "partner", "colleague", "other")


def is_valid_e164(phone: Optional[str]) -> bool:
    """Check a phone number against the E.164 format"""
    if not phone or not isinstance(phone, str):
        return False
    return bool(E164_PATTERN.match(phone))


def validate_e164_phone(phone: Optional[str]) -> Optional[str]:
    """
    Validate a phone number in E.164 format.

    Args:
        phone: Phone number string, e.g. +250788123456

    Returns:
        The stripped phone number, or the input unchanged when empty

    Raises:
        ValueError: If phone number is not E.164
    """
    if not phone:
        return phone

    phone = phone.strip()
    if not is_valid_e164(phone):
        raise ValueError(
            f"Invalid phone number format: {phone}. Must be in E.164 format (e.g., +250788123456)"
        )
    return phone


def validate_email(email: Optional[str]) -> Optional[str]:
    """
    Validate email format.

    Args:
        email: Email address string

    Returns:
        Lowercase email address

    Raises:
        ValueError: If email format is invalid
    """
    if not email:
        return email

    email = email.strip().lower()

    # Basic email validation pattern
    email_pattern = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"

    if not re.match(email_pattern, email):
        raise ValueError("Invalid email format")

    return email


def validate_relationship(relationship: Optional[str]) -> str:
    """Normalize a relationship value, defaulting to 'other'"""
    if not relationship:
        return "other"
    relationship = relationship.strip().lower()
    if relationship not in RELATIONSHIPS:
        raise ValueError(f"Relationship must be one of: {', '.join(RELATIONSHIPS)}")
    return relationship


def parse_hhmm(value: str) -> int:
    """Parse an HH:MM string into minutes since midnight"""
    if not value or not TIME_PATTERN.match(value.strip()):
        raise ValueError(f"Time must be in HH:MM format: {value}")
    parsed = datetime.strptime(value.strip(), "%H:%M")
    return parsed.hour * 60 + parsed.minute


def format_hhmm(minutes: int) -> str:
    """Format minutes since midnight as HH:MM"""
    return f"{minutes // 60:02d}:{minutes % 60:02d}"
