"""SOS status rules - pure functions over delivery statuses and contacts"""

from collections.abc import Iterable
from typing import Optional

from ...shared.validators import is_valid_e164

TERMINAL_ALERT_STATUSES = ("cancelled", "resolved")


def derive_alert_status(delivery_statuses: Iterable[str]) -> Optional[str]:
    """
    Derive the aggregate alert status from per-contact delivery statuses.

    - every contact failed -> "failed"
    - at least one contact sent -> "sent" (partial success counts as delivered)
    - every contact still pending -> "pending"

    Returns None when no rule applies (empty input, or pending mixed with
    failed and nothing sent), meaning the current status should be kept.
    """
    statuses = list(delivery_statuses)
    if not statuses:
        return None
    if all(s == "failed" for s in statuses):
        return "failed"
    if any(s == "sent" for s in statuses):
        return "sent"
    if all(s == "pending" for s in statuses):
        return "pending"
    return None


def recalc_status(current: str, delivery_statuses: Iterable[str]) -> str:
    """Recompute an alert's status without leaving cancelled/resolved"""
    if current in TERMINAL_ALERT_STATUSES:
        return current
    return derive_alert_status(delivery_statuses) or current


def is_eligible(contact) -> bool:
    """A contact can be alerted iff active, consented and with a valid E.164 number"""
    return bool(contact.is_active and contact.consent_given and is_valid_e164(contact.phone_number))
