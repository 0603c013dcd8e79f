"""SOS domain errors, rendered by FastAPI as {"detail": ...} responses"""

from fastapi import HTTPException


class SOSError(HTTPException):
    """Base class for SOS errors surfaced to API callers"""

    status_code = 400
    default_detail = "SOS request failed"

    def __init__(self, detail: str | None = None):
        super().__init__(status_code=self.status_code, detail=detail or self.default_detail)


class InvalidPayloadError(SOSError):
    default_detail = "Invalid SOS request"


class InvalidContactError(SOSError):
    default_detail = "Invalid emergency contact"


class NoEligibleContactsError(SOSError):
    default_detail = "No active emergency contacts configured"


class MissingPhoneNumbersError(SOSError):
    def __init__(self, contact_names: list[str]):
        self.contact_names = contact_names
        super().__init__(
            f"Some emergency contacts are missing phone numbers: {', '.join(contact_names)}"
        )


class NoFailedAlertsError(SOSError):
    default_detail = "No failed alerts to retry"


class SOSAlertNotFoundError(SOSError):
    default_detail = "SOS alert not found"


class GuestSessionNotFoundError(SOSError):
    status_code = 404
    default_detail = "Invalid or expired guest session. Please create a new guest session."


class ConcurrentModificationError(SOSError):
    status_code = 409
    default_detail = "SOS alert was modified concurrently, please retry"


class AlertClosedError(SOSError):
    default_detail = "SOS alert is already cancelled or resolved"
