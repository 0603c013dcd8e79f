"""SOS domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel


class LocationPayload(BaseModel):
    """Location of the person needing help (address only)"""

    address: Optional[str] = None


class SOSTriggerRequest(BaseModel):
    """Schema for triggering an SOS alert as an authenticated user"""

    location: Optional[LocationPayload] = None
    customNote: Optional[str] = None
    wasOffline: Optional[bool] = False
    metadata: Optional[dict[str, Any]] = None


class GuestContactIn(BaseModel):
    """Inline emergency contact supplied by a guest (validated by the service)"""

    name: Optional[str] = None
    phoneNumber: Optional[str] = None
    relationship: Optional[str] = None


class QuickTriggerRequest(SOSTriggerRequest):
    """Schema for the quick trigger, usable by users and guests"""

    guestSessionId: Optional[str] = None
    guestContacts: Optional[list[GuestContactIn]] = None


class DeliveryAttemptResponse(BaseModel):
    channel: str
    status: str
    sentAt: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None


class ContactDeliveryResponse(BaseModel):
    contactId: Optional[int] = None
    name: Optional[str] = None
    relationship: Optional[str] = None
    phoneNumber: Optional[str] = None
    status: str
    channel: str
    lastAttemptAt: Optional[datetime] = None
    lastError: Optional[str] = None
    providerMessageId: Optional[str] = None
    history: list[DeliveryAttemptResponse] = []


class SOSAlertResponse(BaseModel):
    """Schema for SOS alert response"""

    id: int
    status: str
    isGuest: bool
    userId: Optional[int] = None
    guestSessionId: Optional[str] = None
    location: Optional[LocationPayload] = None
    customNote: Optional[str] = None
    wasOffline: bool = False
    metadata: dict[str, Any] = {}
    contacts: list[ContactDeliveryResponse]
    triggeredAt: Optional[datetime] = None
    cancelledAt: Optional[datetime] = None
    resolvedAt: Optional[datetime] = None
    durationSeconds: Optional[float] = None

    @classmethod
    def from_alert(cls, alert) -> "SOSAlertResponse":
        return cls(
            id=alert.id,
            status=alert.status,
            isGuest=bool(alert.is_guest),
            userId=alert.user_id,
            guestSessionId=alert.guest_session_id,
            location=(
                LocationPayload(address=alert.location_address) if alert.location_address else None
            ),
            customNote=alert.custom_note,
            wasOffline=bool(alert.was_offline),
            metadata=alert.alert_metadata or {},
            contacts=[
                ContactDeliveryResponse(
                    contactId=record.contact_id,
                    name=record.snapshot_name,
                    relationship=record.snapshot_relationship,
                    phoneNumber=record.snapshot_phone_number,
                    status=record.status,
                    channel=record.channel,
                    lastAttemptAt=record.last_attempt_at,
                    lastError=record.last_error,
                    providerMessageId=record.provider_message_id,
                    history=[DeliveryAttemptResponse(**entry) for entry in record.history or []],
                )
                for record in alert.contacts
            ],
            triggeredAt=alert.triggered_at,
            cancelledAt=alert.cancelled_at,
            resolvedAt=alert.resolved_at,
            durationSeconds=alert.duration_seconds if alert.triggered_at else None,
        )


class SOSTriggerResponse(BaseModel):
    success: bool = True
    message: str
    data: SOSAlertResponse
    authenticated: bool
    isGuest: bool = False


class SOSActionResponse(BaseModel):
    success: bool = True
    message: str
    data: Optional[SOSAlertResponse] = None


class PaginationResponse(BaseModel):
    page: int
    limit: int
    skip: int
    total: int
    pages: int


class SOSHistoryResponse(BaseModel):
    success: bool = True
    data: list[SOSAlertResponse]
    pagination: PaginationResponse


class SOSAccessResponse(BaseModel):
    success: bool = True
    authenticated: bool
    isGuest: bool = False
    guestAccess: bool = False
    hasEmergencyContacts: Optional[bool] = None
    contactCount: Optional[int] = None
    message: str
