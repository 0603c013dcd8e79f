"""SOS router - FastAPI endpoints for triggering and managing SOS alerts"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_user, get_optional_user
from ...database import get_db
from ...models import User
from ...services.twilio_service import SMSGateway, get_sms_gateway
from .exceptions import InvalidPayloadError
from .schemas import (
    QuickTriggerRequest,
    SOSAccessResponse,
    SOSActionResponse,
    SOSAlertResponse,
    SOSHistoryResponse,
    SOSTriggerRequest,
    SOSTriggerResponse,
)
from .service import SOSService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sos", tags=["SOS"])

STATUS_MESSAGES = {
    "sent": "SOS alert sent to your emergency contacts",
    "failed": "SOS alert created but no message could be delivered. Please retry.",
    "pending": "SOS alert created, delivery in progress",
}


def get_sos_service(
    db: Session = Depends(get_db),
    gateway: SMSGateway = Depends(get_sms_gateway),
) -> SOSService:
    """Dependency injection for SOSService"""
    return SOSService(db, gateway)


def _trigger_message(status: str) -> str:
    return STATUS_MESSAGES.get(status, "SOS alert created")


@router.get("/check-access", response_model=SOSAccessResponse)
async def check_access(
    current_user: Optional[User] = Depends(get_optional_user),
    service: SOSService = Depends(get_sos_service),
):
    """Report whether the caller can trigger an SOS and how"""
    return SOSAccessResponse(success=True, **service.check_access(current_user))


@router.post("/quick-trigger", response_model=SOSTriggerResponse, status_code=201)
async def quick_trigger(
    data: QuickTriggerRequest,
    current_user: Optional[User] = Depends(get_optional_user),
    service: SOSService = Depends(get_sos_service),
):
    """
    One-tap SOS for both signed-in users and guests.

    Authenticated callers notify their saved contacts. Guests must send a
    guestSessionId from POST /auth/guest-session plus inline guestContacts.
    """
    if current_user:
        alert = await service.create_sos_alert(current_user.id, data)
        return SOSTriggerResponse(
            message=_trigger_message(alert.status),
            data=SOSAlertResponse.from_alert(alert),
            authenticated=True,
            isGuest=False,
        )

    if not data.guestSessionId:
        raise InvalidPayloadError("Valid guest session ID is required")

    service.require_guest_session(data.guestSessionId)
    alert = await service.create_guest_sos_alert(data.guestSessionId, data)
    return SOSTriggerResponse(
        message=_trigger_message(alert.status),
        data=SOSAlertResponse.from_alert(alert),
        authenticated=False,
        isGuest=True,
    )


@router.post("/trigger", response_model=SOSTriggerResponse, status_code=201)
async def trigger_sos(
    data: SOSTriggerRequest,
    current_user: User = Depends(get_current_user),
    service: SOSService = Depends(get_sos_service),
):
    """Trigger an SOS alert to the current user's emergency contacts"""
    alert = await service.create_sos_alert(current_user.id, data)
    return SOSTriggerResponse(
        message=_trigger_message(alert.status),
        data=SOSAlertResponse.from_alert(alert),
        authenticated=True,
    )


@router.get("/history", response_model=SOSHistoryResponse)
async def get_history(
    limit: Optional[int] = Query(None),
    skip: Optional[int] = Query(None),
    status: Optional[str] = Query(None),
    current_user: User = Depends(get_current_user),
    service: SOSService = Depends(get_sos_service),
):
    result = service.get_sos_history(current_user.id, limit=limit, skip=skip, status=status)
    return SOSHistoryResponse(
        data=[SOSAlertResponse.from_alert(a) for a in result["data"]],
        pagination=result["pagination"],
    )


@router.get("/active", response_model=SOSActionResponse)
async def get_active_alert(
    guestSessionId: Optional[str] = Query(None),
    current_user: Optional[User] = Depends(get_optional_user),
    service: SOSService = Depends(get_sos_service),
):
    """Most recent pending or sent alert from the last 24 hours"""
    if current_user:
        alert = service.get_active_alert(user_id=current_user.id)
    elif guestSessionId:
        alert = service.get_active_alert(guest_session_id=guestSessionId)
    else:
        raise InvalidPayloadError("Authentication or guestSessionId is required")

    if not alert:
        return SOSActionResponse(message="No active SOS alert")
    return SOSActionResponse(message="Active SOS alert found", data=SOSAlertResponse.from_alert(alert))


@router.get("/{sos_id}", response_model=SOSAlertResponse)
async def get_alert(
    sos_id: int,
    current_user: User = Depends(get_current_user),
    service: SOSService = Depends(get_sos_service),
):
    return SOSAlertResponse.from_alert(service.get_alert(sos_id, current_user.id))


@router.post("/{sos_id}/cancel", response_model=SOSActionResponse)
async def cancel_alert(
    sos_id: int,
    current_user: User = Depends(get_current_user),
    service: SOSService = Depends(get_sos_service),
):
    alert = service.cancel_sos_alert(sos_id, current_user.id)
    return SOSActionResponse(message="SOS alert cancelled", data=SOSAlertResponse.from_alert(alert))


@router.post("/{sos_id}/resolve", response_model=SOSActionResponse)
async def resolve_alert(
    sos_id: int,
    current_user: User = Depends(get_current_user),
    service: SOSService = Depends(get_sos_service),
):
    alert = service.resolve_sos_alert(sos_id, current_user.id)
    return SOSActionResponse(message="SOS alert resolved", data=SOSAlertResponse.from_alert(alert))


@router.post("/{sos_id}/retry", response_model=SOSActionResponse)
async def retry_alert(
    sos_id: int,
    current_user: User = Depends(get_current_user),
    service: SOSService = Depends(get_sos_service),
):
    """Re-send the alert to contacts whose delivery failed, open alerts only"""
    alert = await service.retry_failed_alerts(sos_id, user_id=current_user.id)
    return SOSActionResponse(
        message=f"Retry finished with status {alert.status}",
        data=SOSAlertResponse.from_alert(alert),
    )
