"""Emergency contact router - FastAPI endpoints for a user's emergency contacts"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import User
from .schemas import (
    ConsentUpdate,
    EmergencyContactCreate,
    EmergencyContactResponse,
    EmergencyContactUpdate,
)
from .service import EmergencyContactService, to_response

router = APIRouter(prefix="/emergency-contacts", tags=["Emergency Contacts"])


def get_emergency_contact_service(db: Session = Depends(get_db)) -> EmergencyContactService:
    """Dependency injection for EmergencyContactService"""
    return EmergencyContactService(db)


@router.get("", response_model=list[EmergencyContactResponse])
async def get_contacts(
    current_user: User = Depends(get_current_user),
    service: EmergencyContactService = Depends(get_emergency_contact_service),
):
    """Get all emergency contacts for the current user"""
    return [to_response(c) for c in service.get_contacts(current_user)]


@router.get("/active", response_model=list[EmergencyContactResponse])
async def get_active_contacts(
    current_user: User = Depends(get_current_user),
    service: EmergencyContactService = Depends(get_emergency_contact_service),
):
    """Get active, consented contacts (the ones an SOS will target)"""
    return [to_response(c) for c in service.get_active_contacts(current_user)]


@router.get("/{contact_id}", response_model=EmergencyContactResponse)
async def get_contact(
    contact_id: int,
    current_user: User = Depends(get_current_user),
    service: EmergencyContactService = Depends(get_emergency_contact_service),
):
    return to_response(service.get_contact(contact_id, current_user))


@router.post("", response_model=EmergencyContactResponse, status_code=201)
async def create_contact(
    data: EmergencyContactCreate,
    current_user: User = Depends(get_current_user),
    service: EmergencyContactService = Depends(get_emergency_contact_service),
):
    return to_response(service.create_contact(data, current_user))


@router.put("/{contact_id}", response_model=EmergencyContactResponse)
async def update_contact(
    contact_id: int,
    data: EmergencyContactUpdate,
    current_user: User = Depends(get_current_user),
    service: EmergencyContactService = Depends(get_emergency_contact_service),
):
    return to_response(service.update_contact(contact_id, data, current_user))


@router.delete("/{contact_id}")
async def delete_contact(
    contact_id: int,
    current_user: User = Depends(get_current_user),
    service: EmergencyContactService = Depends(get_emergency_contact_service),
):
    return service.delete_contact(contact_id, current_user)


@router.post("/{contact_id}/consent", response_model=EmergencyContactResponse)
async def set_consent(
    contact_id: int,
    data: ConsentUpdate,
    current_user: User = Depends(get_current_user),
    service: EmergencyContactService = Depends(get_emergency_contact_service),
):
    """Grant or withdraw consent for SOS alerts"""
    return to_response(service.set_consent(contact_id, data.consentGiven, current_user))
