"""Emergency contact service - Business logic for a user's emergency contacts"""

import logging
from datetime import datetime

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import EmergencyContact, User
from ..sos.status import is_eligible
from .repository import EmergencyContactRepository
from .schemas import EmergencyContactCreate, EmergencyContactResponse, EmergencyContactUpdate

logger = logging.getLogger(__name__)


def to_response(contact: EmergencyContact) -> EmergencyContactResponse:
    return EmergencyContactResponse(
        id=contact.id,
        name=contact.name,
        email=contact.email,
        relationship=contact.relationship_type,
        phoneNumber=contact.phone_number,
        priority=contact.priority,
        notes=contact.notes,
        isActive=contact.is_active,
        consentGiven=contact.consent_given,
        consentGivenAt=contact.consent_given_at,
        verificationStatus=contact.verification_status,
        eligibleForSOS=is_eligible(contact),
        created_at=contact.created_at,
    )


class EmergencyContactService:
    """Service layer for emergency contact business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = EmergencyContactRepository()

    def get_contacts(self, user: User) -> list[EmergencyContact]:
        return self.repo.get_contacts(self.db, user.id)

    def get_active_contacts(self, user: User) -> list[EmergencyContact]:
        """Contacts that will be considered when an SOS is triggered"""
        return self.repo.get_active_consented(self.db, user.id)

    def get_contact(self, contact_id: int, user: User) -> EmergencyContact:
        contact = self.repo.get_contact_by_id(self.db, contact_id, user.id)
        if not contact:
            raise HTTPException(status_code=404, detail="Emergency contact not found")
        return contact

    def create_contact(self, data: EmergencyContactCreate, user: User) -> EmergencyContact:
        logger.info(f"📥 Creating emergency contact for user_id: {user.id}")

        if self.repo.get_contact_by_email(self.db, user.id, data.email):
            raise HTTPException(
                status_code=409, detail="Emergency contact with this email already exists"
            )

        contact_data = {
            "name": data.name,
            "email": data.email,
            "relationship_type": data.relationship,
            "phone_number": data.phoneNumber,
            "priority": data.priority,
            "notes": data.notes,
            "consent_given": data.consentGiven,
            "consent_given_at": datetime.utcnow() if data.consentGiven else None,
        }

        contact = self.repo.create_contact(self.db, user.id, **contact_data)
        if not contact.phone_number:
            logger.warning(
                f"⚠️ Emergency contact {contact.id} for user {user.id} has no phone number, "
                "SOS will be blocked until one is added"
            )
        return contact

    def update_contact(self, contact_id: int, data: EmergencyContactUpdate, user: User) -> EmergencyContact:
        contact = self.get_contact(contact_id, user)

        updates = {}
        if data.name is not None:
            updates["name"] = data.name
        if data.email is not None and data.email != contact.email:
            if self.repo.get_contact_by_email(self.db, user.id, data.email):
                raise HTTPException(
                    status_code=409, detail="Emergency contact with this email already exists"
                )
            updates["email"] = data.email
        if data.relationship is not None:
            updates["relationship_type"] = data.relationship
        if data.phoneNumber is not None:
            updates["phone_number"] = data.phoneNumber
        if data.priority is not None:
            updates["priority"] = data.priority
        if data.notes is not None:
            updates["notes"] = data.notes
        if data.isActive is not None:
            updates["is_active"] = data.isActive

        return self.repo.update_contact(self.db, contact, **updates)

    def delete_contact(self, contact_id: int, user: User) -> dict:
        contact = self.get_contact(contact_id, user)
        self.repo.delete_contact(self.db, contact)
        logger.info(f"🗑️ Emergency contact {contact_id} deleted by user {user.id}")
        return {"success": True, "message": "Emergency contact deleted successfully"}

    def set_consent(self, contact_id: int, consent_given: bool, user: User) -> EmergencyContact:
        """Grant or withdraw a contact's consent to receive SOS alerts"""
        contact = self.get_contact(contact_id, user)
        updates = {
            "consent_given": consent_given,
            "consent_given_at": datetime.utcnow() if consent_given else None,
        }
        logger.info(
            f"Consent {'granted' if consent_given else 'withdrawn'} for contact {contact_id} (user {user.id})"
        )
        return self.repo.update_contact(self.db, contact, **updates)
