"""Emergency contact repository - Database operations for emergency contacts"""

from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ...models import EmergencyContact


class EmergencyContactRepository:
    """Repository for emergency contact database operations"""

    @staticmethod
    def get_contacts(db: Session, user_id: int) -> list[EmergencyContact]:
        """Get all contacts for a user, highest priority first"""
        return (
            db.query(EmergencyContact)
            .filter(EmergencyContact.user_id == user_id)
            .order_by(EmergencyContact.priority.desc(), EmergencyContact.id.asc())
            .all()
        )

    @staticmethod
    def get_active_consented(db: Session, user_id: int) -> list[EmergencyContact]:
        """Get contacts that are active and have given consent, highest priority first"""
        return (
            db.query(EmergencyContact)
            .filter(
                EmergencyContact.user_id == user_id,
                EmergencyContact.is_active.is_(True),
                EmergencyContact.consent_given.is_(True),
            )
            .order_by(EmergencyContact.priority.desc(), EmergencyContact.id.asc())
            .all()
        )

    @staticmethod
    def count_active_consented(db: Session, user_id: int) -> int:
        return (
            db.query(func.count(EmergencyContact.id))
            .filter(
                EmergencyContact.user_id == user_id,
                EmergencyContact.is_active.is_(True),
                EmergencyContact.consent_given.is_(True),
            )
            .scalar()
        )

    @staticmethod
    def get_by_ids_for_dispatch(
        db: Session, user_id: int, contact_ids: list[int]
    ) -> dict[int, EmergencyContact]:
        """Batch-load the active, consented contacts referenced by an alert"""
        if not contact_ids:
            return {}
        contacts = (
            db.query(EmergencyContact)
            .filter(
                EmergencyContact.id.in_(contact_ids),
                EmergencyContact.user_id == user_id,
                EmergencyContact.is_active.is_(True),
                EmergencyContact.consent_given.is_(True),
            )
            .all()
        )
        return {contact.id: contact for contact in contacts}

    @staticmethod
    def get_contact_by_id(db: Session, contact_id: int, user_id: int) -> Optional[EmergencyContact]:
        """Get a specific contact by ID, scoped to its owner"""
        return (
            db.query(EmergencyContact)
            .filter(EmergencyContact.id == contact_id, EmergencyContact.user_id == user_id)
            .first()
        )

    @staticmethod
    def get_contact_by_email(db: Session, user_id: int, email: str) -> Optional[EmergencyContact]:
        return (
            db.query(EmergencyContact)
            .filter(EmergencyContact.user_id == user_id, EmergencyContact.email == email)
            .first()
        )

    @staticmethod
    def create_contact(db: Session, user_id: int, **contact_data) -> EmergencyContact:
        """Create a new contact"""
        contact = EmergencyContact(user_id=user_id, **contact_data)
        db.add(contact)
        db.commit()
        db.refresh(contact)
        return contact

    @staticmethod
    def update_contact(db: Session, contact: EmergencyContact, **updates) -> EmergencyContact:
        """Update a contact with provided fields"""
        for key, value in updates.items():
            if hasattr(contact, key):
                setattr(contact, key, value)

        db.commit()
        db.refresh(contact)
        return contact

    @staticmethod
    def delete_contact(db: Session, contact: EmergencyContact) -> None:
        db.delete(contact)
        db.commit()
