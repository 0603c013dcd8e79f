"""SOS service - alert creation, SMS dispatch and alert lifecycle"""

import logging
import math
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ...models import GuestSession, User
from ...models_sos import ALERT_STATUSES, SOSAlert, SOSContactDelivery
from ...services.twilio_service import SMSGateway, SMSResult, build_sos_message
from ...shared.validators import is_valid_e164, validate_relationship
from ..emergency_contacts.repository import EmergencyContactRepository
from ..guest_sessions.repository import GuestSessionRepository
from .exceptions import (
    AlertClosedError,
    ConcurrentModificationError,
    GuestSessionNotFoundError,
    InvalidContactError,
    InvalidPayloadError,
    MissingPhoneNumbersError,
    NoEligibleContactsError,
    NoFailedAlertsError,
    SOSAlertNotFoundError,
)
from .repository import SOSRepository
from .schemas import QuickTriggerRequest, SOSTriggerRequest
from .status import TERMINAL_ALERT_STATUSES, recalc_status

logger = logging.getLogger(__name__)

MAX_NOTE_LENGTH = 500
MAX_ADDRESS_LENGTH = 500
MAX_GUEST_CONTACTS = 10
GUEST_DISPLAY_NAME = "Guest User"

# Records in these states are (re)attempted by a regular dispatch; "sent" never is
DISPATCHABLE_STATUSES = ("pending", "failed")


class SOSService:
    """Service layer for SOS alert business logic"""

    def __init__(self, db: Session, gateway: SMSGateway):
        self.db = db
        self.gateway = gateway
        self.repo = SOSRepository()
        self.contacts_repo = EmergencyContactRepository()

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    @staticmethod
    def _validate_payload(data: SOSTriggerRequest) -> tuple[Optional[str], Optional[str]]:
        """Return (address, note) or raise InvalidPayloadError"""
        address = None
        if data.location is not None:
            address = (data.location.address or "").strip()
            if not address:
                raise InvalidPayloadError("If location is provided, it must include an address.")
            if len(address) > MAX_ADDRESS_LENGTH:
                raise InvalidPayloadError(
                    f"Location address cannot exceed {MAX_ADDRESS_LENGTH} characters"
                )

        note = data.customNote or None
        if note and len(note) > MAX_NOTE_LENGTH:
            raise InvalidPayloadError(f"Custom note cannot exceed {MAX_NOTE_LENGTH} characters")

        return address, note

    @staticmethod
    def _validate_guest_contacts(data: QuickTriggerRequest) -> list[dict]:
        """Validate inline guest contacts eagerly; any bad entry rejects the whole request"""
        guest_contacts = data.guestContacts or []
        if not guest_contacts:
            raise InvalidContactError("At least one emergency contact is required for guest SOS")
        if len(guest_contacts) > MAX_GUEST_CONTACTS:
            raise InvalidContactError(
                f"A guest SOS can notify at most {MAX_GUEST_CONTACTS} contacts"
            )

        validated = []
        for contact in guest_contacts:
            name = (contact.name or "").strip()
            phone = (contact.phoneNumber or "").strip()
            if not name or not phone:
                raise InvalidContactError("Each contact must have a name and phone number")
            if not is_valid_e164(phone):
                raise InvalidContactError(
                    f"Invalid phone number format: {phone}. Must be in E.164 format (e.g., +250788123456)"
                )
            try:
                relationship = validate_relationship(contact.relationship)
            except ValueError as e:
                raise InvalidContactError(str(e)) from e
            validated.append({"name": name, "phoneNumber": phone, "relationship": relationship})
        return validated

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_sos_alert(self, user_id: int, data: SOSTriggerRequest) -> SOSAlert:
        """Create an alert for a user's eligible contacts and dispatch it"""
        address, note = self._validate_payload(data)

        contacts = self.contacts_repo.get_active_consented(self.db, user_id)
        if not contacts:
            logger.warning(f"SOS rejected for user {user_id}: no active emergency contacts")
            raise NoEligibleContactsError()

        missing = [c.name for c in contacts if not is_valid_e164(c.phone_number)]
        if missing:
            logger.warning(
                f"SOS rejected for user {user_id}: contacts without valid phone numbers: {missing}"
            )
            raise MissingPhoneNumbersError(missing)

        now = datetime.utcnow()
        alert = SOSAlert(
            user_id=user_id,
            status="pending",
            location_address=address,
            custom_note=note,
            was_offline=bool(data.wasOffline),
            alert_metadata=data.metadata or {},
            triggered_at=now,
            created_at=now,
            contacts=[
                SOSContactDelivery(
                    position=position,
                    contact_id=contact.id,
                    snapshot_name=contact.name,
                    snapshot_relationship=contact.relationship_type,
                    snapshot_phone_number=contact.phone_number,
                    status="pending",
                    channel="sms",
                    history=[],
                )
                for position, contact in enumerate(contacts)
            ],
        )
        alert = self.repo.create_alert(self.db, alert)
        logger.info(f"🚨 SOS alert {alert.id} created for user {user_id} ({len(contacts)} contacts)")

        return await self.dispatch_sms_alerts(alert)

    async def create_guest_sos_alert(self, guest_session_id: str, data: QuickTriggerRequest) -> SOSAlert:
        """Create an alert for contacts supplied inline by a guest session and dispatch it"""
        if not guest_session_id or not isinstance(guest_session_id, str):
            raise InvalidPayloadError("Valid guest session ID is required")

        guest_contacts = self._validate_guest_contacts(data)
        address, note = self._validate_payload(data)

        now = datetime.utcnow()
        alert = SOSAlert(
            guest_session_id=guest_session_id,
            status="pending",
            guest_contacts=guest_contacts,
            location_address=address,
            custom_note=note,
            was_offline=bool(data.wasOffline),
            alert_metadata=data.metadata or {},
            triggered_at=now,
            created_at=now,
            contacts=[
                SOSContactDelivery(
                    position=position,
                    snapshot_name=contact["name"],
                    snapshot_relationship=contact["relationship"],
                    snapshot_phone_number=contact["phoneNumber"],
                    status="pending",
                    channel="sms",
                    history=[],
                )
                for position, contact in enumerate(guest_contacts)
            ],
        )
        alert = self.repo.create_alert(self.db, alert)
        logger.info(
            f"🚨 Guest SOS alert {alert.id} created for session {guest_session_id[:8]}... "
            f"({len(guest_contacts)} contacts)"
        )

        return await self.dispatch_sms_alerts(alert)

    def require_guest_session(self, guest_session_id: str) -> GuestSession:
        """Look up an active guest session and record the activity"""
        session = GuestSessionRepository.get_active_session(self.db, guest_session_id)
        if not session:
            raise GuestSessionNotFoundError()
        GuestSessionRepository.touch(self.db, session)
        return session

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def _phone_resolver(self, alert: SOSAlert, records: list[SOSContactDelivery]):
        """Return (display_name, record -> current phone number)"""
        if alert.is_guest:
            guest_contacts = alert.guest_contacts or []

            def guest_phone(record: SOSContactDelivery) -> Optional[str]:
                if record.position >= len(guest_contacts):
                    return None
                return guest_contacts[record.position].get("phoneNumber")

            return GUEST_DISPLAY_NAME, guest_phone

        user = self.repo.get_user(self.db, alert.user_id)
        contact_map = self.contacts_repo.get_by_ids_for_dispatch(
            self.db, alert.user_id, [r.contact_id for r in records if r.contact_id is not None]
        )

        def contact_phone(record: SOSContactDelivery) -> Optional[str]:
            contact = contact_map.get(record.contact_id)
            return contact.phone_number if contact else None

        return (user.display_name if user else "Someone"), contact_phone

    @staticmethod
    def _record_attempt(
        record: SOSContactDelivery,
        status: str,
        attempted_at: datetime,
        metadata: dict,
        error: Optional[str] = None,
        message_id: Optional[str] = None,
    ) -> None:
        record.status = status
        record.channel = "sms"
        record.last_attempt_at = attempted_at
        record.last_error = error
        if message_id:
            record.provider_message_id = message_id
        # Reassign so the JSON column is flagged as modified
        record.history = [
            *(record.history or []),
            {
                "channel": "sms",
                "status": status,
                "sentAt": attempted_at.isoformat(),
                "metadata": metadata,
            },
        ]

    async def dispatch_sms_alerts(
        self, alert: SOSAlert, statuses: tuple[str, ...] = DISPATCHABLE_STATUSES
    ) -> SOSAlert:
        """
        Send the SOS text to every record in `statuses`, one contact at a time.

        Records already marked "sent" are never re-sent. A failure for one
        contact is recorded on its record and does not stop the batch. The
        aggregate status is recomputed and the alert is saved once at the end.
        """
        targets = [r for r in alert.contacts if r.status in statuses and r.status != "sent"]
        if not targets:
            return alert

        now = datetime.utcnow()
        display_name, resolve_phone = self._phone_resolver(alert, targets)
        metadata = alert.alert_metadata or {}
        body = build_sos_message(
            display_name=display_name,
            location_address=alert.location_address,
            custom_note=alert.custom_note,
            callback_phone=metadata.get("phoneNumber"),
            sent_at=now,
        )

        for record in targets:
            contact_ref = record.contact_id if record.contact_id is not None else f"guest_{record.position}"
            phone = resolve_phone(record)

            if not phone:
                self._record_attempt(
                    record, "failed", now, {"error": "Missing phone number"}, error="Missing phone number"
                )
                logger.error(f"SOS alert failed: Missing phone number (sos={alert.id}, contact={contact_ref})")
                continue

            try:
                result = await self.gateway.send_sms(phone, body)
            except Exception as e:
                logger.error(
                    f"SOS SMS gateway raised (sos={alert.id}, contact={contact_ref}): {str(e)}"
                )
                result = SMSResult(success=False, error=str(e) or type(e).__name__)

            if result.success:
                self._record_attempt(
                    record,
                    "sent",
                    now,
                    {"messageId": result.message_id, "providerStatus": result.status},
                    message_id=result.message_id,
                )
                logger.info(f"✅ SOS SMS sent (sos={alert.id}, contact={contact_ref})")
            else:
                error = result.error or "SMS send failed"
                self._record_attempt(record, "failed", now, {"error": error}, error=error)
                logger.error(f"❌ SOS SMS dispatch failed (sos={alert.id}, contact={contact_ref}): {error}")

        alert.status = recalc_status(alert.status, [r.status for r in alert.contacts])
        alert.last_dispatched_at = now
        self._save(alert)

        logger.info(f"SOS alert {alert.id} dispatch finished with status {alert.status}")
        return alert

    def _save(self, alert: SOSAlert) -> SOSAlert:
        try:
            return self.repo.save(self.db, alert)
        except StaleDataError as e:
            self.db.rollback()
            logger.warning(f"⚠️ Concurrent modification detected on SOS alert {alert.id}")
            raise ConcurrentModificationError() from e

    async def retry_failed_alerts(self, sos_id: int, user_id: Optional[int] = None) -> SOSAlert:
        """Re-dispatch only the records currently marked failed on an open alert"""
        alert = (
            self.repo.get_alert_for_user(self.db, sos_id, user_id)
            if user_id is not None
            else self.repo.get_alert(self.db, sos_id)
        )
        if not alert:
            raise SOSAlertNotFoundError()

        if alert.status in TERMINAL_ALERT_STATUSES:
            raise AlertClosedError()

        failed_count = sum(1 for r in alert.contacts if r.status == "failed")
        if not failed_count:
            raise NoFailedAlertsError()

        logger.info(f"🔁 Retrying {failed_count} failed contact(s) for SOS alert {sos_id}")
        return await self.dispatch_sms_alerts(alert, statuses=("failed",))

    # ------------------------------------------------------------------
    # Lifecycle and queries
    # ------------------------------------------------------------------

    def get_alert(self, sos_id: int, user_id: int) -> SOSAlert:
        alert = self.repo.get_alert_for_user(self.db, sos_id, user_id)
        if not alert:
            raise SOSAlertNotFoundError()
        return alert

    def cancel_sos_alert(self, sos_id: int, user_id: int) -> SOSAlert:
        alert = self.get_alert(sos_id, user_id)
        if alert.status in TERMINAL_ALERT_STATUSES:
            return alert

        alert.status = "cancelled"
        alert.cancelled_at = datetime.utcnow()
        logger.info(f"SOS alert {sos_id} cancelled by user {user_id}")
        return self._save(alert)

    def resolve_sos_alert(self, sos_id: int, user_id: int) -> SOSAlert:
        alert = self.get_alert(sos_id, user_id)
        if alert.status in TERMINAL_ALERT_STATUSES:
            return alert

        alert.status = "resolved"
        alert.resolved_at = datetime.utcnow()
        logger.info(f"SOS alert {sos_id} resolved by user {user_id}")
        return self._save(alert)

    def get_sos_history(
        self,
        user_id: int,
        limit: Optional[int] = None,
        skip: Optional[int] = None,
        status: Optional[str] = None,
    ) -> dict:
        limit = min(max(limit or 20, 1), 100)
        skip = max(skip or 0, 0)
        if status is not None and status not in ALERT_STATUSES:
            raise InvalidPayloadError(f"Invalid status filter: {status}")

        items, total = self.repo.get_history(self.db, user_id, status, limit, skip)
        return {
            "data": items,
            "pagination": {
                "page": skip // limit + 1,
                "limit": limit,
                "skip": skip,
                "total": total,
                "pages": math.ceil(total / limit) or 1,
            },
        }

    def get_active_alert(
        self, user_id: Optional[int] = None, guest_session_id: Optional[str] = None
    ) -> Optional[SOSAlert]:
        return self.repo.get_active_alert(self.db, user_id=user_id, guest_session_id=guest_session_id)

    def check_access(self, user: Optional[User]) -> dict:
        if user is None:
            return {
                "authenticated": False,
                "isGuest": True,
                "guestAccess": True,
                "message": "Guest access available, provide guestSessionId and guestContacts to trigger SOS",
            }

        count = self.contacts_repo.count_active_consented(self.db, user.id)
        return {
            "authenticated": True,
            "hasEmergencyContacts": count > 0,
            "contactCount": count,
            "message": "Please add emergency contacts first" if count == 0 else "Ready to send SOS",
        }
