"""
Tests for the SOS dispatch engine

Covers alert creation, per-contact dispatch with partial failures, retries,
the guest path and the alert lifecycle.
"""

from datetime import datetime, timedelta
from unittest.mock import AsyncMock

import pytest
from conftest import make_contact, make_user
from sqlalchemy import text

from app.domain.guest_sessions.repository import GuestSessionRepository
from app.domain.sos.exceptions import (
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
from app.domain.sos.schemas import (
    GuestContactIn,
    LocationPayload,
    QuickTriggerRequest,
    SOSTriggerRequest,
)
from app.domain.sos.service import SOSService
from app.models import GuestSession
from app.models_sos import AlertOwnershipError, SOSAlert
from app.services.twilio_service import SMSResult

PHONE_A = "+250788111111"
PHONE_B = "+250788222222"


@pytest.fixture
def service(db, gateway):
    return SOSService(db, gateway)


@pytest.fixture
def two_contacts(db, user):
    first = make_contact(db, user, "Alice", PHONE_A, priority=5)
    second = make_contact(db, user, "Bob", PHONE_B, priority=1)
    return first, second


def guest_request(*contacts, **fields):
    return QuickTriggerRequest(
        guestSessionId="a" * 64,
        guestContacts=[GuestContactIn(**c) for c in contacts],
        **fields,
    )


class TestCreateSOSAlert:
    async def test_sends_to_every_eligible_contact_by_priority(self, service, gateway, user, two_contacts):
        alert = await service.create_sos_alert(
            user.id,
            SOSTriggerRequest(
                location=LocationPayload(address="KG 7 Ave, Kigali"),
                customNote="Please come",
                metadata={"phoneNumber": "+250788000001"},
            ),
        )

        assert alert.status == "sent"
        assert alert.is_guest is False
        assert [r.snapshot_name for r in alert.contacts] == ["Alice", "Bob"]
        assert [phone for phone, _ in gateway.calls] == [PHONE_A, PHONE_B]

        body = gateway.calls[0][1]
        assert body.startswith("URGENT SOS: Jane Doe needs help!")
        assert "At: KG 7 Ave, Kigali" in body
        assert "Note: Please come" in body
        assert "Call: +250788000001" in body

        record = alert.contacts[0]
        assert record.status == "sent"
        assert record.provider_message_id == "SM0001"
        assert len(record.history) == 1
        assert set(record.history[0]) == {"channel", "status", "sentAt", "metadata"}
        assert record.history[0]["status"] == "sent"
        assert alert.last_dispatched_at is not None

    async def test_only_active_consented_contacts_are_targeted(self, db, service, gateway, user):
        make_contact(db, user, "Alice", PHONE_A)
        make_contact(db, user, "No Consent", "+250788333333", consent_given=False)
        make_contact(db, user, "Inactive", "+250788444444", is_active=False)

        alert = await service.create_sos_alert(user.id, SOSTriggerRequest())

        assert [r.snapshot_name for r in alert.contacts] == ["Alice"]
        assert gateway.sent_to == [PHONE_A]

    async def test_no_eligible_contacts(self, db, service, user):
        make_contact(db, user, "No Consent", PHONE_A, consent_given=False)

        with pytest.raises(NoEligibleContactsError):
            await service.create_sos_alert(user.id, SOSTriggerRequest())

    async def test_missing_phone_number_rejects_whole_alert(self, db, service, gateway, user):
        make_contact(db, user, "Alice", None, priority=5)
        make_contact(db, user, "Bob", PHONE_B, priority=1)

        with pytest.raises(MissingPhoneNumbersError) as exc_info:
            await service.create_sos_alert(user.id, SOSTriggerRequest())

        assert exc_info.value.contact_names == ["Alice"]
        assert exc_info.value.status_code == 400
        assert db.query(SOSAlert).count() == 0
        assert gateway.calls == []

    async def test_location_without_address_is_invalid(self, service, user, two_contacts):
        with pytest.raises(InvalidPayloadError):
            await service.create_sos_alert(
                user.id, SOSTriggerRequest(location=LocationPayload(address="  "))
            )

    async def test_note_too_long_is_invalid(self, service, user, two_contacts):
        with pytest.raises(InvalidPayloadError):
            await service.create_sos_alert(user.id, SOSTriggerRequest(customNote="x" * 501))

    async def test_snapshot_survives_contact_changes(self, db, service, user, two_contacts):
        alice, _ = two_contacts
        alert = await service.create_sos_alert(user.id, SOSTriggerRequest())

        alice.name = "Alice Renamed"
        db.commit()
        db.refresh(alert)

        assert alert.contacts[0].snapshot_name == "Alice"
        assert alert.contacts[0].snapshot_phone_number == PHONE_A


class TestDispatch:
    async def test_gateway_exception_for_one_contact_does_not_stop_batch(
        self, service, gateway, user, two_contacts
    ):
        gateway.exceptions[PHONE_A] = RuntimeError("socket closed")

        alert = await service.create_sos_alert(user.id, SOSTriggerRequest())

        alice, bob = alert.contacts
        assert alert.status == "sent"
        assert alice.status == "failed"
        assert alice.last_error == "socket closed"
        assert alice.history[-1]["metadata"] == {"error": "socket closed"}
        assert bob.status == "sent"
        assert bob.provider_message_id

    async def test_sends_are_sequential_in_priority_order(self, db, user, two_contacts):
        mock_gateway = AsyncMock()
        mock_gateway.send_sms.side_effect = [
            SMSResult(success=False, error="Invalid phone number format"),
            SMSResult(success=True, message_id="SM9", status="queued"),
        ]

        alert = await SOSService(db, mock_gateway).create_sos_alert(user.id, SOSTriggerRequest())

        assert [c.args[0] for c in mock_gateway.send_sms.await_args_list] == [PHONE_A, PHONE_B]
        assert [r.status for r in alert.contacts] == ["failed", "sent"]
        assert alert.contacts[1].provider_message_id == "SM9"
        assert alert.status == "sent"

    async def test_all_failed_marks_alert_failed(self, service, gateway, user, two_contacts):
        gateway.failures[PHONE_A] = "Invalid phone number format"
        gateway.failures[PHONE_B] = "Permission denied"

        alert = await service.create_sos_alert(user.id, SOSTriggerRequest())

        assert alert.status == "failed"
        assert [r.last_error for r in alert.contacts] == [
            "Invalid phone number format",
            "Permission denied",
        ]

    async def test_redispatch_never_resends_sent_contacts(self, service, gateway, user, two_contacts):
        alert = await service.create_sos_alert(user.id, SOSTriggerRequest())
        assert len(gateway.calls) == 2

        alert = await service.dispatch_sms_alerts(alert)

        assert len(gateway.calls) == 2
        assert alert.status == "sent"
        assert all(len(r.history) == 1 for r in alert.contacts)

    async def test_contact_removed_after_trigger_fails_cleanly(
        self, db, service, gateway, user, two_contacts
    ):
        alice, _ = two_contacts
        gateway.failures[PHONE_A] = "temporary outage"
        alert = await service.create_sos_alert(user.id, SOSTriggerRequest())

        alice.consent_given = False
        db.commit()
        gateway.failures.clear()

        alert = await service.retry_failed_alerts(alert.id, user_id=user.id)

        assert alert.contacts[0].status == "failed"
        assert alert.contacts[0].last_error == "Missing phone number"
        assert len(alert.contacts[0].history) == 2

    async def test_concurrent_update_is_reported(self, db, service, gateway, user, two_contacts):
        gateway.failures[PHONE_A] = "temporary outage"
        alert = await service.create_sos_alert(user.id, SOSTriggerRequest())
        gateway.failures.clear()

        # Another writer saved the alert after we loaded it
        db.execute(text("UPDATE sos_alerts SET version = version + 1 WHERE id = :id"), {"id": alert.id})

        with pytest.raises(ConcurrentModificationError) as exc_info:
            await service.dispatch_sms_alerts(alert, statuses=("failed",))
        assert exc_info.value.status_code == 409


class TestRetryFailedAlerts:
    async def test_retry_only_resends_failed_contacts(self, service, gateway, user, two_contacts):
        gateway.failures[PHONE_A] = "temporary outage"
        alert = await service.create_sos_alert(user.id, SOSTriggerRequest())
        assert alert.status == "sent"

        gateway.failures.clear()
        gateway.calls.clear()
        alert = await service.retry_failed_alerts(alert.id, user_id=user.id)

        assert [phone for phone, _ in gateway.calls] == [PHONE_A]
        assert [r.status for r in alert.contacts] == ["sent", "sent"]
        assert [s["status"] for s in alert.contacts[0].history] == ["failed", "sent"]

    async def test_failed_alert_recovers_to_sent(self, service, gateway, user, two_contacts):
        gateway.failures.update({PHONE_A: "down", PHONE_B: "down"})
        alert = await service.create_sos_alert(user.id, SOSTriggerRequest())
        assert alert.status == "failed"

        gateway.failures.pop(PHONE_B)
        alert = await service.retry_failed_alerts(alert.id)

        assert alert.status == "sent"

    async def test_nothing_to_retry(self, service, user, two_contacts):
        alert = await service.create_sos_alert(user.id, SOSTriggerRequest())

        with pytest.raises(NoFailedAlertsError):
            await service.retry_failed_alerts(alert.id, user_id=user.id)

    async def test_other_users_alert_is_not_found(self, db, service, gateway, user, two_contacts):
        gateway.failures[PHONE_A] = "down"
        alert = await service.create_sos_alert(user.id, SOSTriggerRequest())
        stranger = make_user(db, email="stranger@example.com")

        with pytest.raises(SOSAlertNotFoundError):
            await service.retry_failed_alerts(alert.id, user_id=stranger.id)

    async def test_cancelled_alert_is_not_retried(self, service, gateway, user, two_contacts):
        gateway.failures[PHONE_A] = "down"
        alert = await service.create_sos_alert(user.id, SOSTriggerRequest())
        service.cancel_sos_alert(alert.id, user.id)
        calls_before = len(gateway.calls)

        gateway.failures.clear()
        with pytest.raises(AlertClosedError):
            await service.retry_failed_alerts(alert.id, user_id=user.id)

        assert len(gateway.calls) == calls_before
        assert alert.contacts[0].status == "failed"


class TestGuestSOS:
    async def test_guest_alert_uses_inline_contacts(self, service, gateway):
        alert = await service.create_guest_sos_alert(
            "a" * 64,
            guest_request(
                {"name": "Mama", "phoneNumber": PHONE_A, "relationship": "Family"},
                {"name": "Friend", "phoneNumber": PHONE_B},
            ),
        )

        assert alert.is_guest is True
        assert alert.user_id is None
        assert alert.status == "sent"
        assert alert.guest_contacts == [
            {"name": "Mama", "phoneNumber": PHONE_A, "relationship": "family"},
            {"name": "Friend", "phoneNumber": PHONE_B, "relationship": "other"},
        ]
        assert all(r.contact_id is None for r in alert.contacts)
        assert gateway.calls[0][1].startswith("URGENT SOS: Guest User needs help!")

    async def test_local_format_phone_is_rejected(self, db, service, gateway):
        with pytest.raises(InvalidContactError) as exc_info:
            await service.create_guest_sos_alert(
                "a" * 64, guest_request({"name": "Mama", "phoneNumber": "0712345678"})
            )

        assert "0712345678" in exc_info.value.detail
        assert db.query(SOSAlert).count() == 0
        assert gateway.calls == []

    async def test_contact_without_name_is_rejected(self, service):
        with pytest.raises(InvalidContactError):
            await service.create_guest_sos_alert(
                "a" * 64, guest_request({"name": " ", "phoneNumber": PHONE_A})
            )

    async def test_unknown_relationship_is_rejected(self, service):
        with pytest.raises(InvalidContactError):
            await service.create_guest_sos_alert(
                "a" * 64,
                guest_request({"name": "Mama", "phoneNumber": PHONE_A, "relationship": "boss"}),
            )

    async def test_requires_at_least_one_contact(self, service):
        with pytest.raises(InvalidContactError):
            await service.create_guest_sos_alert("a" * 64, guest_request())

    async def test_at_most_ten_contacts(self, service):
        contacts = [{"name": f"C{i}", "phoneNumber": f"+25078800{i:04d}"} for i in range(11)]

        with pytest.raises(InvalidContactError):
            await service.create_guest_sos_alert("a" * 64, guest_request(*contacts))

    async def test_requires_session_id(self, service):
        with pytest.raises(InvalidPayloadError):
            await service.create_guest_sos_alert(
                "", guest_request({"name": "Mama", "phoneNumber": PHONE_A})
            )

    def test_expired_guest_session_is_not_found(self, db, service):
        session = GuestSessionRepository.create_session(db, "b" * 64, "127.0.0.1", None)
        session.created_at = datetime.utcnow() - timedelta(hours=25)
        db.commit()

        with pytest.raises(GuestSessionNotFoundError):
            service.require_guest_session("b" * 64)

    def test_active_guest_session_is_touched(self, db, service):
        session = GuestSessionRepository.create_session(db, "c" * 64, "127.0.0.1", "pytest")
        session.last_activity = datetime.utcnow() - timedelta(hours=1)
        db.commit()

        found = service.require_guest_session("c" * 64)

        assert isinstance(found, GuestSession)
        assert found.last_activity > datetime.utcnow() - timedelta(minutes=1)


class TestAlertOwnership:
    def test_alert_needs_an_owner(self):
        with pytest.raises(AlertOwnershipError):
            SOSAlert(status="pending")

    def test_alert_cannot_have_two_owners(self):
        with pytest.raises(AlertOwnershipError):
            SOSAlert(user_id=1, guest_session_id="a" * 64)

    def test_guest_flag_follows_owner(self):
        assert SOSAlert(guest_session_id="a" * 64).is_guest is True
        assert SOSAlert(user_id=1).is_guest is False


class TestLifecycle:
    async def test_cancel_is_terminal_and_idempotent(self, service, user, two_contacts):
        alert = await service.create_sos_alert(user.id, SOSTriggerRequest())

        cancelled = service.cancel_sos_alert(alert.id, user.id)
        first_cancelled_at = cancelled.cancelled_at
        again = service.cancel_sos_alert(alert.id, user.id)
        resolved = service.resolve_sos_alert(alert.id, user.id)

        assert again.cancelled_at == first_cancelled_at
        assert resolved.status == "cancelled"
        assert resolved.resolved_at is None

    async def test_resolve(self, service, user, two_contacts):
        alert = await service.create_sos_alert(user.id, SOSTriggerRequest())

        resolved = service.resolve_sos_alert(alert.id, user.id)

        assert resolved.status == "resolved"
        assert resolved.resolved_at is not None
        assert resolved.duration_seconds >= 0
        assert service.cancel_sos_alert(alert.id, user.id).status == "resolved"

    async def test_cancel_other_users_alert(self, service, user, other_user, two_contacts):
        alert = await service.create_sos_alert(user.id, SOSTriggerRequest())

        with pytest.raises(SOSAlertNotFoundError):
            service.cancel_sos_alert(alert.id, other_user.id)

    async def test_active_alert_ignores_cancelled(self, service, user, two_contacts):
        older = await service.create_sos_alert(user.id, SOSTriggerRequest())
        newer = await service.create_sos_alert(user.id, SOSTriggerRequest())

        assert service.get_active_alert(user_id=user.id).id == newer.id

        service.cancel_sos_alert(newer.id, user.id)
        assert service.get_active_alert(user_id=user.id).id == older.id

        service.resolve_sos_alert(older.id, user.id)
        assert service.get_active_alert(user_id=user.id) is None

    def test_active_alert_needs_an_owner(self, service):
        assert service.get_active_alert() is None


class TestHistory:
    async def test_newest_first_with_pagination(self, service, user, two_contacts):
        created = [await service.create_sos_alert(user.id, SOSTriggerRequest()) for _ in range(3)]

        result = service.get_sos_history(user.id, limit=2)

        assert [a.id for a in result["data"]] == [created[2].id, created[1].id]
        assert result["pagination"] == {"page": 1, "limit": 2, "skip": 0, "total": 3, "pages": 2}

        second_page = service.get_sos_history(user.id, limit=2, skip=2)
        assert [a.id for a in second_page["data"]] == [created[0].id]
        assert second_page["pagination"]["page"] == 2

    @pytest.mark.parametrize(
        "limit, skip, expected_limit, expected_skip",
        [(None, None, 20, 0), (0, 0, 20, 0), (500, 0, 100, 0), (-5, -3, 1, 0)],
    )
    def test_limit_and_skip_are_clamped(self, service, user, limit, skip, expected_limit, expected_skip):
        pagination = service.get_sos_history(user.id, limit=limit, skip=skip)["pagination"]

        assert pagination["limit"] == expected_limit
        assert pagination["skip"] == expected_skip
        assert pagination["pages"] == 1

    async def test_status_filter(self, service, user, two_contacts):
        first = await service.create_sos_alert(user.id, SOSTriggerRequest())
        await service.create_sos_alert(user.id, SOSTriggerRequest())
        service.cancel_sos_alert(first.id, user.id)

        result = service.get_sos_history(user.id, status="cancelled")

        assert [a.id for a in result["data"]] == [first.id]

    def test_unknown_status_filter(self, service, user):
        with pytest.raises(InvalidPayloadError):
            service.get_sos_history(user.id, status="archived")


class TestCheckAccess:
    def test_guest(self, service):
        access = service.check_access(None)

        assert access["authenticated"] is False
        assert access["guestAccess"] is True

    def test_user_without_contacts(self, service, user):
        access = service.check_access(user)

        assert access["hasEmergencyContacts"] is False
        assert access["message"] == "Please add emergency contacts first"

    def test_user_with_contacts(self, service, user, two_contacts):
        access = service.check_access(user)

        assert access["hasEmergencyContacts"] is True
        assert access["contactCount"] == 2
