"""
Twilio SMS Service
Sends SOS text alerts through the Twilio REST API and builds the alert body
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Protocol
from urllib.parse import quote_plus

import httpx

from ..config import (
    EMERGENCY_NUMBERS,
    TWILIO_ACCOUNT_SID,
    TWILIO_AUTH_TOKEN,
    TWILIO_MESSAGING_SERVICE_SID,
    TWILIO_PHONE_NUMBER,
)
from ..shared.validators import is_valid_e164

logger = logging.getLogger(__name__)

TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"

# Twilio concatenates longer bodies into multiple segments
MAX_RECOMMENDED_LENGTH = 1600

# Twilio error codes with user-facing explanations
TWILIO_ERROR_MESSAGES = {
    21211: "Invalid phone number format",
    21608: "Unverified phone number. Please verify the number in Twilio console",
    21408: "Permission denied. Check Twilio account permissions",
}


@dataclass
class SMSResult:
    success: bool
    message_id: Optional[str] = None
    status: Optional[str] = None
    error: Optional[str] = None


class SMSGateway(Protocol):
    async def send_sms(self, to_phone: str, message_body: str) -> SMSResult: ...


class TwilioSMSGateway:
    """SMS gateway backed by a single platform Twilio account"""

    def __init__(
        self,
        account_sid: Optional[str],
        auth_token: Optional[str],
        from_number: Optional[str] = None,
        messaging_service_sid: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 10.0,
    ):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.messaging_service_sid = messaging_service_sid
        self.transport = transport
        self.timeout = timeout

    @property
    def is_configured(self) -> bool:
        return bool(
            self.account_sid and self.auth_token and (self.from_number or self.messaging_service_sid)
        )

    async def send_sms(self, to_phone: str, message_body: str) -> SMSResult:
        """
        Send SMS via Twilio

        Args:
            to_phone: Recipient phone number in E.164 format
            message_body: SMS message content

        Returns:
            SMSResult with the Twilio message SID on success, error text on failure
        """
        if not self.is_configured:
            error = (
                "Twilio not configured. Check TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN "
                "and TWILIO_PHONE_NUMBER."
            )
            logger.error(error)
            return SMSResult(success=False, error=error)

        if not is_valid_e164(to_phone):
            error = f"Invalid recipient phone number: {to_phone}. Must be in E.164 format (e.g., +250788123456)"
            logger.warning(error)
            return SMSResult(success=False, error=error)

        if not message_body or not message_body.strip():
            logger.warning("Refusing to send empty SMS body")
            return SMSResult(success=False, error="Message body cannot be empty")

        if len(message_body) > MAX_RECOMMENDED_LENGTH:
            logger.warning(
                f"Message length ({len(message_body)}) exceeds recommended length, Twilio will split it"
            )

        data = {"To": to_phone, "Body": message_body}
        if self.messaging_service_sid:
            data["MessagingServiceSid"] = self.messaging_service_sid
        else:
            data["From"] = self.from_number

        try:
            logger.info(f"🚀 Sending SMS to Twilio API for {to_phone}")
            async with httpx.AsyncClient(transport=self.transport) as client:
                response = await client.post(
                    f"{TWILIO_API_BASE}/Accounts/{self.account_sid}/Messages.json",
                    auth=(self.account_sid, self.auth_token),
                    data=data,
                    timeout=self.timeout,
                )

            logger.info(f"📡 Twilio API response status: {response.status_code}")

            if response.status_code in [200, 201]:
                result = response.json()
                message_sid = result.get("sid")
                logger.info(f"✅ SMS sent successfully to {to_phone} (SID: {message_sid})")
                return SMSResult(success=True, message_id=message_sid, status=result.get("status"))

            error_data = _safe_json(response)
            error_code = error_data.get("code")
            error_message = TWILIO_ERROR_MESSAGES.get(
                error_code, error_data.get("message") or f"Twilio API error {response.status_code}"
            )
            logger.error(f"❌ Twilio API error [{error_code}]: {error_message}")
            return SMSResult(success=False, error=error_message)

        except httpx.HTTPError as e:
            logger.error(f"Twilio API error: {str(e)}")
            return SMSResult(success=False, error=str(e) or "Failed to send SMS")


def _safe_json(response: httpx.Response) -> dict:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def get_sms_gateway() -> SMSGateway:
    """Dependency injection for the platform SMS gateway"""
    return TwilioSMSGateway(
        account_sid=TWILIO_ACCOUNT_SID,
        auth_token=TWILIO_AUTH_TOKEN,
        from_number=TWILIO_PHONE_NUMBER,
        messaging_service_sid=TWILIO_MESSAGING_SERVICE_SID,
    )


def _truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[: limit - 3] + "..."


# SMS Template Functions
def build_sos_message(
    display_name: str,
    location_address: Optional[str] = None,
    custom_note: Optional[str] = None,
    callback_phone: Optional[str] = None,
    sent_at: Optional[datetime] = None,
    emergency_numbers: str = EMERGENCY_NUMBERS,
) -> str:
    """Build the SOS text sent to each emergency contact"""
    sent_at = sent_at or datetime.utcnow()

    lines = [f"URGENT SOS: {display_name or 'Someone'} needs help!"]

    if location_address:
        lines.append(f"At: {_truncate(location_address, 50)}")
        lines.append(f"Map: https://maps.google.com/?q={quote_plus(location_address)}")

    if custom_note:
        lines.append(f"Note: {_truncate(custom_note, 40)}")

    if callback_phone:
        lines.append(f"Call: {callback_phone}")

    lines.append(f"Emergency: {emergency_numbers}")
    lines.append(f"Sent: {sent_at.strftime('%Y-%m-%d %H:%M')} UTC")

    return "\n".join(lines)
