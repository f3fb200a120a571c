"""Outbound WhatsApp/SMS via the Twilio Messages REST API.

Endpoints used:
- POST /Accounts/{account_sid}/Messages.json (form-encoded To, From, Body)

WhatsApp addresses carry a ``whatsapp:`` prefix on both ends; SMS numbers
are sent as-is. There is no retry here: a failed send is reported to the
caller as ``DeliveryFailure``.
"""

import logging

import httpx

from blok_platform.app.config import get_settings
from blok_platform.domain.enums import Channel
from blok_platform.errors import DeliveryFailure

logger = logging.getLogger(__name__)

WHATSAPP_PREFIX = "whatsapp:"


def detect_channel(address: str) -> Channel:
    """``whatsapp:`` prefixed addresses are WhatsApp, everything else SMS."""
    return Channel.WHATSAPP if (address or "").startswith(WHATSAPP_PREFIX) else Channel.SMS


def extract_phone_number(address: str) -> str:
    """Strip the channel prefix from a provider address."""
    address = (address or "").strip()
    if address.startswith(WHATSAPP_PREFIX):
        return address[len(WHATSAPP_PREFIX):]
    return address


def format_address(number: str, channel: Channel) -> str:
    number = extract_phone_number(number)
    return f"{WHATSAPP_PREFIX}{number}" if channel == Channel.WHATSAPP else number


class MessagingService:
    """Send WhatsApp and SMS messages through Twilio."""

    def __init__(self, timeout_seconds: float | None = None):
        self.settings = get_settings()
        self.base_url = self.settings.twilio_api_base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds or self.settings.delivery_timeout_seconds

    @property
    def _configured(self) -> bool:
        return self.settings.twilio_configured

    async def send(
        self,
        to: str,
        from_: str,
        body: str,
        channel: Channel | str = Channel.WHATSAPP,
    ) -> str:
        """Send ``body`` to ``to`` from the building number ``from_``.

        Returns:
            The provider message SID.

        Raises:
            DeliveryFailure: credentials missing, provider rejected the
                message, network error or timeout.
        """
        channel = Channel(channel)
        if channel == Channel.EMAIL:
            raise DeliveryFailure("email is not a messaging channel")
        if not self._configured:
            logger.warning("Twilio not configured, message not sent to %s", to)
            raise DeliveryFailure("twilio_not_configured")
        if not to or not from_:
            raise DeliveryFailure("missing destination or sender number")

        url = f"{self.base_url}/Accounts/{self.settings.twilio_account_sid}/Messages.json"
        payload = {
            "To": format_address(to, channel),
            "From": format_address(from_, channel),
            "Body": body,
        }

        logger.info(
            "Twilio send: channel=%s to=%s msg_len=%d",
            channel.value, payload["To"], len(body),
        )

        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                resp = await client.post(
                    url,
                    data=payload,
                    auth=(self.settings.twilio_account_sid, self.settings.twilio_auth_token),
                    headers={"Accept": "application/json"},
                )
        except httpx.TimeoutException as exc:
            logger.error("Twilio send timed out for %s", payload["To"])
            raise DeliveryFailure("timeout") from exc
        except httpx.HTTPError as exc:
            logger.error("Twilio httpx error: %s", exc)
            raise DeliveryFailure(str(exc)) from exc

        if not 200 <= resp.status_code < 300:
            logger.error("Twilio send failed (%d): %s", resp.status_code, resp.text[:300])
            raise DeliveryFailure(f"http_{resp.status_code}", status_code=resp.status_code)

        try:
            sid = resp.json().get("sid", "")
        except ValueError:
            sid = ""
        logger.info("Message sent to %s via Twilio (sid=%s)", payload["To"], sid)
        return sid
