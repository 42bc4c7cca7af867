from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Sequence

import httpx

from .base import NotificationKind, order_reference

if TYPE_CHECKING:
    from boxoffice.issuance.models import Ticket
    from boxoffice.orders.models import Order

logger = logging.getLogger(__name__)

COUNTRY_CODE = "216"
_LOCAL_NUMBER = re.compile(r"^[2594]\d{7}$")
_SUCCESS_CODES = {"ok", "200"}


def format_phone_number(raw: str | None) -> str | None:
    """Normalise a Tunisian mobile number to ``+216XXXXXXXX`` or return ``None``."""

    digits = re.sub(r"\D", "", raw or "")
    if digits.startswith(COUNTRY_CODE):
        digits = digits[len(COUNTRY_CODE) :]
    digits = digits.lstrip("0")
    if not _LOCAL_NUMBER.match(digits):
        return None
    return f"+{COUNTRY_CODE}{digits}"


def tickets_ready_text(order: Order) -> str:
    return (
        f"Paiement confirmé #{order_reference(order)}\n"
        f"Total: {order.total_price:.0f} DT\n"
        "Billets envoyés par email (Check SPAM).\n"
        "We Create Memories"
    )


class SmsNotificationDispatcher:
    """Text the buyer once their tickets are issued; other notification kinds are ignored."""

    def __init__(
        self,
        *,
        api_url: str,
        api_key: str,
        sender_id: str,
        client: httpx.AsyncClient | None = None,
        timeout: float = 15.0,
    ) -> None:
        self._api_url = api_url
        self._api_key = api_key
        self._sender_id = sender_id
        self._client = client
        self._timeout = timeout

    async def notify(self, order: Order, tickets: Sequence[Ticket], kind: NotificationKind) -> bool:
        if kind is not NotificationKind.TICKETS_READY:
            return False
        phone = format_phone_number(order.user_phone)
        if phone is None:
            logger.info("Order %s phone number is not a valid mobile number; skipping SMS", order.id)
            return False
        params = {
            "action": "send-sms",
            "api_key": self._api_key,
            "to": phone,
            "sms": tickets_ready_text(order),
            "from": self._sender_id,
            "response": "json",
        }
        if self._client is not None:
            response = await self._client.get(self._api_url, params=params, timeout=self._timeout)
        else:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.get(self._api_url, params=params)
        response.raise_for_status()
        payload = response.json()
        code = str(payload.get("code", "")) if isinstance(payload, dict) else ""
        if code not in _SUCCESS_CODES:
            logger.warning("SMS gateway refused message for order %s: %s", order.id, payload)
            return False
        return True
