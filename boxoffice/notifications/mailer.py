from __future__ import annotations

import asyncio
import html
import logging
import smtplib
from email.message import EmailMessage
from typing import TYPE_CHECKING, Sequence

from .base import NotificationKind, order_reference

if TYPE_CHECKING:
    from boxoffice.issuance.models import Ticket
    from boxoffice.orders.models import Order

logger = logging.getLogger(__name__)


class EmailNotificationDispatcher:
    """Send order mail over SMTP from a worker thread."""

    def __init__(
        self,
        *,
        host: str,
        port: int = 587,
        username: str | None = None,
        password: str | None = None,
        sender: str,
        use_tls: bool = True,
        timeout: float = 15.0,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender
        self.use_tls = use_tls
        self.timeout = timeout

    async def notify(self, order: Order, tickets: Sequence[Ticket], kind: NotificationKind) -> bool:
        if not order.user_email:
            logger.info("Order %s has no email address; skipping %s mail", order.id, kind.value)
            return False
        message = build_message(order, tickets, kind, sender=self.sender)
        await asyncio.to_thread(self._send, message)
        logger.info("Sent %s mail for order %s", kind.value, order.id)
        return True

    def _send(self, message: EmailMessage) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
            if self.use_tls:
                smtp.starttls()
            if self.username and self.password:
                smtp.login(self.username, self.password)
            smtp.send_message(message)


def build_message(order: Order, tickets: Sequence[Ticket], kind: NotificationKind, *, sender: str) -> EmailMessage:
    message = EmailMessage()
    message["From"] = sender
    message["Reply-To"] = sender
    message["To"] = order.user_email or ""
    reference = order_reference(order)
    event_name = order.event_name or "your event"

    if kind is NotificationKind.ORDER_RECEIVED:
        message["Subject"] = f"Order {reference} received"
        lines = [
            f"Hello {order.user_name},",
            "",
            f"We received your order {reference} for {event_name}.",
            "It is awaiting approval; your tickets will follow by email once it is confirmed.",
            "",
            "Passes:",
            *[f"  {line.pass_type} x{line.quantity}  {line.price:.2f}" for line in order.lines],
            f"Total: {order.total_price:.2f}",
        ]
        message.set_content("\n".join(lines))
        return message

    message["Subject"] = f"Your tickets for {event_name} are ready"
    pass_types = {line.id: line.pass_type for line in order.lines}
    text_lines = [
        f"Hello {order.user_name},",
        "",
        f"Your order {reference} is confirmed. Present one QR code per person at the entrance.",
        "",
    ]
    items: list[str] = []
    for number, ticket in enumerate(tickets, start=1):
        pass_type = pass_types.get(ticket.order_line_id, "Pass")
        text_lines.append(f"  {pass_type} - Ticket {number}: {ticket.qr_code_url or ''}")
        items.append(
            "<li><p>{} - Ticket {}</p><img src=\"{}\" alt=\"QR\" width=\"250\"/><p>Token: {}...</p></li>".format(
                html.escape(pass_type),
                number,
                html.escape(ticket.qr_code_url or ""),
                html.escape(ticket.secure_token[:8]),
            )
        )
    text_lines.append(f"Total: {order.total_price:.2f}")
    message.set_content("\n".join(text_lines))
    message.add_alternative(
        "<html><body><p>Hello <strong>{}</strong>,</p><p>Your order {} is confirmed.</p><ul>{}</ul>"
        "<p>Total: {:.2f}</p></body></html>".format(
            html.escape(order.user_name), reference, "".join(items), order.total_price
        ),
        subtype="html",
    )
    return message
