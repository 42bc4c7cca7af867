"""Best-effort buyer notifications (email, SMS)."""

from __future__ import annotations

from .base import NotificationDispatcher, NotificationKind
from .dispatcher import LoggingNotificationDispatcher, SafeNotificationDispatcher
from .mailer import EmailNotificationDispatcher
from .sms import SmsNotificationDispatcher, format_phone_number

__all__ = [
    "EmailNotificationDispatcher",
    "LoggingNotificationDispatcher",
    "NotificationDispatcher",
    "NotificationKind",
    "SafeNotificationDispatcher",
    "SmsNotificationDispatcher",
    "build_dispatcher",
    "format_phone_number",
]


def build_dispatcher(settings) -> SafeNotificationDispatcher:
    """Assemble the configured channels behind a :class:`SafeNotificationDispatcher`."""

    timeout = settings.notification_timeout_seconds
    if settings.smtp_host:
        primary: NotificationDispatcher = EmailNotificationDispatcher(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            sender=settings.smtp_sender,
            use_tls=settings.smtp_use_tls,
            timeout=timeout,
        )
    else:
        primary = LoggingNotificationDispatcher()
    secondary: list[NotificationDispatcher] = []
    if settings.sms_api_key:
        secondary.append(
            SmsNotificationDispatcher(
                api_url=settings.sms_api_url,
                api_key=settings.sms_api_key,
                sender_id=settings.sms_sender_id,
                timeout=timeout,
            )
        )
    return SafeNotificationDispatcher(primary, *secondary, timeout=timeout)
