"""
Outbound email for notification copies.

Delivery is best-effort: callers get a SendResult back and decide whether to
log; nothing here raises on transport errors.
"""

from __future__ import annotations

import logging
import smtplib
import uuid
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Optional

from revas.config import settings

logger = logging.getLogger("revas.email")


@dataclass(frozen=True)
class SendResult:
    status: str  # sent | skipped | failed
    provider_message_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status in {"sent", "skipped"}


def _build_message_id(idempotency_key: Optional[str]) -> str:
    """
    Deterministic Message-ID when an idempotency key is supplied so a retried
    send is recognisable downstream. Falls back to uuid4 when not provided.
    """
    domain = settings.email_from.split("@")[-1] or "revas.local"
    if idempotency_key:
        return f"<{uuid.uuid5(uuid.NAMESPACE_URL, f'revas:{idempotency_key}')}@{domain}>"
    return f"<{uuid.uuid4()}@{domain}>"


def send_email(
    *,
    to: str,
    subject: str,
    body: str,
    idempotency_key: Optional[str] = None,
) -> SendResult:
    message_id = _build_message_id(idempotency_key)

    if not settings.email_enabled or not settings.smtp_host:
        logger.debug("email_skipped", extra={"to": to, "subject": subject})
        return SendResult(status="skipped", provider_message_id=message_id)

    msg = EmailMessage()
    msg["From"] = settings.email_from
    msg["To"] = to
    msg["Subject"] = subject
    msg["Message-ID"] = message_id
    msg.set_content(body)

    try:
        with smtplib.SMTP(
            settings.smtp_host, settings.smtp_port, timeout=settings.email_timeout_seconds
        ) as smtp:
            smtp.starttls()
            if settings.smtp_username:
                smtp.login(settings.smtp_username, settings.smtp_password or "")
            smtp.send_message(msg)
    except (smtplib.SMTPException, OSError) as exc:
        return SendResult(status="failed", provider_message_id=message_id, error=str(exc))

    logger.info("email_sent", extra={"to": to, "subject": subject, "message_id": message_id})
    return SendResult(status="sent", provider_message_id=message_id)
