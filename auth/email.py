"""
auth/email.py -- Outbound email delivery for password reset links.

EmailService.deliver() is the only delivery seam the auth core uses. It
either returns (message handed to the SMTP server) or raises
ExternalServiceError. Callers never see smtplib exceptions.

Dev mode: when SMTP_HOST is empty the message is written to the log instead
of being sent, so the reset flow works on a laptop without a mail server.
The log line carries the subject and a redacted recipient only -- the body
contains a live reset link and is never logged.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
import smtplib
import ssl
from collections.abc import Callable
from email.message import EmailMessage

from auth.errors import ExternalServiceError
from auth.models import Principal
from core.config import Settings

logger = logging.getLogger("tourgate.email")


def redact_email(email: str) -> str:
    """Redact an email address for logging to avoid PII leakage."""
    if "@" not in email:
        return "redacted"
    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"


class EmailService:
    def __init__(self, settings: Settings, timeout: float = 30) -> None:
        self._settings = settings
        self._timeout = timeout

    @property
    def is_configured(self) -> bool:
        return bool(self._settings.smtp_host)

    def deliver(self, recipient: str, subject: str, body: str) -> None:
        """Send a plain-text message to recipient. Raises ExternalServiceError on any failure."""
        if not self.is_configured:
            logger.info("Email (dev mode, not sent) to=%s subject=%r", redact_email(recipient), subject)
            return

        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self._settings.email_from
        msg["To"] = recipient
        msg.set_content(body)

        s = self._settings
        try:
            if s.smtp_use_tls:
                with smtplib.SMTP(s.smtp_host, s.smtp_port, timeout=self._timeout) as server:
                    server.starttls(context=ssl.create_default_context())
                    if s.smtp_user and s.smtp_password:
                        server.login(s.smtp_user, s.smtp_password)
                    server.send_message(msg)
            else:
                with smtplib.SMTP_SSL(
                    s.smtp_host, s.smtp_port, context=ssl.create_default_context(), timeout=self._timeout
                ) as server:
                    if s.smtp_user and s.smtp_password:
                        server.login(s.smtp_user, s.smtp_password)
                    server.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            # ssl.SSLError and TimeoutError are both OSError subclasses.
            logger.error(
                "Email delivery failed to=%s host=%s (%s: %s)",
                redact_email(recipient),
                s.smtp_host,
                type(exc).__name__,
                exc,
            )
            raise ExternalServiceError("There was an error sending the email. Try again later!") from exc

        logger.info("Email sent to=%s subject=%r", redact_email(recipient), subject)


def reset_link_sender(
    email_service: EmailService, base_url: str, valid_minutes: int
) -> Callable[[Principal, str], None]:
    """Build the deliver() collaborator AccountService.request_password_reset() expects.

    The link embeds the plaintext token as the last path segment of the
    reset endpoint under base_url (scheme://host of the incoming request).
    """

    def deliver(principal: Principal, token: str) -> None:
        reset_url = f"{base_url.rstrip('/')}/api/v1/users/resetPassword/{token}"
        body = (
            f"Forgot your password? Submit a PATCH request with your new password and "
            f"passwordConfirm to: {reset_url}.\n"
            "If you didn't forget your password, please ignore this email!"
        )
        email_service.deliver(
            principal.email,
            f"Your password reset token (valid for {valid_minutes} minutes)",
            body,
        )

    return deliver
