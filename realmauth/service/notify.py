from __future__ import annotations

import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import List, Optional, Protocol, Tuple

from realmauth.logging import get_logger
from realmauth.service.errors import NotificationError
from realmauth.storage.models import Account

logger = get_logger(__name__)


class Notifier(Protocol):
    """Delivers challenges and temporary tokens to the account holder."""

    def send_challenge(self, account: Account) -> None: ...

    def send_token(self, account: Account) -> None: ...


class LoggingNotifier:
    """Notifier for development and tests: logs and remembers what it sent."""

    def __init__(self) -> None:
        self.sent: List[Tuple[str, str, str, str]] = []

    def send_challenge(self, account: Account) -> None:
        self.sent.append(("challenge", account.realm, account.user_id, account.token))
        logger.info(
            "challenge_notification",
            realm=account.realm,
            client_id=account.client_id,
            token=account.token,
        )

    def send_token(self, account: Account) -> None:
        self.sent.append(("token", account.realm, account.user_id, account.token))
        logger.info(
            "token_notification",
            realm=account.realm,
            client_id=account.client_id,
            token=account.token,
        )

    def last(self, kind: Optional[str] = None) -> Optional[Tuple[str, str, str, str]]:
        for entry in reversed(self.sent):
            if kind is None or entry[0] == kind:
                return entry
        return None


class EmailNotifier:
    """Email notifier for accounts whose user id is an email address.

    Supports:
    - SMTP with TLS/SSL
    - Confirmation links for new or unconfirmed accounts
    - Temporary tokens for confirmed, logged out accounts
    - Fallback to logging when not configured (dev mode)
    """

    def __init__(
        self,
        *,
        smtp_host: Optional[str] = None,
        smtp_port: int = 587,
        smtp_user: Optional[str] = None,
        smtp_password: Optional[str] = None,
        smtp_use_tls: bool = True,
        from_email: Optional[str] = None,
        from_name: str = "realmauth",
        base_url: Optional[str] = None,
    ) -> None:
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.smtp_use_tls = smtp_use_tls
        self.from_email = from_email or smtp_user
        self.from_name = from_name
        self.base_url = (base_url or "http://localhost:8000").rstrip("/")

    @property
    def is_configured(self) -> bool:
        """Check if email sending is properly configured."""
        return bool(self.smtp_host and self.from_email)

    def _redact_email(self, email: str) -> str:
        """Redact an email address for logging to avoid PII leakage."""
        if "@" not in email:
            return "redacted"
        local, domain = email.split("@", 1)
        return f"{local[:2]}***@{domain}"

    def _send_email(self, to_email: str, subject: str, text_body: str) -> None:
        """Send a plain text email via SMTP.

        Raises NotificationError when delivery fails.
        """
        if not self.is_configured or "@" not in to_email:
            # Dev mode or non-email identity: log instead of sending
            logger.info(
                "email_dev_mode",
                to=self._redact_email(to_email),
                subject=subject,
            )
            return

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = f"{self.from_name} <{self.from_email}>"
        msg["To"] = to_email
        msg.attach(MIMEText(text_body, "plain"))

        context = ssl.create_default_context()
        logger.debug(
            "email_connecting",
            host=self.smtp_host,
            port=self.smtp_port,
            use_tls=self.smtp_use_tls,
            to=self._redact_email(to_email),
        )
        try:
            if self.smtp_use_tls:
                with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=30) as server:
                    server.starttls(context=context)
                    if self.smtp_user and self.smtp_password:
                        server.login(self.smtp_user, self.smtp_password)
                    server.sendmail(self.from_email, to_email, msg.as_string())
            else:
                with smtplib.SMTP_SSL(
                    self.smtp_host, self.smtp_port, context=context, timeout=30
                ) as server:
                    if self.smtp_user and self.smtp_password:
                        server.login(self.smtp_user, self.smtp_password)
                    server.sendmail(self.from_email, to_email, msg.as_string())
        except smtplib.SMTPAuthenticationError as e:
            logger.error(
                "email_auth_failed",
                to=self._redact_email(to_email),
                host=self.smtp_host,
                error_code=getattr(e, "smtp_code", None),
            )
            raise NotificationError("email authentication failed") from e
        except smtplib.SMTPRecipientsRefused as e:
            logger.error("email_recipient_refused", to=self._redact_email(to_email))
            raise NotificationError("email recipient refused") from e
        except (smtplib.SMTPException, ssl.SSLError, OSError) as e:
            logger.error(
                "email_send_failed",
                to=self._redact_email(to_email),
                host=self.smtp_host,
                error_type=type(e).__name__,
                error=str(e),
            )
            raise NotificationError("email delivery failed") from e

        logger.info("email_sent", to=self._redact_email(to_email), subject=subject)

    def send_challenge(self, account: Account) -> None:
        confirm_url = f"{self.base_url}/v1/auth/login/{account.token}"
        text_body = f"""Confirm your {account.realm} account

Visit the link below to confirm your account:

{confirm_url}

This link expires soon. If you didn't request it, you can safely ignore this email.
"""
        self._send_email(account.user_id, f"Confirm your {account.realm} account", text_body)

    def send_token(self, account: Account) -> None:
        text_body = f"""Your {account.realm} login token

Exchange this token for an authorization within the next few minutes:

{account.token}

If you didn't request it, you can safely ignore this email.
"""
        self._send_email(account.user_id, f"Your {account.realm} login token", text_body)


__all__ = ["Notifier", "LoggingNotifier", "EmailNotifier"]
