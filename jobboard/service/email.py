from __future__ import annotations

import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional
from urllib.parse import urlencode

from jobboard.logging import get_logger, redact_email

logger = get_logger(__name__)


class EmailService:
    """Transactional email for account verification and password reset.

    Sends over SMTP (STARTTLS or implicit TLS). When SMTP is not configured
    the message is logged instead of sent (dev mode).
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
        from_name: str = "Job Board",
        verify_email_url: str = "http://localhost:3000/verify-email",
        reset_password_url: str = "http://localhost:3000/reset-password",
    ) -> None:
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.smtp_use_tls = smtp_use_tls
        self.from_email = from_email or smtp_user
        self.from_name = from_name
        self.verify_email_url = verify_email_url
        self.reset_password_url = reset_password_url

    @property
    def is_configured(self) -> bool:
        return bool(self.smtp_host and self.from_email)

    @staticmethod
    def link_for(base_url: str, token: str) -> str:
        separator = "&" if "?" in base_url else "?"
        return f"{base_url}{separator}{urlencode({'token': token})}"

    def _send_email(
        self,
        to_email: str,
        subject: str,
        html_body: str,
        text_body: Optional[str] = None,
    ) -> bool:
        """Send an email via SMTP. Returns True if sent (or logged in dev mode)."""
        if not self.is_configured:
            logger.info(
                "email_dev_mode",
                recipient=redact_email(to_email),
                subject=subject,
                body_preview=text_body[:200] if text_body else html_body[:200],
            )
            return True

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = f"{self.from_name} <{self.from_email}>"
        msg["To"] = to_email
        if text_body:
            msg.attach(MIMEText(text_body, "plain"))
        msg.attach(MIMEText(html_body, "html"))

        context = ssl.create_default_context()
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
                recipient=redact_email(to_email),
                host=self.smtp_host,
                error=str(e),
            )
            return False
        except smtplib.SMTPRecipientsRefused as e:
            logger.error(
                "email_recipient_refused",
                recipient=redact_email(to_email),
                error=str(e),
            )
            return False
        except (smtplib.SMTPException, ssl.SSLError, OSError) as e:
            logger.error(
                "email_send_failed",
                recipient=redact_email(to_email),
                host=self.smtp_host,
                port=self.smtp_port,
                error_type=type(e).__name__,
                error=str(e),
            )
            return False

        logger.info("email_sent", recipient=redact_email(to_email), subject=subject)
        return True

    def send_email_verification(self, to_email: str, token: str) -> bool:
        verify_url = self.link_for(self.verify_email_url, token)
        html_body = f"""<body>
    <p>Please verify your email</p>
    <a href="{verify_url}">Verify Email</a>
    <p>If you did not create an account or ask for an email verification, please ignore this email.</p>
</body>"""
        text_body = f"""Please verify your email:

{verify_url}

If you did not create an account or ask for an email verification, please ignore this email.
"""
        return self._send_email(to_email, "Email Verification", html_body, text_body)

    def send_password_reset(self, to_email: str, token: str) -> bool:
        reset_url = self.link_for(self.reset_password_url, token)
        html_body = f"""<body>
    <p>Please reset your password</p>
    <a href="{reset_url}">Reset Password</a>
    <p>If you did not request a password reset, please ignore this email.</p>
</body>"""
        text_body = f"""Please reset your password:

{reset_url}

If you did not request a password reset, please ignore this email.
"""
        return self._send_email(to_email, "Password Reset", html_body, text_body)
