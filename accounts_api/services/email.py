"""
Transactional email.

Messages go out over SMTP in a worker thread. Without SMTP_HOST and
FROM_EMAIL the sender runs in dev mode: it logs the message and reports
success.
"""

import html
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

from fastapi.concurrency import run_in_threadpool

from accounts_api.core.config import Settings
from accounts_api.core.logging import get_logger
from accounts_api.models.user import User

logger = get_logger(__name__)

_LAYOUT = """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"></head>
<body style="font-family: Arial, sans-serif;">
  <div style="max-width: 600px; margin: 0 auto; padding: 32px 16px;">
    {content}
    <hr style="margin: 30px 0; border: none; border-top: 1px solid #eee;">
    <p style="color: #666; font-size: 12px;">
      This email was sent by {app_name}. If you have any questions, please contact our support team.
    </p>
  </div>
</body>
</html>
"""

_BUTTON = (
    '<p style="text-align: center; margin: 30px 0;">'
    '<a href="{url}" style="background-color: {color}; color: white; padding: 12px 30px; '
    'text-decoration: none; border-radius: 5px; display: inline-block;">{label}</a></p>'
)


def _redact_email(email: str) -> str:
    if "@" not in email:
        return "redacted"
    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"


class EmailSender:
    """Builds and sends the account emails."""

    def __init__(self, settings: Settings, app_name: str = "Accounts API"):
        self.smtp_host = settings.smtp_host
        self.smtp_port = settings.smtp_port
        self.smtp_user = settings.smtp_user
        self.smtp_password = (
            settings.smtp_password.get_secret_value() if settings.smtp_password else None
        )
        self.smtp_use_tls = settings.smtp_use_tls
        self.from_email = settings.from_email or settings.smtp_user
        self.frontend_url = settings.frontend_url.rstrip("/")
        self.reset_minutes = settings.password_reset_expire_minutes
        self.verification_hours = settings.email_verification_expire_hours
        self.app_name = app_name

    @property
    def is_configured(self) -> bool:
        return bool(self.smtp_host and self.from_email)

    def _deliver(self, to_email: str, subject: str, text_body: str, html_body: str) -> bool:
        """Blocking SMTP send. Returns False instead of raising on SMTP errors."""
        if not self.is_configured:
            logger.info(
                "email_dev_mode",
                to=_redact_email(to_email),
                subject=subject,
                body_preview=text_body[:200],
            )
            return True

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = f"{self.app_name} <{self.from_email}>"
        msg["To"] = to_email
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
        except (smtplib.SMTPException, ssl.SSLError, OSError) as e:
            logger.error(
                "email_send_failed",
                to=_redact_email(to_email),
                host=self.smtp_host,
                error_type=type(e).__name__,
                error=str(e),
            )
            return False

        logger.info("email_sent", to=_redact_email(to_email), subject=subject)
        return True

    async def send(
        self, to_email: str, subject: str, text_body: str, html_body: Optional[str] = None
    ) -> bool:
        html_body = html_body or _LAYOUT.format(
            content=f"<pre>{text_body}</pre>", app_name=self.app_name
        )
        return await run_in_threadpool(self._deliver, to_email, subject, text_body, html_body)

    async def send_welcome_email(self, user: User, verification_token: str) -> bool:
        """Welcome message with the email verification link."""
        url = f"{self.frontend_url}/verify-email/{verification_token}"
        text_body = (
            f"Welcome to {self.app_name}, {user.first_name}!\n\n"
            f"Please verify your email address by opening the link below:\n{url}\n\n"
            f"This link will expire in {self.verification_hours} hours.\n\n"
            "If you didn't create an account, please ignore this email.\n"
        )
        html_body = _LAYOUT.format(
            app_name=self.app_name,
            content=(
                f"<h2>Welcome to {self.app_name}!</h2>"
                f"<p>Hi {html.escape(user.first_name)},</p>"
                "<p>Thank you for signing up! Please verify your email address to complete your registration.</p>"
                + _BUTTON.format(url=url, color="#007bff", label="Verify Email Address")
                + f"<p>This link will expire in {self.verification_hours} hours.</p>"
                "<p>If you didn't create an account, please ignore this email.</p>"
            ),
        )
        return await self.send(
            user.email, "Welcome! Please verify your email address", text_body, html_body
        )

    async def send_password_reset_email(self, user: User, reset_token: str) -> bool:
        url = f"{self.frontend_url}/reset-password/{reset_token}"
        text_body = (
            "Password Reset Request\n\n"
            f"Hi {user.first_name},\n\n"
            f"You requested a password reset. Open the link below to reset your password:\n{url}\n\n"
            f"This link will expire in {self.reset_minutes} minutes.\n\n"
            "If you didn't request a password reset, please ignore this email.\n"
        )
        html_body = _LAYOUT.format(
            app_name=self.app_name,
            content=(
                "<h2>Password Reset Request</h2>"
                f"<p>Hi {html.escape(user.first_name)},</p>"
                f"<p>You requested a password reset for your {self.app_name} account.</p>"
                + _BUTTON.format(url=url, color="#dc3545", label="Reset Password")
                + f"<p>This link will expire in {self.reset_minutes} minutes.</p>"
                "<p>If you didn't request a password reset, please ignore this email "
                "and your password will remain unchanged.</p>"
            ),
        )
        return await self.send(
            user.email,
            f"Password Reset Request (expires in {self.reset_minutes} minutes)",
            text_body,
            html_body,
        )

    async def send_password_changed_email(self, user: User) -> bool:
        text_body = (
            "Password Changed Successfully\n\n"
            f"Hi {user.first_name},\n\n"
            "Your password has been successfully changed.\n\n"
            "If you didn't change your password, please contact our support team immediately.\n"
        )
        html_body = _LAYOUT.format(
            app_name=self.app_name,
            content=(
                "<h2>Password Changed Successfully</h2>"
                f"<p>Hi {html.escape(user.first_name)},</p>"
                "<p>This is a confirmation that your password has been successfully changed.</p>"
                "<p>If you didn't change your password, please contact our support team immediately.</p>"
            ),
        )
        return await self.send(user.email, "Password Changed Successfully", text_body, html_body)
