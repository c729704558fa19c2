"""Transactional email via Resend."""

import html
import logging
from typing import Optional

import resend

from config import get_settings

logger = logging.getLogger(__name__)


def _layout(title: str, body: str) -> str:
    return f"""<!DOCTYPE html>
<html>
  <body style="font-family: Arial, sans-serif; color: #1f2937; max-width: 600px; margin: 0 auto;">
    <h2 style="color: #2563eb;">{html.escape(title)}</h2>
    {body}
    <p style="color: #6b7280; font-size: 12px; margin-top: 32px;">CloudGreet - AI receptionist for service businesses</p>
  </body>
</html>"""


class EmailService:
    """Sends templated emails. Without an API key every send is a logged no-op."""

    def __init__(self, api_key: Optional[str] = None, sender: Optional[str] = None):
        settings = get_settings()
        self.api_key = api_key if api_key is not None else settings.resend_api_key
        self.sender = sender or settings.email_from

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    def send(self, to: str, subject: str, html_body: str) -> Optional[str]:
        """
        Send an email.

        Returns:
            The Resend email ID, or None if email is not configured
        """
        if not self.enabled:
            logger.warning(f"RESEND_API_KEY not configured, skipping email '{subject}'")
            return None

        resend.api_key = self.api_key
        result = resend.Emails.send({
            "from": self.sender,
            "to": [to],
            "subject": subject,
            "html": html_body,
        })
        email_id = result.get("id") if isinstance(result, dict) else None
        logger.info(f"Sent email '{subject}' ({email_id})")
        return email_id

    def send_welcome(self, to: str, owner_name: str, business_name: str) -> Optional[str]:
        body = (
            f"<p>Hi {html.escape(owner_name)},</p>"
            f"<p>Welcome to CloudGreet! Your AI receptionist for <strong>{html.escape(business_name)}</strong> "
            "is almost ready. Finish onboarding to get your phone number and start taking calls.</p>"
        )
        return self.send(to, "Welcome to CloudGreet", _layout("Welcome to CloudGreet", body))

    def send_password_reset(self, to: str, name: Optional[str], reset_url: str) -> Optional[str]:
        body = (
            f"<p>Hi {html.escape(name or 'there')},</p>"
            "<p>We received a request to reset your password. This link expires in one hour.</p>"
            f'<p><a href="{html.escape(reset_url, quote=True)}" style="background: #2563eb; color: #fff; '
            'padding: 10px 16px; border-radius: 6px; text-decoration: none;">Reset password</a></p>'
            "<p>If you didn't ask for this, you can ignore this email.</p>"
        )
        return self.send(to, "Reset your CloudGreet password", _layout("Password reset", body))

    def send_notification(self, to: str, title: str, message: str) -> Optional[str]:
        body = "".join(f"<p>{html.escape(line)}</p>" for line in message.splitlines() if line.strip())
        return self.send(to, title, _layout(title, body))


# Singleton instance
_service: Optional[EmailService] = None


def get_email_service() -> EmailService:
    """Get or create the email service singleton."""
    global _service
    if _service is None:
        _service = EmailService()
    return _service
