# storefront/services/mailer.py
import resend
from flask import current_app

from ..errors import UpstreamError


class Mailer:
    def __init__(self, api_key: str, sender: str, frontend_url: str):
        self.api_key = (api_key or "").strip()
        self.sender = sender
        self.frontend_url = frontend_url.rstrip("/")

    @classmethod
    def from_config(cls, config):
        return cls(config.get("RESEND_API_KEY"), config.get("MAIL_FROM"), config.get("FRONTEND_URL", ""))

    def send(self, to: str, subject: str, html: str, text: str):
        if not self.api_key:
            raise UpstreamError("Email service is not configured")
        resend.api_key = self.api_key
        payload = {"from": self.sender, "to": [to], "subject": subject, "html": html, "text": text}
        try:
            response = resend.Emails.send(payload)
        except Exception as exc:
            current_app.logger.error("Email to %s failed: %s", to, exc)
            raise UpstreamError("Failed to send email") from exc
        if not isinstance(response, dict) or not response.get("id"):
            current_app.logger.error("Email to %s rejected: %s", to, response)
            raise UpstreamError("Failed to send email")
        current_app.logger.info("Email '%s' sent to %s", subject, to)

    def send_verification_email(self, to: str, token: str):
        link = f"{self.frontend_url}/verify-email?token={token}"
        self.send(
            to,
            "Verify your email",
            f'<p>Welcome! Confirm your email address by clicking <a href="{link}">this link</a>. '
            f"The link expires in 24 hours.</p>",
            f"Confirm your email address: {link} (expires in 24 hours)",
        )

    def send_password_reset_email(self, to: str, token: str):
        link = f"{self.frontend_url}/reset-password?token={token}"
        self.send(
            to,
            "Reset your password",
            f'<p>Reset your password using <a href="{link}">this link</a>. It expires in 1 hour.</p>'
            f"<p>If you did not ask for a reset you can ignore this email.</p>",
            f"Reset your password: {link} (expires in 1 hour)",
        )


def get_mailer() -> Mailer:
    return current_app.extensions["mailer"]
