"""Transactional email through an HTTP email API.

Messages are POSTed as {to, subject, body} JSON with a bearer key. Failures
raise EmailDeliveryError; callers decide whether delivery is best-effort.
"""

import html
import logging

import httpx

from saas_server.core.config import Settings, settings

logger = logging.getLogger(__name__)

_EMAIL_TIMEOUT = 5.0


class EmailDeliveryError(Exception):
    """Email could not be handed to the email API."""

    pass


class EmailSender:
    def __init__(self, api_url: str, api_key: str, timeout: float = _EMAIL_TIMEOUT):
        self.api_url = api_url
        self.api_key = api_key
        self.timeout = timeout

    @classmethod
    def from_settings(cls, config: Settings = settings) -> "EmailSender":
        return cls(api_url=config.email_api_url, api_key=config.email_api_key)

    async def send(self, to: str, subject: str, html_body: str) -> None:
        if not self.api_key:
            raise EmailDeliveryError("Email API key is not configured")

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    self.api_url,
                    json={"to": to, "subject": subject, "body": html_body},
                    headers={"Authorization": f"Bearer {self.api_key}"},
                )
        except httpx.HTTPError as e:
            raise EmailDeliveryError(f"Email API request failed: {e}") from e

        if response.status_code >= 300:
            raise EmailDeliveryError(f"Email API returned HTTP {response.status_code}")

        logger.info(f"Sent email {subject!r}")

    async def send_password_reset(self, to: str, reset_url: str) -> None:
        await self.send(to, "Password Reset Request", password_reset_body(reset_url))

    async def send_email_verification(self, to: str, verification_url: str) -> None:
        await self.send(to, "Verify Your Email Address", email_verification_body(verification_url))


def password_reset_body(reset_url: str) -> str:
    url = html.escape(reset_url, quote=True)
    return (
        "<h1>Password Reset</h1>"
        "<p>You've requested to reset your password. "
        "Click the link below to reset your password:</p>"
        f'<p><a href="{url}">Reset Password</a></p>'
        "<p>This link will expire in 1 hour.</p>"
        "<p>If you didn't request this, you can safely ignore this email.</p>"
    )


def email_verification_body(verification_url: str) -> str:
    url = html.escape(verification_url, quote=True)
    return (
        "<h1>Verify Your Email Address</h1>"
        "<p>Thanks for signing up. Please confirm your email address:</p>"
        f'<p><a href="{url}">Verify Email</a></p>'
        "<p>This link will expire in 24 hours.</p>"
        "<p>If you didn't create an account, you can safely ignore this email.</p>"
    )
