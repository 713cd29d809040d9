# app/services/mail.py
"""寄信：有設定 SendGrid 就實寄，否則只寫 log（開發 / 測試環境）"""
import html
import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import From, Mail, To
from starlette.concurrency import run_in_threadpool

from app.core.config import Settings

logger = logging.getLogger(__name__)


class MailDeliveryError(Exception):
    pass


@dataclass(frozen=True)
class Recipient:
    name: str
    email: str


class MailSender(Protocol):
    async def send(self, recipient: Recipient, subject: str, html_body: str) -> None: ...


class SendGridMailSender:
    def __init__(self, api_key: str, sender: str, sender_name: Optional[str] = None):
        self._client = SendGridAPIClient(api_key)
        self._sender = From(sender, sender_name)

    async def send(self, recipient: Recipient, subject: str, html_body: str) -> None:
        message = Mail(
            from_email=self._sender,
            to_emails=To(recipient.email, recipient.name),
            subject=subject,
            html_content=html_body,
        )
        try:
            # SDK 是同步的，丟到 threadpool
            response = await run_in_threadpool(self._client.send, message)
        except Exception as exc:
            logger.error("SendGrid API request failed: %s", getattr(exc, "status_code", exc))
            raise MailDeliveryError("Failed to send email") from exc

        status_code = getattr(response, "status_code", None)
        if not isinstance(status_code, int) or not 200 <= status_code < 300:
            logger.error("SendGrid API responded with status %s", status_code)
            raise MailDeliveryError(f"Unexpected SendGrid status {status_code}")
        logger.info("Email '%s' sent to %s", subject, recipient.email)


class LoggingMailSender:
    async def send(self, recipient: Recipient, subject: str, html_body: str) -> None:
        logger.info("SendGrid configuration incomplete; skipping email '%s' to %s", subject, recipient.email)


def build_mail_sender(settings: Settings) -> MailSender:
    if settings.SENDGRID_API_KEY and settings.SENDGRID_SENDER:
        return SendGridMailSender(
            settings.SENDGRID_API_KEY, settings.SENDGRID_SENDER, settings.SENDGRID_SENDER_NAME
        )
    return LoggingMailSender()


# === Templates ===
def _layout(title: str, body: str) -> str:
    return (
        "<html><body style=\"font-family: sans-serif;\">"
        f"<h2>{html.escape(title)}</h2>{body}"
        "</body></html>"
    )


def email_verification_template(first_name: str, callback_url: str) -> str:
    url = html.escape(callback_url, quote=True)
    return _layout(
        "Verify your email address",
        f"<p>Hi {html.escape(first_name)},</p>"
        "<p>Thanks for signing up. Please confirm your email address by clicking the link below.</p>"
        f"<p><a href=\"{url}\">Verify email</a></p>"
        "<p>The link expires in 48 hours.</p>",
    )


def password_reset_template(first_name: str, callback_url: str) -> str:
    url = html.escape(callback_url, quote=True)
    return _layout(
        "Reset your password",
        f"<p>Hi {html.escape(first_name)},</p>"
        "<p>We received a request to reset your password. Use the link below to choose a new one.</p>"
        f"<p><a href=\"{url}\">Reset password</a></p>"
        "<p>If you didn't request this, you can safely ignore this email.</p>",
    )
