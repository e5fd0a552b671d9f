"""Transactional email. Delivery is best-effort: callers use notify_safely after commit."""

from abc import ABC, abstractmethod
from email.mime.text import MIMEText
from typing import Any

import aiosmtplib

from watchearn.core.config import Settings
from watchearn.core.exceptions import NotifyFailure, ValidationError
from watchearn.core.logging import get_logger

log = get_logger(__name__)

# template -> (subject, html body); params are str.format fields
TEMPLATES: dict[str, tuple[str, str]] = {
    "welcome": (
        "Welcome to WatchEarn",
        "<p>Hi {username},</p><p>Your account is ready. A welcome bonus of "
        "{bonus} {currency} has been added to your balance.</p>"
        "<p>Your referral code: <b>{referral_code}</b></p>",
    ),
    "password_reset": (
        "Reset your password",
        "<p>Hi {username},</p><p>Use the link below to choose a new password. "
        "It expires in {expires_minutes} minutes.</p><p><a href=\"{reset_url}\">{reset_url}</a></p>",
    ),
    "deposit_approved": (
        "Deposit approved",
        "<p>Hi {username},</p><p>Your deposit of {amount} {currency} was approved and credited.</p>",
    ),
    "deposit_rejected": (
        "Deposit rejected",
        "<p>Hi {username},</p><p>Your deposit of {amount} {currency} was rejected.</p><p>Reason: {reason}</p>",
    ),
    "withdrawal_approved": (
        "Withdrawal approved",
        "<p>Hi {username},</p><p>Your withdrawal of {amount} {currency} was approved and is on its way.</p>",
    ),
    "withdrawal_rejected": (
        "Withdrawal rejected",
        "<p>Hi {username},</p><p>Your withdrawal of {amount} {currency} was rejected.</p><p>Reason: {reason}</p>",
    ),
}


def render(template: str, params: dict[str, Any]) -> tuple[str, str]:
    if template not in TEMPLATES:
        raise ValidationError(f"Unknown email template: {template}")
    subject, body = TEMPLATES[template]
    try:
        return subject, body.format(**params)
    except KeyError as e:
        raise ValidationError(f"Missing template parameter: {e.args[0]}") from e


class Notifier(ABC):
    @abstractmethod
    async def send(self, to: str, template: str, params: dict[str, Any]) -> None:
        """Deliver one templated email; raises NotifyFailure."""
        ...


class LogNotifier(Notifier):
    """Writes the rendered email to the log instead of sending it. Local development."""

    async def send(self, to: str, template: str, params: dict[str, Any]) -> None:
        subject, _ = render(template, params)
        log.info("email_logged", to=to, template=template, subject=subject)


class SmtpNotifier(Notifier):
    def __init__(self, settings: Settings) -> None:
        self.host = settings.smtp_host
        self.port = settings.smtp_port
        self.username = settings.smtp_username
        self.password = settings.smtp_password
        self.use_tls = settings.smtp_use_tls
        self.sender = settings.email_from

    def _make_message(self, to: str, subject: str, body_html: str) -> MIMEText:
        message = MIMEText(body_html, "html")
        message["to"] = to
        message["from"] = self.sender
        message["subject"] = subject
        return message

    async def send(self, to: str, template: str, params: dict[str, Any]) -> None:
        subject, body = render(template, params)
        message = self._make_message(to, subject, body)
        try:
            await aiosmtplib.send(
                message,
                hostname=self.host,
                port=self.port,
                start_tls=self.use_tls,
                username=self.username or None,
                password=self.password or None,
                timeout=15,
            )
        except (aiosmtplib.SMTPException, OSError) as e:
            raise NotifyFailure(f"SMTP delivery failed: {e}") from e
        log.info("email_sent", to=to, template=template)


async def notify_safely(notifier: Notifier, to: str, template: str, params: dict[str, Any]) -> bool:
    """Send and swallow delivery errors into the log. Returns whether it went out."""
    try:
        await notifier.send(to, template, params)
    except NotifyFailure as e:
        log.warning("notify_failed", to=to, template=template, error=e.message)
        return False
    except Exception:
        log.exception("notify_failed", to=to, template=template)
        return False
    return True


def get_notifier(settings: Settings) -> Notifier:
    if settings.notifier_backend == "smtp":
        return SmtpNotifier(settings)
    return LogNotifier()
