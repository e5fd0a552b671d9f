"""Email rendering, SMTP transport errors and best-effort delivery."""

import aiosmtplib
import pytest

from watchearn.core.config import Settings
from watchearn.core.exceptions import NotifyFailure, ValidationError
from watchearn.services.notifier import LogNotifier, SmtpNotifier, notify_safely, render

pytestmark = pytest.mark.asyncio

DEPOSIT = {"username": "alice", "amount": "20.00", "currency": "MZN"}


def _smtp_settings() -> Settings:
    return Settings(
        notifier_backend="smtp",
        smtp_host="mail.example.com",
        smtp_port=2525,
        smtp_username="mailer",
        smtp_password="pw",
        secret_key="test-secret-key-min-32-characters-long",
    )


async def test_render_checks_template_and_params():
    subject, body = render("deposit_approved", DEPOSIT)
    assert subject == "Deposit approved"
    assert "20.00 MZN" in body
    with pytest.raises(ValidationError):
        render("nope", {})
    with pytest.raises(ValidationError):
        render("deposit_approved", {"username": "alice"})


async def test_smtp_send_builds_message(monkeypatch):
    calls = []

    async def fake_send(message, **kwargs):
        calls.append((message, kwargs))

    monkeypatch.setattr(aiosmtplib, "send", fake_send)
    await SmtpNotifier(_smtp_settings()).send("alice@example.com", "deposit_approved", DEPOSIT)

    message, kwargs = calls[0]
    assert message["to"] == "alice@example.com"
    assert message["subject"] == "Deposit approved"
    assert kwargs["hostname"] == "mail.example.com"
    assert kwargs["port"] == 2525
    assert kwargs["start_tls"] is True
    assert kwargs["username"] == "mailer"


async def test_smtp_errors_become_notify_failure(monkeypatch):
    async def refused(message, **kwargs):
        raise aiosmtplib.SMTPException("relay refused")

    monkeypatch.setattr(aiosmtplib, "send", refused)
    with pytest.raises(NotifyFailure):
        await SmtpNotifier(_smtp_settings()).send("alice@example.com", "deposit_approved", DEPOSIT)


async def test_notify_safely_swallows_any_error(notifier):
    notifier.error = RuntimeError("relay dropped")
    assert await notify_safely(notifier, "alice@example.com", "deposit_approved", DEPOSIT) is False
    notifier.error = None
    notifier.fail = True
    assert await notify_safely(notifier, "alice@example.com", "deposit_approved", DEPOSIT) is False


async def test_notify_safely_bad_params_do_not_raise():
    assert await notify_safely(LogNotifier(), "alice@example.com", "deposit_approved", {}) is False
    assert await notify_safely(LogNotifier(), "alice@example.com", "deposit_approved", DEPOSIT) is True
