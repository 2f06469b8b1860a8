"""Tests for the Resend, SMTP and log providers."""

import asyncio
from unittest.mock import AsyncMock, patch

import aiohttp
import aiosmtplib
import pytest
from aioresponses import aioresponses
from yarl import URL

from mail_dispatch.config_loader import DispatchSettings
from mail_dispatch.models import EmailPayload
from mail_dispatch.providers import (
    EmailProvider,
    LogProvider,
    ProviderError,
    ResendProvider,
    SMTPProvider,
    create_provider,
)
from mail_dispatch.providers.smtp import build_message

RESEND_URL = "https://api.resend.test/emails"


@pytest.fixture
def payload():
    return EmailPayload.model_validate({
        "from": "Castings <castings@example.com>",
        "to": ["sam@example.com"],
        "cc": ["boss@example.com"],
        "bcc": ["audit@example.com"],
        "subject": "Casting opportunity",
        "html": "<p>Hi Sam</p>",
        "text": "Hi Sam",
        "reply_to": "castings@example.com",
        "tags": [{"name": "template", "value": "casting_invite"}],
    })


# --- Base and error ---

def test_provider_error_formatting():
    assert str(ProviderError("Rate limit exceeded", status=429)) == "Rate limit exceeded (status 429)"
    assert str(ProviderError("boom")) == "boom"
    assert ProviderError("boom", 500).status == 500


@pytest.mark.asyncio
async def test_base_provider_send_is_abstract(payload):
    provider = EmailProvider()
    await provider.open()
    with pytest.raises(NotImplementedError):
        await provider.send(payload)
    await provider.close()


# --- Resend ---

def test_resend_requires_api_key():
    with pytest.raises(ValueError):
        ResendProvider(api_key="")


def test_resend_body(payload):
    body = ResendProvider.build_body(payload)

    assert body == {
        "from": "Castings <castings@example.com>",
        "to": ["sam@example.com"],
        "subject": "Casting opportunity",
        "html": "<p>Hi Sam</p>",
        "text": "Hi Sam",
        "cc": ["boss@example.com"],
        "bcc": ["audit@example.com"],
        "reply_to": "castings@example.com",
        "tags": [{"name": "template", "value": "casting_invite"}],
    }


@pytest.mark.asyncio
async def test_resend_send_returns_message_id(payload):
    provider = ResendProvider(api_key="re_test", base_url="https://api.resend.test/")
    try:
        with aioresponses() as m:
            m.post(RESEND_URL, status=200, payload={"id": "email-123"})

            message_id = await provider.send(payload)

            assert message_id == "email-123"
            request = m.requests[("POST", URL(RESEND_URL))][0]
            assert request.kwargs["json"]["subject"] == "Casting opportunity"
        assert provider._session.headers["Authorization"] == "Bearer re_test"
    finally:
        await provider.close()
    assert provider._session is None


@pytest.mark.asyncio
async def test_resend_error_response_raises_provider_error(payload):
    provider = ResendProvider(api_key="re_test", base_url="https://api.resend.test")
    try:
        with aioresponses() as m:
            m.post(RESEND_URL, status=429, payload={"name": "rate_limit_exceeded", "message": "Too many requests"})

            with pytest.raises(ProviderError) as exc_info:
                await provider.send(payload)
    finally:
        await provider.close()

    assert exc_info.value.status == 429
    assert exc_info.value.message == "Too many requests"


@pytest.mark.asyncio
async def test_resend_error_without_json_body(payload):
    provider = ResendProvider(api_key="re_test", base_url="https://api.resend.test")
    try:
        with aioresponses() as m:
            m.post(RESEND_URL, status=502, body="Bad Gateway")

            with pytest.raises(ProviderError) as exc_info:
                await provider.send(payload)
    finally:
        await provider.close()

    assert exc_info.value.status == 502


@pytest.mark.asyncio
async def test_resend_network_failure_propagates(payload):
    provider = ResendProvider(api_key="re_test", base_url="https://api.resend.test")
    try:
        with aioresponses() as m:
            m.post(RESEND_URL, exception=aiohttp.ClientConnectionError("connection refused"))

            with pytest.raises(aiohttp.ClientConnectionError):
                await provider.send(payload)
    finally:
        await provider.close()


# --- SMTP ---

def test_build_message_multipart(payload):
    msg = build_message(payload)

    assert msg["From"] == "Castings <castings@example.com>"
    assert msg["To"] == "sam@example.com"
    assert msg["Cc"] == "boss@example.com"
    assert msg["Bcc"] is None
    assert msg["Reply-To"] == "castings@example.com"
    assert msg["Message-ID"]
    assert msg.get_content_type() == "multipart/alternative"
    assert msg.get_body(("html",)).get_content().strip() == "<p>Hi Sam</p>"
    assert msg.get_body(("plain",)).get_content().strip() == "Hi Sam"


def test_build_message_html_only(payload):
    msg = build_message(payload.model_copy(update={"text": None}))

    assert msg.get_content_type() == "text/html"


def _mock_smtp():
    smtp = AsyncMock()
    smtp.__aexit__.return_value = False
    return smtp


@pytest.mark.asyncio
@patch("mail_dispatch.providers.smtp.aiosmtplib.SMTP")
async def test_smtp_send_with_login(mock_smtp_class, payload):
    smtp = _mock_smtp()
    mock_smtp_class.return_value = smtp
    provider = SMTPProvider("smtp.example.com", 587, "user", "pass")

    message_id = await provider.send(payload)

    mock_smtp_class.assert_called_once_with(
        hostname="smtp.example.com", port=587, use_tls=False, start_tls=True, timeout=10.0
    )
    smtp.login.assert_awaited_once_with("user", "pass")
    sent_msg = smtp.send_message.await_args.args[0]
    assert smtp.send_message.await_args.kwargs["recipients"] == [
        "sam@example.com", "boss@example.com", "audit@example.com"
    ]
    assert message_id == sent_msg["Message-ID"]


@pytest.mark.asyncio
@patch("mail_dispatch.providers.smtp.aiosmtplib.SMTP")
async def test_smtp_implicit_tls_and_no_auth(mock_smtp_class, payload):
    mock_smtp_class.return_value = _mock_smtp()
    provider = SMTPProvider("smtp.example.com", 465)

    await provider.send(payload)

    assert mock_smtp_class.call_args.kwargs["use_tls"] is True
    assert mock_smtp_class.call_args.kwargs["start_tls"] is False
    mock_smtp_class.return_value.login.assert_not_called()


@pytest.mark.asyncio
@patch("mail_dispatch.providers.smtp.aiosmtplib.SMTP")
async def test_smtp_plain_connection(mock_smtp_class, payload):
    mock_smtp_class.return_value = _mock_smtp()

    await SMTPProvider("localhost", 25, use_tls=False).send(payload)

    assert mock_smtp_class.call_args.kwargs["use_tls"] is False
    assert mock_smtp_class.call_args.kwargs["start_tls"] is False


@pytest.mark.asyncio
@patch("mail_dispatch.providers.smtp.aiosmtplib.SMTP")
async def test_smtp_rejection_becomes_provider_error(mock_smtp_class, payload):
    smtp = _mock_smtp()
    smtp.send_message.side_effect = aiosmtplib.SMTPResponseException(550, "Mailbox not found")
    mock_smtp_class.return_value = smtp

    with pytest.raises(ProviderError) as exc_info:
        await SMTPProvider("smtp.example.com").send(payload)

    assert exc_info.value.status == 550
    assert exc_info.value.message == "Mailbox not found"


@pytest.mark.asyncio
@patch("mail_dispatch.providers.smtp.aiosmtplib.SMTP")
async def test_smtp_exchange_timeout(mock_smtp_class, payload):
    smtp = _mock_smtp()

    async def hang(*args, **kwargs):
        await asyncio.sleep(10)

    smtp.send_message.side_effect = hang
    mock_smtp_class.return_value = smtp

    with pytest.raises(asyncio.TimeoutError):
        await SMTPProvider("smtp.example.com", timeout=0.02).send(payload)


# --- Log provider and factory ---

@pytest.mark.asyncio
async def test_log_provider_records_payload(payload, caplog):
    caplog.set_level("INFO", logger="LogProvider")
    provider = LogProvider()

    message_id = await provider.send(payload)

    assert message_id.startswith("log-")
    assert provider.sent == [payload]
    assert "sam@example.com" in caplog.text


def test_create_provider_variants():
    assert isinstance(create_provider(DispatchSettings()), LogProvider)

    smtp = create_provider(DispatchSettings(provider="SMTP", smtp_host="relay", smtp_port=2525))
    assert isinstance(smtp, SMTPProvider)
    assert (smtp.host, smtp.port) == ("relay", 2525)

    resend = create_provider(DispatchSettings(provider="resend", resend_api_key="re_1", provider_timeout=5))
    assert isinstance(resend, ResendProvider)
    assert resend.timeout == 5.0


def test_create_provider_errors():
    with pytest.raises(ValueError, match="resend_api_key"):
        create_provider(DispatchSettings(provider="resend"))
    with pytest.raises(ValueError, match="Unknown email provider"):
        create_provider(DispatchSettings(provider="carrier-pigeon"))
