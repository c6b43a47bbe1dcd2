"""Tests for template rendering and notification dispatch."""

from __future__ import annotations

from datetime import datetime, timezone

import httpx
import pytest

from launchpad_gateway.models.catalog import NotificationTemplate, Workflow
from launchpad_gateway.models.common import Customer
from launchpad_gateway.models.jobs import Job
from launchpad_gateway.services.notifier import (
    HttpNotifier,
    LogNotifier,
    Message,
    NotificationService,
    NotificationStatus,
    render_template,
)

pytestmark = pytest.mark.anyio


def _job(**overrides) -> Job:
    data = {
        "job_key": "abc",
        "secret": "s",
        "valid_until": datetime(2030, 1, 1, tzinfo=timezone.utc),
        "customer": Customer(name="Ada", email="ada@example.com", mobile="+15550100"),
        "login_code": "4321",
    }
    data.update(overrides)
    return Job(**data)


def _workflow(**templates) -> Workflow:
    return Workflow(id="wf-1", notifications=templates)


def test_render_template_fills_placeholders():
    text = render_template(
        "%customerName% / %userName% / %customerAccessURL% / %PINCode%",
        customer_access_url="https://l/x",
        customer_name="Ada",
        user_name="clerk",
        login_code="1234",
    )
    assert text == "Ada / clerk / https://l/x / 1234"


def test_render_empty_template():
    assert render_template("") == ""


class TestNotificationService:
    async def test_connect_over_enabled_channels(self):
        notifier = LogNotifier()
        service = NotificationService(notifier)
        workflow = _workflow(
            email=NotificationTemplate(enabled=True, subject="Hi", template_en="Open %customerAccessURL%"),
            sms=NotificationTemplate(enabled=False, template_en="unused"),
        )
        statuses = await service.send_connect(_job(), workflow, "https://l/abc/key", user_name="clerk")
        assert statuses["email"] == "SENT"
        assert statuses["sms"] == "OFF"
        assert statuses["whatsapp"] == "OFF"
        assert notifier.sent[0][1] == Message(subject="Hi", body="Open https://l/abc/key")

    async def test_arabic_template(self):
        notifier = LogNotifier()
        workflow = _workflow(
            sms=NotificationTemplate(enabled=True, template_en="code %PINCode%", template_ar="رمز %PINCode%")
        )
        await NotificationService(notifier).send_connect(_job(language="ar"), workflow, "u")
        channel, message, recipient = notifier.sent[0]
        assert (channel, recipient) == ("sms", "+15550100")
        assert message.body == "رمز 4321"

    async def test_no_recipient_is_off(self):
        workflow = _workflow(email=NotificationTemplate(enabled=True, template_en="x"))
        statuses = await NotificationService(LogNotifier()).send_connect(
            _job(customer=Customer(name="Ada")), workflow, "u"
        )
        assert statuses["email"] == "OFF"

    async def test_login_code_falls_back_to_default_template(self):
        notifier = LogNotifier()
        statuses = await NotificationService(notifier).send_login_code(_job(), None)
        assert statuses["email"] == statuses["sms"] == "SENT"
        assert all("4321" in message.body for _, message, _ in notifier.sent)


class TestHttpNotifier:
    async def test_posts_to_relay(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/send"
            return httpx.Response(202)

        notifier = HttpNotifier("https://relay.example.com", transport=httpx.MockTransport(handler))
        result = await notifier.send("email", Message(body="hi"), "ada@example.com")
        assert result.status == NotificationStatus.SENT
        await notifier.close()

    async def test_relay_failure_is_reported_not_raised(self):
        notifier = HttpNotifier(
            "https://relay.example.com", transport=httpx.MockTransport(lambda request: httpx.Response(500))
        )
        result = await notifier.send("sms", Message(body="hi"), "+1")
        assert result.status == NotificationStatus.FAILED

    async def test_relay_timeout(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("slow", request=request)

        notifier = HttpNotifier("https://relay.example.com", transport=httpx.MockTransport(handler))
        result = await notifier.send("sms", Message(body="hi"), "+1")
        assert result.status == NotificationStatus.FAILED
