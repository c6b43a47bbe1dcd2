"""Customer notifications: channel transports and templated message dispatch."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional

import httpx
from pydantic import BaseModel

from ..models.catalog import NotificationTemplate, Workflow
from ..models.jobs import Job

logger = logging.getLogger(__name__)

CHANNELS = ("email", "sms", "whatsapp")


class NotificationStatus(str, Enum):
    SENT = "SENT"
    FAILED = "FAILED"
    OFF = "OFF"


class NotificationResult(BaseModel):
    status: NotificationStatus
    detail: str = ""


class Message(BaseModel):
    subject: str = ""
    body: str


class Notifier(ABC):
    @abstractmethod
    async def send(self, channel: str, message: Message, recipient: str) -> NotificationResult: ...

    async def close(self) -> None:
        return None


class HttpNotifier(Notifier):
    """Posts messages to a notification relay that owns the SMTP/SMS/WhatsApp transports."""

    def __init__(
        self, base_url: str, timeout: float = 10.0, transport: httpx.AsyncBaseTransport | None = None
    ) -> None:
        self._client = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)

    async def send(self, channel: str, message: Message, recipient: str) -> NotificationResult:
        payload = {"channel": channel, "recipient": recipient, **message.model_dump()}
        try:
            response = await self._client.post("/send", json=payload)
        except httpx.TimeoutException:
            logger.error("Notification relay timed out (%s -> %s)", channel, recipient)
            return NotificationResult(status=NotificationStatus.FAILED, detail="Notification relay timed out")
        except httpx.RequestError as exc:
            logger.error("Notification relay unreachable: %s", exc)
            return NotificationResult(status=NotificationStatus.FAILED, detail=str(exc))

        if response.status_code >= 400:
            return NotificationResult(
                status=NotificationStatus.FAILED,
                detail=f"Relay returned {response.status_code}",
            )
        return NotificationResult(status=NotificationStatus.SENT, detail=f"{channel} has been sent successfully")

    async def close(self) -> None:
        await self._client.aclose()


class LogNotifier(Notifier):
    """Development notifier: logs the message instead of delivering it."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, Message, str]] = []

    async def send(self, channel: str, message: Message, recipient: str) -> NotificationResult:
        self.sent.append((channel, message, recipient))
        logger.info("[%s -> %s] %s", channel, recipient, message.body)
        return NotificationResult(status=NotificationStatus.SENT, detail=f"{channel} logged")


def render_template(
    template: str,
    *,
    customer_access_url: str = "",
    customer_name: str = "",
    user_name: str = "",
    login_code: str = "",
) -> str:
    """Fill the %placeholder% slots used by workflow message templates."""
    if not template:
        logger.warning("Template undefined, sending empty message")
        return ""
    return (
        template.replace("%customerAccessURL%", customer_access_url)
        .replace("%customerName%", customer_name)
        .replace("%userName%", user_name)
        .replace("%PINCode%", login_code)
    )


class NotificationService:
    """Renders a workflow's templates for a job and fans out over the enabled channels."""

    def __init__(self, notifier: Notifier) -> None:
        self.notifier = notifier

    async def send_connect(
        self, job: Job, workflow: Workflow, customer_access_url: str, user_name: str = ""
    ) -> dict[str, str]:
        """Send the connect message (portal link, and the PIN when one was issued)."""
        return await self._dispatch(
            workflow.notifications,
            job,
            customer_access_url=customer_access_url,
            user_name=user_name,
            login_code=job.login_code or "",
        )

    async def send_login_code(self, job: Job, workflow: Optional[Workflow]) -> dict[str, str]:
        """Send the current login code (OTP) over the workflow's login-code channels."""
        templates = workflow.login_code_notifications if workflow else {}
        if not templates:
            templates = {channel: _default_login_code_template() for channel in ("email", "sms")}
        return await self._dispatch(templates, job, login_code=job.login_code or "")

    async def _dispatch(
        self, templates: dict[str, NotificationTemplate], job: Job, **context: str
    ) -> dict[str, str]:
        statuses: dict[str, str] = {}
        customer = job.customer
        for channel in CHANNELS:
            template = templates.get(channel)
            recipient = _recipient(channel, job)
            if template is None or not template.enabled or not recipient:
                statuses[channel] = NotificationStatus.OFF.value
                continue

            body = template.template_ar if job.language == "ar" and template.template_ar else template.template_en
            message = Message(
                subject=template.subject,
                body=render_template(
                    body, customer_name=(customer.name or "") if customer else "", **context
                ),
            )
            result = await self.notifier.send(channel, message, recipient)
            statuses[channel] = result.status.value
            statuses[f"{channel}Message"] = result.detail
            logger.info("Job %s %s notification: %s", job.id, channel, result.status.value)
        return statuses


def _recipient(channel: str, job: Job) -> str:
    if job.customer is None:
        return ""
    if channel == "email":
        return job.customer.email or ""
    return job.customer.mobile or ""


def _default_login_code_template() -> NotificationTemplate:
    return NotificationTemplate(
        enabled=True,
        subject="Your login code",
        template_en="Your login code is %PINCode%",
        template_ar="رمز الدخول الخاص بك هو %PINCode%",
    )
