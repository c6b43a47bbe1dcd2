"""Shared value types for job and task payloads."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from pydantic import BaseModel

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive timestamps from the store as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def new_id() -> str:
    return uuid.uuid4().hex[:12]


class DataItem(BaseModel):
    """One key/value entry of a job input or a task input/output."""

    key: str
    value: Any = None
    type: Any = None
    media: Any = None
    description: Optional[str] = None


class Customer(BaseModel):
    name: Optional[str] = None
    mobile: Optional[str] = None
    email: Optional[str] = None
    customer_id: Optional[str] = None


class MetadataBody(BaseModel):
    """Optional audit metadata accepted by most job/task actions."""

    metadata: Optional[str] = None
