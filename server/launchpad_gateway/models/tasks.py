"""Task lifecycle models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from .common import DataItem, new_id, utcnow


class TaskStatus(str, Enum):
    NEW = "NEW"
    STARTED = "STARTED"
    DONE = "DONE"
    REJECTED = "REJECTED"


TASK_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.NEW: frozenset({TaskStatus.STARTED}),
    TaskStatus.STARTED: frozenset({TaskStatus.DONE, TaskStatus.REJECTED}),
    TaskStatus.DONE: frozenset(),
    TaskStatus.REJECTED: frozenset(),
}


class OutputType(str, Enum):
    TEXT = "TEXT"
    LIST = "LIST"
    MULTI = "MULTI"
    MEDIA = "MEDIA"


class ConfigEntry(BaseModel):
    key: str
    type: str = ""
    description: str = ""
    value: str = ""


class Task(BaseModel):
    id: str = Field(default_factory=new_id)
    task_key: str
    job_id: str
    application_id: str
    status: TaskStatus = TaskStatus.NEW
    input: list[DataItem] = Field(default_factory=list)
    config: list[ConfigEntry] = Field(default_factory=list)
    output: list[DataItem] = Field(default_factory=list)
    rejection_reason: Optional[str] = None
    created_on: datetime = Field(default_factory=utcnow)
    started_on: Optional[datetime] = None
    completed_on: Optional[datetime] = None
    rejected_on: Optional[datetime] = None


class TaskPayload(BaseModel):
    """What an external worker receives when it starts a task."""

    config: list[ConfigEntry]
    input: list[DataItem]


class OutputItem(BaseModel):
    key: str
    value: str
    type: OutputType
    description: Optional[str] = None


class SubmitTaskRequest(BaseModel):
    metadata: Optional[str] = None
    output: list[OutputItem] = Field(default_factory=list)


class RejectTaskRequest(BaseModel):
    metadata: Optional[str] = None
    reason: Optional[str] = None
