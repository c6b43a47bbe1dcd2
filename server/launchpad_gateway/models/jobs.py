"""Job lifecycle models and the job status transition table."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from .common import Customer, DataItem, new_id, utcnow


class JobStatus(str, Enum):
    NEW = "NEW"
    STARTED = "STARTED"
    DONE = "DONE"
    REJECTED = "REJECTED"
    CANCELED = "CANCELED"
    EXPIRED = "EXPIRED"


# Every legal edge of the job state machine. Terminal states map to nothing.
JOB_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.NEW: frozenset({JobStatus.STARTED, JobStatus.CANCELED, JobStatus.EXPIRED}),
    JobStatus.STARTED: frozenset(
        {JobStatus.DONE, JobStatus.REJECTED, JobStatus.CANCELED, JobStatus.EXPIRED}
    ),
    JobStatus.DONE: frozenset(),
    JobStatus.REJECTED: frozenset(),
    JobStatus.CANCELED: frozenset(),
    JobStatus.EXPIRED: frozenset(),
}

ACTIVE_JOB_STATUSES = frozenset({JobStatus.NEW, JobStatus.STARTED})


class LoginType(str, Enum):
    NONE = "NONE"
    PIN = "PIN"
    OTP = "OTP"
    GOOGLE = "GOOGLE"


class LoginConfig(BaseModel):
    requires_login: bool = False
    login_type: LoginType = LoginType.NONE
    max_login_trials: int = 3
    lock_timeout_minutes: int = 15
    session_expiry_minutes: int = 60


class TaskTodo(BaseModel):
    """One slot of a job's ordered task list."""

    task_order: int
    application_id: str
    task_id: Optional[str] = None


class Job(BaseModel):
    id: str = Field(default_factory=new_id)
    job_key: str
    secret: str
    workflow_id: Optional[str] = None
    status: JobStatus = JobStatus.NEW
    valid_until: datetime
    tasks_todo: list[TaskTodo] = Field(default_factory=list)
    current_task_id: Optional[str] = None
    current_task_order: int = 0
    login: LoginConfig = Field(default_factory=LoginConfig)
    login_code: Optional[str] = None
    failed_login_trials: int = 0
    last_failed_login: Optional[datetime] = None
    last_successful_login: Optional[datetime] = None
    customer: Optional[Customer] = None
    language: str = "en"
    external_ref_number: Optional[str] = None
    metadata: Optional[str] = None
    input: list[DataItem] = Field(default_factory=list)
    output: Optional[list[DataItem]] = None
    notification_status: dict[str, str] = Field(default_factory=dict)
    login_code_notification_status: dict[str, str] = Field(default_factory=dict)
    created_by: Optional[str] = None
    created_on: datetime = Field(default_factory=utcnow)
    started_on: Optional[datetime] = None
    completed_on: Optional[datetime] = None
    rejected_on: Optional[datetime] = None
    canceled_on: Optional[datetime] = None


class JobCreateRequest(BaseModel):
    """Body of the back-office create-job call."""

    workflow: str
    valid_until: Optional[int] = Field(default=None, gt=0, description="Validity in minutes")
    language: str = Field(default="en", pattern="^(en|ar)$")
    external_ref_number: Optional[str] = None
    customer: Optional[Customer] = None
    metadata: Optional[str] = None
    input: list[DataItem] = Field(default_factory=list)


class JobCreated(BaseModel):
    job_key: str = Field(serialization_alias="jobKey")
    access_pin_code: Optional[str] = Field(default=None, serialization_alias="accessPINCode")
    customer_access_url: str = Field(serialization_alias="customerAccessURL")
    notification_status: dict[str, str] = Field(
        default_factory=dict, serialization_alias="notificationStatus"
    )
    login_code_notification_status: dict[str, str] = Field(
        default_factory=dict, serialization_alias="loginCodeNotificationStatus"
    )


class LoginBody(BaseModel):
    """Body of a job start call; carries the login challenge answer when present."""

    metadata: Optional[str] = None
    input_login_code: Optional[str] = None
