"""Workflow, application, powerlink and license records.

These are owned by the back office and only read here, except for
``License.used`` which the quota guard increments.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from .jobs import LoginType


class PricingModel(str, Enum):
    QUOTA = "QUOTA"
    CONCURRENT = "CONCURRENT"


class License(BaseModel):
    id: str
    expires_at: Optional[datetime] = None
    pricing_model: PricingModel = PricingModel.QUOTA
    limit: int = 0
    used: int = 0


class ConfigKey(BaseModel):
    """A configurable key with its default (powerlink) or override (application) value."""

    name: str
    type: str = ""
    description: str = ""
    default_value: str = ""
    value: Optional[str] = None


class Powerlink(BaseModel):
    id: str
    name: str = ""
    is_active: bool = True
    customer_access_url: Optional[str] = None
    license_id: Optional[str] = None
    keys: list[ConfigKey] = Field(default_factory=list)


class Application(BaseModel):
    id: str
    name: str = ""
    is_active: bool = True
    powerlink_id: Optional[str] = None
    keys: list[ConfigKey] = Field(default_factory=list)


class NotificationTemplate(BaseModel):
    enabled: bool = False
    subject: str = ""
    template_en: str = ""
    template_ar: str = ""


class WorkflowStep(BaseModel):
    task_order: int
    application_id: str


class Workflow(BaseModel):
    id: str
    name: str = ""
    is_active: bool = True
    tasks_todo: list[WorkflowStep] = Field(default_factory=list)
    requires_login: bool = False
    login_type: LoginType = LoginType.NONE
    max_login_trials: int = 3
    lock_timeout_minutes: int = 15
    session_expiry_minutes: int = 60
    # Keyed by channel: "email", "sms", "whatsapp"
    notifications: dict[str, NotificationTemplate] = Field(default_factory=dict)
    login_code_notifications: dict[str, NotificationTemplate] = Field(default_factory=dict)
