"""Shared fixtures: a fake clock, a seeded memory store and a wired GatewayState."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from launchpad_gateway.app_state import GatewayState
from launchpad_gateway.services.notifier import LogNotifier
from launchpad_gateway.services.records import MemoryRecordStore

LAUNCHPAD_URL = "https://launchpad.example.com"
START = datetime(2026, 1, 1, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return MemoryRecordStore()


@pytest.fixture
def notifier():
    return LogNotifier()


@pytest.fixture
def state(store, notifier, clock):
    return GatewayState(store, notifier, LAUNCHPAD_URL, clock=clock)


@pytest.fixture
def catalog(store, clock):
    """Seed a workflow ``wf-1`` whose steps each run their own application/powerlink/license."""

    def seed(
        steps: int = 1,
        *,
        limit: int = 10,
        used: int = 0,
        pricing_model: str = "QUOTA",
        license_days: int = 30,
        requires_login: bool = False,
        login_type: str = "NONE",
        max_login_trials: int = 3,
        lock_timeout_minutes: int = 15,
        workflow_active: bool = True,
        notifications: dict | None = None,
        login_code_notifications: dict | None = None,
    ) -> dict:
        for order in range(1, steps + 1):
            store.seed(
                "licenses",
                {
                    "id": f"lic-{order}",
                    "expires_at": (clock() + timedelta(days=license_days)).isoformat(),
                    "pricing_model": pricing_model,
                    "limit": limit,
                    "used": used,
                },
            )
            store.seed(
                "powerlinks",
                {
                    "id": f"pl-{order}",
                    "name": f"Powerlink {order}",
                    "is_active": True,
                    "customer_access_url": f"https://powerlink{order}.example.com/run",
                    "license_id": f"lic-{order}",
                    "keys": [
                        {"name": "endpoint", "type": "TEXT", "default_value": "https://api.example.com"},
                        {"name": "mode", "type": "TEXT", "default_value": "live"},
                    ],
                },
            )
            store.seed(
                "applications",
                {
                    "id": f"app-{order}",
                    "name": f"App {order}",
                    "is_active": True,
                    "powerlink_id": f"pl-{order}",
                    "keys": [{"name": "mode", "type": "TEXT", "default_value": "live", "value": "sandbox"}],
                },
            )
        workflow = {
            "id": "wf-1",
            "name": "Onboarding",
            "is_active": workflow_active,
            "tasks_todo": [
                {"task_order": order, "application_id": f"app-{order}"} for order in range(1, steps + 1)
            ],
            "requires_login": requires_login,
            "login_type": login_type,
            "max_login_trials": max_login_trials,
            "lock_timeout_minutes": lock_timeout_minutes,
            "session_expiry_minutes": 60,
            "notifications": notifications or {},
            "login_code_notifications": login_code_notifications or {},
        }
        store.seed("workflows", workflow)
        return workflow

    return seed
