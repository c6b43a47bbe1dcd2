"""Gateway state: the record store, notifier, guards and controllers for one process.

Everything is built once and handed to the app explicitly, so tests can build
a state over a MemoryRecordStore and a fake clock.
"""

from __future__ import annotations

import logging
from typing import Optional

from .config import GatewayConfig
from .models.common import Clock, utcnow
from .services.job_controller import JobController
from .services.license_guard import LicenseGuard
from .services.locks import KeyedLocks
from .services.notifier import HttpNotifier, LogNotifier, NotificationService, Notifier
from .services.records import HttpRecordStore, MemoryRecordStore, RecordStore
from .services.repository import Repository
from .services.session_guard import SessionGuard
from .services.task_controller import TaskController

logger = logging.getLogger(__name__)


class GatewayState:
    """Holds the service instances wired against one record store."""

    def __init__(
        self,
        store: RecordStore,
        notifier: Notifier,
        launchpad_url: str,
        clock: Clock = utcnow,
        default_valid_minutes: int = 1440,
    ) -> None:
        self.store = store
        self.notifier = notifier
        self.launchpad_url = launchpad_url.rstrip("/")
        self.clock = clock

        self.repo = Repository(store, clock=clock)
        self.notifications = NotificationService(notifier)
        job_locks = KeyedLocks()

        self.licenses = LicenseGuard(self.repo, clock=clock)
        self.tasks = TaskController(self.repo, self.licenses, clock=clock)
        self.jobs = JobController(
            self.repo,
            self.tasks,
            self.licenses,
            self.notifications,
            self.launchpad_url,
            job_locks=job_locks,
            clock=clock,
            default_valid_minutes=default_valid_minutes,
        )
        self.sessions = SessionGuard(
            self.repo,
            self.notifications,
            self.launchpad_url,
            job_locks=job_locks,
            clock=clock,
        )
        self.tasks.on_reject = self.jobs.on_task_rejected

    @classmethod
    def from_config(cls, config: GatewayConfig, store: Optional[RecordStore] = None) -> GatewayState:
        if store is None:
            if config.uses_memory_store:
                logger.warning("RECORD_STORE_URL not set, using in-memory record store")
                store = MemoryRecordStore()
            else:
                store = HttpRecordStore(
                    config.record_store_url, config.record_store_token, timeout=config.store_timeout
                )

        notifier: Notifier
        if config.notifier_url:
            notifier = HttpNotifier(config.notifier_url, timeout=config.notifier_timeout)
        else:
            notifier = LogNotifier()

        return cls(
            store,
            notifier,
            config.launchpad_url,
            default_valid_minutes=config.default_valid_minutes,
        )

    async def close(self) -> None:
        await self.store.close()
        await self.notifier.close()
