"""Task lifecycle: NEW -> STARTED -> DONE | REJECTED."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Optional

from ..errors import ConflictError, FeatureNotImplementedError, ForbiddenError, GatewayError, StoreTimeoutError
from ..models.catalog import Application, Powerlink
from ..models.common import Clock, DataItem, utcnow
from ..models.tasks import TASK_TRANSITIONS, ConfigEntry, Task, TaskPayload, TaskStatus
from .keys import new_task_key
from .license_guard import LicenseFailure, LicenseGuard
from .locks import KeyedLocks
from .repository import Repository

logger = logging.getLogger(__name__)

RejectionListener = Callable[[Task, Optional[str]], Awaitable[None]]


def resolve_config(application: Application, powerlink: Optional[Powerlink]) -> list[ConfigEntry]:
    """Application key overrides first, then the powerlink keys it does not override."""
    entries = [
        ConfigEntry(
            key=key.name,
            type=key.type,
            description=key.description,
            value=key.value if key.value is not None else key.default_value,
        )
        for key in application.keys
    ]
    overridden = {key.name for key in application.keys}
    for key in powerlink.keys if powerlink else []:
        if key.name in overridden:
            continue
        entries.append(
            ConfigEntry(
                key=key.name,
                type=key.type,
                description=key.description,
                value=key.value if key.value is not None else key.default_value,
            )
        )
    return entries


class TaskController:
    def __init__(
        self,
        repo: Repository,
        licenses: LicenseGuard,
        clock: Clock = utcnow,
        on_reject: Optional[RejectionListener] = None,
    ) -> None:
        self.repo = repo
        self.licenses = licenses
        self.clock = clock
        self.on_reject = on_reject
        self._locks = KeyedLocks()

    async def create(
        self,
        job_id: str,
        application_id: str,
        input: list[DataItem],
        config: list[ConfigEntry],
    ) -> Task:
        task = Task(
            task_key=new_task_key(),
            job_id=job_id,
            application_id=application_id,
            input=input,
            config=config,
        )
        created = await self.repo.create_task(task)
        logger.info("Task %s created for job %s", created.id, job_id)
        return created

    async def start(self, task: Task, metadata: Optional[str] = None) -> TaskPayload:
        """Start a NEW task, taking one license unit. Repeating on a STARTED task is a no-op."""
        async with self._locks.hold(task.id):
            task = await self.repo.get_task(task.id)
            if task.status == TaskStatus.STARTED:
                logger.info("Task %s already started", task.id)
                return _payload(task)
            _transition(task, TaskStatus.STARTED)

            application = await self.repo.get_application(task.application_id)
            powerlink = await self.repo.find_powerlink_for(application)
            license_id = powerlink.license_id if powerlink else None

            result = await self.licenses.consume(license_id)
            if not result.ok:
                if result.reason == LicenseFailure.NOT_IMPLEMENTED:
                    raise FeatureNotImplementedError(result.message, hints="Unsupported pricing model")
                raise ForbiddenError(result.message, hints="Please contact your system administrator")

            task.started_on = self.clock()
            try:
                await self.repo.save_task(task, "status", "started_on")
            except GatewayError as exc:
                if not await self._write_landed(task, exc):
                    logger.error("Task %s status write failed, releasing license unit", task.id)
                    await self.licenses.release(license_id)
                raise

            await self.repo.add_audit_log(task.job_id, "Task Started", f"Task ID {task.id} started", metadata)
            logger.info("Task %s started", task.id)
            return _payload(task)

    async def _write_landed(self, task: Task, exc: GatewayError) -> bool:
        """After a timed-out write, whether the task is STARTED in the store anyway."""
        if not isinstance(exc, StoreTimeoutError):
            return False
        try:
            stored = await self.repo.get_task(task.id)
        except GatewayError:
            logger.error("Task %s state unknown after timeout, keeping license unit", task.id)
            return True
        if stored.status == TaskStatus.STARTED:
            logger.warning("Task %s status write timed out but landed, keeping license unit", task.id)
            return True
        return False

    async def submit(self, task: Task, output: list[DataItem], metadata: Optional[str] = None) -> Task:
        async with self._locks.hold(task.id):
            task = await self.repo.get_task(task.id)
            _transition(task, TaskStatus.DONE)
            task.completed_on = self.clock()
            task.output = output
            await self.repo.save_task(task, "status", "completed_on", "output")
            await self.repo.add_audit_log(task.job_id, "Task Done", f"Task ID {task.id} Submitted", metadata)
            logger.info("Task %s submitted with %d output items", task.id, len(output))
            return task

    async def reject(self, task: Task, reason: Optional[str], metadata: Optional[str] = None) -> Task:
        async with self._locks.hold(task.id):
            task = await self.repo.get_task(task.id)
            _transition(task, TaskStatus.REJECTED)
            task.rejected_on = self.clock()
            task.rejection_reason = reason
            await self.repo.save_task(task, "status", "rejected_on", "rejection_reason")
            description = f"Task ID {task.id} Rejected"
            if reason:
                description += f" With reason: {reason}"
            await self.repo.add_audit_log(task.job_id, "Task Rejected", description, metadata)
            logger.info("Task %s rejected: %s", task.id, reason)

        if self.on_reject is not None:
            await self.on_reject(task, reason)
        return task


def _transition(task: Task, target: TaskStatus) -> None:
    if target not in TASK_TRANSITIONS[task.status]:
        raise ConflictError(
            "Invalid Task Status",
            errors=f"Task cannot move from {task.status.value} to {target.value}",
            hints="Please check the task status and try again later",
        )
    task.status = target


def _payload(task: Task) -> TaskPayload:
    return TaskPayload(config=task.config, input=task.input)
