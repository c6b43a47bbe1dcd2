"""Typed access to the record store collections."""

from __future__ import annotations

import logging
from typing import Optional

from ..errors import GatewayError, NotFoundError
from ..models.catalog import Application, License, Powerlink, Workflow
from ..models.common import Clock, utcnow
from ..models.jobs import Job
from ..models.tasks import Task
from .records import RecordStore

logger = logging.getLogger(__name__)

JOBS = "jobs"
TASKS = "tasks"
WORKFLOWS = "workflows"
APPLICATIONS = "applications"
POWERLINKS = "powerlinks"
LICENSES = "licenses"
AUDIT_LOGS = "auditlogs"


class Repository:
    """Maps store records to models. Partial saves write only the named fields."""

    def __init__(self, store: RecordStore, clock: Clock = utcnow) -> None:
        self.store = store
        self.clock = clock

    # ── Jobs ──────────────────────────────────────────────────────────────

    async def get_job(self, job_id: str) -> Job:
        return Job.model_validate(await self.store.get(JOBS, job_id))

    async def find_job(self, job_key: str) -> Job:
        record = await self.store.query_by_key(JOBS, "job_key", job_key)
        if record is None:
            raise NotFoundError("Job not found.", hints="Please check the job key and try again")
        return Job.model_validate(record)

    async def create_job(self, job: Job) -> Job:
        return Job.model_validate(await self.store.create(JOBS, job.model_dump(mode="json")))

    async def save_job(self, job: Job, *fields: str) -> None:
        await self.store.update(JOBS, job.id, _dump(job, fields))

    # ── Tasks ─────────────────────────────────────────────────────────────

    async def get_task(self, task_id: str) -> Task:
        return Task.model_validate(await self.store.get(TASKS, task_id))

    async def find_task(self, task_key: str) -> Task:
        record = await self.store.query_by_key(TASKS, "task_key", task_key)
        if record is None:
            raise NotFoundError("Task not found.", hints="Please check the task key and try again")
        return Task.model_validate(record)

    async def create_task(self, task: Task) -> Task:
        return Task.model_validate(await self.store.create(TASKS, task.model_dump(mode="json")))

    async def save_task(self, task: Task, *fields: str) -> None:
        await self.store.update(TASKS, task.id, _dump(task, fields))

    # ── Catalog ───────────────────────────────────────────────────────────

    async def get_workflow(self, workflow_id: str) -> Workflow:
        try:
            return Workflow.model_validate(await self.store.get(WORKFLOWS, workflow_id))
        except NotFoundError:
            raise NotFoundError(
                "Workflow not found", hints="Please contact your system administrator"
            ) from None

    async def get_application(self, application_id: str) -> Application:
        return Application.model_validate(await self.store.get(APPLICATIONS, application_id))

    async def get_powerlink(self, powerlink_id: str) -> Powerlink:
        return Powerlink.model_validate(await self.store.get(POWERLINKS, powerlink_id))

    async def get_license(self, license_id: str) -> License:
        return License.model_validate(await self.store.get(LICENSES, license_id))

    async def save_license(self, license: License) -> None:
        await self.store.update(LICENSES, license.id, {"used": license.used})

    async def find_powerlink_for(self, application: Application) -> Optional[Powerlink]:
        if not application.powerlink_id:
            return None
        try:
            return await self.get_powerlink(application.powerlink_id)
        except NotFoundError:
            return None

    # ── Audit ─────────────────────────────────────────────────────────────

    async def add_audit_log(
        self, job_id: str, action: str, description: str, metadata: Optional[str] = None
    ) -> None:
        """Record an audit entry. Audit failures are logged, never fatal to the action."""
        entry = {
            "job_id": job_id,
            "action": action,
            "description": description,
            "metadata": metadata,
            "created_on": self.clock().isoformat(),
        }
        try:
            await self.store.create(AUDIT_LOGS, entry)
        except GatewayError as exc:
            logger.warning("Audit log '%s' for job %s not written: %s", action, job_id, exc.message)


def _dump(model, fields: tuple[str, ...]) -> dict:
    if fields:
        return model.model_dump(mode="json", include=set(fields))
    return model.model_dump(mode="json", exclude={"id"})
