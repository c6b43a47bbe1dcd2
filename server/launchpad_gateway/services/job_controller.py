"""Job lifecycle: creation, advancing through tasks, cancellation and expiry."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional

from ..errors import ConflictError, NotAcceptableError, NotFoundError, PreconditionError, ValidationError
from ..models.catalog import Workflow
from ..models.common import Clock, as_utc, utcnow
from ..models.jobs import (
    ACTIVE_JOB_STATUSES,
    JOB_TRANSITIONS,
    Job,
    JobCreated,
    JobCreateRequest,
    JobStatus,
    LoginConfig,
    LoginType,
    TaskTodo,
)
from ..models.navigation import NavigationDecision
from ..models.tasks import Task, TaskStatus
from .keys import generate_access_key, generate_pin_code, new_job_key, new_secret
from .license_guard import LicenseFailure, LicenseGuard
from .locks import KeyedLocks
from .notifier import NotificationService
from .repository import Repository
from .sequencer import next_task
from .task_controller import TaskController, resolve_config

logger = logging.getLogger(__name__)

TERMINAL_PAGES = {
    JobStatus.DONE: "/done",
    JobStatus.REJECTED: "/rejected",
    JobStatus.CANCELED: "/canceled",
    JobStatus.EXPIRED: "/expired",
}

CANCEL_REFUSALS = {
    JobStatus.DONE: "Cancellation failed: the job is already done.",
    JobStatus.REJECTED: "Cancellation failed: the job is already rejected.",
    JobStatus.EXPIRED: "Cancellation failed: the job is already expired.",
    JobStatus.CANCELED: "Cancellation failed: the job is already canceled.",
}

# CONCURRENT licenses are admitted at creation and refused when a task starts
_CREATION_ALLOWED = {LicenseFailure.NOT_IMPLEMENTED}

MOBILE_CHANNELS = ("sms", "whatsapp")


def transition(job: Job, target: JobStatus) -> None:
    """Move ``job`` to ``target`` or raise ConflictError leaving it untouched."""
    if target not in JOB_TRANSITIONS[job.status]:
        raise ConflictError(
            f"Invalid job transition {job.status.value} -> {target.value}",
            hints="Please check the job status and try again later",
        )
    job.status = target


def terminal_decision(job: Job) -> Optional[NavigationDecision]:
    page = TERMINAL_PAGES.get(job.status)
    if page is None:
        return None
    return NavigationDecision.redirect(page)


class JobController:
    def __init__(
        self,
        repo: Repository,
        tasks: TaskController,
        licenses: LicenseGuard,
        notifications: NotificationService,
        launchpad_url: str,
        job_locks: Optional[KeyedLocks] = None,
        clock: Clock = utcnow,
        default_valid_minutes: int = 1440,
    ) -> None:
        self.repo = repo
        self.tasks = tasks
        self.licenses = licenses
        self.notifications = notifications
        self.launchpad_url = launchpad_url.rstrip("/")
        self.job_locks = job_locks or KeyedLocks()
        self.clock = clock
        self.default_valid_minutes = default_valid_minutes

    # ── Creation ──────────────────────────────────────────────────────────

    async def create_job(self, request: JobCreateRequest, workflow: Workflow, actor: str) -> Job:
        if request.workflow != workflow.id:
            raise ValidationError("Workflow mismatch", errors=f"{request.workflow} != {workflow.id}")
        await self._check_workflow(workflow)
        _check_contacts(request, workflow)

        login = LoginConfig(
            requires_login=workflow.requires_login,
            login_type=workflow.login_type if workflow.requires_login else LoginType.NONE,
            max_login_trials=workflow.max_login_trials,
            lock_timeout_minutes=workflow.lock_timeout_minutes,
            session_expiry_minutes=workflow.session_expiry_minutes,
        )
        valid_minutes = request.valid_until or self.default_valid_minutes
        job = Job(
            job_key=new_job_key(),
            secret=new_secret(),
            workflow_id=workflow.id,
            valid_until=self.clock() + timedelta(minutes=valid_minutes),
            tasks_todo=[
                TaskTodo(task_order=step.task_order, application_id=step.application_id)
                for step in workflow.tasks_todo
            ],
            login=login,
            login_code=generate_pin_code() if login.login_type == LoginType.PIN else None,
            customer=request.customer,
            language=request.language,
            external_ref_number=request.external_ref_number,
            metadata=request.metadata,
            input=request.input,
            created_by=actor,
            created_on=self.clock(),
        )
        created = await self.repo.create_job(job)
        await self.repo.add_audit_log(
            created.id, "Job Created", f"Job {created.id} Created by user {actor}", request.metadata
        )
        logger.info("Job %s created from workflow %s by %s", created.id, workflow.id, actor)
        return created

    async def announce(self, job: Job, workflow: Workflow, actor: str) -> JobCreated:
        """Build the customer access link and send the connect message."""
        access_url = f"{self.launchpad_url}/{job.job_key}/{generate_access_key(job.job_key, job.secret)}"
        job.notification_status = await self.notifications.send_connect(
            job, workflow, access_url, user_name=actor
        )
        await self.repo.save_job(job, "notification_status")
        return JobCreated(
            job_key=job.job_key,
            access_pin_code=job.login_code if job.login.login_type == LoginType.PIN else None,
            customer_access_url=access_url,
            notification_status=job.notification_status,
            login_code_notification_status=job.login_code_notification_status,
        )

    async def _check_workflow(self, workflow: Workflow) -> None:
        if not workflow.is_active:
            raise PreconditionError("Workflow is not active!", hints="Please contact your system administrator")
        if not workflow.tasks_todo:
            raise PreconditionError(
                "Workflow has no defined tasks!", hints="Please contact your system administrator"
            )
        if workflow.requires_login and workflow.login_type == LoginType.NONE:
            raise ValidationError("Workflow requires login but defines no login type")

        for step in workflow.tasks_todo:
            try:
                entitlement = await self.licenses.resolve(step.application_id)
            except NotFoundError:
                raise PreconditionError(
                    "Application does not exist!", hints="Please contact your system administrator"
                ) from None
            if not entitlement.check.ok and entitlement.check.reason not in _CREATION_ALLOWED:
                raise PreconditionError(
                    entitlement.check.message, hints="Please contact your system administrator"
                )

    # ── Advancing ─────────────────────────────────────────────────────────

    async def start_job(self, job: Job, metadata: Optional[str] = None) -> NavigationDecision:
        """Advance the job one step and say where the customer goes next."""
        async with self.job_locks.hold(job.id):
            job = await self.repo.get_job(job.id)
            decision = terminal_decision(job)
            if decision is not None:
                return decision

            previous: Optional[Task] = None
            if job.current_task_id:
                previous = await self.repo.get_task(job.current_task_id)
                if previous.status in (TaskStatus.NEW, TaskStatus.STARTED):
                    logger.info("Job %s resumes task %s", job.id, previous.id)
                    return await self._task_entry(previous)
                if previous.status == TaskStatus.REJECTED:
                    await self._reject(job, previous, previous.rejection_reason, metadata)
                    return NavigationDecision.redirect("/rejected")

            if job.status == JobStatus.NEW:
                transition(job, JobStatus.STARTED)
                job.started_on = self.clock()
                await self.repo.save_job(job, "status", "started_on")
                await self.repo.add_audit_log(job.id, "Job Started", "Job Started for first time", metadata)

            slot = next_task(job.tasks_todo, job.current_task_order)
            if slot is None:
                return await self._finish(job, previous, metadata)

            entitlement = await self.licenses.resolve(slot.application_id)
            if not entitlement.check.ok:
                logger.warning(
                    "Job %s blocked at task order %d: %s",
                    job.id,
                    slot.task_order,
                    entitlement.check.message,
                )
                await self.repo.add_audit_log(job.id, "Job Error", entitlement.check.message, metadata)
                return NavigationDecision.error("insufficientLicense")

            task_input = job.input if previous is None else previous.output
            task = await self.tasks.create(
                job.id,
                slot.application_id,
                task_input,
                resolve_config(entitlement.application, entitlement.powerlink),
            )

            job.current_task_id = task.id
            job.current_task_order = max(job.current_task_order, slot.task_order)
            job.tasks_todo = [
                todo.model_copy(update={"task_id": task.id}) if todo.task_order == slot.task_order else todo
                for todo in job.tasks_todo
            ]
            await self.repo.save_job(job, "current_task_id", "current_task_order", "tasks_todo")
            await self.repo.add_audit_log(job.id, "Task Created", f"Task ID {task.id} Created", metadata)

            url = entitlement.powerlink.customer_access_url if entitlement.powerlink else None
            if not url:
                return NavigationDecision.error("invalidPowerLinkURL")
            return NavigationDecision.redirect(f"{url.rstrip('/')}/{task.task_key}")

    async def _finish(self, job: Job, last: Optional[Task], metadata: Optional[str]) -> NavigationDecision:
        job.output = list(last.output) if last is not None else []
        transition(job, JobStatus.DONE)
        job.completed_on = self.clock()
        await self.repo.save_job(job, "status", "completed_on", "output")
        await self.repo.add_audit_log(job.id, "Job Done", "Job tasks completed, No more tasks.", metadata)
        logger.info("Job %s done", job.id)
        return NavigationDecision.done()

    async def _task_entry(self, task: Task) -> NavigationDecision:
        application = await self.repo.get_application(task.application_id)
        powerlink = await self.repo.find_powerlink_for(application)
        if powerlink is None or not powerlink.customer_access_url:
            return NavigationDecision.error("invalidPowerLinkURL")
        return NavigationDecision.redirect(f"{powerlink.customer_access_url.rstrip('/')}/{task.task_key}")

    # ── Terminal transitions ──────────────────────────────────────────────

    async def cancel_job(self, job: Job, actor: str, metadata: Optional[str] = None) -> Job:
        async with self.job_locks.hold(job.id):
            job = await self.repo.get_job(job.id)
            refusal = CANCEL_REFUSALS.get(job.status)
            if refusal is not None:
                raise ConflictError(refusal, hints="Only NEW or STARTED jobs can be canceled")
            transition(job, JobStatus.CANCELED)
            job.canceled_on = self.clock()
            await self.repo.save_job(job, "status", "canceled_on")
            await self.repo.add_audit_log(job.id, "Job Cancelled", f"Job Canceled by User {actor}", metadata)
            logger.info("Job %s canceled by %s", job.id, actor)
            return job

    async def check_expiry(self, job: Job) -> bool:
        """Expire an active job past its validity. True when the job is (now) expired."""
        if job.status == JobStatus.EXPIRED:
            return True
        if job.status not in ACTIVE_JOB_STATUSES or self.clock() <= as_utc(job.valid_until):
            return False

        async with self.job_locks.hold(job.id):
            fresh = await self.repo.get_job(job.id)
            if fresh.status not in ACTIVE_JOB_STATUSES:
                job.status = fresh.status
                return fresh.status == JobStatus.EXPIRED
            transition(fresh, JobStatus.EXPIRED)
            await self.repo.save_job(fresh, "status")
            await self.repo.add_audit_log(fresh.id, "Job Expired", "Job validity period passed")
            job.status = fresh.status
            logger.info("Job %s expired", job.id)
            return True

    async def handle_task_rejection(self, job: Job, task: Task, reason: Optional[str]) -> Job:
        async with self.job_locks.hold(job.id):
            fresh = await self.repo.get_job(job.id)
            if fresh.status not in ACTIVE_JOB_STATUSES:
                logger.info("Job %s already %s, task %s rejection not cascaded", fresh.id, fresh.status.value, task.id)
                return fresh
            await self._reject(fresh, task, reason)
            return fresh

    async def on_task_rejected(self, task: Task, reason: Optional[str]) -> None:
        """Rejection listener wired into the TaskController."""
        job = await self.repo.get_job(task.job_id)
        await self.handle_task_rejection(job, task, reason)

    async def _reject(self, job: Job, task: Task, reason: Optional[str], metadata: Optional[str] = None) -> None:
        transition(job, JobStatus.REJECTED)
        job.rejected_on = self.clock()
        await self.repo.save_job(job, "status", "rejected_on")
        description = f"Job rejected due to Task {task.id}"
        if reason:
            description += f" With reason: {reason}"
        await self.repo.add_audit_log(job.id, "Job Rejected", description, metadata)
        logger.info("Job %s rejected by task %s", job.id, task.id)


def _check_contacts(request: JobCreateRequest, workflow: Workflow) -> None:
    """Refuse a job whose customer cannot be reached on an enabled channel."""
    customer = request.customer
    enabled = {
        channel
        for templates in (workflow.notifications, workflow.login_code_notifications)
        for channel, template in templates.items()
        if template.enabled
    }
    if "email" in enabled and not (customer and customer.email):
        raise NotAcceptableError(
            "Insufficient customer information for email notifications",
            hints="Please ensure your email address is provided for the selected notification methods",
        )
    if enabled.intersection(MOBILE_CHANNELS) and not (customer and customer.mobile):
        raise NotAcceptableError(
            "Insufficient customer information for mobile notifications",
            hints="Please ensure your mobile number is provided for the selected notification methods",
        )
