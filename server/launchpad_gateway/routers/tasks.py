"""Task endpoints called by the powerlink pages."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response

from ..app_state import GatewayState
from ..deps import get_state
from ..models.common import DataItem, MetadataBody
from ..models.jobs import Job
from ..models.navigation import NavigationDecision
from ..models.tasks import RejectTaskRequest, SubmitTaskRequest, Task, TaskPayload
from ..services.job_controller import terminal_decision
from .navigation import redirect_to

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/tasks", tags=["tasks"])


async def _gate(state: GatewayState, request: Request, task_key: str) -> tuple[Task, Job, Optional[Response]]:
    """Load the task and its job, and decide whether the caller may act on it."""
    task = await state.repo.find_task(task_key)
    job = await state.repo.get_job(task.job_id)
    application = await state.repo.get_application(task.application_id)
    powerlink = await state.repo.find_powerlink_for(application)

    decision = state.sessions.authorize_task_call(
        job,
        powerlink,
        token=request.cookies.get(job.job_key),
        referer=request.headers.get("referer"),
    )
    if decision is None and await state.jobs.check_expiry(job):
        decision = NavigationDecision.redirect("/expired", clear_session=True)
    if decision is None:
        decision = terminal_decision(job)
        if decision is not None:
            decision.clear_session = True

    if decision is not None:
        return task, job, redirect_to(decision, job)
    return task, job, None


@router.post("/{task_key}/start", response_model=None)
async def start_task(
    task_key: str,
    request: Request,
    body: Optional[MetadataBody] = None,
    state: GatewayState = Depends(get_state),
) -> TaskPayload | Response:
    """Start the task and hand its config and input to the powerlink."""
    task, job, denied = await _gate(state, request, task_key)
    if denied is not None:
        return denied
    return await state.tasks.start(task, body.metadata if body else None)


@router.post("/{task_key}/submit")
async def submit_task(
    task_key: str,
    request: Request,
    body: Optional[SubmitTaskRequest] = None,
    state: GatewayState = Depends(get_state),
) -> Response:
    """Store the task output and send the customer back to the launchpad."""
    task, job, denied = await _gate(state, request, task_key)
    if denied is not None:
        return denied
    body = body or SubmitTaskRequest()
    output = [DataItem(**item.model_dump(mode="json")) for item in body.output]
    await state.tasks.submit(task, output, body.metadata)
    return redirect_to(NavigationDecision.redirect(state.launchpad_url), job)


@router.post("/{task_key}/reject")
async def reject_task(
    task_key: str,
    request: Request,
    body: Optional[RejectTaskRequest] = None,
    state: GatewayState = Depends(get_state),
) -> Response:
    """Reject the task (and with it the job) and send the customer back to the launchpad."""
    task, job, denied = await _gate(state, request, task_key)
    if denied is not None:
        return denied
    body = body or RejectTaskRequest()
    await state.tasks.reject(task, body.reason, body.metadata)
    return redirect_to(NavigationDecision.redirect(state.launchpad_url), job)
