"""Job endpoints: back-office create/cancel and the customer start flow."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response

from ..app_state import GatewayState
from ..auth import require_auth
from ..deps import get_state
from ..errors import ConflictError
from ..models.common import MetadataBody
from ..models.jobs import JobCreateRequest, LoginBody
from ..models.navigation import NavigationDecision
from ..services.job_controller import terminal_decision
from .navigation import redirect_to

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/jobs", tags=["jobs"])


@router.post("", status_code=201)
async def create_job(
    body: JobCreateRequest,
    actor: str = Depends(require_auth),
    state: GatewayState = Depends(get_state),
) -> JSONResponse:
    """Create a job from a workflow and notify the customer."""
    workflow = await state.repo.get_workflow(body.workflow)
    job = await state.jobs.create_job(body, workflow, actor)
    created = await state.jobs.announce(job, workflow, actor)
    return JSONResponse(
        status_code=201,
        content={"message": "Job created successfully", "response": created.model_dump(by_alias=True)},
    )


@router.post("/{job_id}/cancel")
async def cancel_job(
    job_id: str,
    body: Optional[MetadataBody] = None,
    actor: str = Depends(require_auth),
    state: GatewayState = Depends(get_state),
) -> JSONResponse:
    """Cancel a NEW or STARTED job."""
    job = await state.repo.get_job(job_id)
    try:
        await state.jobs.cancel_job(job, actor, body.metadata if body else None)
    except ConflictError as exc:
        return JSONResponse(status_code=400, content={"message": exc.message})
    return JSONResponse(status_code=200, content={"message": "Job cancelled successfully"})


@router.post("/{job_key}/start")
async def resume_job(
    job_key: str,
    request: Request,
    body: Optional[LoginBody] = None,
    state: GatewayState = Depends(get_state),
) -> Response:
    """Continue a job with the session cookie only."""
    return await _start(state, request, job_key, None, body)


@router.post("/{job_key}/{access_key}/start")
async def enter_job(
    job_key: str,
    access_key: str,
    request: Request,
    body: Optional[LoginBody] = None,
    state: GatewayState = Depends(get_state),
) -> Response:
    """First entry into a job through its access link."""
    return await _start(state, request, job_key, access_key, body)


async def _start(
    state: GatewayState,
    request: Request,
    job_key: str,
    access_key: Optional[str],
    body: Optional[LoginBody],
) -> Response:
    body = body or LoginBody()
    job = await state.repo.find_job(job_key)
    token = request.cookies.get(job_key)

    claims = state.sessions.authenticate_entry(
        job, access_key=access_key, token=token, referer=request.headers.get("referer")
    )

    decision = terminal_decision(job)
    if decision is not None:
        logger.info("Job %s is %s, redirecting to %s", job.id, job.status.value, decision.target)
        return redirect_to(decision, job)

    if await state.jobs.check_expiry(job):
        return redirect_to(NavigationDecision.redirect("/expired", clear_session=True), job)

    outcome = await state.sessions.login(job, claims, body.input_login_code)
    if not outcome.proceed:
        return redirect_to(outcome.decision, job)

    decision = await state.jobs.start_job(job, body.metadata)
    logger.info("Job %s navigates to %s", job.id, decision.location)
    # Re-set the cookie so its max-age slides with activity
    return redirect_to(decision, job, session_token=outcome.session_token or token)
