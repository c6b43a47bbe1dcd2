"""Turn NavigationDecision values into HTTP redirects and session cookies."""

from __future__ import annotations

from typing import Optional

from fastapi.responses import RedirectResponse

from ..models.jobs import Job
from ..models.navigation import NavigationDecision
from ..services.session_guard import SessionGuard


def redirect_to(
    decision: NavigationDecision,
    job: Job,
    session_token: Optional[str] = None,
) -> RedirectResponse:
    response = RedirectResponse(decision.location, status_code=302)
    if decision.clear_session:
        response.delete_cookie(job.job_key)
    elif session_token:
        response.set_cookie(
            job.job_key,
            session_token,
            max_age=SessionGuard.session_max_age(job),
            httponly=True,
        )
    return response
