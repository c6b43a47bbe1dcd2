"""Per-job sessions, access keys and the PIN/OTP login challenge.

Flow for a protected job action:

1. The caller must come from the launchpad portal (Referer check).
2. A session cookie signed with the job secret is honoured if it names this
   job and has not expired. An access key, when supplied, must match the job.
   Without a usable session the access key is mandatory.
3. If the job requires login and the session is not logged in, the login
   challenge runs. Failed attempts count towards a per-job lockout.

Failures come back as NavigationDecision redirects; nothing here advances the
job or its tasks.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional
from urllib.parse import urlencode, urlsplit

import jwt
from pydantic import BaseModel

from ..errors import ForbiddenError, LockedError, NotFoundError, ValidationError
from ..models.catalog import Powerlink
from ..models.common import Clock, as_utc, utcnow
from ..models.jobs import Job, LoginType
from ..models.navigation import NavigationDecision
from .keys import generate_pin_code, verify_access_key
from .locks import KeyedLocks
from .notifier import NotificationService
from .repository import Repository

logger = logging.getLogger(__name__)

TOKEN_ALGORITHM = "HS256"


class SessionClaims(BaseModel):
    job_key: str
    logged_in: bool
    login_type: LoginType


@dataclass
class GuardOutcome:
    """Either a fresh session token to set (may be None: keep the current one) or a redirect."""

    session_token: Optional[str] = None
    decision: Optional[NavigationDecision] = None

    @property
    def proceed(self) -> bool:
        return self.decision is None


def login_redirect(login_type: LoginType, error: str) -> NavigationDecision:
    query = urlencode({"type": login_type.value, "error": error})
    return NavigationDecision.redirect(f"/login?{query}", clear_session=True)


class SessionGuard:
    def __init__(
        self,
        repo: Repository,
        notifications: NotificationService,
        launchpad_url: str,
        job_locks: Optional[KeyedLocks] = None,
        clock: Clock = utcnow,
    ) -> None:
        self.repo = repo
        self.notifications = notifications
        self.launchpad_url = launchpad_url.rstrip("/")
        self.job_locks = job_locks or KeyedLocks()
        self.clock = clock

    # ── Origin ────────────────────────────────────────────────────────────

    @staticmethod
    def validate_origin(referer: Optional[str], allowed_url: Optional[str]) -> bool:
        """Same scheme, host and port as ``allowed_url``, under its path on a segment boundary."""
        if not referer or not allowed_url:
            return False
        try:
            source = urlsplit(referer)
            allowed = urlsplit(allowed_url)
            source_port, allowed_port = source.port, allowed.port
        except ValueError:
            return False
        if source.username is not None or source.password is not None:
            return False
        if (
            source.scheme.lower() != allowed.scheme.lower()
            or source.hostname is None
            or source.hostname != allowed.hostname
            or source_port != allowed_port
        ):
            return False
        prefix = allowed.path.rstrip("/")
        return source.path == prefix or source.path.startswith(prefix + "/")

    # ── Tokens ────────────────────────────────────────────────────────────

    def mint_token(self, job: Job, *, logged_in: bool = True) -> str:
        now = self.clock()
        payload = {
            "job_key": job.job_key,
            "logged_in": logged_in,
            "login_type": job.login.login_type.value,
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(minutes=job.login.session_expiry_minutes)).timestamp()),
        }
        return jwt.encode(payload, job.secret, algorithm=TOKEN_ALGORITHM)

    def verify_token(self, job: Job, token: Optional[str]) -> Optional[SessionClaims]:
        """Decode a session token for ``job``. Any defect means no session, never an exception."""
        if not token:
            return None
        try:
            # Expiry is checked against the injected clock below
            payload = jwt.decode(
                token,
                job.secret,
                algorithms=[TOKEN_ALGORITHM],
                options={"verify_exp": False, "verify_iat": False, "require": ["exp"]},
            )
        except jwt.PyJWTError as exc:
            logger.info("Session token rejected for job %s: %s", job.job_key, exc)
            return None

        if payload["exp"] <= self.clock().timestamp():
            logger.info("Session token expired for job %s", job.job_key)
            return None
        if payload.get("job_key") != job.job_key:
            logger.info("Session token belongs to another job")
            return None
        try:
            return SessionClaims.model_validate(payload)
        except ValueError:
            return None

    @staticmethod
    def session_max_age(job: Job) -> int:
        """Cookie lifetime in seconds."""
        return job.login.session_expiry_minutes * 60

    # ── Entry ─────────────────────────────────────────────────────────────

    def authenticate_entry(
        self,
        job: Job,
        *,
        access_key: Optional[str],
        token: Optional[str],
        referer: Optional[str],
    ) -> Optional[SessionClaims]:
        """Origin, session and access-key checks for a job URL.

        Returns the current session claims, or None when the caller entered
        with a valid access key but has no session yet.
        """
        if not self.validate_origin(referer, self.launchpad_url):
            logger.warning("Rejected job %s call from %s", job.job_key, referer)
            raise ForbiddenError(
                "Invalid calling source URL.", hints="Please contact your system administrator"
            )

        claims = self.verify_token(job, token)

        if access_key is not None:
            if not verify_access_key(job.job_key, access_key, job.secret):
                logger.error("Access key is not correct for job %s", job.job_key)
                raise ForbiddenError(
                    "Invalid access key.", hints="Please contact your system administrator"
                )
        elif claims is None:
            raise ForbiddenError(
                "No valid session and no access key provided.",
                hints="Open the job with its access link",
            )
        return claims

    def authorize_task_call(
        self, job: Job, powerlink: Optional[Powerlink], *, token: Optional[str], referer: Optional[str]
    ) -> Optional[NavigationDecision]:
        """Task calls come from the powerlink page and need a logged-in job session."""
        access_url = powerlink.customer_access_url if powerlink else None
        if not self.validate_origin(referer, access_url):
            raise ForbiddenError(
                "Invalid calling source URL", hints="Please contact your system administrator"
            )
        claims = self.verify_token(job, token)
        if claims is None or not claims.logged_in:
            logger.info("No logged-in session for job %s, back to launchpad", job.job_key)
            return NavigationDecision.redirect(self.launchpad_url, clear_session=True)
        return None

    # ── Login ─────────────────────────────────────────────────────────────

    async def login(
        self, job: Job, claims: Optional[SessionClaims], input_code: Optional[str]
    ) -> GuardOutcome:
        if not job.login.requires_login:
            return GuardOutcome(session_token=self.mint_token(job))

        if claims is not None and claims.logged_in:
            return GuardOutcome()

        async with self.job_locks.hold(job.id):
            fresh = await self.repo.get_job(job.id)
            return await self._challenge(fresh, input_code)

    async def _challenge(self, job: Job, input_code: Optional[str]) -> GuardOutcome:
        login_type = job.login.login_type
        try:
            reopened = await self._enforce_lockout(job)
        except LockedError as exc:
            logger.info("Job %s login locked for %d ms", job.job_key, exc.remaining_ms)
            return GuardOutcome(
                decision=NavigationDecision.redirect(f"/loginLocked?till={exc.remaining_ms}", clear_session=True)
            )
        if reopened is not None:
            return GuardOutcome(decision=reopened)

        if login_type == LoginType.PIN:
            if not input_code:
                return GuardOutcome(decision=login_redirect(login_type, "Please Enter PIN"))
            if input_code == job.login_code:
                return await self._succeed(job)
            return await self._fail(job, "Invalid PIN")

        if login_type == LoginType.OTP:
            if not job.login_code:
                await self._issue_otp(job)
                return GuardOutcome(decision=login_redirect(login_type, "Please Enter OTP"))
            if not input_code:
                return GuardOutcome(decision=login_redirect(login_type, "Please Enter OTP"))
            if input_code == job.login_code:
                return await self._succeed(job)
            return await self._fail(job, "Invalid OTP")

        if login_type == LoginType.GOOGLE:
            return GuardOutcome(decision=login_redirect(login_type, "Google login is not available"))

        raise ValidationError("Invalid login type", hints=f"Unsupported login type {login_type.value}")

    async def _enforce_lockout(self, job: Job) -> Optional[NavigationDecision]:
        """Raise LockedError inside the window; reset counters once it has elapsed."""
        if job.failed_login_trials < job.login.max_login_trials:
            return None

        now = self.clock()
        if job.last_failed_login is not None:
            lockout_end = as_utc(job.last_failed_login) + timedelta(minutes=job.login.lock_timeout_minutes)
            if now < lockout_end:
                raise LockedError(int((lockout_end - now).total_seconds() * 1000))

        logger.info("Lockout elapsed for job %s, resetting trials", job.job_key)
        job.failed_login_trials = 0
        job.last_failed_login = None
        await self.repo.save_job(job, "failed_login_trials", "last_failed_login")

        if job.login.login_type == LoginType.OTP:
            await self._issue_otp(job)
            return login_redirect(LoginType.OTP, "Please Enter OTP")
        return None

    async def _issue_otp(self, job: Job) -> None:
        job.login_code = generate_pin_code()
        job.failed_login_trials = 0
        await self.repo.save_job(job, "login_code", "failed_login_trials")

        workflow = None
        if job.workflow_id:
            try:
                workflow = await self.repo.get_workflow(job.workflow_id)
            except NotFoundError:
                logger.warning("Workflow %s missing for job %s; using default OTP template", job.workflow_id, job.id)
        job.login_code_notification_status = await self.notifications.send_login_code(job, workflow)
        await self.repo.save_job(job, "login_code_notification_status")
        logger.info("OTP issued for job %s", job.job_key)

    async def _succeed(self, job: Job) -> GuardOutcome:
        job.failed_login_trials = 0
        job.last_successful_login = self.clock()
        await self.repo.save_job(job, "failed_login_trials", "last_successful_login")
        logger.info("Login succeeded for job %s", job.job_key)
        return GuardOutcome(session_token=self.mint_token(job))

    async def _fail(self, job: Job, error: str) -> GuardOutcome:
        job.failed_login_trials += 1
        job.last_failed_login = self.clock()
        await self.repo.save_job(job, "failed_login_trials", "last_failed_login")
        logger.info(
            "Failed login for job %s (%d/%d)",
            job.job_key,
            job.failed_login_trials,
            job.login.max_login_trials,
        )
        return GuardOutcome(decision=login_redirect(job.login.login_type, error))
