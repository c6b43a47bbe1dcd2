"""License and quota checks for the application behind a task."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from pydantic import BaseModel

from ..errors import NotFoundError
from ..models.catalog import Application, License, Powerlink, PricingModel
from ..models.common import Clock, as_utc, utcnow
from .locks import KeyedLocks
from .repository import Repository

logger = logging.getLogger(__name__)


class LicenseFailure(str, Enum):
    MISSING = "missing"
    EXPIRED = "expired"
    QUOTA_EXHAUSTED = "quota_exhausted"
    NOT_IMPLEMENTED = "not_implemented"
    APPLICATION_INACTIVE = "application_inactive"
    POWERLINK_MISSING = "powerlink_missing"
    POWERLINK_INACTIVE = "powerlink_inactive"


_MESSAGES = {
    LicenseFailure.MISSING: "No License found for the requested powerLink!",
    LicenseFailure.EXPIRED: "License expired for the requested powerLink!",
    LicenseFailure.QUOTA_EXHAUSTED: "No enough quota license for the requested powerLink!",
    LicenseFailure.NOT_IMPLEMENTED: "CONCURRENT pricing model is not implemented",
    LicenseFailure.APPLICATION_INACTIVE: "Application is not active!",
    LicenseFailure.POWERLINK_MISSING: "powerLink does not exist!",
    LicenseFailure.POWERLINK_INACTIVE: "powerLink is not active!",
}


class LicenseCheck(BaseModel):
    ok: bool
    reason: Optional[LicenseFailure] = None

    @property
    def message(self) -> str:
        return _MESSAGES[self.reason] if self.reason else "ok"

    @classmethod
    def passed(cls) -> LicenseCheck:
        return cls(ok=True)

    @classmethod
    def failed(cls, reason: LicenseFailure) -> LicenseCheck:
        return cls(ok=False, reason=reason)


@dataclass
class Entitlement:
    """An application resolved down to its powerlink and license, with the check result."""

    application: Application
    powerlink: Optional[Powerlink]
    license: Optional[License]
    check: LicenseCheck


class LicenseGuard:
    """Checks licenses and consumes quota units one at a time per license."""

    def __init__(self, repo: Repository, clock: Clock = utcnow) -> None:
        self.repo = repo
        self.clock = clock
        self._locks = KeyedLocks()

    def check(self, license: Optional[License]) -> LicenseCheck:
        if license is None or license.expires_at is None:
            return LicenseCheck.failed(LicenseFailure.MISSING)
        if self.clock() > as_utc(license.expires_at):
            return LicenseCheck.failed(LicenseFailure.EXPIRED)
        if license.pricing_model == PricingModel.CONCURRENT:
            return LicenseCheck.failed(LicenseFailure.NOT_IMPLEMENTED)
        if license.used >= license.limit:
            return LicenseCheck.failed(LicenseFailure.QUOTA_EXHAUSTED)
        return LicenseCheck.passed()

    async def resolve(self, application_id: str) -> Entitlement:
        """Load the application chain and check it without consuming anything."""
        application = await self.repo.get_application(application_id)
        if not application.is_active:
            return Entitlement(application, None, None, LicenseCheck.failed(LicenseFailure.APPLICATION_INACTIVE))

        powerlink = await self.repo.find_powerlink_for(application)
        if powerlink is None:
            return Entitlement(application, None, None, LicenseCheck.failed(LicenseFailure.POWERLINK_MISSING))
        if not powerlink.is_active:
            return Entitlement(application, powerlink, None, LicenseCheck.failed(LicenseFailure.POWERLINK_INACTIVE))

        license = await self._load(powerlink.license_id)
        return Entitlement(application, powerlink, license, self.check(license))

    async def consume(self, license_id: Optional[str]) -> LicenseCheck:
        """Re-check and take one unit. Read, check and increment form one critical section."""
        if not license_id:
            return LicenseCheck.failed(LicenseFailure.MISSING)

        async with self._locks.hold(license_id):
            license = await self._load(license_id)
            result = self.check(license)
            if not result.ok:
                logger.info("License %s not consumed: %s", license_id, result.reason.value)
                return result

            license.used += 1
            await self.repo.save_license(license)
            logger.info("License %s consumed (%d/%d)", license_id, license.used, license.limit)
            return result

    async def release(self, license_id: str) -> None:
        """Give back one unit taken by consume() whose follow-up write failed."""
        async with self._locks.hold(license_id):
            license = await self._load(license_id)
            if license is None or license.used <= 0:
                return
            license.used -= 1
            await self.repo.save_license(license)
            logger.warning("License %s unit released (%d/%d)", license_id, license.used, license.limit)

    async def _load(self, license_id: Optional[str]) -> Optional[License]:
        if not license_id:
            return None
        try:
            return await self.repo.get_license(license_id)
        except NotFoundError:
            return None
