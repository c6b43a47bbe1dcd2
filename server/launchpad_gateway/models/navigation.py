"""Navigation decisions returned by the guards and controllers.

Controllers never write responses. They hand one of these back and the HTTP
boundary turns it into a redirect.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel


class NavigationKind(str, Enum):
    REDIRECT = "redirect"
    DONE = "done"
    ERROR = "error"


class NavigationDecision(BaseModel):
    kind: NavigationKind
    target: Optional[str] = None
    detail: Optional[str] = None
    clear_session: bool = False

    @classmethod
    def redirect(cls, target: str, *, clear_session: bool = False) -> NavigationDecision:
        return cls(kind=NavigationKind.REDIRECT, target=target, clear_session=clear_session)

    @classmethod
    def done(cls) -> NavigationDecision:
        return cls(kind=NavigationKind.DONE, target="/done")

    @classmethod
    def error(cls, detail: str) -> NavigationDecision:
        return cls(kind=NavigationKind.ERROR, target=f"/error?status={detail}", detail=detail)

    @property
    def location(self) -> str:
        return self.target or "/"
