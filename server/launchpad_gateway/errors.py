"""Error taxonomy shared by the guards, controllers and HTTP boundary."""

from __future__ import annotations

from typing import Any


class GatewayError(Exception):
    """Base error carrying an HTTP status and a client-facing hint."""

    status_code = 500

    def __init__(self, message: str, *, errors: Any = None, hints: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.errors = errors
        self.hints = hints

    def to_dict(self) -> dict:
        return {"message": self.message, "errors": self.errors, "hints": self.hints}


class ValidationError(GatewayError):
    status_code = 400


class PreconditionError(GatewayError):
    status_code = 400


class ForbiddenError(GatewayError):
    status_code = 403


class NotFoundError(GatewayError):
    status_code = 404


class ConflictError(GatewayError):
    status_code = 409


class LockedError(GatewayError):
    """Login attempts are locked until the lockout window elapses."""

    status_code = 423

    def __init__(self, remaining_ms: int, message: str = "Login locked") -> None:
        super().__init__(message, hints="Please wait before trying again")
        self.remaining_ms = remaining_ms


class NotAcceptableError(GatewayError):
    status_code = 406


class FeatureNotImplementedError(GatewayError):
    status_code = 501


class InternalError(GatewayError):
    status_code = 500
    retryable = False


class StoreTimeoutError(InternalError):
    """A collaborator call exceeded its timeout; the side effect may have landed."""

    status_code = 504
    retryable = True
