"""Error taxonomy for authentication, sessions, and RBAC.

Learn: Every failure the core can produce is a WardenError subclass that
carries its own HTTP status and a stable machine-readable code. Services
raise them; the API layer maps them to JSON in one place
(register_exception_handlers) instead of each route building responses.

"Not found" on a lookup is NOT an error here; lookups return None and
the caller decides what absence means.
"""

import asyncio
from typing import Any, Awaitable, Optional, TypeVar

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, OperationalError

logger = structlog.get_logger()

T = TypeVar("T")

GENERIC_CREDENTIALS_MESSAGE = "Incorrect email or password"


class WardenError(Exception):
    """Base class for all domain errors."""

    status_code: int = 400
    code: str = "error"

    def __init__(self, message: str, detail: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail or {}


# ─── Credentials ────────────────────────────────────────


class InvalidCredentials(WardenError):
    """Wrong email or password. The message never says which."""

    status_code = 401
    code = "invalid_credentials"

    def __init__(
        self,
        message: str = GENERIC_CREDENTIALS_MESSAGE,
        remaining_attempts: Optional[int] = None,
    ):
        detail = {}
        if remaining_attempts is not None:
            detail["remainingAttempts"] = remaining_attempts
        super().__init__(message, detail)
        self.remaining_attempts = remaining_attempts


class AccountLocked(WardenError):
    status_code = 401
    code = "account_locked"

    def __init__(self, minutes_remaining: int, message: Optional[str] = None):
        super().__init__(
            message or f"Account is locked. Try again in {minutes_remaining} minutes.",
            {"minutesRemaining": minutes_remaining},
        )
        self.minutes_remaining = minutes_remaining


# ─── Sessions ───────────────────────────────────────────


class SessionConflict(WardenError):
    status_code = 403
    code = "session_conflict"

    def __init__(self, can_force_login: bool = True):
        super().__init__(
            "This account is already logged in on another device",
            {"canForceLogin": can_force_login},
        )
        self.can_force_login = can_force_login


class Unauthenticated(WardenError):
    status_code = 401
    code = "unauthenticated"

    def __init__(self, message: str = "You are not logged in. Please log in to get access."):
        super().__init__(message)


class SessionExpired(WardenError):
    status_code = 401
    code = "session_expired"

    def __init__(self, message: str = "Your session has expired. Please log in again."):
        super().__init__(message)


# ─── Authorization ──────────────────────────────────────


class PermissionDenied(WardenError):
    status_code = 403
    code = "permission_denied"

    def __init__(self, message: str = "You do not have permission to perform this action."):
        super().__init__(message)


class InvariantViolation(WardenError):
    """A mutation would break an RBAC invariant. The reason is shown as-is."""

    status_code = 403
    code = "invariant_violation"

    def __init__(self, reason: str):
        super().__init__(reason, {"reason": reason})
        self.reason = reason


# ─── CRUD surface ───────────────────────────────────────


class NotFound(WardenError):
    status_code = 404
    code = "not_found"


class Conflict(WardenError):
    """Unique constraint would be violated (email, role name, permission code)."""

    status_code = 400
    code = "conflict"


# ─── Infrastructure ─────────────────────────────────────


class InfrastructureError(WardenError):
    """Store or registry unreachable. Never an authentication denial."""

    status_code = 503
    code = "infrastructure_error"

    def __init__(self, message: str, retryable: bool = True):
        super().__init__(message, {"retryable": retryable})
        self.retryable = retryable


async def bounded(awaitable: Awaitable[T], timeout: float, what: str) -> T:
    """Await with a deadline; a timeout becomes a retryable InfrastructureError."""
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError as e:
        logger.error("infra.timeout", operation=what, timeout=timeout)
        raise InfrastructureError(f"{what} timed out", retryable=True) from e


async def commit_or_conflict(db, timeout: float, what: str, conflict_message: str) -> None:
    """Commit; a unique-constraint violation becomes Conflict(conflict_message).

    Learn: Services check uniqueness before writing so the common case
    gets a precise message, but two concurrent requests can both pass
    that check. The store's unique constraint is what actually holds, so
    the loser of the race lands here instead of surfacing a 500.
    """
    try:
        await bounded(db.commit(), timeout, what)
    except IntegrityError as e:
        await db.rollback()
        logger.info("store.unique_violation", operation=what)
        raise Conflict(conflict_message) from e


# ─── HTTP mapping ───────────────────────────────────────


def register_exception_handlers(app: FastAPI) -> None:
    """Map domain errors to JSON responses."""

    @app.exception_handler(WardenError)
    async def handle_warden_error(request: Request, exc: WardenError):
        log_fn = logger.error if exc.status_code >= 500 else logger.warning
        log_fn(
            "request.failed",
            path=request.url.path,
            method=request.method,
            status_code=exc.status_code,
            code=exc.code,
            message=exc.message,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "status": "error" if exc.status_code >= 500 else "fail",
                "code": exc.code,
                "message": exc.message,
                **exc.detail,
            },
        )

    @app.exception_handler(OperationalError)
    async def handle_store_unreachable(request: Request, exc: OperationalError):
        logger.error(
            "store.unreachable",
            path=request.url.path,
            method=request.method,
            error=str(exc.orig),
        )
        return JSONResponse(
            status_code=503,
            content={
                "status": "error",
                "code": InfrastructureError.code,
                "message": "Storage is temporarily unavailable",
                "retryable": True,
            },
        )
