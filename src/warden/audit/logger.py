"""Activity logger: fire-and-forget audit trail.

Learn: Every security-relevant action (login, force login, logout,
admin/role/permission changes) is appended to activity_logs. The audit
write uses its own short-lived session, separate from the request's
session, and any failure is logged and swallowed: losing an audit entry
must never fail or roll back the operation being audited.
"""

import uuid
from dataclasses import dataclass
from typing import Any, Optional

import structlog
from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from warden.auth.jwt import PrincipalKind
from warden.db.models import ActivityLog
from warden.errors import bounded

logger = structlog.get_logger()


@dataclass(frozen=True)
class ClientInfo:
    """Origin metadata copied onto sessions and audit entries."""

    ip: Optional[str] = None
    user_agent: Optional[str] = None

    @classmethod
    def from_request(cls, request: Request) -> "ClientInfo":
        return cls(
            ip=request.client.host if request.client else None,
            user_agent=request.headers.get("user-agent"),
        )


def _as_uuid(value: Any) -> Optional[uuid.UUID]:
    if value is None:
        return None
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


class ActivityLogger:
    """Appends ActivityLog rows; never raises."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        timeout: float = 5.0,
    ):
        self.session_factory = session_factory
        self.timeout = timeout

    async def log(
        self,
        *,
        action: str,
        entity_type: str,
        description: str,
        actor_id: Any = None,
        actor_kind: PrincipalKind = PrincipalKind.ADMIN,
        entity_id: Any = None,
        previous_values: Optional[dict] = None,
        new_values: Optional[dict] = None,
        module: Optional[str] = None,
        client: Optional[ClientInfo] = None,
    ) -> Optional[ActivityLog]:
        actor = _as_uuid(actor_id)
        entry = ActivityLog(
            user_id=actor if actor_kind == PrincipalKind.USER else None,
            admin_id=actor if actor_kind == PrincipalKind.ADMIN else None,
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id) if entity_id is not None else None,
            description=description,
            previous_values=previous_values,
            new_values=new_values,
            ip_address=client.ip if client else None,
            user_agent=client.user_agent if client else None,
            module=module,
        )
        try:
            async with self.session_factory() as session:
                session.add(entry)
                await bounded(session.commit(), self.timeout, "audit write")
            return entry
        except Exception as e:
            logger.warning(
                "audit.write_failed",
                action=action,
                entity_type=entity_type,
                error=str(e),
            )
            return None


def get_activity_logger(request: Request) -> ActivityLogger:
    """FastAPI dependency: the audit logger wired up by the app lifespan."""
    return request.app.state.activity_logger
