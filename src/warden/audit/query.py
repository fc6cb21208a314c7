"""Read side of the audit trail."""

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from warden.db.models import ActivityLog
from warden.errors import bounded


@dataclass
class ActivityLogFilters:
    entity_type: Optional[str] = None
    action: Optional[str] = None
    module: Optional[str] = None
    user_id: Optional[uuid.UUID] = None
    admin_id: Optional[uuid.UUID] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    search: Optional[str] = None

    def clauses(self) -> list:
        out = []
        if self.entity_type:
            out.append(ActivityLog.entity_type == self.entity_type)
        if self.action:
            out.append(ActivityLog.action == self.action)
        if self.module:
            out.append(ActivityLog.module == self.module)
        if self.user_id is not None:
            out.append(ActivityLog.user_id == self.user_id)
        if self.admin_id is not None:
            out.append(ActivityLog.admin_id == self.admin_id)
        if self.start is not None:
            out.append(ActivityLog.created_at >= self.start)
        if self.end is not None:
            out.append(ActivityLog.created_at <= self.end)
        if self.search:
            out.append(func.lower(ActivityLog.description).like(f"%{self.search.lower()}%"))
        return out


class ActivityLogQuery:
    def __init__(self, db: AsyncSession, timeout: float = 5.0):
        self.db = db
        self.timeout = timeout

    async def fetch_page(
        self,
        filters: ActivityLogFilters,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[ActivityLog], int]:
        """One page of entries (newest first) and the total match count."""
        clauses = filters.clauses()
        count_q = select(func.count(ActivityLog.id)).where(*clauses)
        total = (await self._run(count_q, "audit count")).scalar_one()

        q = (
            select(ActivityLog)
            .where(*clauses)
            .order_by(ActivityLog.created_at.desc())
            .limit(limit)
            .offset((page - 1) * limit)
        )
        result = await self._run(q, "audit list")
        return list(result.scalars().all()), int(total)

    async def entity_types(self) -> list[str]:
        return await self._distinct(ActivityLog.entity_type)

    async def actions(self) -> list[str]:
        return await self._distinct(ActivityLog.action)

    async def modules(self) -> list[str]:
        return await self._distinct(ActivityLog.module)

    async def _distinct(self, column) -> list[str]:
        q = select(column).where(column.is_not(None)).distinct().order_by(column)
        result = await self._run(q, "audit distinct")
        return list(result.scalars().all())

    async def _run(self, statement, what: str):
        return await bounded(self.db.execute(statement), self.timeout, what)
