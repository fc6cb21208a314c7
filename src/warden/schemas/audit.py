"""Pydantic schemas for the audit trail."""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class ActivityLogRead(BaseModel):
    id: uuid.UUID
    user_id: Optional[uuid.UUID] = None
    admin_id: Optional[uuid.UUID] = None
    action: str
    entity_type: str
    entity_id: Optional[str] = None
    description: str
    previous_values: Optional[dict] = None
    new_values: Optional[dict] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    module: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class ActivityLogPage(BaseModel):
    items: list[ActivityLogRead]
    total: int
    page: int
    limit: int
    total_pages: int
