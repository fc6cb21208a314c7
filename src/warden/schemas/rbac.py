"""Pydantic schemas for roles and permissions."""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


# ─── Permissions ────────────────────────────────────────

class PermissionCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    code: str = Field(..., min_length=3, max_length=100, pattern=r"^[a-z0-9_-]+:[a-z0-9_-]+$")
    module: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=255)


class PermissionUpdate(BaseModel):
    """The code is immutable; extra fields (including code) are rejected."""
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(None, min_length=2, max_length=100)
    module: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=255)


class PermissionRead(BaseModel):
    id: uuid.UUID
    name: str
    code: str
    module: str
    description: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


# ─── Roles ──────────────────────────────────────────────

class RoleCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=2, max_length=100)
    description: Optional[str] = Field(None, max_length=255)
    permission_ids: list[uuid.UUID] = Field(default_factory=list, alias="permissions")
    is_system_role: bool = Field(False, alias="isSystemRole")


class RoleUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = Field(None, min_length=2, max_length=100)
    description: Optional[str] = Field(None, max_length=255)
    permission_ids: Optional[list[uuid.UUID]] = Field(None, alias="permissions")


class RoleRead(BaseModel):
    id: uuid.UUID
    name: str
    description: Optional[str] = None
    is_system_role: bool
    permissions: list[PermissionRead] = []
    created_at: datetime

    model_config = {"from_attributes": True}
