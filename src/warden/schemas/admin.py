"""Pydantic schemas for administrator management."""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from warden.schemas.rbac import RoleRead


class AdminCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    first_name: str = Field(..., min_length=2, max_length=50, alias="firstName")
    last_name: str = Field(..., min_length=2, max_length=50, alias="lastName")
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=8)
    role_id: uuid.UUID = Field(..., alias="roleId")
    is_active: bool = Field(True, alias="isActive")


class AdminUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    first_name: Optional[str] = Field(None, min_length=2, max_length=50, alias="firstName")
    last_name: Optional[str] = Field(None, min_length=2, max_length=50, alias="lastName")
    email: Optional[str] = Field(None, min_length=3, max_length=255)
    role_id: Optional[uuid.UUID] = Field(None, alias="roleId")
    is_active: Optional[bool] = Field(None, alias="isActive")


class PasswordChange(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    current_password: Optional[str] = Field(None, alias="currentPassword")
    new_password: str = Field(..., min_length=8, alias="newPassword")


class AdminRead(BaseModel):
    id: uuid.UUID
    first_name: str
    last_name: str
    email: str
    is_active: bool
    role: Optional[RoleRead] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class AdminPageRead(BaseModel):
    items: list[AdminRead]
    total: int
    page: int
    limit: int
    total_pages: int
