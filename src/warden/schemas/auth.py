"""Pydantic schemas for login, registration, and the current principal.

Learn: Request bodies accept the camelCase names the browser client sends
(forceLogin, firstName) as well as snake_case; responses use snake_case
like every other schema here.
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class LoginRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=8)
    force_login: bool = Field(False, alias="forceLogin")


class RegisterRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    first_name: str = Field(..., min_length=2, max_length=50, alias="firstName")
    last_name: str = Field(..., min_length=2, max_length=50, alias="lastName")
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=8)


class UserRead(BaseModel):
    id: uuid.UUID
    first_name: str
    last_name: str
    email: str
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class RoleBrief(BaseModel):
    id: uuid.UUID
    name: str
    is_system_role: bool
    permissions: list[str] = []


class AdminMe(BaseModel):
    id: uuid.UUID
    first_name: str
    last_name: str
    email: str
    is_active: bool
    role: Optional[RoleBrief] = None


class UserSession(BaseModel):
    """Login / register response. The token is also set as a cookie."""
    status: str = "success"
    token: str
    forced: bool = False
    data: UserRead


class AdminSession(BaseModel):
    status: str = "success"
    token: str
    forced: bool = False
    data: AdminMe
