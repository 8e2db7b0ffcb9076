"""Pydantic schemas for the auth endpoints.

Learn: Request fields the service validates itself (email, auth_provider,
refresh_token) are Optional here, so a missing value reaches the service
and comes back as a 400 with the service's own message instead of a
generic body-validation error.
Length limits mirror the String(255) columns, so over-long values are
rejected as 400 before they reach the database.
"""

import uuid
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


# ─── Requests ─────────────────────────────────────────────


class LoginRequest(BaseModel):
    email: Optional[str] = Field(None, max_length=255)
    name: Optional[str] = Field(None, max_length=255)
    auth_provider: Optional[str] = None
    provider_id: Optional[str] = Field(None, max_length=255)
    avatar_url: Optional[str] = None
    device_info: Optional[Any] = None


class RefreshRequest(BaseModel):
    refresh_token: Optional[str] = None


# ─── Responses ────────────────────────────────────────────


class UserSnapshot(BaseModel):
    id: uuid.UUID
    email: str
    name: Optional[str] = None

    model_config = {"from_attributes": True}


class LoginResponse(BaseModel):
    success: bool = True
    user_id: uuid.UUID
    is_new_user: bool
    access_token: str
    refresh_token: str
    expires_at: datetime
    user: UserSnapshot


class LogoutResponse(BaseModel):
    success: bool = True
    message: str = "Logged out successfully"


class ValidateResponse(BaseModel):
    valid: bool
    user: Optional[UserSnapshot] = None


class RefreshResponse(BaseModel):
    success: bool = True
    access_token: str
    expires_at: datetime


class ErrorResponse(BaseModel):
    success: bool = False
    message: str
    code: str
