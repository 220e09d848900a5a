"""
PGB Event Scheduler - Authentication Schemas
============================================
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from app.models.user import UserRole


def _clean_department(value: str) -> str:
    clean = (value or "").strip()
    if not clean:
        raise ValueError("department is required")
    return clean.upper()


class LoginRequest(BaseModel):
    # Username or email.
    username: str = Field(..., min_length=2, max_length=255)
    password: str = Field(..., min_length=1)


class SetupRequest(BaseModel):
    username: str = Field(..., min_length=2, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    department: str = Field(..., min_length=1, max_length=120)

    @field_validator("department")
    @classmethod
    def _department(cls, value: str) -> str:
        return _clean_department(value)


class UserProfile(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    email: str
    role: str
    department: str
    is_active: bool
    last_login_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserProfile


class UserCreateRequest(BaseModel):
    username: str = Field(..., min_length=2, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    department: str = Field(..., min_length=1, max_length=120)
    role: UserRole = UserRole.user

    @field_validator("department")
    @classmethod
    def _department(cls, value: str) -> str:
        return _clean_department(value)


class UserUpdateRequest(BaseModel):
    username: Optional[str] = Field(default=None, min_length=2, max_length=50)
    email: Optional[EmailStr] = None
    password: Optional[str] = Field(default=None, min_length=8, max_length=128)
    department: Optional[str] = Field(default=None, min_length=1, max_length=120)
    role: Optional[UserRole] = None

    @field_validator("department")
    @classmethod
    def _upper(cls, value: Optional[str]) -> Optional[str]:
        return _clean_department(value) if value is not None else None


class UserStatusRequest(BaseModel):
    is_active: bool


class UserActivityItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    actor_user_id: Optional[int] = None
    actor_username: Optional[str] = None
    actor_department: Optional[str] = None
    action: str
    description: Optional[str] = None
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    details: Optional[str] = None
    created_at: Optional[datetime] = None
