"""
How Sitter Backend — Auth & Profile Schemas
=============================================

What:  Request/response models for registration, login, token verification
       and the profile endpoints.
Why:   Input rules that do not need the database (password length, allowed
       roles, email shape) are rejected here with a 422 before any service runs.
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from howsitter.models.user import SELF_SERVICE_ROLES


def _normalize_email(v: str) -> str:
    v = v.strip().lower()
    local, _, domain = v.partition("@")
    if not local or "." not in domain:
        raise ValueError("Invalid email address")
    return v


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class RegisterRequest(BaseModel):
    """
    Body of POST /api/auth/register.

    Admin accounts cannot be self-registered; only homeowner and sitter are
    accepted for `role`.
    """
    email: str = Field(max_length=255)
    password: str = Field(min_length=8, max_length=128)
    name: str = Field(min_length=1, max_length=255)
    role: str = Field(description="homeowner or sitter")
    country: Optional[str] = Field(default=None, max_length=100)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return _normalize_email(v)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Name must not be blank")
        return v

    @field_validator("role")
    @classmethod
    def validate_role(cls, v: str) -> str:
        if v not in SELF_SERVICE_ROLES:
            raise ValueError(f"Invalid role '{v}'. Must be one of: {SELF_SERVICE_ROLES}")
        return v


class LoginRequest(BaseModel):
    email: str
    password: str

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: str) -> str:
        return v.strip().lower()


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str = Field(min_length=8, max_length=128)


class ProfileUpdateRequest(BaseModel):
    """Body of PUT /api/profile. Omitted fields are left unchanged."""
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    country: Optional[str] = Field(default=None, max_length=100)
    bio: Optional[str] = Field(default=None, max_length=5000)
    phone: Optional[str] = Field(default=None, max_length=50)
    avatar_url: Optional[str] = Field(default=None, max_length=500)


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class UserResponse(BaseModel):
    """Public view of a user. Never includes password_hash."""
    id: uuid.UUID
    email: str
    name: str
    role: str
    country: Optional[str] = None
    bio: Optional[str] = None
    phone: Optional[str] = None
    avatar_url: Optional[str] = None
    verified: bool = False
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class AuthResponse(BaseModel):
    """Returned by register and login."""
    message: str
    token: str
    user: UserResponse


class SitterProfileResponse(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    rating: float
    total_reviews: int
    experience_years: int
    credentials: Optional[str] = None
    languages: Optional[str] = None
    is_available: bool
    arrangement_count: int = 0

    model_config = {"from_attributes": True}


class ProfileResponse(BaseModel):
    """
    GET /api/profile.

    Homeowners get `property_count`; sitters get `sitter_profile`.
    """
    user: UserResponse
    property_count: Optional[int] = None
    sitter_profile: Optional[SitterProfileResponse] = None
