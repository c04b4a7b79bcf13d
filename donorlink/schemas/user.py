# donorlink/schemas/user.py
import uuid
from datetime import datetime
from typing import Literal

from pydantic import EmailStr, ConfigDict, field_validator
from sqlmodel import SQLModel, Field

from donorlink.core.causes import is_known_cause

Role = Literal["donor", "help-seeker"]

BIO_MIN = 10
BIO_MAX = 500


def opposite_role(role: str) -> Role:
    """Donors look for help seekers and vice versa."""
    return "help-seeker" if role == "donor" else "donor"


# -------- Auth payloads --------


class SignupRequest(SQLModel):
    """
    Payload for account creation.

    Role is chosen once here and cannot be changed afterwards.
    """

    model_config = ConfigDict(extra="forbid")

    email: EmailStr
    password: str = Field(min_length=6)
    role: Role


class LoginRequest(SQLModel):
    model_config = ConfigDict(extra="forbid")

    email: EmailStr
    password: str = Field(min_length=1)


# -------- Profile payloads --------


class ProfileFields(SQLModel):
    """
    Fields written by both the setup and the edit flow.

    Validation rules:
      - name: at least 2 characters
      - location: at least 2 characters
      - bio: 10 to 500 characters
      - causes: at least one known cause id, duplicates dropped
    """

    model_config = ConfigDict(extra="forbid")

    name: str
    location: str
    bio: str
    causes: list[str]

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 2:
            raise ValueError("Name must be at least 2 characters")
        if len(v) > 100:
            raise ValueError("Name must not exceed 100 characters")
        return v

    @field_validator("location")
    @classmethod
    def validate_location(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 2:
            raise ValueError("Location is required")
        if len(v) > 200:
            raise ValueError("Location must not exceed 200 characters")
        return v

    @field_validator("bio")
    @classmethod
    def validate_bio(cls, v: str) -> str:
        v = v.strip()
        if len(v) < BIO_MIN:
            raise ValueError(f"Bio must be at least {BIO_MIN} characters")
        if len(v) > BIO_MAX:
            raise ValueError(f"Bio must not exceed {BIO_MAX} characters")
        return v

    @field_validator("causes")
    @classmethod
    def validate_causes(cls, v: list[str]) -> list[str]:
        unique: list[str] = []
        for cause in v:
            cause = cause.strip()
            if not is_known_cause(cause):
                raise ValueError(f"Unknown cause: {cause}")
            if cause not in unique:
                unique.append(cause)
        if not unique:
            raise ValueError("Please select at least one cause")
        return unique


# -------- Read models --------


class UserRead(SQLModel):
    """Own profile, as returned to the signed-in user."""

    id: uuid.UUID
    email: str
    role: Role
    profile_complete: bool
    name: str | None = None
    location: str | None = None
    bio: str | None = None
    causes: list[str] = []
    profile_image_url: str | None = None
    created_at: datetime
    updated_at: datetime | None = None


class ProfileRead(SQLModel):
    """
    Public profile of another user (search results, chat headers).
    Email is never exposed.
    """

    id: uuid.UUID
    role: Role
    name: str | None = None
    location: str | None = None
    bio: str | None = None
    causes: list[str] = []
    profile_image_url: str | None = None


class AuthResponse(SQLModel):
    """
    Result of sign-up / sign-in.

    Tokens are null when Supabase requires email confirmation first.
    """

    user: UserRead
    access_token: str | None = None
    refresh_token: str | None = None
    expires_at: int | None = None
    token_type: str = "bearer"


class SessionRead(SQLModel):
    user: UserRead
    expires_at: int | None = None


class CauseRead(SQLModel):
    id: str
    label: str


class DashboardRead(SQLModel):
    user: UserRead
    search_role: Role
    conversation_count: int


class SearchResponse(SQLModel):
    search_role: Role
    total: int
    results: list[ProfileRead]
