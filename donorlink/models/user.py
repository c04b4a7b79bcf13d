# donorlink/models/user.py
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, JSON
from sqlmodel import SQLModel, Field


class User(SQLModel, table=True):
    """
    Persistent user profile for DonorLink.

    Identity:
      - id: MUST match Supabase auth.users.id (UUID from JWT "sub")

    Role:
      - "donor" | "help-seeker", chosen at sign-up and never changed.

    Lifecycle:
      - created at sign-up with profile_complete = False
      - profile_complete flips to True once, in the profile setup flow
      - never deleted by this service

    This table is *not* responsible for password hashes. Supabase Auth
    stores the password in its own schema.
    """

    __tablename__ = "users"

    id: uuid.UUID = Field(
        primary_key=True,
        index=True,
        description="Matches Supabase auth.users.id",
    )

    email: str = Field(
        unique=True,
        index=True,
        description="Email from Supabase auth.users",
    )

    role: str = Field(
        index=True,
        description="Application role: donor | help-seeker",
    )

    profile_complete: bool = Field(
        default=False,
        index=True,
        description="Gate for search, messaging and dashboard access",
    )

    name: str | None = Field(default=None, max_length=100)

    # Free text, e.g. "Springfield, IL"
    location: str | None = Field(default=None, max_length=200)

    bio: str | None = Field(default=None, max_length=500)

    # Cause ids from donorlink.core.causes.CAUSES, no duplicates
    causes: list[str] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False),
    )

    profile_image_url: str | None = Field(
        default=None,
        description="Public URL stored in Supabase Storage",
    )

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Creation timestamp (UTC)",
    )

    updated_at: datetime | None = Field(
        default=None,
        description="Last profile save (UTC)",
    )
