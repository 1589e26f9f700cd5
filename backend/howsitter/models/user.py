"""
How Sitter Backend — User & Sitter Profile Models
===================================================

What:  ORM models for the `users` and `sitter_profiles` tables.
Why:   Every request is made on behalf of a user; the role column decides
       which operations (list a property, request a stay, confirm) are allowed.
How:   Plain declarative models. Relationships are resolved with explicit
       queries in the services, which keeps async sessions free of lazy loads.
Who:   AuthService (register/login/profile), SitterService, every dependency
       that resolves the current user from a bearer token.

Table Design Rationale:
    - email is unique and stored lower-cased (login is case-insensitive)
    - password_hash holds a bcrypt hash, never the password
    - role: 'homeowner' | 'sitter' | 'admin' (admins are created out-of-band)
    - sitter_profiles is 1:1 with users for role='sitter' and carries the
      marketplace fields (rating, review count, availability flag)
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from howsitter.database import Base


# ── Roles ─────────────────────────────────────────────────────────────────
ROLE_HOMEOWNER = "homeowner"
ROLE_SITTER = "sitter"
ROLE_ADMIN = "admin"

# Roles a visitor may pick at registration time
SELF_SERVICE_ROLES = (ROLE_HOMEOWNER, ROLE_SITTER)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    """
    An account on the marketplace.

    Lifecycle:
        1. Created by POST /api/auth/register (homeowner or sitter)
        2. Profile fields edited via PUT /api/profile
        3. Never deleted by the API
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
        index=True,
        comment="Login identifier, stored lower-cased",
    )

    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    role: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="homeowner, sitter or admin",
    )

    # ── Profile ───────────────────────────────────────────────────────────
    country: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    bio: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    avatar_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    verified: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
    )

    # ── Timestamps ────────────────────────────────────────────────────────
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}', role='{self.role}')>"


class SitterProfile(Base):
    """
    Marketplace profile of a sitter.

    Created automatically when a user registers with role='sitter'.
    The sitters listing is ordered by `rating` (highest first).
    """

    __tablename__ = "sitter_profiles"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )

    rating: Mapped[Decimal] = mapped_column(
        Numeric(3, 2),
        nullable=False,
        default=Decimal("0"),
        server_default=text("0"),
    )
    total_reviews: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0"),
    )
    experience_years: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0"),
    )

    # Free-form, comma-separated in the original data set
    credentials: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    languages: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    is_available: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        server_default=text("true"),
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    def __repr__(self) -> str:
        return f"<SitterProfile(id={self.id}, user_id={self.user_id}, rating={self.rating})>"
