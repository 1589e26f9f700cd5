"""
How Sitter Backend — Arrangement & Message Models
===================================================

What:  ORM models for `arrangements` (bookings) and `messages`.
Why:   The arrangements table is the source of truth for date-range conflict
       checks; messages form the append-only thread of each arrangement.
Who:   AvailabilityChecker, ArrangementService, MessageService.

Lifecycle:
    pending ──► confirmed ──► active ──► completed
       │            │
       └────────────┴──► cancelled

    completed and cancelled are terminal.

Invariant:
    Per property, arrangements whose status is pending, confirmed or active
    have pairwise non-overlapping [start_date, end_date] ranges. The service
    layer enforces this under a property row lock; on PostgreSQL the
    migration adds an exclusion constraint as a storage-level backstop.
"""

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Dict, FrozenSet, Optional

from sqlalchemy import (
    Date,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from howsitter.database import Base


# ── Arrangement Status ────────────────────────────────────────────────────
ARRANGEMENT_PENDING = "pending"
ARRANGEMENT_CONFIRMED = "confirmed"
ARRANGEMENT_ACTIVE = "active"
ARRANGEMENT_COMPLETED = "completed"
ARRANGEMENT_CANCELLED = "cancelled"

ARRANGEMENT_STATUSES = (
    ARRANGEMENT_PENDING,
    ARRANGEMENT_CONFIRMED,
    ARRANGEMENT_ACTIVE,
    ARRANGEMENT_COMPLETED,
    ARRANGEMENT_CANCELLED,
)

# Statuses that hold a date range on the property calendar
BLOCKING_STATUSES: FrozenSet[str] = frozenset(
    {ARRANGEMENT_PENDING, ARRANGEMENT_CONFIRMED, ARRANGEMENT_ACTIVE}
)

# Statuses that mean someone is (or is about to be) living in the property
OCCUPYING_STATUSES: FrozenSet[str] = frozenset(
    {ARRANGEMENT_CONFIRMED, ARRANGEMENT_ACTIVE}
)

ALLOWED_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    ARRANGEMENT_PENDING: frozenset({ARRANGEMENT_CONFIRMED, ARRANGEMENT_CANCELLED}),
    ARRANGEMENT_CONFIRMED: frozenset({ARRANGEMENT_ACTIVE, ARRANGEMENT_CANCELLED}),
    ARRANGEMENT_ACTIVE: frozenset({ARRANGEMENT_COMPLETED}),
    ARRANGEMENT_COMPLETED: frozenset(),
    ARRANGEMENT_CANCELLED: frozenset(),
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Arrangement(Base):
    """
    A sitter's stay at a property for a date range.

    start_date/end_date are fixed at creation; there is no reschedule.
    security_deposit is a snapshot of the property's deposit at creation.
    property_id becomes NULL when the property is deleted after the
    arrangement reached a terminal status (history is kept).
    """

    __tablename__ = "arrangements"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    property_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("properties.id", ondelete="SET NULL"),
        nullable=True,
    )
    sitter_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        comment="User id of the sitter (role='sitter')",
    )
    # Owner of the property when the request was made; keeps the thread
    # addressable after the property row is gone
    homeowner_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )

    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=ARRANGEMENT_PENDING,
        server_default=text("'pending'"),
    )

    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    security_deposit: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("0"),
    )

    house_rules: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    special_instructions: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

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

    __table_args__ = (
        # Conflict checks scan one property's blocking arrangements
        Index("idx_arrangements_property_status", "property_id", "status"),
        Index("idx_arrangements_sitter", "sitter_id"),
        Index("idx_arrangements_homeowner", "homeowner_id"),
    )

    @property
    def stay_days(self) -> int:
        return (self.end_date - self.start_date).days

    def __repr__(self) -> str:
        return (
            f"<Arrangement(id={self.id}, property_id={self.property_id}, "
            f"{self.start_date}..{self.end_date}, status='{self.status}')>"
        )


class Message(Base):
    """One message in an arrangement thread. Never updated or deleted."""

    __tablename__ = "messages"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    arrangement_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("arrangements.id", ondelete="CASCADE"),
        nullable=False,
    )
    sender_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
    )
    receiver_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
    )
    body: Mapped[str] = mapped_column("message", Text, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        Index("idx_messages_arrangement_created", "arrangement_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Message(id={self.id}, arrangement_id={self.arrangement_id})>"
