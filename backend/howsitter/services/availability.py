"""
How Sitter Backend — Availability Checker
===========================================

What:  Decides whether a property can take a new arrangement for a date range.
Why:   One predicate shared by the public check-availability endpoint and by
       ArrangementService.create_arrangement, so both give the same answer.
How:   Split in two:
       - evaluate(): pure function over a property and the blocking
         arrangements that intersect the candidate range (easy to unit test)
       - check_availability(): loads those rows and calls evaluate(); it only
         reads, and may be called without holding any lock

Checks, in order (first failure wins):
    1. property.status must be 'available'       → reason "property_status"
    2. stay_days >= property.min_stay_days        → reason "min_stay"
    3. stay_days <= property.max_stay_days        → reason "max_stay"
    4. no blocking arrangement intersects [S, E]  → reason "overlap"

Overlap rule:
    Existing [s, e] conflicts with candidate [S, E] iff  s <= E and e >= S.
    Both ends are inclusive, so ranges sharing a single boundary day conflict:
    one stay ending on the 1st and the next starting on the 1st is rejected,
    which keeps a turnover day between sitters.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Iterable, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from howsitter.exceptions import NotFoundError, ValidationError
from howsitter.models.arrangement import Arrangement, BLOCKING_STATUSES
from howsitter.models.property import PROPERTY_AVAILABLE, Property

logger = logging.getLogger(__name__)

REASON_PROPERTY_STATUS = "property_status"
REASON_MIN_STAY = "min_stay"
REASON_MAX_STAY = "max_stay"
REASON_OVERLAP = "overlap"


@dataclass(frozen=True)
class AvailabilityResult:
    available: bool
    message: str
    stay_days: Optional[int] = None
    reason: Optional[str] = None
    conflicting_ids: Tuple[UUID, ...] = ()


def validate_range(start: date, end: date) -> None:
    """Raise ValidationError unless start < end."""
    if start >= end:
        raise ValidationError(
            "End date must be after start date",
            field="end_date",
            context={"start_date": start.isoformat(), "end_date": end.isoformat()},
        )


def stay_length(start: date, end: date) -> int:
    """Number of days between two calendar dates (whole days, so no rounding)."""
    return (end - start).days


def ranges_overlap(s: date, e: date, start: date, end: date) -> bool:
    """Inclusive interval intersection of [s, e] and [start, end]."""
    return s <= end and e >= start


def overlap_clause(start: date, end: date) -> ColumnElement[bool]:
    """SQL form of ranges_overlap() against Arrangement rows."""
    return (Arrangement.start_date <= end) & (Arrangement.end_date >= start)


def evaluate(
    prop: Property,
    start: date,
    end: date,
    existing: Iterable[Arrangement],
) -> AvailabilityResult:
    """
    Pure availability decision.

    `existing` may contain any arrangements of the property; non-blocking
    statuses and non-intersecting ranges are ignored here as well.
    """
    validate_range(start, end)

    if prop.status != PROPERTY_AVAILABLE:
        return AvailabilityResult(
            available=False,
            message=f"Property is not accepting arrangements (status: {prop.status})",
            reason=REASON_PROPERTY_STATUS,
        )

    days = stay_length(start, end)
    if days < prop.min_stay_days:
        return AvailabilityResult(
            available=False,
            message=f"Minimum stay is {prop.min_stay_days} days",
            stay_days=days,
            reason=REASON_MIN_STAY,
        )
    if days > prop.max_stay_days:
        return AvailabilityResult(
            available=False,
            message=f"Maximum stay is {prop.max_stay_days} days",
            stay_days=days,
            reason=REASON_MAX_STAY,
        )

    conflicts = tuple(
        a.id
        for a in existing
        if a.status in BLOCKING_STATUSES
        and ranges_overlap(a.start_date, a.end_date, start, end)
    )
    if conflicts:
        return AvailabilityResult(
            available=False,
            message="Property is not available for the selected dates",
            stay_days=days,
            reason=REASON_OVERLAP,
            conflicting_ids=conflicts,
        )

    return AvailabilityResult(
        available=True,
        message="Property is available for the selected dates",
        stay_days=days,
    )


async def find_blocking(
    db: AsyncSession,
    property_id: UUID,
    start: date,
    end: date,
    exclude_id: Optional[UUID] = None,
) -> Sequence[Arrangement]:
    """Blocking arrangements of a property that intersect [start, end]."""
    stmt = select(Arrangement).where(
        Arrangement.property_id == property_id,
        Arrangement.status.in_(BLOCKING_STATUSES),
        overlap_clause(start, end),
    )
    if exclude_id is not None:
        stmt = stmt.where(Arrangement.id != exclude_id)
    result = await db.execute(stmt)
    return result.scalars().all()


async def check_availability(
    db: AsyncSession,
    property_id: UUID,
    start: date,
    end: date,
) -> AvailabilityResult:
    """
    Read-only availability check for a property and date range.

    Raises:
        ValidationError: start >= end
        NotFoundError: unknown property
    """
    validate_range(start, end)

    prop = await db.get(Property, property_id)
    if prop is None:
        raise NotFoundError("Property", str(property_id))

    existing: Sequence[Arrangement] = ()
    if prop.status == PROPERTY_AVAILABLE:
        existing = await find_blocking(db, property_id, start, end)

    result = evaluate(prop, start, end, existing)
    logger.debug(
        "Availability %s %s..%s → %s (%s)",
        property_id, start, end, result.available, result.reason,
    )
    return result
