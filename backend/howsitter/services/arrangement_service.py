"""
How Sitter Backend — Arrangement Lifecycle
============================================

What:  Creates arrangements (booking requests) and moves them through
       pending → confirmed → active → completed, or → cancelled.
Who:   Called by the bookings and arrangements routers.

Transaction & Locking:
    Every write runs in the request's single transaction (see database.py)
    and begins by locking the property row:

        SELECT ... FROM properties WHERE id = :id FOR UPDATE

    Two sitters booking the same property are therefore serialized: the
    second one waits for the first commit, then re-runs the conflict check
    against a snapshot that already contains the first arrangement. The same
    lock serializes concurrent confirmations of one property. On PostgreSQL
    an exclusion constraint (migration 001) rejects any overlap that would
    slip past the service; that surfaces here as an IntegrityError and is
    reported as a conflict.

Occupancy policy:
    A property has at most one occupant at a time. Confirming an arrangement
    flips Property.status to 'occupied', which closes the property to new
    requests at the status gate. Cancelling or completing the occupying
    arrangement reopens it ('available') once no other confirmed or active
    arrangement remains. The date-overlap check still guards pending
    requests against each other.

Billing:
    total_amount = price_per_month * ceil(stay_days / 30). Months are
    approximated as 30 days; calendar-month proration is not implemented.
"""

import logging
import math
from decimal import Decimal
from typing import List
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from howsitter.config import settings
from howsitter.exceptions import (
    AuthorizationError,
    ConflictError,
    DatabaseError,
    HowSitterError,
    NotFoundError,
    ValidationError,
)
from howsitter.models.arrangement import (
    ALLOWED_TRANSITIONS,
    ARRANGEMENT_ACTIVE,
    ARRANGEMENT_CANCELLED,
    ARRANGEMENT_COMPLETED,
    ARRANGEMENT_CONFIRMED,
    Arrangement,
    Message,
    OCCUPYING_STATUSES,
)
from howsitter.models.property import (
    PROPERTY_AVAILABLE,
    PROPERTY_OCCUPIED,
    Property,
)
from howsitter.models.user import ROLE_ADMIN, ROLE_HOMEOWNER, ROLE_SITTER, User
from howsitter.schemas.arrangement import ArrangementItem, BookingCreate
from howsitter.services import availability
from howsitter.services.availability import (
    REASON_MAX_STAY,
    REASON_MIN_STAY,
)

logger = logging.getLogger(__name__)


def compute_total(price_per_month: Decimal, stay_days: int) -> Decimal:
    """price_per_month * ceil(stay_days / billing_month_days)."""
    months = math.ceil(stay_days / settings.billing_month_days)
    return Decimal(price_per_month) * months


async def lock_property(db: AsyncSession, property_id: UUID) -> Property:
    """
    Load a property with a row lock held until the transaction ends.

    populate_existing refreshes an instance already in the identity map, so
    the caller always sees the row as it is after acquiring the lock.
    """
    stmt = (
        select(Property)
        .where(Property.id == property_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    prop = (await db.execute(stmt)).scalar_one_or_none()
    if prop is None:
        raise NotFoundError("Property", str(property_id))
    return prop


class ArrangementService:
    """
    Business logic for the arrangement lifecycle.

    Stateless; every method receives the request's session. Methods only
    flush: the commit (or rollback) belongs to get_db_session.
    """

    # ── Create ────────────────────────────────────────────────────────────

    async def create_arrangement(
        self,
        db: AsyncSession,
        sitter: User,
        data: BookingCreate,
    ) -> Arrangement:
        """
        Create a pending arrangement plus the opening message of its thread.

        Raises:
            AuthorizationError: caller is not a sitter
            ValidationError: bad date order, stay shorter/longer than allowed
            NotFoundError: unknown property
            ConflictError: property not available, or dates overlap
            DatabaseError: unexpected persistence failure (nothing is written)
        """
        if sitter.role != ROLE_SITTER:
            raise AuthorizationError("Only sitters can create bookings")

        availability.validate_range(data.start_date, data.end_date)

        try:
            prop = await lock_property(db, data.property_id)
            existing = await availability.find_blocking(
                db, prop.id, data.start_date, data.end_date
            )
            check = availability.evaluate(prop, data.start_date, data.end_date, existing)

            if not check.available:
                context = {"reason": check.reason, "property_id": str(prop.id)}
                if check.reason in (REASON_MIN_STAY, REASON_MAX_STAY):
                    context.update(
                        stay_days=check.stay_days,
                        min_stay_days=prop.min_stay_days,
                        max_stay_days=prop.max_stay_days,
                    )
                    raise ValidationError(check.message, field="end_date", context=context)
                if check.conflicting_ids:
                    context["conflicting_arrangements"] = [str(i) for i in check.conflicting_ids]
                raise ConflictError(check.message, context=context)

            arrangement = Arrangement(
                property_id=prop.id,
                sitter_id=sitter.id,
                homeowner_id=prop.homeowner_id,
                start_date=data.start_date,
                end_date=data.end_date,
                total_amount=compute_total(prop.price_per_month, check.stay_days),
                security_deposit=prop.security_deposit,
                house_rules=data.house_rules,
                special_instructions=data.special_instructions,
            )
            db.add(arrangement)
            await db.flush()

            body = (data.message or "").strip() or settings.default_booking_message
            db.add(
                Message(
                    arrangement_id=arrangement.id,
                    sender_id=sitter.id,
                    receiver_id=prop.homeowner_id,
                    body=body,
                )
            )
            await db.flush()

            logger.info(
                "Arrangement %s created: property=%s sitter=%s %s..%s total=%s",
                arrangement.id, prop.id, sitter.id,
                data.start_date, data.end_date, arrangement.total_amount,
            )
            return arrangement

        except HowSitterError:
            raise
        except IntegrityError as e:
            # Exclusion constraint on PostgreSQL: a concurrent overlap was caught in storage
            logger.warning("Arrangement insert rejected by constraint: %s", e.orig)
            raise ConflictError(
                "Property is not available for the selected dates",
                context={"reason": availability.REASON_OVERLAP},
            )
        except Exception as e:
            logger.error("Unexpected error in create_arrangement: %s", str(e), exc_info=True)
            raise DatabaseError(
                message="Failed to create booking. Please try again.",
                context={"original_error": type(e).__name__},
            )

    # ── Transitions ───────────────────────────────────────────────────────

    async def update_status(
        self,
        db: AsyncSession,
        user: User,
        arrangement_id: UUID,
        new_status: str,
    ) -> Arrangement:
        """
        Apply a status transition requested by the homeowner (or an admin).

        Raises:
            NotFoundError: unknown arrangement
            AuthorizationError: caller does not own the property and is not admin
            ConflictError: transition not allowed from the current status, or
                           confirming while the property already has an occupant
        """
        try:
            arrangement = await db.get(Arrangement, arrangement_id)
            if arrangement is None:
                raise NotFoundError("Arrangement", str(arrangement_id))

            if user.role != ROLE_ADMIN and arrangement.homeowner_id != user.id:
                raise AuthorizationError(
                    "Only the property owner can update this arrangement"
                )

            if arrangement.property_id is None:
                raise ConflictError(
                    "The property of this arrangement no longer exists",
                    context={"arrangement_id": str(arrangement_id)},
                )

            prop = await lock_property(db, arrangement.property_id)
            # Re-read under the lock: another request may have moved it meanwhile
            await db.refresh(arrangement)

            current = arrangement.status
            if new_status not in ALLOWED_TRANSITIONS.get(current, frozenset()):
                raise ConflictError(
                    f"Cannot change arrangement status from '{current}' to '{new_status}'",
                    context={"from": current, "to": new_status},
                )

            if new_status == ARRANGEMENT_CONFIRMED:
                await self._occupy(db, prop, arrangement)
            elif new_status in (ARRANGEMENT_CANCELLED, ARRANGEMENT_COMPLETED):
                await self._release(db, prop, arrangement)

            arrangement.status = new_status
            await db.flush()

            logger.info(
                "Arrangement %s: %s → %s by %s (property %s now '%s')",
                arrangement.id, current, new_status, user.id, prop.id, prop.status,
            )
            return arrangement

        except HowSitterError:
            raise
        except Exception as e:
            logger.error("Unexpected error in update_status: %s", str(e), exc_info=True)
            raise DatabaseError(
                message="Failed to update arrangement status. Please try again.",
                context={"original_error": type(e).__name__},
            )

    async def _count_occupying(
        self, db: AsyncSession, property_id: UUID, exclude_id: UUID
    ) -> int:
        stmt = select(func.count(Arrangement.id)).where(
            Arrangement.property_id == property_id,
            Arrangement.status.in_(OCCUPYING_STATUSES),
            Arrangement.id != exclude_id,
        )
        return (await db.execute(stmt)).scalar_one()

    async def _occupy(self, db: AsyncSession, prop: Property, arrangement: Arrangement) -> None:
        if await self._count_occupying(db, prop.id, arrangement.id):
            raise ConflictError(
                "Property already has a confirmed arrangement",
                context={"property_id": str(prop.id)},
            )
        if prop.status != PROPERTY_AVAILABLE:
            raise ConflictError(
                f"Property is not accepting arrangements (status: {prop.status})",
                context={"property_id": str(prop.id), "property_status": prop.status},
            )
        prop.status = PROPERTY_OCCUPIED

    async def _release(self, db: AsyncSession, prop: Property, arrangement: Arrangement) -> None:
        # Only an occupied property is reopened; maintenance etc. stay as the owner set them
        if prop.status != PROPERTY_OCCUPIED:
            return
        if arrangement.status not in OCCUPYING_STATUSES:
            return
        if await self._count_occupying(db, prop.id, arrangement.id) == 0:
            prop.status = PROPERTY_AVAILABLE

    # ── Queries ───────────────────────────────────────────────────────────

    async def list_for_user(self, db: AsyncSession, user: User) -> List[ArrangementItem]:
        """
        Arrangements visible to `user`, newest first.

        homeowner → arrangements on their properties
        sitter    → their own requests
        admin     → everything
        """
        counterpart = aliased(User)
        message_count = (
            select(func.count(Message.id))
            .where(Message.arrangement_id == Arrangement.id)
            .correlate(Arrangement)
            .scalar_subquery()
        )

        if user.role == ROLE_SITTER:
            counterpart_join = counterpart.id == Arrangement.homeowner_id
        else:
            counterpart_join = counterpart.id == Arrangement.sitter_id

        stmt = (
            select(
                Arrangement,
                Property.title,
                Property.location,
                Property.city,
                counterpart.name,
                counterpart.email,
                message_count.label("message_count"),
            )
            .outerjoin(Property, Property.id == Arrangement.property_id)
            .outerjoin(counterpart, counterpart_join)
            .order_by(Arrangement.created_at.desc())
        )
        if user.role == ROLE_HOMEOWNER:
            stmt = stmt.where(Arrangement.homeowner_id == user.id)
        elif user.role == ROLE_SITTER:
            stmt = stmt.where(Arrangement.sitter_id == user.id)

        try:
            rows = (await db.execute(stmt)).all()
        except Exception as e:
            logger.error("Failed to list arrangements: %s", str(e), exc_info=True)
            raise DatabaseError(message="Failed to fetch arrangements")

        return [
            ArrangementItem(
                id=a.id,
                property_id=a.property_id,
                property_title=title,
                property_location=location,
                property_city=city,
                sitter_id=a.sitter_id,
                homeowner_id=a.homeowner_id,
                counterpart_name=name,
                counterpart_email=email,
                start_date=a.start_date,
                end_date=a.end_date,
                status=a.status,
                total_amount=a.total_amount,
                security_deposit=a.security_deposit,
                house_rules=a.house_rules,
                special_instructions=a.special_instructions,
                message_count=count or 0,
                created_at=a.created_at,
            )
            for a, title, location, city, name, email, count in rows
        ]

    async def get_for_participant(
        self, db: AsyncSession, user: User, arrangement_id: UUID
    ) -> Arrangement:
        """
        Load an arrangement the caller takes part in (sitter, homeowner) or admin.

        Raises NotFoundError / AuthorizationError.
        """
        arrangement = await db.get(Arrangement, arrangement_id)
        if arrangement is None:
            raise NotFoundError("Arrangement", str(arrangement_id))
        if user.role != ROLE_ADMIN and user.id not in (
            arrangement.sitter_id,
            arrangement.homeowner_id,
        ):
            raise AuthorizationError("You are not a participant of this arrangement")
        return arrangement


arrangement_service = ArrangementService()


def status_message(status: str) -> str:
    """Human-readable acknowledgement for a completed transition."""
    return {
        ARRANGEMENT_CONFIRMED: "Arrangement confirmed",
        ARRANGEMENT_ACTIVE: "Arrangement is now active",
        ARRANGEMENT_COMPLETED: "Arrangement completed",
        ARRANGEMENT_CANCELLED: "Arrangement cancelled",
    }.get(status, f"Arrangement status updated to {status}")

