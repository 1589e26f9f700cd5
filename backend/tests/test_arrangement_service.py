"""
How Sitter Backend — Arrangement Service Tests
================================================

What:  Booking creation and status transitions against a real (SQLite)
       session: totals, snapshots, the opening message, rejection paths that
       must write nothing, and the occupancy policy.
"""

import uuid
from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import IntegrityError

from howsitter.config import settings
from howsitter.exceptions import AuthorizationError, ConflictError, NotFoundError, ValidationError
from howsitter.models.arrangement import Arrangement, Message
from howsitter.models.property import Property
from howsitter.models.user import ROLE_ADMIN, ROLE_HOMEOWNER
from howsitter.schemas.arrangement import BookingCreate
from howsitter.services.arrangement_service import (
    arrangement_service,
    compute_total,
    lock_property,
    status_message,
)
from howsitter.services.message_service import message_service


def _booking(prop, start, end, **extra) -> BookingCreate:
    return BookingCreate(property_id=prop.id, start_date=start, end_date=end, **extra)


async def _count(db, model) -> int:
    return (await db.execute(select(func.count(model.id)))).scalar_one()


class TestComputeTotal:

    @pytest.mark.parametrize(
        "days,months",
        [(1, 1), (30, 1), (31, 2), (45, 2), (60, 2), (61, 3), (365, 13)],
    )
    def test_started_months_are_billed(self, days, months):
        assert compute_total(Decimal("1000.00"), days) == Decimal("1000.00") * months


class TestCreateArrangement:

    @pytest.mark.asyncio
    async def test_creates_pending_arrangement_with_total_and_snapshot(
        self, db_session, available_property, sitter, homeowner
    ):
        arrangement = await arrangement_service.create_arrangement(
            db_session,
            sitter,
            _booking(available_property, date(2025, 1, 1), date(2025, 2, 15), house_rules="No pets"),
        )

        assert arrangement.status == "pending"
        assert arrangement.stay_days == 45
        assert arrangement.total_amount == Decimal("2000.00")
        assert arrangement.security_deposit == Decimal("200.00")
        assert arrangement.homeowner_id == homeowner.id
        assert arrangement.sitter_id == sitter.id
        assert arrangement.house_rules == "No pets"

    @pytest.mark.asyncio
    async def test_opening_message_goes_to_homeowner(
        self, db_session, available_property, sitter, homeowner
    ):
        arrangement = await arrangement_service.create_arrangement(
            db_session, sitter, _booking(available_property, date(2025, 1, 1), date(2025, 2, 15))
        )

        messages = (
            await db_session.execute(select(Message).where(Message.arrangement_id == arrangement.id))
        ).scalars().all()
        assert len(messages) == 1
        assert messages[0].sender_id == sitter.id
        assert messages[0].receiver_id == homeowner.id
        assert messages[0].body == settings.default_booking_message

    @pytest.mark.asyncio
    async def test_custom_message_is_used(self, db_session, available_property, sitter):
        arrangement = await arrangement_service.create_arrangement(
            db_session,
            sitter,
            _booking(available_property, date(2025, 1, 1), date(2025, 2, 15), message="  Hello!  "),
        )
        body = (
            await db_session.execute(
                select(Message.body).where(Message.arrangement_id == arrangement.id)
            )
        ).scalar_one()
        assert body == "Hello!"

    @pytest.mark.asyncio
    async def test_short_stay_rejected_and_nothing_written(
        self, db_session, available_property, sitter
    ):
        with pytest.raises(ValidationError) as exc_info:
            await arrangement_service.create_arrangement(
                db_session, sitter, _booking(available_property, date(2025, 1, 1), date(2025, 1, 10))
            )

        assert exc_info.value.context["reason"] == "min_stay"
        assert exc_info.value.context["stay_days"] == 9
        assert await _count(db_session, Arrangement) == 0
        assert await _count(db_session, Message) == 0

    @pytest.mark.asyncio
    async def test_reversed_dates_rejected(self, db_session, available_property, sitter):
        with pytest.raises(ValidationError, match="End date must be after start date"):
            await arrangement_service.create_arrangement(
                db_session, sitter, _booking(available_property, date(2025, 3, 1), date(2025, 2, 1))
            )

    @pytest.mark.asyncio
    async def test_overlap_rejected_with_conflicting_ids(
        self, db_session, available_property, sitter, make_user, make_arrangement
    ):
        existing = await make_arrangement(
            available_property, sitter, date(2025, 1, 1), date(2025, 2, 1)
        )
        other_sitter = await make_user()

        with pytest.raises(ConflictError) as exc_info:
            await arrangement_service.create_arrangement(
                db_session,
                other_sitter,
                _booking(available_property, date(2025, 2, 1), date(2025, 3, 15)),
            )

        assert exc_info.value.context["reason"] == "overlap"
        assert exc_info.value.context["conflicting_arrangements"] == [str(existing.id)]
        assert await _count(db_session, Arrangement) == 1

    @pytest.mark.asyncio
    async def test_only_sitters_can_book(self, db_session, available_property, homeowner):
        with pytest.raises(AuthorizationError):
            await arrangement_service.create_arrangement(
                db_session,
                homeowner,
                _booking(available_property, date(2025, 1, 1), date(2025, 2, 15)),
            )

    @pytest.mark.asyncio
    async def test_unknown_property(self, db_session, sitter):
        booking = BookingCreate(
            property_id=uuid.uuid4(), start_date=date(2025, 1, 1), end_date=date(2025, 2, 15)
        )
        with pytest.raises(NotFoundError):
            await arrangement_service.create_arrangement(db_session, sitter, booking)

    @pytest.mark.asyncio
    async def test_pending_property_not_bookable(
        self, db_session, make_property, homeowner, sitter
    ):
        prop = await make_property(homeowner, status="pending")
        with pytest.raises(ConflictError) as exc_info:
            await arrangement_service.create_arrangement(
                db_session, sitter, _booking(prop, date(2025, 1, 1), date(2025, 2, 15))
            )
        assert exc_info.value.context["reason"] == "property_status"


class TestUpdateStatus:

    @pytest.mark.asyncio
    async def test_confirm_occupies_property_and_closes_it(
        self, db_session, available_property, sitter, homeowner, make_user, make_arrangement
    ):
        arrangement = await make_arrangement(
            available_property, sitter, date(2025, 1, 1), date(2025, 2, 15)
        )

        updated = await arrangement_service.update_status(
            db_session, homeowner, arrangement.id, "confirmed"
        )
        assert updated.status == "confirmed"
        assert available_property.status == "occupied"

        # A later, non-overlapping request is refused at the status gate
        other_sitter = await make_user()
        with pytest.raises(ConflictError) as exc_info:
            await arrangement_service.create_arrangement(
                db_session,
                other_sitter,
                _booking(available_property, date(2025, 6, 1), date(2025, 7, 15)),
            )
        assert exc_info.value.context["reason"] == "property_status"

    @pytest.mark.asyncio
    async def test_second_confirmation_rejected(
        self, db_session, available_property, sitter, homeowner, make_user, make_arrangement
    ):
        first = await make_arrangement(available_property, sitter, date(2025, 1, 1), date(2025, 2, 15))
        second = await make_arrangement(
            available_property, await make_user(), date(2025, 6, 1), date(2025, 7, 15)
        )
        await arrangement_service.update_status(db_session, homeowner, first.id, "confirmed")

        with pytest.raises(ConflictError):
            await arrangement_service.update_status(db_session, homeowner, second.id, "confirmed")

    @pytest.mark.asyncio
    async def test_cancel_confirmed_releases_property(
        self, db_session, available_property, sitter, homeowner, make_arrangement
    ):
        arrangement = await make_arrangement(
            available_property, sitter, date(2025, 1, 1), date(2025, 2, 15)
        )
        await arrangement_service.update_status(db_session, homeowner, arrangement.id, "confirmed")
        await arrangement_service.update_status(db_session, homeowner, arrangement.id, "cancelled")

        assert available_property.status == "available"

    @pytest.mark.asyncio
    async def test_full_lifecycle_ends_available(
        self, db_session, available_property, sitter, homeowner, make_arrangement
    ):
        arrangement = await make_arrangement(
            available_property, sitter, date(2025, 1, 1), date(2025, 2, 15)
        )
        for status in ("confirmed", "active", "completed"):
            updated = await arrangement_service.update_status(
                db_session, homeowner, arrangement.id, status
            )
            assert updated.status == status

        assert available_property.status == "available"

    @pytest.mark.asyncio
    async def test_cancel_pending_leaves_status_alone(
        self, db_session, make_property, homeowner, sitter, make_arrangement
    ):
        prop = await make_property(homeowner, status="maintenance")
        arrangement = await make_arrangement(prop, sitter, date(2025, 1, 1), date(2025, 2, 15))

        await arrangement_service.update_status(db_session, homeowner, arrangement.id, "cancelled")
        assert prop.status == "maintenance"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "current,target",
        [
            ("pending", "completed"),
            ("pending", "active"),
            ("completed", "pending"),
            ("cancelled", "confirmed"),
            ("active", "cancelled"),
        ],
    )
    async def test_illegal_transition_conflicts(
        self, db_session, available_property, sitter, homeowner, make_arrangement, current, target
    ):
        arrangement = await make_arrangement(
            available_property, sitter, date(2025, 1, 1), date(2025, 2, 15), status=current
        )
        with pytest.raises(ConflictError, match="Cannot change arrangement status"):
            await arrangement_service.update_status(db_session, homeowner, arrangement.id, target)

    @pytest.mark.asyncio
    async def test_only_owner_or_admin_may_transition(
        self, db_session, available_property, sitter, make_user, make_arrangement
    ):
        arrangement = await make_arrangement(
            available_property, sitter, date(2025, 1, 1), date(2025, 2, 15)
        )
        stranger = await make_user(ROLE_HOMEOWNER)

        with pytest.raises(AuthorizationError):
            await arrangement_service.update_status(db_session, stranger, arrangement.id, "confirmed")
        with pytest.raises(AuthorizationError):
            await arrangement_service.update_status(db_session, sitter, arrangement.id, "cancelled")

        admin = await make_user(ROLE_ADMIN)
        updated = await arrangement_service.update_status(db_session, admin, arrangement.id, "confirmed")
        assert updated.status == "confirmed"

    @pytest.mark.asyncio
    async def test_unknown_arrangement(self, db_session, homeowner):
        with pytest.raises(NotFoundError):
            await arrangement_service.update_status(db_session, homeowner, uuid.uuid4(), "confirmed")


class TestCompetingBookings:
    """Two sitters asking for the same dates through separate sessions."""

    @pytest.mark.asyncio
    async def test_second_session_gets_conflict(
        self, session_factory, available_property, sitter, make_user
    ):
        rival = await make_user(name="Rival Sitter")
        outcomes = []

        for user, start, end in (
            (sitter, date(2025, 1, 1), date(2025, 2, 15)),
            (rival, date(2025, 2, 1), date(2025, 3, 15)),
        ):
            async with session_factory() as session:
                try:
                    await arrangement_service.create_arrangement(
                        session, user, _booking(available_property, start, end)
                    )
                    await session.commit()
                    outcomes.append("created")
                except ConflictError as e:
                    await session.rollback()
                    outcomes.append(e.context["reason"])

        assert outcomes == ["created", "overlap"]
        async with session_factory() as session:
            rows = (await session.execute(select(Arrangement))).scalars().all()
        assert [a.sitter_id for a in rows] == [sitter.id]

    @pytest.mark.asyncio
    async def test_storage_constraint_violation_maps_to_conflict(
        self, db_session, available_property, sitter
    ):
        violation = IntegrityError(
            "INSERT INTO arrangements", {}, Exception("ex_arrangements_no_overlap")
        )
        with patch.object(db_session, "flush", AsyncMock(side_effect=violation)):
            with pytest.raises(ConflictError) as exc_info:
                await arrangement_service.create_arrangement(
                    db_session,
                    sitter,
                    _booking(available_property, date(2025, 1, 1), date(2025, 2, 15)),
                )

        assert exc_info.value.context == {"reason": "overlap"}


class TestQueries:

    @pytest.mark.asyncio
    async def test_list_for_each_role(
        self, db_session, available_property, sitter, homeowner, make_user
    ):
        await arrangement_service.create_arrangement(
            db_session, sitter, _booking(available_property, date(2025, 1, 1), date(2025, 2, 15))
        )
        other = await make_user()

        sitter_view = await arrangement_service.list_for_user(db_session, sitter)
        assert len(sitter_view) == 1
        assert sitter_view[0].counterpart_name == "John Homeowner"
        assert sitter_view[0].property_title == "Garden Cottage"
        assert sitter_view[0].message_count == 1

        owner_view = await arrangement_service.list_for_user(db_session, homeowner)
        assert [a.counterpart_name for a in owner_view] == ["Maria Silva"]

        assert await arrangement_service.list_for_user(db_session, other) == []

    @pytest.mark.asyncio
    async def test_get_for_participant_rejects_outsiders(
        self, db_session, available_property, sitter, make_user, make_arrangement
    ):
        arrangement = await make_arrangement(
            available_property, sitter, date(2025, 1, 1), date(2025, 2, 15)
        )
        with pytest.raises(AuthorizationError):
            await arrangement_service.get_for_participant(db_session, await make_user(), arrangement.id)


@pytest.mark.asyncio
async def test_lock_property_selects_for_update(mock_db_session):
    prop = Property(id=uuid.uuid4())
    result = MagicMock()
    result.scalar_one_or_none.return_value = prop
    mock_db_session.execute.return_value = result

    assert await lock_property(mock_db_session, prop.id) is prop

    stmt = mock_db_session.execute.call_args[0][0]
    assert "FOR UPDATE" in str(stmt.compile(dialect=postgresql.dialect()))


def test_status_message():
    assert status_message("confirmed") == "Arrangement confirmed"
    assert status_message("cancelled") == "Arrangement cancelled"


class TestMessages:

    @pytest.mark.asyncio
    async def test_thread_routes_to_other_party(
        self, db_session, available_property, sitter, homeowner, make_arrangement
    ):
        arrangement = await make_arrangement(
            available_property, sitter, date(2025, 1, 1), date(2025, 2, 15)
        )

        sent = await message_service.send_message(db_session, sitter, arrangement.id, "Hi there")
        assert sent.receiver_id == homeowner.id
        assert sent.sender_name == "Maria Silva"

        reply = await message_service.send_message(db_session, homeowner, arrangement.id, " Welcome ")
        assert reply.receiver_id == sitter.id
        assert reply.message == "Welcome"

        thread = await message_service.list_messages(db_session, homeowner, arrangement.id)
        assert [m.message for m in thread] == ["Hi there", "Welcome"]

    @pytest.mark.asyncio
    async def test_empty_message_rejected(
        self, db_session, available_property, sitter, make_arrangement
    ):
        arrangement = await make_arrangement(
            available_property, sitter, date(2025, 1, 1), date(2025, 2, 15)
        )
        with pytest.raises(ValidationError):
            await message_service.send_message(db_session, sitter, arrangement.id, "   ")

    @pytest.mark.asyncio
    async def test_outsiders_and_admins_cannot_post(
        self, db_session, available_property, sitter, make_user, make_arrangement
    ):
        arrangement = await make_arrangement(
            available_property, sitter, date(2025, 1, 1), date(2025, 2, 15)
        )
        with pytest.raises(AuthorizationError):
            await message_service.send_message(db_session, await make_user(), arrangement.id, "Hi")

        admin = await make_user(ROLE_ADMIN)
        assert await message_service.list_messages(db_session, admin, arrangement.id) == []
        with pytest.raises(AuthorizationError):
            await message_service.send_message(db_session, admin, arrangement.id, "Hi")
