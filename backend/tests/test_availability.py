"""
How Sitter Backend — Availability Checker Tests
=================================================

What:  The pure decision in evaluate() and the read path check_availability().
How:   evaluate() is fed transient ORM objects (no session); the async path
       runs against the per-test SQLite database.
"""

import uuid
from datetime import date

import pytest
from sqlalchemy import func, select

from howsitter.exceptions import NotFoundError, ValidationError
from howsitter.models.arrangement import Arrangement
from howsitter.models.property import Property
from howsitter.services import availability
from howsitter.services.availability import (
    REASON_MAX_STAY,
    REASON_MIN_STAY,
    REASON_OVERLAP,
    REASON_PROPERTY_STATUS,
    check_availability,
    evaluate,
    ranges_overlap,
)


def _property(status="available", min_stay=30, max_stay=365) -> Property:
    return Property(
        id=uuid.uuid4(),
        status=status,
        min_stay_days=min_stay,
        max_stay_days=max_stay,
    )


def _arrangement(start, end, status="pending") -> Arrangement:
    return Arrangement(id=uuid.uuid4(), start_date=start, end_date=end, status=status)


class TestEvaluate:

    def test_short_stay_rejected_with_min_stay_reason(self):
        result = evaluate(_property(), date(2025, 1, 1), date(2025, 1, 10), [])
        assert not result.available
        assert result.reason == REASON_MIN_STAY
        assert result.stay_days == 9
        assert result.message == "Minimum stay is 30 days"

    def test_stay_within_bounds_is_available(self):
        result = evaluate(_property(), date(2025, 1, 1), date(2025, 2, 15), [])
        assert result.available
        assert result.stay_days == 45
        assert result.reason is None
        assert result.message == "Property is available for the selected dates"

    def test_exact_minimum_is_accepted(self):
        result = evaluate(_property(), date(2025, 1, 1), date(2025, 1, 31), [])
        assert result.available
        assert result.stay_days == 30

    def test_long_stay_rejected_with_max_stay_reason(self):
        result = evaluate(_property(max_stay=60), date(2025, 1, 1), date(2025, 6, 1), [])
        assert not result.available
        assert result.reason == REASON_MAX_STAY
        assert result.message == "Maximum stay is 60 days"

    @pytest.mark.parametrize("status", ["occupied", "pending", "maintenance", "unavailable"])
    def test_property_status_gate_runs_first(self, status):
        # Even a too-short stay reports the status problem
        result = evaluate(_property(status=status), date(2025, 1, 1), date(2025, 1, 5), [])
        assert not result.available
        assert result.reason == REASON_PROPERTY_STATUS
        assert status in result.message

    def test_overlapping_blocking_arrangement_conflicts(self):
        existing = _arrangement(date(2025, 1, 20), date(2025, 3, 1), status="confirmed")
        result = evaluate(_property(), date(2025, 1, 1), date(2025, 2, 15), [existing])
        assert not result.available
        assert result.reason == REASON_OVERLAP
        assert result.conflicting_ids == (existing.id,)

    def test_touching_ranges_conflict(self):
        existing = _arrangement(date(2025, 1, 1), date(2025, 2, 1))
        result = evaluate(_property(), date(2025, 2, 1), date(2025, 3, 15), [existing])
        assert not result.available
        assert result.reason == REASON_OVERLAP

    def test_terminal_arrangements_do_not_block(self):
        existing = [
            _arrangement(date(2025, 1, 1), date(2025, 3, 1), status="cancelled"),
            _arrangement(date(2025, 1, 1), date(2025, 3, 1), status="completed"),
        ]
        result = evaluate(_property(), date(2025, 1, 10), date(2025, 2, 20), existing)
        assert result.available

    def test_disjoint_ranges_do_not_block(self):
        existing = _arrangement(date(2025, 1, 1), date(2025, 1, 31))
        result = evaluate(_property(), date(2025, 2, 1), date(2025, 3, 15), [existing])
        assert result.available

    @pytest.mark.parametrize(
        "start,end",
        [(date(2025, 1, 10), date(2025, 1, 10)), (date(2025, 1, 10), date(2025, 1, 1))],
    )
    def test_start_not_before_end_raises(self, start, end):
        with pytest.raises(ValidationError, match="End date must be after start date"):
            evaluate(_property(), start, end, [])


def test_ranges_overlap_is_inclusive_on_both_ends():
    jan = (date(2025, 1, 1), date(2025, 1, 31))
    assert ranges_overlap(*jan, date(2025, 1, 31), date(2025, 2, 28))
    assert ranges_overlap(*jan, date(2024, 12, 1), date(2025, 1, 1))
    assert not ranges_overlap(*jan, date(2025, 2, 1), date(2025, 2, 28))


def test_overlap_clause_uses_bound_parameters():
    clause = availability.overlap_clause(date(2025, 1, 1), date(2025, 2, 1))
    sql = str(clause.compile())
    assert "arrangements.start_date <=" in sql
    assert "arrangements.end_date >=" in sql
    assert "2025" not in sql


class TestCheckAvailability:

    @pytest.mark.asyncio
    async def test_reports_overlap_from_database(
        self, db_session, available_property, sitter, make_arrangement
    ):
        await make_arrangement(available_property, sitter, date(2025, 3, 1), date(2025, 4, 1))

        result = await check_availability(
            db_session, available_property.id, date(2025, 3, 15), date(2025, 5, 1)
        )
        assert not result.available
        assert result.reason == REASON_OVERLAP

    @pytest.mark.asyncio
    async def test_cancelled_arrangement_frees_dates(
        self, db_session, available_property, sitter, make_arrangement
    ):
        await make_arrangement(
            available_property, sitter, date(2025, 3, 1), date(2025, 4, 1), status="cancelled"
        )

        result = await check_availability(
            db_session, available_property.id, date(2025, 3, 15), date(2025, 5, 1)
        )
        assert result.available
        assert result.stay_days == 47

    @pytest.mark.asyncio
    async def test_unknown_property(self, db_session):
        with pytest.raises(NotFoundError):
            await check_availability(db_session, uuid.uuid4(), date(2025, 1, 1), date(2025, 3, 1))

    @pytest.mark.asyncio
    async def test_repeated_checks_agree_and_write_nothing(
        self, db_session, session_factory, available_property, sitter, make_arrangement
    ):
        await make_arrangement(available_property, sitter, date(2025, 3, 1), date(2025, 4, 1))

        results = [
            await check_availability(
                db_session, available_property.id, date(2025, 3, 20), date(2025, 5, 1)
            )
            for _ in range(3)
        ]
        assert {(r.available, r.reason, r.stay_days) for r in results} == {
            (False, REASON_OVERLAP, 42)
        }
        assert not db_session.new and not db_session.dirty

        async with session_factory() as other:
            count = (await other.execute(select(func.count(Arrangement.id)))).scalar_one()
            status = (
                await other.execute(
                    select(Property.status).where(Property.id == available_property.id)
                )
            ).scalar_one()
        assert count == 1
        assert status == "available"
