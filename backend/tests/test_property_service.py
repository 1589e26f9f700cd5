"""
How Sitter Backend — Property Service Tests
=============================================

What:  Browse filters, the status rules on update, the delete guard, geo
       helpers, the owner dashboard and saved properties.
"""

import uuid
from datetime import date

import pytest
from sqlalchemy import select

from howsitter.exceptions import AuthorizationError, ConflictError, NotFoundError, ValidationError
from howsitter.models.arrangement import Arrangement
from howsitter.models.property import Property, PropertyAmenity
from howsitter.models.user import ROLE_ADMIN, ROLE_HOMEOWNER
from howsitter.schemas.property import PropertyCreate, PropertyFilter, PropertyUpdate
from howsitter.services.property_service import (
    bounding_box,
    build_filter_clauses,
    haversine_km,
    property_service,
)


class TestGeoHelpers:

    def test_haversine_zero_for_same_point(self):
        assert haversine_km(1.29, 103.85, 1.29, 103.85) == pytest.approx(0.0)

    def test_haversine_known_distance(self):
        # Singapore → Kuala Lumpur, roughly 309 km
        assert haversine_km(1.3521, 103.8198, 3.1390, 101.6869) == pytest.approx(309, abs=5)

    def test_bounding_box_contains_circle(self):
        min_lat, max_lat, min_lng, max_lng = bounding_box(1.3, 103.8, 10)
        assert min_lat < 1.3 < max_lat
        assert min_lng < 103.8 < max_lng
        assert max_lat - min_lat == pytest.approx(2 * 10 / 111.32)

    def test_bounding_box_drops_longitude_across_antimeridian(self):
        _, _, min_lng, max_lng = bounding_box(0.0, 179.99, 50)
        assert min_lng is None and max_lng is None


class TestFilterCompilation:

    def test_default_filter_is_status_only(self):
        assert len(build_filter_clauses(PropertyFilter())) == 1

    def test_values_are_bound_not_inlined(self):
        f = PropertyFilter(city="Singa'pore", search="pool; DROP TABLE users")
        sql = " ".join(str(c.compile()) for c in build_filter_clauses(f))
        assert "DROP TABLE" not in sql
        assert "Singa'pore" not in sql

    def test_amenities_accept_comma_list(self):
        f = PropertyFilter(amenities="wifi, pool,wifi")
        assert f.amenities == ["wifi", "pool"]
        assert f.applied() == {"status": "available", "amenities": ["wifi", "pool"]}


class TestListProperties:

    @pytest.mark.asyncio
    async def test_filters_by_city_price_and_amenities(
        self, db_session, homeowner, make_property
    ):
        await make_property(homeowner, title="Pool House", price_per_month=3000, amenities=["wifi", "pool"])
        await make_property(homeowner, title="Cheap Flat", price_per_month=800, amenities=["wifi"])
        await make_property(homeowner, title="Lisbon Loft", city="Lisbon", country="Portugal")
        await make_property(homeowner, title="Unverified", status="pending", amenities=["wifi", "pool"])

        result = await property_service.list_properties(
            db_session, PropertyFilter(amenities=["wifi", "pool"])
        )
        assert [p.title for p in result.properties] == ["Pool House"]
        assert result.properties[0].amenities == ["wifi", "pool"]
        assert result.properties[0].homeowner_name == "John Homeowner"

        result = await property_service.list_properties(
            db_session, PropertyFilter(city="singa", max_price=1000)
        )
        assert [p.title for p in result.properties] == ["Cheap Flat"]

        result = await property_service.list_properties(db_session, PropertyFilter(search="loft"))
        assert [p.title for p in result.properties] == ["Lisbon Loft"]

    @pytest.mark.asyncio
    async def test_pagination_total_is_exact(self, db_session, homeowner, make_property):
        for i in range(5):
            await make_property(homeowner, title=f"Listing {i}")

        result = await property_service.list_properties(db_session, PropertyFilter(page=2, limit=2))
        assert len(result.properties) == 2
        assert result.pagination.total == 5
        assert result.pagination.pages == 3

    @pytest.mark.asyncio
    async def test_detail_includes_similar_listings(
        self, db_session, homeowner, make_property, available_property
    ):
        twin = await make_property(homeowner, title="Twin Cottage")
        await make_property(homeowner, title="Villa", property_type="villa")

        detail = await property_service.get_property_detail(db_session, available_property.id)
        assert detail.homeowner.name == "John Homeowner"
        assert detail.amenities == ["wifi", "garden"]
        assert [p.id for p in detail.similar_properties] == [twin.id]

    @pytest.mark.asyncio
    async def test_unknown_property(self, db_session):
        with pytest.raises(NotFoundError):
            await property_service.get_property_detail(db_session, uuid.uuid4())


class TestCreateAndUpdate:

    @pytest.mark.asyncio
    async def test_create_starts_pending(self, db_session, homeowner):
        data = PropertyCreate(
            title="Sea View",
            description="Flat by the sea",
            location="East Coast",
            city="Singapore",
            country="Singapore",
            price_per_month=1800,
            amenities=["wifi", " wifi ", "ac"],
        )
        prop = await property_service.create_property(db_session, homeowner, data)

        assert prop.status == "pending"
        amenities = (
            await db_session.execute(
                select(PropertyAmenity.amenity).where(PropertyAmenity.property_id == prop.id)
            )
        ).scalars().all()
        assert sorted(amenities) == ["ac", "wifi"]

    @pytest.mark.asyncio
    async def test_create_requires_homeowner(self, db_session, sitter):
        data = PropertyCreate(
            title="x", description="x", location="x", city="x", country="x", price_per_month=1
        )
        with pytest.raises(AuthorizationError):
            await property_service.create_property(db_session, sitter, data)

    @pytest.mark.asyncio
    async def test_create_rejects_inverted_stay_bounds(self, db_session, homeowner):
        data = PropertyCreate(
            title="x", description="x", location="x", city="x", country="x",
            price_per_month=1, min_stay_days=90, max_stay_days=60,
        )
        with pytest.raises(ValidationError):
            await property_service.create_property(db_session, homeowner, data)

    @pytest.mark.asyncio
    async def test_owner_updates_fields_and_amenities(
        self, db_session, homeowner, available_property
    ):
        prop = await property_service.update_property(
            db_session,
            homeowner,
            available_property.id,
            PropertyUpdate(title="Renamed", amenities=["pool"]),
        )
        assert prop.title == "Renamed"
        detail = await property_service.get_property_detail(db_session, prop.id)
        assert detail.amenities == ["pool"]

    @pytest.mark.asyncio
    async def test_other_homeowner_cannot_update(
        self, db_session, make_user, available_property
    ):
        stranger = await make_user(ROLE_HOMEOWNER)
        with pytest.raises(AuthorizationError):
            await property_service.update_property(
                db_session, stranger, available_property.id, PropertyUpdate(title="Mine")
            )

    @pytest.mark.asyncio
    async def test_occupied_cannot_be_set_by_hand(
        self, db_session, homeowner, available_property
    ):
        with pytest.raises(ValidationError):
            await property_service.update_property(
                db_session, homeowner, available_property.id, PropertyUpdate(status="occupied")
            )

    @pytest.mark.asyncio
    async def test_only_admin_approves_pending(self, db_session, homeowner, make_user, make_property):
        prop = await make_property(homeowner, status="pending")
        with pytest.raises(AuthorizationError):
            await property_service.update_property(
                db_session, homeowner, prop.id, PropertyUpdate(status="available")
            )

        admin = await make_user(ROLE_ADMIN)
        updated = await property_service.update_property(
            db_session, admin, prop.id, PropertyUpdate(status="available")
        )
        assert updated.status == "available"

    @pytest.mark.asyncio
    async def test_occupied_with_confirmed_arrangement_stays_occupied(
        self, db_session, homeowner, sitter, make_property, make_arrangement
    ):
        prop = await make_property(homeowner, status="occupied")
        await make_arrangement(prop, sitter, date(2025, 1, 1), date(2025, 2, 15), status="confirmed")

        with pytest.raises(ConflictError):
            await property_service.update_property(
                db_session, homeowner, prop.id, PropertyUpdate(status="available")
            )


class TestDelete:

    @pytest.mark.asyncio
    async def test_blocked_by_pending_then_allowed_after_cancel(
        self, db_session, homeowner, sitter, available_property, make_arrangement
    ):
        arrangement = await make_arrangement(
            available_property, sitter, date(2025, 1, 1), date(2025, 2, 15)
        )

        with pytest.raises(ConflictError) as exc_info:
            await property_service.delete_property(db_session, homeowner, available_property.id)
        assert exc_info.value.context["blocking_arrangements"] == 1

        arrangement.status = "cancelled"
        await db_session.commit()

        paths = await property_service.delete_property(db_session, homeowner, available_property.id)
        await db_session.commit()

        assert paths == []
        assert await db_session.get(Property, available_property.id) is None
        # Historical arrangements survive, detached from the listing
        property_id = (
            await db_session.execute(
                select(Arrangement.property_id).where(Arrangement.id == arrangement.id)
            )
        ).scalar_one()
        assert property_id is None

    @pytest.mark.asyncio
    async def test_sitter_cannot_delete(self, db_session, sitter, available_property):
        with pytest.raises(AuthorizationError):
            await property_service.delete_property(db_session, sitter, available_property.id)


class TestDashboardAndStats:

    @pytest.mark.asyncio
    async def test_my_properties_counts_arrangements(
        self, db_session, homeowner, sitter, make_property, available_property, make_arrangement
    ):
        await make_property(homeowner, title="Second", status="maintenance")
        await make_arrangement(available_property, sitter, date(2025, 1, 1), date(2025, 2, 1), status="completed")
        await make_arrangement(available_property, sitter, date(2025, 3, 1), date(2025, 4, 15), status="confirmed")

        result = await property_service.list_my_properties(db_session, homeowner)
        assert result.pagination.total == 2
        by_title = {p.title: p for p in result.properties}
        assert by_title["Garden Cottage"].total_arrangements == 2
        assert by_title["Garden Cottage"].active_arrangements == 1
        assert by_title["Second"].total_arrangements == 0

        maintenance = await property_service.list_my_properties(db_session, homeowner, status="maintenance")
        assert [p.title for p in maintenance.properties] == ["Second"]

    @pytest.mark.asyncio
    async def test_stats_group_by_status(
        self, db_session, homeowner, sitter, available_property, make_arrangement
    ):
        await make_arrangement(available_property, sitter, date(2025, 1, 1), date(2025, 1, 31), status="completed")
        await make_arrangement(available_property, sitter, date(2025, 3, 1), date(2025, 4, 30), status="completed")
        await make_arrangement(available_property, sitter, date(2025, 6, 1), date(2025, 7, 15))

        stats = await property_service.get_stats(db_session, homeowner, available_property.id)
        assert stats.total_arrangements == 3
        by_status = {s.status: s for s in stats.by_status}
        assert by_status["completed"].count == 2
        assert by_status["completed"].avg_duration_days == 45.0
        assert by_status["pending"].count == 1


class TestLocationSearch:

    @pytest.mark.asyncio
    async def test_nearest_first_within_radius(self, db_session, homeowner, make_property):
        near = await make_property(homeowner, title="Near", latitude=1.3000, longitude=103.8000)
        farther = await make_property(homeowner, title="Farther", latitude=1.3400, longitude=103.8400)
        await make_property(homeowner, title="Far", latitude=3.1390, longitude=101.6869)
        await make_property(homeowner, title="No coordinates")

        results = await property_service.search_by_location(db_session, 1.3001, 103.8001, radius_km=10)

        assert [r.id for r in results] == [near.id, farther.id]
        assert results[0].distance_km < results[1].distance_km


class TestSavedProperties:

    @pytest.mark.asyncio
    async def test_save_list_and_unsave(self, db_session, sitter, available_property):
        await property_service.save_property(db_session, sitter, available_property.id)

        saved = await property_service.list_saved(db_session, sitter)
        assert [p.id for p in saved] == [available_property.id]

        with pytest.raises(ValidationError, match="already saved"):
            await property_service.save_property(db_session, sitter, available_property.id)

        await property_service.unsave_property(db_session, sitter, available_property.id)
        assert await property_service.list_saved(db_session, sitter) == []
        # Removing twice is harmless
        await property_service.unsave_property(db_session, sitter, available_property.id)
