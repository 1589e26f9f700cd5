"""
How Sitter Backend — Property Store
=====================================

What:  Listing CRUD, browse filters, owner dashboard, geo search, stats and
       saved properties.
Who:   Properties router, saved-properties router, AuthService (counts).

Filter compilation:
    PropertyFilter (schemas/property.py) is compiled option by option into
    bound SQLAlchemy predicates by build_filter_clauses(). Nothing from the
    query string is ever concatenated into SQL. The amenities option is a
    subquery (GROUP BY property_id HAVING count(DISTINCT amenity) = n), so it
    runs in the database and the pagination total stays exact.

Status rules on update:
    - 'occupied' is only ever set by confirming an arrangement
    - only an admin moves a listing out of 'pending' (verification)
    - a property with a confirmed/active arrangement stays 'occupied'

Delete:
    Refused (409) while any pending/confirmed/active arrangement exists.
    Otherwise amenities, images, saved entries are removed, historical
    arrangements are detached (property_id = NULL), and the row is deleted.
    Image files are returned to the caller for cleanup after commit.
"""

import logging
import math
from collections import defaultdict
from typing import Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from howsitter.exceptions import (
    AuthorizationError,
    ConflictError,
    DatabaseError,
    HowSitterError,
    NotFoundError,
    ValidationError,
)
from howsitter.models.arrangement import (
    ARRANGEMENT_COMPLETED,
    Arrangement,
    BLOCKING_STATUSES,
    OCCUPYING_STATUSES,
)
from howsitter.models.property import (
    PROPERTY_AVAILABLE,
    PROPERTY_OCCUPIED,
    PROPERTY_PENDING,
    Property,
    PropertyAmenity,
    PropertyImage,
    SavedProperty,
)
from howsitter.models.user import ROLE_ADMIN, ROLE_HOMEOWNER, User
from howsitter.schemas.common import PaginationMeta
from howsitter.schemas.property import (
    HomeownerInfo,
    ImageResponse,
    MyPropertiesResponse,
    MyPropertyItem,
    NearbyProperty,
    PropertyCreate,
    PropertyDetailResponse,
    PropertyFilter,
    PropertyListResponse,
    PropertyResponse,
    PropertyStatsResponse,
    PropertySummary,
    PropertyUpdate,
    StatusStat,
)
from howsitter.services.arrangement_service import lock_property

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0
KM_PER_DEGREE_LAT = 111.32
MAX_NEARBY_RESULTS = 50
SIMILAR_LIMIT = 6

# Optional columns an update may reset to NULL
CLEARABLE_FIELDS = frozenset({
    "square_feet", "website_url", "virtual_tour_url", "latitude", "longitude",
    "availability_start", "availability_end",
})


# ── Pure helpers ──────────────────────────────────────────────────────────

def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in kilometres."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = phi2 - phi1
    d_lambda = math.radians(lng2 - lng1)
    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(min(1.0, a)))


def bounding_box(lat: float, lng: float, radius_km: float) -> Tuple[float, float, Optional[float], Optional[float]]:
    """
    (min_lat, max_lat, min_lng, max_lng) enclosing the search circle.

    Longitude bounds are None when the box would wrap the antimeridian or a pole.
    """
    d_lat = radius_km / KM_PER_DEGREE_LAT
    min_lat, max_lat = max(-90.0, lat - d_lat), min(90.0, lat + d_lat)
    cos_lat = math.cos(math.radians(lat))
    if cos_lat < 1e-6:
        return min_lat, max_lat, None, None
    d_lng = radius_km / (KM_PER_DEGREE_LAT * cos_lat)
    if lng - d_lng < -180 or lng + d_lng > 180:
        return min_lat, max_lat, None, None
    return min_lat, max_lat, lng - d_lng, lng + d_lng


def build_filter_clauses(f: PropertyFilter) -> List[ColumnElement[bool]]:
    """Compile a PropertyFilter into parameterized WHERE predicates."""
    clauses: List[ColumnElement[bool]] = [Property.status == f.status]

    if f.city:
        clauses.append(Property.city.icontains(f.city, autoescape=True))
    if f.country:
        clauses.append(Property.country.icontains(f.country, autoescape=True))
    if f.min_price is not None:
        clauses.append(Property.price_per_month >= f.min_price)
    if f.max_price is not None:
        clauses.append(Property.price_per_month <= f.max_price)
    if f.min_bedrooms is not None:
        clauses.append(Property.bedrooms >= f.min_bedrooms)
    if f.max_bedrooms is not None:
        clauses.append(Property.bedrooms <= f.max_bedrooms)
    if f.property_type:
        clauses.append(Property.property_type == f.property_type)
    if f.min_stay is not None:
        clauses.append(Property.min_stay_days >= f.min_stay)
    if f.max_stay is not None:
        clauses.append(Property.max_stay_days <= f.max_stay)
    if f.search:
        clauses.append(
            or_(
                *(
                    col.icontains(f.search, autoescape=True)
                    for col in (
                        Property.title,
                        Property.description,
                        Property.location,
                        Property.city,
                        Property.country,
                    )
                )
            )
        )
    if f.amenities:
        having_all = (
            select(PropertyAmenity.property_id)
            .where(PropertyAmenity.amenity.in_(f.amenities))
            .group_by(PropertyAmenity.property_id)
            .having(func.count(func.distinct(PropertyAmenity.amenity)) == len(f.amenities))
        )
        clauses.append(Property.id.in_(having_all))

    return clauses


def _check_stay_bounds(min_days: int, max_days: int) -> None:
    if min_days > max_days:
        raise ValidationError(
            "Minimum stay cannot exceed maximum stay",
            field="min_stay_days",
            context={"min_stay_days": min_days, "max_stay_days": max_days},
        )


class PropertyService:
    """Business logic for listings. Stateless; sessions come from the caller."""

    # ── Access ────────────────────────────────────────────────────────────

    async def get_property(self, db: AsyncSession, property_id: UUID) -> Property:
        prop = await db.get(Property, property_id)
        if prop is None:
            raise NotFoundError("Property", str(property_id))
        return prop

    async def get_owned_property(
        self,
        db: AsyncSession,
        user: User,
        property_id: UUID,
        lock: bool = False,
    ) -> Property:
        """
        Load a property the caller may manage (its homeowner or an admin).

        With lock=True the row stays locked (FOR UPDATE) until commit.
        """
        if lock:
            prop = await lock_property(db, property_id)
        else:
            prop = await self.get_property(db, property_id)
        if user.role != ROLE_ADMIN and prop.homeowner_id != user.id:
            raise AuthorizationError("You can only manage your own properties")
        return prop

    # ── Enrichment ────────────────────────────────────────────────────────

    async def _amenities_for(
        self, db: AsyncSession, ids: Sequence[UUID]
    ) -> Dict[UUID, List[str]]:
        result: Dict[UUID, List[str]] = defaultdict(list)
        if not ids:
            return result
        rows = await db.execute(
            select(PropertyAmenity.property_id, PropertyAmenity.amenity)
            .where(PropertyAmenity.property_id.in_(ids))
            .order_by(PropertyAmenity.id)
        )
        for pid, amenity in rows.all():
            result[pid].append(amenity)
        return result

    async def _image_info_for(
        self, db: AsyncSession, ids: Sequence[UUID]
    ) -> Dict[UUID, Tuple[Optional[str], int]]:
        """property_id → (primary image url, image count)."""
        info: Dict[UUID, Tuple[Optional[str], int]] = {}
        if not ids:
            return info
        rows = await db.execute(
            select(PropertyImage.property_id, PropertyImage.image_url, PropertyImage.is_primary)
            .where(PropertyImage.property_id.in_(ids))
            .order_by(PropertyImage.display_order, PropertyImage.id)
        )
        for pid, url, is_primary in rows.all():
            primary, count = info.get(pid, (None, 0))
            # Fall back to the first image in display order when none is flagged
            if is_primary or count == 0:
                primary = url if is_primary or primary is None else primary
            info[pid] = (primary, count + 1)
        return info

    async def _summaries(
        self,
        db: AsyncSession,
        rows: Sequence[Tuple[Property, Optional[str]]],
    ) -> List[PropertySummary]:
        """Turn (Property, homeowner_name) rows into card views."""
        ids = [p.id for p, _ in rows]
        amenities = await self._amenities_for(db, ids)
        images = await self._image_info_for(db, ids)
        summaries = []
        for prop, owner_name in rows:
            primary, count = images.get(prop.id, (None, 0))
            summaries.append(
                PropertySummary(
                    **PropertyResponse.model_validate(prop).model_dump(),
                    amenities=amenities.get(prop.id, []),
                    primary_image=primary,
                    image_count=count,
                    homeowner_name=owner_name,
                )
            )
        return summaries

    async def _replace_amenities(
        self, db: AsyncSession, property_id: UUID, amenities: Sequence[str]
    ) -> None:
        await db.execute(delete(PropertyAmenity).where(PropertyAmenity.property_id == property_id))
        for amenity in amenities:
            db.add(PropertyAmenity(property_id=property_id, amenity=amenity))

    # ── Create ────────────────────────────────────────────────────────────

    async def create_property(
        self, db: AsyncSession, owner: User, data: PropertyCreate
    ) -> Property:
        """
        Create a listing in status 'pending' (awaiting verification).

        Raises:
            AuthorizationError: caller is not a homeowner
            ValidationError: min_stay_days > max_stay_days
        """
        if owner.role != ROLE_HOMEOWNER:
            raise AuthorizationError("Only homeowners can list properties")
        _check_stay_bounds(data.min_stay_days, data.max_stay_days)

        try:
            fields = data.model_dump(exclude={"amenities"})
            prop = Property(homeowner_id=owner.id, status=PROPERTY_PENDING, **fields)
            db.add(prop)
            await db.flush()
            for amenity in data.amenities:
                db.add(PropertyAmenity(property_id=prop.id, amenity=amenity))
            await db.flush()
        except HowSitterError:
            raise
        except Exception as e:
            logger.error("Unexpected error in create_property: %s", str(e), exc_info=True)
            raise DatabaseError(
                message="Failed to create property. Please try again.",
                context={"original_error": type(e).__name__},
            )

        logger.info("Property %s created by %s (%d amenities)", prop.id, owner.id, len(data.amenities))
        return prop

    # ── Browse ────────────────────────────────────────────────────────────

    async def list_properties(
        self,
        db: AsyncSession,
        filters: PropertyFilter,
    ) -> PropertyListResponse:
        """Filtered, paginated browse; newest listings first."""
        page, limit = filters.page, filters.limit
        clauses = build_filter_clauses(filters)
        try:
            total = (
                await db.execute(select(func.count(Property.id)).where(*clauses))
            ).scalar_one()

            stmt = (
                select(Property, User.name)
                .outerjoin(User, User.id == Property.homeowner_id)
                .where(*clauses)
                .order_by(Property.created_at.desc(), Property.id)
                .offset((page - 1) * limit)
                .limit(limit)
            )
            rows = (await db.execute(stmt)).all()
            properties = await self._summaries(db, rows)
        except Exception as e:
            logger.error("Failed to list properties: %s", str(e), exc_info=True)
            raise DatabaseError(message="Failed to fetch properties")

        return PropertyListResponse(
            properties=properties,
            pagination=PaginationMeta.build(page, limit, total),
            filters=filters.applied(),
        )

    async def get_property_detail(
        self, db: AsyncSession, property_id: UUID
    ) -> PropertyDetailResponse:
        """Listing with owner, amenities, images, history count and similar listings."""
        prop = await self.get_property(db, property_id)

        owner = await db.get(User, prop.homeowner_id)
        amenities = await self._amenities_for(db, [prop.id])
        images = (
            await db.execute(
                select(PropertyImage)
                .where(PropertyImage.property_id == prop.id)
                .order_by(PropertyImage.display_order, PropertyImage.id)
            )
        ).scalars().all()
        completed = (
            await db.execute(
                select(func.count(Arrangement.id)).where(
                    Arrangement.property_id == prop.id,
                    Arrangement.status == ARRANGEMENT_COMPLETED,
                )
            )
        ).scalar_one()
        similar_rows = (
            await db.execute(
                select(Property, User.name)
                .outerjoin(User, User.id == Property.homeowner_id)
                .where(
                    Property.city == prop.city,
                    Property.property_type == prop.property_type,
                    Property.status == PROPERTY_AVAILABLE,
                    Property.id != prop.id,
                )
                .order_by(Property.created_at.desc())
                .limit(SIMILAR_LIMIT)
            )
        ).all()

        return PropertyDetailResponse(
            **PropertyResponse.model_validate(prop).model_dump(),
            homeowner=HomeownerInfo.model_validate(owner) if owner else None,
            amenities=amenities.get(prop.id, []),
            images=[ImageResponse.model_validate(i) for i in images],
            completed_arrangements=completed,
            similar_properties=await self._summaries(db, similar_rows),
        )

    # ── Update ────────────────────────────────────────────────────────────

    async def _count_arrangements(
        self, db: AsyncSession, property_id: UUID, statuses: Sequence[str]
    ) -> int:
        stmt = select(func.count(Arrangement.id)).where(
            Arrangement.property_id == property_id,
            Arrangement.status.in_(statuses),
        )
        return (await db.execute(stmt)).scalar_one()

    async def _check_status_change(
        self, db: AsyncSession, user: User, prop: Property, new_status: str
    ) -> None:
        current = prop.status
        if new_status == current:
            return
        if new_status == PROPERTY_OCCUPIED:
            raise ValidationError(
                "A property becomes occupied only by confirming an arrangement",
                field="status",
            )
        if current == PROPERTY_PENDING and user.role != ROLE_ADMIN:
            raise AuthorizationError("Only an administrator can approve a pending listing")
        if current == PROPERTY_OCCUPIED and await self._count_arrangements(
            db, prop.id, tuple(OCCUPYING_STATUSES)
        ):
            raise ConflictError(
                "Property has a confirmed or active arrangement and must stay occupied",
                context={"property_id": str(prop.id)},
            )

    async def update_property(
        self,
        db: AsyncSession,
        user: User,
        property_id: UUID,
        data: PropertyUpdate,
    ) -> Property:
        """
        Partial update by the owner or an admin.

        The property row is locked so a status change cannot interleave with
        an arrangement transition on the same property.
        """
        prop = await self.get_owned_property(db, user, property_id, lock=True)
        changes = data.model_dump(exclude_unset=True)
        # Explicit nulls only clear optional columns
        changes = {
            k: v for k, v in changes.items() if v is not None or k in CLEARABLE_FIELDS
        }
        amenities = changes.pop("amenities", None)
        new_status = changes.pop("status", None)

        _check_stay_bounds(
            changes.get("min_stay_days", prop.min_stay_days),
            changes.get("max_stay_days", prop.max_stay_days),
        )
        if new_status is not None:
            await self._check_status_change(db, user, prop, new_status)

        try:
            for field, value in changes.items():
                setattr(prop, field, value)
            if new_status is not None:
                prop.status = new_status
            if amenities is not None:
                await self._replace_amenities(db, prop.id, amenities)
            await db.flush()
        except HowSitterError:
            raise
        except Exception as e:
            logger.error("Unexpected error in update_property: %s", str(e), exc_info=True)
            raise DatabaseError(
                message="Failed to update property. Please try again.",
                context={"original_error": type(e).__name__},
            )

        logger.info("Property %s updated by %s: %s", prop.id, user.id, sorted(changes))
        return prop

    # ── Delete ────────────────────────────────────────────────────────────

    async def delete_property(
        self, db: AsyncSession, user: User, property_id: UUID
    ) -> List[str]:
        """
        Delete a property without blocking arrangements.

        Returns:
            Stored image paths to remove from disk once the transaction commits.

        Raises:
            ConflictError: pending/confirmed/active arrangements exist
        """
        prop = await self.get_owned_property(db, user, property_id, lock=True)

        blocking = await self._count_arrangements(db, prop.id, tuple(BLOCKING_STATUSES))
        if blocking:
            raise ConflictError(
                "Cannot delete a property with pending, confirmed or active arrangements",
                context={"property_id": str(prop.id), "blocking_arrangements": blocking},
            )

        try:
            image_paths = list(
                (
                    await db.execute(
                        select(PropertyImage.image_url).where(PropertyImage.property_id == prop.id)
                    )
                ).scalars()
            )
            await db.execute(delete(PropertyAmenity).where(PropertyAmenity.property_id == prop.id))
            await db.execute(delete(PropertyImage).where(PropertyImage.property_id == prop.id))
            await db.execute(delete(SavedProperty).where(SavedProperty.property_id == prop.id))
            await db.execute(
                update(Arrangement)
                .where(Arrangement.property_id == prop.id)
                .values(property_id=None)
                .execution_options(synchronize_session="fetch")
            )
            await db.delete(prop)
            await db.flush()
        except Exception as e:
            logger.error("Unexpected error in delete_property: %s", str(e), exc_info=True)
            raise DatabaseError(
                message="Failed to delete property. Please try again.",
                context={"original_error": type(e).__name__},
            )

        logger.info("Property %s deleted by %s (%d images)", property_id, user.id, len(image_paths))
        return image_paths

    # ── Owner dashboard ───────────────────────────────────────────────────

    async def list_my_properties(
        self,
        db: AsyncSession,
        user: User,
        status: Optional[str] = None,
        page: int = 1,
        limit: int = 12,
    ) -> MyPropertiesResponse:
        """The caller's listings with arrangement counts, newest first."""
        clauses = [Property.homeowner_id == user.id]
        if status:
            clauses.append(Property.status == status)

        total = (
            await db.execute(select(func.count(Property.id)).where(*clauses))
        ).scalar_one()
        rows = (
            await db.execute(
                select(Property)
                .where(*clauses)
                .order_by(Property.created_at.desc(), Property.id)
                .offset((page - 1) * limit)
                .limit(limit)
            )
        ).scalars().all()

        ids = [p.id for p in rows]
        counts: Dict[UUID, Tuple[int, int]] = {}
        if ids:
            count_rows = await db.execute(
                select(
                    Arrangement.property_id,
                    func.count(Arrangement.id),
                    func.count(Arrangement.id).filter(
                        Arrangement.status.in_(tuple(OCCUPYING_STATUSES))
                    ),
                )
                .where(Arrangement.property_id.in_(ids))
                .group_by(Arrangement.property_id)
            )
            counts = {pid: (t, a) for pid, t, a in count_rows.all()}

        summaries = await self._summaries(db, [(p, user.name) for p in rows])
        items = [
            MyPropertyItem(
                **s.model_dump(),
                total_arrangements=counts.get(s.id, (0, 0))[0],
                active_arrangements=counts.get(s.id, (0, 0))[1],
            )
            for s in summaries
        ]
        return MyPropertiesResponse(
            properties=items,
            pagination=PaginationMeta.build(page, limit, total),
        )

    # ── Geo search ────────────────────────────────────────────────────────

    async def search_by_location(
        self, db: AsyncSession, lat: float, lng: float, radius_km: float = 10
    ) -> List[NearbyProperty]:
        """
        Available properties within `radius_km`, nearest first (max 50).

        A bounding box narrows the candidates in SQL; the exact Haversine
        distance is computed here.
        """
        min_lat, max_lat, min_lng, max_lng = bounding_box(lat, lng, radius_km)
        stmt = (
            select(Property, User.name)
            .outerjoin(User, User.id == Property.homeowner_id)
            .where(
                Property.status == PROPERTY_AVAILABLE,
                Property.latitude.is_not(None),
                Property.longitude.is_not(None),
                Property.latitude.between(min_lat, max_lat),
            )
        )
        if min_lng is not None:
            stmt = stmt.where(Property.longitude.between(min_lng, max_lng))

        candidates = []
        for prop, owner_name in (await db.execute(stmt)).all():
            distance = haversine_km(lat, lng, prop.latitude, prop.longitude)
            if distance <= radius_km:
                candidates.append((distance, prop, owner_name))
        candidates.sort(key=lambda c: c[0])
        candidates = candidates[:MAX_NEARBY_RESULTS]

        summaries = await self._summaries(db, [(p, n) for _, p, n in candidates])
        return [
            NearbyProperty(**s.model_dump(), distance_km=round(d, 2))
            for s, (d, _, _) in zip(summaries, candidates)
        ]

    # ── Stats ─────────────────────────────────────────────────────────────

    async def get_stats(
        self, db: AsyncSession, user: User, property_id: UUID
    ) -> PropertyStatsResponse:
        """Per-status arrangement count and mean duration (days)."""
        prop = await self.get_owned_property(db, user, property_id)
        rows = (
            await db.execute(
                select(Arrangement.status, Arrangement.start_date, Arrangement.end_date)
                .where(Arrangement.property_id == prop.id)
            )
        ).all()

        durations: Dict[str, List[int]] = defaultdict(list)
        for status, start, end in rows:
            durations[status].append((end - start).days)

        by_status = [
            StatusStat(
                status=status,
                count=len(days),
                avg_duration_days=round(sum(days) / len(days), 1),
            )
            for status, days in sorted(durations.items())
        ]
        return PropertyStatsResponse(
            property_id=prop.id,
            total_arrangements=len(rows),
            by_status=by_status,
        )

    # ── Saved properties ──────────────────────────────────────────────────

    async def list_saved(self, db: AsyncSession, user: User) -> List[PropertySummary]:
        stmt = (
            select(Property, User.name)
            .join(SavedProperty, SavedProperty.property_id == Property.id)
            .outerjoin(User, User.id == Property.homeowner_id)
            .where(SavedProperty.user_id == user.id)
            .order_by(SavedProperty.created_at.desc())
        )
        return await self._summaries(db, (await db.execute(stmt)).all())

    async def save_property(self, db: AsyncSession, user: User, property_id: UUID) -> None:
        """
        Bookmark a property.

        Raises NotFoundError for an unknown property, ValidationError when
        already saved.
        """
        await self.get_property(db, property_id)
        existing = await db.execute(
            select(SavedProperty.id).where(
                SavedProperty.user_id == user.id,
                SavedProperty.property_id == property_id,
            )
        )
        if existing.first() is not None:
            raise ValidationError("Property already saved", field="property_id")
        try:
            db.add(SavedProperty(user_id=user.id, property_id=property_id))
            await db.flush()
        except IntegrityError:
            raise ValidationError("Property already saved", field="property_id")

    async def unsave_property(self, db: AsyncSession, user: User, property_id: UUID) -> None:
        """Remove a bookmark; removing one that does not exist is a no-op."""
        await db.execute(
            delete(SavedProperty).where(
                SavedProperty.user_id == user.id,
                SavedProperty.property_id == property_id,
            )
        )


property_service = PropertyService()
