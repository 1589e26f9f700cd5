"""
How Sitter Backend — Property Models
======================================

What:  ORM models for `properties` and its satellite tables
       (`property_amenities`, `property_images`, `saved_properties`).
Why:   A property is the unit a sitter books; its `status` column is the
       occupancy gate checked before any date-range logic runs.
How:   Declarative models; satellites reference the property by FK and are
       removed explicitly by PropertyService.delete_property.
Who:   PropertyService, ImageService, AvailabilityChecker, ArrangementService.

Status values:
    available    → accepts new arrangement requests
    occupied     → set by confirming an arrangement (single occupant policy)
    pending      → new listing awaiting verification by an admin
    maintenance  → temporarily withdrawn by the owner
    unavailable  → withdrawn by the owner
"""

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from howsitter.database import Base


# ── Property Status ───────────────────────────────────────────────────────
PROPERTY_AVAILABLE = "available"
PROPERTY_OCCUPIED = "occupied"
PROPERTY_MAINTENANCE = "maintenance"
PROPERTY_PENDING = "pending"
PROPERTY_UNAVAILABLE = "unavailable"

PROPERTY_STATUSES = (
    PROPERTY_AVAILABLE,
    PROPERTY_OCCUPIED,
    PROPERTY_MAINTENANCE,
    PROPERTY_PENDING,
    PROPERTY_UNAVAILABLE,
)

PROPERTY_TYPES = ("house", "apartment", "villa", "condo", "cottage", "other")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Property(Base):
    """
    A home listed by a homeowner.

    Query Patterns:
        - Browse: WHERE status = 'available' AND <filters> ORDER BY created_at DESC
          → idx_properties_status_created
        - Owner dashboard: WHERE homeowner_id = :uid → idx_properties_homeowner
        - Geo search: latitude/longitude bounding box → idx_properties_lat_lng
    """

    __tablename__ = "properties"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    homeowner_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )

    # ── Listing ───────────────────────────────────────────────────────────
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    property_type: Mapped[str] = mapped_column(
        "type",
        String(50),
        nullable=False,
        default="house",
        server_default=text("'house'"),
    )
    bedrooms: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    bathrooms: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    square_feet: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    rules: Mapped[str] = mapped_column(Text, nullable=False, default="")
    website_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    virtual_tour_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # ── Location ──────────────────────────────────────────────────────────
    location: Mapped[str] = mapped_column(String(255), nullable=False)
    city: Mapped[str] = mapped_column(String(100), nullable=False)
    country: Mapped[str] = mapped_column(String(100), nullable=False)
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    # ── Money ─────────────────────────────────────────────────────────────
    price_per_month: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    security_deposit: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        default=Decimal("0"),
        server_default=text("0"),
    )

    # ── Stay Bounds ───────────────────────────────────────────────────────
    # Inclusive bounds on the number of nights of an arrangement
    min_stay_days: Mapped[int] = mapped_column(
        Integer, nullable=False, default=30, server_default=text("30"),
    )
    max_stay_days: Mapped[int] = mapped_column(
        Integer, nullable=False, default=365, server_default=text("365"),
    )

    # Advisory window shown on the listing; not enforced by the checker
    availability_start: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    availability_end: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=PROPERTY_PENDING,
        server_default=text("'pending'"),
    )

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
        Index("idx_properties_status_created", "status", "created_at"),
        Index("idx_properties_homeowner", "homeowner_id"),
        Index("idx_properties_city", "city"),
        Index("idx_properties_lat_lng", "latitude", "longitude"),
    )

    def __repr__(self) -> str:
        return f"<Property(id={self.id}, title='{self.title}', status='{self.status}')>"


class PropertyAmenity(Base):
    """One amenity tag ('wifi', 'pool', ...) of a property."""

    __tablename__ = "property_amenities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    property_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("properties.id", ondelete="CASCADE"),
        nullable=False,
    )
    amenity: Mapped[str] = mapped_column(String(100), nullable=False)

    __table_args__ = (
        UniqueConstraint("property_id", "amenity", name="uq_property_amenity"),
        Index("idx_property_amenities_amenity", "amenity"),
    )


class PropertyImage(Base):
    """
    An image attached to a property.

    image_url is either a path relative to the storage root (uploaded files)
    or an absolute URL (seeded data). Exactly one image per property has
    is_primary = True once the property has any image.
    """

    __tablename__ = "property_images"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    property_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("properties.id", ondelete="CASCADE"),
        nullable=False,
    )
    image_url: Mapped[str] = mapped_column(String(500), nullable=False)
    is_primary: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("false"),
    )
    display_order: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0"),
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        Index("idx_property_images_property_order", "property_id", "display_order"),
    )


class SavedProperty(Base):
    """A user's bookmark of a property."""

    __tablename__ = "saved_properties"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    property_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("properties.id", ondelete="CASCADE"),
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        UniqueConstraint("user_id", "property_id", name="uq_saved_property"),
    )
