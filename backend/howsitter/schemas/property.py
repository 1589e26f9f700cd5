"""
How Sitter Backend — Property Schemas
=======================================

What:  API contract for listings: create/update bodies, the typed browse
       filter, list/detail responses, images, availability and stats.
Why:   Keeps the HTTP shape independent from the ORM columns (e.g. the
       `type` column is exposed as `property_type`, Decimals as floats).

PropertyFilter:
    The browse endpoint takes one typed parameter object instead of loose
    query strings. Every recognised option is compiled by PropertyService
    into a bound SQLAlchemy predicate:

        city / country   → case-insensitive substring
        min/max_price    → price_per_month bounds
        min/max_bedrooms → bedroom bounds
        property_type    → exact match
        min_stay         → min_stay_days >= value
        max_stay         → max_stay_days <= value
        search           → substring over title, description, location, city, country
        status           → exact match (default "available")
        amenities        → property carries every listed amenity

    `page` and `limit` ride along in the same model; they are not echoed
    back as filters.
"""

import uuid
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from howsitter.models.property import PROPERTY_AVAILABLE, PROPERTY_STATUSES
from howsitter.schemas.common import PaginationMeta


def clean_amenities(values: Optional[List[str]]) -> List[str]:
    """Trim, drop blanks and collapse duplicates while keeping first-seen order."""
    seen: Dict[str, None] = {}
    for raw in values or []:
        item = raw.strip()
        if item and item not in seen:
            seen[item] = None
    return list(seen)


def is_stored_path(image_url: str) -> bool:
    """True for paths inside our storage (seeded data may hold absolute URLs)."""
    return not image_url.startswith(("http://", "https://", "/"))


def public_url(image_url: Optional[str]) -> Optional[str]:
    """URL clients use to fetch an image."""
    if image_url is None or not is_stored_path(image_url):
        return image_url
    return f"/api/files/{image_url}"


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class PropertyCreate(BaseModel):
    """
    Body of POST /api/properties.

    Defaults mirror the listing form: a one-bedroom house, 30-365 night stays,
    no deposit. The new listing always starts in status 'pending'.
    """
    title: str = Field(min_length=1, max_length=255)
    description: str = Field(min_length=1)
    location: str = Field(min_length=1, max_length=255)
    city: str = Field(min_length=1, max_length=100)
    country: str = Field(min_length=1, max_length=100)
    price_per_month: float = Field(gt=0)

    property_type: str = Field(default="house", max_length=50)
    bedrooms: int = Field(default=1, ge=0, le=100)
    bathrooms: int = Field(default=1, ge=0, le=100)
    security_deposit: float = Field(default=0, ge=0)
    square_feet: Optional[int] = Field(default=None, ge=0)
    min_stay_days: int = Field(default=30, ge=1)
    max_stay_days: int = Field(default=365, ge=1)
    rules: str = ""
    website_url: Optional[str] = Field(default=None, max_length=500)
    virtual_tour_url: Optional[str] = Field(default=None, max_length=500)
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    availability_start: Optional[date] = None
    availability_end: Optional[date] = None
    amenities: List[str] = Field(default_factory=list)

    @field_validator("amenities")
    @classmethod
    def normalize_amenities(cls, v: List[str]) -> List[str]:
        return clean_amenities(v)


class PropertyUpdate(BaseModel):
    """
    Body of PUT /api/properties/{id}. Only provided fields are written.

    `amenities`, when present, replaces the whole amenity set.
    """
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, min_length=1)
    location: Optional[str] = Field(default=None, min_length=1, max_length=255)
    city: Optional[str] = Field(default=None, min_length=1, max_length=100)
    country: Optional[str] = Field(default=None, min_length=1, max_length=100)
    price_per_month: Optional[float] = Field(default=None, gt=0)
    property_type: Optional[str] = Field(default=None, max_length=50)
    bedrooms: Optional[int] = Field(default=None, ge=0, le=100)
    bathrooms: Optional[int] = Field(default=None, ge=0, le=100)
    security_deposit: Optional[float] = Field(default=None, ge=0)
    square_feet: Optional[int] = Field(default=None, ge=0)
    min_stay_days: Optional[int] = Field(default=None, ge=1)
    max_stay_days: Optional[int] = Field(default=None, ge=1)
    rules: Optional[str] = None
    website_url: Optional[str] = Field(default=None, max_length=500)
    virtual_tour_url: Optional[str] = Field(default=None, max_length=500)
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    availability_start: Optional[date] = None
    availability_end: Optional[date] = None
    status: Optional[str] = None
    amenities: Optional[List[str]] = None

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v not in PROPERTY_STATUSES:
            raise ValueError(f"Invalid status '{v}'. Must be one of: {PROPERTY_STATUSES}")
        return v

    @field_validator("amenities")
    @classmethod
    def normalize_amenities(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        return None if v is None else clean_amenities(v)


class PropertyFilter(BaseModel):
    """Typed browse filter; see module docstring for the option semantics."""
    city: Optional[str] = None
    country: Optional[str] = None
    min_price: Optional[float] = Field(default=None, ge=0)
    max_price: Optional[float] = Field(default=None, ge=0)
    min_bedrooms: Optional[int] = Field(default=None, ge=0)
    max_bedrooms: Optional[int] = Field(default=None, ge=0)
    property_type: Optional[str] = None
    min_stay: Optional[int] = Field(default=None, ge=0)
    max_stay: Optional[int] = Field(default=None, ge=0)
    search: Optional[str] = None
    status: str = PROPERTY_AVAILABLE
    amenities: List[str] = Field(default_factory=list)

    # Paging; left out of applied()
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=12, ge=1, le=100)

    @field_validator("city", "country", "property_type", "search")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None

    @field_validator("amenities", mode="before")
    @classmethod
    def split_amenities(cls, v: Any) -> List[str]:
        # Accepts ?amenities=wifi,pool as well as ?amenities=wifi&amenities=pool
        if v is None:
            return []
        if isinstance(v, str):
            v = [v]
        return clean_amenities([part for item in v for part in str(item).split(",")])

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: str) -> str:
        if v not in PROPERTY_STATUSES:
            raise ValueError(f"Invalid status '{v}'. Must be one of: {PROPERTY_STATUSES}")
        return v

    def applied(self) -> Dict[str, Any]:
        """Filters echoed back to the client (unset options omitted)."""
        data = self.model_dump(exclude_none=True, exclude={"page", "limit"})
        if not data.get("amenities"):
            data.pop("amenities", None)
        return data


class AvailabilityRequest(BaseModel):
    """Body of POST /api/properties/{id}/check-availability."""
    start_date: date
    end_date: date


class ImageReorderRequest(BaseModel):
    """Image ids in their new display order (first → display_order 0)."""
    image_ids: List[int] = Field(min_length=1)

    @field_validator("image_ids")
    @classmethod
    def unique_ids(cls, v: List[int]) -> List[int]:
        if len(set(v)) != len(v):
            raise ValueError("image_ids must not contain duplicates")
        return v


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class PropertyResponse(BaseModel):
    """All listing columns of a property."""
    id: uuid.UUID
    homeowner_id: uuid.UUID
    title: str
    description: str
    property_type: str
    bedrooms: int
    bathrooms: int
    square_feet: Optional[int] = None
    rules: str = ""
    website_url: Optional[str] = None
    virtual_tour_url: Optional[str] = None
    location: str
    city: str
    country: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    price_per_month: float
    security_deposit: float
    min_stay_days: int
    max_stay_days: int
    availability_start: Optional[date] = None
    availability_end: Optional[date] = None
    status: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class PropertySummary(PropertyResponse):
    """Card view used by browse, saved and nearby listings."""
    amenities: List[str] = Field(default_factory=list)
    primary_image: Optional[str] = None
    image_count: int = 0
    homeowner_name: Optional[str] = None

    @field_validator("primary_image")
    @classmethod
    def primary_image_url(cls, v: Optional[str]) -> Optional[str]:
        return public_url(v)


class PropertyListResponse(BaseModel):
    properties: List[PropertySummary]
    pagination: PaginationMeta
    filters: Dict[str, Any] = Field(default_factory=dict)


class ImageResponse(BaseModel):
    id: int
    property_id: uuid.UUID
    image_url: str
    is_primary: bool
    display_order: int

    model_config = {"from_attributes": True}

    @field_validator("image_url")
    @classmethod
    def image_public_url(cls, v: str) -> str:
        return public_url(v)


class HomeownerInfo(BaseModel):
    id: uuid.UUID
    name: str
    email: str
    country: Optional[str] = None
    bio: Optional[str] = None
    avatar_url: Optional[str] = None

    model_config = {"from_attributes": True}


class PropertyDetailResponse(PropertyResponse):
    """
    GET /api/properties/{id}.

    similar_properties: up to 6 other available listings with the same city
    and type, newest first.
    """
    homeowner: Optional[HomeownerInfo] = None
    amenities: List[str] = Field(default_factory=list)
    images: List[ImageResponse] = Field(default_factory=list)
    completed_arrangements: int = 0
    similar_properties: List[PropertySummary] = Field(default_factory=list)


class PropertyCreatedResponse(BaseModel):
    message: str
    property: PropertyResponse


class MyPropertyItem(PropertySummary):
    total_arrangements: int = 0
    active_arrangements: int = 0


class MyPropertiesResponse(BaseModel):
    properties: List[MyPropertyItem]
    pagination: PaginationMeta


class NearbyProperty(PropertySummary):
    distance_km: float


class AvailabilityResponse(BaseModel):
    """
    Result of the availability check.

    `reason` is a machine-readable code when available is false:
    property_status, min_stay, max_stay or overlap.
    """
    available: bool
    message: str
    stay_days: Optional[int] = None
    reason: Optional[str] = None


class StatusStat(BaseModel):
    status: str
    count: int
    avg_duration_days: Optional[float] = None


class PropertyStatsResponse(BaseModel):
    property_id: uuid.UUID
    total_arrangements: int
    by_status: List[StatusStat]


class ImageUploadResponse(BaseModel):
    message: str
    images: List[ImageResponse]
