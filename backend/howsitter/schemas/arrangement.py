"""
How Sitter Backend — Arrangement, Message & Sitter Schemas
============================================================

What:  API contract for bookings, arrangement status changes, message
       threads and the sitter directory.
Why:   The booking endpoint keeps the camelCase field names the web client
       already sends (propertyId, startDate, ...); aliases map them onto
       snake_case attributes so services never see the wire spelling.
"""

import uuid
from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from howsitter.models.arrangement import ARRANGEMENT_STATUSES
from howsitter.schemas.common import PaginationMeta


# ══════════════════════════════════════════════════════════════════════════
# Bookings
# ══════════════════════════════════════════════════════════════════════════


class BookingCreate(BaseModel):
    """Body of POST /api/bookings."""
    property_id: uuid.UUID = Field(alias="propertyId")
    start_date: date = Field(alias="startDate")
    end_date: date = Field(alias="endDate")
    message: Optional[str] = Field(default=None, max_length=5000)
    house_rules: Optional[str] = Field(default=None, alias="houseRules")
    special_instructions: Optional[str] = Field(default=None, alias="specialInstructions")

    model_config = {"populate_by_name": True}


class BookingCreatedResponse(BaseModel):
    """201 body of POST /api/bookings."""
    message: str = "Booking request sent successfully"
    arrangement_id: uuid.UUID = Field(serialization_alias="arrangementId")
    status: str
    total_amount: float = Field(serialization_alias="totalAmount")


class StatusUpdateRequest(BaseModel):
    status: str

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: str) -> str:
        if v not in ARRANGEMENT_STATUSES:
            raise ValueError(f"Invalid status '{v}'. Must be one of: {ARRANGEMENT_STATUSES}")
        return v


class StatusUpdateResponse(BaseModel):
    message: str
    status: str


class ArrangementItem(BaseModel):
    """
    One row of GET /api/arrangements.

    counterpart_* is the sitter for homeowners and the homeowner for sitters;
    admins see the sitter.
    """
    id: uuid.UUID
    property_id: Optional[uuid.UUID] = None
    property_title: Optional[str] = None
    property_location: Optional[str] = None
    property_city: Optional[str] = None
    sitter_id: uuid.UUID
    homeowner_id: uuid.UUID
    counterpart_name: Optional[str] = None
    counterpart_email: Optional[str] = None
    start_date: date
    end_date: date
    status: str
    total_amount: float
    security_deposit: float
    house_rules: Optional[str] = None
    special_instructions: Optional[str] = None
    message_count: int = 0
    created_at: Optional[datetime] = None


class ArrangementListResponse(BaseModel):
    arrangements: List[ArrangementItem]


# ══════════════════════════════════════════════════════════════════════════
# Messages
# ══════════════════════════════════════════════════════════════════════════


class MessageCreate(BaseModel):
    message: str = Field(max_length=5000)


class MessageItem(BaseModel):
    id: uuid.UUID
    arrangement_id: uuid.UUID
    sender_id: uuid.UUID
    receiver_id: uuid.UUID
    sender_name: Optional[str] = None
    message: str
    created_at: Optional[datetime] = None


class MessageSentResponse(BaseModel):
    message: str = "Message sent successfully"
    data: MessageItem


# ══════════════════════════════════════════════════════════════════════════
# Sitters
# ══════════════════════════════════════════════════════════════════════════


class SitterItem(BaseModel):
    id: uuid.UUID = Field(description="Sitter profile id")
    user_id: uuid.UUID
    name: str
    country: Optional[str] = None
    bio: Optional[str] = None
    avatar_url: Optional[str] = None
    rating: float
    total_reviews: int
    experience_years: int
    languages: Optional[str] = None
    credentials: Optional[str] = None
    is_available: bool


class SitterListResponse(BaseModel):
    sitters: List[SitterItem]
    pagination: PaginationMeta


class SitterDetailResponse(SitterItem):
    email: str
    completed_arrangements: int = 0
