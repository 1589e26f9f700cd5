"""
How Sitter Backend — Booking & Arrangement Routes
===================================================

What:  Booking requests, the caller's arrangements, status transitions and
       the per-arrangement message thread.

Flow:
    sitter  POST /api/bookings                      → pending arrangement + opening message
    owner   PUT  /api/arrangements/{id}/status      → confirmed / active / completed / cancelled
    both    GET|POST /api/arrangements/{id}/messages
"""

import logging
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from howsitter.database import get_db_session
from howsitter.dependencies import get_current_user
from howsitter.models.user import User
from howsitter.schemas.arrangement import (
    ArrangementListResponse,
    BookingCreate,
    BookingCreatedResponse,
    MessageCreate,
    MessageItem,
    MessageSentResponse,
    StatusUpdateRequest,
    StatusUpdateResponse,
)
from howsitter.schemas.common import ErrorResponse
from howsitter.services.arrangement_service import arrangement_service, status_message
from howsitter.services.message_service import message_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Arrangements"])

_errors = {
    400: {"description": "Invalid dates or stay length", "model": ErrorResponse},
    401: {"description": "Authentication required", "model": ErrorResponse},
    403: {"description": "Not allowed for this user", "model": ErrorResponse},
    404: {"description": "Property or arrangement not found", "model": ErrorResponse},
    409: {"description": "Dates unavailable or transition not allowed", "model": ErrorResponse},
}


@router.post(
    "/bookings",
    status_code=201,
    response_model=BookingCreatedResponse,
    responses=_errors,
    summary="Request a booking (sitters)",
    description=(
        "Creates a pending arrangement for the date range and posts the opening "
        "message to the homeowner. The total is the monthly price times the number "
        "of started billing months."
    ),
)
async def create_booking(
    data: BookingCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> BookingCreatedResponse:
    arrangement = await arrangement_service.create_arrangement(db, user, data)
    return BookingCreatedResponse(
        arrangement_id=arrangement.id,
        status=arrangement.status,
        total_amount=arrangement.total_amount,
    )


@router.get(
    "/arrangements",
    response_model=ArrangementListResponse,
    summary="Arrangements visible to the caller",
)
async def list_arrangements(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ArrangementListResponse:
    return ArrangementListResponse(
        arrangements=await arrangement_service.list_for_user(db, user)
    )


@router.put(
    "/arrangements/{arrangement_id}/status",
    response_model=StatusUpdateResponse,
    responses=_errors,
    summary="Change the status of an arrangement (property owner)",
)
async def update_arrangement_status(
    arrangement_id: UUID,
    data: StatusUpdateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> StatusUpdateResponse:
    arrangement = await arrangement_service.update_status(db, user, arrangement_id, data.status)
    return StatusUpdateResponse(
        message=status_message(arrangement.status),
        status=arrangement.status,
    )


@router.get(
    "/arrangements/{arrangement_id}/messages",
    response_model=List[MessageItem],
    responses={403: _errors[403], 404: _errors[404]},
    summary="Message thread of an arrangement",
)
async def list_messages(
    arrangement_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> List[MessageItem]:
    return await message_service.list_messages(db, user, arrangement_id)


@router.post(
    "/arrangements/{arrangement_id}/messages",
    status_code=201,
    response_model=MessageSentResponse,
    responses={400: _errors[400], 403: _errors[403], 404: _errors[404]},
    summary="Post a message to the other party",
)
async def send_message(
    arrangement_id: UUID,
    data: MessageCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> MessageSentResponse:
    item = await message_service.send_message(db, user, arrangement_id, data.message)
    return MessageSentResponse(data=item)
