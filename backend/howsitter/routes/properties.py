"""
How Sitter Backend — Property Routes
======================================

What:  Listing CRUD, browse, geo search, images, availability check, stats
       and saved properties.
How:   Thin handlers: resolve the caller, delegate to PropertyService /
       ImageService / the availability checker, shape the response.

Route order:
    Fixed paths (/properties/search/location, /properties/user/my-properties)
    are declared before /properties/{property_id} so they are not parsed as ids.
"""

import logging
from typing import Annotated, List, Optional
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, File, Query, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from howsitter.database import get_db_session
from howsitter.dependencies import get_current_user, require_roles
from howsitter.models.user import ROLE_HOMEOWNER, User
from howsitter.schemas.common import ErrorResponse, MessageResponse
from howsitter.schemas.property import (
    AvailabilityRequest,
    AvailabilityResponse,
    ImageReorderRequest,
    ImageResponse,
    ImageUploadResponse,
    MyPropertiesResponse,
    NearbyProperty,
    PropertyCreate,
    PropertyCreatedResponse,
    PropertyDetailResponse,
    PropertyFilter,
    PropertyListResponse,
    PropertyResponse,
    PropertyStatsResponse,
    PropertySummary,
    PropertyUpdate,
)
from howsitter.services.availability import check_availability
from howsitter.services.image_service import image_service
from howsitter.services.property_service import property_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Properties"])

_errors = {
    400: {"description": "Business rule violated", "model": ErrorResponse},
    401: {"description": "Authentication required", "model": ErrorResponse},
    403: {"description": "Not the owner", "model": ErrorResponse},
    404: {"description": "Property not found", "model": ErrorResponse},
    409: {"description": "Conflicts with arrangements", "model": ErrorResponse},
}


# ── Browse & Create ───────────────────────────────────────────────────────

@router.get(
    "/properties",
    response_model=PropertyListResponse,
    summary="Browse properties",
    description=(
        "Filtered, paginated listing. Defaults to available properties, newest first. "
        "`amenities` accepts a comma-separated list; a property must have all of them."
    ),
)
async def list_properties(
    filters: Annotated[PropertyFilter, Query()],
    db: AsyncSession = Depends(get_db_session),
) -> PropertyListResponse:
    return await property_service.list_properties(db, filters)


@router.post(
    "/properties",
    status_code=201,
    response_model=PropertyCreatedResponse,
    responses=_errors,
    summary="List a new property (homeowners)",
)
async def create_property(
    data: PropertyCreate,
    user: User = Depends(require_roles(ROLE_HOMEOWNER)),
    db: AsyncSession = Depends(get_db_session),
) -> PropertyCreatedResponse:
    prop = await property_service.create_property(db, user, data)
    return PropertyCreatedResponse(
        message="Property created successfully and is pending verification",
        property=PropertyResponse.model_validate(prop),
    )


@router.get(
    "/properties/search/location",
    response_model=List[NearbyProperty],
    summary="Available properties near a point",
)
async def search_by_location(
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    radius: float = Query(default=10, gt=0, le=20_000, description="Radius in km"),
    db: AsyncSession = Depends(get_db_session),
) -> List[NearbyProperty]:
    return await property_service.search_by_location(db, lat, lng, radius)


@router.get(
    "/properties/user/my-properties",
    response_model=MyPropertiesResponse,
    summary="The caller's listings with arrangement counts",
)
async def my_properties(
    status: Optional[str] = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=12, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> MyPropertiesResponse:
    return await property_service.list_my_properties(db, user, status, page, limit)


@router.get(
    "/saved-properties",
    response_model=List[PropertySummary],
    summary="Properties bookmarked by the caller",
)
async def saved_properties(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> List[PropertySummary]:
    return await property_service.list_saved(db, user)


# ── Single Property ───────────────────────────────────────────────────────

@router.get(
    "/properties/{property_id}",
    response_model=PropertyDetailResponse,
    responses={404: _errors[404]},
    summary="Property detail",
)
async def get_property(
    property_id: UUID,
    db: AsyncSession = Depends(get_db_session),
) -> PropertyDetailResponse:
    return await property_service.get_property_detail(db, property_id)


@router.put(
    "/properties/{property_id}",
    response_model=PropertyResponse,
    responses=_errors,
    summary="Update a property (owner or admin)",
)
async def update_property(
    property_id: UUID,
    data: PropertyUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> PropertyResponse:
    prop = await property_service.update_property(db, user, property_id, data)
    return PropertyResponse.model_validate(prop)


@router.delete(
    "/properties/{property_id}",
    response_model=MessageResponse,
    responses=_errors,
    summary="Delete a property (owner or admin)",
    description="Refused with 409 while pending, confirmed or active arrangements exist.",
)
async def delete_property(
    property_id: UUID,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    image_paths = await property_service.delete_property(db, user, property_id)
    # Files go after the response, once the transaction has committed
    background_tasks.add_task(image_service.cleanup_files, image_paths)
    return MessageResponse(message="Property deleted successfully")


@router.post(
    "/properties/{property_id}/check-availability",
    response_model=AvailabilityResponse,
    responses={400: _errors[400], 404: _errors[404]},
    summary="Check whether a date range can be booked",
    description=(
        "Read-only. Returns available=false with a reason when the property is not "
        "accepting arrangements, the stay is outside its bounds, or the dates overlap "
        "an existing pending/confirmed/active arrangement (boundary days included)."
    ),
)
async def check_property_availability(
    property_id: UUID,
    data: AvailabilityRequest,
    db: AsyncSession = Depends(get_db_session),
) -> AvailabilityResponse:
    result = await check_availability(db, property_id, data.start_date, data.end_date)
    return AvailabilityResponse(
        available=result.available,
        message=result.message,
        stay_days=result.stay_days,
        reason=result.reason,
    )


@router.get(
    "/properties/{property_id}/stats",
    response_model=PropertyStatsResponse,
    responses=_errors,
    summary="Arrangement statistics (owner or admin)",
)
async def property_stats(
    property_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> PropertyStatsResponse:
    return await property_service.get_stats(db, user, property_id)


# ── Saved ─────────────────────────────────────────────────────────────────

@router.post(
    "/properties/{property_id}/save",
    response_model=MessageResponse,
    responses={400: _errors[400], 404: _errors[404]},
    summary="Bookmark a property",
)
async def save_property(
    property_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    await property_service.save_property(db, user, property_id)
    return MessageResponse(message="Property saved successfully")


@router.delete(
    "/properties/{property_id}/save",
    response_model=MessageResponse,
    summary="Remove a bookmark",
)
async def unsave_property(
    property_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    await property_service.unsave_property(db, user, property_id)
    return MessageResponse(message="Property removed from saved")


# ── Images ────────────────────────────────────────────────────────────────

@router.get(
    "/properties/{property_id}/images",
    response_model=List[ImageResponse],
    summary="Images of a property in display order",
)
async def list_images(
    property_id: UUID,
    db: AsyncSession = Depends(get_db_session),
) -> List[ImageResponse]:
    await property_service.get_property(db, property_id)
    images = await image_service.list_images(db, property_id)
    return [ImageResponse.model_validate(i) for i in images]


@router.post(
    "/properties/{property_id}/images",
    status_code=201,
    response_model=ImageUploadResponse,
    responses=_errors,
    summary="Upload images (owner)",
    description="JPEG, PNG, GIF or WebP; up to 10 files of at most 10MB each.",
)
async def upload_images(
    property_id: UUID,
    images: List[UploadFile] = File(..., description="Image files"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ImageUploadResponse:
    prop = await property_service.get_owned_property(db, user, property_id)
    files = []
    try:
        for upload in images:
            name = upload.filename or "upload"
            # Reported size first; the bytes are measured again after reading
            if upload.size:
                image_service.validate_size(name, upload.size)
            files.append((name, await upload.read()))
    finally:
        for upload in images:
            await upload.close()

    logger.info("Received %d image(s) for property %s", len(files), property_id)
    stored = await image_service.upload_images(db, prop, files)
    return ImageUploadResponse(
        message=f"{len(stored)} image(s) uploaded successfully",
        images=[ImageResponse.model_validate(i) for i in stored],
    )


@router.put(
    "/properties/{property_id}/images/reorder",
    response_model=List[ImageResponse],
    responses=_errors,
    summary="Reorder images (owner)",
)
async def reorder_images(
    property_id: UUID,
    data: ImageReorderRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> List[ImageResponse]:
    prop = await property_service.get_owned_property(db, user, property_id)
    images = await image_service.reorder(db, prop, data.image_ids)
    return [ImageResponse.model_validate(i) for i in images]


@router.put(
    "/properties/{property_id}/images/{image_id}/primary",
    response_model=ImageResponse,
    responses=_errors,
    summary="Set the primary image (owner)",
)
async def set_primary_image(
    property_id: UUID,
    image_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ImageResponse:
    prop = await property_service.get_owned_property(db, user, property_id)
    image = await image_service.set_primary(db, prop, image_id)
    return ImageResponse.model_validate(image)


@router.delete(
    "/properties/{property_id}/images/{image_id}",
    response_model=MessageResponse,
    responses=_errors,
    summary="Delete a non-primary image (owner)",
)
async def delete_image(
    property_id: UUID,
    image_id: int,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    prop = await property_service.get_owned_property(db, user, property_id)
    path = await image_service.delete_image(db, prop, image_id)
    if path:
        background_tasks.add_task(image_service.cleanup_file, path)
    return MessageResponse(message="Image deleted successfully")
