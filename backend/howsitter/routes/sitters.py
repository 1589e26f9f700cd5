"""
How Sitter Backend — Sitter Directory Routes
==============================================

What:  Public browse of available sitters and sitter detail.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from howsitter.database import get_db_session
from howsitter.schemas.arrangement import SitterDetailResponse, SitterListResponse
from howsitter.schemas.common import ErrorResponse
from howsitter.services.sitter_service import sitter_service

router = APIRouter(prefix="/api", tags=["Sitters"])


@router.get(
    "/sitters",
    response_model=SitterListResponse,
    summary="Available sitters, best rated first",
)
async def list_sitters(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=12, ge=1, le=100),
    db: AsyncSession = Depends(get_db_session),
) -> SitterListResponse:
    return await sitter_service.list_sitters(db, page=page, limit=limit)


@router.get(
    "/sitters/{sitter_id}",
    response_model=SitterDetailResponse,
    responses={404: {"description": "Sitter not found", "model": ErrorResponse}},
    summary="Sitter detail by profile id",
)
async def get_sitter(
    sitter_id: UUID,
    db: AsyncSession = Depends(get_db_session),
) -> SitterDetailResponse:
    return await sitter_service.get_sitter(db, sitter_id)
