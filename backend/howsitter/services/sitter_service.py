"""
How Sitter Backend — Sitter Directory
=======================================

What:  Public listing of available sitters (best rated first) and sitter detail.
"""

import logging
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from howsitter.exceptions import NotFoundError
from howsitter.models.arrangement import ARRANGEMENT_COMPLETED, Arrangement
from howsitter.models.user import SitterProfile, User
from howsitter.schemas.arrangement import (
    SitterDetailResponse,
    SitterItem,
    SitterListResponse,
)
from howsitter.schemas.common import PaginationMeta

logger = logging.getLogger(__name__)


def _item_fields(profile: SitterProfile, user: User) -> dict:
    return dict(
        id=profile.id,
        user_id=user.id,
        name=user.name,
        country=user.country,
        bio=user.bio,
        avatar_url=user.avatar_url,
        rating=profile.rating,
        total_reviews=profile.total_reviews,
        experience_years=profile.experience_years,
        languages=profile.languages,
        credentials=profile.credentials,
        is_available=profile.is_available,
    )


class SitterService:

    async def list_sitters(
        self, db: AsyncSession, page: int = 1, limit: int = 12
    ) -> SitterListResponse:
        where = SitterProfile.is_available.is_(True)
        total = (
            await db.execute(select(func.count(SitterProfile.id)).where(where))
        ).scalar_one()
        rows = (
            await db.execute(
                select(SitterProfile, User)
                .join(User, User.id == SitterProfile.user_id)
                .where(where)
                .order_by(
                    SitterProfile.rating.desc(),
                    SitterProfile.total_reviews.desc(),
                    SitterProfile.id,
                )
                .offset((page - 1) * limit)
                .limit(limit)
            )
        ).all()
        return SitterListResponse(
            sitters=[SitterItem(**_item_fields(p, u)) for p, u in rows],
            pagination=PaginationMeta.build(page, limit, total),
        )

    async def get_sitter(self, db: AsyncSession, sitter_id: UUID) -> SitterDetailResponse:
        """Sitter by profile id, with their completed arrangement count."""
        row = (
            await db.execute(
                select(SitterProfile, User)
                .join(User, User.id == SitterProfile.user_id)
                .where(SitterProfile.id == sitter_id)
            )
        ).first()
        if row is None:
            raise NotFoundError("Sitter", str(sitter_id))
        profile, user = row

        completed = (
            await db.execute(
                select(func.count(Arrangement.id)).where(
                    Arrangement.sitter_id == user.id,
                    Arrangement.status == ARRANGEMENT_COMPLETED,
                )
            )
        ).scalar_one()
        return SitterDetailResponse(
            **_item_fields(profile, user),
            email=user.email,
            completed_arrangements=completed,
        )


sitter_service = SitterService()
