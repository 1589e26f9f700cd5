"""
How Sitter Backend — Accounts & Profiles
==========================================

What:  Registration, login, password change and profile read/update.
Who:   Auth and profile routers.

Registration of a sitter also creates the sitter's marketplace profile in
the same transaction.
"""

import logging
from typing import Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from howsitter.exceptions import (
    AuthenticationError,
    DatabaseError,
    HowSitterError,
    ValidationError,
)
from howsitter.models.arrangement import Arrangement
from howsitter.models.property import Property
from howsitter.models.user import ROLE_HOMEOWNER, ROLE_SITTER, SitterProfile, User
from howsitter.schemas.auth import (
    ChangePasswordRequest,
    LoginRequest,
    ProfileResponse,
    ProfileUpdateRequest,
    RegisterRequest,
    SitterProfileResponse,
    UserResponse,
)
from howsitter.security import create_access_token, hash_password, verify_password

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid email or password"


class AuthService:

    async def register(self, db: AsyncSession, data: RegisterRequest) -> Tuple[User, str]:
        """
        Create an account and return it with a fresh session token.

        Raises:
            ValidationError: email already registered
        """
        existing = await db.execute(select(User.id).where(User.email == data.email))
        if existing.first() is not None:
            raise ValidationError("Email is already registered", field="email")

        try:
            user = User(
                email=data.email,
                password_hash=hash_password(data.password),
                name=data.name,
                role=data.role,
                country=data.country,
            )
            db.add(user)
            await db.flush()
            if user.role == ROLE_SITTER:
                db.add(SitterProfile(user_id=user.id))
                await db.flush()
        except IntegrityError:
            # Lost a race with a concurrent registration of the same email
            raise ValidationError("Email is already registered", field="email")
        except Exception as e:
            logger.error("Unexpected error in register: %s", str(e), exc_info=True)
            raise DatabaseError(
                message="Registration failed. Please try again.",
                context={"original_error": type(e).__name__},
            )

        logger.info("Registered %s user %s", user.role, user.id)
        return user, create_access_token(user.id, user.email, user.role)

    async def login(self, db: AsyncSession, data: LoginRequest) -> Tuple[User, str]:
        """Verify credentials; the same error covers unknown email and bad password."""
        user = (
            await db.execute(select(User).where(User.email == data.email))
        ).scalar_one_or_none()
        if user is None or not verify_password(data.password, user.password_hash):
            logger.info("Failed login for %s", data.email)
            raise AuthenticationError(INVALID_CREDENTIALS)
        return user, create_access_token(user.id, user.email, user.role)

    async def change_password(
        self, db: AsyncSession, user: User, data: ChangePasswordRequest
    ) -> None:
        if not verify_password(data.current_password, user.password_hash):
            raise ValidationError("Current password is incorrect", field="current_password")
        user.password_hash = hash_password(data.new_password)
        await db.flush()
        logger.info("Password changed for user %s", user.id)

    async def get_profile(self, db: AsyncSession, user: User) -> ProfileResponse:
        """User plus role-specific extras."""
        response = ProfileResponse(user=UserResponse.model_validate(user))

        if user.role == ROLE_HOMEOWNER:
            response.property_count = (
                await db.execute(
                    select(func.count(Property.id)).where(Property.homeowner_id == user.id)
                )
            ).scalar_one()
        elif user.role == ROLE_SITTER:
            profile = (
                await db.execute(select(SitterProfile).where(SitterProfile.user_id == user.id))
            ).scalar_one_or_none()
            if profile is not None:
                arrangement_count = (
                    await db.execute(
                        select(func.count(Arrangement.id)).where(Arrangement.sitter_id == user.id)
                    )
                ).scalar_one()
                response.sitter_profile = SitterProfileResponse.model_validate(profile)
                response.sitter_profile.arrangement_count = arrangement_count
        return response

    async def update_profile(
        self, db: AsyncSession, user: User, data: ProfileUpdateRequest
    ) -> User:
        changes = data.model_dump(exclude_unset=True)
        if changes.get("name") is None:
            changes.pop("name", None)
        try:
            for field, value in changes.items():
                setattr(user, field, value)
            await db.flush()
        except HowSitterError:
            raise
        except Exception as e:
            logger.error("Unexpected error in update_profile: %s", str(e), exc_info=True)
            raise DatabaseError(message="Failed to update profile. Please try again.")
        logger.info("Profile of %s updated: %s", user.id, sorted(changes))
        return user


auth_service = AuthService()
