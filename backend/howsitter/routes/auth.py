"""
How Sitter Backend — Auth & Profile Routes
============================================

What:  Registration, login, token verification, password change and the
       caller's own profile.
How:   Sessions are stateless bearer tokens (JWT). Register and login both
       answer with a fresh token plus the public user view.
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from howsitter.database import get_db_session
from howsitter.dependencies import get_current_user
from howsitter.models.user import User
from howsitter.schemas.auth import (
    AuthResponse,
    ChangePasswordRequest,
    LoginRequest,
    ProfileResponse,
    ProfileUpdateRequest,
    RegisterRequest,
    UserResponse,
)
from howsitter.schemas.common import ErrorResponse, MessageResponse
from howsitter.services.auth_service import auth_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Auth"])


@router.post(
    "/auth/register",
    status_code=201,
    response_model=AuthResponse,
    responses={400: {"description": "Email already registered", "model": ErrorResponse}},
    summary="Create an account",
    description="Self-service roles are homeowner and sitter. Sitters also get a sitter profile.",
)
async def register(
    data: RegisterRequest,
    db: AsyncSession = Depends(get_db_session),
) -> AuthResponse:
    user, token = await auth_service.register(db, data)
    return AuthResponse(
        message="User registered successfully",
        token=token,
        user=UserResponse.model_validate(user),
    )


@router.post(
    "/auth/login",
    response_model=AuthResponse,
    responses={401: {"description": "Invalid credentials", "model": ErrorResponse}},
    summary="Log in with email and password",
)
async def login(
    data: LoginRequest,
    db: AsyncSession = Depends(get_db_session),
) -> AuthResponse:
    user, token = await auth_service.login(db, data)
    return AuthResponse(
        message="Login successful",
        token=token,
        user=UserResponse.model_validate(user),
    )


@router.get(
    "/auth/verify",
    response_model=UserResponse,
    responses={401: {"description": "Missing, invalid or expired token", "model": ErrorResponse}},
    summary="Resolve the bearer token to its user",
)
async def verify(user: User = Depends(get_current_user)) -> UserResponse:
    return UserResponse.model_validate(user)


@router.put(
    "/auth/change-password",
    response_model=MessageResponse,
    responses={400: {"description": "Current password is incorrect", "model": ErrorResponse}},
    summary="Change the caller's password",
)
async def change_password(
    data: ChangePasswordRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    await auth_service.change_password(db, user, data)
    return MessageResponse(message="Password changed successfully")


@router.get(
    "/profile",
    response_model=ProfileResponse,
    summary="The caller's profile",
)
async def get_profile(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ProfileResponse:
    return await auth_service.get_profile(db, user)


@router.put(
    "/profile",
    response_model=UserResponse,
    summary="Update the caller's profile",
)
async def update_profile(
    data: ProfileUpdateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> UserResponse:
    user = await auth_service.update_profile(db, user, data)
    return UserResponse.model_validate(user)
