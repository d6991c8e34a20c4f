"""
Authentication router — registration and login endpoints.

These are the only public (unauthenticated) endpoints in the API.
Everything else requires a valid JWT token.

Endpoints:
  POST /auth/register — Register a new card holder
  POST /auth/login    — Authenticate and get a token

Plaintext passwords exist only in memory during request processing; they
are hashed before any database operation and never logged.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from bankcards.database import get_db
from bankcards.schemas.auth import (
    RegisterRequest,
    LoginRequest,
    TokenResponse,
    UserPublicResponse,
)
from bankcards.services import auth_service

router = APIRouter()


@router.post(
    "/register",
    response_model=UserPublicResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new user",
)
async def register(
    request: RegisterRequest,
    db: AsyncSession = Depends(get_db),
):
    """
    Register a new card holder.

    - **full_name**: 2-100 characters
    - **email**: Must be a valid email format and not already registered
    - **phone_number**: Optional, 7-20 digits with an optional leading "+"
    - **password**: 8-64 characters
    """
    return await auth_service.register(
        db=db,
        full_name=request.full_name,
        email=request.email,
        password=request.password,
        phone_number=request.phone_number,
    )


@router.post(
    "/login",
    response_model=TokenResponse,
    summary="Authenticate and get a token",
)
async def login(
    request: LoginRequest,
    db: AsyncSession = Depends(get_db),
):
    """
    Authenticate with email and password.

    Returns a JWT bearer token for the Authorization header of subsequent
    requests:

        Authorization: Bearer <token>
    """
    _, token = await auth_service.login(
        db=db,
        email=request.email,
        password=request.password,
    )
    return TokenResponse(token=token)
