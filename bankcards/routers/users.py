"""
Users router — administrator user management.

Endpoints (ADMIN only):
  POST   /users       — Create a user with any role
  GET    /users       — List all users
  GET    /users/{id}  — Get a user
  PUT    /users/{id}  — Update name, phone, or password
  DELETE /users/{id}  — Delete a user with their cards and block requests
"""

import uuid

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from bankcards.database import get_db
from bankcards.dependencies import require_admin
from bankcards.schemas.user import UserCreateRequest, UserResponse, UserUpdateRequest
from bankcards.services import user_service

router = APIRouter(dependencies=[Depends(require_admin)])


@router.post(
    "",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="[Admin] Create a user",
)
async def create_user(
    request: UserCreateRequest,
    db: AsyncSession = Depends(get_db),
):
    return await user_service.create_user(
        db=db,
        full_name=request.full_name,
        email=request.email,
        password=request.password,
        role=request.role,
        phone_number=request.phone_number,
    )


@router.get(
    "",
    response_model=list[UserResponse],
    summary="[Admin] List all users",
)
async def list_users(db: AsyncSession = Depends(get_db)):
    return await user_service.get_all_users(db)


@router.get(
    "/{user_id}",
    response_model=UserResponse,
    summary="[Admin] Get a user",
)
async def get_user(user_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    return await user_service.get_user(db, user_id)


@router.put(
    "/{user_id}",
    response_model=UserResponse,
    summary="[Admin] Update a user",
)
async def update_user(
    user_id: uuid.UUID,
    request: UserUpdateRequest,
    db: AsyncSession = Depends(get_db),
):
    """Update the provided fields only; omitted fields are left unchanged."""
    return await user_service.update_user(
        db=db,
        user_id=user_id,
        full_name=request.full_name,
        phone_number=request.phone_number,
        password=request.password,
    )


@router.delete(
    "/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="[Admin] Delete a user",
)
async def delete_user(
    user_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
):
    """
    Delete a user, their cards, and their block requests.

    Refused (400) when any of the user's cards appears in transfer history.
    """
    await user_service.delete_user(db, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
