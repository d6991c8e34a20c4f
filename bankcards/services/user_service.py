"""
User service — administrator user management.

Admins can create users with any role, update a user's name, phone and
password, list and inspect users, and delete them. Email and role are fixed
after creation.

Deleting a user also deletes their cards and block requests. Transfer
history is permanent, so a user whose cards ever moved money can't be
deleted; block their cards instead.
"""

import logging
import uuid

from sqlalchemy import select, delete, or_
from sqlalchemy.ext.asyncio import AsyncSession

from bankcards.exceptions import CardDeletionError, UserNotFoundError
from bankcards.models.block_request import BlockRequest
from bankcards.models.card import Card
from bankcards.models.transfer_history import TransferHistory
from bankcards.models.user import User, UserRole
from bankcards.security import hash_password
from bankcards.services import auth_service

logger = logging.getLogger(__name__)


async def create_user(
    db: AsyncSession,
    full_name: str,
    email: str,
    password: str,
    role: UserRole,
    phone_number: str | None = None,
) -> User:
    """Create a user with an explicit role."""
    user = await auth_service.create_account(
        db, full_name, email, password, phone_number=phone_number, role=role
    )
    logger.info("User %s created with role %s", user.id, role.value)
    return user


async def get_user(db: AsyncSession, user_id: uuid.UUID) -> User:
    user = await db.get(User, user_id)
    if user is None:
        logger.warning("User %s not found", user_id)
        raise UserNotFoundError(user_id)
    return user


async def get_all_users(db: AsyncSession) -> list[User]:
    result = await db.execute(select(User).order_by(User.created_at))
    return list(result.scalars().all())


async def update_user(
    db: AsyncSession,
    user_id: uuid.UUID,
    full_name: str | None = None,
    phone_number: str | None = None,
    password: str | None = None,
) -> User:
    """
    Update the provided fields of a user; None means "leave unchanged".

    Raises:
        UserNotFoundError: If the user doesn't exist.
    """
    user = await get_user(db, user_id)

    if full_name is not None:
        user.full_name = full_name
    if phone_number is not None:
        user.phone_number = phone_number
    if password is not None:
        user.hashed_password = hash_password(password)

    await db.flush()
    logger.info("User %s updated", user_id)
    return user


async def delete_user(db: AsyncSession, user_id: uuid.UUID) -> None:
    """
    Delete a user together with their cards and block requests.

    Raises:
        UserNotFoundError: If the user doesn't exist.
        CardDeletionError: If any of the user's cards appears in transfer history.
    """
    await get_user(db, user_id)

    card_ids = select(Card.id).where(Card.owner_id == user_id)
    history = await db.execute(
        select(TransferHistory.id)
        .where(
            or_(
                TransferHistory.sender_card_id.in_(card_ids),
                TransferHistory.receiver_card_id.in_(card_ids),
            )
        )
        .limit(1)
    )
    if history.first() is not None:
        logger.warning("Refused to delete user %s: cards have transfer history", user_id)
        raise CardDeletionError(
            f"User {user_id} owns cards with transfer history and cannot be deleted"
        )

    await db.execute(
        delete(BlockRequest).where(
            or_(BlockRequest.user_id == user_id, BlockRequest.card_id.in_(card_ids))
        )
    )
    await db.execute(delete(Card).where(Card.owner_id == user_id))
    await db.execute(delete(User).where(User.id == user_id))
    logger.info("User %s deleted", user_id)
