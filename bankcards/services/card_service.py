"""
Card service — card issuance, lifecycle, and card holder views.

Issuance (admin only):
  1. The owner must exist and must not be an administrator
  2. A 16-digit card number is generated with a CSPRNG
  3. The number is Fernet-encrypted; only the last four digits stay readable
  4. The card starts ACTIVE with the requested opening balance

Lifecycle changes (status, deletion) take the card's lock from card_store,
the same lock the transfer engine holds, so a card can't be blocked or
deleted halfway through a transfer that involves it.

Ownership enforcement:
  Card holder functions take the acting user's id and raise
  ForbiddenOperationError for someone else's card. Admin functions are
  prefixed with admin_ and are not scoped.
"""

import logging
import uuid
from datetime import date
from decimal import Decimal

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from bankcards.database import CENTS
from bankcards.exceptions import (
    AdminCardCreationError,
    CardDeletionError,
    CardNotFoundError,
    ForbiddenOperationError,
    InvalidCardStatusChangeError,
    UserNotFoundError,
)
from bankcards.models.block_request import BlockRequest
from bankcards.models.card import Card, CardStatus
from bankcards.models.user import User, UserRole
from bankcards.schemas.card import CardResponse
from bankcards.security import encrypt_value, generate_card_number, mask_card_number
from bankcards.services import card_store, transfer_history_service

logger = logging.getLogger(__name__)


def to_card_response(card: Card) -> CardResponse:
    """Build the public (masked) representation of a card. Needs card.owner loaded."""
    return CardResponse(
        id=card.id,
        masked_number=mask_card_number(card.card_number_last_four),
        owner_full_name=card.owner.full_name,
        expiration_date=card.expiration_date,
        status=card.status,
        balance=card.balance,
    )


async def _get_card_with_owner(db: AsyncSession, card_id: uuid.UUID) -> Card:
    result = await db.execute(
        select(Card)
        .where(Card.id == card_id)
        .options(selectinload(Card.owner))
        .execution_options(populate_existing=True)
    )
    card = result.scalar_one_or_none()
    if card is None:
        raise CardNotFoundError(card_id)
    return card


# ---------------------------------------------------------------------------
# Admin lifecycle functions
# ---------------------------------------------------------------------------

async def admin_create_card(
    db: AsyncSession,
    user_id: uuid.UUID,
    expiration_date: date,
    balance: Decimal = Decimal("0.00"),
) -> Card:
    """
    [ADMIN ONLY] Issue a new card to a card holder.

    Raises:
        UserNotFoundError: If the owner doesn't exist.
        AdminCardCreationError: If the owner is an administrator.
    """
    owner = await db.get(User, user_id)
    if owner is None:
        raise UserNotFoundError(user_id)
    if owner.role == UserRole.ADMIN:
        logger.warning("Refused to issue a card to administrator %s", user_id)
        raise AdminCardCreationError(user_id)

    card_number = generate_card_number()
    card = Card(
        owner_id=owner.id,
        card_number_encrypted=encrypt_value(card_number),
        card_number_last_four=card_number[-4:],
        expiration_date=expiration_date,
        status=CardStatus.ACTIVE,
        balance=Decimal(balance).quantize(CENTS),
    )
    card.owner = owner
    db.add(card)
    await db.flush()

    logger.info("Card %s issued to user %s", card.id, owner.id)
    return card


async def admin_change_status(
    db: AsyncSession,
    card_id: uuid.UUID,
    new_status: CardStatus,
) -> Card:
    """
    [ADMIN ONLY] Set a card's status.

    An EXPIRED card can never be re-activated.

    Raises:
        CardNotFoundError: If the card doesn't exist.
        InvalidCardStatusChangeError: On EXPIRED -> ACTIVE.
        CardLockTimeoutError: If a transfer holds the card for too long.
    """
    async with card_store.lock_cards(card_id):
        card = await card_store.get_for_update(db, card_id)
        if card is None:
            raise CardNotFoundError(card_id)

        if card.status == CardStatus.EXPIRED and new_status == CardStatus.ACTIVE:
            logger.warning("Refused to re-activate expired card %s", card_id)
            raise InvalidCardStatusChangeError("An expired card cannot be activated")

        card.status = new_status
        await card_store.save(db, card)
        await db.commit()

    logger.info("Card %s status changed to %s", card_id, new_status.value)
    return await _get_card_with_owner(db, card_id)


async def admin_delete_card(db: AsyncSession, card_id: uuid.UUID) -> None:
    """
    [ADMIN ONLY] Delete a card and its block requests.

    Transfer history is never rewritten, so a card that ever sent or
    received money can only be blocked, not deleted.

    Raises:
        CardNotFoundError: If the card doesn't exist.
        CardDeletionError: If the card appears in transfer history.
    """
    async with card_store.lock_cards(card_id):
        card = await card_store.get_for_update(db, card_id)
        if card is None:
            raise CardNotFoundError(card_id)

        if await transfer_history_service.card_has_history(db, card_id):
            logger.warning("Refused to delete card %s with transfer history", card_id)
            raise CardDeletionError(
                f"Card {card_id} has transfer history and cannot be deleted; block it instead"
            )

        await db.execute(delete(BlockRequest).where(BlockRequest.card_id == card_id))
        await db.execute(delete(Card).where(Card.id == card_id))
        await db.commit()

    logger.info("Card %s deleted", card_id)


async def admin_get_all_cards(
    db: AsyncSession,
    limit: int = 50,
    offset: int = 0,
) -> list[Card]:
    """[ADMIN ONLY] List every card in the system."""
    result = await db.execute(
        select(Card)
        .options(selectinload(Card.owner))
        .order_by(Card.created_at)
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Card holder functions
# ---------------------------------------------------------------------------

async def get_user_cards(
    db: AsyncSession,
    user_id: uuid.UUID,
    status_filter: CardStatus | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[Card]:
    """
    List a user's own cards, optionally filtered by status.

    This is inherently scoped: only the owner's cards are returned.
    """
    query = (
        select(Card)
        .where(Card.owner_id == user_id)
        .options(selectinload(Card.owner))
        .order_by(Card.created_at)
        .limit(limit)
        .offset(offset)
    )
    if status_filter is not None:
        query = query.where(Card.status == status_filter)

    result = await db.execute(query)
    return list(result.scalars().all())


async def get_card(
    db: AsyncSession,
    card_id: uuid.UUID,
    user_id: uuid.UUID,
) -> Card:
    """
    Get a single card, verifying ownership.

    Raises:
        CardNotFoundError: If the card doesn't exist.
        ForbiddenOperationError: If the card belongs to someone else.
    """
    card = await _get_card_with_owner(db, card_id)
    if card.owner_id != user_id:
        logger.warning("User %s tried to access card %s", user_id, card_id)
        raise ForbiddenOperationError("You do not have access to this card")
    return card


async def get_card_balance(
    db: AsyncSession,
    card_id: uuid.UUID,
    user_id: uuid.UUID,
) -> Decimal:
    """Get the balance of one of the user's own cards."""
    card = await get_card(db, card_id, user_id)
    return card.balance
