"""
Block request service — the card blocking workflow.

Card holders can't block a card themselves. They file a request:
  - the card must exist and belong to them
  - the card must not already be BLOCKED or EXPIRED
  - there must be no unprocessed request for the same card

An administrator then lists pending requests and processes them, which
blocks the card (under its card_store lock, so an in-flight transfer finishes
first) and marks the request processed in the same commit.
"""

import logging
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bankcards.exceptions import (
    BlockRequestAlreadyProcessedError,
    BlockRequestNotFoundError,
    CardNotFoundError,
    ForbiddenOperationError,
)
from bankcards.models.block_request import BlockRequest
from bankcards.models.card import Card, CardStatus
from bankcards.services import card_store

logger = logging.getLogger(__name__)


async def create_request(
    db: AsyncSession,
    card_id: uuid.UUID,
    user_id: uuid.UUID,
) -> BlockRequest:
    """
    File a block request for one of the user's own cards.

    Raises:
        CardNotFoundError: If the card doesn't exist.
        ForbiddenOperationError: If the card belongs to someone else, is
            already blocked or expired, or already has a pending request.
    """
    card = await db.get(Card, card_id)
    if card is None:
        raise CardNotFoundError(card_id)

    if card.owner_id != user_id:
        logger.warning(
            "User %s tried to request a block for card %s owned by %s",
            user_id, card_id, card.owner_id,
        )
        raise ForbiddenOperationError("Cannot request a block for another user's card")

    if card.status == CardStatus.BLOCKED:
        logger.warning("Block requested for already blocked card %s", card_id)
        raise ForbiddenOperationError("Card is already blocked")

    if card.is_expired():
        logger.warning("Block requested for expired card %s", card_id)
        raise ForbiddenOperationError("Card has expired")

    existing = await db.execute(
        select(BlockRequest.id)
        .where(BlockRequest.card_id == card_id)
        .where(BlockRequest.processed.is_(False))
    )
    if existing.first() is not None:
        logger.warning("Duplicate block request for card %s by user %s", card_id, user_id)
        raise ForbiddenOperationError("A block request for this card already exists")

    request = BlockRequest(user_id=user_id, card_id=card_id)
    db.add(request)
    await db.flush()

    logger.info("Block request %s created for card %s by user %s", request.id, card_id, user_id)
    return request


async def get_pending_requests(db: AsyncSession) -> list[BlockRequest]:
    """[ADMIN ONLY] List unprocessed block requests, oldest first."""
    result = await db.execute(
        select(BlockRequest)
        .where(BlockRequest.processed.is_(False))
        .order_by(BlockRequest.requested_at)
    )
    requests = list(result.scalars().all())
    logger.info("Found %s unprocessed block requests", len(requests))
    return requests


async def process_request(db: AsyncSession, request_id: uuid.UUID) -> BlockRequest:
    """
    [ADMIN ONLY] Block the requested card and mark the request processed.

    Raises:
        BlockRequestNotFoundError: If the request doesn't exist.
        BlockRequestAlreadyProcessedError: If it was processed before.
        CardNotFoundError: If the card was deleted in the meantime.
    """
    request = await db.get(BlockRequest, request_id)
    if request is None:
        raise BlockRequestNotFoundError(request_id)
    if request.processed:
        raise BlockRequestAlreadyProcessedError(request_id)

    async with card_store.lock_cards(request.card_id):
        card = await card_store.get_for_update(db, request.card_id)
        if card is None:
            raise CardNotFoundError(request.card_id)

        card.status = CardStatus.BLOCKED
        await card_store.save(db, card)
        request.processed = True
        await db.flush()
        await db.commit()

    logger.info("Block request %s processed; card %s blocked", request_id, card.id)
    return request
