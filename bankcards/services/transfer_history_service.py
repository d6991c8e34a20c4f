"""
Transfer history service — the append-only transfer log.

Writes:
  record_transfer() is called by the transfer engine only, inside the same
  database transaction as the two balance updates. It flushes but never
  commits: the engine decides whether the whole unit commits or rolls back.

Reads:
  Card holder listings are scoped to transfers touching the holder's own cards.
  Admin listings (prefixed admin_) see every record.
"""

import logging
import uuid
from decimal import Decimal

from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from bankcards.exceptions import UserNotFoundError
from bankcards.models.card import Card
from bankcards.models.transfer_history import TransferHistory
from bankcards.models.user import User

logger = logging.getLogger(__name__)


async def record_transfer(
    db: AsyncSession,
    sender_card_id: uuid.UUID,
    receiver_card_id: uuid.UUID,
    amount: Decimal,
) -> TransferHistory:
    """Append one record to the transfer log (flushed, not committed)."""
    record = TransferHistory(
        sender_card_id=sender_card_id,
        receiver_card_id=receiver_card_id,
        amount=amount,
    )
    db.add(record)
    await db.flush()
    return record


async def card_has_history(db: AsyncSession, card_id: uuid.UUID) -> bool:
    """True if the card was the sender or receiver of any transfer."""
    result = await db.execute(
        select(TransferHistory.id)
        .where(
            (TransferHistory.sender_card_id == card_id)
            | (TransferHistory.receiver_card_id == card_id)
        )
        .limit(1)
    )
    return result.first() is not None


async def get_user_transfers(
    db: AsyncSession,
    user_id: uuid.UUID,
    limit: int = 50,
    offset: int = 0,
) -> list[TransferHistory]:
    """
    List transfers where either card belongs to the user, newest first.
    """
    sender = aliased(Card)
    receiver = aliased(Card)
    result = await db.execute(
        select(TransferHistory)
        .join(sender, TransferHistory.sender_card_id == sender.id)
        .join(receiver, TransferHistory.receiver_card_id == receiver.id)
        .where(or_(sender.owner_id == user_id, receiver.owner_id == user_id))
        .order_by(TransferHistory.transferred_at.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Admin read-only functions
# ---------------------------------------------------------------------------

async def admin_get_all_transfers(
    db: AsyncSession,
    limit: int = 50,
    offset: int = 0,
) -> list[TransferHistory]:
    """[ADMIN ONLY] List every transfer in the system, newest first."""
    logger.info("Listing all transfer history (limit=%s, offset=%s)", limit, offset)
    result = await db.execute(
        select(TransferHistory)
        .order_by(TransferHistory.transferred_at.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all())


async def admin_get_user_transfers(
    db: AsyncSession,
    user_id: uuid.UUID,
    limit: int = 50,
    offset: int = 0,
) -> list[TransferHistory]:
    """[ADMIN ONLY] List any user's transfers without an ownership check."""
    if await db.get(User, user_id) is None:
        raise UserNotFoundError(user_id)

    logger.info("Listing transfer history for user %s", user_id)
    return await get_user_transfers(db, user_id, limit=limit, offset=offset)
