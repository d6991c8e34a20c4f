"""
Transfer service — moves money between two cards of the same owner.

THIS IS THE MOST CRITICAL FILE IN THE PROJECT. A transfer request either
commits completely (both balances changed, one history record written) or
changes nothing at all.

Lifecycle of one attempt:

    Validating -> Locking -> Mutating -> Committed
    Validating -> Rejected                  (a precondition failed)
    Locking / Mutating -> Aborted           (lock wait timed out, or storage failed)

Preconditions, checked in this order, each with its own error:
  1. from and to are different cards           InvalidTransferError
  2. amount is positive (and whole cents)      InvalidTransferError
  3. both cards exist                          CardNotFoundError
  4. both cards belong to the acting user      ForbiddenOperationError
  5. both cards are ACTIVE and not past expiry InvalidCardStateError
  6. the sender's balance covers the amount    InsufficientFundsError

Checks 1-2 need no card state and run before any lock is taken. Checks 3-6
read the cards through card_store.get_for_update() *after* both card locks
are held. Validating from an earlier unlocked read would let a concurrent
transfer drain the balance between the check and the write.

Deadlock prevention:
  card_store.lock_cards() acquires the two locks in ascending id order, and
  the row reads below follow the same order, so A->B and B->A transfers
  racing each other serialize instead of deadlocking.

Atomicity:
  Both balance updates and the history insert are flushed into one database
  transaction, which is committed *before* the card locks are released. A
  waiting transfer can therefore never read a balance that is about to be
  rolled back or that hasn't been committed yet.

The engine keeps no state between calls: balances are read fresh, under
lock, on every attempt, and retry policy belongs to the caller.
"""

import asyncio
import logging
import uuid
from decimal import Decimal, InvalidOperation

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from bankcards.database import CENTS
from bankcards.exceptions import (
    BankAPIError,
    CardLockTimeoutError,
    CardNotFoundError,
    ForbiddenOperationError,
    InsufficientFundsError,
    InvalidCardStateError,
    InvalidTransferError,
    TransferAbortedError,
)
from bankcards.models.card import Card
from bankcards.models.transfer_history import TransferHistory
from bankcards.services import card_store, transfer_history_service

logger = logging.getLogger(__name__)


def _to_decimal(amount: Decimal | int | str) -> Decimal:
    # A float can't hold most cent values exactly (0.1 is 0.1000000000000000055...)
    if isinstance(amount, bool) or not isinstance(amount, (Decimal, int, str)):
        raise InvalidTransferError(
            f"Transfer amount must be a Decimal, int or str, not {type(amount).__name__}"
        )
    try:
        return Decimal(amount)
    except InvalidOperation:
        raise InvalidTransferError(f"Transfer amount {amount!r} is not a number") from None


def _validate_request(
    from_card_id: uuid.UUID,
    to_card_id: uuid.UUID,
    amount: Decimal | int | str,
) -> Decimal:
    """Preconditions 1-2: properties of the request alone. Returns the amount in cents."""
    if from_card_id == to_card_id:
        raise InvalidTransferError("Cannot transfer to the same card")

    amount = _to_decimal(amount)
    if not amount.is_finite():
        raise InvalidTransferError("Transfer amount must be a finite number")
    if amount <= 0:
        raise InvalidTransferError("Transfer amount must be greater than zero")
    try:
        in_cents = amount.quantize(CENTS)
    except InvalidOperation:
        raise InvalidTransferError("Transfer amount is too large") from None
    if amount != in_cents:
        raise InvalidTransferError("Transfer amount cannot contain fractions of a cent")
    return in_cents


def _validate_cards(
    acting_user_id: uuid.UUID,
    from_card_id: uuid.UUID,
    to_card_id: uuid.UUID,
    source: Card | None,
    dest: Card | None,
    amount: Decimal,
) -> None:
    """Preconditions 3-6, on cards read under lock."""
    if source is None:
        raise CardNotFoundError(from_card_id)
    if dest is None:
        raise CardNotFoundError(to_card_id)

    if source.owner_id != acting_user_id or dest.owner_id != acting_user_id:
        raise ForbiddenOperationError("You can only transfer between your own cards")

    for card in (source, dest):
        if not card.is_usable():
            state = card.status.value if not card.is_expired() else "EXPIRED"
            raise InvalidCardStateError(
                f"Card {card.id} is {state}; both cards must be active to transfer"
            )

    if source.balance < amount:
        raise InsufficientFundsError(
            card_id=source.id,
            requested=amount,
            available=source.balance,
        )


async def _apply_transfer(
    db: AsyncSession,
    acting_user_id: uuid.UUID,
    from_card_id: uuid.UUID,
    to_card_id: uuid.UUID,
    amount: Decimal,
) -> TransferHistory:
    # Row reads in the same ascending order as the in-process locks
    locked: dict[uuid.UUID, Card | None] = {}
    for card_id in sorted((from_card_id, to_card_id)):
        locked[card_id] = await card_store.get_for_update(db, card_id)

    source = locked[from_card_id]
    dest = locked[to_card_id]
    _validate_cards(acting_user_id, from_card_id, to_card_id, source, dest, amount)

    source.balance -= amount
    dest.balance += amount
    await card_store.save(db, source)
    await card_store.save(db, dest)

    return await transfer_history_service.record_transfer(
        db,
        sender_card_id=source.id,
        receiver_card_id=dest.id,
        amount=amount,
    )


async def _locked_transfer(
    db: AsyncSession,
    acting_user_id: uuid.UUID,
    from_card_id: uuid.UUID,
    to_card_id: uuid.UUID,
    amount: Decimal,
) -> TransferHistory:
    """Run and commit the atomic unit while both card locks are held."""
    async with card_store.lock_cards(from_card_id, to_card_id):
        try:
            record = await _apply_transfer(
                db, acting_user_id, from_card_id, to_card_id, amount
            )
            await db.commit()
        except BankAPIError as exc:
            await db.rollback()
            logger.warning(
                "Transfer rejected for user %s (%s -> %s, %s): %s",
                acting_user_id, from_card_id, to_card_id, amount, exc.detail,
            )
            raise
        except SQLAlchemyError as exc:
            await db.rollback()
            logger.exception(
                "Transfer aborted for user %s (%s -> %s, %s); rolled back",
                acting_user_id, from_card_id, to_card_id, amount,
            )
            raise TransferAbortedError() from exc
        except Exception:
            await db.rollback()
            logger.exception(
                "Transfer aborted for user %s (%s -> %s, %s); rolled back",
                acting_user_id, from_card_id, to_card_id, amount,
            )
            raise
        except asyncio.CancelledError:
            # Not an Exception subclass; the unit must still end in a rollback
            await db.rollback()
            logger.warning(
                "Transfer aborted for user %s (%s -> %s, %s): cancelled; rolled back",
                acting_user_id, from_card_id, to_card_id, amount,
            )
            raise

    return record


async def transfer(
    db: AsyncSession,
    acting_user_id: uuid.UUID,
    from_card_id: uuid.UUID,
    to_card_id: uuid.UUID,
    amount: Decimal | int | str,
) -> TransferHistory:
    """
    Atomically move `amount` from one of the acting user's cards to another.

    Args:
        db: Database session. The transfer commits it; anything pending in
            the session before the call commits or rolls back with the transfer.
        acting_user_id: The authenticated user (from the identity resolver).
        from_card_id: Sender card.
        to_card_id: Receiver card.
        amount: Positive Decimal (or int or str) with at most two decimal
                places. Floats are refused.

    Returns:
        The committed TransferHistory record (server-assigned id and timestamp).

    Raises:
        InvalidTransferError: Same card on both sides, or a non-positive,
            non-finite, sub-cent or non-Decimal amount.
        CardNotFoundError: Either card doesn't exist.
        ForbiddenOperationError: Either card belongs to someone else.
        InvalidCardStateError: Either card is blocked or expired.
        InsufficientFundsError: The sender's balance is below the amount.
        CardLockTimeoutError: A card lock could not be acquired in time.
        TransferAbortedError: Storage failed mid-transfer; nothing was applied.
    """
    try:
        amount = _validate_request(from_card_id, to_card_id, amount)
    except InvalidTransferError as exc:
        logger.warning(
            "Transfer rejected for user %s (%s -> %s, %s): %s",
            acting_user_id, from_card_id, to_card_id, amount, exc.detail,
        )
        raise

    try:
        record = await _locked_transfer(
            db, acting_user_id, from_card_id, to_card_id, amount
        )
    except CardLockTimeoutError:
        logger.warning(
            "Transfer aborted for user %s (%s -> %s, %s): card lock wait timed out",
            acting_user_id, from_card_id, to_card_id, amount,
        )
        raise

    logger.info(
        "Transfer %s committed: %s from card %s to card %s",
        record.id, amount, from_card_id, to_card_id,
    )
    return record
