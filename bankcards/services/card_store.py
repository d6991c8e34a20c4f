"""
Card store — exclusive, ordered access to card rows.

The card table is the only owner of balance state. Anything that changes a
card (a transfer, a status change, a block, a deletion) goes through the two
primitives here:

  lock_cards(*card_ids)
      Acquires an exclusive lock per card id, always in ascending id order,
      and holds them until the block exits. Two transfers over the same pair
      of cards in opposite directions (A->B and B->A) both try the lower id
      first, so one simply waits for the other instead of deadlocking.

      Only the *wait* is bounded: if a lock can't be acquired within the
      timeout, the locks already taken are released and CardLockTimeoutError
      is raised. Once every lock is held, nothing interrupts the holder.

  get_for_update(db, card_id)
      The locking point read. Issues SELECT ... FOR UPDATE (a row lock on
      PostgreSQL, a no-op on SQLite) and overwrites any copy of the card
      already in the session's identity map, so validation always sees the
      row as it is under the lock, never an earlier unlocked read.

Why two layers of locking?
  The in-process lock serializes workers inside one API process, which is
  all SQLite offers. On PostgreSQL the row lock additionally serializes
  workers across processes. Both are taken in the same ascending order.

The registry keeps an entry per card only while some worker holds or waits
for that card's lock; idle entries are dropped, so it never grows with the
number of cards.
"""

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator, Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bankcards.config import settings
from bankcards.exceptions import CardLockTimeoutError
from bankcards.models.card import Card

logger = logging.getLogger(__name__)


class _CardLock:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = asyncio.Lock()
        # Holders plus waiters; the entry is dropped when this reaches zero
        self.users = 0


class CardLockRegistry:
    """Per-card-id mutual exclusion with deterministic acquisition order."""

    def __init__(self):
        self._locks: dict[uuid.UUID, _CardLock] = {}

    def _checkout(self, card_id: uuid.UUID) -> _CardLock:
        entry = self._locks.get(card_id)
        if entry is None:
            entry = self._locks[card_id] = _CardLock()
        entry.users += 1
        return entry

    def _checkin(self, card_id: uuid.UUID, entry: _CardLock) -> None:
        entry.users -= 1
        if entry.users == 0:
            del self._locks[card_id]

    def is_locked(self, card_id: uuid.UUID) -> bool:
        entry = self._locks.get(card_id)
        return entry is not None and entry.lock.locked()

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(
        self,
        card_ids: Iterable[uuid.UUID],
        timeout: float | None,
    ) -> AsyncIterator[list[uuid.UUID]]:
        """
        Hold the locks of every distinct id in card_ids, lowest id first.

        Yields the ids in the order they were locked.

        Raises:
            CardLockTimeoutError: If any single lock wait exceeds timeout.
        """
        ordered = sorted(set(card_ids))
        acquired: list[tuple[uuid.UUID, _CardLock]] = []
        try:
            for card_id in ordered:
                entry = self._checkout(card_id)
                try:
                    await asyncio.wait_for(entry.lock.acquire(), timeout)
                except asyncio.TimeoutError:
                    self._checkin(card_id, entry)
                    logger.warning(
                        "Timed out after %ss waiting for lock on card %s", timeout, card_id
                    )
                    raise CardLockTimeoutError(card_id, timeout) from None
                except asyncio.CancelledError:
                    self._checkin(card_id, entry)
                    raise
                acquired.append((card_id, entry))
            yield ordered
        finally:
            for card_id, entry in reversed(acquired):
                entry.lock.release()
                self._checkin(card_id, entry)


# The store's lock table. Lives with the store, not with its callers.
registry = CardLockRegistry()


@asynccontextmanager
async def lock_cards(
    *card_ids: uuid.UUID,
    timeout: float | None = None,
) -> AsyncIterator[list[uuid.UUID]]:
    """
    Hold the exclusive locks of the given cards for the duration of the block.

    Args:
        card_ids: Cards to lock. Duplicates are locked once.
        timeout: Maximum seconds to wait for each lock. Defaults to
                 TRANSFER_LOCK_TIMEOUT_SECONDS from settings.

    Raises:
        CardLockTimeoutError: If a lock can't be acquired in time.
    """
    if timeout is None:
        timeout = settings.TRANSFER_LOCK_TIMEOUT_SECONDS
    async with registry.hold(card_ids, timeout) as ordered:
        yield ordered


async def get_for_update(db: AsyncSession, card_id: uuid.UUID) -> Card | None:
    """
    Read a card with a write lock on its row.

    Callers must already hold the card's lock_cards() lock; the row lock is
    released when the session's transaction ends.
    """
    result = await db.execute(
        select(Card)
        .where(Card.id == card_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def save(db: AsyncSession, card: Card) -> Card:
    """Write a card's pending changes to the current transaction."""
    db.add(card)
    await db.flush()
    return card
