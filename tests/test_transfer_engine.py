"""
Service-level tests for the transfer engine (bankcards.services.transfer_service).

These call transfer() directly, without HTTP, and check the properties every
transfer must keep:

  - Conservation: the two balances' sum is unchanged by any transfer
  - Non-negativity: no balance ever drops below zero
  - Atomicity: a storage failure mid-transfer leaves no trace
  - Ownership: only the acting user's cards can be used
  - Concurrency safety: N racing transfers from one card succeed exactly
    floor(balance / amount) times
  - Deadlock freedom: A->B and B->A racing each other all complete
  - History fidelity: one record per committed transfer, matching its inputs

Concurrent tests use a SQLite file with one connection per session, so each
worker has its own transaction like separate API requests do.
"""

import asyncio
import uuid
from datetime import date, timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from bankcards.config import settings
from bankcards.exceptions import (
    CardLockTimeoutError,
    CardNotFoundError,
    ForbiddenOperationError,
    InsufficientFundsError,
    InvalidCardStateError,
    InvalidTransferError,
    TransferAbortedError,
)
from bankcards.models.card import Card, CardStatus
from bankcards.models.transfer_history import TransferHistory
from bankcards.services import card_store, transfer_history_service, transfer_service


async def _balances(session_factory, *card_ids) -> list[Decimal]:
    async with session_factory() as session:
        result = await session.execute(select(Card.id, Card.balance).where(Card.id.in_(card_ids)))
        by_id = dict(result.all())
    return [by_id[card_id] for card_id in card_ids]


async def _history_count(session_factory) -> int:
    async with session_factory() as session:
        return await session.scalar(select(func.count()).select_from(TransferHistory))


@pytest_asyncio.fixture
async def holder(session_factory, make_user):
    async with session_factory() as session:
        return await make_user(session, "holder@example.com")


@pytest_asyncio.fixture
async def two_cards(session_factory, make_card, holder):
    async with session_factory() as session:
        card_a = await make_card(session, holder, balance="100.00")
        card_b = await make_card(session, holder, balance="50.00")
    return card_a, card_b


class TestTransferContract:
    async def test_transfer_returns_committed_record(self, session_factory, holder, two_cards):
        card_a, card_b = two_cards
        async with session_factory() as session:
            record = await transfer_service.transfer(
                session, holder.id, card_a.id, card_b.id, Decimal("30.00")
            )

        assert record.id is not None
        assert record.transferred_at is not None
        assert record.sender_card_id == card_a.id
        assert record.receiver_card_id == card_b.id
        assert record.amount == Decimal("30.00")

        assert await _balances(session_factory, card_a.id, card_b.id) == [
            Decimal("70.00"),
            Decimal("80.00"),
        ]
        assert await _history_count(session_factory) == 1

    async def test_conservation(self, session_factory, holder, two_cards):
        card_a, card_b = two_cards
        for amount in ("0.01", "12.34", "50.00", "0.65"):
            async with session_factory() as session:
                await transfer_service.transfer(
                    session, holder.id, card_a.id, card_b.id, Decimal(amount)
                )

        balances = await _balances(session_factory, card_a.id, card_b.id)
        assert sum(balances) == Decimal("150.00")
        assert balances[0] == Decimal("37.00")

    async def test_precondition_order(self, session_factory, make_user, make_card, holder, two_cards):
        card_a, card_b = two_cards
        missing = uuid.uuid4()
        async with session_factory() as session:
            stranger = await make_user(session, "stranger@example.com")
            foreign = await make_card(session, stranger, balance="10.00")
            blocked = await make_card(session, holder, status=CardStatus.BLOCKED)

        cases = [
            # same card with a bad amount: the same-card check wins
            ((card_a.id, card_a.id, Decimal("-1")), InvalidTransferError),
            ((card_a.id, card_b.id, Decimal("0")), InvalidTransferError),
            # missing card with a foreign partner: existence wins
            ((missing, foreign.id, Decimal("1")), CardNotFoundError),
            # foreign card that is also short of funds: ownership wins
            ((card_a.id, foreign.id, Decimal("1000")), ForbiddenOperationError),
            # blocked receiver and insufficient funds: card state wins
            ((card_a.id, blocked.id, Decimal("1000")), InvalidCardStateError),
            ((card_a.id, card_b.id, Decimal("100.01")), InsufficientFundsError),
        ]
        for args, expected in cases:
            async with session_factory() as session:
                with pytest.raises(expected) as exc_info:
                    await transfer_service.transfer(session, holder.id, *args)
            assert type(exc_info.value) is expected

        assert await _balances(session_factory, card_a.id, card_b.id) == [
            Decimal("100.00"),
            Decimal("50.00"),
        ]
        assert await _history_count(session_factory) == 0

    async def test_missing_card_is_named(self, session_factory, holder, two_cards):
        card_a, _ = two_cards
        missing = uuid.uuid4()
        async with session_factory() as session:
            with pytest.raises(CardNotFoundError) as exc_info:
                await transfer_service.transfer(session, holder.id, card_a.id, missing, Decimal("1"))
        assert exc_info.value.card_id == missing

    async def test_ownership_enforced(self, session_factory, make_user, holder, two_cards):
        card_a, card_b = two_cards
        async with session_factory() as session:
            stranger = await make_user(session, "thief@example.com")

        async with session_factory() as session:
            with pytest.raises(ForbiddenOperationError):
                await transfer_service.transfer(
                    session, stranger.id, card_a.id, card_b.id, Decimal("10.00")
                )

        assert await _balances(session_factory, card_a.id, card_b.id) == [
            Decimal("100.00"),
            Decimal("50.00"),
        ]

    async def test_card_past_expiration_date_is_unusable(
        self, session_factory, make_card, holder, two_cards
    ):
        card_a, _ = two_cards
        async with session_factory() as session:
            stale = await make_card(
                session, holder, expiration_date=date.today() - timedelta(days=1)
            )

        async with session_factory() as session:
            with pytest.raises(InvalidCardStateError):
                await transfer_service.transfer(
                    session, holder.id, card_a.id, stale.id, Decimal("1.00")
                )

    async def test_sub_cent_amount_rejected(self, session_factory, holder, two_cards):
        card_a, card_b = two_cards
        async with session_factory() as session:
            with pytest.raises(InvalidTransferError):
                await transfer_service.transfer(
                    session, holder.id, card_a.id, card_b.id, Decimal("0.005")
                )

    @pytest.mark.parametrize(
        "amount",
        [Decimal("1E+30"), Decimal("NaN"), Decimal("Infinity"), Decimal("-Infinity"), "lots"],
    )
    async def test_unusable_amount_rejected(self, session_factory, holder, two_cards, amount):
        card_a, card_b = two_cards
        async with session_factory() as session:
            with pytest.raises(InvalidTransferError):
                await transfer_service.transfer(
                    session, holder.id, card_a.id, card_b.id, amount
                )

        assert await _balances(session_factory, card_a.id, card_b.id) == [
            Decimal("100.00"),
            Decimal("50.00"),
        ]

    async def test_float_amount_rejected(self, session_factory, holder, two_cards):
        card_a, card_b = two_cards
        async with session_factory() as session:
            with pytest.raises(InvalidTransferError) as exc_info:
                await transfer_service.transfer(session, holder.id, card_a.id, card_b.id, 0.1)
        assert "float" in exc_info.value.detail

    async def test_int_and_str_amounts_accepted(self, session_factory, holder, two_cards):
        card_a, card_b = two_cards
        async with session_factory() as session:
            first = await transfer_service.transfer(session, holder.id, card_a.id, card_b.id, 10)
        async with session_factory() as session:
            second = await transfer_service.transfer(
                session, holder.id, card_a.id, card_b.id, "0.50"
            )

        assert first.amount == Decimal("10.00")
        assert second.amount == Decimal("0.50")
        assert await _balances(session_factory, card_a.id, card_b.id) == [
            Decimal("89.50"),
            Decimal("60.50"),
        ]


class TestAtomicity:
    """Failure injection inside the atomic unit."""

    async def test_storage_failure_rolls_back_everything(
        self, session_factory, holder, two_cards
    ):
        card_a, card_b = two_cards
        failure = OperationalError("INSERT INTO transfer_history", {}, Exception("disk I/O error"))

        with patch.object(
            transfer_history_service,
            "record_transfer",
            AsyncMock(side_effect=failure),
        ):
            async with session_factory() as session:
                with pytest.raises(TransferAbortedError):
                    await transfer_service.transfer(
                        session, holder.id, card_a.id, card_b.id, Decimal("30.00")
                    )

        assert await _balances(session_factory, card_a.id, card_b.id) == [
            Decimal("100.00"),
            Decimal("50.00"),
        ]
        assert await _history_count(session_factory) == 0
        assert len(card_store.registry) == 0

    async def test_unexpected_failure_rolls_back_and_propagates(
        self, session_factory, holder, two_cards
    ):
        card_a, card_b = two_cards

        with patch.object(
            transfer_history_service,
            "record_transfer",
            AsyncMock(side_effect=RuntimeError("boom")),
        ):
            async with session_factory() as session:
                with pytest.raises(RuntimeError):
                    await transfer_service.transfer(
                        session, holder.id, card_a.id, card_b.id, Decimal("30.00")
                    )

        assert await _balances(session_factory, card_a.id, card_b.id) == [
            Decimal("100.00"),
            Decimal("50.00"),
        ]
        assert await _history_count(session_factory) == 0

    async def test_cancellation_mid_transfer_rolls_back(
        self, session_factory, holder, two_cards
    ):
        card_a, card_b = two_cards

        with patch.object(
            transfer_history_service,
            "record_transfer",
            AsyncMock(side_effect=asyncio.CancelledError()),
        ):
            async with session_factory() as session:
                with pytest.raises(asyncio.CancelledError):
                    await transfer_service.transfer(
                        session, holder.id, card_a.id, card_b.id, Decimal("30.00")
                    )
                # rolled back by the engine, not left for session close
                assert not session.in_transaction()

        assert await _balances(session_factory, card_a.id, card_b.id) == [
            Decimal("100.00"),
            Decimal("50.00"),
        ]
        assert await _history_count(session_factory) == 0
        assert len(card_store.registry) == 0

    async def test_lock_timeout_aborts_without_changes(
        self, session_factory, holder, two_cards, monkeypatch
    ):
        card_a, card_b = two_cards
        monkeypatch.setattr(settings, "TRANSFER_LOCK_TIMEOUT_SECONDS", 0.05)

        async with card_store.lock_cards(card_b.id):
            async with session_factory() as session:
                with pytest.raises(CardLockTimeoutError) as exc_info:
                    await transfer_service.transfer(
                        session, holder.id, card_a.id, card_b.id, Decimal("30.00")
                    )
        assert isinstance(exc_info.value, TransferAbortedError)

        assert await _balances(session_factory, card_a.id, card_b.id) == [
            Decimal("100.00"),
            Decimal("50.00"),
        ]
        assert len(card_store.registry) == 0


class TestConcurrency:
    """Racing transfers, each in its own session and connection."""

    @pytest_asyncio.fixture
    async def file_holder(self, file_session_factory, make_user):
        async with file_session_factory() as session:
            return await make_user(session, "racer@example.com")

    async def _attempt(self, session_factory, user_id, from_id, to_id, amount):
        async with session_factory() as session:
            try:
                await transfer_service.transfer(session, user_id, from_id, to_id, amount)
            except InsufficientFundsError:
                return False
            return True

    @pytest.mark.parametrize("distinct_receivers", [True, False])
    async def test_concurrent_drain_never_overdraws(
        self, file_session_factory, make_card, file_holder, distinct_receivers
    ):
        amount = Decimal("15.00")
        attempts = 12
        async with file_session_factory() as session:
            source = await make_card(session, file_holder, balance="100.00")
            if distinct_receivers:
                receivers = [await make_card(session, file_holder) for _ in range(attempts)]
            else:
                receivers = [await make_card(session, file_holder)] * attempts

        outcomes = await asyncio.gather(*(
            self._attempt(file_session_factory, file_holder.id, source.id, receiver.id, amount)
            for receiver in receivers
        ))

        expected_successes = int(Decimal("100.00") // amount)
        assert sum(outcomes) == expected_successes
        receiver_ids = list(dict.fromkeys(r.id for r in receivers))
        balances = await _balances(file_session_factory, source.id, *receiver_ids)
        assert balances[0] == Decimal("100.00") - amount * expected_successes
        assert sum(balances) == Decimal("100.00")
        assert min(balances) >= 0
        assert await _history_count(file_session_factory) == expected_successes
        assert len(card_store.registry) == 0

    async def test_opposite_directions_do_not_deadlock(
        self, file_session_factory, make_card, file_holder
    ):
        async with file_session_factory() as session:
            card_a = await make_card(session, file_holder, balance="100.00")
            card_b = await make_card(session, file_holder, balance="100.00")

        outcomes = await asyncio.wait_for(
            asyncio.gather(
                self._attempt(file_session_factory, file_holder.id, card_a.id, card_b.id, Decimal("10.00")),
                self._attempt(file_session_factory, file_holder.id, card_b.id, card_a.id, Decimal("5.00")),
            ),
            timeout=30,
        )

        assert outcomes == [True, True]
        assert await _balances(file_session_factory, card_a.id, card_b.id) == [
            Decimal("95.00"),
            Decimal("105.00"),
        ]

    async def test_many_opposite_direction_transfers(
        self, file_session_factory, make_card, file_holder
    ):
        async with file_session_factory() as session:
            card_a = await make_card(session, file_holder, balance="100.00")
            card_b = await make_card(session, file_holder, balance="100.00")

        amount = Decimal("5.00")
        jobs = []
        for _ in range(10):
            jobs.append(self._attempt(file_session_factory, file_holder.id, card_a.id, card_b.id, amount))
            jobs.append(self._attempt(file_session_factory, file_holder.id, card_b.id, card_a.id, amount))

        outcomes = await asyncio.wait_for(asyncio.gather(*jobs), timeout=30)

        assert all(outcomes)
        assert await _balances(file_session_factory, card_a.id, card_b.id) == [
            Decimal("100.00"),
            Decimal("100.00"),
        ]
        assert await _history_count(file_session_factory) == 20


class TestHistoryFidelity:
    async def test_one_record_per_committed_transfer(
        self, session_factory, holder, two_cards
    ):
        card_a, card_b = two_cards
        requested = [
            (card_a.id, card_b.id, Decimal("10.00")),
            (card_b.id, card_a.id, Decimal("2.50")),
            (card_a.id, card_b.id, Decimal("500.00")),  # refused
        ]
        committed = []
        for from_id, to_id, amount in requested:
            async with session_factory() as session:
                try:
                    record = await transfer_service.transfer(
                        session, holder.id, from_id, to_id, amount
                    )
                except InsufficientFundsError:
                    continue
                committed.append(record.id)

        async with session_factory() as session:
            result = await session.execute(
                select(TransferHistory).order_by(TransferHistory.transferred_at)
            )
            records = list(result.scalars().all())

        assert [r.id for r in records] == committed
        assert [(r.sender_card_id, r.receiver_card_id, r.amount) for r in records] == [
            (card_a.id, card_b.id, Decimal("10.00")),
            (card_b.id, card_a.id, Decimal("2.50")),
        ]
