"""
TransferHistory model — the append-only log of completed transfers.

One row is written per committed transfer, inside the same database
transaction as the two balance updates, so a row exists if and only if the
money actually moved. Rejected and aborted transfers leave no trace here;
they are only logged.

Rows are never updated or deleted. Cards that appear in history therefore
cannot be deleted either (see card_service.delete_card).
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from bankcards.database import Base, Money


class TransferHistory(Base):
    __tablename__ = "transfer_history"

    __table_args__ = (
        CheckConstraint("amount_cents > 0", name="ck_transfer_history_positive_amount"),
        CheckConstraint(
            "sender_card_id <> receiver_card_id",
            name="ck_transfer_history_distinct_cards",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    sender_card_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("cards.id"),
        nullable=False,
        index=True,
    )

    receiver_card_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("cards.id"),
        nullable=False,
        index=True,
    )

    amount: Mapped[Decimal] = mapped_column(
        "amount_cents",
        Money,
        nullable=False,
    )

    # Indexed for newest-first history listings
    transferred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )
