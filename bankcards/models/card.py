"""
Card model — a balance-bearing bank card owned by exactly one User.

Each card has:
  - An encrypted 16-digit card number plus its last four digits in plaintext
  - A status: ACTIVE, BLOCKED or EXPIRED
  - A balance, stored as integer cents (see database.Money)
  - An expiration date

Encryption strategy:
  The full card number is Fernet-encrypted at rest. Only the last four
  digits are kept in plaintext, for the masked display "**** **** **** 1234".
  Encryption (not hashing) keeps the number recoverable for payment
  processing while protecting it in a database breach.

Balance management:
  Balance changes only happen inside the transfer engine, under the card's
  lock. A CHECK constraint keeps the balance non-negative at the database
  level as a final safety net behind the engine's own funds check.

Ownership (owner_id) is set at issuance and never changes.
"""

import enum
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import String, Date, DateTime, Enum, ForeignKey, LargeBinary, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bankcards.database import Base, Money


class CardStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    BLOCKED = "BLOCKED"
    EXPIRED = "EXPIRED"


class Card(Base):
    __tablename__ = "cards"

    __table_args__ = (
        CheckConstraint("balance_cents >= 0", name="ck_cards_non_negative_balance"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    owner_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )

    # Full card number, Fernet-encrypted (AES-128-CBC + HMAC-SHA256)
    card_number_encrypted: Mapped[bytes] = mapped_column(
        LargeBinary,
        nullable=False,
    )

    # Last four digits in plaintext for display ("**** **** **** 4242")
    card_number_last_four: Mapped[str] = mapped_column(
        String(4),
        nullable=False,
    )

    expiration_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )

    status: Mapped[CardStatus] = mapped_column(
        Enum(CardStatus),
        default=CardStatus.ACTIVE,
        nullable=False,
    )

    balance: Mapped[Decimal] = mapped_column(
        "balance_cents",
        Money,
        nullable=False,
        default=Decimal("0.00"),
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    # --- Relationships ---
    owner: Mapped["User"] = relationship(
        back_populates="cards",
    )

    def is_expired(self, today: date | None = None) -> bool:
        """True if the card is marked EXPIRED or its expiration date has passed."""
        today = today or date.today()
        return self.status == CardStatus.EXPIRED or self.expiration_date < today

    def is_usable(self, today: date | None = None) -> bool:
        """True if the card may take part in a transfer."""
        return self.status == CardStatus.ACTIVE and not self.is_expired(today)
