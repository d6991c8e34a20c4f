"""
User model — the authentication and ownership identity.

Each User is a login credential (email + hashed password) with a role and
the personal details shown on card responses (full name, phone). Cards
reference their owner through Card.owner_id.

Roles:
  - ADMIN: Manages users, issues and blocks cards, reviews all transfers.
           Admins never own cards and cannot initiate transfers.
  - USER:  Card holder. Sees only their own cards, requests blocks, and
           transfers between their own cards. Default for self-registration.

The password is stored as an Argon2id hash, never in plaintext.
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import String, DateTime, Enum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bankcards.database import Base


class UserRole(str, enum.Enum):
    """
    Defines the role a user holds within the system.

    Inherits from str so the enum value serializes naturally to JSON
    and can be stored as a simple string in the database.
    """
    ADMIN = "admin"
    USER = "user"


class User(Base):
    __tablename__ = "users"

    # UUID primary key: globally unique, not sequentially guessable
    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    full_name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    # Email is the login identifier, unique and indexed
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
    )

    phone_number: Mapped[str | None] = mapped_column(
        String(20),
        nullable=True,
    )

    # Argon2id hash of the password
    hashed_password: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole),
        default=UserRole.USER,
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    # --- Relationships ---
    cards: Mapped[list["Card"]] = relationship(
        back_populates="owner",
    )
