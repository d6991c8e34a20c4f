"""
Pydantic schemas for Card endpoints.

Full card numbers are NEVER returned in API responses. Only the masked form
("**** **** **** 1234") is exposed.

Balances are Decimals with two decimal places and serialize as JSON strings
("70.00"), so no client ever parses money through a binary float.
"""

import uuid
from datetime import date
from decimal import Decimal

from pydantic import BaseModel, Field, FutureDate

from bankcards.models.card import CardStatus


class CreateCardRequest(BaseModel):
    """Request body for POST /admin/cards."""
    user_id: uuid.UUID
    expiration_date: FutureDate
    balance: Decimal = Field(
        default=Decimal("0.00"),
        ge=0,
        max_digits=18,
        decimal_places=2,
        description="Opening balance",
    )


class ChangeStatusRequest(BaseModel):
    """Request body for PUT /admin/cards/{id}/status."""
    status: CardStatus


class CardResponse(BaseModel):
    """Public representation of a card (masked number)."""
    id: uuid.UUID
    masked_number: str
    owner_full_name: str
    expiration_date: date
    status: CardStatus
    balance: Decimal


class BalanceResponse(BaseModel):
    card_id: uuid.UUID
    balance: Decimal
