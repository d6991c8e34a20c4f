"""
Pydantic schemas for the transfer endpoint and transfer history.

The request schema only checks shape (ids are UUIDs, amount is a decimal
with at most two places). Business preconditions such as "different cards"
and "positive amount" are enforced by the transfer engine, in its fixed
order, so they report the same way whether called over HTTP or directly.
"""

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field


class TransferRequest(BaseModel):
    """Request body for POST /transfer."""
    from_card_id: uuid.UUID
    to_card_id: uuid.UUID
    amount: Decimal = Field(max_digits=18, decimal_places=2)


class TransferHistoryResponse(BaseModel):
    """One committed transfer."""
    id: uuid.UUID
    sender_card_id: uuid.UUID
    receiver_card_id: uuid.UUID
    amount: Decimal
    transferred_at: datetime

    model_config = {"from_attributes": True}
