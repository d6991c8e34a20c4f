"""Pydantic schemas for the card block workflow."""

import uuid
from datetime import datetime

from pydantic import BaseModel


class BlockResponse(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    card_id: uuid.UUID
    requested_at: datetime
    processed: bool

    model_config = {"from_attributes": True}
