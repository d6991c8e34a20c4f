"""
Transfers router — moving money between a card holder's own cards.

Endpoints (USER only):
  POST /transfer          — Transfer money between two of your own cards
  GET  /transfer/history  — List transfers touching any of your cards

A transfer either commits completely (both balances and one history record)
or leaves no trace at all. Failed transfers are not recorded.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from bankcards.database import get_db
from bankcards.dependencies import require_user
from bankcards.models.user import User
from bankcards.schemas.transfer import TransferHistoryResponse, TransferRequest
from bankcards.services import transfer_history_service, transfer_service

router = APIRouter()


@router.post(
    "",
    response_model=TransferHistoryResponse,
    summary="Transfer money between your own cards",
)
async def create_transfer(
    request: TransferRequest,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Transfer money from one of your cards to another of your cards.

    - **from_card_id** / **to_card_id**: Must be different cards you own
    - **amount**: Positive, at most two decimal places (e.g. "30.00")
    - Both cards must be ACTIVE and unexpired
    - The source card must hold at least the amount

    Returns the history record of the committed transfer.
    """
    return await transfer_service.transfer(
        db=db,
        acting_user_id=user.id,
        from_card_id=request.from_card_id,
        to_card_id=request.to_card_id,
        amount=request.amount,
    )


@router.get(
    "/history",
    response_model=list[TransferHistoryResponse],
    summary="List my transfer history",
)
async def list_my_transfers(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    return await transfer_history_service.get_user_transfers(
        db=db,
        user_id=user.id,
        limit=limit,
        offset=offset,
    )
