"""
Cards router — card holder views and block requests.

Endpoints (USER only):
  GET  /cards                      — List own cards (optional status filter, paginated)
  GET  /cards/{card_id}            — Get one of own cards (masked number)
  GET  /cards/{card_id}/balance    — Get one of own cards' balance
  POST /cards/{card_id}/block-request — Ask an administrator to block a card

Full card numbers are never returned, only "**** **** **** 1234".
"""

import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from bankcards.database import get_db
from bankcards.dependencies import require_user
from bankcards.models.card import CardStatus
from bankcards.models.user import User
from bankcards.schemas.block_request import BlockResponse
from bankcards.schemas.card import BalanceResponse, CardResponse
from bankcards.services import block_request_service, card_service

router = APIRouter()


@router.get(
    "",
    response_model=list[CardResponse],
    summary="List my cards",
)
async def list_my_cards(
    status_filter: CardStatus | None = Query(None, alias="status", description="Filter by status"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    cards = await card_service.get_user_cards(
        db=db,
        user_id=user.id,
        status_filter=status_filter,
        limit=limit,
        offset=offset,
    )
    return [card_service.to_card_response(card) for card in cards]


@router.get(
    "/{card_id}",
    response_model=CardResponse,
    summary="Get card details (masked)",
)
async def get_card(
    card_id: uuid.UUID,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    card = await card_service.get_card(db=db, card_id=card_id, user_id=user.id)
    return card_service.to_card_response(card)


@router.get(
    "/{card_id}/balance",
    response_model=BalanceResponse,
    summary="Get card balance",
)
async def get_balance(
    card_id: uuid.UUID,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    balance = await card_service.get_card_balance(db=db, card_id=card_id, user_id=user.id)
    return BalanceResponse(card_id=card_id, balance=balance)


@router.post(
    "/{card_id}/block-request",
    response_model=BlockResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Request a card block",
)
async def request_block(
    card_id: uuid.UUID,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    """
    File a block request for one of your cards.

    The card stays usable until an administrator processes the request.
    """
    return await block_request_service.create_request(
        db=db, card_id=card_id, user_id=user.id
    )
