"""
Admin router — card lifecycle, block workflow and org-wide transfer history.

All endpoints require ADMIN role. Admins issue, re-status and delete cards,
process block requests, and can read every transfer, but they never own
cards and never initiate transfers.

Endpoints:
  POST   /admin/cards                              — Issue a card to a user
  GET    /admin/cards                              — List ALL cards
  PUT    /admin/cards/{card_id}/status             — Change a card's status
  DELETE /admin/cards/{card_id}                    — Delete a card
  GET    /admin/block-requests                     — List pending block requests
  POST   /admin/block-requests/{request_id}/process — Block the card, close the request
  GET    /admin/transfers                          — List ALL transfers
  GET    /admin/users/{user_id}/transfers          — List any user's transfers

All admin routes live in this one router so parameterized paths under the
/admin prefix cannot shadow each other.
"""

import uuid

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from bankcards.database import get_db
from bankcards.dependencies import require_admin
from bankcards.models.user import User
from bankcards.schemas.block_request import BlockResponse
from bankcards.schemas.card import CardResponse, ChangeStatusRequest, CreateCardRequest
from bankcards.schemas.transfer import TransferHistoryResponse
from bankcards.services import block_request_service, card_service, transfer_history_service

router = APIRouter()


# ---------------------------------------------------------------------------
# Card admin endpoints
# ---------------------------------------------------------------------------

@router.post(
    "/cards",
    response_model=CardResponse,
    status_code=status.HTTP_201_CREATED,
    summary="[Admin] Issue a card",
)
async def admin_create_card(
    request: CreateCardRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """
    Issue a new ACTIVE card to a card holder.

    A fresh 16-digit number is generated and stored encrypted; the response
    only carries the masked form. Administrators cannot own cards.
    """
    card = await card_service.admin_create_card(
        db=db,
        user_id=request.user_id,
        expiration_date=request.expiration_date,
        balance=request.balance,
    )
    return card_service.to_card_response(card)


@router.get(
    "/cards",
    response_model=list[CardResponse],
    summary="[Admin] List all cards",
)
async def admin_list_all_cards(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    cards = await card_service.admin_get_all_cards(db, limit=limit, offset=offset)
    return [card_service.to_card_response(card) for card in cards]


@router.put(
    "/cards/{card_id}/status",
    response_model=CardResponse,
    summary="[Admin] Change a card's status",
)
async def admin_change_card_status(
    card_id: uuid.UUID,
    request: ChangeStatusRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Set ACTIVE, BLOCKED or EXPIRED. An expired card cannot be re-activated."""
    card = await card_service.admin_change_status(
        db=db,
        card_id=card_id,
        new_status=request.status,
    )
    return card_service.to_card_response(card)


@router.delete(
    "/cards/{card_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="[Admin] Delete a card",
)
async def admin_delete_card(
    card_id: uuid.UUID,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    await card_service.admin_delete_card(db, card_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------------------------------------------------------------------
# Block request endpoints
# ---------------------------------------------------------------------------

@router.get(
    "/block-requests",
    response_model=list[BlockResponse],
    summary="[Admin] List pending block requests",
)
async def admin_list_block_requests(
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await block_request_service.get_pending_requests(db)


@router.post(
    "/block-requests/{request_id}/process",
    response_model=BlockResponse,
    summary="[Admin] Process a block request",
)
async def admin_process_block_request(
    request_id: uuid.UUID,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Block the requested card and mark the request processed."""
    return await block_request_service.process_request(db, request_id)


# ---------------------------------------------------------------------------
# Transfer history endpoints
# ---------------------------------------------------------------------------

@router.get(
    "/transfers",
    response_model=list[TransferHistoryResponse],
    summary="[Admin] List ALL transfers",
)
async def admin_list_all_transfers(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Complete org-wide transfer history, newest first."""
    return await transfer_history_service.admin_get_all_transfers(
        db=db,
        limit=limit,
        offset=offset,
    )


@router.get(
    "/users/{user_id}/transfers",
    response_model=list[TransferHistoryResponse],
    summary="[Admin] List any user's transfers",
)
async def admin_list_user_transfers(
    user_id: uuid.UUID,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await transfer_history_service.admin_get_user_transfers(
        db=db,
        user_id=user_id,
        limit=limit,
        offset=offset,
    )
