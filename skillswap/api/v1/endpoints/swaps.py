from fastapi import APIRouter, status, Depends, Path, Query
from typing import List

from ....schemas.swap import (
    MessageResponse,
    SwapCreate,
    SwapListType,
    SwapResponse,
    SwapUpdate,
)
from ....services.swap_service import SwapService
from ..deps import get_swap_service
from .users import get_current_user

router = APIRouter(tags=["swaps"])

@router.post("", response_model=SwapResponse, status_code=status.HTTP_201_CREATED)
async def create_swap_request(
    swap: SwapCreate,
    current_user: dict = Depends(get_current_user),
    swaps: SwapService = Depends(get_swap_service),
):
    """
    Create a new swap request.

    The current user becomes the requester. Only one open (pending or
    accepted) request may exist from a requester to the same receiver.
    """
    return await swaps.create_swap(current_user["id"], swap)

@router.get("", response_model=List[SwapResponse])
async def get_swaps(
    type: SwapListType = Query(SwapListType.ALL),
    current_user: dict = Depends(get_current_user),
    swaps: SwapService = Depends(get_swap_service),
):
    """
    List the current user's swaps, newest first.

    ``type=sent`` limits the list to requests the user made, ``type=received``
    to requests made to them.
    """
    return await swaps.list_swaps(current_user["id"], type)

@router.get("/{swap_id}", response_model=SwapResponse)
async def get_swap(
    swap_id: str = Path(...),
    current_user: dict = Depends(get_current_user),
    swaps: SwapService = Depends(get_swap_service),
):
    """Get a swap you take part in."""
    return await swaps.get_swap(swap_id, current_user["id"])

@router.put("/{swap_id}", response_model=SwapResponse)
async def update_swap_status(
    swap_update: SwapUpdate,
    swap_id: str = Path(...),
    current_user: dict = Depends(get_current_user),
    swaps: SwapService = Depends(get_swap_service),
):
    """
    Move a swap to a new status.

    The receiver accepts or rejects a pending request; either participant
    marks an accepted swap as completed.
    """
    return await swaps.update_status(swap_id, current_user["id"], swap_update.status)

@router.delete("/{swap_id}", response_model=MessageResponse)
async def delete_swap_request(
    swap_id: str = Path(...),
    current_user: dict = Depends(get_current_user),
    swaps: SwapService = Depends(get_swap_service),
):
    """Withdraw a pending swap request you made."""
    await swaps.delete_swap(swap_id, current_user["id"])
    return {"message": "Swap deleted successfully"}
