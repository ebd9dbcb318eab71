from fastapi import APIRouter, status, Depends, Path, Query
from typing import List, Optional

from ....schemas.rating import RatingCreate, RatingResponse
from ....services.rating_service import RatingService
from ..deps import get_rating_service
from .users import get_current_user, get_optional_user

router = APIRouter(tags=["ratings"])

@router.post("", response_model=RatingResponse, status_code=status.HTTP_201_CREATED)
async def create_rating(
    rating: RatingCreate,
    current_user: dict = Depends(get_current_user),
    ratings: RatingService = Depends(get_rating_service),
):
    """
    Rate the other participant after a completed swap.

    Each participant may rate a swap once. The ratee's average rating and
    rating count are refreshed before this returns.
    """
    return await ratings.create_rating(current_user["id"], rating)

@router.get("/user/{user_id}", response_model=List[RatingResponse])
async def get_user_ratings(
    user_id: str = Path(...),
    skip: int = Query(0, ge=0),
    limit: int = Query(10, ge=1, le=100),
    viewer: Optional[dict] = Depends(get_optional_user),
    ratings: RatingService = Depends(get_rating_service),
):
    """Get the ratings a user has received, newest first."""
    return await ratings.list_user_ratings(
        user_id, viewer["id"] if viewer else None, skip=skip, limit=limit
    )

@router.get("/swap/{swap_id}", response_model=List[RatingResponse])
async def get_swap_ratings(
    swap_id: str = Path(...),
    current_user: dict = Depends(get_current_user),
    ratings: RatingService = Depends(get_rating_service),
):
    """Get the ratings left on a swap you take part in."""
    return await ratings.list_swap_ratings(swap_id, current_user["id"])
