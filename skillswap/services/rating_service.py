import logging
from typing import Dict, List, Optional

from ..core.config import Settings
from ..core.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidArgumentError,
    InvalidStateError,
    NotFoundError,
    SkillSwapError,
)
from ..core.store import Store, now_iso
from ..schemas.rating import RatingCreate
from ..schemas.swap import SwapStatus
from ..schemas.user import ProfileVisibility
from .swap_service import is_participant

logger = logging.getLogger(__name__)


def rating_view(rating: Dict) -> Dict:
    return {
        "id": rating["id"],
        "swap": rating["swap_id"],
        "rater": rating["rater_id"],
        "ratee": rating["ratee_id"],
        "rating": rating["rating"],
        "feedback": rating.get("feedback"),
        "created_at": rating.get("created_at"),
        "updated_at": rating.get("updated_at"),
    }


class RatingService:
    def __init__(self, store: Store, settings: Settings):
        self.store = store
        self.settings = settings

    async def create_rating(self, rater_id: str, rating: RatingCreate) -> Dict:
        """
        Rate the other participant of a completed swap.

        The rating is stored first; the ratee's aggregate is then recomputed
        from every rating they have received.
        """
        swap = await self.store.get_swap(rating.swap_id)
        if not swap:
            raise NotFoundError("Swap not found")
        if swap["status"] != SwapStatus.COMPLETED.value:
            raise InvalidStateError("You can only rate completed swaps")
        if not is_participant(swap, rater_id):
            raise ForbiddenError("Access denied")

        counterparty = swap["receiver_id"] if swap["requester_id"] == rater_id else swap["requester_id"]
        if rating.ratee != counterparty:
            raise InvalidArgumentError("Ratee must be the other participant of the swap")

        existing = await self.store.find_rating(rating.swap_id, rater_id)
        if existing:
            raise ConflictError("Rating already exists")

        now = now_iso()
        new_rating = await self.store.insert_rating({
            "swap_id": rating.swap_id,
            "rater_id": rater_id,
            "ratee_id": counterparty,
            "rating": rating.rating,
            "feedback": rating.feedback,
            "created_at": now,
            "updated_at": now,
        })
        logger.info("Rating %s: %s rated %s with %d", new_rating["id"], rater_id, counterparty, rating.rating)

        await self.refresh_aggregate(counterparty)
        return rating_view(new_rating)

    async def refresh_aggregate(self, user_id: str) -> Dict:
        """
        Recompute ``rating``/``ratings_count`` for a user.

        The write only lands if the user's ``version`` is unchanged since it
        was read. A concurrent submission bumps the version, so the loser
        re-reads and recomputes with the newer ratings included.
        """
        for attempt in range(1, self.settings.rating_aggregation_retries + 1):
            user = await self.store.get_user(user_id)
            if not user:
                raise NotFoundError("User not found")

            scores = [r["rating"] for r in await self.store.list_ratings_for_ratee(user_id)]
            count = len(scores)
            average = sum(scores) / count if count else 0.0

            updated = await self.store.update_user_rating(
                user_id, average, count, user.get("version", 0)
            )
            if updated:
                return updated
            logger.info("Rating aggregate for %s changed concurrently (attempt %d)", user_id, attempt)

        logger.error("Giving up on rating aggregate for %s", user_id)
        raise SkillSwapError("Rating saved but the rating summary could not be updated")

    async def list_user_ratings(
        self,
        user_id: str,
        viewer_id: Optional[str] = None,
        skip: int = 0,
        limit: int = 10,
    ) -> List[Dict]:
        user = await self.store.get_user(user_id)
        if not user:
            raise NotFoundError("User not found")
        if user.get("profile_visibility") == ProfileVisibility.PRIVATE.value and viewer_id != user_id:
            raise ForbiddenError("Profile is private")

        ratings = await self.store.list_ratings_for_ratee(user_id, offset=skip, limit=limit)
        return [rating_view(r) for r in ratings]

    async def list_swap_ratings(self, swap_id: str, actor_id: str) -> List[Dict]:
        swap = await self.store.get_swap(swap_id)
        if not swap:
            raise NotFoundError("Swap not found")
        if not is_participant(swap, actor_id):
            raise ForbiddenError("Access denied")
        return [rating_view(r) for r in await self.store.list_ratings_for_swap(swap_id)]
