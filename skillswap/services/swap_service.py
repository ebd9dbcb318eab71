"""
Swap lifecycle rules.

Status moves only forward::

    pending -> accepted | rejected      (receiver only)
    accepted -> completed               (either participant)

``rejected`` and ``completed`` are terminal. Each write is conditional on the
status the rule was checked against, so two racing transitions cannot both
win; the loser sees InvalidStateError.
"""

import logging
from typing import Dict, List

from ..core.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidArgumentError,
    InvalidStateError,
    NotFoundError,
)
from ..core.store import Store, now_iso
from ..schemas.swap import SwapCreate, SwapListType, SwapStatus
from .user_service import summary_view

logger = logging.getLogger(__name__)

# target status -> status it may be reached from
TRANSITIONS = {
    SwapStatus.ACCEPTED.value: SwapStatus.PENDING.value,
    SwapStatus.REJECTED.value: SwapStatus.PENDING.value,
    SwapStatus.COMPLETED.value: SwapStatus.ACCEPTED.value,
}
RECEIVER_ONLY = {SwapStatus.ACCEPTED.value, SwapStatus.REJECTED.value}


def is_participant(swap: Dict, user_id: str) -> bool:
    return user_id in (swap["requester_id"], swap["receiver_id"])


class SwapService:
    def __init__(self, store: Store):
        self.store = store

    async def populate(self, swaps: List[Dict]) -> List[Dict]:
        """Expand requester/receiver ids into user summaries with one batched lookup."""
        user_ids = {s["requester_id"] for s in swaps} | {s["receiver_id"] for s in swaps}
        users = {u["id"]: summary_view(u) for u in await self.store.get_users(user_ids)}
        populated = []
        for swap in swaps:
            populated.append({
                "id": swap["id"],
                "requester": users.get(swap["requester_id"]),
                "receiver": users.get(swap["receiver_id"]),
                "skill_offered": swap["skill_offered"],
                "skill_requested": swap["skill_requested"],
                "status": swap["status"],
                "message": swap.get("message"),
                "created_at": swap.get("created_at"),
                "updated_at": swap.get("updated_at"),
            })
        return populated

    async def _populate_one(self, swap: Dict) -> Dict:
        return (await self.populate([swap]))[0]

    async def create_swap(self, requester_id: str, swap: SwapCreate) -> Dict:
        if swap.receiver == requester_id:
            raise InvalidArgumentError("You cannot request a swap with yourself")

        receiver = await self.store.get_user(swap.receiver)
        if not receiver:
            raise NotFoundError("Receiver not found")

        existing = await self.store.find_open_swap(requester_id, swap.receiver)
        if existing:
            raise ConflictError("Swap request already exists")

        now = now_iso()
        new_swap = await self.store.insert_swap({
            "requester_id": requester_id,
            "receiver_id": swap.receiver,
            "skill_offered": swap.skill_offered,
            "skill_requested": swap.skill_requested,
            "message": swap.message,
            "status": SwapStatus.PENDING.value,
            "created_at": now,
            "updated_at": now,
        })
        logger.info("Swap %s requested by %s from %s", new_swap["id"], requester_id, swap.receiver)
        return await self._populate_one(new_swap)

    async def list_swaps(self, user_id: str, list_type: SwapListType = SwapListType.ALL) -> List[Dict]:
        swaps = await self.store.list_swaps(user_id, role=list_type.value)
        return await self.populate(swaps)

    async def _get_raw(self, swap_id: str) -> Dict:
        swap = await self.store.get_swap(swap_id)
        if not swap:
            raise NotFoundError("Swap not found")
        return swap

    async def get_swap(self, swap_id: str, actor_id: str) -> Dict:
        swap = await self._get_raw(swap_id)
        if not is_participant(swap, actor_id):
            raise ForbiddenError("Access denied")
        return await self._populate_one(swap)

    async def update_status(self, swap_id: str, actor_id: str, new_status: str) -> Dict:
        if new_status not in TRANSITIONS:
            raise InvalidArgumentError("Invalid status")

        swap = await self._get_raw(swap_id)
        if new_status in RECEIVER_ONLY:
            if swap["receiver_id"] != actor_id:
                raise ForbiddenError("Only receiver can accept/reject")
        elif not is_participant(swap, actor_id):
            raise ForbiddenError("Access denied")

        expected = TRANSITIONS[new_status]
        if swap["status"] != expected:
            raise InvalidStateError(f"Cannot change status from {swap['status']} to {new_status}")

        updated = await self.store.update_swap_status(swap_id, expected, new_status, now_iso())
        if not updated:
            # Lost a race with another transition or a delete
            current = await self._get_raw(swap_id)
            raise InvalidStateError(f"Cannot change status from {current['status']} to {new_status}")

        logger.info("Swap %s: %s -> %s by %s", swap_id, expected, new_status, actor_id)
        return await self._populate_one(updated)

    async def delete_swap(self, swap_id: str, actor_id: str) -> None:
        swap = await self._get_raw(swap_id)
        if swap["requester_id"] != actor_id:
            raise ForbiddenError("Only requester can delete")
        if swap["status"] != SwapStatus.PENDING.value:
            raise ForbiddenError("Only pending swap requests can be deleted")

        deleted = await self.store.delete_swap(swap_id, SwapStatus.PENDING.value)
        if not deleted:
            await self._get_raw(swap_id)
            raise ForbiddenError("Only pending swap requests can be deleted")
        logger.info("Swap %s deleted by %s", swap_id, actor_id)
