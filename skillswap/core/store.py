"""
Persistence layer for users, swaps and ratings.

Handlers never talk to the database directly: a single ``Store`` is built
when the application starts, kept on ``app.state.store`` and handed to the
services through a FastAPI dependency. Records travel as plain dicts keyed
by storage column names (snake_case).

Two implementations exist:

* ``SupabaseStore`` (``core/supabase.py``) for deployments.
* ``InMemoryStore`` below, for local runs, seeding demos and tests.

Both provide the same conditional-write semantics: status transitions only
apply when the swap is still in the expected status, and rating aggregates
only apply when the user's ``version`` has not moved.
"""

import asyncio
import copy
import itertools
import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .config import Settings
from .exceptions import ConflictError

logger = logging.getLogger(__name__)

OPEN_SWAP_STATUSES = ("pending", "accepted")


def new_id() -> str:
    return str(uuid.uuid4())


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class Store(ABC):
    """Abstract store used by the service layer."""

    # Users

    @abstractmethod
    async def insert_user(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a user. Raises ConflictError when the email is taken."""

    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        ...

    @abstractmethod
    async def get_user_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        ...

    @abstractmethod
    async def get_users(self, user_ids: Iterable[str]) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    async def update_user(self, user_id: str, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        ...

    @abstractmethod
    async def search_public_users(
        self, search: Optional[str], offset: int, limit: int
    ) -> Tuple[List[Dict[str, Any]], int]:
        """Return one page of public users (newest first) and the total match count."""

    @abstractmethod
    async def update_user_rating(
        self, user_id: str, rating: float, ratings_count: int, expected_version: int
    ) -> Optional[Dict[str, Any]]:
        """Write the rating aggregate if ``version`` still equals ``expected_version``.

        Bumps ``version`` on success; returns None when the guard fails.
        """

    # Swaps

    @abstractmethod
    async def insert_swap(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a swap. Raises ConflictError when an open swap already exists for the pair."""

    @abstractmethod
    async def get_swap(self, swap_id: str) -> Optional[Dict[str, Any]]:
        ...

    @abstractmethod
    async def find_open_swap(self, requester_id: str, receiver_id: str) -> Optional[Dict[str, Any]]:
        ...

    @abstractmethod
    async def list_swaps(self, user_id: str, role: str = "all") -> List[Dict[str, Any]]:
        """List swaps where the user is requester (``sent``), receiver (``received``) or either."""

    @abstractmethod
    async def update_swap_status(
        self, swap_id: str, expected_status: str, new_status: str, updated_at: str
    ) -> Optional[Dict[str, Any]]:
        """Set the status only if the swap is still in ``expected_status``."""

    @abstractmethod
    async def delete_swap(self, swap_id: str, expected_status: str) -> bool:
        ...

    # Ratings

    @abstractmethod
    async def insert_rating(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a rating. Raises ConflictError on a second rating for (swap, rater)."""

    @abstractmethod
    async def find_rating(self, swap_id: str, rater_id: str) -> Optional[Dict[str, Any]]:
        ...

    @abstractmethod
    async def list_ratings_for_swap(self, swap_id: str) -> List[Dict[str, Any]]:
        """Ratings left on one swap, oldest first."""

    @abstractmethod
    async def list_ratings_for_ratee(
        self, ratee_id: str, offset: int = 0, limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        ...

    async def close(self) -> None:
        return None


class InMemoryStore(Store):
    """Dict-backed store. Every operation runs under one asyncio lock."""

    def __init__(self):
        self._lock = asyncio.Lock()
        self._users: Dict[str, Dict[str, Any]] = {}
        self._swaps: Dict[str, Dict[str, Any]] = {}
        self._ratings: Dict[str, Dict[str, Any]] = {}
        # Insertion order breaks ties between equal timestamps
        self._order: Dict[str, int] = {}
        self._counter = itertools.count()

    def _remember(self, record_id: str) -> None:
        self._order[record_id] = next(self._counter)

    def _newest_first(self, records: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return sorted(
            records,
            key=lambda r: (r.get("created_at") or "", self._order.get(r["id"], 0)),
            reverse=True,
        )

    async def insert_user(self, data):
        async with self._lock:
            email = data["email"]
            if any(u["email"] == email for u in self._users.values()):
                raise ConflictError("User already exists")
            record = {"version": 0, **copy.deepcopy(data)}
            record.setdefault("id", new_id())
            self._users[record["id"]] = record
            self._remember(record["id"])
            return copy.deepcopy(record)

    async def get_user(self, user_id):
        async with self._lock:
            user = self._users.get(user_id)
            return copy.deepcopy(user) if user else None

    async def get_user_by_email(self, email):
        async with self._lock:
            for user in self._users.values():
                if user["email"] == email:
                    return copy.deepcopy(user)
            return None

    async def get_users(self, user_ids):
        async with self._lock:
            return [copy.deepcopy(self._users[i]) for i in set(user_ids) if i in self._users]

    async def update_user(self, user_id, data):
        async with self._lock:
            user = self._users.get(user_id)
            if user is None:
                return None
            user.update(copy.deepcopy(data))
            return copy.deepcopy(user)

    async def search_public_users(self, search, offset, limit):
        async with self._lock:
            matches = [
                u for u in self._users.values()
                if u.get("profile_visibility", "public") == "public" and _matches(u, search)
            ]
            ordered = self._newest_first(matches)
            page = ordered[offset:offset + limit]
            return [copy.deepcopy(u) for u in page], len(matches)

    async def update_user_rating(self, user_id, rating, ratings_count, expected_version):
        async with self._lock:
            user = self._users.get(user_id)
            if user is None or user.get("version", 0) != expected_version:
                return None
            user["rating"] = rating
            user["ratings_count"] = ratings_count
            user["version"] = expected_version + 1
            return copy.deepcopy(user)

    async def insert_swap(self, data):
        async with self._lock:
            for swap in self._swaps.values():
                if (
                    swap["requester_id"] == data["requester_id"]
                    and swap["receiver_id"] == data["receiver_id"]
                    and swap["status"] in OPEN_SWAP_STATUSES
                ):
                    raise ConflictError("Swap request already exists")
            record = copy.deepcopy(data)
            record.setdefault("id", new_id())
            self._swaps[record["id"]] = record
            self._remember(record["id"])
            return copy.deepcopy(record)

    async def get_swap(self, swap_id):
        async with self._lock:
            swap = self._swaps.get(swap_id)
            return copy.deepcopy(swap) if swap else None

    async def find_open_swap(self, requester_id, receiver_id):
        async with self._lock:
            for swap in self._swaps.values():
                if (
                    swap["requester_id"] == requester_id
                    and swap["receiver_id"] == receiver_id
                    and swap["status"] in OPEN_SWAP_STATUSES
                ):
                    return copy.deepcopy(swap)
            return None

    async def list_swaps(self, user_id, role="all"):
        async with self._lock:
            if role == "sent":
                found = [s for s in self._swaps.values() if s["requester_id"] == user_id]
            elif role == "received":
                found = [s for s in self._swaps.values() if s["receiver_id"] == user_id]
            else:
                found = [
                    s for s in self._swaps.values()
                    if s["requester_id"] == user_id or s["receiver_id"] == user_id
                ]
            return [copy.deepcopy(s) for s in self._newest_first(found)]

    async def update_swap_status(self, swap_id, expected_status, new_status, updated_at):
        async with self._lock:
            swap = self._swaps.get(swap_id)
            if swap is None or swap["status"] != expected_status:
                return None
            swap["status"] = new_status
            swap["updated_at"] = updated_at
            return copy.deepcopy(swap)

    async def delete_swap(self, swap_id, expected_status):
        async with self._lock:
            swap = self._swaps.get(swap_id)
            if swap is None or swap["status"] != expected_status:
                return False
            del self._swaps[swap_id]
            return True

    async def insert_rating(self, data):
        async with self._lock:
            for rating in self._ratings.values():
                if rating["swap_id"] == data["swap_id"] and rating["rater_id"] == data["rater_id"]:
                    raise ConflictError("Rating already exists")
            record = copy.deepcopy(data)
            record.setdefault("id", new_id())
            self._ratings[record["id"]] = record
            self._remember(record["id"])
            return copy.deepcopy(record)

    async def find_rating(self, swap_id, rater_id):
        async with self._lock:
            for rating in self._ratings.values():
                if rating["swap_id"] == swap_id and rating["rater_id"] == rater_id:
                    return copy.deepcopy(rating)
            return None

    async def list_ratings_for_swap(self, swap_id):
        async with self._lock:
            found = self._newest_first(r for r in self._ratings.values() if r["swap_id"] == swap_id)
            return [copy.deepcopy(r) for r in reversed(found)]

    async def list_ratings_for_ratee(self, ratee_id, offset=0, limit=None):
        async with self._lock:
            found = self._newest_first(
                r for r in self._ratings.values() if r["ratee_id"] == ratee_id
            )
            end = None if limit is None else offset + limit
            return [copy.deepcopy(r) for r in found[offset:end]]


def _matches(user: Dict[str, Any], search: Optional[str]) -> bool:
    if not search:
        return True
    needle = search.lower()
    if needle in (user.get("name") or "").lower():
        return True
    skills = list(user.get("skills_offered") or []) + list(user.get("skills_wanted") or [])
    return any(needle in skill.lower() for skill in skills)


def create_store(settings: Settings) -> Store:
    """Build the store selected by ``settings.store_backend``."""
    backend = settings.store_backend.lower()
    if backend == "memory":
        logger.info("Using in-memory store")
        return InMemoryStore()
    if backend == "supabase":
        from .supabase import SupabaseStore

        if not settings.supabase_url or not settings.supabase_key:
            raise ValueError(
                "SUPABASE_URL and SUPABASE_KEY must be set in environment variables"
            )
        logger.info("Using Supabase store at %s", settings.supabase_url)
        return SupabaseStore.from_settings(settings)
    raise ValueError(f"Unknown store backend: {settings.store_backend}")
