import logging
import uuid
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple
from fastapi.concurrency import run_in_threadpool
from postgrest.exceptions import APIError
from supabase import create_client, Client

from .config import Settings
from .exceptions import ConflictError
from .store import OPEN_SWAP_STATUSES, Store, new_id

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"
# PostgREST answers 416 with this code when the requested offset is past the last row
RANGE_NOT_SATISFIABLE = "PGRST103"

# Rows requested per round trip when reading a whole result set. The server may
# still cap a response below this (Supabase's max_rows), so paging advances by
# the number of rows actually returned.
PAGE_SIZE = 1000


def _is_uuid(value: str) -> bool:
    try:
        uuid.UUID(str(value))
    except ValueError:
        return False
    return True


def _literal_regex(term: str) -> str:
    """
    Regex matching ``term`` literally, for PostgREST's ``imatch`` (``~*``) filter.

    ``like``/``ilike`` are avoided because PostgREST rewrites ``*`` to ``%`` in
    their patterns and offers no escape for it.
    """
    return "".join(c if c.isalnum() else "\\" + c for c in term.lower())


class SupabaseStore(Store):
    """
    Store backed by Supabase (PostgREST) tables ``users``, ``swaps`` and ``ratings``.

    The schema lives in ``sql/schema.sql``. Uniqueness rules are enforced by
    indexes there and surface here as ConflictError; conditional writes are
    expressed as extra ``eq`` filters on the update so that PostgREST only
    touches the row when the guard still holds.

    The supabase client is synchronous, so every request runs in the
    threadpool to keep the event loop free.
    """

    def __init__(self, client: Client):
        self.client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "SupabaseStore":
        return cls(create_client(settings.supabase_url, settings.supabase_key))

    async def _execute(self, query, conflict_detail: Optional[str] = None, expected_codes: Tuple[str, ...] = ()):
        try:
            return await run_in_threadpool(query.execute)
        except APIError as e:
            if conflict_detail and e.code == UNIQUE_VIOLATION:
                raise ConflictError(conflict_detail) from e
            if e.code not in expected_codes:
                logger.error("Supabase request failed: %s (code=%s)", e.message, e.code)
            raise

    async def _select_all(self, build: Callable[[], Any]) -> List[Dict[str, Any]]:
        """
        Read every row of a query, one page at a time.

        ``build`` returns a fresh ordered query selected with ``count="exact"``;
        request builders are mutable, so each page needs its own.
        """
        rows: List[Dict[str, Any]] = []
        while True:
            result = await self._execute(build().range(len(rows), len(rows) + PAGE_SIZE - 1))
            rows.extend(result.data)
            total = result.count if result.count is not None else len(rows)
            if not result.data or len(rows) >= total:
                return rows

    async def _first(self, query) -> Optional[Dict[str, Any]]:
        result = await self._execute(query.limit(1))
        return result.data[0] if result.data else None

    # Users

    async def insert_user(self, data):
        record = {"version": 0, **data}
        record.setdefault("id", new_id())
        result = await self._execute(
            self.client.table("users").insert(record),
            conflict_detail="User already exists",
        )
        return result.data[0]

    async def get_user(self, user_id):
        if not _is_uuid(user_id):
            return None
        return await self._first(self.client.table("users").select("*").eq("id", user_id))

    async def get_user_by_email(self, email):
        return await self._first(self.client.table("users").select("*").eq("email", email))

    async def get_users(self, user_ids: Iterable[str]) -> List[Dict[str, Any]]:
        ids = [i for i in set(user_ids) if _is_uuid(i)]
        if not ids:
            return []
        result = await self._execute(self.client.table("users").select("*").in_("id", ids))
        return result.data

    async def update_user(self, user_id, data):
        if not _is_uuid(user_id):
            return None
        result = await self._execute(
            self.client.table("users").update(data).eq("id", user_id)
        )
        return result.data[0] if result.data else None

    def _public_users(self, search, count: Optional[str] = None):
        query = (
            self.client.table("users")
            .select("*", count=count)
            .eq("profile_visibility", "public")
        )
        if search:
            # search_text is maintained by a trigger: lower(name + both skill lists)
            query = query.filter("search_text", "imatch", _literal_regex(search))
        return query

    async def search_public_users(self, search, offset, limit) -> Tuple[List[Dict[str, Any]], int]:
        query = (
            self._public_users(search, count="exact")
            .order("created_at", desc=True)
            .order("id")
            .range(offset, offset + limit - 1)
        )
        try:
            result = await self._execute(query, expected_codes=(RANGE_NOT_SATISFIABLE,))
        except APIError as e:
            if e.code != RANGE_NOT_SATISFIABLE:
                raise
            # Page past the end: report the total with no rows
            counted = await self._execute(self._public_users(search, count="exact").limit(1))
            return [], counted.count or 0
        return result.data, result.count or 0

    async def update_user_rating(self, user_id, rating, ratings_count, expected_version):
        result = await self._execute(
            self.client.table("users")
            .update({
                "rating": rating,
                "ratings_count": ratings_count,
                "version": expected_version + 1,
            })
            .eq("id", user_id)
            .eq("version", expected_version)
        )
        return result.data[0] if result.data else None

    # Swaps

    async def insert_swap(self, data):
        record = dict(data)
        record.setdefault("id", new_id())
        result = await self._execute(
            self.client.table("swaps").insert(record),
            conflict_detail="Swap request already exists",
        )
        return result.data[0]

    async def get_swap(self, swap_id):
        if not _is_uuid(swap_id):
            return None
        return await self._first(self.client.table("swaps").select("*").eq("id", swap_id))

    async def find_open_swap(self, requester_id, receiver_id):
        return await self._first(
            self.client.table("swaps")
            .select("*")
            .eq("requester_id", requester_id)
            .eq("receiver_id", receiver_id)
            .in_("status", list(OPEN_SWAP_STATUSES))
        )

    async def list_swaps(self, user_id, role="all"):
        def build():
            query = self.client.table("swaps").select("*", count="exact")
            if role == "sent":
                query = query.eq("requester_id", user_id)
            elif role == "received":
                query = query.eq("receiver_id", user_id)
            else:
                query = query.or_(f"requester_id.eq.{user_id},receiver_id.eq.{user_id}")
            return query.order("created_at", desc=True).order("id")

        return await self._select_all(build)

    async def update_swap_status(self, swap_id, expected_status, new_status, updated_at):
        result = await self._execute(
            self.client.table("swaps")
            .update({"status": new_status, "updated_at": updated_at})
            .eq("id", swap_id)
            .eq("status", expected_status)
        )
        return result.data[0] if result.data else None

    async def delete_swap(self, swap_id, expected_status):
        result = await self._execute(
            self.client.table("swaps")
            .delete()
            .eq("id", swap_id)
            .eq("status", expected_status)
        )
        return bool(result.data)

    # Ratings

    async def insert_rating(self, data):
        record = dict(data)
        record.setdefault("id", new_id())
        result = await self._execute(
            self.client.table("ratings").insert(record),
            conflict_detail="Rating already exists",
        )
        return result.data[0]

    async def find_rating(self, swap_id, rater_id):
        return await self._first(
            self.client.table("ratings")
            .select("*")
            .eq("swap_id", swap_id)
            .eq("rater_id", rater_id)
        )

    async def list_ratings_for_swap(self, swap_id):
        result = await self._execute(
            self.client.table("ratings")
            .select("*")
            .eq("swap_id", swap_id)
            .order("created_at")
        )
        return result.data

    def _ratings_for_ratee(self, ratee_id, count: Optional[str] = None):
        return (
            self.client.table("ratings")
            .select("*", count=count)
            .eq("ratee_id", ratee_id)
            .order("created_at", desc=True)
            .order("id")
        )

    async def list_ratings_for_ratee(self, ratee_id, offset=0, limit=None):
        if limit is None:
            # Aggregates need every rating, not just the server's first page
            rows = await self._select_all(lambda: self._ratings_for_ratee(ratee_id, count="exact"))
            return rows[offset:]
        try:
            result = await self._execute(
                self._ratings_for_ratee(ratee_id).range(offset, offset + limit - 1),
                expected_codes=(RANGE_NOT_SATISFIABLE,),
            )
        except APIError as e:
            if e.code != RANGE_NOT_SATISFIABLE:
                raise
            return []
        return result.data

    async def close(self):
        try:
            self.client.postgrest.aclose()
        except Exception:
            logger.warning("Failed to close Supabase client cleanly", exc_info=True)
