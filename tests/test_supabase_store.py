import asyncio
import re
import uuid
from types import SimpleNamespace

import pytest
from postgrest.exceptions import APIError

from skillswap.core.config import Settings
from skillswap.core.exceptions import ConflictError
from skillswap.core.supabase import SupabaseStore, _literal_regex
from skillswap.services.rating_service import RatingService


def run(coro):
    return asyncio.run(coro)


class FakeQuery:
    """Records the builder calls SupabaseStore makes, like postgrest's request builders."""

    def __init__(self, db, table):
        self.db = db
        self.table = table
        self.action = "select"
        self.payload = None
        self.count = None
        self.filters = []
        self.orders = []
        self.offset = 0
        self.size = None

    def select(self, *columns, count=None):
        self.action, self.count = "select", count
        return self

    def insert(self, record):
        self.action, self.payload = "insert", dict(record)
        return self

    def update(self, data):
        self.action, self.payload = "update", dict(data)
        return self

    def delete(self):
        self.action = "delete"
        return self

    def eq(self, column, value):
        self.filters.append(("eq", column, value))
        return self

    def in_(self, column, values):
        self.filters.append(("in", column, tuple(values)))
        return self

    def or_(self, expression):
        self.filters.append(("or", expression, None))
        return self

    def filter(self, column, operator, criteria):
        self.filters.append((operator, column, criteria))
        return self

    def order(self, column, desc=False):
        self.orders.append((column, desc))
        return self

    def range(self, start, end):
        self.offset, self.size = start, end - start + 1
        return self

    def limit(self, size):
        self.size = size
        return self

    def execute(self):
        return self.db.run(self)


def _matches(row, f):
    op, column, value = f
    if op == "eq":
        return row.get(column) == value
    if op == "in":
        return row.get(column) in value
    if op == "or":
        parts = [part.split(".", 2) for part in column.split(",")]
        return any(row.get(c) == v for c, _, v in parts)
    if op == "imatch":
        return re.search(value, row.get(column) or "", re.IGNORECASE) is not None
    raise AssertionError(f"unsupported filter {op}")


class FakeDatabase:
    """Just enough PostgREST: unique indexes, a max_rows cap and 416 past the end."""

    # table -> (columns, predicate on the stored row)
    UNIQUE = {
        "users": [(("email",), lambda r: True)],
        "swaps": [(("requester_id", "receiver_id"), lambda r: r["status"] in ("pending", "accepted"))],
        "ratings": [(("swap_id", "rater_id"), lambda r: True)],
    }

    def __init__(self, max_rows=1000):
        self.max_rows = max_rows
        self.tables = {}
        self.executed = []

    def run(self, q):
        self.executed.append(q)
        rows = self.tables.setdefault(q.table, [])

        if q.action == "insert":
            for columns, applies in self.UNIQUE.get(q.table, []):
                if not applies(q.payload):
                    continue
                for row in rows:
                    if applies(row) and all(row.get(c) == q.payload.get(c) for c in columns):
                        raise APIError({"code": "23505", "message": "duplicate key value"})
            record = dict(q.payload)
            self._search_text(q.table, record)
            rows.append(record)
            return SimpleNamespace(data=[dict(record)], count=None)

        matched = [r for r in rows if all(_matches(r, f) for f in q.filters)]
        if q.action == "update":
            for row in matched:
                row.update(q.payload)
                self._search_text(q.table, row)
            return SimpleNamespace(data=[dict(r) for r in matched], count=None)
        if q.action == "delete":
            for row in matched:
                rows.remove(row)
            return SimpleNamespace(data=[dict(r) for r in matched], count=None)

        for column, desc in reversed(q.orders):
            matched.sort(key=lambda r: str(r.get(column) or ""), reverse=desc)
        total = len(matched)
        if q.count and q.offset and q.offset >= total:
            raise APIError({"code": "PGRST103", "message": "Requested range not satisfiable"})
        size = min(q.size or self.max_rows, self.max_rows)
        page = matched[q.offset:q.offset + size]
        return SimpleNamespace(data=[dict(r) for r in page], count=total if q.count else None)

    @staticmethod
    def _search_text(table, row):
        # Mirrors the users_search_text trigger
        if table == "users":
            parts = [row.get("name") or ""] + list(row.get("skills_offered") or []) + list(row.get("skills_wanted") or [])
            row["search_text"] = "\n".join(parts).lower()


class FakeClient:
    def __init__(self, max_rows=1000):
        self.db = FakeDatabase(max_rows)
        self.closed = False
        self.postgrest = SimpleNamespace(aclose=self._close)

    def _close(self):
        self.closed = True

    def table(self, name):
        return FakeQuery(self.db, name)


def _user(email, name=None, created_at="2024-01-01T00:00:00+00:00", **extra):
    record = {
        "email": email,
        "password": "x",
        "name": name or email.split("@")[0],
        "profile_visibility": "public",
        "skills_offered": [],
        "skills_wanted": [],
        "rating": 0,
        "ratings_count": 0,
        "created_at": created_at,
    }
    record.update(extra)
    return record


def _swap(requester_id, receiver_id, status="pending", created_at="2024-01-01T00:00:00+00:00"):
    return {
        "requester_id": requester_id,
        "receiver_id": receiver_id,
        "skill_offered": "Guitar",
        "skill_requested": "Python",
        "status": status,
        "created_at": created_at,
    }


@pytest.fixture
def client():
    return FakeClient()


@pytest.fixture
def store(client):
    return SupabaseStore(client)


def test_unique_violation_becomes_conflict(store, client):
    async def scenario():
        a = await store.insert_user(_user("a@example.com"))
        b = await store.insert_user(_user("b@example.com"))
        with pytest.raises(ConflictError, match="User already exists"):
            await store.insert_user(_user("a@example.com"))

        await store.insert_swap(_swap(a["id"], b["id"]))
        with pytest.raises(ConflictError, match="Swap request already exists"):
            await store.insert_swap(_swap(a["id"], b["id"]))

        rating = {"swap_id": new_uuid(), "rater_id": a["id"], "ratee_id": b["id"], "rating": 5}
        await store.insert_rating(rating)
        with pytest.raises(ConflictError, match="Rating already exists"):
            await store.insert_rating(rating)

    run(scenario())


def test_other_api_errors_propagate(store, client):
    def broken(q):
        raise APIError({"code": "42P01", "message": "relation does not exist"})

    client.db.run = broken
    with pytest.raises(APIError):
        run(store.insert_user(_user("a@example.com")))


def test_new_users_start_at_version_zero(store, client):
    user = run(store.insert_user(_user("a@example.com")))
    assert user["version"] == 0
    assert client.db.executed[-1].payload["version"] == 0


def test_swap_status_update_is_guarded_by_expected_status(store, client):
    async def scenario():
        a = await store.insert_user(_user("a@example.com"))
        b = await store.insert_user(_user("b@example.com"))
        swap = await store.insert_swap(_swap(a["id"], b["id"]))

        accepted = await store.update_swap_status(swap["id"], "pending", "accepted", "t1")
        assert accepted["status"] == "accepted"
        update = client.db.executed[-1]
        assert update.action == "update"
        assert ("eq", "id", swap["id"]) in update.filters
        assert ("eq", "status", "pending") in update.filters

        # a second writer that also saw "pending" matches no row
        assert await store.update_swap_status(swap["id"], "pending", "rejected", "t2") is None
        assert (await store.get_swap(swap["id"]))["status"] == "accepted"

        assert await store.delete_swap(swap["id"], "pending") is False
        assert ("eq", "status", "pending") in client.db.executed[-1].filters

    run(scenario())


def test_rating_write_is_guarded_by_version(store, client):
    async def scenario():
        user = await store.insert_user(_user("a@example.com"))

        first = await store.update_user_rating(user["id"], 5.0, 1, expected_version=0)
        assert first["version"] == 1
        update = client.db.executed[-1]
        assert ("eq", "version", 0) in update.filters
        assert update.payload == {"rating": 5.0, "ratings_count": 1, "version": 1}

        assert await store.update_user_rating(user["id"], 3.0, 1, expected_version=0) is None
        current = await store.get_user(user["id"])
        assert (current["rating"], current["version"]) == (5.0, 1)

    run(scenario())


def test_list_swaps_filters_by_role(store, client):
    async def scenario():
        a = await store.insert_user(_user("a@example.com"))
        b = await store.insert_user(_user("b@example.com"))
        c = await store.insert_user(_user("c@example.com"))
        sent = await store.insert_swap(_swap(a["id"], b["id"], created_at="2024-01-01T00:00:00+00:00"))
        received = await store.insert_swap(_swap(c["id"], a["id"], created_at="2024-01-02T00:00:00+00:00"))
        await store.insert_swap(_swap(b["id"], c["id"]))

        everything = await store.list_swaps(a["id"])
        assert [s["id"] for s in everything] == [received["id"], sent["id"]]
        query = client.db.executed[-1]
        assert ("or", f"requester_id.eq.{a['id']},receiver_id.eq.{a['id']}", None) in query.filters
        assert query.orders[0] == ("created_at", True)

        assert [s["id"] for s in await store.list_swaps(a["id"], role="sent")] == [sent["id"]]
        assert ("eq", "requester_id", a["id"]) in client.db.executed[-1].filters
        assert [s["id"] for s in await store.list_swaps(a["id"], role="received")] == [received["id"]]
        assert ("eq", "receiver_id", a["id"]) in client.db.executed[-1].filters

    run(scenario())


def test_malformed_ids_skip_the_request(store, client):
    async def scenario():
        assert await store.get_user("not-a-uuid") is None
        assert await store.get_swap("missing") is None
        assert await store.update_user("nope", {"name": "x"}) is None
        assert await store.get_users(["nope", "also-nope"]) == []

    run(scenario())
    assert client.db.executed == []


def test_search_terms_are_matched_literally(store, client):
    async def scenario():
        await store.insert_user(_user("a@example.com", name="Cooking"))
        literal = await store.insert_user(_user("b@example.com", name="C* tricks"))
        await store.insert_user(_user("c@example.com", name="100% Python", skills_offered=["a_b"]))
        await store.insert_user(_user("d@example.com", name="Hidden C*", profile_visibility="private"))

        users, total = await store.search_public_users("C*", 0, 10)
        assert [u["id"] for u in users] == [literal["id"]]
        assert total == 1
        query = client.db.executed[-1]
        assert ("imatch", "search_text", "c\\*") in query.filters
        assert ("eq", "profile_visibility", "public") in query.filters

        users, _ = await store.search_public_users("0%", 0, 10)
        assert [u["name"] for u in users] == ["100% Python"]
        users, _ = await store.search_public_users("A_B", 0, 10)
        assert [u["name"] for u in users] == ["100% Python"]
        users, _ = await store.search_public_users("a.b", 0, 10)
        assert users == []

    run(scenario())


def test_literal_regex_escapes_everything_but_letters_and_digits():
    assert _literal_regex("React") == "react"
    assert _literal_regex("C++ & .NET") == "c\\+\\+\\ \\&\\ \\.net"
    assert _literal_regex("50%_*") == "50\\%\\_\\*"


def test_search_page_past_the_end_is_empty(store, client):
    async def scenario():
        for n in range(5):
            await store.insert_user(_user(f"u{n}@example.com", created_at=f"2024-01-0{n + 1}T00:00:00+00:00"))

        users, total = await store.search_public_users(None, 8 * 9, 9)
        assert (users, total) == ([], 5)

        users, total = await store.search_public_users(None, 2, 2)
        assert [u["email"] for u in users] == ["u2@example.com", "u1@example.com"]
        assert total == 5

    run(scenario())


def test_ratings_page_past_the_end_is_empty(store):
    async def scenario():
        ratee = await store.insert_user(_user("ratee@example.com"))
        await store.insert_rating({"swap_id": new_uuid(), "rater_id": new_uuid(), "ratee_id": ratee["id"], "rating": 4})
        assert await store.list_ratings_for_ratee(ratee["id"], offset=50, limit=10) == []

    run(scenario())


def test_full_rating_list_is_read_past_the_row_cap():
    client = FakeClient(max_rows=3)
    store = SupabaseStore(client)

    async def scenario():
        ratee = await store.insert_user(_user("ratee@example.com"))
        scores = [5, 4, 3, 5, 1, 2, 4]
        for n, score in enumerate(scores):
            await store.insert_rating({
                "swap_id": new_uuid(),
                "rater_id": new_uuid(),
                "ratee_id": ratee["id"],
                "rating": score,
                "created_at": f"2024-01-0{n + 1}T00:00:00+00:00",
            })

        ratings = await store.list_ratings_for_ratee(ratee["id"])
        assert len(ratings) == len(scores)
        # newest first across page boundaries
        assert [r["rating"] for r in ratings] == list(reversed(scores))

        settings = Settings(store_backend="memory")
        updated = await RatingService(store, settings).refresh_aggregate(ratee["id"])
        assert updated["ratings_count"] == len(scores)
        assert updated["rating"] == sum(scores) / len(scores)

    run(scenario())


def test_close_releases_the_client(store, client):
    run(store.close())
    assert client.closed


def new_uuid():
    return str(uuid.uuid4())
