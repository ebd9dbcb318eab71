import itertools

import pytest
from fastapi.testclient import TestClient

from skillswap.core.config import Settings
from skillswap.main import create_app

API = "/api/v1"
PASSWORD = "password123"


@pytest.fixture
def settings():
    return Settings(
        store_backend="memory",
        bcrypt_rounds=4,
        jwt_secret="test-secret",
        environment="test",
        supabase_url=None,
        supabase_key=None,
    )


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    # Entering the client runs the lifespan, which builds the store
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def store(client, app):
    return app.state.store


def login(client, email, password=PASSWORD):
    response = client.post(f"{API}/users/login", data={"username": email, "password": password})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


@pytest.fixture
def make_user(client):
    """Register a user and return ``(profile, auth headers)``."""
    counter = itertools.count(1)

    def _make_user(name=None, email=None, **profile):
        n = next(counter)
        name = name or f"User {n}"
        email = email or f"user{n}@example.com"
        response = client.post(
            f"{API}/users/register",
            json={"email": email, "password": PASSWORD, "name": name},
        )
        assert response.status_code == 201, response.text
        user_id = response.json()["id"]
        headers = login(client, email)
        if profile:
            response = client.put(f"{API}/users/{user_id}", json=profile, headers=headers)
            assert response.status_code == 200, response.text
        me = client.get(f"{API}/users/me", headers=headers).json()
        return me, headers

    return _make_user


@pytest.fixture
def swap_between(client):
    """Create a swap from one user to another and optionally advance it."""

    def _swap_between(requester, receiver, status="pending", offered="Guitar", requested="Python"):
        (requester_user, requester_headers), (receiver_user, receiver_headers) = requester, receiver
        response = client.post(
            f"{API}/swaps",
            json={
                "receiver": receiver_user["id"],
                "skillOffered": offered,
                "skillRequested": requested,
                "message": "Let's trade",
            },
            headers=requester_headers,
        )
        assert response.status_code == 201, response.text
        swap = response.json()
        if status in ("accepted", "completed", "rejected"):
            target = "rejected" if status == "rejected" else "accepted"
            response = client.put(
                f"{API}/swaps/{swap['id']}", json={"status": target}, headers=receiver_headers
            )
            assert response.status_code == 200, response.text
            swap = response.json()
        if status == "completed":
            response = client.put(
                f"{API}/swaps/{swap['id']}", json={"status": "completed"}, headers=requester_headers
            )
            assert response.status_code == 200, response.text
            swap = response.json()
        return swap

    return _swap_between
