from collections.abc import Callable, Iterator
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest
from fastapi.testclient import TestClient

from src.adapters.memory_kv import InMemoryKVStore
from src.api.deps import get_kv_store, get_rate_limiter, get_rules
from src.api.main import app
from src.app_shell.rate_limit import RateLimiter
from src.domain.entities import InviteCode, invite_key
from src.rules.loader import load_rules
from src.rules.models import Rules

RULES_PATH = Path(__file__).resolve().parents[1] / "rules.yaml"
DEFAULT_PASSWORD = "secret123"


@pytest.fixture
def rules() -> Rules:
    """The real rules.yaml from the project root."""
    return load_rules(RULES_PATH)


@pytest.fixture
def store() -> InMemoryKVStore:
    return InMemoryKVStore()


@pytest.fixture
def client(store: InMemoryKVStore, rules: Rules) -> Iterator[TestClient]:
    """API client wired to a fresh in-memory store and rate limiter."""
    limiter = RateLimiter(rules.rate_limits)
    app.dependency_overrides[get_kv_store] = lambda: store
    app.dependency_overrides[get_rules] = lambda: rules
    app.dependency_overrides[get_rate_limiter] = lambda: limiter
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def seed_invite(store: InMemoryKVStore) -> Callable[..., InviteCode]:
    """Write an invite straight into the store."""

    def _seed(
        code: str,
        kind: str = "multi",
        role: str = "user",
        expires_in: timedelta = timedelta(days=7),
        **fields: Any,
    ) -> InviteCode:
        invite = InviteCode(
            code=code,
            kind=kind,
            role=role,
            expires_at=datetime.now(UTC) + expires_in,
            issued_by=fields.pop("issued_by", "admin-seed"),
            **fields,
        )
        store.set(invite_key(code), invite.to_record())
        return invite

    return _seed


@pytest.fixture
def register(client: TestClient, seed_invite: Callable[..., InviteCode]) -> Callable[..., dict[str, Any]]:
    """
    Sign up through the API and log in.

    Returns {"user": <profile>, "headers": <bearer auth headers>}.
    """
    counter = {"n": 0}

    def _register(role: str = "user", name: str = "Member", email: str | None = None) -> dict[str, Any]:
        counter["n"] += 1
        code = f"SEED-{role.upper()}-{counter['n']}"
        seed_invite(code, kind="single", role=role)
        email = email or f"{role}{counter['n']}@example.com"

        resp = client.post(
            "/signup",
            json={
                "email": email,
                "password": DEFAULT_PASSWORD,
                "name": name,
                "language": "en",
                "inviteCode": code,
            },
        )
        assert resp.status_code == 201, resp.text

        token = client.post(
            "/auth/token", data={"username": email, "password": DEFAULT_PASSWORD}
        ).json()["access_token"]
        return {"user": resp.json()["user"], "headers": {"Authorization": f"Bearer {token}"}}

    return _register
