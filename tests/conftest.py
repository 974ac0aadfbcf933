from typing import Any

import pytest

from app.config import settings
from app.models.domain.session_domain import SessionPreferences

TEST_CLIENT_ID = "client-123"
# HS512 wants a long key
TEST_CLIENT_SECRET = "s" * 64


class FakeConnection:
    """
    Stands in for CrmConnection.

    `routes` maps a path (or a (method, path) pair) to one of:
      - a value, returned on every call
      - a list, consumed one entry per call (the last entry repeats)
      - a callable taking (search_params, body)
    Exceptions found in place of a value are raised.
    """

    def __init__(self, routes: dict | None = None, credential_id: str = "cred-1"):
        self.routes = routes or {}
        self.credential_id = credential_id
        self.calls: list[dict[str, Any]] = []

    async def request(self, path, method="GET", search_params=None, body=None):
        params = dict(search_params or {})
        self.calls.append({"path": path, "method": method, "params": params, "body": body})

        handler = self.routes.get((method, path), self.routes.get(path))
        if handler is None:
            raise AssertionError(f"unexpected request {method} {path}")
        if callable(handler):
            result = handler(params, body)
        elif isinstance(handler, list):
            result = handler.pop(0) if len(handler) > 1 else handler[0]
        else:
            result = handler

        if isinstance(result, Exception):
            raise result
        return result

    def calls_to(self, path, method=None):
        return [c for c in self.calls if c["path"] == path and (method is None or c["method"] == method)]


class FakeRolloutClient:
    """Stands in for RolloutClient; dispatches on path like FakeConnection."""

    def __init__(self, routes: dict | None = None):
        self.connection = FakeConnection(routes)
        self.calls: list[dict[str, Any]] = []

    async def call(
        self,
        preferences,
        base_url,
        path,
        method="GET",
        search_params=None,
        body=None,
        credential_id=None,
        consumer_key=None,
        headers=None,
    ):
        self.calls.append(
            {
                "base_url": base_url,
                "path": path,
                "method": method,
                "credential_id": credential_id,
                "consumer_key": consumer_key,
            }
        )
        return await self.connection.request(path, method=method, search_params=search_params, body=body)

    def calls_to(self, path, method=None):
        return self.connection.calls_to(path, method)


@pytest.fixture
def session_store():
    return {}


@pytest.fixture
def preferences(session_store):
    return SessionPreferences(session_store)


@pytest.fixture
def configured_client(monkeypatch):
    """Environment fallback client credentials."""
    monkeypatch.setattr(settings, "ROLLOUT_CLIENT_ID", TEST_CLIENT_ID)
    monkeypatch.setattr(settings, "ROLLOUT_CLIENT_SECRET", TEST_CLIENT_SECRET)


@pytest.fixture
def unconfigured_client(monkeypatch):
    monkeypatch.setattr(settings, "ROLLOUT_CLIENT_ID", "")
    monkeypatch.setattr(settings, "ROLLOUT_CLIENT_SECRET", "")


@pytest.fixture
def small_limits(monkeypatch):
    monkeypatch.setattr(settings, "PERSON_RECORDS_LIMIT", 3)
    monkeypatch.setattr(settings, "MAX_PAGINATED_REQUESTS", 4)


@pytest.fixture
def fake_connection():
    def _make(routes=None, credential_id="cred-1"):
        return FakeConnection(routes, credential_id=credential_id)

    return _make


@pytest.fixture
def fake_rollout_client():
    def _make(routes=None):
        return FakeRolloutClient(routes)

    return _make
