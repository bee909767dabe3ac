# tests/test_graph_client.py
from http import HTTPStatus
from typing import Any, Dict, List, Optional

import httpx
import pytest

from roombook.core.errors import (
    NotFoundError,
    ProviderAuthError,
    ProviderConflictError,
    ProviderIOError,
)
from roombook.services.graph_client import GraphClient


class _FakeResponse:
    def __init__(self, status_code: int, json_data: Optional[Dict[str, Any]] = None):
        self.status_code = status_code
        self._json_data = json_data
        self.content = b"" if json_data is None else b"{}"
        # For debugging / error messages
        self.text = str(json_data)

    def json(self) -> Dict[str, Any]:
        return self._json_data or {}


class _FakeAsyncClient:
    """
    Minimal stand-in for httpx.AsyncClient used in tests.

    Records every call and answers Graph requests with `next_status`.
    """

    requests: List[Dict[str, Any]] = []
    token_call_count: int = 0
    next_status: int = HTTPStatus.OK
    next_payload: Optional[Dict[str, Any]] = {"ok": True}

    def __init__(self, timeout: float | None = None):
        self._timeout = timeout

    async def __aenter__(self) -> "_FakeAsyncClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        return None

    async def post(self, url: str, data: Optional[Dict[str, Any]] = None, **kwargs) -> _FakeResponse:
        _FakeAsyncClient.token_call_count += 1
        return _FakeResponse(
            status_code=HTTPStatus.OK,
            json_data={
                "access_token": "fake-token-123",
                "expires_in": 300,
                "token_type": "Bearer",
            },
        )

    async def request(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
    ) -> _FakeResponse:
        _FakeAsyncClient.requests.append(
            {"method": method, "url": url, "headers": headers, "params": params, "json": json}
        )
        return _FakeResponse(_FakeAsyncClient.next_status, _FakeAsyncClient.next_payload)


@pytest.fixture
def fake_httpx(monkeypatch):
    _FakeAsyncClient.requests = []
    _FakeAsyncClient.token_call_count = 0
    _FakeAsyncClient.next_status = HTTPStatus.OK
    _FakeAsyncClient.next_payload = {"ok": True}
    monkeypatch.setattr(httpx, "AsyncClient", _FakeAsyncClient)
    return _FakeAsyncClient


def _client(**kwargs) -> GraphClient:
    return GraphClient(
        tenant_id="tenant-123",
        client_id="client-123",
        client_secret="secret-xyz",
        **kwargs,
    )


def test_graph_client_requires_credentials():
    with pytest.raises(ValueError):
        GraphClient(tenant_id="", client_id="c", client_secret="s")


@pytest.mark.asyncio
async def test_graph_client_fetches_and_caches_token(fake_httpx):
    """
    First call to get_access_token() should hit the token endpoint.
    Subsequent calls within expiry window should reuse the cached token.
    """
    client = _client()

    token1 = await client.get_access_token()
    token2 = await client.get_access_token()

    assert token1 == "fake-token-123"
    assert token2 == "fake-token-123"
    assert fake_httpx.token_call_count == 1


@pytest.mark.asyncio
async def test_get_json_builds_url_and_merges_headers(fake_httpx):
    client = _client(base_url="https://graph.microsoft.com/")

    data = await client.get_json(
        "/v1.0/users/room@example.com/calendar/calendarView",
        params={"$top": 5},
        headers={"Prefer": 'outlook.timezone="India Standard Time"'},
    )

    assert data["ok"] is True
    last = fake_httpx.requests[-1]
    assert last["method"] == "GET"
    assert last["url"] == "https://graph.microsoft.com/v1.0/users/room@example.com/calendar/calendarView"
    assert last["headers"]["Authorization"] == "Bearer fake-token-123"
    assert last["headers"]["Prefer"] == 'outlook.timezone="India Standard Time"'


@pytest.mark.asyncio
async def test_absolute_urls_are_used_as_is(fake_httpx):
    client = _client()
    next_link = "https://graph.microsoft.com/v1.0/users/x/calendarView?$skip=10"

    await client.get_json(next_link)

    assert fake_httpx.requests[-1]["url"] == next_link


@pytest.mark.asyncio
async def test_bad_token_response_raises_provider_auth_error(monkeypatch):
    class _BadTokenClient(_FakeAsyncClient):
        async def post(self, url: str, data=None, **kwargs) -> _FakeResponse:
            return _FakeResponse(
                status_code=HTTPStatus.BAD_REQUEST,
                json_data={"error": "invalid_client"},
            )

    monkeypatch.setattr(httpx, "AsyncClient", _BadTokenClient)

    with pytest.raises(ProviderAuthError):
        await _client().get_access_token()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status,error",
    [
        (HTTPStatus.UNAUTHORIZED, ProviderAuthError),
        (HTTPStatus.NOT_FOUND, NotFoundError),
        (HTTPStatus.CONFLICT, ProviderConflictError),
        (HTTPStatus.INTERNAL_SERVER_ERROR, ProviderIOError),
        (HTTPStatus.FORBIDDEN, ProviderIOError),
    ],
)
async def test_error_statuses_are_mapped(fake_httpx, status, error):
    fake_httpx.next_status = status
    fake_httpx.next_payload = {"error": {"message": "nope"}}

    with pytest.raises(error):
        await _client().post_json("/v1.0/users/a@example.com/calendar/events", json={})


@pytest.mark.asyncio
async def test_patch_and_delete_accept_empty_responses(fake_httpx):
    fake_httpx.next_status = HTTPStatus.NO_CONTENT
    fake_httpx.next_payload = None
    client = _client()

    assert await client.patch_json("/v1.0/users/a@example.com/events/1", json={"subject": "x"}) == {}
    await client.delete("/v1.0/users/a@example.com/events/1")

    methods = [r["method"] for r in fake_httpx.requests]
    assert methods == ["PATCH", "DELETE"]
    assert fake_httpx.requests[0]["json"] == {"subject": "x"}


@pytest.mark.asyncio
async def test_transport_errors_become_provider_io_errors(monkeypatch, fake_httpx):
    class _BrokenClient(_FakeAsyncClient):
        async def request(self, *args, **kwargs):
            raise httpx.ConnectError("connection refused")

    monkeypatch.setattr(httpx, "AsyncClient", _BrokenClient)

    with pytest.raises(ProviderIOError):
        await _client().get_json("/v1.0/users/a@example.com/events")
