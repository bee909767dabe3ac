# roombook/services/graph_client.py
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import httpx

from roombook.core.config import get_settings
from roombook.core.errors import (
    NotFoundError,
    ProviderAuthError,
    ProviderConflictError,
    ProviderError,
    ProviderIOError,
)

logger = logging.getLogger(__name__)


@dataclass
class _TokenState:
    access_token: str
    expires_at: datetime


class GraphClient:
    """
    Minimal Microsoft Graph API client using client-credentials flow.

    Responsibilities
    ----------------
    - Fetch and cache an access token using the OAuth2 client-credentials flow.
    - Provide thin convenience methods for GET/POST/PATCH/DELETE requests to Graph.
    - Translate HTTP failures into the provider error taxonomy so callers
      never see httpx details.

    Notes
    -----
    - Token caching is in-memory for this process only.
    - A small safety margin is applied when calculating token expiry to avoid
      edge cases near expiration.
    - Concurrent callers share one token refresh.
    """

    def __init__(
        self,
        tenant_id: str,
        client_id: str,
        client_secret: str,
        base_url: str = "https://graph.microsoft.com",
        scope: str = "https://graph.microsoft.com/.default",
        timeout_seconds: float = 10.0,
    ) -> None:
        if not tenant_id or not client_id or not client_secret:
            raise ValueError("tenant_id, client_id and client_secret are required")

        self._tenant_id = tenant_id
        self._client_id = client_id
        self._client_secret = client_secret
        self._base_url = base_url.rstrip("/")
        self._scope = scope
        self._timeout_seconds = timeout_seconds

        self._token_state: Optional[_TokenState] = None
        self._token_lock = asyncio.Lock()

    @property
    def token_url(self) -> str:
        """
        Returns the OAuth2 token endpoint for the configured tenant.
        """
        return f"https://login.microsoftonline.com/{self._tenant_id}/oauth2/v2.0/token"

    async def _fetch_token(self) -> _TokenState:
        """
        Fetch a fresh access token from Azure AD using client credentials.
        """
        data = {
            "client_id": self._client_id,
            "client_secret": self._client_secret,
            "grant_type": "client_credentials",
            "scope": self._scope,
        }

        try:
            async with httpx.AsyncClient(timeout=self._timeout_seconds) as client:
                resp = await client.post(self.token_url, data=data)
        except httpx.HTTPError as exc:
            logger.error("Token endpoint unreachable: %s", exc)
            raise ProviderAuthError(f"Token endpoint unreachable: {exc}") from exc

        if resp.status_code != 200:
            logger.error("Azure AD token acquisition failed with status %s", resp.status_code)
            raise ProviderAuthError(
                f"Failed to obtain Graph token (status={resp.status_code}): {resp.text}"
            )

        payload = resp.json()
        access_token = payload.get("access_token")
        expires_in = payload.get("expires_in")

        if not access_token or not isinstance(expires_in, (int, float)):
            raise ProviderAuthError(
                "Invalid token response from Azure AD (missing access_token/expires_in)"
            )

        # Refresh slightly before real expiry.
        now = datetime.now(tz=timezone.utc)
        safety_margin = 60  # seconds
        expires_at = now + timedelta(seconds=float(expires_in) - safety_margin)

        return _TokenState(access_token=access_token, expires_at=expires_at)

    async def get_access_token(self) -> str:
        """
        Return a valid access token, using a cached value if still valid.
        """
        async with self._token_lock:
            now = datetime.now(tz=timezone.utc)
            if self._token_state and self._token_state.expires_at > now:
                return self._token_state.access_token

            self._token_state = await self._fetch_token()
            return self._token_state.access_token

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        """
        Issue an authenticated HTTP request to Graph and return the raw response.

        `path` is either an absolute URL or a path relative to the base URL.
        Transport failures are raised as ProviderIOError; status codes are
        left for the caller to interpret.
        """
        token = await self.get_access_token()

        if path.startswith("http://") or path.startswith("https://"):
            url = path
        else:
            url = f"{self._base_url}/{path.lstrip('/')}"

        request_headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
        }
        if headers:
            request_headers.update(headers)

        try:
            async with httpx.AsyncClient(timeout=self._timeout_seconds) as client:
                return await client.request(
                    method=method.upper(),
                    url=url,
                    headers=request_headers,
                    params=params,
                    json=json,
                )
        except httpx.HTTPError as exc:
            raise ProviderIOError(f"Graph {method.upper()} {url} failed: {exc}") from exc

    @staticmethod
    def _raise_for_status(method: str, resp: httpx.Response) -> None:
        status = resp.status_code
        if status // 100 == 2:
            return

        message = f"Graph {method} failed (status={status}): {resp.text}"
        error: ProviderError | NotFoundError
        if status == 401:
            error = ProviderAuthError(message)
        elif status == 404:
            error = NotFoundError(message)
        elif status == 409:
            error = ProviderConflictError(message)
        else:
            error = ProviderIOError(message)
        raise error

    async def get_json(
        self,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """
        Issue a GET request to a Graph endpoint and return the JSON payload.
        """
        resp = await self._request("GET", path, params=params, headers=headers)
        self._raise_for_status("GET", resp)
        return resp.json()

    async def post_json(
        self,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """
        Issue a POST request to a Graph endpoint and return the JSON payload.
        """
        resp = await self._request("POST", path, params=params, json=json, headers=headers)
        self._raise_for_status("POST", resp)
        return resp.json()

    async def patch_json(
        self,
        path: str,
        *,
        json: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """
        Issue a PATCH request; returns the updated resource (or {} when Graph
        answers 204).
        """
        resp = await self._request("PATCH", path, json=json, headers=headers)
        self._raise_for_status("PATCH", resp)
        if resp.status_code == 204 or not resp.content:
            return {}
        return resp.json()

    async def delete(self, path: str) -> None:
        resp = await self._request("DELETE", path)
        self._raise_for_status("DELETE", resp)


# Simple singleton-style accessor wired to app settings
_graph_client_instance: Optional[GraphClient] = None


def get_graph_client() -> GraphClient:
    """
    Lazily construct a GraphClient instance using application settings.
    """
    global _graph_client_instance
    if _graph_client_instance is None:
        settings = get_settings()
        if not settings.GRAPH_TENANT_ID or not settings.GRAPH_CLIENT_ID or not settings.GRAPH_CLIENT_SECRET:
            raise ProviderAuthError(
                "GRAPH_TENANT_ID, GRAPH_CLIENT_ID and GRAPH_CLIENT_SECRET must be "
                "configured in settings to use the shared Graph client."
            )
        _graph_client_instance = GraphClient(
            tenant_id=settings.GRAPH_TENANT_ID,
            client_id=settings.GRAPH_CLIENT_ID,
            client_secret=settings.GRAPH_CLIENT_SECRET,
            base_url=str(settings.GRAPH_BASE_URL or "https://graph.microsoft.com"),
            timeout_seconds=settings.GRAPH_TIMEOUT_SECONDS,
        )
    return _graph_client_instance
