"""Factline — ChurchTools API Client.

Handles session authentication, request errors, and response unwrapping.
Authentication state lives on the client instance.
"""

import asyncio
from typing import Any, Dict, Optional

import httpx

from factline.config import settings
from factline.core.logging import get_logger

logger = get_logger("churchtools.client")

API_PREFIX = "/api"


class ChurchToolsAPIError(Exception):
    """Raised when ChurchTools returns an error or cannot be reached."""

    def __init__(self, message: str, status_code: int = 0):
        self.status_code = status_code
        super().__init__(message)


class AuthenticationError(ChurchToolsAPIError):
    """Login failed, the session expired, or no login happened yet."""


def _error_message(response: httpx.Response) -> str:
    if not response.headers.get("content-type", "").startswith("application/json"):
        return ""
    try:
        body = response.json()
    except ValueError:
        return ""
    return body.get("message", "") if isinstance(body, dict) else ""


class ChurchToolsClient:
    """Async HTTP client for the ChurchTools REST API."""

    def __init__(
        self,
        base_url: str | None = None,
        username: str | None = None,
        password: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.ct_base_url).rstrip("/")
        self.username = username or settings.ct_username
        self.password = password or settings.ct_password
        self.timeout = timeout or settings.ct_timeout_seconds
        self.authenticated = False
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._auth_lock = asyncio.Lock()

    @property
    def api_base(self) -> str:
        return f"{self.base_url}{API_PREFIX}"

    async def _get_client(self) -> httpx.AsyncClient:
        # The AsyncClient cookie jar carries the ChurchTools session
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    # ── Core Request Method ──

    async def _request(
        self,
        method: str,
        path: str,
        params: Dict[str, Any] | None = None,
        json: Dict[str, Any] | None = None,
    ) -> Any:
        """Make a single request and return the decoded JSON body."""
        client = await self._get_client()
        url = f"{self.api_base}{path}"

        try:
            resp = await client.request(method, url, params=params, json=json)
            resp.raise_for_status()
            return resp.json()

        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            error_msg = _error_message(e.response) or str(e)

            if status == 401:
                self.authenticated = False
                raise AuthenticationError(error_msg, status) from e
            raise ChurchToolsAPIError(error_msg, status) from e

        except httpx.RequestError as e:
            raise ChurchToolsAPIError(f"Connection failed: {e}") from e

        except ValueError as e:
            raise ChurchToolsAPIError(f"Invalid JSON from {path}: {e}") from e

    async def get(self, path: str, params: Dict[str, Any] | None = None) -> Any:
        """Authenticated GET, returning the unwrapped payload.

        A 401 triggers one re-login and one retry before it is raised.
        """
        if not self.authenticated:
            raise AuthenticationError("Not authenticated")
        try:
            body = await self._request("GET", path, params=params)
        except AuthenticationError:
            await self._reauthenticate()
            body = await self._request("GET", path, params=params)
        return self.unwrap(body)

    @staticmethod
    def unwrap(body: Any) -> Any:
        """ChurchTools wraps most payloads as {"data": ...}; accept both shapes."""
        if isinstance(body, dict) and "data" in body:
            return body["data"]
        return body

    # ── Authentication ──

    async def _reauthenticate(self) -> None:
        async with self._auth_lock:
            if self.authenticated:
                return
            logger.warning("ChurchTools session expired, logging in again...")
            await self.authenticate()

    async def authenticate(self) -> None:
        """Log in and verify the session with /whoami."""
        if not self.base_url:
            raise AuthenticationError("ChurchTools base URL is not configured")

        try:
            await self._request(
                "POST",
                "/login",
                json={"username": self.username, "password": self.password},
            )
            await self._request("GET", "/whoami")
        except ChurchToolsAPIError as e:
            self.authenticated = False
            raise AuthenticationError(f"Authentication failed: {e}") from e

        self.authenticated = True
        logger.info("Successfully authenticated with ChurchTools")
