"""HTTP client for the session REST API."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from termhost.domain.models import SessionCreated, SessionInfo

logger = logging.getLogger(__name__)


class SessionClient:
    """Talks to a running termhost server.

    Example usage::

        async with SessionClient("http://localhost:8099") as client:
            created = await client.create_session("build")
            for info in await client.list_sessions():
                print(info.id, info.alive)
            await client.delete_session(created.id)
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8099",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def connect(self) -> None:
        """Create the HTTP client and verify the server is reachable."""
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            transport=self._transport,
        )
        try:
            await self.health()
            logger.info("Connected to server at %s", self._base_url)
        except SessionClientError:
            await self._client.aclose()
            self._client = None
            raise

    async def disconnect(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def health(self) -> dict[str, Any]:
        resp = await self._request("GET", "/health")
        return resp.json()

    async def list_sessions(self) -> list[SessionInfo]:
        resp = await self._request("GET", "/api/sessions")
        return [SessionInfo.model_validate(item) for item in resp.json()]

    async def create_session(self, name: str | None = None) -> SessionCreated:
        payload = {"name": name} if name else {}
        resp = await self._request("POST", "/api/sessions", json=payload)
        created = SessionCreated.model_validate(resp.json())
        logger.debug("Created session %s (%s)", created.id, created.name)
        return created

    async def delete_session(self, session_id: str) -> None:
        await self._request("DELETE", f"/api/sessions/{session_id}")
        logger.debug("Deleted session %s", session_id)

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        if self._client is None:
            raise SessionClientError("Not connected to server")
        try:
            resp = await self._client.request(method, path, **kwargs)
            resp.raise_for_status()
            return resp
        except httpx.HTTPStatusError as e:
            raise SessionClientError(
                f"{method} {path} failed: {e.response.status_code} {e.response.text}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise SessionClientError(f"{method} {path} failed: {e}") from e

    async def __aenter__(self) -> SessionClient:
        await self.connect()
        return self

    async def __aexit__(self, exc_type: type | None, exc_val: Exception | None, exc_tb: object) -> None:
        await self.disconnect()


class SessionClientError(Exception):
    """Raised when a request to the session server fails."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
