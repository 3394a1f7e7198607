"""Shared plumbing for clients of the transcription API."""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

import httpx

TRANSCRIBE_PATH = "/expenses/transcribe"


class ApiClientBase:
    """
    Base URL, bearer token and an optional shared httpx.AsyncClient.

    When no client is injected, each request opens (and closes) its own.
    """

    def __init__(
        self,
        base_url: str,
        auth_token: str,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        self._base_url = base_url.rstrip("/")
        self._auth_token = auth_token
        self._http_client = http_client
        self._timeout = timeout

    @property
    def headers(self) -> dict[str, str]:
        if not self._auth_token:
            return {}
        return {"Authorization": f"Bearer {self._auth_token}"}

    def url(self, path: str) -> str:
        return f"{self._base_url}{path}"

    @asynccontextmanager
    async def client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._http_client is not None:
            yield self._http_client
            return
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            yield client


def json_or_none(response: httpx.Response) -> Any:
    """Decoded JSON body, or None when the body is not JSON."""
    try:
        return response.json()
    except ValueError:
        return None
