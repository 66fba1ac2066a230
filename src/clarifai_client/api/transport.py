"""HTTP transport used for the token exchange and recognition uploads."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from clarifai_client.api.errors import TransportError

logger = logging.getLogger(__name__)

# (field name, (filename or None, content, [content type]))
MultipartPart = tuple[str, tuple[str | None, bytes] | tuple[str | None, bytes, str]]


@dataclass(frozen=True)
class TransportResponse:
    """Status, headers and raw body of a completed HTTP exchange."""

    status_code: int
    content: bytes
    headers: Mapping[str, str] = field(default_factory=dict)
    url: str | None = None

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    def json(self) -> Any:
        return json.loads(self.content)

    def body(self) -> Any:
        """Decoded JSON body when possible, text otherwise. Used to enrich error reports."""
        try:
            return self.json()
        except ValueError:
            return self.content.decode("utf-8", errors="replace")


class Transport(Protocol):
    """Protocol for the HTTP collaborator (kept for test doubles)."""

    async def post(
        self,
        path: str,
        *,
        data: Mapping[str, str] | None = None,
        files: Sequence[MultipartPart] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> TransportResponse:
        """POST a form (``data``) or multipart (``files``) body.

        Raises:
            TransportError: On network-level failure. HTTP error statuses are returned, not raised.
        """
        ...

    async def aclose(self) -> None:
        """Release pooled connections."""
        ...


class HttpxTransport:
    """Transport backed by a shared ``httpx.AsyncClient``."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 30.0,
        max_connections: int = 4,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            limits=httpx.Limits(max_connections=max_connections),
            headers={"Accept": "application/json"},
        )

    async def post(
        self,
        path: str,
        *,
        data: Mapping[str, str] | None = None,
        files: Sequence[MultipartPart] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> TransportResponse:
        try:
            response = await self._client.post(
                path,
                data=dict(data) if data is not None else None,
                files=list(files) if files is not None else None,
                headers=dict(headers) if headers is not None else None,
            )
        except httpx.HTTPError as exc:
            logger.warning("POST %s failed: %s", path, exc)
            raise TransportError(f"POST {path} failed: {exc}", url=path) from exc

        logger.debug("POST %s -> %s", response.request.url, response.status_code)
        return TransportResponse(
            status_code=response.status_code,
            content=response.content,
            headers=dict(response.headers),
            url=str(response.request.url),
        )

    async def aclose(self) -> None:
        await self._client.aclose()
