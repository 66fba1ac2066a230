"""Token manager: acquire, cache, validate and invalidate bearer tokens.

Handles the OAuth client-credentials exchange, persistence of the resulting
token through a TokenStore, the minimum-remaining-lifetime check, and
collapsing concurrent refreshes into a single in-flight exchange.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from clarifai_client.api.errors import AuthError, TransportError
from clarifai_client.auth.token_store import (
    ACCESS_TOKEN_EXPIRATION_KEY,
    ACCESS_TOKEN_KEY,
    APP_ID_KEY,
    TOKEN_KEYS,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from clarifai_client.api.schemas import Credentials
    from clarifai_client.api.transport import Transport
    from clarifai_client.auth.token_store import TokenStore

logger = logging.getLogger(__name__)

MIN_TOKEN_LIFETIME: float = 60.0
TOKEN_PATH = "/token"


@dataclass(frozen=True)
class Token:
    """A bearer token and the POSIX timestamp at which it expires."""

    value: str
    expires_at: float

    def remaining(self, now: float) -> float:
        return self.expires_at - now

    def __repr__(self) -> str:
        return f"Token(value='***', expires_at={self.expires_at})"


class TokenManager:
    """Owns the cached token for one set of credentials."""

    def __init__(
        self,
        credentials: Credentials,
        transport: Transport,
        store: TokenStore,
        *,
        min_lifetime: float = MIN_TOKEN_LIFETIME,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._credentials = credentials
        self._transport = transport
        self._store = store
        self._min_lifetime = min_lifetime
        self._clock = clock
        self._token: Token | None = None
        self._inflight: asyncio.Task[Token] | None = None

        self._load()

    # -- Public API ---------------------------------------------------------

    @property
    def token(self) -> Token | None:
        """The cached token, usable or not."""
        return self._token

    @property
    def min_lifetime(self) -> float:
        return self._min_lifetime

    def is_usable(self, token: Token) -> bool:
        """True when the token outlives the minimum lifetime margin."""
        return token.remaining(self._clock()) > self._min_lifetime

    async def ensure_valid(self) -> Token:
        """Return a usable token, exchanging credentials for a new one if needed.

        Concurrent callers that miss the cache share one exchange.

        Raises:
            AuthError: If the exchange fails or returns an unusable document.
        """
        token = self._token
        if token is not None and self.is_usable(token):
            return token

        task = self._inflight
        if task is None:
            task = asyncio.ensure_future(self._exchange())
            self._inflight = task
            task.add_done_callback(self._exchange_done)
        else:
            logger.debug("Joining in-flight token exchange for %s", self._credentials.client_id)

        # A cancelled caller must not cancel the exchange other callers are waiting on.
        return await asyncio.shield(task)

    def invalidate(self) -> None:
        """Forget the cached token and wipe it from the store."""
        self._store.discard(TOKEN_KEYS)
        self._token = None
        logger.info("Access token invalidated for %s", self._credentials.client_id)

    # -- Internal -----------------------------------------------------------

    def _load(self) -> None:
        stored_identity = self._store.get(APP_ID_KEY)
        if stored_identity is None:
            return
        if stored_identity != self._credentials.identity:
            logger.info("Discarding cached token issued to a different client")
            self.invalidate()
            return

        value = self._store.get(ACCESS_TOKEN_KEY)
        expires_at = self._store.get(ACCESS_TOKEN_EXPIRATION_KEY)
        if isinstance(value, str) and isinstance(expires_at, (int, float)):
            self._token = Token(value=value, expires_at=float(expires_at))
            logger.debug("Loaded cached token expiring at %s", expires_at)

    def _save(self, token: Token) -> None:
        self._store.update(
            {
                APP_ID_KEY: self._credentials.identity,
                ACCESS_TOKEN_KEY: token.value,
                ACCESS_TOKEN_EXPIRATION_KEY: token.expires_at,
            }
        )
        self._token = token

    async def _exchange(self) -> Token:
        logger.info("Requesting access token for %s", self._credentials.client_id)
        try:
            response = await self._transport.post(
                TOKEN_PATH,
                data={
                    "grant_type": "client_credentials",
                    "client_id": self._credentials.client_id,
                    "client_secret": self._credentials.client_secret,
                },
            )
        except TransportError as exc:
            raise AuthError(f"Token request failed: {exc}", status_code=exc.status_code, body=exc.body) from exc

        if not response.is_success:
            raise AuthError(
                f"Token request returned HTTP {response.status_code}",
                status_code=response.status_code,
                body=response.body(),
            )

        access_token, expires_in = self._parse_token_document(response.status_code, response.body())
        expires_in = max(expires_in, self._min_lifetime)
        token = Token(value=access_token, expires_at=self._clock() + expires_in)
        self._save(token)
        logger.info("Access token acquired, valid for %.0fs", expires_in)
        return token

    @staticmethod
    def _parse_token_document(status_code: int, body: Any) -> tuple[str, float]:
        if not isinstance(body, dict):
            raise AuthError("Token response is not a JSON object", status_code=status_code, body=body)

        access_token = body.get("access_token")
        expires_in = body.get("expires_in")
        if not isinstance(access_token, str) or not access_token:
            raise AuthError("Token response has no access_token", status_code=status_code, body=body)
        if isinstance(expires_in, bool) or not isinstance(expires_in, (int, float)):
            raise AuthError("Token response has no numeric expires_in", status_code=status_code, body=body)
        return access_token, float(expires_in)

    def _exchange_done(self, task: asyncio.Task[Token]) -> None:
        if self._inflight is task:
            self._inflight = None
        # Mark the outcome as retrieved even when every waiter went away.
        if not task.cancelled() and task.exception() is not None:
            logger.debug("Token exchange failed: %s", task.exception())
