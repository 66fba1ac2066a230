"""Key-value stores backing the access-token cache.

The token manager only ever touches three keys: the owning client identity,
the bearer token and its expiry timestamp.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

logger = logging.getLogger(__name__)

StoredValue = str | float

APP_ID_KEY = "clarifai_client.AppID"
ACCESS_TOKEN_KEY = "clarifai_client.AccessToken"
ACCESS_TOKEN_EXPIRATION_KEY = "clarifai_client.AccessTokenExpiration"

TOKEN_KEYS = (APP_ID_KEY, ACCESS_TOKEN_KEY, ACCESS_TOKEN_EXPIRATION_KEY)


class TokenStore(Protocol):
    """Protocol for token persistence."""

    def get(self, key: str) -> StoredValue | None:
        """Return the value stored under ``key``, or None."""
        ...

    def set(self, key: str, value: StoredValue) -> None:
        """Store ``value`` under ``key``."""
        ...

    def remove(self, key: str) -> None:
        """Delete ``key`` if present."""
        ...

    def update(self, values: Mapping[str, StoredValue]) -> None:
        """Store several values in one write."""
        ...

    def discard(self, keys: Iterable[str]) -> None:
        """Delete every present key in ``keys`` in one write."""
        ...


class InMemoryTokenStore:
    """Process-local store. Tokens are lost when the process exits."""

    def __init__(self) -> None:
        self._values: dict[str, StoredValue] = {}

    def get(self, key: str) -> StoredValue | None:
        return self._values.get(key)

    def set(self, key: str, value: StoredValue) -> None:
        self._values[key] = value

    def remove(self, key: str) -> None:
        self._values.pop(key, None)

    def update(self, values: Mapping[str, StoredValue]) -> None:
        self._values.update(values)

    def discard(self, keys: Iterable[str]) -> None:
        for key in keys:
            self._values.pop(key, None)


class JsonFileTokenStore:
    """Store persisted as a small JSON document, rewritten atomically on every change."""

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self._path = Path(path).expanduser()
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def get(self, key: str) -> StoredValue | None:
        with self._lock:
            return self._read().get(key)

    def set(self, key: str, value: StoredValue) -> None:
        with self._lock:
            values = self._read()
            values[key] = value
            self._write(values)

    def remove(self, key: str) -> None:
        with self._lock:
            values = self._read()
            if key in values:
                del values[key]
                self._write(values)

    def update(self, values: Mapping[str, StoredValue]) -> None:
        with self._lock:
            current = self._read()
            current.update(values)
            self._write(current)

    def discard(self, keys: Iterable[str]) -> None:
        with self._lock:
            values = self._read()
            present = [key for key in keys if key in values]
            if not present:
                return
            for key in present:
                del values[key]
            self._write(values)

    # -- Internal -----------------------------------------------------------

    def _read(self) -> dict[str, StoredValue]:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}

        try:
            data = json.loads(raw)
        except ValueError:
            logger.warning("Ignoring corrupt token store at %s", self._path)
            return {}
        if not isinstance(data, dict):
            logger.warning("Ignoring token store at %s: expected a JSON object", self._path)
            return {}
        return {k: v for k, v in data.items() if isinstance(v, (str, int, float)) and not isinstance(v, bool)}

    def _write(self, values: dict[str, StoredValue]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self._path.parent, prefix=".token-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(values, fh)
            os.chmod(tmp_name, 0o600)
            os.replace(tmp_name, self._path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
