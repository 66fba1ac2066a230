"""Exception hierarchy raised by the recognition client."""

from __future__ import annotations

from typing import Any


class ClarifaiError(Exception):
    """Base class for every error raised by this package."""


class ValidationError(ClarifaiError, ValueError):
    """The caller supplied inputs that can never be sent (empty or mixed batch, bad image)."""


class AuthError(ClarifaiError):
    """The client-credentials token exchange failed."""

    def __init__(self, message: str, *, status_code: int | None = None, body: Any = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class TransportError(ClarifaiError):
    """A recognition request failed at the network level or returned a non-2xx status."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        body: Any = None,
        url: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body
        self.url = url

    @property
    def is_unauthorized(self) -> bool:
        return self.status_code == 401


class ParseError(ClarifaiError):
    """The service answered 2xx but the body did not match the expected schema."""

    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(f"{field}: {message}" if field else message)
        self.field = field
