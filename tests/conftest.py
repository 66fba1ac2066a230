"""Shared fixtures: a controllable clock, a scripted transport and an in-process fake service."""

from __future__ import annotations

import asyncio
import io
import json
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import httpx
import pytest
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from PIL import Image

from clarifai_client.api.schemas import Credentials
from clarifai_client.api.transport import HttpxTransport, TransportResponse
from clarifai_client.auth.token_store import InMemoryTokenStore
from clarifai_client.client import RecognitionClient
from clarifai_client.config import Settings

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Mapping, Sequence

    from clarifai_client.api.transport import MultipartPart

START_TIME = 1_700_000_000.0
CLIENT_ID = "test-client"
CLIENT_SECRET = "test-secret"  # noqa: S105


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: float = START_TIME) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def json_response(status_code: int, body: Any) -> TransportResponse:
    return TransportResponse(status_code=status_code, content=json.dumps(body).encode())


def token_body(access_token: str = "tok-1", expires_in: float = 36_000) -> dict[str, Any]:
    return {"access_token": access_token, "expires_in": expires_in, "scope": "api_access", "token_type": "Bearer"}


def tag_body(*entries: tuple[list[str], list[float]]) -> dict[str, Any]:
    """Tag response with one result per (labels, probs) pair; concept ids are derived from labels."""
    return {
        "status_code": "OK",
        "status_msg": "All images in request have completed successfully. ",
        "meta": {"tag": {"timestamp": 1451945197.398, "model": "general-v1.3"}},
        "results": [
            {
                "docid": 15512461224882630000 + index,
                "docid_str": f"doc-{index}",
                "status_code": "OK",
                "result": {
                    "tag": {
                        "classes": labels,
                        "probs": probs,
                        "concept_ids": [f"ai_{label}" for label in labels],
                    }
                },
            }
            for index, (labels, probs) in enumerate(entries)
        ],
    }


def color_body(*entries: list[tuple[str, str, str, float]]) -> dict[str, Any]:
    """Color response with one result per list of (hex, w3c hex, w3c name, density)."""
    return {
        "status_code": "OK",
        "status_msg": "All images in request have completed successfully. ",
        "results": [
            {
                "docid_str": f"doc-{index}",
                "colors": [
                    {"hex": hex_, "w3c": {"hex": w3c_hex, "name": w3c_name}, "density": density}
                    for hex_, w3c_hex, w3c_name, density in colors
                ],
            }
            for index, colors in enumerate(entries)
        ],
    }


def make_jpeg(width: int, height: int, color: tuple[int, int, int] = (200, 30, 30)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format="JPEG")
    return buffer.getvalue()


@dataclass
class RecordedRequest:
    path: str
    data: dict[str, str]
    files: list[MultipartPart]
    headers: dict[str, str]

    def text_parts(self, name: str) -> list[str]:
        return [content[1].decode() for key, content in self.files if key == name and content[0] is None]


class RecordingTransport:
    """Transport double that records requests and replays scripted responses per path.

    The last scripted response for a path is repeated once the queue is exhausted.
    """

    def __init__(self) -> None:
        self.requests: list[RecordedRequest] = []
        self.closed = False
        self._scripts: dict[str, list[TransportResponse | Exception]] = {}

    def script(self, path: str, *responses: TransportResponse | Exception) -> None:
        self._scripts.setdefault(path, []).extend(responses)

    def requests_to(self, path: str) -> list[RecordedRequest]:
        return [request for request in self.requests if request.path == path]

    async def post(
        self,
        path: str,
        *,
        data: Mapping[str, str] | None = None,
        files: Sequence[MultipartPart] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> TransportResponse:
        self.requests.append(RecordedRequest(path, dict(data or {}), list(files or []), dict(headers or {})))
        await asyncio.sleep(0)

        script = self._scripts.get(path)
        if not script:
            raise AssertionError(f"Unexpected POST {path}")
        item = script.pop(0) if len(script) > 1 else script[0]
        if isinstance(item, Exception):
            raise item
        return item

    async def aclose(self) -> None:
        self.closed = True


# ---------------------------------------------------------------------------
# Fake recognition service
# ---------------------------------------------------------------------------


@dataclass
class FakeService:
    """In-process stand-in for the remote API, served through httpx.ASGITransport."""

    client_id: str = CLIENT_ID
    client_secret: str = CLIENT_SECRET
    expires_in: float = 36_000
    tags_by_url: dict[str, tuple[list[str], list[float]]] = field(default_factory=dict)
    issued_tokens: list[str] = field(default_factory=list)
    revoked_tokens: set[str] = field(default_factory=set)
    calls: list[tuple[str, dict[str, list[str]], int]] = field(default_factory=list)

    def create_app(self) -> FastAPI:
        app = FastAPI(title="Fake recognition service")

        @app.post("/v1/token")
        async def token(request: Request) -> JSONResponse:
            form = await request.form()
            if (
                form.get("grant_type") != "client_credentials"
                or form.get("client_id") != self.client_id
                or form.get("client_secret") != self.client_secret
            ):
                return JSONResponse(
                    status_code=status.HTTP_401_UNAUTHORIZED,
                    content={"status_code": "TOKEN_APP_INVALID", "status_msg": "Application for token is not valid."},
                )
            value = f"token-{len(self.issued_tokens) + 1}"
            self.issued_tokens.append(value)
            return JSONResponse(content=token_body(value, self.expires_in))

        async def recognize(request: Request, operation: str | None) -> JSONResponse:
            authorization = request.headers.get("authorization", "")
            bearer = authorization.removeprefix("Bearer ")
            if bearer not in self.issued_tokens or bearer in self.revoked_tokens:
                return JSONResponse(
                    status_code=status.HTTP_401_UNAUTHORIZED,
                    content={"status_code": "TOKEN_INVALID", "status_msg": "Token is not valid."},
                )

            form = await request.form()
            urls = [str(value) for value in form.getlist("url")]
            images = form.getlist("encoded_image")
            fields = {key: [str(value) for value in form.getlist(key)] for key in ("op", "model", "url")}
            self.calls.append((request.url.path, fields, len(images)))

            op = operation or form.get("op")
            count = len(urls) + len(images)
            if op == "color":
                entries = [[("#e8e8e8", "#dcdcdc", "Gainsboro", 0.6), ("#2b1d0e", "#000000", "Black", 0.4)]] * count
                return JSONResponse(content=color_body(*entries))
            tags = [self.tags_by_url.get(url, (["photo"], [0.5])) for url in urls]
            tags.extend([(["image"], [0.99])] * len(images))
            return JSONResponse(content=tag_body(*tags))

        @app.post("/v1/tag")
        async def tag(request: Request) -> JSONResponse:
            return await recognize(request, "tag")

        @app.post("/v1/color")
        async def color(request: Request) -> JSONResponse:
            return await recognize(request, "color")

        @app.post("/v1/multiop")
        async def multiop(request: Request) -> JSONResponse:
            return await recognize(request, None)

        return app


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def credentials() -> Credentials:
    return Credentials(client_id=CLIENT_ID, client_secret=CLIENT_SECRET)


@pytest.fixture()
def store() -> InMemoryTokenStore:
    return InMemoryTokenStore()


@pytest.fixture()
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture()
def settings() -> Settings:
    return Settings(base_url="http://testserver/v1", min_token_lifetime=60)


@pytest.fixture()
def fake_service() -> FakeService:
    return FakeService()


@pytest.fixture()
async def service_client(
    fake_service: FakeService,
    credentials: Credentials,
    settings: Settings,
    store: InMemoryTokenStore,
    clock: FakeClock,
) -> AsyncIterator[RecognitionClient]:
    """RecognitionClient wired to the fake service through httpx's ASGI transport."""
    http_client = httpx.AsyncClient(
        transport=httpx.ASGITransport(app=fake_service.create_app()),
        base_url=settings.base_url,
    )
    client = RecognitionClient(
        credentials,
        settings=settings,
        transport=HttpxTransport(settings.base_url, client=http_client),
        token_store=store,
        clock=clock,
    )
    yield client
    await http_client.aclose()
