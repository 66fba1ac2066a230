"""Recognition client: the public entry point of the SDK.

Each ``recognize`` call runs the same pipeline::

    validate + build payload -> ensure token -> upload -> parse

Nothing is kept between calls except the token cache owned by the
TokenManager.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING

import numpy as np

from clarifai_client.api.errors import ParseError, TransportError
from clarifai_client.api.parser import ResponseParser
from clarifai_client.api.payload import PayloadBuilder
from clarifai_client.api.schemas import ImageInput, RecognitionType, TagModel, UrlInput
from clarifai_client.api.transport import HttpxTransport
from clarifai_client.auth.token_manager import TokenManager
from clarifai_client.auth.token_store import InMemoryTokenStore, JsonFileTokenStore
from clarifai_client.config import Settings
from clarifai_client.imaging.preprocessing import ImagePreprocessor

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from types import TracebackType

    from numpy.typing import NDArray

    from clarifai_client.api.payload import RequestPayload
    from clarifai_client.api.schemas import Credentials, RecognitionInput, RecognitionResponse
    from clarifai_client.api.transport import Transport, TransportResponse
    from clarifai_client.auth.token_manager import Token
    from clarifai_client.auth.token_store import TokenStore

    ImageData = bytes | NDArray[np.uint8]

logger = logging.getLogger(__name__)


def build_token_store(settings: Settings) -> TokenStore:
    """Persistent store when a path is configured, in-memory otherwise."""
    if settings.token_store_path:
        return JsonFileTokenStore(settings.token_store_path)
    return InMemoryTokenStore()


class RecognitionClient:
    """Async client for the image recognition service."""

    def __init__(
        self,
        credentials: Credentials,
        *,
        settings: Settings | None = None,
        transport: Transport | None = None,
        token_store: TokenStore | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._settings = settings or Settings()
        self._owns_transport = transport is None
        self._transport: Transport = transport or HttpxTransport(
            self._settings.base_url,
            timeout=self._settings.timeout,
            max_connections=self._settings.max_connections,
        )
        self._tokens = TokenManager(
            credentials,
            self._transport,
            token_store or build_token_store(self._settings),
            min_lifetime=self._settings.min_token_lifetime,
            clock=clock,
        )
        self._payloads = PayloadBuilder(
            ImagePreprocessor(
                max_dimension=self._settings.max_image_dimension,
                jpeg_quality=self._settings.jpeg_quality,
                max_image_pixels=self._settings.max_image_pixels,
            )
        )
        self._parser = ResponseParser()

    @classmethod
    def from_settings(cls, settings: Settings | None = None, **kwargs: object) -> RecognitionClient:
        """Create a client whose credentials come from CLARIFAI_CLIENT_ID / CLARIFAI_CLIENT_SECRET."""
        settings = settings or Settings()
        return cls(settings.credentials(), settings=settings, **kwargs)  # type: ignore[arg-type]

    @property
    def token_manager(self) -> TokenManager:
        return self._tokens

    # -- Public API ---------------------------------------------------------

    async def recognize(
        self,
        inputs: Sequence[RecognitionInput] | RecognitionInput,
        recognition_type: RecognitionType = RecognitionType.TAG,
        model: TagModel = TagModel.GENERAL,
    ) -> RecognitionResponse:
        """Recognize a batch of images or URLs.

        Results come back in the same order as ``inputs``.

        Raises:
            ValidationError: If the batch is empty, mixes images and URLs, or holds an unusable image.
            AuthError: If no access token could be obtained. Nothing is uploaded.
            TransportError: If the upload failed or returned a non-2xx status. A 401 also
                invalidates the cached token so the next call re-authenticates.
            ParseError: If the response body does not match the expected schema, or holds a
                different number of results than inputs.
        """
        batch = [inputs] if isinstance(inputs, (ImageInput, UrlInput)) else list(inputs)
        payload = await self._build(batch, recognition_type, model)
        token = await self._authorize()
        response = await self._upload(payload, token)
        return self._parse(recognition_type, response, len(batch))

    async def tag(
        self,
        inputs: Sequence[RecognitionInput] | RecognitionInput,
        model: TagModel = TagModel.GENERAL,
    ) -> RecognitionResponse:
        return await self.recognize(inputs, RecognitionType.TAG, model)

    async def tag_images(
        self,
        images: ImageData | Sequence[ImageData],
        model: TagModel = TagModel.GENERAL,
    ) -> RecognitionResponse:
        return await self.tag(_image_inputs(images), model)

    async def tag_urls(self, urls: str | Sequence[str], model: TagModel = TagModel.GENERAL) -> RecognitionResponse:
        return await self.tag(_url_inputs(urls), model)

    async def color(self, inputs: Sequence[RecognitionInput] | RecognitionInput) -> RecognitionResponse:
        return await self.recognize(inputs, RecognitionType.COLOR)

    async def color_images(self, images: ImageData | Sequence[ImageData]) -> RecognitionResponse:
        return await self.color(_image_inputs(images))

    async def color_urls(self, urls: str | Sequence[str]) -> RecognitionResponse:
        return await self.color(_url_inputs(urls))

    async def aclose(self) -> None:
        """Close the HTTP transport if this client created it."""
        if self._owns_transport:
            await self._transport.aclose()

    async def __aenter__(self) -> RecognitionClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    # -- Stages -------------------------------------------------------------

    async def _build(
        self,
        batch: list[RecognitionInput],
        recognition_type: RecognitionType,
        model: TagModel,
    ) -> RequestPayload:
        if any(isinstance(item, ImageInput) for item in batch):
            # Decoding and resizing is CPU-bound; keep it off the event loop.
            return await asyncio.to_thread(self._payloads.build, batch, recognition_type, model)
        return self._payloads.build(batch, recognition_type, model)

    async def _authorize(self) -> Token:
        logger.debug("Awaiting access token")
        return await self._tokens.ensure_valid()

    async def _upload(self, payload: RequestPayload, token: Token) -> TransportResponse:
        logger.debug("Uploading to %s", payload.path)
        response = await self._transport.post(
            payload.path,
            files=payload.multipart(),
            headers={"Authorization": f"Bearer {token.value}"},
        )
        if response.is_success:
            return response

        if response.status_code == 401:
            logger.warning("Recognition request was rejected with 401; dropping cached token")
            self._tokens.invalidate()
        raise TransportError(
            f"POST {payload.path} returned HTTP {response.status_code}",
            status_code=response.status_code,
            body=response.body(),
            url=response.url or payload.path,
        )

    def _parse(
        self,
        recognition_type: RecognitionType,
        response: TransportResponse,
        expected: int,
    ) -> RecognitionResponse:
        logger.debug("Parsing %s response (%d bytes)", recognition_type, len(response.content))
        parsed = self._parser.parse(recognition_type, response.content)
        if len(parsed.results) != expected:
            # Results are matched to inputs by position.
            raise ParseError(
                f"expected {expected} result(s) for {expected} input(s), got {len(parsed.results)}",
                field="results",
            )
        if parsed.status_code != "OK":
            logger.info("Service reported %s: %s", parsed.status_code, parsed.status_message)
        return parsed


def _image_inputs(images: ImageData | Sequence[ImageData]) -> list[ImageInput]:
    if isinstance(images, (bytes, bytearray, memoryview, np.ndarray)):
        return [ImageInput(data=images)]
    return [ImageInput(data=image) for image in images]


def _url_inputs(urls: str | Sequence[str]) -> list[UrlInput]:
    if isinstance(urls, str):
        return [UrlInput(url=urls)]
    return [UrlInput(url=url) for url in urls]
