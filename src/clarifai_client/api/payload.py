"""Request payload construction and single/batch endpoint routing."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from clarifai_client.api.errors import ValidationError
from clarifai_client.api.schemas import ImageInput, RecognitionType, TagModel, UrlInput
from clarifai_client.imaging.preprocessing import ImagePreprocessor

if TYPE_CHECKING:
    from collections.abc import Sequence

    from clarifai_client.api.schemas import RecognitionInput
    from clarifai_client.api.transport import MultipartPart

logger = logging.getLogger(__name__)

MULTIOP_PATH = "/multiop"
IMAGE_FIELD = "encoded_image"
IMAGE_FILENAME = "image.jpg"
IMAGE_CONTENT_TYPE = "image/jpeg"


@dataclass(frozen=True)
class RequestPayload:
    """Target path plus the ordered text and binary form parts of one recognition request."""

    path: str
    fields: list[tuple[str, str]] = field(default_factory=list)
    files: list[tuple[str, tuple[str, bytes, str]]] = field(default_factory=list)

    def field_values(self, name: str) -> list[str]:
        return [value for key, value in self.fields if key == name]

    def multipart(self) -> list[MultipartPart]:
        """All parts in send order. Text parts carry no filename so they decode as plain form fields."""
        parts: list[MultipartPart] = [(name, (None, value.encode("utf-8"))) for name, value in self.fields]
        parts.extend(self.files)
        return parts


class PayloadBuilder:
    """Builds the multipart body for a batch of same-kind inputs."""

    def __init__(self, preprocessor: ImagePreprocessor | None = None) -> None:
        self._preprocessor = preprocessor or ImagePreprocessor()

    def build(
        self,
        inputs: Sequence[RecognitionInput],
        recognition_type: RecognitionType,
        model: TagModel = TagModel.GENERAL,
    ) -> RequestPayload:
        """Validate the batch and return the payload for the matching endpoint.

        One input goes to ``/<type>``; two or more go to ``/multiop`` with an
        explicit ``op`` field, which that endpoint requires.

        Raises:
            ValidationError: For an empty batch, mixed input kinds, or an unusable input.
        """
        input_kind = self.validate(inputs)
        try:
            recognition_type = RecognitionType(recognition_type)
            model = TagModel(model)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc

        fields: list[tuple[str, str]] = []
        files: list[tuple[str, tuple[str, bytes, str]]] = []

        if len(inputs) == 1:
            path = f"/{recognition_type.value}"
        else:
            path = MULTIOP_PATH
            fields.append(("op", recognition_type.value))

        if recognition_type is RecognitionType.TAG:
            fields.append(("model", model.value))

        for item in inputs:
            if isinstance(item, ImageInput):
                jpeg = self._preprocessor.prepare(item.data)
                files.append((IMAGE_FIELD, (IMAGE_FILENAME, jpeg, IMAGE_CONTENT_TYPE)))
            else:
                fields.append(("url", item.url))

        logger.debug("Routing %d %s input(s) to %s", len(inputs), input_kind.__name__, path)
        return RequestPayload(path=path, fields=fields, files=files)

    @staticmethod
    def validate(inputs: Sequence[RecognitionInput]) -> type[ImageInput] | type[UrlInput]:
        """Check the batch precondition and return the single input kind it contains."""
        if not inputs:
            raise ValidationError("At least one input is required")

        kinds: set[type[ImageInput] | type[UrlInput]] = set()
        for index, item in enumerate(inputs):
            if isinstance(item, ImageInput):
                kinds.add(ImageInput)
            elif isinstance(item, UrlInput):
                if not item.url.strip():
                    raise ValidationError(f"Input {index} has an empty URL")
                kinds.add(UrlInput)
            else:
                raise ValidationError(f"Input {index} is a {type(item).__name__}, expected ImageInput or UrlInput")

        if len(kinds) > 1:
            raise ValidationError("A batch must contain only images or only URLs, not both")
        return kinds.pop()
