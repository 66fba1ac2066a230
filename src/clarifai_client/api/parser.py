"""Response parsing: validate the service's JSON envelope and map it onto typed results.

Tag and color responses share the top-level envelope but differ per result:
tag entries nest three parallel arrays under ``result.tag``, color entries
carry a self-contained ``colors`` list directly on the result entry. A
single-input color body may instead carry ``colors`` at the top level.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import TYPE_CHECKING, Annotated, Any

import pydantic
from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictStr, model_validator

from clarifai_client.api.errors import ParseError
from clarifai_client.api.schemas import (
    Color,
    ColorResult,
    RecognitionResponse,
    RecognitionType,
    Tag,
    TagResult,
)

if TYPE_CHECKING:
    from clarifai_client.api.schemas import Result


# ---------------------------------------------------------------------------
# Wire schemas
# ---------------------------------------------------------------------------


class _WireModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class _WireEnvelope(_WireModel):
    status_code: StrictStr
    status_msg: StrictStr


class _WireTagArrays(_WireModel):
    classes: list[StrictStr]
    probs: list[Annotated[StrictFloat, Field(ge=0.0, le=1.0)]]
    concept_ids: list[StrictStr]

    @model_validator(mode="after")
    def _check_parallel(self) -> _WireTagArrays:
        lengths = {len(self.classes), len(self.probs), len(self.concept_ids)}
        if len(lengths) != 1:
            raise ValueError(
                f"classes, probs and concept_ids differ in length "
                f"({len(self.classes)}, {len(self.probs)}, {len(self.concept_ids)})"
            )
        return self


class _WireTagPayload(_WireModel):
    tag: _WireTagArrays


class _WireTagEntry(_WireModel):
    docid_str: StrictStr
    result: _WireTagPayload


class _WireTagResponse(_WireEnvelope):
    results: list[_WireTagEntry]


class _WireW3C(_WireModel):
    hex: StrictStr
    name: StrictStr


class _WireColor(_WireModel):
    density: StrictFloat
    hex: StrictStr = Field(pattern=r"^#[0-9a-fA-F]{6}$")
    w3c: _WireW3C


class _WireColorEntry(_WireModel):
    docid_str: StrictStr
    colors: list[_WireColor]


class _WireColorResponse(_WireEnvelope):
    results: list[_WireColorEntry] | None = None
    # Single-input shape: the color list sits at the top level.
    colors: list[_WireColor] | None = None
    docid_str: StrictStr | None = None

    @model_validator(mode="after")
    def _check_shape(self) -> _WireColorResponse:
        if (self.results is None) == (self.colors is None):
            raise ValueError("expected exactly one of results or a top-level colors list")
        return self

    def entries(self) -> list[_WireColorEntry]:
        if self.results is not None:
            return self.results
        return [_WireColorEntry(docid_str=self.docid_str or "", colors=self.colors or [])]


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


class ResponseParser:
    """Turns a raw recognition response body into a RecognitionResponse."""

    def parse(
        self,
        recognition_type: RecognitionType,
        body: bytes | str | Mapping[str, Any],
    ) -> RecognitionResponse:
        """Parse a whole response or fail; partial results are never returned.

        Raises:
            ParseError: If the body is not JSON or any required field is missing or mistyped.
        """
        document = self._decode(body)
        recognition_type = RecognitionType(recognition_type)

        results: list[Result]
        try:
            if recognition_type is RecognitionType.TAG:
                tag_response = _WireTagResponse.model_validate(document)
                envelope: _WireEnvelope = tag_response
                results = [self._tag_result(entry) for entry in tag_response.results]
            else:
                color_response = _WireColorResponse.model_validate(document)
                envelope = color_response
                results = [self._color_result(entry) for entry in color_response.entries()]

            return RecognitionResponse(
                status_code=envelope.status_code,
                status_message=envelope.status_msg,
                recognition_type=recognition_type,
                results=results,
            )
        except pydantic.ValidationError as exc:
            raise self._to_parse_error(exc) from exc

    # -- Internal -----------------------------------------------------------

    @staticmethod
    def _decode(body: bytes | str | Mapping[str, Any]) -> Any:
        if isinstance(body, (bytes, bytearray, str)):
            try:
                body = json.loads(body)
            except ValueError as exc:
                raise ParseError(f"Response body is not valid JSON: {exc}") from exc
        if not isinstance(body, Mapping):
            raise ParseError(f"Expected a JSON object, got {type(body).__name__}")
        return dict(body)

    @staticmethod
    def _tag_result(entry: _WireTagEntry) -> TagResult:
        arrays = entry.result.tag
        tags = [
            Tag(label=label, concept_id=concept_id, probability=probability)
            for label, probability, concept_id in zip(arrays.classes, arrays.probs, arrays.concept_ids, strict=True)
        ]
        return TagResult(document_id=entry.docid_str, tags=tags)

    @staticmethod
    def _color_result(entry: _WireColorEntry) -> ColorResult:
        colors = [
            Color(density=color.density, hex=color.hex, w3c_name=color.w3c.name, w3c_hex=color.w3c.hex)
            for color in entry.colors
        ]
        return ColorResult(document_id=entry.docid_str, colors=colors)

    @staticmethod
    def _to_parse_error(exc: pydantic.ValidationError) -> ParseError:
        first = exc.errors()[0]
        path = ".".join(str(part) for part in first["loc"])
        return ParseError(first["msg"], field=path or None)
