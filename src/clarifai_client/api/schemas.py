"""Public request inputs and typed recognition results."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    import numpy as np
    from numpy.typing import NDArray


class RecognitionType(StrEnum):
    """Recognition operation. The value doubles as the endpoint path and the multiop ``op`` field."""

    TAG = "tag"
    COLOR = "color"


class TagModel(StrEnum):
    """Hosted tagging models. The value is the wire identifier sent in the ``model`` field."""

    GENERAL = "general-v1.3"
    NSFW = "nsfw-v1.0"
    WEDDINGS = "weddings-v1.0"
    TRAVEL = "travel-v1.0"
    FOOD = "food-items-v0.1"

    @classmethod
    def from_name(cls, name: str) -> TagModel:
        """Look up a model by member name (``"food"``) or wire identifier (``"food-items-v0.1"``)."""
        try:
            return cls[name.upper()]
        except KeyError:
            pass
        try:
            return cls(name)
        except ValueError:
            raise ValueError(f"Unknown tag model: {name}") from None


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True, eq=False)
class ImageInput:
    """An image to upload: encoded file bytes, or an HxWx3 RGB uint8 array."""

    data: bytes | NDArray[np.uint8]


@dataclass(frozen=True)
class UrlInput:
    """A publicly reachable image URL the service fetches itself."""

    url: str


RecognitionInput = ImageInput | UrlInput


@dataclass(frozen=True)
class Credentials:
    """OAuth client identity. Also the key of the token cache."""

    client_id: str
    client_secret: str

    @property
    def identity(self) -> str:
        """Stable identity string persisted next to the token; never contains the secret itself."""
        digest = hashlib.sha256(f"{self.client_id}:{self.client_secret}".encode()).hexdigest()
        return f"{self.client_id}:{digest[:16]}"

    def __repr__(self) -> str:
        return f"Credentials(client_id={self.client_id!r}, client_secret='***')"


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class Tag(BaseModel):
    """A single predicted concept."""

    model_config = ConfigDict(frozen=True)

    label: str
    concept_id: str
    probability: float = Field(ge=0.0, le=1.0)


class Color(BaseModel):
    """A dominant color and its closest W3C named color."""

    model_config = ConfigDict(frozen=True)

    density: float = Field(description="Share of the image covered by this color (0.0-1.0)")
    hex: str = Field(pattern=r"^#[0-9a-fA-F]{6}$")
    w3c_name: str
    w3c_hex: str


class TagResult(BaseModel):
    """Tags predicted for one submitted input."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["tag"] = "tag"
    document_id: str
    tags: list[Tag]

    @property
    def labels(self) -> list[str]:
        return [tag.label for tag in self.tags]


class ColorResult(BaseModel):
    """Dominant colors detected in one submitted input."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["color"] = "color"
    document_id: str
    colors: list[Color]


Result = Annotated[TagResult | ColorResult, Field(discriminator="kind")]


class RecognitionResponse(BaseModel):
    """Parsed service response. ``results`` is in the same order as the submitted inputs."""

    model_config = ConfigDict(frozen=True)

    status_code: str
    status_message: str
    recognition_type: RecognitionType
    results: list[Result]
