"""Command line entry point: tag or color images and URLs from the shell."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from clarifai_client.api.errors import ClarifaiError, ValidationError
from clarifai_client.api.schemas import ColorResult, ImageInput, RecognitionType, TagModel, TagResult, UrlInput
from clarifai_client.client import RecognitionClient
from clarifai_client.config import get_settings

if TYPE_CHECKING:
    from collections.abc import Sequence

    from clarifai_client.api.schemas import RecognitionInput, RecognitionResponse

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_INVALID = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="clarifai-recognize",
        description="Recognize image files or URLs. Credentials come from CLARIFAI_CLIENT_ID/CLARIFAI_CLIENT_SECRET.",
    )
    parser.add_argument("inputs", nargs="+", metavar="INPUT", help="Image file path or http(s) URL")
    parser.add_argument("--color", action="store_true", help="Detect dominant colors instead of tags")
    parser.add_argument(
        "--model",
        default="general",
        help=f"Tagging model ({', '.join(m.name.lower() for m in TagModel)}); ignored with --color",
    )
    parser.add_argument("--json", action="store_true", help="Print the full response as JSON")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser


def load_inputs(values: Sequence[str]) -> list[RecognitionInput]:
    """URLs stay URLs; everything else is read from disk."""
    inputs: list[RecognitionInput] = []
    for value in values:
        if value.startswith(("http://", "https://")):
            inputs.append(UrlInput(url=value))
            continue
        try:
            inputs.append(ImageInput(data=Path(value).read_bytes()))
        except OSError as exc:
            raise ValidationError(f"Cannot read {value}: {exc.strerror or exc}") from exc
    return inputs


def format_response(response: RecognitionResponse, sources: Sequence[str]) -> str:
    lines: list[str] = []
    for source, result in zip(sources, response.results, strict=True):
        lines.append(f"# {source} ({result.document_id})")
        if isinstance(result, TagResult):
            lines.extend(f"{tag.label}\t{tag.probability:.4f}" for tag in result.tags)
        elif isinstance(result, ColorResult):
            lines.extend(f"{color.hex}\t{color.w3c_name}\t{color.density:.4f}" for color in result.colors)
    return "\n".join(lines)


async def run(args: argparse.Namespace) -> RecognitionResponse:
    settings = get_settings()
    recognition_type = RecognitionType.COLOR if args.color else RecognitionType.TAG
    try:
        model = TagModel.from_name(args.model)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc
    inputs = load_inputs(args.inputs)

    try:
        client = RecognitionClient.from_settings(settings)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc
    async with client:
        return await client.recognize(inputs, recognition_type, model)


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    try:
        response = asyncio.run(run(args))
    except ValidationError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_INVALID
    except ClarifaiError as exc:
        logger.debug("Recognition failed", exc_info=True)
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_ERROR

    if args.json:
        print(response.model_dump_json(indent=2))
    else:
        print(format_response(response, args.inputs))
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
