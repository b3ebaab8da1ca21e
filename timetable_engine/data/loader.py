"""Load and validate generation requests from payloads and JSON files."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Mapping, Union

from pydantic import ValidationError

from ..errors import InvalidInputError
from .models import GenerationRequest, convert_keys_to_snake_case


def parse_request(data: Mapping[str, Any]) -> GenerationRequest:
    """
    Validate a raw request payload.

    The platform sends camelCase keys; snake_case payloads pass through
    unchanged.

    Args:
        data: Request payload

    Returns:
        Validated GenerationRequest

    Raises:
        InvalidInputError: If the payload fails schema or reference validation
    """
    if not isinstance(data, Mapping):
        raise InvalidInputError(f"Request payload must be an object, got {type(data).__name__}")

    try:
        return GenerationRequest.model_validate(convert_keys_to_snake_case(dict(data)))
    except ValidationError as e:
        raise InvalidInputError(_format_validation_errors(e)) from e


def load_request(path: Union[str, Path]) -> GenerationRequest:
    """
    Load and validate a generation request from a JSON file.

    Raises:
        FileNotFoundError: If the file doesn't exist
        json.JSONDecodeError: If the file isn't valid JSON
        InvalidInputError: If the data fails validation
    """
    with open(Path(path), encoding="utf-8") as f:
        data = json.load(f)
    return parse_request(data)


def save_request(request: GenerationRequest, path: Union[str, Path]) -> Path:
    """Write a request as JSON (snake_case keys)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(request.model_dump_json(indent=2, exclude_none=True), encoding="utf-8")
    return path


def _format_validation_errors(error: ValidationError) -> list[str]:
    messages = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"])
        message = item["msg"]
        messages.append(f"{location}: {message}" if location else message)
    return messages
