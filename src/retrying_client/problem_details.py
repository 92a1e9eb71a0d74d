"""RFC 9457 Problem Details helpers with schema validation.

Every payload built here is validated against a JSON Schema 2020-12 document
before it is handed back to the caller.

Examples
--------
>>> from retrying_client.problem_details import (
...     ProblemDetailsParams,
...     build_problem_details,
...     render_problem,
... )
>>> problem = build_problem_details(
...     ProblemDetailsParams(
...         problem_type="urn:retrying-client:problems:connection-failed",
...         title="ConnectionFailedError",
...         status=503,
...         detail="Connection refused",
...         instance="urn:retrying-client:request:/items",
...     )
... )
>>> "connection-failed" in render_problem(problem)
True
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Final, TypedDict, cast

from jsonschema import Draft202012Validator, ValidationError

from retrying_client.types import JsonValue

__all__ = [
    "ProblemDetails",
    "ProblemDetailsParams",
    "ProblemDetailsValidationError",
    "build_problem_details",
    "render_problem",
    "validate_problem_details",
]

_PROBLEM_DETAILS_SCHEMA: Final[dict[str, object]] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": ["type", "title", "status", "detail", "instance"],
    "properties": {
        "type": {"type": "string", "minLength": 1},
        "title": {"type": "string", "minLength": 1},
        "status": {"type": "integer", "minimum": 100, "maximum": 599},
        "detail": {"type": "string"},
        "instance": {"type": "string", "minLength": 1},
        "code": {"type": "string"},
        "extensions": {"type": "object"},
    },
    "additionalProperties": False,
}
_VALIDATOR: Final = Draft202012Validator(_PROBLEM_DETAILS_SCHEMA)


class ProblemDetails(TypedDict, total=False):
    """Problem Details payload as returned to callers and printed by the CLI."""

    type: str
    title: str
    status: int
    detail: str
    instance: str
    code: str
    extensions: dict[str, JsonValue]


@dataclass(slots=True)
class ProblemDetailsParams:
    """Inputs for :func:`build_problem_details`; ``problem_type`` becomes ``type``."""

    problem_type: str
    title: str
    status: int
    detail: str
    instance: str
    code: str | None = None
    extensions: Mapping[str, JsonValue] | None = None


class ProblemDetailsValidationError(Exception):
    """A payload broke the Problem Details schema.

    ``validation_errors`` lists every violation as ``path: message``, the first
    of which is repeated in the exception message.
    """

    def __init__(self, message: str, validation_errors: list[str] | None = None) -> None:
        super().__init__(message)
        self.validation_errors = validation_errors or []


def _describe(error: ValidationError) -> str:
    location = "/".join(str(part) for part in error.path) or "<root>"
    return f"{location}: {error.message}"


def validate_problem_details(payload: Mapping[str, JsonValue]) -> None:
    """Check ``payload`` against the Problem Details schema.

    Raises
    ------
    ProblemDetailsValidationError
        Carrying one entry per violation, ordered by location.
    """
    violations = [
        _describe(error)
        for error in sorted(_VALIDATOR.iter_errors(dict(payload)), key=lambda e: list(e.path))
    ]
    if violations:
        msg = f"Problem Details validation failed: {violations[0]}"
        raise ProblemDetailsValidationError(msg, validation_errors=violations)


def build_problem_details(params: ProblemDetailsParams) -> ProblemDetails:
    """Assemble a validated payload from ``params``.

    ``code`` and ``extensions`` are omitted when unset or empty.

    Raises
    ------
    ProblemDetailsValidationError
        When a field is out of range, e.g. a status outside 100-599.
    """
    optional = {"code": params.code, "extensions": dict(params.extensions or {}) or None}
    payload = {
        "type": params.problem_type,
        "title": params.title,
        "status": params.status,
        "detail": params.detail,
        "instance": params.instance,
    } | {key: value for key, value in optional.items() if value is not None}
    validate_problem_details(cast("Mapping[str, JsonValue]", payload))
    return cast("ProblemDetails", payload)


def render_problem(problem: ProblemDetails | Mapping[str, object]) -> str:
    """Serialize ``problem`` to a single line of JSON."""
    return json.dumps(problem, default=str, ensure_ascii=False)
