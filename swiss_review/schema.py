"""Schema contract for workflow definitions and review outputs."""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictInt,
    StrictStr,
    ValidationError,
)

FLAG_THRESHOLD = 80
NAME_PATTERN = r"^[A-Za-z0-9_-]+$"

REVIEW_OUTPUT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "description": "Review results, one entry per file location with a score and review text.",
    "properties": {
        "results": {
            "type": "array",
            "description": "List of review results.",
            "items": {
                "type": "object",
                "properties": {
                    "filePath": {
                        "type": "string",
                        "description": "Path of the reviewed file.",
                    },
                    "line": {
                        "type": "integer",
                        "minimum": 0,
                        "description": "Reviewed line number, 0 for the whole input.",
                    },
                    "review": {
                        "type": "string",
                        "description": "Review text. Must include what needs to change.",
                    },
                    "score": {
                        "type": "integer",
                        "minimum": 0,
                        "maximum": 100,
                        "description": "Score from 0 to 100. Above 80 requires action.",
                    },
                },
                "required": ["review", "score", "filePath", "line"],
                "additionalProperties": False,
            },
        },
    },
    "required": ["results"],
    "additionalProperties": False,
}


class InputKind(StrEnum):
    """Supported review input kinds."""

    TEXT = "text"
    DIFF = "diff"


class StopReason(StrEnum):
    """Terminal classification of a workflow or batch run."""

    COMPLETED = "completed"
    NEEDS_ACTION = "needs_action"


class ReviewResponseError(ValueError):
    """Raised when a reasoning service answer breaks the output contract."""


class MalformedResponseError(ReviewResponseError):
    """Raised when the response text is not parseable JSON."""


class SchemaViolationError(ReviewResponseError):
    """Raised when parsed response data fails contract validation."""

    def __init__(self, message: str, *, field: str) -> None:
        super().__init__(message)
        self.field = field


class ReviewStep(BaseModel):
    """One named review step of a workflow.

    ``name`` doubles as the prompt file stem. ``parallel`` is stored for
    presentation and future scheduling only. Steps always run sequentially.
    Unknown keys are dropped.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    name: str = Field(min_length=1, pattern=NAME_PATTERN)
    description: str | None = None
    model: str | None = None
    parallel: bool | None = None


class WorkflowConfig(BaseModel):
    """Workflow definition: a default model plus ordered review steps."""

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    default_model: str = Field(alias="model", min_length=1)
    steps: tuple[ReviewStep, ...] = Field(alias="reviews", min_length=1)

    def resolve_model(self, step: ReviewStep) -> str:
        """Return the step's model override or the workflow default."""
        return step.model or self.default_model


@dataclass(frozen=True, slots=True)
class ReviewInput:
    """Payload under review."""

    content: str
    kind: InputKind = InputKind.TEXT


class Finding(BaseModel):
    """One review item as returned by the reasoning service."""

    model_config = ConfigDict(extra="forbid")

    review: StrictStr
    score: StrictInt = Field(ge=0, le=100)
    file_path: StrictStr = Field(alias="filePath")
    line: StrictInt = Field(ge=0)


class ReviewResponse(BaseModel):
    """Structured output envelope returned for one step."""

    model_config = ConfigDict(extra="forbid")

    results: list[Finding]


class ReviewResult(BaseModel):
    """Flagged finding tagged with the step that produced it."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str
    review: str
    score: int
    file_path: str = Field(alias="filePath")
    line: int

    @classmethod
    def from_finding(cls, name: str, finding: Finding) -> ReviewResult:
        """Tag a finding with its step name."""
        return cls(
            name=name,
            review=finding.review,
            score=finding.score,
            file_path=finding.file_path,
            line=finding.line,
        )


@dataclass(frozen=True, slots=True)
class ReviewRun:
    """Outcome of one workflow run."""

    results: tuple[ReviewResult, ...]
    stop_reason: StopReason
    steps_run: int


def _error_location(error: ValidationError) -> str:
    """Return the dotted location of the first validation error."""
    first = error.errors()[0]
    location = ".".join(str(part) for part in first["loc"])
    return location or "<root>"


def parse_review_response(raw: str) -> ReviewResponse:
    """Parse and validate raw structured output from the reasoning service.

    A bare top-level array is accepted and treated as the ``results`` list.
    """
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as error:
        raise MalformedResponseError(
            f"Review response is not valid JSON: {error.msg} at position {error.pos}."
        ) from error

    if isinstance(payload, list):
        payload = {"results": payload}
    if not isinstance(payload, dict):
        raise SchemaViolationError(
            f"Review response must be a JSON object, got {type(payload).__name__}.",
            field="<root>",
        )

    try:
        return ReviewResponse.model_validate(payload)
    except ValidationError as error:
        location = _error_location(error)
        reason = error.errors()[0]["msg"]
        raise SchemaViolationError(
            f"Review response violates the output contract at '{location}': {reason}.",
            field=location,
        ) from error


def flag_findings(findings: list[Finding]) -> list[Finding]:
    """Keep only findings scored above the action threshold."""
    return [finding for finding in findings if finding.score > FLAG_THRESHOLD]
