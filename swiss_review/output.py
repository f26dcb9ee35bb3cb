"""Terminal rendering for review results and progress."""

from __future__ import annotations

from swiss_review.observability import ProgressEvent, ReviewStarted
from swiss_review.schema import ReviewResult

RESULT_SEPARATOR = "\n---\n"
COMPLETED_MESSAGE = "All reviews passed."


def render_review_result(result: ReviewResult) -> str:
    """Render one flagged finding as a plain-text block."""
    line = str(result.line) if result.line > 0 else "-"
    return "\n".join(
        [
            f"Review: {result.name}",
            f"Score: {result.score}",
            f"File: {result.file_path}",
            f"Line: {line}",
            "Details:",
            result.review,
        ]
    )


def render_progress(event: ProgressEvent) -> str:
    """Render a progress event as a single status line."""
    label = f"{event.workflow}/{event.name}" if event.workflow else event.name
    prefix = f"[{event.index}/{event.total}]"
    if isinstance(event, ReviewStarted):
        return f"{prefix} {label} started ({event.model})"
    seconds = event.elapsed_ms / 1000
    return f"{prefix} {label} finished in {seconds:.1f}s, flagged {event.flagged_count}"
