"""Prompt construction for one review step."""

from __future__ import annotations

import re

from swiss_review.schema import InputKind, ReviewInput, ReviewStep

CONTEXT_HEADING = "## Shared context"
INSTRUCTIONS_HEADING = "## Review instructions"
INPUT_HEADING = "## Input"
MIN_FENCE_LENGTH = 3
BACKTICK_RUN_PATTERN = re.compile(r"`+")


def _fence_for(content: str) -> str:
    """Return a backtick fence longer than any backtick run in ``content``."""
    longest_run = max((len(run) for run in BACKTICK_RUN_PATTERN.findall(content)), default=0)
    return "`" * max(MIN_FENCE_LENGTH, longest_run + 1)


def _step_header(step: ReviewStep | None) -> str:
    if step is None:
        return ""
    lines = [f"### {step.name}"]
    description = (step.description or "").strip()
    if description:
        lines.append(description)
    return "\n".join(lines)


def build_review_prompt(
    *,
    instructions: str,
    review_input: ReviewInput,
    shared_context: str | None = None,
    step: ReviewStep | None = None,
) -> str:
    """Build the prompt for one step from context, instructions, and input.

    The payload is fenced verbatim. Context is included in full when it has
    non-whitespace content and omitted otherwise. When ``step`` is given, its
    name and description open the instructions section.
    """
    sections: list[str] = []

    context = (shared_context or "").strip()
    if context:
        sections.append(f"{CONTEXT_HEADING}\n\n{context}")

    header = _step_header(step)
    body = instructions.strip()
    if header:
        body = f"{header}\n\n{body}"
    sections.append(f"{INSTRUCTIONS_HEADING}\n\n{body}")

    fence = _fence_for(review_input.content)
    info_string = "diff" if review_input.kind is InputKind.DIFF else "text"
    payload = review_input.content
    if not payload.endswith("\n"):
        payload += "\n"
    sections.append(
        f"{INPUT_HEADING} ({review_input.kind})\n\n{fence}{info_string}\n{payload}{fence}"
    )

    return "\n\n".join(sections) + "\n"
