"""Review orchestration entrypoints."""

from __future__ import annotations

import logging
import time
from pathlib import Path

from swiss_review.config import load_prompt
from swiss_review.context import build_review_prompt
from swiss_review.observability import (
    ProgressEvent,
    ProgressObserver,
    ReviewFinished,
    ReviewStarted,
)
from swiss_review.reasoning_client import ConversationFactory
from swiss_review.schema import (
    REVIEW_OUTPUT_SCHEMA,
    ReviewInput,
    ReviewResult,
    ReviewRun,
    ReviewStep,
    StopReason,
    WorkflowConfig,
    flag_findings,
    parse_review_response,
)

logger = logging.getLogger(__name__)


def _emit(observer: ProgressObserver | None, event: ProgressEvent) -> None:
    if observer is not None:
        observer(event)


def run_review_step(
    *,
    step: ReviewStep,
    prompt: str,
    model: str,
    conversations: ConversationFactory,
    working_directory: Path,
) -> list[ReviewResult]:
    """Run one step in a fresh conversation and return its flagged findings.

    Service and contract errors propagate; an empty list means the step passed.
    """
    with conversations.open_conversation(
        model=model, working_directory=working_directory
    ) as conversation:
        turn = conversation.run(prompt, output_schema=REVIEW_OUTPUT_SCHEMA)

    response = parse_review_response(turn.final_response)
    return [
        ReviewResult.from_finding(step.name, finding)
        for finding in flag_findings(response.results)
    ]


def run_reviews(
    *,
    base_dir: Path,
    config: WorkflowConfig,
    review_input: ReviewInput,
    conversations: ConversationFactory,
    shared_context: str | None = None,
    on_progress: ProgressObserver | None = None,
    workflow: str | None = None,
) -> ReviewRun:
    """Run a workflow's steps in order, stopping at the first step that flags anything.

    Steps run one at a time in declared order. The ``parallel`` hint on a step
    does not change this.
    """
    total = len(config.steps)
    for index, step in enumerate(config.steps, start=1):
        model = config.resolve_model(step)
        _emit(
            on_progress,
            ReviewStarted(index=index, total=total, name=step.name, model=model, workflow=workflow),
        )
        logger.debug("Starting review step %d/%d: %s (%s)", index, total, step.name, model)

        started_at = time.perf_counter()
        instructions = load_prompt(base_dir, step.name)
        prompt = build_review_prompt(
            instructions=instructions,
            review_input=review_input,
            shared_context=shared_context,
            step=step,
        )
        results = run_review_step(
            step=step,
            prompt=prompt,
            model=model,
            conversations=conversations,
            working_directory=base_dir,
        )
        elapsed_ms = int((time.perf_counter() - started_at) * 1000)

        _emit(
            on_progress,
            ReviewFinished(
                index=index,
                total=total,
                name=step.name,
                elapsed_ms=elapsed_ms,
                flagged_count=len(results),
                workflow=workflow,
            ),
        )
        logger.debug(
            "Finished review step %s in %d ms with %d flagged finding(s)",
            step.name,
            elapsed_ms,
            len(results),
        )

        if results:
            logger.info(
                "Review step %s needs action; skipping %d remaining step(s)",
                step.name,
                total - index,
            )
            return ReviewRun(
                results=tuple(results),
                stop_reason=StopReason.NEEDS_ACTION,
                steps_run=index,
            )

    return ReviewRun(results=(), stop_reason=StopReason.COMPLETED, steps_run=total)
