"""Batch execution of several workflows in one invocation."""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from swiss_review.agent import run_reviews
from swiss_review.config import load_workflow_config, load_workflow_context
from swiss_review.observability import ProgressEvent, ProgressObserver
from swiss_review.reasoning_client import ConversationFactory
from swiss_review.schema import ReviewInput, ReviewResult, ReviewRun, StopReason, WorkflowConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ResolvedWorkflow:
    """Workflow definition and shared context loaded ahead of execution."""

    name: str
    config: WorkflowConfig
    shared_context: str | None = None


@dataclass(frozen=True, slots=True)
class WorkflowRun:
    """Outcome of one workflow inside a batch."""

    name: str
    run: ReviewRun


@dataclass(frozen=True, slots=True)
class BatchRun:
    """Outcome of a batch of workflows."""

    results: tuple[ReviewResult, ...]
    stop_reason: StopReason
    runs: tuple[WorkflowRun, ...]
    stopped_at: str | None = None


def resolve_workflows(
    base_dir: Path,
    names: Sequence[str],
    *,
    require_context: bool = False,
) -> tuple[ResolvedWorkflow, ...]:
    """Load every named workflow and its context before anything runs.

    The first lookup failure propagates, so no workflow starts when any is unresolvable.
    """
    if not names:
        raise ValueError("At least one workflow name is required.")
    return tuple(
        ResolvedWorkflow(
            name=name,
            config=load_workflow_config(base_dir, name),
            shared_context=load_workflow_context(base_dir, name, required=require_context),
        )
        for name in names
    )


def _renumbering_observer(
    observer: ProgressObserver | None,
    *,
    offset: int,
    total: int,
) -> ProgressObserver | None:
    """Wrap an observer so per-workflow indexes count against the batch total."""
    if observer is None:
        return None

    def forward(event: ProgressEvent) -> None:
        observer(dataclasses.replace(event, index=event.index + offset, total=total))

    return forward


def run_workflow_batch(
    *,
    base_dir: Path,
    workflows: Sequence[ResolvedWorkflow],
    review_input: ReviewInput,
    conversations: ConversationFactory,
    on_progress: ProgressObserver | None = None,
) -> BatchRun:
    """Run resolved workflows in order, stopping the batch at the first that needs action."""
    total = sum(len(workflow.config.steps) for workflow in workflows)
    offset = 0
    runs: list[WorkflowRun] = []

    for workflow in workflows:
        run = run_reviews(
            base_dir=base_dir,
            config=workflow.config,
            review_input=review_input,
            conversations=conversations,
            shared_context=workflow.shared_context,
            on_progress=_renumbering_observer(on_progress, offset=offset, total=total),
            workflow=workflow.name,
        )
        runs.append(WorkflowRun(name=workflow.name, run=run))
        offset += len(workflow.config.steps)

        if run.stop_reason is StopReason.NEEDS_ACTION:
            logger.info("Workflow %s needs action; stopping batch", workflow.name)
            return BatchRun(
                results=run.results,
                stop_reason=StopReason.NEEDS_ACTION,
                runs=tuple(runs),
                stopped_at=workflow.name,
            )

    return BatchRun(results=(), stop_reason=StopReason.COMPLETED, runs=tuple(runs))


def run_workflows(
    *,
    base_dir: Path,
    names: Sequence[str],
    review_input: ReviewInput,
    conversations: ConversationFactory,
    on_progress: ProgressObserver | None = None,
    require_context: bool = False,
) -> BatchRun:
    """Resolve all named workflows, then run them as one batch."""
    workflows = resolve_workflows(base_dir, names, require_context=require_context)
    return run_workflow_batch(
        base_dir=base_dir,
        workflows=workflows,
        review_input=review_input,
        conversations=conversations,
        on_progress=on_progress,
    )
