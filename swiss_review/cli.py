"""Typer CLI for workflow-driven reviews."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Annotated

import httpx
import typer

from swiss_review.agent import run_reviews
from swiss_review.batch import resolve_workflows, run_workflow_batch
from swiss_review.config import (
    DEFAULT_WORKFLOW_NAME,
    ConfigError,
    ConfigNotFoundError,
    WorkflowNameError,
    list_workflows,
)
from swiss_review.observability import ProgressEvent, configure_logging
from swiss_review.output import (
    COMPLETED_MESSAGE,
    RESULT_SEPARATOR,
    render_progress,
    render_review_result,
)
from swiss_review.reasoning_client import (
    ReasoningAuthError,
    ReasoningSettingsError,
    ServiceUnavailableError,
    build_reasoning_client,
)
from swiss_review.schema import InputKind, ReviewInput, ReviewResponseError, StopReason

NEEDS_ACTION_EXIT_CODE = 2
FAILURE_EXIT_CODE = 1

app = typer.Typer(help="Run declarative review workflows over text or diffs.")


def _fail(message: str) -> typer.Exit:
    typer.echo(f"swiss review failed: {message}", err=True)
    return typer.Exit(code=FAILURE_EXIT_CODE)


def _echo_progress(event: ProgressEvent) -> None:
    typer.echo(render_progress(event), err=True)


@app.command("review")
def review_command(
    workflow: Annotated[
        list[str] | None,
        typer.Option("--workflow", "-w", help="Workflow to run; repeat to run a batch."),
    ] = None,
    diff: Annotated[
        bool, typer.Option("--diff/--text", help="Treat stdin as a diff instead of text.")
    ] = False,
    base_dir: Annotated[
        Path | None, typer.Option(help="Directory holding .swiss/ (defaults to cwd).")
    ] = None,
    require_context: Annotated[
        bool, typer.Option(help="Fail when a workflow has no shared context file.")
    ] = False,
    trust_env: Annotated[
        bool,
        typer.Option(
            "--trust-env/--no-trust-env",
            help="Use proxy/SSL environment variables from the current shell.",
        ),
    ] = True,
    verbose: Annotated[bool, typer.Option(help="Log engine activity.")] = False,
) -> None:
    """Review stdin with one or more workflows."""
    configure_logging(verbose)

    content = sys.stdin.read()
    if not content.strip():
        typer.echo("stdin is empty", err=True)
        raise typer.Exit(code=FAILURE_EXIT_CODE)

    review_input = ReviewInput(
        content=content,
        kind=InputKind.DIFF if diff else InputKind.TEXT,
    )
    root = (base_dir or Path.cwd()).resolve()
    names = workflow or [DEFAULT_WORKFLOW_NAME]

    try:
        workflows = resolve_workflows(root, names, require_context=require_context)
    except ConfigNotFoundError as error:
        typer.echo(f"swiss review failed: {error}", err=True)
        if error.available:
            typer.echo(f"Available workflows: {', '.join(error.available)}", err=True)
        else:
            typer.echo("No workflows are defined under .swiss/flows/.", err=True)
        raise typer.Exit(code=FAILURE_EXIT_CODE) from error
    except (ConfigError, WorkflowNameError) as error:
        raise _fail(str(error)) from error

    try:
        with build_reasoning_client(trust_env=trust_env) as client:
            if len(workflows) == 1:
                resolved = workflows[0]
                run = run_reviews(
                    base_dir=root,
                    config=resolved.config,
                    review_input=review_input,
                    conversations=client,
                    shared_context=resolved.shared_context,
                    on_progress=_echo_progress,
                )
                results, stop_reason = run.results, run.stop_reason
            else:
                batch = run_workflow_batch(
                    base_dir=root,
                    workflows=workflows,
                    review_input=review_input,
                    conversations=client,
                    on_progress=_echo_progress,
                )
                results, stop_reason = batch.results, batch.stop_reason
    except (
        ConfigError,
        WorkflowNameError,
        ReviewResponseError,
        ReasoningAuthError,
        ReasoningSettingsError,
        ServiceUnavailableError,
    ) as error:
        raise _fail(str(error)) from error
    except httpx.HTTPError as error:
        raise _fail(f"network error ({error}).") from error

    for result in results:
        typer.echo(render_review_result(result))
        typer.echo(RESULT_SEPARATOR)

    if stop_reason is StopReason.NEEDS_ACTION:
        raise typer.Exit(code=NEEDS_ACTION_EXIT_CODE)
    typer.echo(COMPLETED_MESSAGE)


@app.command("workflows")
def workflows_command(
    base_dir: Annotated[
        Path | None, typer.Option(help="Directory holding .swiss/ (defaults to cwd).")
    ] = None,
) -> None:
    """List defined workflows."""
    for name in list_workflows((base_dir or Path.cwd()).resolve()):
        typer.echo(name)


def main() -> None:
    app()
