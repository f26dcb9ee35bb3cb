"""Shared pytest fixtures and test-run configuration."""

from __future__ import annotations

import os
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import pytest
from swiss_review.reasoning_client import Turn


def pytest_addoption(parser: pytest.Parser) -> None:
    """Add custom pytest options for integration test execution."""
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Run tests marked as integration (external dependencies).",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Skip integration tests unless explicitly enabled."""
    run_integration = config.getoption("--run-integration")
    env_enabled = os.getenv("RUN_INTEGRATION_TESTS") == "1"
    if run_integration or env_enabled:
        return

    skip_marker = pytest.mark.skip(
        reason=(
            "Integration tests are disabled by default. "
            "Use --run-integration or set RUN_INTEGRATION_TESTS=1."
        )
    )
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_marker)


class _ScriptedConversation:
    """Conversation double that answers with one scripted response."""

    def __init__(self, owner: ScriptedConversations, response: str | Exception) -> None:
        self._owner = owner
        self._response = response

    def run(self, prompt: str, *, output_schema: dict[str, Any]) -> Turn:
        self._owner.prompts.append(prompt)
        self._owner.schemas.append(output_schema)
        if isinstance(self._response, Exception):
            raise self._response
        response_id = f"resp_{len(self._owner.prompts)}"
        return Turn(final_response=self._response, response_id=response_id)


class ScriptedConversations:
    """Conversation factory that hands out one scripted response per conversation."""

    def __init__(self, responses: list[str | Exception]) -> None:
        self._responses = list(responses)
        self.opened: list[tuple[str, Path]] = []
        self.prompts: list[str] = []
        self.schemas: list[dict[str, Any]] = []
        self.closed = 0

    @contextmanager
    def open_conversation(
        self, *, model: str, working_directory: Path
    ) -> Iterator[_ScriptedConversation]:
        if not self._responses:
            raise AssertionError("No scripted response left for a new conversation.")
        self.opened.append((model, working_directory))
        try:
            yield _ScriptedConversation(self, self._responses.pop(0))
        finally:
            self.closed += 1


@pytest.fixture
def scripted() -> Callable[..., ScriptedConversations]:
    """Return a builder for scripted conversation factories."""

    def build(*responses: str | Exception) -> ScriptedConversations:
        return ScriptedConversations(list(responses))

    return build


@pytest.fixture
def write_workflow(tmp_path: Path) -> Callable[..., Path]:
    """Return a helper that writes a workflow, its prompts, and optional context."""

    def write(
        name: str,
        config_yaml: str,
        *,
        prompts: dict[str, str] | None = None,
        context: str | None = None,
    ) -> Path:
        swiss_dir = tmp_path / ".swiss"
        (swiss_dir / "flows").mkdir(parents=True, exist_ok=True)
        (swiss_dir / "prompts").mkdir(parents=True, exist_ok=True)
        (swiss_dir / "flows" / f"{name}.yaml").write_text(config_yaml, encoding="utf-8")
        for step_name, text in (prompts or {}).items():
            (swiss_dir / "prompts" / f"{step_name}.md").write_text(text, encoding="utf-8")
        if context is not None:
            (swiss_dir / "contexts").mkdir(parents=True, exist_ok=True)
            (swiss_dir / "contexts" / f"{name}.md").write_text(context, encoding="utf-8")
        return tmp_path

    return write
