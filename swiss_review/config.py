"""Workflow, prompt, and context stores backed by the `.swiss` directory."""

from __future__ import annotations

import logging
import re
from pathlib import Path

import yaml
from pydantic import ValidationError

from swiss_review.schema import NAME_PATTERN, WorkflowConfig

logger = logging.getLogger(__name__)

SWISS_DIR_NAME = ".swiss"
WORKFLOW_NAME_PATTERN = re.compile(NAME_PATTERN)
DEFAULT_WORKFLOW_NAME = "default"


class WorkflowNameError(ValueError):
    """Raised when a workflow or prompt name has invalid characters."""


class ConfigError(RuntimeError):
    """Base class for store lookup failures."""


class ConfigNotFoundError(ConfigError):
    """Raised when a named workflow has no definition file."""

    def __init__(self, message: str, *, workflow: str, available: tuple[str, ...]) -> None:
        super().__init__(message)
        self.workflow = workflow
        self.available = available


class ConfigMalformedError(ConfigError):
    """Raised when a workflow definition exists but fails validation."""


class WorkflowExistsError(ConfigError):
    """Raised when a rename target already has a definition."""


class PromptNotFoundError(ConfigError):
    """Raised when a step has no prompt file."""


class ContextMissingError(ConfigError):
    """Raised when a required workflow context file does not exist."""


class ContextEmptyError(ConfigError):
    """Raised when a workflow context is blank where content is required."""


def validate_workflow_name(name: str) -> str:
    """Validate a workflow or prompt name used as a file stem."""
    if not WORKFLOW_NAME_PATTERN.fullmatch(name):
        raise WorkflowNameError(
            f"Invalid name '{name}'. Use only letters, digits, hyphens, and underscores."
        )
    return name


def flows_dir(base_dir: Path) -> Path:
    return base_dir / SWISS_DIR_NAME / "flows"


def prompts_dir(base_dir: Path) -> Path:
    return base_dir / SWISS_DIR_NAME / "prompts"


def contexts_dir(base_dir: Path) -> Path:
    return base_dir / SWISS_DIR_NAME / "contexts"


def workflow_config_path(base_dir: Path, name: str) -> Path:
    return flows_dir(base_dir) / f"{validate_workflow_name(name)}.yaml"


def workflow_context_path(base_dir: Path, name: str) -> Path:
    return contexts_dir(base_dir) / f"{validate_workflow_name(name)}.md"


def prompt_path(base_dir: Path, step_name: str) -> Path:
    return prompts_dir(base_dir) / f"{validate_workflow_name(step_name)}.md"


def _display_path(base_dir: Path, path: Path) -> str:
    """Render a store path relative to the reviewed directory."""
    try:
        return path.relative_to(base_dir).as_posix()
    except ValueError:
        return path.as_posix()


def list_workflows(base_dir: Path) -> list[str]:
    """Return sorted workflow names, or an empty list when none are defined."""
    directory = flows_dir(base_dir)
    if not directory.is_dir():
        return []
    return sorted(path.stem for path in directory.glob("*.yaml") if path.is_file())


def load_workflow_config(base_dir: Path, name: str) -> WorkflowConfig:
    """Load and validate one workflow definition."""
    path = workflow_config_path(base_dir, name)
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError as error:
        available = tuple(list_workflows(base_dir))
        raise ConfigNotFoundError(
            f"Workflow '{name}' is not defined: {_display_path(base_dir, path)} does not exist.",
            workflow=name,
            available=available,
        ) from error

    try:
        payload = yaml.safe_load(raw)
    except yaml.YAMLError as error:
        logger.warning("Workflow %s is not valid YAML: %s", name, error)
        raise ConfigMalformedError(
            f"Workflow '{name}' is not valid YAML ({_display_path(base_dir, path)})."
        ) from error

    if not isinstance(payload, dict):
        raise ConfigMalformedError(
            f"Workflow '{name}' must be a mapping with 'model' and 'reviews' keys."
        )

    try:
        return WorkflowConfig.model_validate(payload)
    except ValidationError as error:
        logger.warning("Workflow %s failed validation: %s", name, error)
        first = error.errors()[0]
        location = ".".join(str(part) for part in first["loc"])
        raise ConfigMalformedError(
            f"Workflow '{name}' is invalid at '{location}': {first['msg']}."
        ) from error


def save_workflow_config(base_dir: Path, name: str, config: WorkflowConfig) -> Path:
    """Write a workflow definition using its file keys."""
    path = workflow_config_path(base_dir, name)
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = config.model_dump(by_alias=True, exclude_none=True, mode="json")
    path.write_text(yaml.safe_dump(payload, sort_keys=False, allow_unicode=True), encoding="utf-8")
    return path


def rename_workflow(base_dir: Path, old_name: str, new_name: str) -> None:
    """Rename a workflow definition and its context file, if any."""
    source = workflow_config_path(base_dir, old_name)
    target = workflow_config_path(base_dir, new_name)
    if not source.is_file():
        raise ConfigNotFoundError(
            f"Workflow '{old_name}' is not defined.",
            workflow=old_name,
            available=tuple(list_workflows(base_dir)),
        )
    if target.exists():
        raise WorkflowExistsError(f"Workflow '{new_name}' already exists.")

    source.rename(target)
    source_context = workflow_context_path(base_dir, old_name)
    if source_context.is_file():
        target_context = workflow_context_path(base_dir, new_name)
        target_context.parent.mkdir(parents=True, exist_ok=True)
        source_context.rename(target_context)


def load_prompt(base_dir: Path, step_name: str) -> str:
    """Load the instruction text for one review step."""
    path = prompt_path(base_dir, step_name)
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError as error:
        raise PromptNotFoundError(
            f"Prompt for step '{step_name}' not found: {_display_path(base_dir, path)}."
        ) from error


def list_prompts(base_dir: Path) -> dict[str, str]:
    """Return prompt texts keyed by step name."""
    directory = prompts_dir(base_dir)
    if not directory.is_dir():
        return {}
    return {
        path.stem: path.read_text(encoding="utf-8")
        for path in sorted(directory.glob("*.md"))
        if path.is_file()
    }


def save_prompt(base_dir: Path, step_name: str, content: str) -> Path:
    path = prompt_path(base_dir, step_name)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


def load_workflow_context(base_dir: Path, name: str, *, required: bool = False) -> str | None:
    """Load shared context for a workflow.

    Missing or blank context means "no shared context" unless ``required`` is set.
    """
    path = workflow_context_path(base_dir, name)
    try:
        content = path.read_text(encoding="utf-8")
    except FileNotFoundError as error:
        if required:
            raise ContextMissingError(
                f"Workflow context not found: {_display_path(base_dir, path)}."
            ) from error
        return None

    if not content.strip():
        if required:
            raise ContextEmptyError(f"Workflow context is empty: {_display_path(base_dir, path)}.")
        return None
    return content


def save_workflow_context(base_dir: Path, name: str, content: str) -> Path:
    """Write shared context for a workflow; blank content is rejected."""
    if not content.strip():
        raise ContextEmptyError(f"Context for workflow '{name}' cannot be empty.")
    path = workflow_context_path(base_dir, name)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path
