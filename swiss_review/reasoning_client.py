"""Reasoning service client with single-use conversations."""

from __future__ import annotations

import logging
import os
from collections.abc import Iterator
from contextlib import AbstractContextManager, contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

import httpx
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_TIMEOUT_SECONDS = 600.0
API_KEY_ENV_VAR = "OPENAI_API_KEY"
BASE_URL_ENV_VAR = "OPENAI_BASE_URL"
TIMEOUT_ENV_VAR = "SWISS_TIMEOUT_SECONDS"
OUTPUT_FORMAT_NAME = "review_results"


class ReasoningAuthError(RuntimeError):
    """Raised when reasoning service credentials are missing."""


class ReasoningSettingsError(ValueError):
    """Raised when reasoning service settings in the environment are invalid."""


class ServiceUnavailableError(RuntimeError):
    """Raised when the reasoning service cannot be reached or fails a turn."""


class ReasoningApiError(ServiceUnavailableError):
    """Raised when a reasoning service request returns a non-success status."""

    def __init__(self, message: str, *, status_code: int, endpoint: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.endpoint = endpoint


@dataclass(frozen=True, slots=True)
class ReasoningSettings:
    """Connection settings for the reasoning service."""

    api_key: str
    base_url: str = DEFAULT_BASE_URL
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS

    @classmethod
    def from_env(cls) -> ReasoningSettings:
        """Read settings from the environment and fail fast if the key is missing."""
        load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)

        api_key = os.getenv(API_KEY_ENV_VAR)
        if not api_key:
            raise ReasoningAuthError(f"Missing API key. Set {API_KEY_ENV_VAR}.")

        timeout_value = os.getenv(TIMEOUT_ENV_VAR)
        timeout_seconds = DEFAULT_TIMEOUT_SECONDS
        if timeout_value is not None:
            try:
                timeout_seconds = float(timeout_value)
            except ValueError as error:
                raise ReasoningSettingsError(
                    f"{TIMEOUT_ENV_VAR} must be a number, got '{timeout_value}'."
                ) from error

        return cls(
            api_key=api_key,
            base_url=os.getenv(BASE_URL_ENV_VAR) or DEFAULT_BASE_URL,
            timeout_seconds=timeout_seconds,
        )


@dataclass(frozen=True, slots=True)
class Turn:
    """One completed turn of a conversation."""

    final_response: str
    response_id: str


class ReviewConversation(Protocol):
    """Single-use conversation that answers one prompt."""

    def run(self, prompt: str, *, output_schema: dict[str, Any]) -> Turn:
        """Send the prompt and wait for the finished turn."""


class ConversationFactory(Protocol):
    """Source of fresh conversations scoped to a working directory."""

    def open_conversation(
        self, *, model: str, working_directory: Path
    ) -> AbstractContextManager[ReviewConversation]:
        """Open a new conversation that is released when the context exits."""


def _raise_http_error(response: httpx.Response, endpoint: str) -> None:
    """Raise a typed error for a non-success reasoning service response."""
    raise ReasoningApiError(
        f"Reasoning service request failed with status {response.status_code} for '{endpoint}'.",
        status_code=response.status_code,
        endpoint=endpoint,
    )


def _send(
    client: httpx.Client,
    method: str,
    endpoint: str,
    *,
    json_body: dict[str, Any] | None = None,
) -> httpx.Response:
    """Send one request, mapping transport failures to ServiceUnavailableError."""
    try:
        response = client.request(method, endpoint, json=json_body)
    except httpx.TransportError as error:
        raise ServiceUnavailableError(
            f"Reasoning service unreachable for '{endpoint}': {error}."
        ) from error
    if response.status_code >= 400:
        _raise_http_error(response, endpoint)
    return response


def _json_object(response: httpx.Response, *, endpoint: str) -> dict[str, Any]:
    """Decode a response body that must be a JSON object."""
    try:
        value = response.json()
    except ValueError as error:
        raise ServiceUnavailableError(
            f"Reasoning service returned a non-JSON body for '{endpoint}'."
        ) from error
    if not isinstance(value, dict):
        raise ServiceUnavailableError(f"Expected JSON object from '{endpoint}'.")
    return value


def extract_output_text(payload: dict[str, Any]) -> str:
    """Concatenate the output_text parts of message items in a response body."""
    parts: list[str] = []
    for item in payload.get("output") or []:
        if not isinstance(item, dict) or item.get("type") != "message":
            continue
        for content in item.get("content") or []:
            if isinstance(content, dict) and content.get("type") == "output_text":
                text = content.get("text")
                if isinstance(text, str):
                    parts.append(text)
    return "".join(parts)


class HttpConversation:
    """Remote conversation that accepts exactly one prompt."""

    def __init__(
        self,
        client: httpx.Client,
        *,
        conversation_id: str,
        model: str,
        working_directory: Path,
    ) -> None:
        self._client = client
        self.conversation_id = conversation_id
        self.model = model
        self.working_directory = working_directory
        self._used = False
        self._closed = False

    def run(self, prompt: str, *, output_schema: dict[str, Any]) -> Turn:
        """Send the prompt with a strict output schema and wait for completion."""
        if self._closed:
            raise RuntimeError("Conversation is closed.")
        if self._used:
            raise RuntimeError("Conversation already answered a prompt; open a new one.")
        self._used = True

        endpoint = "/responses"
        body = {
            "model": self.model,
            "conversation": self.conversation_id,
            "input": [
                {
                    "role": "developer",
                    "content": f"Working directory: {self.working_directory}",
                },
                {"role": "user", "content": prompt},
            ],
            "text": {
                "format": {
                    "type": "json_schema",
                    "name": OUTPUT_FORMAT_NAME,
                    "schema": output_schema,
                    "strict": True,
                }
            },
        }
        response = _send(self._client, "POST", endpoint, json_body=body)
        payload = _json_object(response, endpoint=endpoint)

        status = payload.get("status")
        if status != "completed":
            raise ServiceUnavailableError(
                f"Reasoning turn did not complete (status={status!r})."
            )
        return Turn(
            final_response=extract_output_text(payload),
            response_id=str(payload.get("id", "")),
        )

    def close(self) -> None:
        """Delete the remote conversation."""
        if self._closed:
            return
        self._closed = True
        _send(self._client, "DELETE", f"/conversations/{self.conversation_id}")
        logger.debug("Closed conversation %s", self.conversation_id)


class ReasoningClient:
    """HTTP client for the reasoning service."""

    def __init__(self, client: httpx.Client) -> None:
        self._client = client

    @contextmanager
    def open_conversation(
        self, *, model: str, working_directory: Path
    ) -> Iterator[HttpConversation]:
        """Create a remote conversation and delete it when the block exits."""
        endpoint = "/conversations"
        response = _send(
            self._client,
            "POST",
            endpoint,
            json_body={"metadata": {"working_directory": str(working_directory)}},
        )
        payload = _json_object(response, endpoint=endpoint)
        conversation_id = payload.get("id")
        if not isinstance(conversation_id, str) or not conversation_id:
            raise ServiceUnavailableError("Reasoning service returned no conversation id.")

        logger.debug("Opened conversation %s for model %s", conversation_id, model)
        conversation = HttpConversation(
            self._client,
            conversation_id=conversation_id,
            model=model,
            working_directory=working_directory,
        )
        try:
            yield conversation
        finally:
            conversation.close()

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> ReasoningClient:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # type: ignore[no-untyped-def]
        self.close()


def build_reasoning_client(
    settings: ReasoningSettings | None = None,
    *,
    trust_env: bool = True,
) -> ReasoningClient:
    """Build an authenticated reasoning service client."""
    resolved = settings or ReasoningSettings.from_env()
    headers = {
        "Authorization": f"Bearer {resolved.api_key}",
        "Content-Type": "application/json",
    }
    return ReasoningClient(
        httpx.Client(
            base_url=resolved.base_url,
            headers=headers,
            timeout=resolved.timeout_seconds,
            trust_env=trust_env,
        )
    )
