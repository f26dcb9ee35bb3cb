"""Unit tests for the reasoning service client."""

from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path

import httpx
import pytest
from swiss_review.reasoning_client import (
    API_KEY_ENV_VAR,
    BASE_URL_ENV_VAR,
    DEFAULT_BASE_URL,
    DEFAULT_TIMEOUT_SECONDS,
    TIMEOUT_ENV_VAR,
    ReasoningApiError,
    ReasoningAuthError,
    ReasoningClient,
    ReasoningSettings,
    ReasoningSettingsError,
    ServiceUnavailableError,
    build_reasoning_client,
    extract_output_text,
)
from swiss_review.schema import REVIEW_OUTPUT_SCHEMA

BASE_URL = "https://reasoning.test/v1"


def make_client(handler: Callable[[httpx.Request], httpx.Response]) -> ReasoningClient:
    """Create a reasoning client backed by mock transport."""
    transport = httpx.MockTransport(handler)
    return ReasoningClient(httpx.Client(base_url=BASE_URL, transport=transport))


def make_response_payload(text: str, *, status: str = "completed") -> dict[str, object]:
    """Build a minimal Responses API payload."""
    return {
        "id": "resp_123",
        "status": status,
        "output": [
            {"type": "reasoning", "summary": []},
            {
                "type": "message",
                "role": "assistant",
                "content": [{"type": "output_text", "text": text, "annotations": []}],
            },
        ],
    }


class RecordingHandler:
    """Mock transport handler that records requests and serves scripted responses."""

    def __init__(self, response_payload: dict[str, object] | None = None) -> None:
        self.requests: list[httpx.Request] = []
        self.response_payload = response_payload or make_response_payload('{"results": []}')

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.method == "POST" and request.url.path == "/v1/conversations":
            return httpx.Response(status_code=200, json={"id": "conv_1"})
        if request.method == "POST" and request.url.path == "/v1/responses":
            return httpx.Response(status_code=200, json=self.response_payload)
        if request.method == "DELETE" and request.url.path == "/v1/conversations/conv_1":
            return httpx.Response(status_code=200, json={"id": "conv_1", "deleted": True})
        raise AssertionError(f"Unexpected request {request.method} {request.url}")

    def calls(self) -> list[tuple[str, str]]:
        return [(request.method, request.url.path) for request in self.requests]


@pytest.mark.unit
def test_conversation_runs_once_and_is_deleted(tmp_path: Path) -> None:
    handler = RecordingHandler()

    with make_client(handler) as client:
        with client.open_conversation(model="m", working_directory=tmp_path) as conversation:
            turn = conversation.run("Review this.", output_schema=REVIEW_OUTPUT_SCHEMA)

    assert turn.final_response == '{"results": []}'
    assert turn.response_id == "resp_123"
    assert handler.calls() == [
        ("POST", "/v1/conversations"),
        ("POST", "/v1/responses"),
        ("DELETE", "/v1/conversations/conv_1"),
    ]


@pytest.mark.unit
def test_conversation_request_carries_schema_and_working_directory(tmp_path: Path) -> None:
    handler = RecordingHandler()

    with make_client(handler) as client:
        with client.open_conversation(model="m-large", working_directory=tmp_path) as conversation:
            conversation.run("Review this.", output_schema=REVIEW_OUTPUT_SCHEMA)

    create_body = json.loads(handler.requests[0].content)
    response_body = json.loads(handler.requests[1].content)
    assert create_body["metadata"]["working_directory"] == str(tmp_path)
    assert response_body["model"] == "m-large"
    assert response_body["conversation"] == "conv_1"
    assert response_body["input"][-1] == {"role": "user", "content": "Review this."}
    assert str(tmp_path) in response_body["input"][0]["content"]
    assert response_body["text"]["format"]["type"] == "json_schema"
    assert response_body["text"]["format"]["strict"] is True
    assert response_body["text"]["format"]["schema"] == REVIEW_OUTPUT_SCHEMA


@pytest.mark.unit
def test_conversation_rejects_second_prompt(tmp_path: Path) -> None:
    handler = RecordingHandler()

    with make_client(handler) as client:
        with client.open_conversation(model="m", working_directory=tmp_path) as conversation:
            conversation.run("first", output_schema=REVIEW_OUTPUT_SCHEMA)
            with pytest.raises(RuntimeError):
                conversation.run("second", output_schema=REVIEW_OUTPUT_SCHEMA)

    assert handler.calls().count(("POST", "/v1/responses")) == 1


@pytest.mark.unit
def test_conversation_is_deleted_when_turn_fails(tmp_path: Path) -> None:
    handler = RecordingHandler(make_response_payload("", status="failed"))

    with make_client(handler) as client:
        with pytest.raises(ServiceUnavailableError, match="did not complete"):
            with client.open_conversation(model="m", working_directory=tmp_path) as conversation:
                conversation.run("Review this.", output_schema=REVIEW_OUTPUT_SCHEMA)

    assert handler.calls()[-1] == ("DELETE", "/v1/conversations/conv_1")


@pytest.mark.unit
def test_http_error_status_raises_api_error(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code=503, json={"error": {"message": "overloaded"}})

    with make_client(handler) as client, pytest.raises(ReasoningApiError) as excinfo:
        with client.open_conversation(model="m", working_directory=tmp_path):
            pass

    assert excinfo.value.status_code == 503
    assert excinfo.value.endpoint == "/conversations"
    assert isinstance(excinfo.value, ServiceUnavailableError)


@pytest.mark.unit
def test_transport_error_is_not_retried(tmp_path: Path) -> None:
    attempts: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        raise httpx.ConnectError("connection refused", request=request)

    with make_client(handler) as client, pytest.raises(ServiceUnavailableError):
        with client.open_conversation(model="m", working_directory=tmp_path):
            pass

    assert len(attempts) == 1


@pytest.mark.unit
def test_missing_conversation_id_is_rejected(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code=200, json={"object": "conversation"})

    with make_client(handler) as client, pytest.raises(ServiceUnavailableError):
        with client.open_conversation(model="m", working_directory=tmp_path):
            pass


@pytest.mark.unit
def test_non_json_body_raises_service_unavailable(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code=200, text="<html>bad gateway</html>")

    with make_client(handler) as client, pytest.raises(ServiceUnavailableError, match="non-JSON"):
        with client.open_conversation(model="m", working_directory=tmp_path):
            pass


@pytest.mark.unit
def test_non_json_turn_body_still_deletes_conversation(tmp_path: Path) -> None:
    handler = RecordingHandler()

    def gateway_handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/v1/responses":
            handler.requests.append(request)
            return httpx.Response(status_code=200, text="<html>bad gateway</html>")
        return handler(request)

    with make_client(gateway_handler) as client, pytest.raises(ServiceUnavailableError):
        with client.open_conversation(model="m", working_directory=tmp_path) as conversation:
            conversation.run("Review this.", output_schema=REVIEW_OUTPUT_SCHEMA)

    assert handler.calls() == [
        ("POST", "/v1/conversations"),
        ("POST", "/v1/responses"),
        ("DELETE", "/v1/conversations/conv_1"),
    ]


@pytest.mark.unit
def test_extract_output_text_joins_message_parts() -> None:
    payload = {
        "output": [
            {"type": "reasoning"},
            {
                "type": "message",
                "content": [
                    {"type": "output_text", "text": '{"results": '},
                    {"type": "refusal", "refusal": "no"},
                    {"type": "output_text", "text": "[]}"},
                ],
            },
        ]
    }

    assert extract_output_text(payload) == '{"results": []}'


@pytest.mark.unit
def test_settings_from_env_requires_api_key(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv(API_KEY_ENV_VAR, raising=False)

    with pytest.raises(ReasoningAuthError):
        ReasoningSettings.from_env()


@pytest.mark.unit
def test_settings_from_env_reads_overrides(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv(API_KEY_ENV_VAR, "sk-test")
    monkeypatch.setenv(BASE_URL_ENV_VAR, BASE_URL)
    monkeypatch.setenv(TIMEOUT_ENV_VAR, "30")

    settings = ReasoningSettings.from_env()

    assert settings == ReasoningSettings(api_key="sk-test", base_url=BASE_URL, timeout_seconds=30.0)


@pytest.mark.unit
def test_settings_from_env_defaults(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv(API_KEY_ENV_VAR, "sk-test")
    monkeypatch.delenv(BASE_URL_ENV_VAR, raising=False)
    monkeypatch.delenv(TIMEOUT_ENV_VAR, raising=False)

    settings = ReasoningSettings.from_env()

    assert settings.base_url == DEFAULT_BASE_URL
    assert settings.timeout_seconds == DEFAULT_TIMEOUT_SECONDS


@pytest.mark.unit
def test_settings_from_env_rejects_bad_timeout(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv(API_KEY_ENV_VAR, "sk-test")
    monkeypatch.setenv(TIMEOUT_ENV_VAR, "soon")

    with pytest.raises(ReasoningSettingsError, match=TIMEOUT_ENV_VAR):
        ReasoningSettings.from_env()


@pytest.mark.unit
def test_build_reasoning_client_sets_auth_header() -> None:
    client = build_reasoning_client(ReasoningSettings(api_key="sk-test", base_url=BASE_URL))

    with client:
        assert client._client.headers["Authorization"] == "Bearer sk-test"
        assert str(client._client.base_url) == f"{BASE_URL}/"
