"""Pytest configuration and fixtures for testing."""

from __future__ import annotations

import json
from typing import Any, Callable, Iterable

import httpx
import pytest

from copilot_relay.admission import AdmissionControl, RateLimiter
from copilot_relay.config import Settings
from copilot_relay.credentials import Credential, CredentialStore
from copilot_relay.errors import RefreshFailed
from copilot_relay.state import RelayState, build_relay_state


# =============================================================================
# Upstream Builders
# =============================================================================


def build_chunk(
    content: str | None = None,
    finish_reason: str | None = None,
    *,
    chunk_id: str = "chatcmpl-1",
    model: str = "claude-opus-4.6-1m",
    created: int = 1700000000,
    tool_calls: list[dict[str, Any]] | None = None,
    usage: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Build one chat.completion.chunk payload."""
    delta: dict[str, Any] = {}
    if content is not None:
        delta["content"] = content
    if tool_calls is not None:
        delta["tool_calls"] = tool_calls

    chunk: dict[str, Any] = {
        "id": chunk_id,
        "object": "chat.completion.chunk",
        "created": created,
        "model": model,
        "choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}],
    }
    if usage is not None:
        chunk["usage"] = usage
    return chunk


def sse_body(chunks: Iterable[dict[str, Any] | str], done: bool = True) -> bytes:
    """Encode chunks as an upstream SSE body; strings are sent as raw data."""
    parts = []
    for chunk in chunks:
        data = chunk if isinstance(chunk, str) else json.dumps(chunk)
        parts.append(f"data: {data}\n\n")
    if done:
        parts.append("data: [DONE]\n\n")
    return "".join(parts).encode("utf-8")


def sse_response(chunks: Iterable[dict[str, Any] | str], done: bool = True) -> httpx.Response:
    return httpx.Response(
        200,
        content=sse_body(chunks, done=done),
        headers={"content-type": "text/event-stream"},
    )


class InterruptedStream(httpx.AsyncByteStream):
    """Response body that sends some bytes, then fails like a dropped connection."""

    def __init__(self, prefix: bytes) -> None:
        self.prefix = prefix

    async def __aiter__(self):
        yield self.prefix
        raise httpx.ReadError("connection reset by peer")

    async def aclose(self) -> None:
        pass


def interrupted_sse_response(chunks: Iterable[dict[str, Any] | str]) -> httpx.Response:
    return httpx.Response(
        200,
        stream=InterruptedStream(sse_body(chunks, done=False)),
        headers={"content-type": "text/event-stream"},
    )


class FakeCopilot:
    """Scripted upstream: records requests and answers from per-path queues."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.responses: dict[str, list[httpx.Response]] = {}

    def enqueue(self, path: str, response: httpx.Response) -> None:
        self.responses.setdefault(path, []).append(response)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self.responses.get(request.url.path) or []
        if not queue:
            return httpx.Response(404, json={"error": {"message": f"no response for {request.url.path}"}})
        return queue.pop(0)

    def json_bodies(self, path: str) -> list[dict[str, Any]]:
        return [json.loads(r.content) for r in self.requests if r.url.path == path]


class FakeTokenSource:
    """Hands out tokens in order; an exception in the list is raised instead."""

    def __init__(self, tokens: list[str | Exception] | None = None) -> None:
        self.tokens = list(tokens or [])
        self.calls = 0

    async def fetch(self) -> Credential:
        self.calls += 1
        if not self.tokens:
            raise RefreshFailed("no token available")
        item = self.tokens.pop(0)
        if isinstance(item, Exception):
            raise item
        return Credential(token=item)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def offline_token_counter(monkeypatch):
    """Keep tiktoken from downloading encodings; the counter falls back to approximation."""

    def no_encoding(name: str):
        raise RuntimeError(f"encoding {name} unavailable in tests")

    monkeypatch.setattr("copilot_relay.token_counter.tiktoken.get_encoding", no_encoding)
    monkeypatch.setattr("copilot_relay.token_counter._counter", None)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        GH_TOKEN="gh-test",
        ACCOUNT_TYPE="individual",
        RATE_LIMIT_SECONDS=None,
        MANUAL_APPROVE=False,
        RELAY_API_KEY=None,
    )


@pytest.fixture
def upstream() -> FakeCopilot:
    return FakeCopilot()


@pytest.fixture
def token_source() -> FakeTokenSource:
    return FakeTokenSource(["tok-2"])


@pytest.fixture
def make_relay(
    settings: Settings,
    upstream: FakeCopilot,
    token_source: FakeTokenSource,
) -> Callable[..., RelayState]:
    """Factory for a RelayState wired to the fake upstream."""

    def _make(token: str | None = "tok-1", admission: AdmissionControl | None = None) -> RelayState:
        client = httpx.AsyncClient(transport=httpx.MockTransport(upstream.handler))
        return build_relay_state(
            settings,
            http_client=client,
            token_source=token_source,
            credentials=CredentialStore(Credential(token=token) if token else None),
            admission=admission or AdmissionControl(RateLimiter(None)),
        )

    return _make
