"""Tests for the credential store and GitHub token exchange."""

from __future__ import annotations

import httpx
import pytest

from copilot_relay.credentials import Credential, CredentialStore, GitHubCopilotTokenProvider
from copilot_relay.errors import CredentialMissing, RefreshFailed


def _provider(settings, handler) -> GitHubCopilotTokenProvider:
    return GitHubCopilotTokenProvider(settings, httpx.AsyncClient(transport=httpx.MockTransport(handler)))


def test_store_require_raises_when_empty():
    store = CredentialStore()
    assert store.get() is None
    with pytest.raises(CredentialMissing):
        store.require()


def test_store_replaces_whole_credential():
    store = CredentialStore(Credential(token="a", api_base="https://x"))
    store.replace(Credential(token="b"))
    assert store.require() == Credential(token="b")


@pytest.mark.asyncio
async def test_fetch_exchanges_github_token(settings):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "token": "tid=abc",
                "expires_at": 1700001800,
                "refresh_in": 1500,
                "endpoints": {"api": "https://api.individual.githubcopilot.com/"},
            },
        )

    credential = await _provider(settings, handler).fetch()

    assert credential == Credential(
        token="tid=abc",
        api_base="https://api.individual.githubcopilot.com",
        expires_at=1700001800,
        refresh_in=1500,
    )
    assert str(seen[0].url) == "https://api.github.com/copilot_internal/v2/token"
    assert seen[0].headers["authorization"] == "token gh-test"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(403, json={"message": "forbidden"}),
        httpx.Response(200, text="not json"),
        httpx.Response(200, json={"no_token": True}),
        httpx.Response(200, json=["token"]),
    ],
)
async def test_fetch_failures_raise_refresh_failed(settings, response):
    with pytest.raises(RefreshFailed):
        await _provider(settings, lambda request: response).fetch()


@pytest.mark.asyncio
async def test_fetch_network_error_raises_refresh_failed(settings):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    with pytest.raises(RefreshFailed):
        await _provider(settings, handler).fetch()


@pytest.mark.asyncio
async def test_fetch_without_github_token(settings):
    settings.GH_TOKEN = None
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={"token": "x"})

    with pytest.raises(RefreshFailed):
        await _provider(settings, handler).fetch()
    assert calls == []
