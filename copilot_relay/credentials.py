"""Upstream credential: the Copilot bearer token, where it is kept and how it is obtained."""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from .config import Settings
from .errors import CredentialMissing, RefreshFailed

logger = logging.getLogger(__name__)

COPILOT_CHAT_VERSION = "0.26.7"


@dataclass(frozen=True)
class Credential:
    """Bearer token plus the endpoint metadata issued with it."""

    token: str
    api_base: Optional[str] = None
    expires_at: Optional[int] = None
    refresh_in: Optional[int] = None

    @classmethod
    def from_token_response(cls, body: Dict[str, Any]) -> "Credential":
        token = body.get("token")
        if not isinstance(token, str) or not token:
            raise RefreshFailed("Token response did not contain a token")
        endpoints = body.get("endpoints")
        api_base = endpoints.get("api") if isinstance(endpoints, dict) else None
        return cls(
            token=token,
            api_base=api_base.rstrip("/") if isinstance(api_base, str) and api_base else None,
            expires_at=body.get("expires_at"),
            refresh_in=body.get("refresh_in"),
        )


class CredentialStore:
    """
    Process-wide holder of the current credential.

    The credential is only ever replaced as a whole, so a reader sees either
    the previous or the new value.
    """

    def __init__(self, credential: Optional[Credential] = None):
        self._credential = credential

    def get(self) -> Optional[Credential]:
        return self._credential

    def require(self) -> Credential:
        credential = self._credential
        if credential is None:
            raise CredentialMissing("Copilot token not found")
        return credential

    def replace(self, credential: Credential) -> None:
        self._credential = credential


class GitHubCopilotTokenProvider:
    """Exchanges a GitHub token for a short-lived Copilot token."""

    def __init__(self, settings: Settings, client: httpx.AsyncClient):
        self.settings = settings
        self.client = client
        self.url = f"{settings.GITHUB_API_BASE_URL.rstrip('/')}/copilot_internal/v2/token"

    def _headers(self) -> Dict[str, str]:
        return {
            "authorization": f"token {self.settings.GH_TOKEN}",
            "accept": "application/json",
            "content-type": "application/json",
            "editor-version": f"vscode/{self.settings.VSCODE_VERSION}",
            "editor-plugin-version": f"copilot-chat/{COPILOT_CHAT_VERSION}",
            "user-agent": f"GitHubCopilotChat/{COPILOT_CHAT_VERSION}",
            "x-github-api-version": "2025-04-01",
        }

    async def fetch(self) -> Credential:
        """Fetch a new credential; any failure raises RefreshFailed."""
        if not self.settings.GH_TOKEN:
            raise RefreshFailed("GH_TOKEN is not configured")

        logger.debug("Requesting Copilot token from %s", self.url)
        try:
            resp = await self.client.get(self.url, headers=self._headers())
        except httpx.RequestError as e:
            raise RefreshFailed(f"Network error fetching Copilot token: {str(e)}")

        if not resp.is_success:
            raise RefreshFailed(f"Copilot token request failed: {resp.status_code}", resp.status_code)

        try:
            body = resp.json()
        except ValueError:
            raise RefreshFailed("Copilot token response was not valid JSON")
        if not isinstance(body, dict):
            raise RefreshFailed("Copilot token response was not an object")

        credential = Credential.from_token_response(body)
        logger.info("Fetched Copilot token (refresh_in=%s)", credential.refresh_in)
        return credential
