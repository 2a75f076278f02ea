"""Async HTTP client for the Copilot chat API; chat calls always stream."""

import json
import logging
import uuid
from typing import Any, AsyncGenerator, Dict, List, Optional

import httpx

from .aliases import AliasRegistry, default_registry
from .config import Settings
from .credentials import COPILOT_CHAT_VERSION, Credential, CredentialStore
from .errors import UpstreamConnectionError, UpstreamHTTPError, UpstreamUnauthorized
from .openai_models import ChatCompletionsRequest
from .refresh import RefreshCoordinator
from .streaming import ServerSentEvent, iter_sse_events

logger = logging.getLogger(__name__)


def build_http_client(settings: Settings) -> httpx.AsyncClient:
    # Infinite read timeout for SSE, bounded connect/write/pool timeouts
    return httpx.AsyncClient(
        timeout=httpx.Timeout(
            connect=settings.UPSTREAM_TIMEOUT,
            read=None,
            write=settings.UPSTREAM_TIMEOUT,
            pool=settings.UPSTREAM_TIMEOUT,
        ),
    )


class CopilotClient:
    """Relay to the Copilot chat-completions and models endpoints."""

    def __init__(
        self,
        settings: Settings,
        credentials: CredentialStore,
        coordinator: RefreshCoordinator,
        client: Optional[httpx.AsyncClient] = None,
        aliases: AliasRegistry = default_registry,
    ):
        self.settings = settings
        self.credentials = credentials
        self.coordinator = coordinator
        self.aliases = aliases
        self.client = client or build_http_client(settings)

    def base_url(self, credential: Credential) -> str:
        return credential.api_base or self.settings.copilot_base_url

    def _headers(self, credential: Credential, vision: bool = False) -> Dict[str, str]:
        headers = {
            "Authorization": f"Bearer {credential.token}",
            "content-type": "application/json",
            "copilot-integration-id": "vscode-chat",
            "editor-version": f"vscode/{self.settings.VSCODE_VERSION}",
            "editor-plugin-version": f"copilot-chat/{COPILOT_CHAT_VERSION}",
            "user-agent": f"GitHubCopilotChat/{COPILOT_CHAT_VERSION}",
            "openai-intent": "conversation-panel",
            "x-github-api-version": "2025-04-01",
            "x-request-id": str(uuid.uuid4()),
            "x-vscode-user-agent-library-version": "electron-fetch",
        }
        if vision:
            headers["copilot-vision-request"] = "true"
        return headers

    def build_payload(self, body: ChatCompletionsRequest) -> Dict[str, Any]:
        """Client payload as sent, with a canonical model and streaming forced on."""
        payload = body.model_dump(exclude_unset=True)
        payload["model"] = self.aliases.normalize(body.model)
        payload["stream"] = True
        return payload

    async def _send(
        self,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None,
        vision: bool = False,
        extra_headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        """
        One attempt against the upstream. The credential is read per attempt so a
        retry after refresh uses the new token. Error responses come back fully read.
        """
        credential = self.credentials.require()
        headers = {**self._headers(credential, vision), **(extra_headers or {})}
        url = f"{self.base_url(credential)}{path}"

        if logger.isEnabledFor(logging.DEBUG):
            # Redact sensitive headers for logging
            safe_headers = {k: ("****" if k.lower() == "authorization" else v) for k, v in headers.items()}
            logger.debug("%s %s - headers=%s", method, url, safe_headers)

        request = self.client.build_request(method, url, json=payload, headers=headers)
        try:
            response = await self.client.send(request, stream=True)
        except httpx.RequestError as e:
            raise UpstreamConnectionError(f"Network error calling upstream: {str(e)}")

        if not response.is_success:
            try:
                await response.aread()
            finally:
                await response.aclose()
        return response

    @staticmethod
    def _error_from(response: httpx.Response, message: str) -> UpstreamHTTPError:
        body = response.text
        if response.status_code == 401:
            return UpstreamUnauthorized(message, body)
        return UpstreamHTTPError(message, response.status_code, body)

    async def create_chat_completions_stream(
        self, body: ChatCompletionsRequest
    ) -> AsyncGenerator[ServerSentEvent, None]:
        """
        Start a streaming chat completion upstream and return its events.

        Streams even when the client wants one JSON response: long-held
        non-streaming upstream connections get dropped by intermediaries.
        Raises before returning if the upstream rejects the call.
        """
        payload = self.build_payload(body)
        vision = body.has_image()
        initiator = "agent" if body.is_agent_call() else "user"

        logger.info(
            "Sending chat completion upstream - model=%s normalized=%s initiator=%s vision=%s",
            body.model,
            payload["model"],
            initiator,
            vision,
        )

        response = await self.coordinator.run(
            lambda: self._send(
                "POST",
                "/chat/completions",
                payload=payload,
                vision=vision,
                extra_headers={"X-Initiator": initiator},
            )
        )

        if not response.is_success:
            logger.error("Failed to create chat completions: status=%s", response.status_code)
            raise self._error_from(response, "Failed to create chat completions")

        return self._iter_events(response)

    async def _iter_events(self, response: httpx.Response) -> AsyncGenerator[ServerSentEvent, None]:
        response.encoding = "utf-8"
        try:
            async for event in iter_sse_events(response.aiter_lines()):
                yield event
        except httpx.RequestError as e:
            raise UpstreamConnectionError(f"Upstream stream interrupted: {str(e)}")
        finally:
            await response.aclose()

    async def get_models(self) -> List[Dict[str, Any]]:
        """Fetch the upstream model catalog entries."""
        response = await self.coordinator.run(lambda: self._send("GET", "/models"))
        if not response.is_success:
            logger.error("Failed to get models: status=%s", response.status_code)
            raise self._error_from(response, "Failed to get models")

        try:
            await response.aread()
        finally:
            await response.aclose()

        try:
            body = response.json()
        except json.JSONDecodeError as e:
            raise UpstreamHTTPError(f"Invalid models response: {e}", 502, response.text)

        models = body.get("data") if isinstance(body, dict) else None
        if not isinstance(models, list):
            raise UpstreamHTTPError("Models response has no data list", 502, response.text)
        return [m for m in models if isinstance(m, dict) and m.get("id")]

    async def close(self):
        """Close underlying HTTP client."""
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
