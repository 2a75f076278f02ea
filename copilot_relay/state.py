"""Shared handles injected into every request: credential, catalog, clients, admission."""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx
from fastapi import Request
from fastapi.responses import JSONResponse

from .admission import AdmissionControl
from .aliases import AliasRegistry, default_registry
from .config import Settings, check_gateway_api_key
from .copilot_client import CopilotClient, build_http_client
from .credentials import CredentialStore, GitHubCopilotTokenProvider
from .errors import error_response
from .refresh import RefreshCoordinator, TokenSource, refresh_credential

logger = logging.getLogger(__name__)


class CatalogStore:
    """Snapshot of the upstream model catalog, replaced as a whole."""

    def __init__(self, models: Optional[List[Dict[str, Any]]] = None):
        self._models = tuple(models) if models is not None else None

    def get(self) -> Optional[List[Dict[str, Any]]]:
        return list(self._models) if self._models is not None else None

    def replace(self, models: List[Dict[str, Any]]) -> None:
        self._models = tuple(models)

    def find(self, model_id: str) -> Optional[Dict[str, Any]]:
        for model in self._models or ():
            if model.get("id") == model_id:
                return model
        return None


@dataclass
class RelayState:
    settings: Settings
    credentials: CredentialStore
    catalog: CatalogStore
    token_source: TokenSource
    copilot: CopilotClient
    admission: AdmissionControl
    aliases: AliasRegistry = default_registry

    async def refresh_credential(self) -> bool:
        return await refresh_credential(self.credentials, self.token_source)

    async def cache_models(self) -> List[Dict[str, Any]]:
        models = await self.copilot.get_models()
        self.catalog.replace(models)
        logger.info("Cached %d upstream models", len(models))
        return models

    async def close(self) -> None:
        # The token provider shares this client
        await self.copilot.close()


def build_relay_state(
    settings: Settings,
    http_client: Optional[httpx.AsyncClient] = None,
    token_source: Optional[TokenSource] = None,
    credentials: Optional[CredentialStore] = None,
    admission: Optional[AdmissionControl] = None,
    aliases: AliasRegistry = default_registry,
) -> RelayState:
    """Wire the relay components together around one shared HTTP client."""
    client = http_client or build_http_client(settings)
    credentials = credentials or CredentialStore()
    source = token_source or GitHubCopilotTokenProvider(settings, client)
    coordinator = RefreshCoordinator(lambda: refresh_credential(credentials, source))
    return RelayState(
        settings=settings,
        credentials=credentials,
        catalog=CatalogStore(),
        token_source=source,
        copilot=CopilotClient(settings, credentials, coordinator, client=client, aliases=aliases),
        admission=admission or AdmissionControl.from_settings(settings),
        aliases=aliases,
    )


def get_relay_state(request: Request) -> RelayState:
    return request.app.state.relay


def auth_guard(request: Request, relay: RelayState) -> Optional[JSONResponse]:
    """401 response when a gateway key is configured and the caller did not present it."""
    if not check_gateway_api_key(request.headers.get("authorization"), relay.settings):
        return error_response("Invalid or missing API key", "authentication_error", 401)
    return None
