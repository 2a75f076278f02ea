import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from .errors import RefreshFailed
from .state import RelayState, auth_guard, get_relay_state

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/token")


@router.get("")
async def get_token(request: Request, relay: RelayState = Depends(get_relay_state)):
    if (resp := auth_guard(request, relay)) is not None:
        return resp

    credential = relay.credentials.get()
    return {"token": credential.token if credential else None}


@router.post("/refresh")
async def refresh_token(request: Request, relay: RelayState = Depends(get_relay_state)):
    """Fetch a new Copilot token now and replace the stored one."""
    if (resp := auth_guard(request, relay)) is not None:
        return resp

    try:
        credential = await relay.token_source.fetch()
    except RefreshFailed as e:
        logger.error("Error refreshing token: %s", e.message)
        return JSONResponse(status_code=500, content={"error": "Failed to refresh token", "success": False})

    relay.credentials.replace(credential)
    logger.info("Copilot token manually refreshed")
    return {"success": True, "message": "Token refreshed successfully"}
