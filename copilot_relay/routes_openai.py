import json
import logging
from contextlib import aclosing
from typing import AsyncGenerator

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, StreamingResponse

from .accumulator import collect_stream
from .errors import RelayError, UpstreamConnectionError, map_generic_error, map_relay_error
from .openai_models import ChatCompletionsRequest, ModelData, ModelList
from .state import RelayState, auth_guard, get_relay_state
from .streaming import ServerSentEvent, sse_done
from .token_counter import get_token_counter

logger = logging.getLogger(__name__)

router = APIRouter()


def _log_token_count(relay: RelayState, body: ChatCompletionsRequest) -> None:
    if relay.catalog.find(relay.aliases.normalize(body.model)) is None:
        logger.warning("No model selected, skipping token count calculation")
        return
    try:
        logger.info("Current token count: %d", get_token_counter().count_request_tokens(body))
    except Exception as e:
        logger.warning("Failed to calculate token count: %s", e)


def _apply_default_max_tokens(relay: RelayState, body: ChatCompletionsRequest) -> None:
    if body.max_tokens is not None:
        return
    selected = relay.catalog.find(relay.aliases.normalize(body.model)) or {}
    limits = (selected.get("capabilities") or {}).get("limits") or {}
    max_output_tokens = limits.get("max_output_tokens")
    if isinstance(max_output_tokens, int):
        body.max_tokens = max_output_tokens
        logger.debug("Set max_tokens to: %s", max_output_tokens)


async def _passthrough(events: AsyncGenerator[ServerSentEvent, None]) -> AsyncGenerator[bytes, None]:
    """Forward upstream events to the client unchanged, always ending with [DONE]."""
    finished = False
    try:
        async with aclosing(events):
            async for event in events:
                logger.debug("Streaming chunk: %s", event.data)
                yield event.encode()
                if event.is_done:
                    finished = True
                    break
    except UpstreamConnectionError as e:
        # Cannot change status mid-stream; terminate the stream instead
        logger.warning("Upstream stream failed mid-flight: %s", e.message)
    if not finished:
        yield sse_done()


@router.post("/chat/completions")
@router.post("/v1/chat/completions")
async def chat_completions(
    request: Request,
    body: ChatCompletionsRequest,
    relay: RelayState = Depends(get_relay_state),
):
    if (resp := auth_guard(request, relay)) is not None:
        return resp

    if logger.isEnabledFor(logging.DEBUG):
        preview = json.dumps(body.model_dump(exclude_unset=True), ensure_ascii=False)
        logger.debug("Request payload: %s", preview[-relay.settings.LOG_REQUEST_BODY_MAX_LENGTH:])

    # Streaming is decided by what the client asked for; upstream always streams
    client_wants_stream = body.stream is True

    try:
        await relay.admission.check_rate_limit()
        _log_token_count(relay, body)
        await relay.admission.await_approval()
        _apply_default_max_tokens(relay, body)
        events = await relay.copilot.create_chat_completions_stream(body)

        if client_wants_stream:
            logger.debug("Streaming response")
            return StreamingResponse(
                _passthrough(events),
                media_type="text/event-stream",
                headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
            )

        logger.info("Client requested non-streaming response; using upstream streaming and collecting chunks")
        completion = await collect_stream(events, fallback_model=body.model)
        payload = completion.model_dump(mode="json")
        logger.debug("Non-streaming response: %s", payload)
        return JSONResponse(payload)

    except RelayError as e:
        return map_relay_error(e)
    except Exception as e:
        return map_generic_error(e)


@router.get("/models")
@router.get("/v1/models")
async def list_models(request: Request, relay: RelayState = Depends(get_relay_state)):
    if (resp := auth_guard(request, relay)) is not None:
        return resp

    try:
        catalog = relay.catalog.get()
        if catalog is None:
            # Normally cached at startup
            catalog = await relay.cache_models()

        model_by_id = {model["id"]: model for model in catalog}
        rows = []
        for model_id in relay.aliases.expand_with_aliases(model_by_id.keys()):
            source = model_by_id.get(relay.aliases.normalize(model_id))
            if source is None:
                continue
            rows.append(
                ModelData(
                    id=model_id,
                    owned_by=str(source.get("vendor") or ""),
                    display_name=str(source.get("name") or model_id),
                )
            )
        return JSONResponse(ModelList(data=rows).model_dump(mode="json"))

    except RelayError as e:
        return map_relay_error(e)
    except Exception as e:
        return map_generic_error(e)
