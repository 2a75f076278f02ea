"""FastAPI entrypoint for the OpenAI-compatible relay to GitHub Copilot"""

from contextlib import asynccontextmanager
import logging
import sys
from typing import Optional

from fastapi import FastAPI, Request, Response
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from .config import Settings, get_settings
from .errors import RelayError
from .routes_openai import router as openai_router
from .routes_token import router as token_router
from .state import RelayState, build_relay_state

logger = logging.getLogger(__name__)


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )


async def bootstrap(relay: RelayState) -> None:
    """Acquire the first credential and cache the model catalog."""
    if relay.credentials.get() is None:
        if not relay.settings.GH_TOKEN:
            logger.warning("GH_TOKEN not set; requests will fail until POST /token/refresh succeeds")
            return
        if not await relay.refresh_credential():
            logger.error("Could not obtain a Copilot token at startup")
            return

    try:
        await relay.cache_models()
    except RelayError as e:
        logger.error("Failed to cache models at startup: %s", e.message)


def _truncate(text: str, max_len: int) -> str:
    if len(text) > max_len:
        return text[:max_len] + "...(truncated)"
    return text


def create_app(relay: Optional[RelayState] = None, settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or (relay.settings if relay else get_settings())
    owns_relay = relay is None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # on startup
        logger.info("Starting Copilot relay")
        if app.state.relay is None:
            app.state.relay = build_relay_state(settings)
        await bootstrap(app.state.relay)
        yield
        # on shutdown
        logger.info("Shutting down relay")
        if owns_relay:
            try:
                await app.state.relay.close()
                logger.info("HTTP client closed successfully")
            except Exception as e:
                logger.error("Error closing HTTP client: %s", e)

    app = FastAPI(
        title="Copilot chat-completions relay",
        version="0.1.0",
        description="OpenAI-compatible endpoints backed by GitHub Copilot",
        lifespan=lifespan,
    )
    app.state.relay = relay

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
        allow_credentials=False,
    )

    # Log requests and buffered responses for chat completions
    @app.middleware("http")
    async def log_request_response_middleware(request: Request, call_next):
        if request.method != "POST" or not request.url.path.endswith("/chat/completions"):
            return await call_next(request)

        max_len = settings.LOG_REQUEST_BODY_MAX_LENGTH
        if logger.isEnabledFor(logging.DEBUG):
            body = await request.body()
            # Redact sensitive headers
            headers = {k.lower(): v for k, v in request.headers.items()}
            if "authorization" in headers:
                parts = (headers["authorization"] or "").split()
                headers["authorization"] = (parts[0] + " ****") if len(parts) > 1 else "****"
            logger.debug(
                "Incoming POST %s - headers=%s body=%s",
                request.url.path,
                headers,
                _truncate(body.decode("utf-8", errors="replace"), max_len),
            )
        else:
            logger.info("Incoming POST %s", request.url.path)

        response = await call_next(request)

        streaming = (response.media_type or response.headers.get("content-type", "")).startswith("text/event-stream")
        if not logger.isEnabledFor(logging.DEBUG) or streaming:
            logger.info("Response for POST %s - status=%s", request.url.path, response.status_code)
            return response

        response_body = b""
        async for chunk in response.body_iterator:
            response_body += chunk
        logger.debug(
            "Response for POST %s - status=%s body=%s",
            request.url.path,
            response.status_code,
            _truncate(response_body.decode("utf-8", errors="replace"), max_len),
        )
        # Recreate response with body
        return Response(
            content=response_body,
            status_code=response.status_code,
            headers=dict(response.headers),
            media_type=response.media_type,
        )

    # Detailed 422 logging while delegating to default handler
    @app.exception_handler(RequestValidationError)
    async def handle_validation_exception(request: Request, exc: RequestValidationError):
        logger.warning(
            "422 validation error on %s %s: errors=%s",
            request.method,
            str(request.url),
            exc.errors(),
        )
        return await request_validation_exception_handler(request, exc)

    app.include_router(openai_router)
    app.include_router(token_router)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app

