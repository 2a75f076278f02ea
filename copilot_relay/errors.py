import json
import logging
import traceback
from typing import Optional

from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class RelayError(Exception):
    """Base error for everything the relay reports to clients."""

    status_code: int = 500
    err_type: str = "relay_error"

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class UpstreamHTTPError(RelayError):
    """Non-2xx answer from the upstream; status and body are kept uninterpreted."""

    err_type = "upstream_error"

    def __init__(self, message: str, status_code: int, body: str = ""):
        super().__init__(message, status_code)
        self.body = body


class UpstreamUnauthorized(UpstreamHTTPError):
    """Upstream still answered 401 after the one allowed credential refresh."""

    def __init__(self, message: str, body: str = ""):
        super().__init__(message, 401, body)


class UpstreamConnectionError(RelayError):
    status_code = 502
    err_type = "bad_gateway"


class CredentialMissing(RelayError):
    status_code = 401
    err_type = "authentication_error"


class RefreshFailed(RelayError):
    status_code = 502
    err_type = "token_refresh_error"


class MalformedStreamChunk(RelayError):
    status_code = 502
    err_type = "malformed_stream_chunk"

    def __init__(self, message: str, data: str = ""):
        super().__init__(message)
        self.data = data


class RateLimitExceeded(RelayError):
    status_code = 429
    err_type = "rate_limit_exceeded"


class RequestRejected(RelayError):
    status_code = 403
    err_type = "request_rejected"


def error_response(message: str, err_type: str, status_code: int, code: Optional[int] = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": {
                "message": message,
                "type": err_type,
                "code": code if code is not None else status_code,
            }
        },
    )


def forward_upstream_error(err: UpstreamHTTPError) -> JSONResponse:
    """Hand the upstream's own status and body back to the client."""
    logger.warning(
        "Upstream error: %s (status_code=%s)",
        err.message,
        err.status_code,
        extra={"status_code": err.status_code, "error_type": type(err).__name__},
    )
    try:
        content = json.loads(err.body) if err.body else None
    except ValueError:
        content = None
    if content is None:
        content = {"error": {"message": err.body or err.message, "type": err.err_type}}
    return JSONResponse(status_code=err.status_code, content=content)


def map_relay_error(err: RelayError) -> JSONResponse:
    """Map RelayError to the matching HTTP response with logging."""
    if isinstance(err, UpstreamHTTPError):
        return forward_upstream_error(err)

    logger.warning(
        "Relay error: %s (status_code=%s)",
        err.message,
        err.status_code,
        extra={"status_code": err.status_code, "error_type": type(err).__name__},
    )
    return error_response(err.message, err.err_type, err.status_code)


def map_generic_error(err: Exception) -> JSONResponse:
    """Map unexpected exceptions to 500 error with detailed logging."""
    logger.error(
        "Unexpected error: %s: %s",
        type(err).__name__,
        err,
        exc_info=True,
        extra={
            "error_type": type(err).__name__,
            "error_message": str(err),
            "traceback": traceback.format_exc(),
        },
    )

    # Avoid leaking internal details to client
    return error_response("Internal server error", "internal_error", 500)
