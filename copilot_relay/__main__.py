import argparse
import logging
import sys
from typing import Optional

import httpx
import uvicorn

from .config import get_settings
from .main import create_app, setup_logging

logger = logging.getLogger("copilot_relay")


def refresh_token(port: int, api_key: Optional[str] = None) -> int:
    """Ask a running relay to refresh its Copilot token."""
    url = f"http://localhost:{port}/token/refresh"
    headers = {"Authorization": f"Bearer {api_key}"} if api_key else None
    try:
        response = httpx.post(url, headers=headers, timeout=30)
        data = response.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.error("Failed to connect to server: %s", e)
        logger.info("Make sure the server is running on port %s", port)
        return 1

    if response.is_success and data.get("success"):
        logger.info("Token refreshed successfully")
        return 0
    logger.error("Failed to refresh token: %s", data.get("error") or "Unknown error")
    return 1


def main(argv=None) -> int:
    settings = get_settings()
    parser = argparse.ArgumentParser(prog="copilot_relay")
    sub = parser.add_subparsers(dest="command")

    start = sub.add_parser("start", help="Run the relay server")
    start.add_argument("--host", default=settings.HOST)
    start.add_argument("-p", "--port", type=int, default=settings.PORT)

    refresh = sub.add_parser("refresh-token", help="Manually refresh the Copilot token via API")
    refresh.add_argument("-p", "--port", type=int, default=settings.PORT)

    args = parser.parse_args(argv)
    setup_logging(settings.LOG_LEVEL)

    if args.command == "refresh-token":
        return refresh_token(args.port, settings.RELAY_API_KEY)

    host = getattr(args, "host", settings.HOST)
    port = getattr(args, "port", settings.PORT)
    uvicorn.run(create_app(settings=settings), host=host, port=port)
    return 0


if __name__ == "__main__":
    sys.exit(main())
