import asyncio
import logging
from datetime import datetime, timezone

import requests

logger = logging.getLogger(__name__)

PING_TIMEOUT_SECONDS = 30
ROOT_TIMEOUT_SECONDS = 10


def _ping(server):
    try:
        logger.info("Pinging %s/ping-status", server)
        response = requests.get(f"{server}/ping-status", timeout=PING_TIMEOUT_SECONDS)
        response.raise_for_status()
        logger.info("Successfully pinged %s, status: %s", server, response.status_code)
        return True
    except requests.RequestException as e:
        if e.response is not None:
            message = f"Status {e.response.status_code}: {e.response.reason}"
        else:
            message = str(e)
        logger.error("Error pinging %s: %s", server, message)

    try:
        logger.info("Trying root URL %s", server)
        requests.get(server, timeout=ROOT_TIMEOUT_SECONDS)
        logger.info("Successfully reached %s root", server)
        return True
    except requests.RequestException as e:
        logger.error("Root URL also failed: %s", e)
        return False


async def ping_other_servers(servers, current_server=""):
    """Keep peer instances awake. Returns ``{server: reachable}``."""
    targets = [server.rstrip("/") for server in servers if server.rstrip("/") != current_server.rstrip("/")]
    logger.info("[%s] Starting ping cycle", datetime.now(timezone.utc).isoformat())
    results = {}
    for server in targets:
        results[server] = await asyncio.to_thread(_ping, server)
    return results
