"""Shared httpx.AsyncClient for the authority feeds.

The certificate update feed is paginated one certificate per response, so a
refresh issues hundreds of requests against the same host.  A shared client
with keepalive avoids a TCP/TLS handshake per page.

Usage:
    from app.dgc.http_client import get_shared_client

    client = get_shared_client()
    response = await client.get(url)
"""

import logging
from typing import Optional

import httpx

from app.config import HTTP_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)

# The feeds live on a single host; a handful of keepalive connections suffice.
_DEFAULT_POOL_LIMITS = httpx.Limits(
    max_connections=10,
    max_keepalive_connections=5,
    keepalive_expiry=30.0,
)

_shared_client: Optional[httpx.AsyncClient] = None


def get_shared_client() -> httpx.AsyncClient:
    """Get or create the shared httpx.AsyncClient.

    Every request made through this client is bounded by
    ``HTTP_TIMEOUT_SECONDS``.
    """
    global _shared_client
    if _shared_client is None or _shared_client.is_closed:
        _shared_client = httpx.AsyncClient(
            limits=_DEFAULT_POOL_LIMITS,
            timeout=httpx.Timeout(HTTP_TIMEOUT_SECONDS),
            follow_redirects=True,
        )
        logger.info("Created shared httpx.AsyncClient (timeout=%.1fs)", HTTP_TIMEOUT_SECONDS)
    return _shared_client


async def close_shared_client() -> None:
    """Close the shared client. Call on application shutdown."""
    global _shared_client
    if _shared_client is not None and not _shared_client.is_closed:
        await _shared_client.aclose()
        logger.info("Closed shared httpx.AsyncClient")
    _shared_client = None


def reset_shared_client() -> None:
    """Reset the shared client (for testing). Does NOT close it."""
    global _shared_client
    _shared_client = None
