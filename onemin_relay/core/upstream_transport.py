"""Per-host httpx transports for the features API.

The backend client asks this registry for a transport before every call.
Nothing is registered in production, so httpx opens real connections.
Simulation tests register an ``httpx.ASGITransport`` wrapping a fake
features app under the host named in ``backend.api_base``.
"""

from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import urlparse

import httpx

logger = logging.getLogger("onemin-relay")

_TRANSPORTS: dict[str, httpx.AsyncBaseTransport] = {}


def register_upstream_transport(host: str, transport: httpx.AsyncBaseTransport) -> None:
    """Route calls for ``host`` (a netloc such as 'upstream.local:8000') through ``transport``."""
    if not host:
        raise ValueError("host is required")
    key = host.strip().lower()
    _TRANSPORTS[key] = transport
    logger.debug("Registered features transport for host '%s'", key)


def clear_upstream_transports() -> None:
    _TRANSPORTS.clear()


def get_upstream_transport(url: str) -> Optional[httpx.AsyncBaseTransport]:
    """Transport registered for the netloc of ``url``, or None for a real connection."""
    host = urlparse(url).netloc if url else ""
    if not host:
        return None
    return _TRANSPORTS.get(host.lower())
