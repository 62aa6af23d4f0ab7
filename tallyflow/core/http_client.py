# tallyflow/core/http_client.py

import asyncio
from typing import Any

import httpx

from tallyflow import __version__
from tallyflow.core.config import settings

# Máximo de requests simultáneas contra Tally (su API limita por token)
semaphore = asyncio.Semaphore(settings.MAX_CONCURRENT_REQUESTS)

_limits = httpx.Limits(
    max_connections=settings.HTTPX_MAX_CONNECTIONS,
    max_keepalive_connections=settings.HTTPX_MAX_KEEPALIVE,
)

# connect/pool cortos; read/write cubren PATCH de formularios grandes
_timeout = httpx.Timeout(
    connect=settings.HTTPX_CONNECT_TIMEOUT,
    read=settings.HTTPX_READ_TIMEOUT,
    write=settings.HTTPX_READ_TIMEOUT,
    pool=settings.HTTPX_CONNECT_TIMEOUT,
)

DEFAULT_HEADERS = {
    "Accept": "application/json",
    "User-Agent": f"tallyflow/{__version__}",
}


def build_http_client(**overrides: Any) -> httpx.AsyncClient:
    """
    AsyncClient con los límites, timeouts y headers del nodo. ``overrides``
    se pasan tal cual a ``httpx.AsyncClient`` (p. ej. ``transport`` en tests).
    """
    options = {
        "limits": _limits,
        "timeout": _timeout,
        "headers": DEFAULT_HEADERS,
        "follow_redirects": True,
    }
    options.update(overrides)
    return httpx.AsyncClient(**options)


# Cliente global reutilizable
http_client: httpx.AsyncClient = build_http_client()
