from typing import Any, Dict, Optional
import httpx
from tallyflow.core.http_client import http_client, semaphore

async def request_helper(
    method: str,
    url: str,
    *,
    headers: Optional[Dict[str, str]] = None,
    params: Optional[Dict[str, Any]] = None,
    json: Any = None,
    timeout: Optional[float] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> httpx.Response:
    """Simple wrapper around the shared httpx client with semaphore.

    ``client`` permite inyectar otro ``httpx.AsyncClient`` (p. ej. en tests).
    """
    extra: Dict[str, Any] = {}
    # Sin timeout explícito se respeta el del cliente
    if timeout is not None:
        extra["timeout"] = timeout
    async with semaphore:
        resp = await (client or http_client).request(
            method=method,
            url=url,
            headers=headers,
            params=params,
            json=json,
            **extra,
        )
    return resp
