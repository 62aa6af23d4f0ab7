# tallyflow/clients/tally_client.py
"""
Cliente de la API de Tally.so.

El transporte es un callable inyectado ``request(method, endpoint, body=None)``
que devuelve el JSON parseado y lanza ``RemoteApiError`` ante una respuesta no
exitosa. ``make_tally_request`` construye el callable REST sobre el cliente
httpx compartido; los tests pueden inyectar cualquier otro.
"""

import time
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from tallyflow.core.service_urls import (
    FORM_PATH_TEMPLATE,
    FORMS_PATH,
    QUESTIONS_PATH_TEMPLATE,
    SUBMISSIONS_PATH_TEMPLATE,
    TALLY_API_BASE,
    TALLY_GRAPHQL_URL,
)
from tallyflow.exceptions.api_exceptions import RemoteApiError
from tallyflow.exceptions.logging_utils import get_tally_logger
from tallyflow.utils.request_helper import request_helper

logger = get_tally_logger(__name__)

TallyRequest = Callable[..., Awaitable[Any]]

_STATUS_MESSAGES = {
    400: "Bad request",
    401: "Unauthorized - check API key",
    403: "Forbidden - insufficient permissions",
    404: "Not found",
    429: "Rate limited by Tally",
}


def _error_message(resp: httpx.Response) -> str:
    base = _STATUS_MESSAGES.get(resp.status_code, f"Tally API request failed with status {resp.status_code}")
    try:
        body = resp.json()
    except ValueError:
        return base
    if isinstance(body, dict):
        detail = body.get("message") or body.get("error")
        if isinstance(detail, str) and detail:
            return f"{base}: {detail}"
    return base


def _auth_headers(api_token: str) -> Dict[str, str]:
    return {
        "Authorization": f"Bearer {api_token}",
        "Content-Type": "application/json",
    }


def make_tally_request(
    api_token: str,
    base_url: str = TALLY_API_BASE,
    client: Optional[httpx.AsyncClient] = None,
) -> TallyRequest:
    """Callable REST autenticado con bearer token contra ``base_url``."""
    headers = _auth_headers(api_token)
    base = base_url.rstrip("/")

    async def tally_request(method: str, endpoint: str, body: Optional[Dict[str, Any]] = None) -> Any:
        method = method.upper()
        url = f"{base}{endpoint}"
        logger.log_api_request(method, endpoint)
        start = time.perf_counter()
        try:
            resp = await request_helper(method, url, headers=headers, json=body, client=client)
        except httpx.RequestError as exc:
            logger.error(f"HTTP request to Tally failed: {method} {endpoint}", error=exc)
            raise RemoteApiError(f"Request to Tally failed: {exc}", endpoint=endpoint) from exc

        logger.log_api_response(method, endpoint, resp.status_code, int((time.perf_counter() - start) * 1000))
        if not resp.is_success:
            raise RemoteApiError(
                _error_message(resp),
                status_code=resp.status_code,
                endpoint=endpoint,
                response_body=resp.text,
            )
        if resp.status_code == 204 or not resp.content:
            return {}
        return resp.json()

    return tally_request


def make_graphql_request(
    api_token: str,
    url: str = TALLY_GRAPHQL_URL,
    client: Optional[httpx.AsyncClient] = None,
) -> TallyRequest:
    """
    Variante GraphQL: ``request(query, variables=None)`` devuelve ``data`` y
    lanza ``RemoteApiError`` si la respuesta trae un array ``errors``.
    """
    headers = _auth_headers(api_token)

    async def graphql_request(query: str, variables: Optional[Dict[str, Any]] = None) -> Any:
        try:
            resp = await request_helper(
                "POST", url, headers=headers, json={"query": query, "variables": variables or {}}, client=client
            )
        except httpx.RequestError as exc:
            raise RemoteApiError(f"Request to Tally failed: {exc}", endpoint=url) from exc

        if not resp.is_success:
            raise RemoteApiError(_error_message(resp), status_code=resp.status_code, endpoint=url, response_body=resp.text)

        payload = resp.json()
        errors = payload.get("errors") if isinstance(payload, dict) else None
        if errors:
            first = errors[0] if isinstance(errors[0], dict) else {"message": str(errors[0])}
            raise RemoteApiError(
                first.get("message") or "GraphQL Error",
                description=(first.get("extensions") or {}).get("code") or "GraphQL Error",
                status_code=resp.status_code,
                endpoint=url,
            )
        return payload.get("data") if isinstance(payload, dict) else payload

    return graphql_request


def _as_list(data: Any, *keys: str) -> List[Dict[str, Any]]:
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        for key in keys:
            if isinstance(data.get(key), list):
                return data[key]
    return []


class TallyClient:
    """Endpoints de formularios/preguntas/submissions sobre un ``TallyRequest``."""

    def __init__(self, request: TallyRequest):
        self.request = request

    @classmethod
    def from_token(cls, api_token: str, client: Optional[httpx.AsyncClient] = None) -> "TallyClient":
        return cls(make_tally_request(api_token, client=client))

    async def list_forms(self) -> List[Dict[str, Any]]:
        data = await self.request("GET", FORMS_PATH)
        return _as_list(data, "items")

    async def get_form(self, form_id: str) -> Dict[str, Any]:
        return await self.request("GET", FORM_PATH_TEMPLATE.format(form_id=form_id))

    async def update_form(
        self,
        form_id: str,
        blocks: List[Dict[str, Any]],
        name: Optional[str] = None,
        settings: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        body = {"blocks": blocks, "name": name, "settings": settings}
        return await self.request("PATCH", FORM_PATH_TEMPLATE.format(form_id=form_id), body)

    async def create_form(
        self,
        name: str,
        settings: Dict[str, Any],
        blocks: List[Dict[str, Any]],
    ) -> Dict[str, Any]:
        return await self.request("POST", FORMS_PATH, {"name": name, "settings": settings, "blocks": blocks})

    async def list_questions(self, form_id: str) -> List[Dict[str, Any]]:
        data = await self.request("GET", QUESTIONS_PATH_TEMPLATE.format(form_id=form_id))
        return _as_list(data, "items", "questions")

    async def list_submissions_raw(self, form_id: str) -> Any:
        """Respuesta cruda; la normalización de formas la hace el servicio."""
        return await self.request("GET", SUBMISSIONS_PATH_TEMPLATE.format(form_id=form_id))
