"""HTTP client for the livestock REST API.

The default fetch function of the polling client. Every endpoint answers
with the envelope ``{"success": bool, "data": ..., "error": str}``.
"""

from typing import Any, Dict, FrozenSet, Optional

import httpx

from core.config import Settings
from core.logging import get_logger
from services.exceptions import RemoteOperationError, UnknownEndpointError

logger = get_logger(__name__)

RESOURCE_ENDPOINTS: FrozenSet[str] = frozenset([
    'animals',
    'health',
    'financial',
    'feeding',
    'breeding',
    'rfid',
    'tasks',
])


def _query_params(params: Dict[str, Any]) -> Dict[str, str]:
    """Flatten params to query-string values; ``None`` values are dropped."""
    query = {}
    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, bool):
            query[key] = "true" if value else "false"
        else:
            query[key] = str(value)
    return query


def unwrap_envelope(endpoint: str, payload: Any) -> Any:
    """Return ``data`` from a success envelope or raise RemoteOperationError."""
    if not isinstance(payload, dict) or "success" not in payload:
        raise RemoteOperationError(endpoint, "Malformed response envelope")
    if not payload.get("success"):
        raise RemoteOperationError(endpoint, payload.get("error") or "Failed to fetch data")
    return payload.get("data")


class ResourceClient:
    """Fetches livestock resources over HTTP.

    Instances are callable with ``(endpoint, params)`` so they plug directly
    into the polling client as its fetcher.
    """

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.settings.api_base_url,
                timeout=self.settings.api_timeout,
                transport=self._transport,
            )
        return self._client

    async def fetch(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Any:
        if endpoint not in RESOURCE_ENDPOINTS:
            raise UnknownEndpointError(endpoint)

        response = await self._get_client().get(f"/api/{endpoint}", params=_query_params(params or {}))
        try:
            payload = response.json()
        except ValueError:
            raise RemoteOperationError(endpoint, f"HTTP {response.status_code}: non-JSON response",
                                       status_code=response.status_code)

        if response.status_code >= 400 and not isinstance(payload, dict):
            raise RemoteOperationError(endpoint, f"HTTP {response.status_code}",
                                       status_code=response.status_code)

        logger.debug("Fetched resource", endpoint=endpoint, status=response.status_code)
        return unwrap_envelope(endpoint, payload)

    async def __call__(self, endpoint: str, params: Dict[str, Any]) -> Any:
        return await self.fetch(endpoint, params)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
