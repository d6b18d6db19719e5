"""
Common plumbing for provider clients: lazily created ``httpx.AsyncClient``,
API-key short-circuit and a hook for in-body error classification.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from ._http import ProviderResponse, async_http_get, async_http_post_json

logger = logging.getLogger(__name__)


class BaseProviderClient:
    """Async wrapper shared by every provider.

    Subclasses set ``name`` and, when the provider works without a key,
    ``requires_key = False``.  ``_inspect`` may be overridden to turn
    provider-specific error bodies into typed failures.
    """

    name: str = "provider"
    requires_key: bool = True

    def __init__(
        self,
        *,
        base_url: str = "",
        api_key: str = "",
        timeout: float = 20.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._client: httpx.AsyncClient | None = None

    @property
    def available(self) -> bool:
        return bool(self._api_key) or not self.requires_key

    def _default_headers(self) -> dict[str, str]:
        return {"Accept": "application/json"}

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                headers=self._default_headers(),
                follow_redirects=True,
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _inspect(self, response: ProviderResponse) -> ProviderResponse:
        return response

    async def _get(
        self,
        url: str,
        params: Optional[dict[str, Any]] = None,
        *,
        timeout: Optional[float] = None,
    ) -> ProviderResponse:
        if not self.available:
            return ProviderResponse.unavailable(self.name)
        client = await self._get_client()
        response = await async_http_get(
            client, url, params=params, timeout=timeout, label=self.name,
        )
        return self._inspect(response) if response.ok else response

    async def _post(
        self,
        url: str,
        json_payload: Any,
        *,
        timeout: Optional[float] = None,
    ) -> ProviderResponse:
        if not self.available:
            return ProviderResponse.unavailable(self.name)
        client = await self._get_client()
        response = await async_http_post_json(
            client, url, json_payload=json_payload, timeout=timeout, label=self.name,
        )
        return self._inspect(response) if response.ok else response
