"""
OpenSea API v2 client.

Reference: https://docs.opensea.io/reference/api-overview

Requires ``OPENSEA_API_KEY`` (sent as ``X-API-KEY``).  Floor prices are
keyed by collection slug, so ``get_floor_price`` first resolves the slug
from the contract and then fetches the collection stats.
"""

from __future__ import annotations

import logging

from ..models import ContractSubject, NFTSubject
from ._base import BaseProviderClient
from ._http import ProviderResponse, ProviderStatus

logger = logging.getLogger(__name__)

_CHAIN = "ethereum"


class OpenSeaClient(BaseProviderClient):
    """Async wrapper around the OpenSea REST API."""

    name = "opensea"

    def _default_headers(self) -> dict[str, str]:
        return {"Accept": "application/json", "X-API-KEY": self._api_key}

    async def get_floor_price(self, subject: ContractSubject) -> ProviderResponse:
        """Payload: ``{"collection": slug, "stats": {...}}``."""
        contract = await self._get(f"{self._base_url}/chain/{_CHAIN}/contract/{subject.address}")
        if not contract.ok:
            return contract
        slug = contract.payload.get("collection") if isinstance(contract.payload, dict) else None
        if not slug:
            # Contract known to OpenSea but not attached to any collection
            return ProviderResponse.failure(self.name, ProviderStatus.NOT_FOUND, "no collection slug")
        stats = await self._get(f"{self._base_url}/collections/{slug}/stats")
        if not stats.ok:
            return stats
        return ProviderResponse.success(self.name, {"collection": slug, "stats": stats.payload})

    async def get_nft_metadata(self, subject: NFTSubject) -> ProviderResponse:
        url = f"{self._base_url}/chain/{_CHAIN}/contract/{subject.contract}/nfts/{subject.token_id}"
        return await self._get(url)
