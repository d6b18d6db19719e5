"""
Moralis Web3 Data API client.

Reference: https://docs.moralis.io/web3-data-api/evm/reference

Requires ``MORALIS_API_KEY`` (sent as ``X-API-Key``).  Every method returns
the raw JSON body (owner lists are gathered across ``cursor`` pages);
shaping it into facts is the normalizer's job.
"""

from __future__ import annotations

import logging
from typing import Any

from ..models import ContractSubject, WalletSubject
from ._base import BaseProviderClient
from ._http import ProviderResponse

logger = logging.getLogger(__name__)

_CHAIN = "eth"
_PAGE_SIZE = 100
_MAX_OWNER_PAGES = 5


class MoralisClient(BaseProviderClient):
    """Async wrapper around the Moralis EVM REST API."""

    name = "moralis"

    def _default_headers(self) -> dict[str, str]:
        return {"Accept": "application/json", "X-API-Key": self._api_key}

    async def get_token_balances(self, subject: WalletSubject) -> ProviderResponse:
        """ERC-20 balances with ``verified_contract`` / ``possible_spam`` flags."""
        url = f"{self._base_url}/{subject.address}/erc20"
        return await self._get(url, params={"chain": _CHAIN})

    async def get_nft_holdings(self, subject: WalletSubject) -> ProviderResponse:
        url = f"{self._base_url}/{subject.address}/nft"
        params = {
            "chain": _CHAIN,
            "format": "decimal",
            "normalizeMetadata": "true",
            "limit": _PAGE_SIZE,
        }
        return await self._get(url, params=params)

    async def get_collection_owners(self, subject: ContractSubject) -> ProviderResponse:
        """All ``{owner_of, token_id, amount}`` rows for a collection.

        Follows ``cursor`` for up to ``_MAX_OWNER_PAGES`` pages.  A collection
        with more owners than that is reported unavailable, leaving the
        distribution to the next provider in the chain.
        """
        url = f"{self._base_url}/nft/{subject.address}/owners"
        params: dict[str, Any] = {"chain": _CHAIN, "format": "decimal", "limit": _PAGE_SIZE}
        rows: list[Any] = []
        for _ in range(_MAX_OWNER_PAGES):
            resp = await self._get(url, params=params)
            if not resp.ok:
                return resp
            body = resp.payload
            if not isinstance(body, dict) or not isinstance(body.get("result"), list):
                return resp
            rows.extend(body["result"])
            cursor = body.get("cursor")
            if not cursor:
                return ProviderResponse.success(self.name, {"result": rows})
            params = {**params, "cursor": cursor}
        logger.info(
            "moralis owner list for %s exceeds %d pages", subject.address, _MAX_OWNER_PAGES
        )
        return ProviderResponse.unavailable(self.name, "owner list truncated")

    async def get_floor_price(self, subject: ContractSubject) -> ProviderResponse:
        url = f"{self._base_url}/nft/{subject.address}/floor-price"
        return await self._get(url, params={"chain": _CHAIN})
