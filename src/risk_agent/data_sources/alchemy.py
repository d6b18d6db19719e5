"""
Alchemy client: Token API (JSON-RPC) and NFT API v3 (REST).

Reference: https://docs.alchemy.com/reference/api-overview

The API key is part of the URL path, so URLs are never logged.  Token
balances need two round-trips: ``alchemy_getTokenBalances`` for the raw
amounts, then one JSON-RPC batch of ``alchemy_getTokenMetadata`` calls for
decimals, name and symbol of the non-zero balances.
"""

from __future__ import annotations

import logging
from typing import Any

from ..models import ContractSubject, NFTSubject, WalletSubject
from ..utils import hex_to_int
from ._base import BaseProviderClient
from ._http import ProviderResponse, ProviderStatus
from .eth_rpc import classify_rpc_error

logger = logging.getLogger(__name__)

# Token metadata lookups per wallet; wallets holding hundreds of dust
# tokens would otherwise produce huge batches.
_MAX_METADATA_LOOKUPS = 50


class AlchemyClient(BaseProviderClient):
    """Async wrapper around Alchemy's enhanced APIs."""

    name = "alchemy"

    def __init__(
        self,
        *,
        network: str = "eth-mainnet",
        api_key: str = "",
        timeout: float = 20.0,
    ) -> None:
        super().__init__(
            base_url=f"https://{network}.g.alchemy.com",
            api_key=api_key,
            timeout=timeout,
        )

    @property
    def _rpc_url(self) -> str:
        return f"{self._base_url}/v2/{self._api_key}"

    @property
    def _nft_url(self) -> str:
        return f"{self._base_url}/nft/v3/{self._api_key}"

    # ------------------------------------------------------------------
    # Token API
    # ------------------------------------------------------------------

    async def get_token_balances(self, subject: WalletSubject) -> ProviderResponse:
        """Payload: ``{"balances": [...], "metadata": {address: {...}}}``."""
        resp = await self._rpc("alchemy_getTokenBalances", [subject.address, "erc20"])
        if not resp.ok:
            return resp
        result = resp.payload
        if not isinstance(result, dict):
            return ProviderResponse.failure(self.name, ProviderStatus.MALFORMED, "unexpected result")
        balances = [
            b for b in result.get("tokenBalances") or []
            if isinstance(b, dict) and (hex_to_int(b.get("tokenBalance")) or 0) > 0
        ]
        wanted = [str(b.get("contractAddress", "")).lower() for b in balances]
        wanted = wanted[:_MAX_METADATA_LOOKUPS]

        metadata: dict[str, Any] = {}
        if wanted:
            batch = [
                {
                    "jsonrpc": "2.0",
                    "id": idx,
                    "method": "alchemy_getTokenMetadata",
                    "params": [address],
                }
                for idx, address in enumerate(wanted)
            ]
            meta_resp = await self._post(self._rpc_url, batch)
            if not meta_resp.ok:
                return meta_resp
            if not isinstance(meta_resp.payload, list):
                return ProviderResponse.failure(self.name, ProviderStatus.MALFORMED, "batch not a list")
            for item in meta_resp.payload:
                if not isinstance(item, dict):
                    continue
                idx = item.get("id")
                if isinstance(idx, int) and 0 <= idx < len(wanted) and isinstance(item.get("result"), dict):
                    metadata[wanted[idx]] = item["result"]

        return ProviderResponse.success(
            self.name, {"balances": balances[:_MAX_METADATA_LOOKUPS], "metadata": metadata}
        )

    # ------------------------------------------------------------------
    # NFT API v3
    # ------------------------------------------------------------------

    async def get_nft_holdings(self, subject: WalletSubject) -> ProviderResponse:
        params = {"owner": subject.address, "withMetadata": "true", "pageSize": 100}
        return await self._get(f"{self._nft_url}/getNFTsForOwner", params=params)

    async def get_collection_owners(self, subject: ContractSubject) -> ProviderResponse:
        """One page of up to 50k owners; a ``pageKey`` means the list is partial."""
        params = {"contractAddress": subject.address, "withTokenBalances": "true"}
        resp = await self._get(f"{self._nft_url}/getOwnersForContract", params=params)
        if resp.ok and isinstance(resp.payload, dict) and resp.payload.get("pageKey"):
            logger.info("alchemy owner list for %s spans several pages", subject.address)
            return ProviderResponse.unavailable(self.name, "owner list truncated")
        return resp

    async def get_floor_price(self, subject: ContractSubject) -> ProviderResponse:
        params = {"contractAddress": subject.address}
        return await self._get(f"{self._nft_url}/getFloorPrice", params=params)

    async def get_nft_metadata(self, subject: NFTSubject) -> ProviderResponse:
        params = {"contractAddress": subject.contract, "tokenId": subject.token_id}
        return await self._get(f"{self._nft_url}/getNFTMetadata", params=params)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _rpc(self, method: str, params: list[Any]) -> ProviderResponse:
        payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}
        resp = await self._post(self._rpc_url, payload)
        if not resp.ok:
            return resp
        body = resp.payload
        if not isinstance(body, dict):
            return ProviderResponse.failure(self.name, ProviderStatus.MALFORMED, "non-object body")
        if "error" in body:
            status = classify_rpc_error(body["error"])
            logger.warning("alchemy %s error: %s", method, body["error"])
            return ProviderResponse.failure(self.name, status, str(body["error"]))
        return ProviderResponse.success(self.name, body.get("result"))
