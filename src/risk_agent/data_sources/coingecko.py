"""
CoinGecko client for USD token prices.

Reference: https://docs.coingecko.com/reference/simple-token-price

Works without a key on the public tier.  A key, when configured, is sent
as ``x-cg-demo-api-key`` (or ``x-cg-pro-api-key`` against the pro host).
"""

from __future__ import annotations

import logging
from typing import Sequence

from ._base import BaseProviderClient
from ._http import ProviderResponse

logger = logging.getLogger(__name__)

# The public tier caps contract_addresses per request
_MAX_ADDRESSES = 30


class CoinGeckoClient(BaseProviderClient):
    """Async wrapper around ``/simple/token_price``."""

    name = "coingecko"
    requires_key = False

    def _default_headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._api_key:
            header = "x-cg-pro-api-key" if "pro-api" in self._base_url else "x-cg-demo-api-key"
            headers[header] = self._api_key
        return headers

    async def get_token_prices(self, tokens: Sequence[str]) -> ProviderResponse:
        """Payload: ``{address: {"usd": price}}`` for the tokens CoinGecko knows."""
        addresses = list(dict.fromkeys(t.lower() for t in tokens))[:_MAX_ADDRESSES]
        if not addresses:
            return ProviderResponse.success(self.name, {})
        params = {
            "contract_addresses": ",".join(addresses),
            "vs_currencies": "usd",
        }
        return await self._get(f"{self._base_url}/simple/token_price/ethereum", params=params)
