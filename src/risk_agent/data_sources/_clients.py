"""
HTTP client management for the Wallet Risk Agent.

``ProviderClients`` owns one client per provider, built from a ``Settings``
snapshot.  Whoever creates it owns the connection pools and must call
``close()`` (or use it as an async context manager); nothing here is a
module-level singleton.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Sequence

from ..coordinator import Fetch, ProviderStep
from ..models import FactKind
from ..normalizer import normalizer_for
from ..settings import Settings
from ._base import BaseProviderClient
from .alchemy import AlchemyClient
from .coingecko import CoinGeckoClient
from .eth_rpc import EthRpcClient
from .etherscan import EtherscanClient
from .forensics import ForensicsClient
from .moralis import MoralisClient
from .opensea import OpenSeaClient
from .token_uri import MetadataFetcher

logger = logging.getLogger(__name__)


class ProviderClients:
    """One client per provider, sharing nothing with other instances."""

    def __init__(self, settings: Settings) -> None:
        keys = settings.api_keys
        self.rpc = EthRpcClient(settings.rpc_url, timeout=settings.rpc_timeout)
        self.moralis = MoralisClient(
            base_url=settings.moralis_base_url,
            api_key=keys.moralis,
            timeout=settings.request_timeout,
        )
        self.alchemy = AlchemyClient(
            network=settings.alchemy_network,
            api_key=keys.alchemy,
            timeout=settings.request_timeout,
        )
        self.etherscan = EtherscanClient(
            base_url=settings.etherscan_base_url,
            api_key=keys.etherscan,
            timeout=settings.request_timeout,
        )
        self.opensea = OpenSeaClient(
            base_url=settings.opensea_base_url,
            api_key=keys.opensea,
            timeout=settings.request_timeout,
        )
        self.coingecko = CoinGeckoClient(
            base_url=settings.coingecko_base_url,
            api_key=keys.coingecko,
            timeout=settings.request_timeout,
        )
        self.forensics = ForensicsClient(
            base_url=settings.forensics_base_url,
            api_key=keys.forensics,
            timeout=settings.request_timeout,
        )
        self.uri = MetadataFetcher(
            ipfs_gateway=settings.ipfs_gateway,
            arweave_gateway=settings.arweave_gateway,
            timeout=settings.metadata_timeout,
        )

    def all(self) -> tuple[BaseProviderClient, ...]:
        return (
            self.rpc,
            self.moralis,
            self.alchemy,
            self.etherscan,
            self.opensea,
            self.coingecko,
            self.forensics,
            self.uri,
        )

    def configured(self) -> list[str]:
        """Names of providers that can actually be called."""
        return [c.name for c in self.all() if c.available]

    def steps_for(
        self,
        kind: FactKind,
        chain: Sequence[str],
        *,
        token_uri: Optional[str] = None,
        tokens: Sequence[str] = (),
    ) -> list[ProviderStep]:
        """Turn a provider chain into coordinator steps.

        *token_uri* feeds the ``uri`` metadata fetcher and *tokens* the
        batched price lookup.  Providers with no implementation for *kind*
        are skipped with a warning.
        """
        fetchers: dict[str, Fetch] = {}
        if kind is FactKind.TOKEN_BALANCES:
            fetchers = {
                "moralis": self.moralis.get_token_balances,
                "alchemy": self.alchemy.get_token_balances,
                "rpc": self.rpc.get_token_balances,
            }
        elif kind is FactKind.NFT_HOLDINGS:
            fetchers = {
                "moralis": self.moralis.get_nft_holdings,
                "alchemy": self.alchemy.get_nft_holdings,
            }
        elif kind is FactKind.NFT_METADATA:
            fetchers = {
                "uri": lambda subject: self.uri.fetch(token_uri, subject.token_id),
                "alchemy": self.alchemy.get_nft_metadata,
                "opensea": self.opensea.get_nft_metadata,
            }
        elif kind is FactKind.HOLDER_DISTRIBUTION:
            fetchers = {
                "moralis": self.moralis.get_collection_owners,
                "alchemy": self.alchemy.get_collection_owners,
            }
        elif kind is FactKind.CONTRACT_VERIFICATION:
            fetchers = {"etherscan": self.etherscan.get_source_code}
        elif kind is FactKind.CONTRACT_CREATION:
            fetchers = {"etherscan": self.etherscan.get_first_transaction}
        elif kind is FactKind.FLOOR_PRICE:
            fetchers = {
                "opensea": self.opensea.get_floor_price,
                "moralis": self.moralis.get_floor_price,
                "alchemy": self.alchemy.get_floor_price,
            }
        elif kind is FactKind.TRADING_SIGNALS:
            fetchers = {"forensics": self.forensics.get_trading_signals}
        elif kind is FactKind.WALLET_BEHAVIOR:
            fetchers = {"forensics": self.forensics.get_wallet_profile}
        elif kind is FactKind.PRICE_ESTIMATE:
            fetchers = {"forensics": self.forensics.get_price_estimate}
        elif kind is FactKind.TOKEN_PRICES:
            fetchers = {"coingecko": lambda _subject: self.coingecko.get_token_prices(tokens)}

        steps: list[ProviderStep] = []
        for provider in chain:
            fetch = fetchers.get(provider)
            normalize = normalizer_for(provider, kind)
            if fetch is None or normalize is None:
                logger.warning("Provider %r does not offer %s; skipping", provider, kind.value)
                continue
            steps.append(ProviderStep(provider, fetch, normalize))
        return steps

    async def close(self) -> None:
        """Close every HTTP client gracefully."""
        results = await asyncio.gather(
            *(c.close() for c in self.all()), return_exceptions=True
        )
        for client, result in zip(self.all(), results):
            if isinstance(result, Exception):
                logger.warning("Error closing %s client: %s", client.name, result)

    async def __aenter__(self) -> "ProviderClients":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
