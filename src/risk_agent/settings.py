"""
Immutable runtime settings for the Wallet Risk Agent.

``load_settings()`` snapshots the values read by ``config`` into a frozen
``Settings`` object.  The analyzer and the provider clients receive this
object explicitly; nothing reads configuration from module globals after
startup.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

import config

from .errors import ConfigurationError
from .models import FactKind

logger = logging.getLogger(__name__)


KNOWN_PROVIDERS: frozenset[str] = frozenset({
    "rpc",
    "moralis",
    "alchemy",
    "etherscan",
    "opensea",
    "coingecko",
    "forensics",
    "uri",
})

DEFAULT_PROVIDER_CHAINS: Mapping[FactKind, tuple[str, ...]] = MappingProxyType({
    FactKind.TOKEN_BALANCES: ("moralis", "alchemy", "rpc"),
    FactKind.NFT_HOLDINGS: ("moralis", "alchemy"),
    FactKind.NFT_METADATA: ("uri", "alchemy", "opensea"),
    FactKind.HOLDER_DISTRIBUTION: ("moralis", "alchemy"),
    FactKind.CONTRACT_VERIFICATION: ("etherscan",),
    FactKind.CONTRACT_CREATION: ("etherscan",),
    FactKind.FLOOR_PRICE: ("opensea", "moralis", "alchemy"),
    FactKind.TRADING_SIGNALS: ("forensics",),
    FactKind.WALLET_BEHAVIOR: ("forensics",),
    FactKind.PRICE_ESTIMATE: ("forensics",),
    FactKind.TOKEN_PRICES: ("coingecko",),
})


@dataclass(frozen=True)
class ProviderKeys:
    """Named credentials, one per provider.  Empty string means not configured."""

    moralis: str = ""
    alchemy: str = ""
    etherscan: str = ""
    opensea: str = ""
    coingecko: str = ""
    forensics: str = ""


@dataclass(frozen=True)
class Settings:
    """Everything the analyzer needs, fixed for the lifetime of the process."""

    rpc_url: str
    api_keys: ProviderKeys = field(default_factory=ProviderKeys)
    provider_chains: Mapping[FactKind, tuple[str, ...]] = field(
        default_factory=lambda: DEFAULT_PROVIDER_CHAINS
    )

    moralis_base_url: str = "https://deep-index.moralis.io/api/v2.2"
    alchemy_network: str = "eth-mainnet"
    etherscan_base_url: str = "https://api.etherscan.io/api"
    opensea_base_url: str = "https://api.opensea.io/api/v2"
    coingecko_base_url: str = "https://api.coingecko.com/api/v3"
    forensics_base_url: str = "https://api.unleashnfts.com/api/v2"
    ipfs_gateway: str = "https://ipfs.io/ipfs/"
    arweave_gateway: str = "https://arweave.net/"

    rpc_timeout: float = 10.0
    request_timeout: float = 20.0
    metadata_timeout: float = 15.0
    fact_timeout: float = 30.0

    max_attempts: int = 2
    retry_base_delay: float = 1.0
    max_concurrent_fetches: int = 5
    nft_sample_size: int = 10
    token_sample_size: int = 20

    def __post_init__(self) -> None:
        if not self.rpc_url or not self.rpc_url.startswith(("http://", "https://")):
            raise ConfigurationError(
                "ETHEREUM_RPC_URL must be set to an HTTP(S) JSON-RPC endpoint"
            )
        if self.max_attempts < 1:
            raise ConfigurationError("max_attempts must be at least 1")
        if self.max_concurrent_fetches < 1:
            raise ConfigurationError("max_concurrent_fetches must be at least 1")
        chains = dict(DEFAULT_PROVIDER_CHAINS)
        for kind, chain in self.provider_chains.items():
            known = tuple(p for p in chain if p in KNOWN_PROVIDERS)
            for unknown in sorted(set(chain) - KNOWN_PROVIDERS):
                logger.warning("Ignoring unknown provider %r in %s chain", unknown, kind.value)
            chains[kind] = known
        object.__setattr__(self, "provider_chains", MappingProxyType(chains))

    def chain_for(self, kind: FactKind) -> tuple[str, ...]:
        return self.provider_chains.get(kind, ())


def load_settings() -> Settings:
    """Build ``Settings`` from the values in ``config``.

    Raises ``ConfigurationError`` when the mandatory RPC endpoint is missing.
    """
    chains = {
        FactKind.TOKEN_BALANCES: config.PROVIDER_CHAIN_TOKEN_BALANCES,
        FactKind.NFT_HOLDINGS: config.PROVIDER_CHAIN_NFT_HOLDINGS,
        FactKind.NFT_METADATA: config.PROVIDER_CHAIN_NFT_METADATA,
        FactKind.HOLDER_DISTRIBUTION: config.PROVIDER_CHAIN_HOLDER_DISTRIBUTION,
        FactKind.CONTRACT_VERIFICATION: config.PROVIDER_CHAIN_CONTRACT_VERIFICATION,
        FactKind.CONTRACT_CREATION: config.PROVIDER_CHAIN_CONTRACT_CREATION,
        FactKind.FLOOR_PRICE: config.PROVIDER_CHAIN_FLOOR_PRICE,
        FactKind.TRADING_SIGNALS: config.PROVIDER_CHAIN_TRADING_SIGNALS,
        FactKind.WALLET_BEHAVIOR: config.PROVIDER_CHAIN_WALLET_BEHAVIOR,
        FactKind.PRICE_ESTIMATE: config.PROVIDER_CHAIN_PRICE_ESTIMATE,
        FactKind.TOKEN_PRICES: config.PROVIDER_CHAIN_TOKEN_PRICES,
    }
    return Settings(
        rpc_url=config.ETHEREUM_RPC_URL,
        api_keys=ProviderKeys(
            moralis=config.MORALIS_API_KEY,
            alchemy=config.ALCHEMY_API_KEY,
            etherscan=config.ETHERSCAN_API_KEY,
            opensea=config.OPENSEA_API_KEY,
            coingecko=config.COINGECKO_API_KEY,
            forensics=config.FORENSICS_API_KEY,
        ),
        provider_chains=chains,
        moralis_base_url=config.MORALIS_BASE_URL,
        alchemy_network=config.ALCHEMY_NETWORK,
        etherscan_base_url=config.ETHERSCAN_BASE_URL,
        opensea_base_url=config.OPENSEA_BASE_URL,
        coingecko_base_url=config.COINGECKO_BASE_URL,
        forensics_base_url=config.FORENSICS_BASE_URL,
        ipfs_gateway=config.IPFS_GATEWAY,
        arweave_gateway=config.ARWEAVE_GATEWAY,
        rpc_timeout=float(config.RPC_TIMEOUT),
        request_timeout=float(config.REQUEST_TIMEOUT),
        metadata_timeout=float(config.METADATA_TIMEOUT),
        fact_timeout=float(config.FACT_TIMEOUT_SECONDS),
        max_attempts=config.PROVIDER_MAX_ATTEMPTS,
        retry_base_delay=config.PROVIDER_RETRY_BASE_DELAY,
        max_concurrent_fetches=config.MAX_CONCURRENT_FETCHES,
        nft_sample_size=config.NFT_SAMPLE_SIZE,
        token_sample_size=config.TOKEN_SAMPLE_SIZE,
    )
