"""
Project configuration file for the Wallet Risk Agent.

This module centralises all user-modifiable settings such as API keys,
RPC endpoints, timeouts and provider fallback chains.  You can edit these
values directly or set environment variables to override them.

The values here are read once at import time; ``risk_agent.settings``
turns them into an immutable ``Settings`` object that is passed explicitly
to the analyzer.
"""

from __future__ import annotations

import logging
import os

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------

def _parse_float(name: str, default: str, *, low: float = 0.0, high: float = 1.0) -> float:
    """Parse an env var as a float and validate it within [low, high]."""
    raw = os.getenv(name, default)
    try:
        value = float(raw)
    except (TypeError, ValueError):
        logger.error("Invalid value for %s: %r – using default %s", name, raw, default)
        value = float(default)
    if not (low <= value <= high):
        logger.warning("%s=%.4f is outside [%.1f, %.1f] – clamped", name, value, low, high)
        value = max(low, min(value, high))
    return value


def _parse_int(name: str, default: str, *, minimum: int = 1) -> int:
    """Parse an env var as an int and enforce a minimum."""
    raw = os.getenv(name, default)
    try:
        value = int(raw)
    except (TypeError, ValueError):
        logger.error("Invalid value for %s: %r – using default %s", name, raw, default)
        value = int(default)
    if value < minimum:
        logger.warning("%s=%d is below minimum %d – clamped", name, value, minimum)
        value = minimum
    return value


def _parse_chain(name: str, default: str) -> tuple[str, ...]:
    """Parse a comma-separated provider chain, preserving order and dropping duplicates."""
    raw = os.getenv(name, default)
    chain: list[str] = []
    for part in raw.split(","):
        provider = part.strip().lower()
        if provider and provider not in chain:
            chain.append(provider)
    if not chain:
        logger.warning("%s is empty – using default %r", name, default)
        chain = [p.strip().lower() for p in default.split(",") if p.strip()]
    return tuple(chain)


def _optional_key(name: str) -> str:
    """Return an API key, treating empty strings and placeholders as unset."""
    value = os.getenv(name, "").strip()
    if value.startswith("<") and value.endswith(">"):
        return ""
    return value


# ---------------------------------------------------------------------------
# Ethereum JSON-RPC (mandatory)
# ---------------------------------------------------------------------------
ETHEREUM_RPC_URL: str = os.getenv("ETHEREUM_RPC_URL", "").strip()

# ---------------------------------------------------------------------------
# Provider credentials (each optional – a missing key disables that provider)
# ---------------------------------------------------------------------------
MORALIS_API_KEY: str = _optional_key("MORALIS_API_KEY")
ALCHEMY_API_KEY: str = _optional_key("ALCHEMY_API_KEY")
ETHERSCAN_API_KEY: str = _optional_key("ETHERSCAN_API_KEY")
OPENSEA_API_KEY: str = _optional_key("OPENSEA_API_KEY")
COINGECKO_API_KEY: str = _optional_key("COINGECKO_API_KEY")
FORENSICS_API_KEY: str = _optional_key("FORENSICS_API_KEY")

# ---------------------------------------------------------------------------
# Provider base URLs
# ---------------------------------------------------------------------------
MORALIS_BASE_URL: str = os.getenv("MORALIS_BASE_URL", "https://deep-index.moralis.io/api/v2.2")
ALCHEMY_NETWORK: str = os.getenv("ALCHEMY_NETWORK", "eth-mainnet")
ETHERSCAN_BASE_URL: str = os.getenv("ETHERSCAN_BASE_URL", "https://api.etherscan.io/api")
OPENSEA_BASE_URL: str = os.getenv("OPENSEA_BASE_URL", "https://api.opensea.io/api/v2")
COINGECKO_BASE_URL: str = os.getenv("COINGECKO_BASE_URL", "https://api.coingecko.com/api/v3")
FORENSICS_BASE_URL: str = os.getenv("FORENSICS_BASE_URL", "https://api.unleashnfts.com/api/v2")

# ---------------------------------------------------------------------------
# Off-chain metadata gateways
# ---------------------------------------------------------------------------
IPFS_GATEWAY: str = os.getenv("IPFS_GATEWAY", "https://ipfs.io/ipfs/")
ARWEAVE_GATEWAY: str = os.getenv("ARWEAVE_GATEWAY", "https://arweave.net/")

# ---------------------------------------------------------------------------
# Timeouts (seconds)
# ---------------------------------------------------------------------------
RPC_TIMEOUT: int = _parse_int("RPC_TIMEOUT", "10", minimum=1)
REQUEST_TIMEOUT: int = _parse_int("REQUEST_TIMEOUT", "20", minimum=1)
METADATA_TIMEOUT: int = _parse_int("METADATA_TIMEOUT", "15", minimum=1)
FACT_TIMEOUT_SECONDS: int = _parse_int("FACT_TIMEOUT_SECONDS", "30", minimum=5)

# ---------------------------------------------------------------------------
# Retry / fallback
# ---------------------------------------------------------------------------
PROVIDER_MAX_ATTEMPTS: int = _parse_int("PROVIDER_MAX_ATTEMPTS", "2", minimum=1)
PROVIDER_RETRY_BASE_DELAY: float = _parse_float(
    "PROVIDER_RETRY_BASE_DELAY", "1.0", low=0.0, high=30.0
)

# Ordered provider chains per fact kind.  The first provider that answers
# authoritatively wins; the rest are only consulted on failure.
PROVIDER_CHAIN_TOKEN_BALANCES = _parse_chain(
    "PROVIDER_CHAIN_TOKEN_BALANCES", "moralis,alchemy,rpc"
)
PROVIDER_CHAIN_NFT_HOLDINGS = _parse_chain("PROVIDER_CHAIN_NFT_HOLDINGS", "moralis,alchemy")
PROVIDER_CHAIN_NFT_METADATA = _parse_chain("PROVIDER_CHAIN_NFT_METADATA", "uri,alchemy,opensea")
PROVIDER_CHAIN_HOLDER_DISTRIBUTION = _parse_chain(
    "PROVIDER_CHAIN_HOLDER_DISTRIBUTION", "moralis,alchemy"
)
PROVIDER_CHAIN_CONTRACT_VERIFICATION = _parse_chain(
    "PROVIDER_CHAIN_CONTRACT_VERIFICATION", "etherscan"
)
PROVIDER_CHAIN_CONTRACT_CREATION = _parse_chain("PROVIDER_CHAIN_CONTRACT_CREATION", "etherscan")
PROVIDER_CHAIN_FLOOR_PRICE = _parse_chain("PROVIDER_CHAIN_FLOOR_PRICE", "opensea,moralis,alchemy")
PROVIDER_CHAIN_TRADING_SIGNALS = _parse_chain("PROVIDER_CHAIN_TRADING_SIGNALS", "forensics")
PROVIDER_CHAIN_WALLET_BEHAVIOR = _parse_chain("PROVIDER_CHAIN_WALLET_BEHAVIOR", "forensics")
PROVIDER_CHAIN_PRICE_ESTIMATE = _parse_chain("PROVIDER_CHAIN_PRICE_ESTIMATE", "forensics")
PROVIDER_CHAIN_TOKEN_PRICES = _parse_chain("PROVIDER_CHAIN_TOKEN_PRICES", "coingecko")

# ---------------------------------------------------------------------------
# Limits
# ---------------------------------------------------------------------------
MAX_CONCURRENT_FETCHES: int = _parse_int("MAX_CONCURRENT_FETCHES", "5", minimum=1)
NFT_SAMPLE_SIZE: int = _parse_int("NFT_SAMPLE_SIZE", "10", minimum=1)
TOKEN_SAMPLE_SIZE: int = _parse_int("TOKEN_SAMPLE_SIZE", "20", minimum=1)

# ---------------------------------------------------------------------------
# Sentry (error tracking)
# ---------------------------------------------------------------------------
SENTRY_DSN: str = os.getenv("SENTRY_DSN", "")
SENTRY_ENVIRONMENT: str = os.getenv("SENTRY_ENVIRONMENT", "production")
SENTRY_TRACES_SAMPLE_RATE: float = _parse_float(
    "SENTRY_TRACES_SAMPLE_RATE", "0.1", low=0.0, high=1.0
)

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT: str = os.getenv("LOG_FORMAT", "text")  # "text" or "json"
