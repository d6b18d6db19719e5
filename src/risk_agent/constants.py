"""
Centralized constants for the Wallet Risk Agent.

This file contains:
- ERC-20 / ERC-721 function selectors used for raw ``eth_call`` requests
- Static address lists (known-safe tokens, verified / audited collections,
  scam tokens, flagged owners) used as allow-list overrides
- Rule keywords and classification thresholds shared by the risk evaluator

All sets are immutable and hold lowercase addresses.  Import from this module
rather than duplicating values across services.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Function selectors (first 4 bytes of keccak256 of the signature)
# ---------------------------------------------------------------------------
SELECTOR_NAME = "0x06fdde03"          # name()
SELECTOR_SYMBOL = "0x95d89b41"        # symbol()
SELECTOR_DECIMALS = "0x313ce567"      # decimals()
SELECTOR_TOTAL_SUPPLY = "0x18160ddd"  # totalSupply()
SELECTOR_BALANCE_OF = "0x70a08231"    # balanceOf(address)
SELECTOR_OWNER_OF = "0x6352211e"      # ownerOf(uint256)
SELECTOR_TOKEN_URI = "0xc87b56dd"     # tokenURI(uint256)

ETH_DECIMALS: int = 18
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# ---------------------------------------------------------------------------
# Tokens probed directly on-chain when no indexer is available
# ---------------------------------------------------------------------------
COMMON_TOKENS: tuple[str, ...] = (
    "0xdac17f958d2ee523a2206206994597c13d831ec7",  # USDT
    "0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48",  # USDC
    "0x6b175474e89094c44da98b954eedeac495271d0f",  # DAI
    "0x2260fac5e5542a773aa44fbcfedf7c193bc2c599",  # WBTC
    "0xc02aaa39b223fe8d0a0e5c4f27ead9083c756cc2",  # WETH
)

# ---------------------------------------------------------------------------
# Allow-lists (override the unverified-contract and wash-trading rules)
# ---------------------------------------------------------------------------
KNOWN_SAFE_TOKENS: frozenset[str] = frozenset({
    "0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48",  # USDC
    "0xa0b86a33e6441e78ca8e27d0e7c8b1c8b8b8b8b8",  # USDC (legacy listing)
    "0xdac17f958d2ee523a2206206994597c13d831ec7",  # USDT
    "0x2260fac5e5542a773aa44fbcfedf7c193bc2c599",  # WBTC
    "0x6b175474e89094c44da98b954eedeac495271d0f",  # DAI
    "0xc02aaa39b223fe8d0a0e5c4f27ead9083c756cc2",  # WETH
})

KNOWN_VERIFIED_COLLECTIONS: frozenset[str] = frozenset({
    "0xbc4ca0eda7647a8ab7c2061c2e118a18a936f13d",  # BAYC
    "0x60e4d786628fea6478f785a6d7e704777c86a7c6",  # MAYC
    "0xed5af388653567af2f388e6224dc7c4b3241c544",  # Azuki
    "0x8a90cab2b38dba80c64b7734e58ee1db38b8992e",  # Doodles
    "0x49cf6f5d44e70224e2e23fdcdd2c053f30ada28b",  # CloneX
    "0x23581767a106ae21c074b2276d25e5c3e136a68b",  # Moonbirds
    "0x34d85c9cdeb23fa97cb08333b511ac86e1c4e258",  # Otherdeeds
    "0x57f1887a8bf19b14fc0df6fd9b2acc9af147ea85",  # ENS
})

KNOWN_AUDITED_COLLECTIONS: frozenset[str] = frozenset({
    "0xbc4ca0eda7647a8ab7c2061c2e118a18a936f13d",  # BAYC
    "0x60e4d786628fea6478f785a6d7e704777c86a7c6",  # MAYC
    "0xed5af388653567af2f388e6224dc7c4b3241c544",  # Azuki
    "0x57f1887a8bf19b14fc0df6fd9b2acc9af147ea85",  # ENS
})

# Collections with a published failed audit or confirmed exploit.
KNOWN_FAILED_AUDITS: frozenset[str] = frozenset()

KNOWN_SCAM_TOKENS: frozenset[str] = frozenset()

FLAGGED_OWNER_ADDRESSES: frozenset[str] = frozenset({
    ZERO_ADDRESS,
})

# Union of everything that suppresses the unverified / wash-trading rules.
ALLOW_LISTED_CONTRACTS: frozenset[str] = (
    KNOWN_SAFE_TOKENS | KNOWN_VERIFIED_COLLECTIONS | KNOWN_AUDITED_COLLECTIONS
)

# ---------------------------------------------------------------------------
# Rule keywords
# ---------------------------------------------------------------------------
TOKEN_BLACKLIST_WORDS: tuple[str, ...] = ("test", "scam", "fake", "phishing")
NFT_BLACKLIST_WORDS: tuple[str, ...] = ("test", "scam", "fake", "phishing", "copy")
TEST_COLLECTION_WORDS: tuple[str, ...] = ("test", "demo")
NFT_TEST_COLLECTION_WORDS: tuple[str, ...] = ("test", "demo", "sample")
COPYCAT_WORDS: tuple[str, ...] = ("copy", "fake", "clone", "unofficial")
ALLOWED_IMAGE_SCHEMES: tuple[str, ...] = ("https://", "ipfs://", "data:")
ALLOWED_TOKEN_URI_SCHEMES: tuple[str, ...] = ("https://", "ipfs://")
LOCALHOST_MARKERS: tuple[str, ...] = ("localhost", "127.0.0.1")

# ---------------------------------------------------------------------------
# Thresholds
# ---------------------------------------------------------------------------

# Per-item classification by factor count (tokens, NFTs, collections)
HIGH_FACTOR_COUNT: int = 3
MEDIUM_FACTOR_COUNT: int = 1

# Wallet aggregate score
WALLET_SCORE_CAP: int = 100
WALLET_HIGH_SCORE: int = 10
WALLET_MEDIUM_SCORE: int = 5
TOKEN_HIGH_POINTS: int = 3
TOKEN_MEDIUM_POINTS: int = 1
NFT_HIGH_POINTS: int = 2
NFT_MEDIUM_POINTS: int = 1

MAX_SYMBOL_LENGTH: int = 10
OWNER_RISK_SCORE_THRESHOLD: int = 70
LOW_PRICE_CONFIDENCE: float = 0.3
HIGH_CONCENTRATION_PCT: float = 50.0
MEDIUM_CONCENTRATION_PCT: float = 30.0
TOP_HOLDER_COUNT: int = 5
VERY_RECENT_DAYS: int = 7
RECENT_DAYS: int = 30

# Estimated holder distribution used when no holder provider answers:
# unique holders as a share of supply, and top-5 shares in percent.
ESTIMATED_UNIQUE_HOLDER_RATIO: float = 0.6
ESTIMATED_TOP_HOLDER_SHARES: tuple[float, ...] = (3.0, 2.5, 2.0, 1.8, 1.5)
