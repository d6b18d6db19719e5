"""
Pydantic models used throughout the Wallet Risk Agent.

Three groups:

- **Subjects**: what is being analysed (wallet, contract, single NFT)
- **Facts**: immutable, provider-attributed observations produced by the
  normalizer
- **Results**: verdicts and the three public response shapes
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

RiskLevel = Literal["low", "medium", "high"]
AuditStatus = Literal["passed", "failed", "unknown"]
StorageScheme = Literal["ipfs", "https", "http", "arweave", "data", "unknown"]


# ---------------------------------------------------------------------------
# Subjects
# ---------------------------------------------------------------------------
class WalletSubject(BaseModel):
    """An externally owned account (or any address) being scanned."""

    model_config = ConfigDict(frozen=True)

    address: str = Field(..., description="Lowercase 0x-prefixed address")

    @property
    def subject_id(self) -> str:
        return self.address


class ContractSubject(BaseModel):
    """An NFT collection or fungible token contract."""

    model_config = ConfigDict(frozen=True)

    address: str = Field(..., description="Lowercase contract address")

    @property
    def subject_id(self) -> str:
        return self.address


class NFTSubject(BaseModel):
    """A single token of an ERC-721 collection."""

    model_config = ConfigDict(frozen=True)

    contract: str = Field(..., description="Lowercase contract address")
    token_id: str = Field(..., description="Decimal token ID")

    @property
    def subject_id(self) -> str:
        return f"{self.contract}:{self.token_id}"


Subject = Union[WalletSubject, ContractSubject, NFTSubject]


# ---------------------------------------------------------------------------
# Fact kinds
# ---------------------------------------------------------------------------
class FactKind(str, Enum):
    TOKEN_BALANCES = "token_balances"
    NFT_HOLDINGS = "nft_holdings"
    NFT_METADATA = "nft_metadata"
    HOLDER_DISTRIBUTION = "holder_distribution"
    CONTRACT_VERIFICATION = "contract_verification"
    CONTRACT_CREATION = "contract_creation"
    FLOOR_PRICE = "floor_price"
    TRADING_SIGNALS = "trading_signals"
    WALLET_BEHAVIOR = "wallet_behavior"
    PRICE_ESTIMATE = "price_estimate"
    TOKEN_PRICES = "token_prices"


class TradingSignalKind(str, Enum):
    """Trading-pattern flags reported by the forensics provider.

    Declaration order is the order in which risk factors are emitted.
    """

    WASH_TRADING = "wash_trading"
    VOLUME_MANIPULATION = "volume_manipulation"
    PRICE_MANIPULATION = "price_manipulation"
    RAPID_TRANSFERS = "rapid_transfers"
    SUSPICIOUS_TIMING = "suspicious_timing"
    CROSS_PLATFORM_ARBITRAGE = "cross_platform_arbitrage"


# ---------------------------------------------------------------------------
# Facts
# ---------------------------------------------------------------------------
class Fact(BaseModel):
    """Base for every canonical observation."""

    model_config = ConfigDict(frozen=True)

    provider: str = Field(..., description="Provider that produced this fact")


class TokenBalance(Fact):
    kind: Literal["token_balance"] = "token_balance"
    token: str = Field(..., description="Lowercase ERC-20 contract address")
    amount: str = Field("0", description="Decimal balance after applying decimals")
    decimals: int = Field(18, ge=0)
    name: Optional[str] = None
    symbol: Optional[str] = None
    possible_spam: Optional[bool] = None


class NFTMetadata(Fact):
    kind: Literal["metadata"] = "metadata"
    name: Optional[str] = None
    description: Optional[str] = None
    image: Optional[str] = None
    attributes: Optional[list[Any]] = None
    storage_scheme: StorageScheme = "unknown"
    raw: dict[str, Any] = Field(default_factory=dict, description="Original document")


class NFTHolding(Fact):
    kind: Literal["nft_holding"] = "nft_holding"
    contract: str
    token_id: str
    metadata_ref: Optional[str] = Field(None, description="tokenURI as reported")
    collection_name: Optional[str] = None
    metadata: Optional[NFTMetadata] = None


class HolderDistribution(Fact):
    kind: Literal["holder_distribution"] = "holder_distribution"
    holder_address: str
    count: int = Field(..., ge=0)


class ContractVerification(Fact):
    kind: Literal["contract_verification"] = "contract_verification"
    contract: str
    is_verified: Optional[bool] = None
    creation_timestamp: Optional[datetime] = None


class TradingSignal(Fact):
    kind: Literal["trading_signal"] = "trading_signal"
    signal: TradingSignalKind


class WalletBehavior(Fact):
    kind: Literal["wallet_behavior"] = "wallet_behavior"
    address: str
    risk_score: float = Field(..., ge=0.0, le=100.0)
    flags: tuple[str, ...] = ()


class PriceEstimate(Fact):
    kind: Literal["price_estimate"] = "price_estimate"
    asset: str = Field(..., description="Contract or contract:tokenId")
    value: Optional[float] = None
    confidence: Optional[float] = Field(None, ge=0.0, le=1.0)
    currency: str = "usd"


class FloorPrice(Fact):
    kind: Literal["floor_price"] = "floor_price"
    contract: str
    value: float = Field(..., ge=0.0)
    currency: str = "eth"
    marketplace: Optional[str] = None


AnyFact = Union[
    TokenBalance,
    NFTMetadata,
    NFTHolding,
    HolderDistribution,
    ContractVerification,
    TradingSignal,
    WalletBehavior,
    PriceEstimate,
    FloorPrice,
]


# ---------------------------------------------------------------------------
# Verdict
# ---------------------------------------------------------------------------
class RiskVerdict(BaseModel):
    """Outcome of one evaluation.  Request-scoped, never persisted."""

    model_config = ConfigDict(frozen=True)

    subject_id: str
    score: int = Field(0, ge=0)
    level: RiskLevel = "low"
    factors: tuple[str, ...] = ()
    analysis_failed: bool = False


# ---------------------------------------------------------------------------
# Public response shapes (camelCase on the wire)
# ---------------------------------------------------------------------------
class _ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TokenInfo(_ApiModel):
    """A fungible token held by a scanned wallet."""

    address: str
    name: str = ""
    symbol: str = ""
    decimals: int = 18
    balance: str = "0"
    price: Optional[float] = None
    risk_level: RiskLevel = "low"
    risk_factors: list[str] = Field(default_factory=list)


class NFTInfo(_ApiModel):
    """An NFT, either analysed on its own or as part of a wallet scan."""

    contract_address: str
    token_id: str
    name: Optional[str] = None
    description: Optional[str] = None
    image: Optional[str] = None
    risk_level: RiskLevel = "low"
    risk_factors: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    analysis_failed: bool = False


class TopHolder(_ApiModel):
    address: Optional[str] = Field(None, description="None when the entry is estimated")
    count: int = Field(0, ge=0)
    percentage: float = Field(0.0, ge=0.0, le=100.0)


class CollectionInfo(_ApiModel):
    """Result of ``check_collection``."""

    contract_address: str
    name: str = "Unknown Collection"
    total_supply: int = 0
    floor_price: Optional[float] = None
    holder_count: int = 0
    top_holders: list[TopHolder] = Field(default_factory=list)
    holder_data_estimated: bool = Field(
        False, description="True when holders are a statistical estimate, not measured"
    )
    risk_level: RiskLevel = "low"
    risk_factors: list[str] = Field(default_factory=list)
    audit_status: AuditStatus = "unknown"
    analysis_failed: bool = False


class WalletAnalysis(_ApiModel):
    """Result of ``scan_wallet``."""

    address: str
    eth_balance: str = "0.0"
    tokens: list[TokenInfo] = Field(default_factory=list)
    nfts: list[NFTInfo] = Field(default_factory=list)
    risk_score: int = Field(0, ge=0, le=100)
    risk_level: RiskLevel = "low"
    summary: str = ""
    analysis_failed: bool = False
