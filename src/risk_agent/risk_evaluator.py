"""
Risk evaluator.

Pure functions that turn canonical facts into ``RiskVerdict`` objects.

Per-item classification (tokens, NFTs, collections) depends only on the
number of factors:

  ≥3 factors → high
  ≥1 factor  → medium
  0          → low

Wallet aggregate score (0-100):
  +3 per high token, +1 per medium token,
  +2 per high NFT,   +1 per medium NFT
  ≥10 → high, ≥5 → medium, else low

Rules are evaluated in a fixed order and append to the factor list, so the
same evidence always produces the same factors in the same order.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional, Sequence

from .constants import (
    ALLOW_LISTED_CONTRACTS,
    ALLOWED_IMAGE_SCHEMES,
    ALLOWED_TOKEN_URI_SCHEMES,
    COPYCAT_WORDS,
    ESTIMATED_TOP_HOLDER_SHARES,
    ESTIMATED_UNIQUE_HOLDER_RATIO,
    FLAGGED_OWNER_ADDRESSES,
    HIGH_CONCENTRATION_PCT,
    HIGH_FACTOR_COUNT,
    KNOWN_AUDITED_COLLECTIONS,
    KNOWN_FAILED_AUDITS,
    KNOWN_SCAM_TOKENS,
    LOCALHOST_MARKERS,
    LOW_PRICE_CONFIDENCE,
    MAX_SYMBOL_LENGTH,
    MEDIUM_CONCENTRATION_PCT,
    MEDIUM_FACTOR_COUNT,
    NFT_BLACKLIST_WORDS,
    NFT_HIGH_POINTS,
    NFT_MEDIUM_POINTS,
    NFT_TEST_COLLECTION_WORDS,
    OWNER_RISK_SCORE_THRESHOLD,
    RECENT_DAYS,
    TEST_COLLECTION_WORDS,
    TOKEN_BLACKLIST_WORDS,
    TOKEN_HIGH_POINTS,
    TOKEN_MEDIUM_POINTS,
    TOP_HOLDER_COUNT,
    VERY_RECENT_DAYS,
    WALLET_HIGH_SCORE,
    WALLET_MEDIUM_SCORE,
    WALLET_SCORE_CAP,
)
from .models import (
    AuditStatus,
    ContractVerification,
    HolderDistribution,
    NFTMetadata,
    PriceEstimate,
    RiskLevel,
    RiskVerdict,
    TokenBalance,
    TopHolder,
    TradingSignal,
    TradingSignalKind,
    WalletBehavior,
)
from .utils import contains_any

# ---------------------------------------------------------------------------
# Factor wording
# ---------------------------------------------------------------------------
FACTOR_KNOWN_SCAM = "Known scam token"
FACTOR_SPAM = "Flagged as possible spam by token indexer"
FACTOR_UNVERIFIED = "Unverified contract"
FACTOR_SUSPICIOUS_TOKEN_NAME = "Suspicious token name or symbol"
FACTOR_LONG_SYMBOL = "Unusually long symbol (possible honeypot)"

FACTOR_METADATA_MISSING = "Metadata not accessible or missing"
FACTOR_METADATA_INCOMPLETE = "Incomplete metadata (missing name and description)"
FACTOR_SUSPICIOUS_NFT_NAME = "Suspicious NFT name detected"
FACTOR_BAD_IMAGE = "Potentially inaccessible image URL"
FACTOR_NO_IMAGE = "No image URL found in metadata"
FACTOR_NO_ATTRIBUTES = "No attributes/traits found"
FACTOR_NO_TOKEN_URI = "Missing or empty token URI"
FACTOR_ONCHAIN_METADATA = "On-chain metadata detected (verify authenticity)"
FACTOR_SUSPICIOUS_TOKEN_URI = "Suspicious token URI format"
FACTOR_LOCALHOST_METADATA = "Metadata hosted on localhost (will not be accessible)"
FACTOR_COPYCAT = "Potential copycat or unofficial collection"
FACTOR_NFT_TEST_COLLECTION = "Test or demo collection detected"
FACTOR_FLAGGED_OWNER = "NFT owned by flagged address"
FACTOR_CONTRACT_OWNER = "NFT owned by smart contract (verify legitimacy)"

FACTOR_TEST_COLLECTION = "Test/Demo collection detected"
FACTOR_VERY_RECENT = f"Very recently created collection (< {VERY_RECENT_DAYS} days)"
FACTOR_RECENT = f"Recently created collection (< {RECENT_DAYS} days)"

FACTOR_ANALYSIS_FAILED = "NFT analysis failed"
FACTOR_TOKEN_MAY_NOT_EXIST = "Token may not exist or be invalid"
FACTOR_OWNER_LOOKUP_FAILED = "Owner lookup failed on-chain"
FACTOR_INTERNAL_ERROR = "Internal analysis error: risk could not be fully assessed"

SIGNAL_FACTORS: dict[TradingSignalKind, str] = {
    TradingSignalKind.WASH_TRADING: "Wash trading activity detected",
    TradingSignalKind.VOLUME_MANIPULATION: "Volume manipulation detected",
    TradingSignalKind.PRICE_MANIPULATION: "Price manipulation detected",
    TradingSignalKind.RAPID_TRANSFERS: "Rapid transfer pattern detected",
    TradingSignalKind.SUSPICIOUS_TIMING: "Suspicious trade timing detected",
    TradingSignalKind.CROSS_PLATFORM_ARBITRAGE: "Cross-platform arbitrage pattern detected",
}


# ---------------------------------------------------------------------------
# Evidence bundles
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TokenEvidence:
    balance: TokenBalance
    verification: Optional[ContractVerification] = None


@dataclass(frozen=True)
class NFTEvidence:
    contract: str
    token_id: str
    metadata: Optional[NFTMetadata] = None
    # Token-URI rules only apply when the URI was actually looked up
    token_uri: Optional[str] = None
    token_uri_checked: bool = False
    collection_name: Optional[str] = None
    verification: Optional[ContractVerification] = None
    created_at: Optional[datetime] = None
    owner: Optional[str] = None
    owner_is_contract: Optional[bool] = None
    signals: tuple[TradingSignal, ...] = ()
    owner_behavior: Optional[WalletBehavior] = None
    price_estimate: Optional[PriceEstimate] = None

    @property
    def subject_id(self) -> str:
        return f"{self.contract}:{self.token_id}"


@dataclass(frozen=True)
class CollectionEvidence:
    contract: str
    name: str = "Unknown Collection"
    total_supply: int = 0
    holders: tuple[HolderDistribution, ...] = ()
    holders_estimated: bool = False
    created_at: Optional[datetime] = None
    verification: Optional[ContractVerification] = None
    signals: tuple[TradingSignal, ...] = ()
    price_estimate: Optional[PriceEstimate] = None


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

def classify_by_factor_count(count: int) -> RiskLevel:
    if count >= HIGH_FACTOR_COUNT:
        return "high"
    if count >= MEDIUM_FACTOR_COUNT:
        return "medium"
    return "low"


def _verdict(subject_id: str, factors: Sequence[str]) -> RiskVerdict:
    return RiskVerdict(
        subject_id=subject_id,
        score=len(factors),
        level=classify_by_factor_count(len(factors)),
        factors=tuple(factors),
    )


def is_allow_listed(address: str) -> bool:
    return address.lower() in ALLOW_LISTED_CONTRACTS


# ---------------------------------------------------------------------------
# Shared rules
# ---------------------------------------------------------------------------

def _unverified(contract: str, verification: Optional[ContractVerification]) -> bool:
    if is_allow_listed(contract):
        return False
    return verification is not None and verification.is_verified is False


def _signal_factors(contract: str, signals: Iterable[TradingSignal]) -> list[str]:
    active = {s.signal for s in signals}
    factors = []
    for kind in TradingSignalKind:
        if kind not in active:
            continue
        if kind is TradingSignalKind.WASH_TRADING and is_allow_listed(contract):
            continue
        factors.append(SIGNAL_FACTORS[kind])
    return factors


def _creation_factor(created_at: Optional[datetime], now: datetime) -> Optional[str]:
    if created_at is None:
        return None
    age_days = (now - created_at).total_seconds() / 86400
    if age_days < VERY_RECENT_DAYS:
        return FACTOR_VERY_RECENT
    if age_days < RECENT_DAYS:
        return FACTOR_RECENT
    return None


def _price_confidence_factor(estimate: Optional[PriceEstimate]) -> Optional[str]:
    if estimate is None or estimate.confidence is None:
        return None
    if estimate.confidence < LOW_PRICE_CONFIDENCE:
        return f"Low price estimate confidence ({round(estimate.confidence * 100)}%)"
    return None


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------

def evaluate_token(evidence: TokenEvidence) -> RiskVerdict:
    token = evidence.balance
    factors: list[str] = []

    if token.token in KNOWN_SCAM_TOKENS:
        factors.append(FACTOR_KNOWN_SCAM)
    if token.possible_spam is True:
        factors.append(FACTOR_SPAM)
    if _unverified(token.token, evidence.verification):
        factors.append(FACTOR_UNVERIFIED)
    if contains_any(token.name, TOKEN_BLACKLIST_WORDS) or contains_any(token.symbol, TOKEN_BLACKLIST_WORDS):
        factors.append(FACTOR_SUSPICIOUS_TOKEN_NAME)
    if token.symbol and len(token.symbol) > MAX_SYMBOL_LENGTH:
        factors.append(FACTOR_LONG_SYMBOL)

    return _verdict(token.token, factors)


# ---------------------------------------------------------------------------
# NFTs
# ---------------------------------------------------------------------------

def _metadata_factors(metadata: Optional[NFTMetadata]) -> list[str]:
    if metadata is None:
        return [FACTOR_METADATA_MISSING]
    factors = []
    if not metadata.name and not metadata.description:
        factors.append(FACTOR_METADATA_INCOMPLETE)
    if contains_any(metadata.name, NFT_BLACKLIST_WORDS):
        factors.append(FACTOR_SUSPICIOUS_NFT_NAME)
    if metadata.image:
        if not metadata.image.startswith(ALLOWED_IMAGE_SCHEMES):
            factors.append(FACTOR_BAD_IMAGE)
    else:
        factors.append(FACTOR_NO_IMAGE)
    if not metadata.attributes:
        factors.append(FACTOR_NO_ATTRIBUTES)
    return factors


def _token_uri_factors(token_uri: Optional[str]) -> list[str]:
    if not token_uri or not token_uri.strip():
        return [FACTOR_NO_TOKEN_URI]
    factors = []
    if token_uri.startswith("data:"):
        factors.append(FACTOR_ONCHAIN_METADATA)
    elif not token_uri.startswith(ALLOWED_TOKEN_URI_SCHEMES):
        factors.append(FACTOR_SUSPICIOUS_TOKEN_URI)
    if any(marker in token_uri for marker in LOCALHOST_MARKERS):
        factors.append(FACTOR_LOCALHOST_METADATA)
    return factors


def evaluate_nft(evidence: NFTEvidence, now: datetime) -> RiskVerdict:
    factors = _metadata_factors(evidence.metadata)

    if evidence.token_uri_checked:
        factors.extend(_token_uri_factors(evidence.token_uri))

    if _unverified(evidence.contract, evidence.verification):
        factors.append(FACTOR_UNVERIFIED)

    if contains_any(evidence.collection_name, COPYCAT_WORDS):
        factors.append(FACTOR_COPYCAT)
    if contains_any(evidence.collection_name, NFT_TEST_COLLECTION_WORDS):
        factors.append(FACTOR_NFT_TEST_COLLECTION)
    creation = _creation_factor(evidence.created_at, now)
    if creation:
        factors.append(creation)

    if evidence.owner is not None:
        if evidence.owner.lower() in FLAGGED_OWNER_ADDRESSES:
            factors.append(FACTOR_FLAGGED_OWNER)
        if evidence.owner_is_contract is True:
            factors.append(FACTOR_CONTRACT_OWNER)

    factors.extend(_signal_factors(evidence.contract, evidence.signals))

    behavior = evidence.owner_behavior
    if behavior is not None:
        if behavior.risk_score > OWNER_RISK_SCORE_THRESHOLD:
            factors.append(f"Owner wallet has elevated risk score ({round(behavior.risk_score)}/100)")
        factors.extend(f"Owner wallet flagged: {flag}" for flag in behavior.flags)

    confidence = _price_confidence_factor(evidence.price_estimate)
    if confidence:
        factors.append(confidence)

    return _verdict(evidence.subject_id, factors)


def failed_nft_verdict(subject_id: str) -> RiskVerdict:
    """Terminal verdict for an NFT whose owner could not be read on-chain."""
    return RiskVerdict(
        subject_id=subject_id,
        score=3,
        level="high",
        factors=(FACTOR_ANALYSIS_FAILED, FACTOR_TOKEN_MAY_NOT_EXIST, FACTOR_OWNER_LOOKUP_FAILED),
        analysis_failed=True,
    )


def internal_failure_verdict(subject_id: str) -> RiskVerdict:
    return RiskVerdict(
        subject_id=subject_id,
        score=1,
        level="high",
        factors=(FACTOR_INTERNAL_ERROR,),
        analysis_failed=True,
    )


# ---------------------------------------------------------------------------
# Collections
# ---------------------------------------------------------------------------

def top_holders(
    holders: Sequence[HolderDistribution],
    total_supply: int,
) -> tuple[int, list[TopHolder]]:
    """Unique holder count and the ``TOP_HOLDER_COUNT`` largest holders.

    Percentages are relative to *total_supply*, or to the sum of all
    counted tokens when the supply is unknown.
    """
    ranked = sorted(holders, key=lambda h: (-h.count, h.holder_address))
    denominator = total_supply if total_supply > 0 else sum(h.count for h in ranked)
    top = []
    for holder in ranked[:TOP_HOLDER_COUNT]:
        pct = holder.count / denominator * 100 if denominator else 0.0
        top.append(TopHolder(address=holder.holder_address, count=holder.count, percentage=round(min(pct, 100.0), 2)))
    return len(ranked), top


def estimated_holder_distribution(total_supply: int) -> tuple[int, list[TopHolder]]:
    """Statistical stand-in used when no holder provider answered.

    Without a known supply there is nothing to distribute, so no top holders
    are reported.
    """
    if total_supply <= 0:
        return 0, []
    holder_count = int(total_supply * ESTIMATED_UNIQUE_HOLDER_RATIO)
    top = [
        TopHolder(address=None, count=int(total_supply * share / 100), percentage=share)
        for share in ESTIMATED_TOP_HOLDER_SHARES
    ]
    return holder_count, top


def concentration_pct(holders: Sequence[TopHolder]) -> float:
    return round(sum(h.percentage for h in holders[:TOP_HOLDER_COUNT]), 1)


def evaluate_collection(evidence: CollectionEvidence, now: datetime) -> RiskVerdict:
    factors: list[str] = []

    if not evidence.holders_estimated and evidence.holders:
        _, top = top_holders(evidence.holders, evidence.total_supply)
        pct = concentration_pct(top)
        if pct > HIGH_CONCENTRATION_PCT:
            factors.append(f"Top {TOP_HOLDER_COUNT} holders own {pct:.1f}% of supply (high concentration)")
        elif pct > MEDIUM_CONCENTRATION_PCT:
            factors.append(f"Top {TOP_HOLDER_COUNT} holders own {pct:.1f}% of supply (medium concentration)")

    if contains_any(evidence.name, TEST_COLLECTION_WORDS):
        factors.append(FACTOR_TEST_COLLECTION)
    if contains_any(evidence.name, COPYCAT_WORDS):
        factors.append(FACTOR_COPYCAT)

    creation = _creation_factor(evidence.created_at, now)
    if creation:
        factors.append(creation)

    factors.extend(_signal_factors(evidence.contract, evidence.signals))

    if _unverified(evidence.contract, evidence.verification):
        factors.append(FACTOR_UNVERIFIED)

    confidence = _price_confidence_factor(evidence.price_estimate)
    if confidence:
        factors.append(confidence)

    return _verdict(evidence.contract, factors)


def audit_status(contract: str) -> AuditStatus:
    address = contract.lower()
    if address in KNOWN_FAILED_AUDITS:
        return "failed"
    if address in KNOWN_AUDITED_COLLECTIONS:
        return "passed"
    return "unknown"


# ---------------------------------------------------------------------------
# Wallet aggregate
# ---------------------------------------------------------------------------

def wallet_risk_score(token_levels: Iterable[RiskLevel], nft_levels: Iterable[RiskLevel]) -> int:
    score = 0
    for level in token_levels:
        if level == "high":
            score += TOKEN_HIGH_POINTS
        elif level == "medium":
            score += TOKEN_MEDIUM_POINTS
    for level in nft_levels:
        if level == "high":
            score += NFT_HIGH_POINTS
        elif level == "medium":
            score += NFT_MEDIUM_POINTS
    return min(score, WALLET_SCORE_CAP)


def wallet_risk_level(score: int) -> RiskLevel:
    if score >= WALLET_HIGH_SCORE:
        return "high"
    if score >= WALLET_MEDIUM_SCORE:
        return "medium"
    return "low"


def wallet_summary(risky_tokens: int, flagged_nfts: int, level: RiskLevel) -> str:
    summary = "Wallet analysis complete. "
    if risky_tokens or flagged_nfts:
        summary += f"Found {risky_tokens} risky tokens and {flagged_nfts} flagged NFTs. "
    else:
        summary += "No significant risks detected. "
    return summary + f"Overall risk level: {level.upper()}."
