"""
Fact normalizer: provider payloads → canonical facts.

One pure function per (provider, fact kind).  Each takes the subject that
was queried and the raw JSON payload, and returns a list of ``Fact``
records.  Optional fields the provider did not send stay ``None``; only
numeric balances default to ``"0"``.  Token balances that normalize to
zero or less are dropped.  A payload whose shape is not recognised raises
``MalformedPayload`` so the coordinator can fall through to the next
provider.
"""

from __future__ import annotations

import json
import logging
from collections import defaultdict
from typing import Any, Callable, Optional

from pydantic import ValidationError

from .errors import MalformedPayload
from .models import (
    ContractVerification,
    Fact,
    FactKind,
    FloorPrice,
    HolderDistribution,
    NFTHolding,
    NFTMetadata,
    NFTSubject,
    PriceEstimate,
    Subject,
    TokenBalance,
    TradingSignal,
    TradingSignalKind,
    WalletBehavior,
)
from .utils import format_units, hex_to_int, is_positive_amount, parse_datetime, storage_scheme

logger = logging.getLogger(__name__)

Normalizer = Callable[[Subject, Any], list[Fact]]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _require_dict(provider: str, payload: Any) -> dict[str, Any]:
    if not isinstance(payload, dict):
        raise MalformedPayload(provider, f"expected an object, got {type(payload).__name__}")
    return payload


def _require_list(provider: str, payload: Any, key: Optional[str] = None) -> list[Any]:
    """Return the list at ``payload[key]`` (or *payload* itself when it is a list)."""
    if isinstance(payload, list):
        return payload
    if key is not None and isinstance(payload, dict) and key in payload:
        value = payload[key]
        if value is None:
            return []
        if isinstance(value, list):
            return value
    raise MalformedPayload(provider, f"expected a list{f' under {key!r}' if key else ''}")


def _str_or_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _float_or_none(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _lower(value: Any) -> Optional[str]:
    text = _str_or_none(value)
    return text.lower() if text else None


def _build(provider: str, factory: Callable[..., Fact], **fields: Any) -> Fact:
    """Instantiate a fact, turning pydantic validation errors into ``MalformedPayload``."""
    try:
        return factory(provider=provider, **fields)
    except ValidationError as exc:
        raise MalformedPayload(provider, f"invalid {factory.__name__}: {exc.error_count()} error(s)") from exc


def _amount(raw: Any, decimals: int) -> str:
    """Raw base-unit balance → decimal string; missing balances become ``"0"``."""
    value = hex_to_int(raw) if raw is not None else 0
    if value is None:
        return "0"
    return format_units(value, decimals)


def _decimals(value: Any) -> int:
    parsed = hex_to_int(value) if value is not None else None
    return parsed if parsed is not None and parsed >= 0 else 18


def metadata_from_document(
    provider: str,
    document: dict[str, Any],
    uri: Optional[str],
) -> NFTMetadata:
    """Build a ``Metadata`` fact from an ERC-721 metadata JSON document."""
    image = _str_or_none(document.get("image") or document.get("image_url") or document.get("image_data"))
    attributes = document.get("attributes")
    if attributes is None:
        attributes = document.get("traits")
    if attributes is not None and not isinstance(attributes, list):
        attributes = [attributes] if isinstance(attributes, dict) else None
    return NFTMetadata(
        provider=provider,
        name=_str_or_none(document.get("name")),
        description=_str_or_none(document.get("description")),
        image=image,
        attributes=attributes,
        storage_scheme=storage_scheme(uri),
        raw=document,
    )


def _parse_json_document(value: Any) -> Optional[dict[str, Any]]:
    """Moralis ships raw metadata as a JSON string; decode it when present."""
    if isinstance(value, dict):
        return value
    if isinstance(value, str) and value.strip():
        try:
            decoded = json.loads(value)
        except ValueError:
            return None
        return decoded if isinstance(decoded, dict) else None
    return None


# ---------------------------------------------------------------------------
# Token balances
# ---------------------------------------------------------------------------

def moralis_token_balances(subject: Subject, payload: Any) -> list[Fact]:
    """``/{address}/erc20``: list of token rows (or ``{"result": [...]}``)."""
    rows = _require_list("moralis", payload, "result")
    facts: list[Fact] = []
    for row in rows:
        if not isinstance(row, dict):
            raise MalformedPayload("moralis", "token row is not an object")
        token = _lower(row.get("token_address"))
        if not token:
            raise MalformedPayload("moralis", "token row without token_address")
        decimals = _decimals(row.get("decimals"))
        amount = _amount(row.get("balance"), decimals)
        if not is_positive_amount(amount):
            continue
        spam = row.get("possible_spam")
        facts.append(_build(
            "moralis", TokenBalance,
            token=token,
            amount=amount,
            decimals=decimals,
            name=_str_or_none(row.get("name")),
            symbol=_str_or_none(row.get("symbol")),
            possible_spam=spam if isinstance(spam, bool) else None,
        ))
        verified = row.get("verified_contract")
        if isinstance(verified, bool):
            facts.append(_build("moralis", ContractVerification, contract=token, is_verified=verified))
    return facts


def alchemy_token_balances(subject: Subject, payload: Any) -> list[Fact]:
    """``{"balances": [{contractAddress, tokenBalance}], "metadata": {...}}``."""
    body = _require_dict("alchemy", payload)
    balances = _require_list("alchemy", body.get("balances"))
    metadata = body.get("metadata") or {}
    if not isinstance(metadata, dict):
        raise MalformedPayload("alchemy", "metadata is not an object")
    facts: list[Fact] = []
    for row in balances:
        if not isinstance(row, dict):
            raise MalformedPayload("alchemy", "balance row is not an object")
        token = _lower(row.get("contractAddress"))
        if not token:
            raise MalformedPayload("alchemy", "balance row without contractAddress")
        meta = metadata.get(token) or {}
        decimals = _decimals(meta.get("decimals"))
        amount = _amount(row.get("tokenBalance"), decimals)
        if not is_positive_amount(amount):
            continue
        facts.append(_build(
            "alchemy", TokenBalance,
            token=token,
            amount=amount,
            decimals=decimals,
            name=_str_or_none(meta.get("name")),
            symbol=_str_or_none(meta.get("symbol")),
        ))
    return facts


def rpc_token_balances(subject: Subject, payload: Any) -> list[Fact]:
    """Direct ``balanceOf`` probes of well-known tokens."""
    rows = _require_list("rpc", payload)
    facts: list[Fact] = []
    for row in rows:
        if not isinstance(row, dict) or not row.get("contractAddress"):
            raise MalformedPayload("rpc", "probe row without contractAddress")
        decimals = _decimals(row.get("decimals"))
        amount = _amount(row.get("balance"), decimals)
        if not is_positive_amount(amount):
            continue
        facts.append(_build(
            "rpc", TokenBalance,
            token=str(row["contractAddress"]).lower(),
            amount=amount,
            decimals=decimals,
            name=_str_or_none(row.get("name")),
            symbol=_str_or_none(row.get("symbol")),
        ))
    return facts


# ---------------------------------------------------------------------------
# NFT holdings
# ---------------------------------------------------------------------------

def moralis_nft_holdings(subject: Subject, payload: Any) -> list[Fact]:
    rows = _require_list("moralis", payload, "result")
    facts: list[Fact] = []
    for row in rows:
        if not isinstance(row, dict):
            raise MalformedPayload("moralis", "NFT row is not an object")
        contract = _lower(row.get("token_address"))
        token_id = _str_or_none(row.get("token_id"))
        if not contract or token_id is None:
            raise MalformedPayload("moralis", "NFT row without token_address/token_id")
        uri = _str_or_none(row.get("token_uri"))
        document = _parse_json_document(row.get("normalized_metadata"))
        if document is None or not any(document.get(k) for k in ("name", "description", "image")):
            document = _parse_json_document(row.get("metadata")) or None
        facts.append(_build(
            "moralis", NFTHolding,
            contract=contract,
            token_id=token_id,
            metadata_ref=uri,
            collection_name=_str_or_none(row.get("name")),
            metadata=metadata_from_document("moralis", document, uri) if document is not None else None,
        ))
    return facts


def _alchemy_nft_document(nft: dict[str, Any]) -> tuple[Optional[dict[str, Any]], Optional[str]]:
    raw = nft.get("raw") or {}
    uri = _str_or_none(nft.get("tokenUri")) or _str_or_none(raw.get("tokenUri"))
    document = raw.get("metadata") if isinstance(raw.get("metadata"), dict) else None
    if document is not None and not document:
        document = None
    if document is None and (nft.get("name") or nft.get("description")):
        image = nft.get("image") or {}
        document = {
            "name": nft.get("name"),
            "description": nft.get("description"),
            "image": image.get("originalUrl") if isinstance(image, dict) else None,
        }
    return document, uri


def alchemy_nft_holdings(subject: Subject, payload: Any) -> list[Fact]:
    body = _require_dict("alchemy", payload)
    rows = _require_list("alchemy", body, "ownedNfts")
    facts: list[Fact] = []
    for nft in rows:
        if not isinstance(nft, dict):
            raise MalformedPayload("alchemy", "NFT row is not an object")
        contract_info = nft.get("contract") or {}
        contract = _lower(contract_info.get("address"))
        token_id = _str_or_none(nft.get("tokenId"))
        if not contract or token_id is None:
            raise MalformedPayload("alchemy", "NFT row without contract/tokenId")
        document, uri = _alchemy_nft_document(nft)
        facts.append(_build(
            "alchemy", NFTHolding,
            contract=contract,
            token_id=str(hex_to_int(token_id) if token_id.lower().startswith("0x") else token_id),
            metadata_ref=uri,
            collection_name=_str_or_none(contract_info.get("name")),
            metadata=metadata_from_document("alchemy", document, uri) if document is not None else None,
        ))
    return facts


# ---------------------------------------------------------------------------
# NFT metadata
# ---------------------------------------------------------------------------

def uri_nft_metadata(subject: Subject, payload: Any) -> list[Fact]:
    body = _require_dict("uri", payload)
    document = _require_dict("uri", body.get("document"))
    return [metadata_from_document("uri", document, _str_or_none(body.get("uri")))]


def alchemy_nft_metadata(subject: Subject, payload: Any) -> list[Fact]:
    body = _require_dict("alchemy", payload)
    document, uri = _alchemy_nft_document(body)
    if document is None:
        return []
    return [metadata_from_document("alchemy", document, uri)]


def opensea_nft_metadata(subject: Subject, payload: Any) -> list[Fact]:
    body = _require_dict("opensea", payload)
    nft = _require_dict("opensea", body.get("nft"))
    document = {
        "name": nft.get("name"),
        "description": nft.get("description"),
        "image": nft.get("image_url") or nft.get("display_image_url"),
        "attributes": nft.get("traits"),
    }
    return [metadata_from_document("opensea", document, _str_or_none(nft.get("metadata_url")))]


# ---------------------------------------------------------------------------
# Holder distribution
# ---------------------------------------------------------------------------

def _distribution(provider: str, counts: dict[str, int]) -> list[Fact]:
    ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    return [
        _build(provider, HolderDistribution, holder_address=address, count=count)
        for address, count in ranked
    ]


def moralis_holder_distribution(subject: Subject, payload: Any) -> list[Fact]:
    rows = _require_list("moralis", payload, "result")
    counts: dict[str, int] = defaultdict(int)
    for row in rows:
        if not isinstance(row, dict):
            raise MalformedPayload("moralis", "owner row is not an object")
        owner = _lower(row.get("owner_of"))
        if not owner:
            raise MalformedPayload("moralis", "owner row without owner_of")
        amount = hex_to_int(row.get("amount")) if row.get("amount") is not None else 1
        counts[owner] += amount if amount and amount > 0 else 1
    return _distribution("moralis", counts)


def alchemy_holder_distribution(subject: Subject, payload: Any) -> list[Fact]:
    body = _require_dict("alchemy", payload)
    rows = _require_list("alchemy", body, "owners")
    counts: dict[str, int] = defaultdict(int)
    for row in rows:
        if isinstance(row, str):
            counts[row.lower()] += 1
            continue
        if not isinstance(row, dict):
            raise MalformedPayload("alchemy", "owner row is not an object")
        owner = _lower(row.get("ownerAddress"))
        if not owner:
            raise MalformedPayload("alchemy", "owner row without ownerAddress")
        balances = row.get("tokenBalances") or []
        total = sum((hex_to_int(b.get("balance")) or 0) for b in balances if isinstance(b, dict))
        counts[owner] += total if total > 0 else max(len(balances), 1)
    return _distribution("alchemy", counts)


# ---------------------------------------------------------------------------
# Contract verification / creation
# ---------------------------------------------------------------------------

def etherscan_contract_verification(subject: Subject, payload: Any) -> list[Fact]:
    body = _require_dict("etherscan", payload)
    rows = _require_list("etherscan", body, "result")
    if not rows:
        return []
    row = rows[0]
    if not isinstance(row, dict):
        raise MalformedPayload("etherscan", "source row is not an object")
    verified = bool(_str_or_none(row.get("SourceCode")))
    return [_build("etherscan", ContractVerification, contract=_subject_contract(subject), is_verified=verified)]


def etherscan_contract_creation(subject: Subject, payload: Any) -> list[Fact]:
    body = _require_dict("etherscan", payload)
    rows = _require_list("etherscan", body, "result")
    if not rows:
        return []
    row = rows[0]
    if not isinstance(row, dict):
        raise MalformedPayload("etherscan", "transaction row is not an object")
    created = parse_datetime(row.get("timeStamp"))
    if created is None:
        raise MalformedPayload("etherscan", "transaction without a usable timeStamp")
    return [_build(
        "etherscan", ContractVerification,
        contract=_subject_contract(subject),
        creation_timestamp=created,
    )]


def _subject_contract(subject: Subject) -> str:
    if isinstance(subject, NFTSubject):
        return subject.contract
    return subject.address


# ---------------------------------------------------------------------------
# Floor price
# ---------------------------------------------------------------------------

def opensea_floor_price(subject: Subject, payload: Any) -> list[Fact]:
    body = _require_dict("opensea", payload)
    stats = _require_dict("opensea", body.get("stats"))
    total = stats.get("total") or {}
    value = _float_or_none(total.get("floor_price"))
    if value is None or value <= 0:
        return []
    return [_build(
        "opensea", FloorPrice,
        contract=_subject_contract(subject),
        value=value,
        currency=(_str_or_none(total.get("floor_price_symbol")) or "eth").lower(),
        marketplace="opensea",
    )]


def moralis_floor_price(subject: Subject, payload: Any) -> list[Fact]:
    body = _require_dict("moralis", payload)
    value = _float_or_none(body.get("floor_price"))
    if value is None or value <= 0:
        return []
    marketplace = body.get("marketplace")
    return [_build(
        "moralis", FloorPrice,
        contract=_subject_contract(subject),
        value=value,
        currency=(_str_or_none(body.get("floor_price_currency")) or "eth").lower(),
        marketplace=_str_or_none(marketplace.get("name")) if isinstance(marketplace, dict) else None,
    )]


def alchemy_floor_price(subject: Subject, payload: Any) -> list[Fact]:
    body = _require_dict("alchemy", payload)
    for key, marketplace in (("openSea", "opensea"), ("looksRare", "looksrare")):
        entry = body.get(key)
        if not isinstance(entry, dict):
            continue
        value = _float_or_none(entry.get("floorPrice"))
        if value is not None and value > 0:
            return [_build(
                "alchemy", FloorPrice,
                contract=_subject_contract(subject),
                value=value,
                currency=(_str_or_none(entry.get("priceCurrency")) or "eth").lower(),
                marketplace=marketplace,
            )]
    return []


# ---------------------------------------------------------------------------
# Forensics
# ---------------------------------------------------------------------------

_SIGNAL_ALIASES = {kind.value: kind for kind in TradingSignalKind}


def forensics_trading_signals(subject: Subject, payload: Any) -> list[Fact]:
    body = _require_dict("forensics", payload)
    raw = body.get("signals")
    if raw is None:
        return []
    if isinstance(raw, dict):
        active = [name for name, flag in raw.items() if flag is True]
    elif isinstance(raw, list):
        active = [name for name in raw if isinstance(name, str)]
    else:
        raise MalformedPayload("forensics", "signals must be an object or a list")
    facts: list[Fact] = []
    for name in active:
        kind = _SIGNAL_ALIASES.get(name.strip().lower())
        if kind is None:
            logger.debug("forensics: ignoring unknown signal %r", name)
            continue
        facts.append(_build("forensics", TradingSignal, signal=kind))
    return facts


def forensics_wallet_behavior(subject: Subject, payload: Any) -> list[Fact]:
    body = _require_dict("forensics", payload)
    score = _float_or_none(body.get("risk_score", body.get("riskScore")))
    if score is None:
        raise MalformedPayload("forensics", "wallet profile without risk_score")
    flags = body.get("flags") or []
    if not isinstance(flags, list):
        raise MalformedPayload("forensics", "flags must be a list")
    return [_build(
        "forensics", WalletBehavior,
        address=subject.subject_id,
        risk_score=score,
        flags=tuple(str(f) for f in flags if str(f).strip()),
    )]


def forensics_price_estimate(subject: Subject, payload: Any) -> list[Fact]:
    body = _require_dict("forensics", payload)
    value = _float_or_none(body.get("estimate", body.get("price")))
    confidence = _float_or_none(body.get("confidence"))
    # Some deployments report confidence as a percentage
    if confidence is not None and 1.0 < confidence <= 100.0:
        confidence = confidence / 100.0
    if value is None and confidence is None:
        return []
    return [_build(
        "forensics", PriceEstimate,
        asset=subject.subject_id,
        value=value,
        confidence=confidence,
        currency=(_str_or_none(body.get("currency")) or "eth").lower(),
    )]


# ---------------------------------------------------------------------------
# Token prices
# ---------------------------------------------------------------------------

def coingecko_token_prices(subject: Subject, payload: Any) -> list[Fact]:
    body = _require_dict("coingecko", payload)
    facts: list[Fact] = []
    for address, quote in body.items():
        if not isinstance(quote, dict):
            raise MalformedPayload("coingecko", "price entry is not an object")
        value = _float_or_none(quote.get("usd"))
        if value is None:
            continue
        facts.append(_build("coingecko", PriceEstimate, asset=str(address).lower(), value=value, currency="usd"))
    return facts


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

NORMALIZERS: dict[tuple[str, FactKind], Normalizer] = {
    ("moralis", FactKind.TOKEN_BALANCES): moralis_token_balances,
    ("alchemy", FactKind.TOKEN_BALANCES): alchemy_token_balances,
    ("rpc", FactKind.TOKEN_BALANCES): rpc_token_balances,
    ("moralis", FactKind.NFT_HOLDINGS): moralis_nft_holdings,
    ("alchemy", FactKind.NFT_HOLDINGS): alchemy_nft_holdings,
    ("uri", FactKind.NFT_METADATA): uri_nft_metadata,
    ("alchemy", FactKind.NFT_METADATA): alchemy_nft_metadata,
    ("opensea", FactKind.NFT_METADATA): opensea_nft_metadata,
    ("moralis", FactKind.HOLDER_DISTRIBUTION): moralis_holder_distribution,
    ("alchemy", FactKind.HOLDER_DISTRIBUTION): alchemy_holder_distribution,
    ("etherscan", FactKind.CONTRACT_VERIFICATION): etherscan_contract_verification,
    ("etherscan", FactKind.CONTRACT_CREATION): etherscan_contract_creation,
    ("opensea", FactKind.FLOOR_PRICE): opensea_floor_price,
    ("moralis", FactKind.FLOOR_PRICE): moralis_floor_price,
    ("alchemy", FactKind.FLOOR_PRICE): alchemy_floor_price,
    ("forensics", FactKind.TRADING_SIGNALS): forensics_trading_signals,
    ("forensics", FactKind.WALLET_BEHAVIOR): forensics_wallet_behavior,
    ("forensics", FactKind.PRICE_ESTIMATE): forensics_price_estimate,
    ("coingecko", FactKind.TOKEN_PRICES): coingecko_token_prices,
}


def normalizer_for(provider: str, kind: FactKind) -> Optional[Normalizer]:
    return NORMALIZERS.get((provider, kind))
