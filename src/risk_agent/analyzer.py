"""
Aggregation orchestrator: the three public analyses.

``RiskAnalyzer`` decides which facts each analysis needs, fetches them
concurrently through the fallback coordinator (bounded by a per-request
semaphore and an overall per-fact timeout), and hands the merged evidence to
the risk evaluator.  All state is request-scoped: a new semaphore, request
id and set of outcomes per call.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, Sequence

import sentry_sdk

from .constants import ETH_DECIMALS, ZERO_ADDRESS
from .coordinator import FactOutcome, FallbackCoordinator
from .data_sources._clients import ProviderClients
from .data_sources._http import ProviderResponse, ProviderStatus
from .errors import ChainUnavailableError
from .logging_config import generate_request_id, request_id_ctx
from .models import (
    CollectionInfo,
    ContractSubject,
    ContractVerification,
    FactKind,
    FloorPrice,
    HolderDistribution,
    NFTHolding,
    NFTInfo,
    NFTMetadata,
    NFTSubject,
    PriceEstimate,
    RiskVerdict,
    Subject,
    TokenBalance,
    TokenInfo,
    TradingSignal,
    WalletAnalysis,
    WalletBehavior,
    WalletSubject,
)
from .risk_evaluator import (
    CollectionEvidence,
    NFTEvidence,
    TokenEvidence,
    audit_status,
    estimated_holder_distribution,
    evaluate_collection,
    evaluate_nft,
    evaluate_token,
    failed_nft_verdict,
    internal_failure_verdict,
    is_allow_listed,
    top_holders,
    wallet_risk_level,
    wallet_risk_score,
    wallet_summary,
)
from .settings import Settings, load_settings
from .utils import format_units, normalize_address, validate_token_id

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

_FAILED_NFT_DESCRIPTION = "Unable to analyze this NFT. It may not exist or the contract may be invalid."
_INTERNAL_ERROR_SUMMARY = (
    "Wallet analysis incomplete: an internal error prevented a full risk "
    "assessment. Overall risk level: HIGH."
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _first(outcome: FactOutcome, fact_type: type) -> Any:
    for fact in outcome.facts:
        if isinstance(fact, fact_type):
            return fact
    return None


def _of_type(outcome: FactOutcome, fact_type: type) -> list[Any]:
    return [f for f in outcome.facts if isinstance(f, fact_type)]


class RiskAnalyzer:
    """Runs wallet, collection and NFT analyses against a set of providers.

    The analyzer owns *clients* only when it created them; pass your own
    ``ProviderClients`` to share connection pools across analyzers.
    """

    def __init__(
        self,
        settings: Settings,
        clients: Optional[ProviderClients] = None,
        *,
        coordinator: Optional[FallbackCoordinator] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._settings = settings
        self._owns_clients = clients is None
        self._clients = clients if clients is not None else ProviderClients(settings)
        self._coordinator = coordinator or FallbackCoordinator(
            settings.max_attempts, settings.retry_base_delay
        )
        self._clock = clock or _utcnow

    async def close(self) -> None:
        if self._owns_clients:
            await self._clients.close()

    async def __aenter__(self) -> "RiskAnalyzer":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Fetch helpers
    # ------------------------------------------------------------------

    async def _fact(
        self,
        kind: FactKind,
        subject: Subject,
        sem: asyncio.Semaphore,
        **context: Any,
    ) -> FactOutcome:
        """Fetch one fact kind through its provider chain, never raising."""
        steps = self._clients.steps_for(kind, self._settings.chain_for(kind), **context)
        if not steps:
            return FactOutcome.no_data(kind)
        async with sem:
            try:
                return await asyncio.wait_for(
                    self._coordinator.fetch_fact(kind, subject, steps),
                    timeout=self._settings.fact_timeout,
                )
            except asyncio.TimeoutError:
                logger.warning(
                    "%s for %s timed out after %.0fs", kind.value, subject.subject_id,
                    self._settings.fact_timeout,
                )
                return FactOutcome.no_data(kind)

    async def _skip(self, kind: FactKind) -> FactOutcome:
        return FactOutcome.no_data(kind)

    async def _rpc(
        self,
        label: str,
        fetch: Callable[[], Awaitable[ProviderResponse]],
        sem: asyncio.Semaphore,
    ) -> ProviderResponse:
        """Authoritative chain read with the coordinator's retry policy."""
        async with sem:
            try:
                return await asyncio.wait_for(
                    self._coordinator.call(f"rpc {label}", fetch),
                    timeout=self._settings.fact_timeout,
                )
            except asyncio.TimeoutError:
                logger.warning("rpc %s timed out", label)
                return ProviderResponse.failure("rpc", ProviderStatus.TIMEOUT, "overall timeout")

    def _verification_subjects(self, contracts: Sequence[str]) -> list[str]:
        """Distinct contracts that still need a verification lookup."""
        return [c for c in dict.fromkeys(contracts) if not is_allow_listed(c)]

    # ------------------------------------------------------------------
    # Wallet
    # ------------------------------------------------------------------

    async def analyze_wallet(self, address: str) -> WalletAnalysis:
        """Scan a wallet's ETH balance, ERC-20 tokens and NFTs.

        Raises ``InvalidInputError`` for a malformed address and
        ``ChainUnavailableError`` when the ETH balance cannot be read.
        """
        subject = WalletSubject(address=normalize_address(address))
        token = request_id_ctx.set(generate_request_id())
        started = time.monotonic()
        try:
            sem = asyncio.Semaphore(self._settings.max_concurrent_fetches)
            rpc = self._clients.rpc

            # --- Step 1: balance, tokens and NFTs in parallel ---
            balance, token_outcome, nft_outcome = await asyncio.gather(
                self._rpc("eth_getBalance", lambda: rpc.get_balance(subject), sem),
                self._fact(FactKind.TOKEN_BALANCES, subject, sem),
                self._fact(FactKind.NFT_HOLDINGS, subject, sem),
            )
            if not balance.ok:
                raise ChainUnavailableError("eth_getBalance", subject.address)
            eth_balance = format_units(balance.payload, ETH_DECIMALS)

            try:
                result = await self._assemble_wallet(subject, eth_balance, token_outcome, nft_outcome, sem)
            except Exception:
                logger.exception("Wallet analysis failed for %s", subject.address)
                sentry_sdk.capture_exception()
                result = WalletAnalysis(
                    address=subject.address,
                    eth_balance=eth_balance,
                    risk_score=100,
                    risk_level="high",
                    summary=_INTERNAL_ERROR_SUMMARY,
                    analysis_failed=True,
                )
            logger.info(
                "Wallet %s analysed in %.2fs: %d tokens, %d NFTs, risk %s",
                subject.address, time.monotonic() - started,
                len(result.tokens), len(result.nfts), result.risk_level,
            )
            return result
        finally:
            request_id_ctx.reset(token)

    async def _assemble_wallet(
        self,
        subject: WalletSubject,
        eth_balance: str,
        token_outcome: FactOutcome,
        nft_outcome: FactOutcome,
        sem: asyncio.Semaphore,
    ) -> WalletAnalysis:
        settings = self._settings

        balances: dict[str, TokenBalance] = {}
        for fact in _of_type(token_outcome, TokenBalance):
            balances.setdefault(fact.token, fact)
        tokens = list(balances.values())[: settings.token_sample_size]

        verifications: dict[str, ContractVerification] = {
            v.contract: v for v in _of_type(token_outcome, ContractVerification)
        }

        holdings = _of_type(nft_outcome, NFTHolding)[: settings.nft_sample_size]
        # Indexers often list a tokenURI before they have synced its document
        unresolved = [h for h in holdings if h.metadata is None and h.metadata_ref]

        # --- Step 2: verification, prices, wallet behaviour and missing metadata ---
        to_verify = self._verification_subjects(
            [t.token for t in tokens if t.token not in verifications]
            + [h.contract for h in holdings]
        )
        lookups = await asyncio.gather(
            self._fact(
                FactKind.TOKEN_PRICES, subject, sem, tokens=[t.token for t in tokens]
            ) if tokens else self._skip(FactKind.TOKEN_PRICES),
            self._fact(FactKind.WALLET_BEHAVIOR, subject, sem) if holdings else self._skip(FactKind.WALLET_BEHAVIOR),
            *(
                self._fact(
                    FactKind.NFT_METADATA,
                    NFTSubject(contract=h.contract, token_id=h.token_id),
                    sem,
                    token_uri=h.metadata_ref,
                )
                for h in unresolved
            ),
            *(
                self._fact(FactKind.CONTRACT_VERIFICATION, ContractSubject(address=c), sem)
                for c in to_verify
            ),
        )
        price_outcome, behavior_outcome, *rest = lookups
        metadata_outcomes = rest[: len(unresolved)]
        verification_outcomes = rest[len(unresolved):]
        fetched_metadata: dict[tuple[str, str], Optional[NFTMetadata]] = {
            (h.contract, h.token_id): _first(outcome, NFTMetadata)
            for h, outcome in zip(unresolved, metadata_outcomes)
        }
        for outcome in verification_outcomes:
            fact = _first(outcome, ContractVerification)
            if fact is not None:
                verifications.setdefault(fact.contract, fact)
        prices: dict[str, float] = {
            p.asset: p.value for p in _of_type(price_outcome, PriceEstimate) if p.value is not None
        }
        behavior: Optional[WalletBehavior] = _first(behavior_outcome, WalletBehavior)

        # --- Step 3: evaluate ---
        token_infos: list[TokenInfo] = []
        for balance in tokens:
            verdict = evaluate_token(TokenEvidence(balance, verifications.get(balance.token)))
            token_infos.append(TokenInfo(
                address=balance.token,
                name=balance.name or "",
                symbol=balance.symbol or "",
                decimals=balance.decimals,
                balance=balance.amount,
                price=prices.get(balance.token),
                risk_level=verdict.level,
                risk_factors=list(verdict.factors),
            ))

        now = self._clock()
        nft_infos: list[NFTInfo] = []
        for holding in holdings:
            metadata = holding.metadata or fetched_metadata.get((holding.contract, holding.token_id))
            evidence = NFTEvidence(
                contract=holding.contract,
                token_id=holding.token_id,
                metadata=metadata,
                token_uri=holding.metadata_ref,
                token_uri_checked=holding.metadata_ref is not None,
                collection_name=holding.collection_name,
                verification=verifications.get(holding.contract),
                owner_behavior=behavior,
            )
            verdict = evaluate_nft(evidence, now)
            nft_infos.append(_nft_info(
                holding.contract, holding.token_id, metadata, verdict,
                collection_name=holding.collection_name,
                extra={"tokenURI": holding.metadata_ref, "collection": holding.collection_name},
            ))

        score = wallet_risk_score(
            (t.risk_level for t in token_infos), (n.risk_level for n in nft_infos)
        )
        level = wallet_risk_level(score)
        risky_tokens = sum(1 for t in token_infos if t.risk_level != "low")
        flagged_nfts = sum(1 for n in nft_infos if n.risk_level != "low")
        return WalletAnalysis(
            address=subject.address,
            eth_balance=eth_balance,
            tokens=token_infos,
            nfts=nft_infos,
            risk_score=score,
            risk_level=level,
            summary=wallet_summary(risky_tokens, flagged_nfts, level),
        )

    # ------------------------------------------------------------------
    # Collection
    # ------------------------------------------------------------------

    async def analyze_collection(self, contract_address: str) -> CollectionInfo:
        """Holder distribution, floor price, reputation and audit status of a collection."""
        subject = ContractSubject(address=normalize_address(contract_address, field="contract_address"))
        token = request_id_ctx.set(generate_request_id())
        started = time.monotonic()
        try:
            try:
                result = await self._run_collection(subject)
            except Exception:
                logger.exception("Collection analysis failed for %s", subject.address)
                sentry_sdk.capture_exception()
                verdict = internal_failure_verdict(subject.address)
                result = CollectionInfo(
                    contract_address=subject.address,
                    risk_level=verdict.level,
                    risk_factors=list(verdict.factors),
                    audit_status=audit_status(subject.address),
                    analysis_failed=True,
                )
            logger.info(
                "Collection %s analysed in %.2fs: risk %s",
                subject.address, time.monotonic() - started, result.risk_level,
            )
            return result
        finally:
            request_id_ctx.reset(token)

    async def _run_collection(self, subject: ContractSubject) -> CollectionInfo:
        sem = asyncio.Semaphore(self._settings.max_concurrent_fetches)
        rpc = self._clients.rpc
        address = subject.address

        (
            name_resp,
            supply_resp,
            holders_outcome,
            floor_outcome,
            signals_outcome,
            verification_outcome,
            creation_outcome,
            estimate_outcome,
        ) = await asyncio.gather(
            self._rpc("name", lambda: rpc.contract_name(address), sem),
            self._rpc("totalSupply", lambda: rpc.total_supply(address), sem),
            self._fact(FactKind.HOLDER_DISTRIBUTION, subject, sem),
            self._fact(FactKind.FLOOR_PRICE, subject, sem),
            self._fact(FactKind.TRADING_SIGNALS, subject, sem),
            self._skip(FactKind.CONTRACT_VERIFICATION) if is_allow_listed(address)
            else self._fact(FactKind.CONTRACT_VERIFICATION, subject, sem),
            self._fact(FactKind.CONTRACT_CREATION, subject, sem),
            self._fact(FactKind.PRICE_ESTIMATE, subject, sem),
        )

        name = name_resp.payload if name_resp.ok and name_resp.payload else "Unknown Collection"
        total_supply = supply_resp.payload if supply_resp.ok else 0

        holders: list[HolderDistribution] = _of_type(holders_outcome, HolderDistribution)
        estimated = not holders
        if estimated:
            logger.info("No holder data for %s; using estimated distribution", address)
            holder_count, top = estimated_holder_distribution(total_supply)
        else:
            holder_count, top = top_holders(holders, total_supply)

        creation: Optional[ContractVerification] = _first(creation_outcome, ContractVerification)
        floor: Optional[FloorPrice] = _first(floor_outcome, FloorPrice)

        verdict = evaluate_collection(
            CollectionEvidence(
                contract=address,
                name=name,
                total_supply=total_supply,
                holders=tuple(holders),
                holders_estimated=estimated,
                created_at=creation.creation_timestamp if creation else None,
                verification=_first(verification_outcome, ContractVerification),
                signals=tuple(_of_type(signals_outcome, TradingSignal)),
                price_estimate=_first(estimate_outcome, PriceEstimate),
            ),
            self._clock(),
        )
        return CollectionInfo(
            contract_address=address,
            name=name,
            total_supply=total_supply,
            floor_price=floor.value if floor else None,
            holder_count=holder_count,
            top_holders=top,
            holder_data_estimated=estimated,
            risk_level=verdict.level,
            risk_factors=list(verdict.factors),
            audit_status=audit_status(address),
        )

    # ------------------------------------------------------------------
    # Single NFT
    # ------------------------------------------------------------------

    async def analyze_nft(self, contract_address: str, token_id: str | int) -> NFTInfo:
        """Ownership, metadata, provenance and trading analysis of one NFT."""
        subject = NFTSubject(
            contract=normalize_address(contract_address, field="contract_address"),
            token_id=validate_token_id(token_id),
        )
        token = request_id_ctx.set(generate_request_id())
        started = time.monotonic()
        try:
            try:
                result = await self._run_nft(subject)
            except Exception:
                logger.exception("NFT analysis failed for %s", subject.subject_id)
                sentry_sdk.capture_exception()
                verdict = internal_failure_verdict(subject.subject_id)
                result = NFTInfo(
                    contract_address=subject.contract,
                    token_id=subject.token_id,
                    risk_level=verdict.level,
                    risk_factors=list(verdict.factors),
                    metadata={"error": True, "errorMessage": "internal analysis error"},
                    analysis_failed=True,
                )
            logger.info(
                "NFT %s analysed in %.2fs: risk %s",
                subject.subject_id, time.monotonic() - started, result.risk_level,
            )
            return result
        finally:
            request_id_ctx.reset(token)

    async def _run_nft(self, subject: NFTSubject) -> NFTInfo:
        sem = asyncio.Semaphore(self._settings.max_concurrent_fetches)
        rpc = self._clients.rpc
        contract = subject.contract
        collection = ContractSubject(address=contract)

        # --- Step 1: on-chain ownership, token URI and collection name ---
        owner_resp, uri_resp, name_resp = await asyncio.gather(
            self._rpc("ownerOf", lambda: rpc.owner_of(contract, subject.token_id), sem),
            self._rpc("tokenURI", lambda: rpc.token_uri(contract, subject.token_id), sem),
            self._rpc("name", lambda: rpc.contract_name(contract), sem),
        )
        if not owner_resp.ok:
            logger.info("ownerOf failed for %s (%s)", subject.subject_id, owner_resp.status.value)
            return _failed_nft_info(subject, owner_resp.detail or owner_resp.status.value)

        owner: str = owner_resp.payload
        token_uri: Optional[str] = uri_resp.payload if uri_resp.ok else None
        # A revert is an answer ("no URI"); a timeout tells us nothing
        uri_checked = uri_resp.ok or uri_resp.status is ProviderStatus.NOT_FOUND
        collection_name: Optional[str] = name_resp.payload if name_resp.ok and name_resp.payload else None
        owner_subject = WalletSubject(address=owner.lower())

        # --- Step 2: best-effort enrichment in parallel ---
        (
            metadata_outcome,
            verification_outcome,
            creation_outcome,
            owner_code,
            behavior_outcome,
            signals_outcome,
            estimate_outcome,
        ) = await asyncio.gather(
            self._fact(FactKind.NFT_METADATA, subject, sem, token_uri=token_uri),
            self._skip(FactKind.CONTRACT_VERIFICATION) if is_allow_listed(contract)
            else self._fact(FactKind.CONTRACT_VERIFICATION, collection, sem),
            self._fact(FactKind.CONTRACT_CREATION, collection, sem),
            self._owner_is_contract(owner_subject.address, sem),
            self._fact(FactKind.WALLET_BEHAVIOR, owner_subject, sem),
            self._fact(FactKind.TRADING_SIGNALS, subject, sem),
            self._fact(FactKind.PRICE_ESTIMATE, subject, sem),
        )

        metadata: Optional[NFTMetadata] = _first(metadata_outcome, NFTMetadata)
        verification: Optional[ContractVerification] = _first(verification_outcome, ContractVerification)
        creation: Optional[ContractVerification] = _first(creation_outcome, ContractVerification)

        verdict = evaluate_nft(
            NFTEvidence(
                contract=contract,
                token_id=subject.token_id,
                metadata=metadata,
                token_uri=token_uri,
                token_uri_checked=uri_checked,
                collection_name=collection_name,
                verification=verification,
                created_at=creation.creation_timestamp if creation else None,
                owner=owner_subject.address,
                owner_is_contract=owner_code,
                signals=tuple(_of_type(signals_outcome, TradingSignal)),
                owner_behavior=_first(behavior_outcome, WalletBehavior),
                price_estimate=_first(estimate_outcome, PriceEstimate),
            ),
            self._clock(),
        )
        verified = is_allow_listed(contract) or bool(verification and verification.is_verified)
        return _nft_info(
            contract, subject.token_id, metadata, verdict,
            collection_name=collection_name,
            fallback_name=f"{collection_name or 'Unknown Collection'} #{subject.token_id}",
            fallback_description="No description available",
            extra={
                "owner": owner_subject.address,
                "tokenURI": token_uri,
                "collection": collection_name,
                "verified": verified,
                "lastAnalyzed": self._clock().isoformat(),
            },
        )

    async def _owner_is_contract(self, owner: str, sem: asyncio.Semaphore) -> Optional[bool]:
        if owner == ZERO_ADDRESS:
            return False
        resp = await self._rpc("getCode", lambda: self._clients.rpc.is_contract(owner), sem)
        return resp.payload if resp.ok else None


# ---------------------------------------------------------------------------
# Result builders
# ---------------------------------------------------------------------------

def _nft_info(
    contract: str,
    token_id: str,
    metadata: Optional[NFTMetadata],
    verdict: RiskVerdict,
    *,
    collection_name: Optional[str] = None,
    fallback_name: Optional[str] = None,
    fallback_description: Optional[str] = None,
    extra: Optional[dict[str, Any]] = None,
) -> NFTInfo:
    document: dict[str, Any] = dict(metadata.raw) if metadata else {}
    document.update({k: v for k, v in (extra or {}).items() if v is not None})
    document["attributes"] = (metadata.attributes if metadata else None) or []
    return NFTInfo(
        contract_address=contract,
        token_id=token_id,
        name=(metadata.name if metadata else None) or fallback_name,
        description=(metadata.description if metadata else None) or fallback_description,
        image=metadata.image if metadata else None,
        risk_level=verdict.level,
        risk_factors=list(verdict.factors),
        metadata=document,
        analysis_failed=verdict.analysis_failed,
    )


def _failed_nft_info(subject: NFTSubject, reason: str) -> NFTInfo:
    verdict = failed_nft_verdict(subject.subject_id)
    return NFTInfo(
        contract_address=subject.contract,
        token_id=subject.token_id,
        name=f"Analysis Failed - Token #{subject.token_id}",
        description=_FAILED_NFT_DESCRIPTION,
        risk_level=verdict.level,
        risk_factors=list(verdict.factors),
        metadata={"error": True, "errorMessage": reason},
        analysis_failed=True,
    )


# ---------------------------------------------------------------------------
# One-shot helpers
# ---------------------------------------------------------------------------

async def scan_wallet(address: str, settings: Optional[Settings] = None) -> WalletAnalysis:
    """Analyse *address* with a short-lived analyzer."""
    async with RiskAnalyzer(settings or load_settings()) as analyzer:
        return await analyzer.analyze_wallet(address)


async def check_collection(contract_address: str, settings: Optional[Settings] = None) -> CollectionInfo:
    async with RiskAnalyzer(settings or load_settings()) as analyzer:
        return await analyzer.analyze_collection(contract_address)


async def analyze_nft(
    contract_address: str,
    token_id: str | int,
    settings: Optional[Settings] = None,
) -> NFTInfo:
    async with RiskAnalyzer(settings or load_settings()) as analyzer:
        return await analyzer.analyze_nft(contract_address, token_id)
