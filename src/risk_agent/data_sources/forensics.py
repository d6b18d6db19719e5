"""
Client for an NFT forensics / analytics gateway.

Requires ``FORENSICS_API_KEY`` (sent as ``x-api-key``) and talks to
``FORENSICS_BASE_URL``.  The gateway exposes three resources; the response
bodies below are the only parts the normalizer reads.

Trading signals (``/collection/{contract}/signals`` and
``/nft/{contract}/{token_id}/signals``)::

    {"signals": {"wash_trading": true, "price_manipulation": false, ...}}
    {"signals": ["wash_trading", "rapid_transfers"]}

Wallet profile (``/wallet/{address}/profile``)::

    {"risk_score": 82, "flags": ["mixer_interaction", "sanctioned_counterparty"]}

Price estimate (``/collection/{contract}/price-estimate`` and
``/nft/{contract}/{token_id}/price-estimate``)::

    {"estimate": 1.42, "confidence": 0.27, "currency": "eth"}
"""

from __future__ import annotations

import logging

from ..models import ContractSubject, NFTSubject, Subject, WalletSubject
from ._base import BaseProviderClient
from ._http import ProviderResponse

logger = logging.getLogger(__name__)


class ForensicsClient(BaseProviderClient):
    """Async wrapper around the forensics gateway."""

    name = "forensics"

    @property
    def available(self) -> bool:
        return bool(self._api_key and self._base_url)

    def _default_headers(self) -> dict[str, str]:
        return {"Accept": "application/json", "x-api-key": self._api_key}

    async def get_trading_signals(self, subject: Subject) -> ProviderResponse:
        return await self._get(f"{self._asset_path(subject)}/signals")

    async def get_price_estimate(self, subject: Subject) -> ProviderResponse:
        return await self._get(f"{self._asset_path(subject)}/price-estimate")

    async def get_wallet_profile(self, subject: WalletSubject) -> ProviderResponse:
        return await self._get(f"{self._base_url}/wallet/{subject.address}/profile")

    def _asset_path(self, subject: Subject) -> str:
        if isinstance(subject, NFTSubject):
            return f"{self._base_url}/nft/{subject.contract}/{subject.token_id}"
        if isinstance(subject, ContractSubject):
            return f"{self._base_url}/collection/{subject.address}"
        raise TypeError(f"forensics asset lookups need a contract or NFT, got {subject!r}")
