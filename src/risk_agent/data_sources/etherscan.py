"""
Etherscan API client: contract verification and creation time.

Reference: https://docs.etherscan.io/api-endpoints

Etherscan answers HTTP 200 for almost everything and reports errors in the
body as ``{"status": "0", "message": "NOTOK", "result": "<reason>"}``; those
bodies are classified in ``_inspect``.
"""

from __future__ import annotations

import logging

from ..models import ContractSubject
from ._base import BaseProviderClient
from ._http import ProviderResponse, ProviderStatus

logger = logging.getLogger(__name__)


class EtherscanClient(BaseProviderClient):
    """Async wrapper around the Etherscan account/contract modules."""

    name = "etherscan"

    async def get_source_code(self, subject: ContractSubject) -> ProviderResponse:
        """``getsourcecode``: verified contracts carry a non-empty ``SourceCode``."""
        params = {
            "module": "contract",
            "action": "getsourcecode",
            "address": subject.address,
            "apikey": self._api_key,
        }
        return await self._get(self._base_url, params=params)

    async def get_first_transaction(self, subject: ContractSubject) -> ProviderResponse:
        """Oldest transaction touching the contract (proxy for deploy time)."""
        params = {
            "module": "account",
            "action": "txlist",
            "address": subject.address,
            "startblock": 0,
            "endblock": 99999999,
            "page": 1,
            "offset": 1,
            "sort": "asc",
            "apikey": self._api_key,
        }
        return await self._get(self._base_url, params=params)

    def _inspect(self, response: ProviderResponse) -> ProviderResponse:
        body = response.payload
        if not isinstance(body, dict):
            return ProviderResponse.failure(self.name, ProviderStatus.MALFORMED, "non-object body")
        if str(body.get("status", "1")) != "0":
            return response

        message = f"{body.get('message', '')} {body.get('result', '')}".lower()
        if "invalid api key" in message or "missing/invalid api key" in message:
            logger.warning("etherscan rejected the API key")
            return ProviderResponse.failure(self.name, ProviderStatus.UNAUTHORIZED, message.strip())
        if "rate limit" in message:
            logger.warning("etherscan rate-limited")
            return ProviderResponse.failure(self.name, ProviderStatus.RATE_LIMITED, message.strip())
        if "no transactions found" in message or "no records found" in message:
            return ProviderResponse.failure(self.name, ProviderStatus.NOT_FOUND, message.strip())
        logger.warning("etherscan error: %s", message.strip())
        return ProviderResponse.failure(self.name, ProviderStatus.MALFORMED, message.strip())
