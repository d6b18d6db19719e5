"""
Ethereum JSON-RPC client for the Wallet Risk Agent.

Uses the standard ``eth_getBalance`` / ``eth_call`` / ``eth_getCode``
interface, so any mainnet endpoint works (public nodes, Alchemy, Infura).
Contract reads are raw ``eth_call`` requests with hand-built calldata; the
handful of return types we need (uint256, address, string) are decoded here.

Every public method returns a ``ProviderResponse`` whose payload is already
decoded.  A reverted call or an empty ``0x`` return is reported as
``NOT_FOUND``: the chain answered, and the answer is "no such thing".
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from ..constants import (
    COMMON_TOKENS,
    SELECTOR_BALANCE_OF,
    SELECTOR_DECIMALS,
    SELECTOR_NAME,
    SELECTOR_OWNER_OF,
    SELECTOR_SYMBOL,
    SELECTOR_TOKEN_URI,
    SELECTOR_TOTAL_SUPPLY,
)
from ..models import WalletSubject
from ..utils import hex_to_int
from ._base import BaseProviderClient
from ._http import ProviderResponse, ProviderStatus

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# ABI helpers
# ---------------------------------------------------------------------------

def encode_address(address: str) -> str:
    """Left-pad a 20-byte address to a 32-byte ABI word (no 0x)."""
    return address.lower().removeprefix("0x").rjust(64, "0")


def encode_uint256(value: int | str) -> str:
    return format(int(value), "x").rjust(64, "0")


def _word_bytes(data: str) -> bytes:
    text = data[2:] if data.startswith("0x") else data
    return bytes.fromhex(text)


def decode_uint256(data: str) -> int:
    raw = _word_bytes(data)
    if len(raw) < 32:
        raise ValueError("uint256 return shorter than one word")
    return int.from_bytes(raw[:32], "big")


def decode_address(data: str) -> str:
    raw = _word_bytes(data)
    if len(raw) < 32:
        raise ValueError("address return shorter than one word")
    return "0x" + raw[12:32].hex()


def decode_string(data: str) -> str:
    """Decode an ABI ``string`` return.

    Falls back to ``bytes32`` (null-padded) for legacy tokens such as MKR
    that declare ``name()`` / ``symbol()`` as ``bytes32``.
    """
    raw = _word_bytes(data)
    if len(raw) == 32:
        return raw.rstrip(b"\x00").decode("utf-8", errors="replace")
    if len(raw) < 64:
        raise ValueError("string return shorter than two words")
    offset = int.from_bytes(raw[:32], "big")
    if offset + 32 > len(raw):
        raise ValueError("string offset out of range")
    length = int.from_bytes(raw[offset:offset + 32], "big")
    start = offset + 32
    if start + length > len(raw):
        raise ValueError("string length out of range")
    return raw[start:start + length].decode("utf-8", errors="replace")


def classify_rpc_error(error: Any) -> ProviderStatus:
    """Map a JSON-RPC error object onto a provider status."""
    if not isinstance(error, dict):
        return ProviderStatus.MALFORMED
    code = error.get("code")
    message = str(error.get("message", "")).lower()
    if code == 3 or "revert" in message:
        return ProviderStatus.NOT_FOUND
    if code in (-32005, 429) or "rate" in message or "limit" in message:
        return ProviderStatus.RATE_LIMITED
    if "timeout" in message or "timed out" in message:
        return ProviderStatus.TIMEOUT
    return ProviderStatus.MALFORMED


class EthRpcClient(BaseProviderClient):
    """Async Ethereum JSON-RPC client."""

    name = "rpc"
    requires_key = False

    def __init__(self, endpoint: str, timeout: float = 10.0) -> None:
        super().__init__(base_url=endpoint, timeout=timeout)
        self._id_counter = 0

    def _default_headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json"}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def get_balance(self, subject: WalletSubject) -> ProviderResponse:
        """Native ETH balance of *subject* in wei (payload: ``int``)."""
        resp = await self._call("eth_getBalance", [subject.address, "latest"])
        return self._decode(resp, hex_to_int_strict)

    async def get_code(self, address: str) -> ProviderResponse:
        """Deployed bytecode at *address* (payload: hex ``str``, ``"0x"`` for EOAs)."""
        return await self._call("eth_getCode", [address, "latest"])

    async def is_contract(self, address: str) -> ProviderResponse:
        """Payload ``True`` when *address* holds contract code."""
        resp = await self.get_code(address)
        return self._decode(resp, lambda code: isinstance(code, str) and code not in ("0x", "0x0", ""))

    async def contract_name(self, contract: str) -> ProviderResponse:
        return self._decode(await self.eth_call(contract, SELECTOR_NAME), decode_string)

    async def contract_symbol(self, contract: str) -> ProviderResponse:
        return self._decode(await self.eth_call(contract, SELECTOR_SYMBOL), decode_string)

    async def contract_decimals(self, contract: str) -> ProviderResponse:
        return self._decode(await self.eth_call(contract, SELECTOR_DECIMALS), decode_uint256)

    async def total_supply(self, contract: str) -> ProviderResponse:
        return self._decode(await self.eth_call(contract, SELECTOR_TOTAL_SUPPLY), decode_uint256)

    async def owner_of(self, contract: str, token_id: str) -> ProviderResponse:
        data = SELECTOR_OWNER_OF + encode_uint256(token_id)
        return self._decode(await self.eth_call(contract, data), decode_address)

    async def token_uri(self, contract: str, token_id: str) -> ProviderResponse:
        data = SELECTOR_TOKEN_URI + encode_uint256(token_id)
        return self._decode(await self.eth_call(contract, data), decode_string)

    async def eth_call(self, to: str, data: str) -> ProviderResponse:
        """Raw ``eth_call`` against the latest block (payload: hex ``str``)."""
        resp = await self._call("eth_call", [{"to": to, "data": data}, "latest"])
        if resp.ok and (not isinstance(resp.payload, str) or resp.payload in ("0x", "")):
            return ProviderResponse.failure(self.name, ProviderStatus.NOT_FOUND, "empty return data")
        return resp

    async def get_token_balances(self, subject: WalletSubject) -> ProviderResponse:
        """Probe ``COMMON_TOKENS`` directly on-chain in one JSON-RPC batch.

        Payload: list of ``{contractAddress, balance, name, symbol, decimals}``
        dicts, one per probed token; fields the chain did not answer are
        ``None``.
        """
        calls: list[tuple[str, str, str]] = []
        owner = encode_address(subject.address)
        for token in COMMON_TOKENS:
            calls.append((token, "balance", SELECTOR_BALANCE_OF + owner))
            calls.append((token, "name", SELECTOR_NAME))
            calls.append((token, "symbol", SELECTOR_SYMBOL))
            calls.append((token, "decimals", SELECTOR_DECIMALS))

        batch = [
            {
                "jsonrpc": "2.0",
                "id": idx,
                "method": "eth_call",
                "params": [{"to": token, "data": data}, "latest"],
            }
            for idx, (token, _field, data) in enumerate(calls)
        ]
        resp = await self._post(self._base_url, batch)
        if not resp.ok:
            return resp
        if not isinstance(resp.payload, list):
            return self._rpc_failure(resp.payload)

        results: dict[int, Any] = {}
        for item in resp.payload:
            if isinstance(item, dict) and isinstance(item.get("id"), int):
                results[item["id"]] = item.get("result")

        decoders: dict[str, Callable[[str], Any]] = {
            "balance": decode_uint256,
            "name": decode_string,
            "symbol": decode_string,
            "decimals": decode_uint256,
        }
        rows: dict[str, dict[str, Any]] = {
            token: {"contractAddress": token, "balance": None, "name": None,
                    "symbol": None, "decimals": None}
            for token in COMMON_TOKENS
        }
        for idx, (token, field, _data) in enumerate(calls):
            raw = results.get(idx)
            if not isinstance(raw, str) or raw in ("0x", ""):
                continue
            try:
                rows[token][field] = decoders[field](raw)
            except ValueError:
                logger.debug("rpc: could not decode %s of %s", field, token)
        return ProviderResponse.success(self.name, list(rows.values()))

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _call(self, method: str, params: list[Any]) -> ProviderResponse:
        self._id_counter += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._id_counter,
            "method": method,
            "params": params,
        }
        resp = await self._post(self._base_url, payload)
        if not resp.ok:
            return resp
        body = resp.payload
        if not isinstance(body, dict):
            return ProviderResponse.failure(self.name, ProviderStatus.MALFORMED, "non-object body")
        if "error" in body:
            return self._rpc_failure(body)
        if "result" not in body:
            return ProviderResponse.failure(self.name, ProviderStatus.MALFORMED, "missing result")
        return ProviderResponse.success(self.name, body["result"])

    def _rpc_failure(self, body: Any) -> ProviderResponse:
        error = body.get("error") if isinstance(body, dict) else None
        status = classify_rpc_error(error)
        if status is not ProviderStatus.NOT_FOUND:
            logger.warning("rpc error: %s", error)
        return ProviderResponse.failure(self.name, status, str(error))

    def _decode(self, resp: ProviderResponse, decoder: Callable[[Any], Any]) -> ProviderResponse:
        if not resp.ok:
            return resp
        try:
            return ProviderResponse.success(self.name, decoder(resp.payload))
        except (TypeError, ValueError) as exc:
            logger.warning("rpc: undecodable return value %r (%s)", resp.payload, exc)
            return ProviderResponse.failure(self.name, ProviderStatus.MALFORMED, str(exc))


def hex_to_int_strict(value: Any) -> int:
    parsed: Optional[int] = hex_to_int(value)
    if parsed is None:
        raise ValueError(f"not a hex quantity: {value!r}")
    return parsed
