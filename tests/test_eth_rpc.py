"""Tests for the Ethereum JSON-RPC client (eth_rpc.py)."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from conftest import BAYC, OWNER, USDC, WALLET, abi_address, abi_string, abi_word, mock_response
from risk_agent.constants import COMMON_TOKENS
from risk_agent.data_sources._http import ProviderStatus
from risk_agent.data_sources.eth_rpc import (
    EthRpcClient,
    classify_rpc_error,
    decode_address,
    decode_string,
    decode_uint256,
    encode_address,
    encode_uint256,
    hex_to_int_strict,
)
from risk_agent.models import WalletSubject


def _client_with(post_mock) -> EthRpcClient:
    client = EthRpcClient("https://rpc.example.com")
    mock_client = AsyncMock()
    mock_client.is_closed = False
    mock_client.post = post_mock
    client._client = mock_client
    return client


def _rpc_ok(result) -> MagicMock:
    return mock_response(200, {"jsonrpc": "2.0", "id": 1, "result": result})


def _rpc_error(code: int, message: str) -> MagicMock:
    return mock_response(200, {"jsonrpc": "2.0", "id": 1, "error": {"code": code, "message": message}})


class TestAbiHelpers:

    def test_encode_address(self):
        encoded = encode_address(WALLET.upper().replace("0X", "0x"))
        assert len(encoded) == 64
        assert encoded.endswith(WALLET[2:])

    def test_encode_uint256(self):
        assert encode_uint256("42") == "0" * 62 + "2a"

    def test_decode_uint256(self):
        assert decode_uint256("0x" + abi_word(10_000)) == 10_000

    def test_decode_uint256_short_raises(self):
        with pytest.raises(ValueError):
            decode_uint256("0x01")

    def test_decode_address(self):
        assert decode_address(abi_address(OWNER)) == OWNER

    def test_decode_string(self):
        assert decode_string(abi_string("BoredApeYachtClub")) == "BoredApeYachtClub"

    def test_decode_long_string(self):
        text = "ipfs://QmeSjSinHpPnmXmspMjwiXyN6zS4E9zccariGR3jxcaWtq/42"
        assert decode_string(abi_string(text)) == text

    def test_decode_bytes32_string(self):
        raw = b"MKR".hex().ljust(64, "0")
        assert decode_string("0x" + raw) == "MKR"

    def test_decode_string_bad_offset(self):
        with pytest.raises(ValueError):
            decode_string("0x" + abi_word(4096) + abi_word(3))

    def test_hex_to_int_strict(self):
        assert hex_to_int_strict("0xde0b6b3a7640000") == 10**18
        with pytest.raises(ValueError):
            hex_to_int_strict(None)


class TestClassifyRpcError:

    @pytest.mark.parametrize("error,status", [
        ({"code": 3, "message": "execution reverted"}, ProviderStatus.NOT_FOUND),
        ({"code": -32000, "message": "execution reverted: ERC721: invalid token ID"}, ProviderStatus.NOT_FOUND),
        ({"code": -32005, "message": "query returned more than 10000 results"}, ProviderStatus.RATE_LIMITED),
        ({"code": 429, "message": "Too Many Requests"}, ProviderStatus.RATE_LIMITED),
        ({"code": -32000, "message": "request timed out"}, ProviderStatus.TIMEOUT),
        ({"code": -32602, "message": "invalid argument"}, ProviderStatus.MALFORMED),
        ("boom", ProviderStatus.MALFORMED),
    ])
    def test_mapping(self, error, status):
        assert classify_rpc_error(error) is status


class TestEthRpcClient:

    @pytest.mark.asyncio
    async def test_get_balance(self):
        client = _client_with(AsyncMock(return_value=_rpc_ok("0xde0b6b3a7640000")))

        resp = await client.get_balance(WalletSubject(address=WALLET))
        assert resp.ok
        assert resp.payload == 10**18
        _, kwargs = client._client.post.call_args
        assert kwargs["json"]["method"] == "eth_getBalance"
        assert kwargs["json"]["params"] == [WALLET, "latest"]

    @pytest.mark.asyncio
    async def test_request_ids_increment(self):
        client = _client_with(AsyncMock(return_value=_rpc_ok("0x0")))

        await client.get_code(WALLET)
        await client.get_code(WALLET)
        ids = [c.kwargs["json"]["id"] for c in client._client.post.call_args_list]
        assert ids == [1, 2]

    @pytest.mark.asyncio
    async def test_is_contract(self):
        client = _client_with(AsyncMock(side_effect=[_rpc_ok("0x6080604052"), _rpc_ok("0x")]))

        assert (await client.is_contract(BAYC)).payload is True
        assert (await client.is_contract(WALLET)).payload is False

    @pytest.mark.asyncio
    async def test_owner_of(self):
        client = _client_with(AsyncMock(return_value=_rpc_ok(abi_address(OWNER))))

        resp = await client.owner_of(BAYC, "42")
        assert resp.payload == OWNER
        call = client._client.post.call_args.kwargs["json"]
        assert call["method"] == "eth_call"
        assert call["params"][0]["to"] == BAYC
        assert call["params"][0]["data"].endswith(encode_uint256(42))

    @pytest.mark.asyncio
    async def test_revert_is_not_found(self):
        client = _client_with(AsyncMock(return_value=_rpc_error(3, "execution reverted")))

        resp = await client.owner_of(BAYC, "99999")
        assert resp.status is ProviderStatus.NOT_FOUND

    @pytest.mark.asyncio
    async def test_empty_return_is_not_found(self):
        client = _client_with(AsyncMock(return_value=_rpc_ok("0x")))

        resp = await client.contract_name(WALLET)
        assert resp.status is ProviderStatus.NOT_FOUND

    @pytest.mark.asyncio
    async def test_undecodable_is_malformed(self):
        client = _client_with(AsyncMock(return_value=_rpc_ok("0x1234")))

        resp = await client.total_supply(BAYC)
        assert resp.status is ProviderStatus.MALFORMED

    @pytest.mark.asyncio
    async def test_missing_result_is_malformed(self):
        client = _client_with(AsyncMock(return_value=mock_response(200, {"jsonrpc": "2.0", "id": 1})))

        resp = await client.get_code(WALLET)
        assert resp.status is ProviderStatus.MALFORMED

    @pytest.mark.asyncio
    async def test_transport_timeout(self):
        client = _client_with(AsyncMock(side_effect=httpx.ConnectTimeout("slow")))

        resp = await client.get_balance(WalletSubject(address=WALLET))
        assert resp.status is ProviderStatus.TIMEOUT

    @pytest.mark.asyncio
    async def test_token_balances_batch(self):
        usdc_index = COMMON_TOKENS.index(USDC)
        base = usdc_index * 4
        batch_reply = [
            {"jsonrpc": "2.0", "id": base, "result": "0x" + abi_word(1_000_000_000)},
            {"jsonrpc": "2.0", "id": base + 1, "result": abi_string("USD Coin")},
            {"jsonrpc": "2.0", "id": base + 2, "result": abi_string("USDC")},
            {"jsonrpc": "2.0", "id": base + 3, "result": "0x" + abi_word(6)},
            {"jsonrpc": "2.0", "id": 0, "result": "0x"},
            {"jsonrpc": "2.0", "id": 1, "error": {"code": 3, "message": "execution reverted"}},
        ]
        client = _client_with(AsyncMock(return_value=mock_response(200, batch_reply)))

        resp = await client.get_token_balances(WalletSubject(address=WALLET))
        assert resp.ok
        # One HTTP request carries every probe
        client._client.post.assert_called_once()
        sent = client._client.post.call_args.kwargs["json"]
        assert len(sent) == len(COMMON_TOKENS) * 4

        rows = {row["contractAddress"]: row for row in resp.payload}
        assert set(rows) == set(COMMON_TOKENS)
        assert rows[USDC] == {
            "contractAddress": USDC,
            "balance": 1_000_000_000,
            "name": "USD Coin",
            "symbol": "USDC",
            "decimals": 6,
        }
        assert rows[COMMON_TOKENS[0]]["balance"] is None

    @pytest.mark.asyncio
    async def test_token_balances_non_list_reply(self):
        reply = {"jsonrpc": "2.0", "id": None, "error": {"code": -32005, "message": "rate limit"}}
        client = _client_with(AsyncMock(return_value=mock_response(200, reply)))

        resp = await client.get_token_balances(WalletSubject(address=WALLET))
        assert resp.status is ProviderStatus.RATE_LIMITED

    @pytest.mark.asyncio
    async def test_close(self):
        client = _client_with(AsyncMock())
        client._client.aclose = AsyncMock()

        await client.close()
        client._client.aclose.assert_called_once()
