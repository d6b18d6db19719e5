"""Shared test fixtures for the Wallet Risk Agent test suite."""

from __future__ import annotations

import sys
import os

# Ensure src/ is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

import pytest
from datetime import datetime, timezone
from unittest.mock import MagicMock

import httpx

from risk_agent.settings import Settings


WALLET = "0x1111111111111111111111111111111111111111"
OWNER = "0x2222222222222222222222222222222222222222"
COLLECTION = "0x3333333333333333333333333333333333333333"
TOKEN = "0x4444444444444444444444444444444444444444"
USDC = "0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48"
BAYC = "0xbc4ca0eda7647a8ab7c2061c2e118a18a936f13d"
NOW = datetime(2025, 6, 1, tzinfo=timezone.utc)


def mock_response(status_code: int = 200, json_data=None, headers=None):
    """Build a mock httpx.Response."""
    resp = MagicMock()
    resp.status_code = status_code
    resp.json.return_value = json_data
    resp.headers = headers or {}
    if status_code >= 400:
        resp.raise_for_status.side_effect = httpx.HTTPStatusError(
            f"HTTP {status_code}",
            request=MagicMock(),
            response=resp,
        )
    else:
        resp.raise_for_status = MagicMock()
    return resp


def abi_word(value: int) -> str:
    return format(value, "x").rjust(64, "0")


def abi_string(text: str) -> str:
    """ABI-encode a dynamic ``string`` return value (0x-prefixed)."""
    raw = text.encode("utf-8")
    padded = raw.hex().ljust(((len(raw) + 31) // 32) * 64 or 64, "0")
    return "0x" + abi_word(32) + abi_word(len(raw)) + padded


def abi_address(address: str) -> str:
    return "0x" + address.lower().removeprefix("0x").rjust(64, "0")


@pytest.fixture
def settings():
    """Settings with every provider key configured and fast retries."""
    from risk_agent.settings import ProviderKeys

    return Settings(
        rpc_url="https://rpc.example.com",
        api_keys=ProviderKeys(
            moralis="m-key",
            alchemy="a-key",
            etherscan="e-key",
            opensea="o-key",
            coingecko="",
            forensics="f-key",
        ),
        retry_base_delay=0.0,
    )


# ---------------------------------------------------------------------------
# Sample provider payloads
# ---------------------------------------------------------------------------

@pytest.fixture
def moralis_erc20_payload():
    """Minimal Moralis ``/{address}/erc20`` response."""
    return [
        {
            "token_address": USDC.upper().replace("0X", "0x"),
            "name": "USD Coin",
            "symbol": "USDC",
            "decimals": 6,
            "balance": "1000000000",
            "possible_spam": False,
            "verified_contract": True,
        },
        {
            "token_address": TOKEN,
            "name": "Free Airdrop Test",
            "symbol": "CLAIMREWARDSNOW",
            "decimals": 18,
            "balance": "5000000000000000000",
            "possible_spam": True,
            "verified_contract": False,
        },
        {
            "token_address": "0x5555555555555555555555555555555555555555",
            "name": "Dust",
            "symbol": "DUST",
            "decimals": 18,
            "balance": "0",
            "possible_spam": False,
            "verified_contract": True,
        },
    ]


@pytest.fixture
def moralis_nft_payload():
    """Minimal Moralis ``/{address}/nft`` response."""
    return {
        "result": [
            {
                "token_address": BAYC,
                "token_id": "42",
                "name": "BoredApeYachtClub",
                "token_uri": "ipfs://QmeSjSinHpPnmXmspMjwiXyN6zS4E9zccariGR3jxcaWtq/42",
                "normalized_metadata": {
                    "name": "Ape #42",
                    "description": "A bored ape",
                    "image": "ipfs://QmImage",
                    "attributes": [{"trait_type": "Fur", "value": "Gold"}],
                },
            },
            {
                "token_address": COLLECTION,
                "token_id": "7",
                "name": "Unofficial Apes Copy",
                "token_uri": None,
                "normalized_metadata": {"name": None, "description": None, "image": None, "attributes": []},
                "metadata": None,
            },
        ]
    }


@pytest.fixture
def alchemy_owners_payload():
    """Alchemy ``getOwnersForContract`` with token balances."""
    return {
        "owners": [
            {"ownerAddress": WALLET, "tokenBalances": [{"tokenId": "1", "balance": "1"}] * 3},
            {"ownerAddress": OWNER, "tokenBalances": [{"tokenId": "2", "balance": "2"}]},
        ]
    }


@pytest.fixture
def etherscan_source_payload():
    return {
        "status": "1",
        "message": "OK",
        "result": [{"SourceCode": "pragma solidity ^0.8.0;", "ContractName": "Token"}],
    }


@pytest.fixture
def erc721_metadata():
    return {
        "name": "Cool Cat #1",
        "description": "A cool cat",
        "image": "https://example.com/1.png",
        "attributes": [{"trait_type": "Hat", "value": "Cap"}],
    }
