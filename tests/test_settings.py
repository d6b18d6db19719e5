"""Tests for the immutable Settings object and load_settings()."""

from __future__ import annotations

import dataclasses
from unittest.mock import patch

import pytest

from risk_agent.errors import ConfigurationError
from risk_agent.models import FactKind
from risk_agent.settings import DEFAULT_PROVIDER_CHAINS, Settings, load_settings


class TestSettingsValidation:

    def test_missing_rpc_url_raises(self):
        with pytest.raises(ConfigurationError):
            Settings(rpc_url="")

    def test_non_http_rpc_url_raises(self):
        with pytest.raises(ConfigurationError):
            Settings(rpc_url="ws://node.example.com")

    def test_zero_attempts_raises(self):
        with pytest.raises(ConfigurationError):
            Settings(rpc_url="https://rpc.example.com", max_attempts=0)

    def test_zero_concurrency_raises(self):
        with pytest.raises(ConfigurationError):
            Settings(rpc_url="https://rpc.example.com", max_concurrent_fetches=0)

    def test_frozen(self):
        s = Settings(rpc_url="https://rpc.example.com")
        with pytest.raises(dataclasses.FrozenInstanceError):
            s.max_attempts = 5  # type: ignore[misc]


class TestProviderChains:

    def test_defaults(self):
        s = Settings(rpc_url="https://rpc.example.com")
        assert s.chain_for(FactKind.TOKEN_BALANCES) == ("moralis", "alchemy", "rpc")
        assert s.chain_for(FactKind.NFT_METADATA) == ("uri", "alchemy", "opensea")
        assert s.chain_for(FactKind.FLOOR_PRICE) == ("opensea", "moralis", "alchemy")

    def test_unknown_providers_dropped(self):
        s = Settings(
            rpc_url="https://rpc.example.com",
            provider_chains={FactKind.NFT_HOLDINGS: ("covalent", "alchemy")},
        )
        assert s.chain_for(FactKind.NFT_HOLDINGS) == ("alchemy",)
        # Kinds not overridden keep their default chain
        assert s.chain_for(FactKind.TOKEN_BALANCES) == DEFAULT_PROVIDER_CHAINS[FactKind.TOKEN_BALANCES]

    def test_chains_are_read_only(self):
        s = Settings(rpc_url="https://rpc.example.com")
        with pytest.raises(TypeError):
            s.provider_chains[FactKind.NFT_HOLDINGS] = ("alchemy",)  # type: ignore[index]


class TestLoadSettings:

    def test_builds_from_config(self):
        with patch("config.ETHEREUM_RPC_URL", "https://mainnet.example.com"), \
             patch("config.MORALIS_API_KEY", "abc"), \
             patch("config.PROVIDER_CHAIN_NFT_HOLDINGS", ("alchemy",)):
            s = load_settings()
        assert s.rpc_url == "https://mainnet.example.com"
        assert s.api_keys.moralis == "abc"
        assert s.chain_for(FactKind.NFT_HOLDINGS) == ("alchemy",)

    def test_missing_rpc_raises(self):
        with patch("config.ETHEREUM_RPC_URL", ""):
            with pytest.raises(ConfigurationError):
                load_settings()
