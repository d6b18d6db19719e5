"""Tests for the ProviderClients registry (_clients.py)."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from conftest import BAYC, USDC, WALLET
from risk_agent.data_sources._clients import ProviderClients
from risk_agent.models import FactKind, NFTSubject, WalletSubject
from risk_agent.normalizer import moralis_token_balances, uri_nft_metadata
from risk_agent.settings import Settings


class TestProviderClients:

    def test_configured_reflects_keys(self, settings):
        clients = ProviderClients(settings)
        assert set(clients.configured()) == {
            "rpc", "moralis", "alchemy", "etherscan", "opensea", "coingecko", "forensics", "uri",
        }

    def test_keyless_settings(self):
        clients = ProviderClients(Settings(rpc_url="https://rpc.example.com"))
        assert set(clients.configured()) == {"rpc", "coingecko", "uri"}

    def test_separate_instances_share_nothing(self, settings):
        a = ProviderClients(settings)
        b = ProviderClients(settings)
        assert a.moralis is not b.moralis

    def test_steps_follow_chain_order(self, settings):
        clients = ProviderClients(settings)
        steps = clients.steps_for(FactKind.TOKEN_BALANCES, ("alchemy", "moralis"))
        assert [s.provider for s in steps] == ["alchemy", "moralis"]
        assert steps[1].normalize is moralis_token_balances

    def test_unsupported_provider_skipped(self, settings):
        clients = ProviderClients(settings)
        steps = clients.steps_for(FactKind.CONTRACT_VERIFICATION, ("opensea", "etherscan"))
        assert [s.provider for s in steps] == ["etherscan"]

    @pytest.mark.asyncio
    async def test_uri_step_carries_token_uri(self, settings):
        clients = ProviderClients(settings)
        clients.uri.fetch = AsyncMock()
        (step,) = clients.steps_for(FactKind.NFT_METADATA, ("uri",), token_uri="ipfs://Qm/7")

        await step.fetch(NFTSubject(contract=BAYC, token_id="7"))
        clients.uri.fetch.assert_called_once_with("ipfs://Qm/7", "7")
        assert step.normalize is uri_nft_metadata

    @pytest.mark.asyncio
    async def test_price_step_carries_tokens(self, settings):
        clients = ProviderClients(settings)
        clients.coingecko.get_token_prices = AsyncMock()
        (step,) = clients.steps_for(FactKind.TOKEN_PRICES, ("coingecko",), tokens=[USDC])

        await step.fetch(WalletSubject(address=WALLET))
        clients.coingecko.get_token_prices.assert_called_once_with([USDC])

    @pytest.mark.asyncio
    async def test_close_tolerates_errors(self, settings):
        clients = ProviderClients(settings)
        for client in clients.all():
            client.close = AsyncMock()
        clients.moralis.close = AsyncMock(side_effect=RuntimeError("already closed"))

        async with clients:
            pass
        for client in clients.all():
            client.close.assert_called_once()
