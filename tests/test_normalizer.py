"""Tests for the fact normalizer (provider payload → canonical facts)."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from conftest import BAYC, COLLECTION, OWNER, TOKEN, USDC, WALLET
from risk_agent.errors import MalformedPayload
from risk_agent.models import (
    ContractSubject,
    ContractVerification,
    FactKind,
    FloorPrice,
    HolderDistribution,
    NFTHolding,
    NFTMetadata,
    NFTSubject,
    PriceEstimate,
    TokenBalance,
    TradingSignal,
    TradingSignalKind,
    WalletBehavior,
    WalletSubject,
)
from risk_agent.normalizer import (
    NORMALIZERS,
    alchemy_floor_price,
    alchemy_holder_distribution,
    alchemy_nft_holdings,
    alchemy_token_balances,
    coingecko_token_prices,
    etherscan_contract_creation,
    etherscan_contract_verification,
    forensics_price_estimate,
    forensics_trading_signals,
    forensics_wallet_behavior,
    metadata_from_document,
    moralis_floor_price,
    moralis_holder_distribution,
    moralis_nft_holdings,
    moralis_token_balances,
    normalizer_for,
    opensea_floor_price,
    opensea_nft_metadata,
    rpc_token_balances,
    uri_nft_metadata,
)

WALLET_SUBJECT = WalletSubject(address=WALLET)
BAYC_SUBJECT = ContractSubject(address=BAYC)
NFT_SUBJECT = NFTSubject(contract=BAYC, token_id="42")


class TestTokenBalances:

    def test_moralis(self, moralis_erc20_payload):
        facts = moralis_token_balances(WALLET_SUBJECT, moralis_erc20_payload)
        balances = [f for f in facts if isinstance(f, TokenBalance)]
        verifications = [f for f in facts if isinstance(f, ContractVerification)]

        assert [b.token for b in balances] == [USDC, TOKEN]
        usdc = balances[0]
        assert usdc.amount == "1000.0"
        assert usdc.decimals == 6
        assert usdc.provider == "moralis"
        assert balances[1].possible_spam is True
        assert {(v.contract, v.is_verified) for v in verifications} == {(USDC, True), (TOKEN, False)}

    def test_moralis_zero_balance_dropped(self, moralis_erc20_payload):
        facts = moralis_token_balances(WALLET_SUBJECT, moralis_erc20_payload)
        assert all(getattr(f, "symbol", None) != "DUST" for f in facts)

    def test_moralis_missing_balance_defaults_to_zero(self):
        payload = [{"token_address": USDC, "decimals": 6}]
        assert moralis_token_balances(WALLET_SUBJECT, payload) == []

    def test_moralis_missing_optional_fields_stay_none(self):
        payload = [{"token_address": USDC, "balance": "1000000000000000000"}]
        (fact,) = moralis_token_balances(WALLET_SUBJECT, payload)
        assert fact.name is None
        assert fact.symbol is None
        assert fact.possible_spam is None
        assert fact.decimals == 18
        assert fact.amount == "1.0"

    def test_moralis_wrapped_result(self, moralis_erc20_payload):
        facts = moralis_token_balances(WALLET_SUBJECT, {"result": moralis_erc20_payload})
        assert len([f for f in facts if isinstance(f, TokenBalance)]) == 2

    @pytest.mark.parametrize("payload", [
        {"unexpected": True},
        "error",
        [{"balance": "1"}],
        ["not-a-row"],
    ])
    def test_moralis_malformed(self, payload):
        with pytest.raises(MalformedPayload):
            moralis_token_balances(WALLET_SUBJECT, payload)

    def test_alchemy(self):
        payload = {
            "balances": [
                {"contractAddress": USDC.upper().replace("0X", "0x"), "tokenBalance": hex(2_500_000)},
            ],
            "metadata": {USDC: {"name": "USD Coin", "symbol": "USDC", "decimals": 6}},
        }
        (fact,) = alchemy_token_balances(WALLET_SUBJECT, payload)
        assert fact.token == USDC
        assert fact.amount == "2.5"
        assert fact.symbol == "USDC"

    def test_alchemy_missing_balances_is_malformed(self):
        with pytest.raises(MalformedPayload):
            alchemy_token_balances(WALLET_SUBJECT, {"metadata": {}})

    def test_rpc(self):
        payload = [
            {"contractAddress": USDC, "balance": 1_000_000, "name": "USD Coin", "symbol": "USDC", "decimals": 6},
            {"contractAddress": BAYC, "balance": None, "name": None, "symbol": None, "decimals": None},
        ]
        (fact,) = rpc_token_balances(WALLET_SUBJECT, payload)
        assert fact.amount == "1.0"
        assert fact.provider == "rpc"


class TestNftHoldings:

    def test_moralis(self, moralis_nft_payload):
        facts = moralis_nft_holdings(WALLET_SUBJECT, moralis_nft_payload)
        assert all(isinstance(f, NFTHolding) for f in facts)
        ape, copy = facts
        assert ape.contract == BAYC
        assert ape.token_id == "42"
        assert ape.collection_name == "BoredApeYachtClub"
        assert ape.metadata is not None
        assert ape.metadata.name == "Ape #42"
        assert ape.metadata.storage_scheme == "ipfs"
        assert copy.metadata is None
        assert copy.metadata_ref is None

    def test_moralis_falls_back_to_raw_metadata_string(self):
        payload = {"result": [{
            "token_address": BAYC,
            "token_id": "1",
            "token_uri": "https://api.example.com/1",
            "normalized_metadata": {"name": None, "description": None, "image": None},
            "metadata": '{"name": "Raw #1", "image": "https://img.example.com/1.png"}',
        }]}
        (fact,) = moralis_nft_holdings(WALLET_SUBJECT, payload)
        assert fact.metadata.name == "Raw #1"
        assert fact.metadata.storage_scheme == "https"

    def test_alchemy(self):
        payload = {"ownedNfts": [{
            "contract": {"address": BAYC, "name": "BoredApeYachtClub"},
            "tokenId": "0x2a",
            "tokenUri": "ipfs://Qm/42",
            "raw": {"metadata": {"name": "Ape #42", "image": "ipfs://img"}},
        }]}
        (fact,) = alchemy_nft_holdings(WALLET_SUBJECT, payload)
        assert fact.token_id == "42"
        assert fact.collection_name == "BoredApeYachtClub"
        assert fact.metadata.name == "Ape #42"

    def test_alchemy_missing_owned_nfts_is_malformed(self):
        with pytest.raises(MalformedPayload):
            alchemy_nft_holdings(WALLET_SUBJECT, {"totalCount": 0})

    def test_alchemy_null_owned_nfts_is_empty(self):
        assert alchemy_nft_holdings(WALLET_SUBJECT, {"ownedNfts": None}) == []


class TestNftMetadata:

    def test_uri(self, erc721_metadata):
        (fact,) = uri_nft_metadata(NFT_SUBJECT, {"uri": "https://api.example.com/1", "document": erc721_metadata})
        assert isinstance(fact, NFTMetadata)
        assert fact.name == "Cool Cat #1"
        assert fact.attributes == [{"trait_type": "Hat", "value": "Cap"}]
        assert fact.raw == erc721_metadata

    def test_opensea(self):
        payload = {"nft": {
            "name": "Ape #42",
            "description": "d",
            "image_url": "https://i.seadn.io/42.png",
            "metadata_url": "ipfs://Qm/42",
            "traits": [{"trait_type": "Fur", "value": "Gold"}],
        }}
        (fact,) = opensea_nft_metadata(NFT_SUBJECT, payload)
        assert fact.image == "https://i.seadn.io/42.png"
        assert fact.storage_scheme == "ipfs"
        assert fact.attributes[0]["value"] == "Gold"

    def test_metadata_from_document_image_fallbacks(self):
        fact = metadata_from_document("uri", {"image_url": "https://x/1.png", "traits": {"a": 1}}, None)
        assert fact.image == "https://x/1.png"
        assert fact.attributes == [{"a": 1}]
        assert fact.storage_scheme == "unknown"

    def test_blank_strings_become_none(self):
        fact = metadata_from_document("uri", {"name": "  ", "description": ""}, "https://x")
        assert fact.name is None
        assert fact.description is None
        assert fact.attributes is None


class TestHolderDistribution:

    def test_alchemy(self, alchemy_owners_payload):
        facts = alchemy_holder_distribution(BAYC_SUBJECT, alchemy_owners_payload)
        assert all(isinstance(f, HolderDistribution) for f in facts)
        assert [(f.holder_address, f.count) for f in facts] == [(WALLET, 3), (OWNER, 2)]

    def test_moralis_aggregates_and_sorts(self):
        payload = {"result": [
            {"owner_of": OWNER, "token_id": "1", "amount": "1"},
            {"owner_of": WALLET, "token_id": "2", "amount": "1"},
            {"owner_of": WALLET.upper().replace("0X", "0x"), "token_id": "3", "amount": "1"},
        ]}
        facts = moralis_holder_distribution(BAYC_SUBJECT, payload)
        assert [(f.holder_address, f.count) for f in facts] == [(WALLET, 2), (OWNER, 1)]

    def test_moralis_row_without_owner_is_malformed(self):
        with pytest.raises(MalformedPayload):
            moralis_holder_distribution(BAYC_SUBJECT, {"result": [{"token_id": "1"}]})


class TestEtherscan:

    def test_verified(self, etherscan_source_payload):
        (fact,) = etherscan_contract_verification(BAYC_SUBJECT, etherscan_source_payload)
        assert fact.is_verified is True
        assert fact.contract == BAYC

    def test_unverified(self):
        payload = {"status": "1", "result": [{"SourceCode": "", "ABI": "Contract source code not verified"}]}
        (fact,) = etherscan_contract_verification(BAYC_SUBJECT, payload)
        assert fact.is_verified is False

    def test_verification_for_nft_subject_uses_contract(self, etherscan_source_payload):
        (fact,) = etherscan_contract_verification(NFT_SUBJECT, etherscan_source_payload)
        assert fact.contract == BAYC

    def test_creation(self):
        payload = {"status": "1", "result": [{"timeStamp": "1619060596", "hash": "0xabc"}]}
        (fact,) = etherscan_contract_creation(BAYC_SUBJECT, payload)
        assert fact.creation_timestamp == datetime.fromtimestamp(1619060596, tz=timezone.utc)
        assert fact.is_verified is None

    def test_creation_without_timestamp_is_malformed(self):
        with pytest.raises(MalformedPayload):
            etherscan_contract_creation(BAYC_SUBJECT, {"result": [{"hash": "0xabc"}]})


class TestFloorPrice:

    def test_opensea(self):
        payload = {"collection": "bayc", "stats": {"total": {"floor_price": 12.5, "floor_price_symbol": "ETH"}}}
        (fact,) = opensea_floor_price(BAYC_SUBJECT, payload)
        assert isinstance(fact, FloorPrice)
        assert fact.value == 12.5
        assert fact.currency == "eth"
        assert fact.marketplace == "opensea"

    def test_opensea_zero_floor_is_empty(self):
        payload = {"collection": "x", "stats": {"total": {"floor_price": 0}}}
        assert opensea_floor_price(BAYC_SUBJECT, payload) == []

    def test_moralis(self):
        payload = {"floor_price": "11.9", "floor_price_currency": "eth", "marketplace": {"name": "blur"}}
        (fact,) = moralis_floor_price(BAYC_SUBJECT, payload)
        assert fact.value == 11.9
        assert fact.marketplace == "blur"

    def test_alchemy_prefers_opensea(self):
        payload = {
            "openSea": {"floorPrice": 10.0, "priceCurrency": "ETH"},
            "looksRare": {"floorPrice": 9.5, "priceCurrency": "ETH"},
        }
        (fact,) = alchemy_floor_price(BAYC_SUBJECT, payload)
        assert fact.marketplace == "opensea"

    def test_alchemy_falls_back_to_looksrare(self):
        payload = {"openSea": {"error": "unavailable"}, "looksRare": {"floorPrice": 9.5}}
        (fact,) = alchemy_floor_price(BAYC_SUBJECT, payload)
        assert fact.marketplace == "looksrare"
        assert fact.value == 9.5


class TestForensics:

    def test_signals_object(self):
        payload = {"signals": {"wash_trading": True, "price_manipulation": False, "rapid_transfers": True}}
        facts = forensics_trading_signals(BAYC_SUBJECT, payload)
        assert all(isinstance(f, TradingSignal) for f in facts)
        assert {f.signal for f in facts} == {TradingSignalKind.WASH_TRADING, TradingSignalKind.RAPID_TRANSFERS}

    def test_signals_list_ignores_unknown(self):
        facts = forensics_trading_signals(BAYC_SUBJECT, {"signals": ["suspicious_timing", "moon_phase"]})
        assert [f.signal for f in facts] == [TradingSignalKind.SUSPICIOUS_TIMING]

    def test_signals_bad_shape(self):
        with pytest.raises(MalformedPayload):
            forensics_trading_signals(BAYC_SUBJECT, {"signals": "wash_trading"})

    def test_wallet_behavior(self):
        (fact,) = forensics_wallet_behavior(WALLET_SUBJECT, {"risk_score": 82, "flags": ["mixer_interaction"]})
        assert isinstance(fact, WalletBehavior)
        assert fact.address == WALLET
        assert fact.risk_score == 82.0
        assert fact.flags == ("mixer_interaction",)

    def test_wallet_behavior_out_of_range_is_malformed(self):
        with pytest.raises(MalformedPayload):
            forensics_wallet_behavior(WALLET_SUBJECT, {"risk_score": 250})

    def test_price_estimate_percentage_confidence(self):
        (fact,) = forensics_price_estimate(NFT_SUBJECT, {"estimate": 1.42, "confidence": 27, "currency": "ETH"})
        assert isinstance(fact, PriceEstimate)
        assert fact.asset == f"{BAYC}:42"
        assert fact.confidence == pytest.approx(0.27)
        assert fact.currency == "eth"

    def test_price_estimate_empty(self):
        assert forensics_price_estimate(NFT_SUBJECT, {}) == []


class TestTokenPrices:

    def test_coingecko(self):
        payload = {USDC: {"usd": 0.9998}, TOKEN: {}}
        (fact,) = coingecko_token_prices(WALLET_SUBJECT, payload)
        assert fact.asset == USDC
        assert fact.value == 0.9998
        assert fact.currency == "usd"


class TestRegistry:

    def test_every_kind_has_a_normalizer(self):
        kinds = {kind for _, kind in NORMALIZERS}
        assert kinds == set(FactKind)

    def test_lookup(self):
        assert normalizer_for("moralis", FactKind.TOKEN_BALANCES) is moralis_token_balances
        assert normalizer_for("etherscan", FactKind.NFT_HOLDINGS) is None

    def test_facts_are_immutable(self, moralis_erc20_payload):
        fact = moralis_token_balances(WALLET_SUBJECT, moralis_erc20_payload)[0]
        with pytest.raises(Exception):
            fact.amount = "0"  # type: ignore[misc]

    def test_zero_decimal_token(self):
        payload = [{"token_address": COLLECTION, "balance": "1", "decimals": 0}]
        (fact,) = moralis_token_balances(WALLET_SUBJECT, payload)
        assert fact.token == COLLECTION
        assert fact.amount == "1.0"
