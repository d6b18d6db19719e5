"""
Command line interface for the Wallet Risk Agent.

Usage::

    python src/main.py wallet <ADDRESS>
    python src/main.py collection <CONTRACT>
    python src/main.py nft <CONTRACT> <TOKEN_ID>

Add ``--json`` to any command for raw camelCase JSON on stdout.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import os

# Ensure ``src/`` is on the import path
sys.path.insert(0, os.path.dirname(__file__))

from risk_agent.analyzer import RiskAnalyzer
from risk_agent.errors import ChainUnavailableError, ConfigurationError, InvalidInputError
from risk_agent.logging_config import setup_error_tracking, setup_logging
from risk_agent.models import CollectionInfo, NFTInfo, WalletAnalysis
from risk_agent.settings import load_settings

logger = logging.getLogger("risk_agent.cli")

EXIT_INVALID_INPUT = 2
EXIT_UNAVAILABLE = 3


def _print_factors(factors: list[str]) -> None:
    if factors:
        for factor in factors:
            print(f"    - {factor}")
    else:
        print("    (none)")


def _print_wallet(result: WalletAnalysis) -> None:
    print("=" * 60)
    print("  Wallet Risk Agent – Wallet Scan")
    print("=" * 60)
    print(f"  Address      : {result.address}")
    print(f"  ETH balance  : {result.eth_balance}")
    print(f"  Risk         : {result.risk_level.upper()} (score {result.risk_score}/100)")
    print("-" * 60)
    if result.tokens:
        print("  Tokens:")
        for t in result.tokens:
            price = f"  ${t.price:,.4f}" if t.price is not None else ""
            print(f"    {t.symbol or t.address[:10]:12s} {t.balance:>24s}{price}  [{t.risk_level}]")
    else:
        print("  No ERC-20 tokens found.")
    if result.nfts:
        print("  NFTs:")
        for n in result.nfts:
            label = n.name or f"{n.contract_address[:10]}… #{n.token_id}"
            print(f"    {label[:40]:40s}  [{n.risk_level}]")
    else:
        print("  No NFTs found.")
    print("-" * 60)
    print(f"  {result.summary}")
    print("=" * 60)


def _print_collection(result: CollectionInfo) -> None:
    print("=" * 60)
    print("  Wallet Risk Agent – Collection Check")
    print("=" * 60)
    print(f"  Contract     : {result.contract_address}")
    print(f"  Name         : {result.name}")
    print(f"  Total supply : {result.total_supply}")
    floor = f"{result.floor_price} ETH" if result.floor_price is not None else "n/a"
    print(f"  Floor price  : {floor}")
    estimated = " (estimated)" if result.holder_data_estimated else ""
    print(f"  Holders      : {result.holder_count}{estimated}")
    print(f"  Audit        : {result.audit_status}")
    print(f"  Risk         : {result.risk_level.upper()}")
    print("  Risk factors:")
    _print_factors(result.risk_factors)
    print("=" * 60)


def _print_nft(result: NFTInfo) -> None:
    print("=" * 60)
    print("  Wallet Risk Agent – NFT Analysis")
    print("=" * 60)
    print(f"  Contract     : {result.contract_address}")
    print(f"  Token ID     : {result.token_id}")
    print(f"  Name         : {result.name or 'Unknown'}")
    print(f"  Owner        : {result.metadata.get('owner', 'n/a')}")
    print(f"  Risk         : {result.risk_level.upper()}")
    print("  Risk factors:")
    _print_factors(result.risk_factors)
    print("=" * 60)


async def _run(args: argparse.Namespace) -> None:
    """Async entry point."""
    settings = load_settings()
    async with RiskAnalyzer(settings) as analyzer:
        if args.command == "wallet":
            result = await analyzer.analyze_wallet(args.address)
            printer = _print_wallet
        elif args.command == "collection":
            result = await analyzer.analyze_collection(args.address)
            printer = _print_collection
        else:
            result = await analyzer.analyze_nft(args.address, args.token_id)
            printer = _print_nft

    if args.as_json:
        print(result.model_dump_json(indent=2, by_alias=True))
        return
    printer(result)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="risk-agent",
        description="Risk analysis for Ethereum wallets, NFT collections and NFTs",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        dest="as_json",
        help="Output result as raw JSON",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    wallet = sub.add_parser("wallet", help="Scan a wallet's tokens and NFTs")
    wallet.add_argument("address", help="Wallet address (0x…)")

    collection = sub.add_parser("collection", help="Check an NFT collection")
    collection.add_argument("address", help="Collection contract address (0x…)")

    nft = sub.add_parser("nft", help="Analyse a single NFT")
    nft.add_argument("address", help="Collection contract address (0x…)")
    nft.add_argument("token_id", help="Token ID (decimal or 0x-hex)")

    for p in (wallet, collection, nft):
        p.add_argument(
            "--json",
            action="store_true",
            dest="as_json",
            default=argparse.SUPPRESS,
            help="Output result as raw JSON",
        )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Entry point for the CLI."""
    args = build_parser().parse_args(argv)
    setup_logging()
    setup_error_tracking()
    try:
        asyncio.run(_run(args))
    except InvalidInputError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_INVALID_INPUT
    except ConfigurationError as exc:
        print(f"configuration error: {exc}", file=sys.stderr)
        return EXIT_INVALID_INPUT
    except ChainUnavailableError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_UNAVAILABLE
    return 0


if __name__ == "__main__":
    sys.exit(main())
