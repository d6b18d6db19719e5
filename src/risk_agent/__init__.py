"""
Wallet Risk Agent package initializer.

This package exposes the three analyses ``scan_wallet``,
``check_collection`` and ``analyze_nft`` plus the ``RiskAnalyzer`` they run
on.  Provider clients and the risk rules should be imported explicitly from
their respective modules.
"""

from .analyzer import RiskAnalyzer, analyze_nft, check_collection, scan_wallet  # noqa: F401
from .errors import (  # noqa: F401
    ChainUnavailableError,
    ConfigurationError,
    InvalidInputError,
    RiskAgentError,
)
from .settings import Settings, load_settings  # noqa: F401

__all__ = [
    "RiskAnalyzer",
    "scan_wallet",
    "check_collection",
    "analyze_nft",
    "Settings",
    "load_settings",
    "RiskAgentError",
    "ConfigurationError",
    "InvalidInputError",
    "ChainUnavailableError",
]
