"""
Exception types raised across the Wallet Risk Agent.

Provider-level failures are never raised; they are reported as
``ProviderResponse`` statuses and absorbed by the fallback coordinator.
Only the conditions below escape to callers.
"""

from __future__ import annotations


class RiskAgentError(Exception):
    """Base class for all errors raised by this package."""


class ConfigurationError(RiskAgentError):
    """Raised at startup when mandatory configuration is missing or invalid."""


class InvalidInputError(RiskAgentError, ValueError):
    """Raised for malformed addresses or token IDs, before any provider call."""

    def __init__(self, field: str, value: object, reason: str) -> None:
        super().__init__(f"Invalid {field} {value!r}: {reason}")
        self.field = field
        self.value = value
        self.reason = reason


class ChainUnavailableError(RiskAgentError):
    """Raised when an authoritative chain RPC read could not be completed."""

    def __init__(self, method: str, subject: str) -> None:
        super().__init__(f"Chain RPC {method} failed for {subject}")
        self.method = method
        self.subject = subject


class MalformedPayload(RiskAgentError):
    """Raised by a normalizer when a provider response has an unexpected shape."""

    def __init__(self, provider: str, detail: str) -> None:
        super().__init__(f"{provider}: {detail}")
        self.provider = provider
        self.detail = detail
