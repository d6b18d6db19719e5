"""
Shared utilities for the Wallet Risk Agent.

- ``normalize_address`` / ``validate_token_id``: input validation, run
  before any provider call
- ``parse_datetime``: unified datetime parsing for provider timestamps
- ``format_units``: integer base units → decimal string (like ethers.js)
- ``resolve_uri`` / ``storage_scheme``: off-chain metadata URI handling
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Optional

from .errors import InvalidInputError

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
_DECIMAL_ID_RE = re.compile(r"^[0-9]+$")
_HEX_ID_RE = re.compile(r"^0x[0-9a-fA-F]+$")
_MAX_UINT256 = 2**256 - 1


# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------

def is_valid_address(value: object) -> bool:
    """True when *value* is ``0x`` followed by 40 hex digits (any case)."""
    return isinstance(value, str) and bool(_ADDRESS_RE.match(value.strip()))


def normalize_address(value: object, *, field: str = "address") -> str:
    """Return the canonical lowercase form of an Ethereum address.

    Raises ``InvalidInputError`` for anything that is not a 20-byte hex
    address.  Checksum casing is accepted but not verified.
    """
    if not isinstance(value, str):
        raise InvalidInputError(field, value, "expected a string")
    candidate = value.strip()
    if not _ADDRESS_RE.match(candidate):
        raise InvalidInputError(field, value, "expected 0x followed by 40 hex digits")
    return candidate.lower()


def validate_token_id(value: object) -> str:
    """Return *value* as a canonical decimal token ID string.

    Accepts non-negative decimal integers (as ``int`` or ``str``) and
    ``0x``-prefixed hex strings.  The result must fit in a uint256.
    """
    if isinstance(value, bool):
        raise InvalidInputError("token_id", value, "expected an integer")
    if isinstance(value, int):
        number = value
    elif isinstance(value, str):
        text = value.strip()
        if _DECIMAL_ID_RE.match(text):
            number = int(text)
        elif _HEX_ID_RE.match(text):
            number = int(text, 16)
        else:
            raise InvalidInputError("token_id", value, "expected a non-negative integer")
    else:
        raise InvalidInputError("token_id", value, "expected an integer")
    if number < 0 or number > _MAX_UINT256:
        raise InvalidInputError("token_id", value, "out of uint256 range")
    return str(number)


# ---------------------------------------------------------------------------
# Unified datetime parser
# ---------------------------------------------------------------------------

def parse_datetime(value: object) -> Optional[datetime]:
    """Convert a value to a timezone-aware ``datetime`` (UTC).

    Accepted inputs:

    - ``None`` → ``None``
    - ``datetime`` → pass-through, with ``tzinfo`` set to UTC if naïve
    - ``str`` → ISO-format, or a decimal string of Unix seconds (Etherscan)
    - ``int`` / ``float`` → Unix epoch timestamp in seconds
    - Anything else → ``None``
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    if isinstance(value, str):
        text = value.strip()
        if text.isdigit():
            return parse_datetime(int(text))
        try:
            cleaned = text.replace("Z", "+00:00") if text.endswith("Z") else text
            dt = datetime.fromisoformat(cleaned)
            if dt.tzinfo is None:
                dt = dt.replace(tzinfo=timezone.utc)
            return dt
        except (ValueError, TypeError):
            return None

    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(float(value), tz=timezone.utc)
        except (ValueError, OSError, OverflowError):
            return None

    return None


# ---------------------------------------------------------------------------
# Amounts
# ---------------------------------------------------------------------------

def format_units(raw: int, decimals: int) -> str:
    """Format an integer amount of base units as a decimal string.

    Mirrors ethers' ``formatUnits``: always keeps at least one fractional
    digit and strips trailing zeros, e.g. ``format_units(10**21, 18)`` →
    ``"1000.0"``.
    """
    if decimals < 0:
        raise ValueError("decimals must be non-negative")
    negative = raw < 0
    digits = str(abs(raw)).rjust(decimals + 1, "0")
    whole = digits[: len(digits) - decimals] if decimals else digits
    fraction = (digits[len(digits) - decimals:] if decimals else "").rstrip("0") or "0"
    return f"{'-' if negative else ''}{whole}.{fraction}"


def is_positive_amount(amount: str) -> bool:
    """True when the decimal string *amount* is strictly greater than zero."""
    try:
        return Decimal(amount) > 0
    except (InvalidOperation, TypeError, ValueError):
        return False


def hex_to_int(value: object) -> Optional[int]:
    """Parse a ``0x`` hex quantity (or plain int / decimal string)."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if not isinstance(value, str):
        return None
    text = value.strip()
    try:
        if text.lower().startswith("0x"):
            return int(text, 16) if len(text) > 2 else 0
        return int(text)
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# Off-chain URIs
# ---------------------------------------------------------------------------

def storage_scheme(uri: Optional[str]) -> str:
    """Classify where a metadata document lives."""
    if not uri:
        return "unknown"
    lowered = uri.strip().lower()
    if lowered.startswith("ipfs://") or "/ipfs/" in lowered:
        return "ipfs"
    if lowered.startswith("ar://") or "arweave.net" in lowered:
        return "arweave"
    if lowered.startswith("data:"):
        return "data"
    if lowered.startswith("https://"):
        return "https"
    if lowered.startswith("http://"):
        return "http"
    return "unknown"


def resolve_uri(uri: str, *, ipfs_gateway: str, arweave_gateway: str) -> str:
    """Rewrite ``ipfs://`` and ``ar://`` URIs to HTTP gateway URLs."""
    text = uri.strip()
    if text.startswith("ipfs://"):
        path = text[len("ipfs://"):]
        if path.startswith("ipfs/"):
            path = path[len("ipfs/"):]
        return ipfs_gateway.rstrip("/") + "/" + path
    if text.startswith("ar://"):
        return arweave_gateway.rstrip("/") + "/" + text[len("ar://"):]
    return text


def contains_any(text: Optional[str], words: tuple[str, ...]) -> bool:
    """Case-insensitive substring match against any of *words*."""
    if not text:
        return False
    lowered = text.lower()
    return any(word in lowered for word in words)
