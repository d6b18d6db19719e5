"""
Shared single-attempt HTTP helpers for all provider clients.

Every provider call ends in a ``ProviderResponse``: either the parsed JSON
payload or a typed failure status.  Retrying and falling back between
providers is the coordinator's job, so nothing in here sleeps or loops.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)


class ProviderStatus(str, Enum):
    OK = "ok"
    NOT_FOUND = "not_found"
    UNAUTHORIZED = "unauthorized"
    RATE_LIMITED = "rate_limited"
    TIMEOUT = "timeout"
    NETWORK_ERROR = "network_error"
    MALFORMED = "malformed"
    UNAVAILABLE = "unavailable"

    @property
    def retryable(self) -> bool:
        return self in _RETRYABLE


_RETRYABLE = frozenset({
    ProviderStatus.RATE_LIMITED,
    ProviderStatus.TIMEOUT,
    ProviderStatus.NETWORK_ERROR,
})


@dataclass(frozen=True)
class ProviderResponse:
    """Result of exactly one provider request."""

    provider: str
    status: ProviderStatus
    payload: Any = None
    detail: str = ""
    retry_after: Optional[float] = None

    @property
    def ok(self) -> bool:
        return self.status is ProviderStatus.OK

    @classmethod
    def success(cls, provider: str, payload: Any) -> "ProviderResponse":
        return cls(provider, ProviderStatus.OK, payload)

    @classmethod
    def failure(
        cls,
        provider: str,
        status: ProviderStatus,
        detail: str = "",
        *,
        retry_after: Optional[float] = None,
    ) -> "ProviderResponse":
        return cls(provider, status, None, detail, retry_after)

    @classmethod
    def unavailable(cls, provider: str, detail: str = "API key not configured") -> "ProviderResponse":
        return cls(provider, ProviderStatus.UNAVAILABLE, None, detail)


def _parse_retry_after(resp: httpx.Response) -> Optional[float]:
    """Extract wait time from a ``Retry-After`` header.

    The header may be an integer (seconds) or an HTTP-date.  We only handle
    the integer form since that's what most APIs emit.
    """
    raw = resp.headers.get("retry-after")
    if raw is not None:
        try:
            return max(float(raw), 0.5)
        except (ValueError, TypeError):
            pass
    return None


def classify_response(resp: httpx.Response, label: str) -> ProviderResponse:
    """Map an HTTP response onto a ``ProviderResponse``."""
    status = resp.status_code
    if status in (401, 403):
        logger.warning("%s %s – credentials rejected", label, status)
        return ProviderResponse.failure(label, ProviderStatus.UNAUTHORIZED, f"HTTP {status}")
    if status == 404:
        return ProviderResponse.failure(label, ProviderStatus.NOT_FOUND, "HTTP 404")
    if status == 429:
        wait = _parse_retry_after(resp)
        logger.warning("%s rate-limited", label)
        return ProviderResponse.failure(
            label, ProviderStatus.RATE_LIMITED, "HTTP 429", retry_after=wait
        )
    if status >= 500:
        logger.warning("%s HTTP %s", label, status)
        return ProviderResponse.failure(label, ProviderStatus.NETWORK_ERROR, f"HTTP {status}")
    if status >= 400:
        logger.warning("%s HTTP %s – request rejected", label, status)
        return ProviderResponse.failure(label, ProviderStatus.MALFORMED, f"HTTP {status}")
    try:
        return ProviderResponse.success(label, resp.json())
    except ValueError:
        logger.warning("%s returned a non-JSON body", label)
        return ProviderResponse.failure(label, ProviderStatus.MALFORMED, "non-JSON body")


async def async_http_get(
    client: httpx.AsyncClient,
    url: str,
    *,
    params: Optional[dict[str, Any]] = None,
    headers: Optional[dict[str, str]] = None,
    timeout: Optional[float] = None,
    label: str = "HTTP",
) -> ProviderResponse:
    """GET *url* once and classify the outcome."""
    kwargs: dict[str, Any] = {"params": params, "headers": headers}
    if timeout is not None:
        kwargs["timeout"] = timeout
    try:
        resp = await client.get(url, **kwargs)
    except httpx.TimeoutException as exc:
        logger.warning("%s timed out: %s", label, exc)
        return ProviderResponse.failure(label, ProviderStatus.TIMEOUT, str(exc))
    except httpx.RequestError as exc:
        logger.warning("%s request failed: %s", label, exc)
        return ProviderResponse.failure(label, ProviderStatus.NETWORK_ERROR, str(exc))
    return classify_response(resp, label)


async def async_http_post_json(
    client: httpx.AsyncClient,
    url: str,
    *,
    json_payload: Any,
    headers: Optional[dict[str, str]] = None,
    timeout: Optional[float] = None,
    label: str = "RPC",
) -> ProviderResponse:
    """POST JSON *json_payload* once and classify the outcome."""
    kwargs: dict[str, Any] = {"json": json_payload, "headers": headers}
    if timeout is not None:
        kwargs["timeout"] = timeout
    try:
        resp = await client.post(url, **kwargs)
    except httpx.TimeoutException as exc:
        logger.warning("%s timed out: %s", label, exc)
        return ProviderResponse.failure(label, ProviderStatus.TIMEOUT, str(exc))
    except httpx.RequestError as exc:
        logger.warning("%s request failed: %s", label, exc)
        return ProviderResponse.failure(label, ProviderStatus.NETWORK_ERROR, str(exc))
    return classify_response(resp, label)
