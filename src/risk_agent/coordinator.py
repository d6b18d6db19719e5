"""
Retry / fallback coordinator.

``FallbackCoordinator.fetch_fact`` walks an ordered provider chain for one
fact kind.  Per provider it makes up to ``max_attempts`` attempts, sleeping
``base_delay * attempt`` (or the server's ``Retry-After``) between attempts
on retryable statuses.  Non-retryable failures advance the chain at once,
``NOT_FOUND`` ends it with an empty result, and an exhausted chain yields
``NO_DATA``.  Nothing in here raises: a client or normalizer that blows up
is logged and treated as a failed provider.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Sequence

from .data_sources._http import ProviderResponse, ProviderStatus
from .errors import MalformedPayload
from .models import Fact, FactKind, Subject

logger = logging.getLogger(__name__)

Fetch = Callable[[Subject], Awaitable[ProviderResponse]]
Normalize = Callable[[Subject, Any], list[Fact]]
Sleep = Callable[[float], Awaitable[Any]]


class FactStatus(str, Enum):
    FOUND = "found"
    EMPTY = "empty"        # a provider answered authoritatively: nothing there
    NO_DATA = "no_data"    # every provider in the chain failed


@dataclass(frozen=True)
class ProviderStep:
    """One link of a provider chain: how to ask, and how to read the answer."""

    provider: str
    fetch: Fetch
    normalize: Normalize


@dataclass(frozen=True)
class Attempt:
    provider: str
    number: int
    status: str
    detail: str = ""


@dataclass(frozen=True)
class FactOutcome:
    kind: FactKind
    status: FactStatus
    facts: tuple[Fact, ...] = ()
    provider: Optional[str] = None
    attempts: tuple[Attempt, ...] = ()

    @property
    def found(self) -> bool:
        return self.status is FactStatus.FOUND

    @classmethod
    def no_data(cls, kind: FactKind, attempts: Sequence[Attempt] = ()) -> "FactOutcome":
        return cls(kind, FactStatus.NO_DATA, attempts=tuple(attempts))


class FallbackCoordinator:
    """Bounded retries per provider, then fall through the chain."""

    def __init__(
        self,
        max_attempts: int = 2,
        base_delay: float = 1.0,
        *,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._max_attempts = max(1, max_attempts)
        self._base_delay = max(0.0, base_delay)
        self._sleep = sleep

    async def fetch_fact(
        self,
        kind: FactKind,
        subject: Subject,
        chain: Sequence[ProviderStep],
    ) -> FactOutcome:
        """Return the facts of *kind* about *subject* from the first provider that answers."""
        attempts: list[Attempt] = []
        for index, step in enumerate(chain):
            if index:
                logger.info("%s for %s: falling back to %s", kind.value, subject.subject_id, step.provider)
            resp = await self._attempt_provider(step.provider, lambda: step.fetch(subject), attempts)
            if resp is None:
                continue
            if resp.status is ProviderStatus.NOT_FOUND:
                return FactOutcome(kind, FactStatus.EMPTY, (), step.provider, tuple(attempts))
            if not resp.ok:
                continue
            try:
                facts = step.normalize(subject, resp.payload)
            except MalformedPayload as exc:
                logger.warning("%s: malformed %s payload: %s", step.provider, kind.value, exc.detail)
                attempts.append(Attempt(step.provider, 0, ProviderStatus.MALFORMED.value, exc.detail))
                continue
            except Exception:
                logger.exception("%s: normalizing %s failed", step.provider, kind.value)
                attempts.append(Attempt(step.provider, 0, ProviderStatus.MALFORMED.value, "normalizer error"))
                continue
            status = FactStatus.FOUND if facts else FactStatus.EMPTY
            return FactOutcome(kind, status, tuple(facts), step.provider, tuple(attempts))

        if chain:
            logger.warning(
                "%s for %s: no provider answered (%s)",
                kind.value,
                subject.subject_id,
                ", ".join(f"{a.provider}#{a.number}={a.status}" for a in attempts) or "no attempts",
            )
        return FactOutcome.no_data(kind, attempts)

    async def call(
        self,
        label: str,
        fetch: Callable[[], Awaitable[ProviderResponse]],
    ) -> ProviderResponse:
        """Retry a single authoritative provider call; return its last response."""
        attempts: list[Attempt] = []
        resp = await self._attempt_provider(label, fetch, attempts)
        if resp is not None:
            return resp
        last = attempts[-1] if attempts else None
        if last is None:
            return ProviderResponse.failure(label, ProviderStatus.NETWORK_ERROR, "no attempt made")
        return ProviderResponse.failure(label, ProviderStatus(last.status), last.detail)

    async def _attempt_provider(
        self,
        provider: str,
        fetch: Callable[[], Awaitable[ProviderResponse]],
        attempts: list[Attempt],
    ) -> Optional[ProviderResponse]:
        """Run *fetch* with retries.

        Returns the final response for ``OK``/``NOT_FOUND``, and for
        non-retryable failures after recording them; ``None`` when the
        provider raised or exhausted its retries.
        """
        for number in range(1, self._max_attempts + 1):
            try:
                resp = await fetch()
            except Exception as exc:
                logger.exception("%s: request raised", provider)
                attempts.append(Attempt(provider, number, ProviderStatus.NETWORK_ERROR.value, repr(exc)))
                return None

            attempts.append(Attempt(provider, number, resp.status.value, resp.detail))
            if resp.ok or resp.status is ProviderStatus.NOT_FOUND:
                return resp
            if not resp.status.retryable:
                if resp.status is not ProviderStatus.UNAVAILABLE:
                    logger.info("%s: %s (%s), not retrying", provider, resp.status.value, resp.detail)
                return resp
            if number < self._max_attempts:
                delay = self._base_delay * number
                if resp.retry_after is not None:
                    delay = max(delay, resp.retry_after)
                logger.info(
                    "%s: %s, retry %d/%d in %.1fs",
                    provider, resp.status.value, number, self._max_attempts - 1, delay,
                )
                await self._sleep(delay)
        return None
