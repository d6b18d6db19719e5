"""
Logging and error-tracking configuration for the Wallet Risk Agent.

Supports two log formats:
- ``text`` (default): human-readable log lines
- ``json``: structured JSON for log aggregation (ELK, Datadog, etc.)

Settings via env vars:
- ``LOG_LEVEL``: DEBUG / INFO / WARNING / ERROR (default: INFO)
- ``LOG_FORMAT``: text / json (default: text)
- ``SENTRY_DSN``: enables Sentry error tracking when set
"""

from __future__ import annotations

import json as json_mod
import logging
import sys
import uuid
from contextvars import ContextVar

import sentry_sdk

from config import (
    LOG_FORMAT,
    LOG_LEVEL,
    SENTRY_DSN,
    SENTRY_ENVIRONMENT,
    SENTRY_TRACES_SAMPLE_RATE,
)

# Context var holding the correlation ID of the analysis in progress
request_id_ctx: ContextVar[str] = ContextVar("request_id", default="-")

logger = logging.getLogger(__name__)


class JSONFormatter(logging.Formatter):
    """Emit each log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "request_id": request_id_ctx.get("-"),
        }
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)
        return json_mod.dumps(entry, default=str)


def setup_logging(level: str | None = None, fmt: str | None = None) -> None:
    """Configure the root logger based on env settings."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, (level or LOG_LEVEL).upper(), logging.INFO))

    root.handlers.clear()

    # Logs go to stderr so that ``--json`` output on stdout stays parseable
    handler = logging.StreamHandler(sys.stderr)

    if (fmt or LOG_FORMAT) == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s [%(levelname)s] %(name)s (%(request_id)s) %(message)s",
                defaults={"request_id": "-"},
            )
        )

    handler.addFilter(_RequestIdFilter())
    root.addHandler(handler)


def setup_error_tracking() -> bool:
    """Initialise Sentry when ``SENTRY_DSN`` is configured.

    Returns True when error tracking is active.
    """
    if not SENTRY_DSN:
        logger.info("SENTRY_DSN not set – error tracking disabled")
        return False
    sentry_sdk.init(
        dsn=SENTRY_DSN,
        environment=SENTRY_ENVIRONMENT,
        traces_sample_rate=SENTRY_TRACES_SAMPLE_RATE,
        send_default_pii=False,
    )
    logger.info("Sentry initialised (env=%s)", SENTRY_ENVIRONMENT)
    return True


class _RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_ctx.get("-")  # type: ignore[attr-defined]
        return True


def generate_request_id() -> str:
    """Create a short unique request ID."""
    return uuid.uuid4().hex[:12]
