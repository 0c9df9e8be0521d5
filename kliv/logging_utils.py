from __future__ import annotations
import logging
import os
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional

# Per-call-chain correlation ID, forwarded as X-Correlation-ID
correlation_id_ctx: ContextVar[str] = ContextVar("correlation_id", default="-")

_FORMAT = "%(asctime)s %(levelname)s [%(correlation_id)s] %(name)s: %(message)s"


class CorrelationIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        # provide %(correlation_id)s to all formatters
        record.correlation_id = correlation_id_ctx.get()
        return True


class _JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        import json, time

        payload = {
            "ts": time.strftime("%Y-%m-%dT%H:%M:%S", time.gmtime(record.created)),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", "-"),
        }
        event = getattr(record, "event", None)
        if event is not None:
            payload["event"] = event
        return json.dumps(payload, ensure_ascii=True, default=str)


_CONFIGURED = False


def _env_truthy(name: str, default: str = "true") -> bool:
    val = os.getenv(name, default)
    return str(val).strip().lower() in {"true", "1", "t", "yes", "y", "on"}


def current_correlation_id() -> Optional[str]:
    cid = correlation_id_ctx.get()
    return None if cid == "-" else cid


@contextmanager
def correlation_scope(cid: Optional[str] = None) -> Iterator[str]:
    """
    Bind a correlation ID (fresh uuid4 hex unless given) for the duration of
    the block. Every request issued inside carries it.
    """
    cid = cid or uuid.uuid4().hex
    token = correlation_id_ctx.set(cid)
    try:
        yield cid
    finally:
        correlation_id_ctx.reset(token)


def setup_logging(level: Optional[int] = None) -> None:
    """
    Idempotent logging setup that ensures %(correlation_id)s is available in all log lines.
    """
    global _CONFIGURED
    if _CONFIGURED:
        return

    filt = CorrelationIdFilter()
    root = logging.getLogger()
    root.addFilter(filt)

    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_FORMAT))
        handler.addFilter(filt)
        root.addHandler(handler)
        root.setLevel(level or logging.INFO)
    else:
        for h in list(root.handlers):
            # Ensure formatter includes correlation_id
            fmt = getattr(h.formatter, "_fmt", "") if h.formatter else ""
            if "%(correlation_id)" not in fmt:
                h.setFormatter(logging.Formatter(_FORMAT))
            h.addFilter(filt)
        if level is not None:
            root.setLevel(level)

    if _env_truthy("LOG_JSON", "false"):
        for h in root.handlers:
            h.setFormatter(_JsonFormatter())

    # client loggers plus the transport underneath requests
    for name in ("kliv", "urllib3"):
        logging.getLogger(name).addFilter(filt)

    _CONFIGURED = True
