"""
Structured logging setup with optional JSON output and redaction.
- Console handler + rotating file handler
- JSON formatter by default; pretty text if OVERVIEW_LOG_JSON=false
- Redacts e-mail addresses (calendar ids and titles carry them) and bearer-like tokens

Example:
    from overview.logging_utils import configure_logging, get_logger
    configure_logging()
    log = get_logger(__name__)
    log.info("summarizer.tree_built", extra={"buckets": 12})
"""
from __future__ import annotations

import json
import logging
import logging.handlers as handlers
import re
import sys
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator

from overview.config import Settings, get_settings


EMAIL_RE = re.compile(r"(?i)([a-z0-9._%+-]+)@([a-z0-9.-]+\.[a-z]{2,})")
TOKEN_RE = re.compile(r"(?i)\b(eyJ[\w-]+\.[\w-]+\.[\w-]+|ya29\.[A-Za-z0-9_-]{20,}|1//[A-Za-z0-9_-]{20,})\b")

_STD_ATTRS = frozenset(vars(logging.LogRecord("x", 0, "x", 0, "", (), None)).keys())


def redact(value: str) -> str:
    """Mask e-mail addresses and OAuth tokens in a string."""
    return TOKEN_RE.sub("***TOKEN***", EMAIL_RE.sub("***@***", value))


class RedactingFilter(logging.Filter):
    """Redact emails and token-like strings in log messages and extras."""

    def __init__(self, enabled: bool = True) -> None:
        super().__init__()
        self.enabled = enabled

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        """Mutate the record in-place, replacing sensitive string patterns."""
        if not self.enabled:
            return True
        if isinstance(record.msg, str):
            record.msg = redact(record.msg)
        if record.args and isinstance(record.args, tuple):
            record.args = tuple(redact(a) if isinstance(a, str) else a for a in record.args)
        # extras land directly on the record
        for k, v in list(record.__dict__.items()):
            if k in _STD_ATTRS:
                continue
            if isinstance(v, str):
                record.__dict__[k] = redact(v)
            elif isinstance(v, (list, tuple)):
                record.__dict__[k] = type(v)(redact(x) if isinstance(x, str) else x for x in v)
        return True


class JsonFormatter(logging.Formatter):
    """Minimal JSON formatter for logs."""

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        """Render a log record as a JSON object string."""
        base: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        extras = {k: v for k, v in record.__dict__.items() if k not in _STD_ATTRS}
        if extras:
            base.update({k: _safe(v) for k, v in extras.items()})
        if record.exc_info:
            base["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(base, ensure_ascii=False)


class TextFormatter(logging.Formatter):
    """Human-readable single-line formatter for console output."""

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        """Render timestamp, level, logger name, message and extras as plain text."""
        ts = datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat()
        extras = " ".join(
            f"{k}={_safe(v)}" for k, v in record.__dict__.items() if k not in _STD_ATTRS
        )
        line = f"{ts} | {record.levelname:<7} | {record.name} | {record.getMessage()}"
        if extras:
            line = f"{line} | {extras}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def _safe(v: Any) -> Any:
    try:
        json.dumps(v)
        return v
    except (TypeError, ValueError):
        return repr(v)


_configured = False


def configure_logging(force: bool = False, *, config: Settings | None = None) -> None:
    """Set up console + rotating file handlers, JSON or text based on settings.

    Call once at app startup. Safe to call multiple times with force=True.
    """
    global _configured
    if _configured and not force:
        return

    cfg = config or get_settings()

    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)

    level = getattr(logging, cfg.log_level.upper(), logging.INFO)
    root.setLevel(level)

    filt = RedactingFilter(enabled=cfg.redact_emails_in_logs)

    # Console handler; stderr keeps stdout free for CLI output
    ch = logging.StreamHandler(sys.stderr)
    ch.addFilter(filt)
    ch.setLevel(level)
    ch.setFormatter(JsonFormatter() if cfg.log_json else TextFormatter())
    root.addHandler(ch)

    # File handler (rotating)
    try:
        cfg.log_path.parent.mkdir(parents=True, exist_ok=True)
        fh = handlers.RotatingFileHandler(
            cfg.log_path, maxBytes=cfg.log_max_bytes, backupCount=cfg.log_backup_count
        )
        fh.addFilter(filt)
        fh.setLevel(level)
        fh.setFormatter(JsonFormatter())  # Always JSON in file for easier parsing
        root.addHandler(fh)
    except OSError:
        # If filesystem not writable, keep going with console only
        root.warning("file handler disabled (log_path not writable)")

    _configured = True


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a named logger. Handlers are installed by `configure_logging()`."""
    return logging.getLogger(name if name else __name__)


@contextmanager
def timed(log: logging.Logger, event: str, **extra: Any) -> Iterator[dict[str, Any]]:
    """Log `event` at DEBUG with elapsed milliseconds once the block exits.

    The yielded dict can be filled with more fields inside the block.
    """
    t0 = time.perf_counter()
    fields: dict[str, Any] = dict(extra)
    try:
        yield fields
    finally:
        fields["elapsed_ms"] = round((time.perf_counter() - t0) * 1000, 1)
        log.debug(event, extra=fields)


# --- tiny smoke test when run directly ---
if __name__ == "__main__":
    configure_logging(force=True)
    log = get_logger("overview.smoke")
    log.info("hello from logging", extra={"component": "smoke", "calendar_id": "jane.doe@example.com"})
