"""Structured logging for the client.

Library modules only call logging.getLogger(__name__) and log dotted event
names with `extra` fields. Applications that want JSON output call
configure_logging() once; it installs:
- a filter stamping each record with the JSON-RPC id of the call in progress
- a filter masking credentials and signed-payload fields
- JsonFormatter (or a plain text format) on stdout or a rotating file
"""

from __future__ import annotations

import hashlib
import json
import logging
import sys
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Iterable, Mapping

from randomorg_client.core.config import LogSettings, settings

REDACTED = "[REDACTED]"

# Compared case-insensitively, so "apiKey" and "api_key" are both covered
SENSITIVE_KEYS_DEFAULT: frozenset[str] = frozenset(
    {
        "api_key",
        "apikey",
        "random_org_api_key",
        "authorization",
        "password",
        "secret",
        "token",
        "signature",
        "license_data",
        "licensedata",
        "user_data",
        "userdata",
    }
)

# Attributes every LogRecord carries; anything else came in through `extra`
_RECORD_ATTRS = frozenset(logging.LogRecord("", 0, "", 0, "", (), None).__dict__) | {
    "message",
    "asctime",
    "taskName",
}

_rpc_id: ContextVar[str | None] = ContextVar("rpc_request_id", default=None)


def set_request_id(request_id: str | None) -> Token[str | None]:
    """Mark `request_id` as the JSON-RPC call in progress for this task.

    Returns:
        Token for reset_request_id().
    """
    return _rpc_id.set(request_id)


def reset_request_id(token: Token[str | None]) -> None:
    _rpc_id.reset(token)


def get_request_id() -> str | None:
    return _rpc_id.get()


def hash_api_key(api_key: str) -> str:
    """Short, non-reversible identifier for an API key, safe to log."""
    return hashlib.sha256(api_key.encode()).hexdigest()[:12]


def _masked(value: Any, keys: frozenset[str]) -> Any:
    if isinstance(value, Mapping):
        return {k: REDACTED if str(k).lower() in keys else _masked(v, keys) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return type(value)(_masked(v, keys) for v in value)
    return value


def record_extras(record: logging.LogRecord, keys: Iterable[str] = SENSITIVE_KEYS_DEFAULT) -> dict[str, Any]:
    """Return the `extra` fields of a record with sensitive values masked."""
    lowered = frozenset(k.lower() for k in keys)
    extras: dict[str, Any] = {}
    for name, value in vars(record).items():
        if name in _RECORD_ATTRS or name.startswith("_"):
            continue
        extras[name] = REDACTED if name.lower() in lowered else _masked(value, lowered)
    return extras


class RequestIdFilter(logging.Filter):
    """Stamp records with the JSON-RPC id of the dispatch being logged."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None:
            rpc_id = get_request_id()
            if rpc_id:
                record.request_id = rpc_id
        return True


class SensitiveDataFilter(logging.Filter):
    """Mask credential and signed-payload fields so no handler sees them."""

    def __init__(self, sensitive_keys: Iterable[str] | None = None) -> None:
        super().__init__()
        self.sensitive_keys = frozenset(sensitive_keys or SENSITIVE_KEYS_DEFAULT)

    def filter(self, record: logging.LogRecord) -> bool:
        for name, value in record_extras(record, self.sensitive_keys).items():
            setattr(record, name, value)
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per line: timestamp, level, logger, event, extras."""

    def __init__(
        self,
        *,
        sensitive_keys: Iterable[str] | None = None,
        ensure_ascii: bool = True,
    ) -> None:
        super().__init__()
        self.sensitive_keys = frozenset(sensitive_keys or SENSITIVE_KEYS_DEFAULT)
        self.ensure_ascii = ensure_ascii

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        rpc_id = getattr(record, "request_id", None) or get_request_id()
        if rpc_id:
            payload["request_id"] = rpc_id
        payload.update(record_extras(record, self.sensitive_keys))
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str, ensure_ascii=self.ensure_ascii)


def _build_handler(cfg: LogSettings) -> logging.Handler:
    if cfg.output.lower() != "file":
        return logging.StreamHandler(sys.stdout)

    path = Path(cfg.file_path or "logs/randomorg_client.log")
    path.parent.mkdir(parents=True, exist_ok=True)
    if not cfg.max_bytes:
        return logging.FileHandler(path, encoding="utf-8")
    return RotatingFileHandler(
        path,
        maxBytes=cfg.max_bytes,
        backupCount=cfg.backup_count,
        encoding="utf-8",
    )


def configure_logging(log_settings: LogSettings | None = None) -> None:
    """Route all records through one redacting handler on the root logger.

    The library never calls this itself; an embedding application opts in
    once at startup.

    Args:
        log_settings: Overrides; defaults to settings.log (LOG_* variables).
    """
    cfg = log_settings or settings.log
    level = logging.getLevelName(cfg.level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    handler = _build_handler(cfg)
    handler.addFilter(RequestIdFilter())
    handler.addFilter(SensitiveDataFilter())
    if cfg.format.lower() == "plain":
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    else:
        handler.setFormatter(JsonFormatter())

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level)

    # httpx logs every request at INFO; keep it quiet unless debugging
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))
