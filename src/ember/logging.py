"""Logging setup for the ember CLI and for applications embedding ember.

Library modules only call ``logging.getLogger(__name__)`` and log short
snake_case event names (``memory_add_complete``, ``retry_attempt``) with
structured context in ``extra={...}``. Whoever owns the process calls
``configure_logging()`` once.

Levels:
- DEBUG: cache hits, per-call provider details, candidate counts
- INFO: pipeline summaries and applied memory actions
- WARNING: recoverable fallbacks (extraction, decision, retries)
- ERROR: failures that abort an operation

API keys end up in exception messages often enough that every handler
installed here masks them before anything is written.
"""

import json
import logging
import os
import re
import time
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, TextIO

logger = logging.getLogger(__name__)

DEFAULT_LOG_RETENTION_DAYS = 7
LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")

DEFAULT_REDACT_PATTERNS: list[str] = [
    # OpenAI and Anthropic keys
    r"\b(sk-[A-Za-z0-9_-]{20,})\b",
    # OPENAI_API_KEY=... and similar assignments
    r"\b[A-Z0-9_]+(?:KEY|TOKEN|SECRET|PASSWORD|PASSWD)\s*[=:]\s*([^\s\"']{8,})",
    r"\bBearer\s+([A-Za-z0-9._\-+=]{20,})\b",
]

# Third-party loggers that are too chatty below WARNING
NOISY_LOGGERS = [
    "httpx",
    "httpcore",
    "anthropic",
    "openai",
    "sqlalchemy.engine",
    "aiosqlite",
]

# Attributes every LogRecord has; anything else came in through ``extra``.
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", None, None)).keys()
) | {"message", "asctime", "component"}


def _mask(token: str) -> str:
    """Keep enough of a secret to tell keys apart: ``sk-a...wxyz``."""
    if len(token) < 12:
        return "***"
    return f"{token[:4]}...{token[-4:]}"


class SecretRedactor:
    """Masks API keys and credential-looking values in log text.

    Each pattern's first group is the secret; the rest of the match (a
    variable name, ``Bearer``) is kept so the line stays readable.
    """

    def __init__(
        self, extra_patterns: list[str] | None = None, enabled: bool = True
    ) -> None:
        self.enabled = enabled
        self.patterns = [
            re.compile(p, re.IGNORECASE)
            for p in [*DEFAULT_REDACT_PATTERNS, *(extra_patterns or [])]
        ]

    def redact(self, text: str) -> str:
        if not self.enabled or not text:
            return text
        for pattern in self.patterns:
            text = pattern.sub(self._replace, text)
        return text

    def redact_value(self, value: Any) -> Any:
        """Redact strings inside an ``extra`` value, leaving other types alone."""
        if isinstance(value, str):
            return self.redact(value)
        if isinstance(value, dict):
            return {k: self.redact_value(v) for k, v in value.items()}
        if isinstance(value, list | tuple):
            return [self.redact_value(v) for v in value]
        return value

    @staticmethod
    def _replace(match: re.Match[str]) -> str:
        full = match.group(0)
        secret = match.group(1) if match.lastindex else full
        if "..." in secret:
            # Already masked by an earlier pattern.
            return full
        return full.replace(secret, _mask(secret))


_redactor = SecretRedactor()


def prune_old_logs(
    logs_dir: Path,
    retention_days: int = DEFAULT_LOG_RETENTION_DAYS,
    suffix: str = ".jsonl",
) -> int:
    """Delete log files last written more than ``retention_days`` ago.

    Returns the number of files removed.
    """
    if not logs_dir.is_dir():
        return 0

    cutoff = time.time() - retention_days * 86400
    deleted = 0
    for path in logs_dir.glob(f"*{suffix}"):
        try:
            if path.is_file() and path.stat().st_mtime < cutoff:
                path.unlink()
                deleted += 1
        except OSError as e:
            logger.debug(
                "log_prune_failed", extra={"path": str(path), "error.message": str(e)}
            )
    return deleted


def _component(logger_name: str) -> str:
    """``ember.memory.service`` -> ``memory``; other packages keep their root."""
    root, _, rest = logger_name.partition(".")
    if root == "ember" and rest:
        return rest.split(".", 1)[0]
    return root


def record_extra(record: logging.LogRecord) -> dict[str, Any]:
    """Fields passed to the log call through ``extra``."""
    return {
        key: value
        for key, value in vars(record).items()
        if key not in _RESERVED_ATTRS and not key.startswith("_")
    }


class JSONLHandler(logging.Handler):
    """Appends one JSON object per record to ``<logs_dir>/YYYY-MM-DD.jsonl``.

    The file is reopened when the UTC date changes, and opening a new day's
    file prunes files past the retention period.
    """

    def __init__(
        self,
        logs_dir: Path,
        retention_days: int = DEFAULT_LOG_RETENTION_DAYS,
    ):
        super().__init__()
        logs_dir.mkdir(parents=True, exist_ok=True)
        self._logs_dir = logs_dir
        self._retention_days = retention_days
        self._day: str | None = None
        self._stream: TextIO | None = None

    def _stream_for(self, day: str) -> TextIO:
        if self._stream is None or self._day != day:
            if self._stream is not None:
                self._stream.close()
            self._stream = (self._logs_dir / f"{day}.jsonl").open(
                "a", encoding="utf-8"
            )
            self._day = day
            prune_old_logs(self._logs_dir, self._retention_days)
        return self._stream

    def build_entry(self, record: logging.LogRecord) -> dict[str, Any]:
        now = datetime.now(UTC)
        entry: dict[str, Any] = {
            "ts": now.isoformat(),
            "level": record.levelname,
            "component": _component(record.name),
            "logger": record.name,
            "message": _redactor.redact(record.getMessage()),
        }
        if record.exc_info:
            formatter = self.formatter or logging.Formatter()
            entry["exception"] = _redactor.redact(
                formatter.formatException(record.exc_info)
            )
        if extra := record_extra(record):
            entry["extra"] = _redactor.redact_value(extra)
        return entry

    def emit(self, record: logging.LogRecord) -> None:
        try:
            entry = self.build_entry(record)
            stream = self._stream_for(entry["ts"][:10])
            stream.write(json.dumps(entry, default=str) + "\n")
            stream.flush()
        except Exception:
            self.handleError(record)

    def close(self) -> None:
        if self._stream is not None:
            self._stream.close()
            self._stream = None
        super().close()


class ComponentFormatter(logging.Formatter):
    """Adds ``%(component)s`` and redacts the formatted line."""

    def format(self, record: logging.LogRecord) -> str:
        record.component = _component(record.name)
        return _redactor.redact(super().format(record))


def _resolve_level(level: str | None) -> int:
    name = (level or os.environ.get("EMBER_LOG_LEVEL") or "INFO").upper()
    return getattr(logging, name if name in LEVELS else "INFO")


def _console_handler(use_rich: bool) -> logging.Handler:
    if use_rich:
        from rich.logging import RichHandler

        handler: logging.Handler = RichHandler(
            show_path=False, show_time=True, markup=False
        )
        handler.setFormatter(ComponentFormatter("%(component)s | %(message)s"))
        return handler

    handler = logging.StreamHandler()
    handler.setFormatter(
        ComponentFormatter(
            "%(asctime)s | %(levelname)-8s | %(component)s | %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    return handler


def configure_logging(
    level: str | None = None,
    use_rich: bool = False,
    log_to_file: bool = False,
) -> None:
    """Replace the root logger's handlers with ember's.

    Args:
        level: DEBUG, INFO, WARNING or ERROR (any case). Defaults to
            ``EMBER_LOG_LEVEL``, then INFO; unknown names fall back to INFO.
        use_rich: Colour console output through rich.
        log_to_file: Also write JSONL files under ``$EMBER_HOME/logs``.
    """
    from ember.config.paths import get_logs_path

    log_level = _resolve_level(level)
    handlers = [_console_handler(use_rich)]
    if log_to_file:
        file_handler = JSONLHandler(get_logs_path())
        file_handler.setLevel(log_level)
        handlers.append(file_handler)

    logging.basicConfig(level=log_level, handlers=handlers, force=True)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
