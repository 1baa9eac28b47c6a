"""
Logging for turfwar.

Every record carries the command it belongs to: who issued it (`user_id`),
which gang it touched (`gang_id`), the command name and a short correlation
id. Services bind these with `LogContext` around each public operation, so a
raid and the vault writes it causes can be followed in one search.

Output
------
- JSON lines when Config.LOG_JSON is set, or by default in production.
- Plain text otherwise.
- LOG_TO_FILE adds a JSON file under Config.LOGS_DIR, rotated at midnight UTC.

Records are handed to a QueueListener thread so a slow sink never stalls the
event loop.
"""

from __future__ import annotations

import json
import logging
import queue
import sys
import uuid
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from logging import Logger
from logging.handlers import QueueHandler, QueueListener, TimedRotatingFileHandler
from typing import Any, Dict, List, Optional

from turfwar.core.config.config import Config

CONTEXT_FIELDS = ("user_id", "gang_id", "command", "operation", "correlation_id", "component")
UNSET = "-"

TEXT_FORMAT = "%(asctime)s %(levelname)-8s [%(command)s u=%(user_id)s g=%(gang_id)s] %(name)s: %(message)s"
TEXT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_FILE_NAME = "turfwar.json.log"

# attributes every LogRecord has; anything else came in through `extra=`
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}

_command_context: ContextVar[Dict[str, Any]] = ContextVar("turfwar_command_context", default={})
_listener: Optional[QueueListener] = None


def _level() -> int:
    level = logging.getLevelName(str(Config.LOG_LEVEL).upper())
    return level if isinstance(level, int) else logging.INFO


def _json_enabled() -> bool:
    return Config.is_production() if Config.LOG_JSON is None else bool(Config.LOG_JSON)


class ContextFilter(logging.Filter):
    """Copy the bound command context onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        context = _command_context.get()
        for field in CONTEXT_FIELDS:
            # explicit `extra=` values win over the bound context
            if not hasattr(record, field):
                setattr(record, field, context.get(field, UNSET))
        if record.component == UNSET:  # type: ignore[attr-defined]
            record.component = record.name.split(".")[-1]  # type: ignore[attr-defined]
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per record; `extra=` fields go under "extra"."""

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
        }
        payload.update(
            (field, getattr(record, field))
            for field in CONTEXT_FIELDS
            if getattr(record, field, UNSET) not in (None, UNSET)
        )

        extra = {
            key: value
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and key not in CONTEXT_FIELDS and not key.startswith("_")
        }
        if extra:
            payload["extra"] = extra
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=str)


def _sinks() -> List[logging.Handler]:
    formatter: logging.Formatter = (
        JSONFormatter() if _json_enabled() else logging.Formatter(TEXT_FORMAT, TEXT_DATE_FORMAT)
    )
    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(formatter)
    sinks: List[logging.Handler] = [console]

    if Config.LOG_TO_FILE:
        Config.LOGS_DIR.mkdir(parents=True, exist_ok=True)
        rotating = TimedRotatingFileHandler(
            Config.LOGS_DIR / LOG_FILE_NAME,
            when="midnight",
            backupCount=7,
            encoding="utf-8",
            utc=True,
        )
        rotating.setFormatter(JSONFormatter())
        sinks.append(rotating)

    for sink in sinks:
        sink.setLevel(_level())
    return sinks


def setup_logging() -> None:
    """Install the queue handler on the root logger. Idempotent."""
    global _listener
    if _listener is not None:
        return

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
    root.setLevel(_level())

    records: "queue.Queue[logging.LogRecord]" = queue.Queue(-1)
    _listener = QueueListener(records, *_sinks(), respect_handler_level=True)
    _listener.start()

    handler = QueueHandler(records)
    handler.addFilter(ContextFilter())
    root.addHandler(handler)

    for noisy in ("asyncio", "sqlalchemy.engine", "testcontainers"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logging.getLogger(__name__).debug(
        "Logging configured",
        extra={"environment": Config.ENVIRONMENT, "json": _json_enabled()},
    )


def shutdown_logging() -> None:
    """Flush the queue and detach every handler."""
    global _listener
    if _listener is None:
        return

    _listener.stop()
    for sink in _listener.handlers:
        sink.close()
    _listener = None

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)


def get_logger(name: str) -> Logger:
    return logging.getLogger(name)


class LogContext:
    """
    Bind command context for every record logged inside the block.

    Works as a sync or async context manager. Blocks nest; the inner one
    is restored to the outer one on exit.

    >>> async with LogContext(user_id=42, command="raid"):
    ...     await combat.raid(42, "Jackals")
    """

    def __init__(
        self,
        user_id: Optional[int] = None,
        gang_id: Optional[int] = None,
        command: Optional[str] = None,
        component: Optional[str] = None,
        operation: Optional[str] = None,
        correlation_id: Optional[str] = None,
        **extra: Any,
    ) -> None:
        bound = {
            "user_id": user_id,
            "gang_id": gang_id,
            "command": command,
            "component": component,
            "operation": operation,
            **extra,
        }
        self.context: Dict[str, Any] = {key: value for key, value in bound.items() if value is not None}
        self.context["correlation_id"] = correlation_id or uuid.uuid4().hex[:8]
        self._token: Optional[Token[Dict[str, Any]]] = None

    def __enter__(self) -> LogContext:
        self._token = _command_context.set(self.context)
        return self

    def __exit__(self, *exc_info: Any) -> None:
        if self._token is not None:
            _command_context.reset(self._token)
            self._token = None

    async def __aenter__(self) -> LogContext:
        return self.__enter__()

    async def __aexit__(self, *exc_info: Any) -> None:
        self.__exit__(*exc_info)


setup_logging()
