"""
Logging for the proxy.

Every record carries the session and run it belongs to. The protocol
server binds them with `bind_session` / `bind_run`; both are context
variables, so each socket task (and any background task it spawns) logs
under its own ids without passing them around.
"""

import contextlib
import contextvars
import datetime
import logging
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Iterator, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .settings import settings

LOGGER_NAME = "clawproxy"
LOG_FORMAT = (
    "%(asctime)s [%(levelname)s] %(name)s "
    "[session=%(session_id)s run=%(run_id)s] - %(message)s"
)
NO_CONTEXT = "-"

_session_id: contextvars.ContextVar[str] = contextvars.ContextVar(
    "clawproxy_session_id", default=NO_CONTEXT
)
_run_id: contextvars.ContextVar[str] = contextvars.ContextVar(
    "clawproxy_run_id", default=NO_CONTEXT
)


@contextlib.contextmanager
def bind_session(session_id: str) -> Iterator[None]:
    token = _session_id.set(session_id)
    try:
        yield
    finally:
        _session_id.reset(token)


@contextlib.contextmanager
def bind_run(run_id: str) -> Iterator[None]:
    token = _run_id.set(run_id)
    try:
        yield
    finally:
        _run_id.reset(token)


class SessionContextFilter(logging.Filter):
    """
    Stamp `session_id` / `run_id` onto records. Installed on our handlers,
    so records from uvicorn and other libraries format cleanly too.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "session_id"):
            record.session_id = _session_id.get()
        if not hasattr(record, "run_id"):
            record.run_id = _run_id.get()
        return True


class ProxyFormatter(logging.Formatter):
    """
    Millisecond ISO timestamps in LOG_TIMEZONE (system local time when
    unset or unknown).
    """

    def __init__(self, fmt: str = LOG_FORMAT, timezone_name: Optional[str] = None) -> None:
        super().__init__(fmt)
        self._tzinfo = _resolve_tzinfo(timezone_name)

    def formatTime(self, record: logging.LogRecord, datefmt: Optional[str] = None) -> str:
        dt = datetime.datetime.fromtimestamp(record.created, tz=self._tzinfo)
        if datefmt:
            return dt.strftime(datefmt)
        return dt.isoformat(timespec="milliseconds")


def _resolve_tzinfo(timezone_name: Optional[str]) -> datetime.tzinfo:
    if timezone_name:
        try:
            return ZoneInfo(timezone_name)
        except ZoneInfoNotFoundError:
            pass
    return datetime.datetime.now().astimezone().tzinfo or datetime.timezone.utc


def mask_secret(value: Optional[str]) -> str:
    """
    Render a credential for logs: only the last four characters survive.
    """
    if not value:
        return "<none>"
    tail = value[-4:] if len(value) > 8 else ""
    return f"***{tail}"


def _is_ours(handler: logging.Handler) -> bool:
    return any(isinstance(f, SessionContextFilter) for f in handler.filters)


def setup_logging(log_dir: Optional[Path] = None) -> None:
    """
    Console output goes through the root logger. Proxy records are also
    written to LOG_DIR/proxy.log, rotated at midnight with
    LOG_BACKUP_COUNT days kept. Safe to call more than once.
    """
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    formatter = ProxyFormatter(timezone_name=settings.log_timezone)
    context = SessionContextFilter()

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    if not any(_is_ours(h) for h in root_logger.handlers):
        console = logging.StreamHandler()
        console.setFormatter(formatter)
        console.addFilter(context)
        root_logger.addHandler(console)

    app_logger = logging.getLogger(LOGGER_NAME)
    app_logger.setLevel(level)
    app_logger.propagate = True
    if not any(_is_ours(h) for h in app_logger.handlers):
        directory = Path(log_dir or settings.log_dir)
        directory.mkdir(parents=True, exist_ok=True)
        file_handler = TimedRotatingFileHandler(
            directory / "proxy.log",
            when="midnight",
            backupCount=settings.log_backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        file_handler.addFilter(context)
        app_logger.addHandler(file_handler)


logger = logging.getLogger(LOGGER_NAME)


__all__ = [
    "LOG_FORMAT",
    "SessionContextFilter",
    "bind_run",
    "bind_session",
    "logger",
    "mask_secret",
    "setup_logging",
]
