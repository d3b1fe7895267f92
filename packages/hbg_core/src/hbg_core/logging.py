import logging
import sys
import time
import uuid
from contextlib import contextmanager
from contextvars import ContextVar, Token
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Generator, Iterable, Optional, Union

# HTTP request id or hub connection id of the running task
correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(trace_str)s%(name)s: %(message)s"

# chatty below WARNING, silenced unless the level is DEBUG
NOISY_LOGGERS = ("sqlalchemy.engine", "aiosqlite", "aiosmtplib", "websockets", "httpx")


class TraceFormatter(logging.Formatter):
    """
    Prefixes records with ``[correlation-id]`` and stamps them in UTC ISO-8601.
    """

    converter = time.gmtime

    def formatTime(self, record, datefmt=None):  # noqa: N802
        ct = self.converter(record.created)
        if datefmt:
            return time.strftime(datefmt, ct)
        return "%s.%03dZ" % (time.strftime("%Y-%m-%dT%H:%M:%S", ct), record.msecs)

    def format(self, record: logging.LogRecord) -> str:
        cid = correlation_id.get()
        # not "cid": extra={} may already carry it
        record.trace_str = f"[{cid}] " if cid else ""
        return super().format(record)


def _handlers(
    log_file: Optional[Union[str, Path]], max_bytes: int, backup_count: int
) -> Iterable[logging.Handler]:
    yield logging.StreamHandler(sys.stdout)
    if not log_file:
        return
    path = Path(log_file).resolve()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        yield RotatingFileHandler(
            path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
        )
    except OSError as e:
        # read-only containers
        sys.stderr.write(f"Failed to setup log file: {e}\n")


def setup_logging(
    level: Union[int, str] = logging.INFO,
    log_file: Optional[Union[str, Path]] = None,
    max_bytes: int = 10_485_760,  # 10MB
    backup_count: int = 10,
    capture_roots: bool = True,
    module_name: str = "hbg",
) -> None:
    """
    Install stdout (and optionally rotating file) handlers.

    Args:
        level: Logging level name or number, usually `LOG_LEVEL`.
        log_file: Optional `LOG_FILE` path; parent directories are created.
        capture_roots: Configure the root logger. When False only
            `module_name` is configured and stops propagating.
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    target = logging.getLogger() if capture_roots else logging.getLogger(module_name)
    target.handlers.clear()
    target.setLevel(level)

    formatter = TraceFormatter(LOG_FORMAT)
    for handler in _handlers(log_file, max_bytes, backup_count):
        handler.setFormatter(formatter)
        target.addHandler(handler)

    if capture_roots:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(
                logging.NOTSET if level <= logging.DEBUG else logging.WARNING
            )
    else:
        target.propagate = False


def new_correlation_id() -> str:
    return uuid.uuid4().hex


def set_correlation_id(value: str) -> Token:
    """
    >>> token = set_correlation_id("req-555")
    >>> reset_correlation_id(token)
    """
    return correlation_id.set(value)


def reset_correlation_id(token: Token) -> None:
    correlation_id.reset(token)


@contextmanager
def scoped_correlation_id(value: str) -> Generator[None, None, None]:
    """
    Run a block under `value`, restoring the previous id afterwards.

    >>> with scoped_correlation_id("conn-123"):
    ...     logger.info("invocation received")
    """
    token = set_correlation_id(value)
    try:
        yield
    finally:
        reset_correlation_id(token)
