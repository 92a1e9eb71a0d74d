"""Structured logging for the retrying client.

Library modules obtain a :class:`LoggerAdapter` through :func:`get_logger`.
Every entry it emits carries an ``operation`` and a ``status`` field, plus the
correlation ID active in the current context, so retries of one logical
request can be followed across attempts. Nothing is printed unless the
application calls :func:`setup_logging`.

Examples
--------
>>> from retrying_client.logging import get_logger
>>> logger = get_logger(__name__)
>>> logger.info("Retrying request", extra={"operation": "retry", "attempts_made": 1})
"""

from __future__ import annotations

import contextvars
import json
import logging
import sys
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Self

if TYPE_CHECKING:
    from collections.abc import Iterator, MutableMapping
    from types import TracebackType

    from retrying_client.types import JsonValue

__all__ = [
    "CorrelationContext",
    "JsonFormatter",
    "LoggerAdapter",
    "get_correlation_id",
    "get_logger",
    "set_correlation_id",
    "setup_logging",
    "with_fields",
]

_correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "retrying_client_correlation_id", default=None
)

# Fields of a bare record; anything else on a record arrived through ``extra``
_RECORD_FIELDS = frozenset(
    vars(logging.LogRecord("", logging.NOTSET, "", 0, "", (), None))
) | {"message", "asctime", "taskName"}

_JSON_SCALARS = (str, int, float, bool, list, dict)

_PLAIN_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def _status_for(level: int) -> str:
    if level >= logging.ERROR:
        return "error"
    if level >= logging.WARNING:
        return "warning"
    return "success"


class JsonFormatter(logging.Formatter):
    """Render each record as one JSON object per line.

    The object holds ``ts``, ``level``, ``name`` and ``message`` followed by
    every JSON-compatible field passed through ``extra``. ``correlation_id``
    falls back to the context value; tracebacks go under ``exc_info``.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, JsonValue] = {
            "ts": f"{self.formatTime(record, '%Y-%m-%dT%H:%M:%S')}.{int(record.msecs):03d}Z",
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }
        entry.update(
            {
                key: value
                for key, value in vars(record).items()
                if key not in _RECORD_FIELDS
                and key not in entry
                and not key.startswith("_")
                and isinstance(value, _JSON_SCALARS)
            }
        )
        entry.setdefault("correlation_id", _correlation_id.get())
        if entry["correlation_id"] is None:
            del entry["correlation_id"]
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class LoggerAdapter(logging.LoggerAdapter):  # type: ignore[type-arg]
    """Adapter merging bound fields and the context correlation ID into ``extra``.

    Parameters
    ----------
    logger : logging.Logger
        Logger receiving the records.
    extra : Mapping[str, object] | None, optional
        Fields bound to every entry; per-call ``extra`` wins on conflicts.
    """

    logger: logging.Logger

    def process(
        self, msg: object, kwargs: MutableMapping[str, Any]
    ) -> tuple[object, MutableMapping[str, Any]]:
        fields = {**(self.extra or {}), **(kwargs.get("extra") or {})}
        correlation_id = _correlation_id.get()
        if correlation_id is not None:
            fields.setdefault("correlation_id", correlation_id)
        kwargs["extra"] = fields
        return msg, kwargs

    def log(self, level: int, msg: object, *args: object, **kwargs: Any) -> None:
        """Log with ``operation`` defaulting to ``unknown`` and ``status`` inferred from ``level``."""
        if not self.isEnabledFor(level):
            return
        msg, kwargs = self.process(msg, kwargs)
        kwargs["extra"].setdefault("operation", "unknown")
        kwargs["extra"].setdefault("status", _status_for(level))
        self.logger.log(level, msg, *args, **kwargs)

    def log_success(
        self,
        message: str,
        *,
        operation: str | None = None,
        duration_ms: float | None = None,
        **fields: object,
    ) -> None:
        """Log a completed operation at INFO, optionally with its duration."""
        extra: dict[str, object] = {"status": "success", **fields}
        if operation is not None:
            extra["operation"] = operation
        if duration_ms is not None:
            extra["duration_ms"] = duration_ms
        self.info(message, extra=extra)

    def log_failure(
        self,
        message: str,
        *,
        exception: Exception | None = None,
        operation: str | None = None,
        level: int = logging.ERROR,
        **fields: object,
    ) -> None:
        """Log a failed operation with the exception type and detail.

        ``level`` defaults to ERROR; client errors pass their own ``log_level``.
        """
        extra: dict[str, object] = {"status": "error", **fields}
        if operation is not None:
            extra["operation"] = operation
        if exception is not None:
            extra["error_type"] = type(exception).__name__
            extra["error_detail"] = str(exception)
            code = getattr(exception, "code", None)
            if code is not None:
                extra["error_code"] = str(code)
        self.log(level, message, extra=extra)


def get_logger(name: str) -> LoggerAdapter:
    """Return a structured adapter for ``name``.

    The underlying logger gets a :class:`logging.NullHandler` the first time,
    so the library stays silent until the application configures logging.
    """
    logger = logging.getLogger(name)
    if not logger.handlers:
        logger.addHandler(logging.NullHandler())
    return LoggerAdapter(logger, {})


def setup_logging(level: int | str = logging.INFO, *, json_format: bool = True) -> None:
    """Send root logging to stderr, replacing existing root handlers.

    Parameters
    ----------
    level : int | str, optional
        Threshold as a number or a case-insensitive level name. Defaults to INFO.
    json_format : bool, optional
        Use :class:`JsonFormatter` when True, a plain text line otherwise.
    """
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonFormatter() if json_format else logging.Formatter(_PLAIN_FORMAT))
    logging.basicConfig(
        level=level.upper() if isinstance(level, str) else level,
        handlers=[handler],
        force=True,
    )


def set_correlation_id(correlation_id: str | None) -> None:
    """Set (or clear with None) the correlation ID of the current context."""
    _correlation_id.set(correlation_id)


def get_correlation_id() -> str | None:
    """Return the correlation ID of the current context, if any."""
    return _correlation_id.get()


class CorrelationContext:
    """Scope a correlation ID to a ``with`` block, restoring the previous one on exit.

    Examples
    --------
    >>> with CorrelationContext("req-123"):
    ...     assert get_correlation_id() == "req-123"
    """

    def __init__(self, correlation_id: str | None) -> None:
        self.correlation_id = correlation_id
        self._token: contextvars.Token[str | None] | None = None

    def __enter__(self) -> Self:
        self._token = _correlation_id.set(self.correlation_id)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        del exc_type, exc_val, exc_tb
        if self._token is not None:
            _correlation_id.reset(self._token)
            self._token = None


@contextmanager
def with_fields(
    logger: logging.Logger | LoggerAdapter,
    **fields: object,
) -> Iterator[LoggerAdapter]:
    """Yield an adapter binding ``fields`` to every entry it logs.

    A string ``correlation_id`` among ``fields`` is also placed in context for
    the duration of the block.

    Examples
    --------
    >>> with with_fields(get_logger(__name__), operation="get_with_retries") as log:
    ...     log.info("Fetching")
    """
    base = logger.logger if isinstance(logger, LoggerAdapter) else logger
    correlation_id = fields.get("correlation_id")
    if not isinstance(correlation_id, str):
        yield LoggerAdapter(base, fields)
        return
    with CorrelationContext(correlation_id):
        yield LoggerAdapter(base, fields)
