"""Structured logging for the sandbox server.

Log records carry the scope of the tool call that produced them (request
id, tool name and target container) plus per-call ``context`` fields and
timings. Output always goes to stderr: stdout carries the MCP stdio
transport.
"""

import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from enum import Enum
from typing import Any

# Fields bound by the innermost RequestContext; replaced, never mutated
_scope: ContextVar[dict[str, str]] = ContextVar("log_scope", default={})

_SHORT_ID_LENGTH = 12


class LogLevel(str, Enum):
    """Levels accepted by configure_logging."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


def current_scope() -> dict[str, str]:
    """Fields bound by the enclosing request contexts."""
    return dict(_scope.get())


def short_id(container_id: str) -> str:
    """Docker's 12-character display form of a container id."""
    return container_id[:_SHORT_ID_LENGTH]


def _error_fields(record: logging.LogRecord) -> dict[str, str] | None:
    if not record.exc_info or record.exc_info[1] is None:
        return None
    exc = record.exc_info[1]
    return {"type": type(exc).__name__, "message": str(exc)}


def _fields(record: logging.LogRecord) -> dict[str, Any]:
    """Scope and call-site context of a record; call-site keys win."""
    fields: dict[str, Any] = current_scope()
    fields.update(getattr(record, "context", None) or {})
    return fields


class JsonFormatter(logging.Formatter):
    """One JSON object per line.

    Example line::

        {"time": "...", "level": "INFO", "logger": "code_sandbox.service",
         "message": "Run finished", "context": {"tool": "run_code",
         "exit_code": 0}, "duration_ms": 812.4}
    """

    def format(self, record: logging.LogRecord) -> str:
        data: dict[str, Any] = {
            "time": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        fields = _fields(record)
        if fields:
            data["context"] = fields
        error = _error_fields(record)
        if error:
            data["error"] = error
        duration_ms = getattr(record, "duration_ms", None)
        if duration_ms is not None:
            data["duration_ms"] = round(duration_ms, 1)
        return json.dumps(data, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable lines with the scope appended as ``key=value`` pairs.

    Container ids are shortened the way ``docker ps`` shows them.
    """

    def __init__(self) -> None:
        super().__init__("%(asctime)s %(levelname)-7s %(name)s: %(message)s")

    def formatMessage(self, record: logging.LogRecord) -> str:
        line = super().formatMessage(record)
        fields = _fields(record)
        if "container_id" in fields:
            fields["container_id"] = short_id(str(fields["container_id"]))
        if fields:
            line += " " + " ".join(f"{key}={value}" for key, value in fields.items())
        duration_ms = getattr(record, "duration_ms", None)
        if duration_ms is not None:
            line += f" ({duration_ms:.1f}ms)"
        return line

    def formatException(self, ei: Any) -> str:
        """Exception type and message on one line, without the traceback."""
        exc = ei[1]
        return f"{type(exc).__name__}: {exc}"


class StructuredLogger:
    """Logger taking structured ``context``, ``error`` and ``duration_ms``.

    Example:
        logger = get_logger(__name__)
        logger.info("Container started", context={"container_id": cid})
        logger.error("Pull failed", context={"image": image}, error=e)
    """

    def __init__(self, name: str, level: LogLevel | None = None) -> None:
        """Wrap the stdlib logger ``name``.

        Args:
            name: Logger name, normally the module's ``__name__``
            level: Level override; the package logger's level applies otherwise
        """
        self.logger = logging.getLogger(name)
        if level is not None:
            self.logger.setLevel(level.value)

    def _log(
        self,
        level: int,
        message: str,
        context: dict[str, Any] | None,
        error: BaseException | None,
        duration_ms: float | None,
    ) -> None:
        if not self.logger.isEnabledFor(level):
            return
        extra: dict[str, Any] = {"context": context or {}, "duration_ms": duration_ms}
        exc_info = (type(error), error, error.__traceback__) if error is not None else None
        self.logger.log(level, message, exc_info=exc_info, extra=extra)

    def debug(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        error: BaseException | None = None,
        duration_ms: float | None = None,
    ) -> None:
        self._log(logging.DEBUG, message, context, error, duration_ms)

    def info(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        error: BaseException | None = None,
        duration_ms: float | None = None,
    ) -> None:
        self._log(logging.INFO, message, context, error, duration_ms)

    def warning(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        error: BaseException | None = None,
        duration_ms: float | None = None,
    ) -> None:
        self._log(logging.WARNING, message, context, error, duration_ms)

    def error(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        error: BaseException | None = None,
        duration_ms: float | None = None,
    ) -> None:
        self._log(logging.ERROR, message, context, error, duration_ms)


class RequestContext:
    """Binds request fields to every record logged inside it.

    Contexts nest: an inner context adds to the outer scope, so a tool
    call can bind the container once the target is known.

    Example:
        async with RequestContext(tool="sandbox_exec"):
            async with RequestContext(container_id=handle.id):
                logger.info("Command finished")
    """

    def __init__(
        self,
        request_id: str | None = None,
        tool: str | None = None,
        container_id: str | None = None,
    ) -> None:
        """Collect the fields to bind.

        Args:
            request_id: Request identifier; generated for top-level contexts
            tool: Name of the MCP tool or resource being served
            container_id: Environment the request acts on
        """
        outer = _scope.get().get("request_id")
        if request_id is None and outer is None:
            request_id = uuid.uuid4().hex[:_SHORT_ID_LENGTH]
        self.request_id = request_id or outer
        self.fields = {
            key: value
            for key, value in (("request_id", request_id), ("tool", tool), ("container_id", container_id))
            if value
        }
        self._token: Any = None

    def __enter__(self) -> "RequestContext":
        self._token = _scope.set({**_scope.get(), **self.fields})
        return self

    def __exit__(self, *args: Any) -> None:
        _scope.reset(self._token)
        self._token = None

    async def __aenter__(self) -> "RequestContext":
        return self.__enter__()

    async def __aexit__(self, *args: Any) -> None:
        self.__exit__(*args)


class Timer:
    """Measures a block in milliseconds.

    Reading ``duration_ms`` inside the block gives the time elapsed so far.

    Example:
        with Timer() as t:
            await engine.pull(image)
        logger.info("Image ready", duration_ms=t.duration_ms)
    """

    def __init__(self) -> None:
        self._started: float | None = None
        self._stopped: float | None = None

    @property
    def duration_ms(self) -> float:
        if self._started is None:
            return 0.0
        end = self._stopped if self._stopped is not None else time.perf_counter()
        return (end - self._started) * 1000

    def __enter__(self) -> "Timer":
        self._started = time.perf_counter()
        self._stopped = None
        return self

    def __exit__(self, *args: Any) -> None:
        self._stopped = time.perf_counter()

    async def __aenter__(self) -> "Timer":
        return self.__enter__()

    async def __aexit__(self, *args: Any) -> None:
        self.__exit__(*args)


_FORMATTERS: dict[str, type[logging.Formatter]] = {
    "json": JsonFormatter,
    "text": TextFormatter,
}


def configure_logging(level: LogLevel | str = LogLevel.INFO, format: str = "json") -> None:
    """Route the ``code_sandbox`` logger tree to stderr.

    Args:
        level: Minimum level, case-insensitive when given as a string
        format: ``json`` for one object per line, ``text`` for plain lines

    Raises:
        ValueError: If the level or format is unknown
    """
    level = LogLevel(level.upper()) if isinstance(level, str) else level
    if format not in _FORMATTERS:
        raise ValueError(f"Unknown log format: {format}")

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_FORMATTERS[format]())

    package_logger = logging.getLogger("code_sandbox")
    package_logger.setLevel(level.value)
    package_logger.handlers[:] = [handler]


def get_logger(name: str) -> StructuredLogger:
    """Structured logger for a module; pass ``__name__``."""
    return StructuredLogger(name)
