"""
Structured logging for Standup Pulse.

JSON lines (python-json-logger) in production, a coloured one-line format in
debug mode. Two correlation ids are stamped on every record by CorrelationFilter:
- request_id: set per HTTP request by LoggingMiddleware
- run_id: set per batch pass by batch_run_context()

Analytics code passes person_id / workspace_id / detector / rule through
`extra`; the JSON formatter emits them as top-level fields.
"""
import logging
import sys
import time
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime
from typing import Iterator, Optional

from pythonjsonlogger import jsonlogger

request_id_var: ContextVar[Optional[str]] = ContextVar('request_id', default=None)
run_id_var: ContextVar[Optional[str]] = ContextVar('run_id', default=None)

QUIET_LOGGERS = ('urllib3', 'asyncio', 'sqlalchemy.engine', 'apscheduler', 'tzlocal')

# Probes and scrapes are logged at DEBUG only
UNLOGGED_PATHS = ('/health', '/health/ready', '/metrics')


def get_request_id() -> Optional[str]:
    return request_id_var.get()


def set_request_id(request_id: Optional[str] = None) -> str:
    """Set the request id for the current context, generating one if needed."""
    request_id = request_id or uuid.uuid4().hex[:8]
    request_id_var.set(request_id)
    return request_id


def get_run_id() -> Optional[str]:
    return run_id_var.get()


@contextmanager
def batch_run_context(job: str) -> Iterator[str]:
    """
    Tag every log record emitted inside the block with a batch run id.

    Example:
        with batch_run_context("alerts") as run_id:
            engine.run_alert_checks(workspace_id)
    """
    run_id = f"{job}-{uuid.uuid4().hex[:8]}"
    token = run_id_var.set(run_id)
    try:
        yield run_id
    finally:
        run_id_var.reset(token)


class CorrelationFilter(logging.Filter):
    """Copies the context correlation ids onto the record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id()
        record.run_id = get_run_id()
        return True


class StructuredLogFormatter(jsonlogger.JsonFormatter):
    """One JSON object per record; empty correlation ids are dropped."""

    DROPPED_FIELDS = (
        'asctime', 'created', 'filename', 'funcName', 'levelname', 'levelno', 'lineno',
        'module', 'msecs', 'name', 'pathname', 'process', 'processName',
        'relativeCreated', 'thread', 'threadName', 'taskName',
    )

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        log_record['timestamp'] = datetime.utcnow().isoformat() + 'Z'
        log_record['level'] = record.levelname
        log_record['logger'] = record.name
        log_record['source'] = f"{record.filename}:{record.lineno}"

        for field in ('request_id', 'run_id'):
            if not log_record.get(field):
                log_record.pop(field, None)
        for field in self.DROPPED_FIELDS:
            log_record.pop(field, None)


class DevelopmentFormatter(logging.Formatter):
    """`LEVEL [run-or-request] logger - message (person@workspace)`, coloured by level."""

    COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[32m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[35m',
    }
    RESET = '\033[0m'

    def format(self, record):
        color = self.COLORS.get(record.levelname, '')
        parts = [f"{color}{record.levelname:8}{self.RESET if color else ''}"]

        correlation = getattr(record, 'run_id', None) or getattr(record, 'request_id', None)
        if correlation:
            parts.append(f"[{correlation}]")
        parts.append(f"{record.name} - {record.getMessage()}")

        person = getattr(record, 'person_id', None)
        if person:
            parts.append(f"({person}@{getattr(record, 'workspace_id', None) or '-'})")

        formatted = " ".join(parts)
        if record.exc_info:
            formatted += '\n' + self.formatException(record.exc_info)
        return formatted


def setup_logging(debug: bool = False, log_level: str = "INFO") -> None:
    """
    Replace the root handlers with one stdout handler.

    Args:
        debug: Human-readable format instead of JSON
        log_level: Root level name
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(CorrelationFilter())
    handler.setFormatter(
        DevelopmentFormatter() if debug
        else StructuredLogFormatter('%(timestamp)s %(level)s %(name)s %(message)s')
    )
    root_logger.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


class LoggingMiddleware:
    """ASGI middleware: assigns the request id, echoes it as X-Request-ID, logs each request once."""

    def __init__(self, app):
        self.app = app
        self.logger = logging.getLogger("pulse.requests")

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        incoming = dict(scope.get("headers", [])).get(b"x-request-id")
        request_id = set_request_id(incoming.decode() if incoming else None)

        method = scope.get("method", "UNKNOWN")
        path = scope.get("path", "/")
        client = scope.get("client")
        started = time.perf_counter()
        status_code = 500

        async def send_wrapper(message):
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message.get("status", 500)
                message["headers"] = list(message.get("headers", [])) + [(b"x-request-id", request_id.encode())]
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            duration_ms = (time.perf_counter() - started) * 1000
            if path in UNLOGGED_PATHS and status_code < 400:
                level = logging.DEBUG
            else:
                level = logging.INFO if status_code < 400 else logging.WARNING
            self.logger.log(
                level,
                f"{method} {path} -> {status_code} ({duration_ms:.1f}ms)",
                extra={
                    "event": "request",
                    "method": method,
                    "path": path,
                    "status_code": status_code,
                    "duration_ms": round(duration_ms, 2),
                    "client_ip": client[0] if client else "unknown",
                },
            )
