"""
Production logging setup.

Levels:
- INFO: business events (share created, export created, cleanup summary)
- WARNING: client-side problems (bad password, expired links, throttling, suspicious traffic)
- ERROR: system errors, storage/render failures
- Personal data is never logged (email, username, password, tokens)

Outputs:
- stdout: human readable text (journald)
- {log_dir}/*.log: NDJSON for log shippers

Tracing:
- Request ID: per-request identifier carried in a contextvar
- Instance IP: identifies the source host when running several instances
"""
import contextvars
import json
import logging
import socket
import subprocess
import sys
import uuid
from datetime import datetime, timezone
from pathlib import Path
from logging.handlers import RotatingFileHandler
from typing import Any, Optional

from app.config import get_settings

settings = get_settings()

# Fields scrubbed from structured context
_SENSITIVE_FIELDS = frozenset({"email", "username", "password", "token", "secret", "password_hash"})

request_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "request_id", default=None
)


def _get_instance_ip() -> str:
    """INSTANCE_IP env when set, otherwise the first address of `hostname -I`."""
    ip = (settings.instance_ip or "").strip()
    if ip:
        return ip
    try:
        r = subprocess.run(
            ["hostname", "-I"],
            capture_output=True,
            text=True,
            timeout=2,
        )
        if r.returncode == 0 and r.stdout:
            first = r.stdout.strip().split()
            if first:
                return first[0]
    except (OSError, subprocess.SubprocessError):
        pass
    return socket.gethostname()


INSTANCE_IP = _get_instance_ip()


def generate_request_id() -> str:
    """New short request id."""
    return uuid.uuid4().hex[:12]


def get_request_id() -> Optional[str]:
    return request_id_var.get()


def set_request_id(request_id: Optional[str] = None) -> str:
    """Set the request id for the current context. Generates one when None."""
    rid = request_id or generate_request_id()
    request_id_var.set(rid)
    return rid


class FlushingRotatingFileHandler(RotatingFileHandler):
    """Flush after every record so shippers tailing the file see it at once."""

    def emit(self, record: logging.LogRecord) -> None:
        super().emit(record)
        self.flush()


# Standard LogRecord attributes (never copied into ctx)
_STANDARD_ATTRS = frozenset(
    {
        "name", "msg", "args", "created", "filename", "funcName",
        "levelname", "levelno", "lineno", "module", "msecs",
        "pathname", "process", "processName", "relativeCreated",
        "stack_info", "exc_info", "exc_text", "thread", "threadName",
        "message", "asctime", "taskName",
    }
)


class JsonLinesFormatter(logging.Formatter):
    """
    NDJSON formatter.

    Fields:
    - ts: UTC timestamp
    - level: log level
    - instance: instance IP
    - rid: request id
    - event: event type (lifecycle, request, auth, share, share_security, export, storage, cleanup)
    - msg: message
    - ctx: extra context (sensitive fields removed)
    - exc: exception text
    """

    def format(self, record: logging.LogRecord) -> str:
        dt = datetime.fromtimestamp(record.created, tz=timezone.utc)
        msecs = int(record.msecs) % 1000
        payload = {
            "ts": dt.strftime("%Y-%m-%dT%H:%M:%S") + f".{msecs:03d}Z",
            "level": record.levelname,
            "instance": INSTANCE_IP,
        }

        rid = get_request_id()
        if rid:
            payload["rid"] = rid

        if getattr(record, "event", None):
            payload["event"] = record.event

        payload["msg"] = record.getMessage()

        _skip_in_ctx = _STANDARD_ATTRS | {"event", "instance"}
        extra_ctx = {
            k: v for k, v in record.__dict__.items()
            if k not in _skip_in_ctx
            and k not in _SENSITIVE_FIELDS
            and v is not None
        }
        if extra_ctx:
            payload["ctx"] = extra_ctx

        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logging() -> None:
    """
    Configure root logging.

    - stdout: text (INFO+)
    - stderr: text (ERROR+)
    - {log_dir}/app.log: NDJSON INFO+
    - {log_dir}/error.log: NDJSON ERROR+
    - noisy third-party loggers raised to WARNING
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG if settings.debug else logging.INFO)
    root_logger.handlers.clear()

    text_formatter = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setLevel(logging.INFO)
    stdout_handler.setFormatter(text_formatter)
    root_logger.addHandler(stdout_handler)

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(logging.ERROR)
    stderr_handler.setFormatter(text_formatter)
    root_logger.addHandler(stderr_handler)

    json_formatter = JsonLinesFormatter()
    log_dir = Path(settings.log_dir)
    try:
        log_dir.mkdir(parents=True, exist_ok=True)

        file_handler = FlushingRotatingFileHandler(
            log_dir / "app.log",
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(json_formatter)
        root_logger.addHandler(file_handler)

        error_handler = FlushingRotatingFileHandler(
            log_dir / "error.log",
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(json_formatter)
        root_logger.addHandler(error_handler)
    except OSError as e:
        root_logger.warning("File logging disabled: %s", e)

    for name in (
        "uvicorn", "uvicorn.access", "uvicorn.error",
        "httpx", "httpcore", "asyncio", "botocore", "boto3",
        "sqlalchemy", "sqlalchemy.engine", "sqlalchemy.pool",
    ):
        logging.getLogger(name).setLevel(logging.WARNING)


# ---------------------------------------------------------------------------
# Structured helpers: keyword context goes into `extra`
# ---------------------------------------------------------------------------

_app_logger = logging.getLogger("app")


def log_with_context(level: int, message: str, exc_info: bool = False, **context: Any) -> None:
    """Log `message` at `level` with keyword context attached as record attributes."""
    # LogRecord reserves some names; prefix them instead of raising KeyError
    extra = {
        (f"ctx_{k}" if k in _STANDARD_ATTRS else k): v
        for k, v in context.items()
    }
    _app_logger.log(level, message, exc_info=exc_info, extra=extra)


def log_info(message: str, **context: Any) -> None:
    log_with_context(logging.INFO, message, **context)


def log_warning(message: str, exc_info: bool = False, **context: Any) -> None:
    log_with_context(logging.WARNING, message, exc_info=exc_info, **context)


def log_error(message: str, exc_info: bool = False, **context: Any) -> None:
    log_with_context(logging.ERROR, message, exc_info=exc_info, **context)
