"""
Logging infrastructure for SB Explorer.

JSON or text output on the root logger, optional rotating file output, and
secret redaction. Connection strings ride on every gateway request, so every
handler installed here carries SensitiveDataFilter.
"""

import json
import logging
import logging.handlers
import re
import sys
import traceback
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

# Set by the correlation middleware for the lifetime of one request
correlation_id: ContextVar[Optional[str]] = ContextVar('correlation_id', default=None)

REDACTED = "***REDACTED***"

# Attributes every LogRecord has; anything else came in through `extra=`
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    'message', 'asctime', 'taskName',
}

_SIZE_PATTERN = re.compile(r'^\s*([0-9]*\.?[0-9]+)\s*(GB|MB|KB|B)?\s*$', re.IGNORECASE)
_SIZE_UNITS = {None: 1, 'B': 1, 'KB': 1024, 'MB': 1024 ** 2, 'GB': 1024 ** 3}

# The Azure SDK logs every AMQP link attach/detach at INFO
_NOISY_LOGGERS = ("azure", "uamqp")


class SensitiveDataFilter(logging.Filter):
    """Masks credentials in the message, its args and any extra string fields."""

    PATTERNS = [
        (re.compile(r'(SharedAccessKey=)[^;"\s]+', re.IGNORECASE), rf'\1{REDACTED}'),
        (re.compile(r'(SharedAccessSignature=)[^;&"\s]+', re.IGNORECASE), rf'\1{REDACTED}'),
        (re.compile(r'(sig=)[^;&"\s]+', re.IGNORECASE), rf'\1{REDACTED}'),
        (re.compile(r'(AccountKey=)[^;"\s]+', re.IGNORECASE), rf'\1{REDACTED}'),
        (re.compile(r'(Authorization:\s+)(?:Bearer\s+)?\S+', re.IGNORECASE), rf'\1{REDACTED}'),
        (re.compile(r'(password["\']?\s*[:=]\s*["\']?)\S+', re.IGNORECASE), rf'\1{REDACTED}'),
    ]

    @classmethod
    def redact(cls, text: str) -> str:
        for pattern, replacement in cls.PATTERNS:
            text = pattern.sub(replacement, text)
        return text

    def _scrub(self, value: Any) -> Any:
        return self.redact(value) if isinstance(value, str) else value

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = self._scrub(record.msg)
        if isinstance(record.args, tuple):
            record.args = tuple(self._scrub(arg) for arg in record.args)
        for key in [k for k in vars(record) if k not in _RECORD_ATTRS]:
            setattr(record, key, self._scrub(getattr(record, key)))
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per record, with extra fields flattened in."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "module": record.name,
            "message": record.getMessage(),
        }

        current = correlation_id.get()
        if current:
            entry["correlation_id"] = current

        entry.update(
            (key, value) for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and not key.startswith('_')
        )

        if record.exc_info:
            exc_type, exc_value, exc_tb = record.exc_info
            entry["exception"] = {
                "type": exc_type.__name__,
                "message": str(exc_value),
                "traceback": ''.join(traceback.format_exception(exc_type, exc_value, exc_tb)),
            }

        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable single-line output for local runs."""

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )


def _attach(root_logger: logging.Logger, handler: logging.Handler, formatter: logging.Formatter) -> None:
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(formatter)
    handler.addFilter(SensitiveDataFilter())
    root_logger.addHandler(handler)


def setup_logging(
    level: str = "INFO",
    format_type: str = "json",
    log_file: Optional[str] = None,
    rotation_size: str = "10MB",
    rotation_count: int = 5,
    module_levels: Optional[Dict[str, str]] = None
) -> None:
    """
    Configure the root logger for SB Explorer.

    Replaces any handlers already on the root logger.

    Args:
        level: Default log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_type: "json" or "text"
        log_file: Optional path for rotating file output
        rotation_size: Size at which the log file rotates (e.g. "10MB")
        rotation_count: Number of rotated files to keep
        module_levels: Per-logger overrides,
                      e.g. {"sbexplorer.services.servicebus": "DEBUG"}
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.handlers.clear()

    formatter = JSONFormatter() if format_type == "json" else TextFormatter()

    _attach(root_logger, logging.StreamHandler(sys.stdout), formatter)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            filename=log_file,
            maxBytes=_parse_size(rotation_size),
            backupCount=rotation_count,
            encoding='utf-8'
        )
        _attach(root_logger, file_handler, formatter)
        root_logger.info(f"Logging to file: {log_file} (rotation: {rotation_size}, count: {rotation_count})")

    for module_name, module_level in (module_levels or {}).items():
        logging.getLogger(module_name).setLevel(getattr(logging, module_level.upper()))
        root_logger.info(f"Module '{module_name}' log level set to {module_level}")

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(logging.WARNING, root_logger.level))

    root_logger.info(f"Logging configured: level={level}, format={format_type}")


def _parse_size(size_str: str) -> int:
    """
    Convert a rotation size such as "10MB" or "1.5gb" to bytes.

    A bare number is taken as bytes.
    """
    match = _SIZE_PATTERN.match(size_str)
    if not match:
        raise ValueError(f"Invalid size: {size_str!r}")
    number, unit = match.groups()
    return int(float(number) * _SIZE_UNITS[unit.upper() if unit else None])


def get_logger(name: str) -> logging.Logger:
    """Logger for a module; handlers are inherited from the root."""
    return logging.getLogger(name)
