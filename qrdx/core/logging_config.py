"""Logging setup for the detection engine.

Each detection run executes inside a :class:`CorrelationContext`, which tags
every record logged by the orchestrator, the worker manager and the decoder
during that run with one short run ID.

Decoded payloads often carry secrets (WiFi passwords, URL tokens, e-mail
addresses); both formatters scrub them before a line is written.
"""
import json
import logging
import logging.handlers
import re
import sys
import uuid
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

NO_RUN_ID = '-'

_run_id: ContextVar[Optional[str]] = ContextVar('qrdx_run_id', default=None)

_SCRUB_RULES: List[Tuple[re.Pattern, str]] = [
    # WIFI:S:<ssid>;T:WPA;P:<password>;;
    (re.compile(r'(?i)(\bP:)[^;]*'), r'\1[REDACTED]'),
    (re.compile(r'(?i)([?&](?:token|key|api_key|access_token|password|secret)=)[^&\s]+'), r'\1[REDACTED]'),
    (re.compile(r'[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}'), '[EMAIL_REDACTED]'),
]


def scrub(text: str) -> str:
    """Mask credentials that commonly appear inside QR payloads."""
    for pattern, replacement in _SCRUB_RULES:
        text = pattern.sub(replacement, text)
    return text


class RunIdFilter(logging.Filter):
    """Attach the current run ID to every record as ``run_id``."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.run_id = _run_id.get() or NO_RUN_ID
        return True


class ConsoleFormatter(logging.Formatter):
    """One-line text records: time, logger, level, run ID, message."""

    def __init__(self, show_run_id: bool = True):
        fmt = '%(asctime)s - %(name)s - %(levelname)s'
        if show_run_id:
            fmt += ' - [%(run_id)s]'
        super().__init__(fmt + ' - %(message)s')

    def format(self, record: logging.LogRecord) -> str:
        if not hasattr(record, 'run_id'):
            record.run_id = NO_RUN_ID
        return scrub(super().format(record))


class JsonFormatter(logging.Formatter):
    """One JSON object per record, for log shippers."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            'timestamp': datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'run_id': getattr(record, 'run_id', NO_RUN_ID),
            'message': record.getMessage(),
            'where': f'{record.module}.{record.funcName}:{record.lineno}',
            'thread': record.threadName,
        }
        if record.exc_info:
            exc_type, exc_value, _ = record.exc_info
            entry['exception'] = {
                'type': exc_type.__name__ if exc_type else None,
                'message': str(exc_value) if exc_value else None,
                'traceback': self.formatException(record.exc_info),
            }
        return scrub(json.dumps(entry, default=str))


class LoggingManager:
    """Installs the engine's handlers on the root logger, once."""

    QUIET_LOGGERS = ('PIL', 'asyncio')

    def __init__(self):
        self._configured = False
        self._handlers: Dict[str, logging.Handler] = {}

    @property
    def configured(self) -> bool:
        return self._configured

    def configure(
        self,
        log_level: str = 'INFO',
        log_dir: Optional[Union[str, Path]] = None,
        enable_file_logging: bool = False,
        enable_console_logging: bool = True,
        structured_logging: bool = False,
        max_file_size: int = 5 * 1024 * 1024,
        backup_count: int = 3,
    ) -> None:
        """Configure logging for the engine and CLI.

        Args:
            log_level: Level name (DEBUG, INFO, WARNING, ...)
            log_dir: Directory for ``qrdx.log`` when file logging is on
            enable_file_logging: Also write to a rotating file
            enable_console_logging: Write to stderr
            structured_logging: Emit JSON lines instead of text
            max_file_size: Rotate the file after this many bytes
            backup_count: Rotated files to keep
        """
        if self._configured:
            return

        level = getattr(logging, str(log_level).upper(), logging.INFO)
        root = logging.getLogger()
        root.setLevel(level)
        run_filter = RunIdFilter()

        def attach(name: str, handler: logging.Handler) -> None:
            handler.setLevel(level)
            handler.setFormatter(JsonFormatter() if structured_logging else ConsoleFormatter())
            handler.addFilter(run_filter)
            root.addHandler(handler)
            self._handlers[name] = handler

        if enable_console_logging:
            attach('console', logging.StreamHandler(sys.stderr))

        if enable_file_logging:
            directory = Path(log_dir) if log_dir else Path('logs')
            directory.mkdir(parents=True, exist_ok=True)
            attach('file', logging.handlers.RotatingFileHandler(
                directory / 'qrdx.log', maxBytes=max_file_size,
                backupCount=backup_count, encoding='utf-8'
            ))

        for name in self.QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

        self._configured = True
        logging.getLogger(__name__).debug(
            f"Logging configured: level={log_level} handlers={sorted(self._handlers)}"
        )

    def shutdown(self) -> None:
        """Remove and close the handlers installed by :meth:`configure`."""
        root = logging.getLogger()
        for handler in self._handlers.values():
            root.removeHandler(handler)
            handler.close()
        self._handlers.clear()
        self._configured = False


# Global logging manager instance
logging_manager = LoggingManager()


def configure_logging(**kwargs) -> None:
    """Configure application logging."""
    logging_manager.configure(**kwargs)


def get_run_id() -> Optional[str]:
    return _run_id.get()


class CorrelationContext:
    """Scope a run ID over a block; nested scopes restore the outer ID."""

    def __init__(self, run_id: Optional[str] = None):
        self.run_id = run_id
        self._token: Optional[Token] = None

    def __enter__(self) -> str:
        run_id = self.run_id or uuid.uuid4().hex[:12]
        self._token = _run_id.set(run_id)
        return run_id

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._token is not None:
            _run_id.reset(self._token)
            self._token = None
