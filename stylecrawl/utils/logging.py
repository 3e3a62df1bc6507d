"""
StyleCrawl Logging Configuration
================================

Logging for crawl runs. Every record from a crawl component can carry the
crawl context it was emitted under (feed, post position and URL, candidate
number and URL, fetch kind). The JSON formatter lifts that context to top
level keys so a single post or candidate can be followed through a run; the
console formatter appends a short ``post=3/10 cand=2`` tag.
"""

import logging
import logging.handlers
import sys
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Any, Optional, Union


# Context keys attached by crawl components, in output order
CRAWL_CONTEXT_FIELDS = (
    "component",
    "feed_url",
    "post",
    "post_url",
    "candidate",
    "candidate_url",
    "kind",
)

# Short console labels; URLs are left to the message text
CONSOLE_CONTEXT_LABELS = {
    "post": "post",
    "candidate": "cand",
    "kind": "kind",
}

# LogRecord attributes that are not user-supplied extras
_RESERVED_RECORD_FIELDS = {
    "name",
    "msg",
    "args",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "exc_info",
    "exc_text",
    "stack_info",
    "lineno",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "processName",
    "process",
    "message",
    "taskName",
}


def crawl_context(record: logging.LogRecord) -> Dict[str, Any]:
    """Crawl context fields present on ``record``, in display order."""
    return {
        field: getattr(record, field)
        for field in CRAWL_CONTEXT_FIELDS
        if getattr(record, field, None) is not None
    }


class StructuredFormatter(logging.Formatter):
    """JSON lines with crawl context as top level keys."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **crawl_context(record),
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        extra_fields = {
            k: v
            for k, v in record.__dict__.items()
            if k not in _RESERVED_RECORD_FIELDS and k not in CRAWL_CONTEXT_FIELDS
        }

        if extra_fields:
            log_data["extra"] = extra_fields

        return json.dumps(log_data, ensure_ascii=False, default=str)


class ColoredConsoleFormatter(logging.Formatter):
    """Colored console formatter for development."""

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
        "RESET": "\033[0m",
    }

    def __init__(self, use_color: bool = True):
        super().__init__()
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        if self.use_color:
            color = self.COLORS.get(record.levelname, self.COLORS["RESET"])
            reset = self.COLORS["RESET"]
        else:
            color = reset = ""

        timestamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        component = getattr(record, "component", None) or record.name

        formatted = (
            f"{color}[{timestamp}] {record.levelname:8}{reset} "
            f"{component}{self._context_tag(record)} - {record.getMessage()}"
        )

        if record.exc_info:
            formatted += "\n" + self.formatException(record.exc_info)

        return formatted

    @staticmethod
    def _context_tag(record: logging.LogRecord) -> str:
        """``' [post=3/10 cand=2]'`` or an empty string."""
        context = crawl_context(record)
        parts = [
            f"{label}={context[field]}"
            for field, label in CONSOLE_CONTEXT_LABELS.items()
            if field in context
        ]
        return f" [{' '.join(parts)}]" if parts else ""


def setup_logger(
    name: str = "stylecrawl",
    level: str = "INFO",
    log_file: Optional[str] = None,
    console: bool = True,
    structured: bool = False,
    max_file_size: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5,
) -> logging.Logger:
    """Set up logger with appropriate handlers and formatting.

    Args:
        name: Logger name
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Path to log file (optional)
        console: Whether to log to console
        structured: Whether to use structured JSON logging on the console
        max_file_size: Maximum log file size in bytes
        backup_count: Number of backup log files to keep

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level.upper()))

    # Clear existing handlers to avoid duplicates
    logger.handlers.clear()

    if console:
        console_handler = logging.StreamHandler(sys.stderr)

        if structured:
            console_handler.setFormatter(StructuredFormatter())
        else:
            console_handler.setFormatter(ColoredConsoleFormatter(use_color=sys.stderr.isatty()))

        logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_path, maxBytes=max_file_size, backupCount=backup_count, encoding="utf-8"
        )

        # Files are always structured
        file_handler.setFormatter(StructuredFormatter())
        logger.addHandler(file_handler)

    return logger


class LoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that merges fixed crawl context into every record.

    Per-call ``extra`` wins over the bound context.
    """

    def __init__(self, logger: logging.Logger, extra: Dict[str, Any]):
        super().__init__(logger, extra)

    def process(self, msg: Any, kwargs: Dict[str, Any]) -> tuple:
        kwargs["extra"] = {**self.extra, **(kwargs.get("extra") or {})}
        return msg, kwargs

    def bind(self, **context: Any) -> "LoggerAdapter":
        """New adapter on the same logger with ``context`` added."""
        merged = dict(self.extra)
        merged.update({k: v for k, v in context.items() if v is not None})
        return LoggerAdapter(self.logger, merged)


def get_logger_for_component(
    component_name: str,
    feed_url: Optional[str] = None,
    post_url: Optional[str] = None,
    **context: Any,
) -> LoggerAdapter:
    """Get a logger adapter with component-specific crawl context.

    Args:
        component_name: Name of the component (e.g., 'transport', 'pipeline')
        feed_url: Feed being crawled (optional)
        post_url: Post being processed (optional)
        **context: Further context such as ``post``, ``candidate`` or ``kind``

    Returns:
        Logger adapter with context
    """
    base_logger = logging.getLogger(f"stylecrawl.{component_name}")
    adapter = LoggerAdapter(base_logger, {"component": component_name})
    return adapter.bind(feed_url=feed_url, post_url=post_url, **context)


def configure_application_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = "logs/stylecrawl.log",
    enable_console: bool = True,
    structured_logging: bool = False,
    max_file_size_mb: int = 10,
    backup_count: int = 5,
) -> None:
    """Configure application-wide logging settings.

    Args:
        log_level: Global log level
        log_file: Path to main log file, None disables file logging
        enable_console: Whether to enable console logging
        structured_logging: Whether to use JSON structured logging
        max_file_size_mb: Size at which the log file is rotated
        backup_count: Number of rotated files to keep
    """
    setup_logger(
        name="stylecrawl",
        level=log_level,
        log_file=log_file,
        console=enable_console,
        structured=structured_logging,
        max_file_size=max_file_size_mb * 1024 * 1024,
        backup_count=backup_count,
    )

    # Third-party libraries
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("feedparser").setLevel(logging.WARNING)


class PerformanceLogger:
    """Times a crawl step and logs its outcome with the logger's context."""

    def __init__(self, logger: Union[logging.Logger, logging.LoggerAdapter], operation: str, **kwargs):
        self.logger = logger
        self.operation = operation
        self.context = kwargs
        self.start_time = None

    def __enter__(self) -> "PerformanceLogger":
        self.start_time = datetime.now(timezone.utc)
        self.logger.debug(f"Starting {self.operation}", extra=self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self.start_time:
            duration = (datetime.now(timezone.utc) - self.start_time).total_seconds()

            context = {
                **self.context,
                "duration_seconds": duration,
                "success": exc_type is None,
            }

            if exc_type:
                self.logger.error(
                    f"Failed {self.operation} after {duration:.3f}s "
                    f"({exc_type.__name__})",
                    extra=context,
                )
            else:
                self.logger.info(
                    f"Completed {self.operation} in {duration:.3f}s", extra=context
                )
