"""
Structured logging module with JSON formatting and scrape context support.

This module provides:
- JSON log formatting for structured logging
- Scrape context tracking (ocean, job id and current stage) via context variables
- Logger factory for consistent logger creation

Each ocean run executes in its own asyncio task, so a context variable keeps
the log lines of concurrent runs attributable to the right job.
"""
import logging
import json
import sys
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator, NamedTuple, Optional
from contextvars import ContextVar


class ScrapeContext(NamedTuple):
    """The job a log line belongs to."""
    ocean: str
    job_id: str
    stage: Optional[str] = None

    def as_fields(self) -> dict[str, str]:
        fields = {"ocean": self.ocean, "job_id": self.job_id}
        if self.stage:
            fields["stage"] = self.stage
        return fields


scrape_context_var: ContextVar[Optional[ScrapeContext]] = ContextVar("scrape_context", default=None)

_STANDARD_ATTRS = {
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
    "taskName",
    "message",
    "asctime",
}


class JSONFormatter(logging.Formatter):
    """
    JSON log formatter for structured logging.

    Outputs one JSON object per line:
    - timestamp: ISO 8601 UTC timestamp
    - level, logger, message
    - ocean, job_id, stage: set while a scrape job is running
    - exception: formatted traceback, if any
    - extra: fields passed via `extra=` that are not standard record attributes
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        context = scrape_context_var.get()
        if context is not None:
            log_data.update(context.as_fields())

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        extra_keys = {
            k: v for k, v in record.__dict__.items() if k not in _STANDARD_ATTRS
        }
        if extra_keys:
            log_data["extra"] = extra_keys

        return json.dumps(log_data, default=str)


class ColoredFormatter(logging.Formatter):
    """Colored console formatter for development."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        level_color = self.COLORS.get(record.levelname, "")
        base_msg = f"{level_color}[{record.levelname}]{self.RESET} {record.name}: {record.getMessage()}"

        context = scrape_context_var.get()
        if context is not None:
            base_msg += " | " + " ".join(f"{k}={v}" for k, v in context.as_fields().items())

        if record.exc_info:
            base_msg += "\n" + self.formatException(record.exc_info)

        return base_msg


def configure_logging(
    level: str = "INFO",
    json_output: bool = True,
    handler: logging.Handler | None = None,
) -> None:
    """
    Configure root logging for the service and the scheduler runner.

    Args:
        level: Logging level name
        json_output: JSON lines when True, colored console lines otherwise
        handler: Custom handler; defaults to a stdout StreamHandler
    """
    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    log_level = getattr(logging, level.upper(), logging.INFO)
    root_logger.setLevel(log_level)

    if handler is None:
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(log_level)

    handler.setFormatter(JSONFormatter() if json_output else ColoredFormatter())
    root_logger.addHandler(handler)

    # One line per yoweb request is too chatty at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("apscheduler.executors").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def set_scrape_context(ocean: str, job_id: str) -> Any:
    """
    Attach the current task's log lines to a scrape job.

    Returns:
        Token for clear_scrape_context
    """
    return scrape_context_var.set(ScrapeContext(ocean, job_id))


def get_scrape_context() -> Optional[ScrapeContext]:
    return scrape_context_var.get()


def clear_scrape_context(token: Any) -> None:
    scrape_context_var.reset(token)


@contextmanager
def scrape_stage(stage: str) -> Iterator[None]:
    """Tag log lines with the stage being scraped; no-op outside a job."""
    context = scrape_context_var.get()
    if context is None:
        yield
        return

    token = scrape_context_var.set(context._replace(stage=stage))
    try:
        yield
    finally:
        scrape_context_var.reset(token)
