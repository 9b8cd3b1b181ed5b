"""Structured logging configuration using structlog.

structlog renders every record (its own and those of stdlib loggers such as
uvicorn's) through one ``ProcessorFormatter``; the handlers attached to the
root logger decide where records go:

- console: stderr only
- file: stderr plus ``<log_dir>/ecommerce-app.log``
- remote: stderr plus the OTLP log handler built by ``otel_setup``
"""

import logging
import sys
from pathlib import Path
from typing import Any, Iterable, List, Optional

import structlog
from opentelemetry import trace
from structlog.types import EventDict, WrappedLogger

from .config import Settings

LOG_FILE_NAME = "ecommerce-app.log"


def add_trace_context(_logger: WrappedLogger, _method_name: str, event_dict: EventDict) -> EventDict:
    """Stamp the active span's ids so logs join up with traces."""
    ctx = trace.get_current_span().get_span_context()
    if ctx.is_valid:
        event_dict["trace_id"] = format(ctx.trace_id, "032x")
        event_dict["span_id"] = format(ctx.span_id, "016x")
    return event_dict


def _shared_processors() -> List[Any]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        add_trace_context,
        structlog.processors.StackInfoRenderer(),
    ]


def build_handlers(settings: Settings, extra_handlers: Iterable[logging.Handler] = ()) -> List[logging.Handler]:
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]

    if settings.telemetry_sink == "file":
        log_dir = Path(settings.log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_dir / LOG_FILE_NAME, encoding="utf-8"))

    handlers.extend(extra_handlers)
    return handlers


def setup_logging(settings: Settings, extra_handlers: Iterable[logging.Handler] = ()) -> List[logging.Handler]:
    """Configure structlog and the root logger; returns the installed handlers."""
    shared = _shared_processors()

    if settings.log_format == "json":
        renderer: Any = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            renderer,
        ],
    )

    handlers = build_handlers(settings, extra_handlers)
    for handler in handlers:
        handler.setFormatter(formatter)

    level = logging.getLevelName(settings.log_level.upper())

    root = logging.getLogger()
    for old in list(root.handlers):
        root.removeHandler(old)
        old.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)

    # uvicorn ships its own handlers; hand its records to ours instead
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uv_logger = logging.getLogger(name)
        uv_logger.handlers.clear()
        uv_logger.propagate = True

    structlog.configure(
        processors=shared + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        cache_logger_on_first_use=False,
    )
    return handlers


def get_logger(name: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    return structlog.stdlib.get_logger(name)
