"""Structured logging for Linkbase.

Storage, embedding and service modules log through the standard library
(``logging.getLogger(__name__)``) and attach details with ``extra=``. The
API layer uses structlog directly. Both end up on one handler whose
``ProcessorFormatter`` renders every record as JSON or console text, with
the request context (request ID, user, connection) merged in.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from structlog.typing import Processor

_configured = False


def _shared_processors() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]


def configure_logging(level: str = "INFO", format: str = "json") -> None:
    """Route structlog and stdlib records through one structlog formatter.

    Safe to call more than once; the handler installed by a previous call is
    replaced, handlers installed by others are left alone.

    Args:
        level: Log level name. Unknown names fall back to INFO.
        format: "json" for production, "text" for colored console output.
    """
    global _configured

    shared = _shared_processors()
    renderer: Processor
    if format.lower() == "json":
        renderer = structlog.processors.JSONRenderer()
        shared.append(structlog.processors.format_exc_info)
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=[
            structlog.stdlib.PositionalArgumentsFormatter(),
            *shared,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        # extra= fields from stdlib calls (fact_id, connection_id, ...)
        foreign_pre_chain=[structlog.stdlib.ExtraAdder(), *shared],
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
    )
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    for existing in list(root.handlers):
        if isinstance(existing.formatter, structlog.stdlib.ProcessorFormatter):
            root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    _configured = True


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger, configuring defaults on first use."""
    if not _configured:
        configure_logging()
    return structlog.get_logger(name)  # type: ignore[no-any-return]


def bind_context(**kwargs: object) -> None:
    """Add keys to the context merged into every record of this request."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


@contextmanager
def request_context(**kwargs: object) -> Iterator[None]:
    """Scope logging context to one request.

    Starts from an empty context, binds ``kwargs`` and clears everything on
    exit, including keys bound later with ``bind_context``.

    Example:
        ```python
        with request_context(request_id="a1b2c3", method="GET"):
            bind_context(user_id="user_1")
            ...
        ```
    """
    clear_context()
    bind_context(**kwargs)
    try:
        yield
    finally:
        clear_context()
