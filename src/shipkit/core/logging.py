"""
shipkit logging - structlog events for packaging runs.

A packaging run is a long list of small decisions: file added, file missing,
config swapped, script outside the root. Each one is a structlog event with a
dotted name (``pack.file.added``) and keyword fields, rendered as colored
console lines on a terminal and as JSON lines everywhere else.

Events go to stderr. stdout carries command output only (package tables,
``--json`` payloads and TeamCity service messages).

Processor chain::

    TimeStamper(iso) -> merge_contextvars (run_id, project) -> add_log_level
        -> stack/exc info -> service.name -> JSONRenderer | ConsoleRenderer

    >>> from shipkit.core.logging import configure_logging, get_logger
    >>> configure_logging(level="DEBUG", json_format=False)
    >>> get_logger(__name__).info("pack.file.added", target="bin/app.dll")
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

_service = "shipkit"


def _stamp_service(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict.setdefault("service.name", _service)
    return event_dict


def configure_logging(
    level: str = "INFO",
    json_format: bool | None = None,
    service: str = "shipkit",
) -> None:
    """Set up structlog for a shipkit process.

    Args:
        level: Minimum level name (``DEBUG``, ``INFO``, ``WARNING``, ``ERROR``).
        json_format: JSON lines when True, console when False; None picks JSON
            unless stderr is a terminal.
        service: Value of the ``service.name`` field on every event.
    """
    global _service
    _service = service
    threshold = logging.getLevelName(level.upper())
    if not isinstance(threshold, int):
        threshold = logging.INFO

    if json_format is None:
        json_format = not sys.stderr.isatty()
    renderer: Processor = (
        structlog.processors.JSONRenderer()
        if json_format
        else structlog.dev.ConsoleRenderer(colors=True)
    )

    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            _stamp_service,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(threshold),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=threshold)


def get_logger(name: str | None = None) -> Any:
    """Lazy structlog logger; configuration is looked up on first use.

    ``name`` is handed to the logger factory, as ``structlog.get_logger`` does.
    """
    return structlog.get_logger(name)


def bind_context(**fields: Any) -> None:
    """Attach ``fields`` to every later event in this context."""
    structlog.contextvars.bind_contextvars(**fields)


def unbind_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)


class LogContext:
    """Binds fields for the duration of a ``with`` block.

        with LogContext(run_id=config.run_id, project=config.project_name):
            ...
    """

    def __init__(self, **fields: Any) -> None:
        self.fields = fields

    def __enter__(self) -> LogContext:
        bind_context(**self.fields)
        return self

    def __exit__(self, *exc_info: object) -> None:
        unbind_context(*self.fields)


__all__ = [
    "LogContext",
    "bind_context",
    "configure_logging",
    "get_logger",
    "unbind_context",
]
