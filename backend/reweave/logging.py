"""Shared structlog configuration for the API, the worker and ad-hoc scripts."""

from __future__ import annotations

import logging
import sys
from typing import IO

import structlog

from reweave.config import settings


class _TeeWriter:
    """Mirror log lines to stdout and an append-only JSON-lines file.

    A file that cannot be opened or written is dropped and logging carries
    on to stdout alone.
    """

    def __init__(self, file_path: str) -> None:
        self._file: IO[str] | None = None
        try:
            self._file = open(file_path, "a")  # noqa: SIM115
        except OSError as exc:
            # structlog is not configured yet
            print(f"WARNING: cannot open log file {file_path!r}: {exc}", file=sys.stderr)

    def _disable(self, action: str) -> None:
        self._file = None
        print(f"WARNING: log file {action} failed, file logging disabled", file=sys.stderr)

    def write(self, data: str) -> None:
        sys.stdout.write(data)
        if self._file is None:
            return
        try:
            self._file.write(data)
            self._file.flush()
        except (OSError, ValueError):
            self._disable("write")

    def flush(self) -> None:
        sys.stdout.flush()
        if self._file is None:
            return
        try:
            self._file.flush()
        except (OSError, ValueError):
            self._disable("flush")


def configure_logging() -> None:
    """Configure structlog: console output in development, JSON elsewhere.

    With LOG_FILE set, every line is also appended to that file so pipeline
    runs can be inspected after the fact.
    """
    renderer = (
        structlog.dev.ConsoleRenderer()
        if settings.environment == "development"
        else structlog.processors.JSONRenderer()
    )
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    if settings.log_file:
        # PrintLoggerFactory only needs write() and flush()
        logger_factory = structlog.PrintLoggerFactory(file=_TeeWriter(settings.log_file))  # type: ignore[arg-type]
    else:
        logger_factory = structlog.PrintLoggerFactory()

    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if settings.environment != "development":
        processors.append(structlog.processors.format_exc_info)
    processors.append(renderer)

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=logger_factory,
        cache_logger_on_first_use=True,
    )
