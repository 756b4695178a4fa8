"""Logging utilities for fftkit.

This module provides a custom BUILD log level and a context manager for
enabling/disabling fftkit logging with loguru.

Note:
    Importing this module removes loguru's default stderr handler (ID 0) to
    prevent duplicate output when ``enable_logging()`` adds its own handler.
    If your application configures loguru handlers *before* importing fftkit,
    handler 0 may no longer be the default; in that case the removal is a
    no-op (the ``ValueError`` is suppressed). Configure loguru handlers
    *after* importing fftkit, or re-add a stderr handler explicitly.
"""

from __future__ import annotations

import contextlib
import sys
import threading
import warnings
from typing import TYPE_CHECKING, ClassVar, Final, Literal, TypeAlias

from loguru import logger

if TYPE_CHECKING:
    from types import TracebackType

    from loguru import Record

PACKAGE_NAME: Final[str] = __name__.split(".")[0]

# Handler 0 is the stderr handler loguru creates at import time.
with contextlib.suppress(ValueError):
    logger.remove(0)

# Construction milestones: cue ranking done, fan size, selected tree.
BUILD_LEVEL: Final[str] = "BUILD"
BUILD_LEVEL_NUMBER: Final[int] = 25  # Between INFO (20) and WARNING (30)


def _register_build_level() -> None:
    """Register the BUILD custom log level with loguru.

    Looks up the BUILD level and registers it when missing. If it already
    exists with a different numeric value, emits a UserWarning because loguru
    does not permit changing the numeric value of an existing level.
    """
    try:
        existing_level = logger.level(BUILD_LEVEL)
    except ValueError:
        logger.level(BUILD_LEVEL, no=BUILD_LEVEL_NUMBER, icon="🌲")
    else:
        if existing_level.no != BUILD_LEVEL_NUMBER:
            msg = f"BUILD level already registered with numeric value {existing_level.no}, expected {BUILD_LEVEL_NUMBER}"
            warnings.warn(msg, stacklevel=2)


_register_build_level()

LogLevel: TypeAlias = Literal[
    "TRACE",
    "DEBUG",
    "INFO",
    "BUILD",
    "WARNING",
    "ERROR",
    "CRITICAL",
]

LogFormat: TypeAlias = Literal["short", "full"]


class LoggingHandle:
    """Handle for managing fftkit logging lifecycle.

    Stores the handler ID from logger.add() and provides cleanup via disable()
    or automatic cleanup through context manager protocol.

    Examples:
        >>> with enable_logging():  # doctest: +SKIP
        ...     build_fft(train, outcome="diagnosis")

        >>> handle = enable_logging(level="DEBUG")  # doctest: +SKIP
        >>> handle.disable()  # doctest: +SKIP
    """

    _active_ids: ClassVar[set[int]] = set()
    _lock: ClassVar[threading.Lock] = threading.Lock()

    def __init__(self, handler_id: int) -> None:
        """Initialize the logging handle.

        Args:
            handler_id (int): The loguru handler ID from logger.add().
        """
        self.handler_id: int | None = handler_id
        with LoggingHandle._lock:
            LoggingHandle._active_ids.add(handler_id)

    def disable(self) -> None:
        """Remove the handler associated with this logging handle.

        When this is the last active handle, ``logger.disable("fftkit")`` is
        called so fftkit records stop flowing to any handler.
        """
        with LoggingHandle._lock:
            if self.handler_id is None:
                return
            LoggingHandle._active_ids.discard(self.handler_id)
            with contextlib.suppress(ValueError):
                logger.remove(self.handler_id)
            self.handler_id = None
            if not LoggingHandle._active_ids:
                logger.disable(PACKAGE_NAME)

    def __enter__(self) -> LoggingHandle:
        """Enter context manager.

        Returns:
            LoggingHandle: This handle instance.
        """
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Exit context manager and disable logging."""
        self.disable()

    @classmethod
    def get_active_handle_count(cls) -> int:
        """Return the number of currently active logging handles.

        Returns:
            int: Count of active handles that have not been disabled.
        """
        with cls._lock:
            return len(cls._active_ids)


def enable_logging(
    *,
    level: LogLevel = BUILD_LEVEL,
    log_format: LogFormat = "short",
) -> LoggingHandle:
    """Enable fftkit logging on stderr.

    Use this to follow tree construction: the default BUILD level reports
    the cue ranking, the size of the generated fan and the selected tree.
    Lower to "DEBUG" to see every cue threshold search and every
    conditional branch.

    Args:
        level (LogLevel): Minimum log level to display. Defaults to "BUILD".
        log_format (LogFormat): "short" shows the function name only; "full"
            shows module:function:line.

    Returns:
        LoggingHandle: Independent handle for managing the logging handler.

    Examples:
        >>> with enable_logging(level="DEBUG"):  # doctest: +SKIP
        ...     build_fft(train, outcome="diagnosis")
    """
    logger.enable(PACKAGE_NAME)

    if log_format == "short":
        format_str = (
            "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
            "<level>{level: <8}</level> | "  # noqa: RUF027 - loguru format string
            "<cyan>{function}</cyan> - "
            "<level>{message}</level> {extra}"
        )
    else:  # "full"
        format_str = (
            "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
            "<level>{level: <8}</level> | "  # noqa: RUF027 - loguru format string
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
            "<level>{message}</level> {extra}"
        )

    handler_id = logger.add(
        sys.stderr,
        level=level,
        filter=_is_fftkit_record,
        format=format_str,
    )

    return LoggingHandle(handler_id)


def _is_fftkit_record(record: Record) -> bool:
    """Filter to pass all fftkit module records.

    Args:
        record (Record): The loguru Record object to filter.

    Returns:
        bool: True if the record is from the fftkit package, False otherwise.
    """
    name = record["name"]
    return name is not None and name.startswith(PACKAGE_NAME)
