"""Tests for loguru logging in fftkit.

This module verifies that logging is disabled by default and that
structured log records are produced when enabled, covering construction
milestones, skipped cues and the enable_logging lifecycle.
"""

from __future__ import annotations

import contextlib
import io
import re
import sys
import warnings
from collections.abc import Generator
from typing import NamedTuple
from unittest import mock

import loguru
import polars as pl
import pytest
from loguru import logger
from pytest_check import check

from fftkit.exceptions import DegenerateCueWarning
from fftkit.logging import (
    BUILD_LEVEL,
    BUILD_LEVEL_NUMBER,
    PACKAGE_NAME,
    LoggingHandle,
    _register_build_level,
    enable_logging,
)
from fftkit.trees.fitting import build_fft


class LogSink(NamedTuple):
    """Log sink with records list and handler ID for cleanup.

    Attributes:
        records (list[loguru.Record]): List that accumulates log record dictionaries.
        handler_id (int): Logger handler ID for cleanup.
    """

    records: list[loguru.Record]
    handler_id: int


@contextlib.contextmanager
def capturing_sink(*, enable_fftkit: bool = True) -> Generator[list[loguru.Record]]:
    """Context manager that adds a loguru sink and yields the captured records list.

    Pass `enable_fftkit=False` when testing state after a `LoggingHandle` has
    already been disabled, so the sink observes whether fftkit records flow
    without this helper re-enabling the logger.

    Args:
        enable_fftkit (bool): When True (default), calls `logger.enable(PACKAGE_NAME)`
            before yielding and `logger.disable(PACKAGE_NAME)` on exit.

    Yields:
        Generator[list[loguru.Record]]: Mutable list that accumulates record dicts
            while the context is active.
    """
    captured_records: list[loguru.Record] = []

    def _sink(message: loguru.Message) -> None:
        captured_records.append(message.record)

    handler_id = logger.add(_sink)
    if enable_fftkit:
        logger.enable(PACKAGE_NAME)
    try:
        yield captured_records
    finally:
        if enable_fftkit:
            logger.disable(PACKAGE_NAME)
        logger.remove(handler_id)


@pytest.fixture(autouse=True)
def restore_active_ids() -> Generator[None]:
    """Save and restore LoggingHandle._active_ids around each test.

    Tests that call enable_logging() can leak handler IDs into later tests if
    they fail before cleanup. The set is snapshotted before each test and
    restored in place afterwards.

    Yields:
        None: Nothing; used only for setup/teardown side effects.
    """
    # Arrange - snapshot active IDs before the test runs
    saved_ids: set[int] = set(LoggingHandle._active_ids)

    yield

    # Cleanup - remove handlers added during the test
    added_ids = LoggingHandle._active_ids - saved_ids
    for handler_id in added_ids:
        with contextlib.suppress(ValueError):
            logger.remove(handler_id)
    LoggingHandle._active_ids.clear()
    LoggingHandle._active_ids.update(saved_ids)


@pytest.fixture
def log_sink() -> Generator[LogSink]:
    """Create a sink that captures log records for testing.

    Yields:
        Generator[LogSink]: Named tuple with records list and handler_id for cleanup.
    """
    captured_records: list[loguru.Record] = []

    def sink(message: loguru.Message) -> None:
        captured_records.append(message.record)

    # Act - add sink and enable fftkit logging
    handler_id = logger.add(sink)
    logger.enable(PACKAGE_NAME)

    yield LogSink(records=captured_records, handler_id=handler_id)

    # Cleanup - disable and remove handler
    logger.disable(PACKAGE_NAME)
    logger.remove(handler_id)


@pytest.fixture
def patients() -> pl.DataFrame:
    """Eight patients with two informative cues and one constant cue.

    Returns:
        pl.DataFrame: Columns `age`, `bmi`, `ward`, `sick`.
    """
    return pl.DataFrame({
        "age": [31, 67, 45, 72, 38, 59, 80, 50],
        "bmi": [22.0, 31.5, 27.1, 29.8, 24.3, 33.0, 26.4, 30.2],
        "ward": [3, 3, 3, 3, 3, 3, 3, 3],
        "sick": [False, True, False, True, False, True, True, False],
    })


def _fftkit_records(records: list[loguru.Record]) -> list[loguru.Record]:
    return [r for r in records if (r["name"] or "").startswith(PACKAGE_NAME)]


def test_logging_disabled_by_default(patients: pl.DataFrame) -> None:
    """Verify no fftkit records are captured when logging is disabled.

    Args:
        patients (pl.DataFrame): Fixture data.
    """
    # Arrange - explicitly disable fftkit logging to protect against test ordering issues
    logger.disable(PACKAGE_NAME)

    # Act & Assert - observe the disabled state without re-enabling
    with capturing_sink(enable_fftkit=False) as captured_records, pytest.warns(DegenerateCueWarning):
        build_fft(patients, "sick")

    with check:
        assert len(_fftkit_records(captured_records)) == 0, "No fftkit logs should be captured when disabled"


class TestConstructionLogging:
    """Tests for the records emitted while building trees."""

    def test_build_milestones_are_logged(self, log_sink: LogSink, patients: pl.DataFrame) -> None:
        """Construction should emit BUILD records for its start, the cue ranking, the fan and the selected tree.

        Args:
            log_sink (LogSink): Fixture providing log sink for capturing records.
            patients (pl.DataFrame): Fixture data.
        """
        # Act
        with pytest.warns(DegenerateCueWarning):
            result = build_fft(patients, "sick", max_levels=2)

        # Assert
        build_records = [r for r in log_sink.records if r["level"].name == BUILD_LEVEL]
        messages = [r["message"] for r in build_records]
        with check:
            assert messages == ["Construction started", "Cues ranked", "Fan generated", "Tree selected"]
        selected = build_records[-1]["extra"]
        with check:
            assert selected["tree"] == str(result.best.tree)
        with check:
            assert selected["goal"] == "bacc"
        with check:
            assert build_records[0]["extra"]["cases"] == 8

    def test_skipped_cue_logs_warning(self, log_sink: LogSink, patients: pl.DataFrame) -> None:
        """A constant cue should produce a WARNING record naming the cue and the reason.

        Args:
            log_sink (LogSink): Fixture providing log sink for capturing records.
            patients (pl.DataFrame): Fixture data.
        """
        # Act
        with pytest.warns(DegenerateCueWarning, match="ward"):
            build_fft(patients, "sick")

        # Assert
        warning_records = [r for r in log_sink.records if r["level"].name == "WARNING"]
        with check:
            assert len(warning_records) == 1
        with check:
            assert warning_records[0]["extra"] == {"cue": "ward", "reason": "single unique value"}

    def test_conditional_search_logs_debug_records(self, log_sink: LogSink, patients: pl.DataFrame) -> None:
        """Per-branch rankings should be logged at DEBUG.

        Args:
            log_sink (LogSink): Fixture providing log sink for capturing records.
            patients (pl.DataFrame): Fixture data.
        """
        # Act
        with pytest.warns(DegenerateCueWarning):
            build_fft(patients, "sick", algorithm="conditional")

        # Assert
        ranked = [r for r in log_sink.records if r["level"].name == "DEBUG" and r["message"] == "Cues ranked"]
        with check:
            assert len(ranked) > 1, "Each branch ranks its remaining cues"
        with check:
            assert ranked[0]["extra"]["cases"] == 8


class TestBuildLevelRegistration:
    """Tests for BUILD custom log level registration edge cases."""

    def test_build_level_registered_with_correct_number(self) -> None:
        """Verify the BUILD level is registered with the expected numeric value at import time."""
        # Act
        level = logger.level(BUILD_LEVEL)

        # Assert
        with check:
            assert level.no == BUILD_LEVEL_NUMBER, f"BUILD level should be {BUILD_LEVEL_NUMBER}, got {level.no}"

    def test_duplicate_level_wrong_number_warns_not_raises(self) -> None:
        """A numeric mismatch on BUILD registration should warn rather than raise."""
        # Arrange - a fake level whose number conflicts
        fake_level = mock.MagicMock(spec=["no"])
        fake_level.no = BUILD_LEVEL_NUMBER + 1

        with (
            mock.patch("fftkit.logging.logger.level", return_value=fake_level),
            warnings.catch_warnings(record=True) as caught,
        ):
            warnings.simplefilter("always")
            # Act
            _register_build_level()

        # Assert
        with check:
            assert len(caught) == 1, "Should have issued exactly one warning"
        with check:
            assert issubclass(caught[0].category, UserWarning)
        with check:
            assert "already registered with numeric value" in str(caught[0].message)
        with check:
            assert str(BUILD_LEVEL_NUMBER) in str(caught[0].message)


class TestEnableLoggingLifecycle:
    """Tests for enable_logging handle creation, disable and context manager use."""

    def test_enable_logging_returns_logging_handle(self) -> None:
        """enable_logging should return a handle holding an integer handler ID."""
        # Act
        handle = enable_logging()

        # Assert
        with check:
            assert isinstance(handle, LoggingHandle)
        with check:
            assert isinstance(handle.handler_id, int), "handler_id should be an integer"

        # Cleanup
        handle.disable()

    def test_context_manager_captures_and_cleans_up(self, patients: pl.DataFrame) -> None:
        """Records should flow inside the block and stop after it exits.

        Args:
            patients (pl.DataFrame): Fixture data.
        """
        # Act - build inside the block
        with enable_logging() as handle, capturing_sink(enable_fftkit=False) as inside:
            build_fft(patients.drop("ward"), "sick")

        # Act - build again after the block exits
        with capturing_sink(enable_fftkit=False) as after:
            build_fft(patients.drop("ward"), "sick")

        # Assert
        with check:
            assert len(_fftkit_records(inside)) > 0, "Should capture fftkit records inside the block"
        with check:
            assert len(_fftkit_records(after)) == 0, "No fftkit records after the block exits"
        with check:
            assert handle.handler_id is None

    def test_disable_double_call_safe(self) -> None:
        """Calling disable() twice should not raise."""
        # Arrange
        handle = enable_logging()

        # Act & Assert
        handle.disable()
        handle.disable()

    def test_logging_continues_until_last_handle_disabled(self, patients: pl.DataFrame) -> None:
        """Disabling one of two handles should keep records flowing; disabling both should stop them.

        Args:
            patients (pl.DataFrame): Fixture data.
        """
        # Arrange
        data = patients.drop("ward")
        handle1 = enable_logging(level="DEBUG")
        handle2 = enable_logging(level="DEBUG")

        # Act
        handle1.disable()
        with capturing_sink(enable_fftkit=False) as middle:
            build_fft(data, "sick")
        handle2.disable()
        with capturing_sink(enable_fftkit=False) as after:
            build_fft(data, "sick")

        # Assert
        with check:
            assert len(_fftkit_records(middle)) > 0, "Logs should still flow while handle2 is active"
        with check:
            assert len(_fftkit_records(after)) == 0, "Logs should stop after every handle is disabled"

    def test_context_manager_exit_cleans_up_on_exception(self) -> None:
        """__exit__ should remove the handler even when the block raises.

        Raises:
            RuntimeError: Intentionally raised inside the context to test cleanup under failure.
        """
        # Arrange
        handle_ref: list[LoggingHandle] = []

        # Act & Assert
        with pytest.raises(RuntimeError, match="simulated error"), enable_logging() as handle:
            handle_ref.append(handle)
            raise RuntimeError("simulated error")

        with check:
            assert handle_ref[0].handler_id is None, "handler_id should be None after exception in context manager"

    def test_active_handle_count(self) -> None:
        """get_active_handle_count should track enabled and disabled handles."""
        # Arrange
        baseline = LoggingHandle.get_active_handle_count()

        # Act
        handles = [enable_logging(), enable_logging()]
        during = LoggingHandle.get_active_handle_count()
        for handle in handles:
            handle.disable()

        # Assert
        with check:
            assert during == baseline + 2
        with check:
            assert LoggingHandle.get_active_handle_count() == baseline


class TestEnableLoggingOutput:
    """Tests for enable_logging level filtering and formatting on stderr."""

    @pytest.mark.parametrize(
        ("level", "present_levels", "absent_levels"),
        [
            ("BUILD", ["BUILD", "WARNING"], ["DEBUG"]),
            ("DEBUG", ["DEBUG", "BUILD", "WARNING"], []),
            ("WARNING", ["WARNING"], ["BUILD", "DEBUG"]),
        ],
        ids=["default-build-level", "debug-level-captures-all", "warning-level-excludes-build"],
    )
    def test_level_filtering(
        self,
        monkeypatch: pytest.MonkeyPatch,
        patients: pl.DataFrame,
        level: str,
        present_levels: list[str],
        absent_levels: list[str],
    ) -> None:
        """The stderr handler should show only records at or above the chosen level.

        Args:
            monkeypatch (pytest.MonkeyPatch): Pytest fixture for patching sys.stderr safely.
            patients (pl.DataFrame): Fixture data.
            level (str): Level passed to enable_logging.
            present_levels (list[str]): Level names that must appear in stderr.
            absent_levels (list[str]): Level names that must not appear in stderr.
        """
        # Arrange
        captured_stderr = io.StringIO()
        monkeypatch.setattr(sys, "stderr", captured_stderr)
        handle = enable_logging(level=level)  # type: ignore[arg-type]

        # Act - DEBUG rankings, BUILD milestones and a WARNING for the constant cue
        with pytest.warns(DegenerateCueWarning):
            build_fft(patients, "sick")
        handle.disable()
        stderr_output = captured_stderr.getvalue()

        # Assert
        for expected_level in present_levels:
            with check:
                assert expected_level in stderr_output, f"Should have {expected_level} logs (level={level})"
        for excluded_level in absent_levels:
            with check:
                assert excluded_level not in stderr_output, f"Should NOT have {excluded_level} logs (level={level})"

    @pytest.mark.parametrize(
        ("log_format", "expected_present", "expected_absent"),
        [
            ("short", ["build_fft"], ["fftkit.trees.fitting"]),
            ("full", ["fftkit.trees.fitting", "build_fft"], []),
        ],
        ids=["short-format", "full-format"],
    )
    def test_format_renders_expected_tokens(
        self,
        monkeypatch: pytest.MonkeyPatch,
        patients: pl.DataFrame,
        log_format: str,
        expected_present: list[str],
        expected_absent: list[str],
    ) -> None:
        """log_format should control which source-location tokens appear.

        Args:
            monkeypatch (pytest.MonkeyPatch): Pytest fixture for patching sys.stderr safely.
            patients (pl.DataFrame): Fixture data.
            log_format (str): Format passed to enable_logging.
            expected_present (list[str]): Substrings that must appear in stderr.
            expected_absent (list[str]): Substrings that must not appear in stderr.
        """
        # Arrange
        captured_stderr = io.StringIO()
        monkeypatch.setattr(sys, "stderr", captured_stderr)
        handle = enable_logging(log_format=log_format)  # type: ignore[arg-type]

        # Act
        build_fft(patients.drop("ward"), "sick")
        handle.disable()
        stderr_output = captured_stderr.getvalue()

        # Assert
        for token in expected_present:
            with check:
                assert token in stderr_output, f"Format '{log_format}' should include '{token}'"
        for token in expected_absent:
            with check:
                assert token not in stderr_output, f"Format '{log_format}' should NOT include '{token}'"
        if log_format == "full":
            with check:
                assert re.search(r"fftkit\.trees\.fitting:build_fft:\d+", stderr_output)
