"""Custom exceptions and warnings for fast-and-frugal tree construction.

Validation exceptions (subclass ValueError):
- FFTError: Base class for every fftkit failure. Catch this to handle any of them.
- ConfigurationError: Raised when a configuration field holds an invalid value.
- DataError: Raised when the outcome column cannot be used for binary classification.

Construction exceptions:
- ConstructionError: Raised when no cue is usable, so no tree can be built.

Warnings:
- DegenerateCueWarning: Emitted when a cue is constant, entirely missing or of an
  unsupported dtype. The cue is skipped and construction continues.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from fftkit.dataset import SkippedCue


class FFTError(Exception):
    """Base exception for all fftkit errors."""


class ConfigurationError(FFTError, ValueError):
    """Raised when a configuration field holds an invalid value.

    Attributes:
        field (str): Name of the offending configuration field, e.g. `"goal"`.

    Examples:
        >>> err = ConfigurationError("goal", "unknown goal 'auc'")
        >>> err.field
        'goal'
        >>> str(err)
        "Invalid configuration field 'goal': unknown goal 'auc'"
    """

    field: str

    def __init__(self, field: str, reason: str) -> None:
        """Initialize ConfigurationError.

        Args:
            field (str): Name of the offending configuration field.
            reason (str): Human-readable explanation of the problem.
        """
        super().__init__(f"Invalid configuration field '{field}': {reason}")
        self.field = field
        self.reason = reason

    def __repr__(self) -> str:
        """Return detailed representation for debugging.

        Returns:
            str: Representation including the field and reason.
        """
        return f"{self.__class__.__name__}(field={self.field!r}, reason={self.reason!r})"


class DataError(FFTError, ValueError):
    """Raised when an input column cannot be used.

    Attributes:
        column (str): Name of the offending column.

    Examples:
        >>> err = DataError("diagnosis", "outcome must have exactly two distinct values, got 3")
        >>> err.column
        'diagnosis'
    """

    column: str

    def __init__(self, column: str, reason: str) -> None:
        """Initialize DataError.

        Args:
            column (str): Name of the offending column.
            reason (str): Human-readable explanation of the problem.
        """
        super().__init__(f"Column '{column}': {reason}")
        self.column = column
        self.reason = reason

    def __repr__(self) -> str:
        """Return detailed representation for debugging.

        Returns:
            str: Representation including the column and reason.
        """
        return f"{self.__class__.__name__}(column={self.column!r}, reason={self.reason!r})"


class ConstructionError(FFTError):
    """Raised when tree construction has no usable cue to work with.

    Raised only after every cue has been tried, so `skipped_cues` lists all of
    them together with the reason each was dropped.

    Attributes:
        skipped_cues (list[SkippedCue]): Every cue that was skipped, with its reason.

    Examples:
        >>> from fftkit.dataset import SkippedCue
        >>> err = ConstructionError([SkippedCue(name="age", reason="single unique value")])
        >>> err.skipped_cues[0].name
        'age'
    """

    skipped_cues: list[SkippedCue]

    def __init__(self, skipped_cues: list[SkippedCue]) -> None:
        """Initialize ConstructionError.

        Args:
            skipped_cues (list[SkippedCue]): The cues that were skipped, with reasons.
        """
        labels = [f"{cue.name} ({cue.reason})" for cue in skipped_cues]
        super().__init__(f"No usable cues to build a tree from. Skipped: {labels}")
        self.skipped_cues = list(skipped_cues)

    def __repr__(self) -> str:
        """Return detailed representation for debugging.

        Returns:
            str: Representation including the skipped cues.
        """
        return f"{self.__class__.__name__}(skipped_cues={self.skipped_cues!r})"


class DegenerateCueWarning(UserWarning):
    """Emitted when a cue cannot split the data and is skipped."""
