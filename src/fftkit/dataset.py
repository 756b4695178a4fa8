"""Dataset preparation: column classification, outcome encoding and cue encoding."""

from __future__ import annotations

import warnings
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Literal, NamedTuple, TypeAlias

import numpy as np
import polars as pl
from loguru import logger
from sklearn.preprocessing import OrdinalEncoder

from fftkit.exceptions import DataError, DegenerateCueWarning

CueKind: TypeAlias = Literal["numeric", "categorical"]

ColumnType: TypeAlias = Literal["numeric", "boolean", "categorical", "excluded"]


# ---------------------------------------------------------------------------
# Column type classification
# ---------------------------------------------------------------------------

_DTYPE_TO_COLUMN_TYPE: dict[type[pl.DataType] | pl.DataType, ColumnType] = {
    pl.Int8: "numeric",
    pl.Int16: "numeric",
    pl.Int32: "numeric",
    pl.Int64: "numeric",
    pl.UInt8: "numeric",
    pl.UInt16: "numeric",
    pl.UInt32: "numeric",
    pl.UInt64: "numeric",
    pl.Float32: "numeric",
    pl.Float64: "numeric",
    pl.Boolean: "boolean",
    pl.String: "categorical",
    pl.Categorical: "categorical",
    pl.Enum: "categorical",
}


def classify_column(dtype: pl.DataType) -> ColumnType:
    """Classify a Polars column dtype into a broad cue category.

    Parameterized dtypes such as `Enum([...])` hash differently from the bare
    class, so an `isinstance` fallback handles them.

    Args:
        dtype (pl.DataType): The Polars data type of the column to classify.

    Returns:
        ColumnType: One of `"numeric"`, `"boolean"`, `"categorical"` or `"excluded"`.
    """
    result = _DTYPE_TO_COLUMN_TYPE.get(dtype)
    if result is not None:
        return result
    if isinstance(dtype, (pl.Enum, pl.Categorical)):
        return "categorical"
    return "excluded"


# ---------------------------------------------------------------------------
# Public models
# ---------------------------------------------------------------------------


class SkippedCue(NamedTuple):
    """A cue that was left out of construction, with the reason.

    Attributes:
        name (str): The cue name.
        reason (str): Human-readable explanation for skipping it.
    """

    name: str
    reason: str


@dataclass(frozen=True, eq=False)
class Cue:
    """One encoded, read-only cue column.

    Numeric cues hold float64 values. Categorical cues hold float64 ordinal
    codes into `category_mapping`. Missing values are `NaN` in both cases.

    Attributes:
        name (str): The cue name.
        kind (CueKind): `"numeric"` or `"categorical"`.
        values (np.ndarray): 1-D float64 array, one value per case.
        category_mapping (dict[int, str] | None): `{code: label}` for
            categorical cues, `None` for numeric cues.
    """

    name: str
    kind: CueKind
    values: np.ndarray
    category_mapping: dict[int, str] | None = field(default=None)

    def __post_init__(self) -> None:
        """Freeze the value array."""
        values = np.asarray(self.values, dtype=np.float64)
        values.flags.writeable = False
        object.__setattr__(self, "values", values)

    @property
    def missing(self) -> np.ndarray:
        """Boolean mask of cases whose value for this cue is missing."""
        return np.isnan(self.values)

    def codes_for(self, labels: frozenset[str]) -> np.ndarray:
        """Translate level labels to this cue's ordinal codes.

        Labels absent from this cue's mapping are ignored.

        Args:
            labels (frozenset[str]): Level labels.

        Returns:
            np.ndarray: Float64 codes present in this cue.
        """
        mapping = self.category_mapping or {}
        return np.array([code for code, label in mapping.items() if label in labels], dtype=np.float64)


@dataclass(frozen=True, eq=False)
class Dataset:
    """Binary outcome plus an ordered, fixed set of cues. Read-only.

    Datasets loaded only to classify new cases carry no outcome.

    Attributes:
        outcome_name (str | None): Source column of the outcome.
        outcome (np.ndarray | None): 1-D boolean array; `True` marks a
            positive case. `None` for unlabeled data.
        cues (tuple[Cue, ...]): Cues in their original input order.
        skipped_cues (tuple[SkippedCue, ...]): Columns dropped while loading.
    """

    outcome_name: str | None
    outcome: np.ndarray | None
    cues: tuple[Cue, ...]
    skipped_cues: tuple[SkippedCue, ...] = ()
    n_cases: int = field(init=False)

    def __post_init__(self) -> None:
        """Freeze the outcome array and check cue lengths."""
        if self.outcome is not None:
            outcome = np.asarray(self.outcome, dtype=bool)
            outcome.flags.writeable = False
            object.__setattr__(self, "outcome", outcome)
            n_cases = len(outcome)
        else:
            n_cases = len(self.cues[0].values) if self.cues else 0
        object.__setattr__(self, "n_cases", n_cases)
        for cue in self.cues:
            if len(cue.values) != n_cases:
                raise DataError(cue.name, f"has {len(cue.values)} values but the dataset has {n_cases} cases")

    def __len__(self) -> int:
        """Return the number of cases."""
        return self.n_cases

    @property
    def labels(self) -> np.ndarray:
        """The outcome array.

        Raises:
            DataError: If the dataset carries no outcome.
        """
        if self.outcome is None:
            raise DataError(self.outcome_name or "outcome", "dataset has no outcome; statistics need labeled cases")
        return self.outcome

    @property
    def cue_names(self) -> list[str]:
        """Cue names in input order."""
        return [cue.name for cue in self.cues]

    def cue(self, name: str) -> Cue:
        """Return the cue called `name`.

        Args:
            name (str): Cue name.

        Returns:
            Cue: The matching cue.

        Raises:
            DataError: If the dataset has no such cue.
        """
        for cue in self.cues:
            if cue.name == name:
                return cue
        raise DataError(name, f"cue not found. Available cues: {self.cue_names}")

    @classmethod
    def from_polars(
        cls,
        df: pl.DataFrame,
        outcome: str | None,
        *,
        cues: Sequence[str] | None = None,
        positive: Any = None,
        require_both_classes: bool = True,
    ) -> Dataset:
        """Load a dataset from a Polars DataFrame.

        Args:
            df (pl.DataFrame): Source data, one row per case.
            outcome (str | None): Name of the binary outcome column, or `None`
                for unlabeled data.
            cues (Sequence[str] | None): Cue columns in order. `None` uses every
                column except `outcome`.
            positive (Any): Outcome value marking a positive case. Optional for
                boolean outcomes and for numeric outcomes coded `{0, 1}`.
            require_both_classes (bool): Require both outcome classes. Held-out
                data may hold a single class.

        Returns:
            Dataset: The encoded dataset.

        Raises:
            DataError: If the outcome or a requested cue column is missing, or
                the outcome is not binary.
        """
        if outcome is not None and outcome not in df.columns:
            raise DataError(outcome, "outcome column not found in DataFrame")
        cue_columns = list(cues) if cues is not None else [col for col in df.columns if col != outcome]
        missing_columns = [col for col in cue_columns if col not in df.columns]
        if missing_columns:
            raise DataError(missing_columns[0], f"cue columns not found in DataFrame: {missing_columns}")

        outcome_array = None
        if outcome is not None:
            outcome_array = encode_outcome(df[outcome], positive, require_both_classes=require_both_classes)
        encoded: list[Cue] = []
        skipped: list[SkippedCue] = []
        for col_name in cue_columns:
            column_type = classify_column(df[col_name].dtype)
            if column_type == "excluded":
                skipped.append(_skip(col_name, f"unsupported dtype {df[col_name].dtype}"))
                continue
            encoded.append(encode_cue(df[col_name], column_type))

        logger.debug("Dataset loaded", cases=df.height, cues=len(encoded), skipped=len(skipped))
        return cls(outcome_name=outcome, outcome=outcome_array, cues=tuple(encoded), skipped_cues=tuple(skipped))


# ---------------------------------------------------------------------------
# Outcome and cue encoding
# ---------------------------------------------------------------------------


def encode_outcome(series: pl.Series, positive: Any = None, *, require_both_classes: bool = True) -> np.ndarray:
    """Encode a binary outcome column as a boolean array.

    Args:
        series (pl.Series): The outcome column.
        positive (Any): Value marking a positive case. When `None`, boolean
            columns use `True` and numeric columns must be coded `{0, 1}`.
        require_both_classes (bool): When `False`, a column holding a single
            class is accepted and `positive` need not occur in it.

    Returns:
        np.ndarray: 1-D boolean array; `True` for positive cases.

    Raises:
        DataError: If the column has nulls, holds more than two distinct values
            (or fewer than two when `require_both_classes`), or `positive` is
            needed but not given or not present.
    """
    name = series.name
    if series.null_count() > 0:
        raise DataError(name, "outcome contains null values. Remove or impute nulls before building trees.")

    distinct = series.unique().to_list()
    expected = "exactly two" if require_both_classes else "at most two"
    if len(distinct) > 2 or (require_both_classes and len(distinct) != 2):
        raise DataError(name, f"outcome must have {expected} distinct values, got {len(distinct)}: {sorted(map(str, distinct))}")

    if positive is None:
        if series.dtype == pl.Boolean:
            positive = True
        elif set(distinct) <= {0, 1} and series.dtype.is_numeric():
            positive = 1
        else:
            raise DataError(name, f"pass `positive` to choose the positive outcome among {sorted(map(str, distinct))}")
    elif require_both_classes and positive not in distinct:
        raise DataError(name, f"positive value {positive!r} does not occur in the outcome")

    return (series == positive).to_numpy(allow_copy=True).astype(bool)


def encode_cue(series: pl.Series, column_type: ColumnType) -> Cue:
    """Convert one Polars Series into a `Cue`.

    Args:
        series (pl.Series): The cue column.
        column_type (ColumnType): The pre-classified type of the column.

    Returns:
        Cue: The encoded cue.

    Raises:
        ValueError: If `column_type` is not encodable.
    """
    if column_type == "numeric":
        return Cue(name=series.name, kind="numeric", values=series.cast(pl.Float64).to_numpy(allow_copy=True))

    if column_type == "boolean":
        return Cue(name=series.name, kind="numeric", values=series.cast(pl.Float64).to_numpy(allow_copy=True))

    if column_type == "categorical":
        codes, category_mapping = _encode_categorical_series(series)
        return Cue(name=series.name, kind="categorical", values=codes, category_mapping=category_mapping)

    raise ValueError(f"Cannot encode column_type={column_type!r}")


def _encode_categorical_series(series: pl.Series) -> tuple[np.ndarray, dict[int, str]]:
    """Ordinal-encode a categorical Polars Series with NaN for missing values.

    Args:
        series (pl.Series): A string, Categorical, or Enum Polars Series.

    Returns:
        tuple[np.ndarray, dict[int, str]]: A 1-D float64 array of ordinal codes
            and a `{code: label}` mapping for the fitted levels.
    """
    non_null = series.drop_nulls().cast(pl.String)
    if non_null.len() == 0:
        return np.full(series.len(), np.nan), {}

    ordinal_encoder = OrdinalEncoder(
        handle_unknown="use_encoded_value",
        unknown_value=np.nan,
        encoded_missing_value=np.nan,
    )
    ordinal_encoder.fit(non_null.to_numpy(allow_copy=True).reshape(-1, 1))
    raw_column = series.cast(pl.String).to_numpy(allow_copy=True).reshape(-1, 1)
    encoded_column = ordinal_encoder.transform(raw_column).astype(np.float64).ravel()
    category_mapping = dict(enumerate(str(label) for label in ordinal_encoder.categories_[0]))
    return encoded_column, category_mapping


def _skip(name: str, reason: str) -> SkippedCue:
    """Record and announce a skipped cue.

    Args:
        name (str): Cue name.
        reason (str): Why it is skipped.

    Returns:
        SkippedCue: The skip record.
    """
    warnings.warn(f"Skipping cue '{name}': {reason}", DegenerateCueWarning, stacklevel=3)
    logger.warning("Cue skipped", cue=name, reason=reason)
    return SkippedCue(name=name, reason=reason)
