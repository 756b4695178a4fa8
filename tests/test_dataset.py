"""Tests for dataset preparation: column classification, outcome encoding, cue encoding, Dataset access."""

from __future__ import annotations

import datetime

import numpy as np
import polars as pl
import pytest
from pytest_check import check

from fftkit.dataset import Cue, Dataset, classify_column, encode_cue, encode_outcome
from fftkit.exceptions import DataError, DegenerateCueWarning


class TestClassifyColumn:
    """Tests for `classify_column`: maps Polars dtypes to cue categories."""

    @pytest.mark.parametrize("dtype", [pl.Int8, pl.Int32, pl.Int64, pl.UInt16, pl.Float32, pl.Float64])
    def test_numeric_types_return_numeric(self, dtype: pl.DataType) -> None:
        """Integer and float dtypes should classify as 'numeric'.

        Args:
            dtype (pl.DataType): A Polars numeric dtype.
        """
        # Act & Assert
        assert classify_column(dtype) == "numeric"

    def test_boolean_type_returns_boolean(self) -> None:
        """Boolean dtype should classify as 'boolean'."""
        # Act & Assert
        assert classify_column(pl.Boolean) == "boolean"  # type: ignore[arg-type]

    @pytest.mark.parametrize("dtype", [pl.String, pl.Categorical, pl.Enum(["low", "high"])])
    def test_string_like_types_return_categorical(self, dtype: pl.DataType) -> None:
        """String, Categorical and parameterized Enum dtypes should classify as 'categorical'.

        Args:
            dtype (pl.DataType): A Polars string-like dtype.
        """
        # Act & Assert
        assert classify_column(dtype) == "categorical"

    @pytest.mark.parametrize("dtype", [pl.Date, pl.Datetime, pl.List(pl.Int64)])
    def test_other_types_are_excluded(self, dtype: pl.DataType) -> None:
        """Temporal and nested dtypes cannot be cues.

        Args:
            dtype (pl.DataType): An unsupported Polars dtype.
        """
        # Act & Assert
        assert classify_column(dtype) == "excluded"


class TestEncodeOutcome:
    """Tests for `encode_outcome`: binary outcome columns to boolean arrays."""

    def test_boolean_outcome_uses_true_as_positive(self) -> None:
        """A boolean column should map `True` to positive without `positive`."""
        # Arrange
        series = pl.Series("readmitted", [True, False, True, False])

        # Act
        encoded = encode_outcome(series)

        # Assert
        np.testing.assert_array_equal(encoded, [True, False, True, False])

    def test_zero_one_outcome_uses_one_as_positive(self) -> None:
        """An integer column coded {0, 1} should map 1 to positive."""
        # Arrange
        series = pl.Series("default", [0, 1, 1, 0, 0])

        # Act
        encoded = encode_outcome(series)

        # Assert
        with check:
            assert encoded.dtype == np.bool_
        np.testing.assert_array_equal(encoded, [False, True, True, False, False])

    def test_string_outcome_with_explicit_positive(self) -> None:
        """A string column should encode the given `positive` label as `True`."""
        # Arrange
        series = pl.Series("diagnosis", ["malignant", "benign", "benign", "malignant"])

        # Act
        encoded = encode_outcome(series, positive="malignant")

        # Assert
        np.testing.assert_array_equal(encoded, [True, False, False, True])

    def test_string_outcome_without_positive_raises(self) -> None:
        """A two-valued string column needs `positive` to pick a side."""
        # Arrange
        series = pl.Series("diagnosis", ["malignant", "benign"])

        # Act & Assert
        with pytest.raises(DataError, match="pass `positive`") as exc_info:
            encode_outcome(series)
        with check:
            assert exc_info.value.column == "diagnosis"

    def test_positive_not_present_raises(self) -> None:
        """A `positive` value absent from the column should be rejected."""
        # Arrange
        series = pl.Series("diagnosis", ["malignant", "benign"])

        # Act & Assert
        with pytest.raises(DataError, match="does not occur"):
            encode_outcome(series, positive="unknown")

    @pytest.mark.parametrize(
        "values",
        [["a", "b", "c"], ["only", "only"]],
        ids=["three-values", "one-value"],
    )
    def test_non_binary_outcome_raises(self, values: list[str]) -> None:
        """Outcomes with other than two distinct values should raise DataError.

        Args:
            values (list[str]): Outcome values.
        """
        # Act & Assert
        with pytest.raises(DataError, match="exactly two distinct values"):
            encode_outcome(pl.Series("label", values), positive="a")

    def test_null_outcome_raises(self) -> None:
        """Nulls in the outcome should raise DataError naming the column."""
        # Arrange
        series = pl.Series("churned", [True, None, False])

        # Act & Assert
        with pytest.raises(DataError, match="null values") as exc_info:
            encode_outcome(series)
        with check:
            assert exc_info.value.column == "churned"

    @pytest.mark.parametrize(
        ("values", "positive", "expected"),
        [
            ([True, True], None, [True, True]),
            ([0, 0, 0], None, [False, False, False]),
            (["benign", "benign"], "malignant", [False, False]),
        ],
        ids=["all-positive-bool", "all-negative-int", "positive-absent"],
    )
    def test_single_class_allowed_when_not_required(
        self, values: list[object], positive: object, expected: list[bool]
    ) -> None:
        """Held-out outcomes may hold a single class.

        Args:
            values (list[object]): Outcome values.
            positive (object): Positive outcome value.
            expected (list[bool]): Expected encoding.
        """
        # Act
        encoded = encode_outcome(pl.Series("label", values), positive, require_both_classes=False)

        # Assert
        np.testing.assert_array_equal(encoded, expected)

    def test_three_values_rejected_when_single_class_allowed(self) -> None:
        """Allowing a single class still rejects non-binary outcomes."""
        # Act & Assert
        with pytest.raises(DataError, match="at most two distinct values"):
            encode_outcome(pl.Series("label", ["a", "b", "c"]), "a", require_both_classes=False)


class TestEncodeCue:
    """Tests for `encode_cue`: one Polars column to a read-only `Cue`."""

    def test_numeric_nulls_become_nan(self) -> None:
        """Numeric nulls should be encoded as NaN and reported as missing."""
        # Arrange
        series = pl.Series("blood_pressure", [120, None, 140])

        # Act
        cue = encode_cue(series, "numeric")

        # Assert
        with check:
            assert cue.kind == "numeric"
        with check:
            assert cue.missing.tolist() == [False, True, False]
        with check:
            assert cue.category_mapping is None

    def test_boolean_becomes_numeric_zero_one(self) -> None:
        """Boolean cues should be encoded as numeric 0.0 and 1.0."""
        # Act
        cue = encode_cue(pl.Series("smoker", [True, False, True]), "boolean")

        # Assert
        with check:
            assert cue.kind == "numeric"
        np.testing.assert_array_equal(cue.values, [1.0, 0.0, 1.0])

    def test_categorical_levels_get_sorted_ordinal_codes(self) -> None:
        """Categorical levels should be coded in sorted label order with NaN for nulls."""
        # Arrange
        series = pl.Series("chest_pain", ["typical", "none", None, "atypical", "typical"])

        # Act
        cue = encode_cue(series, "categorical")

        # Assert
        with check:
            assert cue.kind == "categorical"
        with check:
            assert cue.category_mapping == {0: "atypical", 1: "none", 2: "typical"}
        np.testing.assert_array_equal(cue.values, [2.0, 1.0, np.nan, 0.0, 2.0])

    def test_codes_for_ignores_unknown_labels(self) -> None:
        """`codes_for` should translate known labels and skip unknown ones."""
        # Arrange
        cue = encode_cue(pl.Series("thal", ["normal", "fixed", "reversible"]), "categorical")

        # Act
        codes = cue.codes_for(frozenset({"reversible", "unseen"}))

        # Assert
        np.testing.assert_array_equal(codes, [2.0])

    def test_values_are_read_only(self) -> None:
        """Cue values should not be writeable after construction."""
        # Arrange
        cue = Cue(name="age", kind="numeric", values=np.array([1.0, 2.0]))

        # Act & Assert
        with pytest.raises(ValueError, match="read-only"):
            cue.values[0] = 5.0


class TestDatasetFromPolars:
    """Tests for `Dataset.from_polars` and Dataset accessors."""

    def test_loads_every_non_outcome_column_in_order(self, heart_df: pl.DataFrame) -> None:
        """All non-outcome columns should become cues in input order.

        Args:
            heart_df (pl.DataFrame): Fixture with five cue columns.
        """
        # Act
        dataset = Dataset.from_polars(heart_df, "disease")

        # Assert
        with check:
            assert dataset.cue_names == ["age", "cholesterol", "chest_pain", "smoker", "thal"]
        with check:
            assert len(dataset) == 20
        with check:
            assert int(dataset.labels.sum()) == 9
        with check:
            assert dataset.outcome_name == "disease"

    def test_explicit_cue_subset_keeps_given_order(self, heart_df: pl.DataFrame) -> None:
        """An explicit `cues` list should select and order the cue columns.

        Args:
            heart_df (pl.DataFrame): Fixture with five cue columns.
        """
        # Act
        dataset = Dataset.from_polars(heart_df, "disease", cues=["thal", "age"])

        # Assert
        assert dataset.cue_names == ["thal", "age"]

    def test_unsupported_dtype_is_skipped_with_warning(self) -> None:
        """Columns of unsupported dtype should be skipped with a DegenerateCueWarning."""
        # Arrange
        df = pl.DataFrame({
            "admitted_on": [datetime.date(2024, 1, day) for day in range(1, 5)],
            "length_of_stay": [2, 5, 3, 8],
            "readmitted": [False, True, False, True],
        })

        # Act
        with pytest.warns(DegenerateCueWarning, match="admitted_on"):
            dataset = Dataset.from_polars(df, "readmitted")

        # Assert
        with check:
            assert dataset.cue_names == ["length_of_stay"]
        with check:
            assert [cue.name for cue in dataset.skipped_cues] == ["admitted_on"]
        with check:
            assert "unsupported dtype" in dataset.skipped_cues[0].reason

    def test_missing_outcome_column_raises(self, heart_df: pl.DataFrame) -> None:
        """An absent outcome column should raise DataError.

        Args:
            heart_df (pl.DataFrame): Fixture without a `survived` column.
        """
        # Act & Assert
        with pytest.raises(DataError, match="outcome column not found"):
            Dataset.from_polars(heart_df, "survived")

    def test_missing_cue_column_raises(self, heart_df: pl.DataFrame) -> None:
        """A requested cue column that does not exist should raise DataError.

        Args:
            heart_df (pl.DataFrame): Fixture without a `bmi` column.
        """
        # Act & Assert
        with pytest.raises(DataError) as exc_info:
            Dataset.from_polars(heart_df, "disease", cues=["age", "bmi"])
        with check:
            assert exc_info.value.column == "bmi"

    def test_unlabeled_dataset_has_no_labels(self, heart_df: pl.DataFrame) -> None:
        """A dataset loaded without an outcome should refuse to expose labels.

        Args:
            heart_df (pl.DataFrame): Fixture data.
        """
        # Arrange
        dataset = Dataset.from_polars(heart_df.drop("disease"), None)

        # Act & Assert
        with check:
            assert len(dataset) == 20
        with pytest.raises(DataError, match="no outcome"):
            _ = dataset.labels

    def test_outcome_is_read_only(self, heart: Dataset) -> None:
        """The outcome array should not be writeable.

        Args:
            heart (Dataset): Loaded fixture dataset.
        """
        # Act & Assert
        with pytest.raises(ValueError, match="read-only"):
            heart.labels[0] = True

    def test_cue_lookup_by_name(self, heart: Dataset) -> None:
        """`cue()` should return the named cue and raise DataError for unknown names.

        Args:
            heart (Dataset): Loaded fixture dataset.
        """
        # Act
        cue = heart.cue("chest_pain")

        # Assert
        with check:
            assert cue.kind == "categorical"
        with pytest.raises(DataError, match="cue not found"):
            heart.cue("bmi")

    def test_mismatched_cue_length_raises(self) -> None:
        """A cue whose length differs from the outcome should be rejected."""
        # Arrange
        cue = Cue(name="age", kind="numeric", values=np.array([1.0, 2.0, 3.0]))

        # Act & Assert
        with pytest.raises(DataError, match="has 3 values"):
            Dataset(outcome_name="sick", outcome=np.array([True, False]), cues=(cue,))
