"""Shared fixtures: small labeled datasets with known structure."""

from __future__ import annotations

import polars as pl
import pytest

from fftkit.dataset import Dataset


@pytest.fixture
def heart_df() -> pl.DataFrame:
    """Twenty patients with numeric, boolean and categorical cues and a boolean outcome.

    Returns:
        pl.DataFrame: Columns `age`, `cholesterol`, `chest_pain`, `smoker`, `thal`, `disease`.
    """
    return pl.DataFrame({
        "age": [34, 41, 45, 48, 52, 55, 57, 59, 61, 63, 66, 68, 70, 72, 38, 44, 50, 62, 75, 80],
        "cholesterol": [180, 210, 250, 190, 260, 230, 240, 200, 270, 220, 280, 205, 300, 215, 195, 245, 225, 265, 235, 290],
        "chest_pain": [
            "none", "typical", "atypical", "none", "typical", "none", "typical", "atypical", "typical", "none",
            "typical", "atypical", "typical", "none", "none", "atypical", "none", "typical", "atypical", "typical",
        ],
        "smoker": [
            False, True, False, False, True, False, True, True, True, False,
            True, False, True, False, False, True, False, True, False, True,
        ],
        "thal": [
            "normal", "normal", "fixed", "normal", "reversible", "normal", "reversible", "fixed", "reversible", "normal",
            "reversible", "fixed", "reversible", "normal", "normal", "fixed", "normal", "reversible", "fixed", "reversible",
        ],
        "disease": [
            False, False, False, False, True, False, True, False, True, False,
            True, True, True, False, False, True, False, True, False, True,
        ],
    })


@pytest.fixture
def heart(heart_df: pl.DataFrame) -> Dataset:
    """The `heart_df` cases loaded with `disease` as the outcome.

    Returns:
        Dataset: Five cues, twenty cases, nine of them positive.
    """
    return Dataset.from_polars(heart_df, "disease")


@pytest.fixture
def cutoff_55() -> Dataset:
    """Ten cases at age 60 (six positive) and ten at age 55 (four positive).

    The only candidate split is `age > 55`, with sensitivity and specificity
    both equal to 0.6.

    Returns:
        Dataset: One numeric cue, twenty cases.
    """
    df = pl.DataFrame({
        "age": [60] * 10 + [55] * 10,
        "disease": [True] * 6 + [False] * 4 + [True] * 4 + [False] * 6,
    })
    return Dataset.from_polars(df, "disease")
