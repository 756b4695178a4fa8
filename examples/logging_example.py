"""Demonstrates how to enable and configure logging in fftkit.

fftkit logging is disabled by default. Users opt in by calling ``enable_logging()``,
which returns a ``LoggingHandle``. The handle can be used as a context manager
(``with enable_logging(): ...``) or disabled manually via ``handle.disable()``.
When the last active handle is disabled, fftkit logging is automatically turned off.

Key concepts shown here:

- ``level``: controls the minimum log level. The custom ``BUILD`` level
  (numeric value 25, between INFO and WARNING) reports construction milestones
  and is the default. ``"DEBUG"`` adds every cue ranking and conditional branch.
- ``log_format``: ``"short"`` shows ``timestamp | level | function - message``;
  ``"full"`` adds the module and line number.
- Skipped cues: a constant column is logged as a WARNING and construction continues.
"""

import polars as pl

from fftkit import build_fft, enable_logging, performance_table, tree_definitions

train = pl.DataFrame({
    "age": [34, 41, 45, 48, 52, 55, 57, 59, 61, 63, 66, 68, 70, 72],
    "cholesterol": [180, 210, 250, 190, 260, 230, 240, 200, 270, 220, 280, 205, 300, 215],
    "thal": [
        "normal", "normal", "fixed", "normal", "reversible", "normal", "reversible",
        "fixed", "reversible", "normal", "reversible", "fixed", "reversible", "normal",
    ],
    "clinic": ["north"] * 14,
    "disease": [False, False, False, False, True, False, True, False, True, False, True, True, True, False],
})

with enable_logging(level="DEBUG", log_format="full"):
    result = build_fft(train, "disease", algorithm="conditional", max_levels=3)

# Logging automatically disabled here
print(result.best.tree)
print(tree_definitions(result).filter(pl.col("tree") == 1))
print(performance_table(result).select("tree", "n_levels", "bacc", "mcu"))
