"""Construction pipeline, prediction and report tables."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Literal

import numpy as np
import polars as pl
from loguru import logger

from fftkit.config import FFTConfig, load_config
from fftkit.dataset import Dataset
from fftkit.exceptions import ConfigurationError, ConstructionError, DataError
from fftkit.logging import BUILD_LEVEL
from fftkit.trees.builders import build_max_tree, build_zigzag_tree
from fftkit.trees.fan import generate_fan
from fftkit.trees.models import FFTResult, Threshold, Tree
from fftkit.trees.pruning import prune_tree
from fftkit.trees.ranking import rank_cues
from fftkit.trees.selection import RankBy, select_trees
from fftkit.trees.statistics import apply_tree
from fftkit.trees.thresholds import ExhaustiveSubsetSearch, ThresholdCache

# ---------------------------------------------------------------------------
# Public interface -- Construction
# ---------------------------------------------------------------------------


def build_fft(
    data: pl.DataFrame | Dataset,
    outcome: str | None = None,
    *,
    config: FFTConfig | Mapping[str, Any] | None = None,
    cues: Sequence[str] | None = None,
    positive: Any = None,
    test: pl.DataFrame | Dataset | None = None,
    rank_by: RankBy = "train",
    **options: Any,
) -> FFTResult:
    """Build, evaluate and rank fast-and-frugal trees.

    Pipeline:
        1. Load and validate the training data and configuration.
        2. Rank every cue on the full training data.
        3. Enumerate and prune the fan (`global`, `conditional`) or grow one
           tree (`max`, `zigzag`).
        4. Evaluate every tree on train and optional test data and rank them
           by `config.goal`.

    Args:
        data (pl.DataFrame | Dataset): Training cases.
        outcome (str | None): Outcome column; required for a DataFrame.
        config (FFTConfig | Mapping[str, Any] | None): Base configuration.
        cues (Sequence[str] | None): Cue columns in order; `None` uses every
            non-outcome column.
        positive (Any): Outcome value marking a positive case.
        test (pl.DataFrame | Dataset | None): Held-out cases with the same columns.
        rank_by (RankBy): Rank trees on `"train"` or `"test"` statistics.
        **options (Any): Configuration overrides, e.g. `max_levels=3`.

    Returns:
        FFTResult: Ranked trees, cue ranking and skipped cues.

    Raises:
        ConfigurationError: If the configuration is invalid, `cost_cues`
            names an unknown cue or a categorical cue has too many levels for
            the exhaustive level-subset search.
        DataError: If the outcome is missing, not binary or the data is empty.
        ConstructionError: If no cue is usable.

    Examples:
        >>> df = pl.DataFrame({"age": [30, 60, 45, 70], "sick": [False, True, False, True]})
        >>> result = build_fft(df, "sick", max_levels=1)
        >>> str(result.best.tree)
        'age > 45.0 [terminal]'
    """
    fft_config = load_config(config, **options)
    train = _as_dataset(data, outcome, cues=cues, positive=positive)
    if train.outcome is None:
        raise DataError(outcome or "outcome", "an outcome column is required to build trees")
    if len(train) == 0:
        raise DataError(train.outcome_name or "outcome", "training data has no cases")
    _check_cue_costs(fft_config, train)
    _check_predicate_search(fft_config, train)

    test_set = None
    if test is not None:
        test_set = _as_dataset(
            test, train.outcome_name, cues=train.cue_names, positive=positive, require_both_classes=False
        )

    logger.log(
        BUILD_LEVEL,
        "Construction started",
        algorithm=fft_config.algorithm,
        cases=len(train),
        cues=len(train.cues),
        max_levels=fft_config.max_levels,
    )
    cache = ThresholdCache()
    ranking = rank_cues(train, fft_config, cache=cache, warn=True)
    skipped = [*train.skipped_cues, *ranking.skipped]
    if not ranking.ranked:
        raise ConstructionError(skipped)
    logger.log(BUILD_LEVEL, "Cues ranked", order=[result.cue for result in ranking.ranked], skipped=len(skipped))

    trees = _candidate_trees(train, fft_config, ranking=ranking, cache=cache)
    evaluated = select_trees(trees, train, fft_config, test=test_set, rank_by=rank_by)
    best = evaluated[0]
    logger.log(
        BUILD_LEVEL,
        "Tree selected",
        tree=str(best.tree),
        goal=fft_config.goal,
        value=getattr(best.train, fft_config.goal),
        candidates=len(evaluated),
    )
    return FFTResult(
        config=fft_config,
        outcome=train.outcome_name or "outcome",
        trees=evaluated,
        cue_ranking=ranking.ranked,
        skipped_cues=skipped,
        n_train=len(train),
        n_test=len(test_set) if test_set is not None else None,
    )


# ---------------------------------------------------------------------------
# Public interface -- Prediction
# ---------------------------------------------------------------------------


def predict(result: FFTResult, data: pl.DataFrame | Dataset, *, tree: Tree | int | None = None) -> np.ndarray:
    """Classify new cases with a built tree.

    Args:
        result (FFTResult): Construction result.
        data (pl.DataFrame | Dataset): Cases carrying every cue the tree uses.
            The outcome column is not needed.
        tree (Tree | int | None): Tree to apply: a tree, a 1-based rank, or
            `None` for the best tree.

    Returns:
        np.ndarray: Boolean decision per case; `True` is positive.

    Raises:
        ValueError: If `tree` is a rank outside `1..len(result.trees)`.
        DataError: If `data` lacks a cue the tree uses.
    """
    chosen = _resolve_tree(result, tree)
    dataset = data if isinstance(data, Dataset) else Dataset.from_polars(data, None, cues=chosen.cues)
    return apply_tree(chosen, dataset).decisions


# ---------------------------------------------------------------------------
# Public interface -- Report tables
# ---------------------------------------------------------------------------


def tree_definitions(result: FFTResult) -> pl.DataFrame:
    """Return one row per node of every ranked tree.

    Args:
        result (FFTResult): Construction result.

    Returns:
        pl.DataFrame: Columns `tree`, `level`, `cue`, `direction`, `cutoff`,
            `exit`, `decision`, `missing_decision`.
    """
    rows = [
        {
            "tree": evaluated.rank,
            "level": level,
            "cue": node.cue,
            "direction": node.threshold.direction,
            "cutoff": _format_cutoff(node.threshold),
            "exit": node.exit,
            "decision": node.decision,
            "missing_decision": node.missing_decision,
        }
        for evaluated in result.trees
        for level, node in enumerate(evaluated.tree.nodes, start=1)
    ]
    return pl.DataFrame(rows, schema_overrides={"missing_decision": pl.Boolean}, infer_schema_length=None)


def performance_table(result: FFTResult, data: Literal["train", "test"] = "train") -> pl.DataFrame:
    """Return one row per ranked tree with every statistic.

    Args:
        result (FFTResult): Construction result.
        data (Literal["train", "test"]): Which statistics to report.

    Returns:
        pl.DataFrame: `tree`, `n_levels`, `cues` and every `ConfusionStats` field.

    Raises:
        ValueError: If `data="test"` but the result has no test statistics.
    """
    if data == "test" and result.n_test is None:
        raise ValueError("The result has no test statistics; pass `test` to build_fft")

    rows = []
    for evaluated in result.trees:
        stats = evaluated.train if data == "train" else evaluated.test
        rows.append(
            {
                "tree": evaluated.rank,
                "n_levels": evaluated.tree.n_levels,
                "cues": ", ".join(evaluated.tree.cues),
                **stats.model_dump(),
            }
        )
    return pl.DataFrame(rows, schema_overrides=_STAT_SCHEMA, infer_schema_length=None)


def cue_table(result: FFTResult) -> pl.DataFrame:
    """Return the cue ranking on the full training data, best cue first.

    Args:
        result (FFTResult): Construction result.

    Returns:
        pl.DataFrame: Columns `rank`, `cue`, `kind`, `direction`, `cutoff`,
            `statistic`, `n_cases`, `sens`, `spec`.
    """
    rows = [
        {
            "rank": rank,
            "cue": cue.cue,
            "kind": cue.kind,
            "direction": cue.threshold.direction,
            "cutoff": _format_cutoff(cue.threshold),
            "statistic": cue.statistic,
            "n_cases": cue.n_cases,
            "sens": cue.stats.sens,
            "spec": cue.stats.spec,
        }
        for rank, cue in enumerate(result.cue_ranking, start=1)
        if cue.threshold is not None and cue.stats is not None
    ]
    return pl.DataFrame(
        rows,
        schema_overrides={"statistic": pl.Float64, "sens": pl.Float64, "spec": pl.Float64},
        infer_schema_length=None,
    )


# ---------------------------------------------------------------------------
# Private helpers
# ---------------------------------------------------------------------------

_STAT_SCHEMA: dict[str, type[pl.DataType]] = {
    name: pl.Float64
    for name in (
        "sens",
        "spec",
        "far",
        "ppv",
        "npv",
        "acc",
        "bacc",
        "wacc",
        "dprime",
        "cost_outcomes_total",
        "cost_cues_total",
        "cost",
        "cost_per_case",
        "mcu",
        "pci",
    )
}


def _as_dataset(
    data: pl.DataFrame | Dataset,
    outcome: str | None,
    *,
    cues: Sequence[str] | None,
    positive: Any,
    require_both_classes: bool = True,
) -> Dataset:
    """Return `data` unchanged if already loaded, otherwise load it from Polars."""
    if isinstance(data, Dataset):
        return data
    if outcome is None:
        raise DataError("outcome", "pass the outcome column name when building from a DataFrame")
    return Dataset.from_polars(
        data, outcome, cues=cues, positive=positive, require_both_classes=require_both_classes
    )


def _check_cue_costs(config: FFTConfig, dataset: Dataset) -> None:
    """Reject cue costs for cues the dataset does not have."""
    known = {*dataset.cue_names, *(cue.name for cue in dataset.skipped_cues)}
    unknown = sorted(set(config.cost_cues) - known)
    if unknown:
        raise ConfigurationError("cost_cues", f"unknown cues {unknown}; available cues: {dataset.cue_names}")


def _check_predicate_search(config: FFTConfig, dataset: Dataset) -> None:
    """Reject categorical cues with more levels than the exhaustive search accepts."""
    if config.predicate_search != "exhaustive":
        return
    limit = ExhaustiveSubsetSearch().max_levels
    too_many = sorted(
        cue.name for cue in dataset.cues if cue.kind == "categorical" and len(cue.category_mapping or {}) > limit
    )
    if too_many:
        raise ConfigurationError(
            "predicate_search",
            f"exhaustive search supports at most {limit} levels; cues {too_many} have more, use 'greedy'",
        )


def _candidate_trees(dataset: Dataset, config: FFTConfig, **kwargs: Any) -> list[Tree]:
    """Produce the trees to select from for `config.algorithm`."""
    if config.algorithm == "max":
        return [build_max_tree(dataset, config, **kwargs)]
    if config.algorithm == "zigzag":
        return [build_zigzag_tree(dataset, config, **kwargs)]

    fan = generate_fan(dataset, config, **kwargs)
    if config.stopping_rule == "none":
        return fan
    # Pruning can turn distinct trees into equal ones; keep the first of each.
    pruned = dict.fromkeys(prune_tree(tree, dataset, config.stopping_par) for tree in fan)
    logger.debug("Fan pruned", trees_before=len(fan), trees_after=len(pruned))
    return list(pruned)


def _resolve_tree(result: FFTResult, tree: Tree | int | None) -> Tree:
    """Return the tree selected by `tree`, defaulting to the best one."""
    if tree is None:
        return result.best.tree
    if isinstance(tree, Tree):
        return tree
    if not 1 <= tree <= len(result.trees):
        raise ValueError(f"Tree rank must be between 1 and {len(result.trees)}, got {tree}")
    return result.trees[tree - 1].tree


def _format_cutoff(threshold: Threshold) -> str:
    """Render a cutoff as text: the number, or the sorted level labels."""
    if isinstance(threshold.cutoff, frozenset):
        return ", ".join(sorted(threshold.cutoff))
    return str(threshold.cutoff)
