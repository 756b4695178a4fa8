"""Per-cue threshold search: the direction and cutoff maximizing a goal statistic.

Numeric cues are searched exhaustively over every distinct split. Categorical
cues use a pluggable level-subset search; the default greedy prefix search is
an approximation and is not guaranteed to find the best subset.
"""

from __future__ import annotations

import itertools
import threading
from collections.abc import Callable, Hashable, Sequence
from typing import Final, NamedTuple, Protocol, TypeAlias

import numpy as np
from loguru import logger

from fftkit.config import FFTConfig
from fftkit.dataset import Cue
from fftkit.exceptions import ConfigurationError
from fftkit.trees.models import CueThresholdResult, Threshold
from fftkit.trees.statistics import compute_stats, goal_score, score_key, statistic_from_counts

_NUMERIC_DIRECTIONS: Final[tuple[str, str]] = (">", "<=")
_MAX_EXHAUSTIVE_LEVELS: Final[int] = 12  # 2**12 subsets; larger level counts must use the greedy search.

# A (direction, cutoff) pair, turned into a Threshold only for the winning candidate.
_Candidate: TypeAlias = tuple[str, float | frozenset[str]]


class LevelSummary(NamedTuple):
    """Outcome counts of one categorical level within the searched cases.

    Attributes:
        code (int): Ordinal code of the level.
        label (str): Level label.
        positives (int): Positive cases at this level.
        cases (int): All cases at this level.
    """

    code: int
    label: str
    positives: int
    cases: int


class PredicateSearch(Protocol):
    """Strategy producing candidate level subsets for a categorical cue."""

    def candidate_subsets(self, levels: Sequence[LevelSummary]) -> list[tuple[LevelSummary, ...]]:
        """Return candidate `in` subsets in canonical generation order.

        Args:
            levels (Sequence[LevelSummary]): Levels present in the searched
                cases, sorted by label.

        Returns:
            list[tuple[LevelSummary, ...]]: Proper, non-empty level subsets.
        """
        ...


class GreedyPrefixSearch:
    """Rank levels by positive rate and offer every proper prefix of that ranking.

    Evaluates `L - 1` subsets instead of `2**L - 2`. It is an approximation:
    the best prefix is not always the best subset for every goal.
    """

    def candidate_subsets(self, levels: Sequence[LevelSummary]) -> list[tuple[LevelSummary, ...]]:
        """Return the proper prefixes of the levels ranked by positive rate.

        Args:
            levels (Sequence[LevelSummary]): Levels sorted by label.

        Returns:
            list[tuple[LevelSummary, ...]]: Prefixes of length `1..L-1`.
        """
        # Stable sort keeps label order among equal rates.
        ranked = sorted(levels, key=lambda level: -level.positives / level.cases)
        return [tuple(ranked[:size]) for size in range(1, len(ranked))]


class ExhaustiveSubsetSearch:
    """Offer every proper, non-empty level subset. Exact, for small level counts."""

    def __init__(self, max_levels: int = _MAX_EXHAUSTIVE_LEVELS) -> None:
        """Initialize the search.

        Args:
            max_levels (int): Largest level count accepted.
        """
        self.max_levels = max_levels

    def candidate_subsets(self, levels: Sequence[LevelSummary]) -> list[tuple[LevelSummary, ...]]:
        """Return all proper subsets, smallest first, lexicographic by label within a size.

        Args:
            levels (Sequence[LevelSummary]): Levels sorted by label.

        Returns:
            list[tuple[LevelSummary, ...]]: Every subset of size `1..L-1`.

        Raises:
            ConfigurationError: If there are more than `max_levels` levels.
        """
        if len(levels) > self.max_levels:
            raise ConfigurationError(
                "predicate_search",
                f"exhaustive search supports at most {self.max_levels} levels, got {len(levels)}; use 'greedy'",
            )
        return [subset for size in range(1, len(levels)) for subset in itertools.combinations(levels, size)]


_PREDICATE_SEARCHES: dict[str, Callable[[], PredicateSearch]] = {
    "greedy": GreedyPrefixSearch,
    "exhaustive": ExhaustiveSubsetSearch,
}


def get_predicate_search(name: str) -> PredicateSearch:
    """Return the level-subset search registered under `name`.

    Args:
        name (str): `"greedy"` or `"exhaustive"`.

    Returns:
        PredicateSearch: A new search instance.

    Raises:
        ConfigurationError: If `name` is unknown.
    """
    try:
        return _PREDICATE_SEARCHES[name]()
    except KeyError:
        raise ConfigurationError("predicate_search", f"unknown search {name!r}") from None


class ThresholdCache:
    """Write-once store of threshold results keyed by cue and case subset.

    Safe to share between worker threads: a result computed twice for the same
    key is discarded in favour of the first stored one.
    """

    def __init__(self) -> None:
        """Initialize an empty cache."""
        self._results: dict[Hashable, CueThresholdResult] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        """Return the number of stored results."""
        with self._lock:
            return len(self._results)

    @staticmethod
    def key(cue: Cue, mask: np.ndarray) -> Hashable:
        """Build the cache key for `cue` restricted to `mask`."""
        return (cue.name, len(mask), np.packbits(mask).tobytes())

    def get_or_compute(self, key: Hashable, compute: Callable[[], CueThresholdResult]) -> CueThresholdResult:
        """Return the stored result for `key`, computing and storing it when absent.

        Args:
            key (Hashable): Cache key from `ThresholdCache.key`.
            compute (Callable[[], CueThresholdResult]): Produces the result.

        Returns:
            CueThresholdResult: The stored result.
        """
        with self._lock:
            cached = self._results.get(key)
        if cached is not None:
            return cached
        result = compute()
        with self._lock:
            return self._results.setdefault(key, result)


# ---------------------------------------------------------------------------
# Public interface -- Threshold search
# ---------------------------------------------------------------------------


def find_cue_threshold(
    cue: Cue,
    outcome: np.ndarray,
    config: FFTConfig,
    *,
    mask: np.ndarray | None = None,
    n_cues_available: int = 1,
    search: PredicateSearch | None = None,
) -> CueThresholdResult:
    """Find the threshold of `cue` maximizing `config.goal_chase` over the masked cases.

    Cases whose cue value is missing are left out of the search. Ties go to
    the smallest cutoff (numeric) or the fewest levels (categorical), then to
    the candidate generated first.

    Args:
        cue (Cue): Cue to search.
        outcome (np.ndarray): Boolean outcome for every case of the dataset.
        config (FFTConfig): Supplies the goal, costs and sensitivity weight.
        mask (np.ndarray | None): Cases to search over; `None` means all.
        n_cues_available (int): Number of cues in the dataset, for `pci`.
        search (PredicateSearch | None): Level-subset search for categorical
            cues; defaults to `config.predicate_search`.

    Returns:
        CueThresholdResult: The best threshold, or a skip reason for a
            degenerate cue.
    """
    selected = np.ones(len(outcome), dtype=bool) if mask is None else mask
    present = selected & ~cue.missing
    values = cue.values[present]
    labels = outcome[present]

    skip_reason = _degenerate_reason(values, n_selected=int(np.count_nonzero(selected)))
    if skip_reason is not None:
        logger.debug("Cue threshold search skipped", cue=cue.name, reason=skip_reason)
        return CueThresholdResult(cue=cue.name, kind=cue.kind, goal_chase=config.goal_chase, skip_reason=skip_reason)

    if cue.kind == "numeric":
        candidates = _numeric_candidates(values, labels)
    else:
        candidates = _categorical_candidates(cue, values, labels, search or get_predicate_search(config.predicate_search))

    n_cases = len(values)
    cost_cues_total = config.cue_cost(cue.name) * n_cases
    best_key: tuple[int, float] | None = None
    best_candidate, counts = candidates[0]
    for candidate, candidate_counts in candidates:
        value = statistic_from_counts(
            config.goal_chase,
            *candidate_counts,
            sens_w=config.sens_w,
            cost_outcomes=config.cost_outcomes,
            cost_cues_total=cost_cues_total,
        )
        key = score_key(goal_score(value, config.goal_chase))
        # Candidates arrive in tie-break order, so only a strictly better key replaces the incumbent.
        if best_key is None or key < best_key:
            best_key, best_candidate, counts = key, candidate, candidate_counts

    direction, cutoff = best_candidate
    threshold = Threshold(direction=direction, cutoff=cutoff)
    stats = compute_stats(
        *counts,
        sens_w=config.sens_w,
        cost_outcomes=config.cost_outcomes,
        cost_cues_total=cost_cues_total,
        cues_consulted=n_cases,
        n_cues_available=n_cues_available,
    )
    statistic = getattr(stats, config.goal_chase)
    logger.debug("Cue threshold found", cue=cue.name, threshold=str(threshold), statistic=statistic)
    return CueThresholdResult(
        cue=cue.name,
        kind=cue.kind,
        goal_chase=config.goal_chase,
        threshold=threshold,
        statistic=statistic,
        stats=stats,
        n_cases=n_cases,
    )


# ---------------------------------------------------------------------------
# Private helpers
# ---------------------------------------------------------------------------


def _degenerate_reason(values: np.ndarray, *, n_selected: int) -> str | None:
    """Return why `values` cannot be split, or `None` if they can."""
    if n_selected == 0:
        return "no cases to search"
    if len(values) == 0:
        return "all values are missing"
    if np.unique(values).size <= 1:
        return "single unique value"
    return None


def _numeric_candidates(
    values: np.ndarray,
    labels: np.ndarray,
) -> list[tuple[_Candidate, tuple[int, int, int, int]]]:
    """Enumerate numeric thresholds in ascending cutoff order, `>` before `<=`.

    Every distinct value except the largest is a cutoff, so every candidate
    splits the cases into two non-empty groups.

    Args:
        values (np.ndarray): Present cue values.
        labels (np.ndarray): Outcomes of the same cases.

    Returns:
        list[tuple[_Candidate, tuple[int, int, int, int]]]: Each threshold with
            its `(hi, fa, mi, cr)` counts.
    """
    unique_values, inverse = np.unique(values, return_inverse=True)
    positives_per_value = np.bincount(inverse, weights=labels.astype(np.float64), minlength=unique_values.size)
    cases_per_value = np.bincount(inverse, minlength=unique_values.size)
    # Cases at or below each value.
    positives_at_or_below = np.cumsum(positives_per_value).astype(np.int64)
    negatives_at_or_below = np.cumsum(cases_per_value).astype(np.int64) - positives_at_or_below

    total_positive = int(np.count_nonzero(labels))
    total_negative = len(labels) - total_positive

    candidates: list[tuple[_Candidate, tuple[int, int, int, int]]] = []
    for index in range(unique_values.size - 1):
        cutoff = float(unique_values[index])
        pos_low = int(positives_at_or_below[index])
        neg_low = int(negatives_at_or_below[index])
        for direction in _NUMERIC_DIRECTIONS:
            if direction == ">":
                hi, fa = total_positive - pos_low, total_negative - neg_low
            else:
                hi, fa = pos_low, neg_low
            counts = (hi, fa, total_positive - hi, total_negative - fa)
            candidates.append(((direction, cutoff), counts))
    return candidates


def _categorical_candidates(
    cue: Cue,
    codes: np.ndarray,
    labels: np.ndarray,
    search: PredicateSearch,
) -> list[tuple[_Candidate, tuple[int, int, int, int]]]:
    """Enumerate `in` thresholds from the level subsets offered by `search`.

    Candidates are ordered by subset size, then by generation order, so the
    fewest-levels tie-break holds for any search strategy.

    Args:
        cue (Cue): The categorical cue, for its level labels.
        codes (np.ndarray): Present ordinal codes.
        labels (np.ndarray): Outcomes of the same cases.
        search (PredicateSearch): Level-subset strategy.

    Returns:
        list[tuple[_Candidate, tuple[int, int, int, int]]]: Each threshold with
            its `(hi, fa, mi, cr)` counts.
    """
    mapping = cue.category_mapping or {}
    present_codes, inverse = np.unique(codes, return_inverse=True)
    positives = np.bincount(inverse, weights=labels.astype(np.float64), minlength=present_codes.size)
    cases = np.bincount(inverse, minlength=present_codes.size)
    levels = sorted(
        (
            LevelSummary(code=int(code), label=mapping[int(code)], positives=int(pos), cases=int(count))
            for code, pos, count in zip(present_codes, positives, cases, strict=True)
        ),
        key=lambda level: level.label,
    )

    total_positive = int(np.count_nonzero(labels))
    total_negative = len(labels) - total_positive

    subsets = sorted(search.candidate_subsets(levels), key=len)
    candidates: list[tuple[_Candidate, tuple[int, int, int, int]]] = []
    for subset in subsets:
        hi = sum(level.positives for level in subset)
        fa = sum(level.cases for level in subset) - hi
        counts = (hi, fa, total_positive - hi, total_negative - fa)
        candidates.append((("in", frozenset(level.label for level in subset)), counts))
    return candidates
