"""Confusion statistics: counts, accuracy family, d-prime and cost for any set of decisions."""

from __future__ import annotations

import math
from typing import NamedTuple

import numpy as np
from scipy.stats import norm

from fftkit.config import CostOutcomes, FFTConfig, Goal
from fftkit.dataset import Dataset
from fftkit.trees.models import ConfusionStats, Tree

_SCORE_DECIMALS: int = 10  # Rounding applied before comparing statistics, so equal values tie exactly.


class TreeApplication(NamedTuple):
    """Outcome of running every case through a tree.

    Attributes:
        decisions (np.ndarray): Boolean decision per case; `True` is positive.
        levels (np.ndarray): 1-based level of the node that decided each case.
    """

    decisions: np.ndarray
    levels: np.ndarray

    def reach_counts(self, n_levels: int) -> list[int]:
        """Return how many cases reach each level.

        Args:
            n_levels (int): Number of levels in the applied tree.

        Returns:
            list[int]: Element `k - 1` is the number of cases reaching level `k`.
        """
        return [int(np.count_nonzero(self.levels >= level)) for level in range(1, n_levels + 1)]


# ---------------------------------------------------------------------------
# Public interface -- Statistics from counts
# ---------------------------------------------------------------------------


def compute_stats(
    hi: int,
    fa: int,
    mi: int,
    cr: int,
    *,
    sens_w: float = 0.5,
    cost_outcomes: CostOutcomes | None = None,
    cost_cues_total: float = 0.0,
    cues_consulted: int | None = None,
    n_cues_available: int | None = None,
) -> ConfusionStats:
    """Compute every statistic from the four confusion counts and the cost model.

    Args:
        hi (int): Hits.
        fa (int): False alarms.
        mi (int): Misses.
        cr (int): Correct rejections.
        sens_w (float): Sensitivity weight for weighted accuracy.
        cost_outcomes (CostOutcomes | None): Per-outcome costs; zero when `None`.
        cost_cues_total (float): Summed cue costs over every consulted node.
        cues_consulted (int | None): Total node consultations over all cases,
            used for mean cues used. `None` leaves `mcu` and `pci` undefined.
        n_cues_available (int | None): Number of cues in the data, used for `pci`.

    Returns:
        ConfusionStats: The full statistic set.

    Examples:
        >>> stats = compute_stats(6, 4, 4, 6)
        >>> round(stats.bacc, 2)
        0.6
    """
    n = hi + fa + mi + cr
    outcome_costs = cost_outcomes or CostOutcomes()
    cost_outcomes_total = _outcome_cost(hi, fa, mi, cr, outcome_costs)
    cost = cost_outcomes_total + cost_cues_total

    mcu = _ratio(cues_consulted, n) if cues_consulted is not None else None
    pci = 1.0 - mcu / n_cues_available if mcu is not None and n_cues_available else None

    return ConfusionStats(
        n=n,
        hi=hi,
        fa=fa,
        mi=mi,
        cr=cr,
        sens=_ratio(hi, hi + mi),
        spec=_ratio(cr, cr + fa),
        far=_ratio(fa, fa + cr),
        ppv=_ratio(hi, hi + fa),
        npv=_ratio(cr, cr + mi),
        acc=_ratio(hi + cr, n),
        bacc=_balanced_accuracy(hi, fa, mi, cr),
        wacc=_weighted_accuracy(hi, fa, mi, cr, sens_w),
        dprime=_dprime(hi, fa, mi, cr),
        cost_outcomes_total=cost_outcomes_total,
        cost_cues_total=cost_cues_total,
        cost=cost,
        cost_per_case=_ratio(cost, n),
        mcu=mcu,
        pci=pci,
    )


def statistic_from_counts(
    goal: Goal,
    hi: int,
    fa: int,
    mi: int,
    cr: int,
    *,
    sens_w: float = 0.5,
    cost_outcomes: CostOutcomes | None = None,
    cost_cues_total: float = 0.0,
) -> float | None:
    """Compute a single goal statistic from the four counts.

    Uses the same arithmetic as `compute_stats`, so both always agree exactly.
    The threshold search calls this in its inner loop.

    Args:
        goal (Goal): Statistic to compute.
        hi (int): Hits.
        fa (int): False alarms.
        mi (int): Misses.
        cr (int): Correct rejections.
        sens_w (float): Sensitivity weight for weighted accuracy.
        cost_outcomes (CostOutcomes | None): Per-outcome costs.
        cost_cues_total (float): Summed cue costs.

    Returns:
        float | None: The statistic, or `None` when undefined.

    Raises:
        ValueError: If `goal` is unknown.
    """
    if goal == "bacc":
        return _balanced_accuracy(hi, fa, mi, cr)
    if goal == "wacc":
        return _weighted_accuracy(hi, fa, mi, cr, sens_w)
    if goal == "acc":
        return _ratio(hi + cr, hi + fa + mi + cr)
    if goal == "dprime":
        return _dprime(hi, fa, mi, cr)
    if goal == "cost":
        return _outcome_cost(hi, fa, mi, cr, cost_outcomes or CostOutcomes()) + cost_cues_total
    raise ValueError(f"Unknown goal: {goal!r}")


def goal_score(value: float | None, goal: Goal) -> float | None:
    """Orient a statistic so that larger is always better.

    Args:
        value (float | None): Raw statistic value.
        goal (Goal): Which statistic `value` is.

    Returns:
        float | None: `-value` for cost, `value` otherwise; `None` stays `None`.
    """
    if value is None:
        return None
    return -value if goal == "cost" else value


def score_key(score: float | None) -> tuple[int, float]:
    """Ascending sort key putting the best score first and undefined scores last.

    Args:
        score (float | None): An oriented score from `goal_score`.

    Returns:
        tuple[int, float]: Key suitable for `sorted`.
    """
    if score is None or math.isnan(score):
        return (1, 0.0)
    return (0, -round(score, _SCORE_DECIMALS))


# ---------------------------------------------------------------------------
# Public interface -- Applying and evaluating trees
# ---------------------------------------------------------------------------


def confusion_counts(decisions: np.ndarray, outcome: np.ndarray) -> tuple[int, int, int, int]:
    """Count hits, false alarms, misses and correct rejections.

    Args:
        decisions (np.ndarray): Boolean decisions; `True` is positive.
        outcome (np.ndarray): Boolean true outcomes.

    Returns:
        tuple[int, int, int, int]: `(hi, fa, mi, cr)`.
    """
    hi = int(np.count_nonzero(decisions & outcome))
    fa = int(np.count_nonzero(decisions & ~outcome))
    mi = int(np.count_nonzero(~decisions & outcome))
    cr = int(np.count_nonzero(~decisions & ~outcome))
    return hi, fa, mi, cr


def majority_decision(outcome: np.ndarray, default: bool) -> bool:
    """Return the majority outcome, or `default` on a tie or an empty group.

    Args:
        outcome (np.ndarray): Boolean outcomes of one group of cases.
        default (bool): Decision used when positives and negatives are equal.

    Returns:
        bool: `True` when positives strictly outnumber negatives.
    """
    positives = int(np.count_nonzero(outcome))
    negatives = len(outcome) - positives
    if positives == negatives:
        return default
    return positives > negatives


def apply_tree(tree: Tree, dataset: Dataset) -> TreeApplication:
    """Run every case of `dataset` through `tree`.

    Args:
        tree (Tree): The tree to apply.
        dataset (Dataset): Cases carrying every cue the tree uses.

    Returns:
        TreeApplication: Decision and deciding level for every case.
    """
    n_cases = len(dataset)
    undecided = np.ones(n_cases, dtype=bool)
    decisions = np.zeros(n_cases, dtype=bool)
    levels = np.zeros(n_cases, dtype=np.int64)

    for level, node in enumerate(tree.nodes, start=1):
        cue = dataset.cue(node.cue)
        missing = cue.missing
        matched = node.threshold.matches(cue)
        unmatched = ~matched & ~missing

        if node.exit == "positive":
            exiting = undecided & matched
            decisions[exiting] = node.true_decision
        elif node.exit == "negative":
            exiting = undecided & unmatched
            decisions[exiting] = node.false_decision
        else:
            exiting = undecided.copy()
            missing_decision = node.false_decision if node.missing_decision is None else node.missing_decision
            decisions[exiting & matched] = node.true_decision
            decisions[exiting & unmatched] = node.false_decision
            decisions[exiting & missing] = missing_decision

        levels[exiting] = level
        undecided &= ~exiting

    return TreeApplication(decisions=decisions, levels=levels)


def evaluate_tree(tree: Tree, dataset: Dataset, config: FFTConfig) -> ConfusionStats:
    """Compute the full statistic set of `tree` on `dataset`.

    A case decided at level `k` pays the usage cost of the cues at levels `1..k`.

    Args:
        tree (Tree): The tree to evaluate.
        dataset (Dataset): Labeled cases.
        config (FFTConfig): Supplies costs and the sensitivity weight.

    Returns:
        ConfusionStats: Statistics of the tree on the dataset.
    """
    application = apply_tree(tree, dataset)
    hi, fa, mi, cr = confusion_counts(application.decisions, dataset.labels)

    level_costs = np.cumsum([config.cue_cost(node.cue) for node in tree.nodes])
    cost_cues_total = float(level_costs[application.levels - 1].sum()) if len(dataset) else 0.0

    return compute_stats(
        hi,
        fa,
        mi,
        cr,
        sens_w=config.sens_w,
        cost_outcomes=config.cost_outcomes,
        cost_cues_total=cost_cues_total,
        cues_consulted=int(application.levels.sum()),
        n_cues_available=len(dataset.cues),
    )


# ---------------------------------------------------------------------------
# Private helpers
# ---------------------------------------------------------------------------


def _ratio(numerator: float, denominator: float) -> float | None:
    """Divide, returning `None` for a zero denominator."""
    if denominator == 0:
        return None
    return numerator / denominator


def _balanced_accuracy(hi: int, fa: int, mi: int, cr: int) -> float | None:
    """Mean of sensitivity and specificity; `None` if either is undefined."""
    sens = _ratio(hi, hi + mi)
    spec = _ratio(cr, cr + fa)
    if sens is None or spec is None:
        return None
    return (sens + spec) / 2


def _weighted_accuracy(hi: int, fa: int, mi: int, cr: int, sens_w: float) -> float | None:
    """`sens_w * sens + (1 - sens_w) * spec`; `None` if either is undefined."""
    sens = _ratio(hi, hi + mi)
    spec = _ratio(cr, cr + fa)
    if sens is None or spec is None:
        return None
    return sens_w * sens + (1 - sens_w) * spec


def _dprime(hi: int, fa: int, mi: int, cr: int) -> float | None:
    """`z(hit rate) - z(false-alarm rate)`.

    Rates of exactly 0 or 1 are clamped to `1 / (2n)` and `1 - 1 / (2n)`,
    where `n` is the number of positives (hit rate) or negatives (false-alarm rate).
    """
    n_positive = hi + mi
    n_negative = fa + cr
    if n_positive == 0 or n_negative == 0:
        return None
    hit_rate = _clamp_rate(hi / n_positive, n_positive)
    fa_rate = _clamp_rate(fa / n_negative, n_negative)
    return float(norm.ppf(hit_rate) - norm.ppf(fa_rate))


def _clamp_rate(rate: float, n: int) -> float:
    """Keep a rate away from 0 and 1 so its z-score stays finite."""
    bound = 1 / (2 * n)
    return min(max(rate, bound), 1 - bound)


def _outcome_cost(hi: int, fa: int, mi: int, cr: int, costs: CostOutcomes) -> float:
    """Sum of per-outcome costs over all cases."""
    return hi * costs.hit + fa * costs.false_alarm + mi * costs.miss + cr * costs.correct_rejection
