"""Cue ranking: run the threshold search for every cue and order cues by their best statistic."""

from __future__ import annotations

import warnings
from collections.abc import Collection
from typing import NamedTuple

import numpy as np
from joblib import Parallel, delayed
from loguru import logger

from fftkit.config import FFTConfig
from fftkit.dataset import Cue, Dataset, SkippedCue
from fftkit.exceptions import DegenerateCueWarning
from fftkit.trees.models import CueThresholdResult
from fftkit.trees.statistics import goal_score, score_key
from fftkit.trees.thresholds import ThresholdCache, find_cue_threshold, get_predicate_search


class CueRanking(NamedTuple):
    """Usable cues ordered best first, plus the cues that could not be searched.

    Attributes:
        ranked (list[CueThresholdResult]): Usable cues, best statistic first.
        skipped (list[SkippedCue]): Cues skipped, with reasons, in input order.
    """

    ranked: list[CueThresholdResult]
    skipped: list[SkippedCue]

    @property
    def best(self) -> CueThresholdResult | None:
        """The top-ranked cue, or `None` when no cue is usable."""
        return self.ranked[0] if self.ranked else None


def rank_cues(
    dataset: Dataset,
    config: FFTConfig,
    *,
    mask: np.ndarray | None = None,
    exclude: Collection[str] = (),
    cache: ThresholdCache | None = None,
    warn: bool = False,
) -> CueRanking:
    """Rank cues by the best `goal_chase` statistic each achieves on the masked cases.

    Searches run through joblib with `config.n_jobs` threads. Results are
    collected in input order and sorted stably, so ties keep input order and
    the ranking does not depend on the worker count.

    Args:
        dataset (Dataset): Labeled cases.
        config (FFTConfig): Construction configuration.
        mask (np.ndarray | None): Cases to rank on; `None` means all.
        exclude (Collection[str]): Cue names to leave out, e.g. cues already
            used on the current branch.
        cache (ThresholdCache | None): Shared result cache.
        warn (bool): Emit a `DegenerateCueWarning` for every skipped cue.

    Returns:
        CueRanking: Ranked usable cues and skipped cues.
    """
    outcome = dataset.labels
    selected = np.ones(len(dataset), dtype=bool) if mask is None else mask
    candidates = [cue for cue in dataset.cues if cue.name not in exclude]
    search = get_predicate_search(config.predicate_search)
    n_cues_available = len(dataset.cues)

    def _search(cue: Cue) -> CueThresholdResult:
        def _compute() -> CueThresholdResult:
            return find_cue_threshold(
                cue, outcome, config, mask=selected, n_cues_available=n_cues_available, search=search
            )

        if cache is None:
            return _compute()
        return cache.get_or_compute(ThresholdCache.key(cue, selected), _compute)

    results: list[CueThresholdResult] = Parallel(n_jobs=config.n_jobs, prefer="threads")(
        delayed(_search)(cue) for cue in candidates
    )

    usable = [result for result in results if result.usable]
    skipped = [SkippedCue(name=result.cue, reason=result.skip_reason or "") for result in results if not result.usable]
    ranked = sorted(usable, key=lambda result: score_key(goal_score(result.statistic, config.goal_chase)))

    for skipped_cue in skipped:
        if warn:
            warnings.warn(f"Skipping cue '{skipped_cue.name}': {skipped_cue.reason}", DegenerateCueWarning, stacklevel=2)
            logger.warning("Cue skipped", cue=skipped_cue.name, reason=skipped_cue.reason)
    logger.debug(
        "Cues ranked",
        cases=int(np.count_nonzero(selected)),
        order=[result.cue for result in ranked],
        skipped=[cue.name for cue in skipped],
    )
    return CueRanking(ranked=ranked, skipped=skipped)
