"""Tree evaluation and ranking under the selection goal."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Literal, TypeAlias

from joblib import Parallel, delayed
from loguru import logger

from fftkit.config import FFTConfig
from fftkit.dataset import Dataset
from fftkit.trees.models import ConfusionStats, EvaluatedTree, Tree
from fftkit.trees.statistics import evaluate_tree, goal_score, score_key

RankBy: TypeAlias = Literal["train", "test"]


def select_trees(
    trees: Sequence[Tree],
    train: Dataset,
    config: FFTConfig,
    *,
    test: Dataset | None = None,
    rank_by: RankBy = "train",
) -> list[EvaluatedTree]:
    """Evaluate every tree and rank the trees by `config.goal`.

    Ties on the goal go to fewer levels, then fewer distinct cues, then the
    earlier position in `trees`.

    Args:
        trees (Sequence[Tree]): Candidate trees in enumeration order.
        train (Dataset): Construction cases.
        config (FFTConfig): Supplies the goal, costs and worker count.
        test (Dataset | None): Held-out cases, evaluated separately.
        rank_by (RankBy): Which statistics drive the ranking.

    Returns:
        list[EvaluatedTree]: Every tree, best first, ranked from 1.

    Raises:
        ValueError: If `trees` is empty, or `rank_by="test"` without test data.
    """
    if not trees:
        raise ValueError("No trees to select from")
    if rank_by == "test" and test is None:
        raise ValueError("rank_by='test' requires test data")

    parallel = Parallel(n_jobs=config.n_jobs, prefer="threads")
    train_stats: list[ConfusionStats] = parallel(delayed(evaluate_tree)(tree, train, config) for tree in trees)
    test_stats: list[ConfusionStats | None] = (
        parallel(delayed(evaluate_tree)(tree, test, config) for tree in trees) if test is not None else [None] * len(trees)
    )
    ranking_stats = test_stats if rank_by == "test" else train_stats

    def _sort_key(index: int) -> tuple[tuple[int, float], int, int, int]:
        stats = ranking_stats[index]
        value = getattr(stats, config.goal) if stats is not None else None
        tree = trees[index]
        return (score_key(goal_score(value, config.goal)), tree.n_levels, len(tree.cues), index)

    order = sorted(range(len(trees)), key=_sort_key)
    evaluated = [
        EvaluatedTree(rank=rank, fan_index=index, tree=trees[index], train=train_stats[index], test=test_stats[index])
        for rank, index in enumerate(order, start=1)
    ]
    best = evaluated[0]
    logger.debug(
        "Trees ranked",
        goal=config.goal,
        trees=len(evaluated),
        best_fan_index=best.fan_index,
        best_value=getattr(best.train if rank_by == "train" else best.test, config.goal),
    )
    return evaluated
