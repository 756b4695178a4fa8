"""Population-fraction pruning of trailing tree levels."""

from __future__ import annotations

import math

import numpy as np
from loguru import logger

from fftkit.dataset import Dataset
from fftkit.trees.models import Tree
from fftkit.trees.statistics import apply_tree, majority_decision


def prune_tree(tree: Tree, dataset: Dataset, stopping_par: float) -> Tree:
    """Drop trailing levels reached by fewer than `stopping_par * N` cases.

    Levels are removed from the end while the last remaining level is reached
    by too few cases and more than one level is left. The new last node
    becomes terminal: its exit branch keeps its decision, while its formerly
    deferred branch and its missing values take the majority outcome of their
    cases. Ties and empty branches keep the standard decisions: matching
    cases positive, non-matching and missing cases negative.

    Args:
        tree (Tree): Tree to prune.
        dataset (Dataset): Construction cases.
        stopping_par (float): Minimum fraction of cases the last level must reach.

    Returns:
        Tree: The pruned tree, or `tree` itself when no level is removed.

    Examples:
        >>> prune_tree(tree, dataset, 0.0) is tree  # doctest: +SKIP
        True
    """
    floor = stopping_par * len(dataset)
    levels = apply_tree(tree, dataset).levels
    reach = [int(np.count_nonzero(levels >= level)) for level in range(1, tree.n_levels + 1)]

    keep = tree.n_levels
    # A reach equal to p * N up to float error satisfies the floor.
    while keep > 1 and reach[keep - 1] < floor and not math.isclose(reach[keep - 1], floor):
        keep -= 1
    if keep == tree.n_levels:
        return tree

    last = tree.nodes[keep - 1]
    cue = dataset.cue(last.cue)
    reached = levels >= keep
    matched = reached & last.threshold.matches(cue)
    missing = reached & cue.missing
    unmatched = reached & ~matched & ~missing
    outcome = dataset.labels

    true_decision = last.true_decision
    false_decision = last.false_decision
    if last.exit == "positive":
        false_decision = majority_decision(outcome[unmatched], default=False)
    elif last.exit == "negative":
        true_decision = majority_decision(outcome[matched], default=True)

    terminal = last.as_terminal(
        true_decision=true_decision,
        false_decision=false_decision,
        missing_decision=majority_decision(outcome[missing], default=False),
    )
    logger.debug("Tree pruned", levels_before=tree.n_levels, levels_after=keep, reach=reach[keep - 1], floor=floor)
    return Tree(nodes=(*tree.nodes[: keep - 1], terminal), algorithm=tree.algorithm)
