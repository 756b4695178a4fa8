"""Single-tree strategies: grow one tree level by level with an exit policy.

At every level the best remaining cue is ranked on the cases not yet
classified, an `ExitPolicy` picks the exit direction, and growth stops when
another level is not allowed or not possible.
"""

from __future__ import annotations

import math
from typing import Any, NamedTuple, Protocol

import numpy as np
from loguru import logger

from fftkit.config import FFTConfig
from fftkit.dataset import Dataset
from fftkit.exceptions import ConstructionError
from fftkit.trees.fan import exit_mask, inner_node, terminal_node
from fftkit.trees.models import CueThresholdResult, Node, NodeExit, Tree
from fftkit.trees.ranking import CueRanking, rank_cues
from fftkit.trees.thresholds import ThresholdCache

# ---------------------------------------------------------------------------
# Exit policies
# ---------------------------------------------------------------------------


class ExitCounts(NamedTuple):
    """Outcome counts on both branches of a candidate node.

    Only cases reaching the node with a present cue value are counted.

    Attributes:
        matched_positive (int): Positive cases matching the threshold.
        matched (int): Cases matching the threshold.
        unmatched_negative (int): Negative cases not matching the threshold.
        unmatched (int): Cases not matching the threshold.
    """

    matched_positive: int
    matched: int
    unmatched_negative: int
    unmatched: int

    @property
    def ppv(self) -> float | None:
        """Share of positives among matching cases."""
        return self.matched_positive / self.matched if self.matched else None

    @property
    def npv(self) -> float | None:
        """Share of negatives among non-matching cases."""
        return self.unmatched_negative / self.unmatched if self.unmatched else None


class ExitPolicy(Protocol):
    """Chooses the exit direction of each non-terminal node."""

    name: str

    def choose_exit(self, level: int, counts: ExitCounts) -> NodeExit:
        """Return the exit direction for the node at `level`.

        Args:
            level (int): 1-based level of the node.
            counts (ExitCounts): Branch counts of the node's threshold.

        Returns:
            NodeExit: `"positive"` or `"negative"`.
        """
        ...


class MaxExitPolicy:
    """Exit on the purer branch: matching cases' ppv against non-matching cases' npv.

    Ties and undefined values exit positive.
    """

    name = "max"

    def choose_exit(self, level: int, counts: ExitCounts) -> NodeExit:  # noqa: ARG002
        """Return `"negative"` only when npv is strictly greater than ppv."""
        ppv, npv = counts.ppv, counts.npv
        if ppv is not None and npv is not None and npv > ppv:
            return "negative"
        return "positive"


class ZigzagExitPolicy:
    """Alternate exits: positive at odd levels, negative at even levels."""

    name = "zigzag"

    def choose_exit(self, level: int, counts: ExitCounts) -> NodeExit:  # noqa: ARG002
        """Return `"positive"` for odd levels and `"negative"` for even levels."""
        return "positive" if level % 2 == 1 else "negative"


# ---------------------------------------------------------------------------
# Public interface -- Builders
# ---------------------------------------------------------------------------


def build_single_tree(
    dataset: Dataset,
    config: FFTConfig,
    policy: ExitPolicy,
    *,
    ranking: CueRanking | None = None,
    cache: ThresholdCache | None = None,
) -> Tree:
    """Grow one tree, re-ranking cues on the unclassified cases at every level.

    The current node becomes terminal when the tree has `max_levels` levels,
    when its exit would leave no cases or, under the population-fraction
    rule, fewer than `stopping_par * N` cases, or when no usable cue remains
    for the undecided cases.

    Args:
        dataset (Dataset): Construction cases.
        config (FFTConfig): Construction configuration.
        policy (ExitPolicy): Chooses each node's exit direction.
        ranking (CueRanking | None): Ranking over every case, reused when
            already computed.
        cache (ThresholdCache | None): Shared threshold cache.

    Returns:
        Tree: The grown tree, labeled with `policy.name`.

    Raises:
        ConstructionError: If no cue is usable.
    """
    cache = cache if cache is not None else ThresholdCache()
    ranking = ranking if ranking is not None else rank_cues(dataset, config, cache=cache, warn=True)
    if ranking.best is None:
        raise ConstructionError([*dataset.skipped_cues, *ranking.skipped])

    floor = config.stopping_par * len(dataset) if config.stopping_rule == "population_fraction" else 0.0
    remaining = np.ones(len(dataset), dtype=bool)
    nodes: list[Node] = []
    used: set[str] = set()
    current: CueThresholdResult = ranking.best

    while True:
        level = len(nodes) + 1
        node_exit = policy.choose_exit(level, _exit_counts(current, remaining, dataset))
        after = remaining & ~exit_mask(node_exit, current, dataset)
        n_after = int(np.count_nonzero(after))

        next_best = None
        if level < config.max_levels and n_after > 0 and (n_after >= floor or math.isclose(n_after, floor)):
            next_best = rank_cues(dataset, config, mask=after, exclude=used | {current.cue}, cache=cache).best

        if next_best is None:
            nodes.append(terminal_node(current, remaining, dataset))
            break
        nodes.append(inner_node(current, node_exit))
        used.add(current.cue)
        remaining = after
        current = next_best

    tree = Tree(nodes=tuple(nodes), algorithm=policy.name)
    logger.debug("Single tree grown", algorithm=policy.name, tree=str(tree))
    return tree


def build_max_tree(dataset: Dataset, config: FFTConfig, **kwargs: Any) -> Tree:
    """Grow one tree whose nodes exit on their purer branch. See `build_single_tree`."""
    return build_single_tree(dataset, config, MaxExitPolicy(), **kwargs)


def build_zigzag_tree(dataset: Dataset, config: FFTConfig, **kwargs: Any) -> Tree:
    """Grow one tree whose exits alternate positive and negative. See `build_single_tree`."""
    return build_single_tree(dataset, config, ZigzagExitPolicy(), **kwargs)


# ---------------------------------------------------------------------------
# Private helpers
# ---------------------------------------------------------------------------


def _exit_counts(result: CueThresholdResult, remaining: np.ndarray, dataset: Dataset) -> ExitCounts:
    """Count outcomes on both branches of `result` among the `remaining` cases."""
    cue = dataset.cue(result.cue)
    matched = remaining & result.threshold.matches(cue)
    unmatched = remaining & ~matched & ~cue.missing
    outcome = dataset.labels
    return ExitCounts(
        matched_positive=int(np.count_nonzero(outcome[matched])),
        matched=int(np.count_nonzero(matched)),
        unmatched_negative=int(np.count_nonzero(~outcome[unmatched])),
        unmatched=int(np.count_nonzero(unmatched)),
    )
