"""Fan generation: enumerate candidate trees over depths and exit patterns.

Two strategies are supported. The global fan fixes cue order and thresholds
from a single ranking over every case. The conditional fan re-ranks the
remaining cues on the cases each path has not yet classified, so every exit
pattern can end up with a different cue sequence.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass

import numpy as np
from loguru import logger

from fftkit.config import FFTConfig
from fftkit.dataset import Dataset
from fftkit.exceptions import ConstructionError
from fftkit.logging import BUILD_LEVEL
from fftkit.trees.models import EXIT_DIRECTIONS, CueThresholdResult, ExitDirection, Node, NodeExit, Tree
from fftkit.trees.ranking import CueRanking, rank_cues
from fftkit.trees.statistics import majority_decision
from fftkit.trees.thresholds import ThresholdCache

# ---------------------------------------------------------------------------
# Public interface -- Node helpers
# ---------------------------------------------------------------------------


def exit_mask(node_exit: ExitDirection, result: CueThresholdResult, dataset: Dataset) -> np.ndarray:
    """Return the cases that leave the tree at a node with this cue and exit.

    Args:
        node_exit (ExitDirection): Exit of the node.
        result (CueThresholdResult): Cue and threshold of the node.
        dataset (Dataset): Cases to test.

    Returns:
        np.ndarray: Boolean mask of exiting cases. A terminal node exits every case.
    """
    if node_exit == "terminal":
        return np.ones(len(dataset), dtype=bool)
    cue = dataset.cue(result.cue)
    matched = result.threshold.matches(cue)
    if node_exit == "positive":
        return matched
    return ~matched & ~cue.missing


def inner_node(result: CueThresholdResult, node_exit: NodeExit) -> Node:
    """Build a non-terminal node from a threshold search result."""
    return Node(cue=result.cue, threshold=result.threshold, exit=node_exit)


def terminal_node(result: CueThresholdResult, reached: np.ndarray, dataset: Dataset) -> Node:
    """Build the terminal node for the cases in `reached`.

    Matching cases are classified positive and non-matching cases negative.
    Cases with a missing value take the majority outcome of every case
    reaching the node, negative on a tie.

    Args:
        result (CueThresholdResult): Cue and threshold of the node.
        reached (np.ndarray): Cases reaching the node.
        dataset (Dataset): Construction cases.

    Returns:
        Node: A terminal node.
    """
    return Node(
        cue=result.cue,
        threshold=result.threshold,
        exit="terminal",
        missing_decision=majority_decision(dataset.labels[reached], default=False),
    )


# ---------------------------------------------------------------------------
# Public interface -- Fan generation
# ---------------------------------------------------------------------------


def generate_fan(
    dataset: Dataset,
    config: FFTConfig,
    *,
    ranking: CueRanking | None = None,
    cache: ThresholdCache | None = None,
) -> list[Tree]:
    """Enumerate every candidate tree for `config.algorithm`.

    Trees are ordered by depth, then by exit pattern in
    `itertools.product(("positive", "negative"))` order.

    Args:
        dataset (Dataset): Construction cases.
        config (FFTConfig): Construction configuration; `algorithm` must be
            `"global"` or `"conditional"`.
        ranking (CueRanking | None): Ranking over every case, reused when
            already computed.
        cache (ThresholdCache | None): Shared threshold cache.

    Returns:
        list[Tree]: The fan, never empty.

    Raises:
        ConstructionError: If no cue is usable.
        ValueError: If `config.algorithm` does not enumerate a fan.
    """
    cache = cache if cache is not None else ThresholdCache()
    ranking = ranking if ranking is not None else rank_cues(dataset, config, cache=cache, warn=True)
    if not ranking.ranked:
        raise ConstructionError([*dataset.skipped_cues, *ranking.skipped])

    if config.algorithm == "global":
        trees = _global_fan(dataset, config, ranking)
    elif config.algorithm == "conditional":
        trees = _conditional_fan(dataset, config, ranking, cache)
    else:
        raise ValueError(f"Algorithm {config.algorithm!r} builds a single tree, not a fan")

    logger.log(BUILD_LEVEL, "Fan generated", algorithm=config.algorithm, trees=len(trees))
    return trees


# ---------------------------------------------------------------------------
# Private helpers
# ---------------------------------------------------------------------------


@dataclass(frozen=True, eq=False)
class _BranchState:
    """A partially built conditional tree.

    Attributes:
        remaining (np.ndarray): Cases not yet classified on this path.
        nodes (tuple[Node, ...]): Non-terminal nodes chosen so far.
        used (frozenset[str]): Cues already consulted on this path.
    """

    remaining: np.ndarray
    nodes: tuple[Node, ...] = ()
    used: frozenset[str] = frozenset()

    @property
    def level(self) -> int:
        """Level of the next node to add."""
        return len(self.nodes) + 1

    def extend(self, node: Node, exiting: np.ndarray) -> _BranchState:
        """Return the state after adding `node`, whose exit branch removes `exiting`."""
        return _BranchState(
            remaining=self.remaining & ~exiting,
            nodes=(*self.nodes, node),
            used=self.used | {node.cue},
        )


def _global_fan(dataset: Dataset, config: FFTConfig, ranking: CueRanking) -> list[Tree]:
    """Enumerate trees over the top-ranked cues with fixed thresholds."""
    top = ranking.ranked[: config.max_levels]
    exit_masks = {
        (level, node_exit): exit_mask(node_exit, result, dataset)
        for level, result in enumerate(top)
        for node_exit in EXIT_DIRECTIONS
    }

    trees: list[Tree] = []
    for depth in range(1, len(top) + 1):
        for pattern in itertools.product(EXIT_DIRECTIONS, repeat=depth - 1):
            reached = np.ones(len(dataset), dtype=bool)
            for level, node_exit in enumerate(pattern):
                reached &= ~exit_masks[level, node_exit]
            nodes = [inner_node(result, node_exit) for result, node_exit in zip(top, pattern, strict=False)]
            nodes.append(terminal_node(top[depth - 1], reached, dataset))
            trees.append(Tree(nodes=tuple(nodes), algorithm="global"))
    return trees


def _conditional_fan(
    dataset: Dataset,
    config: FFTConfig,
    ranking: CueRanking,
    cache: ThresholdCache,
) -> list[Tree]:
    """Enumerate trees whose every level is re-ranked on the cases still undecided."""
    trees: list[Tree] = []

    def _grow(state: _BranchState, best: CueThresholdResult) -> None:
        trees.append(Tree(nodes=(*state.nodes, terminal_node(best, state.remaining, dataset)), algorithm="conditional"))
        if state.level >= config.max_levels:
            return
        for node_exit in EXIT_DIRECTIONS:
            child = state.extend(inner_node(best, node_exit), exit_mask(node_exit, best, dataset))
            if not child.remaining.any():
                logger.debug("Branch ended", level=child.level, exits=_pattern(child.nodes), reason="no cases remain")
                continue
            next_best = rank_cues(dataset, config, mask=child.remaining, exclude=child.used, cache=cache).best
            if next_best is None:
                logger.debug("Branch ended", level=child.level, exits=_pattern(child.nodes), reason="no usable cue")
                continue
            _grow(child, next_best)

    _grow(_BranchState(remaining=np.ones(len(dataset), dtype=bool)), ranking.ranked[0])
    return sorted(trees, key=lambda tree: (tree.n_levels, [EXIT_DIRECTIONS.index(e) for e in tree.exits[:-1]]))


def _pattern(nodes: tuple[Node, ...]) -> list[str]:
    """Exit directions of `nodes`, for log context."""
    return [node.exit for node in nodes]
