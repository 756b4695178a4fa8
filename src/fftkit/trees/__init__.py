"""Tree construction sub-package: models, threshold search, fans, selection and fitting."""

from __future__ import annotations

from fftkit.trees.builders import (
    ExitCounts,
    ExitPolicy,
    MaxExitPolicy,
    ZigzagExitPolicy,
    build_max_tree,
    build_single_tree,
    build_zigzag_tree,
)
from fftkit.trees.fan import generate_fan
from fftkit.trees.fitting import build_fft, cue_table, performance_table, predict, tree_definitions
from fftkit.trees.models import (
    ConfusionStats,
    CueThresholdResult,
    Direction,
    EvaluatedTree,
    ExitDirection,
    FFTResult,
    Node,
    Threshold,
    Tree,
)
from fftkit.trees.pruning import prune_tree
from fftkit.trees.ranking import CueRanking, rank_cues
from fftkit.trees.selection import select_trees
from fftkit.trees.statistics import TreeApplication, apply_tree, compute_stats, evaluate_tree
from fftkit.trees.thresholds import (
    ExhaustiveSubsetSearch,
    GreedyPrefixSearch,
    PredicateSearch,
    ThresholdCache,
    find_cue_threshold,
)

__all__ = [
    "ConfusionStats",
    "CueRanking",
    "CueThresholdResult",
    "Direction",
    "EvaluatedTree",
    "ExhaustiveSubsetSearch",
    "ExitCounts",
    "ExitDirection",
    "ExitPolicy",
    "FFTResult",
    "GreedyPrefixSearch",
    "MaxExitPolicy",
    "Node",
    "PredicateSearch",
    "Threshold",
    "ThresholdCache",
    "Tree",
    "TreeApplication",
    "ZigzagExitPolicy",
    "apply_tree",
    "build_fft",
    "build_max_tree",
    "build_single_tree",
    "build_zigzag_tree",
    "compute_stats",
    "cue_table",
    "evaluate_tree",
    "find_cue_threshold",
    "generate_fan",
    "performance_table",
    "predict",
    "prune_tree",
    "rank_cues",
    "select_trees",
    "tree_definitions",
]
