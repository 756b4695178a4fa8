"""Pydantic models for thresholds, nodes, trees, statistics and construction results."""

from __future__ import annotations

import operator
from collections.abc import Callable
from typing import Any, Literal, TypeAlias

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from fftkit.config import FFTConfig, Goal
from fftkit.dataset import Cue, CueKind, SkippedCue

# ---------------------------------------------------------------------------
# Public type aliases
# ---------------------------------------------------------------------------

Direction: TypeAlias = Literal[">", ">=", "<", "<=", "in"]

ExitDirection: TypeAlias = Literal["positive", "negative", "terminal"]

NodeExit: TypeAlias = Literal["positive", "negative"]

# Enumeration order for exit patterns throughout the package.
EXIT_DIRECTIONS: tuple[NodeExit, NodeExit] = ("positive", "negative")

# ---------------------------------------------------------------------------
# Public models
# ---------------------------------------------------------------------------


class Threshold(BaseModel):
    """A direction and cutoff turning one cue value into a boolean.

    Numeric thresholds compare against a float cutoff; categorical thresholds
    test membership in a set of level labels. Missing cue values never match.

    Attributes:
        direction (Direction): `">"`, `">="`, `"<"`, `"<="` or `"in"`.
        cutoff (float | frozenset[str]): Numeric cutoff, or the level labels
            for `"in"`.

    Examples:
        >>> t = Threshold(direction=">", cutoff=55.0)
        >>> str(t)
        '> 55.0'
        >>> str(Threshold(direction="in", cutoff={"b", "a"}))
        'in {a, b}'
    """

    model_config = ConfigDict(frozen=True)

    direction: Direction = Field(description="Comparison direction; 'in' for categorical level sets.")
    cutoff: float | frozenset[str] = Field(description="Numeric cutoff, or the set of level labels for 'in'.")

    @model_validator(mode="after")
    def _validate_direction_cutoff_compatibility(self) -> Threshold:
        """Validate that the direction and cutoff type are compatible.

        Returns:
            Threshold: The validated model instance.

        Raises:
            ValueError: If `"in"` is paired with a scalar cutoff or a scalar
                direction with a set cutoff, or the level set is empty.
        """
        if self.direction == "in":
            if not isinstance(self.cutoff, frozenset):
                raise ValueError("Direction 'in' requires a set of level labels")
            if not self.cutoff:
                raise ValueError("Direction 'in' requires at least one level label")
        elif isinstance(self.cutoff, frozenset):
            raise ValueError(f"Direction '{self.direction}' cannot compare against a set")
        return self

    @property
    def is_categorical(self) -> bool:
        """Whether this threshold tests level membership."""
        return self.direction == "in"

    def __str__(self) -> str:
        """Return a human-readable representation, e.g. `'>= 3.5'` or `'in {a, b}'`."""
        if isinstance(self.cutoff, frozenset):
            return f"in {{{', '.join(sorted(self.cutoff))}}}"
        return f"{self.direction} {self.cutoff}"

    def matches(self, cue: Cue) -> np.ndarray:
        """Evaluate this threshold for every case of `cue`.

        Args:
            cue (Cue): The cue column to test.

        Returns:
            np.ndarray: Boolean array; `True` where the value is present and
                satisfies the threshold.
        """
        present = ~cue.missing
        if isinstance(self.cutoff, frozenset):
            return present & np.isin(cue.values, cue.codes_for(self.cutoff))
        with np.errstate(invalid="ignore"):
            return present & _SCALAR_OPS[self.direction](cue.values, self.cutoff)


class Node(BaseModel):
    """One test step of a fast-and-frugal tree.

    A `"positive"` node classifies matching cases as `true_decision` and
    passes every other case on. A `"negative"` node classifies non-matching
    cases as `false_decision` and passes every other case on. A `"terminal"`
    node decides every case that reaches it; cases with a missing cue value
    get `missing_decision`.

    Attributes:
        cue (str): Cue tested by this node.
        threshold (Threshold): Threshold applied to the cue.
        exit (ExitDirection): Which branch exits here.
        true_decision (bool): Decision for matching cases that exit here.
        false_decision (bool): Decision for non-matching cases that exit here.
        missing_decision (bool | None): Decision for missing values at a
            terminal node; `None` on non-terminal nodes.
    """

    model_config = ConfigDict(frozen=True)

    cue: str = Field(description="Cue tested by this node.")
    threshold: Threshold = Field(description="Threshold applied to the cue.")
    exit: ExitDirection = Field(description="Exit branch: 'positive', 'negative' or 'terminal'.")
    true_decision: bool = Field(default=True, description="Decision for matching cases exiting here.")
    false_decision: bool = Field(default=False, description="Decision for non-matching cases exiting here.")
    missing_decision: bool | None = Field(default=None, description="Decision for missing values at a terminal node.")

    @model_validator(mode="after")
    def _validate_exit_decisions(self) -> Node:
        """Validate that a non-terminal node's exit branch decides its own class.

        Returns:
            Node: The validated model instance.

        Raises:
            ValueError: If a positive exit does not decide positive, a negative
                exit does not decide negative, or a non-terminal node carries
                a missing-value decision.
        """
        if self.exit == "terminal":
            return self
        if self.missing_decision is not None:
            raise ValueError("Only terminal nodes decide missing values")
        if self.exit == "positive" and not self.true_decision:
            raise ValueError("A positive exit must classify matching cases as positive")
        if self.exit == "negative" and self.false_decision:
            raise ValueError("A negative exit must classify non-matching cases as negative")
        return self

    @property
    def is_terminal(self) -> bool:
        """Whether this node decides every case reaching it."""
        return self.exit == "terminal"

    @property
    def decision(self) -> str:
        """Human-readable decision summary, e.g. `'positive'` or `'positive|negative'`."""
        if self.exit == "positive":
            return _label(self.true_decision)
        if self.exit == "negative":
            return _label(self.false_decision)
        return f"{_label(self.true_decision)}|{_label(self.false_decision)}"

    def as_terminal(self, *, true_decision: bool, false_decision: bool, missing_decision: bool) -> Node:
        """Return a terminal copy of this node with the given decisions.

        Args:
            true_decision (bool): Decision for matching cases.
            false_decision (bool): Decision for non-matching cases.
            missing_decision (bool): Decision for missing values.

        Returns:
            Node: A new terminal node; this node is unchanged.
        """
        return Node(
            cue=self.cue,
            threshold=self.threshold,
            exit="terminal",
            true_decision=true_decision,
            false_decision=false_decision,
            missing_decision=missing_decision,
        )


class Tree(BaseModel):
    """An ordered sequence of nodes whose last node is terminal.

    Attributes:
        nodes (tuple[Node, ...]): Nodes in evaluation order.
        algorithm (str): Strategy that produced the tree.

    Examples:
        >>> node = Node(cue="age", threshold=Threshold(direction=">", cutoff=55.0), exit="terminal")
        >>> Tree(nodes=(node,), algorithm="global").n_levels
        1
    """

    model_config = ConfigDict(frozen=True)

    nodes: tuple[Node, ...] = Field(min_length=1, description="Nodes in evaluation order.")
    algorithm: str = Field(default="global", description="Strategy that produced the tree.")

    @field_validator("nodes", mode="after")
    @classmethod
    def _validate_terminal_position(cls, value: tuple[Node, ...]) -> tuple[Node, ...]:
        """Validate that exactly the last node is terminal.

        Args:
            value (tuple[Node, ...]): The nodes to validate.

        Returns:
            tuple[Node, ...]: The validated nodes, unchanged.

        Raises:
            ValueError: If the last node is not terminal or an earlier one is.
        """
        if not value[-1].is_terminal:
            raise ValueError("The last node of a tree must be terminal")
        early = [level for level, node in enumerate(value[:-1], start=1) if node.is_terminal]
        if early:
            raise ValueError(f"Only the last node may be terminal; terminal nodes found at levels {early}")
        return value

    @property
    def n_levels(self) -> int:
        """Number of nodes."""
        return len(self.nodes)

    @property
    def cues(self) -> list[str]:
        """Distinct cues used, in level order."""
        return list(dict.fromkeys(node.cue for node in self.nodes))

    @property
    def exits(self) -> tuple[ExitDirection, ...]:
        """Exit direction of every node."""
        return tuple(node.exit for node in self.nodes)

    def __str__(self) -> str:
        """Return a one-line description, e.g. `'age > 55.0 [positive] -> sex in {m} [terminal]'`."""
        return " -> ".join(f"{node.cue} {node.threshold} [{node.exit}]" for node in self.nodes)


class ConfusionStats(BaseModel):
    """Confusion counts and every statistic derived from them.

    Undefined statistics (zero denominators) are `None`.

    Attributes:
        n (int): Number of cases.
        hi (int): Hits: positive cases classified positive.
        fa (int): False alarms: negative cases classified positive.
        mi (int): Misses: positive cases classified negative.
        cr (int): Correct rejections: negative cases classified negative.
        sens (float | None): Sensitivity, `hi / (hi + mi)`.
        spec (float | None): Specificity, `cr / (cr + fa)`.
        far (float | None): False-alarm rate, `fa / (fa + cr)`.
        ppv (float | None): Positive predictive value, `hi / (hi + fa)`.
        npv (float | None): Negative predictive value, `cr / (cr + mi)`.
        acc (float | None): Accuracy.
        bacc (float | None): Balanced accuracy.
        wacc (float | None): Weighted accuracy.
        dprime (float | None): `z(sens) - z(far)` with boundary clamping.
        cost_outcomes_total (float): Sum of per-outcome costs.
        cost_cues_total (float): Sum of cue costs over every consulted node.
        cost (float): Total cost.
        cost_per_case (float | None): `cost / n`.
        mcu (float | None): Mean number of cues consulted per case.
        pci (float | None): Percentage of available cues ignored per case.
    """

    model_config = ConfigDict(frozen=True)

    n: int = Field(ge=0, description="Number of cases.")
    hi: int = Field(ge=0, description="Hits.")
    fa: int = Field(ge=0, description="False alarms.")
    mi: int = Field(ge=0, description="Misses.")
    cr: int = Field(ge=0, description="Correct rejections.")
    sens: float | None = Field(description="Sensitivity.")
    spec: float | None = Field(description="Specificity.")
    far: float | None = Field(description="False-alarm rate.")
    ppv: float | None = Field(description="Positive predictive value.")
    npv: float | None = Field(description="Negative predictive value.")
    acc: float | None = Field(description="Accuracy.")
    bacc: float | None = Field(description="Balanced accuracy.")
    wacc: float | None = Field(description="Weighted accuracy.")
    dprime: float | None = Field(description="d-prime.")
    cost_outcomes_total: float = Field(description="Sum of per-outcome costs.")
    cost_cues_total: float = Field(description="Sum of cue usage costs.")
    cost: float = Field(description="Total cost.")
    cost_per_case: float | None = Field(description="Total cost divided by the number of cases.")
    mcu: float | None = Field(description="Mean cues used per case.")
    pci: float | None = Field(description="Percentage of available cues ignored per case.")


class CueThresholdResult(BaseModel):
    """Best threshold found for one cue over one set of cases.

    Attributes:
        cue (str): Cue name.
        kind (CueKind): `"numeric"` or `"categorical"`.
        goal_chase (Goal): Statistic that was maximized.
        threshold (Threshold | None): Best threshold; `None` when skipped.
        statistic (float | None): Achieved value of `goal_chase`.
        stats (ConfusionStats | None): Full statistics of the best threshold.
        n_cases (int): Cases with a present value that entered the search.
        skip_reason (str | None): Why the cue could not be searched.
    """

    model_config = ConfigDict(frozen=True)

    cue: str = Field(description="Cue name.")
    kind: CueKind = Field(description="Cue kind.")
    goal_chase: Goal = Field(description="Statistic maximized by the search.")
    threshold: Threshold | None = Field(default=None, description="Best threshold.")
    statistic: float | None = Field(default=None, description="Achieved value of goal_chase.")
    stats: ConfusionStats | None = Field(default=None, description="Statistics of the best threshold.")
    n_cases: int = Field(default=0, ge=0, description="Cases entering the search.")
    skip_reason: str | None = Field(default=None, description="Why the cue was skipped.")

    @property
    def usable(self) -> bool:
        """Whether a threshold was found."""
        return self.threshold is not None


class EvaluatedTree(BaseModel):
    """A candidate tree with its statistics and rank.

    Attributes:
        rank (int): 1-based rank under the selection goal.
        fan_index (int): 0-based position in the enumeration order.
        tree (Tree): The tree.
        train (ConfusionStats): Statistics on the construction data.
        test (ConfusionStats | None): Statistics on held-out data, if given.
    """

    model_config = ConfigDict(frozen=True)

    rank: int = Field(ge=1, description="1-based rank under the selection goal.")
    fan_index: int = Field(ge=0, description="Position in the enumeration order.")
    tree: Tree = Field(description="The tree.")
    train: ConfusionStats = Field(description="Statistics on the construction data.")
    test: ConfusionStats | None = Field(default=None, description="Statistics on held-out data.")


class FFTResult(BaseModel):
    """Complete output of one construction run.

    Attributes:
        config (FFTConfig): Configuration used.
        outcome (str): Outcome column name.
        trees (list[EvaluatedTree]): Candidate trees, best first.
        cue_ranking (list[CueThresholdResult]): Usable cues ranked on the full
            construction data.
        skipped_cues (list[SkippedCue]): Cues left out, with reasons.
        n_train (int): Number of construction cases.
        n_test (int | None): Number of held-out cases, if given.
    """

    model_config = ConfigDict(frozen=True)

    config: FFTConfig = Field(description="Configuration used.")
    outcome: str = Field(description="Outcome column name.")
    trees: list[EvaluatedTree] = Field(min_length=1, description="Candidate trees, best first.")
    cue_ranking: list[CueThresholdResult] = Field(description="Usable cues ranked on the construction data.")
    skipped_cues: list[SkippedCue] = Field(default_factory=list, description="Cues left out, with reasons.")
    n_train: int = Field(ge=1, description="Number of construction cases.")
    n_test: int | None = Field(default=None, description="Number of held-out cases.")

    @property
    def best(self) -> EvaluatedTree:
        """The top-ranked tree."""
        return self.trees[0]

    @model_validator(mode="after")
    def _validate_ranks_are_sequential(self) -> FFTResult:
        """Validate that tree ranks run 1..len(trees) in order.

        Returns:
            FFTResult: The validated model instance.

        Raises:
            ValueError: If ranks are out of order.
        """
        ranks = [evaluated.rank for evaluated in self.trees]
        if ranks != list(range(1, len(ranks) + 1)):
            raise ValueError(f"tree ranks must run 1..{len(ranks)} in order, got {ranks}")
        return self


# ---------------------------------------------------------------------------
# Private helpers
# ---------------------------------------------------------------------------

_SCALAR_OPS: dict[str, Callable[[Any, Any], Any]] = {
    ">": operator.gt,
    ">=": operator.ge,
    "<": operator.lt,
    "<=": operator.le,
}


def _label(decision: bool) -> str:
    """Return `'positive'` or `'negative'` for a decision."""
    return "positive" if decision else "negative"
