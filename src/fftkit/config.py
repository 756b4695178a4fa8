"""Configuration models for fast-and-frugal tree construction."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Final, Literal, TypeAlias

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from fftkit.exceptions import ConfigurationError

# ---------------------------------------------------------------------------
# Public type aliases
# ---------------------------------------------------------------------------

Goal: TypeAlias = Literal["bacc", "wacc", "acc", "dprime", "cost"]

Algorithm: TypeAlias = Literal["global", "conditional", "max", "zigzag"]

StoppingRule: TypeAlias = Literal["population_fraction", "none"]

PredicateSearchName: TypeAlias = Literal["greedy", "exhaustive"]

GOALS: Final[tuple[str, ...]] = ("bacc", "wacc", "acc", "dprime", "cost")

_OUTCOME_COST_FIELDS: Final[tuple[str, ...]] = ("hit", "false_alarm", "miss", "correct_rejection")

# ---------------------------------------------------------------------------
# Public models
# ---------------------------------------------------------------------------


class CostOutcomes(BaseModel):
    """Cost charged once per case for each of the four classification outcomes.

    Accepts either named fields or a 4-item sequence ordered
    `(hit, false_alarm, miss, correct_rejection)`.

    Examples:
        >>> CostOutcomes.model_validate([0, 1, 1, 0]).miss
        1.0
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    hit: float = Field(default=0.0, description="Cost of a correctly classified positive case.")
    false_alarm: float = Field(default=0.0, description="Cost of a negative case classified positive.")
    miss: float = Field(default=0.0, description="Cost of a positive case classified negative.")
    correct_rejection: float = Field(default=0.0, description="Cost of a correctly classified negative case.")

    @model_validator(mode="before")
    @classmethod
    def _accept_sequence(cls, value: Any) -> Any:
        """Convert a 4-item sequence into named cost fields.

        Args:
            value (Any): Raw input, a mapping or a sequence.

        Returns:
            Any: A mapping of field names to costs when given a sequence.

        Raises:
            ValueError: If a sequence does not hold exactly four costs.
        """
        if isinstance(value, Sequence) and not isinstance(value, str):
            if len(value) != len(_OUTCOME_COST_FIELDS):
                raise ValueError(
                    f"cost_outcomes needs {len(_OUTCOME_COST_FIELDS)} values "
                    f"{_OUTCOME_COST_FIELDS}, got {len(value)}"
                )
            return dict(zip(_OUTCOME_COST_FIELDS, value, strict=True))
        return value


class FFTConfig(BaseModel):
    """Parameters controlling fast-and-frugal tree construction.

    Attributes:
        max_levels (int): Maximum number of nodes in any tree.
        stopping_rule (StoppingRule): `"population_fraction"` prunes trailing
            nodes reached by fewer than `stopping_par * N` cases; `"none"` keeps
            every level up to `max_levels`.
        stopping_par (float): Population fraction used by the stopping rule.
        algorithm (Algorithm): Construction strategy.
        goal_chase (Goal): Statistic maximized by the per-cue threshold search
            and cue ranking.
        goal (Goal): Statistic used to rank and select the final trees.
        sens_w (float): Sensitivity weight `w` in weighted accuracy.
        cost_cues (dict[str, float]): Cost of consulting each cue once for one case.
        cost_outcomes (CostOutcomes): Per-outcome costs.
        predicate_search (PredicateSearchName): Level-subset search used for
            categorical cues.
        n_jobs (int): Worker threads for cue searches and tree evaluation.

    Examples:
        >>> config = FFTConfig(max_levels=3, goal="cost", cost_outcomes=[0, 1, 1, 0])
        >>> config.cost_outcomes.false_alarm
        1.0
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_levels: int = Field(default=4, ge=1, description="Maximum number of nodes in any tree.")
    stopping_rule: StoppingRule = Field(default="population_fraction", description="Rule for pruning trailing nodes.")
    stopping_par: float = Field(default=0.10, ge=0.0, le=1.0, description="Population fraction for the stopping rule.")
    algorithm: Algorithm = Field(default="global", description="Tree construction strategy.")
    goal_chase: Goal = Field(default="bacc", description="Statistic maximized when searching cue thresholds.")
    goal: Goal = Field(default="bacc", description="Statistic used to rank and select trees.")
    sens_w: float = Field(default=0.5, ge=0.0, le=1.0, description="Sensitivity weight for weighted accuracy.")
    cost_cues: dict[str, float] = Field(default_factory=dict, description="Per-case cost of consulting each cue.")
    cost_outcomes: CostOutcomes = Field(default_factory=CostOutcomes, description="Per-outcome costs.")
    predicate_search: PredicateSearchName = Field(default="greedy", description="Categorical level-subset search.")
    n_jobs: int = Field(default=1, description="Worker threads; -1 uses every core.")

    @field_validator("cost_cues", mode="after")
    @classmethod
    def _validate_cue_costs(cls, value: dict[str, float]) -> dict[str, float]:
        """Reject negative cue costs.

        Args:
            value (dict[str, float]): Mapping of cue name to cost.

        Returns:
            dict[str, float]: The validated mapping, unchanged.

        Raises:
            ValueError: If any cost is negative.
        """
        negative = sorted(name for name, cost in value.items() if cost < 0)
        if negative:
            raise ValueError(f"cue costs must be non-negative, got negative costs for {negative}")
        return value

    @field_validator("n_jobs", mode="after")
    @classmethod
    def _validate_n_jobs(cls, value: int) -> int:
        """Reject `n_jobs == 0`, which joblib does not accept.

        Args:
            value (int): Requested worker count.

        Returns:
            int: The validated worker count.

        Raises:
            ValueError: If `value` is zero.
        """
        if value == 0:
            raise ValueError("n_jobs must be a positive integer or negative (joblib convention), got 0")
        return value

    def cue_cost(self, cue: str) -> float:
        """Return the usage cost of `cue`, defaulting to zero.

        Args:
            cue (str): Cue name.

        Returns:
            float: Cost of consulting the cue once for one case.
        """
        return self.cost_cues.get(cue, 0.0)


def load_config(options: Mapping[str, Any] | FFTConfig | None = None, **overrides: Any) -> FFTConfig:
    """Build an `FFTConfig`, translating validation failures to `ConfigurationError`.

    Args:
        options (Mapping[str, Any] | FFTConfig | None): Base options. An existing
            config is copied; `None` means defaults.
        **overrides (Any): Field values that take precedence over `options`.

    Returns:
        FFTConfig: The validated configuration.

    Raises:
        ConfigurationError: If any field is invalid. The first offending field is named.

    Examples:
        >>> load_config(goal="auc")  # doctest: +SKIP
        Traceback (most recent call last):
        ...
        fftkit.exceptions.ConfigurationError: Invalid configuration field 'goal': ...
    """
    if isinstance(options, FFTConfig):
        raw: dict[str, Any] = options.model_dump()
    else:
        raw = dict(options or {})
    raw.update(overrides)

    try:
        return FFTConfig.model_validate(raw)
    except ValidationError as exc:
        error = exc.errors()[0]
        location = error.get("loc") or ("config",)
        raise ConfigurationError(str(location[0]), error["msg"]) from exc
