"""
This module has the action types of decision processes.

A `RegularAction` has exactly one outcome, which is the case
of plain MDPs. A `WeightedOutcomeAction` has many outcomes,
which nature chooses from, and a nominal distribution over them
that bounds nature's choices through an L1 threshold.
"""

import math
import numbers
from typing import Any, List, Mapping, Optional, Sequence

import numpy as np

from rmdp import core
from rmdp.errors import IndexOutOfRange, StructuralError
from rmdp.outcomes import Outcome, WeightedOutcome
from rmdp.transition import Transition


def is_outcome_id(outcome: core.OutcomeChoice) -> bool:
    """
    Returns True if nature's choice is a single outcome id,
    as opposed to a distribution over outcomes.
    """
    return isinstance(outcome, numbers.Integral)


def _describe(outcomes: Sequence[Outcome]) -> str:
    parts = []
    for outcomeid, outcome in enumerate(outcomes):
        targets = ", ".join(
            f"{stateid}: {probability} (r={reward})"
            for stateid, probability, reward in outcome.transition
        )
        parts.append(f"{outcomeid} -> [{targets}]")
    return "; ".join(parts)


class RegularAction:
    """
    An action with a single outcome.
    The only valid outcome id is 0. An action with no target states
    contributes zero reward and an empty transition.
    """

    def __init__(self, outcome: Optional[Outcome] = None):
        self._outcome = outcome if outcome is not None else Outcome()

    def get_outcomes(self) -> Sequence[Outcome]:
        return (self._outcome,)

    def get_outcome(self, outcomeid: core.OutcomeId = 0) -> Outcome:
        self._check_outcome(outcomeid)
        return self._outcome

    def outcome_count(self) -> int:
        return 1

    def create_outcome(self, outcomeid: core.OutcomeId = 0) -> Outcome:
        self._check_outcome(outcomeid)
        return self._outcome

    def is_outcome_correct(self, outcome: core.OutcomeChoice) -> bool:
        return is_outcome_id(outcome) and outcome == 0

    def mean_reward(self, outcome: core.OutcomeChoice = 0) -> float:
        self._check_outcome(outcome)
        return self._outcome.mean_reward()

    def mean_transition(self, outcome: core.OutcomeChoice = 0) -> Transition:
        """
        A copy of the outcome's transition; changing it leaves the action as is.
        """
        self._check_outcome(outcome)
        return self._outcome.transition.copy()

    def is_normalized(self) -> bool:
        return self._outcome.empty() or self._outcome.is_normalized()

    def normalize(self) -> None:
        self._outcome.normalize()

    def to_json(self, actionid: int) -> Mapping[str, Any]:
        return {"actionid": actionid, "outcomes": [self._outcome.to_json(0)]}

    def to_string(self) -> str:
        return _describe(self.get_outcomes())

    def _check_outcome(self, outcome: core.OutcomeChoice) -> None:
        if not self.is_outcome_correct(outcome):
            raise IndexOutOfRange(
                f"Regular actions only have outcome 0; got {outcome!r}"
            )


class WeightedOutcomeAction:
    """
    An action with discrete outcomes and a nominal (base) distribution over them.

    Nature may pick a single outcome or any distribution over the outcomes.
    The L1 `threshold` bounds how far nature's distribution may be from the
    nominal one; it is used by solvers and stored here with the action.
    """

    def __init__(
        self,
        outcomes: Optional[Sequence[WeightedOutcome]] = None,
        threshold: float = 0.0,
    ):
        self._outcomes: List[WeightedOutcome] = list(outcomes or [])
        self.threshold = threshold

    @property
    def threshold(self) -> float:
        return self._threshold

    @threshold.setter
    def threshold(self, value: float) -> None:
        if value < 0:
            raise ValueError(f"Threshold must be non-negative; got {value}")
        self._threshold = float(value)

    def get_outcomes(self) -> Sequence[WeightedOutcome]:
        return tuple(self._outcomes)

    def get_outcome(self, outcomeid: core.OutcomeId) -> WeightedOutcome:
        if not (core.is_index(outcomeid) and outcomeid < len(self._outcomes)):
            raise IndexOutOfRange(
                f"Outcome {outcomeid!r} is out of range; action has {len(self._outcomes)} outcomes"
            )
        return self._outcomes[outcomeid]

    def outcome_count(self) -> int:
        return len(self._outcomes)

    def create_outcome(self, outcomeid: Optional[core.OutcomeId] = None) -> WeightedOutcome:
        """
        Returns the outcome, creating it and any intermediate outcomes if needed.
        Creating outcomes resets the nominal distribution to uniform.
        """
        if outcomeid is None:
            outcomeid = len(self._outcomes)
        if not core.is_index(outcomeid):
            raise IndexOutOfRange(f"Outcome id must be a non-negative integer; got {outcomeid!r}")
        if outcomeid >= len(self._outcomes):
            self._outcomes.extend(
                WeightedOutcome() for _ in range(outcomeid + 1 - len(self._outcomes))
            )
            self.uniform_distribution()
        return self._outcomes[outcomeid]

    @property
    def distribution(self) -> np.ndarray:
        return np.array([outcome.weight for outcome in self._outcomes], dtype=core.DTYPE)

    def set_distribution(self, distribution: Sequence[float]) -> None:
        """
        Sets the nominal distribution; it must have one non-negative
        weight per outcome and sum to one.
        """
        weights = np.asarray(distribution, dtype=core.DTYPE)
        if weights.shape != (len(self._outcomes),):
            raise IndexOutOfRange(
                f"Distribution needs {len(self._outcomes)} weights; got shape {weights.shape}"
            )
        if np.any(weights < 0):
            raise ValueError(f"Distribution weights must be non-negative: {weights}")
        if abs(1.0 - math.fsum(weights)) >= core.TOLERANCE:
            raise ValueError(f"Distribution must sum to one: {weights}")
        for outcome, weight in zip(self._outcomes, weights):
            outcome.weight = weight

    def normalize_distribution(self) -> None:
        total = math.fsum(outcome.weight for outcome in self._outcomes)
        if total > 0:
            for outcome in self._outcomes:
                outcome.weight = outcome.weight / total

    def uniform_distribution(self) -> None:
        for outcome in self._outcomes:
            outcome.weight = 1.0 / len(self._outcomes)

    def is_outcome_correct(self, outcome: core.OutcomeChoice) -> bool:
        if is_outcome_id(outcome):
            return 0 <= outcome < len(self._outcomes)
        weights = np.asarray(outcome, dtype=core.DTYPE)
        return (
            weights.shape == (len(self._outcomes),)
            and bool(np.all(weights >= 0))
            and abs(1.0 - math.fsum(weights)) < core.TOLERANCE
        )

    def mean_reward(self, outcome: core.OutcomeChoice) -> float:
        if is_outcome_id(outcome):
            return self._nonempty_outcome(outcome).mean_reward()
        return math.fsum(
            weight * self._nonempty_outcome(outcomeid).mean_reward()
            for outcomeid, weight in self._weighted_outcomes(outcome)
        )

    def mean_transition(self, outcome: core.OutcomeChoice) -> Transition:
        """
        A copy of the transition of a single outcome, or the mixture of
        outcome transitions weighted by nature's distribution.
        """
        if is_outcome_id(outcome):
            return self._nonempty_outcome(outcome).transition.copy()
        result = Transition()
        for outcomeid, weight in self._weighted_outcomes(outcome):
            result.add_transition(self._nonempty_outcome(outcomeid).transition, weight)
        return result

    def is_normalized(self) -> bool:
        return all(
            outcome.empty() or outcome.is_normalized() for outcome in self._outcomes
        )

    def normalize(self) -> None:
        for outcome in self._outcomes:
            outcome.normalize()

    def to_json(self, actionid: int) -> Mapping[str, Any]:
        return {
            "actionid": actionid,
            "threshold": self._threshold,
            "distribution": self.distribution.tolist(),
            "outcomes": [
                outcome.to_json(outcomeid)
                for outcomeid, outcome in enumerate(self._outcomes)
            ],
        }

    def to_string(self) -> str:
        return _describe(self._outcomes)

    def _nonempty_outcome(self, outcomeid: core.OutcomeId) -> WeightedOutcome:
        if not self._outcomes:
            raise StructuralError("Action has no outcomes")
        outcome = self.get_outcome(outcomeid)
        if outcome.empty():
            raise StructuralError(f"Outcome {outcomeid} has no target states")
        return outcome

    def _weighted_outcomes(self, distribution: Sequence[float]):
        if not self._outcomes:
            raise StructuralError("Action has no outcomes")
        weights = np.asarray(distribution, dtype=core.DTYPE)
        if weights.shape != (len(self._outcomes),) or np.any(weights < 0):
            raise IndexOutOfRange(
                f"Nature's distribution must have {len(self._outcomes)} non-negative weights; got {distribution!r}"
            )
        for outcomeid, weight in enumerate(weights.tolist()):
            if weight > 0:
                yield outcomeid, weight
