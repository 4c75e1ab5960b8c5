"""
Outcomes are the realizations nature can choose from for an action.
"""

from typing import Any, Mapping, Optional

from rmdp.transition import Transition


class Outcome:
    """
    One outcome of an action, holding a single transition.
    """

    def __init__(self, transition: Optional[Transition] = None):
        self._transition = transition if transition is not None else Transition()

    @property
    def transition(self) -> Transition:
        return self._transition

    def add(self, stateid: int, probability: float, reward: float) -> None:
        self._transition.add(stateid, probability, reward)

    def empty(self) -> bool:
        return self._transition.empty()

    def is_normalized(self) -> bool:
        return self._transition.is_normalized()

    def normalize(self) -> None:
        self._transition.normalize()

    def mean_reward(self) -> float:
        return self._transition.mean_reward()

    def to_json(self, outcomeid: int) -> Mapping[str, Any]:
        return self._transition.to_json(outcomeid)


class WeightedOutcome(Outcome):
    """
    An outcome with a nominal weight, i.e. its probability
    under the base distribution of a robust action.
    The weight is consumed by solvers, not by policy evaluation.
    """

    def __init__(self, transition: Optional[Transition] = None, weight: float = 0.0):
        super().__init__(transition=transition)
        self.weight = weight

    @property
    def weight(self) -> float:
        return self._weight

    @weight.setter
    def weight(self, value: float) -> None:
        if value < 0:
            raise ValueError(f"Outcome weight must be non-negative; got {value}")
        self._weight = float(value)
