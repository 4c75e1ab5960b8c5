"""
This module has the sparse transition representation
used by outcomes, actions and initial distributions.
"""

import logging
import math
from typing import Any, Dict, List, Mapping, Optional, Sequence

import numpy as np

from rmdp import core
from rmdp.errors import IndexOutOfRange


class Transition:
    """
    Sparse mapping from target states to probabilities and rewards.

    Targets are unique and kept in insertion order. Probabilities
    must be non-negative but do not need to sum to one.
    """

    def __init__(
        self,
        indices: Sequence[int] = (),
        probabilities: Sequence[float] = (),
        rewards: Optional[Sequence[float]] = None,
    ):
        """
        Args:
            indices: target state ids.
            probabilities: probability of moving into each target.
            rewards: reward for each target; zeros if omitted.
        """
        if rewards is None:
            rewards = [0.0] * len(indices)
        if not len(indices) == len(probabilities) == len(rewards):
            raise ValueError(
                f"Indices, probabilities and rewards must have the same length; got {len(indices)}, {len(probabilities)}, {len(rewards)}"
            )
        self._indices: List[int] = []
        self._probabilities: List[float] = []
        self._rewards: List[float] = []
        self._positions: Dict[int, int] = {}
        for stateid, probability, reward in zip(indices, probabilities, rewards):
            self.add(stateid, probability, reward)

    def add(self, stateid: int, probability: float, reward: float) -> None:
        """
        Adds a target state.
        If the target exists, the probabilities are summed and the reward
        becomes the probability-weighted average of both rewards.
        """
        if not core.is_index(stateid):
            raise IndexOutOfRange(f"Target state id must be a non-negative integer; got {stateid!r}")
        stateid = int(stateid)
        probability = float(probability)
        reward = float(reward)
        if probability < 0 or math.isnan(probability):
            raise ValueError(f"Probability must be non-negative; got {probability}")

        position = self._positions.get(stateid)
        if position is None:
            self._positions[stateid] = len(self._indices)
            self._indices.append(stateid)
            self._probabilities.append(probability)
            self._rewards.append(reward)
            return

        old_probability = self._probabilities[position]
        new_probability = old_probability + probability
        if new_probability > 0:
            self._rewards[position] = (
                old_probability * self._rewards[position] + probability * reward
            ) / new_probability
        else:
            self._rewards[position] = reward
        self._probabilities[position] = new_probability

    def add_transition(self, other: "Transition", scale: float = 1.0) -> None:
        """
        Merges the probabilities of `other`, scaled by `scale`, into this transition.
        """
        for stateid, probability, reward in other:
            self.add(stateid, scale * probability, reward)

    def copy(self) -> "Transition":
        return Transition(self._indices, self._probabilities, self._rewards)

    @property
    def indices(self) -> Sequence[int]:
        return tuple(self._indices)

    @property
    def probabilities(self) -> Sequence[float]:
        return tuple(self._probabilities)

    @property
    def rewards(self) -> Sequence[float]:
        return tuple(self._rewards)

    def size(self) -> int:
        return len(self._indices)

    def empty(self) -> bool:
        return len(self._indices) == 0

    def max_index(self) -> int:
        """
        Returns:
            The largest target id, or -1 for an empty transition.
        """
        return max(self._indices, default=-1)

    def probabilities_vector(self, size: int) -> np.ndarray:
        """
        Dense vector of probabilities with zeros for missing targets.
        """
        return self._dense(self._probabilities, size)

    def rewards_vector(self, size: int) -> np.ndarray:
        """
        Dense vector of rewards with zeros for missing targets.
        """
        return self._dense(self._rewards, size)

    def _dense(self, values: Sequence[float], size: int) -> np.ndarray:
        if size <= self.max_index():
            raise IndexOutOfRange(
                f"Vector of size {size} cannot hold target state {self.max_index()}"
            )
        vector = np.zeros(shape=size, dtype=core.DTYPE)
        if self._indices:
            vector[self._indices] = values
        return vector

    def sum_probabilities(self) -> float:
        return math.fsum(self._probabilities)

    def is_normalized(self) -> bool:
        return abs(1.0 - self.sum_probabilities()) < core.TOLERANCE

    def normalize(self) -> None:
        """
        Scales probabilities to sum to one.
        Transitions summing to zero are left unchanged.
        """
        total = self.sum_probabilities()
        if total == 0.0:
            logging.debug("Skipping normalization of a transition with zero mass")
            return
        if total != 1.0:
            self._probabilities = [value / total for value in self._probabilities]

    def mean_reward(self) -> float:
        """
        Expected reward, sum(p * r), without normalizing probabilities.
        """
        return math.fsum(
            probability * reward
            for probability, reward in zip(self._probabilities, self._rewards)
        )

    def to_json(self, outcomeid: int = -1) -> Mapping[str, Any]:
        return {
            "outcomeid": outcomeid,
            "stateids": list(self._indices),
            "probabilities": list(self._probabilities),
            "rewards": list(self._rewards),
        }

    def __len__(self) -> int:
        return self.size()

    def __iter__(self):
        return iter(zip(self._indices, self._probabilities, self._rewards))

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, Transition):
            return NotImplemented
        return (
            self._indices == other._indices
            and self._probabilities == other._probabilities
            and self._rewards == other._rewards
        )

    def __repr__(self) -> str:
        return f"Transition(indices={self._indices}, probabilities={self._probabilities}, rewards={self._rewards})"
