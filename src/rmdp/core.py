"""
This module defines core abstractions.
"""

import numbers
from typing import Any, Sequence, Union

import numpy as np

# Tolerance used when checking whether probabilities sum to one.
TOLERANCE = 1e-5
# Returned by `is_policy_correct` when every state has a valid action and outcome.
POLICY_CORRECT = -1
DTYPE = np.float64

StateId = int
ActionId = int
OutcomeId = int
# Nature either picks one outcome or a distribution over the outcomes of an action.
OutcomeChoice = Union[OutcomeId, Sequence[float], np.ndarray]
ActionPolicy = Sequence[ActionId]
OutcomePolicy = Sequence[OutcomeChoice]


def is_index(value: Any) -> bool:
    """
    Returns True if `value` is a non-negative integer, e.g. a state,
    action or outcome id. Floats are rejected, even when integral.
    """
    return isinstance(value, numbers.Integral) and value >= 0
