"""
Functions to build decision processes.
"""

import math

from rmdp import core
from rmdp.errors import IndexOutOfRange
from rmdp.process import DecisionProcess, Mdp, Rmdp


def add_transition(
    process: DecisionProcess,
    fromid: core.StateId,
    actionid: core.ActionId,
    toid: core.StateId,
    probability: float,
    reward: float,
    outcomeid: core.OutcomeId = 0,
) -> None:
    """
    Adds a transition to the process.
    States, actions and outcomes are created as needed, including the target state.
    Adding a transition to a target that already exists accumulates its probability.
    Arguments are checked before anything is created, so a rejected
    transition leaves the process unchanged.

    Args:
        process: the process to add the transition to.
        fromid: state the transition starts from.
        actionid: action taken in `fromid`.
        toid: state the transition ends in.
        probability: probability of the transition.
        reward: reward of the transition.
        outcomeid: nature's outcome; plain processes only have outcome 0.
    """
    for name, value in (
        ("fromid", fromid),
        ("actionid", actionid),
        ("toid", toid),
        ("outcomeid", outcomeid),
    ):
        if not core.is_index(value):
            raise IndexOutOfRange(f"{name} must be a non-negative integer; got {value!r}")
    if isinstance(process, Mdp) and outcomeid != 0:
        raise IndexOutOfRange(f"Regular actions only have outcome 0; got {outcomeid}")
    probability = float(probability)
    if probability < 0 or math.isnan(probability):
        raise ValueError(f"Probability must be non-negative; got {probability}")

    # the target must exist before its id is referenced
    process.create_state(toid)
    state = process.create_state(fromid)
    action = state.create_action(actionid)
    outcome = action.create_outcome(outcomeid)
    outcome.add(toid, probability, reward)


def set_uniform_thresholds(process: Rmdp, threshold: float) -> None:
    """
    Sets the same L1 threshold for every action of a robust process.
    """
    for state in process:
        for action in state.get_actions():
            action.threshold = threshold
