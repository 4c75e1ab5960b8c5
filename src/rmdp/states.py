"""
This module has the state types of decision processes.
"""

import abc
from typing import Any, Generic, List, Mapping, Optional, Protocol, Sequence, TypeVar

from rmdp import core
from rmdp.actions import RegularAction, WeightedOutcomeAction
from rmdp.errors import IndexOutOfRange
from rmdp.transition import Transition

ActionType = TypeVar("ActionType", RegularAction, WeightedOutcomeAction)


class SupportsEvaluation(Protocol):
    """
    An interface for states that a process can evaluate for
    a choice of action and outcome.
    """

    def mean_reward(self, actionid: core.ActionId, outcome: core.OutcomeChoice) -> float:
        """
        Expected reward of taking `actionid` when nature chooses `outcome`.
        """

    def mean_transition(
        self, actionid: core.ActionId, outcome: core.OutcomeChoice
    ) -> Transition:
        """
        Expected transition of taking `actionid` when nature chooses `outcome`.
        """

    def is_terminal(self) -> bool:
        """
        Returns True if the state has no actions.
        """

    def is_action_outcome_correct(
        self, actionid: core.ActionId, outcome: core.OutcomeChoice
    ) -> bool:
        """
        Returns True if `actionid` and `outcome` are valid ids in this state.
        """

    def action_count(self) -> int:
        """
        Returns the number of actions.
        """

    def create_action(self, actionid: Optional[core.ActionId] = None) -> Any:
        """
        Returns the action, creating it and any intermediate actions if needed.
        """

    def get_actions(self) -> Sequence[Any]:
        """
        Returns the actions in id order.
        """

    def is_normalized(self) -> bool:
        """
        Returns True if every non-empty transition sums to one.
        """

    def normalize(self) -> None:
        """
        Rescales every non-empty transition to sum to one.
        """

    def to_json(self, stateid: int) -> Mapping[str, Any]:
        """
        Json-serializable representation of the state.
        """


class State(abc.ABC, Generic[ActionType]):
    """
    A state with an ordered list of actions.
    A state without actions is terminal and its value is zero.
    """

    def __init__(self, actions: Optional[Sequence[ActionType]] = None):
        self._actions: List[ActionType] = list(actions or [])

    @abc.abstractmethod
    def new_action(self) -> ActionType:
        """
        Creates an empty action of the type this state holds.
        """
        raise NotImplementedError()

    def create_action(self, actionid: Optional[core.ActionId] = None) -> ActionType:
        """
        Returns the action, creating it and any intermediate actions if needed.
        """
        if actionid is None:
            actionid = len(self._actions)
        if not core.is_index(actionid):
            raise IndexOutOfRange(f"Action id must be a non-negative integer; got {actionid!r}")
        while actionid >= len(self._actions):
            self._actions.append(self.new_action())
        return self._actions[actionid]

    def get_action(self, actionid: core.ActionId) -> ActionType:
        if not self.is_action_correct(actionid):
            raise IndexOutOfRange(
                f"Action {actionid!r} is out of range; state has {len(self._actions)} actions"
            )
        return self._actions[actionid]

    def get_actions(self) -> Sequence[ActionType]:
        return tuple(self._actions)

    def action_count(self) -> int:
        return len(self._actions)

    def is_terminal(self) -> bool:
        return len(self._actions) == 0

    def is_action_correct(self, actionid: core.ActionId) -> bool:
        return core.is_index(actionid) and actionid < len(self._actions)

    def is_action_outcome_correct(
        self, actionid: core.ActionId, outcome: core.OutcomeChoice
    ) -> bool:
        """
        Terminal states accept any action and outcome.
        """
        if self.is_terminal():
            return True
        if not self.is_action_correct(actionid):
            return False
        return self._actions[actionid].is_outcome_correct(outcome)

    def mean_reward(self, actionid: core.ActionId, outcome: core.OutcomeChoice) -> float:
        if self.is_terminal():
            return 0.0
        return self.get_action(actionid).mean_reward(outcome)

    def mean_transition(
        self, actionid: core.ActionId, outcome: core.OutcomeChoice
    ) -> Transition:
        if self.is_terminal():
            return Transition()
        return self.get_action(actionid).mean_transition(outcome)

    def is_normalized(self) -> bool:
        return all(action.is_normalized() for action in self._actions)

    def normalize(self) -> None:
        for action in self._actions:
            action.normalize()

    def to_json(self, stateid: int) -> Mapping[str, Any]:
        return {
            "stateid": stateid,
            "actions": [
                action.to_json(actionid) for actionid, action in enumerate(self._actions)
            ],
        }

    def __len__(self) -> int:
        return self.action_count()


class RegularState(State[RegularAction]):
    """
    State of a plain MDP: one outcome per action.
    """

    def new_action(self) -> RegularAction:
        return RegularAction()


class WeightedRobustState(State[WeightedOutcomeAction]):
    """
    State of a robust MDP: actions have many outcomes,
    chosen by nature within an L1 ball around a nominal distribution.
    """

    def new_action(self) -> WeightedOutcomeAction:
        return WeightedOutcomeAction()

