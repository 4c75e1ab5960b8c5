"""
This module has the decision process container and its policy evaluation methods.

Some general assumptions:
    - Transition probabilities must be non-negative but do not need
      to add up to a specific value.
    - Transitions with 0 probabilities may be omitted, except there must
      be at least one target state in each outcome of a robust action.
    - State with no actions: a terminal state with value 0.
    - Action with no outcomes: an error for robust processes, zero
      return for plain ones.
    - Outcome with no target states: an error.
"""

import abc
import json
import logging
import warnings
from typing import Generic, Iterator, List, Optional, Sequence, TextIO, TypeVar, Union

import numpy as np
from scipy import linalg

from rmdp import core
from rmdp.errors import IndexOutOfRange, SingularSystem
from rmdp.states import RegularState, SupportsEvaluation, WeightedRobustState
from rmdp.transition import Transition

StateType = TypeVar("StateType", bound=SupportsEvaluation)

CSV_HEADER = ("idstatefrom", "idaction", "idoutcome", "idstateto", "probability", "reward")


class DecisionProcess(abc.ABC, Generic[StateType]):
    """
    A general (robust) Markov decision process.

    States are identified by 0-based contiguous ids. Actions are indexed
    independently for each state, and outcomes for each state and action pair.
    Policies are sequences with one entry per state.

    Building the process (creating states, adding transitions, normalizing)
    must complete before evaluation starts; evaluation methods only read.
    """

    def __init__(self, state_count: int = 0):
        """
        Args:
            state_count: initial number of states; they are all terminal
                until actions are added.
        """
        if state_count < 0:
            raise IndexOutOfRange(f"State count must be non-negative; got {state_count}")
        self._states: List[StateType] = [self.new_state() for _ in range(state_count)]

    @abc.abstractmethod
    def new_state(self) -> StateType:
        """
        Creates an empty (terminal) state of the type this process holds.
        """
        raise NotImplementedError()

    def create_state(self, stateid: Optional[core.StateId] = None) -> StateType:
        """
        Returns the state, creating it if needed.
        States with intermediate ids are created too, and are terminal.
        Without `stateid`, a new state is appended.
        """
        if stateid is None:
            stateid = len(self._states)
        if not core.is_index(stateid):
            raise IndexOutOfRange(f"State id must be a non-negative integer; got {stateid!r}")
        if stateid >= len(self._states):
            logging.debug("Growing process from %d to %d states", len(self._states), stateid + 1)
            self._states.extend(
                self.new_state() for _ in range(stateid + 1 - len(self._states))
            )
        return self._states[stateid]

    def state_count(self) -> int:
        return len(self._states)

    def size(self) -> int:
        return self.state_count()

    def get_state(self, stateid: core.StateId) -> StateType:
        if not (core.is_index(stateid) and stateid < len(self._states)):
            raise IndexOutOfRange(
                f"State {stateid!r} is out of range; process has {len(self._states)} states"
            )
        return self._states[stateid]

    def get_states(self) -> Sequence[StateType]:
        return tuple(self._states)

    def is_terminal(self, stateid: core.StateId) -> bool:
        return self.get_state(stateid).is_terminal()

    def mean_reward(
        self, stateid: core.StateId, actionid: core.ActionId, outcome: core.OutcomeChoice
    ) -> float:
        return self.get_state(stateid).mean_reward(actionid, outcome)

    def mean_transition(
        self, stateid: core.StateId, actionid: core.ActionId, outcome: core.OutcomeChoice
    ) -> Transition:
        return self.get_state(stateid).mean_transition(actionid, outcome)

    def is_normalized(self) -> bool:
        """
        Checks if all transitions sum to one. States without actions
        and actions without target states do not affect the result.
        """
        return all(state.is_normalized() for state in self._states)

    def normalize(self) -> None:
        """
        Normalizes transitions to sum to one for all states, actions and outcomes.
        """
        for state in self._states:
            state.normalize()

    def rewards_state(
        self, policy: core.ActionPolicy, nature: core.OutcomePolicy
    ) -> np.ndarray:
        """
        Expected reward of each state; zero for terminal states.

        Args:
            policy: policy of the decision maker.
            nature: policy of nature.
        """
        self._check_policies(policy, nature)
        rewards = np.zeros(shape=len(self._states), dtype=core.DTYPE)
        for stateid, state in enumerate(self._states):
            if not state.is_terminal():
                rewards[stateid] = state.mean_reward(policy[stateid], nature[stateid])
        return rewards

    def is_policy_correct(
        self, policy: core.ActionPolicy, nature: core.OutcomePolicy
    ) -> int:
        """
        Checks if the policy and nature's policy are both correct.
        Action and outcome can be arbitrary for terminal states.

        Returns:
            The first state with an incorrect action or outcome,
            or `core.POLICY_CORRECT` if there is none.
        """
        for stateid, state in enumerate(self._states):
            if state.is_terminal():
                continue
            if stateid >= len(policy) or stateid >= len(nature):
                return stateid
            if not state.is_action_outcome_correct(policy[stateid], nature[stateid]):
                return stateid
        return core.POLICY_CORRECT

    def transition_mat(
        self, policy: core.ActionPolicy, nature: core.OutcomePolicy
    ) -> np.ndarray:
        """
        Transition matrix for the policies; row s holds the
        transition of state s. Terminal states have all-zero rows.
        """
        self._check_policies(policy, nature)
        size = len(self._states)
        result = np.zeros(shape=(size, size), dtype=core.DTYPE)
        for stateid, state in enumerate(self._states):
            if state.is_terminal():
                continue
            transition = state.mean_transition(policy[stateid], nature[stateid])
            result[stateid, :] = transition.probabilities_vector(size)
        return result

    def transition_mat_t(
        self, policy: core.ActionPolicy, nature: core.OutcomePolicy
    ) -> np.ndarray:
        """
        Transpose of the transition matrix for the policies; column s holds
        the transition of state s. Terminal states have all-zero columns.
        """
        self._check_policies(policy, nature)
        size = len(self._states)
        result = np.zeros(shape=(size, size), dtype=core.DTYPE)
        for stateid, state in enumerate(self._states):
            if state.is_terminal():
                continue
            transition = state.mean_transition(policy[stateid], nature[stateid])
            result[:, stateid] = transition.probabilities_vector(size)
        return result

    def ofreq_mat(
        self,
        init: Union[Transition, Sequence[float], np.ndarray],
        discount: float,
        policy: core.ActionPolicy,
        nature: core.OutcomePolicy,
    ) -> np.ndarray:
        """
        Computes occupancy frequencies by solving
        (I - discount * P^T) f = init
        with an LU factorization. This may not scale well to large processes.

        Args:
            init: initial distribution (alpha).
            discount: discount factor (gamma).
            policy: policy of the decision maker.
            nature: policy of nature.

        Raises:
            SingularSystem: if the system has no unique solution.
        """
        _check_discount(discount)
        initial = self._initial_vector(init)
        matrix = np.identity(len(self._states), dtype=core.DTYPE) - discount * (
            self.transition_mat_t(policy, nature)
        )
        return _solve(matrix, initial)

    def value_mat(
        self, discount: float, policy: core.ActionPolicy, nature: core.OutcomePolicy
    ) -> np.ndarray:
        """
        Value function of the policies, solving
        (I - discount * P) v = r
        directly.
        """
        _check_discount(discount)
        rewards = self.rewards_state(policy, nature)
        matrix = np.identity(len(self._states), dtype=core.DTYPE) - discount * (
            self.transition_mat(policy, nature)
        )
        return _solve(matrix, rewards)

    def return_mat(
        self,
        init: Union[Transition, Sequence[float], np.ndarray],
        discount: float,
        policy: core.ActionPolicy,
        nature: core.OutcomePolicy,
    ) -> float:
        """
        Expected discounted return from the initial distribution.
        """
        initial = self._initial_vector(init)
        values = self.value_mat(discount, policy, nature)
        return float(np.dot(initial, values))

    def to_csv(self, output: TextIO, header: bool = True) -> None:
        """
        Writes the process as csv, one row per target state:
        idstatefrom, idaction, idoutcome, idstateto, probability, reward

        Actions and outcomes without target states are not written,
        so an exported and imported process may differ in them.
        Outcome distributions are not saved.
        """
        if header:
            output.write(",".join(CSV_HEADER))
            output.write("\n")
        for stateid, state in enumerate(self._states):
            for actionid, action in enumerate(state.get_actions()):
                for outcomeid, outcome in enumerate(action.get_outcomes()):
                    for stateto, probability, reward in outcome.transition:
                        output.write(
                            f"{stateid},{actionid},{outcomeid},{stateto},{probability!r},{reward!r}\n"
                        )

    def to_json(self) -> str:
        """
        Json representation of the process; mostly suitable for small processes.
        """
        return json.dumps(
            {
                "states": [
                    state.to_json(stateid) for stateid, state in enumerate(self._states)
                ]
            }
        )

    def to_string(self) -> str:
        """
        Brief string representation; mostly suitable for small processes.
        """
        lines = []
        for stateid, state in enumerate(self._states):
            lines.append(f"{stateid} : {state.action_count()}")
            for actionid, action in enumerate(state.get_actions()):
                lines.append(f"    {actionid} : {action.to_string()}")
        return "".join(f"{line}\n" for line in lines)

    def _check_policies(
        self, policy: core.ActionPolicy, nature: core.OutcomePolicy
    ) -> None:
        if len(policy) != len(self._states) or len(nature) != len(self._states):
            raise IndexOutOfRange(
                f"Policies must have one entry per state ({len(self._states)}); got {len(policy)} actions and {len(nature)} outcomes"
            )

    def _initial_vector(
        self, init: Union[Transition, Sequence[float], np.ndarray]
    ) -> np.ndarray:
        if isinstance(init, Transition):
            return init.probabilities_vector(len(self._states))
        initial = np.asarray(init, dtype=core.DTYPE)
        if initial.shape != (len(self._states),):
            raise IndexOutOfRange(
                f"Initial distribution must have {len(self._states)} entries; got shape {initial.shape}"
            )
        return initial

    def __getitem__(self, stateid: core.StateId) -> StateType:
        return self.get_state(stateid)

    def __iter__(self) -> Iterator[StateType]:
        return iter(self._states)

    def __len__(self) -> int:
        return self.state_count()


class Mdp(DecisionProcess[RegularState]):
    """
    Plain MDP with one outcome per action.
    Nature's policy is ignored beyond requiring outcome 0.
    """

    def new_state(self) -> RegularState:
        return RegularState()


class Rmdp(DecisionProcess[WeightedRobustState]):
    """
    Robust MDP with discrete outcomes per action, a nominal
    outcome distribution and an L1 threshold.
    """

    def new_state(self) -> WeightedRobustState:
        return WeightedRobustState()


def _check_discount(discount: float) -> None:
    if not 0.0 <= discount <= 1.0:
        raise ValueError(f"Discount must be in [0, 1]; got {discount}")


def _solve(matrix: np.ndarray, rhs: np.ndarray) -> np.ndarray:
    """
    Solves matrix @ x = rhs with an LU factorization with partial pivoting.
    """
    size = matrix.shape[0]
    if size == 0:
        return np.zeros(shape=0, dtype=core.DTYPE)

    logging.debug("Solving linear system for %d states", size)
    with warnings.catch_warnings():
        warnings.simplefilter("error", category=linalg.LinAlgWarning)
        try:
            lu, piv = linalg.lu_factor(matrix)
        except linalg.LinAlgWarning as err:
            raise SingularSystem(f"Matrix is singular: {err}") from err

    pivots = np.abs(np.diag(lu))
    scale = max(1.0, float(np.max(np.abs(matrix))))
    if np.min(pivots) <= size * np.finfo(core.DTYPE).eps * scale:
        raise SingularSystem(
            f"Matrix is singular; smallest pivot is {np.min(pivots)}"
        )
    solution = linalg.lu_solve((lu, piv), rhs)
    if not np.all(np.isfinite(solution)):
        raise SingularSystem("Linear system solution is not finite")
    return solution
