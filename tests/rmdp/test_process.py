import io
import json

import hypothesis
import hypothesis.strategies as st
import numpy as np
import pytest

from rmdp import core, modeltools
from rmdp.errors import IndexOutOfRange, SingularSystem, StructuralError
from rmdp.process import DecisionProcess, Mdp, Rmdp
from rmdp.states import RegularState, WeightedRobustState
from rmdp.transition import Transition
from tests.rmdp import processes


def test_mdp_init():
    mdp = Mdp(4)

    assert mdp.state_count() == 4
    assert mdp.size() == 4
    assert len(mdp) == 4
    assert all(isinstance(state, RegularState) for state in mdp)
    assert all(mdp.is_terminal(stateid) for stateid in range(4))


def test_rmdp_init():
    rmdp = Rmdp()

    assert rmdp.state_count() == 0
    assert isinstance(rmdp.create_state(), WeightedRobustState)
    assert rmdp.state_count() == 1


def test_mdp_init_with_negative_count():
    with pytest.raises(IndexOutOfRange):
        Mdp(-1)


@hypothesis.given(
    initial_count=st.integers(min_value=0, max_value=10),
    stateid=st.integers(min_value=0, max_value=20),
)
@hypothesis.settings(deadline=None)
def test_mdp_create_state_grows_with_terminal_states(initial_count: int, stateid: int):
    mdp = Mdp(initial_count)
    if initial_count > 0:
        modeltools.add_transition(mdp, initial_count - 1, 0, 0, 1.0, 1.0)

    state = mdp.create_state(stateid)

    assert mdp.state_count() == max(initial_count, stateid + 1)
    assert state is mdp.get_state(stateid)
    for other in range(mdp.state_count()):
        assert mdp[other] is mdp.get_state(other)
        if other >= initial_count:
            assert mdp.is_terminal(other)


def test_mdp_create_state_appends():
    mdp = Mdp(2)

    state = mdp.create_state()

    assert mdp.state_count() == 3
    assert state is mdp.get_state(2)


def test_mdp_create_state_with_negative_id():
    with pytest.raises(IndexOutOfRange):
        Mdp().create_state(-1)


@pytest.mark.parametrize("stateid", [-1, 3, 10])
def test_mdp_get_state_out_of_range(stateid: int):
    mdp = Mdp(3)

    with pytest.raises(IndexOutOfRange):
        mdp.get_state(stateid)
    with pytest.raises(IndexOutOfRange):
        mdp.is_terminal(stateid)


def test_mdp_rewards_state():
    mdp = processes.three_state_mdp()

    np.testing.assert_allclose(mdp.rewards_state([0, 0, 0], [0, 0, 0]), [0.0, 1.0, 1.0])
    np.testing.assert_allclose(mdp.rewards_state([1, 1, 1], [0, 0, 0]), [0.0, 0.0, 1.1])


def test_mdp_collaborator_primitives():
    mdp = processes.three_state_mdp()

    assert mdp.mean_reward(2, 1, 0) == 1.1
    assert mdp.mean_transition(1, 1, 0) == Transition(indices=[2], probabilities=[1.0], rewards=[0.0])
    assert not mdp.is_terminal(0)


def test_mdp_single_terminal_state():
    mdp = Mdp(1)

    assert mdp.is_terminal(0)
    np.testing.assert_array_equal(mdp.rewards_state([3], [9]), [0.0])
    assert mdp.is_policy_correct([3], [9]) == core.POLICY_CORRECT
    assert mdp.is_policy_correct([-1], [[0.5]]) == core.POLICY_CORRECT


def test_mdp_rewards_state_with_policy_of_wrong_length():
    mdp = processes.three_state_mdp()

    with pytest.raises(IndexOutOfRange):
        mdp.rewards_state([0, 0], [0, 0, 0])
    with pytest.raises(IndexOutOfRange):
        mdp.transition_mat([0, 0, 0], [0, 0, 0, 0])


def test_mdp_rewards_state_with_invalid_action():
    mdp = processes.three_state_mdp()

    with pytest.raises(IndexOutOfRange):
        mdp.rewards_state([0, 2, 0], [0, 0, 0])


def test_mdp_is_policy_correct():
    mdp = processes.three_state_mdp()
    # terminal state
    mdp.create_state(3)

    assert mdp.is_policy_correct([0, 1, 0, 99], [0, 0, 0, 99]) == core.POLICY_CORRECT
    assert mdp.is_policy_correct([0, 2, 0, 0], [0, 0, 0, 0]) == 1
    assert mdp.is_policy_correct([0, 0, -1, 0], [0, 0, 0, 0]) == 2
    assert mdp.is_policy_correct([0, 0, 0, 0], [0, 1, 0, 0]) == 1
    # first violation only
    assert mdp.is_policy_correct([5, 5, 5, 0], [0, 0, 0, 0]) == 0
    # missing entries
    assert mdp.is_policy_correct([0], [0]) == 1


def test_rmdp_is_policy_correct():
    rmdp = processes.two_outcome_rmdp()

    assert rmdp.is_policy_correct([0, 0, 0], [1, 0, 0]) == core.POLICY_CORRECT
    assert rmdp.is_policy_correct([0, 0, 0], [[0.3, 0.7], 0, 0]) == core.POLICY_CORRECT
    assert rmdp.is_policy_correct([0, 0, 0], [2, 0, 0]) == 0
    assert rmdp.is_policy_correct([0, 0, 0], [[0.3, 0.6], 0, 0]) == 0


def test_mdp_transition_mat():
    mdp = processes.three_state_mdp()

    np.testing.assert_array_equal(
        mdp.transition_mat([0, 0, 0], [0, 0, 0]),
        [[0.0, 1.0, 0.0], [0.0, 1.0, 0.0], [0.0, 1.0, 0.0]],
    )
    np.testing.assert_array_equal(
        mdp.transition_mat([1, 1, 1], [0, 0, 0]),
        [[0.0, 1.0, 0.0], [0.0, 0.0, 1.0], [0.0, 0.0, 1.0]],
    )
    np.testing.assert_array_equal(
        mdp.transition_mat_t([1, 1, 1], [0, 0, 0]),
        [[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 1.0, 1.0]],
    )


def test_mdp_transition_mat_with_terminal_state():
    mdp = Mdp()
    modeltools.add_transition(mdp, 0, 0, 1, 0.5, 1.0)
    modeltools.add_transition(mdp, 0, 0, 2, 0.5, 1.0)

    # terminal states have no self loops
    np.testing.assert_array_equal(
        mdp.transition_mat([0, 0, 0], [0, 0, 0]),
        [[0.0, 0.5, 0.5], [0.0, 0.0, 0.0], [0.0, 0.0, 0.0]],
    )


@hypothesis.given(transitions=processes.transition_specs())
@hypothesis.settings(deadline=None)
def test_mdp_transition_mat_t_is_transpose(transitions):
    mdp = processes.build_mdp(transitions)
    policy = [0] * mdp.state_count()
    nature = [0] * mdp.state_count()

    np.testing.assert_array_equal(
        mdp.transition_mat_t(policy, nature), mdp.transition_mat(policy, nature).T
    )


def test_rmdp_rewards_state_and_transition_mat():
    rmdp = processes.two_outcome_rmdp()

    np.testing.assert_allclose(rmdp.rewards_state([0, 0, 0], [1, 0, 0]), [2.0, 0.0, 0.0])
    np.testing.assert_allclose(
        rmdp.rewards_state([0, 0, 0], [[0.5, 0.5], 0, 0]), [1.5, 0.0, 0.0]
    )
    np.testing.assert_allclose(
        rmdp.transition_mat([0, 0, 0], [[0.25, 0.75], 0, 0]),
        [[0.0, 0.25, 0.75], [0.0, 0.0, 0.0], [0.0, 0.0, 0.0]],
    )


def test_rmdp_action_without_outcomes():
    rmdp = Rmdp()
    rmdp.create_state(0).create_action(0)

    with pytest.raises(StructuralError):
        rmdp.rewards_state([0], [0])
    with pytest.raises(StructuralError):
        rmdp.transition_mat([0], [0])


def test_rmdp_outcome_without_targets():
    rmdp = processes.two_outcome_rmdp()
    rmdp.get_state(0).get_action(0).create_outcome(2)

    np.testing.assert_allclose(rmdp.rewards_state([0, 0, 0], [0, 0, 0]), [1.0, 0.0, 0.0])
    with pytest.raises(StructuralError):
        rmdp.rewards_state([0, 0, 0], [2, 0, 0])


def test_mdp_ofreq_mat():
    mdp = processes.three_state_mdp()
    init = np.ones(3) / 3

    ofreq = mdp.ofreq_mat(init, 0.9, [0, 0, 0], [0, 0, 0])

    # f = init + 0.9 * P^T f; all mass flows into state 1
    np.testing.assert_allclose(ofreq, [1 / 3, (1 / 3 + 0.9 * 2 / 3) / 0.1, 1 / 3])
    np.testing.assert_allclose(np.sum(ofreq), 1 / (1 - 0.9))


def test_mdp_ofreq_mat_with_transition_init():
    mdp = processes.three_state_mdp()
    init = Transition(indices=[0], probabilities=[1.0])

    ofreq = mdp.ofreq_mat(init, 0.5, [1, 1, 1], [0, 0, 0])

    # 0 -> 1 -> 2 -> 2 ...
    np.testing.assert_allclose(ofreq, [1.0, 0.5, 0.25 / 0.5])


@hypothesis.given(
    transitions=processes.transition_specs(),
    weights=st.lists(st.floats(min_value=0.0, max_value=1.0), min_size=6, max_size=6),
)
@hypothesis.settings(deadline=None)
def test_mdp_ofreq_mat_with_zero_discount(transitions, weights):
    mdp = processes.build_mdp(transitions)
    init = np.array(weights[: mdp.state_count()])
    policy = [0] * mdp.state_count()

    ofreq = mdp.ofreq_mat(init, 0.0, policy, policy)

    np.testing.assert_array_equal(ofreq, init)


def test_mdp_ofreq_mat_with_terminal_state_and_no_discount():
    mdp = Mdp()
    modeltools.add_transition(mdp, 0, 0, 1, 1.0, 1.0)

    ofreq = mdp.ofreq_mat([1.0, 0.0], 1.0, [0, 0], [0, 0])

    np.testing.assert_allclose(ofreq, [1.0, 1.0])


def test_mdp_ofreq_mat_singular():
    mdp = Mdp()
    modeltools.add_transition(mdp, 0, 0, 0, 1.0, 1.0)

    with pytest.raises(SingularSystem):
        mdp.ofreq_mat([1.0], 1.0, [0], [0])


def test_mdp_ofreq_mat_singular_chain():
    mdp = Mdp()
    modeltools.add_transition(mdp, 0, 0, 0, 0.5, 1.0)
    modeltools.add_transition(mdp, 0, 0, 1, 0.5, 1.0)
    modeltools.add_transition(mdp, 1, 0, 0, 0.5, 1.0)
    modeltools.add_transition(mdp, 1, 0, 1, 0.5, 1.0)

    with pytest.raises(SingularSystem):
        mdp.ofreq_mat([0.5, 0.5], 1.0, [0, 0], [0, 0])
    with pytest.raises(SingularSystem):
        mdp.value_mat(1.0, [0, 0], [0, 0])


@pytest.mark.parametrize("discount", [-0.1, 1.1])
def test_mdp_ofreq_mat_with_invalid_discount(discount: float):
    mdp = processes.three_state_mdp()

    with pytest.raises(ValueError):
        mdp.ofreq_mat([1.0, 0.0, 0.0], discount, [0, 0, 0], [0, 0, 0])


def test_mdp_ofreq_mat_with_invalid_init():
    mdp = processes.three_state_mdp()

    with pytest.raises(IndexOutOfRange):
        mdp.ofreq_mat([1.0, 0.0], 0.9, [0, 0, 0], [0, 0, 0])
    with pytest.raises(IndexOutOfRange):
        mdp.ofreq_mat(Transition(indices=[3], probabilities=[1.0]), 0.9, [0, 0, 0], [0, 0, 0])


def test_empty_mdp_evaluation():
    mdp = Mdp()

    assert mdp.rewards_state([], []).shape == (0,)
    assert mdp.transition_mat([], []).shape == (0, 0)
    assert mdp.ofreq_mat([], 0.9, [], []).shape == (0,)
    assert mdp.is_policy_correct([], []) == core.POLICY_CORRECT


def test_mdp_value_mat_and_return_mat():
    mdp = processes.three_state_mdp()
    init = np.ones(3) / 3
    policy = [0, 0, 0]
    nature = [0, 0, 0]

    values = mdp.value_mat(0.9, policy, nature)
    ret = mdp.return_mat(init, 0.9, policy, nature)

    np.testing.assert_allclose(values, [9.0, 10.0, 10.0])
    assert ret == pytest.approx(29 / 3)
    # the return is also the occupancy frequency weighted reward
    ofreq = mdp.ofreq_mat(init, 0.9, policy, nature)
    assert ret == pytest.approx(np.dot(ofreq, mdp.rewards_state(policy, nature)))


def test_mdp_normalize():
    mdp = Mdp()
    modeltools.add_transition(mdp, 0, 0, 1, 0.5, 1.0)
    modeltools.add_transition(mdp, 0, 0, 2, 1.5, 1.0)
    # placeholder action
    mdp.get_state(0).create_action(1)

    assert not mdp.is_normalized()
    mdp.normalize()
    assert mdp.is_normalized()
    assert mdp.get_state(0).get_action(0).mean_transition(0).probabilities == (0.25, 0.75)


def test_mdp_to_csv():
    mdp = processes.three_state_mdp()
    output = io.StringIO()

    mdp.to_csv(output)

    assert output.getvalue() == (
        "idstatefrom,idaction,idoutcome,idstateto,probability,reward\n"
        "0,0,0,1,1.0,0.0\n"
        "0,1,0,1,1.0,0.0\n"
        "1,0,0,1,1.0,1.0\n"
        "1,1,0,2,1.0,0.0\n"
        "2,0,0,1,1.0,1.0\n"
        "2,1,0,2,1.0,1.1\n"
    )


def test_mdp_to_csv_without_header_skips_empty_actions():
    mdp = Mdp()
    mdp.create_state(0).create_action(0)
    modeltools.add_transition(mdp, 0, 1, 0, 1.0, 2.0)
    output = io.StringIO()

    mdp.to_csv(output, header=False)

    assert output.getvalue() == "0,1,0,0,1.0,2.0\n"


def test_rmdp_to_csv():
    rmdp = processes.two_outcome_rmdp()
    output = io.StringIO()

    rmdp.to_csv(output, header=False)

    assert output.getvalue() == "0,0,0,1,1.0,1.0\n0,0,1,2,1.0,2.0\n"


def test_empty_mdp_to_json():
    assert json.loads(Mdp().to_json()) == {"states": []}


def test_mdp_to_json():
    mdp = processes.three_state_mdp()
    mdp.create_state(3)

    payload = json.loads(mdp.to_json())

    assert [state["stateid"] for state in payload["states"]] == [0, 1, 2, 3]
    assert len(payload["states"][0]["actions"]) == 2
    assert payload["states"][3]["actions"] == []
    assert payload["states"][2]["actions"][1] == {
        "actionid": 1,
        "outcomes": [
            {"outcomeid": 0, "stateids": [2], "probabilities": [1.0], "rewards": [1.1]}
        ],
    }


def test_rmdp_to_json():
    rmdp = processes.two_outcome_rmdp()

    payload = json.loads(rmdp.to_json())

    action = payload["states"][0]["actions"][0]
    assert action["threshold"] == 0.0
    assert action["distribution"] == [0.5, 0.5]
    assert [outcome["outcomeid"] for outcome in action["outcomes"]] == [0, 1]


def test_mdp_exports_do_not_mutate():
    mdp = processes.three_state_mdp()
    before = mdp.to_json()

    mdp.to_csv(io.StringIO())
    mdp.to_string()

    assert mdp.to_json() == before
    assert mdp.state_count() == 3


def test_mdp_to_string():
    mdp = processes.three_state_mdp()

    lines = mdp.to_string().splitlines()

    assert lines[0] == "0 : 2"
    assert lines[1] == "    0 : 0 -> [1: 1.0 (r=0.0)]"
    assert len(lines) == 9


@pytest.mark.parametrize("stateid", [0.0, 1.5, "0", None])
def test_mdp_get_state_with_non_integer_id(stateid):
    mdp = Mdp(3)

    with pytest.raises(IndexOutOfRange):
        mdp.get_state(stateid)
    with pytest.raises(IndexOutOfRange):
        mdp.mean_reward(stateid, 0, 0)


@pytest.mark.parametrize("stateid", [1.0, "2", np.float64(0)])
def test_mdp_create_state_with_non_integer_id(stateid):
    mdp = Mdp(1)

    with pytest.raises(IndexOutOfRange):
        mdp.create_state(stateid)
    assert mdp.state_count() == 1


def test_mdp_get_state_with_numpy_integer_id():
    mdp = processes.three_state_mdp()

    assert mdp.get_state(np.int64(2)) is mdp.get_state(2)


def test_mdp_is_policy_correct_with_non_integer_action():
    mdp = processes.three_state_mdp()

    assert mdp.is_policy_correct([0, 1.0, 0], [0, 0, 0]) == 1
    assert mdp.is_policy_correct([0, 0, 0], [0, 0, 0.0]) == 2
    with pytest.raises(IndexOutOfRange):
        mdp.rewards_state([0.0, 0, 0], [0, 0, 0])


def test_mean_transition_changes_do_not_reach_the_process():
    mdp = processes.three_state_mdp()
    rmdp = processes.two_outcome_rmdp()
    mdp_csv, rmdp_csv = io.StringIO(), io.StringIO()
    mdp.to_csv(mdp_csv)
    rmdp.to_csv(rmdp_csv)

    transition = mdp.mean_transition(2, 1, 0)
    transition.add(0, 3.0, 5.0)
    transition.normalize()
    transition = rmdp.mean_transition(0, 0, 1)
    transition.add(0, 3.0, 5.0)

    mdp_after, rmdp_after = io.StringIO(), io.StringIO()
    mdp.to_csv(mdp_after)
    rmdp.to_csv(rmdp_after)
    assert mdp_after.getvalue() == mdp_csv.getvalue()
    assert rmdp_after.getvalue() == rmdp_csv.getvalue()
    np.testing.assert_allclose(mdp.transition_mat([0, 0, 1], [0, 0, 0])[2], [0.0, 0.0, 1.0])


class ResetState:
    """
    A state outside the `State` hierarchy: its single action
    moves to state 0 with reward 1.
    """

    def mean_reward(self, actionid, outcome):
        return 1.0

    def mean_transition(self, actionid, outcome):
        return Transition(indices=[0], probabilities=[1.0], rewards=[1.0])

    def is_terminal(self):
        return False

    def is_action_outcome_correct(self, actionid, outcome):
        return actionid == 0 and outcome == 0

    def action_count(self):
        return 1

    def create_action(self, actionid=None):
        raise NotImplementedError()

    def get_actions(self):
        return ()

    def is_normalized(self):
        return True

    def normalize(self):
        pass

    def to_json(self, stateid):
        return {"stateid": stateid, "actions": []}


class ResetProcess(DecisionProcess[ResetState]):
    def new_state(self) -> ResetState:
        return ResetState()


def test_decision_process_with_custom_state_type():
    process = ResetProcess(2)

    np.testing.assert_allclose(process.rewards_state([0, 0], [0, 0]), [1.0, 1.0])
    np.testing.assert_allclose(process.transition_mat([0, 0], [0, 0]), [[1.0, 0.0], [1.0, 0.0]])
    np.testing.assert_allclose(process.value_mat(0.5, [0, 0], [0, 0]), [2.0, 2.0])
    assert process.is_policy_correct([0, 1], [0, 0]) == 1
    assert process.is_normalized()
    assert json.loads(process.to_json()) == {
        "states": [{"stateid": 0, "actions": []}, {"stateid": 1, "actions": []}]
    }
