"""
Example on evaluating fixed policies of a small MDP
and its robust counterpart.
"""

import argparse
import dataclasses
import logging

import numpy as np

from rmdp import core, modeltools
from rmdp.process import Mdp, Rmdp


@dataclasses.dataclass(frozen=True)
class Args:
    discount: float


def parse_args() -> Args:
    arg_parser = argparse.ArgumentParser(prog="Simple MDP - Policy Evaluation Example")
    arg_parser.add_argument("--discount", type=float, default=0.9)
    args, _ = arg_parser.parse_known_args()
    return Args(**vars(args))


def create_mdp() -> Mdp:
    mdp = Mdp(3)
    # transitions for action 0
    modeltools.add_transition(mdp, 0, 0, 1, 1.0, 0.0)
    modeltools.add_transition(mdp, 1, 0, 1, 1.0, 1.0)
    modeltools.add_transition(mdp, 2, 0, 1, 1.0, 1.0)
    # transitions for action 1
    modeltools.add_transition(mdp, 0, 1, 1, 1.0, 0.0)
    modeltools.add_transition(mdp, 1, 1, 2, 1.0, 0.0)
    modeltools.add_transition(mdp, 2, 1, 2, 1.0, 1.1)
    return mdp


def create_rmdp() -> Rmdp:
    """
    Same process, except action 1 in state 2 may fail
    and move into state 1 instead.
    """
    rmdp = Rmdp(3)
    for fromid, actionid, toid, reward in (
        (0, 0, 1, 0.0),
        (1, 0, 1, 1.0),
        (2, 0, 1, 1.0),
        (0, 1, 1, 0.0),
        (1, 1, 2, 0.0),
        (2, 1, 2, 1.1),
    ):
        modeltools.add_transition(rmdp, fromid, actionid, toid, 1.0, reward, outcomeid=0)
    modeltools.add_transition(rmdp, 2, 1, 1, 1.0, 0.0, outcomeid=1)
    rmdp.get_state(2).get_action(1).set_distribution([0.9, 0.1])
    modeltools.set_uniform_thresholds(rmdp, 0.2)
    return rmdp


def main(args: Args):
    mdp = create_mdp()
    logging.info("Process:\n%s", mdp.to_string())
    init = np.ones(mdp.state_count()) / mdp.state_count()
    nature = [0] * mdp.state_count()
    for actionid in range(2):
        policy = [actionid] * mdp.state_count()
        if mdp.is_policy_correct(policy, nature) != core.POLICY_CORRECT:
            raise ValueError(f"Policy {policy} is not valid")
        logging.info("Policy %s, rewards: %s", policy, mdp.rewards_state(policy, nature))
        logging.info("Values: %s", mdp.value_mat(args.discount, policy, nature))
        logging.info(
            "Occupancy frequencies: %s",
            mdp.ofreq_mat(init, args.discount, policy, nature),
        )

    rmdp = create_rmdp()
    policy = [1] * rmdp.state_count()
    nominal = [
        rmdp.get_state(stateid).get_action(1).distribution
        for stateid in range(rmdp.state_count())
    ]
    worst = [0, 0, 1]
    for name, nature in (("nominal", nominal), ("worst case", worst)):
        logging.info(
            "Robust process, %s nature, return: %f",
            name,
            rmdp.return_mat(init, args.discount, policy, nature),
        )


if __name__ == "__main__":
    main(args=parse_args())
