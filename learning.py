"""
Temporal difference training of the n-tuple network.

An episode is replayed from the last afterstate back to the first. The last
afterstate is pulled towards 0 since no reward follows it; every earlier one
is pulled towards `reward + V(next afterstate)`. Each update policy threads a
single carried float through the replay: `terminal` starts it, `update`
takes it and returns the next one.
"""

from dataclasses import dataclass

from game import Board
from ntuple import NTupleNetwork

LAMBDA = 0.5


@dataclass
class Step:
    afterstate: Board
    reward: float


class TD0:
    """Plain TD(0): every slot moves by alpha * delta."""

    name = "td0"

    def __init__(self, alpha: float, lambda_: float = LAMBDA):
        self.alpha = alpha
        self.lambda_ = lambda_

    def terminal(self, network: NTupleNetwork, final: Board) -> float:
        network.add(final, -self.alpha * network.board_value(final))
        return 0.0

    def update(
        self, network: NTupleNetwork, prev: Board, target: float, carry: float
    ) -> float:
        network.add(prev, self.alpha * (target - network.board_value(prev)))
        return carry


class TemporalCoherence(TD0):
    """
    TC learning: a blended correction `alpha * delta + carry * lambda` is
    applied through each slot's own adaptive rate |E| / A.
    """

    name = "tc"

    def terminal(self, network: NTupleNetwork, final: Board) -> float:
        return self.update(network, final, 0.0, 0.0)

    def update(
        self, network: NTupleNetwork, prev: Board, target: float, carry: float
    ) -> float:
        delta = target - network.board_value(prev)
        carry = self.alpha * delta + carry * self.lambda_
        network.coherent_add(prev, carry, delta)
        return carry


class Smoothed(TD0):
    """Exponentially smoothed TD step, shared learning rate for all slots."""

    name = "smooth"

    def terminal(self, network: NTupleNetwork, final: Board) -> float:
        step = -self.alpha * network.board_value(final)
        network.add(final, step)
        return step

    def update(
        self, network: NTupleNetwork, prev: Board, target: float, carry: float
    ) -> float:
        step = self.alpha * (target - network.board_value(prev))
        carry = step * (1.0 - self.lambda_) + carry * self.lambda_
        network.add(prev, carry)
        return carry


POLICIES = {policy.name: policy for policy in (TD0, TemporalCoherence, Smoothed)}


def make_policy(name: str, alpha: float, lambda_: float = LAMBDA) -> TD0:
    try:
        policy = POLICIES[name]
    except KeyError:
        raise ValueError(
            f"unknown learning policy {name!r}, expected one of {sorted(POLICIES)}"
        ) from None
    return policy(alpha, lambda_)


def replay(network: NTupleNetwork, history: list[Step], policy: TD0) -> float:
    """
    Train on one finished episode, newest step first.
    Returns the carried value left after the first step; 0 for an empty history.
    """
    if not history:
        return 0.0

    carry = policy.terminal(network, history[-1].afterstate)
    for i in range(len(history) - 2, -1, -1):
        nxt = history[i + 1]
        target = nxt.reward + network.board_value(nxt.afterstate)
        carry = policy.update(network, history[i].afterstate, target, carry)
    return carry
