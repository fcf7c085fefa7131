import pytest
import torch

from game import Board
from learning import POLICIES, Smoothed, Step, TD0, TemporalCoherence, make_policy, replay
from ntuple import NUM_GROUPS, NTupleNetwork

# every exponent 2: with max_index 3 all patterns land on the last slot
FULL = Board([[2] * 4 for _ in range(4)])
LAST = 3**6 - 1


def test_empty_history_is_a_no_op():
    network = NTupleNetwork(max_index=3, coherence=True)
    network.weights.fill_(1.0)
    before = [t.clone() for t in network.tables()]
    assert replay(network, [], TemporalCoherence(0.1)) == 0.0
    assert all(torch.equal(a, b) for a, b in zip(before, network.tables()))


def test_single_step_episode_targets_zero():
    network = NTupleNetwork(max_index=3)
    network.weights.fill_(1.0)
    final = Board()
    value = network.board_value(final)
    assert value == pytest.approx(32.0)

    replay(network, [Step(final, 4)], TD0(0.1))

    # each of the 8 patterns per group adds -alpha * V(final) to slot 0
    delta = -0.1 * value
    assert network.weights[:, 0].tolist() == pytest.approx([1.0 + 8 * delta] * NUM_GROUPS)
    # other slots untouched
    assert network.weights[:, 1].tolist() == [1.0] * NUM_GROUPS


def test_td0_uses_next_reward_and_value():
    network = NTupleNetwork(max_index=3)
    history = [Step(Board(), 0), Step(FULL, 8)]

    replay(network, history, TD0(0.5))

    # terminal: V(FULL) == 0 so nothing moves; then delta = 8 + 0 - 0
    assert network.weights[:, LAST].tolist() == [0.0] * NUM_GROUPS
    assert network.weights[:, 0].tolist() == [8 * 0.5 * 8] * NUM_GROUPS
    assert network.board_value(Board()) == pytest.approx(32 * 32.0)


def test_tc_rate_starts_at_one():
    network = NTupleNetwork(max_index=3, coherence=True)
    assert network.coherence_rate(0, 0) == 1.0
    assert network.coherence_rate(3, LAST) == 1.0


def test_tc_terminal_update():
    network = NTupleNetwork(max_index=3, coherence=True, epsilon=1e-6)
    network.weights.fill_(1.0)
    final = Board()

    carry = replay(network, [Step(final, 0)], TemporalCoherence(0.1))

    # delta = 0 - 32, carry = alpha * delta
    assert carry == pytest.approx(-3.2)
    # 8 hits per slot, each moving the weight by carry * rate / 8 with rate ~ 1
    assert network.weights[:, 0].tolist() == pytest.approx([1.0 - 3.2] * NUM_GROUPS, rel=1e-4)
    assert network.signed[:, 0].tolist() == pytest.approx([-32.0] * NUM_GROUPS, rel=1e-4)
    assert network.absolute[:, 0].tolist() == pytest.approx([32.0] * NUM_GROUPS, rel=1e-4)
    assert network.coherence_rate(0, 0) == pytest.approx(1.0, rel=1e-4)


def test_tc_accumulators_track_noisy_slots():
    network = NTupleNetwork(max_index=3, coherence=True)
    policy = TemporalCoherence(0.1)
    board = Board()

    policy.update(network, board, 16.0, 0.0)
    policy.update(network, board, -16.0, 0.0)

    # deltas of opposite sign cancel in E but not in A
    assert network.coherence_rate(0, 0) < 1.0
    assert network.absolute[0, 0].item() > abs(network.signed[0, 0].item())


def test_tc_carry_blends_previous_correction():
    network = NTupleNetwork(max_index=3, coherence=True)
    policy = TemporalCoherence(0.5, lambda_=0.5)
    carry = policy.update(network, FULL, 2.0, 3.0)
    # delta = 2 - 0
    assert carry == pytest.approx(0.5 * 2.0 + 3.0 * 0.5)


def test_tc_replay_carries_terminal_correction():
    network = NTupleNetwork(max_index=3, coherence=True, epsilon=1e-6)
    network.weights[:, LAST] = 0.125  # V(FULL) == 4

    history = [Step(Board(), 0), Step(FULL, 8)]
    carry = replay(network, history, TemporalCoherence(0.5, lambda_=0.5))

    # terminal: delta = -4, carry = -2, spread over the 8 hits of LAST
    assert network.weights[:, LAST].tolist() == pytest.approx([-1.875] * NUM_GROUPS, rel=1e-4)
    assert network.signed[:, LAST].tolist() == pytest.approx([-4.0] * NUM_GROUPS, rel=1e-4)
    assert network.absolute[:, LAST].tolist() == pytest.approx([4.0] * NUM_GROUPS, rel=1e-4)
    # then target = 8 + V(FULL) = 8 - 60, delta = -52, carry = -26 + -2 * 0.5
    assert carry == pytest.approx(-27.0, rel=1e-4)
    assert network.weights[:, 0].tolist() == pytest.approx([-27.0] * NUM_GROUPS, rel=1e-4)
    assert network.signed[:, 0].tolist() == pytest.approx([-52.0] * NUM_GROUPS, rel=1e-4)
    assert network.absolute[:, 0].tolist() == pytest.approx([52.0] * NUM_GROUPS, rel=1e-4)


def test_smoothed_policy():
    network = NTupleNetwork(max_index=3)
    policy = Smoothed(0.5, lambda_=0.5)

    carry = policy.terminal(network, FULL)
    assert carry == 0.0

    carry = policy.update(network, Board(), 4.0, 1.0)
    # step = 0.5 * 4, blended half and half with the previous carry
    assert carry == pytest.approx(2.0 * 0.5 + 1.0 * 0.5)
    assert network.weights[0, 0].item() == pytest.approx(8 * carry)


def test_make_policy():
    assert set(POLICIES) == {"td0", "tc", "smooth"}
    policy = make_policy("tc", 0.01)
    assert isinstance(policy, TemporalCoherence)
    assert policy.alpha == 0.01
    with pytest.raises(ValueError):
        make_policy("sarsa", 0.01)


def test_extreme_delta_does_not_raise():
    network = NTupleNetwork(max_index=3, coherence=True)
    replay(network, [Step(Board(), 0), Step(FULL, 1e30)], TemporalCoherence(1.0))
    assert network.weights.abs().max().item() > 0
