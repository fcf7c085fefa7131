"""Expectimax move selection on top of the n-tuple value function."""

from dataclasses import dataclass

from game import Board, Direction, ILLEGAL
from ntuple import NTupleNetwork

# (tile exponent, probability) of a newly placed tile
TILE_PROBABILITIES = ((1, 0.9), (2, 0.1))

MOVES = tuple(Direction)


@dataclass
class Decision:
    move: Direction
    reward: int
    afterstate: Board
    value: float


class Expectimax:
    """
    Alternates decision nodes (the player picks the best of 4 moves) with
    chance nodes (a 2 or a 4 lands on a uniformly chosen empty cell).

    `depth` counts chance layers below the root decision: 0 evaluates each
    afterstate directly, 1 looks one tile placement and one more move ahead.
    """

    def __init__(self, network: NTupleNetwork, depth: int = 1):
        if depth < 0:
            raise ValueError(f"search depth must be non-negative, got {depth}")
        self.network = network
        self.depth = depth

    def select(self, board: Board) -> Decision | None:
        """Best move from `board`, or None when no move is legal."""
        return self.decide(board, self.depth)

    def decide(self, board: Board, depth: int) -> Decision | None:
        best = None
        for op in MOVES:
            after = board.copy()
            reward = after.slide(op)
            if reward == ILLEGAL:
                continue

            value = reward + self.expected_value(after, depth)
            # strict comparison keeps the first move on ties
            if best is None or value > best.value:
                best = Decision(op, reward, after, value)
        return best

    def expected_value(self, afterstate: Board, depth: int) -> float:
        if depth == 0:
            return self.network.board_value(afterstate)

        empty = afterstate.empty_cells()
        if not empty:
            return self.network.board_value(afterstate)

        expectation = 0.0
        for pos in empty:
            for tile, probability in TILE_PROBABILITIES:
                board = afterstate.copy()
                board.place(pos, tile)
                decision = self.decide(board, depth - 1)
                # a lost position contributes nothing
                if decision is not None:
                    expectation += probability * decision.value
        return expectation / len(empty)
