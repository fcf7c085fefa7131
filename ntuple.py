"""
n-tuple network: the value function of the 2048 player.

Each pattern is an ordered list of 6 cell ids. The exponents found at those
cells are read as the digits of a base-`max_index` number, which is the slot
of that pattern inside its weight table. The 32 patterns fall into 4 groups
of 8 symmetric copies (rotations and reflections of one shape), and each
group shares a single table.
"""

from typing import Callable

import torch

from game import Board, GRID_SIZE

MAX_INDEX = 21  # exponents at or above MAX_INDEX - 1 share a digit
TUPLE_LENGTH = 6
GROUP_SIZE = 8
NUM_GROUPS = 4

# temporal coherence updates are scaled down by this shared constant
COHERENCE_DIVISOR = TUPLE_LENGTH + 2

PATTERNS: tuple[tuple[int, ...], ...] = (
    # outer "six" shape
    (3, 2, 1, 0, 4, 5),
    (0, 4, 8, 12, 13, 9),
    (12, 13, 14, 15, 11, 10),
    (15, 11, 7, 3, 2, 6),
    (0, 1, 2, 3, 7, 6),
    (12, 8, 4, 0, 1, 5),
    (15, 14, 13, 12, 8, 9),
    (3, 7, 11, 15, 14, 10),
    # inner "six" shape
    (7, 6, 5, 4, 8, 9),
    (4, 5, 6, 7, 11, 10),
    (11, 10, 9, 8, 4, 5),
    (8, 9, 10, 11, 7, 6),
    (13, 9, 5, 1, 2, 6),
    (1, 5, 9, 13, 14, 10),
    (14, 10, 6, 2, 1, 5),
    (2, 6, 10, 14, 13, 9),
    # outer 2x3 rectangle
    (0, 1, 5, 9, 8, 4),
    (0, 4, 5, 6, 2, 1),
    (3, 7, 6, 5, 1, 2),
    (3, 2, 6, 10, 11, 7),
    (12, 13, 9, 5, 4, 8),
    (12, 8, 9, 10, 14, 13),
    (15, 11, 10, 9, 13, 14),
    (15, 14, 10, 6, 7, 11),
    # inner 2x3 rectangle
    (1, 2, 6, 10, 9, 5),
    (2, 1, 5, 9, 10, 6),
    (8, 4, 5, 6, 10, 9),
    (4, 8, 9, 10, 6, 5),
    (7, 11, 10, 9, 5, 6),
    (11, 7, 6, 5, 9, 10),
    (14, 13, 9, 5, 6, 10),
    (13, 14, 10, 6, 5, 9),
)

NUM_PATTERNS = len(PATTERNS)

_GROUPS = torch.tensor([i // GROUP_SIZE for i in range(NUM_PATTERNS)], dtype=torch.long)


def group_of(pattern_id: int) -> int:
    return pattern_id // GROUP_SIZE


def feature(board: Board, pattern: tuple[int, ...], max_index: int = MAX_INDEX) -> int:
    """
    Encode the cells of `pattern` as a table index.

    Tiles are clamped to `max_index - 1`, so very large tiles collapse onto the
    same digit. The first cell of the pattern is the most significant digit.
    """
    grid = board.grid
    index = 0
    for cell in pattern:
        tile = grid[cell // GRID_SIZE][cell % GRID_SIZE]
        index = index * max_index + min(tile, max_index - 1)
    return index


def features(board: Board, max_index: int = MAX_INDEX) -> list[int]:
    """Table index of every pattern, in pattern order."""
    return [feature(board, pattern, max_index) for pattern in PATTERNS]


class NTupleNetwork:
    """
    Weight tables of the value function.

    `weights` holds one row per group. When `coherence` is set, the network
    also carries the signed (`signed`) and absolute (`absolute`) accumulators
    used by temporal coherence learning, both seeded to `epsilon`.
    """

    def __init__(
        self,
        max_index: int = MAX_INDEX,
        coherence: bool = False,
        epsilon: float = 1e-6,
    ):
        if max_index < 2:
            raise ValueError(f"max_index must be at least 2, got {max_index}")
        if epsilon <= 0:
            raise ValueError(f"epsilon must be positive, got {epsilon}")

        self.max_index = max_index
        self.table_size = max_index**TUPLE_LENGTH
        self.coherence = coherence
        self.epsilon = epsilon

        self.weights = torch.zeros((NUM_GROUPS, self.table_size), dtype=torch.float32)
        self.signed = None
        self.absolute = None
        if coherence:
            self.signed = torch.full_like(self.weights, epsilon)
            self.absolute = torch.full_like(self.weights, epsilon)

    def indices(self, board: Board) -> list[int]:
        return features(board, self.max_index)

    def board_value(self, board: Board) -> float:
        idx = torch.tensor(self.indices(board), dtype=torch.long)
        return self.weights[_GROUPS, idx].sum().item()

    def add(self, board: Board, step: float) -> None:
        """Add `step` to the slot of every pattern (repeated slots add up)."""
        idx = torch.tensor(self.indices(board), dtype=torch.long)
        self.weights.index_put_(
            (_GROUPS, idx),
            torch.full((NUM_PATTERNS,), step, dtype=torch.float32),
            accumulate=True,
        )

    def coherence_rate(self, group: int, index: int) -> float:
        """Adaptive learning rate |E| / A of one slot."""
        if not self.coherence:
            raise RuntimeError("network was built without coherence accumulators")
        return abs(self.signed[group, index].item()) / self.absolute[group, index].item()

    def coherent_add(self, board: Board, correction: float, delta: float) -> None:
        """
        Temporal coherence update of every pattern slot of `board`.

        The weight moves by `correction` scaled by the slot's own rate, then the
        accumulators absorb the raw `delta`. Slots are visited one by one so
        that a slot hit by two patterns sees its first update.
        """
        if not self.coherence:
            raise RuntimeError("network was built without coherence accumulators")

        for pattern_id, index in enumerate(self.indices(board)):
            group = group_of(pattern_id)
            rate = self.coherence_rate(group, index)
            self.weights[group, index] += correction * rate / COHERENCE_DIVISOR
            self.signed[group, index] += delta / COHERENCE_DIVISOR
            self.absolute[group, index] += abs(delta) / COHERENCE_DIVISOR

    def tables(self) -> list[torch.Tensor]:
        """Tables in weight store order: values, then E and A when present."""
        tables = list(self.weights.unbind(0))
        if self.coherence:
            tables += list(self.signed.unbind(0))
            tables += list(self.absolute.unbind(0))
        return tables

    def load_tables(self, tables: list[torch.Tensor]) -> None:
        """
        Replace the tables with loaded ones.

        Accepts either the 4 value tables alone or values plus accumulators.
        Everything is validated before anything is copied.
        """
        if len(tables) not in (NUM_GROUPS, 3 * NUM_GROUPS):
            raise ValueError(
                f"expected {NUM_GROUPS} or {3 * NUM_GROUPS} tables, got {len(tables)}"
            )
        for i, table in enumerate(tables):
            if table.numel() != self.table_size:
                raise ValueError(
                    f"table {i} has {table.numel()} entries, expected {self.table_size}"
                )

        self.weights.copy_(torch.stack([t.reshape(-1) for t in tables[:NUM_GROUPS]]))
        if self.coherence and len(tables) == 3 * NUM_GROUPS:
            self.signed.copy_(
                torch.stack([t.reshape(-1) for t in tables[NUM_GROUPS : 2 * NUM_GROUPS]])
            )
            self.absolute.copy_(
                torch.stack([t.reshape(-1) for t in tables[2 * NUM_GROUPS :]])
            )


# ----------------------------------------
# weight initialization policies


def zero_init(network: NTupleNetwork, **options) -> None:
    network.weights.zero_()


def bonus_init(
    network: NTupleNetwork,
    bonus: float = 5000.0,
    bonus_tile: int | None = None,
    bonus_count: int = 2,
    chunk_size: int = 1 << 20,
    **options,
) -> None:
    """
    Preset `bonus` into every slot whose pattern holds a near-maximal tile
    (exponent >= `bonus_tile`) in at least `bonus_count` cells, so that an
    untrained network already favours boards with several big tiles lined up.
    """
    m = network.max_index
    # clamped digits never exceed max_index - 1
    tile = m - 1 if bonus_tile is None else min(bonus_tile, m - 1)

    for start in range(0, network.table_size, chunk_size):
        end = min(start + chunk_size, network.table_size)
        rest = torch.arange(start, end, dtype=torch.long)
        hits = torch.zeros_like(rest)
        for _ in range(TUPLE_LENGTH):
            hits += (rest % m >= tile).long()
            rest = torch.div(rest, m, rounding_mode="floor")
        network.weights[:, start:end].masked_fill_(hits >= bonus_count, bonus)


INITIALIZERS: dict[str, Callable[..., None]] = {
    "": zero_init,
    "zero": zero_init,
    "bonus": bonus_init,
}


def initialize(network: NTupleNetwork, policy: str, **options) -> None:
    """Run the named weight initialization policy on the network."""
    try:
        initializer = INITIALIZERS[policy]
    except KeyError:
        raise ValueError(
            f"unknown init policy {policy!r}, expected one of {sorted(k for k in INITIALIZERS if k)}"
        ) from None
    initializer(network, **options)
