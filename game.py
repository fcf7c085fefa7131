GRID_SIZE = 4
NUM_CELLS = GRID_SIZE * GRID_SIZE

# reward returned by a move or placement that leaves the board unchanged
ILLEGAL = -1

Grid = list[list[int]]
from enum import IntEnum
from typing import Sequence


class Direction(IntEnum):
    UP = 0
    RIGHT = 1
    DOWN = 2
    LEFT = 3


class Board:
    grid: Grid

    def __init__(self, state: Grid = None):
        """
        Grid stores exponent values where cell value = 2^exponent.
        Empty cells are represented as 0.
        """
        if not state:
            self.grid = [[0 for _ in range(GRID_SIZE)] for _ in range(GRID_SIZE)]
            return

        if len(state) != GRID_SIZE or any(len(row) != GRID_SIZE for row in state):
            raise ValueError(f"expected a {GRID_SIZE}x{GRID_SIZE} grid")
        if any(s < 0 for row in state for s in row):
            raise ValueError("tile exponents must be non-negative")
        self.grid = [list(row) for row in state]

    @classmethod
    def from_cells(cls, cells: Sequence[int]) -> "Board":
        """Build a board from 16 exponents in row-major cell order."""
        if len(cells) != NUM_CELLS:
            raise ValueError(f"expected {NUM_CELLS} cells, got {len(cells)}")
        return cls(
            [list(cells[r * GRID_SIZE : (r + 1) * GRID_SIZE]) for r in range(GRID_SIZE)]
        )

    def copy(self) -> "Board":
        board = Board.__new__(Board)
        board.grid = [row[:] for row in self.grid]
        return board

    def __getitem__(self, key: int | tuple[int, int]) -> int:
        if isinstance(key, tuple):
            return self.grid[key[0]][key[1]]
        return self.grid[key // GRID_SIZE][key % GRID_SIZE]

    def __setitem__(self, key: int | tuple[int, int], value: int) -> None:
        if isinstance(key, tuple):
            self.grid[key[0]][key[1]] = value
        else:
            self.grid[key // GRID_SIZE][key % GRID_SIZE] = value

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Board):
            return NotImplemented
        return self.grid == other.grid

    def __repr__(self) -> str:
        return f"Board({self.grid!r})"

    def cells(self) -> list[int]:
        return [k for row in self.grid for k in row]

    def empty_cells(self) -> list[int]:
        """Cell ids (row-major) of every empty cell, in ascending order."""
        return [
            i
            for i in range(NUM_CELLS)
            if self.grid[i // GRID_SIZE][i % GRID_SIZE] == 0
        ]

    def max_tile(self) -> int:
        """Largest exponent on the board."""
        return max(max(row) for row in self.grid)

    def slide(self, op: int) -> int:
        """
        Apply a move in place.
        Returns the points gained from merges, or ILLEGAL if nothing moved.
        """
        new_grid, points = Board.simulate_move(self.grid, Direction(op))
        if new_grid == self.grid:
            return ILLEGAL
        self.grid = new_grid
        return points

    def place(self, pos: int, tile: int) -> int:
        """Put a tile exponent on an empty cell. Returns 0, or ILLEGAL."""
        if not 0 <= pos < NUM_CELLS or tile <= 0 or self[pos] != 0:
            return ILLEGAL
        self[pos] = tile
        return 0

    def has_next_step(self) -> bool:
        return any(self.copy().slide(op) != ILLEGAL for op in Direction)

    @staticmethod
    def simulate_move(grid: Grid, direction: Direction) -> tuple[Grid, int]:
        """
        Simulate a move on a grid copy without mutating the original.
        Returns (resulting_grid, score_gained_from_merges).
        """
        if direction in (Direction.UP, Direction.DOWN):
            # transpose to work with columns as rows
            working_grid = [
                [grid[j][i] for j in range(GRID_SIZE)] for i in range(GRID_SIZE)
            ]
        else:
            working_grid = grid

        if direction in (Direction.UP, Direction.LEFT):
            results = [Board._merge_and_shift_left_with_score(row) for row in working_grid]
        else:
            results = [Board._merge_and_shift_right_with_score(row) for row in working_grid]

        new_grid = [r[0] for r in results]
        total_score = sum(r[1] for r in results)

        if direction in (Direction.UP, Direction.DOWN):
            # transpose back
            new_grid = [
                [new_grid[j][i] for j in range(GRID_SIZE)] for i in range(GRID_SIZE)
            ]
        return new_grid, total_score

    @staticmethod
    def _merge_and_shift_left_with_score(row: list[int]) -> tuple[list[int], int]:
        """Merge and shift a row to the left, returning (new_row, score_gained)."""
        non_zero = [x for x in row if x != 0]

        merged = []
        score = 0
        i = 0
        while i < len(non_zero):
            if i + 1 < len(non_zero) and non_zero[i] == non_zero[i + 1]:
                new_exp = non_zero[i] + 1
                merged.append(new_exp)
                score += 2**new_exp  # points = value of merged tile
                i += 2
            else:
                merged.append(non_zero[i])
                i += 1

        return merged + [0] * (GRID_SIZE - len(merged)), score

    @staticmethod
    def _merge_and_shift_right_with_score(row: list[int]) -> tuple[list[int], int]:
        """Merge and shift a row to the right, returning (new_row, score_gained)."""
        merged, score = Board._merge_and_shift_left_with_score(row[::-1])
        return merged[::-1], score


class Action:
    """
    A move made by an agent: a slide by the player, a tile placement by the
    environment, or the null action when there is nothing left to do.
    """

    SLIDE = "slide"
    PLACE = "place"

    def __init__(self, kind: str | None = None, op: int = -1, pos: int = -1, tile: int = 0):
        self.kind = kind
        self.op = op
        self.pos = pos
        self.tile = tile

    @classmethod
    def slide(cls, op: int) -> "Action":
        return cls(cls.SLIDE, op=int(op))

    @classmethod
    def place(cls, pos: int, tile: int) -> "Action":
        return cls(cls.PLACE, pos=pos, tile=tile)

    def is_null(self) -> bool:
        return self.kind is None

    def apply(self, board: Board) -> int:
        """Apply to the board in place. Returns the reward, or ILLEGAL."""
        if self.kind == Action.SLIDE:
            return board.slide(self.op)
        if self.kind == Action.PLACE:
            return board.place(self.pos, self.tile)
        return ILLEGAL

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Action):
            return NotImplemented
        return (self.kind, self.op, self.pos, self.tile) == (
            other.kind,
            other.op,
            other.pos,
            other.tile,
        )

    def __repr__(self) -> str:
        if self.kind == Action.SLIDE:
            return f"Action.slide({Direction(self.op).name.lower()})"
        if self.kind == Action.PLACE:
            return f"Action.place(pos={self.pos}, tile={self.tile})"
        return "Action()"
