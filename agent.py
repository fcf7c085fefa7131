"""
Agents taking turns on a 2048 board: the learning player and the random
environment that places new tiles.

Agents are configured with a whitespace separated string of key=value
tokens, e.g. ``"alpha=0.0025 load=weights.bin save=weights.bin"``. Unknown
keys are kept in `meta` and otherwise ignored.
"""

import random
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field

from game import Action, Board, NUM_CELLS
from learning import LAMBDA, Step, make_policy, replay
from ntuple import MAX_INDEX, NTupleNetwork, initialize
from search import Expectimax
from weights import WeightStoreError, load_weights, save_weights


class AgentConfig(BaseModel):
    """Typed view of the keys a player understands."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    name: str = "unknown"
    role: str = "unknown"
    seed: int | None = None
    alpha: float = 0.0
    init: str | None = None
    load: Path | None = None
    save: Path | None = None
    depth: int = Field(1, ge=0)
    learning: Literal["tc", "td0", "smooth"] = "tc"
    lambda_: float = Field(LAMBDA, alias="lambda")
    epsilon: float = Field(1e-6, gt=0)
    max_index: int = Field(MAX_INDEX, ge=2)

    # options of the "bonus" init policy
    bonus: float = 5000.0
    bonus_tile: int | None = None
    bonus_count: int = Field(2, ge=1)


# player keys that are fixed once the network exists
FIXED_KEYS = ("learning", "max_index", "epsilon")


def parse_args(args: str) -> dict[str, str]:
    meta = {}
    for pair in args.split():
        key, sep, value = pair.partition("=")
        # a bare token is a flag with an empty value
        meta[key] = value if sep else ""
    return meta


class Agent:
    def __init__(self, args: str = ""):
        self.meta = parse_args("name=unknown role=unknown " + args)

    def open_episode(self, flag: str = "") -> None:
        pass

    def close_episode(self, flag: str = "") -> None:
        pass

    def take_action(self, board: Board) -> Action:
        return Action()

    # must precede `property` below, which shadows the builtin here
    @property
    def name(self) -> str:
        return self.meta["name"]

    @property
    def role(self) -> str:
        return self.meta["role"]

    def property(self, key: str) -> str:
        return self.meta[key]

    def notify(self, msg: str) -> None:
        self.meta.update(parse_args(msg))


class RandomEnvironment(Agent):
    """
    Places a new tile on a random empty cell:
    a 2 (exponent 1) 90% of the time, a 4 (exponent 2) otherwise.
    """

    def __init__(self, args: str = ""):
        super().__init__("name=random role=environment " + args)
        seed = self.meta.get("seed")
        self.engine = random.Random(int(seed) if seed else None)
        self.space = list(range(NUM_CELLS))

    def take_action(self, board: Board) -> Action:
        self.engine.shuffle(self.space)
        for pos in self.space:
            if board[pos] != 0:
                continue
            tile = 1 if self.engine.randint(0, 9) else 2
            return Action.place(pos, tile)
        return Action()


class Player(Agent):
    """
    Expectimax player backed by an n-tuple network.

    Every move taken is recorded as (afterstate, reward); `close_episode`
    replays the record to train the network when `alpha` is non-zero.
    """

    def __init__(self, args: str = ""):
        super().__init__("name=ntuple role=player " + args)
        self.config = AgentConfig.model_validate(self.meta)

        self.network = NTupleNetwork(
            max_index=self.config.max_index,
            coherence=self.config.learning == "tc",
            epsilon=self.config.epsilon,
        )
        if self.config.init is not None:
            initialize(
                self.network,
                self.config.init,
                bonus=self.config.bonus,
                bonus_tile=self.config.bonus_tile,
                bonus_count=self.config.bonus_count,
            )
        if self.config.load is not None:
            self.load(self.config.load)

        self.search = Expectimax(self.network, self.config.depth)
        self.policy = make_policy(
            self.config.learning, self.config.alpha, self.config.lambda_
        )
        self.history: list[Step] = []

    @property
    def alpha(self) -> float:
        return self.config.alpha

    def notify(self, msg: str) -> None:
        """
        Late configuration update. Keys that shape the built network
        (`learning`, `max_index`, `epsilon`) cannot change.
        """
        meta = {**self.meta, **parse_args(msg)}
        config = AgentConfig.model_validate(meta)
        for key in FIXED_KEYS:
            if getattr(config, key) != getattr(self.config, key):
                raise ValueError(f"{key} cannot be changed after the network is built")

        self.meta = meta
        self.config = config
        self.search.depth = self.config.depth
        self.policy = make_policy(
            self.config.learning, self.config.alpha, self.config.lambda_
        )

    def open_episode(self, flag: str = "") -> None:
        self.history.clear()

    def take_action(self, board: Board) -> Action:
        decision = self.search.select(board)
        if decision is None:
            return Action()
        self.history.append(Step(decision.afterstate, decision.reward))
        return Action.slide(decision.move)

    def close_episode(self, flag: str = "") -> None:
        if self.alpha != 0:
            replay(self.network, self.history, self.policy)
        self.history.clear()

    def load(self, path: str | Path) -> None:
        tables = load_weights(path)
        try:
            self.network.load_tables(tables)
        except ValueError as e:
            raise WeightStoreError(f"{path}: {e}") from e

    def save(self, path: str | Path | None = None) -> bool:
        """Write the network to `path`, or to the configured save path. Returns False if neither is set."""
        path = path or self.config.save
        if path is None:
            return False
        save_weights(path, self.network.tables())
        return True
