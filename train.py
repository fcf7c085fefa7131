"""
CLI training interface for the n-tuple 2048 agent.
Run with: python train.py [command]
"""

from pathlib import Path
from typing import Optional

import typer
from tqdm import tqdm

from agent import Agent, Player, RandomEnvironment
from game import Board, ILLEGAL
from logger import BlockStatistics, EpisodeRecord, EpisodeTimer, MetricLogger
from weights import WeightStoreError

app = typer.Typer(help="Train and evaluate the n-tuple 2048 agent")


def format_grid(grid: list[list[int]], indent: str = "  ") -> str:
    """
    Format a 2048 grid for pretty printing.
    Grid contains exponents (0 = empty, 1 = 2, 2 = 4, etc.)
    """
    lines = []
    max_val = max(2**cell if cell > 0 else 0 for row in grid for cell in row)
    cell_width = max(4, len(str(max_val)) + 1)

    lines.append(indent + "┌" + "─" * (cell_width * 4 + 3) + "┐")
    for i, row in enumerate(grid):
        cells = [
            (str(2**cell) if cell > 0 else ".").center(cell_width) for cell in row
        ]
        lines.append(indent + "│" + "│".join(cells) + "│")
        if i < len(grid) - 1:
            lines.append(indent + "├" + "─" * (cell_width * 4 + 3) + "┤")
    lines.append(indent + "└" + "─" * (cell_width * 4 + 3) + "┘")

    return "\n".join(lines)


def play_episode(player: Agent, env: Agent) -> tuple[EpisodeRecord, Board]:
    """
    Play one game: the environment places two tiles, then the player and
    the environment alternate until one of them has no action left.
    """
    board = Board()
    player.open_episode()
    env.open_episode()

    with EpisodeTimer() as timer:
        for _ in range(2):
            env.take_action(board).apply(board)

        score = 0
        steps = 0
        while True:
            reward = player.take_action(board).apply(board)
            if reward == ILLEGAL:
                break
            score += reward
            steps += 1

            if env.take_action(board).apply(board) == ILLEGAL:
                break

        player.close_episode()
        env.close_episode()

    record = EpisodeRecord(
        score=score,
        max_tile=2 ** board.max_tile() if board.max_tile() > 0 else 0,
        steps=steps,
        duration=timer.elapsed,
    )
    return record, board


def run(
    player: Player,
    env: Agent,
    total: int,
    block: int,
    limit: int,
    logger: MetricLogger,
    show_board: bool = False,
) -> BlockStatistics:
    stats = BlockStatistics(block=block, limit=limit)
    best: tuple[EpisodeRecord, Board] | None = None

    for _ in tqdm(range(total), desc=f"{player.name} episodes", total=total):
        record, board = play_episode(player, env)
        stats.add(record)
        if best is None or record.score > best[0].score:
            best = (record, board)

        if stats.block_done():
            logger.log(stats.summary(), step=stats.episodes)
            if show_board and best is not None:
                logger.print(format_grid(best[1].grid))
            stats.reset_block()
            best = None

    # report a final partial block
    if stats.summary():
        logger.log(stats.summary(), step=stats.episodes)
    return stats


@app.command()
def train(
    total: int = typer.Option(1000, "--total", "-n", help="Number of games to play"),
    block: int = typer.Option(1000, "--block", help="Games per statistics block"),
    limit: int = typer.Option(0, "--limit", help="Most recent games kept for --save (0 keeps all)"),
    play: str = typer.Option("", "--play", help="Player args, e.g. 'alpha=0.0025 load=w.bin save=w.bin'"),
    evil: str = typer.Option("", "--evil", help="Environment args, e.g. 'seed=7'"),
    save: Optional[Path] = typer.Option(None, "--save", help="Write per-game records (JSONL) here"),
    log_dir: Optional[Path] = typer.Option(None, "--log-dir", help="Directory for JSONL block logs"),
    show_board: bool = typer.Option(False, "--show-board", help="Print the best final board of each block"),
    use_wandb: bool = typer.Option(False, "--wandb", help="Log block metrics to Weights & Biases"),
    wandb_project: str = typer.Option("ntuple-2048", "--wandb-project", help="W&B project name"),
):
    """Self-play training: the player learns from every finished game."""
    try:
        player = Player(play)
    except WeightStoreError as e:
        typer.echo(f"Error loading weights: {e}", err=True)
        raise typer.Exit(code=1)
    env = RandomEnvironment(evil)

    typer.echo(
        f"Player {player.name}: learning={player.config.learning} "
        f"alpha={player.alpha} depth={player.config.depth} "
        f"max_index={player.config.max_index}"
    )

    with MetricLogger(
        log_dir=log_dir,
        use_wandb=use_wandb,
        wandb_project=wandb_project,
        wandb_config=player.config.model_dump(mode="json"),
    ) as logger:
        stats = run(player, env, total, block, limit, logger, show_board=show_board)

    if save is not None:
        stats.save(save)
        typer.echo(f"Saved {len(stats.records)} game records to: {save}")

    try:
        if player.save():
            typer.echo(f"Saved weights to: {player.config.save}")
    except WeightStoreError as e:
        typer.echo(f"Error saving weights: {e}", err=True)
        raise typer.Exit(code=1)


@app.command()
def evaluate(
    weights: Path = typer.Argument(..., help="Path to trained weights"),
    games: int = typer.Option(100, "--games", "-g", help="Number of games to evaluate"),
    depth: int = typer.Option(1, "--depth", "-d", help="Search depth"),
    play: str = typer.Option("", "--play", help="Extra player args"),
    evil: str = typer.Option("", "--evil", help="Environment args"),
):
    """Play without learning and report the statistics of all games as one block."""
    typer.echo(f"Evaluating weights from: {weights}")
    try:
        player = Player(f"{play} load={weights} depth={depth} alpha=0")
    except WeightStoreError as e:
        typer.echo(f"Error loading weights: {e}", err=True)
        raise typer.Exit(code=1)
    env = RandomEnvironment(evil)

    with MetricLogger() as logger:
        run(player, env, games, games, 0, logger, show_board=True)


if __name__ == "__main__":
    app()
