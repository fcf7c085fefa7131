"""Episode statistics and metric logging for training runs."""

import json
import time
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

import typer

# tiles reported in the block summary
REACH_TILES = (512, 1024, 2048, 4096, 8192, 16384, 32768)


@dataclass
class EpisodeRecord:
    score: int
    max_tile: int  # tile value, not exponent
    steps: int
    duration: float  # seconds


class BlockStatistics:
    """
    Collects finished episodes and summarizes them a block at a time.

    Usage:
        stats = BlockStatistics(block=1000)
        for ...:
            stats.add(record)
            if stats.block_done():
                logger.log(stats.summary(), step=stats.episodes)
                stats.reset_block()
    """

    def __init__(self, block: int = 1000, limit: int = 0):
        """
        Args:
            block: Number of episodes summarized together.
            limit: Number of most recent records kept for export (0 keeps all).
        """
        if block <= 0:
            raise ValueError(f"block must be positive, got {block}")
        self.block = block
        self.limit = limit
        self.episodes = 0
        self.records: list[EpisodeRecord] = []
        self._current: list[EpisodeRecord] = []

    def add(self, record: EpisodeRecord) -> None:
        self.episodes += 1
        self._current.append(record)
        self.records.append(record)
        if self.limit and len(self.records) > self.limit:
            del self.records[: len(self.records) - self.limit]

    def block_done(self) -> bool:
        return len(self._current) >= self.block

    def reset_block(self) -> None:
        self._current = []

    def summary(self) -> dict[str, Any]:
        block = self._current
        if not block:
            return {}

        n = len(block)
        steps = sum(r.steps for r in block)
        duration = sum(r.duration for r in block)
        metrics: dict[str, Any] = {
            "avg_score": sum(r.score for r in block) / n,
            "max_score": max(r.score for r in block),
            "avg_steps": steps / n,
            "ops": steps / duration if duration > 0 else 0.0,
        }
        # share of games whose largest tile reached at least each tile
        for tile in REACH_TILES:
            pct = sum(1 for r in block if r.max_tile >= tile) / n * 100
            if pct > 0:
                metrics[f"reach_{tile}"] = pct
        return metrics

    def save(self, path: str | Path) -> None:
        """Write kept records as JSONL, one episode per line."""
        with open(path, "w") as f:
            for record in self.records:
                f.write(json.dumps(asdict(record)) + "\n")


class EpisodeTimer:
    def __enter__(self):
        self.start = time.perf_counter()
        self.elapsed = 0.0
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.elapsed = time.perf_counter() - self.start
        return False


class MetricLogger:
    """
    Writes each block summary to stdout, to a JSONL file under `log_dir`
    when one is given, and to wandb when `use_wandb` is set.
    """

    def __init__(
        self,
        log_dir: str | Path | None = None,
        use_wandb: bool = False,
        wandb_project: str | None = None,
        wandb_config: dict[str, Any] | None = None,
    ):
        self.log_file = None
        self._file_handle = None
        self.wandb_run = None

        if log_dir is not None:
            Path(log_dir).mkdir(parents=True, exist_ok=True)
            stamp = datetime.now().strftime("%Y%m%d-%H%M%S")
            self.log_file = Path(log_dir) / f"blocks_{stamp}.jsonl"
            self._file_handle = open(self.log_file, "a")
            typer.echo(f"Logging to: {self.log_file}")

        if use_wandb:
            try:
                import wandb
            except ImportError:
                typer.echo("Warning: wandb not installed. Install with 'pip install wandb'")
            else:
                self.wandb_run = wandb.init(project=wandb_project, config=wandb_config)

    @staticmethod
    def _format_value(value: Any) -> str:
        if isinstance(value, float):
            return f"{value:.2f}"
        return str(value)

    def log(self, metrics: dict[str, Any], step: int) -> None:
        typer.echo(f"--- Episode {step} ---")
        for key, value in metrics.items():
            typer.echo(f"  {key}: {self._format_value(value)}")

        if self._file_handle is not None:
            self._file_handle.write(json.dumps({"step": step, **metrics}) + "\n")
            self._file_handle.flush()

        if self.wandb_run is not None:
            self.wandb_run.log(metrics, step=step)

    def print(self, message: str = "") -> None:
        """Echo to stdout only."""
        typer.echo(message)

    def close(self) -> None:
        if self._file_handle is not None:
            self._file_handle.close()
            self._file_handle = None
        if self.wandb_run is not None:
            self.wandb_run.finish()
            self.wandb_run = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
