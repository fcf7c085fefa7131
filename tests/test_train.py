import json

import pytest
from typer.testing import CliRunner

from agent import Player, RandomEnvironment
from logger import BlockStatistics, EpisodeRecord, MetricLogger
from train import app, format_grid, play_episode

runner = CliRunner()

SMALL = "max_index=4 depth=0"


def test_play_episode_until_no_move():
    player = Player(SMALL + " alpha=0.01")
    env = RandomEnvironment("seed=2")

    record, board = play_episode(player, env)

    assert record.steps > 0
    assert record.score > 0
    assert record.max_tile == 2 ** board.max_tile()
    # the environment can always place after a legal slide, so the player ran out of moves
    assert not board.has_next_step()
    assert player.history == []


def test_block_statistics():
    stats = BlockStatistics(block=2, limit=3)
    stats.add(EpisodeRecord(score=100, max_tile=256, steps=50, duration=0.5))
    assert not stats.block_done()
    stats.add(EpisodeRecord(score=300, max_tile=512, steps=150, duration=0.5))
    assert stats.block_done()

    summary = stats.summary()
    assert summary["avg_score"] == 200
    assert summary["max_score"] == 300
    assert summary["ops"] == pytest.approx(200.0)
    assert summary["reach_512"] == 50.0
    assert "reach_1024" not in summary

    stats.reset_block()
    assert stats.summary() == {}
    for _ in range(3):
        stats.add(EpisodeRecord(score=1, max_tile=2, steps=1, duration=0.0))
    assert len(stats.records) == 3
    assert stats.episodes == 5


def test_block_statistics_export(tmp_path):
    stats = BlockStatistics(block=1)
    stats.add(EpisodeRecord(score=8, max_tile=8, steps=3, duration=0.1))
    path = tmp_path / "stats.jsonl"
    stats.save(path)
    assert json.loads(path.read_text().splitlines()[0])["score"] == 8


def test_metric_logger_writes_jsonl(tmp_path):
    with MetricLogger(log_dir=tmp_path) as logger:
        logger.log({"avg_score": 1.5}, step=10)
        log_file = logger.log_file
    entry = json.loads(log_file.read_text().splitlines()[0])
    assert entry["step"] == 10
    assert entry["avg_score"] == 1.5


def test_format_grid():
    text = format_grid([[0, 1, 2, 11], [0] * 4, [0] * 4, [0] * 4])
    assert "2048" in text
    assert "." in text


def test_train_command_saves_weights_and_records(tmp_path):
    weights = tmp_path / "w.bin"
    records = tmp_path / "records.jsonl"
    result = runner.invoke(
        app,
        [
            "train",
            "--total", "3",
            "--block", "2",
            "--play", f"{SMALL} alpha=0.01 save={weights}",
            "--evil", "seed=4",
            "--save", str(records),
        ],
    )
    assert result.exit_code == 0, result.output
    assert weights.exists()
    assert len(records.read_text().splitlines()) == 3
    assert "avg_score" in result.output

    result = runner.invoke(
        app, ["evaluate", str(weights), "--games", "2", "--depth", "0", "--play", SMALL]
    )
    assert result.exit_code == 0, result.output


def test_train_command_reports_bad_weights(tmp_path):
    result = runner.invoke(
        app, ["train", "--total", "1", "--play", f"{SMALL} load={tmp_path / 'nope.bin'}"]
    )
    assert result.exit_code == 1
