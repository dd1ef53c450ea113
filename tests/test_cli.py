"""
Tests for the command-line interface.
"""
import json
import logging
import os
import tempfile

import pytest

from mindloop.cli import build_parser, main
from mindloop.learning import LearningConfig, LearningManager


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers = handlers
    root.setLevel(level)


def test_parser_requires_a_command():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_stats(capsys):
    with tempfile.TemporaryDirectory() as tmpdir:
        assert main(["--data-dir", tmpdir, "stats"]) == 0

        stats = json.loads(capsys.readouterr().out)
        assert stats["states"] == 8
        assert stats["updates"] == 0
        assert os.path.exists(os.path.join(tmpdir, "agent_learning.json"))


def test_values_and_best(capsys):
    with tempfile.TemporaryDirectory() as tmpdir:
        main(["--data-dir", tmpdir, "stats"])
        manager = LearningManager(LearningConfig(), data_dir=tmpdir)
        manager.update_learning("mining", "mine_ores", 1.0)
        capsys.readouterr()

        assert main(["--data-dir", tmpdir, "values", "mining"]) == 0
        first = capsys.readouterr().out.splitlines()[0]
        assert first.split()[0] == "mine_ores"

        assert main(["--data-dir", tmpdir, "best", "mining"]) == 0
        assert capsys.readouterr().out.strip() == "mine_ores"


def test_unknown_state(capsys):
    with tempfile.TemporaryDirectory() as tmpdir:
        assert main(["--data-dir", tmpdir, "values", "nether"]) == 1
        assert main(["--data-dir", tmpdir, "best", "nether"]) == 1
        assert "Unknown state" in capsys.readouterr().err


def test_reset_needs_confirmation(capsys):
    with tempfile.TemporaryDirectory() as tmpdir:
        main(["--data-dir", tmpdir, "stats"])
        manager = LearningManager(LearningConfig(), data_dir=tmpdir)
        manager.update_learning("idle", "idle_scan", 1.0)

        assert main(["--data-dir", tmpdir, "reset"]) == 1
        assert LearningManager(LearningConfig(), data_dir=tmpdir).q_table["idle"]["idle_scan"] > 0

        assert main(["--data-dir", tmpdir, "reset", "--yes"]) == 0
        assert LearningManager(LearningConfig(), data_dir=tmpdir).q_table["idle"]["idle_scan"] == 0.0


def test_simulate(capsys):
    with tempfile.TemporaryDirectory() as tmpdir:
        assert main(["--data-dir", tmpdir, "simulate", "--seconds", "300", "--seed", "3"]) == 0

        out = capsys.readouterr().out
        assert out.startswith("Simulated 300s: 5 decisions")
        restored = LearningManager(LearningConfig(), data_dir=tmpdir)
        assert sum(abs(v) for row in restored.q_table.values() for v in row.values()) > 0


def test_bad_config_file(capsys):
    with tempfile.TemporaryDirectory() as tmpdir:
        path = os.path.join(tmpdir, "agent.yaml")
        with open(path, "w") as f:
            f.write("learning_preset: reckless\n")

        assert main(["--config", path, "--data-dir", tmpdir, "stats"]) == 2
        assert "Configuration error" in capsys.readouterr().err


def test_serve_runs_the_agent(monkeypatch):
    pytest.importorskip("fastapi")
    from fastapi.testclient import TestClient

    import mindloop.api

    seen = {}

    def fake_run_server(app, host, port):
        with TestClient(app) as client:
            seen["decision"] = client.post("/decide").json()["decision"]
        seen["address"] = (host, port)

    monkeypatch.setattr(mindloop.api, "run_server", fake_run_server)
    with tempfile.TemporaryDirectory() as tmpdir:
        assert main(["--data-dir", tmpdir, "serve", "--port", "9000"]) == 0

        assert seen["decision"] != "Agent not started"
        assert seen["address"] == ("127.0.0.1", 9000)
        assert os.path.exists(os.path.join(tmpdir, "agent_learning.json"))
