from __future__ import annotations

import klinepilot.cli as cli
from klinepilot.core.base_engine import EngineResult


class _FakeEngine:
    seen: dict = {}

    def __init__(self, *, cfg_obj, artifacts_dir=None, max_events=None):
        _FakeEngine.seen = {"cfg": cfg_obj, "artifacts_dir": artifacts_dir, "max_events": max_events}

    def run(self):
        return EngineResult(summary={"total_trades": 0, "net_profit": 0.0})


def _config(tmp_path):
    path = tmp_path / "config.yml"
    path.write_text("symbol: BTCUSDT\nstrategies:\n  - type: ma_cross\n", encoding="utf-8")
    return str(path)


def test_parse_args_defaults():
    args = cli.parse_args([])
    assert args.task == "backtest"
    assert args.config == "config/config.yml"

    args = cli.parse_args(["live", "--config", "x.yml", "--max-events", "5"])
    assert args.task == "live"
    assert args.config == "x.yml"
    assert args.max_events == 5


def test_backtest_command_overrides_data_path(tmp_path, monkeypatch):
    monkeypatch.setattr(cli, "BacktestEngine", _FakeEngine)
    summary = cli.main(["--config", _config(tmp_path), "backtest", "--data", "k.csv", "--artifacts-dir", "out"])
    assert summary["total_trades"] == 0
    assert _FakeEngine.seen["cfg"].backtest.data_path == "k.csv"
    assert _FakeEngine.seen["artifacts_dir"] == "out"


def test_live_command_passes_max_events(tmp_path, monkeypatch):
    monkeypatch.setattr(cli, "TradingEngine", _FakeEngine)
    cli.main(["live", "--config", _config(tmp_path), "--max-events", "3"])
    assert _FakeEngine.seen["max_events"] == 3
