from __future__ import annotations

import threading
from dataclasses import replace

from klinepilot.common.config.schema import AppConfig, EngineConfig
from klinepilot.core.pipeline import CandlePipeline
from klinepilot.core.sources.event_source import IteratorEventSource
from klinepilot.core.trading_engine import TradingEngine
from klinepilot.execution.simulated import SimulatedExecution
from klinepilot.strategies.ma_cross import MACrossStrategy


def _engine(stream, warmup, **kwargs):
    return TradingEngine(
        cfg_obj=AppConfig(mode="dry-run", **kwargs),
        strategies=[MACrossStrategy({"short_period": 2, "long_period": 3})],
        execution=SimulatedExecution(),
        source=IteratorEventSource(stream),
        warmup_candles=warmup,
    )


def test_warmup_seeds_history_without_trading(make_candles):
    candles = make_candles([10, 9, 8, 7, 12])
    engine = _engine(candles[4:], candles[:4])
    res = engine.run()
    # 预热 4 根不评估；第 5 根出现金叉并开仓
    assert res.summary["candles_processed"] == 1
    assert res.summary["open_positions"] == ["ma_cross"]
    assert engine.pipeline.execution.opened == 1


def test_unclosed_candles_are_dropped(make_candles):
    candles = make_candles([10, 9, 8, 7, 12])
    stream = [replace(candles[4], closed=False), candles[4]]
    engine = _engine(stream, candles[:4])
    res = engine.run()
    assert res.summary["candles_processed"] == 1
    assert res.summary["candles_ignored"] == 0


def test_same_results_as_backtest_after_warmup(make_candles):
    candles = make_candles([10, 9, 8, 7, 12, 12.2, 11.5, 11.0, 10.5])
    engine = _engine(candles[4:], candles[:4])
    res = engine.run()
    trades = engine.ledger.trades
    assert len(trades) == 1
    assert trades[0].reason in {"trailing_stop", "stop_loss"}
    assert res.summary["total_trades"] == 1


def test_max_events_limits_stream(make_candles):
    candles = make_candles([10, 9, 8, 7, 12, 13, 14])
    engine = _engine(candles[4:], candles[:4], engine=EngineConfig(max_events=1))
    res = engine.run()
    assert res.summary["candles_processed"] == 1


def test_history_limit_applies_in_live_mode(make_candles):
    candles = make_candles([float(i) for i in range(1, 11)])
    engine = _engine(candles[5:], candles[:5], engine=EngineConfig(history_limit=4))
    engine.run()
    assert len(engine.pipeline.history) == 4


def test_step_failure_does_not_stall_bounded_queue(make_candles, monkeypatch):
    candles = make_candles([10, 9, 8, 7, 12, 13, 14])
    original = CandlePipeline.step
    calls = []

    def flaky_step(self, candle):
        calls.append(candle)
        if len(calls) == 1:
            raise RuntimeError("exchange adapter crashed")
        return original(self, candle)

    monkeypatch.setattr(CandlePipeline, "step", flaky_step)
    engine = _engine(candles[4:], candles[:4], engine=EngineConfig(queue_maxsize=1))
    out = {}
    runner = threading.Thread(target=lambda: out.setdefault("res", engine.run()), daemon=True)
    runner.start()
    runner.join(timeout=5)

    assert not runner.is_alive()
    assert out["res"].summary["consumer_errors"] == 1
    assert out["res"].summary["candles_processed"] == 2
    assert len(calls) == 3
