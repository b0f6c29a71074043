from __future__ import annotations

from klinepilot.strategies.factors.ma import MAFactor
from klinepilot.strategies.factors.rsi import RSIFactor
from klinepilot.strategies.indicator_service import IndicatorService, candles_to_frame


def test_snapshot_reports_none_for_insufficient_history(make_candles):
    svc = IndicatorService()
    candles = make_candles([100, 101, 102])
    snap = svc.snapshot(candles, [MAFactor(window=5), RSIFactor(period=14)])
    assert snap.index == 2
    assert snap.get("ma_5") is None
    assert snap.get("rsi_14") is None
    assert not snap.has("ma_5")


def test_snapshot_current_and_previous_values(make_candles):
    svc = IndicatorService()
    candles = make_candles([1, 2, 3, 4, 5])
    snap = svc.snapshot(candles, [MAFactor(window=3)])
    assert snap.get("ma_3") == 4.0
    assert snap.prev("ma_3") == 3.0
    assert snap.as_dict() == {"ma_3": 4.0}


def test_same_column_different_params_is_recomputed(make_candles):
    svc = IndicatorService()
    candles = make_candles([1, 2, 3, 4, 5])
    a = svc.snapshot(candles, [MAFactor(window=2, out_col="ma_x")])
    b = svc.snapshot(candles, [MAFactor(window=4, out_col="ma_x")])
    assert a.get("ma_x") == 4.5
    assert b.get("ma_x") == 3.5


def test_frame_rebuilt_when_history_grows(make_candles):
    svc = IndicatorService()
    candles = make_candles([1, 2, 3, 4, 5, 6])
    first = svc.snapshot(candles[:5], [MAFactor(window=3)])
    second = svc.snapshot(candles, [MAFactor(window=3)])
    assert first.get("ma_3") == 4.0
    assert second.get("ma_3") == 5.0


def test_empty_history_snapshot():
    snap = IndicatorService().snapshot([], [MAFactor(window=3)])
    assert snap.index == -1
    assert snap.get("ma_3") is None


def test_candles_to_frame_columns(make_candles):
    df = candles_to_frame(make_candles([1, 2]))
    assert list(df.columns) == ["start_ts", "end_ts", "open", "high", "low", "close", "volume"]
    assert len(df) == 2


def test_same_timestamps_different_prices_not_reused(make_candles):
    svc = IndicatorService()
    rising = make_candles([float(100 + i) for i in range(10)])
    falling = make_candles([float(200 - i) for i in range(10)])
    assert [c.start_ts for c in rising] == [c.start_ts for c in falling]

    a = svc.snapshot(rising, [MAFactor(window=3)])
    b = svc.snapshot(falling, [MAFactor(window=3)])
    assert a.get("ma_3") == 108.0
    assert b.get("ma_3") == 192.0


def test_reset_drops_cached_frame(make_candles):
    svc = IndicatorService()
    candles = make_candles([1, 2, 3])
    first = svc.frame(candles)
    svc.reset()
    assert svc.frame(candles) is not first
