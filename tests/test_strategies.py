from __future__ import annotations

from datetime import datetime, timedelta, timezone

import numpy as np
import pytest
from pydantic import ValidationError

from klinepilot.common.models.models import SignalType
from klinepilot.strategies.adaptive_macd import AdaptiveMACDStrategy
from klinepilot.strategies.bollinger_reversion import BollingerReversionStrategy
from klinepilot.strategies.breakout import BreakoutStrategy
from klinepilot.strategies.factors import indicators
from klinepilot.strategies.ma_cross import MACrossStrategy
from klinepilot.strategies.macd_cross import MACDCrossStrategy
from klinepilot.strategies.rsi_reversal import RSIReversalStrategy
from klinepilot.strategies.session import SessionWindow
from klinepilot.strategies.sizing.risk_budget import RiskBudgetSizer


def _run_entries(strategy, candles, capital=1000.0):
    """逐根 K 线调用 decide_entry（历史包含当前 K 线），返回每一步的信号列表。"""
    return [strategy.decide_entry(c, candles[: i + 1], capital) for i, c in enumerate(candles)]


def test_bollinger_rising_series_waits_for_history_then_sells(make_candles):
    candles = make_candles([100.0 * 1.3**i for i in range(30)])
    strat = BollingerReversionStrategy({"period": 20})
    results = _run_entries(strat, candles)

    for sigs in results[:19]:
        assert sigs == []
    for sigs in results[19:]:
        assert len(sigs) == 1
        assert sigs[0].type is SignalType.SELL
        assert sigs[0].reason == "bb_upper_touch"
        assert sigs[0].quantity > 0
        assert sigs[0].stop_loss > sigs[0].price


def test_bollinger_skip_reason_before_bands(make_candles):
    candles = make_candles([100.0 + i for i in range(5)])
    strat = BollingerReversionStrategy()
    assert strat.decide_entry(candles[-1], candles, 1000.0) == []
    assert strat.last_skip_reason == "insufficient_history"


def test_bollinger_flat_prices_degenerate_risk(make_candles):
    candles = make_candles([100.0] * 25)
    strat = BollingerReversionStrategy()
    assert strat.decide_entry(candles[-1], candles, 1000.0) == []
    assert strat.last_skip_reason == "degenerate_risk"


def test_entry_signal_carries_indicator_snapshot(make_candles):
    candles = make_candles([100.0 * 1.3**i for i in range(25)])
    sig = BollingerReversionStrategy().decide_entry(candles[-1], candles, 1000.0)[0]
    assert "bb_20_2_upper" in sig.indicator_data
    assert "atr_14" in sig.indicator_data


def test_rsi_reversal_oversold_and_overbought(make_candles):
    falling = make_candles([200.0 - 2 * i for i in range(30)], spread=0.5)
    sigs = RSIReversalStrategy().decide_entry(falling[-1], falling, 1000.0)
    assert [s.type for s in sigs] == [SignalType.BUY]
    assert sigs[0].reason == "rsi_oversold"

    rising = make_candles([100.0 + 2 * i for i in range(30)], spread=0.5)
    sigs = RSIReversalStrategy().decide_entry(rising[-1], rising, 1000.0)
    assert [s.type for s in sigs] == [SignalType.SELL]
    assert sigs[0].reason == "rsi_overbought"


def test_rsi_reversal_rejects_inverted_levels():
    with pytest.raises(ValidationError):
        RSIReversalStrategy({"oversold": 80, "overbought": 20})


def test_breakout_up_and_down(make_candles):
    up = make_candles([100.0] * 25 + [110.0], spread=1.0)
    sigs = BreakoutStrategy().decide_entry(up[-1], up, 1000.0)
    assert len(sigs) == 1
    assert sigs[0].type is SignalType.BUY
    assert sigs[0].reason == "breakout_up"
    assert sigs[0].stop_loss < 110.0 < sigs[0].take_profit

    down = make_candles([100.0] * 25 + [90.0], spread=1.0)
    sigs = BreakoutStrategy().decide_entry(down[-1], down, 1000.0)
    assert sigs[0].type is SignalType.SELL
    assert sigs[0].reason == "breakout_down"


def test_breakout_inside_channel_no_setup(make_candles):
    candles = make_candles([100.0] * 26, spread=1.0)
    strat = BreakoutStrategy()
    assert strat.decide_entry(candles[-1], candles, 1000.0) == []
    assert strat.last_skip_reason == "no_setup"


def test_ma_cross_golden_cross_with_volume_regime(make_candles):
    candles = make_candles([10, 9, 8, 7, 12])
    strat = MACrossStrategy({"short_period": 2, "long_period": 3})
    sigs = strat.decide_entry(candles[-1], candles, 1000.0)
    assert len(sigs) == 1
    sig = sigs[0]
    assert sig.type is SignalType.BUY
    assert sig.reason == "golden_cross"
    assert abs(sig.stop_loss - 12 * (1 - 0.012)) < 1e-9
    assert abs(sig.take_profit - 12 * (1 + 0.045)) < 1e-9
    # 风险预算 min(1000 * 0.02, 100) = 20，单位风险 12 * 0.012
    assert abs(sig.quantity - 20.0 / (12 * 0.012)) < 1e-9


def test_ma_cross_high_volume_uses_tight_stop(make_candles):
    candles = make_candles([10, 9, 8, 7, 12], volume=6000.0)
    sig = MACrossStrategy({"short_period": 2, "long_period": 3}).decide_entry(candles[-1], candles, 1000.0)[0]
    assert abs(sig.stop_loss - 12 * (1 - 0.008)) < 1e-9
    assert abs(sig.take_profit - 12 * (1 + 0.06)) < 1e-9


def test_ma_cross_death_cross(make_candles):
    candles = make_candles([7, 8, 9, 10, 5])
    sig = MACrossStrategy({"short_period": 2, "long_period": 3}).decide_entry(candles[-1], candles, 1000.0)[0]
    assert sig.type is SignalType.SELL
    assert sig.reason == "death_cross"


@pytest.mark.parametrize(
    "closes, volume, reason",
    [
        ([1, 2, 3], 1000.0, "insufficient_history"),
        ([10, 9, 8, 7, 12], 100.0, "low_volume"),
        ([1, 2, 3, 4, 5], 1000.0, "no_cross"),
    ],
)
def test_ma_cross_skip_reasons(make_candles, closes, volume, reason):
    candles = make_candles(closes, volume=volume)
    strat = MACrossStrategy({"short_period": 2, "long_period": 3})
    assert strat.decide_entry(candles[-1], candles, 1000.0) == []
    assert strat.last_skip_reason == reason


def test_ma_cross_rejects_short_not_below_long():
    with pytest.raises(ValidationError):
        MACrossStrategy({"short_period": 25, "long_period": 7})


def test_macd_cross_signals_match_indicator_crosses(make_candles):
    closes = [100.0 - 2 * i for i in range(15)] + [72.0 + 3 * j for j in range(1, 16)]
    candles = make_candles(closes, spread=0.5)
    strat = MACDCrossStrategy({"fast": 3, "slow": 6, "signal": 3, "atr_period": 3})
    results = _run_entries(strat, candles)

    res = indicators.macd(np.array(closes), 3, 6, 3)
    expected = [
        i
        for i in range(1, len(closes))
        if not np.isnan(res.signal[i - 1])
        and i >= 3
        and (
            (res.macd[i - 1] < res.signal[i - 1] and res.macd[i] > res.signal[i])
            or (res.macd[i - 1] > res.signal[i - 1] and res.macd[i] < res.signal[i])
        )
    ]
    fired = [i for i, sigs in enumerate(results) if sigs]
    assert fired == expected
    first = results[fired[0]][0]
    assert first.type is SignalType.BUY
    assert first.reason == "macd_golden_cross"


def test_adaptive_macd_bullish_with_volume_confirmation(make_candles):
    closes = [100.0 + 0.05 * i**2 for i in range(60)]
    volumes = [1000.0] * 59 + [5000.0]
    candles = make_candles(closes, spread=0.5, volume=volumes)
    sigs = AdaptiveMACDStrategy().decide_entry(candles[-1], candles, 1000.0)
    assert len(sigs) == 1
    assert sigs[0].type is SignalType.BUY
    assert sigs[0].reason == "macd_bullish"


def test_adaptive_macd_requires_volume_above_average(make_candles):
    closes = [100.0 + 0.05 * i**2 for i in range(60)]
    candles = make_candles(closes, spread=0.5)
    strat = AdaptiveMACDStrategy()
    assert strat.decide_entry(candles[-1], candles, 1000.0) == []
    assert strat.last_skip_reason == "no_setup"


def test_adaptive_macd_adx_filter_vetoes(make_candles):
    closes = [100.0 + 0.05 * i**2 for i in range(60)]
    volumes = [1000.0] * 59 + [5000.0]
    candles = make_candles(closes, spread=0.5, volume=volumes)
    strat = AdaptiveMACDStrategy({"use_adx": True, "adx_threshold": 100.0})
    assert strat.decide_entry(candles[-1], candles, 1000.0) == []
    assert "adx_14" in strat.factors()[-1].columns


def test_session_filter_blocks_outside_window(make_candles):
    params = {"short_period": 2, "long_period": 3, "session": {"enabled": True}}
    # 周一 00:00 起 → 不在 15:00-18:00 窗口内
    night = make_candles([10, 9, 8, 7, 12])
    strat = MACrossStrategy(params)
    assert strat.decide_entry(night[-1], night, 1000.0) == []
    assert strat.last_skip_reason == "outside_session"

    afternoon = make_candles([10, 9, 8, 7, 12], start=datetime(2024, 1, 1, 15, 0, tzinfo=timezone.utc))
    assert len(strat.decide_entry(afternoon[-1], afternoon, 1000.0)) == 1


def test_session_window_edges():
    win = SessionWindow(enabled=True)
    monday = datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert win.allows(monday.replace(hour=15))
    assert win.allows(monday.replace(hour=18))
    assert not win.allows(monday.replace(hour=18, minute=15))
    assert not win.allows(monday.replace(hour=14, minute=45))
    assert not win.allows(monday + timedelta(days=5, hours=16))  # 周六
    assert SessionWindow().allows(monday)
    with pytest.raises(ValidationError):
        SessionWindow(enabled=True, start_hour=18, end_hour=15)


def test_risk_budget_sizer():
    sizer = RiskBudgetSizer(0.01, max_risk_usd=5.0)
    assert sizer.risk_amount(1000.0) == 5.0
    assert abs(sizer.quantity(capital=1000.0, entry_price=100.0, stop_loss=98.0) - 2.5) < 1e-12
    assert sizer.quantity(capital=1000.0, entry_price=100.0, stop_loss=100.0) == 0.0
    with pytest.raises(ValueError):
        RiskBudgetSizer(-0.1)


def test_strategy_params_reject_unknown_keys():
    with pytest.raises(ValidationError):
        BollingerReversionStrategy({"perod": 20})


def test_reused_strategy_sees_new_history_with_same_timestamps(make_candles):
    strat = BollingerReversionStrategy({"period": 20})
    rising = make_candles([100.0 + i for i in range(30)])
    falling = make_candles([200.0 - i for i in range(30)])
    strat.decide_entry(rising[-1], rising, 1000.0)

    middle = strat.factors()[0].columns[0]
    reused = strat.snapshot(falling).get(middle)
    fresh = BollingerReversionStrategy({"period": 20}).snapshot(falling).get(middle)
    assert reused == fresh == 180.5


def test_session_gate_uses_candle_close_time(make_candles):
    params = {"short_period": 2, "long_period": 3, "session": {"enabled": True}}
    strat = MACrossStrategy(params)
    # 最后一根 14:45 开盘、15:00 收盘 → 收盘时间在窗口内
    before = make_candles([10, 9, 8, 7, 12], start=datetime(2024, 1, 1, 13, 45, tzinfo=timezone.utc))
    assert before[-1].end_ts.hour == 15
    assert len(strat.decide_entry(before[-1], before, 1000.0)) == 1

    # 最后一根 18:00 开盘、18:15 收盘 → 已出窗口
    after = make_candles([10, 9, 8, 7, 12], start=datetime(2024, 1, 1, 17, 0, tzinfo=timezone.utc))
    assert after[-1].start_ts.hour == 18
    assert strat.decide_entry(after[-1], after, 1000.0) == []
    assert strat.last_skip_reason == "outside_session"
