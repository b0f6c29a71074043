from __future__ import annotations

import math

import numpy as np
import pytest

from klinepilot.strategies.factors import indicators


def test_sma_window_includes_current_value():
    out = indicators.sma([1, 2, 3, 4, 5], 3)
    assert np.isnan(out[:2]).all()
    assert list(out[2:]) == [2.0, 3.0, 4.0]


def test_sma_short_series_is_all_nan_not_error():
    out = indicators.sma([1, 2], 5)
    assert len(out) == 2
    assert np.isnan(out).all()


def test_ema_seeded_with_first_value():
    out = indicators.ema([1, 2, 3, 4, 5], 3)
    assert np.isnan(out[:2]).all()
    assert abs(out[2] - 2.25) < 1e-12
    assert abs(out[3] - 3.125) < 1e-12
    assert abs(out[4] - 4.0625) < 1e-12


def test_rsi_first_value_at_period_and_extremes():
    up = indicators.rsi(list(range(20)), 14)
    assert np.isnan(up[:14]).all()
    assert (up[14:] == 100.0).all()

    down = indicators.rsi(list(range(20, 0, -1)), 14)
    assert (down[14:] == 0.0).all()

    flat = indicators.rsi([5.0] * 16, 14)
    assert (flat[14:] == 100.0).all()


def test_rsi_insufficient_history():
    assert np.isnan(indicators.rsi([1, 2, 3], 14)).all()


def test_atr_single_period_true_range():
    # 前收盘 100，当前 high=105 low=95 → TR = 10
    out = indicators.atr([100, 105], [100, 95], [100, 100], period=1)
    assert math.isnan(out[0])
    assert abs(out[1] - 10.0) < 1e-12


def test_atr_seed_position():
    n = 20
    high = [101.0 + i for i in range(n)]
    low = [99.0 + i for i in range(n)]
    close = [100.0 + i for i in range(n)]
    out = indicators.atr(high, low, close, 14)
    assert np.isnan(out[:14]).all()
    # TR = max(2, |h - prev c| = 2, |l - prev c| = 0) = 2
    assert abs(out[14] - 2.0) < 1e-12
    assert abs(out[-1] - 2.0) < 1e-12


def test_bollinger_uses_population_std():
    bands = indicators.bollinger_bands([1, 2, 3], 3, 2.0)
    std = math.sqrt(2.0 / 3.0)
    assert abs(bands.middle[2] - 2.0) < 1e-12
    assert abs(bands.upper[2] - (2.0 + 2 * std)) < 1e-12
    assert abs(bands.lower[2] - (2.0 - 2 * std)) < 1e-12
    assert np.isnan(bands.upper[:2]).all()


def test_macd_undefined_region():
    prices = np.linspace(100, 140, 40)
    res = indicators.macd(prices, 12, 26, 9)
    assert math.isnan(res.macd[24])
    assert not math.isnan(res.macd[25])
    assert math.isnan(res.signal[32])
    assert not math.isnan(res.signal[33])
    assert abs(res.histogram[-1] - (res.macd[-1] - res.signal[-1])) < 1e-12


def test_adaptive_periods_fall_back_to_base():
    assert indicators.adaptive_periods([100.0] * 40) == (12, 26, 9)
    assert indicators.adaptive_periods([100.0, 101.0, 102.0]) == (12, 26, 9)


def test_adaptive_periods_shrink_with_band_width():
    prices = [100.0, 120.0] * 20
    # 中轨 110，标准差 10，上轨 130 → ratio = 20 / 110
    assert indicators.adaptive_periods(prices) == (9, 21, 7)


def test_stochastic_flat_range_is_fifty():
    res = indicators.stochastic([100] * 5, [100] * 5, [100] * 5, 3, 3)
    assert np.isnan(res.k[:2]).all()
    assert (res.k[2:] == 50.0).all()
    assert res.d[4] == 50.0


def test_stochastic_close_at_high():
    high = [10, 11, 12, 13]
    low = [8, 9, 10, 11]
    close = [9, 10, 11, 13]
    res = indicators.stochastic(high, low, close, 3, 1)
    assert abs(res.k[3] - 100.0) < 1e-12


def test_adx_first_value_and_strong_trend():
    n = 10
    high = [i + 2.0 for i in range(n)]
    low = [float(i) for i in range(n)]
    close = [i + 1.0 for i in range(n)]
    out = indicators.adx(high, low, close, 3)
    assert np.isnan(out[:5]).all()
    assert abs(out[5] - 100.0) < 1e-9
    assert np.isnan(indicators.adx(high[:5], low[:5], close[:5], 3)).all()


def test_ichimoku_projection():
    n = 12
    high = [10.0 + i for i in range(n)]
    low = [8.0 + i for i in range(n)]
    close = [9.0 + i for i in range(n)]
    res = indicators.ichimoku(high, low, close, tenkan=2, kijun=3, senkou_b=4, displacement=2)
    for i in range(4, n):
        assert abs(res.senkou_a[i] - (res.tenkan[i - 2] + res.kijun[i - 2]) / 2) < 1e-12
    assert np.isnan(res.senkou_a[:2]).all()
    assert res.chikou[0] == close[2]
    assert np.isnan(res.chikou[-2:]).all()


def test_parabolic_sar_stays_below_rising_lows():
    n = 20
    high = [i + 1.0 for i in range(n)]
    low = [float(i) for i in range(n)]
    close = [i + 0.5 for i in range(n)]
    out = indicators.parabolic_sar(high, low, close)
    assert len(out) == n
    assert (out[1:] < np.array(low[1:])).all()
    assert np.isnan(indicators.parabolic_sar([1.0], [0.5], [0.8])).all()


def test_pivot_points_classic():
    res = indicators.pivot_points([110.0], [90.0], [100.0])
    assert res.pivot[0] == 100.0
    assert res.r1[0] == 110.0
    assert res.s1[0] == 90.0
    assert res.r2[0] == 120.0
    assert res.s2[0] == 80.0


def test_donchian_excludes_current_candle():
    upper, lower = indicators.donchian([1, 2, 3, 10], [0, 1, 2, 9], 3)
    assert np.isnan(upper[:3]).all()
    assert upper[3] == 3.0
    assert lower[3] == 0.0


@pytest.mark.parametrize(
    "call",
    [
        lambda: indicators.sma([1, 2, 3], 0),
        lambda: indicators.ema([1, 2, 3], -1),
        lambda: indicators.rsi([1, 2, 3], 0),
        lambda: indicators.atr([1], [1], [1], 0),
        lambda: indicators.donchian([1], [1], 0),
    ],
)
def test_invalid_period_raises(call):
    with pytest.raises(ValueError):
        call()


def test_bollinger_short_series_is_undefined():
    bands = indicators.bollinger_bands([1.0, 2.0, 3.0, 4.0], 5, 2.0)
    for line in bands:
        assert np.isnan(line).all()


def test_stochastic_short_series_is_undefined():
    high = [11.0, 12.0, 13.0]
    low = [9.0, 10.0, 11.0]
    close = [10.0, 11.0, 12.0]
    res = indicators.stochastic(high, low, close, 5, 3)
    assert np.isnan(res.k).all()
    assert np.isnan(res.d).all()


def test_ichimoku_senkou_b_undefined_before_window_and_shift():
    n = 10
    high = [float(10 + i) for i in range(n)]
    low = [float(5 + i) for i in range(n)]
    close = [float(8 + i) for i in range(n)]
    short = indicators.ichimoku(high, low, close, tenkan=2, kijun=3, senkou_b=52, displacement=0)
    assert np.isnan(short.senkou_b).all()

    res = indicators.ichimoku(high, low, close, tenkan=2, kijun=3, senkou_b=4, displacement=2)
    # 第一个有效值在 (senkou_b - 1) + displacement
    assert np.isnan(res.senkou_b[:5]).all()
    assert res.senkou_b[5] == (13.0 + 5.0) / 2.0
