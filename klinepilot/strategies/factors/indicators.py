"""技术指标库（纯函数）。

约定：
- 输入为按时间排序的序列（list / numpy array / pandas Series 均可）；
- 输出为与输入等长的 numpy 数组，数据不足的位置为 NaN（上层快照再转换为 None）；
- 递推类指标（EMA/RSI/ATR/ADX/SAR）按顺序逐元素计算，保证结果逐位可复现；
- 周期参数非法（<= 0）时抛 ValueError；序列过短不是错误，只返回全 NaN。
"""

from __future__ import annotations

import math
from typing import NamedTuple, Sequence

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

ArrayLike = Sequence[float] | np.ndarray


class BollingerBands(NamedTuple):
    middle: np.ndarray
    upper: np.ndarray
    lower: np.ndarray


class MACDResult(NamedTuple):
    macd: np.ndarray
    signal: np.ndarray
    histogram: np.ndarray


class StochasticResult(NamedTuple):
    k: np.ndarray
    d: np.ndarray


class IchimokuResult(NamedTuple):
    tenkan: np.ndarray
    kijun: np.ndarray
    senkou_a: np.ndarray
    senkou_b: np.ndarray
    chikou: np.ndarray


class PivotPoints(NamedTuple):
    pivot: np.ndarray
    s1: np.ndarray
    s2: np.ndarray
    r1: np.ndarray
    r2: np.ndarray


def _as_array(values: ArrayLike) -> np.ndarray:
    return np.array(values, dtype=float, copy=True).reshape(-1)


def _check_period(period: int, name: str) -> int:
    p = int(period)
    if p <= 0:
        raise ValueError(f"{name} period must be > 0")
    return p


def _nan(n: int) -> np.ndarray:
    return np.full(n, np.nan, dtype=float)


def _windows(x: np.ndarray, period: int) -> np.ndarray:
    """长度为 period 的滑动窗口视图（第 j 行对应 x[j : j + period]）。"""
    return sliding_window_view(x, period)


def _ema_raw(x: np.ndarray, period: int) -> np.ndarray:
    """以首个值为种子的 EMA 递推（不做预热屏蔽）。"""
    out = np.empty(len(x), dtype=float)
    if len(x) == 0:
        return out
    k = 2.0 / (period + 1)
    prev = float(x[0])
    out[0] = prev
    for i in range(1, len(x)):
        prev = float(x[i]) * k + prev * (1 - k)
        out[i] = prev
    return out


def _wilder(seed: float, values: np.ndarray, period: int) -> list[float]:
    """Wilder 平滑：avg = (avg * (period - 1) + v) / period。"""
    out = [seed]
    avg = seed
    for v in values:
        avg = (avg * (period - 1) + float(v)) / period
        out.append(avg)
    return out


def sma(values: ArrayLike, period: int) -> np.ndarray:
    """简单移动平均；窗口包含当前值，i < period-1 为 NaN。"""
    p = _check_period(period, "SMA")
    x = _as_array(values)
    out = _nan(len(x))
    if len(x) < p:
        return out
    out[p - 1 :] = _windows(x, p).mean(axis=1)
    return out


def ema(values: ArrayLike, period: int) -> np.ndarray:
    """指数移动平均：种子为首个值，k = 2/(period+1)；i < period-1 为 NaN。"""
    p = _check_period(period, "EMA")
    x = _as_array(values)
    out = _ema_raw(x, p)
    out[: p - 1] = np.nan
    return out


def rsi(values: ArrayLike, period: int = 14) -> np.ndarray:
    """相对强弱指数（Wilder）。

    前 period 个差分的简单均值作为种子，之后 Wilder 递推；
    avg_loss == 0 时记为 100（全部持平也是 100）。
    第一个有效值位于价格下标 period。
    """
    p = _check_period(period, "RSI")
    x = _as_array(values)
    out = _nan(len(x))
    if len(x) < p + 1:
        return out

    deltas = np.diff(x)
    gains = np.where(deltas > 0, deltas, 0.0)
    losses = np.where(deltas < 0, -deltas, 0.0)

    avg_gains = _wilder(float(gains[:p].sum()) / p, gains[p:], p)
    avg_losses = _wilder(float(losses[:p].sum()) / p, losses[p:], p)
    for j, (g, l) in enumerate(zip(avg_gains, avg_losses)):
        out[p + j] = 100.0 if l == 0 else 100.0 - 100.0 / (1.0 + g / l)
    return out


def true_range(high: ArrayLike, low: ArrayLike, close: ArrayLike) -> np.ndarray:
    """真实波幅；下标 0 没有前收盘价，取 high - low。"""
    h, l, c = _as_array(high), _as_array(low), _as_array(close)
    tr = h - l
    if len(h) > 1:
        prev = c[:-1]
        tr[1:] = np.maximum(h[1:] - l[1:], np.maximum(np.abs(h[1:] - prev), np.abs(l[1:] - prev)))
    return tr


def atr(high: ArrayLike, low: ArrayLike, close: ArrayLike, period: int = 14) -> np.ndarray:
    """平均真实波幅（Wilder）。

    TR 从下标 1 开始；种子为 TR[1..period] 的均值，位于下标 period。
    """
    p = _check_period(period, "ATR")
    tr = true_range(high, low, close)
    out = _nan(len(tr))
    if len(tr) < p + 1:
        return out
    smoothed = _wilder(float(tr[1 : p + 1].sum()) / p, tr[p + 1 :], p)
    out[p:] = smoothed
    return out


def bollinger_bands(values: ArrayLike, period: int = 20, k: float = 2.0) -> BollingerBands:
    """布林带：中轨 SMA，上下轨 = 中轨 ± k * 总体标准差（同一窗口）。"""
    p = _check_period(period, "Bollinger")
    x = _as_array(values)
    middle = sma(x, p)
    std = _nan(len(x))
    if len(x) >= p:
        std[p - 1 :] = _windows(x, p).std(axis=1)
    return BollingerBands(middle=middle, upper=middle + k * std, lower=middle - k * std)


def macd(values: ArrayLike, fast: int = 12, slow: int = 26, signal: int = 9) -> MACDResult:
    """MACD = EMA(fast) - EMA(slow)；signal = EMA(macd, signal)。

    递推从下标 0 开始（与预热屏蔽无关），macd 从 max(fast, slow)-1 起有效，
    signal/histogram 再往后 signal-1 根。
    """
    f = _check_period(fast, "MACD fast")
    s = _check_period(slow, "MACD slow")
    g = _check_period(signal, "MACD signal")
    x = _as_array(values)

    line = _ema_raw(x, f) - _ema_raw(x, s)
    sig = _ema_raw(line, g)
    hist = line - sig

    warmup = max(f, s) - 1
    line[:warmup] = np.nan
    sig[: warmup + g - 1] = np.nan
    hist[: warmup + g - 1] = np.nan
    return MACDResult(macd=line, signal=sig, histogram=hist)


def adaptive_periods(
    values: ArrayLike,
    fast: int = 12,
    slow: int = 26,
    signal: int = 9,
    bb_period: int = 20,
    bb_k: float = 2.0,
) -> tuple[int, int, int]:
    """按最新布林带宽度（(upper - middle) / middle）收缩 MACD 周期。

    每个周期取 int(base * (1 - ratio))，限制在 [2, base]；slow 至少为 fast + 1。
    布林带不可用时返回原始周期。
    """
    bands = bollinger_bands(values, bb_period, bb_k)
    if len(bands.middle) == 0:
        return int(fast), int(slow), int(signal)
    middle = float(bands.middle[-1])
    upper = float(bands.upper[-1])
    if math.isnan(middle) or middle == 0:
        return int(fast), int(slow), int(signal)
    ratio = (upper - middle) / middle

    def _scale(base: int) -> int:
        return min(max(int(base * (1 - ratio)), 2), int(base))

    f, s, g = _scale(fast), _scale(slow), _scale(signal)
    if s <= f:
        s = f + 1
    return f, s, g


def adaptive_macd(
    values: ArrayLike,
    fast: int = 12,
    slow: int = 26,
    signal: int = 9,
    bb_period: int = 20,
    bb_k: float = 2.0,
) -> MACDResult:
    """波动率自适应 MACD（周期由 `adaptive_periods` 决定）。"""
    f, s, g = adaptive_periods(values, fast, slow, signal, bb_period, bb_k)
    return macd(values, f, s, g)


def stochastic(
    high: ArrayLike,
    low: ArrayLike,
    close: ArrayLike,
    k_period: int = 14,
    d_period: int = 3,
) -> StochasticResult:
    """随机指标：%K 区间为零时记 50；%D = SMA(%K, d_period)。"""
    kp = _check_period(k_period, "Stochastic %K")
    dp = _check_period(d_period, "Stochastic %D")
    h, l, c = _as_array(high), _as_array(low), _as_array(close)
    k = _nan(len(c))
    if len(c) >= kp:
        hh = _windows(h, kp).max(axis=1)
        ll = _windows(l, kp).min(axis=1)
        cc = c[kp - 1 :]
        rng = hh - ll
        with np.errstate(divide="ignore", invalid="ignore"):
            raw = np.where(rng == 0, 50.0, (cc - ll) / np.where(rng == 0, 1.0, rng) * 100.0)
        k[kp - 1 :] = raw
    return StochasticResult(k=k, d=sma(k, dp))


def adx(high: ArrayLike, low: ArrayLike, close: ArrayLike, period: int = 14) -> np.ndarray:
    """平均趋向指数（Wilder）。

    TR/+DM/-DM 从下标 1 开始，先以前 period 个均值为种子平滑，
    DX 再取前 period 个均值为种子平滑；第一个有效值位于下标 2*period-1。
    """
    p = _check_period(period, "ADX")
    h, l, c = _as_array(high), _as_array(low), _as_array(close)
    n = len(c)
    out = _nan(n)
    if n < 2 * p:
        return out

    tr = true_range(h, l, c)[1:]
    up = h[1:] - h[:-1]
    down = l[:-1] - l[1:]
    plus_dm = np.where((up > down) & (up > 0), up, 0.0)
    minus_dm = np.where((down > up) & (down > 0), down, 0.0)

    s_tr = _wilder(float(tr[:p].sum()) / p, tr[p:], p)
    s_plus = _wilder(float(plus_dm[:p].sum()) / p, plus_dm[p:], p)
    s_minus = _wilder(float(minus_dm[:p].sum()) / p, minus_dm[p:], p)

    dx: list[float] = []
    for t, pl, mi in zip(s_tr, s_plus, s_minus):
        if t == 0:
            dx.append(0.0)
            continue
        plus_di = pl / t * 100.0
        minus_di = mi / t * 100.0
        total = plus_di + minus_di
        dx.append(0.0 if total == 0 else abs(plus_di - minus_di) / total * 100.0)

    dx_arr = np.array(dx, dtype=float)
    smoothed = _wilder(float(dx_arr[:p].sum()) / p, dx_arr[p:], p)
    out[2 * p - 1 :] = smoothed
    return out


def _midpoint(h: np.ndarray, l: np.ndarray, period: int) -> np.ndarray:
    out = _nan(len(h))
    if len(h) >= period:
        out[period - 1 :] = (_windows(h, period).max(axis=1) + _windows(l, period).min(axis=1)) / 2.0
    return out


def _shift(x: np.ndarray, n: int) -> np.ndarray:
    """n > 0 向后平移（前补 NaN），n < 0 向前平移（尾补 NaN）。"""
    out = _nan(len(x))
    if n == 0:
        return x.copy()
    if abs(n) >= len(x):
        return out
    if n > 0:
        out[n:] = x[:-n]
    else:
        out[:n] = x[-n:]
    return out


def ichimoku(
    high: ArrayLike,
    low: ArrayLike,
    close: ArrayLike,
    tenkan: int = 9,
    kijun: int = 26,
    senkou_b: int = 52,
    displacement: int = 26,
) -> IchimokuResult:
    """一目均衡表。

    云层（senkou A/B）向前投影 displacement 根：下标 i 的值来自 i - displacement；
    chikou 为 displacement 根之后的收盘价（尾部为 NaN）。
    """
    tp = _check_period(tenkan, "Ichimoku tenkan")
    kp = _check_period(kijun, "Ichimoku kijun")
    bp = _check_period(senkou_b, "Ichimoku senkou B")
    disp = int(displacement)
    if disp < 0:
        raise ValueError("Ichimoku displacement must be >= 0")
    h, l, c = _as_array(high), _as_array(low), _as_array(close)

    tenkan_line = _midpoint(h, l, tp)
    kijun_line = _midpoint(h, l, kp)
    span_a = _shift((tenkan_line + kijun_line) / 2.0, disp)
    span_b = _shift(_midpoint(h, l, bp), disp)
    chikou = _shift(c, -disp)
    return IchimokuResult(tenkan=tenkan_line, kijun=kijun_line, senkou_a=span_a, senkou_b=span_b, chikou=chikou)


def parabolic_sar(
    high: ArrayLike,
    low: ArrayLike,
    close: ArrayLike,
    initial_af: float = 0.02,
    step_af: float = 0.02,
    max_af: float = 0.2,
) -> np.ndarray:
    """抛物线 SAR。

    唯一依赖完整历史的指标：趋势/加速因子/极值点在整段序列上顺序传递，
    每次都从头计算，不做增量。
    """
    h, l, c = _as_array(high), _as_array(low), _as_array(close)
    n = len(c)
    out = _nan(n)
    if n < 2:
        return out

    uptrend = c[1] > c[0]
    sar = float(l[0]) if uptrend else float(h[0])
    ep = float(h[1]) if uptrend else float(l[1])
    af = float(initial_af)
    out[0] = sar

    for i in range(1, n):
        cur_high = float(h[i])
        cur_low = float(l[i])
        sar = sar + af * (ep - sar)
        if uptrend:
            if cur_low < sar:
                uptrend = False
                sar = ep
                ep = cur_low
                af = float(initial_af)
            else:
                if cur_high > ep:
                    ep = cur_high
                    af = min(af + step_af, max_af)
                if i >= 2:
                    sar = min(sar, min(float(l[i - 1]), cur_low))
        else:
            if cur_high > sar:
                uptrend = True
                sar = ep
                ep = cur_high
                af = float(initial_af)
            else:
                if cur_low < ep:
                    ep = cur_low
                    af = min(af + step_af, max_af)
                if i >= 2:
                    sar = max(sar, max(float(h[i - 1]), cur_high))
        out[i] = sar
    return out


def pivot_points(high: ArrayLike, low: ArrayLike, close: ArrayLike) -> PivotPoints:
    """经典枢轴点：P = (H + L + C) / 3，S1 = 2P - H，R1 = 2P - L，S2/R2 = P ∓ (H - L)。"""
    h, l, c = _as_array(high), _as_array(low), _as_array(close)
    pivot = (h + l + c) / 3.0
    rng = h - l
    return PivotPoints(
        pivot=pivot,
        s1=2 * pivot - h,
        s2=pivot - rng,
        r1=2 * pivot - l,
        r2=pivot + rng,
    )


def donchian(high: ArrayLike, low: ArrayLike, lookback: int = 20) -> tuple[np.ndarray, np.ndarray]:
    """唐奇安通道：当前 K 线之前 lookback 根的最高价/最低价（不含当前）。"""
    p = _check_period(lookback, "Donchian")
    h, l = _as_array(high), _as_array(low)
    upper = _nan(len(h))
    lower = _nan(len(l))
    if len(h) >= p + 1:
        upper[p:] = _windows(h, p).max(axis=1)[:-1]
        lower[p:] = _windows(l, p).min(axis=1)[:-1]
    return upper, lower
