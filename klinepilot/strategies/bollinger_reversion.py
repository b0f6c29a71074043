"""布林带均值回归策略（Bollinger mean-reversion）。"""

from __future__ import annotations

from pydantic import Field

from klinepilot.common.models.models import Candle, Signal, SignalType
from klinepilot.strategies.base import Strategy, StrategyParams, TrailingOffset
from klinepilot.strategies.factors.base import Factor
from klinepilot.strategies.factors.bollinger import BollingerFactor
from klinepilot.strategies.factors.ma import EMAFactor
from klinepilot.strategies.indicator_service import IndicatorSnapshot


class BollingerReversionParams(StrategyParams):
    period: int = Field(default=20, gt=0)
    k: float = Field(default=2.0, gt=0)
    sl_atr_multiplier: float = Field(default=1.0, gt=0)
    tp_atr_multiplier: float = Field(default=3.0, gt=0)
    trend_ema_period: int | None = Field(default=None, gt=0)
    trailing: TrailingOffset = Field(default_factory=lambda: TrailingOffset(mode="atr", value=2.0))


class BollingerReversionStrategy(Strategy):
    """价格触及布林带外轨后押注回归中轨。

    Entry:
    - BUY：收盘价 <= 下轨
    - SELL：收盘价 >= 上轨
    - 可选趋势过滤（trend_ema_period）：BUY 需收盘价 > EMA，SELL 需收盘价 < EMA

    Exit:
    - 统一出场：ATR 追踪止损 → 止盈 → 止损
    """

    key = "bollinger_reversion"
    params_model = BollingerReversionParams
    params: BollingerReversionParams

    def __init__(self, params=None, **kwargs):
        super().__init__(params, **kwargs)
        p = self.params
        self._bb = BollingerFactor(period=p.period, k=p.k)
        self._ema = EMAFactor(period=p.trend_ema_period) if p.trend_ema_period else None

    def factors(self) -> list[Factor]:
        out: list[Factor] = [self._bb, self.atr_factor]
        if self._ema is not None:
            out.append(self._ema)
        return out

    def _entry_signals(self, candle: Candle, snap: IndicatorSnapshot, capital: float) -> list[Signal]:
        _, upper_col, lower_col = self._bb.columns
        atr_col = self.atr_factor.columns[0]
        if not snap.has(upper_col, lower_col, atr_col):
            return self._skip("insufficient_history")
        trend = None
        if self._ema is not None:
            trend = snap.get(self._ema.columns[0])
            if trend is None:
                return self._skip("insufficient_history")

        p = self.params
        price = float(candle.close)
        atr = snap.get(atr_col)
        upper = snap.get(upper_col)
        lower = snap.get(lower_col)

        if price <= lower and (trend is None or price > trend):
            return self._sized_entry(
                SignalType.BUY,
                candle,
                capital,
                stop_loss=price - p.sl_atr_multiplier * atr,
                take_profit=price + p.tp_atr_multiplier * atr,
                snap=snap,
                reason="bb_lower_touch",
            )
        if price >= upper and (trend is None or price < trend):
            return self._sized_entry(
                SignalType.SELL,
                candle,
                capital,
                stop_loss=price + p.sl_atr_multiplier * atr,
                take_profit=price - p.tp_atr_multiplier * atr,
                snap=snap,
                reason="bb_upper_touch",
            )
        return self._skip("no_setup")
