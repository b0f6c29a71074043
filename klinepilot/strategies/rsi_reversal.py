"""RSI 超买超卖反转策略。"""

from __future__ import annotations

from pydantic import Field, model_validator

from klinepilot.common.models.models import Candle, Signal, SignalType
from klinepilot.strategies.base import Strategy, StrategyParams, TrailingOffset
from klinepilot.strategies.factors.base import Factor
from klinepilot.strategies.factors.ma import EMAFactor
from klinepilot.strategies.factors.rsi import RSIFactor
from klinepilot.strategies.indicator_service import IndicatorSnapshot


class RSIReversalParams(StrategyParams):
    rsi_period: int = Field(default=14, gt=0)
    overbought: float = Field(default=70.0, gt=0, lt=100)
    oversold: float = Field(default=30.0, gt=0, lt=100)
    sl_atr_multiplier: float = Field(default=2.0, gt=0)
    tp_atr_multiplier: float = Field(default=3.0, gt=0)
    trend_ema_period: int | None = Field(default=None, gt=0)
    trailing: TrailingOffset = Field(default_factory=lambda: TrailingOffset(mode="atr", value=4.0))

    @model_validator(mode="after")
    def _check_levels(self) -> "RSIReversalParams":
        if self.oversold >= self.overbought:
            raise ValueError("oversold must be below overbought")
        return self


class RSIReversalStrategy(Strategy):
    """RSI 跌破超卖做多、升破超买做空；可选 EMA 趋势过滤（同布林带策略）。"""

    key = "rsi_reversal"
    params_model = RSIReversalParams
    params: RSIReversalParams

    def __init__(self, params=None, **kwargs):
        super().__init__(params, **kwargs)
        p = self.params
        self._rsi = RSIFactor(period=p.rsi_period)
        self._ema = EMAFactor(period=p.trend_ema_period) if p.trend_ema_period else None

    def factors(self) -> list[Factor]:
        out: list[Factor] = [self._rsi, self.atr_factor]
        if self._ema is not None:
            out.append(self._ema)
        return out

    def _entry_signals(self, candle: Candle, snap: IndicatorSnapshot, capital: float) -> list[Signal]:
        rsi_col = self._rsi.columns[0]
        atr_col = self.atr_factor.columns[0]
        if not snap.has(rsi_col, atr_col):
            return self._skip("insufficient_history")
        trend = None
        if self._ema is not None:
            trend = snap.get(self._ema.columns[0])
            if trend is None:
                return self._skip("insufficient_history")

        p = self.params
        price = float(candle.close)
        rsi = snap.get(rsi_col)
        atr = snap.get(atr_col)

        if rsi < p.oversold and (trend is None or price > trend):
            return self._sized_entry(
                SignalType.BUY,
                candle,
                capital,
                stop_loss=price - p.sl_atr_multiplier * atr,
                take_profit=price + p.tp_atr_multiplier * atr,
                snap=snap,
                reason="rsi_oversold",
            )
        if rsi > p.overbought and (trend is None or price < trend):
            return self._sized_entry(
                SignalType.SELL,
                candle,
                capital,
                stop_loss=price + p.sl_atr_multiplier * atr,
                take_profit=price - p.tp_atr_multiplier * atr,
                snap=snap,
                reason="rsi_overbought",
            )
        return self._skip("no_setup")
