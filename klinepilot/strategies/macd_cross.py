"""MACD 金叉/死叉策略。"""

from __future__ import annotations

from pydantic import Field, model_validator

from klinepilot.common.models.models import Candle, Signal, SignalType
from klinepilot.strategies.base import Strategy, StrategyParams, TrailingOffset
from klinepilot.strategies.factors.base import Factor
from klinepilot.strategies.factors.macd import MACDFactor
from klinepilot.strategies.indicator_service import IndicatorSnapshot


class MACDCrossParams(StrategyParams):
    fast: int = Field(default=12, gt=0)
    slow: int = Field(default=26, gt=0)
    signal: int = Field(default=9, gt=0)
    max_risk_usd: float | None = Field(default=100.0, ge=0.0)
    sl_atr_multiplier: float = Field(default=1.5, gt=0)
    tp_atr_multiplier: float = Field(default=3.0, gt=0)
    trailing: TrailingOffset = Field(default_factory=lambda: TrailingOffset(mode="atr", value=1.5))

    @model_validator(mode="after")
    def _check_periods(self) -> "MACDCrossParams":
        if self.fast >= self.slow:
            raise ValueError("fast must be less than slow")
        return self


class MACDCrossStrategy(Strategy):
    """MACD 线严格上穿信号线做多、严格下穿做空。"""

    key = "macd_cross"
    params_model = MACDCrossParams
    params: MACDCrossParams

    def __init__(self, params=None, **kwargs):
        super().__init__(params, **kwargs)
        p = self.params
        self._macd = MACDFactor(fast=p.fast, slow=p.slow, signal=p.signal)

    def factors(self) -> list[Factor]:
        return [self._macd, self.atr_factor]

    def _entry_signals(self, candle: Candle, snap: IndicatorSnapshot, capital: float) -> list[Signal]:
        line_col, signal_col, _ = self._macd.columns
        atr_col = self.atr_factor.columns[0]
        if not snap.has(line_col, signal_col, atr_col):
            return self._skip("insufficient_history")
        prev_line, prev_sig = snap.prev(line_col), snap.prev(signal_col)
        if prev_line is None or prev_sig is None:
            return self._skip("insufficient_history")

        p = self.params
        price = float(candle.close)
        atr = snap.get(atr_col)
        line, sig = snap.get(line_col), snap.get(signal_col)

        if prev_line < prev_sig and line > sig:
            return self._sized_entry(
                SignalType.BUY,
                candle,
                capital,
                stop_loss=price - p.sl_atr_multiplier * atr,
                take_profit=price + p.tp_atr_multiplier * atr,
                snap=snap,
                reason="macd_golden_cross",
            )
        if prev_line > prev_sig and line < sig:
            return self._sized_entry(
                SignalType.SELL,
                candle,
                capital,
                stop_loss=price + p.sl_atr_multiplier * atr,
                take_profit=price - p.tp_atr_multiplier * atr,
                snap=snap,
                reason="macd_death_cross",
            )
        return self._skip("no_cross")
