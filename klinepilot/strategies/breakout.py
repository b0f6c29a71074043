"""通道突破策略（Donchian breakout）。"""

from __future__ import annotations

from pydantic import Field

from klinepilot.common.models.models import Candle, Signal, SignalType
from klinepilot.strategies.base import Strategy, StrategyParams
from klinepilot.strategies.factors.base import Factor
from klinepilot.strategies.factors.levels import DonchianFactor
from klinepilot.strategies.indicator_service import IndicatorSnapshot


class BreakoutParams(StrategyParams):
    lookback: int = Field(default=20, gt=0)
    risk_percent: float = Field(default=0.02, ge=0.0)
    max_risk_usd: float | None = Field(default=150.0, ge=0.0)
    rr_ratio: float = Field(default=2.0, gt=0)
    buffer: float = Field(default=0.001, ge=0.0, lt=1.0)


class BreakoutStrategy(Strategy):
    """收盘价突破前 lookback 根 K 线的高/低点（带缓冲）时顺势入场。

    止损 = 收盘价 ∓ 1×ATR，止盈 = 收盘价 ± rr_ratio×ATR；默认不追踪。
    """

    key = "breakout"
    params_model = BreakoutParams
    params: BreakoutParams

    def __init__(self, params=None, **kwargs):
        super().__init__(params, **kwargs)
        self._channel = DonchianFactor(lookback=self.params.lookback)

    def factors(self) -> list[Factor]:
        return [self._channel, self.atr_factor]

    def _entry_signals(self, candle: Candle, snap: IndicatorSnapshot, capital: float) -> list[Signal]:
        upper_col, lower_col = self._channel.columns
        atr_col = self.atr_factor.columns[0]
        if not snap.has(upper_col, lower_col, atr_col):
            return self._skip("insufficient_history")

        p = self.params
        price = float(candle.close)
        atr = snap.get(atr_col)

        if price > snap.get(upper_col) * (1 + p.buffer):
            return self._sized_entry(
                SignalType.BUY,
                candle,
                capital,
                stop_loss=price - atr,
                take_profit=price + p.rr_ratio * atr,
                snap=snap,
                reason="breakout_up",
            )
        if price < snap.get(lower_col) * (1 - p.buffer):
            return self._sized_entry(
                SignalType.SELL,
                candle,
                capital,
                stop_loss=price + atr,
                take_profit=price - p.rr_ratio * atr,
                snap=snap,
                reason="breakout_down",
            )
        return self._skip("no_setup")
