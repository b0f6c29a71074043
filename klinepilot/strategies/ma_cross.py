"""均线交叉策略（SMA 金叉/死叉 + 成交量分档风控）。"""

from __future__ import annotations

from pydantic import Field, model_validator

from klinepilot.common.models.models import Candle, Signal, SignalType
from klinepilot.strategies.base import Strategy, StrategyParams
from klinepilot.strategies.factors.base import Factor
from klinepilot.strategies.factors.ma import MAFactor
from klinepilot.strategies.indicator_service import IndicatorSnapshot


class MACrossParams(StrategyParams):
    short_period: int = Field(default=7, gt=0)
    long_period: int = Field(default=25, gt=0)
    risk_percent: float = Field(default=0.02, ge=0.0)
    max_risk_usd: float | None = Field(default=100.0, ge=0.0)
    high_volume_threshold: float = Field(default=5000.0, ge=0.0)
    min_volume: float = Field(default=500.0, ge=0.0)
    high_volume_sl_pct: float = Field(default=0.008, gt=0, lt=1)
    high_volume_tp_pct: float = Field(default=0.06, gt=0, lt=1)
    high_volume_trailing_pct: float = Field(default=0.004, gt=0, lt=1)
    normal_sl_pct: float = Field(default=0.012, gt=0, lt=1)
    normal_tp_pct: float = Field(default=0.045, gt=0, lt=1)
    normal_trailing_pct: float = Field(default=0.0055, gt=0, lt=1)

    @model_validator(mode="after")
    def _check_periods(self) -> "MACrossParams":
        if self.short_period >= self.long_period:
            raise ValueError("short_period must be less than long_period")
        return self


class MACrossStrategy(Strategy):
    """SMA 短线上穿长线做多、下穿做空。

    Notes
    -----
    - 成交量低于 min_volume 的 K 线不入场；
    - 成交量 >= high_volume_threshold 时使用更紧的止损/追踪、更远的止盈；
    - 出场时按当前 K 线成交量选择追踪百分比（不依赖 ATR）。
    """

    key = "ma_cross"
    params_model = MACrossParams
    params: MACrossParams

    def __init__(self, params=None, **kwargs):
        super().__init__(params, **kwargs)
        self._short = MAFactor(window=self.params.short_period)
        self._long = MAFactor(window=self.params.long_period)

    def factors(self) -> list[Factor]:
        return [self._short, self._long]

    def exit_factors(self) -> list[Factor]:
        return []

    def _regime(self, volume: float) -> tuple[float, float, float]:
        p = self.params
        if volume >= p.high_volume_threshold:
            return p.high_volume_sl_pct, p.high_volume_tp_pct, p.high_volume_trailing_pct
        return p.normal_sl_pct, p.normal_tp_pct, p.normal_trailing_pct

    def trailing_offset(self, candle: Candle, snap: IndicatorSnapshot | None) -> float | None:
        _, _, trailing_pct = self._regime(float(candle.volume))
        return float(candle.close) * trailing_pct

    def _entry_signals(self, candle: Candle, snap: IndicatorSnapshot, capital: float) -> list[Signal]:
        short_col = self._short.columns[0]
        long_col = self._long.columns[0]
        if not snap.has(short_col, long_col) or snap.prev(short_col) is None or snap.prev(long_col) is None:
            return self._skip("insufficient_history")

        volume = float(candle.volume)
        if volume < self.params.min_volume:
            return self._skip("low_volume")

        sl_pct, tp_pct, _ = self._regime(volume)
        price = float(candle.close)
        prev_diff = snap.prev(short_col) - snap.prev(long_col)
        curr_diff = snap.get(short_col) - snap.get(long_col)

        if prev_diff <= 0 < curr_diff:
            return self._sized_entry(
                SignalType.BUY,
                candle,
                capital,
                stop_loss=price * (1.0 - sl_pct),
                take_profit=price * (1.0 + tp_pct),
                snap=snap,
                reason="golden_cross",
            )
        if prev_diff >= 0 > curr_diff:
            return self._sized_entry(
                SignalType.SELL,
                candle,
                capital,
                stop_loss=price * (1.0 + sl_pct),
                take_profit=price * (1.0 - tp_pct),
                snap=snap,
                reason="death_cross",
            )
        return self._skip("no_cross")
