"""MACD 因子（可选波动率自适应周期）。"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import pandas as pd

from klinepilot.common.utils.logging import setup_logger
from klinepilot.strategies.factors import indicators
from klinepilot.strategies.factors.base import require_columns, require_positive

_LOGGER = setup_logger("factor-macd")


@dataclass(frozen=True)
class MACDFactor:
    """MACD 线 / 信号线 / 柱状图。

    Notes
    -----
    `adaptive=True` 时按最新布林带宽度收缩 fast/slow/signal 周期，
    周期由整段输入的最后一根 K 线决定，因此每一步都要整体重算。
    """

    fast: int = 12
    slow: int = 26
    signal: int = 9
    adaptive: bool = False
    bb_period: int = 20
    bb_k: float = 2.0
    price_col: str = "close"
    prefix: str | None = None
    name: str = "macd"
    params: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        for what, val in (("MACD fast", self.fast), ("MACD slow", self.slow), ("MACD signal", self.signal)):
            require_positive(val, what=what)
        require_positive(self.bb_period, what="MACD bb_period")
        object.__setattr__(
            self,
            "params",
            {
                "fast": self.fast,
                "slow": self.slow,
                "signal": self.signal,
                "adaptive": self.adaptive,
                "bb_period": self.bb_period,
                "bb_k": self.bb_k,
                "price_col": self.price_col,
                "prefix": self.prefix,
            },
        )

    @property
    def columns(self) -> tuple[str, ...]:
        tag = "amacd" if self.adaptive else "macd"
        p = self.prefix or f"{tag}_{self.fast}_{self.slow}_{self.signal}"
        return (f"{p}_line", f"{p}_signal", f"{p}_hist")

    def compute(self, df: pd.DataFrame) -> pd.DataFrame:
        require_columns(df, [self.price_col], factor="MACDFactor")
        prices = df[self.price_col].to_numpy(dtype=float)
        if self.adaptive:
            periods = indicators.adaptive_periods(
                prices, self.fast, self.slow, self.signal, self.bb_period, float(self.bb_k)
            )
            _LOGGER.debug("Adaptive MACD periods: %s", periods)
            res = indicators.macd(prices, *periods)
        else:
            res = indicators.macd(prices, self.fast, self.slow, self.signal)
        line, sig, hist = self.columns
        df[line] = res.macd
        df[sig] = res.signal
        df[hist] = res.histogram
        return df
