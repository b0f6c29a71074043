"""RSI 因子。"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import pandas as pd

from klinepilot.strategies.factors import indicators
from klinepilot.strategies.factors.base import require_columns, require_positive


@dataclass(frozen=True)
class RSIFactor:
    """相对强弱指数（Wilder 平滑版本）。"""

    period: int = 14
    price_col: str = "close"
    out_col: str | None = None
    name: str = "rsi"
    params: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        require_positive(self.period, what="RSI period")
        object.__setattr__(
            self,
            "params",
            {"period": self.period, "price_col": self.price_col, "out_col": self.out_col},
        )

    @property
    def columns(self) -> tuple[str, ...]:
        return (self.out_col or f"rsi_{self.period}",)

    def compute(self, df: pd.DataFrame) -> pd.DataFrame:
        require_columns(df, [self.price_col], factor="RSIFactor")
        df[self.columns[0]] = indicators.rsi(df[self.price_col].to_numpy(dtype=float), self.period)
        return df
