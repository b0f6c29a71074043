"""ATR 因子。"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import pandas as pd

from klinepilot.strategies.factors import indicators
from klinepilot.strategies.factors.base import require_columns, require_positive


@dataclass(frozen=True)
class ATRFactor:
    """平均真实波幅（Wilder 平滑版本）。"""

    period: int = 14
    high_col: str = "high"
    low_col: str = "low"
    close_col: str = "close"
    out_col: str | None = None
    name: str = "atr"
    params: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        require_positive(self.period, what="ATR period")
        object.__setattr__(
            self,
            "params",
            {
                "period": self.period,
                "high_col": self.high_col,
                "low_col": self.low_col,
                "close_col": self.close_col,
                "out_col": self.out_col,
            },
        )

    @property
    def columns(self) -> tuple[str, ...]:
        return (self.out_col or f"atr_{self.period}",)

    def compute(self, df: pd.DataFrame) -> pd.DataFrame:
        require_columns(df, (self.high_col, self.low_col, self.close_col), factor="ATRFactor")
        df[self.columns[0]] = indicators.atr(
            df[self.high_col].to_numpy(dtype=float),
            df[self.low_col].to_numpy(dtype=float),
            df[self.close_col].to_numpy(dtype=float),
            self.period,
        )
        return df
