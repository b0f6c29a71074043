"""均线因子：SMA / EMA。"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import pandas as pd

from klinepilot.strategies.factors import indicators
from klinepilot.strategies.factors.base import require_columns, require_positive


@dataclass(frozen=True)
class MAFactor:
    """简单移动平均（窗口包含当前 K 线）。

    也用于成交量均线：`MAFactor(window=20, price_col="volume")`。
    """

    window: int = 20
    price_col: str = "close"
    out_col: str | None = None
    name: str = "ma"
    params: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        require_positive(self.window, what="MA window")
        object.__setattr__(
            self,
            "params",
            {"window": self.window, "price_col": self.price_col, "out_col": self.out_col},
        )

    @property
    def columns(self) -> tuple[str, ...]:
        if self.out_col:
            return (self.out_col,)
        prefix = "ma" if self.price_col == "close" else f"{self.price_col}_ma"
        return (f"{prefix}_{self.window}",)

    def compute(self, df: pd.DataFrame) -> pd.DataFrame:
        require_columns(df, [self.price_col], factor="MAFactor")
        df[self.columns[0]] = indicators.sma(df[self.price_col].to_numpy(dtype=float), self.window)
        return df


@dataclass(frozen=True)
class EMAFactor:
    """指数移动平均（首值为种子，前 period-1 根为 NaN）。"""

    period: int = 50
    price_col: str = "close"
    out_col: str | None = None
    name: str = "ema"
    params: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        require_positive(self.period, what="EMA period")
        object.__setattr__(
            self,
            "params",
            {"period": self.period, "price_col": self.price_col, "out_col": self.out_col},
        )

    @property
    def columns(self) -> tuple[str, ...]:
        return (self.out_col or f"ema_{self.period}",)

    def compute(self, df: pd.DataFrame) -> pd.DataFrame:
        require_columns(df, [self.price_col], factor="EMAFactor")
        df[self.columns[0]] = indicators.ema(df[self.price_col].to_numpy(dtype=float), self.period)
        return df
