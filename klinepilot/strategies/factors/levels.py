"""价格水平因子：枢轴点、唐奇安通道。"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import pandas as pd

from klinepilot.strategies.factors import indicators
from klinepilot.strategies.factors.base import require_columns, require_positive


@dataclass(frozen=True)
class PivotPointsFactor:
    """经典枢轴点（按每根 K 线自身的 H/L/C 计算）。"""

    prefix: str = "pivot"
    name: str = "pivot"
    params: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "params", {"prefix": self.prefix})

    @property
    def columns(self) -> tuple[str, ...]:
        p = self.prefix
        return (f"{p}_p", f"{p}_s1", f"{p}_s2", f"{p}_r1", f"{p}_r2")

    def compute(self, df: pd.DataFrame) -> pd.DataFrame:
        require_columns(df, ("high", "low", "close"), factor="PivotPointsFactor")
        res = indicators.pivot_points(
            df["high"].to_numpy(dtype=float),
            df["low"].to_numpy(dtype=float),
            df["close"].to_numpy(dtype=float),
        )
        for col, values in zip(self.columns, res):
            df[col] = values
        return df


@dataclass(frozen=True)
class DonchianFactor:
    """唐奇安通道（不含当前 K 线的 lookback 根高低点）。"""

    lookback: int = 20
    prefix: str | None = None
    name: str = "donchian"
    params: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        require_positive(self.lookback, what="Donchian lookback")
        object.__setattr__(self, "params", {"lookback": self.lookback, "prefix": self.prefix})

    @property
    def columns(self) -> tuple[str, ...]:
        p = self.prefix or f"donchian_{self.lookback}"
        return (f"{p}_upper", f"{p}_lower")

    def compute(self, df: pd.DataFrame) -> pd.DataFrame:
        require_columns(df, ("high", "low"), factor="DonchianFactor")
        upper, lower = indicators.donchian(
            df["high"].to_numpy(dtype=float), df["low"].to_numpy(dtype=float), self.lookback
        )
        up_col, low_col = self.columns
        df[up_col] = upper
        df[low_col] = lower
        return df
