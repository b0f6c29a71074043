"""震荡/趋势强度因子：Stochastic、ADX。"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import pandas as pd

from klinepilot.strategies.factors import indicators
from klinepilot.strategies.factors.base import require_columns, require_positive

_HLC = ("high", "low", "close")


def _hlc(df: pd.DataFrame):
    return tuple(df[c].to_numpy(dtype=float) for c in _HLC)


@dataclass(frozen=True)
class StochasticFactor:
    """随机指标 %K / %D。"""

    k_period: int = 14
    d_period: int = 3
    prefix: str | None = None
    name: str = "stochastic"
    params: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        require_positive(self.k_period, what="Stochastic k_period")
        require_positive(self.d_period, what="Stochastic d_period")
        object.__setattr__(
            self,
            "params",
            {"k_period": self.k_period, "d_period": self.d_period, "prefix": self.prefix},
        )

    @property
    def columns(self) -> tuple[str, ...]:
        p = self.prefix or f"stoch_{self.k_period}_{self.d_period}"
        return (f"{p}_k", f"{p}_d")

    def compute(self, df: pd.DataFrame) -> pd.DataFrame:
        require_columns(df, _HLC, factor="StochasticFactor")
        res = indicators.stochastic(*_hlc(df), self.k_period, self.d_period)
        k_col, d_col = self.columns
        df[k_col] = res.k
        df[d_col] = res.d
        return df


@dataclass(frozen=True)
class ADXFactor:
    """平均趋向指数。"""

    period: int = 14
    out_col: str | None = None
    name: str = "adx"
    params: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        require_positive(self.period, what="ADX period")
        object.__setattr__(self, "params", {"period": self.period, "out_col": self.out_col})

    @property
    def columns(self) -> tuple[str, ...]:
        return (self.out_col or f"adx_{self.period}",)

    def compute(self, df: pd.DataFrame) -> pd.DataFrame:
        require_columns(df, _HLC, factor="ADXFactor")
        df[self.columns[0]] = indicators.adx(*_hlc(df), self.period)
        return df
