"""一目均衡表因子。"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import pandas as pd

from klinepilot.strategies.factors import indicators
from klinepilot.strategies.factors.base import require_columns, require_positive


@dataclass(frozen=True)
class IchimokuFactor:
    tenkan: int = 9
    kijun: int = 26
    senkou_b: int = 52
    displacement: int = 26
    prefix: str = "ichimoku"
    name: str = "ichimoku"
    params: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        for what, val in (("tenkan", self.tenkan), ("kijun", self.kijun), ("senkou_b", self.senkou_b)):
            require_positive(val, what=f"Ichimoku {what}")
        if int(self.displacement) < 0:
            raise ValueError("Ichimoku displacement must be >= 0")
        object.__setattr__(
            self,
            "params",
            {
                "tenkan": self.tenkan,
                "kijun": self.kijun,
                "senkou_b": self.senkou_b,
                "displacement": self.displacement,
                "prefix": self.prefix,
            },
        )

    @property
    def columns(self) -> tuple[str, ...]:
        p = self.prefix
        return (f"{p}_tenkan", f"{p}_kijun", f"{p}_senkou_a", f"{p}_senkou_b", f"{p}_chikou")

    def compute(self, df: pd.DataFrame) -> pd.DataFrame:
        require_columns(df, ("high", "low", "close"), factor="IchimokuFactor")
        res = indicators.ichimoku(
            df["high"].to_numpy(dtype=float),
            df["low"].to_numpy(dtype=float),
            df["close"].to_numpy(dtype=float),
            self.tenkan,
            self.kijun,
            self.senkou_b,
            self.displacement,
        )
        for col, values in zip(self.columns, res):
            df[col] = values
        return df
