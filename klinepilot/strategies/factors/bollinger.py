"""布林带因子。"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import pandas as pd

from klinepilot.strategies.factors import indicators
from klinepilot.strategies.factors.base import require_columns, require_positive


@dataclass(frozen=True)
class BollingerFactor:
    """布林带（中轨 SMA + 总体标准差）。输出 middle/upper/lower 三列。"""

    period: int = 20
    k: float = 2.0
    price_col: str = "close"
    prefix: str | None = None
    name: str = "bollinger"
    params: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        require_positive(self.period, what="Bollinger period")
        if float(self.k) <= 0:
            raise ValueError("Bollinger k must be > 0")
        object.__setattr__(
            self,
            "params",
            {"period": self.period, "k": self.k, "price_col": self.price_col, "prefix": self.prefix},
        )

    @property
    def columns(self) -> tuple[str, ...]:
        p = self.prefix or f"bb_{self.period}_{float(self.k):g}"
        return (f"{p}_middle", f"{p}_upper", f"{p}_lower")

    def compute(self, df: pd.DataFrame) -> pd.DataFrame:
        require_columns(df, [self.price_col], factor="BollingerFactor")
        bands = indicators.bollinger_bands(df[self.price_col].to_numpy(dtype=float), self.period, float(self.k))
        middle, upper, lower = self.columns
        df[middle] = bands.middle
        df[upper] = bands.upper
        df[lower] = bands.lower
        return df
