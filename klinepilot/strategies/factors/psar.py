"""抛物线 SAR 因子。"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import pandas as pd

from klinepilot.strategies.factors import indicators
from klinepilot.strategies.factors.base import require_columns


@dataclass(frozen=True)
class ParabolicSARFactor:
    """抛物线 SAR（整段历史顺序计算，不做增量）。"""

    initial_af: float = 0.02
    step_af: float = 0.02
    max_af: float = 0.2
    out_col: str = "psar"
    name: str = "psar"
    params: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not (0 < float(self.initial_af) <= float(self.max_af)):
            raise ValueError("Parabolic SAR requires 0 < initial_af <= max_af")
        if float(self.step_af) <= 0:
            raise ValueError("Parabolic SAR step_af must be > 0")
        object.__setattr__(
            self,
            "params",
            {
                "initial_af": self.initial_af,
                "step_af": self.step_af,
                "max_af": self.max_af,
                "out_col": self.out_col,
            },
        )

    @property
    def columns(self) -> tuple[str, ...]:
        return (self.out_col,)

    def compute(self, df: pd.DataFrame) -> pd.DataFrame:
        require_columns(df, ("high", "low", "close"), factor="ParabolicSARFactor")
        df[self.out_col] = indicators.parabolic_sar(
            df["high"].to_numpy(dtype=float),
            df["low"].to_numpy(dtype=float),
            df["close"].to_numpy(dtype=float),
            float(self.initial_af),
            float(self.step_af),
            float(self.max_af),
        )
        return df
