"""因子（Factors）抽象协议与公共校验。"""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Protocol

import pandas as pd


class Factor(Protocol):
    """因子协议：`compute(df) -> df`，并通过 `columns` 声明输出列。"""

    name: str
    params: Mapping[str, Any]

    @property
    def columns(self) -> tuple[str, ...]:
        """本因子写入的列名。"""
        ...

    def compute(self, df: pd.DataFrame) -> pd.DataFrame:
        """对输入 df 添加/更新因子列并返回 df。"""
        ...


def require_columns(df: pd.DataFrame, cols: Iterable[str], *, factor: str) -> None:
    for col in cols:
        if col not in df.columns:
            raise ValueError(f"{factor} requires column: {col}")


def require_positive(value: int, *, what: str) -> None:
    if int(value) <= 0:
        raise ValueError(f"{what} must be > 0")
