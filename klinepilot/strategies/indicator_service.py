"""指标快照服务（IndicatorService）。

给定某一时刻可用的 K 线历史，只计算策略声明需要的因子，并统一“数据不足”口径：
快照里的每个值要么是有限的 float，要么是 None。
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Sequence

import pandas as pd

from klinepilot.common.models.models import Candle
from klinepilot.strategies.factors.base import Factor

CANDLE_COLS = ("start_ts", "end_ts", "open", "high", "low", "close", "volume")


def candles_to_frame(candles: Iterable[Candle]) -> pd.DataFrame:
    """K 线序列 → DataFrame（列：start_ts/end_ts/open/high/low/close/volume）。"""
    rows = [
        {
            "start_ts": c.start_ts,
            "end_ts": c.end_ts,
            "open": float(c.open),
            "high": float(c.high),
            "low": float(c.low),
            "close": float(c.close),
            "volume": float(c.volume),
        }
        for c in candles
    ]
    return pd.DataFrame(rows, columns=list(CANDLE_COLS))


def _factor_key(f: Factor) -> tuple:
    params = getattr(f, "params", None) or {}
    return (type(f).__name__, tuple(sorted((k, repr(v)) for k, v in params.items())))


def _clean(value: Any) -> float | None:
    if value is None:
        return None
    try:
        val = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(val) or math.isinf(val):
        return None
    return val


@dataclass(frozen=True)
class IndicatorSnapshot:
    """单根 K 线下标对应的指标快照（每步重新计算，不做修改）。"""

    index: int
    values: Mapping[str, float | None] = field(default_factory=dict)
    previous: Mapping[str, float | None] = field(default_factory=dict)

    def get(self, col: str) -> float | None:
        return self.values.get(col)

    def prev(self, col: str) -> float | None:
        return self.previous.get(col)

    def has(self, *cols: str) -> bool:
        """所有列的当前值均可用时返回 True。"""
        return all(self.values.get(c) is not None for c in cols)

    def as_dict(self) -> dict[str, float | None]:
        return dict(self.values)


class IndicatorService:
    """按需计算指标快照。

    Notes
    -----
    同一份历史（长度相同且首尾 K 线完全相等）只构建一次 DataFrame；
    已计算过的因子列在同一步内被多个策略复用。列名相同但参数不同的因子会覆盖重算。
    """

    def __init__(self):
        self._key: tuple[int, Candle | None, Candle | None] | None = None
        self._frame: pd.DataFrame | None = None
        self._owners: dict[str, tuple] = {}

    def reset(self) -> None:
        """丢弃缓存的 DataFrame 与因子列。"""
        self._key = None
        self._frame = None
        self._owners = {}

    def frame(self, history: Sequence[Candle]) -> pd.DataFrame:
        key = (len(history), history[0] if history else None, history[-1] if history else None)
        if self._frame is None or key != self._key:
            self._frame = candles_to_frame(history)
            self._key = key
            self._owners = {}
        return self._frame

    def snapshot(self, history: Sequence[Candle], factors: Iterable[Factor]) -> IndicatorSnapshot:
        if not history:
            return IndicatorSnapshot(index=-1)
        df = self.frame(history)
        cols: list[str] = []
        for f in factors:
            owner = _factor_key(f)
            if any(self._owners.get(c) != owner for c in f.columns):
                f.compute(df)
                self._owners.update({c: owner for c in f.columns})
            cols.extend(f.columns)

        last = len(df) - 1
        current = {c: _clean(df[c].iat[last]) for c in cols}
        previous = {c: _clean(df[c].iat[last - 1]) for c in cols} if last >= 1 else {c: None for c in cols}
        return IndicatorSnapshot(index=last, values=current, previous=previous)
