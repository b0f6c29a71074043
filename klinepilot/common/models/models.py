"""核心数据结构：Candle/Signal/OpenPosition/TradeRecord。

约定：
- 所有结构都是不可变的（frozen dataclass），状态变化通过构造新对象表达；
- 指标“数据不足”统一用 None 表示，不使用任何数值哨兵。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping


class Side(str, Enum):
    """持仓方向。"""

    LONG = "LONG"
    SHORT = "SHORT"


class SignalType(str, Enum):
    """信号类型：BUY/SELL 为开仓，CLOSE 为平仓。"""

    BUY = "BUY"
    SELL = "SELL"
    CLOSE = "CLOSE"

    @property
    def is_entry(self) -> bool:
        return self in (SignalType.BUY, SignalType.SELL)

    def to_side(self) -> Side:
        if self is SignalType.BUY:
            return Side.LONG
        if self is SignalType.SELL:
            return Side.SHORT
        raise ValueError("CLOSE signal has no position side")


@dataclass(frozen=True)
class Candle:
    """K 线数据（已收盘的 K 线才会进入决策管线）。"""

    symbol: str
    open: float
    high: float
    low: float
    close: float
    volume: float
    start_ts: datetime
    end_ts: datetime
    closed: bool = True


@dataclass(frozen=True)
class Signal:
    """策略输出的信号。

    Notes
    -----
    - 开仓信号（BUY/SELL）的 quantity 必须 > 0；
    - CLOSE 信号携带现有仓位的数量；
    - indicator_data 是入场时的指标快照，仅用于审计/报表。
    """

    type: SignalType
    price: float
    quantity: float
    stop_loss: float | None = None
    take_profit: float | None = None
    reason: str | None = None
    indicator_data: Mapping[str, Any] | None = None

    def __post_init__(self):
        if self.type.is_entry and not self.quantity > 0:
            raise ValueError(f"{self.type.value} signal requires quantity > 0, got {self.quantity}")


@dataclass(frozen=True)
class OpenPosition:
    """当前持仓（由 Ledger 独占；策略只能通过 PositionUpdate 提议修改）。"""

    strategy: str
    symbol: str
    side: Side
    entry_price: float
    quantity: float
    stop_loss: float | None
    take_profit: float | None
    open_time: datetime
    max_favorable: float
    min_favorable: float
    trailing_stop: float | None = None
    indicator_data: Mapping[str, Any] | None = None

    def profit_at(self, price: float) -> float:
        """按给定价格计算已实现盈亏。"""
        if self.side is Side.LONG:
            return (price - self.entry_price) * self.quantity
        return (self.entry_price - price) * self.quantity


@dataclass(frozen=True)
class PositionUpdate:
    """decide_exit 提议的窄更新：仅包含有利极值与追踪止损。"""

    max_favorable: float | None = None
    min_favorable: float | None = None
    trailing_stop: float | None = None


@dataclass(frozen=True)
class ExitDecision:
    """decide_exit 的返回值：平仓信号 + 可选的持仓更新提议。"""

    signals: list[Signal] = field(default_factory=list)
    update: PositionUpdate | None = None


@dataclass(frozen=True)
class TradeRecord:
    """已平仓交易的不可变记录（统计/报表的唯一输入）。"""

    strategy: str
    symbol: str
    side: Side
    entry_time: datetime
    exit_time: datetime
    entry_price: float
    exit_price: float
    quantity: float
    profit: float
    volume: float
    reason: str | None = None
    indicator_data: Mapping[str, Any] | None = None

    @property
    def duration_secs(self) -> float:
        return (self.exit_time - self.entry_time).total_seconds()

    @property
    def is_win(self) -> bool:
        return self.profit >= 0

    def to_row(self) -> dict[str, Any]:
        """转换为扁平 dict（CSV 导出用）。"""
        return {
            "strategy": self.strategy,
            "symbol": self.symbol,
            "side": self.side.value,
            "entry_time": self.entry_time.isoformat(),
            "exit_time": self.exit_time.isoformat(),
            "entry_price": self.entry_price,
            "exit_price": self.exit_price,
            "quantity": self.quantity,
            "profit": self.profit,
            "duration_secs": self.duration_secs,
            "volume": self.volume,
            "reason": self.reason,
            "indicator_data": dict(self.indicator_data) if self.indicator_data else None,
        }
