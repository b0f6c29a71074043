"""执行端口（ExecutionPort）抽象。

账本状态不依赖下单结果：开仓失败时管线不记录仓位，平仓失败只记日志。
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from klinepilot.common.models.models import Side


class ExecutionPort(ABC):
    """下单抽象层。实现必须把网络/交易所错误转换为 False，而不是抛出。"""

    @abstractmethod
    def open(
        self,
        side: Side,
        quantity: float,
        entry_price: float,
        stop_loss: float | None = None,
        take_profit: float | None = None,
    ) -> bool:
        """按持仓方向开仓；返回是否下单成功。"""
        ...

    @abstractmethod
    def close(self, side: Side, quantity: float, exit_price: float) -> bool:
        """平掉 `side` 方向的仓位；返回是否下单成功。"""
        ...
