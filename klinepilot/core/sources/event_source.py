"""事件源抽象（EventSource）。

把“获取下一根 K 线”从引擎中剥离：引擎只负责消费，不关心 K 线来自 CSV 还是 WebSocket。
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable, Iterator, Sequence

from klinepilot.common.models.models import Candle


class EventSource(ABC):
    """事件源抽象基类。"""

    def setup(self) -> None:
        """可选初始化钩子（例如建立 WS 连接）。"""

    def teardown(self) -> None:
        """可选清理钩子（例如关闭连接）。"""

    @abstractmethod
    def events(self) -> Iterator[Candle]:
        raise NotImplementedError


class CandleListEventSource(EventSource):
    """按给定顺序回放 K 线列表（不排序，乱序由管线过滤）。"""

    def __init__(self, candles: Sequence[Candle]):
        self._candles = candles

    def events(self) -> Iterator[Candle]:
        yield from self._candles


class IteratorEventSource(EventSource):
    """把任意 K 线迭代器包装成 EventSource。"""

    def __init__(self, iterator: Iterable[Candle]):
        self._iterator = iterator

    def events(self) -> Iterator[Candle]:
        yield from self._iterator
