"""行情客户端事件源（MarketEventSource）。

把 `market_client.kline_stream(symbol, interval)` 包装为 EventSource，并在此集中处理：
- setup/teardown 生命周期
- 断线重连
- 指数退避与抖动
"""

from __future__ import annotations

import random
import time
from typing import Iterator

from klinepilot.common.models.models import Candle
from klinepilot.core.sources.event_source import EventSource


class MarketEventSource(EventSource):
    def __init__(
        self,
        *,
        market_client,
        symbol: str,
        interval: str,
        logger=None,
        backoff_initial_secs: float = 1.0,
        backoff_max_secs: float = 30.0,
        backoff_factor: float = 2.0,
        jitter_secs: float = 0.2,
        sleep=time.sleep,
    ):
        self._client = market_client
        self._symbol = str(symbol)
        self._interval = str(interval)
        self._logger = logger

        self._backoff_initial_secs = float(backoff_initial_secs)
        self._backoff_max_secs = float(backoff_max_secs)
        self._backoff_factor = float(backoff_factor)
        self._jitter_secs = float(jitter_secs)
        self._sleep = sleep

        self._running = True

    def stop(self) -> None:
        self._running = False
        stop = getattr(self._client, "stop", None)
        if callable(stop):
            stop()

    def teardown(self) -> None:
        self.stop()

    def events(self) -> Iterator[Candle]:
        backoff = self._backoff_initial_secs
        while self._running:
            try:
                for candle in self._client.kline_stream(self._symbol, self._interval):
                    backoff = self._backoff_initial_secs
                    yield candle
                    if not self._running:
                        return
                if not self._running:
                    return
                raise ConnectionError("market kline stream ended")
            except (ConnectionError, OSError, TimeoutError) as exc:
                sleep_for = min(self._backoff_max_secs, max(0.0, backoff))
                if self._jitter_secs > 0:
                    sleep_for += random.uniform(0.0, self._jitter_secs)
                if self._logger:
                    self._logger.warning("MarketEventSource error: %s (retry in %.1fs)", exc, sleep_for)
                self._sleep(sleep_for)
                backoff = min(self._backoff_max_secs, max(self._backoff_initial_secs, backoff * self._backoff_factor))
