"""实时 / 干跑交易引擎（TradingEngine）。

线程模型：
- 行情线程（调用 run() 的线程）从 EventSource 读取已收盘 K 线，只做 `submit()` 入队；
- 消费线程从 `queue.Queue` 逐根取出并调用 `pipeline.step()`，保证决策管线永远单线程执行。

启动时先用最近的历史 K 线预热（只写入历史，不评估策略）。
"""

from __future__ import annotations

import queue
import threading
from datetime import datetime, timezone
from typing import Any

from klinepilot.common.config.config_loader import AppConfig
from klinepilot.common.models.models import Candle
from klinepilot.common.utils.logging import setup_logger
from klinepilot.core.base_engine import BaseEngine, EngineResult
from klinepilot.core.ledger import PositionLedger
from klinepilot.core.pipeline import CandlePipeline
from klinepilot.core.sources.event_source import EventSource
from klinepilot.core.sources.market_event_source import MarketEventSource
from klinepilot.execution import build_execution_port
from klinepilot.execution.base import ExecutionPort
from klinepilot.market_data.client import BinanceMarketClient
from klinepilot.strategies.base import Strategy

_STOP = object()


class TradingEngine(BaseEngine):
    def __init__(
        self,
        *,
        cfg_path: str = "config/config.yml",
        cfg_obj: AppConfig | None = None,
        strategies: list[Strategy] | None = None,
        execution: ExecutionPort | None = None,
        market_client=None,
        source: EventSource | None = None,
        warmup_candles: list[Candle] | None = None,
        max_events: int | None = None,
    ):
        super().__init__(cfg_path=cfg_path, cfg_obj=cfg_obj, strategies=strategies)
        self._execution = execution
        self._market_client = market_client
        self._source = source
        self._warmup_candles = warmup_candles
        self._max_events = max_events

        self.cfg: AppConfig | None = None
        self.ledger: PositionLedger | None = None
        self.pipeline: CandlePipeline | None = None
        self._queue: queue.Queue = queue.Queue()
        self._consumer: threading.Thread | None = None
        self._active_source: EventSource | None = None
        self.consumer_errors = 0

    # ---- 生命周期 ----

    def run(self) -> EngineResult:
        cfg = self._load_cfg()
        self.cfg = cfg
        logger = setup_logger("engine", cfg.logging.level)

        strategies = self._build_strategies(cfg)
        ledger = self._build_ledger(cfg, strategies)
        execution = self._execution or build_execution_port(cfg, logger=logger)
        pipeline = CandlePipeline(
            strategies, ledger, execution, history_limit=cfg.engine.history_limit, logger=logger
        )
        self.ledger, self.pipeline = ledger, pipeline
        self._queue = queue.Queue(maxsize=cfg.engine.queue_maxsize)

        client = self._market_client
        if client is None and (self._source is None or self._warmup_candles is None):
            client = BinanceMarketClient(
                rest_base=cfg.exchange.base_url, ws_base=cfg.exchange.ws_url, logger=setup_logger("market-binance")
            )
        self._warmup(cfg, pipeline, client, logger=logger)

        source = self._source or MarketEventSource(
            market_client=client, symbol=cfg.symbol, interval=cfg.interval, logger=logger
        )
        self._active_source = source
        self._consumer = threading.Thread(target=self._consume, args=(pipeline, logger), name="pipeline", daemon=True)
        self._consumer.start()
        max_events = self._max_events if self._max_events is not None else cfg.engine.max_events
        try:
            self.run_loop(source=source, on_event=self.submit, max_events=max_events, logger=logger)
        finally:
            self._queue.put(_STOP)
            self._consumer.join()

        summary: dict[str, Any] = {
            **ledger.summary(),
            **pipeline.stats(),
            "consumer_errors": self.consumer_errors,
            "symbol": cfg.symbol,
        }
        return EngineResult(summary=summary)

    def submit(self, candle: Candle) -> None:
        """线程安全：把 K 线交给消费线程，未收盘的 K 线直接丢弃。"""
        if not candle.closed:
            return
        self._queue.put(candle)

    def stop(self) -> None:
        """请求停止行情源；已入队的 K 线仍会被处理完。"""
        stop = getattr(self._active_source, "stop", None)
        if callable(stop):
            stop()

    # ---- 内部 ----

    def _warmup(self, cfg: AppConfig, pipeline: CandlePipeline, client, *, logger) -> None:
        limit = cfg.engine.warmup_candles
        candles = self._warmup_candles
        if candles is None:
            if client is None or limit <= 0:
                return
            candles = client.recent_closed(cfg.symbol, cfg.interval, limit, datetime.now(timezone.utc))
        seeded = sum(1 for c in candles if pipeline.seed(c))
        logger.info("Warm-up: seeded %d/%d historical candles", seeded, len(candles))

    def _consume(self, pipeline: CandlePipeline, logger) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                result = pipeline.step(item)
            except Exception:
                # 单根 K 线失败只记日志，消费线程继续
                self.consumer_errors += 1
                logger.exception("Pipeline step failed at %s", getattr(item, "start_ts", None))
            else:
                if result.opened or result.closed:
                    logger.info(
                        "Candle %s close=%.4f opened=%s closed=%s capital=%.2f",
                        item.start_ts,
                        item.close,
                        result.opened,
                        [t.strategy for t in result.closed],
                        pipeline.ledger.capital,
                    )
            finally:
                self._queue.task_done()
