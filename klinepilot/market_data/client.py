"""Binance 合约行情客户端（REST 历史 K 线 + WebSocket 实时 K 线）。"""

from __future__ import annotations

import asyncio
import json
import threading
from datetime import datetime
from typing import Iterator

import requests
import websockets
from websockets.exceptions import WebSocketException

from klinepilot.common.models.models import Candle
from klinepilot.common.utils.logging import setup_logger
from klinepilot.market_data.klines import parse_kline_rows, parse_ws_kline

MAX_KLINES_PER_REQUEST = 1500


class BinanceMarketClient:
    """REST + WebSocket 行情客户端。

    Notes
    -----
    `kline_stream` 只产出已收盘（x=true）的 K 线；WebSocket 断线时在后台协程里自动重连。
    """

    def __init__(
        self,
        *,
        rest_base: str = "https://fapi.binance.com",
        ws_base: str = "wss://fstream.binance.com/ws",
        timeout: float = 10.0,
        session: requests.Session | None = None,
        poll_secs: float = 1.0,
        logger=None,
    ):
        self.rest_base = rest_base.rstrip("/")
        self.ws_base = ws_base.rstrip("/")
        self.timeout = float(timeout)
        self.session = session or requests.Session()
        self.logger = logger or setup_logger("market-binance")
        self.poll_secs = float(poll_secs)
        self._stop = threading.Event()

    # ---- REST ----

    def fetch_klines(
        self,
        symbol: str,
        interval: str,
        *,
        limit: int = 500,
        start_ms: int | None = None,
        end_ms: int | None = None,
    ) -> list[Candle]:
        """拉取一页 K 线；最后一根可能尚未收盘，由调用方决定是否丢弃。"""
        params: dict = {"symbol": symbol.upper(), "interval": interval, "limit": min(int(limit), MAX_KLINES_PER_REQUEST)}
        if start_ms is not None:
            params["startTime"] = int(start_ms)
        if end_ms is not None:
            params["endTime"] = int(end_ms)
        resp = self.session.get(f"{self.rest_base}/fapi/v1/klines", params=params, timeout=self.timeout)
        resp.raise_for_status()
        return parse_kline_rows(resp.json(), symbol.upper())

    def fetch_history(self, symbol: str, interval: str, start: datetime, end: datetime) -> list[Candle]:
        """按页拉取 [start, end] 区间内的 K 线。"""
        start_ms = int(start.timestamp() * 1000)
        end_ms = int(end.timestamp() * 1000)
        out: list[Candle] = []
        cur = start_ms
        while cur < end_ms:
            page = self.fetch_klines(symbol, interval, limit=MAX_KLINES_PER_REQUEST, start_ms=cur, end_ms=end_ms)
            if not page:
                break
            out.extend(page)
            nxt = int(page[-1].end_ts.timestamp() * 1000) + 1
            if nxt <= cur:
                break
            cur = nxt
        return out

    def recent_closed(self, symbol: str, interval: str, limit: int, now: datetime) -> list[Candle]:
        """预热用：最近 limit 根已收盘 K 线（丢弃 end_ts 尚未到达的最后一根）。"""
        candles = self.fetch_klines(symbol, interval, limit=limit + 1)
        return [c for c in candles if c.end_ts <= now][-limit:]

    # ---- WebSocket ----

    def stop(self) -> None:
        self._stop.set()

    async def _ws_loop(self, symbol: str, interval: str, queue: asyncio.Queue):
        url = f"{self.ws_base}/{symbol.lower()}@kline_{interval}"
        while not self._stop.is_set():
            try:
                async with websockets.connect(url) as ws:
                    self.logger.info("Connected to Binance WS: %s", url)
                    async for msg in ws:
                        candle = parse_ws_kline(msg)
                        if candle is not None and candle.closed:
                            await queue.put(candle)
                        if self._stop.is_set():
                            return
            except (OSError, WebSocketException, json.JSONDecodeError) as exc:
                self.logger.warning("WS error %s, reconnecting in 3s...", exc)
                await asyncio.sleep(3)

    def kline_stream(self, symbol: str, interval: str) -> Iterator[Candle]:
        """同步生成器包装异步 WebSocket。

        同时等待队列与后台协程：协程结束（stop 或未处理的异常）时生成器随之结束，
        协程的异常原样抛给调用方；每 `poll_secs` 秒检查一次停止标志。
        """
        self._stop.clear()
        loop = asyncio.new_event_loop()
        queue: asyncio.Queue = asyncio.Queue()
        task = loop.create_task(self._ws_loop(symbol, interval, queue))
        getter: asyncio.Task | None = None
        try:
            while not self._stop.is_set():
                if getter is None:
                    getter = loop.create_task(queue.get())
                done, _ = loop.run_until_complete(
                    asyncio.wait({getter, task}, timeout=self.poll_secs, return_when=asyncio.FIRST_COMPLETED)
                )
                if getter in done:
                    candle = getter.result()
                    getter = None
                    yield candle
                elif task in done:
                    getter.cancel()
                    loop.run_until_complete(asyncio.gather(getter, return_exceptions=True))
                    if not getter.cancelled():
                        yield getter.result()
                    getter = None
                    while not queue.empty():
                        yield queue.get_nowait()
                    task.result()
                    return
        finally:
            pending = [t for t in (getter, task) if t is not None and not t.done()]
            for t in pending:
                t.cancel()
            if pending:
                loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
            loop.close()
