"""Binance K 线载荷解析（REST 数组 / WebSocket kline 事件）。

解析失败的行直接丢弃并记录日志，决策管线永远看不到字段缺失或非数字的 K 线。
"""

from __future__ import annotations

import json
import math
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Mapping

from klinepilot.common.models.models import Candle
from klinepilot.common.utils.logging import setup_logger

_LOGGER = setup_logger("market-parse")

_INTERVAL_UNITS = {"s": 1, "m": 60, "h": 3600, "d": 86400, "w": 604800}


def interval_to_timedelta(interval: str) -> timedelta:
    """'1m'/'15m'/'4h'/'1d' → timedelta；月线等不支持的周期抛 ValueError。"""
    text = str(interval).strip()
    unit = text[-1:]
    if unit not in _INTERVAL_UNITS or not text[:-1].isdigit():
        raise ValueError(f"Unsupported interval: {interval}")
    return timedelta(seconds=int(text[:-1]) * _INTERVAL_UNITS[unit])


def ms_to_datetime(ms: Any) -> datetime:
    return datetime.fromtimestamp(int(ms) / 1000, tz=timezone.utc)


def _finite(*values: Any) -> tuple[float, ...]:
    out = tuple(float(v) for v in values)
    if any(math.isnan(v) or math.isinf(v) for v in out):
        raise ValueError("non-finite price field")
    return out


def parse_kline_row(row: Any, symbol: str) -> Candle | None:
    """REST 数组行 `[openTime, o, h, l, c, v, closeTime, ...]` → Candle（视为已收盘）。"""
    try:
        if not isinstance(row, (list, tuple)) or len(row) < 7:
            raise ValueError(f"expected >= 7 fields, got {row!r}")
        o, h, l, c, v = _finite(row[1], row[2], row[3], row[4], row[5])
        start_ts = ms_to_datetime(row[0])
        end_ts = ms_to_datetime(row[6])
        if end_ts <= start_ts:
            raise ValueError("close time must be after open time")
    except (TypeError, ValueError, OverflowError) as exc:
        _LOGGER.warning("Dropping malformed kline row %r: %s", row, exc)
        return None
    return Candle(symbol=symbol, open=o, high=h, low=l, close=c, volume=v, start_ts=start_ts, end_ts=end_ts)


def parse_kline_rows(rows: Iterable[Any], symbol: str) -> list[Candle]:
    candles = []
    for row in rows:
        candle = parse_kline_row(row, symbol)
        if candle is not None:
            candles.append(candle)
    return candles


def parse_ws_kline(message: str | bytes | Mapping[str, Any]) -> Candle | None:
    """WebSocket `<symbol>@kline_<interval>` 事件 → Candle（保留 x 收盘标记）。"""
    try:
        data = json.loads(message) if isinstance(message, (str, bytes)) else message
        k = data.get("k") if isinstance(data, Mapping) else None
        if not isinstance(k, Mapping):
            return None
        o, h, l, c, v = _finite(k["o"], k["h"], k["l"], k["c"], k["v"])
        symbol = str(k.get("s") or data.get("s") or "")
        return Candle(
            symbol=symbol,
            open=o,
            high=h,
            low=l,
            close=c,
            volume=v,
            start_ts=ms_to_datetime(k["t"]),
            end_ts=ms_to_datetime(k["T"]),
            closed=bool(k.get("x", False)),
        )
    except (KeyError, TypeError, ValueError, OverflowError) as exc:
        _LOGGER.warning("Dropping malformed kline event: %s", exc)
        return None
