"""历史 K 线的 CSV 读写与本地缓存。

CSV 列：symbol, open, high, low, close, volume, start_ts, end_ts（ISO8601 或毫秒时间戳）。
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable

import pandas as pd

from klinepilot.common.models.models import Candle
from klinepilot.common.utils.logging import setup_logger
from klinepilot.market_data.klines import interval_to_timedelta

CSV_COLUMNS = ["symbol", "open", "high", "low", "close", "volume", "start_ts", "end_ts"]
_PRICE_COLS = ["open", "high", "low", "close", "volume"]

_LOGGER = setup_logger("market-data")


def parse_iso(val: str | datetime) -> datetime:
    """解析 ISO 时间字符串（或 datetime）为 UTC datetime；无时区视为 UTC。"""
    if isinstance(val, datetime):
        dt = val
    else:
        dt = datetime.fromisoformat(str(val).replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _to_utc(series: pd.Series) -> pd.Series:
    if pd.api.types.is_numeric_dtype(series):
        return pd.to_datetime(series, unit="ms", utc=True, errors="coerce")
    return pd.to_datetime(series, utc=True, errors="coerce", format="mixed")


def load_candles_csv(
    path: str | Path,
    *,
    symbol: str | None = None,
    interval: str | None = None,
) -> list[Candle]:
    """读取 CSV 并返回按开盘时间排序、去重后的 K 线。

    Notes
    -----
    - 缺少 end_ts 列时需要提供 interval 推算；
    - 缺少 symbol 列时使用参数 symbol；
    - 任一字段无法解析的行会被丢弃（记录 warning）。
    """
    csv_path = Path(path)
    if not csv_path.exists():
        raise FileNotFoundError(f"Kline file not found: {csv_path}")

    df = pd.read_csv(csv_path)
    if "start_ts" not in df.columns:
        raise ValueError(f"{csv_path} is missing column start_ts")
    missing = [c for c in _PRICE_COLS if c not in df.columns]
    if missing:
        raise ValueError(f"{csv_path} is missing columns: {missing}")

    df["start_ts"] = _to_utc(df["start_ts"])
    if "end_ts" in df.columns:
        df["end_ts"] = _to_utc(df["end_ts"])
    elif interval:
        df["end_ts"] = df["start_ts"] + interval_to_timedelta(interval)
    else:
        raise ValueError(f"{csv_path} has no end_ts column; pass interval to derive it")
    if "symbol" not in df.columns:
        df["symbol"] = symbol or ""
    for col in _PRICE_COLS:
        df[col] = pd.to_numeric(df[col], errors="coerce")

    bad = df[CSV_COLUMNS].isna().any(axis=1) | (df["end_ts"] <= df["start_ts"])
    if bad.any():
        _LOGGER.warning("Dropping %d malformed rows from %s", int(bad.sum()), csv_path)
        df = df[~bad]
    if symbol:
        df = df[df["symbol"].astype(str) == symbol]

    df = df.drop_duplicates(subset="start_ts", keep="last").sort_values("start_ts")
    return [
        Candle(
            symbol=str(row.symbol),
            open=float(row.open),
            high=float(row.high),
            low=float(row.low),
            close=float(row.close),
            volume=float(row.volume),
            start_ts=row.start_ts.to_pydatetime(),
            end_ts=row.end_ts.to_pydatetime(),
        )
        for row in df.itertuples(index=False)
    ]


def save_candles_csv(candles: Iterable[Candle], path: str | Path) -> Path:
    """写出 CSV（ISO8601 时间），按开盘时间排序并去重。"""
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    rows = [
        {
            "symbol": c.symbol,
            "open": c.open,
            "high": c.high,
            "low": c.low,
            "close": c.close,
            "volume": c.volume,
            "start_ts": c.start_ts.isoformat(),
            "end_ts": c.end_ts.isoformat(),
        }
        for c in candles
    ]
    df = pd.DataFrame(rows, columns=CSV_COLUMNS)
    if not df.empty:
        df = df.drop_duplicates(subset="start_ts", keep="last").sort_values("start_ts")
    df.to_csv(out, index=False)
    return out


class HistoricalDataLoader:
    """按 `{symbol}_{interval}.csv` 缓存历史 K 线，缺失区间通过行情客户端补齐。"""

    def __init__(self, data_dir: str | Path = "dataset/history", *, client=None):
        self.data_dir = Path(data_dir)
        self.client = client

    def klines_path(self, symbol: str, interval: str) -> Path:
        return self.data_dir / f"{symbol}_{interval}.csv"

    def load(
        self,
        symbol: str,
        interval: str,
        start: datetime | None = None,
        end: datetime | None = None,
        *,
        auto_download: bool = False,
    ) -> list[Candle]:
        path = self.klines_path(symbol, interval)
        if auto_download:
            if start is None or end is None:
                raise ValueError("auto_download requires start and end")
            self._ensure_range(symbol, interval, start, end, path)
        candles = load_candles_csv(path, symbol=symbol, interval=interval)
        return [
            c
            for c in candles
            if (start is None or c.start_ts >= start) and (end is None or c.start_ts <= end)
        ]

    def _ensure_range(self, symbol: str, interval: str, start: datetime, end: datetime, path: Path) -> None:
        if self.client is None:
            raise ValueError("auto_download requires a market client")
        existing = load_candles_csv(path, symbol=symbol, interval=interval) if path.exists() else []
        fetched: list[Candle] = []
        if not existing:
            fetched = self.client.fetch_history(symbol, interval, start, end)
        else:
            first, last = existing[0].start_ts, existing[-1].start_ts
            if start < first:
                fetched += self.client.fetch_history(symbol, interval, start, first)
            if end > last:
                fetched += self.client.fetch_history(symbol, interval, last, end)
        if fetched:
            _LOGGER.info("Downloaded %d klines for %s %s", len(fetched), symbol, interval)
            save_candles_csv([*existing, *fetched], path)
