import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# 源码目录直接运行 pytest 时（未 pip install -e），保证能以顶层包名导入
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from klinepilot.common.models.models import Candle  # noqa: E402

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)  # 周一 00:00 UTC


def build_candles(closes, *, start=T0, step=timedelta(minutes=15), spread=0.0, volume=1000.0, symbol="BTCUSDT"):
    """按收盘价序列构造已收盘 K 线；open 取上一根收盘价，high/low 在 open/close 外扩 spread。"""
    volumes = list(volume) if isinstance(volume, (list, tuple)) else [volume] * len(closes)
    out = []
    prev = None
    for i, (close, vol) in enumerate(zip(closes, volumes)):
        open_ = close if prev is None else prev
        ts = start + i * step
        out.append(
            Candle(
                symbol=symbol,
                open=float(open_),
                high=float(max(open_, close) + spread),
                low=float(min(open_, close) - spread),
                close=float(close),
                volume=float(vol),
                start_ts=ts,
                end_ts=ts + step,
            )
        )
        prev = close
    return out


@pytest.fixture
def make_candles():
    return build_candles
