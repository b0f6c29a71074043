from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pandas as pd
import pytest

from klinepilot.strategies.factors.bollinger import BollingerFactor
from klinepilot.strategies.factors.ichimoku import IchimokuFactor
from klinepilot.strategies.factors.ma import EMAFactor, MAFactor
from klinepilot.strategies.factors.macd import MACDFactor
from klinepilot.strategies.factors.oscillators import ADXFactor, StochasticFactor
from klinepilot.strategies.factors.registry import apply_factors, available_factors, build_factors


def _df(n: int = 30) -> pd.DataFrame:
    ts0 = datetime(2024, 1, 1, tzinfo=timezone.utc)
    return pd.DataFrame(
        [
            {
                "start_ts": ts0 + timedelta(minutes=15 * i),
                "open": 100.0 + i,
                "high": 101.0 + i,
                "low": 99.0 + i,
                "close": 100.5 + i,
                "volume": 1000.0 + i,
            }
            for i in range(n)
        ]
    )


def test_factor_column_names():
    assert MAFactor(window=7).columns == ("ma_7",)
    assert MAFactor(window=20, price_col="volume").columns == ("volume_ma_20",)
    assert EMAFactor(period=50).columns == ("ema_50",)
    assert BollingerFactor(period=20, k=2.0).columns == ("bb_20_2_middle", "bb_20_2_upper", "bb_20_2_lower")
    assert MACDFactor().columns == ("macd_12_26_9_line", "macd_12_26_9_signal", "macd_12_26_9_hist")
    assert MACDFactor(adaptive=True).columns[0] == "amacd_12_26_9_line"
    assert StochasticFactor().columns == ("stoch_14_3_k", "stoch_14_3_d")
    assert ADXFactor().columns == ("adx_14",)
    assert IchimokuFactor().columns[0] == "ichimoku_tenkan"


def test_factor_rejects_non_positive_period():
    with pytest.raises(ValueError):
        MAFactor(window=0)
    with pytest.raises(ValueError):
        BollingerFactor(period=20, k=0)


def test_build_factors_flat_and_nested_params():
    factors = build_factors(
        [
            {"type": "ma", "window": 3, "out_col": "ma_short"},
            {"name": "rsi", "params": {"period": 5}},
            {"type": "bollinger", "period": 10, "unknown_field": 1},
        ]
    )
    assert [f.columns[0] for f in factors] == ["ma_short", "rsi_5", "bb_10_2_middle"]


def test_build_factors_errors():
    with pytest.raises(ValueError, match="Unknown factor"):
        build_factors([{"type": "nope"}])
    with pytest.raises(ValueError):
        build_factors([{"window": 3}])
    with pytest.raises(ValueError):
        build_factors({"factors": "ma"})
    assert build_factors(None) == []


def test_apply_factors_adds_columns():
    df = apply_factors(_df(), build_factors({"factors": [{"type": "ma", "window": 5}, {"type": "atr", "period": 3}]}))
    assert "ma_5" in df.columns
    assert "atr_3" in df.columns
    assert pd.isna(df["ma_5"].iloc[3])
    assert abs(df["ma_5"].iloc[4] - 102.5) < 1e-9


def test_available_factors_lists_defaults():
    names = available_factors()
    for name in ("ma", "ema", "rsi", "atr", "bollinger", "macd", "stochastic", "adx", "ichimoku", "psar", "pivot", "donchian"):
        assert name in names
