from __future__ import annotations

import pytest

from klinepilot.common.config.schema import StrategyConfig
from klinepilot.strategies.indicator_service import IndicatorService
from klinepilot.strategies.ma_cross import MACrossStrategy
from klinepilot.strategies.registry import available_strategies, build_strategies, build_strategy, get_strategy_cls


def test_available_strategies():
    assert available_strategies() == [
        "adaptive_macd",
        "bollinger_reversion",
        "breakout",
        "ma_cross",
        "macd_cross",
        "rsi_reversal",
    ]


def test_build_strategy_from_dict_and_config():
    s = build_strategy({"type": "ma_cross", "name": "fast_ma", "short_period": 3, "long_period": 9})
    assert isinstance(s, MACrossStrategy)
    assert s.name == "fast_ma"
    assert s.params.short_period == 3

    s = build_strategy(StrategyConfig(type="breakout", params={"lookback": 10}))
    assert s.name == "breakout"
    assert s.params.lookback == 10


def test_build_strategy_errors():
    with pytest.raises(ValueError, match="Unknown strategy"):
        get_strategy_cls("martingale")
    with pytest.raises(ValueError, match="Invalid params"):
        build_strategy({"type": "ma_cross", "short_period": 30, "long_period": 10})
    with pytest.raises(ValueError, match="Invalid params"):
        build_strategy({"type": "breakout", "lookbak": 10})


def test_build_strategies_shares_indicator_service():
    svc = IndicatorService()
    strategies = build_strategies([{"type": "ma_cross"}, {"type": "macd_cross"}], indicator_service=svc)
    assert all(s.indicators is svc for s in strategies)


def test_build_strategies_rejects_duplicate_names():
    with pytest.raises(ValueError, match="Duplicate strategy names"):
        build_strategies([{"type": "ma_cross"}, {"type": "ma_cross"}])
    ok = build_strategies([{"type": "ma_cross"}, {"type": "ma_cross", "name": "ma_cross_2"}])
    assert [s.name for s in ok] == ["ma_cross", "ma_cross_2"]
