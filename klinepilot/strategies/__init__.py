"""策略层：指标库、指标快照、仓位大小与内置策略。"""

from klinepilot.strategies.base import Strategy, StrategyParams, TrailingOffset
from klinepilot.strategies.registry import build_strategies, build_strategy, get_strategy_cls, register_strategy

__all__ = [
    "Strategy",
    "StrategyParams",
    "TrailingOffset",
    "build_strategies",
    "build_strategy",
    "get_strategy_cls",
    "register_strategy",
]
