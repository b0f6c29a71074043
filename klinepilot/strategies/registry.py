"""策略注册表：字符串 -> Strategy 实现。"""

from __future__ import annotations

from typing import Any, Iterable, Mapping

from klinepilot.common.config.schema import StrategyConfig
from klinepilot.strategies.adaptive_macd import AdaptiveMACDStrategy
from klinepilot.strategies.base import Strategy
from klinepilot.strategies.bollinger_reversion import BollingerReversionStrategy
from klinepilot.strategies.breakout import BreakoutStrategy
from klinepilot.strategies.indicator_service import IndicatorService
from klinepilot.strategies.ma_cross import MACrossStrategy
from klinepilot.strategies.macd_cross import MACDCrossStrategy
from klinepilot.strategies.rsi_reversal import RSIReversalStrategy

_REGISTRY: dict[str, type[Strategy]] = {}


def register_strategy(name: str, cls: type[Strategy]) -> None:
    _REGISTRY[name] = cls


def get_strategy_cls(name: str) -> type[Strategy]:
    if name not in _REGISTRY:
        raise ValueError(f"Unknown strategy: {name}")
    return _REGISTRY[name]


def available_strategies() -> list[str]:
    return sorted(_REGISTRY)


def build_strategy(
    cfg: StrategyConfig | Mapping[str, Any],
    *,
    indicator_service: IndicatorService | None = None,
) -> Strategy:
    """从配置构建策略实例。

    支持：
    - StrategyConfig（来自 config_loader）
    - dict（含 type，可选 name，参数平铺或放在 params 下）

    参数交给策略自己的 pydantic 模型校验，非法参数以 ValueError 抛出。
    """
    if isinstance(cfg, Mapping):
        cfg = StrategyConfig.model_validate(dict(cfg))
    if not isinstance(cfg, StrategyConfig):
        raise ValueError("strategy cfg must be StrategyConfig or dict")

    cls = get_strategy_cls(str(cfg.type))
    try:
        return cls(dict(cfg.params), name=cfg.name, indicator_service=indicator_service)
    except ValueError as exc:
        raise ValueError(f"Invalid params for strategy '{cfg.type}': {exc}") from exc


def build_strategies(
    cfgs: Iterable[StrategyConfig | Mapping[str, Any]],
    *,
    indicator_service: IndicatorService | None = None,
) -> list[Strategy]:
    """构建策略列表；所有策略共享同一个 IndicatorService，同一步内复用指标列。"""
    service = indicator_service or IndicatorService()
    strategies = [build_strategy(c, indicator_service=service) for c in cfgs]
    names = [s.name for s in strategies]
    dupes = sorted({n for n in names if names.count(n) > 1})
    if dupes:
        raise ValueError(f"Duplicate strategy names: {', '.join(dupes)}")
    return strategies


# 默认注册
register_strategy(BollingerReversionStrategy.key, BollingerReversionStrategy)
register_strategy(RSIReversalStrategy.key, RSIReversalStrategy)
register_strategy(BreakoutStrategy.key, BreakoutStrategy)
register_strategy(MACrossStrategy.key, MACrossStrategy)
register_strategy(AdaptiveMACDStrategy.key, AdaptiveMACDStrategy)
register_strategy(MACDCrossStrategy.key, MACDCrossStrategy)
