"""因子注册表：字符串 -> 因子实现。"""

from __future__ import annotations

import inspect
from typing import Any, Mapping

import pandas as pd

from klinepilot.strategies.factors.atr import ATRFactor
from klinepilot.strategies.factors.base import Factor
from klinepilot.strategies.factors.bollinger import BollingerFactor
from klinepilot.strategies.factors.ichimoku import IchimokuFactor
from klinepilot.strategies.factors.levels import DonchianFactor, PivotPointsFactor
from klinepilot.strategies.factors.ma import EMAFactor, MAFactor
from klinepilot.strategies.factors.macd import MACDFactor
from klinepilot.strategies.factors.oscillators import ADXFactor, StochasticFactor
from klinepilot.strategies.factors.psar import ParabolicSARFactor
from klinepilot.strategies.factors.rsi import RSIFactor

_REGISTRY: dict[str, type] = {}


def register_factor(name: str, cls: type) -> None:
    _REGISTRY[name] = cls


def get_factor_cls(name: str) -> type:
    if name not in _REGISTRY:
        raise ValueError(f"Unknown factor: {name}")
    return _REGISTRY[name]


def available_factors() -> list[str]:
    return sorted(_REGISTRY)


def _filter_init_kwargs(cls: type, params: Mapping[str, Any]) -> dict[str, Any]:
    """过滤出 __init__ 支持的参数，避免配置里多字段导致报错。"""
    try:
        sig = inspect.signature(cls.__init__)
    except (TypeError, ValueError):
        return dict(params)

    if any(p.kind == inspect.Parameter.VAR_KEYWORD for p in sig.parameters.values()):
        return dict(params)

    allowed = {name for name in sig.parameters.keys() if name not in {"self", "params"}}
    return {k: v for k, v in params.items() if k in allowed}


def build_factors(cfg: Any) -> list[Factor]:
    """从配置构建因子列表。

    支持形态：
    - factors: [{name/type: "ma", params: {...}}, ...]
    - factors: [{type: "ma", window: 5}, ...]  # params 直接平铺
    - 直接传入 list[dict]
    """
    if cfg is None:
        return []

    items = cfg
    if isinstance(cfg, dict):
        items = cfg.get("factors") or []
    if not isinstance(items, list):
        raise ValueError("factors config must be a list")

    factors: list[Factor] = []
    for item in items:
        if not isinstance(item, dict):
            raise ValueError("factor item must be a dict")
        name = str(item.get("name") or item.get("type") or "")
        if not name:
            raise ValueError("factor item missing name")
        reserved = {"name", "type", "params"}
        raw_params = item.get("params")
        if raw_params is None:
            params: dict[str, Any] = {k: v for k, v in item.items() if k not in reserved}
        else:
            if not isinstance(raw_params, dict):
                raise ValueError("factor params must be a dict")
            params = dict(raw_params)
            for k, v in item.items():
                if k in reserved or k in params:
                    continue
                params[k] = v
        cls = get_factor_cls(name)
        kwargs = _filter_init_kwargs(cls, params)
        try:
            factors.append(cls(**kwargs))
        except TypeError as exc:
            raise ValueError(f"Invalid params for factor '{name}': {params}") from exc
    return factors


def apply_factors(df: pd.DataFrame, factors: list[Factor]) -> pd.DataFrame:
    for f in factors:
        df = f.compute(df)
    return df


# 默认注册
register_factor("ma", MAFactor)
register_factor("ema", EMAFactor)
register_factor("rsi", RSIFactor)
register_factor("atr", ATRFactor)
register_factor("bollinger", BollingerFactor)
register_factor("macd", MACDFactor)
register_factor("stochastic", StochasticFactor)
register_factor("adx", ADXFactor)
register_factor("ichimoku", IchimokuFactor)
register_factor("psar", ParabolicSARFactor)
register_factor("pivot", PivotPointsFactor)
register_factor("donchian", DonchianFactor)
