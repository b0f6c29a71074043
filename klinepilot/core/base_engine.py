"""执行引擎基类（模板模式）。

- 把“数据推进/事件循环”与“策略/账本/执行”解耦；
- 回测与实盘共用同一个 CandlePipeline，决策结果只取决于 K 线序列。
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable

from klinepilot.common.config.config_loader import AppConfig, load_config
from klinepilot.core.ledger import PositionLedger
from klinepilot.core.sources.event_source import EventSource
from klinepilot.strategies.base import Strategy
from klinepilot.strategies.registry import build_strategies


@dataclass(frozen=True)
class EngineResult:
    """引擎运行结果（统一出口）。"""

    summary: dict[str, Any]
    artifacts: dict[str, Any] | None = None


class BaseEngine(ABC):
    """引擎抽象基类。"""

    def __init__(
        self,
        *,
        cfg_path: str = "config/config.yml",
        cfg_obj: AppConfig | None = None,
        strategies: list[Strategy] | None = None,
    ):
        self._cfg_path = cfg_path
        self._cfg_obj = cfg_obj
        self._strategies = strategies

    @abstractmethod
    def run(self) -> EngineResult:
        raise NotImplementedError

    def _load_cfg(self) -> AppConfig:
        return self._cfg_obj or load_config(self._cfg_path)

    def _build_strategies(self, cfg: AppConfig) -> list[Strategy]:
        strategies = self._strategies if self._strategies is not None else build_strategies(cfg.strategies)
        if not strategies:
            raise ValueError("No strategies configured")
        return strategies

    @staticmethod
    def _build_ledger(cfg: AppConfig, strategies: list[Strategy]) -> PositionLedger:
        return PositionLedger(
            cfg.initial_capital,
            strategies=[s.name for s in strategies],
            position_scope=cfg.ledger.position_scope,
            capital_mode=cfg.ledger.capital_mode,
            cooldown_secs=cfg.ledger.cooldown_secs,
        )

    def run_loop(
        self,
        *,
        source: EventSource,
        on_event: Callable[[Any], None],
        max_events: int | None = None,
        logger=None,
    ) -> int:
        """统一事件循环：回测与实盘复用。返回处理的事件数。"""
        if logger:
            logger.info("Engine loop start: source=%s", source.__class__.__name__)
        source.setup()
        n = 0
        try:
            for event in source.events():
                on_event(event)
                n += 1
                if max_events is not None and n >= max_events:
                    if logger:
                        logger.info("Engine loop reached max_events=%s, stop.", max_events)
                    break
        finally:
            source.teardown()
            if logger:
                logger.info("Engine loop end.")
        return n
