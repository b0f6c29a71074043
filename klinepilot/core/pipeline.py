"""单步决策管线（CandlePipeline）。

每根已收盘 K 线执行一次 `step()`：

1. 过滤：未收盘、重复或乱序（start_ts <= 上一根已接受的 start_ts）的 K 线直接忽略；
2. 追加历史（live 模式下有长度上限）；
3. 逐个策略：有仓位 → decide_exit（先出场）；无仓位 → decide_entry；
4. 开仓：先调用执行端口，成功后才写入账本；
   平仓：先写账本（FLAT + TradeRecord + 资金），再调用执行端口，失败只记日志。

单个策略抛出的异常只影响它自己在这根 K 线上的结果。
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Sequence

from klinepilot.common.models.models import Candle, SignalType, TradeRecord
from klinepilot.common.utils.logging import setup_logger
from klinepilot.core.ledger import PositionLedger
from klinepilot.execution.base import ExecutionPort
from klinepilot.strategies.base import Strategy

_LOGGER = setup_logger("pipeline")


@dataclass
class StepResult:
    """一次 step 的结果（便于测试与实时日志）。"""

    candle: Candle
    accepted: bool
    skipped_reason: str | None = None
    opened: list[str] = field(default_factory=list)
    closed: list[TradeRecord] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


class CandlePipeline:
    def __init__(
        self,
        strategies: Sequence[Strategy],
        ledger: PositionLedger,
        execution: ExecutionPort,
        *,
        history_limit: int | None = None,
        logger=None,
    ):
        names = [s.name for s in strategies]
        if len(set(names)) != len(names):
            raise ValueError(f"Strategy names must be unique: {names}")
        self.strategies = list(strategies)
        self.ledger = ledger
        self.execution = execution
        self.logger = logger or _LOGGER
        self.history: deque[Candle] = deque(maxlen=history_limit)
        self.last_start_ts: datetime | None = None

        self.candles_processed = 0
        self.candles_ignored = 0
        self.strategy_errors = 0
        self.failed_opens = 0
        self.failed_closes = 0

        for name in names:
            self.ledger.register(name)
        for strategy in self.strategies:
            strategy.indicators.reset()

    def _admit(self, candle: Candle) -> str | None:
        if not candle.closed:
            return "not_closed"
        if self.last_start_ts is not None and candle.start_ts <= self.last_start_ts:
            return "out_of_order"
        return None

    def seed(self, candle: Candle) -> bool:
        """只追加历史、不评估策略（实时模式预热用）。"""
        if self._admit(candle) is not None:
            return False
        self.history.append(candle)
        self.last_start_ts = candle.start_ts
        return True

    def step(self, candle: Candle) -> StepResult:
        reason = self._admit(candle)
        if reason is not None:
            self.candles_ignored += 1
            self.logger.debug("Ignoring candle %s: %s", candle.start_ts, reason)
            return StepResult(candle=candle, accepted=False, skipped_reason=reason)

        self.history.append(candle)
        self.last_start_ts = candle.start_ts
        self.candles_processed += 1
        result = StepResult(candle=candle, accepted=True)

        for strategy in self.strategies:
            if self.ledger.is_open(strategy.name):
                self._handle_exit(strategy, candle, result)
            elif self.ledger.can_enter(strategy.name, candle.start_ts):
                self._handle_entry(strategy, candle, result)
        return result

    def _handle_exit(self, strategy: Strategy, candle: Candle, result: StepResult) -> None:
        name = strategy.name
        position = self.ledger.position(name)
        try:
            decision = strategy.decide_exit(candle, self.history, position)
        except Exception:
            self.strategy_errors += 1
            result.errors.append(name)
            self.logger.exception("Strategy %s failed in decide_exit at %s", name, candle.start_ts)
            return

        position = self.ledger.apply_update(name, decision.update)
        close = next((s for s in decision.signals if s.type is SignalType.CLOSE), None)
        if close is None:
            return

        record = self.ledger.close(name, close.price, candle, reason=close.reason)
        result.closed.append(record)
        if not self._submit("close", name, self.execution.close, position.side, position.quantity, close.price):
            self.failed_closes += 1
            self.logger.error(
                "Execution close failed for %s (%s qty=%.6f @ %.4f); ledger is FLAT",
                name,
                position.side.value,
                position.quantity,
                close.price,
            )

    def _handle_entry(self, strategy: Strategy, candle: Candle, result: StepResult) -> None:
        name = strategy.name
        try:
            signals = strategy.decide_entry(candle, self.history, self.ledger.capital_for(name))
        except Exception:
            self.strategy_errors += 1
            result.errors.append(name)
            self.logger.exception("Strategy %s failed in decide_entry at %s", name, candle.start_ts)
            return

        entry = next((s for s in signals if s.type.is_entry), None)
        if entry is None:
            return
        side = entry.type.to_side()
        if not self._submit(
            "open", name, self.execution.open, side, entry.quantity, entry.price, entry.stop_loss, entry.take_profit
        ):
            self.failed_opens += 1
            self.logger.warning("Execution open failed for %s (%s), staying FLAT", name, side.value)
            return
        self.ledger.open(name, entry, candle)
        result.opened.append(name)

    def _submit(self, action: str, name: str, call, *args) -> bool:
        """调用执行端口；端口抛异常按失败处理（不影响后续策略）。"""
        try:
            return bool(call(*args))
        except Exception:
            self.logger.exception("Execution %s raised for %s", action, name)
            return False

    def stats(self) -> dict[str, int]:
        return {
            "candles_processed": self.candles_processed,
            "candles_ignored": self.candles_ignored,
            "strategy_errors": self.strategy_errors,
            "failed_opens": self.failed_opens,
            "failed_closes": self.failed_closes,
        }
