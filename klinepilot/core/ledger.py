"""仓位/资金账本（PositionLedger）。

状态机（每个策略一份，或 global 模式下全局一份）：

    FLAT --open()--> OPEN --close()--> FLAT

- 资金只在 close() 中变化：先生成 TradeRecord，再 `capital += profit`；
- 仓位只能由账本修改；策略通过 `apply_update()` 提议极值/追踪止损，账本保证只收紧不放松；
- 冷却期是一个时间戳标记，由下一根 K 线读取，不依赖任何定时器。
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any, Iterable, Literal

from klinepilot.analysis.metrics import compute_trade_stats
from klinepilot.common.models.models import Candle, OpenPosition, PositionUpdate, Signal, TradeRecord
from klinepilot.common.utils.logging import setup_logger
from klinepilot.strategies.exits import tighten_stop

_LOGGER = setup_logger("ledger")


class LedgerError(RuntimeError):
    """账本被错误使用（重复开仓、空仓平仓等）。"""


class PositionLedger:
    """持有全部未平仓位、资金与成交记录。

    Parameters
    ----------
    initial_capital:
        初始资金；isolated 模式下是每个策略各自的初始资金。
    strategies:
        预先登记的策略名（isolated 模式用它确定资金桶）。
    position_scope:
        per_strategy：每个策略最多一个仓位；global：全局最多一个仓位。
    capital_mode:
        shared：所有策略共用一份资金；isolated：每个策略独立核算。
    cooldown_secs:
        平仓后该策略暂停入场的时长。
    """

    def __init__(
        self,
        initial_capital: float,
        *,
        strategies: Iterable[str] = (),
        position_scope: Literal["per_strategy", "global"] = "per_strategy",
        capital_mode: Literal["shared", "isolated"] = "shared",
        cooldown_secs: float = 0.0,
    ):
        if position_scope not in ("per_strategy", "global"):
            raise ValueError(f"Unknown position_scope: {position_scope}")
        if capital_mode not in ("shared", "isolated"):
            raise ValueError(f"Unknown capital_mode: {capital_mode}")
        self._initial = float(initial_capital)
        self.position_scope = position_scope
        self.capital_mode = capital_mode
        self.cooldown = timedelta(seconds=float(cooldown_secs))

        self._capital = self._initial
        self._buckets: dict[str, float] = {}
        self._positions: dict[str, OpenPosition] = {}
        self._trades: list[TradeRecord] = []
        self._cooldown_until: dict[str, datetime] = {}

        self.total_trades = 0
        self.wins = 0
        self.losses = 0

        for name in strategies:
            self.register(name)

    # ---- 资金 ----

    def register(self, strategy: str) -> None:
        if self.capital_mode == "isolated" and strategy not in self._buckets:
            self._buckets[strategy] = self._initial

    @property
    def initial_capital(self) -> float:
        if self.capital_mode == "isolated":
            return self._initial * len(self._buckets)
        return self._initial

    @property
    def capital(self) -> float:
        if self.capital_mode == "isolated":
            return sum(self._buckets.values())
        return self._capital

    def capital_for(self, strategy: str) -> float:
        """策略下单时可用于风险预算的资金。"""
        if self.capital_mode == "isolated":
            self.register(strategy)
            return self._buckets[strategy]
        return self._capital

    # ---- 仓位 ----

    @property
    def positions(self) -> dict[str, OpenPosition]:
        return dict(self._positions)

    @property
    def trades(self) -> list[TradeRecord]:
        return list(self._trades)

    def position(self, strategy: str) -> OpenPosition | None:
        return self._positions.get(strategy)

    def is_open(self, strategy: str) -> bool:
        return strategy in self._positions

    def can_enter(self, strategy: str, ts: datetime | None = None) -> bool:
        """该策略当前是否允许接受入场评估。"""
        if strategy in self._positions:
            return False
        if self.position_scope == "global" and self._positions:
            return False
        until = self._cooldown_until.get(strategy)
        if until is not None and ts is not None and ts < until:
            return False
        return True

    def open(self, strategy: str, signal: Signal, candle: Candle) -> OpenPosition:
        """接受开仓信号，FLAT → OPEN。"""
        if not signal.type.is_entry:
            raise LedgerError(f"Cannot open a position from a {signal.type.value} signal")
        if strategy in self._positions:
            raise LedgerError(f"Strategy {strategy} already has an open position")
        if self.position_scope == "global" and self._positions:
            holder = next(iter(self._positions))
            raise LedgerError(f"Global position already held by {holder}")

        price = float(signal.price)
        pos = OpenPosition(
            strategy=strategy,
            symbol=candle.symbol,
            side=signal.type.to_side(),
            entry_price=price,
            quantity=float(signal.quantity),
            stop_loss=signal.stop_loss,
            take_profit=signal.take_profit,
            open_time=candle.start_ts,
            max_favorable=price,
            min_favorable=price,
            indicator_data=signal.indicator_data,
        )
        self.register(strategy)
        self._positions[strategy] = pos
        _LOGGER.info(
            "Open %s %s qty=%.6f @ %.4f (sl=%s tp=%s) by %s",
            pos.side.value,
            pos.symbol,
            pos.quantity,
            pos.entry_price,
            pos.stop_loss,
            pos.take_profit,
            strategy,
        )
        return pos

    def apply_update(self, strategy: str, update: PositionUpdate | None) -> OpenPosition:
        """应用 decide_exit 的更新提议；极值与追踪止损只会朝有利方向移动。"""
        pos = self._positions.get(strategy)
        if pos is None:
            raise LedgerError(f"Strategy {strategy} has no open position")
        if update is None:
            return pos
        max_fav = pos.max_favorable
        min_fav = pos.min_favorable
        if update.max_favorable is not None:
            max_fav = max(max_fav, float(update.max_favorable))
        if update.min_favorable is not None:
            min_fav = min(min_fav, float(update.min_favorable))
        trailing = tighten_stop(pos.side, pos.trailing_stop, update.trailing_stop)
        new_pos = replace(pos, max_favorable=max_fav, min_favorable=min_fav, trailing_stop=trailing)
        self._positions[strategy] = new_pos
        return new_pos

    def close(self, strategy: str, exit_price: float, candle: Candle, *, reason: str | None = None) -> TradeRecord:
        """OPEN → FLAT：生成成交记录、更新计数与资金。"""
        pos = self._positions.get(strategy)
        if pos is None:
            raise LedgerError(f"Strategy {strategy} has no open position")

        price = float(exit_price)
        profit = pos.profit_at(price)
        record = TradeRecord(
            strategy=strategy,
            symbol=pos.symbol,
            side=pos.side,
            entry_time=pos.open_time,
            exit_time=candle.start_ts,
            entry_price=pos.entry_price,
            exit_price=price,
            quantity=pos.quantity,
            profit=profit,
            volume=float(candle.volume),
            reason=reason,
            indicator_data=pos.indicator_data,
        )

        del self._positions[strategy]
        self._trades.append(record)
        self.total_trades += 1
        if record.is_win:
            self.wins += 1
        else:
            self.losses += 1
        if self.capital_mode == "isolated":
            self._buckets[strategy] += profit
        else:
            self._capital += profit
        if self.cooldown:
            self._cooldown_until[strategy] = candle.start_ts + self.cooldown

        _LOGGER.info(
            "Close %s %s @ %.4f profit=%.4f reason=%s by %s (capital=%.2f)",
            pos.side.value,
            pos.symbol,
            price,
            profit,
            reason,
            strategy,
            self.capital,
        )
        return record

    # ---- 汇总 ----

    def summary(self) -> dict[str, Any]:
        stats = compute_trade_stats(self._trades, self.initial_capital)
        stats["open_positions"] = sorted(self._positions)
        if self.capital_mode == "isolated":
            stats["capital_by_strategy"] = dict(self._buckets)
        return stats
