"""统一的出场判定：追踪止损 → 止盈 → 止损。

三个条件按固定顺序做一次 OR 判定，命中第一个即平仓；
成交价始终取当前 K 线收盘价，而不是理论触发价。
"""

from __future__ import annotations

from klinepilot.common.models.models import Candle, ExitDecision, OpenPosition, PositionUpdate, Side, Signal, SignalType


def tighten_stop(side: Side, current: float | None, candidate: float | None) -> float | None:
    """追踪止损只能朝有利方向移动：多头取较大值，空头取较小值。"""
    if candidate is None:
        return current
    if current is None:
        return candidate
    return max(current, candidate) if side is Side.LONG else min(current, candidate)


def evaluate_exit(candle: Candle, position: OpenPosition, offset: float | None) -> ExitDecision:
    """根据当前收盘价与追踪偏移量给出出场决策。

    Parameters
    ----------
    candle:
        当前已收盘 K 线。
    position:
        Ledger 持有的仓位（只读）。
    offset:
        追踪止损偏移量（价格单位）；None 或 <= 0 表示本根 K 线不更新追踪止损。

    Returns
    -------
    ExitDecision
        命中时包含一个 CLOSE 信号；总是附带极值/追踪止损的更新提议。
    """
    price = float(candle.close)
    use_offset = offset is not None and offset > 0

    if position.side is Side.LONG:
        max_fav = max(position.max_favorable, price)
        min_fav = position.min_favorable
        candidate = max_fav - offset if use_offset else None
        stop = tighten_stop(Side.LONG, position.trailing_stop, candidate)
        if stop is not None and price <= stop:
            reason = "trailing_stop"
        elif position.take_profit is not None and price >= position.take_profit:
            reason = "take_profit"
        elif position.stop_loss is not None and price <= position.stop_loss:
            reason = "stop_loss"
        else:
            reason = None
    else:
        max_fav = position.max_favorable
        min_fav = min(position.min_favorable, price)
        candidate = min_fav + offset if use_offset else None
        stop = tighten_stop(Side.SHORT, position.trailing_stop, candidate)
        if stop is not None and price >= stop:
            reason = "trailing_stop"
        elif position.take_profit is not None and price <= position.take_profit:
            reason = "take_profit"
        elif position.stop_loss is not None and price >= position.stop_loss:
            reason = "stop_loss"
        else:
            reason = None

    update = PositionUpdate(max_favorable=max_fav, min_favorable=min_fav, trailing_stop=stop)
    if reason is None:
        return ExitDecision(signals=[], update=update)
    close = Signal(type=SignalType.CLOSE, price=price, quantity=position.quantity, reason=reason)
    return ExitDecision(signals=[close], update=update)
