"""交易统计：只以 TradeRecord 列表为输入的纯函数。"""

from __future__ import annotations

from collections import defaultdict
from statistics import mean, median, pstdev
from typing import Any, Iterable, Sequence

from klinepilot.common.models.models import TradeRecord


def equity_curve(trades: Iterable[TradeRecord], initial_capital: float) -> list[tuple[Any, float]]:
    """按平仓时间回放资金：[(exit_time, capital), ...]，不含初始点。"""
    capital = float(initial_capital)
    points: list[tuple[Any, float]] = []
    for t in sorted(trades, key=lambda x: x.exit_time):
        capital += t.profit
        points.append((t.exit_time, capital))
    return points


def max_drawdown(initial_capital: float, trades: Iterable[TradeRecord]) -> float:
    """最大回撤（绝对金额）：资金序列相对此前最高点的最大跌幅。"""
    peak = float(initial_capital)
    max_dd = 0.0
    for _, capital in equity_curve(trades, initial_capital):
        peak = max(peak, capital)
        max_dd = max(max_dd, peak - capital)
    return max_dd


def compute_trade_stats(trades: Sequence[TradeRecord], initial_capital: float) -> dict[str, Any]:
    """计算交易维度指标。

    Notes
    -----
    - profit >= 0 记为盈利交易（与账本计数口径一致）；
    - 没有亏损交易时 profit_factor 为 inf（无盈利时为 0）；
    - 标准差为总体标准差。
    """
    profits = [t.profit for t in trades]
    total = len(profits)
    wins = sum(1 for t in trades if t.is_win)
    gross_profit = sum(p for p in profits if p > 0)
    gross_loss = sum(p for p in profits if p < 0)
    if gross_loss < 0:
        profit_factor = gross_profit / -gross_loss
    else:
        profit_factor = float("inf") if gross_profit > 0 else 0.0

    net = sum(profits)
    return {
        "initial_capital": float(initial_capital),
        "final_capital": float(initial_capital) + net,
        "net_profit": net,
        "total_trades": total,
        "wins": wins,
        "losses": total - wins,
        "win_rate": wins / total if total else 0.0,
        "gross_profit": gross_profit,
        "gross_loss": gross_loss,
        "profit_factor": profit_factor,
        "mean_profit": mean(profits) if profits else 0.0,
        "median_profit": median(profits) if profits else 0.0,
        "stdev_profit": pstdev(profits) if profits else 0.0,
        "max_drawdown": max_drawdown(initial_capital, trades),
        "avg_duration_secs": mean(t.duration_secs for t in trades) if trades else 0.0,
    }


def stats_by_strategy(trades: Iterable[TradeRecord]) -> dict[str, dict[str, Any]]:
    groups: dict[str, list[TradeRecord]] = defaultdict(list)
    for t in trades:
        groups[t.strategy].append(t)
    out: dict[str, dict[str, Any]] = {}
    for name, items in groups.items():
        wins = sum(1 for t in items if t.is_win)
        out[name] = {
            "trades": len(items),
            "wins": wins,
            "losses": len(items) - wins,
            "net_profit": sum(t.profit for t in items),
            "avg_profit": mean(t.profit for t in items),
        }
    return out


def stats_by_entry_hour(trades: Iterable[TradeRecord]) -> dict[int, dict[str, float]]:
    """按入场小时（K 线时间戳所在时区）分组。"""
    groups: dict[int, list[float]] = defaultdict(list)
    for t in trades:
        groups[t.entry_time.hour].append(t.profit)
    return {h: {"trades": len(p), "avg_profit": mean(p)} for h, p in sorted(groups.items())}


def stats_by_volume(trades: Sequence[TradeRecord]) -> dict[str, Any]:
    """以出场 K 线成交量的中位数切分：低量（< 中位数）/ 高量（>= 中位数）。"""
    if not trades:
        return {"median_volume": 0.0, "low": {"trades": 0, "avg_profit": 0.0}, "high": {"trades": 0, "avg_profit": 0.0}}
    med = median(t.volume for t in trades)
    low = [t.profit for t in trades if t.volume < med]
    high = [t.profit for t in trades if t.volume >= med]
    return {
        "median_volume": med,
        "low": {"trades": len(low), "avg_profit": mean(low) if low else 0.0},
        "high": {"trades": len(high), "avg_profit": mean(high) if high else 0.0},
    }
