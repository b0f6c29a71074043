from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone

from klinepilot.analysis.metrics import (
    compute_trade_stats,
    equity_curve,
    max_drawdown,
    stats_by_entry_hour,
    stats_by_strategy,
    stats_by_volume,
)
from klinepilot.analysis.reporting import build_text_report, summary_table, trades_frame, TRADE_COLUMNS
from klinepilot.common.models.models import Side, TradeRecord

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _trade(i, profit, *, strategy="s1", volume=100.0, hour=0):
    entry = T0 + timedelta(hours=hour, days=i)
    return TradeRecord(
        strategy=strategy,
        symbol="BTCUSDT",
        side=Side.LONG,
        entry_time=entry,
        exit_time=entry + timedelta(minutes=30),
        entry_price=100.0,
        exit_price=100.0 + profit,
        quantity=1.0,
        profit=profit,
        volume=volume,
        reason="t",
    )


def _sample():
    return [_trade(0, 10.0), _trade(1, -5.0), _trade(2, 20.0), _trade(3, -15.0)]


def test_compute_trade_stats():
    stats = compute_trade_stats(_sample(), 1000.0)
    assert stats["total_trades"] == 4
    assert stats["wins"] == 2 and stats["losses"] == 2
    assert stats["win_rate"] == 0.5
    assert stats["net_profit"] == 10.0
    assert stats["final_capital"] == 1010.0
    assert stats["gross_profit"] == 30.0
    assert stats["gross_loss"] == -20.0
    assert abs(stats["profit_factor"] - 1.5) < 1e-12
    assert stats["mean_profit"] == 2.5
    assert stats["median_profit"] == 2.5
    assert abs(stats["stdev_profit"] - math.sqrt(181.25)) < 1e-9
    assert stats["max_drawdown"] == 15.0
    assert stats["avg_duration_secs"] == 1800.0


def test_stats_edge_cases():
    empty = compute_trade_stats([], 1000.0)
    assert empty["total_trades"] == 0
    assert empty["win_rate"] == 0.0
    assert empty["profit_factor"] == 0.0
    assert empty["final_capital"] == 1000.0

    only_wins = compute_trade_stats([_trade(0, 5.0), _trade(1, 0.0)], 1000.0)
    assert math.isinf(only_wins["profit_factor"])
    assert only_wins["wins"] == 2  # 0 盈亏也记为盈利交易


def test_equity_curve_and_drawdown():
    curve = equity_curve(_sample(), 1000.0)
    assert [c for _, c in curve] == [1010.0, 1005.0, 1025.0, 1010.0]
    assert max_drawdown(1000.0, [_trade(0, -30.0), _trade(1, 10.0)]) == 30.0


def test_breakdowns():
    trades = [
        _trade(0, 10.0, strategy="a", volume=100.0, hour=3),
        _trade(1, -4.0, strategy="b", volume=200.0, hour=3),
        _trade(2, 6.0, strategy="a", volume=300.0, hour=15),
        _trade(3, 2.0, strategy="b", volume=400.0, hour=15),
    ]
    by_strategy = stats_by_strategy(trades)
    assert by_strategy["a"]["trades"] == 2 and by_strategy["a"]["net_profit"] == 16.0
    assert by_strategy["b"]["losses"] == 1

    by_hour = stats_by_entry_hour(trades)
    assert by_hour[3]["avg_profit"] == 3.0
    assert by_hour[15]["trades"] == 2

    by_volume = stats_by_volume(trades)
    assert by_volume["median_volume"] == 250.0
    assert by_volume["low"]["trades"] == 2 and by_volume["low"]["avg_profit"] == 3.0
    assert by_volume["high"]["avg_profit"] == 4.0
    assert stats_by_volume([])["low"]["trades"] == 0


def test_text_report_and_tables():
    trades = _sample()
    report = build_text_report(trades, 1000.0)
    assert report.startswith("Backtest Report")
    assert "== By strategy ==" in report
    assert "s1: trades=4" in report

    df = trades_frame(trades)
    assert list(df.columns) == TRADE_COLUMNS
    assert len(df) == 4

    table = summary_table({"total_trades": 4, "net_profit": 10.0, "open_positions": []})
    assert table.row_count == 2
