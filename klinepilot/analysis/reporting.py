"""回测报表：文本报告、rich 表格与成交 CSV。"""

from __future__ import annotations

import json
import math
from pathlib import Path
from typing import Any, Sequence

import pandas as pd
from rich.console import Console
from rich.table import Table

from klinepilot.analysis.metrics import compute_trade_stats, stats_by_entry_hour, stats_by_strategy, stats_by_volume
from klinepilot.common.models.models import TradeRecord

TRADE_COLUMNS = [
    "strategy",
    "symbol",
    "side",
    "entry_time",
    "exit_time",
    "entry_price",
    "exit_price",
    "quantity",
    "profit",
    "duration_secs",
    "volume",
    "reason",
    "indicator_data",
]


def _fmt(val: Any) -> str:
    if isinstance(val, float):
        return "inf" if math.isinf(val) else f"{val:.2f}"
    return str(val)


def trades_frame(trades: Sequence[TradeRecord]) -> pd.DataFrame:
    rows = []
    for t in sorted(trades, key=lambda x: x.exit_time):
        row = t.to_row()
        if row["indicator_data"] is not None:
            row["indicator_data"] = json.dumps(row["indicator_data"], sort_keys=True)
        rows.append(row)
    return pd.DataFrame(rows, columns=TRADE_COLUMNS)


def export_trades_csv(trades: Sequence[TradeRecord], path: str | Path) -> Path:
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    trades_frame(trades).to_csv(out, index=False)
    return out


def build_text_report(trades: Sequence[TradeRecord], initial_capital: float, *, title: str = "Backtest Report") -> str:
    """纯文本报告（总体指标 / 按策略 / 按入场小时 / 按成交量 / 明细）。"""
    stats = compute_trade_stats(trades, initial_capital)
    lines = [title, "=" * len(title), ""]
    lines.append("== Overall ==")
    for key in (
        "initial_capital",
        "final_capital",
        "net_profit",
        "total_trades",
        "wins",
        "losses",
        "win_rate",
        "profit_factor",
        "mean_profit",
        "median_profit",
        "stdev_profit",
        "max_drawdown",
    ):
        lines.append(f"{key}: {_fmt(stats[key])}")

    lines += ["", "== By strategy =="]
    for name, s in sorted(stats_by_strategy(trades).items()):
        lines.append(
            f"{name}: trades={s['trades']} wins={s['wins']} losses={s['losses']} "
            f"net={_fmt(s['net_profit'])} avg={_fmt(s['avg_profit'])}"
        )

    lines += ["", "== By entry hour =="]
    for hour, s in stats_by_entry_hour(trades).items():
        lines.append(f"{hour:02d}h: trades={s['trades']} avg={_fmt(s['avg_profit'])}")

    vol = stats_by_volume(trades)
    lines += ["", "== By exit volume =="]
    lines.append(f"median_volume: {_fmt(float(vol['median_volume']))}")
    lines.append(f"low (< median): trades={vol['low']['trades']} avg={_fmt(vol['low']['avg_profit'])}")
    lines.append(f"high (>= median): trades={vol['high']['trades']} avg={_fmt(vol['high']['avg_profit'])}")

    lines += ["", "== Trades =="]
    for t in sorted(trades, key=lambda x: x.exit_time):
        lines.append(
            f"{t.strategy} {t.side.value} {t.entry_time.isoformat()} -> {t.exit_time.isoformat()} "
            f"profit={_fmt(t.profit)} volume={_fmt(t.volume)} reason={t.reason}"
        )
    return "\n".join(lines) + "\n"


def write_text_report(trades: Sequence[TradeRecord], initial_capital: float, path: str | Path) -> Path:
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(build_text_report(trades, initial_capital), encoding="utf-8")
    return out


def summary_table(summary: dict[str, Any], *, title: str = "Summary") -> Table:
    table = Table(title=title)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    for key, val in summary.items():
        if isinstance(val, (dict, list)):
            continue
        table.add_row(key, _fmt(val))
    return table


def print_summary(summary: dict[str, Any], *, console: Console | None = None, title: str = "Summary") -> None:
    (console or Console()).print(summary_table(summary, title=title))
