"""KlinePilot 命令行入口。

子命令：

- `backtest`：用历史 K 线回放全部配置策略，输出统计与产物；
- `live`：实时 K 线驱动（mode=dry-run 时模拟下单，mode=live 且 allow_live 时真实下单）；
- `download`：从 Binance 拉取历史 K 线写入 CSV 缓存。
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from typing import Any

from klinepilot.analysis.reporting import print_summary
from klinepilot.common.config.config_loader import load_config
from klinepilot.common.utils.logging import set_default_level, setup_logger
from klinepilot.core.backtest_engine import BacktestEngine
from klinepilot.core.trading_engine import TradingEngine
from klinepilot.market_data.client import BinanceMarketClient
from klinepilot.market_data.loader import HistoricalDataLoader, parse_iso


@dataclass
class CliArgs:
    """命令行参数。"""

    config: str
    task: str
    data: str | None = None
    artifacts_dir: str | None = None
    max_events: int | None = None
    start: str | None = None
    end: str | None = None
    data_dir: str = "dataset/history"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="klinepilot", description="K 线驱动的策略决策引擎")

    def _add_config_arg(p: argparse.ArgumentParser, *, default: Any) -> None:
        p.add_argument("--config", default=default, help="配置文件路径 (默认: config/config.yml)")

    # 允许 `--config` 写在子命令前或后
    _add_config_arg(parser, default="config/config.yml")
    sub = parser.add_subparsers(dest="task")

    p_bt = sub.add_parser("backtest", help="单次回测")
    _add_config_arg(p_bt, default=argparse.SUPPRESS)
    p_bt.add_argument("--data", default=None, help="K 线 CSV（覆盖 backtest.data_path）")
    p_bt.add_argument("--artifacts-dir", default=None, help="产物目录（覆盖 backtest.artifacts_dir）")

    p_live = sub.add_parser("live", help="实时 K 线驱动")
    _add_config_arg(p_live, default=argparse.SUPPRESS)
    p_live.add_argument("--max-events", type=int, default=None, help="处理多少根 K 线后退出")

    p_dl = sub.add_parser("download", help="下载历史 K 线到 CSV")
    _add_config_arg(p_dl, default=argparse.SUPPRESS)
    p_dl.add_argument("--start", required=True, help="ISO 时间，例如 2024-01-01")
    p_dl.add_argument("--end", required=True, help="ISO 时间，例如 2024-06-01")
    p_dl.add_argument("--data-dir", default="dataset/history")

    return parser


def parse_args(argv: list[str] | None = None) -> CliArgs:
    ns = build_parser().parse_args(argv)
    return CliArgs(
        config=str(getattr(ns, "config", "config/config.yml")),
        task=ns.task or "backtest",
        data=getattr(ns, "data", None),
        artifacts_dir=getattr(ns, "artifacts_dir", None),
        max_events=getattr(ns, "max_events", None),
        start=getattr(ns, "start", None),
        end=getattr(ns, "end", None),
        data_dir=str(getattr(ns, "data_dir", "dataset/history")),
    )


def main(argv: list[str] | None = None) -> Any:
    """程序主入口；返回对应子命令的 summary。"""
    args = parse_args(argv)
    cfg = load_config(args.config)
    set_default_level(cfg.logging.level)
    logger = setup_logger("cli")

    if args.task == "backtest":
        if args.data:
            cfg = cfg.model_copy(update={"backtest": cfg.backtest.model_copy(update={"data_path": args.data})})
        summary = BacktestEngine(cfg_obj=cfg, artifacts_dir=args.artifacts_dir).run().summary
        print_summary(summary, title=f"Backtest {cfg.symbol} {cfg.interval}")
        return summary

    if args.task == "live":
        if cfg.mode == "backtest":
            logger.warning("config mode is 'backtest'; running live feed with simulated execution.")
        summary = TradingEngine(cfg_obj=cfg, max_events=args.max_events).run().summary
        print_summary(summary, title=f"Live {cfg.symbol} {cfg.interval}")
        return summary

    if args.task == "download":
        client = BinanceMarketClient(rest_base=cfg.exchange.base_url, ws_base=cfg.exchange.ws_url)
        loader = HistoricalDataLoader(args.data_dir, client=client)
        candles = loader.load(
            cfg.symbol, cfg.interval, parse_iso(args.start), parse_iso(args.end), auto_download=True
        )
        logger.info("Cached %d candles at %s", len(candles), loader.klines_path(cfg.symbol, cfg.interval))
        return {"candles": len(candles), "path": str(loader.klines_path(cfg.symbol, cfg.interval))}

    raise ValueError(f"Unknown task: {args.task}")
