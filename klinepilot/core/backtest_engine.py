"""单次回测引擎（BacktestEngine）。

配置 → K 线 → 策略/账本/模拟执行 → 统计/产物。历史不设上限（整段序列就是输入）。
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Sequence

from klinepilot.analysis.metrics import equity_curve
from klinepilot.analysis.plotter import plot_equity_curve
from klinepilot.analysis.reporting import export_trades_csv, write_text_report
from klinepilot.common.config.config_loader import AppConfig
from klinepilot.common.models.models import Candle
from klinepilot.common.utils.logging import setup_logger
from klinepilot.core.base_engine import BaseEngine, EngineResult
from klinepilot.core.ledger import PositionLedger
from klinepilot.core.pipeline import CandlePipeline
from klinepilot.core.sources.event_source import CandleListEventSource
from klinepilot.execution.base import ExecutionPort
from klinepilot.execution.simulated import SimulatedExecution
from klinepilot.market_data.loader import load_candles_csv, parse_iso
from klinepilot.strategies.factors.registry import apply_factors, build_factors
from klinepilot.strategies.indicator_service import candles_to_frame
from klinepilot.strategies.base import Strategy


class BacktestEngine(BaseEngine):
    """单次回测引擎。

    Notes
    -----
    - `candles` 直接给出时不读取 `backtest.data_path`；
    - 产物（trades.csv / report.txt / equity.png / indicators.csv）只在配置了 artifacts_dir 时写出；
    - 运行结束后 `self.ledger` / `self.pipeline` 保留供检查。
    """

    def __init__(
        self,
        *,
        cfg_path: str = "config/config.yml",
        cfg_obj: AppConfig | None = None,
        candles: Sequence[Candle] | None = None,
        strategies: list[Strategy] | None = None,
        execution: ExecutionPort | None = None,
        artifacts_dir: str | Path | None = None,
    ):
        super().__init__(cfg_path=cfg_path, cfg_obj=cfg_obj, strategies=strategies)
        self._candles = candles
        self._execution = execution
        self._artifacts_dir = artifacts_dir

        self.cfg: AppConfig | None = None
        self.ledger: PositionLedger | None = None
        self.pipeline: CandlePipeline | None = None

    def run(self) -> EngineResult:
        cfg = self._load_cfg()
        self.cfg = cfg
        logger = setup_logger("backtest", cfg.logging.level)

        candles = self._load_candles(cfg)
        strategies = self._build_strategies(cfg)
        ledger = self._build_ledger(cfg, strategies)
        execution = self._execution or SimulatedExecution(logger=setup_logger("exec-sim", "WARNING"))
        pipeline = CandlePipeline(strategies, ledger, execution, history_limit=None, logger=logger)
        self.ledger, self.pipeline = ledger, pipeline

        logger.info(
            "Backtest %s %s: %d candles, strategies=%s",
            cfg.symbol,
            cfg.interval,
            len(candles),
            [s.name for s in strategies],
        )
        self.run_loop(
            source=CandleListEventSource(candles),
            on_event=pipeline.step,
            max_events=cfg.engine.max_events,
            logger=logger,
        )

        summary: dict[str, Any] = {**ledger.summary(), **pipeline.stats(), "symbol": cfg.symbol}
        artifacts = self._write_artifacts(cfg, candles, ledger, logger=logger)
        logger.info(
            "Backtest done: trades=%d net_profit=%.4f final_capital=%.2f",
            summary["total_trades"],
            summary["net_profit"],
            summary["final_capital"],
        )
        return EngineResult(summary=summary, artifacts=artifacts)

    def _load_candles(self, cfg: AppConfig) -> list[Candle]:
        if self._candles is not None:
            candles = list(self._candles)
        else:
            if not cfg.backtest.data_path:
                raise ValueError("backtest.data_path is required when no candles are given")
            candles = load_candles_csv(cfg.backtest.data_path, symbol=cfg.symbol, interval=cfg.interval)
        start = parse_iso(cfg.backtest.start) if cfg.backtest.start else None
        end = parse_iso(cfg.backtest.end) if cfg.backtest.end else None
        if start or end:
            candles = [
                c for c in candles if (start is None or c.start_ts >= start) and (end is None or c.start_ts <= end)
            ]
        return candles

    def _write_artifacts(
        self,
        cfg: AppConfig,
        candles: list[Candle],
        ledger: PositionLedger,
        *,
        logger,
    ) -> dict[str, Any] | None:
        out_dir = self._artifacts_dir or cfg.backtest.artifacts_dir
        if not out_dir:
            return None
        root = Path(out_dir)
        root.mkdir(parents=True, exist_ok=True)
        trades = ledger.trades

        artifacts: dict[str, Any] = {
            "trades_csv": str(export_trades_csv(trades, root / "trades.csv")),
            "report": str(write_text_report(trades, ledger.initial_capital, root / "report.txt")),
        }
        if not cfg.backtest.skip_plots and trades:
            curve = equity_curve(trades, ledger.initial_capital)
            plot_equity_curve(
                curve,
                save_path=root / "equity.png",
                title=f"{cfg.symbol} {cfg.interval}",
                initial_capital=ledger.initial_capital,
            )
            artifacts["equity_png"] = str(root / "equity.png")
        if cfg.backtest.factors:
            df = apply_factors(candles_to_frame(candles), build_factors(cfg.backtest.factors))
            df.to_csv(root / "indicators.csv", index=False)
            artifacts["indicators_csv"] = str(root / "indicators.csv")
        logger.info("Backtest artifacts written to %s", root)
        return artifacts
