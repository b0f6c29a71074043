"""执行端口：模拟执行与 Binance 合约执行。"""

from __future__ import annotations

from klinepilot.execution.base import ExecutionPort
from klinepilot.execution.binance_futures import TESTNET_BASE_URL, BinanceFuturesExecution
from klinepilot.execution.simulated import SimulatedExecution

__all__ = ["ExecutionPort", "SimulatedExecution", "BinanceFuturesExecution", "build_execution_port"]


def build_execution_port(cfg, *, logger=None) -> ExecutionPort:
    """根据运行模式选择执行端口。

    只有 `mode == "live"` 且 `exchange.allow_live` 为真时才会真实下单，其余一律模拟。
    """
    mode = str(cfg.mode).replace("_", "-").lower()
    exchange = cfg.exchange
    if mode != "live":
        return SimulatedExecution(logger=logger)
    if not exchange.allow_live:
        if logger:
            logger.warning("mode=live but exchange.allow_live is false, orders will be simulated.")
        return SimulatedExecution(logger=logger)
    base_url = TESTNET_BASE_URL if exchange.testnet else exchange.base_url
    return BinanceFuturesExecution(
        symbol=cfg.symbol,
        api_key=exchange.api_key or "",
        api_secret=exchange.api_secret or "",
        base_url=base_url,
        recv_window=exchange.recv_window,
        timeout=exchange.timeout,
    )
