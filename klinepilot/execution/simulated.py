"""模拟执行：不触网，总是成功，只记录日志。"""

from __future__ import annotations

from klinepilot.common.models.models import Side
from klinepilot.common.utils.logging import setup_logger
from klinepilot.execution.base import ExecutionPort


class SimulatedExecution(ExecutionPort):
    def __init__(self, logger=None):
        self.logger = logger or setup_logger("exec-sim")
        self.opened = 0
        self.closed = 0

    def open(self, side, quantity, entry_price, stop_loss=None, take_profit=None) -> bool:
        self.opened += 1
        self.logger.info(
            "[SIM] open %s qty=%.6f entry=%.4f sl=%s tp=%s",
            Side(side).value,
            quantity,
            entry_price,
            stop_loss,
            take_profit,
        )
        return True

    def close(self, side, quantity, exit_price) -> bool:
        self.closed += 1
        self.logger.info("[SIM] close %s qty=%.6f exit=%.4f", Side(side).value, quantity, exit_price)
        return True
