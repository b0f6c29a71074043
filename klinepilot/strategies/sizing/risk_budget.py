"""风险预算仓位计算：quantity = min(capital * risk_percent, max_risk_usd) / |entry - stop|。"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class RiskBudgetSizer:
    risk_percent: float
    max_risk_usd: float | None = None

    def __post_init__(self):
        if self.risk_percent < 0:
            raise ValueError("risk_percent must be >= 0")
        if self.max_risk_usd is not None and self.max_risk_usd < 0:
            raise ValueError("max_risk_usd must be >= 0")

    def risk_amount(self, capital: float) -> float:
        amount = max(0.0, float(capital)) * self.risk_percent
        if self.max_risk_usd is not None:
            amount = min(amount, float(self.max_risk_usd))
        return amount

    def quantity(self, *, capital: float, entry_price: float, stop_loss: float) -> float:
        """返回下单数量；单位风险 <= 0 时返回 0（调用方据此放弃信号）。"""
        risk_per_unit = abs(float(entry_price) - float(stop_loss))
        if not risk_per_unit > 0:
            return 0.0
        return self.risk_amount(capital) / risk_per_unit
