from klinepilot.strategies.sizing.risk_budget import RiskBudgetSizer

__all__ = ["RiskBudgetSizer"]
