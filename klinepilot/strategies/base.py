"""策略抽象与公共参数。

契约（两个方法）：
- `decide_entry(candle, history, capital)`：仅在该策略无持仓时调用，输出 0~N 个开仓信号；
- `decide_exit(candle, history, position)`：仅在该策略有持仓时调用，返回 `ExitDecision`
  （平仓信号 + 极值/追踪止损的更新提议，仓位本身由 Ledger 负责修改）。

策略参数是构造时传入的不可变值对象（pydantic frozen model），评估期间不读取任何全局配置。
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, ClassVar, Literal, Mapping, Sequence

from pydantic import BaseModel, ConfigDict, Field

from klinepilot.common.models.models import Candle, ExitDecision, OpenPosition, Signal, SignalType
from klinepilot.strategies.exits import evaluate_exit
from klinepilot.strategies.factors.atr import ATRFactor
from klinepilot.strategies.factors.base import Factor
from klinepilot.strategies.indicator_service import IndicatorService, IndicatorSnapshot
from klinepilot.strategies.session import SessionWindow
from klinepilot.strategies.sizing.risk_budget import RiskBudgetSizer


class TrailingOffset(BaseModel):
    """追踪止损偏移策略：不追踪 / 价格百分比 / ATR 倍数。"""

    mode: Literal["none", "percent", "atr"] = "none"
    value: float = Field(default=0.0, ge=0.0)

    model_config = ConfigDict(extra="forbid", frozen=True)

    def offset(self, price: float, atr: float | None) -> float | None:
        if self.mode == "percent":
            return price * self.value
        if self.mode == "atr":
            return atr * self.value if atr is not None else None
        return None


class StrategyParams(BaseModel):
    """所有内置策略共享的参数。"""

    risk_percent: float = Field(default=0.01, ge=0.0)
    max_risk_usd: float | None = Field(default=None, ge=0.0)
    atr_period: int = Field(default=14, gt=0)
    trailing: TrailingOffset = Field(default_factory=TrailingOffset)
    session: SessionWindow = Field(default_factory=SessionWindow)

    model_config = ConfigDict(extra="forbid", frozen=True)


class Strategy(ABC):
    """策略基类。

    Notes
    -----
    - 子类实现 `factors()` 与 `_entry_signals()`；出场默认走统一的 `evaluate_exit`，
      子类只需在需要时覆盖 `trailing_offset()`；
    - `last_skip_reason` 记录最近一次没有出信号的原因，便于调试。
    """

    key: ClassVar[str] = "base"
    params_model: ClassVar[type[StrategyParams]] = StrategyParams

    def __init__(
        self,
        params: StrategyParams | Mapping[str, Any] | None = None,
        *,
        name: str | None = None,
        indicator_service: IndicatorService | None = None,
    ):
        if isinstance(params, self.params_model):
            self.params = params
        else:
            self.params = self.params_model(**dict(params or {}))
        self.name = str(name or self.key)
        self.indicators = indicator_service or IndicatorService()
        self.sizer = RiskBudgetSizer(self.params.risk_percent, self.params.max_risk_usd)
        self.last_skip_reason: str | None = None

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r})"

    # ---- 指标 ----

    @property
    def atr_factor(self) -> ATRFactor:
        return ATRFactor(period=self.params.atr_period)

    @abstractmethod
    def factors(self) -> list[Factor]:
        """入场判定需要的因子。"""
        raise NotImplementedError

    def exit_factors(self) -> list[Factor]:
        """出场判定需要的因子（ATR 追踪时为 ATR）。"""
        return [self.atr_factor] if self.params.trailing.mode == "atr" else []

    def snapshot(self, history: Sequence[Candle], factors: list[Factor] | None = None) -> IndicatorSnapshot:
        return self.indicators.snapshot(history, self.factors() if factors is None else factors)

    # ---- 契约 ----

    def decide_entry(self, candle: Candle, history: Sequence[Candle], capital: float) -> list[Signal]:
        self.last_skip_reason = None
        if not self.params.session.allows(candle.end_ts):
            self.last_skip_reason = "outside_session"
            return []
        return self._entry_signals(candle, self.snapshot(history), capital)

    def decide_exit(self, candle: Candle, history: Sequence[Candle], position: OpenPosition) -> ExitDecision:
        factors = self.exit_factors()
        snap = self.snapshot(history, factors) if factors else None
        return evaluate_exit(candle, position, self.trailing_offset(candle, snap))

    @abstractmethod
    def _entry_signals(self, candle: Candle, snap: IndicatorSnapshot, capital: float) -> list[Signal]:
        raise NotImplementedError

    def trailing_offset(self, candle: Candle, snap: IndicatorSnapshot | None) -> float | None:
        atr = snap.get(self.atr_factor.columns[0]) if snap is not None else None
        return self.params.trailing.offset(float(candle.close), atr)

    # ---- 工具 ----

    def _skip(self, reason: str) -> list[Signal]:
        self.last_skip_reason = reason
        return []

    def _sized_entry(
        self,
        signal_type: SignalType,
        candle: Candle,
        capital: float,
        *,
        stop_loss: float,
        take_profit: float | None,
        snap: IndicatorSnapshot,
        reason: str,
    ) -> list[Signal]:
        """按风险预算计算数量；单位风险 <= 0 时放弃信号。"""
        price = float(candle.close)
        qty = self.sizer.quantity(capital=capital, entry_price=price, stop_loss=stop_loss)
        if qty <= 0:
            return self._skip("degenerate_risk")
        return [
            Signal(
                type=signal_type,
                price=price,
                quantity=qty,
                stop_loss=stop_loss,
                take_profit=take_profit,
                reason=reason,
                indicator_data=snap.as_dict(),
            )
        ]
