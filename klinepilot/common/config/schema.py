"""配置架构定义（Pydantic Schema）。

- 所有配置块都 `extra="forbid"`：启动阶段尽早失败，避免 typo 在长回测或实盘中才暴露；
- 策略参数属于“开放字段”，这里只负责打包进 `params`，具体校验由各策略的参数模型完成。
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ExchangeConfig(BaseModel):
    """交易所配置（Binance USDT 永续）。"""

    name: str = "binance"
    base_url: str = "https://fapi.binance.com"
    ws_url: str = "wss://fstream.binance.com/ws"
    api_key: Optional[str] = None
    api_secret: Optional[str] = None
    allow_live: bool = False
    testnet: bool = False
    recv_window: int = Field(default=5000, gt=0)
    timeout: float = Field(default=5.0, gt=0)

    model_config = ConfigDict(extra="forbid")


class LedgerConfig(BaseModel):
    """仓位账本配置。

    - position_scope：per_strategy（每个策略最多一个仓位）或 global（所有策略共享一个仓位）
    - capital_mode：shared（单一资金）或 isolated（每个策略独立一份 initial_capital）
    - cooldown_secs：平仓后该策略暂停入场的秒数
    """

    position_scope: Literal["per_strategy", "global"] = "per_strategy"
    capital_mode: Literal["shared", "isolated"] = "shared"
    cooldown_secs: float = Field(default=0.0, ge=0.0)

    model_config = ConfigDict(extra="forbid")


class EngineConfig(BaseModel):
    """驱动循环配置。"""

    history_limit: int = Field(default=2000, gt=0)
    warmup_candles: int = Field(default=500, ge=0)
    queue_maxsize: int = Field(default=0, ge=0)
    max_events: Optional[int] = Field(default=None, gt=0)

    model_config = ConfigDict(extra="forbid")


class BacktestConfig(BaseModel):
    """回测配置。"""

    data_path: Optional[str] = None
    artifacts_dir: Optional[str] = None
    start: Optional[str] = None
    end: Optional[str] = None
    skip_plots: bool = False
    factors: Optional[List[Dict[str, Any]]] = None

    model_config = ConfigDict(extra="forbid")


class LoggingConfig(BaseModel):
    level: str = "INFO"

    model_config = ConfigDict(extra="forbid")


class StrategyConfig(BaseModel):
    """策略配置（type + 可选 name + params）。

    config_loader 允许在 YAML 里把参数平铺在策略条目下，这里统一挪进 `params`。
    """

    type: str
    name: Optional[str] = None
    params: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="before")
    @classmethod
    def _pack_flat_params(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        reserved = {"type", "name", "params"}
        if set(data.keys()) <= reserved:
            return data
        params = {k: v for k, v in data.items() if k not in reserved}
        existing = data.get("params")
        if isinstance(existing, dict):
            params = {**params, **existing}
        packed: dict[str, Any] = {"type": data.get("type"), "params": params}
        if data.get("name") is not None:
            packed["name"] = data["name"]
        return packed


class AppConfig(BaseModel):
    """应用总配置。"""

    symbol: str = "BTCUSDT"
    interval: str = "15m"
    mode: Literal["backtest", "dry-run", "live"] = "backtest"
    initial_capital: float = Field(default=1000.0, gt=0)

    exchange: ExchangeConfig = Field(default_factory=ExchangeConfig)
    ledger: LedgerConfig = Field(default_factory=LedgerConfig)
    engine: EngineConfig = Field(default_factory=EngineConfig)
    backtest: BacktestConfig = Field(default_factory=BacktestConfig)
    strategies: List[StrategyConfig] = Field(default_factory=list)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="before")
    @classmethod
    def _normalize_mode(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("mode"), str):
            data = dict(data)
            data["mode"] = data["mode"].replace("_", "-").lower()
        return data

    @model_validator(mode="after")
    def _unique_strategy_names(self) -> "AppConfig":
        names = [s.name or s.type for s in self.strategies]
        dupes = sorted({n for n in names if names.count(n) > 1})
        if dupes:
            raise ValueError(f"duplicate strategy names: {', '.join(dupes)} (set a distinct `name`)")
        return self
