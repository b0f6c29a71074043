"""交易时段过滤（UTC）。"""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, model_validator


class SessionWindow(BaseModel):
    """入场时段窗口：[start_hour:00, end_hour:00]，两端闭区间，按 K 线收盘时间判断。

    默认关闭；开启后的默认值是工作日 15:00-18:00 UTC。
    """

    enabled: bool = False
    weekdays_only: bool = True
    start_hour: int = Field(default=15, ge=0, le=23)
    end_hour: int = Field(default=18, ge=1, le=24)

    model_config = ConfigDict(extra="forbid", frozen=True)

    @model_validator(mode="after")
    def _check_order(self) -> "SessionWindow":
        if self.end_hour <= self.start_hour:
            raise ValueError("session end_hour must be greater than start_hour")
        return self

    def allows(self, ts: datetime) -> bool:
        if not self.enabled:
            return True
        ts_utc = ts.astimezone(timezone.utc) if ts.tzinfo else ts.replace(tzinfo=timezone.utc)
        if self.weekdays_only and ts_utc.weekday() >= 5:
            return False
        if self.start_hour <= ts_utc.hour < self.end_hour:
            return True
        # 结束整点（例如 18:00）本身也算在窗口内
        return ts_utc.hour == self.end_hour and ts_utc.minute == 0 and ts_utc.second == 0
