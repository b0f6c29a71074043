"""Binance USDT 永续合约市价单执行。

Notes
-----
- 只发 MARKET 单；止损/止盈由本地账本按收盘价判定，不挂交易所条件单；
- 下单前用 `/fapi/v1/time` 估算本地与服务器的时钟偏移；
- 数量按 `qty_precision` 向下截断；截断后为 0 视为失败；
- 所有网络/交易所错误都在这里被转换为 False。
"""

from __future__ import annotations

import hashlib
import hmac
import time
from decimal import ROUND_DOWN, Decimal
from urllib.parse import urlencode

import requests

from klinepilot.common.models.models import Side
from klinepilot.common.utils.logging import setup_logger
from klinepilot.execution.base import ExecutionPort

TESTNET_BASE_URL = "https://testnet.binancefuture.com"


def format_quantity(quantity: float, precision: int) -> str:
    """按精度向下截断数量并输出不带科学计数法的字符串。"""
    step = Decimal(1).scaleb(-int(precision))
    return str(Decimal(str(quantity)).quantize(step, rounding=ROUND_DOWN))


class BinanceFuturesExecution(ExecutionPort):
    def __init__(
        self,
        *,
        symbol: str,
        api_key: str,
        api_secret: str,
        base_url: str = "https://fapi.binance.com",
        recv_window: int = 5000,
        qty_precision: int = 3,
        timeout: float = 5.0,
        session: requests.Session | None = None,
    ):
        if not api_key or not api_secret:
            raise ValueError("Binance execution requires api_key and api_secret")
        self.symbol = str(symbol).upper()
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.api_secret = api_secret.encode()
        self.recv_window = int(recv_window)
        self.qty_precision = int(qty_precision)
        self.timeout = float(timeout)
        self.session = session or requests.Session()
        self.logger = setup_logger("exec-binance")

    def _sign(self, params: dict) -> str:
        qs = urlencode(params)
        return hmac.new(self.api_secret, qs.encode(), hashlib.sha256).hexdigest()

    def _server_time_offset_ms(self) -> int:
        """本地时间 - 服务器时间（毫秒）；获取失败返回 0。"""
        try:
            resp = self.session.get(f"{self.base_url}/fapi/v1/time", timeout=self.timeout)
            resp.raise_for_status()
            server_time = int(resp.json()["serverTime"])
        except (requests.RequestException, KeyError, ValueError) as exc:
            self.logger.warning("Server time fetch failed: %s", exc)
            return 0
        return int(time.time() * 1000) - server_time

    def _request(self, method: str, path: str, params: dict) -> dict:
        params["timestamp"] = int(time.time() * 1000) - self._server_time_offset_ms()
        params["recvWindow"] = self.recv_window
        params["signature"] = self._sign(params)
        headers = {"X-MBX-APIKEY": self.api_key}
        url = f"{self.base_url}{path}"

        resp = self.session.request(method, url, params=params, headers=headers, timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()

    def _market_order(self, order_side: str, quantity: float, *, reduce_only: bool) -> bool:
        qty = format_quantity(quantity, self.qty_precision)
        if Decimal(qty) <= 0:
            self.logger.error("Order %s rejected locally: quantity %s rounds to zero", order_side, quantity)
            return False
        params = {"symbol": self.symbol, "side": order_side, "type": "MARKET", "quantity": qty}
        if reduce_only:
            params["reduceOnly"] = "true"
        try:
            result = self._request("POST", "/fapi/v1/order", params)
        except (requests.RequestException, ValueError) as exc:
            self.logger.error("Order %s %s qty=%s failed: %s", order_side, self.symbol, qty, exc)
            return False
        self.logger.info("Order %s %s qty=%s placed: %s", order_side, self.symbol, qty, result)
        return True

    def open(self, side, quantity, entry_price, stop_loss=None, take_profit=None) -> bool:
        order_side = "BUY" if Side(side) is Side.LONG else "SELL"
        return self._market_order(order_side, quantity, reduce_only=False)

    def close(self, side, quantity, exit_price) -> bool:
        order_side = "SELL" if Side(side) is Side.LONG else "BUY"
        return self._market_order(order_side, quantity, reduce_only=True)
