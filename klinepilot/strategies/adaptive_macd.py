"""自适应 MACD 策略（可叠加 ADX / Stochastic / Ichimoku / Parabolic SAR 过滤）。"""

from __future__ import annotations

from pydantic import Field, model_validator

from klinepilot.common.models.models import Candle, Signal, SignalType
from klinepilot.strategies.base import Strategy, StrategyParams, TrailingOffset
from klinepilot.strategies.factors.base import Factor
from klinepilot.strategies.factors.ichimoku import IchimokuFactor
from klinepilot.strategies.factors.ma import MAFactor
from klinepilot.strategies.factors.macd import MACDFactor
from klinepilot.strategies.factors.oscillators import ADXFactor, StochasticFactor
from klinepilot.strategies.factors.psar import ParabolicSARFactor
from klinepilot.strategies.factors.rsi import RSIFactor
from klinepilot.strategies.indicator_service import IndicatorSnapshot


class AdaptiveMACDParams(StrategyParams):
    fast: int = Field(default=12, gt=0)
    slow: int = Field(default=26, gt=0)
    signal: int = Field(default=9, gt=0)
    adaptive: bool = True
    bb_period: int = Field(default=20, gt=0)
    bb_k: float = Field(default=2.0, gt=0)
    rsi_period: int = Field(default=14, gt=0)
    rsi_midline: float = Field(default=50.0, gt=0, lt=100)
    volume_lookback: int = Field(default=20, gt=0)
    sl_atr_multiplier: float = Field(default=2.0, gt=0)
    tp_atr_multiplier: float = Field(default=3.0, gt=0)
    trailing: TrailingOffset = Field(default_factory=lambda: TrailingOffset(mode="atr", value=4.0))

    use_adx: bool = False
    adx_period: int = Field(default=14, gt=0)
    adx_threshold: float = Field(default=25.0, ge=0)

    use_stochastic: bool = False
    stochastic_k: int = Field(default=14, gt=0)
    stochastic_d: int = Field(default=3, gt=0)
    stochastic_overbought: float = Field(default=80.0, gt=0, lt=100)
    stochastic_oversold: float = Field(default=20.0, gt=0, lt=100)

    use_ichimoku: bool = False
    tenkan: int = Field(default=9, gt=0)
    kijun: int = Field(default=26, gt=0)
    senkou_b: int = Field(default=52, gt=0)
    displacement: int = Field(default=26, ge=0)

    use_psar: bool = False
    psar_initial_af: float = Field(default=0.02, gt=0)
    psar_step_af: float = Field(default=0.02, gt=0)
    psar_max_af: float = Field(default=0.2, gt=0)

    @model_validator(mode="after")
    def _check_periods(self) -> "AdaptiveMACDParams":
        if self.fast >= self.slow:
            raise ValueError("fast must be less than slow")
        return self


class AdaptiveMACDStrategy(Strategy):
    """MACD 动能 + RSI 中轴 + 放量确认，附加可选过滤器。

    Entry:
    - BUY：macd > signal，RSI > rsi_midline，当前成交量 > 近 volume_lookback 根均量
    - SELL：macd < signal，RSI < rsi_midline，同样要求放量
    - 过滤器（启用时必须同向确认）：ADX > 阈值；%K < oversold（BUY）/ > overbought（SELL）；
      tenkan > kijun（BUY）；收盘价 > SAR（BUY）

    Notes
    -----
    过滤器在历史不足（值为 None）时不表态，不阻止入场。
    """

    key = "adaptive_macd"
    params_model = AdaptiveMACDParams
    params: AdaptiveMACDParams

    def __init__(self, params=None, **kwargs):
        super().__init__(params, **kwargs)
        p = self.params
        self._macd = MACDFactor(fast=p.fast, slow=p.slow, signal=p.signal, adaptive=p.adaptive, bb_period=p.bb_period, bb_k=p.bb_k)
        self._rsi = RSIFactor(period=p.rsi_period)
        self._volume = MAFactor(window=p.volume_lookback, price_col="volume")
        self._adx = ADXFactor(period=p.adx_period) if p.use_adx else None
        self._stoch = StochasticFactor(k_period=p.stochastic_k, d_period=p.stochastic_d) if p.use_stochastic else None
        self._ichimoku = (
            IchimokuFactor(tenkan=p.tenkan, kijun=p.kijun, senkou_b=p.senkou_b, displacement=p.displacement)
            if p.use_ichimoku
            else None
        )
        self._psar = (
            ParabolicSARFactor(initial_af=p.psar_initial_af, step_af=p.psar_step_af, max_af=p.psar_max_af)
            if p.use_psar
            else None
        )

    def factors(self) -> list[Factor]:
        out: list[Factor] = [self._macd, self._rsi, self.atr_factor, self._volume]
        out.extend(f for f in (self._adx, self._stoch, self._ichimoku, self._psar) if f is not None)
        return out

    def _filters(self, snap: IndicatorSnapshot, price: float) -> tuple[bool, bool]:
        """返回 (允许做多, 允许做空)。"""
        p = self.params
        allow_buy = allow_sell = True
        if self._adx is not None:
            adx = snap.get(self._adx.columns[0])
            if adx is not None and not adx > p.adx_threshold:
                allow_buy = allow_sell = False
        if self._stoch is not None:
            k = snap.get(self._stoch.columns[0])
            if k is not None:
                allow_buy = allow_buy and k < p.stochastic_oversold
                allow_sell = allow_sell and k > p.stochastic_overbought
        if self._ichimoku is not None:
            tenkan = snap.get(self._ichimoku.columns[0])
            kijun = snap.get(self._ichimoku.columns[1])
            if tenkan is not None and kijun is not None:
                allow_buy = allow_buy and tenkan > kijun
                allow_sell = allow_sell and tenkan < kijun
        if self._psar is not None:
            sar = snap.get(self._psar.columns[0])
            if sar is not None:
                allow_buy = allow_buy and price > sar
                allow_sell = allow_sell and price < sar
        return allow_buy, allow_sell

    def _entry_signals(self, candle: Candle, snap: IndicatorSnapshot, capital: float) -> list[Signal]:
        line_col, signal_col, _ = self._macd.columns
        rsi_col = self._rsi.columns[0]
        atr_col = self.atr_factor.columns[0]
        vol_col = self._volume.columns[0]
        if not snap.has(line_col, signal_col, rsi_col, atr_col, vol_col):
            return self._skip("insufficient_history")

        p = self.params
        price = float(candle.close)
        macd_val = snap.get(line_col)
        sig_val = snap.get(signal_col)
        rsi = snap.get(rsi_col)
        atr = snap.get(atr_col)
        volume_ok = float(candle.volume) > snap.get(vol_col)

        allow_buy, allow_sell = self._filters(snap, price)
        if volume_ok and macd_val > sig_val and rsi > p.rsi_midline and allow_buy:
            return self._sized_entry(
                SignalType.BUY,
                candle,
                capital,
                stop_loss=price - p.sl_atr_multiplier * atr,
                take_profit=price + p.tp_atr_multiplier * atr,
                snap=snap,
                reason="macd_bullish",
            )
        if volume_ok and macd_val < sig_val and rsi < p.rsi_midline and allow_sell:
            return self._sized_entry(
                SignalType.SELL,
                candle,
                capital,
                stop_loss=price + p.sl_atr_multiplier * atr,
                take_profit=price - p.tp_atr_multiplier * atr,
                snap=snap,
                reason="macd_bearish",
            )
        return self._skip("no_setup")
