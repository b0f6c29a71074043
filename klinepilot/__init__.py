"""klinepilot：单品种 K 线驱动的交易决策引擎。"""

__version__ = "0.3.0"
