"""
轻量日志封装。

Notes
-----
`setup_logger` 会避免重复添加 handler，否则多次调用会出现重复日志。
级别既可以传 `logging.INFO` 这类整数，也可以传配置里的字符串（"debug"/"INFO"）。
"""

from __future__ import annotations

import logging

_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
_DEFAULT_LEVEL: int = logging.INFO


def _resolve_level(level: int | str | None) -> int:
    if level is None:
        return _DEFAULT_LEVEL
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).strip().upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level}")
    return resolved


def set_default_level(level: int | str) -> None:
    """设置后续 `setup_logger()` 的默认级别，并同步已创建的 klinepilot logger。"""
    global _DEFAULT_LEVEL
    _DEFAULT_LEVEL = _resolve_level(level)
    for name, obj in logging.Logger.manager.loggerDict.items():
        if isinstance(obj, logging.Logger) and getattr(obj, "_klinepilot", False):
            obj.setLevel(_DEFAULT_LEVEL)


def setup_logger(name: str = "klinepilot", level: int | str | None = None) -> logging.Logger:
    """
    创建或获取命名 logger。

    Parameters
    ----------
    name:
        Logger 名称（按模块职责命名，例如 `ledger`、`factor-adx`）。
    level:
        日志级别；None 时使用 `set_default_level` 设置的默认值（INFO）。

    Returns
    -------
    logging.Logger
        已配置的 logger。
    """
    logger = logging.getLogger(name)
    logger.setLevel(_resolve_level(level))
    logger.propagate = False
    setattr(logger, "_klinepilot", True)

    has_stream = any(isinstance(h, logging.StreamHandler) for h in logger.handlers)
    if not has_stream:
        ch = logging.StreamHandler()
        ch.setFormatter(logging.Formatter(_FORMAT))
        logger.addHandler(ch)

    return logger
