"""配置加载。

YAML → 环境变量展开 → pydantic 校验（`AppConfig`）。

- `${VAR}`：必须存在的环境变量，缺失时报错；
- `${VAR:-default}`：缺失或为空时使用默认值；
- 配置文件所在目录及其上一级的 `.env` / `.env.local` 会被预先载入（不覆盖已有环境变量）。
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, Iterator

import yaml
from pydantic import ValidationError

from klinepilot.common.config.schema import AppConfig, StrategyConfig

__all__ = ["AppConfig", "StrategyConfig", "load_config", "parse_config"]

_ENV_PATTERN = re.compile(r"\$\{(?P<name>[A-Za-z_][A-Za-z0-9_]*)(?::-(?P<default>[^}]*))?\}")
_ENV_FILES = (".env", ".env.local")


def _iter_env_pairs(text: str) -> Iterator[tuple[str, str]]:
    """逐行解析 dotenv：忽略空行/注释，允许 `export KEY=VALUE` 与引号包裹的值。"""
    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export ") :].lstrip()
        key, sep, value = line.partition("=")
        key = key.strip()
        if not sep or not key:
            continue
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
            value = value[1:-1]
        yield key, value


def _load_env_file(env_path: Path) -> int:
    """载入单个 dotenv 文件，返回新写入的变量个数。"""
    if not env_path.is_file():
        return 0
    loaded = 0
    for key, value in _iter_env_pairs(env_path.read_text(encoding="utf-8")):
        if key not in os.environ:
            os.environ[key] = value
            loaded += 1
    return loaded


def _load_envs(cfg_path: Path) -> None:
    for folder in (cfg_path.parent, cfg_path.parent.parent):
        for name in _ENV_FILES:
            _load_env_file(folder / name)


def _expand_env(value: Any) -> Any:
    """递归展开字符串中的 `${VAR}` / `${VAR:-default}`。"""
    if isinstance(value, dict):
        return {k: _expand_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_expand_env(v) for v in value]
    if not isinstance(value, str):
        return value

    def _sub(match: re.Match) -> str:
        name, default = match.group("name"), match.group("default")
        current = os.environ.get(name)
        if default is not None and not current:
            return default
        if current is None:
            raise ValueError(f"Missing environment variable: {name}")
        return current

    return _ENV_PATTERN.sub(_sub, value)


def parse_config(raw: dict[str, Any] | None) -> AppConfig:
    """校验 raw dict 并构建 AppConfig；pydantic 错误统一转为 ValueError。"""
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ValueError("Config root must be a dict")
    try:
        return AppConfig.model_validate(raw)
    except ValidationError as exc:
        raise ValueError(f"Invalid config: {exc}") from exc


def load_config(path: str | Path, load_env: bool = True, expand_env: bool = True) -> AppConfig:
    """从 YAML 读取并解析配置。

    Parameters
    ----------
    path:
        配置文件路径。
    load_env:
        是否自动加载 .env/.env.local。
    expand_env:
        是否展开 `${VAR}` 占位符。

    Raises
    ------
    FileNotFoundError
        配置文件不存在。
    ValueError
        字段校验失败或缺失环境变量。
    """
    cfg_path = Path(path)
    if not cfg_path.exists():
        raise FileNotFoundError(f"Config file not found: {cfg_path}")

    if load_env:
        _load_envs(cfg_path)

    with cfg_path.open("r", encoding="utf-8") as f:
        raw_cfg: Any = yaml.safe_load(f) or {}

    if expand_env:
        raw_cfg = _expand_env(raw_cfg)
    return parse_config(raw_cfg)
