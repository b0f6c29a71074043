"""KlinePilot 统一命令行入口（`python main.py backtest|live|download`）。"""

from __future__ import annotations

from klinepilot.cli import main

if __name__ == "__main__":
    main()
