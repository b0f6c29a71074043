"""资金曲线绘图（matplotlib，Agg 后端，只写文件不弹窗）。"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Tuple

Point = Tuple[datetime, float]


def _require_matplotlib():
    try:
        import matplotlib

        matplotlib.use("Agg")
        import matplotlib.pyplot as plt  # type: ignore
    except ImportError as exc:  # pragma: no cover - import guard
        raise RuntimeError("绘图需要 matplotlib，请先 pip install matplotlib。") from exc
    return plt


def _running_peak(values: List[float], start: float | None) -> List[float]:
    peaks: List[float] = []
    peak = start
    for v in values:
        peak = v if peak is None else max(peak, v)
        peaks.append(peak)
    return peaks


def plot_equity_curve(
    equity_curve: Iterable[Point],
    save_path: str | Path | None = None,
    *,
    title: str = "Equity Curve",
    initial_capital: float | None = None,
):
    """按平仓时间画阶梯资金曲线，下方子图为相对历史高点的回撤。

    save_path 为空时只返回 fig（调用方负责关闭）。
    """
    plt = _require_matplotlib()
    import matplotlib.dates as mdates  # type: ignore

    points = sorted(equity_curve, key=lambda p: p[0])
    xs = [mdates.date2num(t) for t, _ in points]
    ys = [float(c) for _, c in points]
    peaks = _running_peak(ys, initial_capital)
    drawdown = [p - v for p, v in zip(peaks, ys)]

    fig, (ax_eq, ax_dd) = plt.subplots(
        2, 1, figsize=(10, 5), sharex=True, gridspec_kw={"height_ratios": [3, 1]}
    )
    ax_eq.step(xs, ys, where="post", label="Capital")
    if initial_capital is not None:
        ax_eq.axhline(initial_capital, color="grey", linestyle="--", linewidth=0.8, label="Initial")
    ax_eq.set_title(title)
    ax_eq.set_ylabel("Capital")
    ax_eq.grid(True, alpha=0.3)
    ax_eq.legend(loc="best")

    ax_dd.fill_between(xs, [-d for d in drawdown], 0.0, step="post", color="tab:red", alpha=0.3)
    ax_dd.set_ylabel("Drawdown")
    ax_dd.grid(True, alpha=0.3)

    locator = mdates.AutoDateLocator()
    ax_dd.xaxis.set_major_locator(locator)
    ax_dd.xaxis.set_major_formatter(mdates.AutoDateFormatter(locator))
    fig.autofmt_xdate()

    if save_path:
        out = Path(save_path)
        out.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(str(out), bbox_inches="tight")
        plt.close(fig)
    return fig
