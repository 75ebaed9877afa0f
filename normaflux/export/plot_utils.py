import numpy as np
import pandas as pd
import seaborn as sns
import matplotlib.pyplot as plt
from matplotlib.axes import Axes
from typing import Optional, Union, List, Dict


def get_color_map(
    labels: List[str],
    palette: Optional[List[str]] = None,
    anchor: str = "Total",
    anchor_color: str = "red",
) -> Dict[str, str]:
    """Return a stable mapping label->color.

    - If `anchor` is present in labels, it gets `anchor_color`.
    - Remaining labels (original order) get colors from Matplotlib's cycle.
    """
    palette = palette or plt.rcParams["axes.prop_cycle"].by_key()["color"]
    out: Dict[str, str] = {}
    if anchor in labels:
        out[anchor] = anchor_color
    others = [l for l in labels if l != anchor]
    for i, lbl in enumerate(others):
        out[lbl] = palette[i % len(palette)]
    return out


def plot_box_on_axis(
    ax: Axes,
    data: pd.DataFrame,
    x: str,
    y: str,
    hue: Optional[str],
    title: str,
    xlabel: str,
    ylabel: str,
    palette: Optional[dict] = None,
    draw_median_line: bool = True,
    xtick_rotation: Optional[int] = 45,
    xtick_fontsize: int = 7,
) -> None:
    """
    Plots a boxplot on the provided axis using the specified parameters.
    """
    sns.boxplot(
        x=x, y=y, hue=hue, data=data,
        palette=palette,
        dodge=False,
        fliersize=1,
        ax=ax,
    )
    ax.set_title(title)
    ax.set_xlabel(xlabel)
    ax.set_ylabel(ylabel)

    if draw_median_line and len(data):
        median_val = np.median(data[y])
        ax.axhline(y=median_val, color="gray", linestyle="--", linewidth=1.5, alpha=0.6)

    if hue and ax.get_legend() is not None:
        ax.legend(title=hue, loc="upper right", fontsize=7)
    ax.grid(True, which="both", linestyle="--", linewidth=0.5, alpha=0.7)
    if xtick_rotation is not None:
        ax.tick_params(axis='x', rotation=xtick_rotation, labelsize=xtick_fontsize)
        for label in ax.get_xticklabels():
            label.set_horizontalalignment('right')


def plot_bar_on_axis(
    ax: Axes,
    data: pd.DataFrame,
    x: str,
    y: str,
    title: str,
    xlabel: str,
    ylabel: str,
    palette: Optional[Union[str, List[str], dict]] = "Blues_d",
    xtick_rotation: Optional[int] = None,
    xtick_fontsize: int = 8,
    log_scale: bool = False,
    draw_grid: bool = True,
    annotate_values: bool = False,
) -> None:
    """
    Plots a barplot on the provided axis using Seaborn and consistent formatting.

    Parameters:
        ax (Axes): Matplotlib axis to plot on.
        data (pd.DataFrame): DataFrame with data to plot.
        x (str): Column name for x-axis.
        y (str): Column name for y-axis (bar height).
        title (str): Plot title.
        xlabel (str): Label for x-axis.
        ylabel (str): Label for y-axis.
        palette: Color palette (optional).
        xtick_rotation (int): Rotate x-tick labels if specified.
        xtick_fontsize (int): Font size for x-tick labels.
        draw_grid (bool): Whether to draw grid on the plot.
    """
    sns.barplot(x=x,
                y=y,
                data=data,
                hue=x,
                palette=palette,
                legend=False,
                ax=ax)
    ax.set_title(title)
    ax.set_xlabel(xlabel)
    ax.set_ylabel(ylabel)

    if draw_grid:
        ax.grid(True, which="both", linestyle="--", linewidth=0.5, alpha=0.7)

    if log_scale:
        ax.set_yscale("log")

    if xtick_rotation is not None:
        ax.tick_params(axis='x', rotation=xtick_rotation, labelsize=xtick_fontsize)
        for label in ax.get_xticklabels():
            label.set_horizontalalignment('right')

    if annotate_values:
        for container in ax.containers:
            for bar in container:
                height = bar.get_height()
                if not np.isnan(height) and height > 0:
                    ax.annotate(
                        f"{height:.3g}",
                        xy=(bar.get_x() + bar.get_width() / 2, height),
                        xytext=(0, 5),
                        textcoords="offset points",
                        ha='center',
                        va='bottom',
                        fontsize=8,
                        color='black'
                    )


def plot_density_on_axis(
    ax: Axes,
    data: pd.DataFrame,
    value_col: str,
    group_col: str,
    title: str,
    xlabel: str = "log2 intensity",
) -> None:
    """Overlayed per-sample kernel densities."""
    for _, sub in data.groupby(group_col, sort=False):
        values = sub[value_col].to_numpy(dtype=float)
        if values.size > 1 and np.nanstd(values) > 0:
            sns.kdeplot(x=values, ax=ax, linewidth=0.8, alpha=0.7)
    ax.set_title(title)
    ax.set_xlabel(xlabel)
    ax.grid(True, which="both", linestyle="--", linewidth=0.5, alpha=0.7)


def plot_pvalue_histogram(ax: Axes, pvalues: np.ndarray, title: str, bins: int = 40) -> None:
    p = pvalues[np.isfinite(pvalues)]
    ax.hist(p, bins=np.linspace(0, 1, bins + 1), color="steelblue", edgecolor="white")
    ax.set_xlim(0, 1)
    ax.set_xlabel("p-value")
    ax.set_ylabel("Features")
    ax.set_title(title)
    ax.grid(True, which="both", linestyle="--", linewidth=0.5, alpha=0.7)


def plot_volcano_on_axis(
    ax: Axes,
    log2fc: np.ndarray,
    significance: np.ndarray,
    significant: np.ndarray,
    labels: np.ndarray,
    sig_threshold: float,
    log2fc_threshold: float,
    ylabel: str = "-log10(q)",
    title: str = "",
    top_annotated: int = 10,
) -> None:
    """Volcano plot; significant features in red (up) / blue (down), top hits annotated."""
    mask = np.isfinite(log2fc) & np.isfinite(significance)
    y = -np.log10(np.clip(significance, 1e-300, None))

    color = np.full(log2fc.shape[0], "gray", dtype=object)
    color[significant & (log2fc > 0)] = "red"
    color[significant & (log2fc < 0)] = "blue"

    ax.scatter(log2fc[mask], y[mask], c=color[mask], alpha=0.7, s=10)
    ax.axhline(-np.log10(sig_threshold), color="black", linestyle="--", linewidth=0.8)
    for xv in (-log2fc_threshold, log2fc_threshold):
        ax.axvline(xv, color="black", linestyle=":", linewidth=0.8)

    # annotate top hits by smallest significance value
    for direction in ("up", "down"):
        dir_mask = (log2fc > 0) if direction == "up" else (log2fc < 0)
        sel = np.where(mask & significant & dir_mask)[0]
        top = sel[np.argsort(significance[sel])[:top_annotated]]
        for j in top:
            ax.text(log2fc[j], y[j], str(labels[j]), fontsize=6,
                    ha="right" if log2fc[j] > 0 else "left", va="bottom")

    ax.set_xlabel("log2FC")
    ax.set_ylabel(ylabel)
    ax.set_title(title)
    ax.grid(True, which="both", linestyle="--", linewidth=0.5, alpha=0.7)
