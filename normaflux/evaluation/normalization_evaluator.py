from datetime import datetime
from math import ceil
from pathlib import Path
from typing import Union

import numpy as np
import pandas as pd
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
from matplotlib.backends.backend_pdf import PdfPages

from normaflux.export.plot_utils import (
    get_color_map, plot_bar_on_axis, plot_box_on_axis, plot_density_on_axis,
)
from normaflux.evaluation.evaluation_utils import POOLED_METRICS, prepare_long_df
from normaflux.dataset.intermediateresults import NormalizationResults
from normaflux.utils.utils import log_time


class NormalizerPlotter:
    """Comparison report over every computed normalization method."""

    def __init__(
        self,
        results: NormalizationResults,
        sample_metadata: pd.DataFrame,
        condition_column: str,
    ):
        self.results = results
        self.condition_map = pd.DataFrame({
            "Sample": [str(s) for s in sample_metadata.index],
            "Condition": sample_metadata[condition_column].astype(str).to_numpy(),
        })
        self.palette = get_color_map(list(pd.unique(self.condition_map["Condition"])), anchor="")

    def _frame(self, method: str) -> pd.DataFrame:
        return pd.DataFrame(self.results.matrices[method], columns=self.results.columns)

    @log_time("Normalization - plot")
    def plot_all(self, filename: Union[str, Path] = "Norm-report.pdf") -> Path:
        filename = Path(filename)
        with PdfPages(filename) as pdf:
            self.pdf = pdf
            self._plot_title_page()
            self._plot_metrics()
            self._plot_densities()
            for method in self.results.methods:
                self._plot_box_by_sample(method)
        return filename

    def _plot_title_page(self):
        fig = plt.figure(figsize=(8.27, 11.69))
        fig.text(0.5, 0.85, "Normalization comparison", ha="center", fontsize=20, weight="bold")
        fig.text(0.5, 0.80, datetime.now().strftime("%Y-%m-%d %H:%M"), ha="center", fontsize=10)

        n_features = 0 if self.results.index is None else len(self.results.index)
        lines = [
            f"Features: {n_features}",
            f"Samples: {len(self.results.columns or [])}",
            f"Conditions: {', '.join(self.palette.keys())}",
            f"Methods: {', '.join(self.results.methods)}",
        ]
        for i, line in enumerate(lines):
            fig.text(0.12, 0.70 - i * 0.04, line, fontsize=11)

        if self.results.metrics is not None:
            table = self.results.metrics[POOLED_METRICS].round(4)
            ax = fig.add_axes([0.1, 0.15, 0.8, 0.35])
            ax.axis("off")
            ax.table(
                cellText=table.to_numpy().astype(str),
                rowLabels=list(table.index),
                colLabels=list(table.columns),
                loc="center",
            )
            ax.set_title("Pooled intragroup variability (lower is better)")
        self.pdf.savefig(fig)
        plt.close(fig)

    def _plot_metrics(self):
        metrics = self.results.metrics
        if metrics is None or metrics.empty:
            return
        rel_cols = [c for c in metrics.columns if "_rel_" in c]
        to_plot = rel_cols or POOLED_METRICS

        fig, axes = plt.subplots(1, len(to_plot), figsize=(5 * len(to_plot), 5))
        axes = np.atleast_1d(axes)
        data = metrics.reset_index()
        for ax, metric in zip(axes, to_plot):
            plot_bar_on_axis(
                ax=ax,
                data=data,
                x="method",
                y=metric,
                title=metric,
                xlabel="Method",
                ylabel=f"{metric} (%)" if metric in rel_cols else metric,
                xtick_rotation=45,
                annotate_values=True,
            )
        plt.suptitle("Intragroup variability per normalization method")
        plt.tight_layout()
        self.pdf.savefig(fig)
        plt.close(fig)

    def _plot_densities(self):
        methods = self.results.methods
        if not methods:
            return
        ncols = 3
        nrows = ceil(len(methods) / ncols)
        fig, axes = plt.subplots(nrows, ncols, figsize=(5 * ncols, 4 * nrows), squeeze=False)
        for ax, method in zip(axes.flat, methods):
            long_df = prepare_long_df(self._frame(method), label=method, label_col="Normalization")
            plot_density_on_axis(ax, long_df, value_col="Intensity", group_col="Sample", title=method)
        for ax in list(axes.flat)[len(methods):]:
            ax.axis("off")
        plt.suptitle("Per-sample intensity densities")
        plt.tight_layout()
        self.pdf.savefig(fig)
        plt.close(fig)

    def _plot_box_by_sample(self, method: str):
        long_df = prepare_long_df(
            df=self._frame(method),
            label=method,
            label_col="Normalization",
            condition_mapping=self.condition_map,
        )
        fig, ax = plt.subplots(figsize=(12, 6))
        plot_box_on_axis(
            ax=ax,
            data=long_df,
            x="Sample",
            y="Intensity",
            hue="Condition",
            title=f"Distribution by sample, {method}",
            xlabel="Sample",
            ylabel="log2 intensity",
            palette=self.palette,
        )
        plt.subplots_adjust(bottom=0.25)
        self.pdf.savefig(fig)
        plt.close(fig)
