"""PDF report exporter for differential-abundance results.

Generates a multi-page PDF containing:
  1) Title/summary page (parameters, contrasts, package versions)
  2) Per tested contrast: p-value histogram and volcano plot
  3) Significant counts per contrast
"""

import platform
import textwrap
from datetime import datetime
from pathlib import Path
from typing import Union

import numpy as np
import pandas as pd
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
from matplotlib.backends.backend_pdf import PdfPages
import anndata
import inmoose
import polars
import scipy
import sklearn
import skmisc
import statsmodels

import normaflux
from normaflux.analysis.limma_pipeline import DEAResults
from normaflux.export.plot_utils import plot_bar_on_axis, plot_pvalue_histogram, plot_volcano_on_axis
from normaflux.utils.semantics import COL_PVALUE, COL_ADJPVALUE, COL_LOG2FC, COL_SIGNIFICANT
from normaflux.utils.utils import log_info, log_time


def package_versions() -> dict:
    return {
        "python":       platform.python_version(),
        "normaflux":    normaflux.__version__,
        "inmoose":      inmoose.__version__,
        "numpy":        np.__version__,
        "pandas":       pd.__version__,
        "polars":       polars.__version__,
        "anndata":      anndata.__version__,
        "scipy":        scipy.__version__,
        "statsmodels":  statsmodels.__version__,
        "scikit-learn": sklearn.__version__,
        "skmisc":       skmisc.__version__,
    }


class ReportPlotter:
    """Title page, per-contrast diagnostics and summary for a DEAResults."""
    def __init__(
        self,
        results: DEAResults,
        normalized_method: str,
        label_column: str,
        title: str = "Differential abundance report",
    ):
        self.results = results
        self.params = results.params
        self.normalized_method = normalized_method
        self.label_column = label_column
        self.title = title

    @log_time("DEA - plot")
    def plot_all(self, filename: Union[str, Path]) -> Path:
        """Create the full PDF report at `filename`."""
        filename = Path(filename)
        filename.parent.mkdir(parents=True, exist_ok=True)
        with PdfPages(filename) as pdf:
            self.pdf = pdf
            self._plot_title_page()
            for contrast in self.results.tested_contrasts:
                self._plot_contrast(contrast)
            self._plot_summary()
        log_info(f"DEA report written to {filename}")
        self.results.report_path = filename
        return filename

    def _plot_title_page(self):
        fig = plt.figure(figsize=(8.27, 11.69))
        fig.patch.set_facecolor("white")
        x0, y = 0.05, 0.95
        line_height = 0.03

        fig.text(0.5, y, self.title, ha="center", va="top", fontsize=20, weight="bold")
        y -= 1.5 * line_height
        fig.text(0.5, y, datetime.now().strftime("%Y-%m-%d"), ha="center", va="top", fontsize=13)
        y -= 1.5 * line_height

        p = self.params
        settings = [
            f"Normalization: {self.normalized_method}",
            f"Test: {p.method} (eBayes moderated), BH adjustment per contrast",
            f"Presence filter: >= {p.least_rep_fraction:g} of replicates observed in both groups",
            f"Significance: {p.sig_threshold_type} <= {p.sig_threshold:g}, |log2FC| >= {p.log2fc_threshold:g}",
            f"Log2 transform before testing: {'yes' if p.log_transform else 'no'}",
            f"Features: {self.results.table.shape[0]}, samples: {len(self.results.sample_columns)}",
        ]
        fig.text(x0, y, "Settings:", ha="left", va="top", fontsize=14, weight="semibold")
        y -= line_height
        for line in settings:
            fig.text(x0 + 0.02, y, f"- {line}", ha="left", va="top", fontsize=12)
            y -= 0.8 * line_height
        y -= 0.5 * line_height

        fig.text(x0, y, "Contrasts:", ha="left", va="top", fontsize=14, weight="semibold")
        y -= line_height
        if not self.results.contrasts:
            fig.text(x0 + 0.02, y, "No contrasts were possible (fewer than two conditions).",
                     ha="left", va="top", fontsize=12, color="firebrick")
            y -= line_height
        else:
            text = ", ".join(self.results.contrasts)
            for line in textwrap.wrap(text, width=90):
                fig.text(x0 + 0.02, y, line, ha="left", va="top", fontsize=12)
                y -= 0.8 * line_height
            for name in self.results.contrasts:
                outcome = self.results.outcomes[name]
                if outcome.skipped:
                    fig.text(x0 + 0.02, y, f"- {name} skipped: {outcome.skipped_reason}",
                             ha="left", va="top", fontsize=11, color="firebrick")
                    y -= 0.8 * line_height
        y -= 0.5 * line_height

        fig.text(x0, y, "Key package versions:", ha="left", va="top", fontsize=14, weight="semibold")
        y -= line_height
        for name, ver in package_versions().items():
            fig.text(x0 + 0.02, y, f"- {name}: {ver}", ha="left", va="top", fontsize=12)
            y -= 0.8 * line_height

        self.pdf.savefig(fig)
        plt.close(fig)

    def _plot_contrast(self, contrast: str):
        cols = self.results.contrast_columns(contrast)
        table = self.results.table
        pvals = table[cols[COL_PVALUE]].to_numpy(dtype=float)
        qvals = table[cols[COL_ADJPVALUE]].to_numpy(dtype=float)
        lfc = table[cols[COL_LOG2FC]].to_numpy(dtype=float)
        sig = table[cols[COL_SIGNIFICANT]].to_numpy(dtype=bool)
        if self.label_column in table.columns:
            labels = table[self.label_column].astype(str).to_numpy()
        else:
            labels = table.iloc[:, 0].astype(str).to_numpy()

        use_fdr = self.params.sig_threshold_type == "fdr"
        fig, (ax_hist, ax_volcano) = plt.subplots(1, 2, figsize=(14, 6))
        plot_pvalue_histogram(ax_hist, pvals, title=f"{contrast}: p-value distribution")
        plot_volcano_on_axis(
            ax_volcano,
            log2fc=lfc,
            significance=qvals if use_fdr else pvals,
            significant=sig,
            labels=labels,
            sig_threshold=self.params.sig_threshold,
            log2fc_threshold=self.params.log2fc_threshold,
            ylabel="-log10(q)" if use_fdr else "-log10(p)",
            title=f"{contrast}: volcano",
        )
        plt.tight_layout()
        self.pdf.savefig(fig)
        plt.close(fig)

    def _plot_summary(self):
        summary = self.results.summary()
        fig, ax = plt.subplots(figsize=(10, 6))
        if summary.empty:
            ax.axis("off")
            ax.text(0.5, 0.5, "No contrasts were possible.", ha="center", va="center", fontsize=14)
        else:
            plot_bar_on_axis(
                ax=ax,
                data=summary,
                x="contrast",
                y="significant",
                title="Significant features per contrast",
                xlabel="Contrast",
                ylabel="Significant features",
                xtick_rotation=45,
                annotate_values=True,
            )
        plt.tight_layout()
        self.pdf.savefig(fig)
        plt.close(fig)
