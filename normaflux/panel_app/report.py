"""Standalone HTML document over the DEA table, the normalization metrics and both reports."""

from pathlib import Path
from typing import Dict, Optional, Union

import pandas as pd
import panel as pn

from normaflux.analysis.limma_pipeline import DEAResults
from normaflux.utils.utils import log_info, log_time, log_warning

pn.extension("tabulator")


def _table_pane(df: pd.DataFrame, page_size: int = 25) -> pn.widgets.Tabulator:
    # values shown as computed; sorting and filtering are client side
    return pn.widgets.Tabulator(
        df,
        show_index=False,
        header_filters=True,
        pagination="local",
        page_size=page_size,
        disabled=True,
        sizing_mode="stretch_width",
    )


def _summary_pane(results: DEAResults) -> pn.pane.Markdown:
    if not results.contrasts:
        return pn.pane.Markdown("**No contrasts were possible** (fewer than two conditions).")
    summary = results.summary()
    lines = ["| contrast | tested | significant | up | down | note |",
             "|---|---|---|---|---|---|"]
    for row in summary.itertuples(index=False):
        lines.append(f"| {row.contrast} | {row.tested} | {row.significant} | {row.up} | {row.down} | {row.skipped} |")
    return pn.pane.Markdown("\n".join(lines))


def build_results_document(
    results: DEAResults,
    title: str,
    pdf_paths: Optional[Dict[str, Union[str, Path]]] = None,
    metrics: Optional[pd.DataFrame] = None,
) -> pn.Column:
    """Tabs: DEA table, normalization metrics, then one tab per embedded PDF report."""
    tabs = pn.Tabs(
        ("Differential abundance", pn.Column(_summary_pane(results), _table_pane(results.table))),
        dynamic=False,
    )
    if metrics is not None:
        tabs.append(("Normalization metrics", _table_pane(metrics.reset_index(), page_size=10)))

    for name, path in (pdf_paths or {}).items():
        path = Path(path)
        if not path.is_file():
            log_warning(f"Report {path} not found; tab '{name}' omitted.")
            continue
        tabs.append((name, pn.pane.PDF(str(path), embed=True, width=1000, height=900)))

    return pn.Column(pn.pane.Markdown(f"# {title}"), tabs, sizing_mode="stretch_width")


@log_time("Rendering HTML report")
def render_results_document(
    results: DEAResults,
    title: str,
    output_path: Union[str, Path],
    pdf_paths: Optional[Dict[str, Union[str, Path]]] = None,
    metrics: Optional[pd.DataFrame] = None,
) -> Path:
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    doc = build_results_document(results, title, pdf_paths=pdf_paths, metrics=metrics)
    doc.save(str(output_path), embed=True, title=title)
    log_info(f"HTML report written to {output_path}")
    return output_path
