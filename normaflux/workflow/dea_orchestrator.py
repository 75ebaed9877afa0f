from pathlib import Path
from typing import List, Optional, Union

import pandas as pd
import polars as pl

from normaflux.analysis.limma_pipeline import DEAResults, run_limma_pipeline
from normaflux.dataset.annotatedmatrix import AnnotatedMatrix
from normaflux.design.contrastbuilder import build_contrasts
from normaflux.export.de_exporter import DEExporter
from normaflux.export.pdf_report_exporter import ReportPlotter
from normaflux.utils.errors import MissingInputError, SchemaMismatchError
from normaflux.utils.semantics import ASSAY_NORM
from normaflux.utils.utils import log_info, log_time
from normaflux.workflow.config import DEAConfig
from normaflux.workflow.dataset import _fmt_list, numeric_matrix
from normaflux.workflow.input_locator import load_table


@log_time("Loading normalized table")
def load_normalized_table(
    path: Union[str, Path],
    container: AnnotatedMatrix,
    id_column: str,
    load_method: str = "polars",
) -> pd.DataFrame:
    """Read a `<method>-normalized.txt` file as a (features x samples) frame
    aligned to the container's feature and sample metadata.
    """
    path = Path(path)
    if not path.is_file():
        raise MissingInputError(f"Normalized table not found: {path}")
    table = load_table(path, load_method)

    if id_column not in table.columns:
        raise SchemaMismatchError(f"Normalized table {path.name} lacks identifier column '{id_column}'.")

    samples = container.sample_names
    missing_samples = [s for s in samples if s not in table.columns]
    if missing_samples:
        raise SchemaMismatchError(
            f"Normalized table {path.name} lacks design sample(s): {_fmt_list(missing_samples)}"
        )

    ids = table.get_column(id_column).cast(pl.Utf8).to_list()
    if len(set(ids)) != len(ids):
        raise SchemaMismatchError(f"Normalized table {path.name} has duplicate identifiers.")
    expected = container.feature_names
    extra = sorted(set(ids) - set(expected))
    absent = sorted(set(expected) - set(ids))
    if extra or absent:
        raise SchemaMismatchError(
            f"Normalized table {path.name} features differ from the feature metadata "
            f"({len(absent)} missing: {_fmt_list(absent)}; {len(extra)} unexpected: {_fmt_list(extra)})."
        )

    values = numeric_matrix(table, samples, path.name)
    frame = pd.DataFrame(values, index=pd.Index(ids), columns=samples)
    # rows re-aligned to the feature metadata order
    frame = frame.loc[expected]
    frame.index = container.feature_metadata.index.copy()
    frame.columns = container.sample_metadata.index.copy()
    return frame


def build_normalized_container(raw: AnnotatedMatrix, normalized: pd.DataFrame) -> AnnotatedMatrix:
    return AnnotatedMatrix(
        assays={ASSAY_NORM: normalized},
        sample_metadata=raw.sample_metadata,
        feature_metadata=raw.feature_metadata,
    )


@log_time("DEA")
def run_dea(
    container: AnnotatedMatrix,
    contrasts: List[str],
    params: DEAConfig,
    output_dir: Union[str, Path],
    condition_column: str,
    label_column: str,
    normalized_method: str,
    title: Optional[str] = None,
) -> DEAResults:
    """Test every contrast on the `norm` assay, then write the stats table and the report."""
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    results = run_limma_pipeline(container, contrasts, condition_column, params)
    DEExporter(results, output_dir, params.job_name).export()
    ReportPlotter(
        results,
        normalized_method=normalized_method,
        label_column=label_column,
        title=title or "Differential abundance report",
    ).plot_all(output_dir / f"{params.job_name}_DE_report.pdf")
    return results


def run_dea_stage(
    raw: AnnotatedMatrix,
    normalized_path: Union[str, Path],
    normalized_method: str,
    params: DEAConfig,
    output_dir: Union[str, Path],
    norm_container_path: Union[str, Path],
    id_column: str,
    condition_column: str,
    label_column: str,
    load_method: str = "polars",
    title: Optional[str] = None,
) -> DEAResults:
    """Load the selected table, persist the normalized container, build contrasts and run the DEA."""
    normalized = load_normalized_table(normalized_path, raw, id_column, load_method)
    norm_container = build_normalized_container(raw, normalized)
    norm_container.write(norm_container_path)

    contrasts = build_contrasts(norm_container.condition_levels(condition_column))
    log_info(f"{len(contrasts)} contrast(s): {', '.join(contrasts) or 'none'}")
    return run_dea(
        norm_container,
        contrasts,
        params,
        output_dir,
        condition_column=condition_column,
        label_column=label_column,
        normalized_method=normalized_method,
        title=title,
    )
