from pathlib import Path
from typing import Optional, Sequence, Union

import numpy as np
import pandas as pd

from normaflux.dataset.annotatedmatrix import AnnotatedMatrix
from normaflux.dataset.intermediateresults import NormalizationResults
from normaflux.evaluation.evaluation_utils import metrics_table
from normaflux.evaluation.normalization_evaluator import NormalizerPlotter
from normaflux.utils.semantics import ASSAY_RAW, NORM_LOG2, NORMALIZATION_METHODS, normalized_file_name
from normaflux.utils.utils import log_info, log_time, log_warning
from normaflux.workflow.normalizers.methods import normalize

METRICS_FILE_NAME = "normalization_metrics.tsv"


def prepare_output_dir(output_dir: Union[str, Path]) -> Path:
    """Create `output_dir`, or reuse it with a warning when it already exists."""
    output_dir = Path(output_dir)
    if output_dir.exists():
        if not output_dir.is_dir():
            raise NotADirectoryError(f"Output path exists and is not a directory: {output_dir}")
        log_warning(f"Output directory {output_dir} already exists; files will be overwritten, nothing is removed.")
        stale = sorted(p.name for p in output_dir.iterdir())
        if stale:
            log_warning(f"Existing files in {output_dir}: {', '.join(stale)}")
    else:
        output_dir.mkdir(parents=True)
    return output_dir


def write_normalized_table(
    path: Path,
    matrix: np.ndarray,
    feature_metadata: pd.DataFrame,
    samples: Sequence[str],
) -> Path:
    """Tab-delimited table: feature metadata columns, then one column per sample."""
    meta = feature_metadata.reset_index()
    values = pd.DataFrame(matrix, columns=list(samples))
    table = pd.concat([meta.reset_index(drop=True), values], axis=1)
    table.to_csv(path, sep="\t", index=False, na_rep="NA")
    return path


@log_time("Normalization comparison")
def run_normalization_comparison(
    container: AnnotatedMatrix,
    sample_column: str,
    condition_column: str,
    output_dir: Union[str, Path],
    methods: Optional[Sequence[str]] = None,
    loess_span: float = 0.7,
    report_name: str = "Norm-report.pdf",
) -> NormalizationResults:
    """
    Normalize the raw assay with every requested method and write one table
    per method, a pooled-metrics table and the comparison report.
    """
    methods = list(methods or NORMALIZATION_METHODS)
    output_dir = prepare_output_dir(output_dir)

    raw = container.assay(ASSAY_RAW)
    if raw.columns.name is None:
        raw.columns.name = sample_column
    conditions = container.sample_metadata[condition_column].astype(str).to_numpy()

    results = NormalizationResults()
    results.set_columns_and_index(raw)

    raw_mat = raw.to_numpy(dtype=np.float64)
    n_nonpositive = int(np.sum(np.isfinite(raw_mat) & (raw_mat <= 0)))
    if n_nonpositive:
        log_warning(f"{n_nonpositive} non-positive raw value(s) treated as missing.")

    for method in methods:
        log_info(f"Normalizing with {method}")
        normalized = normalize(method, raw_mat, loess_span=loess_span)
        results.add_matrix(method, normalized)
        path = output_dir / normalized_file_name(method)
        write_normalized_table(path, normalized, container.feature_metadata, results.columns)
        results.add_file(method, path)

    results.metrics = metrics_table(results.matrices, conditions, reference=NORM_LOG2)
    results.metrics_path = output_dir / METRICS_FILE_NAME
    results.metrics.to_csv(results.metrics_path, sep="\t")
    log_info(f"Pooled metrics written to {results.metrics_path}")

    plotter = NormalizerPlotter(results, container.sample_metadata, condition_column)
    results.report_path = plotter.plot_all(output_dir / report_name)
    log_info(f"Normalization report written to {results.report_path}")
    return results
