from pathlib import Path

import pandas as pd

from normaflux.analysis.limma_pipeline import DEAResults
from normaflux.dataset.annotatedmatrix import AnnotatedMatrix
from normaflux.panel_app.report import render_results_document
from normaflux.utils.harmonizer import snake_case
from normaflux.utils.utils import log_info, log_time
from normaflux.workflow.config import PipelineConfig
from normaflux.workflow.dataset import Dataset
from normaflux.workflow.dea_orchestrator import run_dea_stage
from normaflux.workflow.normalization_comparison import run_normalization_comparison
from normaflux.workflow.pipeline_state import PipelineState, awaiting_selection


@log_time("Normalization stage")
def run_pipeline(config: PipelineConfig) -> PipelineState:
    """Load, assemble and persist the raw matrix, compare normalizations and stop at the
    manual choice, unless `dea.normalized_method` already names one."""
    ds = config.dataset
    dataset = Dataset(config)
    container = dataset.get_annotated_matrix()
    container.write(config.raw_container_path)

    norm_cfg = config.normalization
    results = run_normalization_comparison(
        container,
        sample_column=snake_case(ds.sample_column),
        condition_column=snake_case(ds.condition_column),
        output_dir=config.normalization_dir,
        methods=norm_cfg.methods,
        loess_span=norm_cfg.loess_span,
        report_name=norm_cfg.report_name,
    )

    state = awaiting_selection(
        raw_container=config.raw_container_path,
        normalized_files=results.files,
        normalization_report=results.report_path,
        metrics_file=results.metrics_path,
    )
    state.save(config.state_path)

    if config.dea.normalized_method is None:
        return state

    log_info(f"Normalization method preset in the configuration: {config.dea.normalized_method}")
    select_normalization(config, config.dea.normalized_method)
    resume_pipeline(config)
    return PipelineState.load(config.state_path)


def select_normalization(config: PipelineConfig, method: str) -> PipelineState:
    state = PipelineState.load(config.state_path)
    state.select(method)
    state.save(config.state_path)
    log_info(f"Normalization method selected: {method}")
    return state


@log_time("DEA stage")
def resume_pipeline(config: PipelineConfig) -> DEAResults:
    """Run the DEA on the recorded choice and render the HTML report."""
    state = PipelineState.load(config.state_path)
    method = state.require_selection()
    ds = config.dataset

    raw = AnnotatedMatrix.read(state.raw_container)
    results = run_dea_stage(
        raw,
        normalized_path=state.normalized_files[method],
        normalized_method=method,
        params=config.dea,
        output_dir=config.dea_dir,
        norm_container_path=config.norm_container_path,
        id_column=snake_case(ds.id_column),
        condition_column=snake_case(ds.condition_column),
        label_column=snake_case(ds.gene_column),
        load_method=ds.load_method,
        title=config.exports.title,
    )

    metrics = None
    if state.metrics_file and Path(state.metrics_file).is_file():
        metrics = pd.read_csv(state.metrics_file, sep="\t", index_col=0)
    pdf_paths = {"DEA report": results.report_path}
    if state.normalization_report:
        pdf_paths["Normalization report"] = state.normalization_report
    html = render_results_document(
        results,
        title=config.exports.title,
        output_path=config.report_html_path,
        pdf_paths=pdf_paths,
        metrics=metrics,
    )

    state.complete({
        "norm_container": config.norm_container_path,
        "stats_table": results.stats_path,
        "dea_report": results.report_path,
        "report_html": html,
    })
    state.save(config.state_path)
    return results
