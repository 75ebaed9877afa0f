from importlib.resources import files
from pathlib import Path

import typer

from normaflux.utils.errors import PipelineError
from normaflux.utils.utils import logger, setup_logging
from normaflux.workflow.config import PipelineConfig

app = typer.Typer(help="NormaFlux: normalization comparison and differential abundance for proteomics tables")

DEFAULT_CONFIG = Path("normaflux_config.yaml")


def _load_config(config: Path) -> PipelineConfig:
    return PipelineConfig.from_yaml(config)


def _fail(exc: Exception) -> None:
    logger.error(str(exc))
    raise typer.Exit(code=1)


@app.command()
def init(path: Path = typer.Argument(DEFAULT_CONFIG, help="Where to write the template")):
    """
    Generate a config scaffold (basic template) at given path.
    """
    default_yaml = files("normaflux.templates").joinpath("user_template.yaml").read_text()
    if path.exists():
        typer.echo(f"{path} already exists, not overwritten")
        raise typer.Exit(code=1)
    path.write_text(default_yaml)
    typer.echo(f"Template written to {path}")


@app.command()
def run(
    config: Path = typer.Option(DEFAULT_CONFIG, help="Path to YAML config file"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """
    Load inputs, write the raw matrix and compare normalizations.
    Continues to the DEA when `dea.normalized_method` is set.
    """
    from normaflux.main import run_pipeline
    from normaflux.utils.cli_setup import configure_cli_display

    setup_logging(verbose)
    configure_cli_display()
    try:
        state = run_pipeline(_load_config(config))
    except PipelineError as exc:
        _fail(exc)
    typer.echo(state.describe())


@app.command()
def select(
    method: str = typer.Argument(..., help="Normalization method to carry into the DEA"),
    config: Path = typer.Option(DEFAULT_CONFIG, help="Path to YAML config file"),
):
    """
    Record the normalization method chosen after reviewing the comparison report.
    """
    from normaflux.main import select_normalization

    setup_logging()
    try:
        state = select_normalization(_load_config(config), method)
    except PipelineError as exc:
        _fail(exc)
    typer.echo(state.describe())


@app.command()
def resume(
    config: Path = typer.Option(DEFAULT_CONFIG, help="Path to YAML config file"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """
    Run the differential analysis on the selected normalization and render the report.
    """
    from normaflux.main import resume_pipeline
    from normaflux.utils.cli_setup import configure_cli_display

    setup_logging(verbose)
    configure_cli_display()
    try:
        results = resume_pipeline(_load_config(config))
    except PipelineError as exc:
        _fail(exc)
    typer.echo(f"Stats table: {results.stats_path}")
    typer.echo(f"DEA report: {results.report_path}")


@app.command()
def status(config: Path = typer.Option(DEFAULT_CONFIG, help="Path to YAML config file")):
    """
    Show where the pipeline stands.
    """
    from normaflux.workflow.pipeline_state import PipelineState

    setup_logging()
    try:
        state = PipelineState.load(_load_config(config).state_path)
    except PipelineError as exc:
        _fail(exc)
    typer.echo(state.describe())


if __name__ == "__main__":
    app()
