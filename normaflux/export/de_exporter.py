"""Export differential-abundance results as a tab-delimited table."""
from pathlib import Path
from typing import Union

from normaflux.analysis.limma_pipeline import DEAResults
from normaflux.utils.utils import log_info, log_time


class DEExporter:
    def __init__(self, results: DEAResults, output_dir: Union[str, Path], job_name: str = "DEA"):
        """Writes `<job_name>_stats.tsv` into `output_dir`."""
        self.results = results
        self.output_dir = Path(output_dir)
        self.job_name = job_name

    @property
    def stats_path(self) -> Path:
        return self.output_dir / f"{self.job_name}_stats.tsv"

    @log_time("Exporting DEA table")
    def export(self) -> Path:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.results.table.to_csv(self.stats_path, sep="\t", index=False, na_rep="NA")
        log_info(f"DEA table ({self.results.table.shape[0]} features) written to {self.stats_path}")
        self.results.stats_path = self.stats_path
        return self.stats_path
