"""Explicit pipeline configuration.

All paths, file patterns and thresholds of the pipeline live here instead of
being implied by the process working directory. Relative output paths are
resolved against `PipelineConfig.output_dir`, relative input paths against
`DatasetConfig.input_dir`.
"""

from __future__ import annotations

from copy import deepcopy
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from normaflux.utils.errors import ConfigError
from normaflux.utils.semantics import (
    NORMALIZATION_METHODS,
    SIG_THRESHOLD_TYPES,
    DEA_METHODS,
)

LOAD_METHODS = ("polars", "pyarrow", "pandas")


@dataclass
class DatasetConfig:
    input_dir: str = "."
    quant_pattern: str = "*Proteins.txt"
    design_pattern: str = "sample_table.csv"
    load_method: str = "polars"
    sample_column: str = "sample"
    condition_column: str = "condition"
    replicate_column: str = "replicate"
    id_column: str = "accession"
    gene_column: str = "gene_symbol"
    annotation_columns: List[str] = field(default_factory=lambda: ["description"])

    def validate(self) -> None:
        if self.load_method not in LOAD_METHODS:
            raise ConfigError(f"Unknown load_method {self.load_method!r}; use one of {LOAD_METHODS}")
        for key in ("quant_pattern", "design_pattern", "sample_column", "condition_column",
                    "replicate_column", "id_column", "gene_column"):
            if not str(getattr(self, key) or "").strip():
                raise ConfigError(f"dataset.{key} must not be empty")


@dataclass
class NormalizationConfig:
    methods: List[str] = field(default_factory=lambda: list(NORMALIZATION_METHODS))
    output_dir: str = "NormalyzerDE/Normalization_results"
    loess_span: float = 0.7
    report_name: str = "Norm-report.pdf"

    def validate(self) -> None:
        if not self.methods:
            raise ConfigError("normalization.methods must list at least one method")
        unknown = [m for m in self.methods if m not in NORMALIZATION_METHODS]
        if unknown:
            raise ConfigError(f"Unknown normalization method(s) {unknown}; available: {list(NORMALIZATION_METHODS)}")
        if not 0 < float(self.loess_span) <= 1:
            raise ConfigError(f"normalization.loess_span must be in (0, 1], got {self.loess_span}")


@dataclass
class DEAConfig:
    normalized_method: Optional[str] = None
    least_rep_fraction: float = 0.5
    sig_threshold: float = 0.01
    sig_threshold_type: str = "fdr"
    log2fc_threshold: float = 1.0
    method: str = "limma"
    log_transform: bool = False
    job_name: str = "DEA"
    output_dir: str = "NormalyzerDE/DEA_output"

    def validate(self) -> None:
        if self.normalized_method is not None and self.normalized_method not in NORMALIZATION_METHODS:
            raise ConfigError(f"dea.normalized_method {self.normalized_method!r} is not a known normalization method")
        if not 0 < float(self.least_rep_fraction) <= 1:
            raise ConfigError(f"dea.least_rep_fraction must be in (0, 1], got {self.least_rep_fraction}")
        if not 0 < float(self.sig_threshold) <= 1:
            raise ConfigError(f"dea.sig_threshold must be in (0, 1], got {self.sig_threshold}")
        if self.sig_threshold_type not in SIG_THRESHOLD_TYPES:
            raise ConfigError(f"dea.sig_threshold_type must be one of {SIG_THRESHOLD_TYPES}")
        if float(self.log2fc_threshold) < 0:
            raise ConfigError("dea.log2fc_threshold must be >= 0")
        if self.method not in DEA_METHODS:
            raise ConfigError(f"dea.method must be one of {DEA_METHODS}")


@dataclass
class ExportConfig:
    raw_container: str = "NormalyzerDE_testing/Raw_abundances.h5ad"
    norm_container: str = "NormalyzerDE/Normalized_abundances.h5ad"
    state_file: str = "NormalyzerDE/pipeline_state.yaml"
    report_html: str = "report.html"
    title: str = "Normalization and differential abundance report"


@dataclass
class PipelineConfig:
    dataset: DatasetConfig = field(default_factory=DatasetConfig)
    normalization: NormalizationConfig = field(default_factory=NormalizationConfig)
    dea: DEAConfig = field(default_factory=DEAConfig)
    exports: ExportConfig = field(default_factory=ExportConfig)
    output_dir: str = "."

    def __post_init__(self):
        self.dataset.validate()
        self.normalization.validate()
        self.dea.validate()

    @classmethod
    def from_dict(cls, config: Optional[Dict[str, Any]]) -> "PipelineConfig":
        """Build from a nested dict (YAML layout); unknown keys are rejected."""
        config = deepcopy(config or {})

        def _section(klass, key):
            block = config.pop(key, None) or {}
            if not isinstance(block, dict):
                raise ConfigError(f"Section {key!r} must be a mapping")
            try:
                return klass(**block)
            except TypeError as exc:
                raise ConfigError(f"Invalid key in section {key!r}: {exc}") from exc

        dataset = _section(DatasetConfig, "dataset")
        normalization = _section(NormalizationConfig, "normalization")
        dea = _section(DEAConfig, "dea")
        exports = _section(ExportConfig, "exports")
        output_dir = str(config.pop("output_dir", ".") or ".")
        if config:
            raise ConfigError(f"Unknown configuration section(s): {sorted(config)}")

        if isinstance(normalization.methods, str):
            normalization.methods = [normalization.methods]
        if isinstance(dataset.annotation_columns, str):
            dataset.annotation_columns = [dataset.annotation_columns]

        return cls(dataset=dataset, normalization=normalization, dea=dea,
                   exports=exports, output_dir=output_dir)

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "PipelineConfig":
        path = Path(path)
        if not path.is_file():
            raise ConfigError(f"Config file not found: {path}")
        return cls.from_dict(yaml.safe_load(path.read_text()))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    # path helpers
    def input_dir(self) -> Path:
        return Path(self.dataset.input_dir)

    def resolve(self, relative: Union[str, Path]) -> Path:
        p = Path(relative)
        return p if p.is_absolute() else Path(self.output_dir) / p

    @property
    def raw_container_path(self) -> Path:
        return self.resolve(self.exports.raw_container)

    @property
    def norm_container_path(self) -> Path:
        return self.resolve(self.exports.norm_container)

    @property
    def normalization_dir(self) -> Path:
        return self.resolve(self.normalization.output_dir)

    @property
    def dea_dir(self) -> Path:
        return self.resolve(self.dea.output_dir)

    @property
    def state_path(self) -> Path:
        return self.resolve(self.exports.state_file)

    @property
    def report_html_path(self) -> Path:
        return self.resolve(self.exports.report_html)
