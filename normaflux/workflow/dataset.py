from dataclasses import dataclass
from typing import List, Optional

import numpy as np
import pandas as pd
import polars as pl

from normaflux.dataset.annotatedmatrix import AnnotatedMatrix
from normaflux.utils.errors import SchemaMismatchError
from normaflux.utils.harmonizer import SchemaNormalizer, snake_case
from normaflux.utils.semantics import ASSAY_RAW, SAMPLE_LABEL_COLUMN
from normaflux.utils.utils import log_info, log_time, log_warning
from normaflux.workflow.config import DatasetConfig, PipelineConfig
from normaflux.workflow.input_locator import LoadedInputs, load_inputs


@dataclass(frozen=True)
class AssembledInputs:
    sample_metadata: pd.DataFrame
    feature_metadata: pd.DataFrame
    abundance: pd.DataFrame


def _fmt_list(items: List[str], cap: int = 20) -> str:
    shown = items[:cap] + ([f"... (+{len(items) - cap} more)"] if len(items) > cap else [])
    return ", ".join(map(str, shown))


def numeric_matrix(table: pl.DataFrame, columns: List[str], table_name: str) -> np.ndarray:
    """Sample columns as float64; cells that are present but not numeric become NaN with a warning."""
    cast = table.select([pl.col(c).cast(pl.Float64, strict=False) for c in columns])
    lost = {
        c: int((table.get_column(c).is_not_null() & cast.get_column(c).is_null()).sum())
        for c in columns
    }
    lost = {c: n for c, n in lost.items() if n}
    if lost:
        log_warning(
            f"{sum(lost.values())} non-numeric cell(s) in {table_name} set to missing "
            f"(columns: {_fmt_list([f'{c} ({n})' for c, n in lost.items()], cap=5)})."
        )
    return cast.to_numpy().astype(np.float64)


class MatrixAssembler:
    """Builds sample metadata, feature metadata and the raw abundance matrix."""

    def __init__(self, dataset_cfg: DatasetConfig):
        # config names go through the same normalizer as the tables they refer to
        self.sample_col = snake_case(dataset_cfg.sample_column)
        self.condition_col = snake_case(dataset_cfg.condition_column)
        self.replicate_col = snake_case(dataset_cfg.replicate_column)
        self.id_col = snake_case(dataset_cfg.id_column)
        self.gene_col = snake_case(dataset_cfg.gene_column)
        self.annotation_cols = [snake_case(c) for c in (dataset_cfg.annotation_columns or [])]

    def _validate_design(self, design: pl.DataFrame) -> None:
        required = [self.sample_col, self.condition_col, self.replicate_col]
        missing = [c for c in required if c not in design.columns]
        if missing:
            raise SchemaMismatchError(
                f"Design table lacks required column(s) {missing}; available: {design.columns}"
            )
        samples = design.get_column(self.sample_col)
        if samples.null_count():
            raise SchemaMismatchError("Design table has empty sample identifiers.")
        dups = samples.filter(samples.is_duplicated()).unique().to_list()
        if dups:
            raise SchemaMismatchError(f"Duplicate sample identifiers in design table: {_fmt_list(sorted(dups))}")
        if design.get_column(self.condition_col).null_count():
            raise SchemaMismatchError("Design table has samples without a condition label.")

    def _validate_quantification(self, quant: pl.DataFrame, samples: List[str]) -> None:
        if self.id_col not in quant.columns:
            raise SchemaMismatchError(
                f"Quantification table lacks identifier column '{self.id_col}'; available: {_fmt_list(quant.columns)}"
            )
        missing = [s for s in samples if s not in quant.columns]
        if missing:
            raise SchemaMismatchError(
                f"{len(missing)} design sample(s) not found as quantification columns: {_fmt_list(missing)}"
            )
        ids = quant.get_column(self.id_col)
        if ids.null_count():
            raise SchemaMismatchError(f"Quantification table has {ids.null_count()} row(s) without '{self.id_col}'.")
        dups = ids.filter(ids.is_duplicated()).unique().to_list()
        if dups:
            raise SchemaMismatchError(f"Duplicate feature identifiers: {_fmt_list(sorted(map(str, dups)))}")

    def _sample_metadata(self, design: pl.DataFrame) -> pd.DataFrame:
        meta = design.with_columns(
            (pl.col(self.condition_col).cast(pl.Utf8)
             + pl.lit(".")
             + pl.col(self.replicate_col).cast(pl.Utf8)).alias(SAMPLE_LABEL_COLUMN)
        ).to_pandas()
        meta[self.sample_col] = meta[self.sample_col].astype(str)
        return meta.set_index(self.sample_col)

    def _feature_metadata(self, quant: pl.DataFrame) -> pd.DataFrame:
        cols = [self.id_col]
        if self.gene_col in quant.columns:
            cols.append(self.gene_col)
        else:
            log_warning(f"Gene symbol column '{self.gene_col}' not found; using identifiers as symbols.")
        cols += [c for c in self.annotation_cols if c in quant.columns and c not in cols]

        meta = quant.select(cols).with_columns(pl.col(self.id_col).cast(pl.Utf8))
        # blank/missing gene symbols fall back to the identifier
        gene = (
            pl.col(self.gene_col).cast(pl.Utf8, strict=False).str.strip_chars().replace(["", "NA", "NaN", "nan"], None)
            if self.gene_col in meta.columns else pl.lit(None, dtype=pl.Utf8)
        )
        meta = meta.with_columns(pl.coalesce([gene, pl.col(self.id_col)]).alias(self.gene_col))
        ordered = [self.id_col, self.gene_col] + [c for c in cols if c not in (self.id_col, self.gene_col)]
        return meta.select(ordered).to_pandas().set_index(self.id_col)

    def _abundance(self, quant: pl.DataFrame, samples: List[str], index: pd.Index) -> pd.DataFrame:
        mat = numeric_matrix(quant, samples, "the quantification table")
        return pd.DataFrame(mat, index=index.copy(), columns=pd.Index(samples, name=self.sample_col))

    @log_time("Matrix Assembly")
    def assemble(self, quant: pl.DataFrame, design: pl.DataFrame) -> AssembledInputs:
        """Inputs must already be schema-normalized."""
        self._validate_design(design)
        samples = [str(s) for s in design.get_column(self.sample_col).to_list()]
        self._validate_quantification(quant, samples)

        sample_meta = self._sample_metadata(design)
        feature_meta = self._feature_metadata(quant)
        abundance = self._abundance(quant, samples, feature_meta.index)

        known = set(samples) | {self.id_col, self.gene_col} | set(self.annotation_cols)
        ignored = [c for c in quant.columns if c not in known]
        if ignored:
            log_info(f"Ignoring {len(ignored)} quantification column(s) not listed in the design: {_fmt_list(ignored, cap=5)}")

        n_levels = sample_meta[self.condition_col].nunique()
        log_info(f"Assembled {abundance.shape[0]} features x {abundance.shape[1]} samples, {n_levels} condition(s).")
        if n_levels < 2:
            log_warning("Fewer than 2 conditions in the design: no contrasts will be defined.")

        return AssembledInputs(sample_metadata=sample_meta,
                               feature_metadata=feature_meta,
                               abundance=abundance)


class Dataset:
    """Loads the two input tables and exposes the raw annotated matrix."""
    def __init__(self, config: PipelineConfig, inputs: Optional[LoadedInputs] = None):
        self.config = config
        self.normalizer = SchemaNormalizer()
        self.assembler = MatrixAssembler(config.dataset)
        self.inputs = inputs
        self._load_and_process()

    def _load_and_process(self):
        ds = self.config.dataset
        if self.inputs is None:
            self.inputs = load_inputs(ds.input_dir, ds.quant_pattern, ds.design_pattern, ds.load_method)

        self.quantification = self.normalizer.normalize_quantification(self.inputs.quantification)
        self.design = self.normalizer.normalize_design(
            self.inputs.design,
            checked_columns=[self.assembler.sample_col, self.assembler.condition_col, self.assembler.replicate_col],
        )
        self.assembled = self.assembler.assemble(self.quantification, self.design)

        self.container = AnnotatedMatrix(
            assays={ASSAY_RAW: self.assembled.abundance},
            sample_metadata=self.assembled.sample_metadata,
            feature_metadata=self.assembled.feature_metadata,
        )

    def get_annotated_matrix(self) -> AnnotatedMatrix:
        return self.container
