"""
Canonical semantics for normaflux.

This module is intentionally small and declarative:
  - Canonical assay names of the annotated matrix
  - Normalization method names (as written in output file names)
  - Column suffixes of the differential-expression table

Implementation details live elsewhere (normalizers, pipelines).
"""

ASSAY_RAW = "raw"
ASSAY_NORM = "norm"

# Derived Sample Metadata field (condition.replicate)
SAMPLE_LABEL_COLUMN = "label"

# Normalization methods, in report order
NORM_LOG2 = "log2"
NORM_GI = "GI"
NORM_MEDIAN = "median"
NORM_MEAN = "mean"
NORM_QUANTILE = "Quantile"
NORM_RLR = "RLR"
NORM_CYCLOESS = "CycLoess"
NORMALIZATION_METHODS = (
    NORM_LOG2, NORM_GI, NORM_MEDIAN, NORM_MEAN, NORM_QUANTILE, NORM_RLR, NORM_CYCLOESS,
)
DEFAULT_SELECTED_METHOD = NORM_MEDIAN
NORMALIZED_FILE_SUFFIX = "-normalized.txt"

# Contrast serialization
CONTRAST_SEPARATOR = "-"

# Differential-expression table columns ("<contrast>_<suffix>")
COL_PVALUE = "PValue"
COL_ADJPVALUE = "AdjPVal"
COL_LOG2FC = "log2FoldChange"
COL_AVEEXPR = "AveExpr"
COL_SIGNIFICANT = "Significant"
DEA_STAT_SUFFIXES = (COL_PVALUE, COL_ADJPVALUE, COL_LOG2FC, COL_AVEEXPR, COL_SIGNIFICANT)

SIG_THRESHOLD_TYPES = ("fdr", "p")
DEA_METHODS = ("limma",)


def normalized_file_name(method: str) -> str:
    return f"{method}{NORMALIZED_FILE_SUFFIX}"


def contrast_name(level_a: str, level_b: str) -> str:
    return f"{level_a}{CONTRAST_SEPARATOR}{level_b}"
