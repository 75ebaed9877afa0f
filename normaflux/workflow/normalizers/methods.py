"""Normalization methods compared by the normalization stage.

Every function takes a raw (linear scale, features x samples) matrix and
returns a log2-scale matrix of the same shape. Missing values stay missing;
non-positive raw values are treated as missing.
"""

from typing import Callable, Dict

import numpy as np

from normaflux.utils.semantics import (
    NORM_LOG2, NORM_GI, NORM_MEDIAN, NORM_MEAN, NORM_QUANTILE, NORM_RLR, NORM_CYCLOESS,
)
from normaflux.workflow.normalizers.regression_normalization import regression_normalization


def safe_log2(mat: np.ndarray) -> np.ndarray:
    mat = np.asarray(mat, dtype=np.float64)
    out = np.full_like(mat, np.nan)
    positive = np.isfinite(mat) & (mat > 0)
    out[positive] = np.log2(mat[positive])
    return out


def _scale_columns(mat: np.ndarray, stat: Callable) -> np.ndarray:
    """x / stat(column) * mean(stat over columns), on observed positive values."""
    mat = np.asarray(mat, dtype=np.float64)
    mat = np.where(np.isfinite(mat) & (mat > 0), mat, np.nan)
    with np.errstate(invalid="ignore"):
        col_stats = stat(mat, axis=0)
    scale = np.where(np.isfinite(col_stats) & (col_stats > 0),
                     np.nanmean(col_stats) / col_stats,
                     1.0)
    return mat * scale[None, :]


def log2_normalization(mat: np.ndarray, **_) -> np.ndarray:
    return safe_log2(mat)


def global_intensity_normalization(mat: np.ndarray, **_) -> np.ndarray:
    return safe_log2(_scale_columns(mat, np.nansum))


def median_normalization(mat: np.ndarray, **_) -> np.ndarray:
    return safe_log2(_scale_columns(mat, np.nanmedian))


def mean_normalization(mat: np.ndarray, **_) -> np.ndarray:
    return safe_log2(_scale_columns(mat, np.nanmean))


def quantile_normalization(mat: np.ndarray, **_) -> np.ndarray:
    """Quantile normalization of log2 data; columns may hold different numbers of NaNs.

    Each column's sorted observed values are interpolated onto a common grid,
    the grid-wise mean forms the reference distribution, and each observed
    value receives the reference value at its (rescaled) rank.
    """
    logged = safe_log2(mat)
    n_rows, n_cols = logged.shape
    out = np.full_like(logged, np.nan)
    if n_rows == 0:
        return out

    grid = np.linspace(0.0, 1.0, n_rows)
    sorted_cols = []
    for j in range(n_cols):
        obs = np.sort(logged[np.isfinite(logged[:, j]), j])
        if obs.size == 0:
            sorted_cols.append(None)
            continue
        pos = np.linspace(0.0, 1.0, obs.size) if obs.size > 1 else np.array([0.5])
        sorted_cols.append(np.interp(grid, pos, obs))

    observed = [c for c in sorted_cols if c is not None]
    if not observed:
        return out
    reference = np.mean(np.vstack(observed), axis=0)

    for j in range(n_cols):
        col = logged[:, j]
        ok = np.isfinite(col)
        n_obs = int(ok.sum())
        if n_obs == 0:
            continue
        # average ranks for ties, as preprocessCore does
        order = np.argsort(col[ok], kind="mergesort")
        ranks = np.empty(n_obs, dtype=np.float64)
        ranks[order] = np.arange(n_obs, dtype=np.float64)
        _, inverse, counts = np.unique(col[ok], return_inverse=True, return_counts=True)
        if np.any(counts > 1):
            rank_sums = np.bincount(inverse, weights=ranks)
            ranks = rank_sums[inverse] / counts[inverse]
        pos = ranks / (n_obs - 1) if n_obs > 1 else np.full(n_obs, 0.5)
        out[ok, j] = np.interp(pos, grid, reference)
    return out


def rlr_normalization(mat: np.ndarray, **_) -> np.ndarray:
    normalized, _models = regression_normalization(safe_log2(mat), regression_type="robust_linear")
    return normalized


def cyclic_loess_normalization(mat: np.ndarray, loess_span: float = 0.7, **_) -> np.ndarray:
    normalized, _models = regression_normalization(safe_log2(mat), regression_type="loess", span=loess_span)
    return normalized


NORMALIZERS: Dict[str, Callable[..., np.ndarray]] = {
    NORM_LOG2: log2_normalization,
    NORM_GI: global_intensity_normalization,
    NORM_MEDIAN: median_normalization,
    NORM_MEAN: mean_normalization,
    NORM_QUANTILE: quantile_normalization,
    NORM_RLR: rlr_normalization,
    NORM_CYCLOESS: cyclic_loess_normalization,
}


def normalize(method: str, mat: np.ndarray, **kwargs) -> np.ndarray:
    if method not in NORMALIZERS:
        raise ValueError(f"Invalid normalization method: {method}")
    return NORMALIZERS[method](mat, **kwargs)
