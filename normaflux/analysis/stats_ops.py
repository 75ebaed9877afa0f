from __future__ import annotations

import numpy as np
from statsmodels.stats.multitest import multipletests


def bh_qvalues(p: np.ndarray) -> np.ndarray:
    """Benjamini-Hochberg q-values of a 1D p-value vector; NaN entries stay NaN and are not counted."""
    p = np.asarray(p, dtype=np.float64)
    if p.ndim != 1:
        raise ValueError(f"Expected 1D p-value array, got shape {p.shape}")
    q = np.full_like(p, np.nan)
    ok = np.isfinite(p)
    if ok.any():
        q[ok] = multipletests(p[ok], method="fdr_bh")[1]
    return q


def significance_mask(
    pvalues: np.ndarray,
    qvalues: np.ndarray,
    log2fc: np.ndarray,
    sig_threshold: float,
    sig_threshold_type: str,
    log2fc_threshold: float,
) -> np.ndarray:
    """Significant = threshold on q ("fdr") or p ("p"), and |log2FC| >= log2fc_threshold."""
    stat = qvalues if sig_threshold_type == "fdr" else pvalues
    with np.errstate(invalid="ignore"):
        return (
            np.isfinite(stat)
            & np.isfinite(log2fc)
            & (stat <= sig_threshold)
            & (np.abs(log2fc) >= log2fc_threshold)
        )
