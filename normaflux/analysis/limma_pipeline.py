"""Limma-based differential abundance over all pairwise contrasts.

Each contrast is fitted on the samples of its two groups only, after the
presence filter. Features that are not tested keep NaN statistics but stay
in the result table.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

import numpy as np
import pandas as pd
import patsy
import inmoose.limma as imo

from normaflux.analysis.ebayes_moderator import EbayesModerator
from normaflux.analysis.missingness import presence_filter
from normaflux.analysis.stats_ops import bh_qvalues, significance_mask
from normaflux.dataset.annotatedmatrix import AnnotatedMatrix
from normaflux.design.contrastbuilder import split_contrast
from normaflux.utils.semantics import (
    ASSAY_NORM,
    COL_PVALUE, COL_ADJPVALUE, COL_LOG2FC, COL_AVEEXPR, COL_SIGNIFICANT, DEA_STAT_SUFFIXES,
)
from normaflux.utils.utils import log_info, log_time, log_warning
from normaflux.workflow.config import DEAConfig
from normaflux.workflow.normalizers.methods import safe_log2

# patsy needs identifier-safe names; condition labels may start with digits
_GROUP_A = "group_a"
_GROUP_B = "group_b"


@dataclass
class ContrastOutcome:
    name: str
    level_a: str
    level_b: str
    n_samples_a: int
    n_samples_b: int
    n_tested: int = 0
    n_significant: int = 0
    n_up: int = 0
    n_down: int = 0
    skipped_reason: Optional[str] = None

    @property
    def skipped(self) -> bool:
        return self.skipped_reason is not None


@dataclass
class DEAResults:
    table: pd.DataFrame
    contrasts: List[str]
    outcomes: Dict[str, ContrastOutcome] = field(default_factory=dict)
    params: Optional[DEAConfig] = None
    sample_columns: List[str] = field(default_factory=list)
    stats_path: Optional[Path] = None
    report_path: Optional[Path] = None

    @property
    def tested_contrasts(self) -> List[str]:
        return [c for c in self.contrasts if not self.outcomes[c].skipped]

    def contrast_columns(self, contrast: str) -> Dict[str, str]:
        return {suffix: f"{contrast}_{suffix}" for suffix in DEA_STAT_SUFFIXES}

    def summary(self) -> pd.DataFrame:
        rows = []
        for name in self.contrasts:
            o = self.outcomes[name]
            rows.append({
                "contrast": name,
                "tested": o.n_tested,
                "significant": o.n_significant,
                "up": o.n_up,
                "down": o.n_down,
                "skipped": o.skipped_reason or "",
            })
        return pd.DataFrame(rows, columns=["contrast", "tested", "significant", "up", "down", "skipped"])


def _empty_stats(n_features: int) -> Dict[str, np.ndarray]:
    nan = np.full(n_features, np.nan)
    return {
        COL_PVALUE: nan.copy(),
        COL_ADJPVALUE: nan.copy(),
        COL_LOG2FC: nan.copy(),
        COL_AVEEXPR: nan.copy(),
        COL_SIGNIFICANT: np.zeros(n_features, dtype=bool),
    }


def _fit_contrast(values: np.ndarray, feature_ids: List[str], samples: List[str], is_a: np.ndarray):
    """lmFit + contrasts_fit + moderated t on a (features x samples) block; returns (log2fc, p).

    Missing cells are dropped per feature, so residual df may differ between rows.
    """
    obs = pd.DataFrame({
        _GROUP_A: is_a.astype(int),
        _GROUP_B: (~is_a).astype(int),
    }, index=samples)
    design_dm = patsy.dmatrix(f"0 + {_GROUP_A} + {_GROUP_B}", obs)

    df_X = pd.DataFrame(values, index=feature_ids, columns=samples)
    fit_imo = imo.lmFit(df_X, design=design_dm)
    contrast_df = imo.makeContrasts([f"{_GROUP_A} - {_GROUP_B}"], levels=design_dm)
    fit_imo = imo.contrasts_fit(fit_imo, contrasts=contrast_df)

    coefs = np.asarray(fit_imo.coefficients, dtype=np.float64)[:, 0]
    stdu = np.asarray(fit_imo.stdev_unscaled, dtype=np.float64)[:, 0]
    sigma = np.asarray(fit_imo.sigma, dtype=np.float64)
    df_res = np.asarray(fit_imo.df_residual, dtype=np.float64)

    moderator = EbayesModerator(sigma ** 2, df_res)
    moderator.fit()
    stats = moderator.apply_to_contrast(coefs, stdu)
    return coefs, stats["p"]


def _run_contrast(
    norm: pd.DataFrame,
    conditions: pd.Series,
    contrast: str,
    levels: List[str],
    params: DEAConfig,
):
    level_a, level_b = split_contrast(contrast, levels)
    samples_a = list(conditions.index[conditions == level_a])
    samples_b = list(conditions.index[conditions == level_b])
    outcome = ContrastOutcome(contrast, level_a, level_b, len(samples_a), len(samples_b))
    stats = _empty_stats(norm.shape[0])

    samples = samples_a + samples_b
    values = norm[samples].to_numpy(dtype=np.float64)
    if params.log_transform:
        values = safe_log2(values)
    is_a = np.array([True] * len(samples_a) + [False] * len(samples_b))

    if len(samples) - 2 < 1:
        outcome.skipped_reason = "zero residual degrees of freedom"
        return outcome, stats

    groups = [level_a] * len(samples_a) + [level_b] * len(samples_b)
    presence = presence_filter(values, groups, params.least_rep_fraction)
    # a feature also needs one value per group and one residual degree of freedom of its own
    n_obs = np.isfinite(values).sum(axis=1)
    both_observed = (presence.counts.to_numpy() >= 1).all(axis=1)
    tested = presence.passed & both_observed & (n_obs - 2 >= 1)
    if int(tested.sum()) < 2:
        outcome.skipped_reason = f"{int(tested.sum())} testable feature(s)"
        return outcome, stats

    feature_ids = [str(f) for f in norm.index[tested]]
    coefs, pvals = _fit_contrast(values[tested], feature_ids, samples, is_a)
    qvals = bh_qvalues(pvals)

    stats[COL_PVALUE][tested] = pvals
    stats[COL_ADJPVALUE][tested] = qvals
    stats[COL_LOG2FC][tested] = coefs
    with np.errstate(invalid="ignore"):
        stats[COL_AVEEXPR][tested] = np.nanmean(values[tested], axis=1)

    sig = significance_mask(
        stats[COL_PVALUE], stats[COL_ADJPVALUE], stats[COL_LOG2FC],
        params.sig_threshold, params.sig_threshold_type, params.log2fc_threshold,
    )
    stats[COL_SIGNIFICANT] = sig

    outcome.n_tested = int(tested.sum())
    outcome.n_significant = int(sig.sum())
    outcome.n_up = int((sig & (stats[COL_LOG2FC] > 0)).sum())
    outcome.n_down = int((sig & (stats[COL_LOG2FC] < 0)).sum())
    return outcome, stats


@log_time("Differential analysis")
def run_limma_pipeline(
    container: AnnotatedMatrix,
    contrasts: List[str],
    condition_column: str,
    params: DEAConfig,
) -> DEAResults:
    """Per-contrast limma on the `norm` assay.

    The table carries the feature metadata, the normalized values and five
    columns per contrast. An empty contrast list is not an error.
    """
    norm = container.assay(ASSAY_NORM)
    conditions = container.sample_metadata[condition_column].astype(str)
    levels = container.condition_levels(condition_column)

    table = pd.concat([
        container.feature_metadata.reset_index(),
        pd.DataFrame(norm.to_numpy(), columns=[str(c) for c in norm.columns]),
    ], axis=1)

    results = DEAResults(table=table, contrasts=list(contrasts), params=params,
                         sample_columns=[str(c) for c in norm.columns])
    if not contrasts:
        log_warning("No contrasts possible (fewer than two conditions); the table holds normalized values only.")
        return results

    stat_columns = {}
    for contrast in contrasts:
        outcome, stats = _run_contrast(norm, conditions, contrast, levels, params)
        results.outcomes[contrast] = outcome
        if outcome.skipped:
            log_warning(f"Contrast {contrast} skipped: {outcome.skipped_reason}.")
        else:
            log_info(
                f"Contrast {contrast}: {outcome.n_tested} tested, {outcome.n_significant} significant "
                f"({outcome.n_up} up, {outcome.n_down} down)"
            )
        for suffix, col in results.contrast_columns(contrast).items():
            stat_columns[col] = stats[suffix]

    results.table = pd.concat([table, pd.DataFrame(stat_columns)], axis=1)
    return results
