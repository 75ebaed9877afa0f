from __future__ import annotations

from dataclasses import dataclass
from math import ceil

import numpy as np
import pandas as pd


@dataclass(frozen=True)
class PresenceFilterResult:
    counts: pd.DataFrame         # non-missing values per feature (rows) and group (columns)
    required: dict[str, int]     # minimum count per group
    passed: np.ndarray           # boolean mask over features


def _presence_counts(intensity_matrix_GxN: np.ndarray, conditions: list[str]) -> dict[str, np.ndarray]:
    cond_arr = np.asarray(conditions, dtype=str)
    out: dict[str, np.ndarray] = {}
    for cond in pd.unique(cond_arr):
        mask = cond_arr == cond
        sub = intensity_matrix_GxN[:, mask]
        out[cond] = np.isfinite(sub).sum(axis=1)
    return out


def required_replicates(group_size: int, least_rep_fraction: float) -> int:
    """Smallest integer count that is at least `least_rep_fraction * group_size`."""
    # round first so 0.5 * 4 stays 2 despite float noise
    return int(ceil(round(least_rep_fraction * group_size, 9)))


def presence_filter(
    intensity_matrix_GxN: np.ndarray,
    conditions: list[str],
    least_rep_fraction: float,
    feature_ids: list[str] | None = None,
) -> PresenceFilterResult:
    """
    A feature passes when, in every group, its number of observed values is
    at least `least_rep_fraction` times the group's replicate count.
    """
    counts = _presence_counts(np.asarray(intensity_matrix_GxN, dtype=np.float64), conditions)
    sizes = pd.Series(np.asarray(conditions, dtype=str)).value_counts()
    required = {cond: required_replicates(int(sizes[cond]), least_rep_fraction) for cond in counts}

    n_features = np.asarray(intensity_matrix_GxN).shape[0]
    passed = np.ones(n_features, dtype=bool)
    for cond, cnt in counts.items():
        passed &= cnt >= required[cond]

    df = pd.DataFrame(counts, index=feature_ids)
    return PresenceFilterResult(counts=df, required=required, passed=passed)
