import numpy as np
import pandas as pd
import warnings
from typing import List, Dict, Sequence

POOLED_METRICS = ["PCV", "PMAD", "PEV"]


def compute_metrics(mat: np.ndarray, metrics: List[str] = ["CV", "MAD"]) -> Dict[str, np.ndarray]:
    """
    Compute per-feature metrics across samples.

    Parameters:
        mat (np.ndarray): 2D array (features x samples), log2 scale.
        metrics (List[str], optional): List of metric names to compute.
            Supported metrics include:
              - "CV": Coefficient of variation (std / mean) of the linear values
              - "MAD": Median absolute deviation (with respect to the median)
              - "PEV": Population explained variance (i.e. variance)
              - "Mean": Mean value
              - "Median": Median value
              - "STD": Standard deviation
            Defaults to ["CV", "MAD", "PEV"].

    Returns:
        Dict[str, np.ndarray]: Dictionary with metric names as keys and 1D arrays
                               (one value per feature) as values.
    """
    if metrics is None:
        metrics = ["CV", "MAD", "PEV"]

    result = {}
    with warnings.catch_warnings():
        warnings.filterwarnings("ignore", category=RuntimeWarning)
        means   = np.nanmean(mat, axis=1)
        medians = np.nanmedian(mat, axis=1)
        stds    = np.nanstd(mat, axis=1, ddof=1)
        linear  = np.power(2.0, mat)
        cvs     = np.nanstd(linear, axis=1, ddof=1) / np.nanmean(linear, axis=1)
        mads    = np.nanmedian(np.abs(mat - medians[:, None]), axis=1)

        if "CV" in metrics:
            result["CV"] = cvs
        if "MAD" in metrics:
            result["MAD"] = mads
        if "PEV" in metrics:
            result["PEV"] = np.nanvar(mat, axis=1, ddof=1)
        if "Mean" in metrics:
            result["Mean"] = means
        if "Median" in metrics:
            result["Median"] = medians
        if "STD" in metrics:
            result["STD"] = stds

    return result


def pooled_metrics(mat: np.ndarray, conditions: Sequence[str]) -> Dict[str, float]:
    """
    Pooled intragroup variability of a log2 matrix.

    PCV and PMAD average the per-feature CV / MAD of every condition over
    features, then over conditions. PEV pools per-feature variances with
    their degrees of freedom. Features need at least two observed values in a
    condition to contribute.
    """
    cond_arr = np.asarray(conditions, dtype=str)
    pcv, pmad, pev = [], [], []
    with warnings.catch_warnings():
        warnings.filterwarnings("ignore", category=RuntimeWarning)
        for cond in pd.unique(cond_arr):
            sub = mat[:, cond_arr == cond]
            n_obs = np.sum(np.isfinite(sub), axis=1)
            usable = n_obs >= 2
            if not usable.any():
                continue
            res = compute_metrics(sub[usable], metrics=["CV", "MAD", "PEV"])
            pcv.append(np.nanmean(res["CV"]))
            pmad.append(np.nanmean(res["MAD"]))
            dof = n_obs[usable] - 1
            pev.append(np.nansum(res["PEV"] * dof) / np.sum(dof))

    def _mean(values):
        return float(np.mean(values)) if values else float("nan")

    return {"PCV": _mean(pcv), "PMAD": _mean(pmad), "PEV": _mean(pev)}


def metrics_table(normalized: Dict[str, np.ndarray], conditions: Sequence[str], reference: str = "log2") -> pd.DataFrame:
    """
    One row per method with pooled metrics and, when `reference` is present,
    each metric relative to it (in percent).
    """
    rows = {name: pooled_metrics(mat, conditions) for name, mat in normalized.items()}
    table = pd.DataFrame.from_dict(rows, orient="index")[POOLED_METRICS]
    table.index.name = "method"
    if reference in table.index:
        for metric in POOLED_METRICS:
            ref = table.loc[reference, metric]
            table[f"{metric}_rel_{reference}"] = 100 * table[metric] / ref if ref else np.nan
    return table


def prepare_long_df(
    df: pd.DataFrame,
    label: str,
    label_col: str,
    condition_mapping: pd.DataFrame = None,
    sample_col: str = "Sample",
    intensity_col: str = "Intensity",
) -> pd.DataFrame:
    """ Convert a wide-format DataFrame (samples as columns) to long-format, drop missing intensities, optionally merge with a condition mapping, and add a processing label.
    Args:
        df (pd.DataFrame): Wide-format DataFrame.
        label (str): The label to assign (e.g., the normalization method).
        label_col (str): The column name for the label (e.g., "Normalization").
        condition_mapping (pd.DataFrame, optional): Mapping to merge on 'Sample'.

    Returns:
        pd.DataFrame: Long-format DataFrame with 'Sample', 'Intensity', and the label_col.
    """
    df_long = df.melt(var_name=sample_col, value_name=intensity_col)
    df_long = df_long[np.isfinite(df_long[intensity_col].to_numpy(dtype=float))].copy()
    if condition_mapping is not None:
        df_long = df_long.merge(condition_mapping, on=sample_col, how="left")
    df_long[label_col] = label
    return df_long
