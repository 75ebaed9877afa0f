import numpy as np
from sklearn.linear_model import HuberRegressor
from skmisc.loess import loess


def regression_normalization(mat: np.ndarray, regression_type: str = "loess", span: float = 0.7, iterations: int = 3):
    """
    Perform regression-based normalization on a log-scale matrix.

    Parameters:
        mat (np.ndarray): 2D array (features x samples) with NaNs.
        regression_type (str): "loess" (cyclic loess against the feature mean)
            or "robust_linear" (Huber fit against the feature median).
        span (float): Smoothing parameter for loess.
        iterations (int): loess passes; each pass re-centres on the updated means.

    Returns:
        Tuple[np.ndarray, list]: Normalized matrix (same shape as input) and list of regression models.
    """
    if regression_type == "loess":
        return _cyclic_loess(mat, span=span, iterations=iterations)
    elif regression_type == "robust_linear":
        return _robust_linear(mat)
    raise ValueError("Invalid regression_type. Choose 'loess' or 'robust_linear'.")


def _cyclic_loess(mat: np.ndarray, span: float, iterations: int):
    mat_normalized = mat.astype(np.float64).copy()
    models = []

    for _ in range(iterations):
        # reference: mean of observed values per feature
        with np.errstate(invalid="ignore"):
            reference_values = np.nanmean(mat_normalized, axis=1)
        models = []
        for i in range(mat_normalized.shape[1]):
            col = mat_normalized[:, i]
            ok = np.isfinite(col) & np.isfinite(reference_values)
            if ok.sum() < 4:
                models.append(None)
                continue

            A = (reference_values[ok] + col[ok]) / 2
            M = col[ok] - reference_values[ok]

            model = loess(A, M, span=span)
            model.fit()
            models.append(model)
            # Normalize: subtract predicted bias while retaining missing values
            col = col.copy()
            col[ok] = col[ok] - model.outputs.fitted_values
            mat_normalized[:, i] = col

    return mat_normalized, models


def _robust_linear(mat: np.ndarray):
    """x_norm = (x - intercept) / slope, fitting x ~ feature median with a Huber loss."""
    with np.errstate(invalid="ignore"):
        reference_values = np.nanmedian(mat, axis=1)

    mat_normalized = np.full_like(mat, np.nan, dtype=np.float64)
    models = []
    for i in range(mat.shape[1]):
        col = mat[:, i]
        ok = np.isfinite(col) & np.isfinite(reference_values)
        if ok.sum() < 3:
            models.append(None)
            mat_normalized[:, i] = col
            continue

        model = HuberRegressor()
        model.fit(reference_values[ok].reshape(-1, 1), col[ok])
        slope, intercept = float(model.coef_[0]), float(model.intercept_)
        models.append(model)
        if slope == 0:
            mat_normalized[:, i] = col
        else:
            mat_normalized[:, i] = (col - intercept) / slope

    return mat_normalized, models
