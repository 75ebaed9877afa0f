import numpy as np
from scipy.stats import t as t_dist
from inmoose.limma import squeezeVar


class EbayesModerator:
    def __init__(self, sigma2, df_residual):
        """
        Parameters:
        - sigma2: (n_features,) residual variances
        - df_residual: (n_features,) residual degrees of freedom, may differ per feature
        """
        self.sigma2 = np.asarray(sigma2, dtype=np.float64)
        self.df_residual = np.broadcast_to(
            np.asarray(df_residual, dtype=np.float64), self.sigma2.shape
        ).copy()
        self.s2_prior = None
        self.df_prior = None
        self.s2_post = None

    def fit(self):
        """Fit the scaled F prior on the residual variances (limma squeezeVar)."""
        # squeezeVar zeroes variances with df == 0 in place
        out = squeezeVar(self.sigma2.copy(), self.df_residual)
        self.s2_prior = out["var_prior"]
        self.df_prior = out["df_prior"]
        self.s2_post = np.asarray(out["var_post"], dtype=np.float64)
        return self.df_prior, self.s2_prior

    @property
    def df_total(self) -> np.ndarray:
        # capped at the pooled residual df, as limma does
        return np.minimum(self.df_residual + self.df_prior, np.nansum(self.df_residual))

    def apply_to_contrast(self, log2fc, stdev_unscaled):
        """
        Moderated t and two-sided p for one contrast.

        Parameters:
        - log2fc: (n_features,) contrast estimates
        - stdev_unscaled: (n_features,) unscaled standard errors of the contrast

        Returns:
        - dict: t, p (each of shape n_features)
        """
        if self.s2_post is None:
            self.fit()
        log2fc = np.asarray(log2fc, dtype=np.float64)
        se = np.asarray(stdev_unscaled, dtype=np.float64) * np.sqrt(self.s2_post)
        with np.errstate(divide="ignore", invalid="ignore"):
            t_stat = log2fc / se
        p_val = 2 * t_dist.sf(np.abs(t_stat), df=self.df_total)
        return {"t": t_stat, "p": p_val}
