from __future__ import annotations

import warnings
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Dict, List, Mapping, Union

import anndata as ad
import numpy as np
import pandas as pd

from normaflux.utils.errors import MissingInputError, SchemaMismatchError
from normaflux.utils.utils import log_info, log_time

# AnnData converts str indices with a UserWarning; our indices are already str
warnings.filterwarnings("ignore", category=UserWarning, message=".*Transforming to str index.*")

UNS_ASSAY_NAMES = "assay_names"
UNS_OBS_INDEX_NAME = "obs_index_name"
UNS_VAR_INDEX_NAME = "var_index_name"


def _decategorize(df: pd.DataFrame) -> pd.DataFrame:
    """Undo the string -> categorical conversion AnnData applies on write."""
    out = df.copy()
    for col in out.columns:
        if isinstance(out[col].dtype, pd.CategoricalDtype):
            out[col] = out[col].astype(out[col].cat.categories.dtype)
    return out


def _unify_nulls(df: pd.DataFrame) -> pd.DataFrame:
    """Missing text cells become NaN (AnnData reads them back as NaN, never None)."""
    out = df.copy()
    for col in out.columns:
        if out[col].dtype == object:
            out[col] = out[col].where(out[col].notna(), np.nan)
    return out


@dataclass(frozen=True)
class AnnotatedMatrix:
    """Immutable bundle of named abundance matrices with sample and feature metadata.

    Every assay is a (features x samples) frame whose index equals the
    feature metadata index and whose columns equal the sample metadata index,
    in the same order. Inputs are copied on construction and `assay()` hands
    out copies, so a persisted snapshot cannot be altered through a reference.
    """
    assays: Mapping[str, pd.DataFrame]
    sample_metadata: pd.DataFrame
    feature_metadata: pd.DataFrame

    def __post_init__(self):
        if not self.assays:
            raise ValueError("AnnotatedMatrix needs at least one assay.")

        samples = self.sample_metadata.index
        features = self.feature_metadata.index
        if not samples.is_unique:
            raise SchemaMismatchError("Sample metadata index contains duplicate sample identifiers.")
        if not features.is_unique:
            raise SchemaMismatchError("Feature metadata index contains duplicate feature identifiers.")

        assays: Dict[str, pd.DataFrame] = {}
        for name, mat in self.assays.items():
            if list(mat.columns) != list(samples):
                raise SchemaMismatchError(
                    f"Assay '{name}' columns do not match the sample metadata (same samples, same order required)."
                )
            if list(mat.index) != list(features):
                raise SchemaMismatchError(
                    f"Assay '{name}' rows do not match the feature metadata (same features, same order required)."
                )
            mat = mat.astype(np.float64).copy()
            mat.index = features.copy()
            mat.columns = samples.copy()
            assays[str(name)] = mat

        object.__setattr__(self, "assays", MappingProxyType(assays))
        object.__setattr__(self, "sample_metadata", _unify_nulls(self.sample_metadata))
        object.__setattr__(self, "feature_metadata", _unify_nulls(self.feature_metadata))

    @property
    def assay_names(self) -> List[str]:
        return list(self.assays.keys())

    @property
    def sample_names(self) -> List[str]:
        return [str(s) for s in self.sample_metadata.index]

    @property
    def feature_names(self) -> List[str]:
        return [str(f) for f in self.feature_metadata.index]

    @property
    def shape(self):
        """(n_features, n_samples)"""
        return len(self.feature_metadata), len(self.sample_metadata)

    def assay(self, name: str) -> pd.DataFrame:
        if name not in self.assays:
            raise KeyError(f"Unknown assay '{name}'; available: {self.assay_names}")
        return self.assays[name].copy()

    def condition_levels(self, condition_column: str) -> List[str]:
        """Unique condition labels in first-appearance order."""
        if condition_column not in self.sample_metadata.columns:
            raise SchemaMismatchError(f"Condition column '{condition_column}' not in sample metadata.")
        return [str(c) for c in pd.unique(self.sample_metadata[condition_column].astype(str))]

    def to_anndata(self) -> ad.AnnData:
        """AnnData view: obs = samples, var = features, first assay as X."""
        first = self.assay_names[0]
        obs = self.sample_metadata.copy()
        var = self.feature_metadata.copy()
        obs.index = obs.index.astype(str)
        var.index = var.index.astype(str)

        adata = ad.AnnData(
            X=self.assays[first].to_numpy(dtype=np.float64).T,
            obs=obs,
            var=var,
        )
        for name, mat in self.assays.items():
            adata.layers[name] = mat.to_numpy(dtype=np.float64).T

        adata.uns[UNS_ASSAY_NAMES] = list(self.assay_names)
        adata.uns[UNS_OBS_INDEX_NAME] = str(self.sample_metadata.index.name or "")
        adata.uns[UNS_VAR_INDEX_NAME] = str(self.feature_metadata.index.name or "")
        return adata

    @classmethod
    def from_anndata(cls, adata: ad.AnnData) -> "AnnotatedMatrix":
        obs = _decategorize(adata.obs)
        var = _decategorize(adata.var)
        obs.index.name = adata.uns.get(UNS_OBS_INDEX_NAME) or None
        var.index.name = adata.uns.get(UNS_VAR_INDEX_NAME) or None

        names = list(adata.uns.get(UNS_ASSAY_NAMES, list(adata.layers.keys())))
        assays = {}
        for name in names:
            arr = np.asarray(adata.layers[name], dtype=np.float64).T
            assays[str(name)] = pd.DataFrame(arr, index=var.index.copy(), columns=obs.index.copy())
        return cls(assays=assays, sample_metadata=obs, feature_metadata=var)

    @log_time("Writing annotated matrix")
    def write(self, path: Union[str, Path]) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        self.to_anndata().write_h5ad(path, compression="gzip")
        log_info(f"Annotated matrix ({', '.join(self.assay_names)}) written to {path}")
        return path

    @classmethod
    def read(cls, path: Union[str, Path]) -> "AnnotatedMatrix":
        path = Path(path)
        if not path.is_file():
            raise MissingInputError(f"Annotated matrix not found: {path}")
        return cls.from_anndata(ad.read_h5ad(path))
