"""Shared synthetic inputs: a small label-free experiment with two conditions."""

from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from normaflux.dataset.annotatedmatrix import AnnotatedMatrix
from normaflux.utils.semantics import ASSAY_NORM, ASSAY_RAW
from normaflux.utils.utils import logger

N_FEATURES = 200
N_UP = 10
SAMPLES = ["S1", "S2", "S3", "S4", "S5", "S6"]
CONDITIONS = ["Ctrl", "Ctrl", "Ctrl", "Treat", "Treat", "Treat"]


def make_quantification(n_features: int = N_FEATURES, seed: int = 0) -> pd.DataFrame:
    """Raw (linear) intensities; the first N_UP features are 8x higher in Treat,
    the last two features are too sparse to test."""
    rng = np.random.default_rng(seed)
    base = rng.uniform(14, 26, size=n_features)
    log_vals = base[:, None] + rng.normal(0, 0.15, size=(n_features, len(SAMPLES)))
    log_vals[:N_UP, 3:] += 3.0
    # per-sample loading differences
    log_vals += np.array([0.0, 0.4, -0.3, 0.2, -0.5, 0.1])[None, :]
    raw = np.power(2.0, log_vals)
    raw[-1, 0:2] = np.nan      # one Ctrl observation left
    raw[-2, 3:] = np.nan       # nothing in Treat
    raw[-2, 0] = 0.0           # non-positive, treated as missing

    df = pd.DataFrame(raw, columns=SAMPLES)
    df.insert(0, "Accession", [f"P{i:05d}" for i in range(n_features)])
    genes = [f"GENE{i}" for i in range(n_features)]
    genes[5] = ""
    df.insert(1, "Gene Symbol", genes)
    df.insert(2, "Description", [f"protein {i}" for i in range(n_features)])
    df["Run Info"] = "batch1"
    return df


def make_design() -> pd.DataFrame:
    return pd.DataFrame({
        "Sample": SAMPLES,
        "Condition": CONDITIONS,
        "Replicate": [1, 2, 3, 1, 2, 3],
    })


def write_inputs(directory: Path, quant: pd.DataFrame = None, design: pd.DataFrame = None) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    quant = make_quantification() if quant is None else quant
    design = make_design() if design is None else design
    quant.to_csv(directory / "demo_Proteins.txt", sep="\t", index=False)
    design.to_csv(directory / "sample_table.csv", index=False)
    return directory


def pipeline_config_dict(input_dir: Path, output_dir: Path, **dea) -> dict:
    return {
        "output_dir": str(output_dir),
        "dataset": {
            "input_dir": str(input_dir),
            "sample_column": "Sample",
            "condition_column": "Condition",
            "replicate_column": "Replicate",
            "id_column": "Accession",
            "gene_column": "Gene Symbol",
            "annotation_columns": ["Description"],
        },
        "normalization": {"methods": ["log2", "median", "Quantile"]},
        "dea": dict(dea),
    }


@pytest.fixture
def input_dir(tmp_path) -> Path:
    return write_inputs(tmp_path / "inputs")


@pytest.fixture
def sample_metadata() -> pd.DataFrame:
    meta = pd.DataFrame({
        "condition": [c.lower() for c in CONDITIONS],
        "replicate": [1, 2, 3, 1, 2, 3],
    }, index=pd.Index([s.lower() for s in SAMPLES], name="sample"))
    meta["label"] = meta["condition"] + "." + meta["replicate"].astype(str)
    return meta


@pytest.fixture
def feature_metadata() -> pd.DataFrame:
    ids = [f"P{i:05d}" for i in range(N_FEATURES)]
    return pd.DataFrame({
        "gene_symbol": [f"GENE{i}" for i in range(N_FEATURES)],
    }, index=pd.Index(ids, name="accession"))


@pytest.fixture
def raw_container(sample_metadata, feature_metadata) -> AnnotatedMatrix:
    quant = make_quantification()
    raw = pd.DataFrame(quant[SAMPLES].to_numpy(), index=feature_metadata.index, columns=sample_metadata.index)
    return AnnotatedMatrix({ASSAY_RAW: raw}, sample_metadata, feature_metadata)


@pytest.fixture
def norm_container(raw_container) -> AnnotatedMatrix:
    raw = raw_container.assay(ASSAY_RAW)
    with np.errstate(divide="ignore"):
        logged = np.log2(raw.where(raw > 0))
    return AnnotatedMatrix({ASSAY_NORM: logged}, raw_container.sample_metadata, raw_container.feature_metadata)


@pytest.fixture(autouse=True)
def _reset_package_logger():
    yield
    for handler in [h for h in logger.handlers if getattr(h, "_normaflux", False)]:
        logger.removeHandler(handler)
