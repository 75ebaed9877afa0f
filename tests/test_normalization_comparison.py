"""Tests for the normalization comparison stage."""

import logging

import numpy as np
import pandas as pd
import pytest

from normaflux.evaluation.evaluation_utils import metrics_table, pooled_metrics
from normaflux.utils.semantics import NORMALIZATION_METHODS
from normaflux.workflow.normalization_comparison import METRICS_FILE_NAME, run_normalization_comparison


def _run(container, output_dir, methods=("log2", "median", "Quantile")):
    return run_normalization_comparison(
        container,
        sample_column="sample",
        condition_column="condition",
        output_dir=output_dir,
        methods=list(methods),
    )


class TestRunNormalizationComparison:
    """Tests for run_normalization_comparison."""

    def test_all_methods_written(self, raw_container, tmp_path):
        """Test that every method gets a table, plus the metrics and the report."""
        out_dir = tmp_path / "norm"
        results = _run(raw_container, out_dir, NORMALIZATION_METHODS)

        for method in NORMALIZATION_METHODS:
            assert (out_dir / f"{method}-normalized.txt").is_file()
            assert results.files[method] == out_dir / f"{method}-normalized.txt"
        assert (out_dir / "Norm-report.pdf").is_file()
        assert results.report_path == out_dir / "Norm-report.pdf"
        assert (out_dir / METRICS_FILE_NAME).is_file()

    def test_table_layout(self, raw_container, tmp_path):
        """Test feature metadata columns first, then samples in design order."""
        results = _run(raw_container, tmp_path / "norm", ["median"])
        table = pd.read_csv(results.files["median"], sep="\t")
        assert list(table.columns) == ["accession", "gene_symbol"] + raw_container.sample_names
        assert list(table["accession"]) == raw_container.feature_names
        np.testing.assert_allclose(
            table[raw_container.sample_names].to_numpy(),
            results.matrices["median"],
            equal_nan=True,
        )

    def test_metrics_table(self, raw_container, tmp_path):
        """Test pooled metrics per method and values relative to log2."""
        results = _run(raw_container, tmp_path / "norm")
        metrics = pd.read_csv(results.metrics_path, sep="\t", index_col=0)
        assert list(metrics.index) == ["log2", "median", "Quantile"]
        for col in ["PCV", "PMAD", "PEV", "PCV_rel_log2", "PMAD_rel_log2", "PEV_rel_log2"]:
            assert col in metrics.columns
        assert metrics.loc["log2", "PCV_rel_log2"] == pytest.approx(100.0)
        # loading differences inflate log2-only variability
        assert metrics.loc["median", "PEV"] < metrics.loc["log2", "PEV"]

    def test_existing_directory_reused(self, raw_container, tmp_path, caplog):
        """Test that an existing output directory triggers a warning, not an error,
        and unrelated files survive."""
        out_dir = tmp_path / "norm"
        out_dir.mkdir()
        (out_dir / "keep.txt").write_text("mine")
        with caplog.at_level(logging.WARNING, logger="normaflux"):
            _run(raw_container, out_dir, ["log2"])
        assert "already exists" in caplog.text
        assert "keep.txt" in caplog.text
        assert (out_dir / "keep.txt").read_text() == "mine"
        assert (out_dir / "log2-normalized.txt").is_file()

    def test_raw_assay_untouched(self, raw_container, tmp_path):
        """Test that normalizing does not alter the raw container."""
        before = raw_container.assay("raw").copy()
        _run(raw_container, tmp_path / "norm", ["median"])
        pd.testing.assert_frame_equal(raw_container.assay("raw"), before)


class TestPooledMetrics:
    """Tests for pooled intragroup metrics."""

    def test_constant_groups(self):
        """Test that identical replicates give zero variability."""
        mat = np.array([[1.0, 1.0, 5.0, 5.0], [2.0, 2.0, 3.0, 3.0]])
        out = pooled_metrics(mat, ["a", "a", "b", "b"])
        assert out == {"PCV": 0.0, "PMAD": 0.0, "PEV": 0.0}

    def test_pev_pools_by_dof(self):
        """Test degrees-of-freedom weighting of feature variances."""
        mat = np.array([[0.0, 2.0, np.nan], [0.0, 2.0, 4.0]])
        out = pooled_metrics(mat, ["a", "a", "a"])
        # variances 2 (1 dof) and 4 (2 dof)
        assert out["PEV"] == pytest.approx((2 * 1 + 4 * 2) / 3)

    def test_single_replicates_give_nan(self):
        """Test that groups without replicates contribute nothing."""
        out = pooled_metrics(np.array([[1.0, 2.0]]), ["a", "b"])
        assert np.isnan(out["PCV"])

    def test_relative_columns(self):
        mats = {"log2": np.array([[0.0, 2.0]]), "other": np.array([[0.0, 1.0]])}
        table = metrics_table(mats, ["a", "a"])
        assert table.loc["other", "PEV_rel_log2"] == pytest.approx(25.0)
