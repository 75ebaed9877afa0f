"""Tests for matrix assembly from the two input tables."""

import numpy as np
import pandas as pd
import pytest

from conftest import SAMPLES, make_design, make_quantification, pipeline_config_dict, write_inputs
from normaflux.utils.errors import SchemaMismatchError
from normaflux.utils.semantics import ASSAY_RAW, SAMPLE_LABEL_COLUMN
from normaflux.workflow.config import PipelineConfig
from normaflux.workflow.dataset import Dataset


def _dataset(input_dir, tmp_path) -> Dataset:
    cfg = PipelineConfig.from_dict(pipeline_config_dict(input_dir, tmp_path / "out"))
    return Dataset(cfg)


class TestMatrixAssembly:
    """Tests for Dataset / MatrixAssembler."""

    def test_shapes_and_assay(self, input_dir, tmp_path):
        """Test that the raw assay covers every feature and design sample."""
        container = _dataset(input_dir, tmp_path).get_annotated_matrix()
        assert container.assay_names == [ASSAY_RAW]
        assert container.shape == (200, 6)

    def test_columns_follow_design_order(self, tmp_path):
        """Test that sample order comes from the design, not the quantification table."""
        design = make_design().iloc[[3, 0, 4, 1, 5, 2]].reset_index(drop=True)
        input_dir = write_inputs(tmp_path / "in", design=design)
        container = _dataset(input_dir, tmp_path).get_annotated_matrix()

        expected = [s.lower() for s in design["Sample"]]
        assert container.sample_names == expected
        assert list(container.assay(ASSAY_RAW).columns) == expected

        quant = make_quantification()
        np.testing.assert_allclose(
            container.assay(ASSAY_RAW)["s4"].to_numpy(),
            quant["S4"].to_numpy(),
        )

    def test_sample_metadata(self, input_dir, tmp_path):
        """Test the derived condition.replicate label and normalized cells."""
        meta = _dataset(input_dir, tmp_path).get_annotated_matrix().sample_metadata
        assert meta.index.name == "sample"
        assert list(meta["condition"].unique()) == ["ctrl", "treat"]
        assert meta.loc["s1", SAMPLE_LABEL_COLUMN] == "ctrl.1"
        assert meta.loc["s6", SAMPLE_LABEL_COLUMN] == "treat.3"

    def test_feature_metadata(self, input_dir, tmp_path):
        """Test identifiers, gene fallback and annotation columns."""
        meta = _dataset(input_dir, tmp_path).get_annotated_matrix().feature_metadata
        assert meta.index.name == "accession"
        assert list(meta.columns) == ["gene_symbol", "description"]
        assert meta.loc["P00000", "gene_symbol"] == "GENE0"
        # blank symbol falls back to the identifier
        assert meta.loc["P00005", "gene_symbol"] == "P00005"

    def test_missing_values_kept(self, input_dir, tmp_path):
        """Test that missing raw values stay missing."""
        raw = _dataset(input_dir, tmp_path).get_annotated_matrix().assay(ASSAY_RAW)
        assert raw.loc["P00199"].isna().sum() == 2

    def test_missing_sample_column(self, tmp_path):
        """Test that a design sample absent from the quantification is reported by name."""
        quant = make_quantification().drop(columns=["S5"])
        input_dir = write_inputs(tmp_path / "in", quant=quant)
        with pytest.raises(SchemaMismatchError, match="s5"):
            _dataset(input_dir, tmp_path)

    def test_missing_design_column(self, tmp_path):
        """Test that the design needs sample, condition and replicate columns."""
        design = make_design().drop(columns=["Replicate"])
        input_dir = write_inputs(tmp_path / "in", design=design)
        with pytest.raises(SchemaMismatchError, match="replicate"):
            _dataset(input_dir, tmp_path)

    def test_duplicate_identifiers(self, tmp_path):
        """Test that repeated feature identifiers are refused."""
        quant = make_quantification()
        quant.loc[1, "Accession"] = quant.loc[0, "Accession"]
        input_dir = write_inputs(tmp_path / "in", quant=quant)
        with pytest.raises(SchemaMismatchError, match="Duplicate feature identifiers"):
            _dataset(input_dir, tmp_path)

    def test_duplicate_samples(self, tmp_path):
        """Test that repeated design samples are refused."""
        design = make_design()
        design.loc[1, "Sample"] = "S1"
        input_dir = write_inputs(tmp_path / "in", design=design)
        with pytest.raises(SchemaMismatchError, match="Duplicate sample"):
            _dataset(input_dir, tmp_path)

    def test_single_condition_warns(self, tmp_path, caplog):
        """Test that a one-condition design is accepted with a warning."""
        design = make_design()
        design["Condition"] = "Ctrl"
        input_dir = write_inputs(tmp_path / "in", design=design)
        container = _dataset(input_dir, tmp_path).get_annotated_matrix()
        assert container.condition_levels("condition") == ["ctrl"]
        assert "Fewer than 2 conditions" in caplog.text

    def test_plus_and_minus_conditions_stay_apart(self, tmp_path):
        """Test that KO+ and KO- remain two conditions."""
        design = make_design()
        design["Condition"] = ["KO+"] * 3 + ["KO-"] * 3
        input_dir = write_inputs(tmp_path / "in", design=design)
        container = _dataset(input_dir, tmp_path).get_annotated_matrix()
        assert container.condition_levels("condition") == ["ko_plus", "ko"]

    def test_merging_conditions_refused(self, tmp_path):
        """Test that condition labels differing only in case or punctuation are refused."""
        design = make_design()
        design["Condition"] = ["Ctrl A"] * 3 + ["ctrl-a"] * 3
        input_dir = write_inputs(tmp_path / "in", design=design)
        with pytest.raises(SchemaMismatchError, match="'condition'.*'Ctrl A', 'ctrl-a'"):
            _dataset(input_dir, tmp_path)

    def test_non_numeric_cells_warned(self, tmp_path, caplog):
        """Test that text in a sample column becomes missing and is counted in a warning."""
        quant = make_quantification()
        quant["S2"] = quant["S2"].astype(object)
        quant.loc[[4, 9], "S2"] = "n/q"
        input_dir = write_inputs(tmp_path / "in", quant=quant)
        raw = _dataset(input_dir, tmp_path).get_annotated_matrix().assay(ASSAY_RAW)
        assert raw["s2"].iloc[[4, 9]].isna().all()
        assert "2 non-numeric cell(s) in the quantification table" in caplog.text
        assert "s2 (2)" in caplog.text

    def test_numeric_columns_not_warned(self, input_dir, tmp_path, caplog):
        _dataset(input_dir, tmp_path)
        assert "non-numeric" not in caplog.text
