"""Tests for column-name and design-cell normalization."""

import polars as pl
import pytest

from normaflux.utils.errors import SchemaMismatchError
from normaflux.utils.harmonizer import SchemaNormalizer, make_unique, snake_case


class TestSnakeCase:
    """Tests for snake_case."""

    @pytest.mark.parametrize("raw,expected", [
        ("Gene Symbol", "gene_symbol"),
        ("GeneSymbol", "gene_symbol"),
        ("HTTPServer", "http_server"),
        ("Sample-1", "sample_1"),
        ("%CV", "percent_cv"),
        ("KO+", "ko_plus"),
        ("  padded  ", "padded"),
        ("Protéine", "proteine"),
        ("already_snake", "already_snake"),
        ("S1", "s1"),
    ])
    def test_examples(self, raw, expected):
        """Test representative header forms."""
        assert snake_case(raw) == expected

    def test_empty_result_is_not_empty(self):
        """Test that names made only of separators still give a usable name."""
        assert snake_case("---") == "x"
        assert snake_case("") == "x"

    @pytest.mark.parametrize("raw", [
        "Gene Symbol", "aB1C", "HTTPServer", "%CV (raw)", "x__y", "Ctrl.A", "123abcDEF", "---", "KO+",
    ])
    def test_idempotent(self, raw):
        """Test that normalizing twice equals normalizing once."""
        once = snake_case(raw)
        assert snake_case(once) == once


class TestMakeUnique:
    """Tests for make_unique."""

    def test_suffixes_repeats(self):
        """Test that later repeats get numeric suffixes."""
        assert make_unique(["a", "b", "a", "a"]) == ["a", "b", "a_2", "a_3"]

    def test_avoids_existing_suffix(self):
        """Test that a generated suffix never collides with an existing name."""
        assert make_unique(["a_2", "a", "a"]) == ["a_2", "a", "a_3"]


class TestSchemaNormalizer:
    """Tests for SchemaNormalizer."""

    def test_quantification_names_only(self):
        """Test that quantification cells are left untouched."""
        df = pl.DataFrame({"Gene Symbol": ["ABC Def"], "Sample 1": [1.0]})
        out = SchemaNormalizer().normalize_quantification(df)
        assert out.columns == ["gene_symbol", "sample_1"]
        assert out["gene_symbol"].to_list() == ["ABC Def"]

    def test_design_cells_normalized(self):
        """Test that design string cells are normalized and numbers kept."""
        df = pl.DataFrame({
            "Sample": ["Sample 1", "Sample 2"],
            "Condition": ["Ctrl A", "Treated"],
            "Replicate": [1, 2],
        })
        out = SchemaNormalizer().normalize_design(df)
        assert out.columns == ["sample", "condition", "replicate"]
        assert out["sample"].to_list() == ["sample_1", "sample_2"]
        assert out["condition"].to_list() == ["ctrl_a", "treated"]
        assert out["replicate"].to_list() == [1, 2]

    def test_colliding_names_made_unique(self):
        """Test that headers collapsing to the same name stay distinct."""
        df = pl.DataFrame({"Gene Symbol": [1], "gene_symbol": [2]})
        out = SchemaNormalizer().normalize_columns(df)
        assert out.columns == ["gene_symbol", "gene_symbol_2"]

    def test_design_and_quant_names_agree(self):
        """Test that a design sample cell matches the normalized quantification header."""
        quant = SchemaNormalizer().normalize_quantification(pl.DataFrame({"Intensity S1 (a)": [1.0]}))
        design = SchemaNormalizer().normalize_design(pl.DataFrame({"sample": ["Intensity S1 (a)"]}))
        assert design["sample"][0] in quant.columns

    def test_colliding_labels_refused(self):
        """Test that two condition labels merging into one are reported by name."""
        df = pl.DataFrame({"Sample": ["a", "b", "c", "d"], "Condition": ["Ctrl A", "Ctrl A", "ctrl_a", "Treat"]})
        with pytest.raises(SchemaMismatchError, match="'Ctrl A', 'ctrl_a' -> 'ctrl_a'"):
            SchemaNormalizer().normalize_design(df, checked_columns=["condition"])

    def test_unchecked_columns_may_collide(self):
        df = pl.DataFrame({"Sample": ["a", "b"], "Note": ["x y", "x_y"]})
        out = SchemaNormalizer().normalize_design(df, checked_columns=["sample"])
        assert out["note"].to_list() == ["x_y", "x_y"]

    def test_label_collisions(self):
        series = pl.Series(["KO", "ko", "KO+", None, "WT"])
        assert SchemaNormalizer().label_collisions(series) == {"ko": ["KO", "ko"]}
