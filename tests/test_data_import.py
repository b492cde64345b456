"""
Tests for transcriptomics_toolkit.data_import module
"""

import numpy as np
import pandas as pd
import pytest

from transcriptomics_toolkit.data_import import (
    load_count_spreadsheet,
    identify_fold_change_columns,
    identify_count_columns,
    clean_sample_names,
    build_sample_metadata,
    split_count_and_fold_change_tables,
)


class TestLoadCountSpreadsheet:
    """Test spreadsheet loading"""

    def test_load_csv(self, count_csv_file):
        data = load_count_spreadsheet(count_csv_file)

        assert data.index.name == "Gene"
        assert "Gene000" in data.index
        assert "GF_1" in data.columns
        assert len(data) == 200

    def test_load_xlsx(self, count_xlsx_file):
        data = load_count_spreadsheet(count_xlsx_file, sheet_name="counts")

        assert data.index.name == "Gene"
        assert list(data.columns[:4]) == ["GF_1", "GF_2", "GF_3", "GF_4"]

    def test_load_tsv(self, tmp_path, count_spreadsheet):
        path = tmp_path / "counts.tsv"
        count_spreadsheet.to_csv(path, sep="\t", index=False)

        data = load_count_spreadsheet(str(path))
        assert data.shape[0] == 200

    def test_explicit_gene_column(self, tmp_path):
        table = pd.DataFrame({"Description": ["a", "b"], "Ensembl": ["E1", "E2"], "GF_1": [1, 2]})
        path = tmp_path / "counts.csv"
        table.to_csv(path, index=False)

        data = load_count_spreadsheet(str(path), gene_column="Ensembl")
        assert list(data.index) == ["E1", "E2"]
        assert "Description" in data.columns

    def test_first_column_fallback(self, tmp_path):
        table = pd.DataFrame({"ID": ["x", "y"], "GF_1": [1, 2]})
        path = tmp_path / "counts.csv"
        table.to_csv(path, index=False)

        data = load_count_spreadsheet(str(path))
        assert list(data.index) == ["x", "y"]

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_count_spreadsheet(str(tmp_path / "missing.xlsx"))

    def test_missing_gene_column(self, count_csv_file):
        with pytest.raises(ValueError, match="not found"):
            load_count_spreadsheet(count_csv_file, gene_column="Symbol")


class TestColumnIdentification:
    """Test count and fold-change column detection"""

    def test_identify_fold_change_columns(self, count_spreadsheet):
        data = count_spreadsheet.set_index("Gene")
        columns = identify_fold_change_columns(data)

        assert columns == ["log2FC_published", "Fold Change (edgeR)"]

    def test_fold_change_pattern_variants(self):
        data = pd.DataFrame({
            "logFC": [1.0], "FC": [2.0], "GF_vs_SPF FC": [1.5],
            "SPF_1": [10], "GF_1": [5], "Description": ["x"],
        })
        columns = identify_fold_change_columns(data)

        assert set(columns) == {"logFC", "FC", "GF_vs_SPF FC"}

    def test_identify_count_columns_default_patterns(self, count_spreadsheet):
        data = count_spreadsheet.set_index("Gene")
        mapping = identify_count_columns(data, exclude_columns=identify_fold_change_columns(data))

        assert mapping["GF_1"] == "GF"
        assert mapping["SPF_4"] == "SPF"
        assert len(mapping) == 8

    def test_fold_change_columns_excluded(self):
        data = pd.DataFrame({"GF_1": [1], "GF_vs_SPF_log2FC": [0.5]})
        mapping = identify_count_columns(data, exclude_columns=["GF_vs_SPF_log2FC"])

        assert mapping == {"GF_1": "GF"}

    def test_custom_condition_patterns(self):
        data = pd.DataFrame({"germfree.A": [1], "conv.A": [2], "other": [3]})
        mapping = identify_count_columns(data, {"GF": r"^germfree", "SPF": r"^conv"})

        assert mapping == {"germfree.A": "GF", "conv.A": "SPF"}


class TestCleanSampleNames:
    """Test sample name cleaning"""

    def test_common_prefix_and_suffix(self):
        names = ["run1_GF_1.counts", "run1_GF_2.counts", "run1_SPF_1.counts"]
        mapping = clean_sample_names(names)

        assert mapping["run1_GF_1.counts"] == "GF_1"
        assert mapping["run1_SPF_1.counts"] == "SPF_1"

    def test_explicit_prefix(self):
        mapping = clean_sample_names(["X_GF_1", "X_SPF_1"], common_prefix="X_", common_suffix="")
        assert mapping == {"X_GF_1": "GF_1", "X_SPF_1": "SPF_1"}

    def test_explicit_suffix(self):
        mapping = clean_sample_names(["a_1", "b_1"], common_prefix="", common_suffix="_1")
        assert mapping == {"a_1": "a", "b_1": "b"}

    def test_duplicates_keep_originals(self):
        names = ["GF_1_a", "GF_1-a"]
        mapping = clean_sample_names(names, common_prefix="", common_suffix="a")

        assert mapping == {"GF_1_a": "GF_1_a", "GF_1-a": "GF_1-a"}


class TestBuildSampleMetadata:
    def test_metadata_columns(self):
        metadata = build_sample_metadata({"GF_1": "GF", "GF_2": "GF", "SPF_3": "SPF"})

        assert metadata.index.name == "Sample"
        assert list(metadata["Condition"]) == ["GF", "GF", "SPF"]
        assert list(metadata["Group"]) == ["GF", "GF", "SPF"]
        assert list(metadata["Replicate"]) == [1, 2, 3]


class TestSplitCountAndFoldChangeTables:
    """Test the spreadsheet split"""

    def test_split(self, count_spreadsheet, synthetic_counts):
        data = count_spreadsheet.set_index("Gene")
        counts, fold_changes, metadata = split_count_and_fold_change_tables(data)

        pd.testing.assert_frame_equal(counts, synthetic_counts, check_names=False)
        assert list(fold_changes.columns) == ["log2FC_published", "Fold Change (edgeR)"]
        assert metadata["Condition"].value_counts().to_dict() == {"GF": 4, "SPF": 4}

    def test_linear_fold_change_converted(self, count_spreadsheet, fold_change_table):
        data = count_spreadsheet.set_index("Gene")
        _, fold_changes, _ = split_count_and_fold_change_tables(
            data, linear_fold_change_columns=["Fold Change (edgeR)"]
        )

        np.testing.assert_allclose(
            fold_changes["Fold Change (edgeR)"].values,
            fold_change_table["log2FC_published"].values,
        )

    def test_explicit_sample_conditions(self, count_spreadsheet):
        data = count_spreadsheet.set_index("Gene")
        counts, _, metadata = split_count_and_fold_change_tables(
            data, sample_conditions={"GF_1": "GF", "GF_2": "GF", "SPF_1": "SPF", "SPF_2": "SPF"}
        )

        assert list(counts.columns) == ["GF_1", "GF_2", "SPF_1", "SPF_2"]
        assert len(metadata) == 4

    def test_missing_explicit_columns(self, count_spreadsheet):
        data = count_spreadsheet.set_index("Gene")
        with pytest.raises(ValueError, match="Fold-change columns not found"):
            split_count_and_fold_change_tables(data, fold_change_columns=["nope"])
        with pytest.raises(ValueError, match="Sample columns not found"):
            split_count_and_fold_change_tables(data, sample_conditions={"GF_9": "GF"})

    def test_no_count_columns(self):
        data = pd.DataFrame({"A": [1, 2], "B": [3, 4]}, index=["g1", "g2"])
        with pytest.raises(ValueError, match="No count columns"):
            split_count_and_fold_change_tables(data)
