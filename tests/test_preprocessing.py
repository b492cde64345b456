"""
Tests for transcriptomics_toolkit.preprocessing module
"""

import numpy as np
import pandas as pd

from transcriptomics_toolkit.preprocessing import (
    CONDITION_COLORS,
    filter_low_count_genes,
    assess_library_sizes,
    calculate_group_colors,
    get_sample_colors,
    order_samples_by_condition,
    select_top_variable_genes,
    zscore_rows,
)


class TestFilterLowCountGenes:
    """Test low-count filtering"""

    def test_removes_low_count_genes(self, synthetic_counts, planted_genes):
        filtered, fold_changes = filter_low_count_genes(synthetic_counts, min_total_count=10)

        assert fold_changes is None
        assert (filtered.sum(axis=1) >= 10).all()
        assert not set(planted_genes["low"]) & set(filtered.index)
        assert set(planted_genes["up"]) <= set(filtered.index)

    def test_preserves_gene_order(self, synthetic_counts):
        filtered, _ = filter_low_count_genes(synthetic_counts, min_total_count=10)

        positions = [synthetic_counts.index.get_loc(g) for g in filtered.index]
        assert positions == sorted(positions)

    def test_min_samples_threshold(self):
        counts = pd.DataFrame(
            {"GF_1": [50, 50, 0], "GF_2": [50, 0, 0], "SPF_1": [50, 0, 30]},
            index=["everywhere", "one_sample", "other_sample"],
        )
        filtered, _ = filter_low_count_genes(
            counts, min_total_count=10, min_samples=2, min_count_per_sample=10
        )

        assert list(filtered.index) == ["everywhere"]

    def test_fold_changes_follow_counts(self, synthetic_counts, fold_change_table):
        filtered, fold_changes = filter_low_count_genes(
            synthetic_counts, fold_changes=fold_change_table
        )

        assert list(fold_changes.index) == list(filtered.index)
        assert list(fold_changes.columns) == list(fold_change_table.columns)


class TestAssessLibrarySizes:
    def test_summary(self, synthetic_counts, sample_metadata):
        summary = assess_library_sizes(synthetic_counts, sample_metadata)

        assert list(summary.index) == list(synthetic_counts.columns)
        assert summary.loc["GF_1", "Library_Size"] == synthetic_counts["GF_1"].sum()
        assert summary.loc["SPF_2", "Condition"] == "SPF"
        assert ((summary["Detection_Rate"] > 0) & (summary["Detection_Rate"] <= 1)).all()


class TestGroupColors:
    def test_fixed_colors(self, sample_metadata):
        colors = calculate_group_colors(sample_metadata)
        assert colors == {"GF": CONDITION_COLORS["GF"], "SPF": CONDITION_COLORS["SPF"]}

    def test_override_and_palette(self):
        metadata = pd.DataFrame({"Condition": ["GF", "SPF", "Abx"]}, index=["a", "b", "c"])
        colors = calculate_group_colors(metadata, group_colors={"SPF": "#000000"})

        assert colors["SPF"] == "#000000"
        assert colors["GF"] == CONDITION_COLORS["GF"]
        assert colors["Abx"].startswith("#") and len(colors["Abx"]) == 7

    def test_sample_colors(self, sample_metadata):
        colors = calculate_group_colors(sample_metadata)
        sample_colors = get_sample_colors(["GF_1", "SPF_1", "unknown"], sample_metadata, colors)

        assert sample_colors == [colors["GF"], colors["SPF"], "#7f7f7f"]


class TestOrderingAndScaling:
    def test_order_by_condition(self, sample_metadata):
        order = order_samples_by_condition(["SPF_2", "GF_3", "SPF_1", "GF_1"], sample_metadata,
                                           condition_order=["SPF", "GF"])
        assert order == ["SPF_1", "SPF_2", "GF_1", "GF_3"]

    def test_top_variable_genes(self):
        data = pd.DataFrame({"a": [1, 1, 10], "b": [1, 5, -10]}, index=["flat", "mid", "wide"])
        assert list(select_top_variable_genes(data, 2).index) == ["wide", "mid"]

    def test_zscore_rows(self):
        data = pd.DataFrame({"a": [1.0, 3.0], "b": [3.0, 3.0]}, index=["var", "flat"])
        scaled = zscore_rows(data)

        np.testing.assert_allclose(scaled.loc["var"].values, [-1 / np.sqrt(2), 1 / np.sqrt(2)])
        assert (scaled.loc["flat"] == 0).all()
