"""
Tests for transcriptomics_toolkit.differential_expression module

The DESeq2 fit on the synthetic counts is shared through the session-scoped
de_result fixture in conftest.py.
"""

import numpy as np
import pandas as pd
import pytest

from transcriptomics_toolkit.differential_expression import (
    DESeqConfig,
    DifferentialExpressionResult,
    prepare_deseq_inputs,
    annotate_significance,
    get_significant_genes,
    display_analysis_summary,
    compare_fold_change_sources,
)
from transcriptomics_toolkit.validation import SampleMatchingError


class TestDESeqConfig:
    """Test DESeqConfig class"""

    def test_defaults(self):
        config = DESeqConfig()

        assert config.treated_level == "GF"
        assert config.reference_level == "SPF"
        assert config.design_formula == "~Condition"
        assert config.contrast == ["Condition", "GF", "SPF"]
        assert config.validate()

    def test_custom_design(self):
        config = DESeqConfig()
        config.design = "~Batch + Condition"
        assert config.design_formula == "~Batch + Condition"

    def test_invalid_alpha(self):
        config = DESeqConfig()
        config.alpha = 1.5
        with pytest.raises(ValueError, match="alpha"):
            config.validate()

    def test_identical_levels(self):
        config = DESeqConfig()
        config.reference_level = "GF"
        with pytest.raises(ValueError, match="must differ"):
            config.validate()

    def test_missing_level(self):
        config = DESeqConfig()
        config.treated_level = None
        with pytest.raises(ValueError):
            config.validate()

    def test_negative_threshold(self):
        config = DESeqConfig()
        config.lfc_threshold = -1
        with pytest.raises(ValueError, match="lfc_threshold"):
            config.validate()


class TestPrepareDeseqInputs:
    def test_orientation_and_levels(self, synthetic_counts, sample_metadata, deseq_config):
        counts_matrix, design_metadata = prepare_deseq_inputs(
            synthetic_counts, sample_metadata, deseq_config
        )

        assert counts_matrix.shape == (8, 200)
        assert list(counts_matrix.index) == list(design_metadata.index)
        assert list(design_metadata["Condition"].cat.categories) == ["SPF", "GF"]
        assert list(design_metadata.columns) == ["Condition"]

    def test_design_covariates_match_whole_terms(self, synthetic_counts, sample_metadata, deseq_config):
        metadata = sample_metadata.assign(
            Batch=["b1", "b2"] * (len(sample_metadata) // 2), C=1.0, on="x",
        )
        deseq_config.design = "~Batch + Condition"

        _, design_metadata = prepare_deseq_inputs(synthetic_counts, metadata, deseq_config)

        assert list(design_metadata.columns) == ["Condition", "Batch"]

    def test_excludes_other_conditions(self, synthetic_counts, sample_metadata, deseq_config):
        counts = synthetic_counts.copy()
        counts["ABX_1"] = counts["GF_1"]
        metadata = sample_metadata.copy()
        metadata.loc["ABX_1"] = ["ABX", "ABX", 1]

        counts_matrix, _ = prepare_deseq_inputs(counts, metadata, deseq_config)
        assert "ABX_1" not in counts_matrix.index

    def test_too_few_replicates(self, synthetic_counts, sample_metadata, deseq_config):
        counts = synthetic_counts[["GF_1", "SPF_1", "SPF_2"]]
        with pytest.raises(SampleMatchingError, match="'GF' has 1 samples"):
            prepare_deseq_inputs(counts, sample_metadata, deseq_config)

    def test_missing_condition_column(self, synthetic_counts, sample_metadata, deseq_config):
        deseq_config.condition_column = "Treatment"
        with pytest.raises(SampleMatchingError, match="not found"):
            prepare_deseq_inputs(synthetic_counts, sample_metadata, deseq_config)


class TestAnnotateSignificance:
    def test_regulation_calls(self):
        results = pd.DataFrame({
            "log2FoldChange": [2.0, -2.0, 0.5, 3.0, 2.0],
            "padj": [0.01, 0.01, 0.01, 0.5, np.nan],
        }, index=["up", "down", "small", "ns", "filtered"])

        annotated = annotate_significance(results, alpha=0.05, lfc_threshold=1.0)

        assert annotated["Regulation"].to_dict() == {
            "up": "Up", "down": "Down", "small": "Unchanged", "ns": "Unchanged", "filtered": "Unchanged",
        }
        assert annotated["Significant"].tolist() == [True, True, True, False, False]
        assert "Significant" not in results.columns

    def test_get_significant_genes(self):
        results = pd.DataFrame({
            "log2FoldChange": [2.0, -3.0, 0.5],
            "padj": [0.02, 0.001, 0.01],
        }, index=["a", "b", "c"])

        assert list(get_significant_genes(results).index) == ["b", "a"]
        assert list(get_significant_genes(results, direction="up").index) == ["a"]
        assert list(get_significant_genes(results, direction="down").index) == ["b"]
        with pytest.raises(ValueError):
            get_significant_genes(results, direction="sideways")


class TestRunDifferentialExpression:
    """Checks against the planted GF/SPF differences"""

    def test_result_container(self, de_result):
        assert isinstance(de_result, DifferentialExpressionResult)
        assert de_result.contrast == ["Condition", "GF", "SPF"]
        assert de_result.coefficient is not None
        for column in ["baseMean", "log2FoldChange", "lfcSE", "pvalue", "padj", "Significant", "Regulation"]:
            assert column in de_result.results.columns
            assert column in de_result.shrunk_results.columns
        assert de_result.results.index.name == "Gene"

    def test_planted_genes_called(self, de_result, planted_genes):
        regulation = de_result.results["Regulation"]

        assert (regulation.loc[planted_genes["up"]] == "Up").all()
        assert (regulation.loc[planted_genes["down"]] == "Down").all()

    def test_fold_change_direction(self, de_result, planted_genes):
        lfc = de_result.results["log2FoldChange"]

        assert lfc.loc[planted_genes["up"]].median() == pytest.approx(3.0, abs=0.75)
        assert lfc.loc[planted_genes["down"]].median() == pytest.approx(-3.0, abs=0.75)

    def test_few_false_positives(self, de_result, planted_genes):
        planted = set(planted_genes["up"]) | set(planted_genes["down"])
        null_hits = de_result.results.loc[
            ~de_result.results.index.isin(planted), "Regulation"
        ] != "Unchanged"
        assert null_hits.sum() <= 3

    def test_shrinkage_pulls_null_genes_to_zero(self, de_result, planted_genes):
        planted = set(planted_genes["up"]) | set(planted_genes["down"])
        null = [g for g in de_result.results.index if g not in planted]

        unshrunk = de_result.results.loc[null, "log2FoldChange"].abs()
        shrunk = de_result.shrunk_results.loc[null, "log2FoldChange"].abs()
        assert shrunk.median() <= unshrunk.median()

    def test_log2_fold_changes_property(self, de_result):
        pd.testing.assert_series_equal(
            de_result.log2_fold_changes, de_result.shrunk_results["log2FoldChange"]
        )

    def test_count_tables(self, de_result):
        assert list(de_result.normalized_counts.columns) == list(de_result.vst_counts.columns)
        assert de_result.normalized_counts.shape == de_result.vst_counts.shape
        assert len(de_result.results) == de_result.normalized_counts.shape[0]


class TestDisplayAnalysisSummary:
    def test_summary_counts(self, de_result, capsys):
        summary = display_analysis_summary(de_result, DESeqConfig(), label_top_n=5)

        assert summary["total_genes"] == len(de_result.shrunk_results)
        assert summary["up"] >= 10
        assert summary["down"] >= 10
        assert summary["significant"] >= summary["up"] + summary["down"]
        assert summary["median_size_factor"] > 0
        assert "TOP 5 GENES" in capsys.readouterr().out


class TestCompareFoldChangeSources:
    def test_correlation_summary(self, true_log2_fold_changes, fold_change_table):
        comparison = compare_fold_change_sources(
            true_log2_fold_changes, fold_change_table[["log2FC_published"]]
        )

        row = comparison.iloc[0]
        assert row["Source"] == "log2FC_published"
        assert row["N_Genes"] == 200
        assert row["Pearson_r"] > 0.9
        assert 0 <= row["Sign_Agreement"] <= 1
        assert row["Adj_P_Value"] >= row["P_Value"]

    def test_too_few_genes(self):
        lfc = pd.Series([1.0, 2.0], index=["a", "b"])
        other = pd.DataFrame({"fc": [1.0, np.nan]}, index=["a", "b"])

        comparison = compare_fold_change_sources(lfc, other)
        assert np.isnan(comparison.loc[0, "Pearson_r"])
        assert np.isnan(comparison.loc[0, "Adj_P_Value"])
