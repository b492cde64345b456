"""
Differential Expression Module for RNA-seq Count Data

This module provides a configuration-driven wrapper around pyDESeq2:
negative-binomial GLM fitting with dispersion shrinkage, Wald tests with
Benjamini-Hochberg adjustment, and log fold change shrinkage.
"""

import re

import pandas as pd
import numpy as np
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from scipy.stats import pearsonr, spearmanr
from statsmodels.stats.multitest import multipletests

from pydeseq2.dds import DeseqDataSet
from pydeseq2.default_inference import DefaultInference
from pydeseq2.ds import DeseqStats

from .normalization import normalized_counts_from_dds, variance_stabilized_counts
from .validation import SampleMatchingError, validate_count_table


class DESeqConfig:
    """Configuration class for the DESeq2 comparison

    The default contrast is germ-free (GF) against specific-pathogen-free
    (SPF), so positive log2 fold changes mean higher expression in GF mice.
    """

    def __init__(self):
        # Experimental design
        self.condition_column = "Condition"
        self.treated_level = "GF"
        self.reference_level = "SPF"
        self.design = None  # None -> "~<condition_column>"

        # Significance thresholds
        self.alpha = 0.05
        self.lfc_threshold = 1.0  # log2 scale, used for Up/Down calls

        # Model options
        self.shrink_lfc = True
        self.refit_cooks = True
        self.cooks_filter = True
        self.independent_filter = True
        self.min_replicates = 2

        # Runtime
        self.n_cpus = 1
        self.quiet = True

    @property
    def design_formula(self):
        return self.design or f"~{self.condition_column}"

    @property
    def contrast(self):
        return [self.condition_column, self.treated_level, self.reference_level]

    def validate(self):
        """Validate that the comparison is fully specified"""
        if not self.condition_column:
            raise ValueError("condition_column must be set")
        if not self.treated_level or not self.reference_level:
            raise ValueError("treated_level and reference_level must both be set")
        if str(self.treated_level) == str(self.reference_level):
            raise ValueError("treated_level and reference_level must differ")
        if not 0 < self.alpha < 1:
            raise ValueError(f"alpha must be between 0 and 1, got {self.alpha}")
        if self.lfc_threshold < 0:
            raise ValueError(f"lfc_threshold must be non-negative, got {self.lfc_threshold}")
        if self.min_replicates < 1:
            raise ValueError("min_replicates must be at least 1")
        return True


@dataclass
class DifferentialExpressionResult:
    """Everything produced by one DESeq2 comparison."""

    results: pd.DataFrame
    shrunk_results: pd.DataFrame
    dds: Any
    normalized_counts: pd.DataFrame
    vst_counts: pd.DataFrame
    contrast: List[str] = field(default_factory=list)
    coefficient: Optional[str] = None

    @property
    def log2_fold_changes(self) -> pd.Series:
        """Shrunk LFC when available, else the MLE estimate."""
        return self.shrunk_results["log2FoldChange"]


def prepare_deseq_inputs(counts, metadata, config):
    """
    Align counts and metadata for pyDESeq2.

    Returns:
    --------
    counts_matrix : pd.DataFrame
        Samples x genes integer counts
    design_metadata : pd.DataFrame
        Metadata restricted to the model samples, condition as a categorical
        with the reference level first
    """

    print(f"Preparing model inputs for {counts.shape[1]} samples...")

    condition = config.condition_column
    if condition not in metadata.columns:
        raise SampleMatchingError(f"Condition column '{condition}' not found in metadata")

    levels = [str(config.reference_level), str(config.treated_level)]
    conditions = metadata[condition].astype(str)

    samples = [s for s in counts.columns if s in metadata.index and conditions[s] in levels]
    dropped = [s for s in counts.columns if s not in samples]
    if dropped:
        print(f"  Excluding {len(dropped)} samples outside {levels}: {dropped}")

    for level in levels:
        n = sum(conditions[s] == level for s in samples)
        if n < config.min_replicates:
            raise SampleMatchingError(
                f"Condition level '{level}' has {n} samples, need at least {config.min_replicates}"
            )

    counts_matrix = validate_count_table(counts[samples]).T

    design_metadata = pd.DataFrame(index=pd.Index(samples, name="Sample"))
    design_metadata[condition] = pd.Categorical(
        conditions.loc[samples], categories=levels
    )
    # Extra design covariates, when the formula names them
    for col in metadata.columns:
        if col != condition and re.search(rf'\b{re.escape(col)}\b', config.design_formula):
            design_metadata[col] = metadata.loc[samples, col]

    print(f"  Groups: {design_metadata[condition].value_counts().to_dict()}")
    print(f"  Design: {config.design_formula}")

    return counts_matrix, design_metadata


def _find_coefficient(dds, config):
    """Name of the LFC column holding treated vs reference."""
    candidates = [
        c for c in dds.varm["LFC"].columns
        if c.startswith(config.condition_column) and str(config.treated_level) in c
    ]
    if not candidates:
        raise ValueError(
            f"No model coefficient found for {config.condition_column}={config.treated_level}; "
            f"available: {list(dds.varm['LFC'].columns)}"
        )
    return candidates[0]


def annotate_significance(results_df, alpha=0.05, lfc_threshold=1.0):
    """
    Add Significant and Regulation columns.

    Genes whose padj is NaN (independent filtering or Cook's outliers) are
    never significant.
    """

    results_df = results_df.copy()
    padj = results_df["padj"]
    lfc = results_df["log2FoldChange"]

    significant = padj.notna() & (padj < alpha)
    results_df["Significant"] = significant

    results_df["Regulation"] = "Unchanged"
    results_df.loc[significant & (lfc > lfc_threshold), "Regulation"] = "Up"
    results_df.loc[significant & (lfc < -lfc_threshold), "Regulation"] = "Down"

    return results_df


def get_significant_genes(results_df, alpha=0.05, lfc_threshold=1.0, direction=None):
    """
    Significant genes sorted by adjusted p-value.

    direction : None, "up" or "down"
    """

    padj = results_df["padj"]
    lfc = results_df["log2FoldChange"]
    mask = padj.notna() & (padj < alpha) & (lfc.abs() > lfc_threshold)

    if direction == "up":
        mask &= lfc > 0
    elif direction == "down":
        mask &= lfc < 0
    elif direction is not None:
        raise ValueError(f"direction must be None, 'up' or 'down', got {direction!r}")

    return results_df.loc[mask].sort_values("padj")


def run_differential_expression(counts, metadata, config=None):
    """
    Fit the DESeq2 model and test treated vs reference.

    Parameters:
    -----------
    counts : pd.DataFrame
        Genes x samples raw counts
    metadata : pd.DataFrame
        Sample metadata indexed by sample name
    config : DESeqConfig, optional
        Comparison settings (GF vs SPF by default)

    Returns:
    --------
    DifferentialExpressionResult
    """

    if config is None:
        config = DESeqConfig()

    print("=" * 60)
    print("DIFFERENTIAL EXPRESSION ANALYSIS (DESeq2)")
    print("=" * 60)

    try:
        config.validate()
    except ValueError as e:
        raise ValueError(f"Configuration error: {e}") from e

    counts_matrix, design_metadata = prepare_deseq_inputs(counts, metadata, config)

    inference = DefaultInference(n_cpus=config.n_cpus)

    print("Step 1: Fitting size factors, dispersions and log fold changes...")
    dds = DeseqDataSet(
        counts=counts_matrix,
        metadata=design_metadata,
        design=config.design_formula,
        refit_cooks=config.refit_cooks,
        inference=inference,
        quiet=config.quiet,
    )
    dds.deseq2()
    print(f"  ✓ Model fitted for {dds.n_vars} genes")

    print(f"Step 2: Wald test for contrast {config.contrast}...")
    ds = DeseqStats(
        dds,
        contrast=config.contrast,
        alpha=config.alpha,
        cooks_filter=config.cooks_filter,
        independent_filter=config.independent_filter,
        inference=inference,
        quiet=config.quiet,
    )
    ds.summary()
    results = annotate_significance(ds.results_df, config.alpha, config.lfc_threshold)
    results.index.name = "Gene"

    coefficient = None
    if config.shrink_lfc:
        coefficient = _find_coefficient(dds, config)
        print(f"Step 3: Shrinking log fold changes (apeGLM prior, coefficient '{coefficient}')...")
        ds.lfc_shrink(coeff=coefficient)
        shrunk_results = annotate_significance(ds.results_df, config.alpha, config.lfc_threshold)
    else:
        print("Step 3: Log fold change shrinkage disabled")
        shrunk_results = results.copy()
    shrunk_results.index.name = "Gene"

    print("Step 4: Normalized and variance-stabilized counts...")
    normalized = normalized_counts_from_dds(dds)
    vst = variance_stabilized_counts(dds)

    print(f"✓ Differential expression complete: {int(results['Significant'].sum())} genes with padj < {config.alpha}")

    return DifferentialExpressionResult(
        results=results,
        shrunk_results=shrunk_results,
        dds=dds,
        normalized_counts=normalized,
        vst_counts=vst,
        contrast=list(config.contrast),
        coefficient=coefficient,
    )


def display_analysis_summary(de_result, config, label_top_n=10) -> Dict[str, Any]:
    """
    Display summary of the DESeq2 comparison

    Returns:
    --------
    dict
        Summary statistics for downstream use
    """

    results = de_result.shrunk_results
    if results is None or len(results) == 0:
        print("⚠️ No differential expression results available")
        return {}

    print("=" * 60)
    print("DIFFERENTIAL EXPRESSION SUMMARY")
    print("=" * 60)

    total_genes = len(results)
    tested = int(results["padj"].notna().sum())
    outliers = int(results["pvalue"].isna().sum())
    significant = int(results["Significant"].sum())
    up = int((results["Regulation"] == "Up").sum())
    down = int((results["Regulation"] == "Down").sum())

    treated, reference = de_result.contrast[1], de_result.contrast[2]
    print(f"Comparison: {treated} vs {reference}")
    print(f"  Genes in model: {total_genes:,}")
    print(f"  Genes with adjusted p-value: {tested:,}")
    print(f"  Outliers / all-zero (p-value NA): {outliers:,}")
    print(f"  Significant (padj < {config.alpha}): {significant:,}")
    print(f"  Up in {treated} (LFC > {config.lfc_threshold}): {up:,}")
    print(f"  Down in {treated} (LFC < -{config.lfc_threshold}): {down:,}")

    top = results[results["padj"].notna()].nsmallest(label_top_n, "padj")
    if len(top) > 0:
        print(f"\n=== TOP {label_top_n} GENES ===")
        display_df = pd.DataFrame({
            "Gene": top.index,
            "baseMean": top["baseMean"].map(lambda x: f"{x:.1f}"),
            "log2FoldChange": top["log2FoldChange"].map(lambda x: f"{x:.3f}"),
            "padj": top["padj"].map(lambda x: f"{x:.2e}" if x < 0.01 else f"{x:.4f}"),
        })
        print(display_df.to_string(index=False))

    return {
        "total_genes": total_genes,
        "tested_genes": tested,
        "outliers": outliers,
        "significant": significant,
        "up": up,
        "down": down,
        "median_size_factor": float(np.median(de_result.dds.obs["size_factors"])),
    }


def compare_fold_change_sources(log2_fold_changes, fold_changes, correction_method="fdr_bh"):
    """
    Agreement between DESeq2 log2 fold changes and precomputed fold changes.

    Parameters:
    -----------
    log2_fold_changes : pd.Series
        DESeq2 log2 fold changes indexed by gene
    fold_changes : pd.DataFrame
        Precomputed log2 fold-change columns indexed by gene
    correction_method : str
        statsmodels multipletests method for the correlation p-values

    Returns:
    --------
    pd.DataFrame
        One row per fold-change column: Source, N_Genes, Pearson_r,
        Spearman_rho, P_Value, Adj_P_Value, Sign_Agreement
    """

    rows = []
    for column in fold_changes.columns:
        paired = pd.concat(
            [log2_fold_changes.rename("deseq2"), fold_changes[column].rename("other")],
            axis=1, join="inner",
        ).dropna()
        paired = paired[np.isfinite(paired).all(axis=1)]

        if len(paired) < 3:
            rows.append({"Source": column, "N_Genes": len(paired), "Pearson_r": np.nan,
                         "Spearman_rho": np.nan, "P_Value": np.nan, "Sign_Agreement": np.nan})
            continue

        r, p = pearsonr(paired["deseq2"], paired["other"])
        rho, _ = spearmanr(paired["deseq2"], paired["other"])
        agreement = float((np.sign(paired["deseq2"]) == np.sign(paired["other"])).mean())
        rows.append({"Source": column, "N_Genes": len(paired), "Pearson_r": r,
                     "Spearman_rho": rho, "P_Value": p, "Sign_Agreement": agreement})

    comparison = pd.DataFrame(
        rows, columns=["Source", "N_Genes", "Pearson_r", "Spearman_rho", "P_Value", "Sign_Agreement"]
    )
    comparison["Adj_P_Value"] = np.nan

    tested = comparison["P_Value"].notna()
    if tested.any():
        _, adj_pvalues, _, _ = multipletests(comparison.loc[tested, "P_Value"], method=correction_method)
        comparison.loc[tested, "Adj_P_Value"] = adj_pvalues

    for _, row in comparison.iterrows():
        print(f"  {row['Source']}: r = {row['Pearson_r']:.3f}, n = {row['N_Genes']}")

    return comparison
