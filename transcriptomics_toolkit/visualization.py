"""
Visualization Module for Transcriptomics Analysis Toolkit

Diagnostic and result figures for the DESeq2 comparison. Every function
draws one figure, saves it when output_file is given and returns the Figure.
"""

import pandas as pd
import numpy as np
import matplotlib.pyplot as plt
import seaborn as sns
from matplotlib.figure import Figure
from matplotlib.patches import Patch
from scipy.cluster.hierarchy import linkage
from scipy.spatial.distance import pdist, squareform
from scipy.stats import pearsonr
from sklearn.decomposition import PCA
from typing import Dict, Optional, Tuple

from .preprocessing import (
    calculate_group_colors,
    get_sample_colors,
    order_samples_by_condition,
    select_top_variable_genes,
    zscore_rows,
)


def _finish(fig: Figure, output_file: Optional[str], dpi: int = 150) -> Figure:
    """Save (when a path is given) and close the figure."""
    if output_file:
        fig.savefig(output_file, dpi=dpi, bbox_inches="tight")
        print(f"  ✓ Saved {output_file}")
    plt.close(fig)
    return fig


def _condition_legend(ax, group_colors: Dict[str, str], **kwargs):
    handles = [Patch(facecolor=c, edgecolor="black", label=g) for g, c in group_colors.items()]
    ax.legend(handles=handles, **kwargs)


def _style_axes(ax):
    ax.spines["top"].set_visible(False)
    ax.spines["right"].set_visible(False)
    ax.grid(True, alpha=0.3)


def plot_count_distribution(
    normalized_counts: pd.DataFrame,
    metadata: pd.DataFrame,
    condition_column: str = "Condition",
    group_colors: Optional[Dict[str, str]] = None,
    title: str = "Normalized Count Distribution",
    figsize: Tuple[int, int] = (12, 6),
    output_file: Optional[str] = None,
) -> Figure:
    """
    Box plot of log2(normalized counts + 1) per sample, coloured by condition.

    Parameters:
    -----------
    normalized_counts : pd.DataFrame
        Genes x samples size-factor normalized counts
    metadata : pd.DataFrame
        Sample metadata indexed by sample name
    """

    if group_colors is None:
        group_colors = calculate_group_colors(metadata, condition_column)

    samples = order_samples_by_condition(list(normalized_counts.columns), metadata, condition_column)
    log_counts = np.log2(normalized_counts[samples] + 1)
    colors = get_sample_colors(samples, metadata, group_colors, condition_column)

    fig, ax = plt.subplots(figsize=figsize)

    bp = ax.boxplot(
        [log_counts[s].values for s in samples],
        patch_artist=True,
        showfliers=False,
    )
    for patch, color in zip(bp["boxes"], colors):
        patch.set_facecolor(color)
        patch.set_alpha(0.7)

    ax.set_xticks(range(1, len(samples) + 1))
    ax.set_xticklabels(samples, rotation=45, ha="right")
    ax.set_ylabel("log2(normalized count + 1)")
    ax.set_title(title, fontsize=14, fontweight="bold")
    _condition_legend(ax, group_colors, loc="upper right")
    _style_axes(ax)

    plt.tight_layout()
    return _finish(fig, output_file)


def plot_library_sizes(
    counts: pd.DataFrame,
    metadata: pd.DataFrame,
    condition_column: str = "Condition",
    group_colors: Optional[Dict[str, str]] = None,
    figsize: Tuple[int, int] = (10, 5),
    output_file: Optional[str] = None,
) -> Figure:
    """Bar chart of total reads per sample (millions)."""

    if group_colors is None:
        group_colors = calculate_group_colors(metadata, condition_column)

    samples = order_samples_by_condition(list(counts.columns), metadata, condition_column)
    library_sizes = counts[samples].sum(axis=0) / 1e6
    colors = get_sample_colors(samples, metadata, group_colors, condition_column)

    fig, ax = plt.subplots(figsize=figsize)
    ax.bar(range(len(samples)), library_sizes.values, color=colors, edgecolor="black", alpha=0.8)
    ax.axhline(library_sizes.median(), color="black", linestyle="--", alpha=0.5, label="Median")

    ax.set_xticks(range(len(samples)))
    ax.set_xticklabels(samples, rotation=45, ha="right")
    ax.set_ylabel("Library size (million reads)")
    ax.set_title("Library Sizes", fontsize=14, fontweight="bold")
    _condition_legend(ax, group_colors, loc="upper right")
    _style_axes(ax)

    plt.tight_layout()
    return _finish(fig, output_file)


def plot_sample_distance_heatmap(
    vst_counts: pd.DataFrame,
    metadata: pd.DataFrame,
    condition_column: str = "Condition",
    group_colors: Optional[Dict[str, str]] = None,
    figsize: Tuple[int, int] = (9, 8),
    output_file: Optional[str] = None,
) -> Figure:
    """
    Clustered heatmap of Euclidean distances between samples on VST values.
    """

    if group_colors is None:
        group_colors = calculate_group_colors(metadata, condition_column)

    samples = list(vst_counts.columns)
    condensed = pdist(vst_counts.T.values, metric="euclidean")
    distances = pd.DataFrame(squareform(condensed), index=samples, columns=samples)
    sample_linkage = linkage(condensed, method="average")

    colors = get_sample_colors(samples, metadata, group_colors, condition_column)
    color_series = pd.Series(colors, index=samples, name=condition_column)

    grid = sns.clustermap(
        distances,
        row_linkage=sample_linkage,
        col_linkage=sample_linkage,
        cmap="Blues_r",
        row_colors=color_series,
        col_colors=color_series,
        figsize=figsize,
        cbar_kws={"label": "Euclidean distance"},
    )
    grid.ax_heatmap.set_xlabel("")
    grid.ax_heatmap.set_ylabel("")
    grid.figure.suptitle("Sample-to-Sample Distances (VST)", fontsize=14, fontweight="bold", y=1.02)
    _condition_legend(grid.ax_col_dendrogram, group_colors, loc="center", ncol=len(group_colors))

    return _finish(grid.figure, output_file)


def plot_top_genes_heatmap(
    vst_counts: pd.DataFrame,
    metadata: pd.DataFrame,
    n_genes: int = 50,
    condition_column: str = "Condition",
    group_colors: Optional[Dict[str, str]] = None,
    figsize: Tuple[int, int] = (10, 12),
    output_file: Optional[str] = None,
) -> Figure:
    """
    Clustered heatmap of the most variable genes (VST, row z-scores).
    """

    if group_colors is None:
        group_colors = calculate_group_colors(metadata, condition_column)

    top = select_top_variable_genes(vst_counts, n_genes)
    scaled = zscore_rows(top)

    samples = list(scaled.columns)
    colors = pd.Series(
        get_sample_colors(samples, metadata, group_colors, condition_column),
        index=samples, name=condition_column,
    )

    grid = sns.clustermap(
        scaled,
        cmap="RdBu_r",
        center=0,
        col_colors=colors,
        row_cluster=len(scaled) > 1,
        col_cluster=len(samples) > 1,
        yticklabels=len(scaled) <= 100,
        figsize=figsize,
        cbar_kws={"label": "Row z-score"},
    )
    grid.ax_heatmap.set_ylabel("")
    grid.figure.suptitle(f"Top {len(scaled)} Variable Genes (VST)", fontsize=14, fontweight="bold", y=1.02)
    _condition_legend(grid.ax_col_dendrogram, group_colors, loc="center", ncol=len(group_colors))

    return _finish(grid.figure, output_file)


def plot_pca(
    vst_counts: pd.DataFrame,
    metadata: pd.DataFrame,
    n_genes: int = 500,
    condition_column: str = "Condition",
    group_colors: Optional[Dict[str, str]] = None,
    label_samples: bool = True,
    figsize: Tuple[int, int] = (10, 8),
    output_file: Optional[str] = None,
) -> Figure:
    """
    PCA of samples on the most variable VST genes.

    Genes are centred but not scaled, so high-variance genes dominate as in
    DESeq2's plotPCA.
    """

    if group_colors is None:
        group_colors = calculate_group_colors(metadata, condition_column)

    top = select_top_variable_genes(vst_counts, n_genes)
    samples = list(top.columns)

    n_components = min(2, len(samples), len(top))
    pca = PCA(n_components=n_components)
    pca_result = pca.fit_transform(top.T.values)
    if n_components < 2:
        pca_result = np.column_stack([pca_result, np.zeros(len(samples))])
    variance = list(pca.explained_variance_ratio_) + [0.0] * (2 - n_components)

    conditions = metadata[condition_column].reindex(samples).fillna("Unknown").astype(str)

    fig, ax = plt.subplots(figsize=figsize)

    for group in sorted(conditions.unique()):
        idx = [i for i, s in enumerate(samples) if conditions[s] == group]
        ax.scatter(
            pca_result[idx, 0],
            pca_result[idx, 1],
            c=group_colors.get(group, "#7f7f7f"),
            label=group,
            alpha=0.8,
            s=100,
            edgecolors="black",
            linewidth=0.5,
        )

    if label_samples:
        for i, sample in enumerate(samples):
            ax.annotate(sample, (pca_result[i, 0], pca_result[i, 1]),
                        xytext=(5, 5), textcoords="offset points", fontsize=8, alpha=0.7)

    ax.set_xlabel(f"PC1 ({variance[0]:.1%} variance)")
    ax.set_ylabel(f"PC2 ({variance[1]:.1%} variance)")
    ax.set_title(f"Principal Component Analysis (top {len(top)} genes, VST)")
    ax.legend()
    _style_axes(ax)

    plt.tight_layout()

    print("PCA summary:")
    print(f"PC1 explains {variance[0]:.1%} of variance")
    print(f"PC2 explains {variance[1]:.1%} of variance")

    return _finish(fig, output_file)


def plot_ma(
    results_df: pd.DataFrame,
    alpha: float = 0.05,
    ylim: Optional[float] = None,
    title: str = "MA Plot",
    figsize: Tuple[int, int] = (10, 7),
    output_file: Optional[str] = None,
) -> Figure:
    """
    Mean of normalized counts against log2 fold change.

    Genes with padj < alpha are highlighted. With ylim, points outside
    ±ylim are drawn at the border as triangles.
    """

    df = results_df[results_df["baseMean"] > 0].copy()
    significant = df["padj"].notna() & (df["padj"] < alpha)
    lfc = df["log2FoldChange"]

    if ylim is not None:
        clipped = lfc.abs() > ylim
        lfc = lfc.clip(-ylim, ylim)
    else:
        clipped = pd.Series(False, index=df.index)

    fig, ax = plt.subplots(figsize=figsize)

    for mask, color, label in (
        (~significant, "gray", "Not significant"),
        (significant, "red", f"padj < {alpha}"),
    ):
        inside = mask & ~clipped
        outside = mask & clipped
        ax.scatter(df.loc[inside, "baseMean"], lfc[inside], c=color, s=8, alpha=0.5,
                   label=f"{label} ({int(mask.sum())})")
        if outside.any():
            ax.scatter(df.loc[outside, "baseMean"], lfc[outside], c=color, s=20,
                       alpha=0.7, marker="^")

    ax.set_xscale("log")
    ax.axhline(0, color="black", linewidth=1)
    if ylim is not None:
        ax.set_ylim(-ylim * 1.05, ylim * 1.05)
    ax.set_xlabel("Mean of normalized counts")
    ax.set_ylabel("log2 fold change")
    ax.set_title(title, fontsize=14, fontweight="bold")
    ax.legend(loc="upper right")
    _style_axes(ax)

    plt.tight_layout()
    return _finish(fig, output_file)


def plot_volcano(
    results_df: pd.DataFrame,
    alpha: float = 0.05,
    lfc_threshold: float = 1.0,
    label_top_n: int = 10,
    title: Optional[str] = None,
    figsize: Tuple[int, int] = (12, 8),
    output_file: Optional[str] = None,
) -> Figure:
    """
    Volcano plot of log2 fold change against -log10(padj).

    Parameters:
    -----------
    results_df : pd.DataFrame
        DESeq2 results indexed by gene
    alpha : float
        Adjusted p-value threshold
    lfc_threshold : float
        |log2 fold change| threshold for Up/Down colouring
    label_top_n : int
        Number of top significant genes to label
    """

    df = results_df[results_df["padj"].notna()].copy()
    # padj of exactly 0 would be infinite on the log scale
    floor = df.loc[df["padj"] > 0, "padj"].min() if (df["padj"] > 0).any() else 1e-300
    df["neg_log10_p"] = -np.log10(df["padj"].clip(lower=floor))

    sig = df["padj"] < alpha
    up = sig & (df["log2FoldChange"] > lfc_threshold)
    down = sig & (df["log2FoldChange"] < -lfc_threshold)
    small = sig & ~up & ~down

    fig, ax = plt.subplots(figsize=figsize)

    for mask, color, label in (
        (~sig, "gray", "Not significant"),
        (small, "orange", "Significant"),
        (down, "blue", "Decreased"),
        (up, "red", "Increased"),
    ):
        if mask.any():
            ax.scatter(df.loc[mask, "log2FoldChange"], df.loc[mask, "neg_log10_p"],
                       c=color, alpha=0.6, s=20, label=f"{label} ({int(mask.sum())})")

    ax.axhline(y=-np.log10(alpha), color="black", linestyle="--", alpha=0.5)
    ax.axvline(x=lfc_threshold, color="black", linestyle="--", alpha=0.5)
    ax.axvline(x=-lfc_threshold, color="black", linestyle="--", alpha=0.5)

    if label_top_n > 0:
        for gene, row in df[up | down].sort_values("padj").head(label_top_n).iterrows():
            ax.annotate(str(gene), (row["log2FoldChange"], row["neg_log10_p"]),
                        xytext=(5, 5), textcoords="offset points", fontsize=8, alpha=0.7)

    if title is None:
        title = f"Volcano Plot (|LFC| > {lfc_threshold}, padj < {alpha})"

    ax.set_xlabel("log2 fold change", fontsize=14, fontweight="bold")
    ax.set_ylabel("-log10 adjusted p-value", fontsize=14, fontweight="bold")
    ax.set_title(title, fontsize=14, fontweight="bold")
    ax.legend(loc="upper right", frameon=True)
    _style_axes(ax)

    plt.tight_layout()

    print("Volcano plot summary:")
    print(f"Total genes with padj: {len(df)}")
    print(f"Up-regulated: {int(up.sum())}, Down-regulated: {int(down.sum())}")

    return _finish(fig, output_file)


def plot_dispersion_estimates(
    dds,
    figsize: Tuple[int, int] = (9, 7),
    output_file: Optional[str] = None,
) -> Figure:
    """
    Gene-wise, fitted and final dispersion estimates against mean expression.

    Parameters:
    -----------
    dds : pydeseq2.dds.DeseqDataSet
        Dataset after deseq2()
    """

    mean_expression = np.asarray(dds.layers["normed_counts"]).mean(axis=0)
    estimates = pd.DataFrame({
        "mean": mean_expression,
        "genewise": np.asarray(dds.var["genewise_dispersions"]),
        "fitted": np.asarray(dds.var["fitted_dispersions"]),
        "final": np.asarray(dds.var["dispersions"]),
    }, index=dds.var_names)
    estimates = estimates[(estimates["mean"] > 0) & (estimates["genewise"] > 0)]

    fig, ax = plt.subplots(figsize=figsize)

    ax.scatter(estimates["mean"], estimates["genewise"], c="black", s=6, alpha=0.4, label="Gene-wise estimate")
    ax.scatter(estimates["mean"], estimates["final"], c="#1f77b4", s=6, alpha=0.5, label="Final estimate")
    trend = estimates.sort_values("mean")
    ax.plot(trend["mean"], trend["fitted"], color="red", linewidth=2, label="Fitted trend")

    ax.set_xscale("log")
    ax.set_yscale("log")
    ax.set_xlabel("Mean of normalized counts")
    ax.set_ylabel("Dispersion")
    ax.set_title("Dispersion Estimates", fontsize=14, fontweight="bold")
    ax.legend(loc="upper right")
    _style_axes(ax)

    plt.tight_layout()
    return _finish(fig, output_file)


def plot_fold_change_comparison(
    log2_fold_changes: pd.Series,
    fold_changes: pd.DataFrame,
    figsize_per_panel: Tuple[int, int] = (5, 5),
    output_file: Optional[str] = None,
) -> Optional[Figure]:
    """
    Scatter DESeq2 log2 fold changes against each precomputed fold-change
    column, annotated with Pearson r.
    """

    columns = list(fold_changes.columns) if fold_changes is not None else []
    if not columns:
        print("No precomputed fold-change columns to compare")
        return None

    n = len(columns)
    fig, axes = plt.subplots(1, n, figsize=(figsize_per_panel[0] * n, figsize_per_panel[1]), squeeze=False)

    for ax, column in zip(axes[0], columns):
        paired = pd.concat([log2_fold_changes.rename("deseq2"), fold_changes[column].rename("other")],
                           axis=1, join="inner").dropna()
        paired = paired[np.isfinite(paired).all(axis=1)]

        ax.scatter(paired["other"], paired["deseq2"], s=8, alpha=0.4, c="#1f77b4")
        if len(paired) > 0:
            lo = min(paired.min())
            hi = max(paired.max())
            ax.plot([lo, hi], [lo, hi], color="gray", linestyle="--", linewidth=1)
        if len(paired) >= 3:
            r, _ = pearsonr(paired["other"], paired["deseq2"])
            ax.text(0.05, 0.95, f"r = {r:.3f}\nn = {len(paired)}", transform=ax.transAxes,
                    va="top", fontsize=10, bbox=dict(boxstyle="round", facecolor="white", alpha=0.8))

        ax.set_xlabel(f"{column}")
        ax.set_ylabel("DESeq2 log2 fold change")
        ax.set_title(str(column), fontsize=11)
        _style_axes(ax)

    fig.suptitle("DESeq2 vs Precomputed Fold Changes", fontsize=14, fontweight="bold")
    plt.tight_layout()
    return _finish(fig, output_file)


def save_figure(fig: Optional[Figure], output_file: str, dpi: int = 150) -> Optional[str]:
    """Save a figure returned by one of the plotting helpers; None is ignored."""
    if fig is None:
        return None
    fig.savefig(output_file, dpi=dpi, bbox_inches="tight")
    plt.close(fig)
    return output_file
