"""
Preprocessing Module for Transcriptomics Analysis Toolkit

Low-count gene filtering, library-size assessment and condition colours.
"""

import pandas as pd
import numpy as np
import matplotlib.pyplot as plt
from typing import Dict, List, Optional, Tuple


# Fixed colours so GF and SPF look the same in every figure
CONDITION_COLORS = {
    'GF': '#1f77b4',
    'SPF': '#d62728',
}


def filter_low_count_genes(
    counts: pd.DataFrame,
    min_total_count: int = 10,
    min_samples: Optional[int] = None,
    min_count_per_sample: Optional[int] = None,
    fold_changes: Optional[pd.DataFrame] = None,
) -> Tuple[pd.DataFrame, Optional[pd.DataFrame]]:
    """
    Remove genes with too few reads to be informative.

    Parameters:
    -----------
    counts : pd.DataFrame
        Genes x samples raw counts
    min_total_count : int
        Minimum summed count across all samples (default: 10)
    min_samples : int, optional
        When set, a gene must also reach min_count_per_sample in at least
        this many samples
    min_count_per_sample : int, optional
        Per-sample threshold used with min_samples (default: 10)
    fold_changes : pd.DataFrame, optional
        Fold-change table filtered to the same genes

    Returns:
    --------
    filtered_counts : pd.DataFrame
    filtered_fold_changes : pd.DataFrame or None
    """

    print("=== FILTERING LOW-COUNT GENES ===\n")

    keep = counts.sum(axis=1) >= min_total_count

    if min_samples is not None:
        per_sample = 10 if min_count_per_sample is None else min_count_per_sample
        keep &= (counts >= per_sample).sum(axis=1) >= min_samples
        print(f"Requiring ≥{per_sample} counts in ≥{min_samples} samples")

    filtered_counts = counts.loc[keep].copy()

    print(f"Original genes: {len(counts)}")
    print(f"Genes with total count ≥{min_total_count}: {len(filtered_counts)}")
    print(f"Removed: {len(counts) - len(filtered_counts)} genes")

    filtered_fold_changes = None
    if fold_changes is not None:
        filtered_fold_changes = fold_changes.reindex(filtered_counts.index)

    return filtered_counts, filtered_fold_changes


def assess_library_sizes(
    counts: pd.DataFrame,
    metadata: pd.DataFrame,
    condition_column: str = 'Condition',
) -> pd.DataFrame:
    """
    Summarise per-sample sequencing depth and gene detection.

    Returns:
    --------
    pd.DataFrame with columns Library_Size, Detected_Genes, Detection_Rate
    and the condition, indexed by sample
    """

    print("=== ASSESSING LIBRARY SIZES ===\n")

    summary = pd.DataFrame({
        'Library_Size': counts.sum(axis=0),
        'Detected_Genes': (counts > 0).sum(axis=0),
    })
    summary['Detection_Rate'] = summary['Detected_Genes'] / len(counts)
    if condition_column in metadata.columns:
        summary[condition_column] = metadata[condition_column].reindex(summary.index)

    total = summary['Library_Size']
    print(f"Total reads: {int(total.sum()):,}")
    print(f"Library size range: {int(total.min()):,} - {int(total.max()):,}")
    if total.min() > 0:
        print(f"Max/min ratio: {total.max() / total.min():.2f}")

    for sample, row in summary.iterrows():
        print(
            f"{sample}: {int(row['Library_Size']):,} reads, "
            f"{int(row['Detected_Genes'])} genes detected ({row['Detection_Rate'] * 100:.1f}%)"
        )

    return summary


def calculate_group_colors(
    metadata: pd.DataFrame,
    condition_column: str = 'Condition',
    palette: str = 'Set1',
    group_colors: Optional[Dict[str, str]] = None,
) -> Dict[str, str]:
    """
    Assign a colour to each condition.

    GF and SPF keep their fixed colours; any other level gets the next colour
    of the matplotlib palette. Explicit group_colors win over both.
    """

    levels = sorted(metadata[condition_column].dropna().astype(str).unique())
    cmap = plt.get_cmap(palette)

    colors = {}
    palette_index = 0
    for level in levels:
        if group_colors and level in group_colors:
            colors[level] = group_colors[level]
        elif level in CONDITION_COLORS:
            colors[level] = CONDITION_COLORS[level]
        else:
            rgba = cmap(palette_index % cmap.N)
            colors[level] = '#{:02x}{:02x}{:02x}'.format(*(int(255 * c) for c in rgba[:3]))
            palette_index += 1

    return colors


def get_sample_colors(
    sample_columns: List[str],
    metadata: pd.DataFrame,
    group_colors: Dict[str, str],
    condition_column: str = 'Condition',
) -> List[str]:
    """Per-sample colour list in sample_columns order."""
    colors = []
    for sample in sample_columns:
        group = metadata[condition_column].get(sample, 'Unknown') if sample in metadata.index else 'Unknown'
        if pd.isna(group):
            group = 'Unknown'
        colors.append(group_colors.get(str(group), '#7f7f7f'))
    return colors


def order_samples_by_condition(
    sample_columns: List[str],
    metadata: pd.DataFrame,
    condition_column: str = 'Condition',
    condition_order: Optional[List[str]] = None,
) -> List[str]:
    """Sort samples by condition (in condition_order when given), then by name."""
    conditions = metadata[condition_column].reindex(sample_columns).fillna('Unknown').astype(str)
    if condition_order is None:
        condition_order = sorted(conditions.unique())
    rank = {c: i for i, c in enumerate(condition_order)}
    return sorted(sample_columns, key=lambda s: (rank.get(conditions[s], len(rank)), s))


def select_top_variable_genes(data: pd.DataFrame, n_genes: int = 500) -> pd.DataFrame:
    """Rows of data with the highest variance across samples."""
    variances = data.var(axis=1)
    top = variances.sort_values(ascending=False).head(n_genes).index
    return data.loc[top]


def zscore_rows(data: pd.DataFrame) -> pd.DataFrame:
    """Row-wise z-scores; constant rows become 0."""
    std = data.std(axis=1).replace(0, np.nan)
    return data.sub(data.mean(axis=1), axis=0).div(std, axis=0).fillna(0.0)
