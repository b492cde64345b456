"""
Normalization Module for Transcriptomics Analysis Toolkit

Median-of-ratios size-factor normalization, log transforms for plotting and
access to the variance-stabilized counts produced by pyDESeq2.
"""

import pandas as pd
import numpy as np
from typing import Optional, Tuple

from pydeseq2.preprocessing import deseq2_norm


def median_of_ratios_size_factors(counts_or_dds) -> pd.Series:
    """
    DESeq2 size factors per sample.

    Accepts a fitted DeseqDataSet (reads obs['size_factors']) or a genes x
    samples count table (computed with deseq2_norm).
    """
    if isinstance(counts_or_dds, pd.DataFrame):
        _, size_factors = deseq2_norm(counts_or_dds.T)
        index = counts_or_dds.columns
    else:
        size_factors = counts_or_dds.obs["size_factors"]
        index = counts_or_dds.obs_names

    return pd.Series(np.asarray(size_factors, dtype=float), index=index, name="size_factor")


def normalize_counts(counts: pd.DataFrame) -> Tuple[pd.DataFrame, pd.Series]:
    """
    Median-of-ratios normalization of a genes x samples count table.

    Parameters:
    -----------
    counts : pd.DataFrame
        Raw counts, genes as rows and samples as columns

    Returns:
    --------
    normalized_counts : pd.DataFrame
        Genes x samples normalized counts
    size_factors : pd.Series
        Size factor per sample
    """

    # pyDESeq2 works on samples x genes
    normed, size_factors = deseq2_norm(counts.T)

    normalized_counts = pd.DataFrame(
        np.asarray(normed), index=counts.columns, columns=counts.index
    ).T
    size_factors = pd.Series(np.asarray(size_factors), index=counts.columns, name="size_factor")

    print(f"Size factors: {size_factors.min():.3f} - {size_factors.max():.3f}")
    return normalized_counts, size_factors


def log_transform(
    data: pd.DataFrame, base: str = "log2", pseudocount: Optional[float] = 1.0
) -> pd.DataFrame:
    """
    Apply log transformation to data.

    Parameters:
    -----------
    data : pd.DataFrame
        Data to transform
    base : str
        Log base ('log2', 'log10', or 'ln')
    pseudocount : float, optional
        Value added before the log transform (default 1, the usual choice for
        counts). None picks a tenth of the smallest positive value.

    Returns:
    --------
    pd.DataFrame : Log-transformed data
    """

    if pseudocount is None:
        min_positive = data[data > 0].min().min()
        pseudocount = min_positive / 10 if min_positive > 0 else 1e-6

    data_with_pseudo = data + pseudocount

    if base == "log2":
        transformed_data = np.log2(data_with_pseudo)
    elif base == "log10":
        transformed_data = np.log10(data_with_pseudo)
    elif base == "ln":
        transformed_data = np.log(data_with_pseudo)
    else:
        raise ValueError("base must be 'log2', 'log10', or 'ln'")

    print(f"Applied {base} transformation with pseudocount {pseudocount}")

    return pd.DataFrame(transformed_data, index=data.index, columns=data.columns)


def normalized_counts_from_dds(dds) -> pd.DataFrame:
    """Genes x samples normalized counts from a fitted DeseqDataSet."""
    return pd.DataFrame(
        np.asarray(dds.layers["normed_counts"]),
        index=dds.obs_names,
        columns=dds.var_names,
    ).T


def variance_stabilized_counts(dds, use_design: bool = False) -> pd.DataFrame:
    """
    Variance-stabilized counts from a fitted DeseqDataSet.

    Parameters:
    -----------
    dds : pydeseq2.dds.DeseqDataSet
        Dataset after deseq2()
    use_design : bool
        Whether the dispersion trend used for the VST accounts for the design
        (False gives the blind transformation used for QC plots)

    Returns:
    --------
    pd.DataFrame : Genes x samples VST values
    """

    if "vst_counts" not in dds.layers:
        dds.vst(use_design=use_design)

    return pd.DataFrame(
        np.asarray(dds.layers["vst_counts"]),
        index=dds.obs_names,
        columns=dds.var_names,
    ).T
