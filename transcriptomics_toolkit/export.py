"""
Export Module for Transcriptomics Analysis Toolkit

This module handles exporting analysis results, enrichment tables and the
analysis configuration. Enrichment tables are written into one directory per
fold-change source and per direction group (greater / less), and the
effective configuration is written back as a timestamped Python file.
"""

import os
import re
import pandas as pd
from datetime import datetime
from typing import Dict, Any, Optional, List


def export_analysis_results(
    de_result,
    sample_metadata: pd.DataFrame,
    output_dir: str = ".",
    output_prefix: str = "rnaseq_analysis",
) -> Dict[str, str]:
    """
    Export DESeq2 results, normalized counts and sample metadata.

    Parameters:
    -----------
    de_result : DifferentialExpressionResult
        Output of run_differential_expression()
    sample_metadata : pd.DataFrame
        Sample metadata indexed by sample name
    output_dir : str
        Directory for the CSV files (created if needed)
    output_prefix : str
        Prefix for output filenames

    Returns:
    --------
    dict
        Dictionary of exported files
    """

    print("Exporting analysis results...")
    os.makedirs(output_dir, exist_ok=True)

    def path(name):
        return os.path.join(output_dir, f"{output_prefix}_{name}.csv")

    tables = {
        "deseq2_results": de_result.results.sort_values("padj"),
        "deseq2_results_shrunk": de_result.shrunk_results.sort_values("padj"),
        "normalized_counts": de_result.normalized_counts,
        "vst_counts": de_result.vst_counts,
        "sample_metadata": sample_metadata,
    }

    exported_files = {}
    for name, table in tables.items():
        if table is None:
            continue
        output_file = path(name)
        table.to_csv(output_file)
        exported_files[name] = output_file
        print(f"  {name.replace('_', ' ').capitalize()} exported to: {output_file}")

    return exported_files


def export_significant_genes_summary(
    results_df: pd.DataFrame,
    alpha: float = 0.05,
    lfc_threshold: float = 1.0,
    output_dir: str = ".",
    output_prefix: str = "rnaseq_analysis",
) -> str:
    """
    Export a summary of significant genes with key statistics.

    Returns:
    --------
    str
        Path to exported summary file ("" when nothing is significant)
    """

    significant_results = results_df[results_df["padj"].notna() & (results_df["padj"] < alpha)]

    if len(significant_results) == 0:
        print("No significant genes found - skipping summary export")
        return ""

    summary_cols = ["baseMean", "log2FoldChange", "lfcSE", "pvalue", "padj"]
    summary_data = significant_results[[c for c in summary_cols if c in significant_results.columns]].copy()

    summary_data["Regulation"] = summary_data["log2FoldChange"].apply(
        lambda x: "Up" if x > lfc_threshold else ("Down" if x < -lfc_threshold else "Unchanged")
    )
    summary_data = summary_data.sort_values("padj")

    os.makedirs(output_dir, exist_ok=True)
    summary_file = os.path.join(output_dir, f"{output_prefix}_significant_genes_summary.csv")
    summary_data.to_csv(summary_file)

    print(f"Significant genes summary exported to: {summary_file}")
    print(f"  • Total significant: {len(summary_data)}")
    print(f"  • Upregulated: {(summary_data['Regulation'] == 'Up').sum()}")
    print(f"  • Downregulated: {(summary_data['Regulation'] == 'Down').sum()}")

    return summary_file


def source_directory_name(source: str) -> str:
    """Filesystem-safe directory name for a fold-change source."""
    name = re.sub(r"[^A-Za-z0-9._-]+", "_", str(source)).strip("_")
    return name or "source"


def export_enrichment_results(
    enrichment: Dict[str, Dict[str, pd.DataFrame]],
    output_dir: str,
) -> Dict[str, Dict[str, str]]:
    """
    Write enrichment tables into per-source, per-direction directories.

    Layout::

        <output_dir>/<source>/<source>.all.csv
        <output_dir>/<source>/greater/<source>.greater.csv (+ .tsv)
        <output_dir>/<source>/less/<source>.less.csv (+ .tsv)

    Directories are created even when a group is empty, so every source has
    the same structure.

    Returns:
    --------
    dict
        Source -> {'name': directory name, 'greater': dir, 'less': dir,
        'all': csv path}. Sources that clean to the same directory name get
        a _2, _3 ... suffix.
    """

    print("Exporting enrichment results...")
    layout = {}
    used_names = set()

    for source, groups in enrichment.items():
        base = name = source_directory_name(source)
        n = 2
        while name.lower() in used_names:
            name = f"{base}_{n}"
            n += 1
        used_names.add(name.lower())

        source_dir = os.path.join(output_dir, name)
        os.makedirs(source_dir, exist_ok=True)
        layout[source] = {"name": name}

        all_results = groups.get("all")
        if all_results is not None:
            all_file = os.path.join(source_dir, f"{name}.all.csv")
            all_results.to_csv(all_file, index=False)
            layout[source]["all"] = all_file

        for direction in ("greater", "less"):
            group_dir = os.path.join(source_dir, direction)
            os.makedirs(group_dir, exist_ok=True)
            table = groups.get(direction, pd.DataFrame())
            table.to_csv(os.path.join(group_dir, f"{name}.{direction}.csv"), index=False)
            table.to_csv(os.path.join(group_dir, f"{name}.{direction}.tsv"), sep="\t", index=False)
            layout[source][direction] = group_dir
            print(f"  {source} / {direction}: {len(table)} pathways -> {group_dir}")

    return layout


def export_timestamped_config(
    config_dict: Dict[str, Any],
    output_prefix: str = "rnaseq_analysis",
    analysis_description: str = "RNA-seq differential expression analysis",
    computed_values: Optional[Dict[str, Any]] = None,
    output_dir: str = ".",
) -> str:
    """
    Export analysis configuration as a timestamped Python file.

    The file can be passed back to run_analysis.py to repeat the analysis.

    Parameters:
    -----------
    config_dict : dict
        Dictionary containing all configuration parameters
    output_prefix : str
        Prefix for the configuration filename
    analysis_description : str
        Description of the analysis type
    computed_values : dict, optional
        Additional computed values to include as comments
    output_dir : str
        Directory for the configuration file

    Returns:
    --------
    str
        Path to the exported configuration file
    """

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    os.makedirs(output_dir, exist_ok=True)
    config_file = os.path.join(output_dir, f"{output_prefix}_config_{timestamp}.py")

    print(f"Exporting analysis configuration to: {config_file}")

    with open(config_file, "w", encoding="utf-8") as f:
        f.write("# =============================================================================\n")
        f.write("# RNA-SEQ ANALYSIS CONFIGURATION\n")
        f.write(f"# Generated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}\n")
        f.write(f"# Analysis: {analysis_description}\n")
        f.write("# =============================================================================\n\n")

        for section_num, section_name, param_names in CONFIG_SECTIONS:
            _write_config_section(f, section_name, config_dict, param_names, section_num)

        if computed_values:
            f.write("# =============================================================================\n")
            f.write("# COMPUTED VALUES (for reference)\n")
            f.write("# =============================================================================\n")

            for key, value in computed_values.items():
                if isinstance(value, dict):
                    f.write(f"# {key}:\n")
                    for k, v in value.items():
                        f.write(f"#   {k}: {v}\n")
                else:
                    f.write(f"# {key}: {value}\n")

    return config_file


def _write_config_section(
    file_handle,
    section_name: str,
    config_dict: Dict[str, Any],
    param_names: List[str],
    section_number: int = 1,
) -> None:
    """Write a configuration section to file."""

    file_handle.write("# =============================================================================\n")
    file_handle.write(f"# {section_number}. {section_name}\n")
    file_handle.write("# =============================================================================\n")

    for param in param_names:
        if param in config_dict:
            file_handle.write(f"{param} = {repr(config_dict[param])}\n")

    file_handle.write("\n")


CONFIG_SECTIONS = [
    (1, "INPUT FILES", ["count_file", "sheet_name", "gene_column"]),
    (
        2,
        "SAMPLE LAYOUT",
        [
            "condition_column",
            "treated_level",
            "reference_level",
            "condition_patterns",
            "sample_conditions",
            "fold_change_pattern",
            "fold_change_columns",
            "linear_fold_change_columns",
            "remove_common_prefix",
        ],
    ),
    (3, "LOW-COUNT FILTERING", ["min_total_count", "min_samples", "min_count_per_sample"]),
    (
        4,
        "DESEQ2 MODEL",
        [
            "design",
            "alpha",
            "lfc_threshold",
            "shrink_lfc",
            "refit_cooks",
            "cooks_filter",
            "independent_filter",
            "min_replicates",
            "n_cpus",
        ],
    ),
    (
        5,
        "KEGG GENE SET TEST",
        [
            "kegg_library",
            "organism",
            "kegg_organism_code",
            "permutation_num",
            "min_gene_set_size",
            "max_gene_set_size",
            "fdr_cutoff",
            "pathway_pvalue_cutoff",
            "random_seed",
            "threads",
        ],
    ),
    (6, "OVER-REPRESENTATION ANALYSIS", ["run_enrichr", "enrichr_libraries", "enrichr_min_genes"]),
    (7, "PATHWAY DIAGRAMS", ["render_pathways", "max_pathways", "pathway_color_limit"]),
    (
        8,
        "VISUALIZATION SETTINGS",
        [
            "group_colors",
            "n_heatmap_genes",
            "n_pca_genes",
            "label_top_genes",
            "ma_ylim",
            "top_n_pathways",
        ],
    ),
    (9, "OUTPUT AND EXPORT SETTINGS", ["output_dir", "output_prefix", "export_config"]),
]


def create_config_dict(**kwargs) -> Dict[str, Any]:
    """
    Create a configuration dictionary with defaults for every parameter.

    Parameters:
    -----------
    **kwargs : various
        Configuration values overriding the defaults

    Returns:
    --------
    dict
        Configuration dictionary
    """

    config_template = {
        # Input files
        "count_file": "",
        "sheet_name": 0,
        "gene_column": None,
        # Sample layout
        "condition_column": "Condition",
        "treated_level": "GF",
        "reference_level": "SPF",
        "condition_patterns": {"GF": r"^GF", "SPF": r"^SPF"},
        "sample_conditions": None,
        "fold_change_pattern": r"(?i)(log2\s*FC|logFC|fold[\s_]*change|(^|[^A-Za-z])FC($|[^A-Za-z]))",
        "fold_change_columns": None,
        "linear_fold_change_columns": None,
        "remove_common_prefix": False,
        # Low-count filtering
        "min_total_count": 10,
        "min_samples": None,
        "min_count_per_sample": None,
        # DESeq2 model
        "design": None,
        "alpha": 0.05,
        "lfc_threshold": 1.0,
        "shrink_lfc": True,
        "refit_cooks": True,
        "cooks_filter": True,
        "independent_filter": True,
        "min_replicates": 2,
        "n_cpus": 1,
        # KEGG gene set test
        "kegg_library": "KEGG_2019_Mouse",
        "organism": "Mouse",
        "kegg_organism_code": "mmu",
        "permutation_num": 1000,
        "min_gene_set_size": 10,
        "max_gene_set_size": 500,
        "fdr_cutoff": 0.1,
        "pathway_pvalue_cutoff": 0.05,
        "random_seed": 42,
        "threads": 1,
        # Over-representation analysis
        "run_enrichr": False,
        "enrichr_libraries": ["KEGG_2019_Mouse", "GO_Biological_Process_2023"],
        "enrichr_min_genes": 5,
        # Pathway diagrams
        "render_pathways": True,
        "max_pathways": 10,
        "pathway_color_limit": 1.0,
        # Visualization
        "group_colors": None,
        "n_heatmap_genes": 50,
        "n_pca_genes": 500,
        "label_top_genes": 10,
        "ma_ylim": 5.0,
        "top_n_pathways": 20,
        # Output settings
        "output_dir": "results",
        "output_prefix": "GF_vs_SPF",
        "export_config": True,
    }

    config_dict = config_template.copy()
    config_dict.update(kwargs)

    return config_dict
