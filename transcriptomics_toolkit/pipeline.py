"""
Complete Analysis Pipeline

Runs the whole GF vs SPF report from one configuration dictionary:
load → validate → filter → DESeq2 → diagnostic figures → KEGG gene set test
per fold-change source → per-group tables, plots and pathway diagrams →
optional Enrichr over-representation → exports.
"""

import os
import runpy
import types
from typing import Any, Dict, List, Optional

import pandas as pd
import requests

from .data_import import (
    clean_sample_names,
    load_count_spreadsheet,
    split_count_and_fold_change_tables,
)
from .differential_expression import (
    DESeqConfig,
    compare_fold_change_sources,
    display_analysis_summary,
    run_differential_expression,
)
from .enrichment import (
    EnrichmentConfig,
    fold_change_sources,
    load_kegg_gene_sets,
    plot_enrichment_barplot,
    plot_enrichment_network,
    plot_enrichment_ridgeplot,
    plot_enrichr_barplot,
    run_differential_enrichment,
    run_pathway_enrichment,
)
from .export import (
    create_config_dict,
    export_analysis_results,
    export_enrichment_results,
    export_significant_genes_summary,
    export_timestamped_config,
)
from .kegg_pathways import list_kegg_pathways, render_group_pathways, resolve_pathway_ids
from .preprocessing import assess_library_sizes, calculate_group_colors, filter_low_count_genes
from .validation import (
    generate_sample_matching_diagnostic_report,
    validate_count_table,
    validate_sample_metadata,
)
from . import visualization as viz


def load_analysis_config(config_file: str) -> Dict[str, Any]:
    """
    Load a Python configuration file and merge it over the defaults.

    The file is executed with runpy; every public, non-module, non-callable
    name it defines becomes a configuration value. A relative count_file is
    resolved against the configuration file's directory when it does not
    exist relative to the working directory.

    Raises:
    -------
    FileNotFoundError
        When config_file does not exist
    """

    if not os.path.exists(config_file):
        raise FileNotFoundError(f"Configuration file not found: {config_file}")

    namespace = runpy.run_path(config_file)
    user_values = {
        key: value
        for key, value in namespace.items()
        if not key.startswith("_")
        and not isinstance(value, types.ModuleType)
        and not callable(value)
    }

    defaults = create_config_dict()
    unknown = sorted(set(user_values) - set(defaults))
    if unknown:
        print(f"Warning: Unknown configuration keys ignored by the pipeline: {unknown}")

    config_dict = create_config_dict(**user_values)

    count_file = config_dict.get("count_file")
    if count_file and not os.path.isabs(count_file) and not os.path.exists(count_file):
        candidate = os.path.join(os.path.dirname(os.path.abspath(config_file)), count_file)
        if os.path.exists(candidate):
            config_dict["count_file"] = candidate

    print(f"✓ Loaded configuration from {config_file}")
    return config_dict


def build_deseq_config(config_dict: Dict[str, Any]) -> DESeqConfig:
    """DESeqConfig populated from the configuration dictionary."""
    config = DESeqConfig()
    for key in (
        "condition_column",
        "treated_level",
        "reference_level",
        "design",
        "alpha",
        "lfc_threshold",
        "shrink_lfc",
        "refit_cooks",
        "cooks_filter",
        "independent_filter",
        "min_replicates",
        "n_cpus",
    ):
        if key in config_dict:
            setattr(config, key, config_dict[key])
    config.validate()
    return config


def build_enrichment_config(config_dict: Dict[str, Any]) -> EnrichmentConfig:
    """EnrichmentConfig populated from the configuration dictionary."""
    return EnrichmentConfig(
        kegg_library=config_dict["kegg_library"],
        organism=config_dict["organism"],
        kegg_organism_code=config_dict["kegg_organism_code"],
        permutation_num=config_dict["permutation_num"],
        min_size=config_dict["min_gene_set_size"],
        max_size=config_dict["max_gene_set_size"],
        seed=config_dict["random_seed"],
        threads=config_dict["threads"],
        fdr_cutoff=config_dict["fdr_cutoff"],
        pvalue_cutoff=config_dict["pathway_pvalue_cutoff"],
        top_n=config_dict["top_n_pathways"],
        enrichr_libraries=list(config_dict["enrichr_libraries"]),
        min_genes=config_dict["enrichr_min_genes"],
        max_pathways=config_dict["max_pathways"],
        pathway_color_limit=config_dict["pathway_color_limit"],
    )


def _load_pathway_index(enrichment_config: EnrichmentConfig) -> Dict[str, str]:
    try:
        return list_kegg_pathways(enrichment_config.kegg_organism_code, timeout=enrichment_config.timeout)
    except requests.exceptions.RequestException as e:
        print(f"Warning: Could not list KEGG pathways ({e}) - pathway diagrams disabled")
        return {}


def run_complete_analysis(
    config_dict: Dict[str, Any],
    gene_sets: Optional[Dict[str, List[str]]] = None,
    pathway_index: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    """
    Run the complete GF vs SPF analysis.

    Parameters:
    -----------
    config_dict : dict
        Configuration from create_config_dict() or load_analysis_config()
    gene_sets : dict, optional
        Pathway name -> genes. Downloaded from the configured KEGG library
        when omitted.
    pathway_index : dict, optional
        KEGG pathway id -> name. Listed from KEGG when omitted and pathway
        diagrams are enabled.

    Returns:
    --------
    dict
        de_result, enrichment, enrichr, summary, files (name -> path),
        figures (list of paths), pathway_diagrams and config_file
    """

    config_dict = create_config_dict(**config_dict)
    deseq_config = build_deseq_config(config_dict)
    enrichment_config = build_enrichment_config(config_dict)

    output_dir = config_dict["output_dir"]
    prefix = config_dict["output_prefix"]
    figures_dir = os.path.join(output_dir, "figures")
    enrichment_dir = os.path.join(output_dir, "enrichment")
    os.makedirs(figures_dir, exist_ok=True)

    artefacts = {"files": {}, "figures": [], "pathway_diagrams": [], "config_file": None}

    def figure_path(name):
        path = os.path.join(figures_dir, f"{prefix}_{name}.png")
        artefacts["figures"].append(path)
        return path

    # ------------------------------------------------------------------
    # 1. Load
    # ------------------------------------------------------------------
    data = load_count_spreadsheet(
        config_dict["count_file"],
        sheet_name=config_dict["sheet_name"],
        gene_column=config_dict["gene_column"],
    )
    counts, fold_changes, metadata = split_count_and_fold_change_tables(
        data,
        condition_patterns=config_dict["condition_patterns"],
        fold_change_pattern=config_dict["fold_change_pattern"],
        fold_change_columns=config_dict["fold_change_columns"],
        linear_fold_change_columns=config_dict["linear_fold_change_columns"],
        condition_column=deseq_config.condition_column,
        sample_conditions=config_dict["sample_conditions"],
    )

    if config_dict["remove_common_prefix"]:
        name_mapping = clean_sample_names(list(counts.columns))
        counts = counts.rename(columns=name_mapping)
        metadata = metadata.rename(index=name_mapping)

    # ------------------------------------------------------------------
    # 2. Validate
    # ------------------------------------------------------------------
    print("\n=== VALIDATING INPUT ===\n")
    counts = validate_count_table(counts)
    validation = validate_sample_metadata(
        counts,
        metadata,
        condition_column=deseq_config.condition_column,
        levels=[deseq_config.treated_level, deseq_config.reference_level],
        min_replicates=deseq_config.min_replicates,
    )
    os.makedirs(output_dir, exist_ok=True)
    report_file = os.path.join(output_dir, f"{prefix}_sample_validation.txt")
    with open(report_file, "w", encoding="utf-8") as f:
        f.write(generate_sample_matching_diagnostic_report(validation))
    artefacts["files"]["sample_validation"] = report_file

    # ------------------------------------------------------------------
    # 3. Filter
    # ------------------------------------------------------------------
    print()
    counts, fold_changes = filter_low_count_genes(
        counts,
        min_total_count=config_dict["min_total_count"],
        min_samples=config_dict["min_samples"],
        min_count_per_sample=config_dict["min_count_per_sample"],
        fold_changes=fold_changes,
    )
    print()
    library_summary = assess_library_sizes(counts, metadata, deseq_config.condition_column)
    library_file = os.path.join(output_dir, f"{prefix}_library_sizes.csv")
    library_summary.to_csv(library_file)
    artefacts["files"]["library_sizes"] = library_file

    # ------------------------------------------------------------------
    # 4. DESeq2
    # ------------------------------------------------------------------
    print()
    de_result = run_differential_expression(counts, metadata, deseq_config)
    summary = display_analysis_summary(de_result, deseq_config, label_top_n=config_dict["label_top_genes"])
    artefacts["de_result"] = de_result
    artefacts["summary"] = summary

    # ------------------------------------------------------------------
    # 5. Diagnostic figures
    # ------------------------------------------------------------------
    print("\n=== DIAGNOSTIC FIGURES ===\n")
    condition = deseq_config.condition_column
    group_colors = calculate_group_colors(metadata, condition, group_colors=config_dict["group_colors"])

    viz.plot_library_sizes(counts, metadata, condition, group_colors,
                           output_file=figure_path("library_sizes"))
    viz.plot_count_distribution(de_result.normalized_counts, metadata, condition, group_colors,
                                output_file=figure_path("count_distribution"))
    viz.plot_sample_distance_heatmap(de_result.vst_counts, metadata, condition, group_colors,
                                     output_file=figure_path("sample_distances"))
    viz.plot_top_genes_heatmap(de_result.vst_counts, metadata, n_genes=config_dict["n_heatmap_genes"],
                               condition_column=condition, group_colors=group_colors,
                               output_file=figure_path("top_genes_heatmap"))
    viz.plot_pca(de_result.vst_counts, metadata, n_genes=config_dict["n_pca_genes"],
                 condition_column=condition, group_colors=group_colors,
                 output_file=figure_path("pca"))
    viz.plot_ma(de_result.results, alpha=deseq_config.alpha, ylim=config_dict["ma_ylim"],
                title="MA Plot (unshrunk)", output_file=figure_path("ma_unshrunk"))
    viz.plot_ma(de_result.shrunk_results, alpha=deseq_config.alpha, ylim=config_dict["ma_ylim"],
                title="MA Plot (shrunk log2 fold changes)", output_file=figure_path("ma_shrunk"))
    viz.plot_volcano(de_result.shrunk_results, alpha=deseq_config.alpha,
                     lfc_threshold=deseq_config.lfc_threshold,
                     label_top_n=config_dict["label_top_genes"],
                     output_file=figure_path("volcano"))
    viz.plot_dispersion_estimates(de_result.dds, output_file=figure_path("dispersion"))

    if fold_changes is not None and fold_changes.shape[1] > 0:
        viz.plot_fold_change_comparison(de_result.log2_fold_changes, fold_changes,
                                        output_file=figure_path("fold_change_comparison"))
        comparison = compare_fold_change_sources(de_result.log2_fold_changes, fold_changes)
        comparison_file = os.path.join(output_dir, f"{prefix}_fold_change_comparison.csv")
        comparison.to_csv(comparison_file, index=False)
        artefacts["files"]["fold_change_comparison"] = comparison_file

    # ------------------------------------------------------------------
    # 6. KEGG gene set test per fold-change source
    # ------------------------------------------------------------------
    print("\n=== KEGG PATHWAY ENRICHMENT ===\n")
    if gene_sets is None:
        gene_sets = load_kegg_gene_sets(enrichment_config)

    if pathway_index is None:
        pathway_index = _load_pathway_index(enrichment_config) if config_dict["render_pathways"] else {}
    term_ids = resolve_pathway_ids(list(gene_sets.keys()), pathway_index) if pathway_index else None

    enrichment = run_pathway_enrichment(
        de_result, fold_changes, gene_sets, enrichment_config, pathway_index=term_ids
    )
    artefacts["enrichment"] = enrichment

    layout = export_enrichment_results(enrichment, enrichment_dir)
    source_values = fold_change_sources(de_result, fold_changes)

    for source, groups in enrichment.items():
        values = source_values[source].dropna()
        name = layout[source]["name"]

        for direction in ("greater", "less"):
            group_df = groups[direction]
            group_dir = layout[source][direction]
            if group_df.empty:
                continue

            label = f"{source}: {direction}"
            plots = (
                ("barplot", plot_enrichment_barplot(group_df, title=f"KEGG Pathways ({label})",
                                                    top_n=enrichment_config.top_n,
                                                    figsize=enrichment_config.bar_figsize)),
                ("network", plot_enrichment_network(group_df, values, title=f"Gene-Pathway Network ({label})",
                                                    config=enrichment_config)),
                ("ridgeplot", plot_enrichment_ridgeplot(group_df, values, title=f"Leading-edge LFC ({label})",
                                                        top_n=enrichment_config.top_n,
                                                        figsize=enrichment_config.ridge_figsize)),
            )
            for kind, fig in plots:
                output_file = viz.save_figure(fig, os.path.join(group_dir, f"{name}.{direction}.{kind}.png"))
                if output_file:
                    artefacts["figures"].append(output_file)

            if config_dict["render_pathways"] and pathway_index:
                print(f"\nRendering pathway diagrams for {label}...", flush=True)
                artefacts["pathway_diagrams"].extend(
                    render_group_pathways(group_df, values, group_dir, enrichment_config, gene_sets=gene_sets)
                )

    # ------------------------------------------------------------------
    # 7. Over-representation analysis (Enrichr)
    # ------------------------------------------------------------------
    artefacts["enrichr"] = {}
    if config_dict["run_enrichr"]:
        print("\n=== ENRICHR OVER-REPRESENTATION ANALYSIS ===\n")
        enrichr_results = run_differential_enrichment(
            de_result.shrunk_results,
            logfc_threshold=deseq_config.lfc_threshold,
            pvalue_threshold=deseq_config.alpha,
            config=enrichment_config,
        )
        enrichr_dir = os.path.join(output_dir, "enrichr")
        os.makedirs(enrichr_dir, exist_ok=True)
        for label, table in enrichr_results.items():
            if table.empty:
                continue
            table_file = os.path.join(enrichr_dir, f"{prefix}_enrichr_{label.lower()}.csv")
            table.to_csv(table_file, index=False)
            artefacts["files"][f"enrichr_{label.lower()}"] = table_file
            output_file = viz.save_figure(
                plot_enrichr_barplot(table, title=f"Enrichr: {label} genes"),
                os.path.join(enrichr_dir, f"{prefix}_enrichr_{label.lower()}.png"),
            )
            if output_file:
                artefacts["figures"].append(output_file)
        artefacts["enrichr"] = enrichr_results

    # ------------------------------------------------------------------
    # 8. Export
    # ------------------------------------------------------------------
    print("\n=== EXPORTING RESULTS ===\n")
    artefacts["files"].update(export_analysis_results(de_result, metadata, output_dir, prefix))
    summary_file = export_significant_genes_summary(
        de_result.shrunk_results, deseq_config.alpha, deseq_config.lfc_threshold, output_dir, prefix
    )
    if summary_file:
        artefacts["files"]["significant_genes"] = summary_file

    if config_dict["export_config"]:
        computed_values = {
            "genes_after_filtering": len(counts),
            "samples": len(counts.columns),
            "significant_genes": summary.get("significant", 0),
            "up_genes": summary.get("up", 0),
            "down_genes": summary.get("down", 0),
            "group_colors": group_colors,
            "fold_change_sources": list(enrichment.keys()),
        }
        artefacts["config_file"] = export_timestamped_config(
            config_dict,
            output_prefix=prefix,
            analysis_description=(
                f"DESeq2 {deseq_config.treated_level} vs {deseq_config.reference_level} "
                f"with KEGG pathway enrichment"
            ),
            computed_values=computed_values,
            output_dir=output_dir,
        )

    print(f"\n✓ Analysis complete: {len(artefacts['figures'])} figures, "
          f"{len(artefacts['files'])} tables written to {output_dir}")

    return artefacts
