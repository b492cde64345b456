"""
Transcriptomics Analysis Toolkit
================================

A Python library for RNA-seq differential expression and KEGG pathway
analysis, built around a germ-free (GF) versus specific-pathogen-free (SPF)
mouse comparison. Statistics are delegated to pyDESeq2 and gseapy; this
toolkit handles data reshaping, configuration, figures and exports.

QUICK START EXAMPLE:
-------------------
    import transcriptomics_toolkit as ttk

    # 1. Load the spreadsheet and split it
    data = ttk.load_count_spreadsheet('counts.xlsx')
    counts, fold_changes, metadata = ttk.split_count_and_fold_change_tables(data)

    # 2. Filter and fit DESeq2 (GF vs SPF)
    counts, fold_changes = ttk.filter_low_count_genes(counts, fold_changes=fold_changes)
    config = ttk.DESeqConfig()
    de_result = ttk.run_differential_expression(counts, metadata, config)

    # 3. KEGG gene set test, split into greater / less groups
    gene_sets = ttk.load_kegg_gene_sets()
    enrichment = ttk.run_pathway_enrichment(de_result, fold_changes, gene_sets)

    # 4. Or run everything from a configuration file
    ttk.run_complete_analysis(ttk.load_analysis_config('GF-vs-SPF-Analysis_config.py'))

MODULE OVERVIEW:
===============

data_import
    Purpose: Load count spreadsheets, split counts from fold-change columns
    Key functions: load_count_spreadsheet(), split_count_and_fold_change_tables()
    Use when: Starting analysis

validation
    Purpose: Count-table and sample-matching checks with clear errors
    Key functions: validate_count_table(), validate_sample_metadata()
    Use when: Before handing data to DESeq2, troubleshooting sample mismatches

preprocessing
    Purpose: Low-count filtering, library sizes, condition colours
    Key functions: filter_low_count_genes(), assess_library_sizes()

normalization
    Purpose: Size-factor normalized counts, log transforms, VST access
    Key functions: normalize_counts(), variance_stabilized_counts()

differential_expression
    Purpose: pyDESeq2 model, Wald test and log fold change shrinkage
    Key functions: run_differential_expression(), DESeqConfig()

enrichment
    Purpose: KEGG pre-ranked gene set test, Enrichr over-representation, plots
    Key functions: run_pathway_enrichment(), EnrichmentConfig()

kegg_pathways
    Purpose: KEGG pathway diagrams coloured by fold change
    Key functions: render_group_pathways(), render_pathway_diagram()

visualization
    Purpose: Heatmaps, PCA, MA, volcano and dispersion plots
    Key functions: plot_pca(), plot_ma(), plot_volcano()

export
    Purpose: Result tables, per-group enrichment directories, config export
    Key functions: export_enrichment_results(), export_timestamped_config()

pipeline
    Purpose: The complete report from one configuration file
    Key functions: load_analysis_config(), run_complete_analysis()

ERROR HANDLING:
==============
- CountDataError: Negative, missing or duplicated count entries
- SampleMatchingError: Count columns and conditions don't line up, or too few replicates
- Use ttk.validate_sample_metadata() to diagnose issues early
"""

# =============================================================================
# MODULE IMPORTS - Core functionality organized by analysis stage
# =============================================================================

from . import data_import              # Spreadsheet loading and splitting
from . import validation               # Data validation and error checking
from . import preprocessing            # Filtering and quality assessment
from . import normalization            # Size factors and transformations
from . import differential_expression  # DESeq2 model and tests
from . import enrichment               # Gene set tests and enrichment plots
from . import kegg_pathways            # KEGG diagrams
from . import visualization            # Plotting and visualization
from . import export                   # Results export and configuration management
from . import pipeline                 # End-to-end analysis

__version__ = "1.0.0"
__author__ = "Transcriptomics Toolkit Developers"

# =============================================================================
# CONVENIENCE IMPORTS - Most commonly used functions available at top level
# =============================================================================

# DATA LOADING
from .data_import import (
    load_count_spreadsheet,               # Main function: Load counts + fold changes
    split_count_and_fold_change_tables,   # Split into counts, fold changes, metadata
    clean_sample_names                    # Clean up sample column names automatically
)

# DATA VALIDATION
from .validation import (
    validate_count_table,                       # Non-negative integer counts, unique genes
    validate_sample_metadata,                   # Count columns vs conditions
    generate_sample_matching_diagnostic_report, # Detailed diagnostic reports
    CountDataError,                             # Exception: Invalid count table
    SampleMatchingError                         # Exception: Samples don't match
)

# PREPROCESSING
from .preprocessing import (
    filter_low_count_genes,   # Remove genes with too few reads
    assess_library_sizes,     # Per-sample depth and detection
    calculate_group_colors    # Consistent colours per condition
)

# NORMALIZATION
from .normalization import (
    normalize_counts,               # Median-of-ratios normalized counts
    median_of_ratios_size_factors,  # Size factors per sample
    log_transform,                  # log2(x + 1) for plotting
    variance_stabilized_counts      # VST from a fitted dataset
)

# DIFFERENTIAL EXPRESSION
from .differential_expression import (
    run_differential_expression,  # Main function: DESeq2 fit, test and shrinkage
    display_analysis_summary,     # Display analysis results summary
    get_significant_genes,        # Filter significant genes
    DESeqConfig,                  # Configuration class for the comparison
    DifferentialExpressionResult  # Container for all DESeq2 outputs
)

# ENRICHMENT
from .enrichment import (
    run_pathway_enrichment,       # Main function: KEGG test per fold-change source
    load_kegg_gene_sets,          # Download KEGG gene sets
    run_differential_enrichment,  # Enrichr over-representation of up/down genes
    EnrichmentConfig              # Configuration for enrichment
)

# KEGG DIAGRAMS
from .kegg_pathways import (
    render_group_pathways,   # Diagrams + gene tables for one group
    render_pathway_diagram   # One coloured pathway map
)

# VISUALIZATION
from .visualization import (
    plot_volcano,                  # Main results plot
    plot_ma,                       # Mean expression vs fold change
    plot_pca,                      # QC plot: Principal component analysis
    plot_sample_distance_heatmap,  # QC plot: Sample-to-sample distances
    plot_top_genes_heatmap,        # Top variable genes
    plot_dispersion_estimates      # DESeq2 dispersion fit
)

# EXPORT
from .export import (
    export_analysis_results,     # Export data files
    export_enrichment_results,   # Per-source, per-direction enrichment tables
    export_timestamped_config,   # Export configuration with timestamp
    create_config_dict           # Configuration with defaults
)

# PIPELINE
from .pipeline import (
    load_analysis_config,   # Load a Python configuration file
    run_complete_analysis   # MAIN FUNCTION: Whole report
)

# =============================================================================
# PUBLIC API - All functions available for import
# =============================================================================

__all__ = [
    # MODULES
    "data_import",
    "validation",
    "preprocessing",
    "normalization",
    "differential_expression",
    "enrichment",
    "kegg_pathways",
    "visualization",
    "export",
    "pipeline",

    # DATA LOADING
    "load_count_spreadsheet",
    "split_count_and_fold_change_tables",
    "clean_sample_names",

    # VALIDATION
    "validate_count_table",
    "validate_sample_metadata",
    "generate_sample_matching_diagnostic_report",
    "CountDataError",
    "SampleMatchingError",

    # PREPROCESSING
    "filter_low_count_genes",
    "assess_library_sizes",
    "calculate_group_colors",

    # NORMALIZATION
    "normalize_counts",
    "median_of_ratios_size_factors",
    "log_transform",
    "variance_stabilized_counts",

    # DIFFERENTIAL EXPRESSION
    "run_differential_expression",
    "display_analysis_summary",
    "get_significant_genes",
    "DESeqConfig",
    "DifferentialExpressionResult",

    # ENRICHMENT
    "run_pathway_enrichment",
    "load_kegg_gene_sets",
    "run_differential_enrichment",
    "EnrichmentConfig",

    # KEGG DIAGRAMS
    "render_group_pathways",
    "render_pathway_diagram",

    # VISUALIZATION
    "plot_volcano",
    "plot_ma",
    "plot_pca",
    "plot_sample_distance_heatmap",
    "plot_top_genes_heatmap",
    "plot_dispersion_estimates",

    # EXPORT
    "export_analysis_results",
    "export_enrichment_results",
    "export_timestamped_config",
    "create_config_dict",

    # PIPELINE
    "load_analysis_config",
    "run_complete_analysis",
]
