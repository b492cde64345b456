# =============================================================================
# RNA-SEQ ANALYSIS CONFIGURATION
# Analysis: Germ-free vs specific-pathogen-free mice, DESeq2 + KEGG pathways
# =============================================================================

# =============================================================================
# 1. INPUT FILES
# =============================================================================
count_file = 'data/GF_vs_SPF_counts.xlsx'
sheet_name = 0
gene_column = None

# =============================================================================
# 2. SAMPLE LAYOUT
# =============================================================================
condition_column = 'Condition'
treated_level = 'GF'
reference_level = 'SPF'
condition_patterns = {'GF': r'^GF', 'SPF': r'^SPF'}
sample_conditions = None
fold_change_pattern = r'(?i)(log2\s*FC|logFC|fold[\s_]*change|(^|[^A-Za-z])FC($|[^A-Za-z]))'
fold_change_columns = None
linear_fold_change_columns = None
remove_common_prefix = False

# =============================================================================
# 3. LOW-COUNT FILTERING
# =============================================================================
min_total_count = 10
min_samples = None
min_count_per_sample = None

# =============================================================================
# 4. DESEQ2 MODEL
# =============================================================================
design = None
alpha = 0.05
lfc_threshold = 1.0
shrink_lfc = True
refit_cooks = True
cooks_filter = True
independent_filter = True
min_replicates = 2
n_cpus = 1

# =============================================================================
# 5. KEGG GENE SET TEST
# =============================================================================
kegg_library = 'KEGG_2019_Mouse'
organism = 'Mouse'
kegg_organism_code = 'mmu'
permutation_num = 1000
min_gene_set_size = 10
max_gene_set_size = 500
fdr_cutoff = 0.1
pathway_pvalue_cutoff = 0.05
random_seed = 42
threads = 1

# =============================================================================
# 6. OVER-REPRESENTATION ANALYSIS
# =============================================================================
run_enrichr = False
enrichr_libraries = ['KEGG_2019_Mouse', 'GO_Biological_Process_2023']
enrichr_min_genes = 5

# =============================================================================
# 7. PATHWAY DIAGRAMS
# =============================================================================
render_pathways = True
max_pathways = 10
pathway_color_limit = 1.0

# =============================================================================
# 8. VISUALIZATION SETTINGS
# =============================================================================
group_colors = {'GF': '#1f77b4', 'SPF': '#d62728'}
n_heatmap_genes = 50
n_pca_genes = 500
label_top_genes = 10
ma_ylim = 5.0
top_n_pathways = 20

# =============================================================================
# 9. OUTPUT AND EXPORT SETTINGS
# =============================================================================
output_dir = 'results'
output_prefix = 'GF_vs_SPF'
export_config = True
