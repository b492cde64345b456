"""
Gene Set Enrichment Analysis Module

This module runs KEGG pathway enrichment on differential expression results.
It can be used with:

- Ranked log2 fold changes from DESeq2 (shrunk or unshrunk)
- Precomputed fold-change columns shipped with the count spreadsheet
- Up-regulated or down-regulated gene lists (over-representation via Enrichr)

Ranked tests use gseapy's pre-ranked permutation test. Results are split into
'greater' (pathways shifted up, NES > 0) and 'less' (shifted down, NES < 0)
groups, the layout GAGE reports use.

Author: Transcriptomics Toolkit Developers
Version: 1.0.0
"""

import pandas as pd
import numpy as np
import matplotlib.pyplot as plt
from matplotlib.figure import Figure
from matplotlib.patches import Patch
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple
from scipy.stats import gaussian_kde
import gseapy as gp
import networkx as nx
import requests
import time


# =============================================================================
# CONFIGURATION
# =============================================================================

@dataclass
class EnrichmentConfig:
    """Configuration for gene set enrichment analysis.

    Attributes
    ----------
    kegg_library : str
        Enrichr/gseapy library holding KEGG pathways for the organism
    organism : str
        Organism passed to gseapy.get_library ('Mouse', 'Human', ...)
    kegg_organism_code : str
        KEGG organism code used for pathway ids and diagrams
    permutation_num : int
        Permutations for the pre-ranked test
    min_size, max_size : int
        Gene set size limits after intersecting with the ranked genes
    fdr_cutoff : float
        FDR threshold for a pathway to enter the greater/less groups
    pvalue_cutoff : float
        Nominal p-value threshold (ranked test and Enrichr parsing)
    enrichr_libraries : List[str]
        Gene set libraries for over-representation queries

    Examples
    --------
    >>> config = EnrichmentConfig()
    >>> config.permutation_num = 100
    >>> config.fdr_cutoff = 0.25
    """

    # Gene sets
    kegg_library: str = 'KEGG_2019_Mouse'
    organism: str = 'Mouse'
    kegg_organism_code: str = 'mmu'

    # Ranked permutation test
    permutation_num: int = 1000
    min_size: int = 10
    max_size: int = 500
    seed: int = 42
    threads: int = 1

    # Significance thresholds
    fdr_cutoff: float = 0.1
    pvalue_cutoff: float = 0.05
    top_n: int = 20

    # Over-representation (Enrichr)
    enrichr_libraries: List[str] = field(default_factory=lambda: [
        'KEGG_2019_Mouse',
        'GO_Biological_Process_2023',
    ])
    min_genes: int = 5
    rate_limit_delay: float = 0.5
    timeout: int = 30

    # Pathway diagrams
    max_pathways: int = 10
    pathway_color_limit: float = 1.0

    # Visualization settings
    bar_figsize: Tuple[int, int] = (12, 8)
    network_figsize: Tuple[int, int] = (14, 12)
    ridge_figsize: Tuple[int, int] = (10, 10)
    network_max_pathways: int = 5
    network_max_genes_per_pathway: int = 15


DIRECTION_GROUPS = ('greater', 'less')

DIRECTION_COLORS = {
    'greater': '#d62728',
    'less': '#1f77b4',
}

LIBRARY_COLORS = {
    'KEGG_2019_Mouse': '#d62728',
    'KEGG_2021_Human': '#d62728',
    'GO_Biological_Process_2023': '#1f77b4',
    'GO_Molecular_Function_2023': '#2ca02c',
    'GO_Cellular_Component_2023': '#17becf',
    'Reactome_2022': '#9467bd',
    'WikiPathways_2019_Mouse': '#ff7f0e',
    'MSigDB_Hallmark_2020': '#8c564b',
}

ENRICHMENT_COLUMNS = [
    'Term', 'Pathway_ID', 'ES', 'NES', 'P_Value', 'FDR',
    'Set_Size', 'Lead_Genes', 'N_Lead_Genes', 'Direction', 'Source',
]


# =============================================================================
# GENE SETS AND RANKINGS
# =============================================================================

def load_kegg_gene_sets(config: Optional[EnrichmentConfig] = None) -> Dict[str, List[str]]:
    """
    Download the KEGG gene set library for the configured organism.

    Returns
    -------
    Dict[str, List[str]]
        Pathway name -> member gene symbols
    """
    if config is None:
        config = EnrichmentConfig()

    print(f"Loading gene sets: {config.kegg_library} ({config.organism})", flush=True)
    gene_sets = gp.get_library(name=config.kegg_library, organism=config.organism)
    print(f"  ✓ {len(gene_sets)} pathways loaded", flush=True)
    return gene_sets


def build_gene_ranking(values: pd.Series) -> pd.Series:
    """
    Turn per-gene scores into a ranking for the pre-ranked test.

    Missing values are dropped, duplicated gene names keep the entry with the
    largest absolute score, and the result is sorted in descending order.
    """
    ranking = pd.to_numeric(values, errors='coerce').dropna()
    ranking = ranking[np.isfinite(ranking)]
    ranking.index = ranking.index.astype(str)

    if ranking.index.duplicated().any():
        ranking = ranking.iloc[np.argsort(-ranking.abs().to_numpy(), kind='stable')]
        ranking = ranking[~ranking.index.duplicated(keep='first')]

    ranking = ranking.sort_values(ascending=False)
    ranking.name = values.name
    return ranking


def _set_size_from_tag(tag: str) -> float:
    # gseapy reports 'Tag %' as "<leading-edge hits>/<matched set size>"
    try:
        return float(str(tag).split('/')[1])
    except (IndexError, ValueError):
        return np.nan


def tidy_prerank_results(
    res2d: pd.DataFrame,
    source: str,
    pathway_index: Optional[Dict[str, Optional[str]]] = None,
) -> pd.DataFrame:
    """
    Convert a gseapy res2d table into the enrichment table layout.

    Columns: Term, Pathway_ID, ES, NES, P_Value, FDR, Set_Size, Lead_Genes,
    N_Lead_Genes, Direction, Source. Sorted by P_Value then |NES|.
    """
    if res2d is None or res2d.empty:
        return pd.DataFrame(columns=ENRICHMENT_COLUMNS)

    tidy = pd.DataFrame({
        'Term': res2d['Term'].astype(str).values,
        'ES': pd.to_numeric(res2d['ES'], errors='coerce').values,
        'NES': pd.to_numeric(res2d['NES'], errors='coerce').values,
        'P_Value': pd.to_numeric(res2d['NOM p-val'], errors='coerce').values,
        'FDR': pd.to_numeric(res2d['FDR q-val'], errors='coerce').values,
    })

    if 'Tag %' in res2d.columns:
        tidy['Set_Size'] = [_set_size_from_tag(t) for t in res2d['Tag %']]
    else:
        tidy['Set_Size'] = np.nan

    lead = res2d['Lead_genes'] if 'Lead_genes' in res2d.columns else pd.Series([''] * len(res2d))
    tidy['Lead_Genes'] = lead.fillna('').astype(str).values
    tidy['N_Lead_Genes'] = [len([g for g in s.split(';') if g]) for s in tidy['Lead_Genes']]

    tidy['Direction'] = np.where(tidy['NES'] >= 0, 'greater', 'less')
    tidy['Source'] = source
    tidy['Pathway_ID'] = [
        (pathway_index or {}).get(term) for term in tidy['Term']
    ]

    tidy['_abs_nes'] = tidy['NES'].abs()
    tidy = tidy.sort_values(['P_Value', '_abs_nes'], ascending=[True, False]).drop(columns='_abs_nes')
    return tidy[ENRICHMENT_COLUMNS].reset_index(drop=True)


def run_gene_set_test(
    ranking: pd.Series,
    gene_sets: Dict[str, List[str]],
    config: Optional[EnrichmentConfig] = None,
    source: str = 'log2FoldChange',
    pathway_index: Optional[Dict[str, Optional[str]]] = None,
    verbose: bool = True,
) -> pd.DataFrame:
    """
    Pre-ranked permutation test of every gene set against a gene ranking.

    Parameters
    ----------
    ranking : pd.Series
        Gene -> score (typically log2 fold change)
    gene_sets : Dict[str, List[str]]
        Pathway name -> genes
    config : EnrichmentConfig, optional
        Test settings
    source : str
        Label stored in the Source column
    pathway_index : dict, optional
        Pathway name -> KEGG pathway id

    Returns
    -------
    pd.DataFrame
        Tidy enrichment table (all tested pathways)
    """
    if config is None:
        config = EnrichmentConfig()

    ranking = build_gene_ranking(ranking)

    if verbose:
        print(f"Running pre-ranked test on {len(ranking)} genes ({source})...", flush=True)

    pre_res = gp.prerank(
        rnk=ranking,
        gene_sets=gene_sets,
        permutation_num=config.permutation_num,
        min_size=config.min_size,
        max_size=config.max_size,
        seed=config.seed,
        threads=config.threads,
        outdir=None,
        no_plot=True,
        verbose=False,
    )

    tidy = tidy_prerank_results(pre_res.res2d, source, pathway_index)

    if verbose:
        n_sig = int((tidy['FDR'] <= config.fdr_cutoff).sum()) if not tidy.empty else 0
        print(f"  Tested {len(tidy)} pathways, {n_sig} with FDR ≤ {config.fdr_cutoff}", flush=True)

    return tidy


def split_by_direction(
    enrichment_df: pd.DataFrame,
    config: Optional[EnrichmentConfig] = None,
) -> Dict[str, pd.DataFrame]:
    """
    Split significant pathways into 'greater' (NES > 0) and 'less' (NES < 0).

    A pathway is significant when FDR ≤ fdr_cutoff and P_Value ≤ pvalue_cutoff.
    Each group is sorted by P_Value.
    """
    if config is None:
        config = EnrichmentConfig()

    if enrichment_df.empty:
        return {group: pd.DataFrame(columns=ENRICHMENT_COLUMNS) for group in DIRECTION_GROUPS}

    significant = enrichment_df[
        (enrichment_df['FDR'] <= config.fdr_cutoff)
        & (enrichment_df['P_Value'] <= config.pvalue_cutoff)
    ]

    return {
        'greater': significant[significant['NES'] > 0].sort_values('P_Value').reset_index(drop=True),
        'less': significant[significant['NES'] < 0].sort_values('P_Value').reset_index(drop=True),
    }


def _ranking_values(de_result) -> pd.Series:
    if isinstance(de_result, pd.Series):
        return de_result
    if isinstance(de_result, pd.DataFrame):
        return de_result['log2FoldChange']
    # DifferentialExpressionResult
    return de_result.log2_fold_changes


def fold_change_sources(de_result, fold_changes: Optional[pd.DataFrame] = None) -> Dict[str, pd.Series]:
    """
    Ranked fold-change sources in test order: DESeq2 first, then each
    precomputed column. A column whose name is already taken gets a
    " (2)", " (3)" ... suffix.
    """
    sources = {'DESeq2': _ranking_values(de_result)}
    if fold_changes is None:
        return sources
    for i, col in enumerate(fold_changes.columns):
        label = str(col)
        n = 2
        while label in sources:
            label = f'{col} ({n})'
            n += 1
        sources[label] = fold_changes.iloc[:, i]
    return sources


def run_pathway_enrichment(
    de_result,
    fold_changes: Optional[pd.DataFrame],
    gene_sets: Dict[str, List[str]],
    config: Optional[EnrichmentConfig] = None,
    pathway_index: Optional[Dict[str, Optional[str]]] = None,
    verbose: bool = True,
) -> Dict[str, Dict[str, pd.DataFrame]]:
    """
    Run the ranked KEGG test on DESeq2 fold changes and on every precomputed
    fold-change column.

    Parameters
    ----------
    de_result : DifferentialExpressionResult, pd.DataFrame or pd.Series
        DESeq2 output; the shrunk log2FoldChange is ranked
    fold_changes : pd.DataFrame, optional
        Precomputed log2 fold-change columns, one source per column
    gene_sets : Dict[str, List[str]]
        Pathway name -> genes

    Returns
    -------
    Dict[str, Dict[str, pd.DataFrame]]
        Source name -> {'all': table, 'greater': table, 'less': table}
    """
    if config is None:
        config = EnrichmentConfig()

    sources = fold_change_sources(de_result, fold_changes)

    results = {}
    for source, values in sources.items():
        if verbose:
            print(f"\n{source}:", flush=True)
        ranking = build_gene_ranking(values)
        if len(ranking) < config.min_size:
            if verbose:
                print(f"  Skipping - only {len(ranking)} ranked genes", flush=True)
            empty = pd.DataFrame(columns=ENRICHMENT_COLUMNS)
            results[source] = {'all': empty, 'greater': empty.copy(), 'less': empty.copy()}
            continue

        all_results = run_gene_set_test(
            ranking, gene_sets, config, source=source,
            pathway_index=pathway_index, verbose=verbose,
        )
        groups = split_by_direction(all_results, config)
        if verbose:
            print(
                f"  greater: {len(groups['greater'])} pathways, less: {len(groups['less'])} pathways",
                flush=True,
            )
        results[source] = {'all': all_results, **groups}

    return results


# =============================================================================
# ENRICHR API FUNCTIONS
# =============================================================================

ENRICHR_URL = 'https://maayanlab.cloud/Enrichr'

# Positions in an Enrichr result row
ENRICHR_FIELDS = {
    'Term': 1,
    'P_Value': 2,
    'Z_Score': 3,
    'Combined_Score': 4,
    'Adj_P_Value': 6,
}


def _clean_gene_list(gene_list: List[str]) -> List[str]:
    genes = (str(g).strip() for g in gene_list if pd.notna(g))
    return [g for g in genes if g and g.lower() not in ('nan', 'none')]


def query_enrichr(
    gene_list: List[str],
    config: Optional[EnrichmentConfig] = None,
    description: str = 'GF vs SPF gene list',
) -> Dict[str, List]:
    """
    Submit a gene list to Enrichr and fetch results for each configured library.

    Parameters
    ----------
    gene_list : List[str]
        Mouse gene symbols (e.g. ['Reg3g', 'Cyp4a10', 'Ang4'])
    config : EnrichmentConfig, optional
        Libraries, minimum list size, timeout and delay between requests
    description : str
        Label stored with the submitted list

    Returns
    -------
    Dict[str, List]
        Library -> raw result rows
        ([rank, term, p, z, combined score, genes, adjusted p]).
        Empty when the list is too short or the submission fails; a failing
        library is reported and left out.

    Notes
    -----
    Enrichr: Chen EY et al. (2013) BMC Bioinformatics; Kuleshov MV et al.
    (2016) Nucleic Acids Research.
    """
    if config is None:
        config = EnrichmentConfig()

    genes = _clean_gene_list(gene_list)
    if len(genes) < config.min_genes:
        print(f"  Warning: {len(genes)} genes submitted, Enrichr needs at least {config.min_genes}")
        return {}

    try:
        response = requests.post(
            f'{ENRICHR_URL}/addList',
            files={'list': (None, '\n'.join(genes)), 'description': (None, description)},
            timeout=config.timeout,
        )
        if not response.ok:
            print(f"  Error: Enrichr rejected the gene list (HTTP {response.status_code})")
            return {}
        list_id = response.json()['userListId']
    except requests.exceptions.Timeout:
        print("  Error: Enrichr did not answer in time")
        return {}
    except requests.exceptions.ConnectionError:
        print("  Error: Enrichr is unreachable (check network access)")
        return {}
    except (ValueError, KeyError) as e:
        print(f"  Error: Unexpected Enrichr response ({e})")
        return {}

    results = {}
    for library in config.enrichr_libraries:
        time.sleep(config.rate_limit_delay)
        try:
            response = requests.get(
                f'{ENRICHR_URL}/enrich',
                params={'userListId': list_id, 'backgroundType': library},
                timeout=config.timeout,
            )
            payload = response.json() if response.ok else {}
        except (requests.exceptions.RequestException, ValueError) as e:
            print(f"  Error: {library} query failed ({e})")
            continue
        if library in payload:
            results[library] = payload[library]

    return results


def parse_enrichr_results(
    results: Dict[str, List],
    config: Optional[EnrichmentConfig] = None
) -> pd.DataFrame:
    """
    Flatten raw Enrichr rows into one table.

    The first config.top_n rows of each library are kept when their p-value
    passes config.pvalue_cutoff. Columns: Library, Term, P_Value, Adj_P_Value,
    Z_Score, Combined_Score, Genes (';'-joined), N_Genes. Sorted by
    Combined_Score, highest first.
    """
    if config is None:
        config = EnrichmentConfig()

    rows = []
    for library, terms in results.items():
        for term in terms[:config.top_n]:
            if len(term) < 7 or term[2] > config.pvalue_cutoff:
                continue
            row = {'Library': library}
            row.update({name: term[i] for name, i in ENRICHR_FIELDS.items()})
            genes = term[5] if isinstance(term[5], list) else [term[5]]
            row['Genes'] = ';'.join(str(g) for g in genes)
            row['N_Genes'] = len(genes)
            rows.append(row)

    if not rows:
        return pd.DataFrame()

    columns = ['Library', 'Term', 'P_Value', 'Adj_P_Value', 'Z_Score', 'Combined_Score', 'Genes', 'N_Genes']
    table = pd.DataFrame(rows)[columns]
    return table.sort_values('Combined_Score', ascending=False).reset_index(drop=True)


def run_enrichment_analysis(
    gene_list: List[str],
    config: Optional[EnrichmentConfig] = None,
    description: str = 'GF vs SPF gene list',
    verbose: bool = True
) -> pd.DataFrame:
    """Over-representation analysis of one gene list (query + parse)."""
    if config is None:
        config = EnrichmentConfig()

    if verbose:
        print(f"Querying Enrichr with {len(_clean_gene_list(gene_list))} genes...", flush=True)

    raw_results = query_enrichr(gene_list, config, description)
    table = parse_enrichr_results(raw_results, config) if raw_results else pd.DataFrame()

    if verbose:
        if table.empty:
            print("  No terms passed the p-value cutoff", flush=True)
        else:
            print(f"  ✓ {len(table)} terms across {table['Library'].nunique()} libraries", flush=True)

    return table


def run_differential_enrichment(
    results_df: pd.DataFrame,
    logfc_column: str = 'log2FoldChange',
    pvalue_column: str = 'padj',
    logfc_threshold: float = 1.0,
    pvalue_threshold: float = 0.05,
    config: Optional[EnrichmentConfig] = None,
    verbose: bool = True
) -> Dict[str, pd.DataFrame]:
    """
    Enrichr over-representation of the genes higher and lower in GF.

    Genes are read from the results index; NaN adjusted p-values never pass.

    Returns
    -------
    Dict[str, pd.DataFrame]
        Keys 'Upregulated' and 'Downregulated'
    """
    if config is None:
        config = EnrichmentConfig()

    passing = results_df[pvalue_column] < pvalue_threshold
    lfc = results_df[logfc_column]
    gene_lists = {
        'Upregulated': results_df.index[passing & (lfc > logfc_threshold)].tolist(),
        'Downregulated': results_df.index[passing & (lfc < -logfc_threshold)].tolist(),
    }

    if verbose:
        print(f"Genes for over-representation: {len(gene_lists['Upregulated'])} up, "
              f"{len(gene_lists['Downregulated'])} down")

    enrichment_results = {}
    for label, genes in gene_lists.items():
        if verbose:
            print(f"\n{label}:", flush=True)
        if len(genes) < config.min_genes:
            if verbose:
                print(f"  Skipping - {len(genes)} genes, need {config.min_genes}", flush=True)
            enrichment_results[label] = pd.DataFrame()
            continue
        enrichment_results[label] = run_enrichment_analysis(
            genes, config, description=f'{label} in GF', verbose=verbose
        )

    return enrichment_results


# =============================================================================
# VISUALIZATION FUNCTIONS
# =============================================================================

def _truncate(label: str, length: int = 55) -> str:
    return label[:length] + '...' if len(label) > length else label


def _term_bars(ax, terms, scores, counts, colors):
    """Draw one bar per term, labelled with its gene count at the bar end."""
    positions = np.arange(len(terms))
    ax.barh(positions, scores, color=colors, alpha=0.8)
    ax.set_yticks(positions)
    ax.set_yticklabels([_truncate(t) for t in terms], fontsize=9)
    span = max(float(np.abs(scores).max()), 1e-9)
    for y, score, n in zip(positions, scores, counts):
        ax.text(score + np.sign(score or 1) * 0.01 * span, y, f'({n})', va='center',
                ha='left' if score >= 0 else 'right', fontsize=8, color='gray')


def plot_enrichment_barplot(
    enrichment_df: pd.DataFrame,
    title: str = 'KEGG Pathway Enrichment',
    top_n: int = 15,
    figsize: Optional[Tuple[int, int]] = None,
) -> Optional[Figure]:
    """
    Horizontal bar plot of NES for the top pathways.

    Bars are coloured by direction (greater = red, less = blue) and annotated
    with the number of leading-edge genes.
    """
    if enrichment_df.empty:
        print(f"  No significant enrichment results for: {title}")
        return None

    plot_df = enrichment_df.head(top_n).sort_values('NES')

    fig, ax = plt.subplots(figsize=figsize or (12, 8))
    _term_bars(ax, plot_df['Term'], plot_df['NES'].to_numpy(), plot_df['N_Lead_Genes'],
               [DIRECTION_COLORS.get(d, 'gray') for d in plot_df['Direction']])
    ax.axvline(0, color='black', linewidth=0.8)
    ax.set_xlabel('Normalized Enrichment Score', fontsize=12)
    ax.set_title(title, fontsize=14, fontweight='bold')

    shown = set(plot_df['Direction'])
    handles = [Patch(facecolor=c, alpha=0.8, label=d) for d, c in DIRECTION_COLORS.items() if d in shown]
    if handles:
        ax.legend(handles=handles, loc='lower right', fontsize=8)

    plt.tight_layout()
    return fig


def plot_enrichr_barplot(
    enrichment_df: pd.DataFrame,
    title: str = 'Over-representation Analysis',
    top_n: int = 15,
    figsize: Optional[Tuple[int, int]] = None,
    library_colors: Optional[Dict[str, str]] = None
) -> Optional[Figure]:
    """Enrichr combined scores for the top terms, one colour per library."""
    if enrichment_df.empty:
        print(f"  Nothing to plot for: {title}")
        return None

    palette = LIBRARY_COLORS if library_colors is None else library_colors
    plot_df = enrichment_df.head(top_n).sort_values('Combined_Score')

    fig, ax = plt.subplots(figsize=figsize or (12, 8))
    _term_bars(ax, plot_df['Term'], plot_df['Combined_Score'].to_numpy(), plot_df['N_Genes'],
               [palette.get(lib, 'gray') for lib in plot_df['Library']])
    ax.set_xlabel('Combined Score', fontsize=12)
    ax.set_title(title, fontsize=14, fontweight='bold')

    libraries = list(dict.fromkeys(plot_df['Library']))
    ax.legend(handles=[Patch(facecolor=palette.get(lib, 'gray'), alpha=0.8, label=lib.replace('_', ' '))
                       for lib in reversed(libraries)],
              loc='lower right', fontsize=8)

    plt.tight_layout()
    return fig


def _lead_genes(row) -> List[str]:
    return [g for g in str(row['Lead_Genes']).split(';') if g]


def plot_enrichment_network(
    enrichment_df: pd.DataFrame,
    log2_fold_changes: pd.Series,
    title: str = 'Gene-Pathway Network',
    config: Optional[EnrichmentConfig] = None,
    figsize: Optional[Tuple[int, int]] = None,
) -> Optional[Figure]:
    """
    Gene-concept network of the top pathways and their leading-edge genes.

    Pathway nodes are sized by set size; gene nodes are coloured by log2 fold
    change. Genes shared between pathways connect them.
    """
    if config is None:
        config = EnrichmentConfig()

    if enrichment_df.empty:
        print(f"  No pathways to draw for: {title}")
        return None

    if figsize is None:
        figsize = config.network_figsize

    top = enrichment_df.head(config.network_max_pathways)

    G = nx.Graph()
    for _, row in top.iterrows():
        term = row['Term']
        G.add_node(term, kind='pathway', size=row.get('Set_Size', np.nan))
        genes = _lead_genes(row)
        if genes:
            ranked = log2_fold_changes.reindex(genes).abs().sort_values(ascending=False)
            genes = ranked.index[:config.network_max_genes_per_pathway].tolist()
        for gene in genes:
            if gene not in G:
                G.add_node(gene, kind='gene')
            G.add_edge(term, gene)

    if G.number_of_edges() == 0:
        print(f"  No leading-edge genes to draw for: {title}")
        return None

    pos = nx.spring_layout(G, k=1.5 / np.sqrt(G.number_of_nodes()), iterations=100, seed=config.seed)

    pathway_nodes = [n for n, d in G.nodes(data=True) if d['kind'] == 'pathway']
    gene_nodes = [n for n, d in G.nodes(data=True) if d['kind'] == 'gene']

    gene_lfc = log2_fold_changes.reindex(gene_nodes).fillna(0.0).values
    limit = max(float(np.nanmax(np.abs(gene_lfc))) if len(gene_lfc) else 1.0, 1e-6)

    fig, ax = plt.subplots(figsize=figsize)

    nx.draw_networkx_edges(G, pos, alpha=0.3, ax=ax)

    sizes = [G.nodes[n].get('size', np.nan) for n in pathway_nodes]
    sizes = [300 + 10 * s if pd.notna(s) else 400 for s in sizes]
    nx.draw_networkx_nodes(G, pos, nodelist=pathway_nodes, node_color='#f0c05a',
                           node_size=sizes, alpha=0.9, edgecolors='black', ax=ax)

    gene_artist = nx.draw_networkx_nodes(
        G, pos, nodelist=gene_nodes, node_color=gene_lfc, cmap='RdBu_r',
        vmin=-limit, vmax=limit, node_size=120, alpha=0.9, ax=ax,
    )

    nx.draw_networkx_labels(G, pos, {n: _truncate(n, 35) for n in pathway_nodes},
                            font_size=9, font_weight='bold', ax=ax)
    nx.draw_networkx_labels(G, pos, {n: n for n in gene_nodes}, font_size=7, ax=ax)

    cbar = plt.colorbar(gene_artist, ax=ax, shrink=0.5, pad=0.02)
    cbar.set_label('log2 fold change', fontsize=10)

    ax.legend(handles=[Patch(facecolor='#f0c05a', edgecolor='black', label='Pathway')],
              loc='upper right')
    ax.set_title(f"{title}\n({len(pathway_nodes)} pathways, {len(gene_nodes)} genes)",
                 fontsize=14, fontweight='bold')
    ax.axis('off')

    plt.tight_layout()
    return fig


def plot_enrichment_ridgeplot(
    enrichment_df: pd.DataFrame,
    log2_fold_changes: pd.Series,
    title: str = 'Leading-edge Fold Change Distributions',
    top_n: int = 15,
    figsize: Optional[Tuple[int, int]] = None,
) -> Optional[Figure]:
    """
    Ridge plot of the log2 fold changes of each pathway's leading-edge genes.

    Ridges are coloured by FDR (darker = more significant). Pathways with
    fewer than two measured leading-edge genes are skipped.
    """
    if enrichment_df.empty:
        print(f"  No pathways to draw for: {title}")
        return None

    if figsize is None:
        figsize = (10, 10)

    distributions = []
    for _, row in enrichment_df.head(top_n).iterrows():
        values = log2_fold_changes.reindex(_lead_genes(row)).dropna().values
        if len(values) >= 2 and np.ptp(values) > 0:
            distributions.append((row['Term'], row['FDR'], values))

    if not distributions:
        print(f"  Not enough leading-edge genes to draw: {title}")
        return None

    all_values = np.concatenate([v for _, _, v in distributions])
    pad = 0.1 * np.ptp(all_values) if np.ptp(all_values) > 0 else 1.0
    grid = np.linspace(all_values.min() - pad, all_values.max() + pad, 300)

    fdrs = np.array([f for _, f, _ in distributions], dtype=float)
    norm = plt.Normalize(vmin=0, vmax=max(float(np.nanmax(fdrs)), 1e-3))
    cmap = plt.get_cmap('viridis')

    fig, ax = plt.subplots(figsize=figsize)

    spacing = 1.0
    for i, (term, fdr, values) in enumerate(reversed(distributions)):
        density = gaussian_kde(values)(grid)
        density = density / density.max() * spacing * 0.9
        baseline = i * spacing
        color = cmap(norm(fdr if pd.notna(fdr) else 0.0))
        ax.fill_between(grid, baseline, baseline + density, color=color, alpha=0.8)
        ax.plot(grid, baseline + density, color='black', linewidth=0.6)

    ax.set_yticks([i * spacing for i in range(len(distributions))])
    ax.set_yticklabels([_truncate(t, 45) for t, _, _ in reversed(distributions)], fontsize=9)
    ax.axvline(0, color='gray', linestyle='--', linewidth=0.8)
    ax.set_xlabel('log2 fold change', fontsize=12)
    ax.set_title(title, fontsize=14, fontweight='bold')

    sm = plt.cm.ScalarMappable(cmap=cmap, norm=norm)
    sm.set_array([])
    cbar = plt.colorbar(sm, ax=ax, shrink=0.5, pad=0.02)
    cbar.set_label('FDR', fontsize=10)

    plt.tight_layout()
    return fig


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================

def merge_enrichment_results(
    enrichment_dict: Dict[str, pd.DataFrame],
    add_group_column: bool = True
) -> pd.DataFrame:
    """Stack per-group tables (e.g. greater/less) into one, tagging each row with its group."""
    frames = [
        df.assign(Group=group) if add_group_column else df
        for group, df in enrichment_dict.items()
        if not df.empty
    ]
    return pd.concat(frames, ignore_index=True) if frames else pd.DataFrame()
