"""
KEGG Pathway Diagram Module

Downloads KEGG pathway maps through the KEGG REST API and paints the gene
boxes of each map with log2 fold changes, the way pathview renders GAGE
results: green for lower expression, red for higher, grey when the gene was
not measured.

API Documentation: https://www.kegg.jp/kegg/rest/keggapi.html
"""

import os
import re
import time
import xml.etree.ElementTree as ET
from io import BytesIO
from typing import Dict, List, Optional

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
import matplotlib.image as mpimg
from matplotlib.colors import LinearSegmentedColormap, Normalize, to_hex
from matplotlib.patches import Rectangle
import requests


KEGG_REST_URL = 'https://rest.kegg.jp'

UNMEASURED_COLOR = '#bfbfbf'

# Low values green, high values red, through white
FOLD_CHANGE_CMAP = LinearSegmentedColormap.from_list(
    'kegg_fold_change', ['#00a000', '#ffffff', '#e00000']
)


def _normalize_term(term: str) -> str:
    return re.sub(r'[^a-z0-9]', '', str(term).lower())


def list_kegg_pathways(organism: str = 'mmu', timeout: int = 30) -> Dict[str, str]:
    """
    List the KEGG pathways of an organism.

    Returns
    -------
    Dict[str, str]
        Pathway id (e.g. 'mmu04110') -> pathway name without the organism
        suffix (e.g. 'Cell cycle')

    Raises
    ------
    requests.HTTPError
        When KEGG answers with an error status
    """
    response = requests.get(f'{KEGG_REST_URL}/list/pathway/{organism}', timeout=timeout)
    response.raise_for_status()

    pathways = {}
    for line in response.text.splitlines():
        if not line.strip() or '\t' not in line:
            continue
        pathway_id, name = line.split('\t', 1)
        pathway_id = pathway_id.replace('path:', '').strip()
        # 'Cell cycle - Mus musculus (house mouse)' -> 'Cell cycle'
        name = re.sub(r'\s+-\s+[^-]+\([^)]*\)\s*$', '', name).strip()
        pathways[pathway_id] = name

    return pathways


def resolve_pathway_ids(
    terms: List[str],
    pathway_index: Dict[str, str],
) -> Dict[str, Optional[str]]:
    """
    Map gene-set term names to KEGG pathway ids.

    Matching ignores case and punctuation. Terms that already carry an id
    ('Cell cycle hsa04110' style) use it directly. Unmatched terms map to None.
    """
    by_name = {_normalize_term(name): pid for pid, name in pathway_index.items()}

    resolved = {}
    for term in terms:
        embedded = re.search(r'\b([a-z]{2,4}\d{5})\b', str(term))
        if embedded and embedded.group(1) in pathway_index:
            resolved[term] = embedded.group(1)
            continue
        stripped = re.sub(r'\s*\b[a-z]{2,4}\d{5}\b\s*$', '', str(term))
        resolved[term] = by_name.get(_normalize_term(stripped))

    return resolved


def fetch_kgml(pathway_id: str, timeout: int = 30) -> str:
    """Download the KGML (XML) description of a pathway."""
    response = requests.get(f'{KEGG_REST_URL}/get/{pathway_id}/kgml', timeout=timeout)
    response.raise_for_status()
    return response.text


def fetch_pathway_image(pathway_id: str, timeout: int = 30) -> bytes:
    """Download the PNG diagram of a pathway."""
    response = requests.get(f'{KEGG_REST_URL}/get/{pathway_id}/image', timeout=timeout)
    response.raise_for_status()
    return response.content


def parse_kgml_gene_boxes(kgml_text: str) -> List[Dict]:
    """
    Extract the gene boxes drawn on a KEGG pathway map.

    Only entries with type="gene" and rectangle graphics are kept. KGML
    coordinates give the box centre.

    Returns
    -------
    List[Dict]
        One dict per box with keys name, symbols, x, y, width, height
    """
    root = ET.fromstring(kgml_text)

    boxes = []
    for entry in root.iter('entry'):
        if entry.get('type') != 'gene':
            continue
        for graphics in entry.findall('graphics'):
            if graphics.get('type', 'rectangle') != 'rectangle':
                continue
            label = graphics.get('name', '')
            symbols = [s.strip().rstrip('.') for s in label.split(',') if s.strip().rstrip('.')]
            boxes.append({
                'name': entry.get('name', ''),
                'symbols': symbols,
                'x': float(graphics.get('x', 0)),
                'y': float(graphics.get('y', 0)),
                'width': float(graphics.get('width', 0)),
                'height': float(graphics.get('height', 0)),
            })

    return boxes


def _box_value(symbols: List[str], lookup: Dict[str, float]) -> float:
    values = [lookup[s.upper()] for s in symbols if s.upper() in lookup]
    return float(np.mean(values)) if values else np.nan


def _fold_change_lookup(fold_changes: pd.Series) -> Dict[str, float]:
    lookup = {}
    for gene, value in fold_changes.dropna().items():
        lookup.setdefault(str(gene).upper(), float(value))
    return lookup


def render_pathway_diagram(
    pathway_id: str,
    fold_changes: pd.Series,
    output_file: str,
    limit: float = 1.0,
    kgml_text: Optional[str] = None,
    image_bytes: Optional[bytes] = None,
    timeout: int = 30,
) -> Dict:
    """
    Paint a KEGG pathway map with log2 fold changes and save it as PNG.

    Parameters
    ----------
    pathway_id : str
        KEGG pathway id, e.g. 'mmu04110'
    fold_changes : pd.Series
        Gene symbol -> log2 fold change
    output_file : str
        PNG path
    limit : float
        Colour scale runs from -limit (green) to +limit (red); larger values
        are clipped
    kgml_text, image_bytes : optional
        Pre-downloaded KGML and image; fetched from KEGG when omitted

    Returns
    -------
    Dict
        output_file, n_boxes and n_measured (boxes with a fold change)
    """
    if kgml_text is None:
        kgml_text = fetch_kgml(pathway_id, timeout=timeout)
    if image_bytes is None:
        image_bytes = fetch_pathway_image(pathway_id, timeout=timeout)

    boxes = parse_kgml_gene_boxes(kgml_text)
    image = mpimg.imread(BytesIO(image_bytes), format='png')
    height, width = image.shape[:2]

    lookup = _fold_change_lookup(fold_changes)
    norm = Normalize(vmin=-limit, vmax=limit, clip=True)

    dpi = 100
    legend_height = 0.6  # inches below the map for the colour bar
    fig_height = height / dpi + legend_height
    legend_frac = legend_height / fig_height

    fig = plt.figure(figsize=(width / dpi, fig_height), dpi=dpi)
    try:
        ax = fig.add_axes([0, legend_frac, 1, 1 - legend_frac])
        ax.imshow(image)
        ax.set_xlim(0, width)
        ax.set_ylim(height, 0)
        ax.axis('off')

        n_measured = 0
        for box in boxes:
            value = _box_value(box['symbols'], lookup)
            if np.isnan(value):
                color = UNMEASURED_COLOR
            else:
                color = to_hex(FOLD_CHANGE_CMAP(norm(value)))
                n_measured += 1
            ax.add_patch(Rectangle(
                (box['x'] - box['width'] / 2, box['y'] - box['height'] / 2),
                box['width'], box['height'],
                facecolor=color, edgecolor='black', linewidth=0.5, zorder=2,
            ))
            if box['symbols']:
                ax.text(box['x'], box['y'], box['symbols'][0], ha='center', va='center',
                        fontsize=5, zorder=3)

        cax = fig.add_axes([0.35, legend_frac * 0.55, 0.3, legend_frac * 0.25])
        sm = plt.cm.ScalarMappable(cmap=FOLD_CHANGE_CMAP, norm=norm)
        sm.set_array([])
        cbar = fig.colorbar(sm, cax=cax, orientation='horizontal')
        cbar.set_label('log2 fold change', fontsize=7)
        cbar.ax.tick_params(labelsize=6)

        fig.savefig(output_file, dpi=dpi)
    finally:
        plt.close(fig)

    return {'output_file': output_file, 'n_boxes': len(boxes), 'n_measured': n_measured}


def write_pathway_gene_table(
    pathway_genes: List[str],
    fold_changes: pd.Series,
    output_file: str,
) -> pd.DataFrame:
    """
    Write the genes of a pathway with their fold changes as tab-separated text.

    Measured genes come first, sorted by decreasing log2 fold change.
    """
    lookup = _fold_change_lookup(fold_changes)
    table = pd.DataFrame({
        'Gene': list(dict.fromkeys(pathway_genes)),
    })
    table['log2FoldChange'] = [lookup.get(g.upper(), np.nan) for g in table['Gene']]
    table['Measured'] = table['log2FoldChange'].notna()
    table = table.sort_values(['Measured', 'log2FoldChange'], ascending=[False, False])

    table.to_csv(output_file, sep='\t', index=False, float_format='%.4f')
    return table.reset_index(drop=True)


def _safe_filename(text: str) -> str:
    return re.sub(r'[^A-Za-z0-9._-]+', '_', str(text)).strip('_')


def render_group_pathways(
    group_df: pd.DataFrame,
    fold_changes: pd.Series,
    output_dir: str,
    config=None,
    max_pathways: Optional[int] = None,
    gene_sets: Optional[Dict[str, List[str]]] = None,
) -> List[Dict]:
    """
    Write a gene table and a coloured diagram for each pathway of one group.

    Parameters
    ----------
    group_df : pd.DataFrame
        Enrichment table of a 'greater' or 'less' group
    fold_changes : pd.Series
        Gene symbol -> log2 fold change used for colouring
    output_dir : str
        Destination directory (created if needed)
    config : EnrichmentConfig, optional
        Supplies timeout, colour limit and rate-limit delay
    max_pathways : int, optional
        Number of pathways to render (default config.max_pathways)
    gene_sets : dict, optional
        Full gene set members for the text tables; leading-edge genes are
        used when omitted

    Returns
    -------
    List[Dict]
        One record per rendered pathway. Pathways without a KEGG id, or whose
        download fails, are reported and skipped.
    """
    if config is None:
        from .enrichment import EnrichmentConfig
        config = EnrichmentConfig()
    if max_pathways is None:
        max_pathways = config.max_pathways

    if group_df.empty:
        return []

    os.makedirs(output_dir, exist_ok=True)

    rendered = []
    for _, row in group_df.head(max_pathways).iterrows():
        term = row['Term']
        pathway_id = row.get('Pathway_ID')
        if not isinstance(pathway_id, str) or not pathway_id:
            print(f"  Warning: No KEGG id for '{term}' - skipping diagram", flush=True)
            continue

        if gene_sets is not None and term in gene_sets:
            genes = list(gene_sets[term])
        else:
            genes = [g for g in str(row.get('Lead_Genes', '')).split(';') if g]

        stem = f"{pathway_id}.{_safe_filename(term)}"
        table_file = os.path.join(output_dir, f"{stem}.txt")
        image_file = os.path.join(output_dir, f"{stem}.png")

        write_pathway_gene_table(genes, fold_changes, table_file)

        try:
            info = render_pathway_diagram(
                pathway_id, fold_changes, image_file,
                limit=config.pathway_color_limit, timeout=config.timeout,
            )
        except (requests.exceptions.RequestException, ET.ParseError, ValueError, OSError) as e:
            print(f"  Warning: Could not render {pathway_id} ({term}): {e}", flush=True)
            rendered.append({'Term': term, 'Pathway_ID': pathway_id,
                             'table_file': table_file, 'image_file': None})
            continue

        print(f"  ✓ {pathway_id} {term}: {info['n_measured']}/{info['n_boxes']} boxes coloured", flush=True)
        rendered.append({'Term': term, 'Pathway_ID': pathway_id,
                         'table_file': table_file, 'image_file': image_file})
        time.sleep(config.rate_limit_delay)

    return rendered
