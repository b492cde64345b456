"""
Pytest configuration and fixtures for transcriptomics_toolkit tests
"""

import io

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt  # noqa: E402
import numpy as np  # noqa: E402
import pandas as pd  # noqa: E402
import pytest  # noqa: E402

from transcriptomics_toolkit.data_import import build_sample_metadata  # noqa: E402
from transcriptomics_toolkit.differential_expression import (  # noqa: E402
    DESeqConfig,
    run_differential_expression,
)
from transcriptomics_toolkit.enrichment import EnrichmentConfig  # noqa: E402


GF_SAMPLES = ["GF_1", "GF_2", "GF_3", "GF_4"]
SPF_SAMPLES = ["SPF_1", "SPF_2", "SPF_3", "SPF_4"]
N_GENES = 200
UP_GENES = [f"Gene{i:03d}" for i in range(0, 10)]
DOWN_GENES = [f"Gene{i:03d}" for i in range(10, 20)]
LOW_COUNT_GENES = [f"Gene{i:03d}" for i in range(190, 200)]


def pytest_addoption(parser):
    parser.addoption(
        "--run-network",
        action="store_true",
        default=False,
        help="run tests that call the KEGG or Enrichr web services",
    )


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "network: mark test as requiring network access (skip by default)"
    )


def pytest_collection_modifyitems(config, items):
    """Skip network tests unless --run-network is passed"""
    if config.getoption("--run-network"):
        return

    skip_network = pytest.mark.skip(reason="need --run-network option to run")
    for item in items:
        if "network" in item.keywords:
            item.add_marker(skip_network)


def make_synthetic_counts(seed=42):
    """
    Negative binomial counts for 200 genes x 8 samples.

    Gene000-Gene009 are 8x higher in GF, Gene010-Gene019 8x lower, and
    Gene190-Gene199 have almost no reads.
    """
    rng = np.random.default_rng(seed)
    genes = [f"Gene{i:03d}" for i in range(N_GENES)]
    samples = GF_SAMPLES + SPF_SAMPLES

    base_means = np.exp(rng.normal(5.5, 1.0, N_GENES))
    base_means[190:] = 0.05

    true_lfc = np.zeros(N_GENES)
    true_lfc[0:10] = 3.0
    true_lfc[10:20] = -3.0

    dispersion = 0.05
    size = 1.0 / dispersion
    library_factors = rng.uniform(0.8, 1.25, len(samples))

    counts = np.zeros((N_GENES, len(samples)), dtype=np.int64)
    for j, sample in enumerate(samples):
        # split the fold change symmetrically between the two groups
        shift = 0.5 if sample.startswith("GF") else -0.5
        mu = base_means * np.power(2.0, shift * true_lfc) * library_factors[j]
        counts[:, j] = rng.negative_binomial(size, size / (size + mu))

    table = pd.DataFrame(counts, index=pd.Index(genes, name="Gene"), columns=samples)
    return table, pd.Series(true_lfc, index=table.index, name="true_lfc")


@pytest.fixture
def synthetic_counts():
    """Genes x samples raw counts with planted GF/SPF differences"""
    counts, _ = make_synthetic_counts()
    return counts


@pytest.fixture
def true_log2_fold_changes():
    _, true_lfc = make_synthetic_counts()
    return true_lfc


@pytest.fixture
def planted_genes():
    return {"up": list(UP_GENES), "down": list(DOWN_GENES), "low": list(LOW_COUNT_GENES)}


@pytest.fixture
def sample_metadata():
    """Sample metadata for the synthetic GF/SPF samples"""
    conditions = {s: "GF" for s in GF_SAMPLES}
    conditions.update({s: "SPF" for s in SPF_SAMPLES})
    return build_sample_metadata(conditions)


@pytest.fixture
def fold_change_table(true_log2_fold_changes):
    """Precomputed fold-change columns as they appear in the spreadsheet"""
    rng = np.random.default_rng(7)
    noisy = true_log2_fold_changes + rng.normal(0, 0.3, len(true_log2_fold_changes))
    return pd.DataFrame({
        "log2FC_published": noisy.values,
        "Fold Change (edgeR)": np.power(2.0, noisy.values),
    }, index=true_log2_fold_changes.index)


@pytest.fixture
def count_spreadsheet(synthetic_counts, fold_change_table):
    """Spreadsheet layout: gene column, count columns, fold-change columns"""
    table = synthetic_counts.copy()
    for col in fold_change_table.columns:
        table[col] = fold_change_table[col]
    return table.reset_index()


@pytest.fixture
def count_csv_file(tmp_path, count_spreadsheet):
    path = tmp_path / "counts.csv"
    count_spreadsheet.to_csv(path, index=False)
    return str(path)


@pytest.fixture
def count_xlsx_file(tmp_path, count_spreadsheet):
    path = tmp_path / "counts.xlsx"
    count_spreadsheet.to_excel(path, index=False, sheet_name="counts")
    return str(path)


@pytest.fixture
def deseq_config():
    config = DESeqConfig()
    config.alpha = 0.05
    config.lfc_threshold = 1.0
    return config


@pytest.fixture(scope="session")
def de_result():
    """DESeq2 fitted once on the synthetic counts and shared across tests"""
    counts, _ = make_synthetic_counts()
    counts = counts.loc[counts.sum(axis=1) >= 10]
    conditions = {s: "GF" for s in GF_SAMPLES}
    conditions.update({s: "SPF" for s in SPF_SAMPLES})
    metadata = build_sample_metadata(conditions)
    return run_differential_expression(counts, metadata, DESeqConfig())


@pytest.fixture
def kegg_gene_sets():
    """Gene sets with one up-shifted, one down-shifted and several null pathways"""
    rng = np.random.default_rng(3)
    null_pool = [f"Gene{i:03d}" for i in range(20, 190)]

    gene_sets = {
        "Retinol metabolism": UP_GENES + list(rng.choice(null_pool, 5, replace=False)),
        "Cell cycle": DOWN_GENES + list(rng.choice(null_pool, 5, replace=False)),
    }
    for k in range(6):
        gene_sets[f"Null pathway {k + 1}"] = list(rng.choice(null_pool, 15, replace=False))
    return gene_sets


@pytest.fixture
def enrichment_config():
    """Fast settings for the permutation test"""
    return EnrichmentConfig(
        permutation_num=200,
        min_size=5,
        max_size=500,
        seed=1,
        fdr_cutoff=0.25,
        pvalue_cutoff=0.05,
        rate_limit_delay=0,
        timeout=5,
    )


@pytest.fixture
def kgml_text():
    """Minimal KGML with two gene boxes, a compound and a map link"""
    return """<?xml version="1.0"?>
<!DOCTYPE pathway SYSTEM "https://www.kegg.jp/kegg/xml/KGML_v0.7.2_.dtd">
<pathway name="path:mmu00830" org="mmu" number="00830"
         title="Retinol metabolism"
         image="https://www.kegg.jp/kegg/pathway/mmu/mmu00830.png"
         link="https://www.kegg.jp/kegg-bin/show_pathway?mmu00830">
    <entry id="10" name="mmu:13076 mmu:13077" type="gene"
        link="https://www.kegg.jp/dbget-bin/www_bget?mmu:13076+mmu:13077">
        <graphics name="Gene000, Cyp1a1, Cyp1a2..." fgcolor="#000000" bgcolor="#BFFFBF"
             type="rectangle" x="150" y="100" width="46" height="17"/>
    </entry>
    <entry id="11" name="mmu:19682" type="gene"
        link="https://www.kegg.jp/dbget-bin/www_bget?mmu:19682">
        <graphics name="Gene010" fgcolor="#000000" bgcolor="#BFFFBF"
             type="rectangle" x="250" y="200" width="46" height="17"/>
    </entry>
    <entry id="12" name="mmu:99999" type="gene">
        <graphics name="Unmeasured1" fgcolor="#000000" bgcolor="#BFFFBF"
             type="rectangle" x="300" y="50" width="46" height="17"/>
    </entry>
    <entry id="20" name="cpd:C00473" type="compound">
        <graphics name="C00473" fgcolor="#000000" bgcolor="#FFFFFF"
             type="circle" x="200" y="150" width="8" height="8"/>
    </entry>
    <entry id="30" name="path:mmu00010" type="map">
        <graphics name="Glycolysis / Gluconeogenesis" fgcolor="#000000" bgcolor="#FFFFFF"
             type="roundrectangle" x="350" y="250" width="120" height="25"/>
    </entry>
</pathway>
"""


@pytest.fixture
def pathway_png_bytes():
    """A blank 400 x 300 PNG standing in for a KEGG map image"""
    buffer = io.BytesIO()
    plt.imsave(buffer, np.ones((300, 400, 3)), format="png")
    return buffer.getvalue()


@pytest.fixture
def kegg_pathway_list_text():
    """Body of GET /list/pathway/mmu"""
    return (
        "mmu00830\tRetinol metabolism - Mus musculus (house mouse)\n"
        "mmu04110\tCell cycle - Mus musculus (house mouse)\n"
        "mmu04010\tMAPK signaling pathway - Mus musculus (house mouse)\n"
    )
