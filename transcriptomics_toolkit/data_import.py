"""
Data Import Module for Transcriptomics Analysis Toolkit

Functions for loading RNA-seq count spreadsheets and splitting them into raw
counts, precomputed fold changes and sample metadata.
"""

import pandas as pd
import numpy as np
import re
import os
from typing import Tuple, Dict, Any, Optional, List


GENE_COLUMN_CANDIDATES = ['Gene', 'gene', 'GeneID', 'gene_id', 'Symbol', 'gene_name']

DEFAULT_CONDITION_PATTERNS = {
    'GF': r'^GF',
    'SPF': r'^SPF',
}

DEFAULT_FOLD_CHANGE_PATTERN = r'(?i)(log2\s*FC|logFC|fold[\s_]*change|(^|[^A-Za-z])FC($|[^A-Za-z]))'


def load_count_spreadsheet(count_file: str, sheet_name: Any = 0,
                           gene_column: Optional[str] = None) -> pd.DataFrame:
    """
    Load a spreadsheet of per-gene counts and precomputed fold changes.

    Parameters:
    -----------
    count_file : str
        Path to an .xlsx/.xls workbook or a .csv/.tsv/.txt table
    sheet_name : str or int
        Worksheet to read from a workbook (ignored for text tables)
    gene_column : str, optional
        Column holding gene identifiers. Auto-detected when not given.

    Returns:
    --------
    pd.DataFrame
        Table indexed by gene identifier (index name 'Gene')
    """

    print("=== LOADING COUNT SPREADSHEET ===\n")

    if not os.path.exists(count_file):
        raise FileNotFoundError(f"Count file not found: {count_file}")

    extension = os.path.splitext(count_file)[1].lower()

    try:
        if extension in ('.xlsx', '.xlsm', '.xls'):
            data = pd.read_excel(count_file, sheet_name=sheet_name)
        elif extension in ('.tsv', '.txt', '.tab'):
            data = pd.read_csv(count_file, sep='\t')
        else:
            data = pd.read_csv(count_file)
    except Exception as e:
        raise ValueError(f"Error loading count file: {e}")

    print(f"✓ Loaded spreadsheet: {data.shape}")

    if gene_column is None:
        gene_column = next((c for c in GENE_COLUMN_CANDIDATES if c in data.columns), None)
        if gene_column is None:
            gene_column = data.columns[0]
            print(f"Warning: Using first column '{gene_column}' as gene identifiers")
    elif gene_column not in data.columns:
        raise ValueError(f"Gene column '{gene_column}' not found in {count_file}")

    data[gene_column] = data[gene_column].astype(str).str.strip()
    data = data.set_index(gene_column)
    data.index.name = 'Gene'

    print(f"Gene identifier column: '{gene_column}' ({len(data)} rows)")
    return data


def identify_fold_change_columns(data: pd.DataFrame,
                                 fold_change_pattern: str = DEFAULT_FOLD_CHANGE_PATTERN) -> List[str]:
    """
    Identify precomputed fold-change columns by name.

    Parameters:
    -----------
    data : pd.DataFrame
        Spreadsheet table
    fold_change_pattern : str
        Regular expression matched against column names

    Returns:
    --------
    List[str] : Fold-change column names, in spreadsheet order
    """
    fold_change_columns = [
        col for col in data.columns
        if re.search(fold_change_pattern, str(col))
        and pd.api.types.is_numeric_dtype(data[col])
    ]
    print(f"Identified {len(fold_change_columns)} fold-change columns")
    return fold_change_columns


def identify_count_columns(data: pd.DataFrame,
                           condition_patterns: Optional[Dict[str, str]] = None,
                           exclude_columns: Optional[List[str]] = None) -> Dict[str, str]:
    """
    Map raw count columns to their experimental condition.

    Parameters:
    -----------
    data : pd.DataFrame
        Spreadsheet table
    condition_patterns : Dict[str, str], optional
        Condition label -> regular expression matched against column names.
        Defaults to GF / SPF prefixes.
    exclude_columns : List[str], optional
        Columns never treated as counts (e.g. fold-change columns)

    Returns:
    --------
    Dict[str, str] : Column name -> condition label
    """
    if condition_patterns is None:
        condition_patterns = DEFAULT_CONDITION_PATTERNS
    exclude = set(exclude_columns or [])

    sample_conditions = {}
    for col in data.columns:
        if col in exclude or not pd.api.types.is_numeric_dtype(data[col]):
            continue
        for condition, pattern in condition_patterns.items():
            if re.search(pattern, str(col)):
                sample_conditions[col] = condition
                break

    counts_per_condition = pd.Series(sample_conditions).value_counts().to_dict() if sample_conditions else {}
    print(f"Identified {len(sample_conditions)} count columns: {counts_per_condition}")
    return sample_conditions


def clean_sample_names(sample_columns: List[str], common_prefix: Optional[str] = None,
                       common_suffix: Optional[str] = None) -> Dict[str, str]:
    """
    Clean sample names by removing common prefixes/suffixes.

    Parameters:
    -----------
    sample_columns : List[str]
        List of sample column names
    common_prefix : str, optional
        Common prefix to remove
    common_suffix : str, optional
        Common suffix to remove

    Returns:
    --------
    Dict[str, str] : Mapping from original to cleaned names
    """

    cleaned_names = {}

    if common_prefix is None:
        if len(sample_columns) > 1:
            prefix = os.path.commonprefix(sample_columns)
            prefix = re.sub(r'[^a-zA-Z0-9]+$', '', prefix)
            common_prefix = prefix if len(prefix) > 0 else ""
        else:
            common_prefix = ""

    if common_suffix is None:
        if len(sample_columns) > 1:
            reversed_names = [name[::-1] for name in sample_columns]
            suffix = os.path.commonprefix(reversed_names)[::-1]
            suffix = re.sub(r'^[^a-zA-Z0-9]+', '', suffix)
            common_suffix = suffix if len(suffix) > 0 else ""
        else:
            common_suffix = ""

    print(f"Removing common prefix: '{common_prefix}'")
    print(f"Removing common suffix: '{common_suffix}'")

    for original_name in sample_columns:
        cleaned_name = original_name

        if common_prefix and cleaned_name.startswith(common_prefix):
            cleaned_name = cleaned_name[len(common_prefix):]

        if common_suffix and cleaned_name.endswith(common_suffix):
            cleaned_name = cleaned_name[:-len(common_suffix)]

        cleaned_name = re.sub(r'^[^a-zA-Z0-9]+', '', cleaned_name)
        cleaned_name = re.sub(r'[^a-zA-Z0-9]+$', '', cleaned_name)

        # Never collapse a name to nothing
        cleaned_names[original_name] = cleaned_name or original_name

    if len(set(cleaned_names.values())) < len(cleaned_names):
        print("Warning: Cleaning produced duplicate sample names - keeping originals")
        return {name: name for name in sample_columns}

    return cleaned_names


def _parse_replicate(sample_name: str) -> Optional[int]:
    match = re.search(r'(\d+)\D*$', str(sample_name))
    return int(match.group(1)) if match else None


def build_sample_metadata(sample_conditions: Dict[str, str],
                          condition_column: str = 'Condition') -> pd.DataFrame:
    """
    Build the sample metadata table from a sample -> condition mapping.

    The 'Group' column mirrors the condition so the plotting helpers can
    colour samples without knowing the condition column name.
    """
    metadata = pd.DataFrame({
        condition_column: pd.Series(sample_conditions),
    })
    metadata.index.name = 'Sample'
    metadata['Group'] = metadata[condition_column]
    metadata['Replicate'] = [_parse_replicate(s) for s in metadata.index]
    return metadata


def split_count_and_fold_change_tables(
    data: pd.DataFrame,
    condition_patterns: Optional[Dict[str, str]] = None,
    fold_change_pattern: str = DEFAULT_FOLD_CHANGE_PATTERN,
    fold_change_columns: Optional[List[str]] = None,
    linear_fold_change_columns: Optional[List[str]] = None,
    condition_column: str = 'Condition',
    sample_conditions: Optional[Dict[str, str]] = None,
) -> Tuple[pd.DataFrame, pd.DataFrame, pd.DataFrame]:
    """
    Split a loaded spreadsheet into counts, fold changes and sample metadata.

    Parameters:
    -----------
    data : pd.DataFrame
        Table from load_count_spreadsheet()
    condition_patterns : Dict[str, str], optional
        Condition label -> column-name regex for count columns
    fold_change_pattern : str
        Regex used when fold_change_columns is not given
    fold_change_columns : List[str], optional
        Explicit fold-change columns
    linear_fold_change_columns : List[str], optional
        Fold-change columns stored as ratios rather than log2 values;
        they are converted with log2
    condition_column : str
        Name of the condition column in the returned metadata
    sample_conditions : Dict[str, str], optional
        Explicit column -> condition mapping; overrides pattern detection

    Returns:
    --------
    counts : pd.DataFrame
        Genes x samples raw counts
    fold_changes : pd.DataFrame
        Genes x comparisons log2 fold changes (may have no columns)
    metadata : pd.DataFrame
        Sample metadata indexed by sample name
    """

    print("=== SPLITTING COUNTS AND FOLD CHANGES ===\n")

    if fold_change_columns is None:
        fold_change_columns = identify_fold_change_columns(data, fold_change_pattern)
    else:
        missing = [c for c in fold_change_columns if c not in data.columns]
        if missing:
            raise ValueError(f"Fold-change columns not found: {missing}")

    if sample_conditions is None:
        sample_conditions = identify_count_columns(
            data, condition_patterns, exclude_columns=fold_change_columns
        )
    else:
        missing = [c for c in sample_conditions if c not in data.columns]
        if missing:
            raise ValueError(f"Sample columns not found: {missing}")

    if not sample_conditions:
        raise ValueError("No count columns matched the condition patterns")

    counts = data[list(sample_conditions.keys())].copy()

    fold_changes = data[fold_change_columns].astype(float).copy()
    for col in linear_fold_change_columns or []:
        if col in fold_changes.columns:
            values = fold_changes[col].where(fold_changes[col] > 0)
            fold_changes[col] = np.log2(values)
            print(f"  Converted '{col}' from ratio to log2 scale")

    metadata = build_sample_metadata(sample_conditions, condition_column)

    print(f"✓ Count table: {counts.shape[0]} genes x {counts.shape[1]} samples")
    print(f"✓ Fold-change table: {fold_changes.shape[1]} comparisons")
    print(f"✓ Conditions: {metadata[condition_column].value_counts().to_dict()}")

    return counts, fold_changes, metadata
