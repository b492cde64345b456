"""
Data Validation Module for Transcriptomics Analysis Toolkit

Functions for validating count tables and sample metadata before they are
handed to the model, with interpretable error messages.
"""

import pandas as pd
import numpy as np
from typing import Dict, List, Optional


class CountDataError(Exception):
    """Custom exception for invalid count tables."""
    def __init__(self, message):
        super().__init__(message)


class SampleMatchingError(Exception):
    """Custom exception for sample matching issues."""
    def __init__(self, message):
        super().__init__(message)


def validate_count_table(counts: pd.DataFrame, allow_non_integer: bool = True) -> pd.DataFrame:
    """
    Check a genes x samples count table and return it as int64.

    Parameters:
    -----------
    counts : pd.DataFrame
        Raw counts indexed by gene identifier
    allow_non_integer : bool, default True
        Round non-integer values (e.g. estimated counts) instead of failing

    Returns:
    --------
    pd.DataFrame : Validated integer counts

    Raises:
    -------
    CountDataError
        Empty table, duplicated gene identifiers, non-numeric, missing or
        negative values, or non-integer values when not allowed
    """

    if counts.empty or counts.shape[1] == 0:
        raise CountDataError("Count table is empty")

    if counts.index.duplicated().any():
        duplicates = counts.index[counts.index.duplicated()].unique().tolist()
        raise CountDataError(
            f"Found {len(duplicates)} duplicated gene identifiers: "
            f"{duplicates[:5]}{'...' if len(duplicates) > 5 else ''}"
        )

    non_numeric = [c for c in counts.columns if not pd.api.types.is_numeric_dtype(counts[c])]
    if non_numeric:
        raise CountDataError(f"Non-numeric count columns: {non_numeric}")

    if counts.isna().any().any():
        n_missing = int(counts.isna().sum().sum())
        raise CountDataError(f"Count table contains {n_missing} missing values")

    if (counts < 0).any().any():
        negative_samples = counts.columns[(counts < 0).any()].tolist()
        raise CountDataError(f"Negative counts found in samples: {negative_samples}")

    values = counts.to_numpy(dtype=float)
    if not np.all(np.equal(np.mod(values, 1), 0)):
        if not allow_non_integer:
            raise CountDataError("Count table contains non-integer values")
        print("Warning: Non-integer counts found - rounding to nearest integer")
        counts = counts.round()

    return counts.astype(np.int64)


def validate_sample_metadata(
    counts: pd.DataFrame,
    metadata: pd.DataFrame,
    condition_column: str = 'Condition',
    levels: Optional[List[str]] = None,
    min_replicates: int = 2,
    raise_on_error: bool = True,
    verbose: bool = True
) -> Dict:
    """
    Validate consistency between the count columns and the sample metadata.

    Parameters:
    -----------
    counts : pd.DataFrame
        Genes x samples counts
    metadata : pd.DataFrame
        Sample metadata indexed by sample name
    condition_column : str
        Column holding the condition label
    levels : List[str], optional
        Condition levels that must be present (e.g. ['GF', 'SPF'])
    min_replicates : int
        Minimum number of samples per required level
    raise_on_error : bool, default True
        Raise SampleMatchingError when validation fails
    verbose : bool, default True
        Whether to print detailed validation results

    Returns:
    --------
    Dict containing validation results and diagnostic information
    """

    results = {
        'is_valid': True,
        'errors': [],
        'warnings': [],
        'diagnostics': {}
    }

    if verbose:
        print("SAMPLE METADATA VALIDATION")
        print("=" * 50)

    count_samples = list(counts.columns)
    metadata_samples = list(metadata.index)

    missing_from_metadata = [s for s in count_samples if s not in metadata.index]
    missing_from_counts = [s for s in metadata_samples if s not in counts.columns]

    if missing_from_metadata:
        results['errors'].append(
            f"Found {len(missing_from_metadata)} count columns without metadata: "
            f"{missing_from_metadata[:5]}{'...' if len(missing_from_metadata) > 5 else ''}"
        )
    if missing_from_counts:
        results['warnings'].append(
            f"Found {len(missing_from_counts)} metadata samples without count columns: "
            f"{missing_from_counts[:5]}{'...' if len(missing_from_counts) > 5 else ''}"
        )

    replicate_counts = {}
    if condition_column not in metadata.columns:
        results['errors'].append(f"Condition column '{condition_column}' not found in metadata")
    else:
        matched = metadata.loc[[s for s in metadata_samples if s in counts.columns]]
        if matched[condition_column].isna().any():
            results['errors'].append(
                f"{int(matched[condition_column].isna().sum())} samples have no '{condition_column}' value"
            )
        replicate_counts = matched[condition_column].value_counts().to_dict()

        for level in levels or []:
            n = replicate_counts.get(level, 0)
            if n == 0:
                results['errors'].append(f"Condition level '{level}' has no samples")
            elif n < min_replicates:
                results['errors'].append(
                    f"Condition level '{level}' has {n} samples, need at least {min_replicates}"
                )

    results['diagnostics'] = {
        'total_count_samples': len(count_samples),
        'total_metadata_samples': len(metadata_samples),
        'missing_from_metadata': missing_from_metadata,
        'missing_from_counts': missing_from_counts,
        'replicates_per_condition': replicate_counts,
    }
    results['is_valid'] = not results['errors']

    if verbose:
        diag = results['diagnostics']
        print(f"Count columns: {diag['total_count_samples']}")
        print(f"Metadata samples: {diag['total_metadata_samples']}")
        print(f"Replicates per condition: {replicate_counts}")
        for warning in results['warnings']:
            print(f"  Warning: {warning}")
        if results['errors']:
            print("\nVALIDATION FAILED")
            for error in results['errors']:
                print(f"  ERROR: {error}")
        else:
            print("\n✓ VALIDATION PASSED")

    if raise_on_error and not results['is_valid']:
        error_summary = "\n".join(f"  - {e}" for e in results['errors'])
        raise SampleMatchingError(f"Sample matching validation failed:\n{error_summary}")

    return results


def generate_sample_matching_diagnostic_report(validation_results: Dict) -> str:
    """
    Generate a plain-text diagnostic report from validate_sample_metadata() output.
    """

    diag = validation_results.get('diagnostics', {})
    lines = [
        "SAMPLE MATCHING DIAGNOSTIC REPORT",
        "=" * 50,
        f"Status: {'VALID' if validation_results.get('is_valid') else 'INVALID'}",
        f"Count columns: {diag.get('total_count_samples', 0)}",
        f"Metadata samples: {diag.get('total_metadata_samples', 0)}",
        "",
        "Replicates per condition:",
    ]
    for condition, n in sorted(diag.get('replicates_per_condition', {}).items()):
        lines.append(f"  {condition}: {n}")

    if diag.get('missing_from_metadata'):
        lines.append("")
        lines.append("Count columns without metadata:")
        lines.extend(f"  {s}" for s in diag['missing_from_metadata'])

    if diag.get('missing_from_counts'):
        lines.append("")
        lines.append("Metadata samples without count columns:")
        lines.extend(f"  {s}" for s in diag['missing_from_counts'])

    if validation_results.get('errors'):
        lines.append("")
        lines.append("Errors:")
        lines.extend(f"  - {e}" for e in validation_results['errors'])

    if validation_results.get('warnings'):
        lines.append("")
        lines.append("Warnings:")
        lines.extend(f"  - {w}" for w in validation_results['warnings'])

    return "\n".join(lines)
