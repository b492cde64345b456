#!/usr/bin/env python3
"""
Run the transcriptomics_toolkit test suites one group at a time.

Usage:
    python run_tests.py              # offline suites
    python run_tests.py --network    # also query KEGG and Enrichr
"""

import os
import subprocess
import sys

SUITES = [
    ("Data import and validation", ["tests/test_data_import.py", "tests/test_validation.py"]),
    ("Preprocessing and normalization", ["tests/test_preprocessing.py", "tests/test_normalization.py"]),
    ("DESeq2 differential expression", ["tests/test_differential_expression.py"]),
    ("KEGG enrichment and pathway diagrams", ["tests/test_enrichment.py", "tests/test_kegg_pathways.py"]),
    ("Figures and exports", ["tests/test_visualization.py", "tests/test_export.py"]),
    ("End-to-end report", ["tests/test_pipeline.py"]),
]


def run_suite(name, paths, extra_args):
    print(f"\n=== {name} ===", flush=True)
    cmd = [sys.executable, "-m", "pytest", *paths, "--tb=short", "-q", *extra_args]
    returncode = subprocess.run(cmd, cwd=os.path.dirname(os.path.abspath(__file__))).returncode
    print(f"{'✓' if returncode == 0 else '✗'} {name} (exit code {returncode})", flush=True)
    return returncode == 0


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    extra_args = ["--run-network"] if "--network" in argv else []

    outcomes = [(name, run_suite(name, paths, extra_args)) for name, paths in SUITES]

    print("\n=== SUMMARY ===")
    for name, passed in outcomes:
        print(f"  {'PASSED' if passed else 'FAILED':7} {name}")
    failed = sum(not passed for _, passed in outcomes)
    print(f"\n{len(outcomes) - failed}/{len(outcomes)} suites passed")
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
