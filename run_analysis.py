#!/usr/bin/env python3
"""
Run the GF vs SPF RNA-seq report from a configuration file.

Usage:
    python run_analysis.py GF-vs-SPF-Analysis_config.py
"""

import sys

import matplotlib

matplotlib.use("Agg")

import transcriptomics_toolkit as ttk  # noqa: E402


def main(argv=None):
    """Load the configuration and run every analysis stage"""

    argv = sys.argv[1:] if argv is None else argv
    if len(argv) != 1:
        print(__doc__.strip())
        return 2

    print("Transcriptomics Toolkit - GF vs SPF Analysis")
    print("=" * 60)

    config_dict = ttk.load_analysis_config(argv[0])
    ttk.run_complete_analysis(config_dict)
    return 0


if __name__ == "__main__":
    sys.exit(main())
