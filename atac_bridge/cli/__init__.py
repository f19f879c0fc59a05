"""Command-line interface for ATAC-Bridge.

Example Usage
-------------
    # From command line:
    atac-bridge --help
    atac-bridge count-fragments --fragments atac_fragments.tsv.gz --out counts.csv
    atac-bridge transfer --reference multiome.h5ad --query query.h5ad --out mapped.h5ad
    atac-bridge run --config workflow.yaml
"""

from .main import cli, main

__all__ = [
    "cli",
    "main",
]
