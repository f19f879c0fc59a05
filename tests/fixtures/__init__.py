"""Test fixtures for ATAC-Bridge.

Provides synthetic data generators.
"""

from .mock_adata import (
    CELL_TYPES,
    create_mock_atac,
    create_mock_expression,
    create_mock_peaks,
    write_mock_fragments,
)

__all__ = [
    "CELL_TYPES",
    "create_mock_atac",
    "create_mock_expression",
    "create_mock_peaks",
    "write_mock_fragments",
]
