"""I/O utilities for ATAC-Bridge.

Provides run logging, CSV tables and AnnData persistence.
"""

from .logging import get_logger, get_timestamped_log_path, log_json, log_yaml, to_plain
from .tables import ensure_output_dir, read_table, write_table
from .h5ad import read_h5ad, write_h5ad

__all__ = [
    # Logging
    "get_logger",
    "get_timestamped_log_path",
    "log_json",
    "log_yaml",
    "to_plain",
    # Tables
    "ensure_output_dir",
    "read_table",
    "write_table",
    # AnnData
    "read_h5ad",
    "write_h5ad",
]
