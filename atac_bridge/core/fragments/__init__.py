"""Fragment counting module.

Reads a fragment file, counts fragments per cell barcode and selects
cells above a fragment-count threshold.

Example Usage
-------------
>>> from atac_bridge.core.fragments import count_fragments, select_cells
>>> counts = count_fragments("atac_fragments.tsv.gz")
>>> cells = select_cells(counts, min_fragments=2000)
"""

from .config import FragmentConfig
from .counting import (
    COUNT_COLUMNS,
    count_fragments,
    select_cells,
    validate_fragment_file,
)

__all__ = [
    "FragmentConfig",
    "COUNT_COLUMNS",
    "count_fragments",
    "select_cells",
    "validate_fragment_file",
]
