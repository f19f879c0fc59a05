"""Transfer module.

Maps a query dataset onto a labelled reference through anchors and
transfers labels and continuous values (e.g. gene expression).

Example Usage
-------------
>>> from atac_bridge.core.transfer import ReferenceMapper, TransferConfig
>>> mapper = ReferenceMapper(TransferConfig(label_key="celltype")).fit(reference)
>>> result = mapper.map_query(query)
>>> mapper.transfer_expression(query, reference_rna, genes=["PAX5", "CD8A"])
"""

from .anchors import (
    ANCHOR_COLUMNS,
    AnchorSet,
    find_transfer_anchors,
    transfer_labels,
    transfer_values,
    transfer_weights,
)
from .config import TransferConfig
from .engine import ReferenceMapper, TransferResult

__all__ = [
    "ANCHOR_COLUMNS",
    "AnchorSet",
    "find_transfer_anchors",
    "transfer_labels",
    "transfer_values",
    "transfer_weights",
    "TransferConfig",
    "ReferenceMapper",
    "TransferResult",
]
