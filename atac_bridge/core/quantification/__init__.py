"""Feature quantification module.

Counts a reference peak set in query cells (via snapatac2) and builds a
QC-filtered chromatin object.

Example Usage
-------------
>>> from atac_bridge.core.quantification import (
...     QuantificationConfig, quantify_features, create_chromatin_object,
... )
>>> counts = quantify_features("atac_fragments.tsv.gz", reference.var_names, cells)
>>> result = create_chromatin_object(counts, QuantificationConfig(min_features=1000))
"""

from .config import QuantificationConfig
from .engine import (
    QuantificationResult,
    create_chromatin_object,
    quantify_features,
    resolve_chrom_sizes,
)
from .peaks import (
    normalise_peak_names,
    parse_peak,
    peaks_to_frame,
    to_snap_regions,
)

__all__ = [
    "QuantificationConfig",
    "QuantificationResult",
    "create_chromatin_object",
    "quantify_features",
    "resolve_chrom_sizes",
    "normalise_peak_names",
    "parse_peak",
    "peaks_to_frame",
    "to_snap_regions",
]
