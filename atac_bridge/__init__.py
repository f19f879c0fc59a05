"""ATAC-Bridge: integration and reference mapping for single-cell chromatin data.

This package provides tools for:
- Counting fragments per cell from a fragment file
- Quantifying a reference's peaks in new cells
- LSI / spectral dimensionality reduction and UMAP
- Merging datasets and anchor-based embedding integration
- Reference mapping with label and expression transfer

Heavy lifting is delegated to snapatac2, scikit-learn, umap-learn and scanpy;
this package sequences the calls, keeps the AnnData slots consistent, and
renders the figures.

Example usage:
    >>> from atac_bridge.core.integration import IntegrationEngine
    >>> from atac_bridge.core.transfer import ReferenceMapper
    >>>
    >>> # Integrate reference and query embeddings
    >>> result = IntegrationEngine().run(reference, query)
    >>>
    >>> # Map query onto the reference
    >>> mapper = ReferenceMapper().fit(reference)
    >>> transfer = mapper.map_query(query)
"""

__version__ = "0.1.0"
