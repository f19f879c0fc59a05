"""Dimensionality reduction module.

Provides top-feature selection, LSI (scikit-learn TF-IDF + truncated SVD),
spectral embedding (snapatac2) and UMAP (umap-learn).

Example Usage
-------------
>>> from atac_bridge.core.reduction import ReductionConfig, reduce, run_umap
>>> config = ReductionConfig(method="lsi", dims="2:30")
>>> use_rep, model = reduce(adata, config)
>>> run_umap(adata, use_rep=use_rep, dims=config.dims)
"""

from .config import DimsSpec, ReductionConfig, UMAPConfig
from .engine import (
    LSIModel,
    REDUCTION_KEYS,
    depth_correlation,
    find_top_features,
    parse_dims,
    reduce,
    run_lsi,
    run_spectral,
    run_umap,
)

__all__ = [
    "DimsSpec",
    "ReductionConfig",
    "UMAPConfig",
    "LSIModel",
    "REDUCTION_KEYS",
    "depth_correlation",
    "find_top_features",
    "parse_dims",
    "reduce",
    "run_lsi",
    "run_spectral",
    "run_umap",
]
