"""Normalisation, dimensionality reduction and UMAP for chromatin data.

LSI is a scikit-learn pipeline (TF-IDF -> log scaling -> truncated SVD ->
optional standardisation) so that a model fitted on one dataset can
project another. Spectral embedding is delegated to snapatac2 and UMAP to
umap-learn.
"""

from typing import Any, List, Optional, Tuple, Union
import logging

import numpy as np
import pandas as pd
from scipy import sparse

from .config import DimsSpec, ReductionConfig, UMAPConfig

logger = logging.getLogger(__name__)

REDUCTION_KEYS = {
    "lsi": "X_lsi",
    "spectral": "X_spectral",
}


def parse_dims(spec: DimsSpec, n_components: int) -> np.ndarray:
    """Convert a one-based inclusive dimension spec to column indices.

    Parameters
    ----------
    spec : str, int or list of int
        ``"2:30"``, ``[2, 3, 4]`` or ``30`` (meaning ``1..30``)
    n_components : int
        Number of available components

    Returns
    -------
    np.ndarray
        Zero-based column indices

    Raises
    ------
    ValueError
        If the spec is malformed, empty or out of range
    """
    if isinstance(spec, bool):
        raise ValueError(f"Invalid dims: {spec!r}")

    if isinstance(spec, (int, np.integer)):
        dims = list(range(1, int(spec) + 1))
    elif isinstance(spec, str):
        parts = spec.split(":")
        if len(parts) != 2:
            raise ValueError(f"Invalid dims range {spec!r}; expected 'start:end'")
        try:
            start, end = int(parts[0]), int(parts[1])
        except ValueError:
            raise ValueError(f"Invalid dims range {spec!r}; expected integers")
        if start > end:
            raise ValueError(f"Invalid dims range {spec!r}; start > end")
        dims = list(range(start, end + 1))
    else:
        dims = [int(d) for d in spec]

    if not dims:
        raise ValueError("Empty dims selection")

    if min(dims) < 1 or max(dims) > n_components:
        raise ValueError(
            f"dims {spec!r} out of range for {n_components} components"
        )

    return np.asarray(dims, dtype=int) - 1


def find_top_features(
    adata: Any,  # AnnData
    min_cutoff: Optional[Union[int, str]] = 10,
) -> int:
    """Mark features used for reduction in ``var['selected']``.

    Parameters
    ----------
    adata : AnnData
        Cell x peak counts (modified in place)
    min_cutoff : int, str or None
        Keep features with total count > cutoff, features at or above the
        N-th percentile for ``'qN'``, or all features for None

    Returns
    -------
    int
        Number of selected features
    """
    counts = np.asarray(adata.X.sum(axis=0)).ravel()
    percentile = pd.Series(counts).rank(method="max", pct=True).to_numpy() * 100

    adata.var["feature_count"] = counts
    adata.var["feature_percentile"] = percentile

    if min_cutoff is None:
        selected = np.ones(adata.n_vars, dtype=bool)
    elif isinstance(min_cutoff, str):
        if not min_cutoff.startswith("q"):
            raise ValueError(f"Invalid min_cutoff {min_cutoff!r}; use an int or 'qN'")
        try:
            q = float(min_cutoff[1:])
        except ValueError:
            raise ValueError(f"Invalid min_cutoff {min_cutoff!r}; use an int or 'qN'")
        selected = percentile >= q
    else:
        selected = counts > min_cutoff

    n_selected = int(selected.sum())
    if n_selected == 0:
        raise ValueError(f"No features pass min_cutoff={min_cutoff!r}")

    adata.var["selected"] = selected
    logger.info(
        "Selected %d / %d features (min_cutoff=%s)", n_selected, adata.n_vars, min_cutoff
    )
    return n_selected


def _log_scale(X, scale_factor: float = 1e4):
    if sparse.issparse(X):
        return (X * scale_factor).log1p()
    return np.log1p(X * scale_factor)


class LSIModel:
    """Latent semantic indexing model fitted on one dataset.

    Parameters
    ----------
    n_components : int
        Number of SVD components
    scale_factor : float
        TF-IDF multiplier before log1p
    scale_embeddings : bool
        Standardise each component across cells
    random_state : int
        Random seed for the SVD

    Example
    -------
    >>> model = LSIModel(n_components=50)
    >>> model.fit(reference)
    >>> query.obsm["X_lsi_ref"] = model.transform(query)
    """

    def __init__(
        self,
        n_components: int = 50,
        scale_factor: float = 1e4,
        scale_embeddings: bool = True,
        random_state: int = 42,
    ):
        self.n_components = n_components
        self.scale_factor = scale_factor
        self.scale_embeddings = scale_embeddings
        self.random_state = random_state
        self.features: Optional[List[str]] = None
        self.pipeline = None

    @property
    def is_fitted(self) -> bool:
        return self.pipeline is not None

    def _build_pipeline(self, n_components: int):
        from sklearn.feature_extraction.text import TfidfTransformer
        from sklearn.decomposition import TruncatedSVD
        from sklearn.pipeline import Pipeline
        from sklearn.preprocessing import FunctionTransformer, StandardScaler

        steps = [
            ("tfidf", TfidfTransformer(norm="l1", use_idf=True, smooth_idf=True)),
            ("log", FunctionTransformer(
                _log_scale,
                kw_args={"scale_factor": self.scale_factor},
                accept_sparse=True,
            )),
            ("svd", TruncatedSVD(
                n_components=n_components, random_state=self.random_state
            )),
        ]
        if self.scale_embeddings:
            steps.append(("scale", StandardScaler()))
        return Pipeline(steps)

    def _aligned_matrix(self, adata: Any) -> sparse.csr_matrix:
        """Reorder ``adata.X`` columns to the fitted features (missing -> 0)."""
        idx = pd.Index(adata.var_names).get_indexer(self.features)
        present = np.flatnonzero(idx >= 0)
        n_missing = len(self.features) - len(present)
        if n_missing:
            logger.warning(
                "%d / %d model features missing from input; treated as zero",
                n_missing,
                len(self.features),
            )
        mapping = sparse.csr_matrix(
            (np.ones(len(present)), (idx[present], present)),
            shape=(adata.n_vars, len(self.features)),
        )
        return sparse.csr_matrix(adata.X) @ mapping

    def fit(
        self,
        adata: Any,
        key_added: str = "X_lsi",
        dims: Optional[DimsSpec] = None,
    ) -> np.ndarray:
        """Fit on ``adata`` and store the embedding in ``obsm[key_added]``.

        Uses ``var['selected']`` when present, otherwise all features.
        ``dims``, when given, is checked against the component count
        available for this input before anything is fitted.
        """
        if "selected" in adata.var:
            mask = adata.var["selected"].to_numpy(dtype=bool)
        else:
            mask = np.ones(adata.n_vars, dtype=bool)
        self.features = adata.var_names[mask].tolist()

        n_components = min(
            self.n_components, len(self.features) - 1, adata.n_obs - 1
        )
        if n_components < 2:
            raise ValueError(
                "Too few cells or features for LSI "
                f"({adata.n_obs} cells, {len(self.features)} features)"
            )
        if n_components < self.n_components:
            logger.warning(
                "Reducing LSI components from %d to %d", self.n_components, n_components
            )
        if dims is not None:
            try:
                parse_dims(dims, n_components)
            except ValueError as err:
                raise ValueError(
                    f"{err}; {adata.n_obs} cells and {len(self.features)} features "
                    f"allow at most {n_components} LSI components; lower the dims"
                ) from err

        self.pipeline = self._build_pipeline(n_components)
        embedding = self.pipeline.fit_transform(self._aligned_matrix(adata))
        embedding = np.asarray(embedding, dtype=np.float32)

        adata.obsm[key_added] = embedding
        adata.uns["lsi"] = {
            "n_components": int(n_components),
            "n_features": len(self.features),
            "variance_ratio": self.pipeline.named_steps["svd"].explained_variance_ratio_,
            "depth_correlation": depth_correlation(adata, key_added),
        }
        logger.info(
            "LSI: %d components from %d features (%d cells)",
            n_components,
            len(self.features),
            adata.n_obs,
        )
        return embedding

    def transform(self, adata: Any) -> np.ndarray:
        """Project another dataset into the fitted LSI space."""
        if not self.is_fitted:
            raise RuntimeError("LSIModel.transform called before fit")
        embedding = self.pipeline.transform(self._aligned_matrix(adata))
        return np.asarray(embedding, dtype=np.float32)


def depth_correlation(adata: Any, use_rep: str = "X_lsi") -> np.ndarray:
    """Pearson correlation of each component with log total counts."""
    depth = np.log1p(np.asarray(adata.X.sum(axis=1)).ravel())
    embedding = np.asarray(adata.obsm[use_rep])

    depth_c = depth - depth.mean()
    emb_c = embedding - embedding.mean(axis=0)
    denom = np.sqrt((depth_c ** 2).sum() * (emb_c ** 2).sum(axis=0))
    with np.errstate(invalid="ignore", divide="ignore"):
        corr = (emb_c * depth_c[:, None]).sum(axis=0) / denom
    return np.nan_to_num(corr)


def run_lsi(adata: Any, config: Optional[ReductionConfig] = None) -> LSIModel:
    """Top features + LSI; stores ``obsm['X_lsi']``."""
    config = config or ReductionConfig()
    find_top_features(adata, config.min_cutoff)
    model = LSIModel(
        n_components=config.n_components,
        scale_factor=config.scale_factor,
        scale_embeddings=config.scale_embeddings,
        random_state=config.random_state,
    )
    model.fit(adata, dims=config.dims)
    return model


def run_spectral(adata: Any, config: Optional[ReductionConfig] = None) -> None:
    """Top features + snapatac2 spectral embedding; stores ``obsm['X_spectral']``."""
    import snapatac2 as snap

    config = config or ReductionConfig()
    find_top_features(adata, config.min_cutoff)
    n_comps = min(config.n_components, adata.n_obs - 1)
    snap.tl.spectral(
        adata,
        n_comps=n_comps,
        features="selected",
        random_state=config.random_state,
        inplace=True,
    )
    logger.info("Spectral embedding: %d components (%d cells)", n_comps, adata.n_obs)


def reduce(
    adata: Any,
    config: Optional[ReductionConfig] = None,
) -> Tuple[str, Optional[LSIModel]]:
    """Run the configured reduction.

    Returns
    -------
    Tuple[str, Optional[LSIModel]]
        The obsm key written and the LSI model (None for spectral)
    """
    config = config or ReductionConfig()
    if config.method not in REDUCTION_KEYS:
        raise ValueError(
            f"Unknown reduction method {config.method!r}; "
            f"expected one of {sorted(REDUCTION_KEYS)}"
        )

    if config.method == "lsi":
        return REDUCTION_KEYS["lsi"], run_lsi(adata, config)

    run_spectral(adata, config)
    return REDUCTION_KEYS["spectral"], None


def run_umap(
    adata: Any,
    use_rep: str = "X_lsi",
    dims: Optional[DimsSpec] = "2:30",
    key_added: str = "X_umap",
    config: Optional[UMAPConfig] = None,
    return_model: bool = False,
):
    """Compute a UMAP embedding from ``obsm[use_rep]``.

    Parameters
    ----------
    adata : AnnData
        Object with ``obsm[use_rep]`` (modified in place)
    use_rep : str
        Representation to embed
    dims : str, int, list or None
        Components to use (one-based); None uses all
    key_added : str
        obsm key for the embedding
    config : UMAPConfig, optional
        UMAP parameters
    return_model : bool
        Return the fitted ``umap.UMAP`` so new cells can be projected

    Returns
    -------
    umap.UMAP or None
    """
    import umap

    if use_rep not in adata.obsm:
        raise ValueError(f"Representation {use_rep!r} not found in obsm")

    config = config or UMAPConfig()
    rep = np.asarray(adata.obsm[use_rep])
    if dims is not None:
        rep = rep[:, parse_dims(dims, rep.shape[1])]

    n_neighbors = min(config.n_neighbors, adata.n_obs - 1)
    logger.info(
        "Computing UMAP from %s (%d dims, n_neighbors=%d)",
        use_rep,
        rep.shape[1],
        n_neighbors,
    )
    model = umap.UMAP(
        n_neighbors=n_neighbors,
        min_dist=config.min_dist,
        metric=config.metric,
        random_state=config.random_state,
    )
    adata.obsm[key_added] = model.fit_transform(rep).astype(np.float32)

    if return_model:
        return model
    return None
