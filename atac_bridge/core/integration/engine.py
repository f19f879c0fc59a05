"""Dataset merging and anchor-based embedding integration.

Two datasets quantified over the same peaks are concatenated, reduced
together, and their embeddings corrected for the dataset effect with
snapatac2 mutual-nearest-cluster correction or scanpy's Harmony wrapper.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional
import logging

import numpy as np

from ..reduction import ReductionConfig, parse_dims, reduce, run_umap
from ..reduction.config import DimsSpec
from .config import IntegrationConfig

INTEGRATION_METHODS = ("mnc", "harmony")


@dataclass
class IntegrationResult:
    """Result from merging and integrating datasets.

    Attributes
    ----------
    adata : AnnData
        Merged object with unintegrated and integrated embeddings
    use_rep : str
        obsm key of the merged (unintegrated) reduction
    integrated_key : str
        obsm key of the integrated embedding
    n_cells : Dict[str, int]
        Cells per dataset
    mixing : Dict[str, float]
        Dataset-mixing score before and after integration
    """

    adata: Any = None  # AnnData
    use_rep: str = "X_lsi"
    integrated_key: str = "X_lsi_integrated"
    n_cells: Dict[str, int] = field(default_factory=dict)
    mixing: Dict[str, float] = field(default_factory=dict)


def merge_datasets(
    datasets: Mapping[str, Any],
    label_key: str = "dataset",
    logger: Optional[logging.Logger] = None,
) -> "anndata.AnnData":
    """Concatenate datasets over their shared features.

    Parameters
    ----------
    datasets : Mapping[str, AnnData]
        Dataset label -> AnnData (counts in X)
    label_key : str
        obs column to record the dataset label

    Returns
    -------
    AnnData
        Merged object holding X, obs and var only; cell names are made
        unique by suffixing the dataset label when they collide
    """
    import anndata as ad

    logger = logger or logging.getLogger(__name__)
    if not datasets:
        raise ValueError("No datasets to merge")

    stripped = {
        name: ad.AnnData(X=a.X, obs=a.obs.copy(), var=a.var[[]].copy())
        for name, a in datasets.items()
    }

    shared = None
    for a in stripped.values():
        names = set(a.var_names)
        shared = names if shared is None else shared & names
    if not shared:
        raise ValueError("Datasets share no features; cannot merge")

    n_total = sum(a.n_obs for a in stripped.values())
    all_names = set()
    for a in stripped.values():
        all_names.update(a.obs_names)
    index_unique = "_" if len(all_names) < n_total else None
    if index_unique:
        logger.info("Cell names collide across datasets; suffixing with dataset label")

    merged = ad.concat(
        stripped,
        join="inner",
        label=label_key,
        index_unique=index_unique,
    )

    logger.info(
        "Merged %d datasets: %d cells x %d shared features",
        len(stripped),
        merged.n_obs,
        merged.n_vars,
    )
    return merged


def dataset_mixing(
    adata: Any,
    use_rep: str,
    batch_key: str = "dataset",
    dims: Optional[DimsSpec] = None,
    n_neighbors: int = 30,
) -> float:
    """Score how well datasets mix in an embedding.

    For each cell, the fraction of its nearest neighbours from another
    dataset is divided by the fraction expected under perfect mixing.
    The mean over cells is ~0 for separated datasets and ~1 for fully
    mixed ones.
    """
    from sklearn.neighbors import NearestNeighbors

    rep = np.asarray(adata.obsm[use_rep])
    if dims is not None:
        rep = rep[:, parse_dims(dims, rep.shape[1])]

    batches = adata.obs[batch_key].astype(str).to_numpy()
    n_obs = len(batches)
    k = min(n_neighbors, n_obs - 1)
    if k < 1:
        raise ValueError("Need at least two cells to score mixing")

    nn = NearestNeighbors(n_neighbors=k + 1).fit(rep)
    _, idx = nn.kneighbors(rep)
    neighbor_batches = batches[idx[:, 1:]]
    frac_other = (neighbor_batches != batches[:, None]).mean(axis=1)

    _, inverse, sizes = np.unique(batches, return_inverse=True, return_counts=True)
    expected = (n_obs - sizes[inverse]) / (n_obs - 1)
    with np.errstate(invalid="ignore", divide="ignore"):
        ratio = np.where(expected > 0, frac_other / expected, 0.0)
    return float(np.mean(ratio))


def integrate_embeddings(
    adata: Any,
    batch_key: str = "dataset",
    use_rep: str = "X_lsi",
    dims: Optional[DimsSpec] = "1:30",
    method: str = "mnc",
    key_added: Optional[str] = None,
    mnc_neighbors: int = 5,
    mnc_clusters: int = 40,
    logger: Optional[logging.Logger] = None,
) -> str:
    """Correct an embedding for the dataset effect.

    Parameters
    ----------
    adata : AnnData
        Merged object with ``obsm[use_rep]`` (modified in place)
    batch_key : str
        obs column with the dataset label
    use_rep : str
        Embedding to correct
    dims : str, int, list or None
        Components to integrate (one-based); None uses all
    method : str
        'mnc' or 'harmony'
    key_added : str, optional
        obsm key for the result (default ``<use_rep>_integrated``)

    Returns
    -------
    str
        obsm key of the integrated embedding
    """
    logger = logger or logging.getLogger(__name__)

    if method not in INTEGRATION_METHODS:
        raise ValueError(
            f"Unknown integration method {method!r}; expected one of {INTEGRATION_METHODS}"
        )
    if use_rep not in adata.obsm:
        raise ValueError(f"Representation {use_rep!r} not found in obsm")
    if batch_key not in adata.obs:
        raise ValueError(f"Batch key {batch_key!r} not found in obs")

    n_batches = adata.obs[batch_key].nunique()
    if n_batches < 2:
        raise ValueError(f"Integration needs at least two batches, found {n_batches}")

    key_added = key_added or f"{use_rep}_integrated"
    n_components = np.asarray(adata.obsm[use_rep]).shape[1]
    use_dims = None if dims is None else parse_dims(dims, n_components).tolist()

    logger.info(
        "Integrating %s across %d batches with %s (%s dims)",
        use_rep,
        n_batches,
        method,
        "all" if use_dims is None else len(use_dims),
    )

    if method == "mnc":
        import snapatac2 as snap

        snap.pp.mnc_correct(
            adata,
            batch=batch_key,
            n_neighbors=mnc_neighbors,
            n_clusters=min(mnc_clusters, adata.n_obs - 1),
            use_rep=use_rep,
            use_dims=use_dims,
            key_added=key_added,
            inplace=True,
        )
    else:
        import scanpy as sc

        basis = use_rep
        if use_dims is not None:
            basis = f"{use_rep}_subset"
            adata.obsm[basis] = np.asarray(adata.obsm[use_rep])[:, use_dims]
        try:
            sc.external.pp.harmony_integrate(
                adata, key=batch_key, basis=basis, adjusted_basis=key_added
            )
        finally:
            if basis != use_rep:
                del adata.obsm[basis]

    return key_added


class IntegrationEngine:
    """Merge two datasets and integrate their embeddings.

    Pipeline: label -> merge -> reduce -> UMAP (unintegrated) ->
    integrate -> UMAP (integrated)

    Parameters
    ----------
    config : IntegrationConfig, optional
        Integration parameters
    reduction : ReductionConfig, optional
        Reduction applied to the merged object
    logger : logging.Logger, optional
        Logger instance

    Example
    -------
    >>> engine = IntegrationEngine(IntegrationConfig(method="mnc"))
    >>> result = engine.run(reference, query)
    >>> result.adata.obsm["X_umap_integrated"]
    """

    def __init__(
        self,
        config: Optional[IntegrationConfig] = None,
        reduction: Optional[ReductionConfig] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.config = config or IntegrationConfig()
        self.reduction = reduction or ReductionConfig()
        self.logger = logger or logging.getLogger(__name__)

    def run(self, reference: Any, query: Any) -> IntegrationResult:
        """Run merge and integration.

        Parameters
        ----------
        reference : AnnData
            Reference counts (peaks in var)
        query : AnnData
            Query counts over the same peaks

        Returns
        -------
        IntegrationResult
            Merged object and mixing statistics
        """
        cfg = self.config

        merged = merge_datasets(
            {cfg.reference_label: reference, cfg.query_label: query},
            label_key=cfg.batch_key,
            logger=self.logger,
        )

        result = IntegrationResult()
        result.n_cells = merged.obs[cfg.batch_key].value_counts().to_dict()

        use_rep, _ = reduce(merged, self.reduction)
        result.use_rep = use_rep

        run_umap(
            merged,
            use_rep=use_rep,
            dims=self.reduction.dims,
            key_added="X_umap",
            config=self.reduction.umap,
        )
        result.mixing["unintegrated"] = dataset_mixing(
            merged,
            use_rep,
            batch_key=cfg.batch_key,
            dims=self.reduction.dims,
            n_neighbors=cfg.mixing_neighbors,
        )

        result.integrated_key = integrate_embeddings(
            merged,
            batch_key=cfg.batch_key,
            use_rep=use_rep,
            dims=cfg.integrate_dims,
            method=cfg.method,
            key_added=f"{use_rep}_integrated",
            mnc_neighbors=cfg.mnc_neighbors,
            mnc_clusters=cfg.mnc_clusters,
            logger=self.logger,
        )

        run_umap(
            merged,
            use_rep=result.integrated_key,
            dims=cfg.umap_dims,
            key_added="X_umap_integrated",
            config=self.reduction.umap,
        )
        result.mixing["integrated"] = dataset_mixing(
            merged,
            result.integrated_key,
            batch_key=cfg.batch_key,
            dims=cfg.umap_dims,
            n_neighbors=cfg.mixing_neighbors,
        )

        merged.uns["integration"] = {
            "method": cfg.method,
            "use_rep": use_rep,
            "integrated_key": result.integrated_key,
            "mixing_unintegrated": result.mixing["unintegrated"],
            "mixing_integrated": result.mixing["integrated"],
        }
        self.logger.info(
            "Dataset mixing: %.3f unintegrated -> %.3f integrated",
            result.mixing["unintegrated"],
            result.mixing["integrated"],
        )

        result.adata = merged
        return result
