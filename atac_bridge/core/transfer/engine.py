"""Reference mapping: project a query into a reference and transfer data.

Pipeline: reference LSI + UMAP fit -> query projection -> anchors ->
label transfer -> UMAP projection -> (optional) expression transfer
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence
import logging

import numpy as np
import pandas as pd

from ..reduction import (
    LSIModel,
    ReductionConfig,
    find_top_features,
    parse_dims,
    run_umap,
)
from .anchors import (
    AnchorSet,
    find_transfer_anchors,
    transfer_labels,
    transfer_values,
    transfer_weights,
)
from .config import TransferConfig


@dataclass
class TransferResult:
    """Result from mapping a query onto a reference.

    Attributes
    ----------
    adata : AnnData
        Query with projected embeddings and predictions
    anchors : pd.DataFrame
        Anchor table
    n_anchors : int
        Number of anchors
    label_counts : Dict[str, int]
        Query cells per predicted label
    mean_score : float
        Mean prediction score
    low_confidence : int
        Query cells with prediction score below 0.5
    """

    adata: Any = None  # AnnData
    anchors: Optional[pd.DataFrame] = None
    n_anchors: int = 0
    label_counts: Dict[str, int] = field(default_factory=dict)
    mean_score: float = 0.0
    low_confidence: int = 0


class ReferenceMapper:
    """Map query cells onto a labelled reference.

    Parameters
    ----------
    config : TransferConfig, optional
        Anchor and transfer parameters
    reduction : ReductionConfig, optional
        Reduction fitted on the reference (method must be 'lsi')
    logger : logging.Logger, optional
        Logger instance

    Example
    -------
    >>> mapper = ReferenceMapper(TransferConfig(label_key="celltype"))
    >>> mapper.fit(reference)
    >>> result = mapper.map_query(query)
    >>> query.obs["predicted_celltype"].value_counts()
    """

    def __init__(
        self,
        config: Optional[TransferConfig] = None,
        reduction: Optional[ReductionConfig] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.config = config or TransferConfig()
        self.reduction = reduction or ReductionConfig()
        self.logger = logger or logging.getLogger(__name__)

        if self.reduction.method != "lsi":
            raise ValueError(
                f"Reference mapping needs the 'lsi' reduction, got {self.reduction.method!r}"
            )

        self.lsi: Optional[LSIModel] = None
        self.umap_model = None
        self.dims: Optional[np.ndarray] = None
        self.reference_names: List[str] = []
        self.reference_labels: Optional[pd.Series] = None
        self.reference_embedding: Optional[np.ndarray] = None
        self.anchor_set: Optional[AnchorSet] = None
        self._weights = None

    @property
    def is_fitted(self) -> bool:
        return self.lsi is not None and self.lsi.is_fitted

    @property
    def label_key(self) -> str:
        return self.config.label_key

    def fit(self, reference: Any) -> "ReferenceMapper":
        """Fit the reference LSI and UMAP models.

        Writes ``obsm['X_lsi']`` and ``obsm['X_umap']`` on the reference.
        """
        if self.label_key not in reference.obs:
            raise ValueError(f"Reference has no obs column {self.label_key!r}")

        red = self.reduction
        find_top_features(reference, red.min_cutoff)
        self.lsi = LSIModel(
            n_components=red.n_components,
            scale_factor=red.scale_factor,
            scale_embeddings=red.scale_embeddings,
            random_state=red.random_state,
        )
        embedding = self.lsi.fit(reference, key_added="X_lsi", dims=red.dims)
        self.dims = parse_dims(red.dims, embedding.shape[1])

        self.umap_model = run_umap(
            reference,
            use_rep="X_lsi",
            dims=red.dims,
            key_added="X_umap",
            config=red.umap,
            return_model=True,
        )

        self.reference_names = reference.obs_names.tolist()
        self.reference_labels = reference.obs[self.label_key].astype(str)
        self.reference_embedding = embedding[:, self.dims]
        self.anchor_set = None
        self._weights = None

        self.logger.info(
            "Fitted reference: %d cells, %d labels",
            reference.n_obs,
            self.reference_labels.nunique(),
        )
        return self

    def map_query(self, query: Any) -> TransferResult:
        """Project the query, find anchors and transfer labels.

        Parameters
        ----------
        query : AnnData
            Query counts over the reference peaks (modified in place)

        Returns
        -------
        TransferResult
        """
        if not self.is_fitted:
            raise RuntimeError("ReferenceMapper.map_query called before fit")

        cfg = self.config
        label = self.label_key

        query_lsi = self.lsi.transform(query)
        query.obsm["X_lsi_ref"] = query_lsi
        query_embedding = query_lsi[:, self.dims]

        self.anchor_set = find_transfer_anchors(
            self.reference_embedding,
            query_embedding,
            reference_names=self.reference_names,
            query_names=query.obs_names.tolist(),
            k_anchor=cfg.k_anchor,
            k_score=cfg.k_score,
            l2_norm=cfg.l2_norm,
        )
        self._weights = transfer_weights(
            self.anchor_set, k_weight=cfg.k_weight, sd_weight=cfg.sd_weight
        )

        predicted, score, table = transfer_labels(
            self.anchor_set, self.reference_labels, weights=self._weights
        )
        query.obs[f"predicted_{label}"] = pd.Categorical(
            predicted.to_numpy(), categories=table.columns.tolist()
        )
        query.obs[f"predicted_{label}_score"] = score.to_numpy()
        table.index = query.obs_names
        query.obsm[f"prediction_scores_{label}"] = table

        query.obsm["X_umap_ref"] = self.umap_model.transform(query_embedding).astype(
            np.float32
        )

        summary = self.anchor_set.summary()
        summary.update({
            "label_key": label,
            "k_anchor": cfg.k_anchor,
            "k_score": cfg.k_score,
            "k_weight": cfg.k_weight,
            "sd_weight": cfg.sd_weight,
        })
        query.uns["transfer_anchors"] = summary

        result = TransferResult(
            adata=query,
            anchors=self.anchor_set.anchors,
            n_anchors=self.anchor_set.n_anchors,
            label_counts=predicted.value_counts().to_dict(),
            mean_score=float(score.mean()),
            low_confidence=int((score < 0.5).sum()),
        )
        self.logger.info(
            "Transferred %s to %d query cells (mean score %.3f, %d below 0.5)",
            label,
            query.n_obs,
            result.mean_score,
            result.low_confidence,
        )
        return result

    def transfer_expression(
        self,
        query: Any,
        expression: Any,
        genes: Optional[Sequence[str]] = None,
        n_top_genes: Optional[int] = None,
    ) -> pd.DataFrame:
        """Transfer reference gene expression to the mapped query.

        Parameters
        ----------
        query : AnnData
            Query previously passed to :meth:`map_query`
        expression : AnnData
            Raw reference expression (cells x genes) covering all reference cells
        genes : sequence of str, optional
            Genes to transfer (default: ``config.genes`` or top variable genes)
        n_top_genes : int, optional
            Variable genes to pick when no gene list is given

        Returns
        -------
        pd.DataFrame
            Query cells x genes, also stored in ``obsm['predicted_expression']``
        """
        import scanpy as sc

        if self.anchor_set is None:
            raise RuntimeError("transfer_expression called before map_query")
        if query.obs_names.tolist() != self.anchor_set.query_names:
            raise ValueError("query does not match the most recently mapped query")

        missing = set(self.reference_names) - set(expression.obs_names)
        if missing:
            raise ValueError(
                f"{len(missing)} reference cells missing from expression data"
            )

        expr = expression[self.reference_names].copy()
        sc.pp.normalize_total(expr, target_sum=1e4)
        sc.pp.log1p(expr)

        genes = genes if genes is not None else self.config.genes
        if genes is None:
            n_top = min(n_top_genes or self.config.n_top_genes, expr.n_vars)
            sc.pp.highly_variable_genes(expr, n_top_genes=n_top)
            genes = expr.var_names[expr.var["highly_variable"]].tolist()
            self.logger.info("Selected %d variable genes for transfer", len(genes))
        else:
            absent = [g for g in genes if g not in expr.var_names]
            if absent:
                self.logger.warning(
                    "%d genes not in expression data: %s", len(absent), absent[:10]
                )
            genes = [g for g in genes if g in expr.var_names]
            if not genes:
                raise ValueError("None of the requested genes are in the expression data")

        values = expr[:, genes].X
        predicted = transfer_values(self.anchor_set, values, weights=self._weights)
        frame = pd.DataFrame(predicted, index=query.obs_names, columns=list(genes))
        query.obsm["predicted_expression"] = frame

        self.logger.info(
            "Transferred expression of %d genes to %d query cells",
            len(genes),
            query.n_obs,
        )
        return frame
