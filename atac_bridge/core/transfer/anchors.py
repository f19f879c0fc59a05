"""Transfer anchors between a reference and a query embedding.

Anchors are mutual nearest neighbours across the two datasets. Each anchor
is scored by the overlap of the two cells' neighbourhoods in the reference,
and query cells are weighted against their nearest anchors with a Gaussian
kernel. Labels and continuous values are transferred as weighted averages
over anchors.
"""

from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence, Tuple
import logging

import numpy as np
import pandas as pd
from scipy import sparse

logger = logging.getLogger(__name__)

ANCHOR_COLUMNS = [
    "query_cell",
    "reference_cell",
    "query_index",
    "reference_index",
    "distance",
    "score",
]

SCORE_QUANTILES = (0.01, 0.90)


@dataclass
class AnchorSet:
    """Anchors and the embeddings they were found in.

    Attributes
    ----------
    anchors : pd.DataFrame
        One row per anchor (see ``ANCHOR_COLUMNS``)
    reference_embedding : np.ndarray
        Reference cells x dims (normalised if requested)
    query_embedding : np.ndarray
        Query cells x dims (normalised if requested)
    reference_names : List[str]
        Reference cell names in embedding order
    query_names : List[str]
        Query cell names in embedding order
    """

    anchors: pd.DataFrame
    reference_embedding: np.ndarray
    query_embedding: np.ndarray
    reference_names: List[str] = field(default_factory=list)
    query_names: List[str] = field(default_factory=list)

    @property
    def n_anchors(self) -> int:
        return len(self.anchors)

    def summary(self) -> dict:
        """Plain-type summary for ``uns`` and logs."""
        return {
            "n_anchors": int(self.n_anchors),
            "n_query_cells_anchored": int(self.anchors["query_index"].nunique()),
            "n_reference_cells_anchored": int(self.anchors["reference_index"].nunique()),
            "mean_score": float(self.anchors["score"].mean()),
        }


def _l2_normalise(X: np.ndarray) -> np.ndarray:
    norms = np.linalg.norm(X, axis=1, keepdims=True)
    norms[norms == 0] = 1.0
    return X / norms


def _knn(data: np.ndarray, queries: np.ndarray, k: int) -> Tuple[np.ndarray, np.ndarray]:
    from sklearn.neighbors import NearestNeighbors

    k = min(k, data.shape[0])
    nn = NearestNeighbors(n_neighbors=k).fit(data)
    return nn.kneighbors(queries)


def find_transfer_anchors(
    reference_embedding: np.ndarray,
    query_embedding: np.ndarray,
    reference_names: Optional[Sequence[str]] = None,
    query_names: Optional[Sequence[str]] = None,
    k_anchor: int = 5,
    k_score: int = 30,
    l2_norm: bool = True,
) -> AnchorSet:
    """Find mutual-nearest-neighbour anchors between query and reference.

    Parameters
    ----------
    reference_embedding : np.ndarray
        Reference cells x dims
    query_embedding : np.ndarray
        Query cells x dims, in the same space as the reference
    reference_names, query_names : sequence of str, optional
        Cell names (default: positional)
    k_anchor : int
        Neighbours searched in each direction
    k_score : int
        Reference neighbourhood size used to score anchors
    l2_norm : bool
        L2-normalise both embeddings first

    Returns
    -------
    AnchorSet

    Raises
    ------
    ValueError
        If embeddings disagree in width or no anchors are found
    """
    ref = np.asarray(reference_embedding, dtype=np.float64)
    qry = np.asarray(query_embedding, dtype=np.float64)
    if ref.ndim != 2 or qry.ndim != 2 or ref.shape[1] != qry.shape[1]:
        raise ValueError(
            f"Embedding shapes do not match: reference {ref.shape}, query {qry.shape}"
        )

    if reference_names is None:
        reference_names = [str(i) for i in range(ref.shape[0])]
    if query_names is None:
        query_names = [str(i) for i in range(qry.shape[0])]
    reference_names = list(reference_names)
    query_names = list(query_names)

    if l2_norm:
        ref = _l2_normalise(ref)
        qry = _l2_normalise(qry)

    # query -> reference and reference -> query neighbours
    q2r_dist, q2r_idx = _knn(ref, qry, k_anchor)
    _, r2q_idx = _knn(qry, ref, k_anchor)

    r2q_sets = [set(row) for row in r2q_idx]
    rows = []
    for qi in range(qry.shape[0]):
        for dist, ri in zip(q2r_dist[qi], q2r_idx[qi]):
            if qi in r2q_sets[ri]:
                rows.append((qi, int(ri), float(dist)))

    if not rows:
        raise ValueError("No mutual nearest neighbours found between query and reference")

    pairs = np.asarray(rows)
    q_index = pairs[:, 0].astype(int)
    r_index = pairs[:, 1].astype(int)

    # Overlap of each anchor's two reference neighbourhoods
    _, ref_nbrs = _knn(ref, ref, k_score)
    _, qry_nbrs = _knn(ref, qry, k_score)
    raw = np.array([
        len(set(qry_nbrs[q]) & set(ref_nbrs[r])) for q, r in zip(q_index, r_index)
    ], dtype=float)

    lo, hi = np.quantile(raw, SCORE_QUANTILES)
    if hi > lo:
        score = np.clip((raw - lo) / (hi - lo), 0.0, 1.0)
    else:
        score = np.ones_like(raw)

    anchors = pd.DataFrame({
        "query_cell": [query_names[i] for i in q_index],
        "reference_cell": [reference_names[i] for i in r_index],
        "query_index": q_index,
        "reference_index": r_index,
        "distance": pairs[:, 2],
        "score": score,
    }, columns=ANCHOR_COLUMNS)

    logger.info(
        "Found %d anchors (%d query cells, %d reference cells)",
        len(anchors),
        anchors["query_index"].nunique(),
        anchors["reference_index"].nunique(),
    )

    return AnchorSet(
        anchors=anchors,
        reference_embedding=ref,
        query_embedding=qry,
        reference_names=reference_names,
        query_names=query_names,
    )


def transfer_weights(
    anchor_set: AnchorSet,
    k_weight: int = 50,
    sd_weight: float = 1.0,
) -> sparse.csr_matrix:
    """Weight each query cell against its nearest anchors.

    Parameters
    ----------
    anchor_set : AnchorSet
        Anchors from :func:`find_transfer_anchors`
    k_weight : int
        Anchors considered per query cell (capped at the anchor count)
    sd_weight : float
        Kernel bandwidth

    Returns
    -------
    sparse.csr_matrix
        Query cells x anchors; each row sums to 1
    """
    if sd_weight <= 0:
        raise ValueError(f"sd_weight must be positive, got {sd_weight}")

    anchors = anchor_set.anchors
    n_query = anchor_set.query_embedding.shape[0]
    n_anchors = len(anchors)

    anchor_points = anchor_set.query_embedding[anchors["query_index"].to_numpy()]
    dist, idx = _knn(anchor_points, anchor_set.query_embedding, k_weight)
    k = idx.shape[1]

    d_k = dist[:, -1:]
    with np.errstate(invalid="ignore", divide="ignore"):
        rel = np.where(d_k > 0, dist / d_k, 0.0)
    kernel = 1.0 - np.exp(-(1.0 - rel) / (2.0 / sd_weight) ** 2)
    weights = kernel * anchors["score"].to_numpy()[idx]

    totals = weights.sum(axis=1, keepdims=True)
    empty = totals[:, 0] <= 0
    if empty.any():
        logger.warning(
            "%d query cells have zero anchor weight; using uniform weights",
            int(empty.sum()),
        )
        weights[empty] = 1.0
        totals[empty] = k
    weights = weights / totals

    rows = np.repeat(np.arange(n_query), k)
    return sparse.csr_matrix(
        (weights.ravel(), (rows, idx.ravel())), shape=(n_query, n_anchors)
    )


def transfer_labels(
    anchor_set: AnchorSet,
    labels: Any,
    k_weight: int = 50,
    sd_weight: float = 1.0,
    weights: Optional[sparse.spmatrix] = None,
) -> Tuple[pd.Series, pd.Series, pd.DataFrame]:
    """Transfer categorical reference labels to the query.

    Parameters
    ----------
    anchor_set : AnchorSet
        Anchors from :func:`find_transfer_anchors`
    labels : array-like or pd.Series
        One label per reference cell; a Series is aligned by cell name
    weights : sparse matrix, optional
        Precomputed :func:`transfer_weights` output

    Returns
    -------
    predicted : pd.Series
        Best label per query cell
    score : pd.Series
        Prediction score of the best label
    table : pd.DataFrame
        Query cells x labels prediction scores (rows sum to 1)
    """
    labels = _reference_aligned(anchor_set, labels)
    if weights is None:
        weights = transfer_weights(anchor_set, k_weight=k_weight, sd_weight=sd_weight)

    anchor_labels = pd.Categorical(
        labels.to_numpy()[anchor_set.anchors["reference_index"].to_numpy()]
    )
    categories = list(anchor_labels.categories)
    onehot = sparse.csr_matrix(
        (
            np.ones(len(anchor_labels)),
            (np.arange(len(anchor_labels)), anchor_labels.codes),
        ),
        shape=(len(anchor_labels), len(categories)),
    )

    scores = np.asarray((weights @ onehot).todense())
    totals = scores.sum(axis=1, keepdims=True)
    totals[totals == 0] = 1.0
    scores = np.clip(scores / totals, 0.0, 1.0)
    table = pd.DataFrame(scores, index=anchor_set.query_names, columns=categories)

    best = scores.argmax(axis=1)
    predicted = pd.Series(
        np.asarray(categories, dtype=object)[best], index=anchor_set.query_names
    )
    score = pd.Series(scores.max(axis=1), index=anchor_set.query_names)
    return predicted, score, table


def transfer_values(
    anchor_set: AnchorSet,
    values: Any,
    k_weight: int = 50,
    sd_weight: float = 1.0,
    weights: Optional[sparse.spmatrix] = None,
):
    """Transfer continuous reference values as anchor-weighted means.

    Parameters
    ----------
    anchor_set : AnchorSet
        Anchors from :func:`find_transfer_anchors`
    values : np.ndarray, sparse matrix or pd.DataFrame
        Reference cells x features, rows in reference order (a DataFrame is
        aligned by cell name)
    weights : sparse matrix, optional
        Precomputed :func:`transfer_weights` output

    Returns
    -------
    np.ndarray or pd.DataFrame
        Query cells x features; a DataFrame when ``values`` is one
    """
    columns = None
    if isinstance(values, pd.DataFrame):
        missing = set(anchor_set.reference_names) - set(values.index)
        if missing:
            raise ValueError(f"{len(missing)} reference cells missing from values")
        columns = values.columns
        values = values.loc[anchor_set.reference_names].to_numpy()

    if values.shape[0] != len(anchor_set.reference_names):
        raise ValueError(
            f"values has {values.shape[0]} rows; expected "
            f"{len(anchor_set.reference_names)} reference cells"
        )

    if weights is None:
        weights = transfer_weights(anchor_set, k_weight=k_weight, sd_weight=sd_weight)

    anchor_values = values[anchor_set.anchors["reference_index"].to_numpy()]
    result = weights @ anchor_values
    if sparse.issparse(result):
        result = result.toarray()
    result = np.asarray(result)

    if columns is not None:
        return pd.DataFrame(result, index=anchor_set.query_names, columns=columns)
    return result


def _reference_aligned(anchor_set: AnchorSet, labels: Any) -> pd.Series:
    if isinstance(labels, pd.Series):
        missing = set(anchor_set.reference_names) - set(labels.index)
        if missing:
            raise ValueError(f"{len(missing)} reference cells have no label")
        return labels.loc[anchor_set.reference_names].astype(str)

    labels = np.asarray(labels)
    if len(labels) != len(anchor_set.reference_names):
        raise ValueError("labels must have one entry per reference cell")
    return pd.Series(labels, index=anchor_set.reference_names).astype(str)
