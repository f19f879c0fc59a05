"""UMAP figures for integration and reference mapping.

Provides:
- Unintegrated vs integrated UMAP coloured by dataset
- Reference UMAP by label next to the mapped query by predicted label
- Prediction-score distributions per predicted label
- Transferred expression on the query UMAP
"""

from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union
import logging

import numpy as np
import pandas as pd

from .style import (
    auto_point_size,
    create_figure,
    get_color_palette,
    save_figure,
)

logger = logging.getLogger(__name__)


def _scatter_categories(
    ax,
    coords: np.ndarray,
    labels: Sequence[str],
    colors: Dict[str, str],
    point_size: float,
    title: str,
    alpha: float = 0.7,
    legend: bool = True,
) -> None:
    labels = np.asarray(labels, dtype=object)
    counts = pd.Series(labels).value_counts()

    # Largest groups first so small groups stay visible
    for label in counts.index:
        mask = labels == label
        ax.scatter(
            coords[mask, 0],
            coords[mask, 1],
            c=colors.get(label, "#bdc3c7"),
            s=point_size,
            alpha=alpha,
            label=f"{label} ({int(mask.sum()):,})",
            rasterized=True,
            linewidths=0,
        )

    ax.set_xlabel("UMAP 1")
    ax.set_ylabel("UMAP 2")
    ax.set_xticks([])
    ax.set_yticks([])
    ax.set_title(title)
    if legend:
        ax.legend(
            loc="upper left",
            bbox_to_anchor=(1.02, 1),
            fontsize=8,
            markerscale=max(1.0, 20.0 / max(point_size, 1e-3)) ** 0.5,
            frameon=False,
        )


def plot_integration_comparison(
    adata,
    output_path: Union[str, Path],
    batch_key: str = "dataset",
    unintegrated_key: str = "X_umap",
    integrated_key: str = "X_umap_integrated",
    point_size: Optional[float] = None,
    dpi: int = 200,
) -> Optional[Path]:
    """Merged and integrated UMAPs side by side, coloured by dataset.

    Args:
        adata: Merged AnnData from the integration step
        output_path: Path to save figure
        batch_key: obs column with the dataset label
        unintegrated_key: obsm key of the merged UMAP
        integrated_key: obsm key of the integrated UMAP
        point_size: Scatter point size (scaled to cell count when None)
        dpi: Figure resolution

    Returns:
        Path to saved figure, or None if an embedding is missing
    """
    for key in (unintegrated_key, integrated_key):
        if key not in adata.obsm:
            logger.warning("%s not found, skipping integration plot", key)
            return None

    datasets = adata.obs[batch_key].astype(str).to_numpy()
    colors = get_color_palette(sorted(set(datasets)), palette_type="dataset")
    size = point_size or auto_point_size(adata.n_obs)

    fig, axes = create_figure(1, 2, figsize=(12, 5))
    _scatter_categories(
        axes[0, 0], np.asarray(adata.obsm[unintegrated_key]), datasets, colors,
        size, "Merged", legend=False,
    )
    _scatter_categories(
        axes[0, 1], np.asarray(adata.obsm[integrated_key]), datasets, colors,
        size, "Integrated",
    )
    fig.suptitle(f"Dataset integration (n={adata.n_obs:,})")
    return save_figure(fig, output_path, dpi=dpi)


def plot_reference_mapping(
    reference,
    query,
    output_path: Union[str, Path],
    label_key: str = "celltype",
    reference_key: str = "X_umap",
    query_key: str = "X_umap_ref",
    point_size: Optional[float] = None,
    dpi: int = 200,
) -> Optional[Path]:
    """Reference UMAP by label next to the query projected onto it.

    Args:
        reference: Reference AnnData with ``obsm[reference_key]``
        query: Mapped query with ``obsm[query_key]`` and predicted labels
        output_path: Path to save figure
        label_key: Reference label column; the query uses ``predicted_<label_key>``

    Returns:
        Path to saved figure, or None if an embedding is missing
    """
    if reference_key not in reference.obsm:
        logger.warning("%s not found in reference, skipping mapping plot", reference_key)
        return None
    if query_key not in query.obsm:
        logger.warning("%s not found in query, skipping mapping plot", query_key)
        return None

    predicted_key = f"predicted_{label_key}"
    ref_labels = reference.obs[label_key].astype(str).to_numpy()
    query_labels = query.obs[predicted_key].astype(str).to_numpy()
    colors = get_color_palette(
        sorted(set(ref_labels) | set(query_labels)), palette_type="cell_type"
    )
    size = point_size or auto_point_size(max(reference.n_obs, query.n_obs))

    fig, axes = create_figure(1, 2, figsize=(14, 5.5))
    _scatter_categories(
        axes[0, 0], np.asarray(reference.obsm[reference_key]), ref_labels, colors,
        size, f"Reference ({label_key})", legend=False,
    )
    ref_coords = np.asarray(reference.obsm[reference_key])
    axes[0, 1].scatter(
        ref_coords[:, 0], ref_coords[:, 1], c="#eaeded", s=size, rasterized=True,
        linewidths=0,
    )
    _scatter_categories(
        axes[0, 1], np.asarray(query.obsm[query_key]), query_labels, colors,
        size, f"Query ({predicted_key})",
    )
    return save_figure(fig, output_path, dpi=dpi)


def plot_prediction_scores(
    query,
    output_path: Union[str, Path],
    label_key: str = "celltype",
    dpi: int = 200,
) -> Optional[Path]:
    """Violin plot of prediction scores per predicted label."""
    import seaborn as sns

    predicted_key = f"predicted_{label_key}"
    score_key = f"{predicted_key}_score"
    if predicted_key not in query.obs or score_key not in query.obs:
        logger.warning("%s not found, skipping prediction-score plot", score_key)
        return None

    df = pd.DataFrame({
        "label": query.obs[predicted_key].astype(str).to_numpy(),
        "score": query.obs[score_key].to_numpy(dtype=float),
    })
    order = df["label"].value_counts().index.tolist()
    colors = get_color_palette(order, palette_type="cell_type")

    fig, axes = create_figure(1, 1, figsize=(max(6, 0.6 * len(order) + 2), 4.5))
    ax = axes[0, 0]
    sns.violinplot(
        data=df,
        x="label",
        y="score",
        hue="label",
        order=order,
        hue_order=order,
        palette=colors,
        cut=0,
        inner="quartile",
        density_norm="width",
        legend=False,
        ax=ax,
    )
    ax.axhline(0.5, color="#7f8c8d", linestyle="--", linewidth=0.8)
    ax.set_ylim(0, 1.05)
    ax.set_xlabel(predicted_key)
    ax.set_ylabel("Prediction score")
    ax.tick_params(axis="x", rotation=60)
    ax.set_title(f"Prediction scores (mean {df['score'].mean():.2f})")
    return save_figure(fig, output_path, dpi=dpi)


def plot_transferred_features(
    query,
    output_path: Union[str, Path],
    genes: Optional[List[str]] = None,
    max_genes: int = 4,
    basis: str = "X_umap_ref",
    point_size: Optional[float] = None,
    dpi: int = 200,
) -> Optional[Path]:
    """Query UMAP coloured by transferred expression, one panel per gene."""
    if basis not in query.obsm:
        logger.warning("%s not found, skipping transferred-feature plot", basis)
        return None
    if "predicted_expression" not in query.obsm:
        logger.warning("predicted_expression not found, skipping transferred-feature plot")
        return None

    expression = query.obsm["predicted_expression"]
    if not isinstance(expression, pd.DataFrame):
        expression = pd.DataFrame(np.asarray(expression), index=query.obs_names)
    expression = expression.rename(columns=str)

    if genes:
        missing = [g for g in genes if g not in expression.columns]
        if missing:
            logger.warning("Transferred expression lacks genes: %s", missing)
        genes = [g for g in genes if g in expression.columns]
    else:
        genes = expression.columns.tolist()
    genes = genes[:max_genes]
    if not genes:
        logger.warning("No transferred genes to plot")
        return None

    coords = np.asarray(query.obsm[basis])
    size = point_size or auto_point_size(query.n_obs)
    ncols = min(len(genes), 2)
    nrows = int(np.ceil(len(genes) / ncols))
    fig, axes = create_figure(nrows, ncols, figsize=(5.5 * ncols, 4.5 * nrows))

    for i, ax in enumerate(axes.ravel()):
        if i >= len(genes):
            ax.set_visible(False)
            continue
        gene = genes[i]
        values = expression[gene].to_numpy(dtype=float)
        order = np.argsort(values)
        points = ax.scatter(
            coords[order, 0],
            coords[order, 1],
            c=values[order],
            cmap="viridis",
            s=size,
            rasterized=True,
            linewidths=0,
        )
        fig.colorbar(points, ax=ax, shrink=0.7)
        ax.set_title(gene)
        ax.set_xticks([])
        ax.set_yticks([])

    fig.suptitle("Transferred expression")
    return save_figure(fig, output_path, dpi=dpi)


def generate_figures(
    output_dir: Union[str, Path],
    merged=None,
    reference=None,
    query=None,
    label_key: str = "celltype",
    batch_key: str = "dataset",
    genes: Optional[List[str]] = None,
    max_genes: int = 4,
    fmt: str = "png",
    point_size: Optional[float] = None,
    dpi: int = 200,
) -> Dict[str, Path]:
    """Render every figure whose inputs are available.

    Returns:
        Figure name -> saved path (figures that were skipped are absent)
    """
    import matplotlib

    matplotlib.use("Agg")

    output_dir = Path(output_dir)
    figures: Dict[str, Optional[Path]] = {}

    if merged is not None:
        figures["integration"] = plot_integration_comparison(
            merged, output_dir / f"integration_umap.{fmt}",
            batch_key=batch_key, point_size=point_size, dpi=dpi,
        )
    if reference is not None and query is not None:
        figures["reference_mapping"] = plot_reference_mapping(
            reference, query, output_dir / f"reference_mapping_umap.{fmt}",
            label_key=label_key, point_size=point_size, dpi=dpi,
        )
    if query is not None:
        figures["prediction_scores"] = plot_prediction_scores(
            query, output_dir / f"prediction_scores.{fmt}",
            label_key=label_key, dpi=dpi,
        )
        figures["transferred_expression"] = plot_transferred_features(
            query, output_dir / f"transferred_expression.{fmt}",
            genes=genes, max_genes=max_genes, point_size=point_size, dpi=dpi,
        )

    saved = {name: path for name, path in figures.items() if path is not None}
    logger.info("Saved %d figures to %s", len(saved), output_dir)
    return saved
