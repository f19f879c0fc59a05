"""Visualization module for ATAC-Bridge.

Matplotlib/seaborn figures for integration and reference mapping.

Usage:
    from atac_bridge.viz import generate_figures

    generate_figures(
        Path("out/figures"),
        merged=integration.adata,
        reference=reference,
        query=query,
    )
"""

from .config import PlotConfig
from .style import (
    CELL_TYPE_COLORS,
    DATASET_COLORS,
    create_figure,
    get_color_palette,
    save_figure,
    set_publication_style,
)
from .umap_plots import (
    generate_figures,
    plot_integration_comparison,
    plot_prediction_scores,
    plot_reference_mapping,
    plot_transferred_features,
)

__all__ = [
    "PlotConfig",
    "CELL_TYPE_COLORS",
    "DATASET_COLORS",
    "create_figure",
    "get_color_palette",
    "save_figure",
    "set_publication_style",
    "generate_figures",
    "plot_integration_comparison",
    "plot_prediction_scores",
    "plot_reference_mapping",
    "plot_transferred_features",
]
