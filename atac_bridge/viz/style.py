"""Colours and figure helpers shared by all plots.

- Palettes for datasets and PBMC cell types
- Matplotlib style configuration
- Figure creation and saving
"""

from pathlib import Path
from typing import Dict, List, Optional, Union
import logging

logger = logging.getLogger(__name__)

# =============================================================================
# Color Palettes
# =============================================================================

DATASET_COLORS: Dict[str, str] = {
    "multiome": "#3498db",      # Blue - reference
    "atac": "#e67e22",          # Orange - query
}

# PBMC reference labels
CELL_TYPE_COLORS: Dict[str, str] = {
    "CD4 Naive": "#1f77b4",
    "CD4 TCM": "#4a90c2",
    "CD4 TEM": "#7fb3d5",
    "Treg": "#aed6f1",
    "CD8 Naive": "#2ca02c",
    "CD8 TEM_1": "#58d68d",
    "CD8 TEM_2": "#82e0aa",
    "MAIT": "#abebc6",
    "gdT": "#17a589",
    "NK": "#9b59b6",
    "Naive B": "#e74c3c",
    "Intermediate B": "#ec7063",
    "Memory B": "#f1948a",
    "Plasma": "#922b21",
    "CD14 Mono": "#f39c12",
    "CD16 Mono": "#f5b041",
    "cDC": "#a04000",
    "pDC": "#dc7633",
    "HSPC": "#7f8c8d",
}

UNKNOWN_COLOR = "#bdc3c7"


# =============================================================================
# Style Configuration
# =============================================================================

def set_publication_style():
    """Set matplotlib style for publication-quality figures."""
    import matplotlib.pyplot as plt

    try:
        plt.style.use("seaborn-v0_8-whitegrid")
    except OSError:
        pass

    plt.rcParams.update({
        "font.size": 10,
        "axes.titlesize": 12,
        "axes.labelsize": 10,
        "xtick.labelsize": 9,
        "ytick.labelsize": 9,
        "legend.fontsize": 9,
        "figure.titlesize": 14,
        "figure.dpi": 100,
        "savefig.dpi": 200,
        "savefig.bbox": "tight",
        "axes.spines.top": False,
        "axes.spines.right": False,
        "axes.grid": False,
    })


def get_color_palette(
    labels: List[str],
    palette_type: str = "cell_type",
    default_color: str = UNKNOWN_COLOR,
) -> Dict[str, str]:
    """Map labels to hex colours.

    Args:
        labels: Labels to colour
        palette_type: "cell_type" or "dataset"
        default_color: Colour once the fallback palette is exhausted

    Returns:
        Dict mapping labels to hex colors
    """
    if palette_type == "cell_type":
        base_palette = CELL_TYPE_COLORS
    elif palette_type == "dataset":
        base_palette = DATASET_COLORS
    else:
        base_palette = {}

    colors = {}
    unmatched = [label for label in labels if label not in base_palette]
    fallback_colors = _get_fallback_palette(len(unmatched))
    fallback_idx = 0

    for label in labels:
        if label in base_palette:
            colors[label] = base_palette[label]
        elif fallback_idx < len(fallback_colors):
            colors[label] = fallback_colors[fallback_idx]
            fallback_idx += 1
        else:
            colors[label] = default_color

    return colors


def _get_fallback_palette(n: int) -> List[str]:
    """Get a fallback color palette for n items."""
    import matplotlib
    from matplotlib.colors import to_hex

    if n == 0:
        return []
    if n <= 10:
        cmap = matplotlib.colormaps["tab10"]
        return [to_hex(cmap(i)) for i in range(n)]
    if n <= 20:
        cmap = matplotlib.colormaps["tab20"]
        return [to_hex(cmap(i)) for i in range(n)]

    cmap = matplotlib.colormaps["viridis"]
    return [to_hex(cmap(i / (n - 1))) for i in range(n)]


# =============================================================================
# Figure Utilities
# =============================================================================

def auto_point_size(n_cells: int) -> float:
    """Scatter point size that keeps dense embeddings readable."""
    return float(min(20.0, max(0.5, 12000.0 / max(n_cells, 1))))


def save_figure(
    fig,
    output_path: Union[str, Path],
    dpi: int = 200,
    close: bool = True,
) -> Path:
    """Save a figure, creating the parent directory.

    Args:
        fig: Matplotlib figure object
        output_path: Path to save figure
        dpi: Resolution
        close: Whether to close figure after saving

    Returns:
        Path to saved figure
    """
    import matplotlib.pyplot as plt

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    fig.savefig(
        output_path,
        dpi=dpi,
        bbox_inches="tight",
        facecolor="white",
        edgecolor="none",
    )

    if close:
        plt.close(fig)

    logger.debug("Saved figure to %s", output_path)
    return output_path


def create_figure(
    nrows: int = 1,
    ncols: int = 1,
    figsize: Optional[tuple] = None,
    **kwargs,
):
    """Create a styled figure; size scales with the panel grid when not given."""
    import matplotlib.pyplot as plt

    set_publication_style()

    if figsize is None:
        figsize = (5 * ncols + 1.5, 4.5 * nrows)

    fig, axes = plt.subplots(nrows, ncols, figsize=figsize, squeeze=False, **kwargs)
    return fig, axes
