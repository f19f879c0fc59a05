"""Unit tests for figure generation."""

import numpy as np
import pandas as pd
import pytest

import matplotlib

matplotlib.use("Agg")

from atac_bridge.viz import (
    DATASET_COLORS,
    PlotConfig,
    generate_figures,
    get_color_palette,
    plot_integration_comparison,
    plot_prediction_scores,
    plot_reference_mapping,
    plot_transferred_features,
)
from atac_bridge.viz.style import auto_point_size, create_figure


def _embedded(n, prefix, seed, labels=("B", "T", "Mono")):
    """AnnData with labels and a random 2-d embedding."""
    import anndata as ad

    rng = np.random.default_rng(seed)
    obs = pd.DataFrame(
        {"celltype": pd.Categorical(np.resize(list(labels), n))},
        index=[f"{prefix}{i}" for i in range(n)],
    )
    adata = ad.AnnData(obs=obs)
    adata.obsm["X_umap"] = rng.normal(size=(n, 2))
    return adata


@pytest.fixture
def merged():
    adata = _embedded(80, "m", 0)
    adata.obs["dataset"] = np.resize(["multiome", "atac"], 80)
    adata.obsm["X_umap_integrated"] = adata.obsm["X_umap"] * 0.5
    return adata


@pytest.fixture
def mapped_query():
    query = _embedded(40, "q", 1)
    rng = np.random.default_rng(2)
    query.obs["predicted_celltype"] = query.obs["celltype"]
    query.obs["predicted_celltype_score"] = rng.uniform(size=40)
    query.obsm["X_umap_ref"] = rng.normal(size=(40, 2))
    query.obsm["predicted_expression"] = pd.DataFrame(
        rng.uniform(size=(40, 3)), index=query.obs_names, columns=["G0", "G1", "G2"],
    )
    return query


class TestStyle:
    """Tests for palettes and figure helpers."""

    def test_dataset_palette(self):
        """Test fixed dataset colours."""
        colors = get_color_palette(["multiome", "atac"], palette_type="dataset")
        assert colors == DATASET_COLORS

    def test_fallback_palette(self):
        """Test unknown labels get distinct fallback colours."""
        colors = get_color_palette(["x", "y", "CD14 Mono"])
        assert colors["x"] != colors["y"]
        assert colors["CD14 Mono"] == "#f39c12"

    def test_point_size_bounds(self):
        """Test point sizes stay within bounds."""
        assert auto_point_size(10) == 20.0
        assert auto_point_size(10**7) == 0.5

    def test_create_figure_grid(self):
        """Test axes are always a 2-d array."""
        import matplotlib.pyplot as plt

        fig, axes = create_figure(1, 1)
        assert axes.shape == (1, 1)
        plt.close(fig)

    def test_plot_config_from_yaml(self, tmp_path):
        """Test loading the 'plots' section."""
        path = tmp_path / "config.yaml"
        path.write_text("plots:\n  fmt: pdf\n  genes: [MS4A1]\n")
        config = PlotConfig.from_yaml(path)
        assert config.fmt == "pdf"
        assert config.genes == ["MS4A1"]


class TestPlots:
    """Tests for individual figures."""

    def test_integration_comparison(self, merged, tmp_path):
        """Test the side-by-side integration UMAP."""
        path = plot_integration_comparison(merged, tmp_path / "integration.png")
        assert path.exists()

    def test_integration_missing_embedding(self, merged, tmp_path):
        """Test a missing embedding skips the figure."""
        del merged.obsm["X_umap_integrated"]
        assert plot_integration_comparison(merged, tmp_path / "i.png") is None
        assert not (tmp_path / "i.png").exists()

    def test_reference_mapping(self, mapped_query, tmp_path):
        """Test the reference and projected query UMAPs."""
        reference = _embedded(60, "r", 3)
        path = plot_reference_mapping(reference, mapped_query, tmp_path / "map.png")
        assert path.exists()

    def test_reference_mapping_unmapped_query(self, tmp_path):
        """Test an unmapped query skips the figure."""
        reference = _embedded(60, "r", 3)
        query = _embedded(20, "q", 4)
        assert plot_reference_mapping(reference, query, tmp_path / "m.png") is None

    def test_prediction_scores(self, mapped_query, tmp_path):
        """Test the score violin plot."""
        path = plot_prediction_scores(mapped_query, tmp_path / "scores.png")
        assert path.exists()

    def test_transferred_features(self, mapped_query, tmp_path):
        """Test one panel per requested gene; unknown genes are skipped."""
        path = plot_transferred_features(
            mapped_query, tmp_path / "expr.png", genes=["G2", "NOPE"]
        )
        assert path.exists()

    def test_transferred_features_absent(self, tmp_path):
        """Test a query without transferred expression skips the figure."""
        query = _embedded(20, "q", 5)
        query.obsm["X_umap_ref"] = query.obsm["X_umap"]
        assert plot_transferred_features(query, tmp_path / "e.png") is None


class TestGenerateFigures:
    """Tests for generate_figures."""

    def test_all_figures(self, merged, mapped_query, tmp_path):
        """Test every figure is produced when inputs are complete."""
        reference = _embedded(60, "r", 3)
        figures = generate_figures(
            tmp_path / "figures", merged=merged, reference=reference,
            query=mapped_query, fmt="png", dpi=50,
        )

        assert set(figures) == {
            "integration", "reference_mapping", "prediction_scores",
            "transferred_expression",
        }
        assert all(p.exists() for p in figures.values())

    def test_partial_inputs(self, merged, tmp_path):
        """Test figures without inputs are left out."""
        figures = generate_figures(tmp_path / "figures", merged=merged, dpi=50)
        assert list(figures) == ["integration"]

    def test_custom_batch_key(self, merged, tmp_path):
        """Test the integration figure reads the configured batch column."""
        merged.obs = merged.obs.rename(columns={"dataset": "batch"})
        figures = generate_figures(
            tmp_path / "figures", merged=merged, batch_key="batch", dpi=50
        )
        assert figures["integration"].exists()
