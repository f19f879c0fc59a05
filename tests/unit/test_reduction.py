"""Unit tests for LSI, spectral reduction and UMAP."""

import numpy as np
import pytest

from atac_bridge.core.reduction import (
    LSIModel,
    ReductionConfig,
    UMAPConfig,
    depth_correlation,
    find_top_features,
    parse_dims,
    reduce,
    run_lsi,
    run_umap,
)


class TestParseDims:
    """Tests for parse_dims."""

    def test_range(self):
        """Test one-based inclusive ranges."""
        assert parse_dims("2:5", 10).tolist() == [1, 2, 3, 4]

    def test_int_and_list(self):
        """Test integer and list specs."""
        assert parse_dims(3, 10).tolist() == [0, 1, 2]
        assert parse_dims([1, 4], 10).tolist() == [0, 3]

    @pytest.mark.parametrize("spec", ["2-30", "a:b", "5:2", "1:11", [0, 1], True])
    def test_invalid(self, spec):
        """Test malformed or out-of-range specs raise."""
        with pytest.raises(ValueError):
            parse_dims(spec, 10)


class TestReductionConfig:
    """Tests for ReductionConfig."""

    def test_from_dict_nested_umap(self):
        """Test the nested umap section."""
        config = ReductionConfig.from_dict({"dims": "2:20", "umap": {"n_neighbors": 10}})
        assert config.dims == "2:20"
        assert config.umap.n_neighbors == 10
        assert config.umap.metric == "cosine"

    def test_from_yaml(self, tmp_path):
        """Test loading the 'reduction' section."""
        path = tmp_path / "config.yaml"
        path.write_text("reduction:\n  method: spectral\n  n_components: 30\n")
        config = ReductionConfig.from_yaml(path)
        assert config.method == "spectral"
        assert config.to_dict()["umap"]["min_dist"] == 0.3


class TestFindTopFeatures:
    """Tests for find_top_features."""

    def test_count_cutoff(self, reference_atac):
        """Test an integer cutoff keeps features above it."""
        totals = np.asarray(reference_atac.X.sum(axis=0)).ravel()
        cutoff = int(np.median(totals))
        n = find_top_features(reference_atac, cutoff)

        assert n == int((totals > cutoff).sum())
        assert reference_atac.var["selected"].sum() == n

    def test_percentile_cutoff(self, reference_atac):
        """Test 'qN' keeps roughly the top (100 - N) percent."""
        n = find_top_features(reference_atac, "q75")
        assert 0.2 * reference_atac.n_vars <= n <= 0.4 * reference_atac.n_vars

    def test_no_cutoff(self, reference_atac):
        """Test None keeps every feature."""
        assert find_top_features(reference_atac, None) == reference_atac.n_vars

    def test_invalid_cutoff(self, reference_atac):
        """Test an unparseable string cutoff raises."""
        with pytest.raises(ValueError, match="min_cutoff"):
            find_top_features(reference_atac, "top10")

    def test_nothing_selected(self, reference_atac):
        """Test an error when the cutoff removes every feature."""
        with pytest.raises(ValueError, match="No features"):
            find_top_features(reference_atac, 10**9)


class TestLSIModel:
    """Tests for LSIModel."""

    def test_fit_stores_embedding(self, reference_atac):
        """Test fit writes obsm and uns."""
        model = LSIModel(n_components=10)
        embedding = model.fit(reference_atac)

        assert embedding.shape == (reference_atac.n_obs, 10)
        assert "X_lsi" in reference_atac.obsm
        assert reference_atac.uns["lsi"]["n_components"] == 10
        assert len(reference_atac.uns["lsi"]["depth_correlation"]) == 10
        assert model.is_fitted

    def test_components_capped(self, reference_atac):
        """Test components are capped by the number of cells."""
        small = reference_atac[:12].copy()
        embedding = LSIModel(n_components=50).fit(small)
        assert embedding.shape[1] == 11

    def test_too_small(self, reference_atac):
        """Test an error for tiny inputs."""
        with pytest.raises(ValueError, match="Too few"):
            LSIModel().fit(reference_atac[:2].copy())

    def test_dims_checked_against_components(self, reference_atac):
        """Test dims are checked against the capped component count."""
        small = reference_atac[:12].copy()
        with pytest.raises(ValueError, match="allow at most 11 LSI components"):
            LSIModel(n_components=50).fit(small, dims="2:30")
        assert "X_lsi" not in small.obsm

        embedding = LSIModel(n_components=50).fit(small, dims="2:11")
        assert embedding.shape[1] == 11

    def test_transform_before_fit(self, query_atac):
        """Test transform requires a fitted model."""
        with pytest.raises(RuntimeError, match="before fit"):
            LSIModel().transform(query_atac)

    def test_transform_matches_fit(self, reference_atac):
        """Test projecting the training data reproduces the leading component."""
        model = LSIModel(n_components=10)
        embedding = model.fit(reference_atac)
        projected = model.transform(reference_atac)

        assert projected.shape == embedding.shape
        corr = np.corrcoef(projected[:, 0], embedding[:, 0])[0, 1]
        assert corr > 0.99

    def test_transform_missing_features(self, reference_atac, query_atac):
        """Test query features absent from the input are treated as zero."""
        model = LSIModel(n_components=10)
        model.fit(reference_atac)
        subset = query_atac[:, 10:].copy()

        projected = model.transform(subset)
        assert projected.shape == (query_atac.n_obs, 10)
        assert np.isfinite(projected).all()

    def test_uses_selected_features(self, reference_atac):
        """Test only var['selected'] features are modelled."""
        find_top_features(reference_atac, "q50")
        model = LSIModel(n_components=10)
        model.fit(reference_atac)
        assert len(model.features) == int(reference_atac.var["selected"].sum())


class TestReduce:
    """Tests for reduce and run_lsi."""

    def test_lsi(self, reference_atac, small_reduction):
        """Test the LSI path returns the key and model."""
        key, model = reduce(reference_atac, small_reduction)
        assert key == "X_lsi"
        assert isinstance(model, LSIModel)
        assert reference_atac.obsm["X_lsi"].shape[1] == 20

    def test_depth_correlation(self, reference_atac, small_reduction):
        """Test one bounded correlation per component."""
        run_lsi(reference_atac, small_reduction)
        corr = depth_correlation(reference_atac, "X_lsi")

        assert corr.shape == (20,)
        assert np.all(np.abs(corr) <= 1.0 + 1e-6)

    def test_unknown_method(self, reference_atac):
        """Test an unknown method raises."""
        with pytest.raises(ValueError, match="Unknown reduction method"):
            reduce(reference_atac, ReductionConfig(method="pca"))

    def test_spectral(self, reference_atac, monkeypatch):
        """Test the spectral path delegates to snapatac2."""
        snap = pytest.importorskip("snapatac2")
        calls = {}

        def spectral(adata, n_comps, features, random_state, inplace):
            calls["features"] = features
            adata.obsm["X_spectral"] = np.zeros((adata.n_obs, n_comps))

        monkeypatch.setattr(snap.tl, "spectral", spectral)
        key, model = reduce(reference_atac, ReductionConfig(method="spectral", min_cutoff=None))

        assert key == "X_spectral"
        assert model is None
        assert calls["features"] == "selected"


class TestRunUMAP:
    """Tests for run_umap."""

    def test_embedding_and_model(self, reference_atac, small_reduction):
        """Test the UMAP embedding and returned model."""
        reduce(reference_atac, small_reduction)
        model = run_umap(
            reference_atac, use_rep="X_lsi", dims="2:10",
            config=UMAPConfig(n_neighbors=15), return_model=True,
        )

        assert reference_atac.obsm["X_umap"].shape == (reference_atac.n_obs, 2)
        projected = model.transform(reference_atac.obsm["X_lsi"][:5, 1:10])
        assert projected.shape == (5, 2)

    def test_missing_rep(self, reference_atac):
        """Test a missing representation raises."""
        with pytest.raises(ValueError, match="not found"):
            run_umap(reference_atac, use_rep="X_nothing")
