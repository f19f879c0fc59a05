"""Unit tests for peak parsing, quantification and chromatin QC."""

import numpy as np
import pandas as pd
import pytest
from scipy import sparse

from atac_bridge.core.quantification import (
    QuantificationConfig,
    create_chromatin_object,
    normalise_peak_names,
    parse_peak,
    peaks_to_frame,
    quantify_features,
    resolve_chrom_sizes,
    to_snap_regions,
)
from tests.fixtures import create_mock_atac


class TestPeakNames:
    """Tests for peak name parsing."""

    def test_parse_dash_and_colon(self):
        """Test both naming styles."""
        assert parse_peak("chr1-100-600") == ("chr1", 100, 600)
        assert parse_peak("chr1:100-600") == ("chr1", 100, 600)

    def test_parse_contig_with_dash(self):
        """Test contig names that contain separators."""
        assert parse_peak("chrUn-KI270742v1-10-20") == ("chrUn-KI270742v1", 10, 20)

    @pytest.mark.parametrize("name", ["chr1", "chr1-abc-10", "chr1-500-100"])
    def test_malformed(self, name):
        """Test malformed names raise."""
        with pytest.raises(ValueError):
            parse_peak(name)

    def test_conversions(self):
        """Test conversion between the two styles."""
        assert normalise_peak_names(["chr2:5-10"]) == ["chr2-5-10"]
        assert to_snap_regions(["chr2-5-10"]) == ["chr2:5-10"]

    def test_peaks_to_frame(self):
        """Test the coordinate table keeps original names."""
        frame = peaks_to_frame(["chr1-1-5", "chrX:10-20"])
        assert frame.index.tolist() == ["chr1-1-5", "chrX:10-20"]
        assert frame.loc["chrX:10-20", "end"] == 20


class TestResolveChromSizes:
    """Tests for resolve_chrom_sizes."""

    def test_dict_passthrough(self):
        """Test chromosome size mappings are returned unchanged."""
        sizes = {"chr1": 1000}
        assert resolve_chrom_sizes(sizes) is sizes

    def test_unknown_genome(self):
        """Test an unknown genome name raises."""
        pytest.importorskip("snapatac2")
        with pytest.raises(ValueError, match="Unknown snapatac2 genome"):
            resolve_chrom_sizes("not_a_genome")


class TestQuantifyFeatures:
    """Tests for quantify_features with snapatac2 stubbed out."""

    @pytest.fixture
    def fake_snap(self, monkeypatch):
        snap = pytest.importorskip("snapatac2")
        calls = {}

        def import_fragments(path, chrom_sizes, file, min_num_fragments,
                             sorted_by_barcode, whitelist):
            calls["whitelist"] = list(whitelist)
            calls["chrom_sizes"] = chrom_sizes
            return "fragments"

        def make_peak_matrix(fragments, use_rep, inplace, counting_strategy):
            import anndata as ad

            calls["regions"] = list(use_rep)
            # Reverse peak order, colon-style names, one barcode absent
            regions = list(reversed(use_rep))
            cells = calls["whitelist"][:-1]
            X = np.arange(len(cells) * len(regions)).reshape(len(cells), -1)
            return ad.AnnData(
                X=X.astype(np.float32),
                obs=pd.DataFrame(index=cells[::-1]),
                var=pd.DataFrame(index=regions),
            )

        monkeypatch.setattr(snap.pp, "import_fragments", import_fragments)
        monkeypatch.setattr(snap.pp, "make_peak_matrix", make_peak_matrix)
        return calls

    def test_aligns_to_requested_order(self, fake_snap, tmp_path):
        """Test the matrix follows the requested peak and cell order."""
        peaks = ["chr1-100-200", "chr1-300-400", "chr1-500-600"]
        cells = ["c1", "c2", "c3"]

        counts = quantify_features(
            tmp_path / "frags.tsv.gz", peaks, cells, chrom_sizes={"chr1": 10_000}
        )

        assert fake_snap["regions"] == to_snap_regions(peaks)
        assert fake_snap["chrom_sizes"] == {"chr1": 10_000}
        assert counts.var_names.tolist() == peaks
        assert counts.obs_names.tolist() == ["c1", "c2"]
        assert sparse.issparse(counts.X)

    def test_empty_inputs(self, tmp_path):
        """Test empty peak or cell lists raise before any import."""
        pytest.importorskip("snapatac2")
        with pytest.raises(ValueError, match="No peaks"):
            quantify_features(tmp_path / "f.tsv.gz", [], ["c1"], chrom_sizes={})
        with pytest.raises(ValueError, match="No cells"):
            quantify_features(tmp_path / "f.tsv.gz", ["chr1-1-5"], [], chrom_sizes={})


class TestCreateChromatinObject:
    """Tests for create_chromatin_object."""

    @pytest.fixture
    def counts(self):
        return create_mock_atac(n_cells=60, n_peaks=150, prefix="q", seed=3)

    def test_filters_and_metrics(self, counts):
        """Test QC metrics are added and thresholds applied."""
        config = QuantificationConfig(
            min_features=1, min_counts=0, max_counts=None, dataset="atac"
        )
        result = create_chromatin_object(counts, config)

        assert result.n_cells_quantified == 60
        assert result.n_cells_kept == 60
        assert {"n_features", "total_counts"} <= set(result.adata.obs.columns)
        assert (result.adata.obs["dataset"] == "atac").all()

    def test_min_counts_drops_cells(self, counts):
        """Test cells below min_counts are removed and counted."""
        totals = np.asarray(counts.X.sum(axis=1)).ravel()
        threshold = float(np.median(totals))
        config = QuantificationConfig(
            min_features=0, min_counts=threshold, max_counts=None
        )
        result = create_chromatin_object(counts, config)

        assert result.n_cells_kept == int((totals >= threshold).sum())
        assert result.dropped["min_counts"] == int((totals < threshold).sum())

    def test_input_not_modified(self, counts):
        """Test the input object is left unchanged."""
        before = counts.obs.columns.tolist()
        create_chromatin_object(
            counts, QuantificationConfig(min_features=0, min_counts=None, max_counts=None)
        )
        assert counts.obs.columns.tolist() == before

    def test_min_cells_drops_peaks(self, counts):
        """Test peaks detected in too few cells are removed."""
        X = counts.X.tolil()
        X[:, 0] = 0
        counts.X = X.tocsr()
        config = QuantificationConfig(
            min_features=0, min_cells=1, min_counts=None, max_counts=None
        )
        result = create_chromatin_object(counts, config)
        assert counts.var_names[0] not in result.adata.var_names

    def test_min_cells_counts_kept_cells_only(self, counts):
        """Test peak detection is counted after the cell filter."""
        X = counts.X.tolil()
        X[:, 0] = 0
        X[0, :] = 0
        X[0, 0] = 1
        counts.X = X.tocsr()
        config = QuantificationConfig(
            min_features=0, min_cells=1, min_counts=2, max_counts=None
        )
        result = create_chromatin_object(counts, config)

        assert counts.obs_names[0] not in result.adata.obs_names
        assert counts.var_names[0] not in result.adata.var_names
        detected = np.asarray((result.adata.X > 0).sum(axis=0)).ravel()
        np.testing.assert_array_equal(result.adata.var["n_cells"].to_numpy(), detected)

    def test_fragment_counts_joined(self, counts):
        """Test per-barcode fragment counts are joined into obs."""
        fragments = pd.DataFrame(
            {"frequency_count": np.arange(counts.n_obs) + 100},
            index=counts.obs_names,
        )
        config = QuantificationConfig(min_features=0, min_counts=None, max_counts=None)
        result = create_chromatin_object(counts, config, fragment_counts=fragments)
        assert result.adata.obs["n_fragments"].iloc[0] == 100

    def test_all_cells_removed(self, counts):
        """Test an error when QC removes every cell."""
        config = QuantificationConfig(min_features=10**6)
        with pytest.raises(ValueError, match="removed all cells"):
            create_chromatin_object(counts, config)
