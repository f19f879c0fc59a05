"""Unit tests for the command-line interface."""

import pandas as pd
import pytest
import yaml
from click.testing import CliRunner

from atac_bridge import __version__
from atac_bridge.cli import cli
from atac_bridge.io import read_h5ad, write_h5ad
from tests.fixtures import write_mock_fragments


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def small_config(tmp_path):
    """Workflow YAML sized for the mock data."""
    path = tmp_path / "workflow.yaml"
    path.write_text(yaml.safe_dump({
        "reduction": {
            "min_cutoff": None,
            "n_components": 20,
            "dims": "2:10",
            "umap": {"n_neighbors": 15},
        },
        "transfer": {"k_score": 20, "k_weight": 20},
    }))
    return path


class TestCLI:
    """Tests for the command group."""

    def test_version(self, runner):
        """Test --version."""
        result = runner.invoke(cli, ["--version"], obj={})
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_help_lists_commands(self, runner):
        """Test every command is registered."""
        result = runner.invoke(cli, ["--help"], obj={})
        for command in ("count-fragments", "quantify", "integrate", "transfer", "run"):
            assert command in result.output


class TestCountFragmentsCommand:
    """Tests for count-fragments."""

    def test_counts_and_selection(self, runner, fragment_file, tmp_path):
        """Test the count table and the selected-cell table."""
        out = tmp_path / "counts.csv"
        result = runner.invoke(
            cli,
            ["count-fragments", "-f", str(fragment_file), "-o", str(out),
             "--min-fragments", "11"],
            obj={},
        )

        assert result.exit_code == 0, result.output
        counts = pd.read_csv(out, index_col=0)
        assert counts.loc["AAAC-1", "frequency_count"] == 30
        selected = pd.read_csv(tmp_path / "counts_selected.csv", index_col=0)
        assert sorted(selected.index) == ["AAAC-1", "AAAG-1"]

    def test_missing_index(self, runner, tmp_path):
        """Test a missing index fails unless the check is disabled."""
        path = write_mock_fragments(tmp_path / "f.tsv.gz", {"AAAC-1": 3}, with_index=False)
        out = tmp_path / "counts.csv"

        result = runner.invoke(cli, ["count-fragments", "-f", str(path), "-o", str(out)], obj={})
        assert result.exit_code == 1
        assert "Fragment index not found" in result.output

        result = runner.invoke(
            cli, ["count-fragments", "-f", str(path), "-o", str(out), "--no-index-check"],
            obj={},
        )
        assert result.exit_code == 0

    def test_no_cells_selected(self, runner, fragment_file, tmp_path):
        """Test an impossible threshold fails cleanly."""
        result = runner.invoke(
            cli,
            ["count-fragments", "-f", str(fragment_file), "-o", str(tmp_path / "c.csv"),
             "--min-fragments", "1000"],
            obj={},
        )
        assert result.exit_code == 1
        assert "No cells" in result.output


class TestTransferCommand:
    """Tests for transfer."""

    def test_transfer(self, runner, tmp_path, small_config, reference_atac,
                      query_atac, reference_expression):
        """Test mapping a query and transferring expression."""
        ref_path = write_h5ad(reference_atac, tmp_path / "ref.h5ad")
        query_path = write_h5ad(query_atac, tmp_path / "query.h5ad")
        expr_path = write_h5ad(reference_expression, tmp_path / "rna.h5ad")
        out = tmp_path / "mapped.h5ad"

        result = runner.invoke(
            cli,
            ["transfer", "-r", str(ref_path), "-q", str(query_path), "-o", str(out),
             "-c", str(small_config), "--expression", str(expr_path),
             "--gene", "G0", "--gene", "G1"],
            obj={},
        )

        assert result.exit_code == 0, result.output
        assert "anchors" in result.output
        mapped = read_h5ad(out)
        assert "predicted_celltype" in mapped.obs
        assert list(mapped.obsm["predicted_expression"].columns) == ["G0", "G1"]
        assert (tmp_path / "mapped_anchors.csv").exists()

    def test_missing_label(self, runner, tmp_path, small_config, reference_atac, query_atac):
        """Test an unknown label column fails cleanly."""
        ref_path = write_h5ad(reference_atac, tmp_path / "ref.h5ad")
        query_path = write_h5ad(query_atac, tmp_path / "query.h5ad")

        result = runner.invoke(
            cli,
            ["transfer", "-r", str(ref_path), "-q", str(query_path),
             "-o", str(tmp_path / "out.h5ad"), "-c", str(small_config),
             "--label-key", "cell_type_l3"],
            obj={},
        )
        assert result.exit_code == 1
        assert "cell_type_l3" in result.output


class TestRunCommand:
    """Tests for run."""

    def _write_config(self, tmp_path, reference_path, fragment_path):
        path = tmp_path / "run.yaml"
        path.write_text(yaml.safe_dump({
            "paths": {
                "reference": str(reference_path),
                "fragments": str(fragment_path),
                "output_dir": str(tmp_path / "out"),
            },
        }))
        return path

    def test_dry_run(self, runner, tmp_path, reference_atac, fragment_file):
        """Test the execution plan is shown without running anything."""
        ref_path = write_h5ad(reference_atac, tmp_path / "ref.h5ad")
        config = self._write_config(tmp_path, ref_path, fragment_file)

        result = runner.invoke(cli, ["run", "-c", str(config), "--dry-run"], obj={})

        assert result.exit_code == 0, result.output
        assert "fragments -> quantify -> reduce" in result.output
        assert "Dry run" in result.output
        assert not (tmp_path / "out" / "fragment_counts.csv").exists()

    def test_invalid_config(self, runner, tmp_path, fragment_file):
        """Test a missing reference is reported before running."""
        config = self._write_config(tmp_path, tmp_path / "missing.h5ad", fragment_file)
        result = runner.invoke(cli, ["run", "-c", str(config)], obj={})

        assert result.exit_code == 1
        assert "paths.reference not found" in result.output

    def test_step_failure(self, runner, tmp_path, reference_atac, fragment_file):
        """Test a failing step exits with status 1 and names the log."""
        ref_path = write_h5ad(reference_atac, tmp_path / "ref.h5ad")
        config = self._write_config(tmp_path, ref_path, fragment_file)

        # Default min_fragments (2000) selects no cells from the mock file
        result = runner.invoke(cli, ["run", "-c", str(config)], obj={})

        assert result.exit_code == 1
        assert "Workflow failed" in result.output
        assert "See log" in result.output
