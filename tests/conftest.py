"""Pytest configuration and shared fixtures for ATAC-Bridge tests."""

import sys
from pathlib import Path

import pytest

# Add package to path
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

# Import mock data generators
from tests.fixtures import (
    create_mock_atac,
    create_mock_expression,
    write_mock_fragments,
)


# ============================================================================
# AnnData Fixtures
# ============================================================================


@pytest.fixture
def reference_atac():
    """Labelled reference: 120 cells x 300 peaks, three cell types."""
    return create_mock_atac(n_cells=120, n_peaks=300, prefix="ref", seed=42)


@pytest.fixture
def query_atac():
    """Query over the same peaks, shallower and from a different seed."""
    return create_mock_atac(
        n_cells=90, n_peaks=300, prefix="qry", depth=0.8, seed=7
    )


@pytest.fixture
def reference_expression(reference_atac):
    """Raw gene counts for every reference cell."""
    return create_mock_expression(reference_atac, n_genes=40)


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def small_reduction():
    """Reduction settings sized for the mock data."""
    from atac_bridge.core.reduction import ReductionConfig, UMAPConfig

    return ReductionConfig(
        min_cutoff=None,
        n_components=20,
        dims="2:10",
        umap=UMAPConfig(n_neighbors=15),
    )


@pytest.fixture
def small_transfer():
    """Transfer settings sized for the mock data."""
    from atac_bridge.core.transfer import TransferConfig

    return TransferConfig(k_anchor=5, k_score=20, k_weight=20)


# ============================================================================
# File Fixtures
# ============================================================================


@pytest.fixture
def tmp_output_dir(tmp_path: Path) -> Path:
    """Create a temporary output directory for tests."""
    output_dir = tmp_path / "output"
    output_dir.mkdir(parents=True, exist_ok=True)
    return output_dir


@pytest.fixture
def fragment_file(tmp_path: Path) -> Path:
    """Indexed fragment file with three barcodes of 30, 12 and 3 fragments."""
    return write_mock_fragments(
        tmp_path / "fragments.tsv.gz",
        {"AAAC-1": 30, "AAAG-1": 12, "AAAT-1": 3},
    )
