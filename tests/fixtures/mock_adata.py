"""Synthetic chromatin data for testing.

Provides peak x cell count matrices with cell-type-specific accessibility,
matching expression matrices and small fragment files, so tests run
without real data.
"""

import gzip
from pathlib import Path
from typing import Dict, List, Optional

import numpy as np
import pandas as pd

CELL_TYPES = ["B", "T", "Mono"]


def create_mock_peaks(n_peaks: int = 300, chrom: str = "chr1", sep: str = "-") -> List[str]:
    """Non-overlapping 500 bp peaks named ``chrom-start-end``."""
    starts = 10_000 + np.arange(n_peaks) * 1_000
    return [f"{chrom}{sep}{s}-{s + 500}" for s in starts]


def create_mock_atac(
    n_cells: int = 120,
    n_peaks: int = 300,
    cell_types: Optional[List[str]] = None,
    background: float = 0.05,
    signal: float = 0.6,
    depth: float = 1.0,
    prefix: str = "ref",
    dataset: Optional[str] = None,
    seed: int = 42,
) -> "AnnData":
    """Create a cell x peak count AnnData with one peak block per cell type.

    Parameters
    ----------
    n_cells : int
        Number of cells (split evenly across cell types)
    n_peaks : int
        Number of peaks (split evenly across cell types)
    cell_types : List[str], optional
        Labels written to ``obs['celltype']``
    background : float
        Poisson rate outside a cell's own peak block
    signal : float
        Poisson rate inside a cell's own peak block
    depth : float
        Multiplier on both rates (models sequencing depth)
    prefix : str
        Cell name prefix
    dataset : str, optional
        Value for ``obs['dataset']``
    seed : int
        Random seed for reproducibility

    Returns
    -------
    AnnData
        Sparse integer counts with ``obs['celltype']``
    """
    import anndata as ad
    from scipy import sparse

    cell_types = cell_types or CELL_TYPES
    rng = np.random.default_rng(seed)

    n_types = len(cell_types)
    labels = np.repeat(np.arange(n_types), n_cells // n_types + 1)[:n_cells]
    blocks = np.repeat(np.arange(n_types), n_peaks // n_types + 1)[:n_peaks]

    rates = np.where(labels[:, None] == blocks[None, :], signal, background) * depth
    X = rng.poisson(rates).astype(np.float32)

    obs = pd.DataFrame(
        {"celltype": pd.Categorical([cell_types[i] for i in labels])},
        index=pd.Index([f"{prefix}_{i}" for i in range(n_cells)]),
    )
    if dataset is not None:
        obs["dataset"] = dataset
    var = pd.DataFrame(index=pd.Index(create_mock_peaks(n_peaks)))

    return ad.AnnData(X=sparse.csr_matrix(X), obs=obs, var=var)


def create_mock_expression(
    reference: "AnnData",
    n_genes: int = 40,
    label_key: str = "celltype",
    seed: int = 0,
) -> "AnnData":
    """Create raw gene counts for the reference cells.

    Gene ``G<i>`` is highly expressed in cell type ``i % n_types``.
    """
    import anndata as ad

    rng = np.random.default_rng(seed)
    labels = reference.obs[label_key].astype(str).to_numpy()
    types = sorted(set(labels))

    gene_type = np.arange(n_genes) % len(types)
    label_idx = np.array([types.index(l) for l in labels])
    rates = np.where(label_idx[:, None] == gene_type[None, :], 20.0, 1.0)
    X = rng.poisson(rates).astype(np.float32)

    var = pd.DataFrame(index=pd.Index([f"G{i}" for i in range(n_genes)]))
    obs = pd.DataFrame({label_key: labels}, index=reference.obs_names.copy())
    return ad.AnnData(X=X, obs=obs, var=var)


def write_mock_fragments(
    path: Path,
    fragments_per_cell: Dict[str, int],
    fragment_lengths: Optional[List[int]] = None,
    with_index: bool = True,
    seed: int = 7,
) -> Path:
    """Write a gzip'd fragment file (plus an empty ``.tbi``).

    Each barcode gets the given number of fragments; lengths cycle through
    ``fragment_lengths`` (default: 100, 200, 400 bp). Every fragment has a
    readcount of 2.
    """
    rng = np.random.default_rng(seed)
    lengths = fragment_lengths or [100, 200, 400]

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with gzip.open(path, "wt") as handle:
        handle.write("# id=mock\n# pipeline=test\n")
        for barcode, n in fragments_per_cell.items():
            starts = np.sort(rng.integers(10_000, 300_000, size=n))
            for i, start in enumerate(starts):
                end = start + lengths[i % len(lengths)]
                handle.write(f"chr1\t{start}\t{end}\t{barcode}\t2\n")

    if with_index:
        path.with_name(path.name + ".tbi").write_bytes(b"")
    return path
