"""Feature quantification and chromatin object creation.

Counts a fixed peak set (normally the reference's peaks) in a set of query
cells, then applies per-cell and per-peak QC thresholds.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union
import logging

import numpy as np
import pandas as pd
from scipy import sparse

from .config import QuantificationConfig
from .peaks import normalise_peak_names, to_snap_regions


@dataclass
class QuantificationResult:
    """Result from quantifying peaks in query cells.

    Attributes
    ----------
    adata : AnnData
        Cell x peak count matrix after QC
    n_cells_quantified : int
        Cells present in the raw feature matrix
    n_cells_kept : int
        Cells passing QC
    n_features_kept : int
        Peaks passing QC
    dropped : Dict[str, int]
        Number of cells removed by each filter
    """

    adata: Any = None  # AnnData
    n_cells_quantified: int = 0
    n_cells_kept: int = 0
    n_features_kept: int = 0
    dropped: Dict[str, int] = field(default_factory=dict)


def resolve_chrom_sizes(genome: Union[str, Dict[str, int], Any]) -> Any:
    """Resolve a genome name to a snapatac2 genome object.

    Dictionaries and genome objects are passed through unchanged.
    """
    if not isinstance(genome, str):
        return genome

    import snapatac2 as snap

    resolved = getattr(snap.genome, genome, None)
    if resolved is None:
        raise ValueError(f"Unknown snapatac2 genome: {genome}")
    return resolved


def quantify_features(
    fragment_file: Union[str, Path],
    peaks: Sequence[str],
    cells: Sequence[str],
    chrom_sizes: Union[str, Dict[str, int], Any] = "hg38",
    sorted_by_barcode: bool = True,
    counting_strategy: str = "paired-insertion",
    logger: Optional[logging.Logger] = None,
) -> "anndata.AnnData":
    """Count fragments over a peak set for the given cells.

    Parameters
    ----------
    fragment_file : str or Path
        Fragment file for the query dataset
    peaks : Sequence[str]
        Peak names (``chrom-start-end`` or ``chrom:start-end``)
    cells : Sequence[str]
        Barcodes to quantify
    chrom_sizes : str, dict or genome
        snapatac2 genome name, genome object or chromosome size mapping
    sorted_by_barcode : bool
        Whether the fragment file is sorted by barcode
    counting_strategy : str
        snapatac2 counting strategy

    Returns
    -------
    AnnData
        Cell x peak counts; var_names use the ``chrom-start-end`` form in the
        order given by ``peaks``
    """
    import snapatac2 as snap

    logger = logger or logging.getLogger(__name__)
    peaks = list(peaks)
    cells = [str(c) for c in cells]
    if not peaks:
        raise ValueError("No peaks to quantify")
    if not cells:
        raise ValueError("No cells to quantify")

    logger.info(
        "Importing fragments for %d cells from %s", len(cells), fragment_file
    )
    fragments = snap.pp.import_fragments(
        str(fragment_file),
        chrom_sizes=resolve_chrom_sizes(chrom_sizes),
        file=None,
        min_num_fragments=0,
        sorted_by_barcode=sorted_by_barcode,
        whitelist=cells,
    )

    logger.info("Quantifying %d peaks", len(peaks))
    counts = snap.pp.make_peak_matrix(
        fragments,
        use_rep=to_snap_regions(peaks),
        inplace=False,
        counting_strategy=counting_strategy,
    )

    counts.var_names = normalise_peak_names(counts.var_names)
    target = normalise_peak_names(peaks)
    counts = counts[:, target].copy()

    observed = set(counts.obs_names)
    present = [c for c in cells if c in observed]
    counts = counts[present].copy()
    counts.X = sparse.csr_matrix(counts.X)

    logger.info(
        "Feature matrix: %d cells x %d peaks", counts.n_obs, counts.n_vars
    )
    return counts


def create_chromatin_object(
    counts: "anndata.AnnData",
    config: Optional[QuantificationConfig] = None,
    fragment_counts: Optional[pd.DataFrame] = None,
    logger: Optional[logging.Logger] = None,
) -> QuantificationResult:
    """Apply cell and peak QC to a count matrix.

    Parameters
    ----------
    counts : AnnData
        Cell x peak counts (not modified)
    config : QuantificationConfig, optional
        Thresholds and dataset label
    fragment_counts : pd.DataFrame, optional
        Per-barcode fragment counts joined into ``obs``

    Returns
    -------
    QuantificationResult
        QC'd object and filter statistics

    Raises
    ------
    ValueError
        If every cell is removed
    """
    import scanpy as sc

    config = config or QuantificationConfig()
    logger = logger or logging.getLogger(__name__)

    adata = counts.copy()
    result = QuantificationResult(n_cells_quantified=adata.n_obs)

    sc.pp.calculate_qc_metrics(adata, percent_top=None, log1p=False, inplace=True)
    adata.obs = adata.obs.rename(columns={"n_genes_by_counts": "n_features"})
    adata.var = adata.var.rename(columns={"n_cells_by_counts": "n_cells"})

    mask = np.ones(adata.n_obs, dtype=bool)
    n_features = adata.obs["n_features"].to_numpy()
    total = adata.obs["total_counts"].to_numpy()

    step = n_features >= config.min_features
    result.dropped["min_features"] = int((mask & ~step).sum())
    mask &= step

    if config.min_counts is not None:
        step = total >= config.min_counts
        result.dropped["min_counts"] = int((mask & ~step).sum())
        mask &= step

    if config.max_counts is not None:
        step = total <= config.max_counts
        result.dropped["max_counts"] = int((mask & ~step).sum())
        mask &= step

    for name, n in result.dropped.items():
        if n:
            logger.info("Filter %s removed %d cells", name, n)

    if mask.sum() == 0:
        raise ValueError(
            "Cell QC removed all cells; relax min_features / count thresholds."
        )

    adata = adata[mask].copy()
    adata.var["n_cells"] = np.asarray((adata.X > 0).sum(axis=0)).ravel()

    if config.min_cells > 0:
        keep = adata.var["n_cells"].to_numpy() >= config.min_cells
        n_dropped = int((~keep).sum())
        if n_dropped:
            logger.info(
                "Dropping %d peaks detected in < %d cells", n_dropped, config.min_cells
            )
            adata = adata[:, keep].copy()

    if fragment_counts is not None:
        joined = fragment_counts.reindex(adata.obs_names)
        for col in joined.columns:
            adata.obs[col] = joined[col].to_numpy()
        if "frequency_count" in joined.columns:
            adata.obs["n_fragments"] = joined["frequency_count"].to_numpy()

    adata.obs["dataset"] = config.dataset

    result.adata = adata
    result.n_cells_kept = adata.n_obs
    result.n_features_kept = adata.n_vars

    logger.info(
        "Chromatin object: %d / %d cells, %d peaks",
        result.n_cells_kept,
        result.n_cells_quantified,
        result.n_features_kept,
    )
    return result
