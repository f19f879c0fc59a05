"""AnnData persistence."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Union

import pandas as pd

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def read_h5ad(path: PathLike) -> "anndata.AnnData":
    """Load an AnnData object.

    Raises
    ------
    FileNotFoundError
        If the file does not exist.
    """
    import scanpy as sc

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"AnnData file not found: {path}")

    adata = sc.read_h5ad(path)
    logger.info("Loaded %s: %d cells x %d features", path, adata.n_obs, adata.n_vars)
    return adata


def _stringify_frames(adata) -> None:
    # h5ad requires string column names for DataFrames held in obsm
    for key in list(adata.obsm.keys()):
        value = adata.obsm[key]
        if isinstance(value, pd.DataFrame):
            value.columns = value.columns.astype(str)


def write_h5ad(adata, path: PathLike, compression: str = "gzip") -> Path:
    """Write an AnnData object, creating the parent directory."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    _stringify_frames(adata)
    adata.write_h5ad(path, compression=compression)
    logger.info("Wrote %s: %d cells x %d features", path, adata.n_obs, adata.n_vars)
    return path
