"""CSV tables (fragment counts, anchors, prediction scores)."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Union

import pandas as pd

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def ensure_output_dir(path: PathLike) -> Path:
    """Create the directory at ``path`` if needed and return it."""
    directory = Path(path)
    directory.mkdir(parents=True, exist_ok=True)
    return directory


def write_table(df: pd.DataFrame, path: PathLike, *, index: bool = True) -> Path:
    """Write ``df`` as CSV, creating the parent directory.

    Parameters
    ----------
    df : pd.DataFrame
        Table to write.
    path : PathLike
        Output path.
    index : bool
        Write the row index (cell barcodes for per-cell tables).

    Returns
    -------
    Path
        The output path.
    """
    output_path = Path(path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(output_path, index=index)
    logger.info("Wrote %d rows to %s", len(df), output_path)
    return output_path


def read_table(path: PathLike, index_col: Optional[int] = 0) -> pd.DataFrame:
    """Read a CSV written by :func:`write_table`.

    Raises
    ------
    FileNotFoundError
        If the file does not exist.
    """
    csv_path = Path(path)
    if not csv_path.exists():
        raise FileNotFoundError(f"Table not found: {csv_path}")
    df = pd.read_csv(csv_path, index_col=index_col)
    if index_col is not None:
        df.index = df.index.astype(str)
    return df
