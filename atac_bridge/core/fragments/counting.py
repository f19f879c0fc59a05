"""Per-cell fragment counting from a fragment file.

A fragment file is a (usually bgzipped, tabix-indexed) tab-separated table
with one sequenced fragment per line::

    chrom  start  end  barcode  readcount

Header lines start with ``#``.
"""

from pathlib import Path
from typing import Iterable, List, Optional, Union
import logging

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

FRAGMENT_COLUMNS = ["chrom", "start", "end", "barcode", "readcount"]

# Fragment length bins (bp)
NUCLEOSOME_FREE_MAX = 147
MONONUCLEOSOME_MAX = 294

COUNT_COLUMNS = [
    "frequency_count",
    "reads_count",
    "nucleosome_free",
    "mononucleosomal",
]


def validate_fragment_file(path: PathLike, require_index: bool = True) -> Path:
    """Check that a fragment file (and optionally its tabix index) exists.

    Parameters
    ----------
    path : PathLike
        Path to the fragment file
    require_index : bool
        Also require ``<path>.tbi``

    Returns
    -------
    Path
        The validated path

    Raises
    ------
    FileNotFoundError
        If the file or its index is missing
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Fragment file not found: {path}")

    if require_index:
        index = path.with_name(path.name + ".tbi")
        if not index.exists():
            raise FileNotFoundError(f"Fragment index not found: {index}")

    return path


def _summarise_chunk(chunk: pd.DataFrame) -> pd.DataFrame:
    length = chunk["end"] - chunk["start"]
    frame = pd.DataFrame({
        "barcode": chunk["barcode"],
        "frequency_count": 1,
        "reads_count": chunk["readcount"],
        "nucleosome_free": (length < NUCLEOSOME_FREE_MAX).astype(np.int64),
        "mononucleosomal": (
            (length >= NUCLEOSOME_FREE_MAX) & (length <= MONONUCLEOSOME_MAX)
        ).astype(np.int64),
    })
    return frame.groupby("barcode", sort=False).sum()


def count_fragments(
    path: PathLike,
    cells: Optional[Iterable[str]] = None,
    chunksize: int = 2_000_000,
) -> pd.DataFrame:
    """Count fragments per cell barcode.

    Parameters
    ----------
    path : PathLike
        Fragment file (plain or gzip/bgzip compressed)
    cells : Iterable[str], optional
        Only count these barcodes
    chunksize : int
        Lines per chunk when streaming the file

    Returns
    -------
    pd.DataFrame
        Indexed by barcode with columns ``frequency_count``,
        ``reads_count``, ``nucleosome_free`` and ``mononucleosomal``
    """
    path = Path(path)
    whitelist = set(cells) if cells is not None else None

    logger.info("Counting fragments in %s", path)

    reader = pd.read_csv(
        path,
        sep="\t",
        header=None,
        comment="#",
        usecols=range(len(FRAGMENT_COLUMNS)),
        names=FRAGMENT_COLUMNS,
        dtype={"chrom": str, "start": np.int64, "end": np.int64,
               "barcode": str, "readcount": np.int64},
        chunksize=chunksize,
    )

    partials: List[pd.DataFrame] = []
    n_lines = 0
    with reader:
        for chunk in reader:
            n_lines += len(chunk)
            if whitelist is not None:
                chunk = chunk[chunk["barcode"].isin(whitelist)]
            if len(chunk) == 0:
                continue
            partials.append(_summarise_chunk(chunk))

    if partials:
        counts = pd.concat(partials).groupby(level=0, sort=False).sum()
    else:
        counts = pd.DataFrame(columns=COUNT_COLUMNS, dtype=np.int64)
    counts = counts[COUNT_COLUMNS].astype(np.int64)
    counts.index.name = "barcode"

    logger.info(
        "Counted %d fragments across %d barcodes", n_lines, len(counts)
    )
    return counts


def select_cells(
    counts: pd.DataFrame,
    min_fragments: int = 2000,
    max_fragments: Optional[int] = None,
) -> List[str]:
    """Select barcodes by fragment count.

    Parameters
    ----------
    counts : pd.DataFrame
        Output of :func:`count_fragments`
    min_fragments : int
        Keep barcodes with strictly more fragments than this
    max_fragments : int, optional
        Drop barcodes with more fragments than this

    Returns
    -------
    List[str]
        Selected barcodes, in table order

    Raises
    ------
    ValueError
        If no barcode passes the thresholds
    """
    freq = counts["frequency_count"]
    mask = freq > min_fragments
    if max_fragments is not None:
        mask &= freq <= max_fragments

    selected = counts.index[mask.to_numpy()].astype(str).tolist()
    if not selected:
        raise ValueError(
            f"No cells with more than {min_fragments} fragments; "
            "lower min_fragments."
        )

    logger.info(
        "Selected %d / %d barcodes with > %d fragments",
        len(selected),
        len(counts),
        min_fragments,
    )
    return selected
