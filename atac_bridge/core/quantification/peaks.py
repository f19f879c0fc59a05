"""Peak name parsing and conversion.

Peaks are named ``chrom-start-end`` in the reference objects. snapatac2
expects genomic regions as ``chrom:start-end``. Both forms are accepted on
input.
"""

import re
from typing import Iterable, List, Tuple

import pandas as pd

_PEAK_RE = re.compile(r"^(?P<chrom>.+?)[:\-_](?P<start>\d+)[\-_](?P<end>\d+)$")


def parse_peak(name: str) -> Tuple[str, int, int]:
    """Split a peak name into (chrom, start, end).

    Raises
    ------
    ValueError
        If the name is malformed or start >= end
    """
    match = _PEAK_RE.match(str(name).strip())
    if match is None:
        raise ValueError(f"Malformed peak name: {name!r}")

    chrom = match.group("chrom")
    start = int(match.group("start"))
    end = int(match.group("end"))
    if start >= end:
        raise ValueError(f"Peak {name!r} has start >= end")

    return chrom, start, end


def peaks_to_frame(names: Iterable[str]) -> pd.DataFrame:
    """Build a (chrom, start, end) table indexed by the original names."""
    names = list(names)
    rows = [parse_peak(n) for n in names]
    return pd.DataFrame(
        rows, columns=["chrom", "start", "end"], index=pd.Index(names, name="peak")
    )


def normalise_peak_names(names: Iterable[str]) -> List[str]:
    """Rewrite peak names as ``chrom-start-end``."""
    return [f"{c}-{s}-{e}" for c, s, e in map(parse_peak, names)]


def to_snap_regions(names: Iterable[str]) -> List[str]:
    """Rewrite peak names as snapatac2 regions (``chrom:start-end``)."""
    return [f"{c}:{s}-{e}" for c, s, e in map(parse_peak, names)]
