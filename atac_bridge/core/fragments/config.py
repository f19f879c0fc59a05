"""Configuration for fragment counting."""

from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


@dataclass
class FragmentConfig:
    """Configuration for per-cell fragment counting and cell selection.

    Attributes
    ----------
    min_fragments : int
        Keep barcodes with strictly more fragments than this
    max_fragments : int, optional
        Drop barcodes with more fragments than this
    require_index : bool
        Require a tabix index (``<file>.tbi``) next to the fragment file
    chunksize : int
        Number of fragment lines read per chunk
    """

    min_fragments: int = 2000
    max_fragments: Optional[int] = None
    require_index: bool = True
    chunksize: int = 2_000_000

    @classmethod
    def from_yaml(cls, path: Path) -> "FragmentConfig":
        """Load configuration from YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}

        if "fragments" in data:
            data = data["fragments"]

        return cls(**data)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)
