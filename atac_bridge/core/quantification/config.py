"""Configuration for feature quantification and object creation."""

from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


@dataclass
class QuantificationConfig:
    """Configuration for counting reference peaks in query cells.

    Attributes
    ----------
    genome : str
        Name of a snapatac2 genome (``snapatac2.genome.<name>``) providing
        chromosome sizes
    sorted_by_barcode : bool
        Whether the fragment file is sorted by barcode
    counting_strategy : str
        snapatac2 counting strategy ('insertion', 'fragment', 'paired-insertion')
    min_features : int
        Drop cells with fewer detected peaks
    min_cells : int
        Drop peaks detected in fewer cells
    min_counts : int, optional
        Drop cells with fewer total counts
    max_counts : int, optional
        Drop cells with more total counts
    dataset : str
        Label written to ``obs['dataset']``
    """

    genome: str = "hg38"
    sorted_by_barcode: bool = True
    counting_strategy: str = "paired-insertion"
    min_features: int = 1000
    min_cells: int = 0
    min_counts: Optional[int] = 2000
    max_counts: Optional[int] = 30000
    dataset: str = "atac"

    @classmethod
    def from_yaml(cls, path: Path) -> "QuantificationConfig":
        """Load configuration from YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}

        if "quantification" in data:
            data = data["quantification"]

        return cls(**data)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)
