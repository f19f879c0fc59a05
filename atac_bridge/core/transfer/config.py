"""Configuration for reference mapping and label transfer."""

from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml


@dataclass
class TransferConfig:
    """Configuration for anchor finding and transfer.

    Attributes
    ----------
    label_key : str
        Reference obs column holding the labels to transfer
    k_anchor : int
        Neighbours searched in each direction for mutual-nearest anchors
    k_score : int
        Neighbourhood size used to score anchors
    k_weight : int
        Anchors used to weight each query cell
    sd_weight : float
        Bandwidth of the Gaussian anchor weighting
    l2_norm : bool
        L2-normalise embeddings before searching for anchors
    genes : List[str], optional
        Genes to transfer; top variable genes when None
    n_top_genes : int
        Number of variable genes when ``genes`` is None
    """

    label_key: str = "celltype"
    k_anchor: int = 5
    k_score: int = 30
    k_weight: int = 50
    sd_weight: float = 1.0
    l2_norm: bool = True
    genes: Optional[List[str]] = None
    n_top_genes: int = 2000

    @classmethod
    def from_yaml(cls, path: Path) -> "TransferConfig":
        """Load configuration from YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}

        if "transfer" in data:
            data = data["transfer"]

        return cls(**data)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)
