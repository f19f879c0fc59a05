"""Configuration for dataset merging and embedding integration."""

from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict

import yaml

from ..reduction.config import DimsSpec


@dataclass
class IntegrationConfig:
    """Configuration for merging and integrating two datasets.

    Attributes
    ----------
    method : str
        'mnc' (snapatac2 mutual-nearest-cluster correction) or 'harmony'
    batch_key : str
        obs column holding the dataset label
    reference_label : str
        Dataset label for the reference
    query_label : str
        Dataset label for the query
    integrate_dims : str, int or list
        Components of the merged reduction to integrate (one-based)
    umap_dims : str, int or list
        Components of the integrated embedding used for UMAP (one-based)
    mnc_neighbors : int
        Neighbours used by mutual-nearest-cluster correction
    mnc_clusters : int
        Clusters used by mutual-nearest-cluster correction
    mixing_neighbors : int
        Neighbourhood size for the dataset-mixing score
    """

    method: str = "mnc"
    batch_key: str = "dataset"
    reference_label: str = "multiome"
    query_label: str = "atac"
    integrate_dims: DimsSpec = "1:30"
    umap_dims: DimsSpec = "2:30"
    mnc_neighbors: int = 5
    mnc_clusters: int = 40
    mixing_neighbors: int = 30

    @classmethod
    def from_yaml(cls, path: Path) -> "IntegrationConfig":
        """Load configuration from YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}

        if "integration" in data:
            data = data["integration"]

        return cls(**data)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)
