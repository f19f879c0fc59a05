"""Configuration classes for the reduction module.

Dimension ranges use one-based, inclusive notation (``"2:30"``) so the
first LSI component, which usually tracks sequencing depth, can be
left out.
"""

from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

DimsSpec = Union[str, int, List[int]]


@dataclass
class UMAPConfig:
    """Configuration for UMAP embeddings.

    Attributes
    ----------
    n_neighbors : int
        Size of the local neighbourhood
    min_dist : float
        Minimum distance between embedded points
    metric : str
        Distance metric in the input space
    random_state : int
        Random seed for reproducibility
    """

    n_neighbors: int = 30
    min_dist: float = 0.3
    metric: str = "cosine"
    random_state: int = 42


@dataclass
class ReductionConfig:
    """Configuration for normalisation and dimensionality reduction.

    Attributes
    ----------
    method : str
        'lsi' (TF-IDF + truncated SVD) or 'spectral' (snapatac2)
    min_cutoff : int, str or None
        Top-feature cutoff: a count (features with more total counts are
        kept), 'qN' for the N-th percentile, or None for all features
    n_components : int
        Number of components to compute
    dims : str, int or list
        Components used downstream (one-based, inclusive)
    scale_factor : float
        Multiplier applied to TF-IDF values before log1p
    scale_embeddings : bool
        Standardise each LSI component across cells
    random_state : int
        Random seed for the SVD
    umap : UMAPConfig
        UMAP parameters
    """

    method: str = "lsi"
    min_cutoff: Optional[Union[int, str]] = 10
    n_components: int = 50
    dims: DimsSpec = "2:30"
    scale_factor: float = 1e4
    scale_embeddings: bool = True
    random_state: int = 42
    umap: UMAPConfig = field(default_factory=UMAPConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReductionConfig":
        """Build from a plain dictionary (nested 'umap' section allowed)."""
        data = dict(data or {})
        umap_cfg = UMAPConfig(**data.pop("umap", {}))
        return cls(umap=umap_cfg, **data)

    @classmethod
    def from_yaml(cls, path: Path) -> "ReductionConfig":
        """Load configuration from YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}

        if "reduction" in data:
            data = data["reduction"]

        return cls.from_dict(data)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)
