"""Configuration for workflow figures."""

from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml


@dataclass
class PlotConfig:
    """Figure settings for the ``plots`` workflow step.

    Attributes
    ----------
    enabled : bool
        Render figures at all
    output_subdir : str
        Figure directory relative to the output directory
    fmt : str
        File format passed to matplotlib (png, pdf, svg)
    dpi : int
        Resolution
    point_size : float, optional
        Scatter point size; scaled to the cell count when None
    genes : List[str]
        Transferred genes to show (first few variable genes when empty)
    max_genes : int
        Panels in the transferred-expression figure
    """

    enabled: bool = True
    output_subdir: str = "figures"
    fmt: str = "png"
    dpi: int = 200
    point_size: Optional[float] = None
    genes: List[str] = field(default_factory=list)
    max_genes: int = 4

    @classmethod
    def from_yaml(cls, path: Path) -> "PlotConfig":
        """Load configuration from YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}

        if "plots" in data:
            data = data["plots"]

        return cls(**data)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)
