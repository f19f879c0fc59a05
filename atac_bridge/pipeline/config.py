"""Workflow configuration loader and validator."""

import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from ..core.fragments import FragmentConfig
from ..core.integration import IntegrationConfig
from ..core.quantification import QuantificationConfig
from ..core.reduction import ReductionConfig
from ..core.transfer import TransferConfig
from ..viz.config import PlotConfig

# Section name -> config dataclass
SECTION_TYPES = {
    "fragments": FragmentConfig,
    "quantification": QuantificationConfig,
    "reduction": ReductionConfig,
    "integration": IntegrationConfig,
    "transfer": TransferConfig,
    "plots": PlotConfig,
}

DEFAULT_PATHS = {
    "reference": None,
    "fragments": None,
    "expression": None,
    "output_dir": "output",
    "result": "{paths.output_dir}/query_mapped.h5ad",
    "state_file": "{paths.output_dir}/.workflow_state.json",
    "log_dir": "{paths.output_dir}/logs",
}

REQUIRED_INPUTS = ("reference", "fragments")

TEMPLATE_PATTERN = re.compile(r"\{([^}]+)\}")


class WorkflowConfig:
    """Workflow settings loaded from a YAML file.

    The file has a ``paths`` section and one optional section per module::

        paths:
          reference: data/multiome_reference.h5ad
          fragments: data/pbmc_atac_fragments.tsv.gz
          output_dir: results/pbmc
        reduction:
          dims: "2:30"
        transfer:
          label_key: celltype

    String values may reference other values with ``{section.key}``
    templates (e.g. ``{paths.output_dir}/figures``).

    Parameters
    ----------
    config_path : str or Path, optional
        YAML file to load with :meth:`load`

    Example
    -------
    >>> config = WorkflowConfig("workflow.yaml")
    >>> config.load()
    >>> ok, errors = config.validate()
    >>> config.section("transfer").label_key
    'celltype'
    """

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = Path(config_path) if config_path else None
        self.raw_config: Dict[str, Any] = {}
        self.paths: Dict[str, Optional[str]] = {}

    def load(self) -> "WorkflowConfig":
        """Read the YAML file and resolve paths.

        Raises
        ------
        FileNotFoundError
            If the config file doesn't exist
        ValueError
            If an unknown top-level section is present
        """
        if self.config_path is None or not self.config_path.exists():
            raise FileNotFoundError(f"Config file not found: {self.config_path}")

        with open(self.config_path, "r") as f:
            data = yaml.safe_load(f) or {}

        self._set_raw(data)
        return self

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkflowConfig":
        """Build a config from an already-parsed dictionary."""
        config = cls()
        config._set_raw(data)
        return config

    def _set_raw(self, data: Dict[str, Any]) -> None:
        unknown = set(data) - set(SECTION_TYPES) - {"paths"}
        if unknown:
            raise ValueError(f"Unknown config sections: {sorted(unknown)}")

        paths = dict(DEFAULT_PATHS)
        paths.update(data.get("paths") or {})
        self.raw_config = dict(data)
        self.raw_config["paths"] = paths
        self.paths = {
            key: self.resolve(value) if isinstance(value, str) else value
            for key, value in paths.items()
        }

    def resolve(self, template: str) -> str:
        """Replace ``{section.key}`` references in ``template``.

        Unresolvable references are left in place.
        """
        if "{" not in template:
            return template

        def replace(match):
            value: Any = self.raw_config
            for part in match.group(1).split("."):
                if not isinstance(value, dict) or part not in value:
                    return match.group(0)
                value = value[part]
            if value is None or isinstance(value, dict):
                return match.group(0)
            return str(value)

        resolved = TEMPLATE_PATTERN.sub(replace, template)
        if resolved != template and "{" in resolved:
            return self.resolve(resolved)
        return resolved

    def section(self, name: str):
        """Return the config dataclass for a module section."""
        if name not in SECTION_TYPES:
            raise KeyError(f"Unknown config section {name!r}")

        data = self.raw_config.get(name) or {}
        data = {
            key: self.resolve(value) if isinstance(value, str) else value
            for key, value in data.items()
        }
        section_type = SECTION_TYPES[name]
        if hasattr(section_type, "from_dict"):
            return section_type.from_dict(data)
        return section_type(**data)

    def path(self, key: str) -> Optional[Path]:
        """Resolved path for ``paths.<key>`` (None when unset)."""
        value = self.paths.get(key)
        return Path(value) if value else None

    @property
    def output_dir(self) -> Path:
        return Path(self.paths["output_dir"])

    def validate(self) -> Tuple[bool, List[str]]:
        """Check required inputs exist and every section parses.

        Returns
        -------
        Tuple[bool, List[str]]
            (valid, errors)
        """
        errors = []
        for key in REQUIRED_INPUTS:
            value = self.paths.get(key)
            if not value:
                errors.append(f"paths.{key} is not set")
            elif not Path(value).exists():
                errors.append(f"paths.{key} not found: {value}")

        expression = self.paths.get("expression")
        if expression and not Path(expression).exists():
            errors.append(f"paths.expression not found: {expression}")

        for name in SECTION_TYPES:
            try:
                self.section(name)
            except (TypeError, ValueError) as e:
                errors.append(f"Invalid '{name}' section: {e}")

        return (len(errors) == 0, errors)

    def to_dict(self) -> Dict[str, Any]:
        """Resolved configuration with defaults filled in."""
        data: Dict[str, Any] = {"paths": dict(self.paths)}
        for name in SECTION_TYPES:
            data[name] = self.section(name).to_dict()
        return data
