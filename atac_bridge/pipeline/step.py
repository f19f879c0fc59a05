"""Workflow step representation."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Tuple

# A step function receives the outputs of earlier steps, keyed by step id,
# and returns its own outputs keyed by output name.
StepFunc = Callable[[Dict[str, Dict[str, Any]]], Dict[str, Any]]


@dataclass
class Step:
    """One unit of the analysis workflow.

    Attributes
    ----------
    step_id : str
        Short identifier (e.g., "quantify", "transfer")
    name : str
        Human-readable step name
    func : StepFunc
        Callable run by the executor
    depends_on : List[str]
        Step IDs whose outputs this step reads
    outputs : Dict[str, str]
        Output name -> path for outputs persisted to disk; AnnData goes to
        ``.h5ad`` and DataFrames to ``.csv``

    Example
    -------
    >>> step = Step(
    ...     step_id="fragments",
    ...     name="Fragment counting",
    ...     func=count_step,
    ...     outputs={"fragment_counts": "out/fragment_counts.csv"},
    ... )
    >>> ok, missing = step.validate_outputs()
    """

    step_id: str
    name: str
    func: StepFunc
    depends_on: List[str] = field(default_factory=list)
    outputs: Dict[str, str] = field(default_factory=dict)

    def validate_outputs(self) -> Tuple[bool, List[str]]:
        """Check that every declared output exists on disk.

        Returns
        -------
        Tuple[bool, List[str]]
            (success, errors) with one error per missing output
        """
        errors = []
        for name, path in self.outputs.items():
            if not Path(path).exists():
                errors.append(f"Output '{name}' not found: {path}")
        return (len(errors) == 0, errors)

    def to_dict(self) -> Dict[str, Any]:
        """Serialisable description (the callable is named, not stored)."""
        return {
            "step_id": self.step_id,
            "name": self.name,
            "func": getattr(self.func, "__name__", repr(self.func)),
            "depends_on": self.depends_on,
            "outputs": self.outputs,
        }
