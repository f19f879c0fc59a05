"""Workflow execution engine with checkpoint support."""

import json
import time
from collections import deque
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd

from ..io import read_h5ad, read_table, write_h5ad, write_table
from .logger import WorkflowLogger
from .step import Step


def _is_anndata(value: Any) -> bool:
    from anndata import AnnData

    return isinstance(value, AnnData)


class WorkflowExecutor:
    """Runs workflow steps in dependency order with checkpointing.

    Step outputs stay in memory for later steps. Outputs with a declared
    path are also written to disk so that an interrupted run can resume:
    completed steps are skipped and their outputs reloaded.

    Parameters
    ----------
    steps : Iterable[Step]
        Workflow steps
    logger : WorkflowLogger, optional
        Logger instance
    state_file : str or Path, optional
        Path to checkpoint state file

    Attributes
    ----------
    steps : Dict[str, Step]
        Steps by ID
    completed_steps : List[str]
        Successfully completed step IDs
    results : Dict[str, Dict[str, Any]]
        Outputs by step ID from the latest run

    Example
    -------
    >>> executor = WorkflowExecutor(build_workflow(config), logger,
    ...                             state_file=config.paths["state_file"])
    >>> results = executor.run(end_step="transfer")
    """

    def __init__(
        self,
        steps: Iterable[Step],
        logger: Optional[WorkflowLogger] = None,
        state_file: Optional[str] = None,
    ):
        self.steps: Dict[str, Step] = {}
        for step in steps:
            if step.step_id in self.steps:
                raise ValueError(f"Duplicate step id '{step.step_id}'")
            self.steps[step.step_id] = step

        self.logger = logger or WorkflowLogger()
        self.state_file = (
            Path(state_file) if state_file else Path(".workflow_state.json")
        )
        self.completed_steps: List[str] = []
        self.results: Dict[str, Dict[str, Any]] = {}

    # ------------------------------------------------------------------
    # Ordering
    # ------------------------------------------------------------------

    def get_execution_order(self) -> List[str]:
        """Topological order of the steps (Kahn's algorithm).

        Raises
        ------
        ValueError
            On an unknown dependency or a dependency cycle
        """
        for step_id, step in self.steps.items():
            for dep in step.depends_on:
                if dep not in self.steps:
                    raise ValueError(
                        f"Step '{step_id}' depends on unknown step '{dep}'"
                    )

        in_degree = {
            step_id: len(step.depends_on) for step_id, step in self.steps.items()
        }
        queue = deque([sid for sid, degree in in_degree.items() if degree == 0])
        order = []

        while queue:
            step_id = queue.popleft()
            order.append(step_id)
            for other_id, other in self.steps.items():
                if step_id in other.depends_on:
                    in_degree[other_id] -= 1
                    if in_degree[other_id] == 0:
                        queue.append(other_id)

        if len(order) != len(self.steps):
            raise ValueError(
                "Circular dependency detected - cannot compute execution order"
            )
        return order

    # ------------------------------------------------------------------
    # Checkpointing
    # ------------------------------------------------------------------

    def load_state(self) -> None:
        """Load completed steps from the state file, if any."""
        if not self.state_file.exists():
            self.logger.log_debug("No checkpoint file found, starting fresh")
            self.completed_steps = []
            return

        try:
            with open(self.state_file, "r") as f:
                state = json.load(f)
        except json.JSONDecodeError as e:
            self.logger.log_warning(f"Ignoring unreadable checkpoint: {e}")
            self.completed_steps = []
            return

        self.completed_steps = [
            s for s in state.get("completed_steps", []) if s in self.steps
        ]
        self.logger.log_info(
            f"Loaded checkpoint: {len(self.completed_steps)} steps completed"
        )

    def save_state(self) -> None:
        """Write completed steps to the state file."""
        state = {
            "completed_steps": self.completed_steps,
            "timestamp": datetime.now().isoformat(),
        }
        self.state_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self.state_file, "w") as f:
            json.dump(state, f, indent=2)

    def clear_state(self) -> None:
        """Remove the checkpoint (for a fresh run)."""
        if self.state_file.exists():
            self.state_file.unlink()
            self.logger.log_info("Cleared checkpoint state")
        self.completed_steps = []

    def get_resume_step(self) -> Optional[str]:
        """First step in execution order that has not completed.

        Returns None when starting fresh or when every step has completed.
        """
        self.load_state()
        if not self.completed_steps:
            return None

        for step_id in self.get_execution_order():
            if step_id not in self.completed_steps:
                return step_id
        return None

    # ------------------------------------------------------------------
    # Outputs
    # ------------------------------------------------------------------

    def write_outputs(self, step: Step, outputs: Dict[str, Any]) -> None:
        """Persist the step's declared outputs (AnnData -> h5ad, DataFrame -> csv)."""
        for name, path in step.outputs.items():
            if name not in outputs:
                raise KeyError(f"Step '{step.step_id}' did not return output '{name}'")
            value = outputs[name]
            if _is_anndata(value):
                write_h5ad(value, path)
            elif isinstance(value, pd.DataFrame):
                write_table(value, path)
            elif not Path(path).exists():
                raise TypeError(
                    f"Cannot persist output '{name}' of type {type(value).__name__}"
                )

    def load_outputs(self, step: Step) -> Optional[Dict[str, Any]]:
        """Reload the declared outputs of a completed step.

        Returns None if any output is missing from disk.
        """
        valid, errors = step.validate_outputs()
        if not valid:
            for error in errors:
                self.logger.log_warning(f"Step {step.step_id}: {error}")
            return None

        outputs: Dict[str, Any] = {}
        for name, path in step.outputs.items():
            suffix = Path(path).suffix
            if suffix == ".h5ad":
                outputs[name] = read_h5ad(path)
            elif suffix == ".csv":
                outputs[name] = read_table(path)
            else:
                outputs[name] = Path(path)
        return outputs

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def execute_step(self, step: Step) -> Dict[str, Any]:
        """Run one step, persist its outputs and checkpoint it.

        Raises
        ------
        RuntimeError
            If a dependency has no outputs available
        Exception
            Whatever the step raises, after logging it
        """
        for dep in step.depends_on:
            if dep not in self.results:
                raise RuntimeError(
                    f"Step '{step.step_id}' needs outputs of '{dep}', "
                    "which has not been run"
                )

        self.logger.log_step_start(step.step_id, step.name)
        start_time = time.time()
        try:
            outputs = step.func(self.results) or {}
            self.write_outputs(step, outputs)
        except Exception as e:
            self.logger.log_step_error(step.step_id, f"{type(e).__name__}: {e}")
            raise

        self.results[step.step_id] = outputs
        if step.step_id not in self.completed_steps:
            self.completed_steps.append(step.step_id)
        self.save_state()
        self.logger.log_step_complete(step.step_id, time.time() - start_time)
        return outputs

    def _restore(self, step_id: str) -> bool:
        outputs = self.load_outputs(self.steps[step_id])
        if outputs is None:
            return False
        self.results[step_id] = outputs
        return True

    def run(
        self,
        start_step: Optional[str] = None,
        end_step: Optional[str] = None,
        dry_run: bool = False,
        force: bool = False,
    ) -> Dict[str, Dict[str, Any]]:
        """Execute steps from ``start_step`` to ``end_step``.

        Parameters
        ----------
        start_step : str, optional
            Step ID to start from (default: first step); earlier steps'
            outputs are reloaded from disk
        end_step : str, optional
            Step ID to end at (default: last step)
        dry_run : bool
            Log the execution plan without running anything
        force : bool
            Ignore the checkpoint and re-run every selected step

        Returns
        -------
        Dict[str, Dict[str, Any]]
            Outputs by step ID
        """
        full_order = self.get_execution_order()
        order = list(full_order)

        if start_step:
            if start_step not in order:
                raise ValueError(f"Start step '{start_step}' not found")
            order = order[order.index(start_step):]
        if end_step:
            if end_step not in order:
                raise ValueError(f"End step '{end_step}' not found in selected range")
            order = order[: order.index(end_step) + 1]

        if force:
            self.clear_state()
        else:
            self.load_state()

        self.logger.log_info(f"Workflow execution plan: {' -> '.join(order)}")
        if dry_run:
            for step_id in order:
                status = (
                    "completed" if step_id in self.completed_steps and not force
                    else "pending"
                )
                self.logger.log_info(
                    f"[DRY RUN] {step_id}: {self.steps[step_id].name} ({status})"
                )
            return {}

        self.results = {}
        needed = {dep for sid in order for dep in self.steps[sid].depends_on}
        for step_id in full_order[: full_order.index(order[0])] if order else []:
            if step_id in needed and not self._restore(step_id):
                self.logger.log_warning(
                    f"Outputs of step {step_id} are not on disk; later steps may fail"
                )

        for step_id in order:
            if step_id in self.completed_steps and not force:
                if self._restore(step_id):
                    self.logger.log_info(f"[SKIP] Step {step_id} already completed")
                    continue
                self.logger.log_warning(f"Re-running step {step_id}: outputs missing")
                self.completed_steps.remove(step_id)

            self.execute_step(self.steps[step_id])

        self.logger.log_info("Workflow completed successfully")
        return self.results
