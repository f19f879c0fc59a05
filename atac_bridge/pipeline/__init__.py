"""Workflow orchestration module.

Provides YAML-based configuration and step execution with
checkpoint support and dependency resolution.

Example Usage
-------------
>>> from atac_bridge.pipeline import WorkflowConfig, WorkflowExecutor, WorkflowLogger
>>> from atac_bridge.workflow import build_workflow
>>> config = WorkflowConfig("workflow.yaml").load()
>>> logger = WorkflowLogger(config.paths["log_dir"])
>>> logger.setup()
>>> executor = WorkflowExecutor(
...     build_workflow(config), logger, state_file=config.paths["state_file"]
... )
>>> results = executor.run()
"""

# Step representation
from .step import Step

# Configuration
from .config import SECTION_TYPES, WorkflowConfig

# Logging
from .logger import (
    ColoredFormatter,
    WorkflowLogger,
)

# Execution
from .executor import WorkflowExecutor

__all__ = [
    # Step
    "Step",
    # Config
    "SECTION_TYPES",
    "WorkflowConfig",
    # Logging
    "ColoredFormatter",
    "WorkflowLogger",
    # Execution
    "WorkflowExecutor",
]
