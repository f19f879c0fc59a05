"""Integration module.

Merges a reference and a query dataset, reduces them jointly and corrects
the joint embedding for the dataset effect.

Example Usage
-------------
>>> from atac_bridge.core.integration import IntegrationConfig, IntegrationEngine
>>> engine = IntegrationEngine(IntegrationConfig(method="harmony"))
>>> result = engine.run(reference, query)
>>> result.mixing
{'unintegrated': 0.12, 'integrated': 0.87}
"""

from .config import IntegrationConfig
from .engine import (
    INTEGRATION_METHODS,
    IntegrationEngine,
    IntegrationResult,
    dataset_mixing,
    integrate_embeddings,
    merge_datasets,
)

__all__ = [
    "IntegrationConfig",
    "INTEGRATION_METHODS",
    "IntegrationEngine",
    "IntegrationResult",
    "dataset_mixing",
    "integrate_embeddings",
    "merge_datasets",
]
