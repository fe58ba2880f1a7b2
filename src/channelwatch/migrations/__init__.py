"""Forward-only schema migrations for the store."""

from .pipeline import SchemaMigrationPipeline
from .steps import LATEST_SCHEMA_VERSION, MIGRATIONS
from .types import (
    Failed,
    MigrationQueue,
    MigrationStep,
    PipelineState,
    StepOutcome,
    Succeeded,
)

__all__ = [
    "LATEST_SCHEMA_VERSION",
    "MIGRATIONS",
    "Failed",
    "MigrationQueue",
    "MigrationStep",
    "PipelineState",
    "SchemaMigrationPipeline",
    "StepOutcome",
    "Succeeded",
]
