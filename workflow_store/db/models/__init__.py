"""
ORM models for the workflow runtime store.

Importing this package ensures model classes are registered with the Base
metadata for Alembic and runtime usage.
"""

from .workflow import (  # noqa: F401
    WorkflowRuntimeData,
    WorkflowRuntimeDataStatus,
)
