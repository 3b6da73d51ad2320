"""
Repository layer for data access.

Repositories encapsulate SQLAlchemy queries for each table. Statements over
project-owned tables are scoped to the caller's authorized project ids with
workflow_store.services.ProjectScopeService before they are executed.
"""

from .workflow_runtime_data import WorkflowRuntimeDataRepository

__all__ = ["WorkflowRuntimeDataRepository"]
