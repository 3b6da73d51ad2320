"""
Public Pydantic schemas used by the repository layer and tests.
"""

from .workflow import (  # noqa: F401
    BusinessRef,
    EndUserRef,
    EntityRef,
    EntityType,
    FindLastActiveParams,
    WorkflowRuntimeDataCreate,
    WorkflowRuntimeDataRead,
    WorkflowSearchFilters,
    WorkflowSearchQuery,
)
