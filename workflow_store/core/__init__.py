"""
Core utilities shared by the repository layer.

This package provides:
- Store-level settings (separate from DB settings)
- Error types, logging setup and the caller's project context
- Pure helpers for context documents and JSON deep merges
"""

from .errors import NotFoundError, WorkflowStoreError
from .json_merge import ArrayMergeOption, deep_merge
from .project_context import ProjectContext

__all__ = [
    "ArrayMergeOption",
    "NotFoundError",
    "ProjectContext",
    "WorkflowStoreError",
    "deep_merge",
]
