from __future__ import annotations

from typing import Any


class WorkflowStoreError(Exception):
    """Base class for errors raised by the workflow store itself."""


class NotFoundError(WorkflowStoreError):
    """
    A scoped lookup, update or delete matched zero rows.

    Raised both when the record does not exist and when it belongs to a project
    outside the caller's authorized set. The message is the same in both cases.
    """

    def __init__(self, entity: str, id: Any) -> None:
        super().__init__(f"No {entity} found with the id {str(id)!r}")
        self.entity = entity
        self.id = id
