from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Iterable

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ProjectContext(BaseModel):
    """
    The caller's authorized project identifiers, passed explicitly through
    every layer.

    Build it once from the authenticated principal at the edge of the request
    and hand it (or its ``project_ids``) to repository calls.
    """

    model_config = ConfigDict(frozen=True)

    project_ids: tuple[str, ...] = Field(default=(), description="Authorized project ids")

    @field_validator("project_ids", mode="before")
    @classmethod
    def _drop_blank_ids(cls, v):
        if v is None:
            return ()
        if isinstance(v, str):
            v = [v]
        return tuple(dict.fromkeys(str(p) for p in v if p is not None and str(p).strip()))

    @classmethod
    def from_principal(cls, principal: Any) -> "ProjectContext":
        """
        Read project ids from an authenticated principal.

        Accepts a mapping or an object exposing ``project_ids`` (or ``projectIds``).
        A principal without project ids yields an empty context, which scopes
        every query to zero rows.
        """
        if principal is None:
            return cls()
        if isinstance(principal, Mapping):
            ids = principal.get("project_ids", principal.get("projectIds"))
        else:
            ids = getattr(principal, "project_ids", None)
            if ids is None:
                ids = getattr(principal, "projectIds", None)
        return cls(project_ids=ids)

    @classmethod
    def of(cls, project_ids: Iterable[str]) -> "ProjectContext":
        return cls(project_ids=tuple(project_ids))

    @property
    def is_empty(self) -> bool:
        return not self.project_ids
