from __future__ import annotations

import logging
from typing import Any, Iterable, Optional, TypeVar, Union

from sqlalchemy import Delete, Select, Update, false
from sqlalchemy.sql.elements import ColumnElement

from workflow_store.core.project_context import ProjectContext

logger = logging.getLogger(__name__)

ProjectIds = Optional[Union[Iterable[str], ProjectContext]]

_Stmt = TypeVar("_Stmt", Select, Update, Delete)


# PUBLIC_INTERFACE
def normalize_project_ids(project_ids: ProjectIds) -> tuple[str, ...]:
    """Return the authorized ids as a de-duplicated tuple; ``None`` means no projects."""
    if project_ids is None:
        return ()
    if isinstance(project_ids, ProjectContext):
        return project_ids.project_ids
    if isinstance(project_ids, str):
        project_ids = [project_ids]
    return tuple(dict.fromkeys(str(p) for p in project_ids if p is not None and str(p) != ""))


class ProjectScopeService:
    """
    Restrict SQLAlchemy statements to the caller's authorized projects.

    Every method returns a new statement whose WHERE clause is the original one
    AND ``<entity>.project_id IN (:project_ids)``. Ordering, pagination, grouping
    and selected columns are left as they are. An empty authorized set scopes the
    statement to zero rows.
    """

    # PUBLIC_INTERFACE
    def project_predicate(self, entity: Any, project_ids: ProjectIds) -> ColumnElement[bool]:
        """Membership predicate for ``entity.project_id``; SQL false when no project is authorized."""
        column = getattr(entity, "project_id", None)
        if column is None and getattr(entity, "c", None) is not None:
            # Core Table / FromClause
            column = entity.c.get("project_id")
        if column is None:
            raise ValueError(f"{entity!r} has no project_id column and cannot be project-scoped")
        ids = normalize_project_ids(project_ids)
        if not ids:
            logger.debug("Empty project scope for %s; statement will match no rows", entity)
            return false()
        return column.in_(ids)

    # PUBLIC_INTERFACE
    def scope_find_one(self, stmt: Select, project_ids: ProjectIds, *, entity: Any = None) -> Select:
        """Scope a single-record select."""
        return self._scope(stmt, project_ids, entity)

    # PUBLIC_INTERFACE
    def scope_find_many(self, stmt: Select, project_ids: ProjectIds, *, entity: Any = None) -> Select:
        """Scope a multi-record select (also used for counts)."""
        return self._scope(stmt, project_ids, entity)

    # PUBLIC_INTERFACE
    def scope_group_by(self, stmt: Select, project_ids: ProjectIds, *, entity: Any = None) -> Select:
        """Scope a grouped select. The predicate lands in WHERE, before grouping."""
        return self._scope(stmt, project_ids, entity)

    # PUBLIC_INTERFACE
    def scope_delete(self, stmt: Delete, project_ids: ProjectIds, *, entity: Any = None) -> Delete:
        """Scope a DELETE statement."""
        return self._scope(stmt, project_ids, entity)

    # PUBLIC_INTERFACE
    def scope_update(self, stmt: Update, project_ids: ProjectIds, *, entity: Any = None) -> Update:
        """Scope an UPDATE statement."""
        return self._scope(stmt, project_ids, entity)

    def _scope(self, stmt: _Stmt, project_ids: ProjectIds, entity: Any) -> _Stmt:
        target = entity if entity is not None else _statement_entity(stmt)
        return stmt.where(self.project_predicate(target, project_ids))


def _statement_entity(stmt: Any) -> Any:
    if isinstance(stmt, Select):
        for description in stmt.column_descriptions:
            candidate = description.get("entity")
            if candidate is not None:
                return candidate
        # aggregate-only selects, e.g. select(func.count()).select_from(Model)
        for from_ in stmt.get_final_froms():
            columns = getattr(from_, "c", None)
            if columns is not None and "project_id" in columns:
                return from_
    elif isinstance(stmt, (Update, Delete)):
        candidate = stmt.entity_description.get("entity")
        if candidate is not None:
            return candidate
    raise ValueError(
        "Cannot resolve the entity of the statement to scope; pass entity= explicitly"
    )
