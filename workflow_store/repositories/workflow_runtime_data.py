from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional, Union

from sqlalchemy import (
    Boolean,
    Integer,
    Row,
    Select,
    Text,
    bindparam,
    cast,
    delete,
    func,
    select,
    text,
    update,
)
from sqlalchemy.dialects.postgresql import ARRAY, JSONB
from sqlalchemy.ext.asyncio import AsyncSession

from workflow_store.core.documents import with_document_ids
from workflow_store.core.errors import NotFoundError
from workflow_store.core.json_merge import ArrayMergeOption, deep_merge
from workflow_store.core.settings import StoreSettings, get_store_settings
from workflow_store.db.models.workflow import WorkflowRuntimeData, WorkflowRuntimeDataStatus
from workflow_store.schemas.workflow import (
    BusinessRef,
    EndUserRef,
    EntityRef,
    EntityType,
    FindLastActiveParams,
    WorkflowRuntimeDataCreate,
    WorkflowSearchFilters,
    WorkflowSearchQuery,
    entity_ref_from_columns,
)
from workflow_store.services.project_scope import ProjectIds, ProjectScopeService, normalize_project_ids
from .base import BaseRepository

logger = logging.getLogger(__name__)

_ENTITY_NAME = "WorkflowRuntimeData"

_ENTITY_COLUMNS = {
    EntityType.BUSINESS: WorkflowRuntimeData.business_id,
    EntityType.END_USER: WorkflowRuntimeData.end_user_id,
}

_MERGEABLE_DOCUMENTS = {
    "context": WorkflowRuntimeData.context,
    "config": WorkflowRuntimeData.config,
}

_IMMUTABLE_FIELDS = frozenset({"id", "project_id", "created_at"})

_SEARCH_STATEMENT = text(
    """
    SELECT id
    FROM search_workflow_data(
        CAST(:search AS text),
        CAST(:entity_type AS text),
        CAST(:order_column AS text),
        CAST(:order_direction AS text),
        CAST(:workflow_definition_ids AS text[]),
        CAST(:statuses AS text[]),
        CAST(:project_ids AS text[]),
        CAST(:assignee_ids AS text[]),
        CAST(:case_statuses AS text[]),
        CAST(:include_unassigned AS boolean)
    )
    LIMIT :take OFFSET :skip
    """
).bindparams(
    bindparam("search", type_=Text),
    bindparam("entity_type", type_=Text),
    bindparam("order_column", type_=Text),
    bindparam("order_direction", type_=Text),
    bindparam("workflow_definition_ids", type_=ARRAY(Text)),
    bindparam("statuses", type_=ARRAY(Text)),
    bindparam("project_ids", type_=ARRAY(Text)),
    bindparam("assignee_ids", type_=ARRAY(Text)),
    bindparam("case_statuses", type_=ARRAY(Text)),
    bindparam("include_unassigned", type_=Boolean),
    bindparam("take", type_=Integer),
    bindparam("skip", type_=Integer),
)


class WorkflowRuntimeDataRepository(BaseRepository):
    """
    Repository for workflow runtime instances.

    Every read, aggregate, update and delete is restricted to the authorized
    project ids passed by the caller. The one exception is
    find_by_id_unscoped, reserved for trusted internal callers.
    """

    def __init__(
        self,
        session: AsyncSession,
        scope_service: Optional[ProjectScopeService] = None,
        settings: Optional[StoreSettings] = None,
    ) -> None:
        super().__init__(session)
        self.scope_service = scope_service or ProjectScopeService()
        self.settings = settings or get_store_settings()

    # Create

    async def create(self, payload: WorkflowRuntimeDataCreate) -> WorkflowRuntimeData:
        """Insert a runtime instance, assigning ids to its context documents."""
        record = WorkflowRuntimeData(
            project_id=payload.project_id,
            workflow_definition_id=payload.workflow_definition_id,
            workflow_definition_version=payload.workflow_definition_version,
            status=WorkflowRuntimeDataStatus(payload.status).value,
            assignee_id=payload.assignee_id,
            context=with_document_ids(payload.context),
            config=payload.config,
            tags=list(payload.tags),
        )
        if payload.id is not None:
            record.id = payload.id
        if payload.created_at is not None:
            record.created_at = payload.created_at
        if payload.entity is not None:
            setattr(record, _ENTITY_COLUMNS[payload.entity.entity_type].key, payload.entity.id)

        await self.add(record)
        await self.commit()
        logger.debug("Created %s %s in project %s", _ENTITY_NAME, record.id, record.project_id)
        return await self.find_by_id(record.id, [record.project_id])

    # Reads

    async def find_many(self, stmt: Optional[Select], project_ids: ProjectIds) -> List[WorkflowRuntimeData]:
        """Return every scoped record matching ``stmt`` (all records when ``stmt`` is None)."""
        if stmt is None:
            stmt = select(WorkflowRuntimeData)
        scoped = self.scope_service.scope_find_many(stmt, project_ids, entity=WorkflowRuntimeData)
        res = await self.scalars(scoped)
        return list(res)

    async def find_one(self, stmt: Select, project_ids: ProjectIds) -> Optional[WorkflowRuntimeData]:
        """Return the first scoped record matching ``stmt``, or None."""
        scoped = self.scope_service.scope_find_one(stmt, project_ids, entity=WorkflowRuntimeData).limit(1)
        res = await self.scalars(scoped)
        return res.first()

    async def find_by_id(self, id: str, project_ids: ProjectIds) -> WorkflowRuntimeData:
        """
        Return the record with ``id`` if it belongs to an authorized project.

        Raises:
            NotFoundError: no such record, or it belongs to another project.
        """
        stmt = (
            select(WorkflowRuntimeData)
            .where(WorkflowRuntimeData.id == id)
            .execution_options(populate_existing=True)
        )
        scoped = self.scope_service.scope_find_one(stmt, project_ids, entity=WorkflowRuntimeData)
        record = await self.scalar_one_or_none(scoped)
        if record is None:
            logger.info("%s %s not found in authorized projects", _ENTITY_NAME, id)
            raise NotFoundError(_ENTITY_NAME, id)
        return record

    async def find_by_id_unscoped(self, id: str) -> WorkflowRuntimeData:
        """
        Return the record with ``id`` regardless of project.

        Only for trusted internal callers that established authorization some
        other way (e.g. resolving an entity owner before a project is known).
        Must not be reachable from tenant-facing request paths.
        """
        stmt = (
            select(WorkflowRuntimeData)
            .where(WorkflowRuntimeData.id == id)
            .execution_options(populate_existing=True)
        )
        record = await self.scalar_one_or_none(stmt)
        if record is None:
            raise NotFoundError(_ENTITY_NAME, id)
        return record

    async def find_context(self, id: str, project_ids: ProjectIds) -> dict[str, Any]:
        """Return only the ``context`` document of a scoped record."""
        stmt = select(WorkflowRuntimeData.context).where(WorkflowRuntimeData.id == id)
        scoped = self.scope_service.scope_find_one(stmt, project_ids, entity=WorkflowRuntimeData)
        res = await self.execute(scoped)
        row = res.first()
        if row is None:
            raise NotFoundError(_ENTITY_NAME, id)
        return row[0]

    async def get_entity_type_and_id(
        self, id: str, project_ids: ProjectIds
    ) -> Optional[Union[BusinessRef, EndUserRef]]:
        """Return the entity owning a scoped record, or None if there is none."""
        stmt = select(WorkflowRuntimeData.business_id, WorkflowRuntimeData.end_user_id).where(
            WorkflowRuntimeData.id == id
        )
        scoped = self.scope_service.scope_find_one(stmt, project_ids, entity=WorkflowRuntimeData)
        res = await self.execute(scoped)
        row = res.first()
        if row is None:
            return None
        return entity_ref_from_columns(row.business_id, row.end_user_id)

    async def find_active_workflow_by_entity(
        self,
        *,
        entity: EntityRef,
        workflow_definition_id: str,
        project_ids: ProjectIds,
    ) -> Optional[WorkflowRuntimeData]:
        """
        Return the in-flight (not completed) runtime instance of a workflow
        definition for a business or end user.

        At most one such record is expected; this is not enforced by the
        database. When several exist the newest is returned and a warning is
        logged.
        """
        column = _ENTITY_COLUMNS[entity.entity_type]
        stmt = (
            select(WorkflowRuntimeData)
            .where(
                WorkflowRuntimeData.workflow_definition_id == workflow_definition_id,
                column == entity.id,
                WorkflowRuntimeData.status != WorkflowRuntimeDataStatus.COMPLETED.value,
            )
            .order_by(WorkflowRuntimeData.created_at.desc(), WorkflowRuntimeData.id.desc())
            .limit(2)
        )
        records = await self.find_many(stmt, project_ids)
        if len(records) > 1:
            logger.warning(
                "More than one active %s for %s %s and workflow definition %s; using %s",
                _ENTITY_NAME,
                entity.kind,
                entity.id,
                workflow_definition_id,
                records[0].id,
            )
        return records[0] if records else None

    async def find_last_active(
        self, params: FindLastActiveParams, project_ids: ProjectIds
    ) -> Optional[WorkflowRuntimeData]:
        """
        Return the most recently created runtime instance for a
        (workflow definition, business) pair.

        Note: the status is not filtered; a completed instance is returned if it
        is the newest one.
        """
        stmt = (
            select(WorkflowRuntimeData)
            .where(
                WorkflowRuntimeData.business_id == params.business_id,
                WorkflowRuntimeData.workflow_definition_id == params.workflow_definition_id,
            )
            .order_by(WorkflowRuntimeData.created_at.desc())
        )
        return await self.find_one(stmt, project_ids)

    # Aggregates

    async def count(self, stmt: Optional[Select], project_ids: ProjectIds) -> int:
        """
        Count the scoped records matching ``stmt`` (all records when ``stmt`` is None).

        A statement that selects no entity columns, such as
        ``select(func.count()).select_from(WorkflowRuntimeData)``, is already a
        count query and is executed as it is, scoped.
        """
        if stmt is None:
            stmt = select(WorkflowRuntimeData)
        scoped = self.scope_service.scope_find_many(stmt, project_ids, entity=WorkflowRuntimeData)
        if all(d.get("entity") is None for d in stmt.column_descriptions):
            count_stmt = scoped
        else:
            count_stmt = select(func.count()).select_from(scoped.order_by(None).subquery())
        result = await self.execute(count_stmt)
        return int(result.scalar_one())

    async def group_by(self, stmt: Select, project_ids: ProjectIds) -> List[Row]:
        """Run a grouped select (e.g. counts per status) over scoped records."""
        scoped = self.scope_service.scope_group_by(stmt, project_ids, entity=WorkflowRuntimeData)
        result = await self.execute(scoped)
        return list(result.all())

    # Updates

    async def update_by_id(
        self, id: str, values: Mapping[str, Any], project_ids: ProjectIds
    ) -> WorkflowRuntimeData:
        """
        Update plain fields (e.g. ``status``, ``assignee_id``) of a scoped record.

        ``context`` and ``config`` are only changed through the merge methods;
        ``id``, ``project_id`` and ``created_at`` never change.
        """
        values = dict(values)
        immutable = sorted(_IMMUTABLE_FIELDS.intersection(values))
        if immutable:
            raise ValueError(f"{_ENTITY_NAME} fields are immutable: {', '.join(immutable)}")
        documents = sorted(set(_MERGEABLE_DOCUMENTS).intersection(values))
        if documents:
            raise ValueError(
                f"{', '.join(documents)} must be changed with update_context_by_id "
                "or update_runtime_config_by_id"
            )
        if isinstance(values.get("status"), WorkflowRuntimeDataStatus):
            values["status"] = values["status"].value
        values.setdefault("updated_at", func.now())

        stmt = (
            update(WorkflowRuntimeData)
            .where(WorkflowRuntimeData.id == id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        scoped = self.scope_service.scope_update(stmt, project_ids, entity=WorkflowRuntimeData)
        result = await self.execute(scoped)
        if result.rowcount == 0:
            raise NotFoundError(_ENTITY_NAME, id)
        await self.commit()
        return await self.find_by_id(id, project_ids)

    async def update_context_by_id(
        self,
        id: str,
        patch: Mapping[str, Any],
        project_ids: ProjectIds,
        array_merge_option: Optional[ArrayMergeOption] = None,
    ) -> WorkflowRuntimeData:
        """
        Deep-merge ``patch`` into the record's ``context``.

        Every element of the merged ``documents`` array that lacks an id gets
        one, whatever the array merge option.
        """
        option = self._merge_option(array_merge_option)
        return await self._merge_document("context", id, patch, option, project_ids)

    async def update_runtime_config_by_id(
        self,
        id: str,
        patch: Mapping[str, Any],
        project_ids: ProjectIds,
        array_merge_option: Optional[ArrayMergeOption] = None,
    ) -> WorkflowRuntimeData:
        """Deep-merge ``patch`` into the record's ``config``."""
        option = self._merge_option(array_merge_option)
        return await self._merge_document("config", id, patch, option, project_ids)

    def _merge_option(self, option: Optional[ArrayMergeOption]) -> ArrayMergeOption:
        if option is None:
            return self.settings.DEFAULT_ARRAY_MERGE_OPTION
        return ArrayMergeOption(option)

    async def _merge_document(
        self,
        field: str,
        id: str,
        patch: Any,
        option: ArrayMergeOption,
        project_ids: ProjectIds,
    ) -> WorkflowRuntimeData:
        if not isinstance(patch, Mapping):
            raise ValueError(
                f"{field} patch must be a JSON object, got {type(patch).__name__}"
            )
        patch = dict(patch)
        column = _MERGEABLE_DOCUMENTS[field]
        if self.dialect_name == "postgresql":
            # Single statement; the database merges under the row lock.
            merged: Any = func.jsonb_deep_merge_with_options(
                column, cast(patch, JSONB), option.value, type_=JSONB
            )
            if field == "context":
                merged = func.jsonb_assign_document_ids(merged, type_=JSONB)
        else:
            current = (
                select(column)
                .where(WorkflowRuntimeData.id == id)
                .with_for_update()
            )
            scoped = self.scope_service.scope_find_one(current, project_ids, entity=WorkflowRuntimeData)
            res = await self.execute(scoped)
            row = res.first()
            if row is None:
                logger.info("%s %s not found for %s merge", _ENTITY_NAME, id, field)
                raise NotFoundError(_ENTITY_NAME, id)
            merged = deep_merge(row[0], patch, option)
            if field == "context":
                merged = with_document_ids(merged)

        stmt = (
            update(WorkflowRuntimeData)
            .where(WorkflowRuntimeData.id == id)
            .values({column: merged, WorkflowRuntimeData.updated_at: func.now()})
            .execution_options(synchronize_session=False)
        )
        scoped = self.scope_service.scope_update(stmt, project_ids, entity=WorkflowRuntimeData)
        result = await self.execute(scoped)
        if result.rowcount == 0:
            logger.info("%s %s not found for %s merge", _ENTITY_NAME, id, field)
            raise NotFoundError(_ENTITY_NAME, id)
        await self.commit()
        logger.debug("Merged %s of %s %s using %s", field, _ENTITY_NAME, id, option.value)
        return await self.find_by_id(id, project_ids)

    # Delete

    async def delete_by_id(self, id: str, project_ids: ProjectIds) -> WorkflowRuntimeData:
        """Delete a scoped record and return it as it was."""
        stmt = (
            delete(WorkflowRuntimeData)
            .where(WorkflowRuntimeData.id == id)
            .returning(WorkflowRuntimeData)
            .execution_options(synchronize_session=False)
        )
        scoped = self.scope_service.scope_delete(stmt, project_ids, entity=WorkflowRuntimeData)
        res = await self.scalars(scoped)
        record = res.first()
        if record is None:
            raise NotFoundError(_ENTITY_NAME, id)
        await self.commit()
        logger.warning("Deleted %s %s from project %s", _ENTITY_NAME, id, record.project_id)
        return record

    # Search

    async def search(
        self,
        query: WorkflowSearchQuery,
        project_ids: ProjectIds,
        filters: Optional[WorkflowSearchFilters] = None,
    ) -> List[str]:
        """
        Run the server-side ``search_workflow_data`` procedure and return the
        matching ids, one page at a time.

        Empty filter lists are sent as empty arrays; interpreting them as "no
        restriction" is the procedure's job. The project ids argument must come
        from the authenticated caller.
        """
        filters = filters or WorkflowSearchFilters()
        order_column, _, order_direction = (query.order_by or self.settings.SEARCH_DEFAULT_ORDER_BY).partition(":")
        assignee_ids = [a for a in filters.assignee_id if a is not None]
        include_unassigned = any(a is None for a in filters.assignee_id)

        params = {
            "search": query.search,
            "entity_type": EntityType(query.entity_type).value,
            "order_column": order_column,
            "order_direction": order_direction or None,
            "workflow_definition_ids": list(query.workflow_definition_ids),
            "statuses": [WorkflowRuntimeDataStatus(s).value for s in query.statuses],
            "project_ids": list(normalize_project_ids(project_ids)),
            "assignee_ids": assignee_ids,
            "case_statuses": list(filters.case_status),
            "include_unassigned": include_unassigned,
            "take": query.take,
            "skip": query.skip,
        }
        logger.debug(
            "Searching %s: entity_type=%s order=%s:%s take=%s skip=%s",
            _ENTITY_NAME,
            params["entity_type"],
            order_column,
            order_direction,
            query.take,
            query.skip,
        )
        res = await self.scalars(_SEARCH_STATEMENT, params)
        return [str(x) for x in res.all()]
