"""
Repository paths that only run against PostgreSQL, exercised with a fake
session that records statements instead of talking to a database.
"""
from types import SimpleNamespace

import pytest
from sqlalchemy import Update
from sqlalchemy.dialects import postgresql

from workflow_store.core.errors import NotFoundError
from workflow_store.core.json_merge import ArrayMergeOption
from workflow_store.core.settings import StoreSettings
from workflow_store.db.models.workflow import WorkflowRuntimeData
from workflow_store.repositories.workflow_runtime_data import WorkflowRuntimeDataRepository
from workflow_store.schemas.workflow import EntityType, WorkflowSearchFilters, WorkflowSearchQuery


class FakeResult:
    def __init__(self, rows=(), rowcount=None):
        self._rows = list(rows)
        self.rowcount = len(self._rows) if rowcount is None else rowcount

    def scalars(self):
        return self

    def all(self):
        return list(self._rows)

    def first(self):
        return self._rows[0] if self._rows else None

    def scalar_one_or_none(self):
        return self.first()


class FakePostgresSession:
    def __init__(self, results):
        self.results = list(results)
        self.statements = []
        self.commits = 0

    def get_bind(self):
        return SimpleNamespace(dialect=postgresql.dialect())

    async def execute(self, statement, params=None):
        self.statements.append((statement, params))
        return self.results.pop(0)

    async def commit(self):
        self.commits += 1


def _repo(session) -> WorkflowRuntimeDataRepository:
    return WorkflowRuntimeDataRepository(session, settings=StoreSettings(_env_file=None))


def _compiled(statement):
    return statement.compile(dialect=postgresql.dialect())


@pytest.mark.asyncio
async def test_context_merge_is_a_single_update_statement():
    record = WorkflowRuntimeData(id="wf_1", project_id="p1", workflow_definition_id="kyb")
    session = FakePostgresSession([FakeResult(rowcount=1), FakeResult([record])])
    patch = {"documents": [{"id": "d1", "status": "approved"}]}

    result = await _repo(session).update_context_by_id("wf_1", patch, ["p1"])

    assert result is record
    assert session.commits == 1
    statement, _ = session.statements[0]
    assert isinstance(statement, Update)
    compiled = _compiled(statement)
    sql = str(compiled)
    assert "jsonb_assign_document_ids(jsonb_deep_merge_with_options(workflow_runtime_data.context, CAST(" in sql
    assert "workflow_runtime_data.project_id IN" in sql
    assert "by_id" in compiled.params.values()
    assert patch in compiled.params.values()


@pytest.mark.asyncio
async def test_config_merge_passes_requested_option():
    record = WorkflowRuntimeData(id="wf_1", project_id="p1", workflow_definition_id="kyb")
    session = FakePostgresSession([FakeResult(rowcount=1), FakeResult([record])])

    await _repo(session).update_runtime_config_by_id(
        "wf_1", {"plugins": []}, ["p1"], array_merge_option=ArrayMergeOption.REPLACE
    )

    compiled = _compiled(session.statements[0][0])
    assert "jsonb_deep_merge_with_options(workflow_runtime_data.config, CAST(" in str(compiled)
    assert "jsonb_assign_document_ids" not in str(compiled)
    assert "replace" in compiled.params.values()


@pytest.mark.asyncio
@pytest.mark.parametrize("patch", [[], "x", None])
async def test_non_object_patch_is_rejected_before_any_statement(patch):
    session = FakePostgresSession([])

    with pytest.raises(ValueError):
        await _repo(session).update_context_by_id("wf_1", patch, ["p1"])

    assert session.statements == []
    assert session.commits == 0


@pytest.mark.asyncio
async def test_merge_matching_no_row_raises_not_found_without_commit():
    session = FakePostgresSession([FakeResult(rowcount=0)])

    with pytest.raises(NotFoundError):
        await _repo(session).update_context_by_id("wf_1", {"a": 1}, ["p2"])

    assert session.commits == 0
    assert len(session.statements) == 1


@pytest.mark.asyncio
async def test_search_sends_procedure_parameters():
    session = FakePostgresSession([FakeResult(["wf_2", "wf_1"])])
    query = WorkflowSearchQuery(
        search="acme",
        entity_type=EntityType.BUSINESS,
        statuses=["active"],
        order_by="updated_at:asc",
        take=10,
        skip=20,
    )
    filters = WorkflowSearchFilters(case_status=["review"], assignee_id=["user_1", None])

    ids = await _repo(session).search(query, ["p1", "p1", "p2"], filters)

    assert ids == ["wf_2", "wf_1"]
    statement, params = session.statements[0]
    assert "search_workflow_data(" in str(statement)
    assert params == {
        "search": "acme",
        "entity_type": "business",
        "order_column": "updated_at",
        "order_direction": "asc",
        "workflow_definition_ids": [],
        "statuses": ["active"],
        "project_ids": ["p1", "p2"],
        "assignee_ids": ["user_1"],
        "case_statuses": ["review"],
        "include_unassigned": True,
        "take": 10,
        "skip": 20,
    }


@pytest.mark.asyncio
async def test_search_defaults():
    session = FakePostgresSession([FakeResult([])])

    ids = await _repo(session).search(WorkflowSearchQuery(entity_type="end_user"), [])

    assert ids == []
    _, params = session.statements[0]
    assert params["order_column"] == "created_at"
    assert params["order_direction"] == "desc"
    assert params["project_ids"] == []
    assert params["assignee_ids"] == []
    assert params["include_unassigned"] is False
    assert params["take"] == 50 and params["skip"] == 0


@pytest.mark.asyncio
async def test_search_without_direction_leaves_it_to_the_procedure():
    session = FakePostgresSession([FakeResult([])])

    await _repo(session).search(WorkflowSearchQuery(entity_type="business", order_by="status"), ["p1"])

    _, params = session.statements[0]
    assert params["order_column"] == "status"
    assert params["order_direction"] is None


def test_search_query_rejects_project_ids():
    with pytest.raises(ValueError):
        WorkflowSearchQuery(entity_type="business", project_ids=["p1"])
