from types import SimpleNamespace

from workflow_store.core.project_context import ProjectContext


def test_from_mapping_principal():
    ctx = ProjectContext.from_principal({"projectIds": ["p1", "p2"]})
    assert ctx.project_ids == ("p1", "p2")


def test_from_attribute_principal():
    ctx = ProjectContext.from_principal(SimpleNamespace(project_ids=["p1", " ", "p1"]))
    assert ctx.project_ids == ("p1",)


def test_principal_without_projects_is_empty():
    assert ProjectContext.from_principal({}).is_empty
    assert ProjectContext.from_principal(None).is_empty
    assert ProjectContext.from_principal(SimpleNamespace()).is_empty


def test_single_string_is_one_project():
    assert ProjectContext(project_ids="p1").project_ids == ("p1",)
