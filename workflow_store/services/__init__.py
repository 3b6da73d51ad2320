"""Service layer helpers shared by repositories."""

from .project_scope import ProjectScopeService, normalize_project_ids  # noqa: F401
