from __future__ import annotations

import enum
from typing import Any, Optional

from sqlalchemy import JSON, CheckConstraint, Index, Integer, Text, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from workflow_store.db.base import Base, ProjectMixin, StringPkMixin, TimestampMixin

# JSONB on PostgreSQL, generic JSON elsewhere (SQLite for local runs and tests).
JsonDocument = JSON().with_variant(JSONB(), "postgresql")


class WorkflowRuntimeDataStatus(str, enum.Enum):
    """Lifecycle state of a runtime instance. Written by the workflow engine."""

    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


class WorkflowRuntimeData(StringPkMixin, ProjectMixin, TimestampMixin, Base):
    """One execution of a workflow definition and its runtime documents."""
    __tablename__ = "workflow_runtime_data"
    __table_args__ = (
        CheckConstraint("project_id <> ''", name="project_id_not_empty"),
        CheckConstraint(
            "NOT (business_id IS NOT NULL AND end_user_id IS NOT NULL)",
            name="single_entity",
        ),
        CheckConstraint(
            "status IN ('active', 'completed', 'failed')", name="status_valid"
        ),
        Index(
            "ix_workflow_runtime_data_definition_business_created",
            "workflow_definition_id",
            "business_id",
            "created_at",
        ),
        Index("ix_workflow_runtime_data_project_status", "project_id", "status"),
    )

    workflow_definition_id: Mapped[str] = mapped_column(Text, nullable=False)
    workflow_definition_version: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    status: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default=WorkflowRuntimeDataStatus.ACTIVE.value,
        server_default=text("'active'"),
    )
    business_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True, index=True)
    end_user_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True, index=True)
    assignee_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True, index=True)
    context: Mapped[dict[str, Any]] = mapped_column(JsonDocument, nullable=False, default=dict)
    config: Mapped[Optional[dict[str, Any]]] = mapped_column(JsonDocument, nullable=True, default=dict)
    tags: Mapped[list[str]] = mapped_column(JsonDocument, nullable=False, default=list)

    def __repr__(self) -> str:
        return (
            f"WorkflowRuntimeData(id={self.id!r}, project_id={self.project_id!r}, "
            f"workflow_definition_id={self.workflow_definition_id!r}, status={self.status!r})"
        )
