from __future__ import annotations

from datetime import datetime
from uuid import uuid4

from sqlalchemy import MetaData, DateTime, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# Standardized naming convention for alembic-friendly constraints/indexes.
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


def generate_id() -> str:
    """Return a new globally-unique string identifier."""
    return str(uuid4())


class Base(DeclarativeBase):
    """Declarative base class with metadata naming conventions."""
    metadata = MetaData(naming_convention=NAMING_CONVENTION)


class StringPkMixin:
    """Mixin that provides a text primary key generated client-side when absent."""
    id: Mapped[str] = mapped_column(Text, primary_key=True, default=generate_id)


class TimestampMixin:
    """Mixin that provides created_at and updated_at timestamp columns."""
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class ProjectMixin:
    """
    Mixin that provides the project (tenant) column.

    Project ownership is fixed at insert time. Queries against models carrying
    this mixin must be scoped through ProjectScopeService.
    """
    project_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
