from __future__ import annotations

import enum
from datetime import datetime
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from workflow_store.db.models.workflow import WorkflowRuntimeDataStatus


class EntityType(str, enum.Enum):
    """Kind of business entity that owns a runtime instance."""

    BUSINESS = "business"
    END_USER = "end_user"


class BusinessRef(BaseModel):
    """Reference to a business entity."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["business"] = "business"
    id: str = Field(..., min_length=1, description="Business id")

    @property
    def entity_type(self) -> EntityType:
        return EntityType.BUSINESS


class EndUserRef(BaseModel):
    """Reference to an end-user entity."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["end_user"] = "end_user"
    id: str = Field(..., min_length=1, description="End user id")

    @property
    def entity_type(self) -> EntityType:
        return EntityType.END_USER


EntityRef = Annotated[Union[BusinessRef, EndUserRef], Field(discriminator="kind")]


# PUBLIC_INTERFACE
def entity_ref_from_columns(business_id: Optional[str], end_user_id: Optional[str]) -> Optional[Union[BusinessRef, EndUserRef]]:
    """Build the tagged entity reference from the stored columns, if any is set."""
    if business_id is not None:
        return BusinessRef(id=business_id)
    if end_user_id is not None:
        return EndUserRef(id=end_user_id)
    return None


class WorkflowRuntimeDataCreate(BaseModel):
    """Create runtime instance payload."""
    id: Optional[str] = Field(None, min_length=1, description="Explicit id; generated when omitted")
    project_id: str = Field(..., min_length=1, description="Owning project")
    workflow_definition_id: str = Field(..., min_length=1, description="Workflow template id")
    workflow_definition_version: Optional[int] = Field(None)
    status: WorkflowRuntimeDataStatus = Field(WorkflowRuntimeDataStatus.ACTIVE)
    entity: Optional[EntityRef] = Field(None, description="Owning business or end user")
    assignee_id: Optional[str] = Field(None)
    context: dict[str, Any] = Field(default_factory=dict)
    config: Optional[dict[str, Any]] = Field(default_factory=dict)
    tags: list[str] = Field(default_factory=list)
    created_at: Optional[datetime] = Field(None, description="Defaults to the database clock")


class WorkflowRuntimeDataRead(BaseModel):
    """Runtime instance read model."""
    id: str = Field(..., description="Runtime instance id")
    project_id: str = Field(..., description="Owning project")
    workflow_definition_id: str = Field(...)
    workflow_definition_version: Optional[int] = Field(None)
    status: WorkflowRuntimeDataStatus = Field(...)
    business_id: Optional[str] = Field(None)
    end_user_id: Optional[str] = Field(None)
    assignee_id: Optional[str] = Field(None)
    context: dict[str, Any] = Field(default_factory=dict)
    config: Optional[dict[str, Any]] = Field(None)
    tags: list[str] = Field(default_factory=list)
    created_at: datetime = Field(..., description="Created at")
    updated_at: datetime = Field(..., description="Updated at")

    model_config = ConfigDict(from_attributes=True)


class FindLastActiveParams(BaseModel):
    """Lookup key for the most recent runtime instance of a business."""
    workflow_definition_id: str = Field(..., min_length=1)
    business_id: str = Field(..., min_length=1)


class WorkflowSearchQuery(BaseModel):
    """
    Search parameters. Project scoping is deliberately not part of this model:
    the authorized ids are passed to the repository separately.
    """
    model_config = ConfigDict(extra="forbid")

    search: Optional[str] = Field(None, description="Free-text term")
    entity_type: EntityType = Field(..., description="Entity kind to search")
    statuses: list[WorkflowRuntimeDataStatus] = Field(default_factory=list)
    workflow_definition_ids: list[str] = Field(default_factory=list)
    order_by: Optional[str] = Field(
        None, description="'<column>:<asc|desc>'; the store default is used when omitted"
    )
    take: int = Field(50, ge=1, le=1000, description="Max number of ids to return")
    skip: int = Field(0, ge=0, description="Number of ids to skip")


class WorkflowSearchFilters(BaseModel):
    """Faceted filters. ``None`` in ``assignee_id`` selects unassigned records."""
    model_config = ConfigDict(extra="forbid")

    case_status: list[str] = Field(default_factory=list)
    assignee_id: list[Optional[str]] = Field(default_factory=list)
