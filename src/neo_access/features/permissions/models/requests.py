"""Permission check request models."""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ....config.constants import PermissionAction


class PermissionCheckRequest(BaseModel):
    """One permission question."""

    action: PermissionAction = Field(..., description="Action to perform")
    resource: str = Field(
        ...,
        min_length=1,
        max_length=64,
        pattern=r"^[a-z][a-z0-9_]*$",
        description="Resource type, e.g. documents",
    )
    resource_id: Optional[str] = Field(
        default=None,
        min_length=1,
        max_length=255,
        description="Specific resource instance",
    )

    model_config = ConfigDict(
        extra="forbid",
        json_schema_extra={
            "example": {"action": "update", "resource": "documents", "resource_id": "doc-42"}
        },
    )


class BulkPermissionCheckRequest(BaseModel):
    """Several permission questions for one user."""

    checks: List[PermissionCheckRequest] = Field(..., max_length=100, description="Checks to evaluate")

    model_config = ConfigDict(extra="forbid")
