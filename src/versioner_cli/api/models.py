"""Request and response payloads for the Versioner events API."""

from __future__ import annotations

from datetime import datetime
from typing import Any, ClassVar, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _omit_empty(data: dict[str, Any]) -> dict[str, Any]:
    """Drop unset optional fields so they are not sent on the wire."""
    return {
        key: value
        for key, value in data.items()
        if value is not None and value != "" and value is not False and value != {}
    }


class EventCreate(BaseModel):
    """Fields shared by build and deployment events."""

    model_config = ConfigDict(extra="forbid")

    endpoint: ClassVar[str] = ""

    product_name: str = Field(..., description="Product/application name")
    version: str = Field(..., description="Version string")
    status: str = Field(..., description="Lifecycle status (canonical value or alias)")
    source_system: str = ""
    build_number: str = ""
    scm_sha: str = ""
    scm_repository: str = ""
    invoke_id: str = ""
    completed_at: Optional[datetime] = None
    extra_metadata: Optional[dict[str, Any]] = None

    def to_payload(self) -> dict[str, Any]:
        """Serialize to the JSON request body."""
        return _omit_empty(self.model_dump(mode="json", exclude_none=True))


class BuildEventCreate(EventCreate):
    """Payload for ``POST /build-events/``."""

    endpoint: ClassVar[str] = "/build-events/"

    scm_branch: str = ""
    build_url: str = ""
    built_by: str = ""
    built_by_email: str = ""
    built_by_name: str = ""
    started_at: Optional[datetime] = None


class DeploymentEventCreate(EventCreate):
    """Payload for ``POST /deployment-events/``."""

    endpoint: ClassVar[str] = "/deployment-events/"

    environment_name: str = Field(..., description="Target environment name")
    deploy_url: str = ""
    deployed_by: str = ""
    deployed_by_email: str = ""
    deployed_by_name: str = ""
    skip_preflight_checks: bool = False


class BuildResponse(BaseModel):
    """Body returned after a build event is recorded."""

    id: str = ""
    product_id: str = ""
    version_id: str = ""
    status: str = ""
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @field_validator("id", "product_id", "version_id", "status", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        return "" if value is None else str(value)


class DeploymentResponse(BaseModel):
    """Body returned after a deployment event is recorded."""

    id: str = ""
    product_id: str = ""
    version_id: str = ""
    environment_id: str = ""
    status: str = ""
    deployed_at: Optional[datetime] = None

    @field_validator("id", "product_id", "version_id", "environment_id", "status", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        return "" if value is None else str(value)
