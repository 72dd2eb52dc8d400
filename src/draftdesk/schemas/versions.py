"""
Version Schemas

Pydantic models for the version history API.
Separates concerns: VersionCreate (input), VersionRead (full), VersionSummary (lists).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from draftdesk.services.diff import DiffOp


class VersionCreate(BaseModel):
    """Request schema for POST /projects/{id}/versions."""

    content: str = Field(default="", description="Full document content")
    title: str | None = Field(default=None, max_length=300)
    description: str | None = None


class VersionRename(BaseModel):
    """Request schema for PATCH /versions/{id}."""

    title: str = Field(..., min_length=1, max_length=300)


class VersionSummary(BaseModel):
    """
    Lightweight version representation for list endpoints.

    Excludes content to keep history listings small.
    """

    id: UUID
    project_id: UUID
    version_number: int
    title: str | None = None
    description: str | None = None
    created_by: UUID
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class VersionRead(VersionSummary):
    content: str
    updated_at: datetime | None = None


class DiffSpan(BaseModel):
    op: DiffOp
    text: str


class VersionCompareResponse(BaseModel):
    base_id: UUID
    target_id: UUID
    base_number: int
    target_number: int
    spans: list[DiffSpan]
    inserted_chars: int
    deleted_chars: int
    html: str = Field(description="Rendered diff with <ins>/<del> markup")


class TimelineEntry(BaseModel):
    id: UUID
    event_type: str
    event_details: dict[str, Any]
    user_id: UUID | None = None
    user_name: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
