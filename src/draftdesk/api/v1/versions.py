"""
Versions API Router

HTTP endpoints for the document version history.

Endpoints:
    POST  /projects/{id}/versions                 — Create the next version (201).
    GET   /projects/{id}/versions                 — Versions, highest number first.
    GET   /projects/{id}/versions/compare         — Diff two versions.
    POST  /projects/{id}/versions/{vid}/restore   — Re-publish an old version (201).
    GET   /projects/{id}/history                  — Timeline, newest first.
    GET   /versions/{id}                          — One version with content.
    PATCH /versions/{id}                          — Rename.
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query, status

from draftdesk.api.deps import (
    get_access_checker,
    get_actor_id,
    get_readable_project,
    get_version_store,
)
from draftdesk.schemas.versions import (
    DiffSpan,
    TimelineEntry,
    VersionCompareResponse,
    VersionCreate,
    VersionRead,
    VersionRename,
    VersionSummary,
)
from draftdesk.services.access import AccessChecker, require_access
from draftdesk.services.diff import compare_versions, render_html
from draftdesk.services.versions import VersionStore

router = APIRouter()


@router.post(
    "/projects/{project_id}/versions",
    response_model=VersionRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_version(
    project_id: uuid.UUID,
    body: VersionCreate,
    actor_id: uuid.UUID = Depends(get_actor_id),
    store: VersionStore = Depends(get_version_store),
) -> VersionRead:
    version = await store.create_version(
        project_id,
        body.content,
        actor_id,
        title=body.title,
        description=body.description,
    )
    return VersionRead.model_validate(version)


@router.get(
    "/projects/{project_id}/versions",
    response_model=list[VersionSummary],
)
async def list_versions(
    project_id: uuid.UUID = Depends(get_readable_project),
    store: VersionStore = Depends(get_version_store),
) -> list[VersionSummary]:
    versions = await store.list_versions(project_id)
    return [VersionSummary.model_validate(v) for v in versions]


@router.get(
    "/projects/{project_id}/versions/compare",
    response_model=VersionCompareResponse,
    summary="Word-level diff between two versions",
)
async def compare(
    base: uuid.UUID = Query(..., description="Older version id"),
    target: uuid.UUID = Query(..., description="Newer version id"),
    project_id: uuid.UUID = Depends(get_readable_project),
    store: VersionStore = Depends(get_version_store),
) -> VersionCompareResponse:
    result = await compare_versions(store, base, target, project_id)
    return VersionCompareResponse(
        base_id=result.base.id,
        target_id=result.target.id,
        base_number=result.base.version_number,
        target_number=result.target.version_number,
        spans=[DiffSpan(op=op, text=text) for op, text in result.diff],
        inserted_chars=result.inserted_chars,
        deleted_chars=result.deleted_chars,
        html=render_html(result.diff),
    )


@router.post(
    "/projects/{project_id}/versions/{version_id}/restore",
    response_model=VersionRead,
    status_code=status.HTTP_201_CREATED,
)
async def restore_version(
    project_id: uuid.UUID,
    version_id: uuid.UUID,
    actor_id: uuid.UUID = Depends(get_actor_id),
    store: VersionStore = Depends(get_version_store),
) -> VersionRead:
    """Create a new version carrying the content of ``version_id``."""
    version = await store.restore_version(project_id, version_id, actor_id)
    return VersionRead.model_validate(version)


@router.get(
    "/projects/{project_id}/history",
    response_model=list[TimelineEntry],
)
async def history(
    limit: int = Query(default=100, ge=1, le=500),
    project_id: uuid.UUID = Depends(get_readable_project),
    store: VersionStore = Depends(get_version_store),
) -> list[TimelineEntry]:
    events = await store.history(project_id, limit)
    return [TimelineEntry.model_validate(e) for e in events]


@router.get("/versions/{version_id}", response_model=VersionRead)
async def get_version(
    version_id: uuid.UUID,
    actor_id: uuid.UUID = Depends(get_actor_id),
    access: AccessChecker = Depends(get_access_checker),
    store: VersionStore = Depends(get_version_store),
) -> VersionRead:
    version = await store.get_version(version_id)
    await require_access(access, version.project_id, actor_id)
    return VersionRead.model_validate(version)


@router.patch("/versions/{version_id}", response_model=VersionRead)
async def rename_version(
    version_id: uuid.UUID,
    body: VersionRename,
    actor_id: uuid.UUID = Depends(get_actor_id),
    store: VersionStore = Depends(get_version_store),
) -> VersionRead:
    version = await store.rename_version(version_id, body.title, actor_id)
    return VersionRead.model_validate(version)
