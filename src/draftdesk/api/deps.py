"""
Shared FastAPI dependencies.

Services are built per request around the process-wide session factory.
Their serialization locks and the event bus are module-level, so
building a fresh service per request does not weaken them.
"""

from __future__ import annotations

import uuid

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from draftdesk.core.database import get_session_factory
from draftdesk.services.access import (
    AccessChecker,
    MembershipAccessChecker,
    require_access,
)
from draftdesk.services.augmentation import AugmentationEngine
from draftdesk.services.orchestrator import ExtractionOrchestrator
from draftdesk.services.registrar import IntakeRegistrar
from draftdesk.services.versions import VersionStore
from draftdesk.services.worker import ExtractionWorker, HttpExtractionWorker

SessionFactory = async_sessionmaker[AsyncSession]


def get_actor_id(x_actor_id: uuid.UUID = Header(...)) -> uuid.UUID:
    """Caller identity, supplied by the authenticating proxy."""
    return x_actor_id


def get_worker() -> ExtractionWorker:
    return HttpExtractionWorker()


def get_access_checker(
    factory: SessionFactory = Depends(get_session_factory),
) -> AccessChecker:
    return MembershipAccessChecker(factory)


def get_orchestrator(
    factory: SessionFactory = Depends(get_session_factory),
    worker: ExtractionWorker = Depends(get_worker),
    access: AccessChecker = Depends(get_access_checker),
) -> ExtractionOrchestrator:
    return ExtractionOrchestrator(
        factory,
        worker=worker,
        engine=AugmentationEngine(factory),
        access=access,
    )


def get_registrar(
    factory: SessionFactory = Depends(get_session_factory),
    orchestrator: ExtractionOrchestrator = Depends(get_orchestrator),
    access: AccessChecker = Depends(get_access_checker),
) -> IntakeRegistrar:
    return IntakeRegistrar(factory, access=access, orchestrator=orchestrator)


def get_version_store(
    factory: SessionFactory = Depends(get_session_factory),
    access: AccessChecker = Depends(get_access_checker),
) -> VersionStore:
    return VersionStore(factory, access=access)


async def get_readable_project(
    project_id: uuid.UUID,
    actor_id: uuid.UUID = Depends(get_actor_id),
    access: AccessChecker = Depends(get_access_checker),
) -> uuid.UUID:
    """Path ``project_id`` after checking the caller may see the project."""
    await require_access(access, project_id, actor_id)
    return project_id
