"""
Pytest Configuration and Fixtures

Shared fixtures for the unit suite. Every test gets its own SQLite
database (through aiosqlite) with the full schema, so the services run
against real SQLAlchemy sessions without a PostgreSQL server.
"""

import os

from dotenv import load_dotenv

# ---------------------------------------------------------------------------
# Test environment defaults: MUST be set before any draftdesk imports.
#
# 1. Load .env first so that local overrides are available.
# 2. setdefault fills in anything still missing so that the module-level
#    Settings object never points at a real database or worker.
# ---------------------------------------------------------------------------
load_dotenv()  # .env → os.environ (no-op if file is missing)

_test_env = {
    "SQLALCHEMY_DATABASE_URL": "sqlite+aiosqlite://",
    "WORKER_URL": "http://worker.test/jobs",
    "LOG_LEVEL": "DEBUG",
}
for _key, _value in _test_env.items():
    os.environ.setdefault(_key, _value)

# ---------------------------------------------------------------------------
# Imports (safe now that env vars are set)
# ---------------------------------------------------------------------------
import uuid  # noqa: E402
from collections.abc import AsyncGenerator  # noqa: E402
from pathlib import Path  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from draftdesk.core.errors import WorkerDispatchFailed  # noqa: E402
from draftdesk.models import (  # noqa: E402
    Base,
    Project,
    ProjectCollaborator,
    User,
)
from draftdesk.services.access import MembershipAccessChecker  # noqa: E402
from draftdesk.services.augmentation import AugmentationEngine  # noqa: E402
from draftdesk.services.events import VersionEventBus  # noqa: E402
from draftdesk.services.locks import KeyedLocks  # noqa: E402
from draftdesk.services.orchestrator import ExtractionOrchestrator  # noqa: E402
from draftdesk.services.registrar import IntakeRegistrar  # noqa: E402
from draftdesk.services.versions import VersionStore  # noqa: E402
from draftdesk.services.worker import DispatchRequest  # noqa: E402


class FakeWorker:
    """Records dispatched jobs; raises when ``fail`` is set."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.requests: list[DispatchRequest] = []

    async def dispatch(self, request: DispatchRequest) -> None:
        if self.fail:
            raise WorkerDispatchFailed("Extraction worker unreachable (ConnectError)")
        self.requests.append(request)


class RecordingSubscriber:
    def __init__(self) -> None:
        self.events = []

    async def __call__(self, event) -> None:
        self.events.append(event)


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """File-backed SQLite engine so concurrent sessions share one database."""
    db_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with db_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield db_engine
    await db_engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


# ---------------------------------------------------------------------------
# Seed data
# ---------------------------------------------------------------------------


@pytest.fixture
def owner_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def collaborator_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def outsider_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest_asyncio.fixture
async def project(
    session_factory: async_sessionmaker[AsyncSession],
    owner_id: uuid.UUID,
    collaborator_id: uuid.UUID,
) -> Project:
    """Project owned by ``owner_id`` with one collaborator, intake not completed."""
    async with session_factory() as session:
        session.add(User(id=owner_id, name="Ada Owner"))
        session.add(User(id=collaborator_id, name="Cole Laborator"))
        db_project = Project(name="Field notes", owner_id=owner_id, project_metadata={})
        session.add(db_project)
        await session.flush()
        session.add(
            ProjectCollaborator(
                project_id=db_project.id, user_id=collaborator_id, access_level="editor"
            )
        )
        await session.commit()
        return db_project


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------


@pytest.fixture
def access(
    session_factory: async_sessionmaker[AsyncSession],
) -> MembershipAccessChecker:
    return MembershipAccessChecker(session_factory)


@pytest.fixture
def worker() -> FakeWorker:
    return FakeWorker()


@pytest.fixture
def events() -> VersionEventBus:
    """Isolated event bus so tests do not leak subscribers."""
    return VersionEventBus()


@pytest.fixture
def subscriber(events: VersionEventBus) -> RecordingSubscriber:
    recorder = RecordingSubscriber()
    events.subscribe(recorder)
    return recorder


@pytest.fixture
def failing_worker() -> FakeWorker:
    return FakeWorker(fail=True)


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------


@pytest.fixture
def version_store(session_factory, access, events) -> VersionStore:
    return VersionStore(
        session_factory, access=access, events=events, locks=KeyedLocks()
    )


@pytest.fixture
def augmentation(session_factory, events) -> AugmentationEngine:
    return AugmentationEngine(session_factory, events=events, locks=KeyedLocks())


@pytest.fixture
def orchestrator(
    session_factory, worker, augmentation, access
) -> ExtractionOrchestrator:
    return ExtractionOrchestrator(
        session_factory, worker=worker, engine=augmentation, access=access
    )


@pytest.fixture
def registrar(session_factory, access, orchestrator) -> IntakeRegistrar:
    return IntakeRegistrar(session_factory, access=access, orchestrator=orchestrator)
