"""
Version Store Unit Tests

Verifies number allocation under concurrency, restore fidelity,
ordering, access checks and the events/timeline side effects.

Runs offline against a per-test SQLite database.
"""

from __future__ import annotations

import asyncio
import uuid

import pytest

from draftdesk.core.errors import AccessDenied, ProjectNotFound, VersionNotFound
from draftdesk.models import Project
from draftdesk.services.events import VersionChangeReason
from draftdesk.services.versions import VersionStore, restored_title


class TestCreateVersion:
    @pytest.mark.asyncio
    async def test_first_version_is_numbered_one(
        self, version_store: VersionStore, project: Project, owner_id
    ) -> None:
        version = await version_store.create_version(
            project.id, "Draft text", owner_id, title="Draft"
        )

        assert version.version_number == 1
        assert version.title == "Draft"
        assert version.content == "Draft text"
        assert version.created_by == owner_id

    @pytest.mark.asyncio
    async def test_numbers_increase_by_one(
        self, version_store: VersionStore, project: Project, owner_id
    ) -> None:
        numbers = []
        for i in range(3):
            version = await version_store.create_version(project.id, f"c{i}", owner_id)
            numbers.append(version.version_number)
        assert numbers == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_concurrent_creates_get_unique_consecutive_numbers(
        self, version_store: VersionStore, project: Project, owner_id
    ) -> None:
        versions = await asyncio.gather(
            *(
                version_store.create_version(project.id, f"content {i}", owner_id)
                for i in range(10)
            )
        )

        numbers = sorted(v.version_number for v in versions)
        assert numbers == list(range(1, 11))

    @pytest.mark.asyncio
    async def test_collaborator_may_create(
        self, version_store: VersionStore, project: Project, collaborator_id
    ) -> None:
        version = await version_store.create_version(project.id, "x", collaborator_id)
        assert version.version_number == 1

    @pytest.mark.asyncio
    async def test_outsider_is_denied(
        self, version_store: VersionStore, project: Project, outsider_id
    ) -> None:
        with pytest.raises(AccessDenied):
            await version_store.create_version(project.id, "x", outsider_id)
        assert await version_store.list_versions(project.id) == []

    @pytest.mark.asyncio
    async def test_unknown_project(self, session_factory, owner_id) -> None:
        store = VersionStore(session_factory)
        with pytest.raises(ProjectNotFound):
            await store.create_version(uuid.uuid4(), "x", owner_id)

    @pytest.mark.asyncio
    async def test_publishes_created_event(
        self, version_store: VersionStore, project: Project, owner_id, subscriber
    ) -> None:
        version = await version_store.create_version(project.id, "x", owner_id)

        assert len(subscriber.events) == 1
        event = subscriber.events[0]
        assert event.version_id == version.id
        assert event.reason == VersionChangeReason.CREATED


class TestRestoreVersion:
    @pytest.mark.asyncio
    async def test_restore_creates_new_version_with_same_content(
        self, version_store: VersionStore, project: Project, owner_id
    ) -> None:
        v1 = await version_store.create_version(project.id, "original", owner_id)
        await version_store.create_version(project.id, "edited", owner_id)

        restored = await version_store.restore_version(project.id, v1.id, owner_id)

        assert restored.version_number == 3
        assert restored.content == "original"
        assert restored.title == "Restored from v1"
        assert restored.description == "Restored version 1"

    @pytest.mark.asyncio
    async def test_restore_leaves_source_untouched(
        self, version_store: VersionStore, project: Project, owner_id
    ) -> None:
        v1 = await version_store.create_version(
            project.id, "original", owner_id, title="First"
        )
        await version_store.restore_version(project.id, v1.id, owner_id)

        reloaded = await version_store.get_version(v1.id)
        assert reloaded.version_number == 1
        assert reloaded.title == "First"
        assert reloaded.content == "original"

    @pytest.mark.asyncio
    async def test_restore_from_other_project_is_not_found(
        self, version_store: VersionStore, project: Project, owner_id, session_factory
    ) -> None:
        async with session_factory() as session:
            other = Project(name="Other", owner_id=owner_id, project_metadata={})
            session.add(other)
            await session.commit()
        foreign = await version_store.create_version(other.id, "theirs", owner_id)

        with pytest.raises(VersionNotFound):
            await version_store.restore_version(project.id, foreign.id, owner_id)

    @pytest.mark.asyncio
    async def test_publishes_restored_event(
        self, version_store: VersionStore, project: Project, owner_id, subscriber
    ) -> None:
        v1 = await version_store.create_version(project.id, "a", owner_id)
        restored = await version_store.restore_version(project.id, v1.id, owner_id)

        assert subscriber.events[-1].reason == VersionChangeReason.RESTORED
        assert subscriber.events[-1].version_number == restored.version_number

    def test_restored_title(self) -> None:
        assert restored_title(7) == "Restored from v7"


class TestQueries:
    @pytest.mark.asyncio
    async def test_list_is_highest_number_first(
        self, version_store: VersionStore, project: Project, owner_id
    ) -> None:
        for i in range(3):
            await version_store.create_version(project.id, str(i), owner_id)

        versions = await version_store.list_versions(project.id)
        assert [v.version_number for v in versions] == [3, 2, 1]

    @pytest.mark.asyncio
    async def test_get_missing_version(self, version_store: VersionStore) -> None:
        with pytest.raises(VersionNotFound):
            await version_store.get_version(uuid.uuid4())

    @pytest.mark.asyncio
    async def test_rename_changes_title_only(
        self, version_store: VersionStore, project: Project, owner_id
    ) -> None:
        v1 = await version_store.create_version(
            project.id, "body", owner_id, title="Old"
        )

        renamed = await version_store.rename_version(v1.id, "  New name ", owner_id)

        assert renamed.title == "New name"
        assert renamed.content == "body"
        assert renamed.version_number == 1

    @pytest.mark.asyncio
    async def test_history_names_the_actor(
        self, version_store: VersionStore, project: Project, owner_id
    ) -> None:
        v1 = await version_store.create_version(project.id, "a", owner_id)
        await version_store.restore_version(project.id, v1.id, owner_id)

        entries = await version_store.history(project.id)

        assert {e.event_type for e in entries} == {
            "version_created",
            "version_restored",
        }
        assert all(e.user_name == "Ada Owner" for e in entries)
