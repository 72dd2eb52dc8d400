"""
Augmentation Engine Unit Tests

Verifies the attribution format, aggregate selection, the no-lost-update
guarantee under concurrent appends and the per-file idempotence marker.
"""

from __future__ import annotations

import asyncio

import pytest

from draftdesk.core.errors import AggregateNotFound
from draftdesk.models import Project, ReferenceFile
from draftdesk.services.augmentation import AugmentationEngine, attribution_block
from draftdesk.services.events import VersionChangeReason
from draftdesk.services.versions import VersionStore


def test_attribution_block_format() -> None:
    assert attribution_block("notes.pdf", "body") == (
        "\n\n=== BEGIN SOURCE: notes.pdf ===\nbody\n=== END SOURCE: notes.pdf ==="
    )


def test_attribution_block_defaults_name() -> None:
    assert "=== BEGIN SOURCE: Unknown Source ===" in attribution_block("", "x")


async def _add_reference(session_factory, project: Project, owner_id) -> ReferenceFile:
    async with session_factory() as session:
        reference = ReferenceFile(
            project_id=project.id,
            uploaded_by=owner_id,
            source_locator="uploads/a.pdf",
            display_name="a.pdf",
            source_kind="file",
            status="done",
            extracted_text="alpha",
        )
        session.add(reference)
        await session.commit()
        return reference


class TestAppendToAggregate:
    @pytest.mark.asyncio
    async def test_appends_to_v1_in_place(
        self,
        augmentation: AugmentationEngine,
        version_store: VersionStore,
        project: Project,
        owner_id,
    ) -> None:
        v1 = await version_store.create_version(project.id, "base", owner_id)

        version_id = await augmentation.append_to_aggregate(
            project.id, "alpha", "a.pdf"
        )

        assert version_id == v1.id
        reloaded = await version_store.get_version(v1.id)
        assert reloaded.content == "base" + attribution_block("a.pdf", "alpha")
        assert reloaded.version_number == 1
        assert len(await version_store.list_versions(project.id)) == 1

    @pytest.mark.asyncio
    async def test_version_one_wins_over_later_raw_title(
        self,
        augmentation: AugmentationEngine,
        version_store: VersionStore,
        project: Project,
        owner_id,
    ) -> None:
        await version_store.create_version(project.id, "", owner_id, title="Intro")
        raw = await version_store.create_version(
            project.id, "", owner_id, title="Raw material"
        )
        version_id = await augmentation.append_to_aggregate(project.id, "x", "s")
        assert version_id != raw.id

    @pytest.mark.asyncio
    async def test_no_versions_raises(
        self, augmentation: AugmentationEngine, project: Project
    ) -> None:
        with pytest.raises(AggregateNotFound):
            await augmentation.append_to_aggregate(project.id, "x", "s")

    @pytest.mark.asyncio
    async def test_concurrent_appends_keep_both(
        self,
        augmentation: AugmentationEngine,
        version_store: VersionStore,
        project: Project,
        owner_id,
    ) -> None:
        v1 = await version_store.create_version(project.id, "", owner_id)

        await asyncio.gather(
            augmentation.append_to_aggregate(project.id, "A", "first"),
            augmentation.append_to_aggregate(project.id, "B", "second"),
        )

        content = (await version_store.get_version(v1.id)).content
        assert attribution_block("first", "A") in content
        assert attribution_block("second", "B") in content

    @pytest.mark.asyncio
    async def test_many_concurrent_appends_lose_nothing(
        self,
        augmentation: AugmentationEngine,
        version_store: VersionStore,
        project: Project,
        owner_id,
    ) -> None:
        v1 = await version_store.create_version(project.id, "", owner_id)

        await asyncio.gather(
            *(
                augmentation.append_to_aggregate(project.id, f"text-{i}", f"src-{i}")
                for i in range(8)
            )
        )

        content = (await version_store.get_version(v1.id)).content
        assert content.count("=== BEGIN SOURCE:") == 8

    @pytest.mark.asyncio
    async def test_same_reference_is_appended_once(
        self,
        augmentation: AugmentationEngine,
        version_store: VersionStore,
        project: Project,
        owner_id,
        session_factory,
    ) -> None:
        v1 = await version_store.create_version(project.id, "", owner_id)
        reference = await _add_reference(session_factory, project, owner_id)

        for _ in range(3):
            await augmentation.append_to_aggregate(
                project.id, "alpha", "a.pdf", reference_file_id=reference.id
            )

        content = (await version_store.get_version(v1.id)).content
        assert content.count("=== BEGIN SOURCE: a.pdf ===") == 1
        async with session_factory() as session:
            stored = await session.get(ReferenceFile, reference.id)
            assert stored.augmented_version_id == v1.id

    @pytest.mark.asyncio
    async def test_publishes_augmented_event(
        self,
        augmentation: AugmentationEngine,
        version_store: VersionStore,
        project: Project,
        owner_id,
        subscriber,
    ) -> None:
        await version_store.create_version(project.id, "", owner_id)

        await augmentation.append_to_aggregate(project.id, "x", "s")

        assert subscriber.events[-1].reason == VersionChangeReason.AUGMENTED
