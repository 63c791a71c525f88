"""
Tests for recommendation set persistence and status transitions.
"""

from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from profile_engine.errors import InvalidStateError, NotFoundError, PersistenceError
from profile_engine.services.recommendation_store import RecommendationStore
from profile_engine.services.versions import ConcurrentWriteError

PROJECT_ID = "proj-1"


@pytest.fixture
def two_recommendations(planned, sections):
    return [
        planned("add", "keyFramings", sections["keyFramings"], added_content="Mention payback period."),
        planned(
            "modify", "communicationStyle", sections["communicationStyle"],
            modified_from="concise and direct", modified_to="warm but concise",
        ),
    ]


class TestCreateSet:
    @pytest.mark.asyncio
    async def test_set_stored_with_pending_recommendations_in_order(self, db, profile, create_set, two_recommendations):
        rec_set = await create_set(two_recommendations)

        loaded = await RecommendationStore(db).get_set(PROJECT_ID, rec_set.id)
        assert [r.position for r in loaded.recommendations] == [0, 1]
        assert [r.type for r in loaded.recommendations] == ["add", "modify"]
        assert all(r.status == "pending" for r in loaded.recommendations)
        assert loaded.analysis_summary["config_alignment"] == "needs_update"
        assert loaded.based_on_version == 1

    @pytest.mark.asyncio
    async def test_previews_stored(self, db, profile, create_set, two_recommendations, sections):
        rec_set = await create_set(two_recommendations)
        add = rec_set.recommendations[0]

        assert add.preview_before == sections["keyFramings"]
        assert add.preview_after == sections["keyFramings"] + "\n\nMention payback period."

    @pytest.mark.asyncio
    async def test_set_of_other_project_not_found(self, db, profile, create_set, two_recommendations):
        rec_set = await create_set(two_recommendations)
        with pytest.raises(NotFoundError):
            await RecommendationStore(db).get_set("proj-2", rec_set.id)

    @pytest.mark.asyncio
    async def test_latest_set(self, db, profile, create_set, two_recommendations):
        await create_set(two_recommendations[:1])
        newest = await create_set(two_recommendations[1:])

        latest = await RecommendationStore(db).latest_set(PROJECT_ID)
        assert latest.id == newest.id

    @pytest.mark.asyncio
    async def test_commit_failure_is_persistence_error(self, db, session_factory, profile, create_set, two_recommendations):
        failure = OperationalError("COMMIT", {}, Exception("database is locked"))

        with patch.object(db, "commit", AsyncMock(side_effect=failure)):
            with pytest.raises(PersistenceError) as exc_info:
                await create_set(two_recommendations)

        assert exc_info.value.retryable
        async with session_factory() as fresh:
            assert await RecommendationStore(fresh).latest_set(PROJECT_ID) is None


class TestDismiss:
    @pytest.mark.asyncio
    async def test_dismiss_pending(self, db, profile, create_set, two_recommendations):
        rec_set = await create_set(two_recommendations)
        rec_id = rec_set.recommendations[0].id

        dismissed = await RecommendationStore(db).dismiss(PROJECT_ID, rec_id)

        assert dismissed.status == "dismissed"
        assert dismissed.dismissed_at is not None
        pending = await RecommendationStore(db).list_by_status(PROJECT_ID, "pending")
        assert [r.id for r in pending] == [rec_set.recommendations[1].id]

    @pytest.mark.asyncio
    async def test_dismiss_twice_is_invalid_state(self, db, profile, create_set, two_recommendations):
        rec_set = await create_set(two_recommendations)
        rec_id = rec_set.recommendations[0].id
        store = RecommendationStore(db)
        await store.dismiss(PROJECT_ID, rec_id)

        with pytest.raises(InvalidStateError, match="already dismissed"):
            await store.dismiss(PROJECT_ID, rec_id)

    @pytest.mark.asyncio
    async def test_dismiss_applied_is_invalid_state(self, db, profile, create_set, two_recommendations):
        rec_set = await create_set(two_recommendations)
        rec_id = rec_set.recommendations[0].id
        store = RecommendationStore(db)
        await store.mark_applied([rec_id], 2)
        await db.commit()

        with pytest.raises(InvalidStateError, match="already applied"):
            await store.dismiss(PROJECT_ID, rec_id)

    @pytest.mark.asyncio
    async def test_dismiss_unknown(self, db, profile, create_set, two_recommendations):
        rec_set = await create_set(two_recommendations)
        store = RecommendationStore(db)

        with pytest.raises(NotFoundError):
            await store.dismiss(PROJECT_ID, "missing")
        with pytest.raises(NotFoundError):
            await store.dismiss("proj-2", rec_set.recommendations[0].id)

    @pytest.mark.asyncio
    async def test_failed_dismiss_keeps_loaded_objects_usable(self, db, profile, create_set, two_recommendations):
        rec_set = await create_set(two_recommendations)
        store = RecommendationStore(db)
        await store.dismiss(PROJECT_ID, rec_set.recommendations[0].id)

        with pytest.raises(InvalidStateError):
            await store.dismiss(PROJECT_ID, rec_set.recommendations[0].id)
        with pytest.raises(NotFoundError):
            await store.dismiss(PROJECT_ID, "missing")

        assert rec_set.recommendations[1].target_section == "communicationStyle"
        assert rec_set.analysis_summary["config_alignment"] == "needs_update"


class TestMarkApplied:
    @pytest.mark.asyncio
    async def test_mark_applied_records_version(self, db, profile, create_set, two_recommendations):
        rec_set = await create_set(two_recommendations)
        ids = [r.id for r in rec_set.recommendations]
        store = RecommendationStore(db)

        await store.mark_applied(ids, 2)
        await db.commit()

        applied = await store.list_by_status(PROJECT_ID, "applied")
        assert [r.id for r in applied] == ids
        assert all(r.applied_in_version == 2 and r.applied_at is not None for r in applied)

    @pytest.mark.asyncio
    async def test_mark_applied_detects_concurrent_change(self, db, profile, create_set, two_recommendations):
        rec_set = await create_set(two_recommendations)
        ids = [r.id for r in rec_set.recommendations]
        store = RecommendationStore(db)
        await store.dismiss(PROJECT_ID, ids[0])

        with pytest.raises(ConcurrentWriteError):
            await store.mark_applied(ids, 2)

    @pytest.mark.asyncio
    async def test_list_all_statuses(self, db, profile, create_set, two_recommendations):
        rec_set = await create_set(two_recommendations)
        store = RecommendationStore(db)
        await store.dismiss(PROJECT_ID, rec_set.recommendations[0].id)

        everything = await store.list_by_status(PROJECT_ID, status=None)
        assert [r.status for r in everything] == ["dismissed", "pending"]
