"""
Shared fixtures: a fresh SQLite database per test plus profile/evidence seeders.
"""

from datetime import timedelta
from typing import Dict, List

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from profile_engine.config import Settings
from profile_engine.database import Base, utcnow
from profile_engine.models import ProfileRecommendationSet, ProfileVersion, TestComment, TestMessage, TestSession
from profile_engine.schemas.recommendation import AnalysisSummary
from profile_engine.services.drafts import DraftEdit
from profile_engine.services.patches import apply_edit
from profile_engine.services.recommendation_store import NewRecommendation, RecommendationStore

PROJECT_ID = "proj-1"

BASE_SECTIONS: Dict[str, str] = {
    "identityRole": "You are a B2B SaaS advisor for early-stage founders.",
    "communicationStyle": "Be concise and direct. Use plain language.",
    "contentPriorities": "Focus on growth metrics and retention.",
    "engagementApproach": "Ask one clarifying question before advising.",
    "keyFramings": "Frame advice around unit economics.",
}


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def settings():
    return Settings(
        openai_api_key="test-key",
        analyzer_timeout_seconds=1.0,
        recommendation_comment_scope="since_last_set",
    )


@pytest.fixture
def sections() -> Dict[str, str]:
    return dict(BASE_SECTIONS)


async def seed_profile(db: AsyncSession, sections: Dict[str, str], project_id: str = PROJECT_ID) -> ProfileVersion:
    version = ProfileVersion(project_id=project_id, version=1, sections=dict(sections), source="interview")
    db.add(version)
    await db.commit()
    return version


async def seed_comments(
    db: AsyncSession,
    contents: List[str],
    project_id: str = PROJECT_ID,
    age_seconds: int = 0,
) -> List[TestComment]:
    """One session, one AI message, one comment per entry (oldest first, ``age_seconds`` ago)."""
    session = TestSession(project_id=project_id)
    db.add(session)
    await db.flush()

    message = TestMessage(session_id=session.id, role="assistant", content="Here is my advice on pricing.")
    db.add(message)
    await db.flush()

    start = utcnow() - timedelta(seconds=age_seconds)
    comments = [
        TestComment(message_id=message.id, content=text, created_at=start + timedelta(milliseconds=i))
        for i, text in enumerate(contents)
    ]
    db.add_all(comments)
    await db.commit()
    return comments


@pytest_asyncio.fixture
async def profile(db, sections):
    return await seed_profile(db, sections)


@pytest.fixture
def add_comments(db):
    """Factory: ``await add_comments(["too formal"], age_seconds=60)``."""

    async def _add(contents: List[str], **kwargs) -> List[TestComment]:
        return await seed_comments(db, contents, **kwargs)

    return _add


@pytest.fixture
def planned():
    """Factory for a validated recommendation with previews computed against ``before``."""

    def _planned(type: str, section: str, before: str, **fields) -> NewRecommendation:
        edit = DraftEdit(type=type, target_section=section, **fields)
        return NewRecommendation(edit=edit, preview_before=before, preview_after=apply_edit(before, edit))

    return _planned


@pytest.fixture
def create_set(db):
    """Factory: persist a recommendation set of ``planned`` items for a project."""

    async def _create(items: List[NewRecommendation], project_id: str = PROJECT_ID) -> ProfileRecommendationSet:
        summary = AnalysisSummary(overview="Reviewers found the agent too formal.", config_alignment="needs_update")
        return await RecommendationStore(db).create_set(project_id, summary, items, based_on_version=1)

    return _create
