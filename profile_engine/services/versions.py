"""
Version Store - Append-only profile history with rollback

Every profile mutation appends one ProfileVersion; nothing is ever updated
or deleted. The current profile is the highest-numbered version.

Concurrency (optimistic):
    1. Inside one transaction, read max(version) and everything the
       mutation depends on
    2. Insert version max+1 (plus any conditional status updates)
    3. Commit

    A racing writer that computed the same number hits the
    (project_id, version) unique constraint; a conditional status update
    that matches fewer rows than expected raises ConcurrentWriteError.
    Either way the transaction is rolled back and the whole unit of work
    (re-read, recompute, write) runs again, up to ``max_retries`` times.

Usage:
    store = VersionStore(db)
    version = await store.update_section("proj-1", "keyFramings", "New text")
    restored = await store.rollback("proj-1", target_version=2)
"""

import logging
from typing import Awaitable, Callable, Dict, List, Optional, Tuple, TypeVar

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from profile_engine.errors import (
    InvalidStateError,
    NotFoundError,
    PersistenceError,
    ProfileEngineError,
    ValidationError,
)
from profile_engine.middleware.metrics import record_version_created
from profile_engine.models import SECTION_KEYS, VERSION_SOURCES, ProfileVersion

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_RETRIES = 3
DEFAULT_SECTION_MAX_CHARS = 2000


class ConcurrentWriteError(Exception):
    """A conditional write matched fewer rows than expected; retry the unit of work."""


class VersionStore:
    """
    Reads and appends profile versions for any project.

    Attributes:
        db: Async session; the store commits and rolls back on it
        max_retries: Attempts for one versioned unit of work
    """

    def __init__(self, db: AsyncSession, max_retries: int = DEFAULT_MAX_RETRIES):
        self.db = db
        self.max_retries = max(1, max_retries)

    # ==================== Reads ====================

    async def current_version_number(self, project_id: str) -> int:
        """Highest version number for the project, 0 when it has no profile."""
        result = await self.db.scalar(
            select(func.max(ProfileVersion.version)).where(ProfileVersion.project_id == project_id)
        )
        return result or 0

    async def current(self, project_id: str) -> Optional[ProfileVersion]:
        result = await self.db.execute(
            select(ProfileVersion)
            .where(ProfileVersion.project_id == project_id)
            .order_by(ProfileVersion.version.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def require_current(self, project_id: str) -> ProfileVersion:
        version = await self.current(project_id)
        if version is None:
            raise NotFoundError("Agent profile")
        return version

    async def find_version(self, project_id: str, version: int) -> Optional[ProfileVersion]:
        result = await self.db.execute(
            select(ProfileVersion).where(
                ProfileVersion.project_id == project_id,
                ProfileVersion.version == version,
            )
        )
        return result.scalar_one_or_none()

    async def get_version(self, project_id: str, version: int) -> ProfileVersion:
        found = await self.find_version(project_id, version)
        if found is None:
            raise NotFoundError(f"Profile version {version}")
        return found

    async def list_versions(
        self,
        project_id: str,
        limit: Optional[int] = None,
    ) -> Tuple[List[ProfileVersion], int]:
        """
        Version history, newest first.

        Returns:
            (versions, current version number)
        """
        query = (
            select(ProfileVersion)
            .where(ProfileVersion.project_id == project_id)
            .order_by(ProfileVersion.version.desc())
        )
        if limit is not None:
            query = query.limit(limit)
        result = await self.db.execute(query)
        versions = list(result.scalars().all())
        current = await self.current_version_number(project_id)
        return versions, current

    # ==================== Writes ====================

    async def run_versioned(self, work: Callable[[], Awaitable[T]]) -> T:
        """
        Run a read-compute-append unit of work in its own transaction.

        ``work`` must re-read everything it depends on each time it is
        called. It is retried on unique-constraint violations and
        ConcurrentWriteError.

        Raises:
            PersistenceError: commit failed or retries were exhausted;
                nothing from the unit of work was kept
            ProfileEngineError: raised by ``work`` itself, after rollback
        """
        last_error: Optional[Exception] = None
        for attempt in range(1, self.max_retries + 1):
            try:
                result = await work()
                await self.db.commit()
                return result
            except (IntegrityError, ConcurrentWriteError) as e:
                await self.db.rollback()
                last_error = e
                logger.warning(f"Concurrent profile write detected (attempt {attempt}/{self.max_retries}): {e}")
            except ProfileEngineError:
                await self.db.rollback()
                raise
            except SQLAlchemyError as e:
                await self.db.rollback()
                logger.error(f"Profile write failed, rolled back: {e}")
                raise PersistenceError("Failed to save profile changes", details=str(e)) from e

        raise PersistenceError(
            f"Profile changed concurrently; gave up after {self.max_retries} attempts",
            details=str(last_error),
        )

    async def stage_version(
        self,
        project_id: str,
        version: int,
        sections: Dict[str, str],
        source: str,
        recommendation_set_id: Optional[str] = None,
        restored_from_version: Optional[int] = None,
    ) -> ProfileVersion:
        """Add a version row to the open transaction and flush it (no commit)."""
        if source not in VERSION_SOURCES:
            raise ValidationError(f"Unknown version source: {source}")

        row = ProfileVersion(
            project_id=project_id,
            version=version,
            sections={key: sections.get(key, "") for key in SECTION_KEYS},
            source=source,
            recommendation_set_id=recommendation_set_id,
            restored_from_version=restored_from_version,
        )
        self.db.add(row)
        await self.db.flush()
        return row

    async def append(
        self,
        project_id: str,
        build_sections: Callable[[Optional[ProfileVersion]], Dict[str, str]],
        source: str,
        **extra,
    ) -> ProfileVersion:
        """Append max+1 with sections derived from the current version."""

        async def work() -> ProfileVersion:
            current = await self.current(project_id)
            sections = build_sections(current)
            number = current.version + 1 if current else 1
            return await self.stage_version(project_id, number, sections, source, **extra)

        version = await self.run_versioned(work)
        record_version_created(source)
        logger.info(f"Project {project_id}: appended profile version {version.version} ({source})")
        return version

    async def record_interview_profile(self, project_id: str, sections: Dict[str, str]) -> ProfileVersion:
        """Append the profile produced by a completed interview."""
        missing = [key for key in SECTION_KEYS if not isinstance(sections.get(key), str)]
        if missing:
            raise ValidationError(f"Missing profile sections: {', '.join(missing)}")
        return await self.append(project_id, lambda _current: dict(sections), "interview")

    async def update_section(
        self,
        project_id: str,
        section: str,
        content: str,
        max_chars: int = DEFAULT_SECTION_MAX_CHARS,
    ) -> ProfileVersion:
        """Manual edit of one section."""
        if section not in SECTION_KEYS:
            raise ValidationError(
                f"Invalid section: {section}. Must be one of: {', '.join(SECTION_KEYS)}"
            )
        text = (content or "").strip()
        if not text:
            raise ValidationError("Section content cannot be empty")
        if len(text) > max_chars:
            raise ValidationError(f"Section content cannot exceed {max_chars} characters")

        def build(current: Optional[ProfileVersion]) -> Dict[str, str]:
            if current is None:
                raise NotFoundError("Agent profile")
            return {**current.sections, section: text}

        return await self.append(project_id, build, "manual")

    async def rollback(self, project_id: str, target_version: int) -> ProfileVersion:
        """
        Append a copy of an earlier version's sections.

        Rolling back to the current version is allowed and simply
        duplicates it; history is never truncated.

        Raises:
            InvalidStateError: target_version does not exist for the project
        """

        async def work() -> ProfileVersion:
            current_number = await self.current_version_number(project_id)
            target = None
            if 1 <= target_version <= current_number:
                target = await self.find_version(project_id, target_version)
            if target is None:
                raise InvalidStateError(
                    f"Version {target_version} does not exist (current version is {current_number})"
                )
            return await self.stage_version(
                project_id,
                current_number + 1,
                dict(target.sections),
                "rollback",
                restored_from_version=target_version,
            )

        version = await self.run_versioned(work)
        record_version_created("rollback")
        logger.info(
            f"Project {project_id}: rolled back to version {target_version} as version {version.version}"
        )
        return version
