"""
Patch Applier - Apply every pending recommendation of a set in one version

Algorithm (one transaction, retried as a whole on concurrent writes):
    1. Load the current profile version and the set's pending
       recommendations in creation order
    2. Copy the sections into a working dict
    3. For each recommendation, check its precondition against the
       working copy (not its stale previewBefore) and apply it there, so
       later edits see earlier ones
    4. A failed precondition skips the recommendation with reason
       "conflict"; it stays pending
    5. If anything applied: append exactly one version
       (source=recommendation) and flip the applied recommendations to
       applied, then commit both together

A batch where everything is skipped writes nothing.

Example:
    applier = PatchApplier(db)
    result = await applier.apply_all("proj-1", set_id)
    result.applied_count, [s.id for s in result.skipped]
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from profile_engine.errors import ConflictError
from profile_engine.middleware.metrics import record_apply_outcome, record_version_created
from profile_engine.models import ProfileVersion
from profile_engine.services.patches import apply_edit
from profile_engine.services.recommendation_store import RecommendationStore
from profile_engine.services.versions import DEFAULT_MAX_RETRIES, VersionStore

logger = logging.getLogger(__name__)

SKIP_CONFLICT = "conflict"


@dataclass(frozen=True)
class SkippedRecommendation:
    id: str
    reason: str


@dataclass
class ApplyResult:
    """
    Outcome of apply-all.

    Attributes:
        applied_ids: Recommendations now applied, in apply order
        skipped: Recommendations left pending, with the reason
        new_version: Version created, None when nothing applied
        profile: Current profile version after the call
    """

    profile: ProfileVersion
    applied_ids: List[str] = field(default_factory=list)
    skipped: List[SkippedRecommendation] = field(default_factory=list)
    new_version: Optional[ProfileVersion] = None

    @property
    def applied_count(self) -> int:
        return len(self.applied_ids)


class PatchApplier:
    def __init__(self, db: AsyncSession, max_retries: int = DEFAULT_MAX_RETRIES):
        self.db = db
        self.versions = VersionStore(db, max_retries=max_retries)
        self.store = RecommendationStore(db)

    async def apply_all(self, project_id: str, set_id: str) -> ApplyResult:
        """
        Apply all pending recommendations of a set.

        Raises:
            NotFoundError: unknown set for this project, or no profile
            PersistenceError: commit failed; nothing was changed
        """

        async def work() -> ApplyResult:
            await self.store.get_set(project_id, set_id)
            current = await self.versions.require_current(project_id)
            pending = await self.store.pending_for_set(set_id)

            working: Dict[str, str] = dict(current.sections)
            result = ApplyResult(profile=current)

            for rec in pending:
                content = working.get(rec.target_section, "")
                try:
                    working[rec.target_section] = apply_edit(content, rec)
                except ConflictError as e:
                    logger.info(f"Skipping recommendation {rec.id} ({rec.type} {rec.target_section}): {e.message}")
                    result.skipped.append(SkippedRecommendation(id=rec.id, reason=SKIP_CONFLICT))
                    continue
                result.applied_ids.append(rec.id)

            if result.applied_ids:
                new_version = await self.versions.stage_version(
                    project_id,
                    current.version + 1,
                    working,
                    "recommendation",
                    recommendation_set_id=set_id,
                )
                await self.store.mark_applied(result.applied_ids, new_version.version)
                result.new_version = new_version
                result.profile = new_version

            return result

        result = await self.versions.run_versioned(work)

        record_apply_outcome("applied", result.applied_count)
        record_apply_outcome("skipped", len(result.skipped))
        if result.new_version is not None:
            record_version_created("recommendation")

        logger.info(
            f"Project {project_id}: apply-all for set {set_id} applied {result.applied_count}, "
            f"skipped {len(result.skipped)}"
            + (f", new version {result.new_version.version}" if result.new_version else "")
        )
        return result
