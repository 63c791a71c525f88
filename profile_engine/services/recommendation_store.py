"""
Recommendation Store - Persistence and lifecycle of recommendation sets

Sets are written once, together with all their recommendations. After that
the only legal change is a recommendation's status, and only out of
``pending``:

    pending → applied    (mark_applied, inside an apply-all transaction)
    pending → dismissed  (dismiss)

Both transitions are conditional UPDATEs (``WHERE status = 'pending'``) so
a racing writer cannot move a recommendation twice.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from profile_engine.database import utcnow
from profile_engine.errors import InvalidStateError, NotFoundError, PersistenceError
from profile_engine.models import ProfileRecommendation, ProfileRecommendationSet
from profile_engine.schemas.recommendation import AnalysisSummary
from profile_engine.services.drafts import DraftEdit
from profile_engine.services.versions import ConcurrentWriteError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NewRecommendation:
    """A validated draft plus its previews, ready to persist."""

    edit: DraftEdit
    preview_before: str
    preview_after: str


class RecommendationStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_set(
        self,
        project_id: str,
        analysis_summary: AnalysisSummary,
        recommendations: Sequence[NewRecommendation],
        total_comments: int = 0,
        sessions_analyzed: int = 0,
        based_on_version: Optional[int] = None,
        analyzed_comment_ids: Sequence[str] = (),
    ) -> ProfileRecommendationSet:
        """Persist a set and all its recommendations (status pending) in one commit."""
        rec_set = ProfileRecommendationSet(
            project_id=project_id,
            analysis_summary=analysis_summary.model_dump(),
            total_comments=total_comments,
            sessions_analyzed=sessions_analyzed,
            based_on_version=based_on_version,
            analyzed_comment_ids=list(analyzed_comment_ids),
        )
        rec_set.recommendations = [
            ProfileRecommendation(
                project_id=project_id,
                position=position,
                type=item.edit.type,
                target_section=item.edit.target_section,
                added_content=item.edit.added_content,
                removed_content=item.edit.removed_content,
                modified_from=item.edit.modified_from,
                modified_to=item.edit.modified_to,
                summary_bullets=list(item.edit.summary_bullets),
                rationale=item.edit.rationale,
                preview_before=item.preview_before,
                preview_after=item.preview_after,
                related_comment_ids=list(item.edit.related_comment_ids),
                status="pending",
            )
            for position, item in enumerate(recommendations)
        ]
        self.db.add(rec_set)
        await self._commit()

        logger.info(
            f"Project {project_id}: stored recommendation set {rec_set.id} "
            f"with {len(rec_set.recommendations)} recommendations"
        )
        return rec_set

    async def get_set(self, project_id: str, set_id: str) -> ProfileRecommendationSet:
        result = await self.db.execute(
            select(ProfileRecommendationSet).where(
                ProfileRecommendationSet.id == set_id,
                ProfileRecommendationSet.project_id == project_id,
            )
        )
        rec_set = result.scalar_one_or_none()
        if rec_set is None:
            raise NotFoundError("Recommendation set")
        return rec_set

    async def latest_set(self, project_id: str) -> Optional[ProfileRecommendationSet]:
        result = await self.db.execute(
            select(ProfileRecommendationSet)
            .where(ProfileRecommendationSet.project_id == project_id)
            .order_by(ProfileRecommendationSet.generated_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get(self, project_id: str, recommendation_id: str) -> ProfileRecommendation:
        result = await self.db.execute(
            select(ProfileRecommendation)
            .where(
                ProfileRecommendation.id == recommendation_id,
                ProfileRecommendation.project_id == project_id,
            )
            .execution_options(populate_existing=True)
        )
        rec = result.scalar_one_or_none()
        if rec is None:
            raise NotFoundError("Recommendation")
        return rec

    async def list_by_status(
        self,
        project_id: str,
        status: Optional[str] = "pending",
        set_id: Optional[str] = None,
    ) -> List[ProfileRecommendation]:
        """Recommendations for a project, oldest set first, then creation order."""
        query = (
            select(ProfileRecommendation)
            .join(ProfileRecommendationSet, ProfileRecommendation.set_id == ProfileRecommendationSet.id)
            .where(ProfileRecommendation.project_id == project_id)
        )
        if status:
            query = query.where(ProfileRecommendation.status == status)
        if set_id:
            query = query.where(ProfileRecommendation.set_id == set_id)
        query = query.order_by(
            ProfileRecommendationSet.generated_at, ProfileRecommendation.position
        ).execution_options(populate_existing=True)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def pending_for_set(self, set_id: str) -> List[ProfileRecommendation]:
        """Pending recommendations of a set in apply order."""
        result = await self.db.execute(
            select(ProfileRecommendation)
            .where(
                ProfileRecommendation.set_id == set_id,
                ProfileRecommendation.status == "pending",
            )
            .order_by(ProfileRecommendation.position, ProfileRecommendation.created_at)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def mark_applied(self, recommendation_ids: Sequence[str], version: int) -> None:
        """
        Flip pending → applied inside the caller's open transaction.

        Raises:
            ConcurrentWriteError: some recommendation was no longer pending
        """
        if not recommendation_ids:
            return
        result = await self.db.execute(
            update(ProfileRecommendation)
            .where(
                ProfileRecommendation.id.in_(list(recommendation_ids)),
                ProfileRecommendation.status == "pending",
            )
            .values(status="applied", applied_at=utcnow(), applied_in_version=version)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != len(recommendation_ids):
            raise ConcurrentWriteError(
                f"Expected to apply {len(recommendation_ids)} recommendations, updated {result.rowcount}"
            )

    async def dismiss(self, project_id: str, recommendation_id: str) -> ProfileRecommendation:
        """
        Dismiss a pending recommendation.

        Raises:
            NotFoundError: no such recommendation in the project
            InvalidStateError: it is already applied or dismissed
        """
        rec = await self.get(project_id, recommendation_id)
        if rec.status != "pending":
            raise InvalidStateError(f"Recommendation is already {rec.status}")

        result = await self.db.execute(
            update(ProfileRecommendation)
            .where(
                ProfileRecommendation.id == recommendation_id,
                ProfileRecommendation.project_id == project_id,
                ProfileRecommendation.status == "pending",
            )
            .values(status="dismissed", dismissed_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        await self._commit()

        if result.rowcount == 0:
            # Lost a race with apply-all or another dismiss
            rec = await self.get(project_id, recommendation_id)
            raise InvalidStateError(f"Recommendation is already {rec.status}")

        logger.info(f"Project {project_id}: dismissed recommendation {recommendation_id}")
        return await self.get(project_id, recommendation_id)

    async def _commit(self) -> None:
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Recommendation write failed, rolled back: {e}")
            raise PersistenceError("Failed to save recommendations", details=str(e)) from e
