"""
Evidence Source - Read-only access to reviewer comments from test sessions

The generator only needs ``list_comments``. SqlEvidenceSource reads the
test_sessions → test_messages → test_comments tables; any other source
(an HTTP client to the testing service, a fixture in tests) can stand in
as long as it satisfies EvidenceSource.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Protocol, Set

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from profile_engine.models import ProfileRecommendationSet, TestComment, TestMessage, TestSession

logger = logging.getLogger(__name__)

MESSAGE_EXCERPT_CHARS = 200


@dataclass(frozen=True)
class EvidenceComment:
    id: str
    content: str
    session_id: str
    message_excerpt: str
    created_at: datetime
    template_id: Optional[str] = None


class EvidenceSource(Protocol):
    async def list_comments(
        self,
        project_id: str,
        since_set_id: Optional[str] = None,
    ) -> List[EvidenceComment]:
        """
        Comments for a project, newest first.

        With ``since_set_id``, comments already analyzed by that set or any
        earlier set of the project are left out, so feedback posted while a
        run was in flight or cut off by the comment cap is picked up later.
        """
        ...


class SqlEvidenceSource:
    """EvidenceSource backed by the testing feature's tables."""

    def __init__(self, db: AsyncSession, max_comments: int = 50):
        self.db = db
        self.max_comments = max_comments

    async def list_comments(
        self,
        project_id: str,
        since_set_id: Optional[str] = None,
    ) -> List[EvidenceComment]:
        query = (
            select(TestComment, TestMessage.content, TestSession.id)
            .join(TestMessage, TestComment.message_id == TestMessage.id)
            .join(TestSession, TestMessage.session_id == TestSession.id)
            .where(TestSession.project_id == project_id)
            .order_by(TestComment.created_at.desc())
        )

        covered: Set[str] = set()
        if since_set_id:
            covered = await self._covered_comment_ids(project_id, since_set_id)

        if not covered:
            query = query.limit(self.max_comments)
        result = await self.db.execute(query)

        comments: List[EvidenceComment] = []
        for comment, message_content, session_id in result.all():
            if comment.id in covered:
                continue
            comments.append(
                EvidenceComment(
                    id=comment.id,
                    content=comment.content,
                    session_id=session_id,
                    message_excerpt=message_content[:MESSAGE_EXCERPT_CHARS],
                    created_at=comment.created_at,
                    template_id=comment.template_id,
                )
            )
            if len(comments) >= self.max_comments:
                break
        return comments

    async def _covered_comment_ids(self, project_id: str, set_id: str) -> Set[str]:
        """Ids analyzed by the given set or any earlier set of the project."""
        anchor = await self.db.scalar(
            select(ProfileRecommendationSet.generated_at).where(
                ProfileRecommendationSet.id == set_id,
                ProfileRecommendationSet.project_id == project_id,
            )
        )
        if anchor is None:
            logger.warning(f"Set {set_id} not found for project {project_id}, using all comments")
            return set()

        result = await self.db.scalars(
            select(ProfileRecommendationSet.analyzed_comment_ids).where(
                ProfileRecommendationSet.project_id == project_id,
                ProfileRecommendationSet.generated_at <= anchor,
            )
        )
        return {comment_id for ids in result.all() for comment_id in (ids or [])}
