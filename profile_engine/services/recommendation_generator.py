"""
Recommendation Generator - Feedback comments → pending profile recommendations

Pipeline for one ``generate`` call:
    1. Read the current profile and the evidence comments
       (comment scope is configurable: all recent comments, or only those
       no earlier set has analyzed yet)
    2. End the read transaction so nothing is locked during the slow call
    3. No comments → store an empty set with configAlignment "good"
    4. Call the analyzer once, bounded by a timeout
    5. Validate every draft on its own; invalid drafts are logged and
       dropped, never surfaced
    6. Store the set with the surviving recommendations (status pending),
       each with previewBefore/previewAfter for its edit in isolation

Failure Modes:
    - GenerationTimeoutError: analyzer exceeded the time budget
    - AnalyzerError: analyzer failed or replied with non-JSON
    Neither persists anything.
"""

import asyncio
import logging
import time
from collections import Counter
from dataclasses import replace
from typing import Any, Dict, List, Optional, Set, Union

from openai import APITimeoutError
from sqlalchemy.ext.asyncio import AsyncSession

from profile_engine.config import Settings, get_settings
from profile_engine.errors import AnalyzerError, GenerationTimeoutError, ProfileEngineError, ValidationError
from profile_engine.middleware.metrics import record_analyzer_latency, record_draft_outcome
from profile_engine.models import ProfileRecommendationSet
from profile_engine.schemas.recommendation import AnalysisSummary
from profile_engine.services.analyzer import AnalysisRequest, ProfileAnalyzer
from profile_engine.services.diff import has_changes
from profile_engine.services.drafts import DraftEdit, parse_analyzer_response, validate_draft
from profile_engine.services.evidence import EvidenceComment, EvidenceSource, SqlEvidenceSource
from profile_engine.services.patches import apply_edit, contains_normalized
from profile_engine.services.recommendation_store import NewRecommendation, RecommendationStore
from profile_engine.services.versions import VersionStore

logger = logging.getLogger(__name__)

NO_COMMENTS_OVERVIEW = "No new feedback comments available to analyze."
NO_COMMENTS_REASON = "No testing feedback has been provided since the last analysis."
NO_RECOMMENDATIONS_REASON = "Unable to generate specific recommendations from the provided feedback."


class RecommendationGenerator:
    """
    Turns reviewer feedback into a stored ProfileRecommendationSet.

    Attributes:
        db: Async session used for reads and the final write
        analyzer: External analyzer (OpenAIProfileAnalyzer in production)
        evidence: Comment source (SqlEvidenceSource by default)
        settings: Timeout, comment scope and per-section limits
    """

    def __init__(
        self,
        db: AsyncSession,
        analyzer: ProfileAnalyzer,
        evidence: Optional[EvidenceSource] = None,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.analyzer = analyzer
        self.settings = settings or get_settings()
        self.evidence = evidence or SqlEvidenceSource(db, max_comments=self.settings.max_comments)
        self.versions = VersionStore(db, max_retries=self.settings.version_write_retries)
        self.store = RecommendationStore(db)

    async def generate(self, project_id: str) -> ProfileRecommendationSet:
        """
        Generate and store a new recommendation set for a project.

        Raises:
            NotFoundError: project has no profile yet
            GenerationTimeoutError: analyzer call timed out
            AnalyzerError: analyzer failed or reply was unparseable
        """
        current = await self.versions.require_current(project_id)
        sections: Dict[str, str] = dict(current.sections)
        based_on_version = current.version

        since_set_id = None
        if self.settings.recommendation_comment_scope == "since_last_set":
            previous = await self.store.latest_set(project_id)
            since_set_id = previous.id if previous else None

        comments = await self.evidence.list_comments(project_id, since_set_id=since_set_id)

        # Release the read transaction before the analyzer call
        await self.db.commit()

        if not comments:
            logger.info(f"Project {project_id}: no new comments, storing empty recommendation set")
            summary = AnalysisSummary(
                overview=NO_COMMENTS_OVERVIEW,
                feedback_themes=[],
                config_alignment="good",
                no_change_reason=NO_COMMENTS_REASON,
            )
            return await self.store.create_set(
                project_id, summary, [], based_on_version=based_on_version
            )

        raw = await self._call_analyzer(AnalysisRequest(sections=sections, comments=comments))
        summary, drafts = parse_analyzer_response(raw)

        planned = self.validate_drafts(drafts, sections, {c.id for c in comments})
        record_draft_outcome("persisted", len(planned))
        record_draft_outcome("dropped", len(drafts) - len(planned))

        if not planned and not summary.no_change_reason:
            summary = summary.model_copy(update={"no_change_reason": NO_RECOMMENDATIONS_REASON})

        return await self.store.create_set(
            project_id,
            summary,
            planned,
            total_comments=len(comments),
            sessions_analyzed=count_sessions(comments),
            based_on_version=based_on_version,
            analyzed_comment_ids=[c.id for c in comments],
        )

    async def _call_analyzer(self, request: AnalysisRequest) -> Union[str, Dict[str, Any]]:
        timeout = self.settings.analyzer_timeout_seconds
        start = time.perf_counter()
        try:
            raw = await asyncio.wait_for(self.analyzer.analyze(request), timeout=timeout)
        except (asyncio.TimeoutError, APITimeoutError) as e:
            record_analyzer_latency("timeout", time.perf_counter() - start)
            logger.error(f"Analyzer timed out after {timeout:.0f}s")
            raise GenerationTimeoutError(
                f"Recommendation generation timed out after {timeout:.0f} seconds. Please try again."
            ) from e
        except ProfileEngineError:
            record_analyzer_latency("error", time.perf_counter() - start)
            raise
        except Exception as e:
            record_analyzer_latency("error", time.perf_counter() - start)
            logger.error(f"Analyzer call failed: {e}")
            raise AnalyzerError("Recommendation analysis failed", details=str(e)) from e

        record_analyzer_latency("ok", time.perf_counter() - start)
        return raw

    def validate_drafts(
        self,
        drafts: List[Any],
        sections: Dict[str, str],
        known_comment_ids: Set[str],
    ) -> List[NewRecommendation]:
        """
        Keep the drafts that are structurally valid and coherent with the
        current sections, in analyzer order.
        """
        per_section: Counter = Counter()
        planned: List[NewRecommendation] = []

        for index, raw in enumerate(drafts):
            try:
                edit = validate_draft(raw)
                before = sections.get(edit.target_section, "")
                check_coherence(edit, before)
                if per_section[edit.target_section] >= self.settings.max_recommendations_per_section:
                    raise ValidationError(f"Section {edit.target_section} already has a recommendation")
                after = apply_edit(before, edit)
                if not has_changes(before, after):
                    raise ValidationError("Recommendation produces no change")
            except ValidationError as e:
                logger.warning(f"Dropping analyzer draft #{index}: {e.message}")
                continue

            per_section[edit.target_section] += 1
            related = [cid for cid in edit.related_comment_ids if cid in known_comment_ids]
            planned.append(
                NewRecommendation(
                    edit=replace(edit, related_comment_ids=related),
                    preview_before=before,
                    preview_after=after,
                )
            )

        return planned


def check_coherence(edit: DraftEdit, section_content: str) -> None:
    """
    Reject drafts that cannot make sense against the current section.

    Raises:
        ValidationError: modify with identical from/to, or remove/modify
            whose target text is not in the section
    """
    if edit.type == "modify":
        if not has_changes(edit.modified_from or "", edit.modified_to or ""):
            raise ValidationError("modifiedFrom and modifiedTo are identical")
        if not contains_normalized(section_content, edit.modified_from or ""):
            raise ValidationError(f"modifiedFrom does not occur in section {edit.target_section}")
    elif edit.type == "remove":
        if not contains_normalized(section_content, edit.removed_content or ""):
            raise ValidationError(f"removedContent does not occur in section {edit.target_section}")


def count_sessions(comments: List[EvidenceComment]) -> int:
    return len({c.session_id for c in comments})
