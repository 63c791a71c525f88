"""
Recommendations API - Generate, review, dismiss and apply profile edits

Endpoints (all under /projects/{project_id}/recommendations):
- POST ""                      - run the analyzer over new feedback (rate limited)
- GET  ""                      - list recommendations (pending by default)
- POST "/apply-all"            - apply a set's pending recommendations
- GET  "/{id}/diff"            - word diff of previewBefore → previewAfter
- POST "/{id}/dismiss"         - dismiss one pending recommendation

Mutating endpoints return the current profile and version number so the
client can resynchronize without a second request.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Dict, Optional

from profile_engine.api.profile import to_profile_response
from profile_engine.config import Settings, get_settings
from profile_engine.database import get_db
from profile_engine.models import ProfileRecommendation, ProfileRecommendationSet
from profile_engine.schemas import (
    ApplyAllRequest,
    ApplyAllResponse,
    DiffSpanResponse,
    DismissResponse,
    RecommendationDiffResponse,
    RecommendationListResponse,
    RecommendationResponse,
    RecommendationSetResponse,
    SkippedRecommendation,
)
from profile_engine.services.analyzer import ProfileAnalyzer, get_profile_analyzer
from profile_engine.services.diff import diff_words
from profile_engine.services.patch_applier import PatchApplier
from profile_engine.services.patches import is_stale
from profile_engine.services.rate_limit import RateLimiter, get_rate_limiter
from profile_engine.services.recommendation_generator import RecommendationGenerator
from profile_engine.services.recommendation_store import RecommendationStore
from profile_engine.services.versions import VersionStore

router = APIRouter()


def to_recommendation_response(
    rec: ProfileRecommendation,
    sections: Optional[Dict[str, str]] = None,
) -> RecommendationResponse:
    response = RecommendationResponse.model_validate(rec)
    if sections is not None and rec.status == "pending":
        stale = is_stale(sections.get(rec.target_section, ""), rec.preview_before)
        response = response.model_copy(update={"stale": stale})
    return response


def to_set_response(rec_set: ProfileRecommendationSet) -> RecommendationSetResponse:
    return RecommendationSetResponse(
        id=rec_set.id,
        project_id=rec_set.project_id,
        generated_at=rec_set.generated_at,
        analysis_summary=rec_set.analysis_summary,
        total_comments=rec_set.total_comments,
        sessions_analyzed=rec_set.sessions_analyzed,
        based_on_version=rec_set.based_on_version,
        recommendations=[to_recommendation_response(r) for r in rec_set.recommendations],
    )


@router.post("", response_model=RecommendationSetResponse, status_code=201)
async def generate_recommendations(
    project_id: str,
    db: AsyncSession = Depends(get_db),
    analyzer: ProfileAnalyzer = Depends(get_profile_analyzer),
    limiter: RateLimiter = Depends(get_rate_limiter),
    settings: Settings = Depends(get_settings),
):
    await limiter.check("generate", project_id)

    generator = RecommendationGenerator(db, analyzer, settings=settings)
    rec_set = await generator.generate(project_id)
    return to_set_response(rec_set)


@router.get("", response_model=RecommendationListResponse)
async def list_recommendations(
    project_id: str,
    status: str = Query("pending", pattern="^(pending|applied|dismissed|all)$"),
    set_id: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    store = RecommendationStore(db)
    recs = await store.list_by_status(
        project_id, status=None if status == "all" else status, set_id=set_id
    )

    current = await VersionStore(db).current(project_id)
    sections = dict(current.sections) if current else None

    return RecommendationListResponse(
        recommendations=[to_recommendation_response(r, sections) for r in recs],
        total=len(recs),
    )


@router.post("/apply-all", response_model=ApplyAllResponse)
async def apply_all_recommendations(
    project_id: str,
    request: ApplyAllRequest,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    applier = PatchApplier(db, max_retries=settings.version_write_retries)
    result = await applier.apply_all(project_id, request.set_id)

    return ApplyAllResponse(
        applied_count=result.applied_count,
        applied_ids=result.applied_ids,
        skipped=[SkippedRecommendation(id=s.id, reason=s.reason) for s in result.skipped],
        new_version=result.new_version.version if result.new_version else None,
        current_version=result.profile.version,
        profile=to_profile_response(result.profile),
    )


@router.get("/{recommendation_id}/diff", response_model=RecommendationDiffResponse)
async def get_recommendation_diff(
    project_id: str,
    recommendation_id: str,
    db: AsyncSession = Depends(get_db),
):
    rec = await RecommendationStore(db).get(project_id, recommendation_id)
    spans = diff_words(rec.preview_before, rec.preview_after)
    return RecommendationDiffResponse(
        recommendation_id=rec.id,
        target_section=rec.target_section,
        spans=[DiffSpanResponse(tag=s.tag, text=s.text) for s in spans],
    )


@router.post("/{recommendation_id}/dismiss", response_model=DismissResponse)
async def dismiss_recommendation(
    project_id: str,
    recommendation_id: str,
    db: AsyncSession = Depends(get_db),
):
    rec = await RecommendationStore(db).dismiss(project_id, recommendation_id)
    current = await VersionStore(db).require_current(project_id)

    return DismissResponse(
        recommendation=to_recommendation_response(rec),
        current_version=current.version,
        profile=to_profile_response(current),
    )
