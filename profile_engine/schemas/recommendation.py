from pydantic import AliasGenerator, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from datetime import datetime
from typing import Literal, Optional

from profile_engine.schemas.profile import AgentProfileResponse

ConfigAlignment = Literal["good", "needs_update", "partial"]
_ALIGNMENTS = ("good", "needs_update", "partial")


class AnalysisSummary(BaseModel):
    """
    Analyzer's overall verdict on the feedback.

    Accepts the analyzer's camelCase keys as well as our own snake_case,
    and falls back to neutral defaults instead of rejecting a sloppy summary.
    """

    model_config = ConfigDict(
        alias_generator=AliasGenerator(validation_alias=to_camel),
        populate_by_name=True,
    )

    overview: str = "Analysis complete."
    feedback_themes: list[str] = []
    config_alignment: ConfigAlignment = "partial"
    no_change_reason: Optional[str] = None

    @field_validator("overview", mode="before")
    @classmethod
    def default_overview(cls, v: object) -> object:
        if not isinstance(v, str) or not v.strip():
            return "Analysis complete."
        return v.strip()

    @field_validator("feedback_themes", mode="before")
    @classmethod
    def keep_string_themes(cls, v: object) -> object:
        if not isinstance(v, list):
            return []
        return [t.strip() for t in v if isinstance(t, str) and t.strip()]

    @field_validator("config_alignment", mode="before")
    @classmethod
    def default_alignment(cls, v: object) -> object:
        return v if v in _ALIGNMENTS else "partial"

    @field_validator("no_change_reason", mode="before")
    @classmethod
    def blank_reason_to_none(cls, v: object) -> object:
        if not isinstance(v, str) or not v.strip():
            return None
        return v.strip()


class RecommendationResponse(BaseModel):
    id: str
    set_id: str
    position: int
    type: str
    target_section: str
    status: str
    added_content: Optional[str] = None
    removed_content: Optional[str] = None
    modified_from: Optional[str] = None
    modified_to: Optional[str] = None
    summary_bullets: list[str]
    rationale: str
    preview_before: str
    preview_after: str
    related_comment_ids: list[str]
    created_at: datetime
    applied_at: Optional[datetime] = None
    applied_in_version: Optional[int] = None
    dismissed_at: Optional[datetime] = None
    # Section no longer matches preview_before (only meaningful while pending)
    stale: bool = False

    class Config:
        from_attributes = True


class RecommendationSetResponse(BaseModel):
    id: str
    project_id: str
    generated_at: datetime
    analysis_summary: AnalysisSummary
    total_comments: int
    sessions_analyzed: int
    based_on_version: Optional[int] = None
    recommendations: list[RecommendationResponse]

    class Config:
        from_attributes = True


class RecommendationListResponse(BaseModel):
    recommendations: list[RecommendationResponse]
    total: int


class DiffSpanResponse(BaseModel):
    tag: Literal["unchanged", "added", "removed"]
    text: str


class RecommendationDiffResponse(BaseModel):
    recommendation_id: str
    target_section: str
    spans: list[DiffSpanResponse]


class ApplyAllRequest(BaseModel):
    model_config = ConfigDict(
        alias_generator=AliasGenerator(validation_alias=to_camel),
        populate_by_name=True,
    )

    set_id: str = Field(..., min_length=1)


class SkippedRecommendation(BaseModel):
    id: str
    reason: Literal["conflict"]


class ApplyAllResponse(BaseModel):
    applied_count: int
    applied_ids: list[str]
    skipped: list[SkippedRecommendation]
    new_version: Optional[int] = None
    current_version: int
    profile: AgentProfileResponse


class DismissResponse(BaseModel):
    recommendation: RecommendationResponse
    current_version: int
    profile: AgentProfileResponse
