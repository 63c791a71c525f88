from profile_engine.schemas.profile import (
    ProfileSections,
    AgentProfileResponse,
    InterviewProfileRequest,
    SectionUpdate,
    RollbackRequest,
    ProfileVersionSummary,
    ProfileVersionResponse,
    VersionHistoryResponse,
    ProfileMutationResponse,
)
from profile_engine.schemas.recommendation import (
    AnalysisSummary,
    RecommendationResponse,
    RecommendationSetResponse,
    RecommendationListResponse,
    DiffSpanResponse,
    RecommendationDiffResponse,
    ApplyAllRequest,
    SkippedRecommendation,
    ApplyAllResponse,
    DismissResponse,
)

__all__ = [
    "ProfileSections",
    "AgentProfileResponse",
    "InterviewProfileRequest",
    "SectionUpdate",
    "RollbackRequest",
    "ProfileVersionSummary",
    "ProfileVersionResponse",
    "VersionHistoryResponse",
    "ProfileMutationResponse",
    "AnalysisSummary",
    "RecommendationResponse",
    "RecommendationSetResponse",
    "RecommendationListResponse",
    "DiffSpanResponse",
    "RecommendationDiffResponse",
    "ApplyAllRequest",
    "SkippedRecommendation",
    "ApplyAllResponse",
    "DismissResponse",
]
