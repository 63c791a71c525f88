from profile_engine.models.profile import ProfileVersion, SECTION_KEYS, SECTION_TITLES, VERSION_SOURCES
from profile_engine.models.recommendation import (
    ProfileRecommendationSet,
    ProfileRecommendation,
    RECOMMENDATION_TYPES,
    RECOMMENDATION_STATUSES,
)
from profile_engine.models.evidence import TestSession, TestMessage, TestComment

__all__ = [
    "ProfileVersion",
    "SECTION_KEYS",
    "SECTION_TITLES",
    "VERSION_SOURCES",
    "ProfileRecommendationSet",
    "ProfileRecommendation",
    "RECOMMENDATION_TYPES",
    "RECOMMENDATION_STATUSES",
    "TestSession",
    "TestMessage",
    "TestComment",
]
