"""
Recommendation Models - Generated edit proposals and their sets

A ProfileRecommendationSet is written once per generation run together with
its recommendations. After that only a recommendation's status (and the
timestamps that go with it) ever changes.

Status Flow:
    pending → applied    (apply-all, target text still present)
    pending → dismissed  (owner dismissed it)
    pending → pending    (apply-all skipped it on conflict)
"""

from sqlalchemy import Column, String, Integer, Text, JSON, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from profile_engine.database import Base, utcnow
import uuid


RECOMMENDATION_TYPES = ("add", "remove", "modify")
RECOMMENDATION_STATUSES = ("pending", "applied", "dismissed")


class ProfileRecommendationSet(Base):
    """
    Output of one generation run.

    Attributes:
        analysis_summary: JSON dict with overview, feedbackThemes,
            configAlignment and noChangeReason
        total_comments: Number of comments sent to the analyzer
        sessions_analyzed: Distinct test sessions those comments came from
        based_on_version: Profile version the analysis read
        analyzed_comment_ids: Comments sent to the analyzer; later runs skip them
    """

    __tablename__ = "profile_recommendation_sets"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    project_id = Column(String, nullable=False, index=True)
    analysis_summary = Column(JSON, nullable=False)
    total_comments = Column(Integer, nullable=False, default=0)
    sessions_analyzed = Column(Integer, nullable=False, default=0)
    based_on_version = Column(Integer, nullable=True)
    analyzed_comment_ids = Column(JSON, nullable=False, default=list)
    generated_at = Column(DateTime, nullable=False, default=utcnow)

    recommendations = relationship(
        "ProfileRecommendation",
        back_populates="recommendation_set",
        order_by="ProfileRecommendation.position",
        lazy="selectin",
    )


class ProfileRecommendation(Base):
    """
    A single add/remove/modify edit proposed for one profile section.

    Attributes:
        position: Creation order inside the set (apply order)
        type: add | remove | modify
        target_section: One of the five profile section keys
        added_content: Text to append (add)
        removed_content: Text to delete (remove)
        modified_from/modified_to: Phrase replacement (modify)
        preview_before: Section content when the set was generated
        preview_after: Section content with only this edit applied
        related_comment_ids: Test comments that motivated the edit
        applied_in_version: Profile version that includes the edit
    """

    __tablename__ = "profile_recommendations"
    __table_args__ = (
        Index("ix_profile_recommendations_set_position", "set_id", "position"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    set_id = Column(String, ForeignKey("profile_recommendation_sets.id"), nullable=False)
    project_id = Column(String, nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    type = Column(String(10), nullable=False)
    target_section = Column(String(50), nullable=False)
    added_content = Column(Text, nullable=True)
    removed_content = Column(Text, nullable=True)
    modified_from = Column(Text, nullable=True)
    modified_to = Column(Text, nullable=True)
    summary_bullets = Column(JSON, nullable=False, default=list)
    rationale = Column(Text, nullable=False, default="")
    preview_before = Column(Text, nullable=False, default="")
    preview_after = Column(Text, nullable=False, default="")
    related_comment_ids = Column(JSON, nullable=False, default=list)
    status = Column(String(20), nullable=False, default="pending", index=True)
    applied_at = Column(DateTime, nullable=True)
    applied_in_version = Column(Integer, nullable=True)
    dismissed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    recommendation_set = relationship("ProfileRecommendationSet", back_populates="recommendations")
