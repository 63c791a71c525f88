"""
Profile Version Model - Append-only history of the agent profile

The agent profile has five fixed sections. There is no mutable "profile"
row: the current profile of a project is the snapshot stored in its
highest-numbered ProfileVersion.

Version Sources:
    interview      - initial profile from the completed interview
    manual         - owner edited one section directly
    recommendation - an apply-all batch committed at least one edit
    rollback       - copy of an earlier version's snapshot

Per project, versions are 1..N with no gaps or duplicates.
The (project_id, version) unique constraint is what rejects a racing
writer that computed the same next number.
"""

from sqlalchemy import Column, String, Integer, JSON, DateTime, UniqueConstraint
from profile_engine.database import Base, utcnow
import uuid


SECTION_KEYS = (
    "identityRole",
    "communicationStyle",
    "contentPriorities",
    "engagementApproach",
    "keyFramings",
)

SECTION_TITLES = {
    "identityRole": "Identity & Role",
    "communicationStyle": "Communication Style",
    "contentPriorities": "Content Priorities",
    "engagementApproach": "Engagement Approach",
    "keyFramings": "Key Framings",
}

VERSION_SOURCES = ("interview", "manual", "recommendation", "rollback")


class ProfileVersion(Base):
    """
    One immutable, numbered snapshot of a project's agent profile.

    Attributes:
        project_id: Owning project (external id)
        version: Sequential number starting at 1
        sections: Dict of all five section keys to their text content
        source: What created this version (see VERSION_SOURCES)
        recommendation_set_id: Set applied to produce it (source=recommendation)
        restored_from_version: Version copied (source=rollback)
    """

    __tablename__ = "profile_versions"
    __table_args__ = (
        UniqueConstraint("project_id", "version", name="uq_profile_version"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    project_id = Column(String, nullable=False)
    version = Column(Integer, nullable=False)
    sections = Column(JSON, nullable=False)
    source = Column(String(20), nullable=False)
    recommendation_set_id = Column(String, nullable=True)
    restored_from_version = Column(Integer, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
