"""
Evidence Models - Test sessions, AI messages and reviewer comments

These tables are owned by the testing feature. This service only reads
them: comments are evidence for recommendation generation and are never
mutated here.
"""

from sqlalchemy import Column, String, Text, DateTime, ForeignKey
from profile_engine.database import Base, utcnow
import uuid


class TestSession(Base):
    __test__ = False  # not a pytest test class
    __tablename__ = "test_sessions"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    project_id = Column(String, nullable=False, index=True)
    status = Column(String(20), nullable=False, default="active")
    created_at = Column(DateTime, nullable=False, default=utcnow)
    ended_at = Column(DateTime, nullable=True)


class TestMessage(Base):
    """One chat turn inside a test session (only AI turns get comments)."""

    __test__ = False
    __tablename__ = "test_messages"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    session_id = Column(String, ForeignKey("test_sessions.id"), nullable=False, index=True)
    role = Column(String(20), nullable=False, default="assistant")
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class TestComment(Base):
    """Reviewer feedback attached to a specific AI response."""

    __test__ = False
    __tablename__ = "test_comments"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    message_id = Column(String, ForeignKey("test_messages.id"), nullable=False, index=True)
    content = Column(Text, nullable=False)
    template_id = Column(String(50), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
