from __future__ import annotations

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import relationship

from lecture_copilot.db.base_class import Base


class StoredStudyBundle(Base):
    """One row per video; regeneration replaces the whole row."""

    __tablename__ = "study_bundles"

    video_id = Column(String(64), ForeignKey("videos.id", ondelete="CASCADE"), primary_key=True)

    query = Column(Text, nullable=True)
    summary = Column(Text, nullable=False)

    # JSON strings
    topics_json = Column(Text, nullable=False, default="[]")
    flashcards_json = Column(Text, nullable=False, default="{}")
    quiz_json = Column(Text, nullable=False, default="{}")
    coverage_json = Column(Text, nullable=False, default="{}")
    segment_ids_json = Column(Text, nullable=False, default="[]")

    is_partial = Column(Boolean, nullable=False, default=False)
    generated_at = Column(DateTime(timezone=True), nullable=False)

    video = relationship("Video", backref="study_bundle")
