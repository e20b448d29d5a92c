from __future__ import annotations

from sqlalchemy import Column, DateTime, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship

from lecture_copilot.db.base_class import Base


class VideoSegment(Base):
    __tablename__ = "video_segments"

    id = Column(String(64), primary_key=True)

    video_id = Column(
        String(64),
        ForeignKey("videos.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    idx = Column(Integer, nullable=False)
    start_sec = Column(Float, nullable=False)
    end_sec = Column(Float, nullable=False)
    text = Column(Text, nullable=False, default="")
    confidence = Column(Float, nullable=False)
    embedding_scope = Column(String(32), nullable=False)  # visual | audio | mixed

    created_at = Column(DateTime(timezone=True), nullable=False)

    video = relationship("Video", backref="segments")

    __table_args__ = (
        Index("idx_video_segments_time", "video_id", "start_sec", "end_sec"),
    )
