from datetime import datetime

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from lecture_copilot.db.base_class import Base


class Video(Base):
    __tablename__ = "videos"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)

    # source
    title: Mapped[str | None] = mapped_column(String(512), nullable=True)
    storage_uri: Mapped[str] = mapped_column(Text, nullable=False)

    # lifecycle: uploaded|indexing|ready|failed
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="uploaded", index=True)
    task_id: Mapped[str | None] = mapped_column(String(128), nullable=True, unique=True, index=True)
    index_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
