from lecture_copilot.models.job import Job
from lecture_copilot.models.video import Video
from lecture_copilot.models.video_segment import VideoSegment  # noqa: F401
from lecture_copilot.models.study_bundle import StoredStudyBundle  # noqa: F401

__all__ = ["Job", "Video", "VideoSegment", "StoredStudyBundle"]
