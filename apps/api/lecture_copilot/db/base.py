from lecture_copilot.db.base_class import Base  # noqa: F401

# Import all the models here so that Base has them registered
# This file should NOT be imported by models.
from lecture_copilot.models.job import Job  # noqa: F401
from lecture_copilot.models.video import Video  # noqa: F401
from lecture_copilot.models.video_segment import VideoSegment  # noqa: F401
from lecture_copilot.models.study_bundle import StoredStudyBundle  # noqa: F401
