from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from lecture_copilot.api.errors import to_http
from lecture_copilot.core.errors import VideoNotFound
from lecture_copilot.services.events import EventBroadcaster
from lecture_copilot.services.metadata_store import SqlMetadataStore
from lecture_copilot.services.wiring import get_broadcaster, get_store

router = APIRouter(prefix="/videos", tags=["events"])


@router.get("/{video_id}/events")
def subscribe_events(
    video_id: str,
    store: SqlMetadataStore = Depends(get_store),
    broadcaster: EventBroadcaster = Depends(get_broadcaster),
) -> StreamingResponse:
    if store.get(video_id) is None:
        raise to_http(VideoNotFound(video_id))

    return StreamingResponse(
        broadcaster.stream(video_id),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
