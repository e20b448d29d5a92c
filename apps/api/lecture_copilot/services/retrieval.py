from __future__ import annotations

import math
from typing import Iterable, Sequence

import structlog

from lecture_copilot.core.config import settings
from lecture_copilot.core.errors import ContentIndexError, RetrievalError, VideoNotFound, VideoNotReady
from lecture_copilot.services.content_index import ContentIndex
from lecture_copilot.services.metadata_store import MetadataStore
from lecture_copilot.services.records import RawHit, Segment, VideoRecord, VideoStatus, segment_id_for, utcnow

log = structlog.get_logger(__name__)

MIN_SEGMENT_SEC = 1.0


# ----------------------------
# Pure helpers
# ----------------------------

def sanitize_hit(hit: RawHit) -> RawHit | None:
    """Clamp a raw hit into a usable time window, or None if it has no usable bounds."""
    if not (math.isfinite(hit.start) and math.isfinite(hit.end) and math.isfinite(hit.confidence)):
        return None
    start = max(0.0, hit.start)
    end = hit.end if hit.end > start else start + MIN_SEGMENT_SEC
    confidence = min(1.0, max(0.0, hit.confidence))
    return RawHit(start=start, end=end, text=(hit.text or "").strip(), confidence=confidence, scope=hit.scope)


def _sort_key(h: RawHit) -> tuple:
    return (h.start, h.end, h.text, h.confidence, h.scope)


def merge_hits(video_id: str, hits: Iterable[RawHit], merge_gap_sec: float = 2.0) -> list[Segment]:
    """
    Collapse overlapping or nearly adjacent hits into segments ordered by start.

    Hits are sorted on every field first, so any permutation of the same hits
    yields the same segments.
    """
    clean = sorted((h for h in (sanitize_hit(x) for x in hits) if h is not None), key=_sort_key)
    if not clean:
        return []

    created_at = utcnow()
    out: list[Segment] = []

    def flush(group: list[RawHit], end: float) -> None:
        texts: list[str] = []
        seen: set[str] = set()
        for h in group:
            key = " ".join(h.text.split()).casefold()
            if key and key not in seen:
                seen.add(key)
                texts.append(h.text)
        scopes = {h.scope for h in group}
        start = group[0].start
        out.append(
            Segment(
                id=segment_id_for(video_id, start, end),
                video_id=video_id,
                start_sec=start,
                end_sec=end,
                text=" ".join(texts),
                confidence=max(h.confidence for h in group),
                embedding_scope=scopes.pop() if len(scopes) == 1 else "mixed",
                created_at=created_at,
            )
        )

    group = [clean[0]]
    group_end = clean[0].end
    for h in clean[1:]:
        if h.start <= group_end + merge_gap_sec:
            group.append(h)
            group_end = max(group_end, h.end)
        else:
            flush(group, group_end)
            group = [h]
            group_end = h.end
    flush(group, group_end)
    return out


def rank_segments(segments: Sequence[Segment], limit: int | None = None) -> list[Segment]:
    ranked = sorted(segments, key=lambda s: (-s.confidence, s.start_sec))
    if limit is None:
        return ranked
    return ranked[: max(0, int(limit))]


class SegmentRetriever:
    def __init__(
        self,
        store: MetadataStore,
        index: ContentIndex,
        merge_gap_sec: float | None = None,
        coverage_queries: Sequence[str] | None = None,
    ) -> None:
        self.store = store
        self.index = index
        self.merge_gap_sec = settings.merge_gap_sec if merge_gap_sec is None else merge_gap_sec
        self.coverage_queries = tuple(coverage_queries or settings.coverage_queries)

    def _ready_record(self, video_id: str) -> tuple[VideoRecord, str]:
        record = self.store.get(video_id)
        if record is None:
            raise VideoNotFound(video_id)
        handle = record.index_id or record.task_id
        if record.status is not VideoStatus.READY or not handle:
            raise VideoNotReady(video_id, record.status.value)
        return record, handle

    def _search(self, video_id: str, handle: str, query: str, limit: int | None) -> list[RawHit]:
        try:
            return self.index.search(handle, query, limit=limit)
        except ContentIndexError as e:
            log.warning("retrieval.search_failed", video_id=video_id, query=query, error=str(e))
            raise RetrievalError(f"Content index search failed: {e}", video_id=video_id, query=query) from e

    def retrieve(self, video_id: str, query: str, limit: int = 12) -> list[Segment]:
        _, handle = self._ready_record(video_id)
        hits = self._search(video_id, handle, query, limit)
        segments = rank_segments(merge_hits(video_id, hits, self.merge_gap_sec), limit)
        log.info("retrieval.done", video_id=video_id, query=query, hits=len(hits), segments=len(segments))
        return segments

    def retrieve_coverage(self, video_id: str, limit: int | None = 12) -> list[Segment]:
        """Pool hits from the fixed coverage queries; any failing query fails the call."""
        _, handle = self._ready_record(video_id)

        per_query = math.ceil(limit / len(self.coverage_queries)) if limit else None
        pooled: list[RawHit] = []
        for q in self.coverage_queries:
            pooled.extend(self._search(video_id, handle, q, per_query))

        segments = rank_segments(merge_hits(video_id, pooled, self.merge_gap_sec), limit)
        log.info(
            "retrieval.coverage_done",
            video_id=video_id,
            queries=len(self.coverage_queries),
            hits=len(pooled),
            segments=len(segments),
        )
        return segments

    def snapshot(self, video_id: str) -> list[Segment]:
        """Refresh the stored segment set from the index (atomic replace)."""
        segments = self.retrieve_coverage(video_id, limit=None)
        self.store.put_segments(video_id, segments)
        log.info("retrieval.snapshot_stored", video_id=video_id, segments=len(segments))
        return segments
