from __future__ import annotations

import json
import math
from dataclasses import dataclass
from typing import Any, Protocol, Sequence

import httpx
import structlog

from lecture_copilot.core.config import settings
from lecture_copilot.core.errors import ContentIndexError
from lecture_copilot.services.records import RawHit

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class IndexTask:
    task_id: str
    status: str  # validating|pending|queued|indexing|ready|failed
    index_id: str | None = None
    error: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in ("ready", "failed")

    @property
    def succeeded(self) -> bool:
        return self.status == "ready"


class ContentIndex(Protocol):
    def submit_indexing(self, storage_uri: str, *, timeout: float | None = None) -> str: ...

    def get_task(self, task_id: str) -> IndexTask: ...

    def search(
        self,
        index_handle: str,
        query: str,
        scope_filter: Sequence[str] | None = None,
        *,
        limit: int | None = None,
    ) -> list[RawHit]: ...


# TwelveLabs reports a confidence label next to the numeric score
_CONFIDENCE_LABELS = {"high": 0.9, "medium": 0.6, "low": 0.3, "none": 0.0}


def _hit_confidence(item: dict[str, Any]) -> float:
    score = item.get("score")
    if isinstance(score, (int, float)) and math.isfinite(score):
        # scores are 0..100
        value = float(score) / 100.0 if score > 1 else float(score)
        return min(1.0, max(0.0, value))
    label = str(item.get("confidence") or "").lower()
    return _CONFIDENCE_LABELS.get(label, 0.0)


def _hit_text(item: dict[str, Any]) -> str:
    for key in ("transcription", "text"):
        v = item.get(key)
        if isinstance(v, str) and v.strip():
            return v.strip()
    return ""


def parse_search_hits(data: dict[str, Any], scope: str) -> list[RawHit]:
    hits: list[RawHit] = []
    for item in data.get("data") or []:
        try:
            start = float(item["start"])
            end = float(item["end"])
        except (KeyError, TypeError, ValueError):
            continue
        hits.append(
            RawHit(
                start=start,
                end=end,
                text=_hit_text(item),
                confidence=_hit_confidence(item),
                scope=scope,
            )
        )
    return hits


class TwelveLabsContentIndex:
    """
    Thin REST adapter for the TwelveLabs index.

    Uses the multipart endpoints directly (tasks, tasks/{id}, search) so there
    is no SDK to pin; every transport or HTTP error becomes ContentIndexError.
    """

    def __init__(
        self,
        api_key: str | None = None,
        index_id: str | None = None,
        base_url: str | None = None,
        timeout_s: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else settings.twelvelabs_api_key
        self.index_id = index_id if index_id is not None else settings.twelvelabs_index_id
        self.base_url = (base_url or settings.twelvelabs_base_url).rstrip("/")
        self.timeout_s = timeout_s if timeout_s is not None else settings.twelvelabs_timeout_sec
        self._transport = transport

    def _client(self, timeout: float | None) -> httpx.Client:
        if not self.api_key:
            raise ContentIndexError("TWELVELABS_API_KEY is missing")
        return httpx.Client(
            base_url=self.base_url,
            headers={"x-api-key": self.api_key},
            timeout=httpx.Timeout(timeout or self.timeout_s, connect=10.0),
            transport=self._transport,
        )

    def _request(self, method: str, path: str, *, timeout: float | None = None, **kwargs: Any) -> dict[str, Any]:
        try:
            with self._client(timeout) as client:
                r = client.request(method, path, **kwargs)
                r.raise_for_status()
                return r.json()
        except httpx.HTTPStatusError as e:
            body = e.response.text[:300] if e.response is not None else ""
            raise ContentIndexError(f"{method} {path} -> {e.response.status_code}: {body}") from e
        except httpx.HTTPError as e:
            raise ContentIndexError(f"{method} {path} failed: {e}") from e
        except ValueError as e:
            raise ContentIndexError(f"{method} {path} returned non-JSON") from e

    def _require_index(self) -> str:
        if not self.index_id:
            raise ContentIndexError("TWELVELABS_INDEX_ID is missing")
        return self.index_id

    # -----------------------
    # Tasks
    # -----------------------
    def submit_indexing(self, storage_uri: str, *, timeout: float | None = None) -> str:
        data = self._request(
            "POST",
            "/tasks",
            timeout=timeout,
            files={
                "index_id": (None, self._require_index()),
                "video_url": (None, storage_uri),
            },
        )
        task_id = data.get("_id") or data.get("id")
        if not task_id:
            raise ContentIndexError("Task creation returned no id")
        log.info("content_index.task_created", task_id=task_id)
        return str(task_id)

    def get_task(self, task_id: str) -> IndexTask:
        data = self._request("GET", f"/tasks/{task_id}")
        status = str(data.get("status") or "unknown").lower()
        error = data.get("error") if status == "failed" else None
        if isinstance(error, dict):
            error = error.get("message")
        return IndexTask(
            task_id=task_id,
            status=status,
            index_id=data.get("video_id"),
            error=error or None,
        )

    # -----------------------
    # Search
    # -----------------------
    def search(
        self,
        index_handle: str,
        query: str,
        scope_filter: Sequence[str] | None = None,
        *,
        limit: int | None = None,
    ) -> list[RawHit]:
        scopes = list(scope_filter or settings.twelvelabs_search_options)
        files: list[tuple[str, tuple[None, str]]] = [
            ("index_id", (None, self._require_index())),
            ("query_text", (None, query)),
            ("filter", (None, json.dumps({"id": [index_handle]}))),
        ]
        files += [("search_options", (None, s)) for s in scopes]
        if limit:
            files.append(("page_limit", (None, str(limit))))

        data = self._request("POST", "/search", files=files)
        scope = scopes[0] if len(scopes) == 1 else "mixed"
        hits = parse_search_hits(data, scope)
        log.debug("content_index.search", index_handle=index_handle, query=query, hits=len(hits))
        return hits
