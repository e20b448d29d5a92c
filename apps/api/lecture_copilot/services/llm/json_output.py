from __future__ import annotations

import json
import re
from typing import Any

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.S | re.I)


def extract_json(text: str) -> dict[str, Any]:
    """
    Best-effort JSON extraction if the model returns extra text
    (markdown fences, a sentence before the object, ...).
    """
    text = (text or "").strip()
    if not text:
        raise ValueError("Empty response from model")

    m = _FENCE_RE.match(text)
    if m:
        text = m.group(1).strip()

    # Fast path
    try:
        data = json.loads(text)
    except ValueError:
        # Try to find outermost JSON object
        start = text.find("{")
        end = text.rfind("}")
        if start < 0 or end <= start:
            raise ValueError(f"Model returned non-JSON. First 200 chars: {text[:200]!r}")
        data = json.loads(text[start : end + 1])

    if not isinstance(data, dict):
        raise ValueError("Model returned JSON that is not an object")
    return data
