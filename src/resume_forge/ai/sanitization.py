"""Best-effort cleanup of provider text before it is stored or parsed."""

from __future__ import annotations

import json
import re
from typing import Any

from resume_forge.errors import StructuringFailure

_FENCED_BLOCK = re.compile(r"^\s*```[a-zA-Z0-9_-]*\s*\n?(.*?)\n?\s*```\s*$", re.DOTALL)
_FENCED_JSON = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL | re.IGNORECASE)

RAW_PREVIEW_CHARS = 200


def strip_code_fences(text: str) -> str:
    """Drop a Markdown code fence wrapping the whole reply, if any."""

    stripped = text.strip()
    match = _FENCED_BLOCK.match(stripped)
    if match is None:
        return stripped
    return match.group(1).strip()


def parse_json_object(text: str) -> dict[str, Any]:
    """Parse a JSON object from provider text.

    Tries the whole text, then a fenced ``json`` block, then the first ``{`` to
    the last ``}``. Raises :class:`StructuringFailure` when nothing parses.
    """

    cleaned = strip_code_fences(text)
    if not cleaned:
        raise StructuringFailure("Provider returned empty content.")

    direct = _try_load_dict(cleaned)
    if direct is not None:
        return direct

    fenced = _FENCED_JSON.search(text)
    if fenced is not None:
        payload = _try_load_dict(fenced.group(1))
        if payload is not None:
            return payload

    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start != -1 and end > start:
        payload = _try_load_dict(cleaned[start : end + 1])
        if payload is not None:
            return payload

    raise StructuringFailure(
        "Provider content is not a JSON object.",
        raw_preview=cleaned[:RAW_PREVIEW_CHARS],
    )


def _try_load_dict(raw: str) -> dict[str, Any] | None:
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return None
    if not isinstance(parsed, dict):
        return None
    return parsed
