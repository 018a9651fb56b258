"""Helpers for turning raw LLM output into JSON objects."""

from __future__ import annotations

import json
import re
from typing import Any

from ragler.utils.errors import ParseError

_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


def parse_json_object(raw: str, provider_name: str | None = None) -> dict[str, Any]:
    """Parse *raw* into a dict, tolerating code fences and leading prose.

    Raises
    ------
    ParseError
        With the raw response attached when no JSON object can be decoded.
    """
    text = (raw or "").strip()

    # Markdown code fences: ```json ... ```
    if text.startswith("```"):
        lines = [line for line in text.split("\n") if not line.strip().startswith("```")]
        text = "\n".join(lines).strip()

    # Prose around the object: "Here you go: {...}"
    if not text.startswith("{"):
        match = _JSON_OBJECT_RE.search(text)
        if match:
            text = match.group(0)

    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ParseError(
            message=f"Response is not valid JSON: {exc.msg}",
            provider_name=provider_name,
            raw_response=raw,
        ) from exc

    if not isinstance(data, dict):
        raise ParseError(
            message="Response JSON is not an object",
            provider_name=provider_name,
            raw_response=raw,
        )
    return data
