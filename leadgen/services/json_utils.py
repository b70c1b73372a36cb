from __future__ import annotations

import json
from typing import Any


def extract_json_object(raw_text: str) -> dict[str, Any]:
    """Parse the outermost JSON object from generator text, tolerating code fences and chatter."""
    text = (raw_text or "").strip()
    if text.startswith("```"):
        parts = text.split("```")
        if len(parts) >= 2:
            text = parts[1]
        if text.startswith("json"):
            text = text[4:]
        text = text.strip()
    start = text.find("{")
    end = text.rfind("}")
    if start < 0 or end <= start:
        raise json.JSONDecodeError("object not found", text, 0)
    parsed = json.loads(text[start : end + 1])
    if not isinstance(parsed, dict):
        raise json.JSONDecodeError("not an object", text, 0)
    return parsed


def extract_list(payload: dict[str, Any], *keys: str) -> list[Any]:
    """First list value found under any of `keys`."""
    for key in keys:
        value = payload.get(key)
        if isinstance(value, list):
            return value
    return []
