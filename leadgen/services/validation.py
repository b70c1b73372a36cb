"""Typed coercion and realism checks for generated persona records.

`sanitize` only coerces shapes: missing or malformed values become empty
strings, empty lists or zero. It never substitutes semantic content, so a
record the generator left incomplete stays incomplete and is rejected by
`is_realistic` instead of being silently patched.
"""
from __future__ import annotations

import re
from typing import Any

from leadgen.models.persona import SCHEMAS, PersonaKind, PersonaSchema
from leadgen.models.search import SearchContext

BANNED_TITLE_TERMS = ("persona", "profile", "archetype")
PLACEHOLDER_TOKENS = frozenset({"unknown", "n/a", "default", "none"})
MIN_MATCH_SCORE = 60
RANK_RANGE = (1, 5)

_WHITESPACE_RE = re.compile(r"\s+")
_NON_NUMERIC_RE = re.compile(r"[^0-9.\-]")
_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")

SECTION_ALIASES = {
    "market_potential": ("marketPotential",),
}

DM_FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "level": ("seniority", "seniority_level", "seniorityLevel"),
    "department": ("dept", "function"),
    "experience": ("years_experience", "yearsExperience"),
    "geography": ("region", "location"),
    "responsibilities": ("key_responsibilities", "keyResponsibilities"),
    "preferredChannels": ("channels",),
    "avgInfluence": ("influence",),
}


def clean_text(value: Any) -> str:
    """Collapse whitespace and strip wrapping quotes."""
    if value is None or isinstance(value, bool):
        return ""
    if isinstance(value, (int, float)):
        return str(value)
    if not isinstance(value, str):
        return ""
    text = _WHITESPACE_RE.sub(" ", value).strip()
    return text.strip("\"'`").strip()


def to_string_list(value: Any) -> list[str]:
    """Accept a list of strings or of objects carrying a `text` field."""
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        return []
    items: list[str] = []
    for entry in value:
        if isinstance(entry, dict):
            entry = entry.get("text")
        text = clean_text(entry)
        if text:
            items.append(text)
    return items


def to_number(value: Any) -> int | float:
    """Parse numbers, including strings such as "5,000" or "6%". Unparseable gives 0."""
    if isinstance(value, bool) or value is None:
        return 0
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        stripped = _NON_NUMERIC_RE.sub("", value)
        try:
            number = float(stripped)
        except ValueError:
            return 0
    else:
        return 0
    if number != number:  # NaN
        return 0
    return int(number) if number.is_integer() else number


def _snake(name: str) -> str:
    return _CAMEL_RE.sub("_", name).lower()


def _lookup(source: dict[str, Any], name: str, kind: PersonaKind) -> Any:
    candidates = [name, _snake(name)]
    if kind is PersonaKind.DECISION_MAKER:
        candidates.extend(DM_FIELD_ALIASES.get(name, ()))
    for key in candidates:
        if key in source:
            return source[key]
    return None


def _section(raw: dict[str, Any], name: str) -> dict[str, Any]:
    for key in (name, *SECTION_ALIASES.get(name, ())):
        value = raw.get(key)
        if isinstance(value, dict):
            return value
    return {}


def sanitize(
    kind: PersonaKind,
    raw: Any,
    index: int,
    context: SearchContext | None = None,
) -> dict[str, Any]:
    """Coerce one raw generated persona into the declared record shape."""
    schema = SCHEMAS[kind]
    raw = raw if isinstance(raw, dict) else {}

    rank = to_number(raw.get("rank"))
    record: dict[str, Any] = {
        "title": clean_text(raw.get("title") or raw.get("name")),
        "rank": int(rank) if rank else index + 1,
        "match_score": int(to_number(raw.get("match_score", raw.get("matchScore")))),
    }

    for section in schema.sections():
        source = _section(raw, section)
        # DM generators sometimes flatten section fields onto the persona itself.
        if not source and kind is PersonaKind.DECISION_MAKER:
            source = raw
        values: dict[str, Any] = {}
        for name in schema.strings.get(section, ()):
            values[name] = clean_text(_lookup(source, name, kind))
        for name in schema.lists.get(section, ()):
            values[name] = to_string_list(_lookup(source, name, kind))
        for name in schema.numbers.get(section, ()):
            values[name] = to_number(_lookup(source, name, kind))
        record[section] = values

    if schema.has_locations:
        record["locations"] = to_string_list(raw.get("locations"))

    if context is not None:
        record["search_id"] = context.id
        record["user_id"] = context.user_id
    return record


def normalize_title(title: str) -> str:
    return _WHITESPACE_RE.sub(" ", (title or "").strip().lower())


def _is_placeholder(text: Any) -> bool:
    if not isinstance(text, str):
        return True
    stripped = text.strip()
    return not stripped or stripped.lower() in PLACEHOLDER_TOKENS


def realism_problems(kind: PersonaKind, record: dict[str, Any]) -> list[str]:
    """Return every reason a single record fails the realism check."""
    schema: PersonaSchema = SCHEMAS[kind]
    problems: list[str] = []

    title = record.get("title")
    if _is_placeholder(title):
        problems.append("title is empty or a placeholder")
    else:
        lowered = title.lower()
        for term in BANNED_TITLE_TERMS:
            if term in lowered:
                problems.append(f"title contains generic term '{term}'")

    rank = record.get("rank")
    if not isinstance(rank, int) or isinstance(rank, bool) or not RANK_RANGE[0] <= rank <= RANK_RANGE[1]:
        problems.append("rank out of range")

    score = record.get("match_score")
    if not isinstance(score, (int, float)) or isinstance(score, bool) or score < MIN_MATCH_SCORE:
        problems.append(f"match_score below {MIN_MATCH_SCORE}")

    for section, names in schema.strings.items():
        values = record.get(section) or {}
        for name in names:
            if _is_placeholder(values.get(name)):
                problems.append(f"{section}.{name} is empty or a placeholder")

    for section, names in schema.lists.items():
        values = record.get(section) or {}
        for name in names:
            items = values.get(name)
            if not isinstance(items, list) or not items:
                problems.append(f"{section}.{name} is empty")
            elif any(_is_placeholder(item) for item in items):
                problems.append(f"{section}.{name} contains a placeholder")

    for section, names in schema.numbers.items():
        values = record.get(section) or {}
        for name in names:
            value = values.get(name)
            if not isinstance(value, (int, float)) or isinstance(value, bool) or value <= 0:
                problems.append(f"{section}.{name} must be positive")

    if schema.has_locations and any(_is_placeholder(item) for item in record.get("locations") or []):
        problems.append("locations contains a placeholder")

    return problems


def is_realistic(kind: PersonaKind, record: dict[str, Any]) -> bool:
    return not realism_problems(kind, record)


def batch_problems(kind: PersonaKind, records: list[dict[str, Any]]) -> list[str]:
    problems: list[str] = []
    seen: set[str] = set()
    for index, record in enumerate(records):
        for problem in realism_problems(kind, record):
            problems.append(f"persona {index + 1}: {problem}")
        key = normalize_title(record.get("title", ""))
        if key and key in seen:
            problems.append(f"persona {index + 1}: duplicate title '{record.get('title')}'")
        seen.add(key)
    return problems


def is_realistic_batch(kind: PersonaKind, records: list[dict[str, Any]]) -> bool:
    """Every record is realistic and no two share a normalized title."""
    return bool(records) and not batch_problems(kind, records)
