from __future__ import annotations

import re

DEFAULT_REGION = "us"

# Country labels that mean "no specific market"; lookups for them are not filtered by country.
GLOBAL_LABELS = frozenset({"", "global", "worldwide", "international"})

# Region code (ISO2, lowercase) -> display name. "sa" is always Saudi Arabia.
REGION_COUNTRY_NAMES: dict[str, str] = {
    "sa": "Saudi Arabia",
    "za": "South Africa",
    "ae": "United Arab Emirates",
    "qa": "Qatar",
    "bh": "Bahrain",
    "kw": "Kuwait",
    "om": "Oman",
    "eg": "Egypt",
    "jo": "Jordan",
    "ma": "Morocco",
    "tr": "Turkey",
    "in": "India",
    "us": "United States",
    "gb": "United Kingdom",
    "ca": "Canada",
    "de": "Germany",
    "fr": "France",
    "es": "Spain",
    "it": "Italy",
    "au": "Australia",
    "jp": "Japan",
    "sg": "Singapore",
    "nl": "Netherlands",
    "ch": "Switzerland",
    "se": "Sweden",
    "no": "Norway",
    "cn": "China",
    "br": "Brazil",
    "mx": "Mexico",
    "ng": "Nigeria",
    "ke": "Kenya",
    "gh": "Ghana",
    "et": "Ethiopia",
}

# Short forms matched as whole words only, so "uk" never matches "Ukraine".
COUNTRY_ALIASES: dict[str, str] = {
    "ksa": "sa",
    "uae": "ae",
    "uk": "gb",
    "usa": "us",
    "rsa": "za",
}

# Whole-word hints, checked in order. Saudi Arabia first; South Africa only by its full name.
COUNTRY_HINTS: tuple[tuple[str, str], ...] = (
    ("saudi", "sa"),
    ("south africa", "za"),
    ("emirates", "ae"),
    ("dubai", "ae"),
    ("abu dhabi", "ae"),
    ("britain", "gb"),
    ("england", "gb"),
    ("united states", "us"),
    ("holland", "nl"),
    ("türkiye", "tr"),
    ("turkiye", "tr"),
) + tuple((name.lower(), code) for code, name in REGION_COUNTRY_NAMES.items())

_WORD_RE = re.compile(r"[a-z]+")
_HINT_PATTERNS = tuple((re.compile(rf"\b{re.escape(hint)}\b"), code) for hint, code in COUNTRY_HINTS)


def match_region(country: str) -> str | None:
    """Region code for a country name, alias or ISO2 code; None when it cannot be mapped."""
    lowered = (country or "").strip().lower()
    if not lowered:
        return None
    if len(lowered) == 2 and lowered in REGION_COUNTRY_NAMES:
        return lowered
    for word in _WORD_RE.findall(lowered):
        if word in COUNTRY_ALIASES:
            return COUNTRY_ALIASES[word]
    for pattern, code in _HINT_PATTERNS:
        if pattern.search(lowered):
            return code
    return None


def region_code(country: str) -> str:
    return match_region(country) or DEFAULT_REGION


def country_name(code: str) -> str:
    return REGION_COUNTRY_NAMES.get((code or "").lower(), (code or "").upper())
