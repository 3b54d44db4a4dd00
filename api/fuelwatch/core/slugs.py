import re

_NON_SLUG_CHARS_RE = re.compile(r"[^a-z0-9\s-]")
_WHITESPACE_RE = re.compile(r"\s+")
_DASH_RUN_RE = re.compile(r"-+")


def slugify(text: str) -> str:
    """Location slug used in `/locations/{slug}` lookups."""
    lowered = text.strip().lower()
    lowered = _NON_SLUG_CHARS_RE.sub("", lowered)
    lowered = _WHITESPACE_RE.sub("-", lowered)
    lowered = _DASH_RUN_RE.sub("-", lowered)
    return lowered.strip("-")


def normalize_station_text(value: str | None) -> str | None:
    """Trim and collapse inner whitespace; station keys compare by exact equality after this."""
    if value is None:
        return None
    collapsed = _WHITESPACE_RE.sub(" ", value).strip()
    return collapsed or None
