import re
from datetime import date, datetime
from typing import Any, Optional
from urllib.parse import urlparse

_PUNCT_RE = re.compile(r"[^\w\s]")
_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_US_DATE_RE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
_DOTTED_DATE_RE = re.compile(r"^(\d{1,2})\.(\d{1,2})\.(\d{4})$")


def normalize_text(s: str) -> str:
    return " ".join(s.strip().lower().split())


def normalize_for_match(s: str) -> str:
    """Lowercase, drop punctuation and collapse whitespace."""
    return normalize_text(_PUNCT_RE.sub("", s))


REMOTE_SYNS = {"remote", "remote - us", "remote - usa", "fully remote", "anywhere"}
HYBRID_SYNS = {"hybrid", "flexible", "part-remote"}
ONSITE_SYNS = {"onsite", "on-site", "on site"}


def normalize_location(location: str) -> str:
    loc = normalize_text(location)
    if loc in REMOTE_SYNS:
        return "remote"
    if loc in HYBRID_SYNS:
        return "hybrid"
    if loc in ONSITE_SYNS:
        return "onsite"
    return loc


def canonical_url(url: str) -> str:
    """Lowercase scheme and host, drop a trailing slash; query and fragment are kept."""
    parsed = urlparse(url.strip())
    if not (parsed.scheme and parsed.netloc):
        return url.strip()
    canonical = parsed._replace(
        scheme=parsed.scheme.lower(),
        netloc=parsed.netloc.lower(),
        path=parsed.path.rstrip("/"),
    )
    return canonical.geturl()


def is_non_empty_str(v: Any) -> bool:
    return isinstance(v, str) and v.strip() != ""


def is_valid_url(v: str) -> bool:
    try:
        p = urlparse(v)
        return bool(p.scheme in ("http", "https") and p.netloc)
    except ValueError:
        return False


def is_valid_email(v: str) -> bool:
    return bool(_EMAIL_RE.match(v.strip()))


def levenshtein_distance(a: str, b: str) -> int:
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, 1):
        current = [i]
        for j, cb in enumerate(b, 1):
            cost = 0 if ca == cb else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def string_similarity(a: str, b: str) -> float:
    """
    Fuzzy similarity in [0, 1] between two free-text values.

    Identical text after normalization scores 1.0. When one value contains
    the other (e.g. "Google" vs "Google LLC") the score is the length ratio
    scaled by 0.9. Otherwise the Levenshtein ratio is used.
    """
    norm_a = normalize_for_match(a)
    norm_b = normalize_for_match(b)
    if not norm_a or not norm_b:
        return 0.0
    if norm_a == norm_b:
        return 1.0
    if norm_a in norm_b or norm_b in norm_a:
        shorter, longer = sorted((norm_a, norm_b), key=len)
        return len(shorter) / len(longer) * 0.9
    longest = max(len(norm_a), len(norm_b))
    return (longest - levenshtein_distance(norm_a, norm_b)) / longest


def parse_date(value: Optional[str]) -> Optional[date]:
    """Parse an ISO date or timestamp. Returns None when absent or invalid."""
    if not is_non_empty_str(value):
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        return None


def standardize_date(value: str) -> Optional[str]:
    """
    Convert common spreadsheet date spellings to ISO ``YYYY-MM-DD``.

    Accepts ISO dates/timestamps, ``MM/DD/YYYY`` and ``DD.MM.YYYY``.
    Returns None when the value cannot be read as a calendar date.
    """
    text = value.strip()
    parsed = parse_date(text)
    if parsed is not None:
        return parsed.isoformat()

    for pattern, order in ((_US_DATE_RE, "mdy"), (_DOTTED_DATE_RE, "dmy")):
        match = pattern.match(text)
        if not match:
            continue
        first, second, year = (int(g) for g in match.groups())
        month, day = (first, second) if order == "mdy" else (second, first)
        try:
            return date(year, month, day).isoformat()
        except ValueError:
            return None
    return None
