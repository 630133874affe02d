"""
Feature Extraction for duplicate detection.

Responsibilities:
- Compute individual similarity features between two application records.
- Normalize and compare fields (company, position, location, URL, email, dates).

Non-Responsibilities:
- No weighting logic.
- No threshold logic.
- No persistence.

Invariant:
Missing data must never be treated as a mismatch. Every feature returns None
when either side lacks the value.
"""

from typing import Optional

from ..models import ApplicationRecord
from ..normalize import (
    canonical_url,
    is_non_empty_str,
    normalize_location,
    parse_date,
    string_similarity,
)

DATE_WINDOW_DAYS = 1


def company_similarity(a: ApplicationRecord, b: ApplicationRecord) -> Optional[float]:
    if not (is_non_empty_str(a.company) and is_non_empty_str(b.company)):
        return None
    return string_similarity(a.company, b.company)


def position_similarity(a: ApplicationRecord, b: ApplicationRecord) -> Optional[float]:
    if not (is_non_empty_str(a.position) and is_non_empty_str(b.position)):
        return None
    return string_similarity(a.position, b.position)


def location_similarity(a: ApplicationRecord, b: ApplicationRecord) -> Optional[float]:
    if not (is_non_empty_str(a.location) and is_non_empty_str(b.location)):
        return None
    loc_a = normalize_location(a.location)
    loc_b = normalize_location(b.location)
    if loc_a == loc_b:
        return 1.0
    return string_similarity(loc_a, loc_b)


def job_url_match(a: ApplicationRecord, b: ApplicationRecord) -> Optional[bool]:
    if not (is_non_empty_str(a.job_url) and is_non_empty_str(b.job_url)):
        return None
    return canonical_url(a.job_url) == canonical_url(b.job_url)


def contact_email_match(a: ApplicationRecord, b: ApplicationRecord) -> Optional[bool]:
    if not (is_non_empty_str(a.contact_email) and is_non_empty_str(b.contact_email)):
        return None
    return a.contact_email.strip().lower() == b.contact_email.strip().lower()


def applied_days_apart(a: ApplicationRecord, b: ApplicationRecord) -> Optional[int]:
    date_a = parse_date(a.applied_date)
    date_b = parse_date(b.applied_date)
    if date_a is None or date_b is None:
        return None
    return abs((date_a - date_b).days)


def applied_date_proximity(days_apart: Optional[int]) -> Optional[float]:
    """Full credit on the same day, half credit one day apart, none beyond."""
    if days_apart is None:
        return None
    if days_apart > DATE_WINDOW_DAYS:
        return 0.0
    return 1.0 - days_apart / (DATE_WINDOW_DAYS + 1)
