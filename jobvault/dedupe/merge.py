"""
Field-level merge policy for duplicate records.

Responsibilities:
- Combine two (or more) records believed to be the same application.

Non-Responsibilities:
- No similarity scoring.
- No decision about whether records should be merged.

Invariant:
A merge never loses information that only one side carries, and the
primary record's id always survives.
"""

from typing import List, Optional, Sequence

from ..models import ApplicationRecord
from ..normalize import is_non_empty_str, is_valid_email, is_valid_url, parse_date

# Total order over pipeline stages. Offered/Rejected/Accepted are all
# terminal; ties between them resolve Rejected < Offered < Accepted.
STATUS_RANK = {
    "Pending": 0,
    "Applied": 1,
    "Withdrawn": 2,
    "Interviewing": 3,
    "Rejected": 4,
    "Offered": 5,
    "Accepted": 6,
}
PRIORITY_RANK = {"Low": 1, "Medium": 2, "High": 3}

NOTES_SEPARATOR = "\n\n---\n\n"
DESCRIPTION_SEPARATOR = "\n\n"


def prefer_longer(primary: Optional[str], secondary: Optional[str]) -> Optional[str]:
    """Keep whichever value carries more text; ties go to ``primary``."""
    if not is_non_empty_str(secondary):
        return primary
    if not is_non_empty_str(primary):
        return secondary
    return secondary if len(secondary.strip()) > len(primary.strip()) else primary


def _prefer_valid(primary: Optional[str], secondary: Optional[str], is_valid) -> Optional[str]:
    if is_non_empty_str(primary) and is_non_empty_str(secondary):
        primary_ok = is_valid(primary)
        secondary_ok = is_valid(secondary)
        if primary_ok != secondary_ok:
            return primary if primary_ok else secondary
    return prefer_longer(primary, secondary)


def more_advanced_status(primary: str, secondary: str) -> str:
    if not secondary:
        return primary
    if not primary:
        return secondary
    return secondary if STATUS_RANK.get(secondary, -1) > STATUS_RANK.get(primary, -1) else primary


def _higher_priority(primary: Optional[str], secondary: Optional[str]) -> Optional[str]:
    if not secondary:
        return primary
    if not primary:
        return secondary
    return secondary if PRIORITY_RANK.get(secondary, 0) > PRIORITY_RANK.get(primary, 0) else primary


def pick_date(primary: Optional[str], secondary: Optional[str], earliest: bool) -> Optional[str]:
    """Earliest or latest of two date strings; unparseable values lose."""
    date_p = parse_date(primary)
    date_s = parse_date(secondary)
    if date_s is None:
        return primary if is_non_empty_str(primary) else secondary
    if date_p is None:
        return secondary
    if earliest:
        return secondary if date_s < date_p else primary
    return secondary if date_s > date_p else primary


def _pick_timestamp(primary: Optional[str], secondary: Optional[str], earliest: bool) -> Optional[str]:
    values = [v for v in (primary, secondary) if is_non_empty_str(v)]
    if not values:
        return primary
    return min(values) if earliest else max(values)


def union_list(primary: Sequence[str], secondary: Sequence[str]) -> List[str]:
    """Ordered union with exact-string de-duplication."""
    merged: List[str] = []
    seen = set()
    for item in list(primary) + list(secondary):
        if item not in seen:
            seen.add(item)
            merged.append(item)
    return merged


def combine_text(primary: Optional[str], secondary: Optional[str], separator: str) -> str:
    """Concatenate two distinct non-empty texts; containment keeps the longer one."""
    first = (primary or "").strip()
    second = (secondary or "").strip()
    if not first:
        return second
    if not second:
        return first
    if first.lower() == second.lower():
        return first if len(first) >= len(second) else second
    if second.lower() in first.lower():
        return first
    if first.lower() in second.lower():
        return second
    return f"{first}{separator}{second}"


def merge_records(primary: ApplicationRecord, secondary: ApplicationRecord) -> ApplicationRecord:
    """Merge ``secondary`` into a copy of ``primary``."""
    merged = primary.copy()

    merged.company = prefer_longer(primary.company, secondary.company) or ""
    merged.position = prefer_longer(primary.position, secondary.position) or ""
    merged.location = prefer_longer(primary.location, secondary.location)
    merged.job_type = primary.job_type or secondary.job_type
    merged.salary = prefer_longer(primary.salary, secondary.salary)
    merged.status = more_advanced_status(primary.status, secondary.status)
    merged.priority = _higher_priority(primary.priority, secondary.priority)

    merged.applied_date = pick_date(primary.applied_date, secondary.applied_date, earliest=True)
    merged.response_date = pick_date(primary.response_date, secondary.response_date, earliest=False)
    merged.interview_date = pick_date(primary.interview_date, secondary.interview_date, earliest=False)
    merged.follow_up_date = pick_date(primary.follow_up_date, secondary.follow_up_date, earliest=False)

    merged.contact_person = prefer_longer(primary.contact_person, secondary.contact_person)
    merged.contact_email = _prefer_valid(primary.contact_email, secondary.contact_email, is_valid_email)
    merged.contact_phone = prefer_longer(primary.contact_phone, secondary.contact_phone)
    merged.job_url = _prefer_valid(primary.job_url, secondary.job_url, is_valid_url)
    merged.company_website = _prefer_valid(primary.company_website, secondary.company_website, is_valid_url)

    merged.tags = union_list(primary.tags, secondary.tags)
    merged.requirements = union_list(primary.requirements, secondary.requirements)

    merged.notes = combine_text(primary.notes, secondary.notes, NOTES_SEPARATOR)
    merged.job_description = combine_text(
        primary.job_description, secondary.job_description, DESCRIPTION_SEPARATOR
    )

    merged.created_at = _pick_timestamp(primary.created_at, secondary.created_at, earliest=True)
    merged.updated_at = _pick_timestamp(primary.updated_at, secondary.updated_at, earliest=False)
    merged.extra = {**secondary.extra, **primary.extra}
    return merged


def merge_group(records: Sequence[ApplicationRecord]) -> ApplicationRecord:
    """Fold a duplicate group into its first record."""
    if not records:
        raise ValueError("Cannot merge an empty group")
    merged = records[0].copy()
    for other in records[1:]:
        merged = merge_records(merged, other)
    return merged
