"""
Deterministic auto-fix pass for record sets that failed validation.

Records are never dropped; only missing or invalid fields are filled or
replaced. The input list and its records are left untouched.
"""

from datetime import date
from typing import List, Optional, Sequence

from .logger import get_logger
from .models import ApplicationRecord, DATE_ATTRS
from .normalize import is_non_empty_str, parse_date
from .versioning import new_record_id

UNKNOWN_COMPANY = "Unknown Company"
UNKNOWN_POSITION = "Unknown Position"

logger = get_logger()


def repair_records(
    records: Sequence[ApplicationRecord],
    today: Optional[date] = None,
) -> List[ApplicationRecord]:
    """
    Return a repaired copy of ``records``.

    Order of fixes:
        1. missing ids get a fresh id
        2. first record to claim an id keeps it, later holders get a fresh id
        3. blank company/position become placeholder text
        4. missing or unparseable applied dates become today's date;
           unparseable optional dates are cleared
    """
    today_iso = (today or date.today()).isoformat()
    repaired = [record.copy() for record in records]
    fixes = 0

    for record in repaired:
        if not is_non_empty_str(record.id):
            record.id = new_record_id()
            fixes += 1

    seen_ids = set()
    for record in repaired:
        if record.id in seen_ids:
            record.id = new_record_id()
            fixes += 1
        seen_ids.add(record.id)

    for record in repaired:
        if not is_non_empty_str(record.company):
            record.company = UNKNOWN_COMPANY
            fixes += 1
        if not is_non_empty_str(record.position):
            record.position = UNKNOWN_POSITION
            fixes += 1

    for record in repaired:
        if parse_date(record.applied_date) is None:
            record.applied_date = today_iso
            fixes += 1
        for attr in DATE_ATTRS[1:]:
            value = getattr(record, attr)
            if is_non_empty_str(value) and parse_date(value) is None:
                setattr(record, attr, None)
                fixes += 1

    logger.info("Repaired record set", records=len(repaired), fixes=fixes)
    return repaired
