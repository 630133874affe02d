"""
Migration codec: application records to and from JSON and CSV.

JSON files carry ``{"applications": [...], "metadata": {...}}``; a bare
array is also accepted on import. CSV files have one header row of wire
field names followed by one row per record.
"""

import csv
import io
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Sequence

from .errors import CorruptedError, UnsupportedFormatError, ValidationFailedError
from .logger import get_logger
from .models import (
    DATE_ATTRS,
    FIELD_MAP,
    LIST_ATTRS,
    LIST_SEPARATOR,
    REQUIRED_ATTRS,
    ApplicationRecord,
    records_from_dicts,
    records_to_dicts,
)
from .normalize import standardize_date
from .repair import repair_records
from .validation import validate_records
from .versioning import new_version_tag

JSON = "json"
CSV = "csv"
FORMATS = (JSON, CSV)

logger = get_logger()


@dataclass
class MigrationOptions:
    source_format: str = JSON
    target_format: str = JSON
    include_metadata: bool = True
    validate: bool = False


def _check_format(fmt: str) -> None:
    if fmt not in FORMATS:
        raise UnsupportedFormatError(f"Unsupported format: {fmt}")


def export_records(records: Sequence[ApplicationRecord], options: MigrationOptions) -> bytes:
    """
    Serialize ``records`` in ``options.target_format``.

    CSV is text only. Extra fields become trailing columns, with non-string
    values written as JSON, and come back as strings. List fields are joined
    with ``"; "``, so a tag that itself contains ``;`` is split on import.

    Raises:
        UnsupportedFormatError: unknown target format
        ValidationFailedError: ``options.validate`` is set and the set has
            critical errors; nothing is produced
    """
    _check_format(options.target_format)

    if options.validate:
        result = validate_records(records)
        if not result.is_valid:
            raise ValidationFailedError(
                "Data validation failed. Please repair data before export.", result
            )

    if options.target_format == JSON:
        payload: Dict[str, Any] = {"applications": records_to_dicts(list(records))}
        if options.include_metadata:
            payload["metadata"] = {
                "exportDate": datetime.now(timezone.utc).isoformat(),
                "version": new_version_tag(),
                "applicationCount": len(records),
            }
        data = json.dumps(payload, indent=2, ensure_ascii=False).encode("utf-8")
    else:
        data = _to_csv(records).encode("utf-8")

    logger.info("Exported applications", format=options.target_format, records=len(records), size=len(data))
    return data


def _extra_columns(records: Sequence[ApplicationRecord]) -> List[str]:
    return sorted({key for record in records for key in record.extra if key not in FIELD_MAP})


def _extra_cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


def _to_csv(records: Sequence[ApplicationRecord]) -> str:
    extra_columns = _extra_columns(records)
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL, lineterminator="\r\n")
    writer.writerow(list(FIELD_MAP) + extra_columns)
    for record in records:
        row = []
        for attr in FIELD_MAP.values():
            value = getattr(record, attr)
            if attr in LIST_ATTRS:
                value = LIST_SEPARATOR.join(value)
            row.append("" if value is None else value)
        row.extend(_extra_cell(record.extra.get(key)) for key in extra_columns)
        writer.writerow(row)
    return buffer.getvalue()


def import_records(data: bytes, options: MigrationOptions) -> List[ApplicationRecord]:
    """
    Parse ``data`` in ``options.source_format``.

    With ``options.validate`` a set that fails validation is repaired
    before it is returned, so imports are self-healing.

    Raises:
        UnsupportedFormatError: unknown source format
        CorruptedError: input is empty or cannot be parsed
    """
    _check_format(options.source_format)

    try:
        text = data.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise CorruptedError(f"Import data is not valid UTF-8: {e}") from e

    if options.source_format == JSON:
        records = _from_json(text)
    else:
        records = _from_csv(text)

    if options.validate:
        result = validate_records(records)
        if not result.is_valid:
            logger.warning(
                "Imported data failed validation, repairing",
                critical_errors=len(result.critical_errors),
            )
            records = repair_records(records)

    logger.info("Imported applications", format=options.source_format, records=len(records))
    return records


def _from_json(text: str) -> List[ApplicationRecord]:
    if not text.strip():
        raise CorruptedError("JSON import is empty")
    try:
        parsed = json.loads(text)
    except ValueError as e:
        raise CorruptedError(f"JSON import cannot be parsed: {e}") from e

    items = parsed.get("applications") if isinstance(parsed, dict) else parsed
    if not isinstance(items, list) or not all(isinstance(item, dict) for item in items):
        raise CorruptedError("JSON import must contain an array of application objects")
    return records_from_dicts(items)


def _from_csv(text: str) -> List[ApplicationRecord]:
    if not text.strip():
        raise CorruptedError("CSV file is empty")

    reader = csv.reader(io.StringIO(text))
    try:
        rows = [row for row in reader if any(cell.strip() for cell in row)]
    except csv.Error as e:
        raise CorruptedError(f"CSV import cannot be parsed: {e}") from e
    if not rows:
        raise CorruptedError("CSV file is empty")

    header = [name.strip() for name in rows[0]]
    records = []
    for row in rows[1:]:
        item: Dict[str, Any] = {}
        for index, name in enumerate(header):
            value = row[index].strip() if index < len(row) else ""
            attr = FIELD_MAP.get(name)
            if attr is None:
                if value != "":
                    item[name] = value
            elif attr not in REQUIRED_ATTRS and value == "":
                item[name] = None
            elif attr in DATE_ATTRS:
                item[name] = standardize_date(value) or value
            else:
                item[name] = value
        records.append(ApplicationRecord.from_dict(item))
    return records
