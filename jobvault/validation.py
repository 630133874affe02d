from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from .models import ApplicationRecord, ATTR_TO_WIRE, DATE_ATTRS, STATUSES
from .normalize import is_non_empty_str, is_valid_email, is_valid_url, parse_date

REQUIRED_STR_FIELDS = ["company", "position"]
OPTIONAL_STR_FIELDS = ["location"]

CRITICAL = "critical"
WARNING = "warning"

# error kinds
MISSING_FIELD = "missing_field"
INVALID_FORMAT = "invalid_format"
CORRUPTED_DATA = "corrupted_data"
DUPLICATE_ID = "duplicate_id"

# warning kinds
OUTDATED_FORMAT = "outdated_format"
MISSING_OPTIONAL_FIELD = "missing_optional_field"
INCONSISTENT_DATA = "inconsistent_data"


@dataclass
class ValidationError:
    kind: str
    message: str
    record_id: Optional[str] = None
    field: Optional[str] = None
    severity: str = CRITICAL

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {
            "type": self.kind,
            "message": self.message,
            "applicationId": self.record_id,
            "field": self.field,
            "severity": self.severity,
        }


@dataclass
class ValidationWarning:
    kind: str
    message: str
    record_id: Optional[str] = None
    field: Optional[str] = None

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {
            "type": self.kind,
            "message": self.message,
            "applicationId": self.record_id,
            "field": self.field,
        }


@dataclass
class RepairSuggestion:
    """Describes a corrective action; ``auto_fix`` maps to repair_records()."""

    kind: str
    description: str
    record_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {"type": self.kind, "description": self.description, "applicationId": self.record_id}


@dataclass
class ValidationResult:
    errors: List[ValidationError] = field(default_factory=list)
    warnings: List[ValidationWarning] = field(default_factory=list)
    repair_suggestions: List[RepairSuggestion] = field(default_factory=list)

    @property
    def critical_errors(self) -> List[ValidationError]:
        return [e for e in self.errors if e.severity == CRITICAL]

    @property
    def is_valid(self) -> bool:
        return not self.critical_errors

    def to_dict(self) -> dict:
        return {
            "isValid": self.is_valid,
            "errors": [e.to_dict() for e in self.errors],
            "warnings": [w.to_dict() for w in self.warnings],
            "repairSuggestions": [s.to_dict() for s in self.repair_suggestions],
        }


def _label(record: ApplicationRecord, index: int) -> str:
    return f"Application {record.id}" if record.id else f"Application at index {index}"


def _check_required(record: ApplicationRecord, index: int, errors: List[ValidationError]) -> None:
    if not is_non_empty_str(record.id):
        errors.append(ValidationError(
            MISSING_FIELD,
            f"Application at index {index} is missing required field: id",
            record_id=record.id or None,
            field="id",
        ))
    for f in REQUIRED_STR_FIELDS:
        if not is_non_empty_str(getattr(record, f)):
            errors.append(ValidationError(
                MISSING_FIELD,
                f"{_label(record, index)} is missing required field: {f}",
                record_id=record.id or None,
                field=f,
            ))


def _check_dates(record: ApplicationRecord, index: int, errors: List[ValidationError]) -> None:
    for attr in DATE_ATTRS:
        value = getattr(record, attr)
        if is_non_empty_str(value) and parse_date(value) is None:
            wire = ATTR_TO_WIRE[attr]
            errors.append(ValidationError(
                INVALID_FORMAT,
                f"{_label(record, index)} has invalid {wire} format: {value!r}",
                record_id=record.id or None,
                field=wire,
            ))


def _check_optional(record: ApplicationRecord, index: int, warnings: List[ValidationWarning]) -> None:
    for f in OPTIONAL_STR_FIELDS:
        if not is_non_empty_str(getattr(record, f)):
            warnings.append(ValidationWarning(
                MISSING_OPTIONAL_FIELD,
                f"{_label(record, index)} is missing {f} information",
                record_id=record.id or None,
                field=f,
            ))

    if is_non_empty_str(record.contact_email) and not is_valid_email(record.contact_email):
        warnings.append(ValidationWarning(
            INCONSISTENT_DATA,
            f"{_label(record, index)} has a malformed contact email",
            record_id=record.id or None,
            field="contactEmail",
        ))

    if is_non_empty_str(record.job_url) and not is_valid_url(record.job_url):
        warnings.append(ValidationWarning(
            INCONSISTENT_DATA,
            f"{_label(record, index)} job URL must be an absolute http(s) URL",
            record_id=record.id or None,
            field="jobUrl",
        ))

    applied = parse_date(record.applied_date)
    responded = parse_date(record.response_date)
    if applied and responded and responded < applied:
        warnings.append(ValidationWarning(
            INCONSISTENT_DATA,
            f"{_label(record, index)} has a response date before its applied date",
            record_id=record.id or None,
            field="responseDate",
        ))

    if record.status and record.status not in STATUSES:
        warnings.append(ValidationWarning(
            OUTDATED_FORMAT,
            f"{_label(record, index)} has unrecognized status: {record.status}",
            record_id=record.id or None,
            field="status",
        ))


def _check_duplicate_ids(records: Sequence[ApplicationRecord], errors: List[ValidationError]) -> None:
    seen = set()
    for record in records:
        if not record.id:
            continue
        if record.id in seen:
            errors.append(ValidationError(
                DUPLICATE_ID,
                f"Duplicate application ID found: {record.id}",
                record_id=record.id,
                field="id",
            ))
        seen.add(record.id)


def validate_records(records: Sequence[ApplicationRecord]) -> ValidationResult:
    """
    Scan a record set and collect every problem found.

    Rules run in a fixed order and never short-circuit: required fields,
    date formats, optional-field warnings, then duplicate ids (the first
    holder of an id is not flagged). Never raises for bad data.
    """
    result = ValidationResult()

    for index, record in enumerate(records):
        _check_required(record, index, result.errors)
        _check_dates(record, index, result.errors)
        _check_optional(record, index, result.warnings)

    _check_duplicate_ids(records, result.errors)

    if result.errors:
        result.repair_suggestions.append(RepairSuggestion(
            "auto_fix",
            "Automatically fix missing IDs, duplicate IDs, blank required fields and invalid dates",
        ))

    return result
