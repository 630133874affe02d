"""
Application record model and the wire-name mapping shared by every codec.

Records travel as camelCase JSON objects and CSV columns; in Python they are
fixed dataclasses. ``FIELD_MAP`` is the single lookup table between the two.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional

STATUSES = (
    "Pending",
    "Applied",
    "Interviewing",
    "Offered",
    "Rejected",
    "Accepted",
    "Withdrawn",
)
JOB_TYPES = ("Full-time", "Part-time", "Internship", "Contract", "Freelance")
PRIORITIES = ("Low", "Medium", "High")

LIST_SEPARATOR = "; "


@dataclass
class ApplicationRecord:
    """A single job application as tracked by the user."""

    id: str = ""
    company: str = ""
    position: str = ""
    location: Optional[str] = None
    job_type: Optional[str] = None
    salary: Optional[str] = None
    status: str = "Applied"
    applied_date: Optional[str] = None
    response_date: Optional[str] = None
    interview_date: Optional[str] = None
    follow_up_date: Optional[str] = None
    notes: str = ""
    job_description: str = ""
    contact_person: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    job_url: Optional[str] = None
    company_website: Optional[str] = None
    priority: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    requirements: List[str] = field(default_factory=list)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Encode to the camelCase wire shape, unknown keys included."""
        data: Dict[str, Any] = dict(self.extra)
        for wire, attr in FIELD_MAP.items():
            value = getattr(self, attr)
            data[wire] = list(value) if attr in LIST_ATTRS else value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ApplicationRecord":
        """Decode from the wire shape. Keys outside FIELD_MAP land in ``extra``."""
        kwargs: Dict[str, Any] = {}
        extra: Dict[str, Any] = {}
        for key, value in data.items():
            attr = FIELD_MAP.get(key)
            if attr is None:
                extra[key] = value
            elif attr in LIST_ATTRS:
                kwargs[attr] = _as_list(value)
            elif attr in REQUIRED_ATTRS:
                kwargs[attr] = "" if value is None else str(value)
            else:
                kwargs[attr] = None if value is None else str(value)
        return cls(extra=extra, **kwargs)

    def copy(self) -> "ApplicationRecord":
        return replace(
            self,
            tags=list(self.tags),
            requirements=list(self.requirements),
            extra=dict(self.extra),
        )


def _as_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(";") if part.strip()]
    return [str(v) for v in value]


# wire name -> dataclass attribute, in CSV column order
FIELD_MAP: Dict[str, str] = {
    "id": "id",
    "company": "company",
    "position": "position",
    "location": "location",
    "type": "job_type",
    "salary": "salary",
    "status": "status",
    "appliedDate": "applied_date",
    "responseDate": "response_date",
    "interviewDate": "interview_date",
    "followUpDate": "follow_up_date",
    "notes": "notes",
    "jobDescription": "job_description",
    "contactPerson": "contact_person",
    "contactEmail": "contact_email",
    "contactPhone": "contact_phone",
    "jobUrl": "job_url",
    "companyWebsite": "company_website",
    "priority": "priority",
    "tags": "tags",
    "requirements": "requirements",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
}
ATTR_TO_WIRE: Dict[str, str] = {attr: wire for wire, attr in FIELD_MAP.items()}

LIST_ATTRS = frozenset({"tags", "requirements"})
REQUIRED_ATTRS = frozenset({"id", "company", "position", "status", "notes", "job_description"})
DATE_ATTRS = ("applied_date", "response_date", "interview_date", "follow_up_date")


def records_from_dicts(items: List[Dict[str, Any]]) -> List[ApplicationRecord]:
    return [ApplicationRecord.from_dict(item) for item in items]


def records_to_dicts(records: List[ApplicationRecord]) -> List[Dict[str, Any]]:
    return [record.to_dict() for record in records]
