"""Duplicate detection, scoring and merge for application records."""

from .merge import merge_group, merge_records
from .resolver import (
    KEEP_BOTH,
    KEEP_NEWEST,
    MERGE,
    RESOLUTIONS,
    SKIP,
    SKIP_DUPLICATES,
    BulkDuplicateResult,
    DuplicateDetectionResult,
    DuplicateGroup,
    DuplicateMatch,
    ResolutionOutcome,
    apply_resolutions,
    detect_bulk_duplicates,
    detect_duplicates,
)
from .scoring import confidence_band, score_pair

__all__ = [
    "KEEP_BOTH",
    "KEEP_NEWEST",
    "MERGE",
    "RESOLUTIONS",
    "SKIP",
    "SKIP_DUPLICATES",
    "BulkDuplicateResult",
    "DuplicateDetectionResult",
    "DuplicateGroup",
    "DuplicateMatch",
    "ResolutionOutcome",
    "apply_resolutions",
    "confidence_band",
    "detect_bulk_duplicates",
    "detect_duplicates",
    "merge_group",
    "merge_records",
    "score_pair",
]
