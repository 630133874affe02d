"""
Duplicate Resolution Orchestrator.

Responsibilities:
- Score one candidate against existing records (pairwise mode).
- Cluster a whole record list into duplicate groups (bulk mode).
- Recommend a resolution per group and apply user decisions.

Non-Responsibilities:
- No persistence.
- No feature computation.

Invariant:
Given the same inputs this module returns the same groups in the same
order. Groups are disjoint, so a record is deleted by at most one group.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence

from ..logger import get_logger
from ..models import ApplicationRecord
from ..normalize import canonical_url, is_non_empty_str, parse_date
from .merge import merge_group
from .scoring import (
    HIGH,
    HIGH_CONFIDENCE_THRESHOLD,
    LOW,
    MEDIUM,
    REPORT_THRESHOLD,
    confidence_band,
    score_pair,
)

MERGE = "merge"
SKIP = "skip"
SKIP_DUPLICATES = "skip_duplicates"
KEEP_BOTH = "keep_both"
KEEP_NEWEST = "keep_newest"

RESOLUTIONS = (MERGE, SKIP, SKIP_DUPLICATES, KEEP_BOTH, KEEP_NEWEST)
MAX_PAIRWISE_MATCHES = 5

logger = get_logger()


@dataclass
class DuplicateMatch:
    index: int
    record: ApplicationRecord
    similarity: float
    match_reasons: List[str]

    @property
    def confidence(self) -> Optional[str]:
        return confidence_band(self.similarity)


@dataclass
class DuplicateDetectionResult:
    is_duplicate: bool
    matches: List[DuplicateMatch]
    confidence: str


@dataclass
class DuplicateGroup:
    id: str
    indices: List[int]
    confidence: float
    match_reasons: List[str]
    recommended_resolution: str
    merge_preview: Optional[ApplicationRecord] = None

    @property
    def confidence_level(self) -> Optional[str]:
        return confidence_band(self.confidence)


@dataclass
class BulkDuplicateResult:
    groups: List[DuplicateGroup]
    total_duplicates: int
    high_confidence_count: int
    medium_confidence_count: int
    recommendations: List[str]


@dataclass
class GroupOutcome:
    group_id: str
    action: str
    kept_id: Optional[str]
    deleted_ids: List[str] = field(default_factory=list)


@dataclass
class ResolutionSummary:
    merged: int = 0
    skipped: int = 0
    kept: int = 0
    deleted: int = 0

    @property
    def groups_processed(self) -> int:
        return self.merged + self.skipped + self.kept


@dataclass
class ResolutionOutcome:
    records: List[ApplicationRecord]
    deleted_ids: List[str]
    merged_records: List[ApplicationRecord]
    outcomes: List[GroupOutcome]
    summary: ResolutionSummary


def detect_duplicates(
    candidate: ApplicationRecord,
    existing: Sequence[ApplicationRecord],
) -> DuplicateDetectionResult:
    """Score ``candidate`` against each existing record and report medium/high matches."""
    matches: List[DuplicateMatch] = []
    for index, record in enumerate(existing):
        score = score_pair(candidate, record)
        if score.similarity >= REPORT_THRESHOLD:
            matches.append(DuplicateMatch(index, record, score.similarity, score.reasons))

    matches.sort(key=lambda m: (-m.similarity, m.index))
    matches = matches[:MAX_PAIRWISE_MATCHES]
    confidence = matches[0].confidence if matches else LOW
    return DuplicateDetectionResult(is_duplicate=bool(matches), matches=matches, confidence=confidence)


class _UnionFind:
    def __init__(self, size: int):
        self.parent = list(range(size))

    def find(self, x: int) -> int:
        while self.parent[x] != x:
            self.parent[x] = self.parent[self.parent[x]]
            x = self.parent[x]
        return x

    def union(self, a: int, b: int) -> None:
        root_a, root_b = self.find(a), self.find(b)
        if root_a == root_b:
            return
        # smaller index becomes the root so group order is stable
        if root_a < root_b:
            self.parent[root_b] = root_a
        else:
            self.parent[root_a] = root_b


def _fields_compatible(records: Sequence[ApplicationRecord]) -> bool:
    """False when members carry conflicting job URLs or contact emails."""
    urls = {canonical_url(r.job_url) for r in records if is_non_empty_str(r.job_url)}
    emails = {r.contact_email.strip().lower() for r in records if is_non_empty_str(r.contact_email)}
    return len(urls) <= 1 and len(emails) <= 1


def recommend_resolution(records: Sequence[ApplicationRecord], confidence: float) -> str:
    if confidence >= HIGH_CONFIDENCE_THRESHOLD and _fields_compatible(records):
        return MERGE
    return SKIP_DUPLICATES


def detect_bulk_duplicates(records: Sequence[ApplicationRecord]) -> BulkDuplicateResult:
    """
    Cluster ``records`` into duplicate groups.

    Every pair is scored once; pairs at or above the reporting threshold are
    joined with union-find, so A~B and B~C put A, B and C in one group. A
    group's confidence is its strongest linking pair.
    """
    uf = _UnionFind(len(records))
    edges: List[tuple] = []
    for i in range(len(records)):
        for j in range(i + 1, len(records)):
            score = score_pair(records[i], records[j])
            if score.similarity >= REPORT_THRESHOLD:
                uf.union(i, j)
                edges.append((i, j, score))

    members: Dict[int, List[int]] = {}
    for index in range(len(records)):
        members.setdefault(uf.find(index), []).append(index)

    best_edge: Dict[int, tuple] = {}
    for i, j, score in edges:
        root = uf.find(i)
        current = best_edge.get(root)
        if current is None or score.similarity > current[2].similarity:
            best_edge[root] = (i, j, score)

    groups: List[DuplicateGroup] = []
    for root in sorted(members):
        indices = members[root]
        if len(indices) < 2:
            continue
        _, _, score = best_edge[root]
        group_records = [records[i] for i in indices]
        groups.append(DuplicateGroup(
            id=f"group-{indices[0]}",
            indices=indices,
            confidence=score.similarity,
            match_reasons=list(score.reasons),
            recommended_resolution=recommend_resolution(group_records, score.similarity),
            merge_preview=merge_group(group_records),
        ))

    high = sum(1 for g in groups if g.confidence_level == HIGH)
    medium = sum(1 for g in groups if g.confidence_level == MEDIUM)
    total = sum(len(g.indices) - 1 for g in groups)

    recommendations: List[str] = []
    if high:
        recommendations.append(f"{high} high-confidence duplicate group(s) found - recommend merging")
    if medium:
        recommendations.append(f"{medium} medium-confidence group(s) found - review before merging")
    if not groups:
        recommendations.append("No duplicates detected")

    logger.info("Bulk duplicate scan complete", records=len(records), groups=len(groups), duplicates=total)
    return BulkDuplicateResult(
        groups=groups,
        total_duplicates=total,
        high_confidence_count=high,
        medium_confidence_count=medium,
        recommendations=recommendations,
    )


def _newest_index(records: Sequence[ApplicationRecord], indices: Sequence[int]) -> int:
    """Index with the latest applied date; ties and unparseable dates favour group order."""
    best = indices[0]
    best_date = parse_date(records[best].applied_date)
    for index in indices[1:]:
        candidate = parse_date(records[index].applied_date)
        if candidate is not None and (best_date is None or candidate > best_date):
            best, best_date = index, candidate
    return best


def apply_resolutions(
    records: Sequence[ApplicationRecord],
    groups: Sequence[DuplicateGroup],
    decisions: Optional[Mapping[str, str]] = None,
) -> ResolutionOutcome:
    """
    Apply a resolution to each duplicate group.

    ``decisions`` maps group id to action. When omitted, every group's
    recommended resolution is used; when given, groups without a decision
    are left alone and not counted.

    - merge: the first record in the group absorbs the others, which are deleted
    - skip / skip_duplicates: data untouched, counted as skipped
    - keep_both: data untouched, counted as kept
    - keep_newest: the latest applied date survives, the rest are deleted
    """
    updated = [record.copy() for record in records]
    delete_indices = set()
    deleted_ids: List[str] = []
    merged_records: List[ApplicationRecord] = []
    outcomes: List[GroupOutcome] = []
    summary = ResolutionSummary()

    def _delete(index: int, outcome: GroupOutcome) -> None:
        if index in delete_indices:
            return
        delete_indices.add(index)
        record_id = records[index].id
        if record_id not in deleted_ids:
            deleted_ids.append(record_id)
            outcome.deleted_ids.append(record_id)

    for group in groups:
        if decisions is None:
            action = group.recommended_resolution
        elif group.id in decisions:
            action = decisions[group.id]
        else:
            continue

        if action not in RESOLUTIONS:
            raise ValueError(f"Unknown resolution for {group.id}: {action}")

        primary = group.indices[0]
        if action == MERGE:
            merged = merge_group([records[i] for i in group.indices])
            updated[primary] = merged
            merged_records.append(merged)
            outcome = GroupOutcome(group.id, action, kept_id=merged.id)
            for index in group.indices[1:]:
                _delete(index, outcome)
            summary.merged += 1
        elif action in (SKIP, SKIP_DUPLICATES):
            outcome = GroupOutcome(group.id, action, kept_id=None)
            summary.skipped += 1
        elif action == KEEP_BOTH:
            outcome = GroupOutcome(group.id, action, kept_id=None)
            summary.kept += 1
        else:
            newest = _newest_index(records, group.indices)
            outcome = GroupOutcome(group.id, action, kept_id=records[newest].id)
            for index in group.indices:
                if index != newest:
                    _delete(index, outcome)
            summary.kept += 1
        outcomes.append(outcome)

    summary.deleted = len(delete_indices)
    remaining = [record for index, record in enumerate(updated) if index not in delete_indices]
    logger.info(
        "Applied duplicate resolutions",
        merged=summary.merged,
        skipped=summary.skipped,
        kept=summary.kept,
        deleted=summary.deleted,
    )
    return ResolutionOutcome(
        records=remaining,
        deleted_ids=deleted_ids,
        merged_records=merged_records,
        outcomes=outcomes,
        summary=summary,
    )
