"""
Scoring Logic for duplicate detection.

Responsibilities:
- Compute a deterministic similarity between two application records.
- Emit a score breakdown and human-readable match reasons.

Non-Responsibilities:
- No grouping.
- No resolution decisions.

Invariant:
Given identical inputs, this module must always return
the same score and explanation.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..models import ApplicationRecord
from . import features

WEIGHTS: Dict[str, float] = {
    "company": 0.35,
    "position": 0.30,
    "job_url": 0.15,
    "location": 0.10,
    "contact_email": 0.10,
    "applied_date": 0.10,
}

HIGH_CONFIDENCE_THRESHOLD = 0.9
REPORT_THRESHOLD = 0.7

HIGH = "high"
MEDIUM = "medium"
LOW = "low"


@dataclass
class MatchScore:
    similarity: float
    reasons: List[str] = field(default_factory=list)
    breakdown: Dict[str, float] = field(default_factory=dict)

    @property
    def confidence(self) -> Optional[str]:
        return confidence_band(self.similarity)


def confidence_band(similarity: float) -> Optional[str]:
    """``high`` at 0.9 and above, ``medium`` from 0.7, None below."""
    if similarity >= HIGH_CONFIDENCE_THRESHOLD:
        return HIGH
    if similarity >= REPORT_THRESHOLD:
        return MEDIUM
    return None


def _company_reason(score: float) -> Optional[str]:
    if score == 1.0:
        return "Identical company name"
    if score > 0.9:
        return "Very similar company names"
    if score > 0.7:
        return "Similar company names"
    return None


def _position_reason(score: float) -> Optional[str]:
    if score == 1.0:
        return "Identical position title"
    if score > 0.8:
        return "Very similar position titles"
    if score > 0.6:
        return "Similar position titles"
    return None


def _location_reason(score: float) -> Optional[str]:
    if score == 1.0:
        return "Same location"
    if score > 0.8:
        return "Similar locations"
    return None


def score_pair(a: ApplicationRecord, b: ApplicationRecord) -> MatchScore:
    """
    Weighted similarity of two records in [0, 1].

    Only features present on both sides contribute to the denominator. An
    identical job URL is treated as a certain match and forces 1.0.
    """
    breakdown: Dict[str, float] = {}
    reasons: List[str] = []

    company = features.company_similarity(a, b)
    if company is not None:
        breakdown["company"] = company
        reason = _company_reason(company)
        if reason:
            reasons.append(reason)

    position = features.position_similarity(a, b)
    if position is not None:
        breakdown["position"] = position
        reason = _position_reason(position)
        if reason:
            reasons.append(reason)

    location = features.location_similarity(a, b)
    if location is not None:
        breakdown["location"] = location
        reason = _location_reason(location)
        if reason:
            reasons.append(reason)

    url_match = features.job_url_match(a, b)
    if url_match is not None:
        breakdown["job_url"] = 1.0 if url_match else 0.0
        if url_match:
            reasons.append("Same job URL")

    email_match = features.contact_email_match(a, b)
    if email_match is not None:
        breakdown["contact_email"] = 1.0 if email_match else 0.0
        if email_match:
            reasons.append("Same contact email")

    days_apart = features.applied_days_apart(a, b)
    proximity = features.applied_date_proximity(days_apart)
    if proximity is not None:
        breakdown["applied_date"] = proximity
        if days_apart == 0:
            reasons.append("Applied on the same date")
        elif proximity > 0:
            reasons.append(f"Applied dates close ({days_apart} day apart)")

    if a.status and a.status == b.status:
        reasons.append(f"Both have status: {a.status}")

    if url_match:
        return MatchScore(similarity=1.0, reasons=reasons, breakdown=breakdown)

    total_weight = 0.0
    matched_weight = 0.0
    for name, value in breakdown.items():
        total_weight += WEIGHTS[name]
        matched_weight += WEIGHTS[name] * value

    similarity = matched_weight / total_weight if total_weight > 0 else 0.0
    return MatchScore(similarity=min(1.0, similarity), reasons=reasons, breakdown=breakdown)
