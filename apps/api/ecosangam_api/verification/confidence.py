"""Confidence scoring for verification records. Pure functions, no I/O."""

from typing import Any, Iterable

# Reliability of each verification method relative to hybrid
METHOD_WEIGHTS = {
    "hybrid": 1.0,
    "drone_survey": 0.85,
    "satellite_imagery": 0.85,
    "field_visit": 0.7,
    "mobile_data": 0.7,
}

METHOD_POINTS = 60.0
EVIDENCE_POINTS = 40.0
MIN_VERIFIED_EVIDENCE = 3
THIN_EVIDENCE_FACTOR = 0.75
COMPLIANCE_PENALTY = 10.0


def _is_verified(item: Any) -> bool:
    if isinstance(item, dict):
        return bool(item.get("verified"))
    return bool(getattr(item, "verified", False))


def score_confidence(method: str, evidence_items: Iterable[Any], compliance_issues: Iterable[str]) -> float:
    """Score in [0, 100] from method reliability, evidence completeness and open issues."""
    items = list(evidence_items)
    verified = sum(1 for item in items if _is_verified(item))

    score = METHOD_POINTS * METHOD_WEIGHTS.get(method, 0.0)
    if items:
        evidence = EVIDENCE_POINTS * verified / len(items)
        if verified < MIN_VERIFIED_EVIDENCE:
            evidence *= THIN_EVIDENCE_FACTOR
        score += evidence
    score -= COMPLIANCE_PENALTY * len(list(compliance_issues))

    return round(min(100.0, max(0.0, score)), 2)


def compute_confidence(record) -> float:
    """Confidence for a ``VerificationRecord`` (or anything shaped like one)."""
    return score_confidence(
        record.verification_method,
        record.evidence_items or [],
        record.compliance_issues,
    )
