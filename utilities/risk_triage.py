"""
Risk triage for assembled KYC topics.

Scoring:
- Missing critical topic: +15 each
- Partial topic: +8 each
- High-risk keyword anywhere in the file: +10 each
Capped at 100.

Routing: 0-30 fast, 31-60 crosscheck, 61-80 escalate, 81+ human_gate
"""

from models import TopicSection, TriageResult, RiskBreakdown, CoverageStatus, GraphPath
from utilities.reference_data import (
    CRITICAL_TOPICS, MISSING_CRITICAL_TOPIC_POINTS, PARTIAL_TOPIC_POINTS,
    HIGH_RISK_KEYWORD_POINTS, MAX_RISK_SCORE, ROUTE_BANDS, HUMAN_GATE_ROUTE_REASON,
)
from utilities.topic_assembler import extract_high_risk_keywords


def _score_to_route(score: int) -> tuple[GraphPath, str]:
    for upper, path, reason in ROUTE_BANDS:
        if score <= upper:
            return path, reason
    return GraphPath.HUMAN_GATE, HUMAN_GATE_ROUTE_REASON


def triage_risk(topic_sections: list[TopicSection]) -> TriageResult:
    """Compute risk score, route path and reasons for assembled topics."""
    coverage_points = 0
    reasons = []

    for section in topic_sections:
        if section.coverage == CoverageStatus.MISSING and section.topic_id in CRITICAL_TOPICS:
            coverage_points += MISSING_CRITICAL_TOPIC_POINTS
            reasons.append(f"Missing critical topic: {section.topic_id.value}")
        elif section.coverage == CoverageStatus.PARTIAL:
            coverage_points += PARTIAL_TOPIC_POINTS
            reasons.append(f"Partial coverage: {section.topic_id.value}")

    all_content = " ".join(s.content for s in topic_sections)
    keywords = extract_high_risk_keywords(all_content)
    keyword_points = len(keywords) * HIGH_RISK_KEYWORD_POINTS
    if keywords:
        reasons.append(f"High-risk keywords detected: {', '.join(keywords)}")

    score = min(coverage_points + keyword_points, MAX_RISK_SCORE)
    route_path, route_reason = _score_to_route(score)
    reasons.append(route_reason)

    return TriageResult(
        risk_score=score,
        triage_reasons=reasons,
        route_path=route_path,
        risk_breakdown=RiskBreakdown(
            coverage_points=coverage_points,
            keyword_points=keyword_points,
            total_points=score,
        ),
    )
