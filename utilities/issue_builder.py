"""
Turns rule-check findings into display-ready issues.

Order: coverage gaps (topic order), conflicts (rule order), policy flags.
"""

from models import (
    ExecutionResult, Coverage, Conflict, CoverageStatus, IssueSeverity, IssueAgent,
    CoverageGapIssue, ConflictIssue, PolicyFlagIssue, TopicId,
)

GAP_AGENT = IssueAgent(id="gap_collector", name="Coverage Analyzer")
CONFLICT_AGENT = IssueAgent(id="conflict_sweep", name="Conflict Detector")
POLICY_AGENT = IssueAgent(id="policy_flags_check", name="Policy Compliance")


def _section_id(topic_id: TopicId) -> str:
    return f"topic-{topic_id.value}"


def gap_issue(gap: Coverage):
    """FAIL for missing topics, WARNING for partial ones, None when complete."""
    if gap.status == CoverageStatus.MISSING:
        return CoverageGapIssue(
            id=f"gap-{gap.topic_id.value}",
            section_id=_section_id(gap.topic_id),
            severity=IssueSeverity.FAIL,
            title=f"Missing KYC Topic: {gap.topic_id.value}",
            message=gap.reason or "Required information not found in documents",
            agent=GAP_AGENT,
        )
    if gap.status == CoverageStatus.PARTIAL:
        return CoverageGapIssue(
            id=f"gap-{gap.topic_id.value}",
            section_id=_section_id(gap.topic_id),
            severity=IssueSeverity.WARNING,
            title=f"Incomplete KYC Topic: {gap.topic_id.value}",
            message=gap.reason or "Insufficient detail provided",
            agent=GAP_AGENT,
        )
    return None


def conflict_issue(conflict: Conflict, idx: int) -> ConflictIssue:
    return ConflictIssue(
        id=f"conflict-{idx}",
        section_id=_section_id(conflict.topic_ids[0]),
        severity=IssueSeverity.FAIL,
        title="Contradicting Information Detected",
        message=conflict.description,
        evidence="\n\n".join(ref.snippet for ref in conflict.evidence_refs) or None,
        agent=CONFLICT_AGENT,
    )


def policy_flag_issue(flag: str) -> PolicyFlagIssue:
    return PolicyFlagIssue(
        id=f"flag-{flag}",
        section_id=_section_id(TopicId.RISK_PROFILE),
        severity=IssueSeverity.WARNING,
        title=f"Policy Flag: {flag}",
        message=f"This case has been flagged for: {flag.replace('_', ' ').lower()}",
        agent=POLICY_AGENT,
    )


def convert_to_issues(execution: ExecutionResult) -> list:
    """Build the issue list for one execution result."""
    issues = []
    for gap in execution.coverage_gaps:
        issue = gap_issue(gap)
        if issue is not None:
            issues.append(issue)
    for idx, conflict in enumerate(execution.conflicts):
        issues.append(conflict_issue(conflict, idx))
    for flag in execution.policy_flags:
        issues.append(policy_flag_issue(flag))
    return issues
