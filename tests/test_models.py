"""Tests for KYC graph review data models."""

import json
import pytest
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from pydantic import TypeAdapter, ValidationError

from models import (
    TopicId, CoverageStatus, GraphPath, TraceStatus, HumanDecisionValue, IssueSeverity,
    Document, HumanDecision, Features, ReviewRequest, EvidenceRef, TopicSection,
    TriageResult, Conflict, ExecutionResult, Coverage, ReflectionOutcome,
    Issue, CoverageGapIssue, ConflictIssue, PolicyFlagIssue, IssueAgent,
    ResumeToken, ResumeSnapshot, GraphReviewResponse, GraphTraceEvent, now_iso,
)


class TestEnums:
    def test_topic_order(self):
        assert [t.value for t in TopicId] == [
            "client_identity", "source_of_wealth", "business_relationship",
            "beneficial_ownership", "risk_profile", "sanctions_pep",
            "transaction_patterns", "other",
        ]

    def test_decision_values(self):
        assert {d.value for d in HumanDecisionValue} == {"approve_edd", "request_docs", "reject"}

    def test_paths(self):
        assert GraphPath.HUMAN_GATE.value == "human_gate"
        assert GraphPath.FAST.value == "fast"


class TestInputModels:
    def test_document_is_frozen(self):
        doc = Document(name="a.txt", content="text")
        with pytest.raises(ValidationError):
            doc.content = "changed"

    def test_human_decision_defaults(self):
        decision = HumanDecision(decision="approve_edd")
        assert decision.gate == "human_gate"
        assert decision.decision == HumanDecisionValue.APPROVE_EDD
        assert decision.signer is None

    def test_invalid_decision_rejected(self):
        with pytest.raises(ValidationError):
            HumanDecision(decision="approve_everything")

    def test_features_default_off(self):
        features = Features()
        assert not features.reflection
        assert not features.negotiation
        assert not features.memory
        assert not features.remote_skills

    def test_review_request_accepts_camel_case(self):
        request = ReviewRequest.model_validate({
            "documents": [{"name": "a.txt", "content": "text"}],
            "humanDecision": {"gate": "human_gate", "decision": "reject", "signer": "tester"},
            "dirtyTopics": ["client_identity"],
        })
        assert request.human_decision.decision == HumanDecisionValue.REJECT
        assert request.dirty_topics == [TopicId.CLIENT_IDENTITY]


class TestWireFormat:
    def test_topic_section_camel_case(self):
        section = TopicSection(
            topic_id=TopicId.CLIENT_IDENTITY,
            content="Passport verified",
            evidence_refs=[EvidenceRef(doc_name="a.txt", location_hint="Para 1", snippet="Passport verified")],
            coverage=CoverageStatus.PARTIAL,
        )
        wire = section.to_wire()
        assert wire["topicId"] == "client_identity"
        assert wire["coverage"] == "partial"
        assert wire["evidenceRefs"][0] == {"docName": "a.txt", "pageOrSection": "Para 1", "snippet": "Passport verified"}

    def test_evidence_ref_without_hint_omits_field(self):
        ref = EvidenceRef(doc_name="a.txt", snippet="x")
        assert "pageOrSection" not in ref.to_wire()

    def test_response_omits_unset_optionals(self):
        wire = GraphReviewResponse().to_wire()
        assert wire["issues"] == []
        assert "humanGate" not in wire
        assert "resumeToken" not in wire
        assert "degraded" not in wire["graphReviewTrace"]
        assert wire["graphReviewTrace"]["summary"]["riskScore"] == 0

    def test_trace_event_wire(self):
        ts = now_iso()
        event = GraphTraceEvent(node="finalize", status=TraceStatus.EXECUTED, started_at=ts, duration_ms=2)
        wire = event.to_wire()
        assert wire == {"node": "finalize", "status": "executed", "startedAt": ts, "durationMs": 2}


class TestValidation:
    def test_risk_score_bounds(self):
        with pytest.raises(ValidationError):
            TriageResult(risk_score=101)
        with pytest.raises(ValidationError):
            TriageResult(risk_score=-1)

    def test_conflict_needs_topic(self):
        with pytest.raises(ValidationError):
            Conflict(topic_ids=[], description="x")

    def test_reflection_confidence_bounds(self):
        with pytest.raises(ValidationError):
            ReflectionOutcome(confidence=1.5)

    def test_reflection_next_action(self):
        assert ReflectionOutcome(new_plan=["skip", "rerun_batch_review"]).next_action == "skip"
        assert ReflectionOutcome().next_action is None

    def test_snapshot_replan_count_capped(self):
        with pytest.raises(ValidationError):
            ResumeSnapshot(topic_sections=[], triage_result=TriageResult(), replan_count=2)


class TestIssues:
    def test_discriminated_union(self):
        adapter = TypeAdapter(list[Issue])
        agent = {"id": "a", "name": "A"}
        issues = adapter.validate_python([
            {"id": "gap-x", "sectionId": "s", "severity": "FAIL", "title": "t", "message": "m", "agent": agent, "source": "coverage_gap"},
            {"id": "conflict-0", "sectionId": "s", "severity": "FAIL", "title": "t", "message": "m", "agent": agent, "source": "conflict"},
            {"id": "flag-PEP", "sectionId": "s", "severity": "WARNING", "title": "t", "message": "m", "agent": agent, "source": "policy_flag"},
        ])
        assert isinstance(issues[0], CoverageGapIssue)
        assert isinstance(issues[1], ConflictIssue)
        assert isinstance(issues[2], PolicyFlagIssue)

    def test_unknown_source_rejected(self):
        adapter = TypeAdapter(Issue)
        with pytest.raises(ValidationError):
            adapter.validate_python({
                "id": "x", "sectionId": "s", "severity": "FAIL", "title": "t", "message": "m",
                "agent": {"id": "a", "name": "A"}, "source": "chat",
            })

    def test_issue_wire_shape(self):
        issue = PolicyFlagIssue(
            id="flag-PEP", section_id="topic-risk_profile", severity=IssueSeverity.WARNING,
            title="Policy Flag: PEP", message="m", agent=IssueAgent(id="policy_flags_check", name="Policy Compliance"),
        )
        wire = issue.to_wire()
        assert wire["source"] == "policy_flag"
        assert wire["sectionId"] == "topic-risk_profile"
        assert "evidence" not in wire


class TestExecutionResult:
    def test_issues_count_ignores_complete_topics(self):
        result = ExecutionResult(
            coverage_gaps=[
                Coverage(topic_id=TopicId.CLIENT_IDENTITY, status=CoverageStatus.COMPLETE),
                Coverage(topic_id=TopicId.SOURCE_OF_WEALTH, status=CoverageStatus.MISSING),
                Coverage(topic_id=TopicId.RISK_PROFILE, status=CoverageStatus.PARTIAL),
            ],
            conflicts=[Conflict(topic_ids=[TopicId.SANCTIONS_PEP], description="x")],
            policy_flags=["PEP"],
        )
        assert result.issues_count == 4


class TestResumeToken:
    def test_encode_is_json_with_camel_case(self):
        token = ResumeToken(run_id="kyc_run_1", created_at=1700000000000)
        data = json.loads(token.encode())
        assert data == {"runId": "kyc_run_1", "gateId": "human_gate", "createdAt": 1700000000000}

    def test_decode(self):
        token = ResumeToken.model_validate_json('{"runId": "r1", "gateId": "human_gate", "createdAt": 5}')
        assert token.run_id == "r1"
        assert token.created_at == 5
