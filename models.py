"""
Pydantic models for the KYC Graph Review service.

Defines the data structures that flow through the review graph:
1. Topic assembly (documents -> topic sections)
2. Risk triage
3. Parallel rule checks
4. Reflection / replan
5. Human gate + resume
6. Finalized response (issues + trace)

Wire-facing models serialize with camelCase aliases; use to_wire() to get
the JSON-ready dict the UI expects.
"""

from enum import Enum
from typing import Annotated, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from datetime import datetime, timezone


class WireModel(BaseModel):
    """Base for models exchanged with the UI (camelCase on the wire)."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# =============================================================================
# Enums
# =============================================================================

class TopicId(str, Enum):
    """KYC topics, in declaration order. Order decides keyword ties."""
    CLIENT_IDENTITY = "client_identity"
    SOURCE_OF_WEALTH = "source_of_wealth"
    BUSINESS_RELATIONSHIP = "business_relationship"
    BENEFICIAL_OWNERSHIP = "beneficial_ownership"
    RISK_PROFILE = "risk_profile"
    SANCTIONS_PEP = "sanctions_pep"
    TRANSACTION_PATTERNS = "transaction_patterns"
    OTHER = "other"


class CoverageStatus(str, Enum):
    COMPLETE = "complete"
    PARTIAL = "partial"
    MISSING = "missing"


class GraphPath(str, Enum):
    """Execution strategy chosen by risk triage."""
    FAST = "fast"
    CROSSCHECK = "crosscheck"
    ESCALATE = "escalate"
    HUMAN_GATE = "human_gate"


class ConflictSeverity(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class TraceStatus(str, Enum):
    EXECUTED = "executed"
    SKIPPED = "skipped"
    WAITING = "waiting"
    FAILED = "failed"


class IssueSeverity(str, Enum):
    FAIL = "FAIL"
    WARNING = "WARNING"


class HumanDecisionValue(str, Enum):
    APPROVE_EDD = "approve_edd"
    REQUEST_DOCS = "request_docs"
    REJECT = "reject"


class RoutingDecision(str, Enum):
    """Where the graph goes after the reflection node."""
    RERUN_CHECKS = "rerun_checks"
    HUMAN_GATE = "human_gate"
    CONTINUE = "continue"


# Action tokens a reflection provider may put in new_plan
ACTION_RERUN_BATCH_REVIEW = "rerun_batch_review"
ACTION_ASK_HUMAN_FOR_SCOPE = "ask_human_for_scope"
ACTION_SECTION_REVIEW = "section_review"
ACTION_TIGHTEN_POLICY = "tighten_policy"
ACTION_SKIP = "skip"


# =============================================================================
# Input Models
# =============================================================================

class Document(WireModel):
    """Uploaded document text. Immutable once received."""
    model_config = ConfigDict(frozen=True)

    name: str
    content: str


class HumanDecision(WireModel):
    """Decision submitted by a reviewer at the human gate."""
    gate: str = "human_gate"
    decision: HumanDecisionValue
    signer: Optional[str] = None
    notes: Optional[str] = None


class Features(BaseModel):
    """Per-request feature flags. Keys stay snake_case on the wire."""
    reflection: bool = False
    negotiation: bool = False
    memory: bool = False
    remote_skills: bool = False


class ReviewRequest(WireModel):
    """Body of a review call."""
    documents: list[Document] = Field(default_factory=list)
    human_decision: Optional[HumanDecision] = None
    dirty_topics: list[TopicId] = Field(default_factory=list)


# =============================================================================
# Topic Assembly
# =============================================================================

class EvidenceRef(WireModel):
    """Pointer back into a source document."""
    doc_name: str
    location_hint: Optional[str] = Field(default=None, alias="pageOrSection")
    snippet: str


class TopicSection(WireModel):
    """Content assembled for one KYC topic."""
    topic_id: TopicId
    content: str = ""
    evidence_refs: list[EvidenceRef] = Field(default_factory=list)
    coverage: CoverageStatus = CoverageStatus.MISSING


# =============================================================================
# Risk Triage
# =============================================================================

class RiskBreakdown(WireModel):
    coverage_points: int = 0
    keyword_points: int = 0
    total_points: int = 0


class TriageResult(WireModel):
    """Risk score and route chosen for a run."""
    risk_score: int = Field(default=0, ge=0, le=100)
    triage_reasons: list[str] = Field(default_factory=list)
    route_path: GraphPath = GraphPath.FAST
    risk_breakdown: RiskBreakdown = Field(default_factory=RiskBreakdown)


# =============================================================================
# Rule Checks
# =============================================================================

class Coverage(WireModel):
    """Coverage entry for one topic."""
    topic_id: TopicId
    status: CoverageStatus
    reason: Optional[str] = None


class Conflict(WireModel):
    """Contradiction between statements in one or more topics."""
    topic_ids: list[TopicId] = Field(min_length=1)
    description: str
    severity: ConflictSeverity = ConflictSeverity.MEDIUM
    evidence_refs: list[EvidenceRef] = Field(default_factory=list)


class GraphTraceEvent(WireModel):
    """One append-only entry in the run trace."""
    node: str
    status: TraceStatus
    decision: Optional[str] = None
    reason: Optional[str] = None
    started_at: Optional[str] = None
    ended_at: Optional[str] = None
    duration_ms: Optional[int] = None
    inputs_summary: Optional[str] = None
    outputs_summary: Optional[str] = None


class ExecutionResult(WireModel):
    """Findings of one pass of the parallel rule checks."""
    conflicts: list[Conflict] = Field(default_factory=list)
    coverage_gaps: list[Coverage] = Field(default_factory=list)
    policy_flags: list[str] = Field(default_factory=list)
    events: list[GraphTraceEvent] = Field(default_factory=list)

    @property
    def issues_count(self) -> int:
        """Number of findings that would become issues."""
        gaps = sum(1 for g in self.coverage_gaps if g.status != CoverageStatus.COMPLETE)
        return gaps + len(self.conflicts) + len(self.policy_flags)


# =============================================================================
# Reflection
# =============================================================================

class ReflectionOutcome(BaseModel):
    """Structured recommendation parsed from a reflection provider."""
    should_replan: bool = False
    reason: str = ""
    new_plan: list[str] = Field(default_factory=list)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)

    @property
    def next_action(self) -> Optional[str]:
        return self.new_plan[0] if self.new_plan else None


class ReflectionState(BaseModel):
    """Run-scoped reflection bookkeeping. replan_count never exceeds 1."""
    replan_count: int = Field(default=0, ge=0)
    next_action: Optional[str] = None
    outcome: Optional[ReflectionOutcome] = None
    provider_name: Optional[str] = None


# =============================================================================
# Issues
# =============================================================================

class IssueAgent(WireModel):
    id: str
    name: str


class _IssueBase(WireModel):
    id: str
    section_id: str
    severity: IssueSeverity
    title: str
    message: str
    evidence: Optional[str] = None
    agent: IssueAgent


class CoverageGapIssue(_IssueBase):
    source: Literal["coverage_gap"] = "coverage_gap"


class ConflictIssue(_IssueBase):
    source: Literal["conflict"] = "conflict"


class PolicyFlagIssue(_IssueBase):
    source: Literal["policy_flag"] = "policy_flag"


Issue = Annotated[
    Union[CoverageGapIssue, ConflictIssue, PolicyFlagIssue],
    Field(discriminator="source"),
]


# =============================================================================
# Human Gate + Resume
# =============================================================================

class HumanGate(WireModel):
    required: bool = True
    prompt: str
    options: list[str] = Field(default_factory=lambda: [d.value for d in HumanDecisionValue])
    context: Optional[str] = None


class ResumeToken(WireModel):
    """Self-describing token handed to the caller at the human gate."""
    run_id: str
    gate_id: str = "human_gate"
    created_at: int = Field(description="Epoch milliseconds")

    def encode(self) -> str:
        """Render as compact JSON text."""
        return self.model_dump_json(by_alias=True)


class ResumeSnapshot(BaseModel):
    """State parked in the resume store while a run waits at the gate."""
    topic_sections: list[TopicSection]
    triage_result: TriageResult
    previous_events: list[GraphTraceEvent] = Field(default_factory=list)
    replan_count: int = Field(default=0, ge=0, le=1)
    saved_at: datetime = Field(default_factory=datetime.now)


# =============================================================================
# Run State
# =============================================================================

class RunState(BaseModel):
    """State handed from stage to stage within one run."""
    documents: list[Document] = Field(default_factory=list)
    features: Features = Field(default_factory=Features)
    human_decision: Optional[HumanDecision] = None
    dirty_topics: list[TopicId] = Field(default_factory=list)
    topic_sections: list[TopicSection] = Field(default_factory=list)
    triage: Optional[TriageResult] = None
    execution: Optional[ExecutionResult] = None
    reflection: ReflectionState = Field(default_factory=ReflectionState)
    issues: list[Issue] = Field(default_factory=list)
    events: list[GraphTraceEvent] = Field(default_factory=list)


# =============================================================================
# Response
# =============================================================================

class TraceSummary(WireModel):
    path: GraphPath = GraphPath.FAST
    risk_score: int = 0
    risk_breakdown: Optional[RiskBreakdown] = None
    coverage_missing_count: int = 0
    conflict_count: int = 0


class GraphReviewTrace(WireModel):
    events: list[GraphTraceEvent] = Field(default_factory=list)
    summary: TraceSummary = Field(default_factory=TraceSummary)
    degraded: Optional[bool] = None
    error: Optional[str] = None


class GraphReviewResponse(WireModel):
    """Complete response of one review call."""
    issues: list[Issue] = Field(default_factory=list)
    topic_sections: Optional[list[TopicSection]] = None
    conflicts: Optional[list[Conflict]] = None
    coverage_gaps: Optional[list[Coverage]] = None
    graph_review_trace: GraphReviewTrace = Field(default_factory=GraphReviewTrace)
    human_gate: Optional[HumanGate] = None
    resume_token: Optional[str] = None


def now_iso() -> str:
    """UTC timestamp for trace events."""
    return datetime.now(timezone.utc).isoformat()
