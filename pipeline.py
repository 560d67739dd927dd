"""
KYC Graph Review Orchestrator

Runs the review graph for one call:
1. Topic assembly (deterministic)
2. Risk triage (deterministic)
3. Parallel rule checks
4. Reflection / replan (at most one rerun of the checks)
5. Human gate (park + resume token) or finalize (issues + trace)

A call carrying both a human decision and a resume token takes the resume
path instead. Any exception is converted into a degraded response here;
nothing below this module recovers from failures.
"""

import time
import uuid
from typing import Callable, Optional

from logger import get_logger, bind_run_id
from config import Config, get_config

logger = get_logger(__name__)

from models import (
    ReviewRequest, Features, RunState, TopicSection, TriageResult, ExecutionResult,
    GraphReviewResponse, GraphReviewTrace, TraceSummary, GraphTraceEvent,
    TraceStatus, GraphPath, RoutingDecision, CoverageStatus, now_iso,
)
from agents.reflection import ReflectionProvider, create_reflection_provider
from resume_store import ResumeStore, create_resume_store
from utilities.topic_assembler import assemble_topics
from utilities.risk_triage import triage_risk
from utilities.issue_builder import convert_to_issues
from pipeline_checks import CheckExecutionMixin
from pipeline_reflection import ReflectionMixin
from pipeline_resume import ResumeMixin


def new_run_id() -> str:
    return f"kyc_run_{uuid.uuid4().hex}"


class ReviewPipeline(CheckExecutionMixin, ReflectionMixin, ResumeMixin):
    """Orchestrates one KYC graph review call."""

    def __init__(
        self,
        reflection_provider: Optional[ReflectionProvider] = None,
        resume_store: Optional[ResumeStore] = None,
        assembler: Callable[..., list[TopicSection]] = assemble_topics,
        triage: Callable[[list[TopicSection]], TriageResult] = triage_risk,
        config: Optional[Config] = None,
    ):
        self.config = config or get_config()
        self.reflection_provider = reflection_provider or create_reflection_provider(self.config)
        self.resume_store = resume_store if resume_store is not None else create_resume_store(self.config)
        self.assembler = assembler
        self.triage = triage

    # =========================================================================
    # Main Entry
    # =========================================================================

    async def run(
        self,
        request: ReviewRequest,
        run_id: Optional[str] = None,
        resume_token: Optional[str] = None,
        features: Optional[Features] = None,
    ) -> GraphReviewResponse:
        """Run or resume a review. Never raises; failures become degraded responses."""
        features = features or Features()
        state = RunState(
            documents=request.documents,
            features=features,
            human_decision=request.human_decision,
            dirty_topics=request.dirty_topics,
        )
        run_id = run_id or new_run_id()
        progress = {"state": state}

        with bind_run_id(run_id):
            inert = [name for name in ("negotiation", "memory", "remote_skills") if getattr(features, name)]
            if inert:
                logger.info(f"Feature flags accepted without effect: {', '.join(inert)}")

            try:
                if resume_token is not None and state.human_decision is not None:
                    return await self._resume(progress, resume_token)
                if resume_token is not None:
                    logger.info("Resume token supplied without a human decision; starting a new review")
                return await self._first_run(progress, run_id)
            except Exception as e:
                logger.exception(f"Graph review failed: {e}")
                return self._degraded_response(progress["state"], e)

    async def _first_run(self, progress: dict, run_id: str) -> GraphReviewResponse:
        state = progress["state"]

        # Stage 1: Topic assembly
        t0 = time.perf_counter()
        started_at = now_iso()
        topic_sections = self.assembler(state.documents)
        covered = sum(1 for s in topic_sections if s.coverage != CoverageStatus.MISSING)
        state = self._advance(progress, {"topic_sections": topic_sections}, GraphTraceEvent(
            node="topic_assembler",
            status=TraceStatus.EXECUTED,
            decision=f"Assembled {covered} of {len(topic_sections)} topics with content",
            started_at=started_at,
            ended_at=now_iso(),
            duration_ms=int((time.perf_counter() - t0) * 1000),
            inputs_summary=f"{len(state.documents)} documents",
        ))
        logger.info(f"Assembled topics from {len(state.documents)} documents ({covered} with content)")

        # Stage 2: Risk triage
        t0 = time.perf_counter()
        started_at = now_iso()
        triage = self.triage(topic_sections)
        state = self._advance(progress, {"triage": triage}, GraphTraceEvent(
            node="risk_triage",
            status=TraceStatus.EXECUTED,
            decision=f"Route: {triage.route_path.value}",
            reason="; ".join(triage.triage_reasons),
            started_at=started_at,
            ended_at=now_iso(),
            duration_ms=int((time.perf_counter() - t0) * 1000),
            outputs_summary=f"riskScore={triage.risk_score}",
        ))
        logger.info(f"Triage: riskScore={triage.risk_score}, path={triage.route_path.value}")

        # Stage 3: Parallel checks
        execution = await self._execute_parallel_checks(topic_sections, triage.route_path)
        state = self._advance(progress, {"execution": execution}, *execution.events)

        # Stage 4: Reflection + routing
        state, decision = await self._run_reflection(state)
        progress["state"] = state
        if decision == RoutingDecision.RERUN_CHECKS:
            state = self._advance(progress, {}, GraphTraceEvent(
                node="routing_decision",
                status=TraceStatus.EXECUTED,
                decision="Rerouting to parallel checks based on reflection",
                reason=f"nextAction={state.reflection.next_action}, replanCount={state.reflection.replan_count}",
                started_at=now_iso(),
                ended_at=now_iso(),
                duration_ms=0,
            ))
            logger.info("Re-running parallel checks after reflection")
            execution = await self._execute_parallel_checks(topic_sections, triage.route_path)
            state = self._advance(progress, {"execution": execution}, *execution.events)

        # Stage 5: Human gate or finalize
        if self._needs_human_gate(triage, decision):
            if state.human_decision is None:
                return self._park_at_gate(state, run_id)
            ts = now_iso()
            state = self._advance(progress, {}, GraphTraceEvent(
                node="human_gate",
                status=TraceStatus.EXECUTED,
                decision=f"User selected: {state.human_decision.decision.value}",
                reason=f"Decision by: {state.human_decision.signer or 'Unknown'}",
                started_at=ts,
                ended_at=ts,
                duration_ms=0,
            ))

        return self._finalize(progress)

    def _advance(self, progress: dict, update: dict, *events: GraphTraceEvent) -> RunState:
        """Move progress["state"] forward: apply update, append events."""
        state = progress["state"]
        state = state.model_copy(update={**update, "events": state.events + list(events)})
        progress["state"] = state
        return state

    def _needs_human_gate(self, triage: TriageResult, decision: RoutingDecision) -> bool:
        return (
            triage.route_path == GraphPath.HUMAN_GATE
            or triage.risk_score > self.config.human_gate_threshold
            or decision == RoutingDecision.HUMAN_GATE
        )

    # =========================================================================
    # Response Building
    # =========================================================================

    def _finalize_event(self, decision: str) -> GraphTraceEvent:
        ts = now_iso()
        return GraphTraceEvent(
            node="finalize",
            status=TraceStatus.EXECUTED,
            decision=decision,
            started_at=ts,
            ended_at=ts,
            duration_ms=0,
        )

    def _build_summary(self, triage: TriageResult, execution: ExecutionResult) -> TraceSummary:
        return TraceSummary(
            path=triage.route_path,
            risk_score=triage.risk_score,
            risk_breakdown=triage.risk_breakdown,
            coverage_missing_count=sum(1 for g in execution.coverage_gaps if g.status == CoverageStatus.MISSING),
            conflict_count=len(execution.conflicts),
        )

    def _finalize(self, progress: dict) -> GraphReviewResponse:
        """Convert the final (possibly rerun) execution into issues."""
        execution = progress["state"].execution
        issues = convert_to_issues(execution)
        state = self._advance(progress, {"issues": issues}, self._finalize_event(f"Generated {len(issues)} issues"))
        logger.info(f"Finalized review: {len(issues)} issues, {len(execution.conflicts)} conflicts")

        return GraphReviewResponse(
            issues=state.issues,
            topic_sections=state.topic_sections,
            conflicts=execution.conflicts,
            coverage_gaps=execution.coverage_gaps,
            graph_review_trace=GraphReviewTrace(
                events=state.events,
                summary=self._build_summary(state.triage, execution),
            ),
        )

    def _degraded_response(self, state: RunState, error: Exception) -> GraphReviewResponse:
        """Empty issues, default summary and a terminal error_handler event."""
        # Keep whatever trace the run accumulated before failing
        events = list(state.events)
        message = str(error) or type(error).__name__
        events.append(GraphTraceEvent(
            node="error_handler",
            status=TraceStatus.FAILED,
            reason=message,
            started_at=now_iso(),
        ))
        return GraphReviewResponse(
            issues=[],
            graph_review_trace=GraphReviewTrace(
                events=events,
                summary=TraceSummary(),
                degraded=True,
                error=message,
            ),
        )
