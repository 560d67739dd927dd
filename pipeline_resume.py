"""
Human gate and resume mixin for the review pipeline.

Parking a run saves a ResumeSnapshot under the run id and hands back a JSON
resume token. Resuming takes the snapshot out of the store (single use),
re-runs the rule checks on the stored topics and route, and finalizes.
"""

import json
import time

from pydantic import ValidationError

from logger import get_logger, bind_run_id
from models import (
    RunState, ResumeSnapshot, ResumeToken, HumanGate, GraphReviewResponse, GraphReviewTrace,
    TraceSummary, TraceStatus, GraphTraceEvent, GraphPath, now_iso,
)
from resume_store import ResumeTokenError, ResumeStateNotFound
from utilities.issue_builder import convert_to_issues

logger = get_logger(__name__)

GATE_ID = "human_gate"


def parse_resume_token(token: str) -> ResumeToken:
    """Decode a resume token. Raises ResumeTokenError when blank or malformed."""
    if not token or not token.strip():
        raise ResumeTokenError("Invalid resume token format")
    try:
        parsed = ResumeToken.model_validate_json(token)
    except (ValidationError, json.JSONDecodeError) as e:
        raise ResumeTokenError("Invalid resume token format") from e
    if parsed.gate_id != GATE_ID:
        raise ResumeTokenError(f"Unknown gate in resume token: {parsed.gate_id}")
    return parsed


def mint_resume_token(run_id: str) -> str:
    return ResumeToken(run_id=run_id, gate_id=GATE_ID, created_at=int(time.time() * 1000)).encode()


class ResumeMixin:
    """Human gate parking + resume path."""

    def _gate_reason(self, state: RunState) -> str:
        """Name whichever condition opened the gate."""
        triage = state.triage
        if triage.risk_score > self.config.human_gate_threshold:
            return f"Risk score {triage.risk_score} exceeds threshold"
        if triage.route_path == GraphPath.HUMAN_GATE:
            return f"Triage routed to human gate (riskScore={triage.risk_score})"
        return f"Reflection requested human review (nextAction={state.reflection.next_action})"

    def _park_at_gate(self, state: RunState, run_id: str) -> GraphReviewResponse:
        """Persist the run, mint a token and return the gate response."""
        triage = state.triage
        snapshot = ResumeSnapshot(
            topic_sections=state.topic_sections,
            triage_result=triage,
            previous_events=state.events,
            replan_count=state.reflection.replan_count,
        )
        self.resume_store.save(run_id, snapshot)
        token = mint_resume_token(run_id)

        reason = self._gate_reason(state)
        events = state.events + [GraphTraceEvent(
            node="human_gate",
            status=TraceStatus.WAITING,
            decision="Human decision required",
            reason=reason,
            started_at=now_iso(),
        )]
        logger.info(f"Run {run_id} parked at human gate: {reason}")

        return GraphReviewResponse(
            issues=[],
            topic_sections=state.topic_sections,
            conflicts=[],
            coverage_gaps=[],
            graph_review_trace=GraphReviewTrace(
                events=events,
                summary=TraceSummary(
                    path=triage.route_path,
                    risk_score=triage.risk_score,
                    risk_breakdown=triage.risk_breakdown,
                ),
            ),
            human_gate=HumanGate(
                prompt=f"KYC review flagged high risk (score: {triage.risk_score}). Please review and decide:",
                context="; ".join(triage.triage_reasons) or None,
            ),
            resume_token=token,
        )

    async def _resume(self, progress: dict, resume_token: str) -> GraphReviewResponse:
        """
        Continue a parked run with the supplied human decision.

        The snapshot is consumed with an atomic take. If anything fails after
        that, it is saved back so the same token can be retried.
        """
        token = parse_resume_token(resume_token)
        with bind_run_id(token.run_id):
            snapshot = self.resume_store.take(token.run_id)
            if snapshot is None:
                logger.warning(f"No resume state for run {token.run_id}")
                raise ResumeStateNotFound(token.run_id)

            try:
                return await self._continue_from_snapshot(progress, snapshot, token.run_id)
            except Exception:
                logger.warning(f"Resume of run {token.run_id} failed; restoring snapshot")
                self.resume_store.save(token.run_id, snapshot)
                raise

    async def _continue_from_snapshot(self, progress: dict, snapshot: ResumeSnapshot, run_id: str) -> GraphReviewResponse:
        decision = progress["state"].human_decision
        triage = snapshot.triage_result
        logger.info(f"Resuming run {run_id}: decision={decision.decision.value}, path={triage.route_path.value}")

        ts = now_iso()
        # Restored trace is in progress before any check runs
        self._advance(
            progress,
            {"topic_sections": snapshot.topic_sections, "triage": triage},
            *snapshot.previous_events,
            GraphTraceEvent(
                node="human_gate",
                status=TraceStatus.EXECUTED,
                decision=f"User selected: {decision.decision.value}",
                reason=f"Decision by: {decision.signer or 'Unknown'}",
                started_at=ts,
                ended_at=ts,
                duration_ms=0,
                outputs_summary=decision.notes,
            ),
        )

        execution = await self._execute_parallel_checks(snapshot.topic_sections, triage.route_path)
        self._advance(progress, {"execution": execution}, *execution.events)

        issues = convert_to_issues(execution)
        state = self._advance(
            progress,
            {"issues": issues},
            self._finalize_event(f"Generated {len(issues)} issues after human decision"),
        )

        return GraphReviewResponse(
            issues=issues,
            topic_sections=snapshot.topic_sections,
            conflicts=execution.conflicts,
            coverage_gaps=execution.coverage_gaps,
            graph_review_trace=GraphReviewTrace(
                events=state.events,
                summary=self._build_summary(triage, execution),
            ),
        )
