"""
Reflection mixin for the review pipeline.

Bounded self-correction after the rule checks: a provider recommends the
next action, the node enforces the one-replan cap, and routing maps the
action to rerun_checks / human_gate / continue.
"""

from logger import get_logger
from models import (
    RunState, ReflectionOutcome, ReflectionState, RoutingDecision, CoverageStatus,
    GraphTraceEvent, TraceStatus, now_iso,
    ACTION_RERUN_BATCH_REVIEW, ACTION_ASK_HUMAN_FOR_SCOPE, ACTION_SECTION_REVIEW,
    ACTION_TIGHTEN_POLICY, ACTION_SKIP,
)
from agents.base import extract_json
from agents.reflection import ReflectionProvider, REFLECTION_PROMPT

logger = get_logger(__name__)

MAX_REPLANS = 1

SAFE_DEFAULT_OUTCOME = ReflectionOutcome(
    should_replan=False,
    reason="Reflection unavailable; continuing with current plan.",
    new_plan=[ACTION_SKIP],
    confidence=0.0,
)


def _event(node: str, decision: str, reason: str = None, status=TraceStatus.EXECUTED, **extra) -> GraphTraceEvent:
    ts = now_iso()
    return GraphTraceEvent(
        node=node, status=status, decision=decision, reason=reason,
        started_at=ts, ended_at=ts, duration_ms=0, **extra,
    )


def parse_reflection_output(raw_text: str) -> ReflectionOutcome:
    """Parse provider text into a ReflectionOutcome. Raises ValueError when unusable."""
    data = extract_json(raw_text or "")
    if not isinstance(data, dict):
        raise ValueError("Reflection output is not a JSON object")
    return ReflectionOutcome.model_validate(data)


def build_reflection_payload(state: RunState) -> dict:
    """Summary of the run handed to the provider."""
    execution = state.execution
    triage = state.triage
    return {
        "replanCount": state.reflection.replan_count,
        "issuesCount": execution.issues_count if execution else 0,
        "coverageGapCount": sum(1 for g in execution.coverage_gaps if g.status != CoverageStatus.COMPLETE) if execution else 0,
        "conflictCount": len(execution.conflicts) if execution else 0,
        "policyFlagCount": len(execution.policy_flags) if execution else 0,
        "riskScore": triage.risk_score if triage else 0,
        "routePath": triage.route_path.value if triage else None,
        "dirtyTopics": [t.value for t in state.dirty_topics],
        "topicCoverage": {s.topic_id.value: s.coverage.value for s in state.topic_sections},
    }


async def reflect_and_replan(state: RunState, provider: ReflectionProvider) -> RunState:
    """
    Run the reflection node and return the updated state.

    Disabled reflection only appends a skipped event. Provider failures fall
    back to SAFE_DEFAULT_OUTCOME. A rerun request once replan_count has hit
    the cap is rewritten to ask_human_for_scope.
    """
    if not state.features.reflection:
        event = _event(
            "reflect_and_replan",
            "Reflection disabled; skipping",
            reason="features.reflection=false",
            status=TraceStatus.SKIPPED,
        )
        return state.model_copy(update={"events": state.events + [event]})

    replan_count = state.reflection.replan_count
    payload = build_reflection_payload(state)

    try:
        raw = await provider.run(payload, REFLECTION_PROMPT)
        outcome = parse_reflection_output(raw)
    except Exception as e:
        logger.warning(f"Reflection provider '{provider.name}' failed, using safe default: {e}")
        outcome = SAFE_DEFAULT_OUTCOME.model_copy(update={"reason": f"Reflection provider failed: {e}"})

    next_action = outcome.next_action or ACTION_SKIP
    notes = []

    if next_action == ACTION_RERUN_BATCH_REVIEW:
        if replan_count >= MAX_REPLANS:
            logger.warning(f"Replan limit reached (replanCount={replan_count}); asking human for scope")
            notes.append(f"Replan limit reached; {ACTION_RERUN_BATCH_REVIEW} replaced by {ACTION_ASK_HUMAN_FOR_SCOPE}")
            next_action = ACTION_ASK_HUMAN_FOR_SCOPE
        else:
            replan_count += 1

    event = _event(
        "reflect_and_replan",
        f"nextAction={next_action}",
        reason="; ".join([outcome.reason] + notes),
        inputs_summary=f"issuesCount={payload['issuesCount']}, replanCount={payload['replanCount']}",
        outputs_summary=(
            f"should_replan={outcome.should_replan}, confidence={outcome.confidence:.2f}, "
            f"replanCount={replan_count}, provider={provider.name}"
        ),
    )

    reflection = ReflectionState(
        replan_count=replan_count,
        next_action=next_action,
        outcome=outcome,
        provider_name=provider.name,
    )
    return state.model_copy(update={"reflection": reflection, "events": state.events + [event]})


def route_after_reflection(state: RunState) -> tuple[RoutingDecision, list[GraphTraceEvent]]:
    """Map the reflection's next action to a routing decision plus any trace notes."""
    action = state.reflection.next_action
    if not state.features.reflection or not action:
        return RoutingDecision.CONTINUE, []

    replan_count = state.reflection.replan_count

    if action == ACTION_RERUN_BATCH_REVIEW:
        if replan_count > MAX_REPLANS:
            logger.error(f"Prevented second rerun (replanCount={replan_count}); forcing continue")
            return RoutingDecision.CONTINUE, [_event(
                "routing_decision",
                "Safety override: second rerun prevented",
                reason=f"replanCount={replan_count} exceeds limit of {MAX_REPLANS}",
            )]
        return RoutingDecision.RERUN_CHECKS, []

    if action == ACTION_ASK_HUMAN_FOR_SCOPE:
        return RoutingDecision.HUMAN_GATE, []

    if action == ACTION_SECTION_REVIEW:
        logger.warning("section_review not implemented; routing to human_gate")
        return RoutingDecision.HUMAN_GATE, [_event(
            "routing_decision",
            "Section review requested but not implemented",
            reason="Fallback to human gate for manual scope decision",
        )]

    if action == ACTION_TIGHTEN_POLICY:
        logger.warning("tighten_policy not implemented; continuing with current results")
        return RoutingDecision.CONTINUE, [_event(
            "routing_decision",
            "Policy tightening requested but not implemented",
            reason="Continuing with current policy settings",
        )]

    return RoutingDecision.CONTINUE, []


class ReflectionMixin:
    """Reflection node + post-reflection routing."""

    async def _run_reflection(self, state: RunState) -> tuple[RunState, RoutingDecision]:
        state = await reflect_and_replan(state, self.reflection_provider)
        decision, notes = route_after_reflection(state)
        if state.features.reflection:
            logger.info(
                f"Reflection: nextAction={state.reflection.next_action}, "
                f"replanCount={state.reflection.replan_count} -> {decision.value}"
            )
        return state.model_copy(update={"events": state.events + notes}), decision
