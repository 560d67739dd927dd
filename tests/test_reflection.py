"""Tests for reflection providers, the reflection node and post-reflection routing."""

import asyncio
import json
import os
import pytest
from types import SimpleNamespace
from unittest.mock import patch

from models import (
    RunState, Features, ExecutionResult, Coverage, CoverageStatus, TopicId, TraceStatus,
    ReflectionState, RoutingDecision,
    ACTION_RERUN_BATCH_REVIEW, ACTION_ASK_HUMAN_FOR_SCOPE, ACTION_SECTION_REVIEW,
    ACTION_TIGHTEN_POLICY, ACTION_SKIP,
)
from agents.base import extract_json, SimpleAgent
from agents.reflection import (
    MockReflectionProvider, RerunReflectionProvider, ClaudeReflectionProvider,
    ReflectionProvider, create_reflection_provider,
)
from pipeline_reflection import (
    reflect_and_replan, route_after_reflection, parse_reflection_output,
    build_reflection_payload, MAX_REPLANS,
)


def _state(issues=0, reflection=True, replan_count=0, next_action=None):
    gaps = [Coverage(topic_id=TopicId.CLIENT_IDENTITY, status=CoverageStatus.MISSING)] * issues
    return RunState(
        features=Features(reflection=reflection),
        execution=ExecutionResult(coverage_gaps=gaps),
        reflection=ReflectionState(replan_count=replan_count, next_action=next_action),
    )


def _run_mock(payload):
    return json.loads(asyncio.run(MockReflectionProvider().run(payload, "prompt")))


class FailingProvider(ReflectionProvider):
    @property
    def name(self):
        return "failing"

    async def run(self, payload, prompt):
        raise ConnectionError("provider offline")


class GarbageProvider(ReflectionProvider):
    @property
    def name(self):
        return "garbage"

    async def run(self, payload, prompt):
        return "I think everything looks fine."


class TestMockProvider:
    def test_replan_limit(self):
        out = _run_mock({"replanCount": 1, "issuesCount": 5})
        assert out["new_plan"] == [ACTION_ASK_HUMAN_FOR_SCOPE]
        assert out["confidence"] == 0.8
        assert out["should_replan"] is False

    def test_issues_detected(self):
        out = _run_mock({"replanCount": 0, "issuesCount": 2})
        assert out["new_plan"] == [ACTION_SKIP]
        assert out["confidence"] == 0.7
        assert "Issues detected" in out["reason"]

    def test_proceeding_normally(self):
        out = _run_mock({"replanCount": 0, "issuesCount": 0})
        assert out["new_plan"] == [ACTION_SKIP]
        assert out["confidence"] == 0.75


class TestParsing:
    def test_fenced_json(self):
        outcome = parse_reflection_output(
            'Sure.\n```json\n{"should_replan": true, "reason": "r", "new_plan": ["rerun_batch_review"], "confidence": 0.6}\n```'
        )
        assert outcome.should_replan
        assert outcome.next_action == ACTION_RERUN_BATCH_REVIEW

    def test_unparseable(self):
        with pytest.raises(ValueError):
            parse_reflection_output("no json here")

    def test_extract_json_outer_object(self):
        assert extract_json('Result: {"a": 1} done') == {"a": 1}
        assert extract_json("nothing") is None


class TestReflectionNode:
    def test_disabled_emits_skipped_event(self):
        state = _state(reflection=False, next_action="existing")
        updated = asyncio.run(reflect_and_replan(state, MockReflectionProvider()))
        assert updated.events[-1].node == "reflect_and_replan"
        assert updated.events[-1].status == TraceStatus.SKIPPED
        assert updated.reflection.next_action == "existing"
        assert route_after_reflection(updated) == (RoutingDecision.CONTINUE, [])

    def test_mock_with_issues_continues(self):
        updated = asyncio.run(reflect_and_replan(_state(issues=2), MockReflectionProvider()))
        assert updated.reflection.next_action == ACTION_SKIP
        assert updated.reflection.replan_count == 0
        assert updated.reflection.provider_name == "mock"
        assert updated.events[-1].decision == "nextAction=skip"

    def test_payload(self):
        state = _state(issues=3).model_copy(update={"dirty_topics": [TopicId.RISK_PROFILE]})
        payload = build_reflection_payload(state)
        assert payload["issuesCount"] == 3
        assert payload["coverageGapCount"] == 3
        assert payload["replanCount"] == 0
        assert payload["dirtyTopics"] == ["risk_profile"]

    def test_replan_cap(self):
        provider = RerunReflectionProvider()
        first = asyncio.run(reflect_and_replan(_state(), provider))
        assert first.reflection.next_action == ACTION_RERUN_BATCH_REVIEW
        assert first.reflection.replan_count == 1
        assert route_after_reflection(first)[0] == RoutingDecision.RERUN_CHECKS

        second = asyncio.run(reflect_and_replan(first, provider))
        assert second.reflection.replan_count == MAX_REPLANS
        assert second.reflection.next_action == ACTION_ASK_HUMAN_FOR_SCOPE
        assert route_after_reflection(second)[0] == RoutingDecision.HUMAN_GATE
        assert "Replan limit reached" in second.events[-1].reason

    def test_provider_failure_falls_back(self):
        updated = asyncio.run(reflect_and_replan(_state(), FailingProvider()))
        assert updated.reflection.next_action == ACTION_SKIP
        assert updated.reflection.outcome.should_replan is False
        assert "provider offline" in updated.events[-1].reason
        assert route_after_reflection(updated)[0] == RoutingDecision.CONTINUE

    def test_unparseable_output_falls_back(self):
        updated = asyncio.run(reflect_and_replan(_state(), GarbageProvider()))
        assert updated.reflection.next_action == ACTION_SKIP
        assert updated.reflection.outcome.confidence == 0.0


class TestRouting:
    @pytest.mark.parametrize("action,expected,notes", [
        (ACTION_RERUN_BATCH_REVIEW, RoutingDecision.RERUN_CHECKS, 0),
        (ACTION_ASK_HUMAN_FOR_SCOPE, RoutingDecision.HUMAN_GATE, 0),
        (ACTION_SECTION_REVIEW, RoutingDecision.HUMAN_GATE, 1),
        (ACTION_TIGHTEN_POLICY, RoutingDecision.CONTINUE, 1),
        (ACTION_SKIP, RoutingDecision.CONTINUE, 0),
        ("something_else", RoutingDecision.CONTINUE, 0),
    ])
    def test_mapping(self, action, expected, notes):
        decision, events = route_after_reflection(_state(replan_count=1, next_action=action))
        assert decision == expected
        assert len(events) == notes

    def test_safety_override_blocks_second_rerun(self):
        decision, events = route_after_reflection(_state(replan_count=2, next_action=ACTION_RERUN_BATCH_REVIEW))
        assert decision == RoutingDecision.CONTINUE
        assert events[0].decision == "Safety override: second rerun prevented"


class TestProviderFactory:
    def test_default_is_mock(self):
        from config import Config
        with patch.dict(os.environ, {}, clear=True):
            assert isinstance(create_reflection_provider(Config()), MockReflectionProvider)

    def test_rerun_test_mode(self):
        from config import Config
        provider = create_reflection_provider(Config(reflection_test_mode="rerun"))
        assert isinstance(provider, RerunReflectionProvider)

    def test_claude_without_key_falls_back(self, monkeypatch):
        import agents.base
        from config import Config
        monkeypatch.setattr(agents.base, "_API_KEY", None)
        with patch.dict(os.environ, {}, clear=True):
            provider = create_reflection_provider(Config(reflection_provider="claude", api_key=None))
        assert isinstance(provider, MockReflectionProvider)

    def test_claude_with_key(self):
        from config import Config
        provider = create_reflection_provider(Config(reflection_provider="claude", api_key="sk-test"))
        assert isinstance(provider, ClaudeReflectionProvider)
        assert provider.name == "claude"


class FakeMessages:
    def __init__(self, text):
        self.text = text
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        return SimpleNamespace(
            usage=SimpleNamespace(input_tokens=10, output_tokens=5),
            content=[SimpleNamespace(text=self.text)],
        )


class TestClaudeProvider:
    def test_round_trip_through_agent(self):
        messages = FakeMessages('```json\n{"should_replan": false, "reason": "ok", "new_plan": ["skip"], "confidence": 0.9}\n```')
        agent = SimpleAgent("claude", "system", client=SimpleNamespace(messages=messages), model="claude-test")
        provider = ClaudeReflectionProvider(agent=agent)

        updated = asyncio.run(reflect_and_replan(_state(issues=1), provider))
        assert updated.reflection.next_action == ACTION_SKIP
        assert updated.reflection.provider_name == "claude"
        assert messages.calls[0]["model"] == "claude-test"
        assert '"issuesCount": 1' in messages.calls[0]["messages"][0]["content"]

    def test_requires_key_or_agent(self):
        with pytest.raises(ValueError):
            ClaudeReflectionProvider()
