"""
Reflection providers.

A provider takes a run payload plus a prompt and returns raw text that should
hold a JSON object {should_replan, reason, new_plan, confidence}. The
reflection node parses it; providers never decide routing themselves.

Providers:
- mock: deterministic rules, the default and the test double
- rerun: always asks for one more pass of the checks (REFLECTION_TEST_MODE=rerun)
- claude: Claude-backed reflection through the Anthropic SDK
"""

import json
from abc import ABC, abstractmethod

from config import Config, get_config
from logger import get_logger
from models import ACTION_ASK_HUMAN_FOR_SCOPE, ACTION_RERUN_BATCH_REVIEW, ACTION_SKIP
from agents.base import BaseAgent, get_api_key

logger = get_logger(__name__)


REFLECTION_PROMPT = """Review the state of this KYC document review and decide whether the
rule checks should be re-run, whether a human must decide the scope, or whether the run
can continue as planned."""


REFLECTION_SYSTEM_PROMPT = """You are the reflection step of a KYC compliance review graph.
You receive a JSON summary of the run so far: risk score, route path, counts of coverage
gaps, conflicts and policy flags, and how many replans have already happened.

Return ONLY a JSON object in a ```json code block with these fields:
- should_replan: boolean
- reason: one sentence
- new_plan: list of action tokens; the first one is executed. Allowed tokens:
  rerun_batch_review, ask_human_for_scope, section_review, tighten_policy, skip
- confidence: number between 0 and 1

Rules:
- If replanCount is 1 or more, never propose rerun_batch_review; use ask_human_for_scope
- Prefer skip when findings are consistent and complete
- Never fabricate findings that are not in the summary"""


class ReflectionProvider(ABC):
    """Capability: run(payload, prompt) -> raw text."""

    @property
    @abstractmethod
    def name(self) -> str:
        pass

    @abstractmethod
    async def run(self, payload: dict, prompt: str) -> str:
        pass


class MockReflectionProvider(ReflectionProvider):
    """Deterministic reflection rules."""

    @property
    def name(self) -> str:
        return "mock"

    async def run(self, payload: dict, prompt: str) -> str:
        if payload.get("replanCount", 0) >= 1:
            return json.dumps({
                "should_replan": False,
                "reason": "Replan limit reached; require human scope decision.",
                "new_plan": [ACTION_ASK_HUMAN_FOR_SCOPE],
                "confidence": 0.8,
            })

        if payload.get("issuesCount", 0) > 0:
            return json.dumps({
                "should_replan": False,
                "reason": "Issues detected; continuing with current plan.",
                "new_plan": [ACTION_SKIP],
                "confidence": 0.7,
            })

        return json.dumps({
            "should_replan": False,
            "reason": "Review proceeding normally; no replan needed.",
            "new_plan": [ACTION_SKIP],
            "confidence": 0.75,
        })


class RerunReflectionProvider(ReflectionProvider):
    """Always requests a rerun of the checks. Exercises the replan cap."""

    @property
    def name(self) -> str:
        return "rerun"

    async def run(self, payload: dict, prompt: str) -> str:
        return json.dumps({
            "should_replan": True,
            "reason": "Test mode: forcing a rerun of the batch review.",
            "new_plan": [ACTION_RERUN_BATCH_REVIEW],
            "confidence": 0.9,
        })


class ReflectionAgent(BaseAgent):
    """Claude agent behind ClaudeReflectionProvider."""

    @property
    def name(self) -> str:
        return "claude"

    @property
    def system_prompt(self) -> str:
        return REFLECTION_SYSTEM_PROMPT


class ClaudeReflectionProvider(ReflectionProvider):
    """Reflection through Claude. Errors propagate to the reflection node."""

    def __init__(self, api_key: str | None = None, agent: BaseAgent | None = None):
        if agent is None:
            if not api_key:
                raise ValueError("API key is required for ClaudeReflectionProvider")
            agent = ReflectionAgent(api_key=api_key)
        self.agent = agent

    @property
    def name(self) -> str:
        return "claude"

    async def run(self, payload: dict, prompt: str) -> str:
        message = f"{prompt}\n\nRun summary:\n```json\n{json.dumps(payload, indent=2)}\n```"
        result = await self.agent.run(message)
        return result["text"]


def create_reflection_provider(config: Config | None = None) -> ReflectionProvider:
    """Pick a provider from configuration. Misconfigured claude falls back to mock."""
    config = config or get_config()

    if config.reflection_test_mode == "rerun":
        logger.info("Reflection provider: rerun (test mode)")
        return RerunReflectionProvider()

    if config.reflection_provider == "claude":
        api_key = config.api_key or get_api_key()
        if not api_key:
            logger.warning("REFLECTION_PROVIDER=claude but ANTHROPIC_API_KEY not set; falling back to mock")
            return MockReflectionProvider()
        logger.info("Reflection provider: claude")
        return ClaudeReflectionProvider(api_key=api_key)

    logger.info("Reflection provider: mock")
    return MockReflectionProvider()
