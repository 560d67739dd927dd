"""
Base agent class for Claude API interactions.
"""

import asyncio
import json
import os
import re
import anthropic
from abc import ABC, abstractmethod

from config import get_config, get_model_for_provider
from logger import get_logger


# Module logger
logger = get_logger(__name__)


# Global API key storage - set once at startup
_API_KEY: str | None = None


def set_api_key(key: str):
    """Set the API key globally for all agents."""
    global _API_KEY
    _API_KEY = key
    os.environ["ANTHROPIC_API_KEY"] = key
    logger.debug("API key set globally")


def get_api_key() -> str | None:
    """Get the current API key."""
    return _API_KEY or get_config().api_key or os.environ.get("ANTHROPIC_API_KEY")


def extract_json(text: str):
    """Pull a JSON value out of model text: a ```json block, else the whole text.

    Returns None when nothing parses.
    """
    json_match = re.search(r'```(?:json)?\s*(.*?)\s*```', text, re.DOTALL)
    candidate = json_match.group(1) if json_match else text.strip()
    try:
        return json.loads(candidate)
    except (json.JSONDecodeError, TypeError):
        pass
    # Last resort: the outermost {...} span
    start, end = candidate.find("{"), candidate.rfind("}")
    if start != -1 and end > start:
        try:
            return json.loads(candidate[start:end + 1])
        except json.JSONDecodeError:
            return None
    return None


class BaseAgent(ABC):
    """
    Base class for single-turn Claude agents.

    Handles client construction, rate-limit retries and response extraction.
    Subclasses define the name and system prompt.
    """

    def __init__(
        self,
        model: str | None = None,
        max_tokens: int = 1024,
        api_key: str | None = None,
        client=None,
    ):
        config = get_config()

        if client is not None:
            self.client = client
        else:
            key = api_key or get_api_key()
            # Let SDK handle retries with proper retry-after header parsing
            if key:
                self.client = anthropic.Anthropic(api_key=key, max_retries=config.max_retries)
            else:
                self.client = anthropic.Anthropic(max_retries=config.max_retries)

        self._explicit_model = model
        self.max_tokens = max_tokens
        self._config = config

        # Token usage from the last API call
        self._last_usage = {"input_tokens": 0, "output_tokens": 0}

    @property
    def model(self) -> str:
        """Get the model for this agent."""
        if self._explicit_model:
            return self._explicit_model
        return get_model_for_provider(self.name)

    @property
    @abstractmethod
    def name(self) -> str:
        """Agent name for logging."""
        pass

    @property
    @abstractmethod
    def system_prompt(self) -> str:
        """System prompt for this agent."""
        pass

    async def run(self, user_message: str) -> dict:
        """
        Send one user message and return the text plus any JSON it contains.
        """
        logger.debug(f"[{self.name}] Using model: {self.model}")
        messages = [{"role": "user", "content": user_message}]

        response = None
        max_rate_limit_retries = 3

        for attempt in range(max_rate_limit_retries):
            try:
                response = self.client.messages.create(
                    model=self.model,
                    max_tokens=self.max_tokens,
                    system=self.system_prompt,
                    messages=messages,
                )
                break

            except anthropic.RateLimitError as e:
                if attempt == max_rate_limit_retries - 1:
                    logger.error(f"[{self.name}] Rate limit exceeded after {max_rate_limit_retries} attempts")
                    raise

                wait_time = 10
                try:
                    if hasattr(e, 'response') and e.response is not None:
                        retry_after = e.response.headers.get('retry-after')
                        if retry_after:
                            wait_time = int(float(retry_after)) + 1
                except (ValueError, AttributeError, TypeError):
                    pass

                logger.warning(f"[{self.name}] Rate limited, waiting {wait_time}s then retrying "
                               f"(attempt {attempt + 1}/{max_rate_limit_retries})")
                await asyncio.sleep(wait_time)

        if response is None:
            raise RuntimeError(f"[{self.name}] Failed to get response after rate limit retries")

        return self._extract_response(response)

    def _extract_response(self, response) -> dict:
        """Extract the final text response and any JSON data."""
        self._last_usage = {
            "input_tokens": response.usage.input_tokens,
            "output_tokens": response.usage.output_tokens,
        }

        text_content = ""
        for block in response.content:
            if hasattr(block, "text"):
                text_content += block.text

        return {
            "text": text_content,
            "json": extract_json(text_content),
            "model": self.model,
            "usage": dict(self._last_usage),
        }


class SimpleAgent(BaseAgent):
    """
    A simple agent that can be configured at runtime.

    Useful for one-off tasks or testing.
    """

    def __init__(self, agent_name: str, system: str, **kwargs):
        super().__init__(**kwargs)
        self._name = agent_name
        self._system_prompt = system

    @property
    def name(self) -> str:
        return self._name

    @property
    def system_prompt(self) -> str:
        return self._system_prompt
