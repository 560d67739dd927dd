"""
KYC Graph Review - Agent exports.
"""

from agents.base import BaseAgent, SimpleAgent, set_api_key, get_api_key, extract_json
from agents.reflection import (
    ReflectionProvider,
    MockReflectionProvider,
    RerunReflectionProvider,
    ClaudeReflectionProvider,
    ReflectionAgent,
    create_reflection_provider,
)

__all__ = [
    "BaseAgent",
    "SimpleAgent",
    "set_api_key",
    "get_api_key",
    "extract_json",
    # Reflection providers
    "ReflectionProvider",
    "MockReflectionProvider",
    "RerunReflectionProvider",
    "ClaudeReflectionProvider",
    "ReflectionAgent",
    "create_reflection_provider",
]
