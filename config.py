"""
Configuration management for the KYC Graph Review service.

Loads configuration from environment variables with sensible defaults.
"""

import os
import logging
from pathlib import Path
from typing import Optional
from dataclasses import dataclass, field

from dotenv import load_dotenv


def _load_dotenv():
    """Load the project .env file if one exists."""
    env_path = Path(__file__).parent / ".env"
    if env_path.exists():
        load_dotenv(env_path)


# Load .env file on module import
_load_dotenv()


# =============================================================================
# Reflection Providers
# =============================================================================

REFLECTION_PROVIDERS = ("mock", "claude")

# Per-provider model overrides; providers not listed use Config.model
PROVIDER_MODELS: dict[str, str] = {}


def get_model_for_provider(provider_name: str) -> str:
    """Get the model used by a reflection provider."""
    return PROVIDER_MODELS.get(provider_name) or get_config().model


# =============================================================================
# Resume Store
# =============================================================================

RESUME_STORE_BACKENDS = ("memory", "file")

RESUME_STORE_DIR = os.environ.get(
    "RESUME_STORE_DIR",
    str(Path(__file__).parent / ".local" / "resume-store")
)


# =============================================================================
# Application Configuration
# =============================================================================

@dataclass
class Config:
    """Application configuration loaded from environment variables."""

    # API Configuration
    api_key: Optional[str] = field(default_factory=lambda: os.environ.get("ANTHROPIC_API_KEY"))
    model: str = field(default_factory=lambda: os.environ.get("MODEL", "claude-sonnet-4-6"))
    max_retries: int = field(default_factory=lambda: int(os.environ.get("MAX_RETRIES", "5")))

    # Reflection
    reflection_provider: str = field(default_factory=lambda: os.environ.get("REFLECTION_PROVIDER", "mock"))
    reflection_test_mode: str = field(default_factory=lambda: os.environ.get("REFLECTION_TEST_MODE", ""))

    # Human gate: scores strictly above this require a human decision
    human_gate_threshold: int = field(
        default_factory=lambda: int(os.environ.get("HUMAN_GATE_THRESHOLD", "80"))
    )

    # Resume store
    resume_store: str = field(default_factory=lambda: os.environ.get("RESUME_STORE", "memory"))
    resume_store_dir: str = field(default_factory=lambda: RESUME_STORE_DIR)

    # Logging Configuration
    log_level: str = field(default_factory=lambda: os.environ.get("LOG_LEVEL", "INFO"))
    log_format: str = field(
        default_factory=lambda: os.environ.get(
            "LOG_FORMAT",
            "%(asctime)s - %(name)s - %(levelname)s - [%(run_id)s] %(message)s"
        )
    )
    log_file: Optional[str] = field(default_factory=lambda: os.environ.get("LOG_FILE") or None)

    def __post_init__(self):
        """Validate configuration after initialization."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if self.log_level.upper() not in valid_levels:
            self.log_level = "INFO"
        self.log_level = self.log_level.upper()

        self.reflection_provider = self.reflection_provider.strip().lower()
        if self.reflection_provider not in REFLECTION_PROVIDERS:
            self.reflection_provider = "mock"

        self.reflection_test_mode = self.reflection_test_mode.strip().lower()

        self.resume_store = self.resume_store.strip().lower()
        if self.resume_store not in RESUME_STORE_BACKENDS:
            self.resume_store = "memory"

    def get_log_level(self) -> int:
        """Get the logging level as an integer."""
        return getattr(logging, self.log_level, logging.INFO)


# Global configuration instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config()
    return _config


def set_config(config: Config):
    """Set the global configuration instance."""
    global _config
    _config = config
