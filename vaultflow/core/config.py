"""Configuration loader for VaultFlow.

Loads config from a YAML cascade: config/default.yaml is always loaded,
then environment-specific overrides, then environment variables.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from vaultflow.core.exceptions import ConfigError

_DEFAULT_CONFIG_DIR = Path(__file__).parent.parent.parent / "config"

GENERATION_BACKENDS = ("service", "llm", "template")


# ---------------------------------------------------------------------------
# Config schema
# ---------------------------------------------------------------------------

class LLMConfig(BaseModel):
    base_url: str = "https://openrouter.ai/api/v1"
    model: str = "anthropic/claude-sonnet-4"
    default_temperature: float = 0.7
    default_max_tokens: int = 2048
    timeout_seconds: int = 120
    provider_retries: int = 2
    provider_backoff_seconds: float = 2.0


class GenerationConfig(BaseModel):
    backend: str = "service"
    service_url: str = "http://localhost:5000/api/vault/generate"
    # None keeps the wait unbounded
    timeout_seconds: Optional[float] = None

    @field_validator("backend")
    @classmethod
    def _known_backend(cls, value: str) -> str:
        if value not in GENERATION_BACKENDS:
            raise ValueError(
                f"Unknown generation backend '{value}' (expected one of {GENERATION_BACKENDS})"
            )
        return value


class UsageConfig(BaseModel):
    service_url: str = "http://localhost:5000/api/usage"


class WorkflowConfig(BaseModel):
    max_council_selections: int = 3
    near_limit_percent: float = 80.0


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class AppConfig(BaseModel):
    llm: LLMConfig = Field(default_factory=LLMConfig)
    generation: GenerationConfig = Field(default_factory=GenerationConfig)
    usage: UsageConfig = Field(default_factory=UsageConfig)
    workflow: WorkflowConfig = Field(default_factory=WorkflowConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge override into base, returning a new dict."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with open(path) as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a mapping at the top of {path}, got {type(data).__name__}")
    return data


def _apply_env_overrides(merged: dict[str, Any]) -> dict[str, Any]:
    generation_url = os.getenv("VAULTFLOW_GENERATION_URL")
    if generation_url:
        merged.setdefault("generation", {})["service_url"] = generation_url

    usage_url = os.getenv("VAULTFLOW_USAGE_URL")
    if usage_url:
        merged.setdefault("usage", {})["service_url"] = usage_url

    log_level = os.getenv("VAULTFLOW_LOG_LEVEL")
    if log_level:
        merged.setdefault("logging", {})["level"] = log_level

    return merged


def load_config(
    config_dir: Optional[Path] = None,
    env: Optional[str] = None,
) -> AppConfig:
    """Load application config from YAML cascade.

    Order: default.yaml -> {env}.yaml -> env vars (VAULTFLOW_*).
    """
    if config_dir is None:
        config_dir = _DEFAULT_CONFIG_DIR

    merged = _load_yaml(config_dir / "default.yaml")

    if env:
        overlay = _load_yaml(config_dir / f"{env}.yaml")
        merged = _deep_merge(merged, overlay)

    merged = _apply_env_overrides(merged)

    try:
        return AppConfig(**merged)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e


# ---------------------------------------------------------------------------
# Prompt loader
# ---------------------------------------------------------------------------

class PromptLoader:
    """Loads prompt templates from config/prompts/ directory.

    Falls back to hardcoded defaults if the file doesn't exist,
    so prompts can be iterated on without code changes.
    """

    def __init__(self, prompts_dir: Optional[Path] = None):
        if prompts_dir is None:
            prompts_dir = _DEFAULT_CONFIG_DIR / "prompts"
        self.prompts_dir = prompts_dir

    def load(self, name: str, default: str = "") -> str:
        """Load a prompt template by filename.

        Args:
            name: Filename within config/prompts/ (e.g. "copywriter_system.txt").
            default: Fallback text if file doesn't exist.

        Returns:
            Prompt text (stripped of leading/trailing whitespace).
        """
        path = self.prompts_dir / name
        if path.exists():
            return path.read_text().strip()
        return default
