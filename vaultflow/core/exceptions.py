"""Custom exception hierarchy for VaultFlow.

All exceptions inherit from VaultFlowError so callers can catch broadly
or narrowly as needed.
"""

from __future__ import annotations

from typing import Optional


class VaultFlowError(Exception):
    """Base exception for all VaultFlow errors."""


# ---------------------------------------------------------------------------
# Workflow
# ---------------------------------------------------------------------------

class WorkflowError(VaultFlowError):
    """Workflow orchestration failure."""


class ValidationBlocked(WorkflowError):
    """A transition guard failed.

    Never escapes the controller: ``next()`` catches it and stays put.
    """

    def __init__(self, step: str, reason: str):
        self.step = step
        self.reason = reason
        super().__init__(f"Cannot leave '{step}': {reason}")


class GenerationInProgress(WorkflowError):
    """A generation was requested while another one is still pending."""

    def __init__(self, message: str = "A generation is already in progress"):
        super().__init__(message)


class GenerationFailed(WorkflowError):
    """The generation collaborator failed or returned unusable content."""

    def __init__(self, message: str, retryable: bool = True):
        self.retryable = retryable
        super().__init__(message)


class QuotaExceeded(WorkflowError):
    """The tier's generation quota is used up."""

    def __init__(
        self,
        tier: str,
        used: int = 0,
        limit: int = 0,
        upgrade_message: Optional[str] = None,
    ):
        self.tier = tier
        self.used = used
        self.limit = limit
        self.upgrade_message = upgrade_message
        super().__init__(
            upgrade_message or f"Quota reached for {tier} tier ({used}/{limit})"
        )


# ---------------------------------------------------------------------------
# LLM
# ---------------------------------------------------------------------------

class LLMError(VaultFlowError):
    """Failed LLM operation."""


class RateLimitError(LLMError):
    """Hit API rate limit."""


class AuthenticationError(LLMError):
    """Invalid API key or unauthorized."""


class ResponseParseError(LLMError):
    """Failed to parse LLM response."""


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------

class UsageServiceError(VaultFlowError):
    """Usage-tracking service unreachable or returned a bad payload."""


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

class ConfigError(VaultFlowError):
    """Invalid or missing configuration."""
