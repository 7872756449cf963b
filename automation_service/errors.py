"""
Error taxonomy for node executors, the AI layer and the enrollment engine.

Executors raise these on business-rule violations; none are downgraded
to a no-op. Enrollment skips are results, not errors.
"""


class AutomationError(Exception):
    """Base class for workflow automation errors."""


class ConfigurationError(AutomationError):
    """Missing contact/email/phone, empty resolved template, bad node config."""


class PolicyViolation(AutomationError):
    """A compliance or spend policy forbids the action."""


class OptedOutError(PolicyViolation):
    """The contact has opted out of messaging."""


class BudgetExceededError(PolicyViolation):
    """The workspace AI budget does not allow another provider call."""


class NotFoundError(AutomationError):
    """Workspace, sequence, contact or enrollment does not exist."""


class ProviderError(AutomationError):
    """An outbound transport or AI provider call failed."""

    def __init__(self, provider: str, message: str):
        self.provider = provider
        super().__init__(f"{provider}: {message}")


class InvalidTransitionError(AutomationError):
    """An enrollment state change was requested out of a terminal state."""
