"""Exception hierarchy shared by the application, runner, and HTTP layer."""

from __future__ import annotations


class AgentAutomationError(Exception):
    """Base class for errors raised by agent-automation."""


class ConfigurationError(AgentAutomationError, ValueError):
    """Raised for invalid settings, model selectors, storage URLs, or app specs."""


class RegistrationError(AgentAutomationError):
    """Raised for duplicate registrations and dangling references."""


class WorkflowDefinitionError(AgentAutomationError):
    """Raised when a workflow graph is invalid."""


class IllegalTransitionError(AgentAutomationError, ValueError):
    pass


class RunNotFoundError(AgentAutomationError, KeyError):
    def __init__(self, run_id: str) -> None:
        super().__init__(run_id)
        self.run_id = run_id

    def __str__(self) -> str:
        return f"Workflow run not found: {self.run_id}"


class InvalidResumeError(AgentAutomationError):
    """Raised when a run cannot be resumed with the given step or data."""


class StepExecutionError(AgentAutomationError):
    """A step failed after all of its attempts; its message is recorded on the run."""

    def __init__(self, step_id: str, attempts: int, cause: BaseException) -> None:
        super().__init__(f"Step {step_id!r} failed after {attempts} attempt(s): {cause}")
        self.step_id = step_id
        self.attempts = attempts
        self.cause = cause


class ToolExecutionError(AgentAutomationError):
    def __init__(self, tool_name: str, message: str) -> None:
        super().__init__(f"Tool {tool_name!r} failed: {message}")
        self.tool_name = tool_name


class AgentError(AgentAutomationError):
    """Raised when an agent cannot produce an answer."""


class WebhookError(AgentAutomationError):
    """Base class for webhook failures; carries the HTTP status to respond with."""

    status_code = 400

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class WebhookBadRequest(WebhookError):
    status_code = 400


class WebhookUnauthorized(WebhookError):
    status_code = 401


class WebhookNotFound(WebhookError):
    status_code = 404


class NotRegisteredError(RegistrationError, KeyError):
    """Raised when looking up an agent, tool, or workflow that was never registered."""

    def __init__(self, kind: str, name: str) -> None:
        super().__init__(kind, name)
        self.kind = kind
        self.name = name

    def __str__(self) -> str:
        return f"Unknown {self.kind}: {self.name!r}"
