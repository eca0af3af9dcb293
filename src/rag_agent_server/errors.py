"""Error taxonomy for the agent core.

Tool-level errors (ToolInputError, ContractViolation, ToolTimeout) are recovered
inside the registry and surface to the model as tool observations. ModelUnavailable
and ToolNotFound abort the current turn. StoreUnavailable is logged and never
unwinds an answer that was already streamed.
"""

from __future__ import annotations


class AgentError(Exception):
    """Base class for errors raised by the agent core."""


class ToolRegistrationError(AgentError):
    """A tool does not conform to the tool contract."""


class ToolNotFound(AgentError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Requested tool '{name}' is not available.")
        self.name = name


class ToolError(AgentError):
    """Recoverable failure of a single tool invocation."""

    kind = "tool_error"

    def __init__(self, tool_name: str, message: str) -> None:
        super().__init__(message)
        self.tool_name = tool_name


class ToolInputError(ToolError):
    """Tool arguments failed the tool's input schema."""

    kind = "validation_error"


class ContractViolation(ToolError):
    """Tool returned a value that does not match its output schema."""

    kind = "contract_violation"


class ToolTimeout(ToolError):
    kind = "timeout"


class ModelUnavailable(AgentError):
    """The language model call failed (provider outage, auth, network)."""


class StoreUnavailable(AgentError):
    """Conversation persistence failed."""
