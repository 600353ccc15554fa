"""
Error taxonomy for igent.

All errors inherit from IgentError so callers can catch broad or
specific exceptions as needed.
"""


class IgentError(Exception):
    """Base exception for all igent errors."""


class ConfigError(IgentError):
    """Raised when the configuration cannot produce a working agent."""


class ProviderError(IgentError):
    """Raised when the LLM provider fails (transport or API error)."""


class ToolParseError(IgentError):
    """Raised when a tool call carries malformed JSON arguments."""


class ToolExecutionError(IgentError):
    """Raised by a tool when it cannot complete."""


class ToolDenied(IgentError):
    """Raised when the user refuses a tool call. The turn is abandoned."""

    def __init__(self, tool_name: str = ""):
        self.tool_name = tool_name
        super().__init__("tool execution denied by user")


class IterationLimitExceeded(IgentError):
    """Raised when the model keeps requesting tools past the iteration cap."""

    def __init__(self, max_iterations: int):
        self.max_iterations = max_iterations
        super().__init__(f"max tool iterations reached ({max_iterations})")


class TurnTimeout(IgentError):
    """Raised when a turn runs past its deadline."""


class StorageError(IgentError):
    """Raised when a store operation fails."""


class NotFoundError(StorageError):
    """Raised when a requested record does not exist."""

    def __init__(self, kind: str, record_id: str):
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"{kind} not found: {record_id}")


class SummarizationError(IgentError):
    """Raised inside background summarization. Never reaches the user."""


class ExtractionError(IgentError):
    """Raised inside background memory extraction. Never reaches the user."""
