"""
Base classes for tools.
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any

from ..errors import ToolParseError
from ..llm.base import ToolCall, ToolDefinition


class RiskLevel(str, Enum):
    """Risk classification for tool operations."""
    SAFE = "safe"              # read-only system inspection, memory bookkeeping
    MODERATE = "moderate"      # default for tools that declare no level
    DANGEROUS = "dangerous"    # arbitrary shell, outbound HTTP


@dataclass
class ToolResult:
    """Result from a tool execution, keyed to the originating call."""

    tool_call_id: str
    name: str
    output: str = ""
    error: str = ""

    @property
    def success(self) -> bool:
        return not self.error

    def to_content(self) -> str:
        """Text fed back to the model as the tool message."""
        return f"Error: {self.error}" if self.error else self.output


@dataclass
class ToolParameter:
    """Definition of a tool parameter."""

    name: str
    param_type: str  # string, integer, boolean, array, object
    description: str
    required: bool = False
    enum: list[str] | None = None


def parameters_schema(parameters: list[ToolParameter]) -> dict[str, Any]:
    """Convert parameters to JSON Schema format."""
    properties = {}
    required = []

    for param in parameters:
        prop: dict[str, Any] = {
            "type": param.param_type,
            "description": param.description,
        }
        if param.enum:
            prop["enum"] = param.enum

        properties[param.name] = prop

        if param.required:
            required.append(param.name)

    schema: dict[str, Any] = {"type": "object", "properties": properties}
    if required:
        schema["required"] = required
    return schema


class BaseTool(ABC):
    """Base class for all tools.

    Subclasses set ``name``, ``description`` and ``parameters`` as class
    attributes and implement ``execute``. ``execute`` returns the tool's
    output and raises ``ToolExecutionError`` on failure.
    """

    name: str = ""
    description: str = ""
    parameters: list[ToolParameter] = []
    risk: RiskLevel = RiskLevel.MODERATE
    timeout: float = 30.0

    @abstractmethod
    async def execute(self, args: dict[str, Any]) -> str:
        """Execute the tool with parsed arguments."""
        pass

    @property
    def is_safe(self) -> bool:
        return self.risk == RiskLevel.SAFE

    def to_definition(self) -> ToolDefinition:
        """Convert to a tool definition for the LLM."""
        return ToolDefinition(
            name=self.name,
            description=self.description,
            parameters=parameters_schema(self.parameters),
        )


def parse_tool_call(call_id: str, name: str, raw_arguments: str) -> ToolCall:
    """Decode a tool call's raw JSON arguments.

    Empty arguments decode to an empty map. Anything that is not a JSON
    object raises ToolParseError.
    """
    args: Any = {}
    if raw_arguments and raw_arguments.strip():
        try:
            args = json.loads(raw_arguments)
        except json.JSONDecodeError as e:
            raise ToolParseError(f"parsing tool arguments: {e}") from e

    if not isinstance(args, dict):
        raise ToolParseError(
            f"parsing tool arguments: expected a JSON object, got {type(args).__name__}"
        )

    return ToolCall(id=call_id, name=name, arguments=raw_arguments, args=args)


def get_str(args: dict[str, Any], key: str, default: str = "") -> str:
    value = args.get(key)
    return value if isinstance(value, str) else default


def get_bool(args: dict[str, Any], key: str, default: bool) -> bool:
    value = args.get(key)
    return value if isinstance(value, bool) else default


def get_int(args: dict[str, Any], key: str, default: int) -> int:
    value = args.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return int(value)
