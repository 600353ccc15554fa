"""
Tools module for agent capabilities.
"""

from .base import (
    BaseTool,
    RiskLevel,
    ToolParameter,
    ToolResult,
    parameters_schema,
    parse_tool_call,
)
from .registry import ToolRegistry, create_default_registry

__all__ = [
    "BaseTool",
    "RiskLevel",
    "ToolParameter",
    "ToolResult",
    "parameters_schema",
    "parse_tool_call",
    "ToolRegistry",
    "create_default_registry",
]
