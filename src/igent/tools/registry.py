"""
Tool registry for managing available tools.
"""

import asyncio
from typing import TYPE_CHECKING

import structlog

from ..errors import ToolParseError
from ..llm.base import ToolCall, ToolDefinition
from .base import BaseTool, ToolResult, parse_tool_call

if TYPE_CHECKING:
    from ..storage import MemoryStore
    from .shell_tool import ShellConfig

logger = structlog.get_logger()


class ToolRegistry:
    """Registry for managing tools."""

    def __init__(self):
        self._tools: dict[str, BaseTool] = {}

    def register(self, tool: BaseTool) -> None:
        """Register a tool."""
        self._tools[tool.name] = tool
        logger.debug("Tool registered", tool_name=tool.name)

    def unregister(self, name: str) -> None:
        """Unregister a tool."""
        if name in self._tools:
            del self._tools[name]
            logger.debug("Tool unregistered", tool_name=name)

    def get(self, name: str) -> BaseTool | None:
        """Get a tool by name."""
        return self._tools.get(name)

    def list_tools(self) -> list[BaseTool]:
        """List all registered tools, sorted by name."""
        return [self._tools[name] for name in sorted(self._tools)]

    def get_definitions(self) -> list[ToolDefinition]:
        """Get all tool definitions for the LLM."""
        return [tool.to_definition() for tool in self.list_tools()]

    def is_safe_tool(self, name: str) -> bool:
        """Whether calls to this tool may skip user confirmation."""
        tool = self.get(name)
        return tool is not None and tool.is_safe

    async def execute(self, call: ToolCall) -> ToolResult:
        """Execute a tool call.

        Never raises for tool failures: unknown tools, bad arguments,
        timeouts and exceptions all come back as ``ToolResult.error``.
        Cancellation of the surrounding turn still propagates.
        """
        tool = self.get(call.name)
        if tool is None:
            return ToolResult(call.id, call.name, error=f"unknown tool: {call.name}")

        args = call.args
        if args is None:
            try:
                args = parse_tool_call(call.id, call.name, call.arguments).args or {}
            except ToolParseError as e:
                return ToolResult(call.id, call.name, error=str(e))

        logger.info("Executing tool", tool_name=call.name, call_id=call.id)
        try:
            output = await asyncio.wait_for(tool.execute(args), timeout=tool.timeout)
        except asyncio.TimeoutError:
            logger.warning("Tool timed out", tool_name=call.name, timeout=tool.timeout)
            return ToolResult(
                call.id, call.name, error=f"tool timed out after {tool.timeout:g} seconds"
            )
        except Exception as e:
            logger.error("Tool execution error", tool_name=call.name, error=str(e))
            return ToolResult(call.id, call.name, error=str(e) or type(e).__name__)

        logger.debug("Tool executed", tool_name=call.name, output_length=len(output))
        return ToolResult(call.id, call.name, output=output)


def create_default_registry(
    memories: "MemoryStore | None" = None,
    shell_config: "ShellConfig | None" = None,
) -> ToolRegistry:
    """Build a registry with the built-in tools.

    Memory tools are only available when a memory store is supplied.
    """
    from .http_tool import HTTPRequestTool
    from .shell_tool import ShellTool
    from .system_tools import create_system_tools

    registry = ToolRegistry()
    for tool in create_system_tools():
        registry.register(tool)
    registry.register(ShellTool(shell_config))
    registry.register(HTTPRequestTool())

    if memories is not None:
        from .memory_tools import create_memory_tools
        for tool in create_memory_tools(memories):
            registry.register(tool)

    return registry
