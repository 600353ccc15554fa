"""
Agent module: the conversational turn loop.
"""

from .approval import format_tool_call, prompt_confirmation
from .core import DEFAULT_CONVERSATION, Agent

__all__ = ["Agent", "DEFAULT_CONVERSATION", "format_tool_call", "prompt_confirmation"]
