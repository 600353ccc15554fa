"""
Memory module for context assembly and long-term memory.
"""

from .manager import MemoryManager, format_transcript, parse_extracted_memories

__all__ = ["MemoryManager", "format_transcript", "parse_extracted_memories"]
