"""
igent - a command-line AI agent with persistent context and memory.
"""

__version__ = "0.1.0"
