"""
Skills: prompt snippets matched against user input.
"""

from .registry import DEFAULT_SKILLS, SkillRegistry

__all__ = ["DEFAULT_SKILLS", "SkillRegistry"]
