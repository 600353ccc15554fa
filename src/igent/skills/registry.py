"""
Skill registry.

Skills are stored prompt snippets. When the user's input mentions a skill by
name, or matches one of its ``trigger_*`` patterns, the skill's prompt is
appended to the system prompt for that turn.
"""

import re
import threading

import structlog

from ..storage import Skill, SkillStore

logger = structlog.get_logger()

TRIGGER_PREFIX = "trigger_"

SKILLS_HEADER = "\n\nAdditional context from skills:\n"

DEFAULT_SKILLS = [
    Skill(
        id="code",
        name="Code Assistant",
        description="Helps with coding tasks",
        prompt=(
            "When discussing code, provide clear explanations and well-structured "
            "examples. Follow best practices for the relevant language."
        ),
    ),
    Skill(
        id="explain",
        name="Explainer",
        description="Provides detailed explanations",
        prompt="When asked to explain something, break it down into clear steps. Use analogies when helpful.",
    ),
    Skill(
        id="summarize",
        name="Summarizer",
        description="Creates concise summaries",
        prompt="When summarizing, capture key points and main ideas. Be concise but comprehensive.",
    ),
]


def _triggers(skill: Skill) -> list[tuple[str, str]]:
    return [
        (key[len(TRIGGER_PREFIX):], pattern)
        for key, pattern in skill.parameters.items()
        if key.startswith(TRIGGER_PREFIX)
    ]


class SkillRegistry:
    """In-memory view of the enabled skills, backed by a skill store."""

    def __init__(self, store: SkillStore):
        self.store = store
        self._skills: dict[str, Skill] = {}
        self._lock = threading.RLock()

        for skill in store.load_all():
            if skill.enabled:
                self._skills[skill.id] = skill
                logger.debug("skill loaded", id=skill.id, name=skill.name)

        if self._skills:
            logger.info("skills loaded from storage", count=len(self._skills))

    def get(self, skill_id: str) -> Skill | None:
        with self._lock:
            return self._skills.get(skill_id)

    def register(self, skill: Skill) -> None:
        """Add or replace a skill and persist it."""
        with self._lock:
            self.store.save(skill)
            if skill.enabled:
                self._skills[skill.id] = skill
            else:
                self._skills.pop(skill.id, None)
        logger.info("skill registered", id=skill.id, name=skill.name, enabled=skill.enabled)

    def unregister(self, skill_id: str) -> None:
        """Remove a skill.

        Raises:
            NotFoundError: if no such skill is stored.
        """
        with self._lock:
            self.store.delete(skill_id)
            skill = self._skills.pop(skill_id, None)
        logger.info("skill unregistered", id=skill_id, name=skill.name if skill else "")

    def match(self, text: str) -> list[Skill]:
        """Skills whose name appears in ``text`` or whose trigger pattern matches it."""
        lowered = text.lower()
        matches = []

        for skill in self.list():
            if skill.name.lower() in lowered:
                matches.append(skill)
                logger.debug("skill matched by name", id=skill.id, name=skill.name)
                continue

            for key, pattern in _triggers(skill):
                try:
                    matched = re.search(pattern, text) is not None
                except re.error as e:
                    logger.warning("invalid skill trigger", id=skill.id, key=key, error=str(e))
                    continue
                if matched:
                    matches.append(skill)
                    logger.debug("skill matched by pattern", id=skill.id, pattern_key=key)
                    break

        return matches

    def enhance_prompt(self, text: str, base_prompt: str) -> str:
        """Append the prompts of matching skills to ``base_prompt``."""
        matches = self.match(text)
        if not matches:
            return base_prompt

        logger.info("prompt enhanced with skills", skills=", ".join(s.name for s in matches))
        enhancements = "\n".join(s.prompt for s in matches)
        if not base_prompt:
            return enhancements
        return base_prompt + SKILLS_HEADER + enhancements

    def initialize_defaults(self) -> bool:
        """Register the built-in skills when none are stored yet."""
        if self.list():
            logger.debug("skills already exist, skipping defaults")
            return False

        logger.info("initializing default skills")
        for skill in DEFAULT_SKILLS:
            self.register(skill.model_copy())
        return True

    # Defined last so the name does not shadow the builtin in annotations above
    def list(self) -> list[Skill]:
        with self._lock:
            return sorted(self._skills.values(), key=lambda s: s.id)
