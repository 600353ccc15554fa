"""
Tests for the skill registry.
"""

import pytest

from igent.errors import NotFoundError
from igent.skills import DEFAULT_SKILLS, SkillRegistry
from igent.storage import Skill


def test_initialize_defaults_only_when_empty(store):
    """Test default skills are installed once."""
    registry = SkillRegistry(store.skills)

    assert registry.initialize_defaults() is True
    assert {s.name for s in registry.list()} == {"Code Assistant", "Explainer", "Summarizer"}
    assert registry.initialize_defaults() is False
    assert len(store.skills.list_ids()) == len(DEFAULT_SKILLS)


def test_registry_loads_enabled_skills(store):
    """Test only enabled skills are loaded from storage."""
    store.skills.save(Skill(id="on", name="On", prompt="p"))
    store.skills.save(Skill(id="off", name="Off", prompt="p", enabled=False))

    registry = SkillRegistry(store.skills)

    assert [s.id for s in registry.list()] == ["on"]
    assert registry.get("off") is None


def test_match_by_name_case_insensitive(store):
    """Test skills match when their name appears in the input."""
    registry = SkillRegistry(store.skills)
    registry.initialize_defaults()

    matches = registry.match("Could the SUMMARIZER help here?")

    assert [s.id for s in matches] == ["summarize"]
    assert registry.match("nothing relevant") == []


def test_match_by_trigger_pattern(store):
    """Test trigger_* parameters are treated as regular expressions."""
    registry = SkillRegistry(store.skills)
    registry.register(Skill(
        id="sql",
        name="Database Helper",
        prompt="Write portable SQL.",
        parameters={"trigger_query": r"\bSELECT\b", "note": "not a trigger"},
    ))

    assert [s.id for s in registry.match("SELECT * FROM users")] == ["sql"]
    assert registry.match("select lowercase") == []
    assert registry.match("not a trigger") == []


def test_invalid_trigger_is_ignored(store):
    """Test a broken regex does not break matching."""
    registry = SkillRegistry(store.skills)
    registry.register(Skill(id="bad", name="Bad", prompt="p", parameters={"trigger_x": "("}))

    assert registry.match("anything (") == []


def test_enhance_prompt(store):
    """Test matched skill prompts are appended under a header."""
    registry = SkillRegistry(store.skills)
    registry.initialize_defaults()

    enhanced = registry.enhance_prompt("be an explainer", "Base prompt.")

    assert enhanced == (
        "Base prompt.\n\nAdditional context from skills:\n"
        "When asked to explain something, break it down into clear steps. Use analogies when helpful."
    )
    assert registry.enhance_prompt("no match", "Base prompt.") == "Base prompt."


def test_unregister(store):
    """Test unregister removes the skill from memory and storage."""
    registry = SkillRegistry(store.skills)
    registry.register(Skill(id="tmp", name="Temp", prompt="p"))

    registry.unregister("tmp")

    assert registry.get("tmp") is None
    assert not store.skills.exists("tmp")
    with pytest.raises(NotFoundError):
        registry.unregister("tmp")


def test_register_disabled_removes_from_view(store):
    """Test re-registering a skill as disabled hides it."""
    registry = SkillRegistry(store.skills)
    registry.register(Skill(id="s", name="Skill", prompt="p"))

    registry.register(Skill(id="s", name="Skill", prompt="p", enabled=False))

    assert registry.list() == []
    assert store.skills.load("s").enabled is False
