"""Persistence for conversations, memories and skills."""

from .json_store import ConversationStore, JSONStore, MemoryStore, RecordStore, SkillStore
from .models import (
    MEMORY_TYPES,
    Conversation,
    MemoryItem,
    Skill,
    generate_id,
    normalize_memory_type,
)

__all__ = [
    "JSONStore",
    "RecordStore",
    "ConversationStore",
    "MemoryStore",
    "SkillStore",
    "Conversation",
    "MemoryItem",
    "Skill",
    "MEMORY_TYPES",
    "generate_id",
    "normalize_memory_type",
]
