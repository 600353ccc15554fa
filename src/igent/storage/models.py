"""
Persisted records: conversations, memories and skills.
"""

from datetime import datetime, timezone
from typing import Literal
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator

from ..llm.base import LLMMessage

MemoryType = Literal["fact", "preference", "context"]

MEMORY_TYPES: tuple[str, ...] = ("fact", "preference", "context")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_id() -> str:
    return uuid4().hex


def normalize_memory_type(value: object) -> str:
    """Map anything that is not a known memory type to ``fact``."""
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in MEMORY_TYPES:
            return lowered
    return "fact"


class Conversation(BaseModel):
    """A conversation's messages and metadata."""

    id: str
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    messages: list[LLMMessage] = Field(default_factory=list)
    summary: str = ""


class MemoryItem(BaseModel):
    """A long-term memory."""

    id: str = Field(default_factory=generate_id)
    content: str
    type: MemoryType = "fact"
    created_at: datetime = Field(default_factory=utcnow)
    relevance: float = Field(default=1.0, ge=0.0, le=1.0)

    @field_validator("type", mode="before")
    @classmethod
    def default_unknown_type(cls, v: object) -> str:
        return normalize_memory_type(v)


class Skill(BaseModel):
    """A prompt snippet added to the system prompt when the input matches."""

    id: str
    name: str
    description: str = ""
    prompt: str
    parameters: dict[str, str] = Field(default_factory=dict)
    enabled: bool = True
