"""
Memory tools - let the model manage its own long-term memory.

All memory tools are classified safe: they only touch the agent's own
memory store.
"""

from typing import Any

from ..errors import NotFoundError, ToolExecutionError
from ..storage import MEMORY_TYPES, MemoryItem, MemoryStore, normalize_memory_type
from .base import BaseTool, RiskLevel, ToolParameter, get_str

TYPE_DESCRIPTION = "Memory type: fact, preference, or context"


def _format_memory(memory: MemoryItem) -> str:
    return f"- [{memory.type}] {memory.content} (id: {memory.id}, relevance: {memory.relevance:.2f})"


def _relevance(args: dict[str, Any], default: float | None) -> float | None:
    value = args.get("relevance")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return min(max(float(value), 0.0), 1.0)


class _MemoryTool(BaseTool):
    risk = RiskLevel.SAFE

    def __init__(self, store: MemoryStore):
        self.store = store

    def _search(self, query: str) -> list[MemoryItem]:
        needle = query.lower()
        matches = [m for m in self.store.load_all() if needle in m.content.lower()]
        return sorted(matches, key=lambda m: m.created_at)

    def _resolve(self, args: dict[str, Any]) -> MemoryItem:
        """Find the target memory by ``id`` or by the first ``search`` match."""
        memory_id = get_str(args, "id")
        query = get_str(args, "search")

        if memory_id:
            try:
                return self.store.load(memory_id)
            except NotFoundError:
                raise ToolExecutionError(f"memory not found: {memory_id}") from None
        if query:
            matches = self._search(query)
            if not matches:
                raise ToolExecutionError(f"no memory matches: {query}")
            return matches[0]

        raise ToolExecutionError("either id or search is required")


class MemoryAddTool(_MemoryTool):
    name = "memory_add"
    description = (
        "Store a piece of information in long-term memory so it can be recalled "
        "in future conversations."
    )
    parameters = [
        ToolParameter("content", "string", "The information to remember", required=True),
        ToolParameter("type", "string", TYPE_DESCRIPTION, enum=list(MEMORY_TYPES)),
        ToolParameter("relevance", "number", "Importance between 0 and 1 (default: 1.0)"),
    ]

    async def execute(self, args: dict[str, Any]) -> str:
        content = get_str(args, "content").strip()
        if not content:
            raise ToolExecutionError("content is required")

        memory = MemoryItem(
            content=content,
            type=normalize_memory_type(args.get("type")),
            relevance=_relevance(args, 1.0),
        )
        self.store.save(memory)
        return f"Memory stored successfully (id: {memory.id}, type: {memory.type})"


class MemoryListTool(_MemoryTool):
    name = "memory_list"
    description = "List stored memories, optionally filtered by type."
    parameters = [
        ToolParameter("type", "string", "Only list memories of this type", enum=list(MEMORY_TYPES)),
    ]

    async def execute(self, args: dict[str, Any]) -> str:
        memory_type = get_str(args, "type").lower()
        memories = sorted(self.store.load_all(), key=lambda m: m.created_at)
        if memory_type:
            memories = [m for m in memories if m.type == memory_type]
        if not memories:
            return "No memories stored."
        return f"{len(memories)} memories:\n" + "\n".join(_format_memory(m) for m in memories)


class MemorySearchTool(_MemoryTool):
    name = "memory_search"
    description = "Search long-term memory for entries containing the query (case-insensitive)."
    parameters = [
        ToolParameter("query", "string", "Text to look for", required=True),
    ]

    async def execute(self, args: dict[str, Any]) -> str:
        query = get_str(args, "query").strip()
        if not query:
            raise ToolExecutionError("query is required")

        matches = self._search(query)
        if not matches:
            return f"No memories found matching '{query}'."
        return f"Found {len(matches)} memories:\n" + "\n".join(_format_memory(m) for m in matches)


class MemoryUpdateTool(_MemoryTool):
    name = "memory_update"
    description = (
        "Update an existing memory, found by id or by the first entry matching "
        "a search string."
    )
    parameters = [
        ToolParameter("id", "string", "ID of the memory to update"),
        ToolParameter("search", "string", "Find the memory by content instead of id"),
        ToolParameter("content", "string", "New content"),
        ToolParameter("type", "string", TYPE_DESCRIPTION, enum=list(MEMORY_TYPES)),
        ToolParameter("relevance", "number", "New importance between 0 and 1"),
    ]

    async def execute(self, args: dict[str, Any]) -> str:
        memory = self._resolve(args)

        updates: dict[str, Any] = {}
        content = get_str(args, "content").strip()
        if content:
            updates["content"] = content
        if get_str(args, "type"):
            updates["type"] = normalize_memory_type(args["type"])
        relevance = _relevance(args, None)
        if relevance is not None:
            updates["relevance"] = relevance

        if not updates:
            raise ToolExecutionError("nothing to update: provide content, type or relevance")

        updated = memory.model_copy(update=updates)
        self.store.save(updated)
        return f"Memory updated successfully:\n{_format_memory(updated)}"


class MemoryDeleteTool(_MemoryTool):
    name = "memory_delete"
    description = "Delete a memory, found by id or by the first entry matching a search string."
    parameters = [
        ToolParameter("id", "string", "ID of the memory to delete"),
        ToolParameter("search", "string", "Find the memory by content instead of id"),
    ]

    async def execute(self, args: dict[str, Any]) -> str:
        memory = self._resolve(args)
        try:
            self.store.delete(memory.id)
        except NotFoundError:
            raise ToolExecutionError(f"memory not found: {memory.id}") from None
        return f"Memory deleted successfully: {memory.content}"


def create_memory_tools(store: MemoryStore) -> list[BaseTool]:
    """Create the memory management tools over one store."""
    return [
        MemoryAddTool(store),
        MemoryListTool(store),
        MemorySearchTool(store),
        MemoryUpdateTool(store),
        MemoryDeleteTool(store),
    ]
