"""
Context and memory management.

Builds the message list sent to the model for each turn out of recalled
long-term memories, the running conversation summary and a sliding window
of recent history. Once a conversation grows past a threshold its older
messages are folded into the summary in the background, and durable facts
are extracted from them into the memory store.
"""

import asyncio
import time

import structlog

from ..errors import ExtractionError, NotFoundError, StorageError, SummarizationError
from ..llm.base import BaseLLM, LLMMessage, estimate_tokens
from ..storage import (
    Conversation,
    ConversationStore,
    MemoryItem,
    MemoryStore,
    normalize_memory_type,
)

logger = structlog.get_logger()

# Recall thresholds
MIN_RECALL_RELEVANCE = 0.3
MIN_RECALL_SCORE = 0.1
WORD_MATCH_SCORE = 0.2
MIN_KEYWORD_LENGTH = 4
MAX_RECALLED_MEMORIES = 5

# Tokens held back from the window for the model's reply
RESPONSE_RESERVE_TOKENS = 500

MANUAL_RELEVANCE = 1.0
EXTRACTED_RELEVANCE = 0.7

MEMORY_HEADER = "Relevant context from memory:\n"
SUMMARY_PREFIX = "Previous conversation summary: "

SUMMARIZE_INSTRUCTION = (
    "Summarize the following conversation concisely, preserving key facts, "
    "decisions, and context. Be brief but comprehensive."
)

EXTRACT_INSTRUCTION = """Extract important facts, preferences, or context from this conversation that should be remembered for future interactions.
Return each fact on a new line, prefixed with its type (fact/preference/context).
Example:
fact: User's name is Alice
preference: User prefers concise responses
context: Working on a Python project"""


def format_transcript(messages: list[LLMMessage]) -> str:
    """Render messages as ``role: content`` blocks for the summarizer."""
    return "\n\n".join(f"{m.role}: {m.content}" for m in messages)


def format_memories(memories: list[MemoryItem]) -> str:
    return "\n".join(f"- [{m.type}] {m.content}" for m in memories)


def parse_extracted_memories(text: str) -> list[MemoryItem]:
    """Turn ``type: content`` lines into new memories.

    Lines without a colon or without content are ignored, and unknown
    types are stored as facts.
    """
    items = []
    for line in text.splitlines():
        line = line.strip()
        if not line or ":" not in line:
            continue
        memory_type, content = line.split(":", 1)
        content = content.strip()
        if not content:
            continue
        items.append(
            MemoryItem(
                content=content,
                type=normalize_memory_type(memory_type),
                relevance=EXTRACTED_RELEVANCE,
            )
        )
    return items


class MemoryManager:
    """Assembles per-turn context and maintains long-term memory."""

    def __init__(
        self,
        conversations: ConversationStore,
        memories: MemoryStore,
        llm: BaseLLM,
        max_messages: int = 50,
        max_tokens: int = 4000,
        summarize_when: int = 30,
        keep_recent: int = 10,
        summary_timeout: float = 30.0,
    ):
        self.conversations = conversations
        self.memories = memories
        self.llm = llm
        self.max_messages = max_messages
        self.max_tokens = max_tokens
        self.summarize_when = summarize_when
        self.keep_recent = keep_recent
        self.summary_timeout = summary_timeout

        self._tasks: dict[str, asyncio.Task] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock(self, conversation_id: str) -> asyncio.Lock:
        lock = self._locks.get(conversation_id)
        if lock is None:
            lock = self._locks[conversation_id] = asyncio.Lock()
        return lock

    # Context assembly

    def build_context(self, conversation: Conversation, user_input: str) -> list[LLMMessage]:
        """Build the ordered context for a new user message.

        The result holds, in order: recalled memories, the conversation
        summary, the recent history window and finally the new user message.
        May schedule background summarization as a side effect.
        """
        logger.debug("building context", conversation_id=conversation.id)
        context: list[LLMMessage] = []

        recalled = self.recall(user_input)
        if recalled:
            logger.debug("relevant memories found", count=len(recalled))
            context.append(LLMMessage(role="system", content=MEMORY_HEADER + format_memories(recalled)))

        if conversation.summary:
            context.append(LLMMessage(role="system", content=SUMMARY_PREFIX + conversation.summary))

        user_message = LLMMessage(role="user", content=user_input)
        window = self.recent_messages(conversation.messages, user_message)
        logger.debug("recent messages added", count=len(window))
        context.extend(window)
        context.append(user_message)

        if len(conversation.messages) >= self.summarize_when:
            logger.info(
                "summarization threshold reached",
                conversation_id=conversation.id,
                message_count=len(conversation.messages),
                threshold=self.summarize_when,
            )
            self.schedule_summarization(conversation.id)

        return context

    def recall(self, query: str) -> list[MemoryItem]:
        """Keyword recall over stored memories.

        Each query word of four or more characters found in a memory adds
        to its score, weighted by the memory's stored relevance. Survivors
        are ordered by stored relevance, not by score.
        """
        try:
            memories = self.memories.load_all()
        except StorageError as e:
            logger.warning("memory recall skipped", error=str(e))
            return []

        words = [w for w in query.lower().split() if len(w) >= MIN_KEYWORD_LENGTH]
        relevant = []
        for memory in memories:
            if memory.relevance < MIN_RECALL_RELEVANCE:
                continue
            content = memory.content.lower()
            matches = sum(1 for w in words if w in content)
            score = WORD_MATCH_SCORE * matches * memory.relevance
            if score > MIN_RECALL_SCORE:
                relevant.append(memory)

        relevant.sort(key=lambda m: m.relevance, reverse=True)
        return relevant[:MAX_RECALLED_MEMORIES]

    def recent_messages(self, messages: list[LLMMessage], user_message: LLMMessage) -> list[LLMMessage]:
        """Newest history that fits the token budget and message cap, oldest first."""
        budget = self.max_tokens - estimate_tokens([user_message]) - RESPONSE_RESERVE_TOKENS

        window: list[LLMMessage] = []
        used = 0
        for message in reversed(messages):
            if len(window) >= self.max_messages:
                break
            tokens = estimate_tokens([message])
            if used + tokens > budget:
                break
            window.append(message)
            used += tokens

        window.reverse()
        return window

    # Persistence of turns

    async def append_turn(self, conversation_id: str, user_input: str, reply: str) -> Conversation:
        """Append one user/assistant exchange to the stored conversation."""
        async with self._lock(conversation_id):
            try:
                conversation = self.conversations.load(conversation_id)
            except NotFoundError:
                conversation = Conversation(id=conversation_id)
            conversation.messages.append(LLMMessage(role="user", content=user_input))
            conversation.messages.append(LLMMessage(role="assistant", content=reply))
            self.conversations.save(conversation)
        return conversation

    # Background summarization

    def schedule_summarization(self, conversation_id: str) -> bool:
        """Start summarizing a conversation unless a pass is already running.

        Returns True when a new background task was started.
        """
        running = self._tasks.get(conversation_id)
        if running is not None and not running.done():
            logger.debug("summarization already in flight", conversation_id=conversation_id)
            return False

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("no running event loop, summarization skipped", conversation_id=conversation_id)
            return False

        task = loop.create_task(self._run_summarization(conversation_id), name=f"summarize-{conversation_id}")
        self._tasks[conversation_id] = task
        task.add_done_callback(lambda t: self._forget_task(conversation_id, t))
        return True

    def _forget_task(self, conversation_id: str, task: asyncio.Task) -> None:
        if self._tasks.get(conversation_id) is task:
            del self._tasks[conversation_id]

    def is_summarizing(self, conversation_id: str) -> bool:
        task = self._tasks.get(conversation_id)
        return task is not None and not task.done()

    async def _run_summarization(self, conversation_id: str) -> None:
        try:
            batch = await self.summarize_conversation(conversation_id)
        except (SummarizationError, StorageError) as e:
            logger.error("summarization failed", conversation_id=conversation_id, error=str(e))
            return

        if not batch:
            return

        try:
            await self.extract_memories(batch)
        except ExtractionError as e:
            logger.error("memory extraction failed", conversation_id=conversation_id, error=str(e))

    async def _complete(self, instruction: str, messages: list[LLMMessage]) -> str:
        prompt = [
            LLMMessage(role="system", content=instruction),
            LLMMessage(role="user", content=format_transcript(messages)),
        ]
        response = await asyncio.wait_for(self.llm.generate(prompt), timeout=self.summary_timeout)
        return response.content

    async def summarize_conversation(self, conversation_id: str) -> list[LLMMessage]:
        """Fold the older part of a conversation into its summary.

        Returns the summarized messages, or an empty list when there was
        nothing to do. The stored conversation is only rewritten if the
        summarized messages are still at its head.

        Raises:
            SummarizationError: if the model call fails or times out.
        """
        conversation = self.conversations.load(conversation_id)
        messages = conversation.messages
        if len(messages) < self.summarize_when:
            return []

        # Short conversations keep half so there is always something to fold
        keep = self.keep_recent if len(messages) > self.keep_recent else len(messages) // 2
        batch = messages[: len(messages) - keep]
        if not batch:
            return []

        logger.info(
            "starting conversation summarization",
            conversation_id=conversation_id,
            message_count=len(messages),
            summarizing=len(batch),
        )
        start = time.monotonic()

        try:
            summary = await self._complete(SUMMARIZE_INSTRUCTION, batch)
        except asyncio.TimeoutError:
            raise SummarizationError(f"summary timed out after {self.summary_timeout} seconds") from None
        except Exception as e:
            raise SummarizationError(str(e)) from e

        if not summary.strip():
            raise SummarizationError("empty summary")

        async with self._lock(conversation_id):
            current = self.conversations.load(conversation_id)
            if current.messages[: len(batch)] != batch:
                logger.warning("conversation changed during summarization", conversation_id=conversation_id)
                return []
            current.summary = summary
            current.messages = current.messages[len(batch):]
            self.conversations.save(current)

        logger.info(
            "summarization completed",
            conversation_id=conversation_id,
            summary_length=len(summary),
            duration_ms=int((time.monotonic() - start) * 1000),
        )
        return batch

    async def extract_memories(self, messages: list[LLMMessage]) -> list[MemoryItem]:
        """Ask the model for durable facts in ``messages`` and store them.

        Raises:
            ExtractionError: if the model call fails or times out.
        """
        logger.debug("extracting memories", message_count=len(messages))
        try:
            text = await self._complete(EXTRACT_INSTRUCTION, messages)
        except asyncio.TimeoutError:
            raise ExtractionError(f"extraction timed out after {self.summary_timeout} seconds") from None
        except Exception as e:
            raise ExtractionError(str(e)) from e

        saved = []
        for item in parse_extracted_memories(text):
            try:
                self.memories.save(item)
            except StorageError as e:
                logger.error("failed to save memory", type=item.type, error=str(e))
                continue
            saved.append(item)

        if saved:
            logger.info("memories extracted", count=len(saved))
        return saved

    async def wait_for_background(self, timeout: float | None = None) -> None:
        """Wait for in-flight summarization tasks to finish."""
        tasks = [t for t in self._tasks.values() if not t.done()]
        if not tasks:
            return
        done, pending = await asyncio.wait(tasks, timeout=timeout)
        if pending:
            logger.warning("background tasks still running", count=len(pending))

    # Manual memory management

    def add_memory(self, content: str, memory_type: str = "fact") -> MemoryItem:
        memory = MemoryItem(content=content, type=memory_type, relevance=MANUAL_RELEVANCE)
        self.memories.save(memory)
        logger.info("memory added", type=memory.type, content_length=len(content))
        return memory

    def update_memory(
        self,
        memory_id: str,
        content: str | None = None,
        memory_type: str | None = None,
        relevance: float | None = None,
    ) -> MemoryItem:
        memory = self.memories.load(memory_id)
        updates: dict = {}
        if content is not None:
            updates["content"] = content
        if memory_type is not None:
            updates["type"] = normalize_memory_type(memory_type)
        if relevance is not None:
            updates["relevance"] = min(max(relevance, 0.0), 1.0)
        updated = memory.model_copy(update=updates)
        self.memories.save(updated)
        return updated

    def delete_memory(self, memory_id: str) -> None:
        self.memories.delete(memory_id)

    def list_memories(self) -> list[MemoryItem]:
        return sorted(self.memories.load_all(), key=lambda m: m.created_at)

    def search_memories(self, query: str) -> list[MemoryItem]:
        needle = query.lower()
        return [m for m in self.list_memories() if needle in m.content.lower()]
