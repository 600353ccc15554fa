"""
Core agent implementation.

The agent runs one conversational turn at a time:
1. Builds a system prompt from the configured base prompt, the current time
   and any matching skills
2. Asks the memory manager for the turn's context
3. Loops the model through tool calls until it answers in plain text
4. Stores the user's message and the final answer in the conversation
"""

import asyncio
import inspect
import time
from datetime import datetime
from typing import Awaitable, Callable

import structlog

from ..config import Settings, get_settings
from ..errors import (
    IterationLimitExceeded,
    NotFoundError,
    ProviderError,
    ToolDenied,
    ToolParseError,
    TurnTimeout,
)
from ..llm import BaseLLM, LLMMessage, ToolCall, create_llm
from ..memory import MemoryManager
from ..skills import SkillRegistry
from ..storage import Conversation, ConversationStore, JSONStore, MemoryItem, MemoryStore, Skill
from ..tools import BaseTool, ToolRegistry, create_default_registry, parse_tool_call

logger = structlog.get_logger()

DEFAULT_CONVERSATION = "default"

ConfirmFunc = Callable[[ToolCall], "bool | Awaitable[bool]"]
ChunkFunc = Callable[[str], None]


def format_timestamp(now: datetime) -> str:
    """Render a time as e.g. ``Monday, January 2, 2006 at 3:04 PM UTC``."""
    hour = now.hour % 12 or 12
    return f"{now:%A, %B} {now.day}, {now.year} at {hour}:{now:%M %p} {now.tzname() or ''}".rstrip()


class Agent:
    """Main agent class that runs conversational turns.

    Every collaborator can be injected; whatever is left out is built from
    ``settings``.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        llm: BaseLLM | None = None,
        tool_registry: ToolRegistry | None = None,
        conversations: ConversationStore | None = None,
        memories: MemoryStore | None = None,
        skills: SkillRegistry | None = None,
        memory_manager: MemoryManager | None = None,
        confirm: ConfirmFunc | None = None,
    ):
        self.settings = settings or get_settings()
        self.llm = llm or create_llm(settings=self.settings)

        if conversations is None or memories is None or skills is None:
            store = JSONStore(self.settings.ensure_work_dir())
            conversations = conversations or store.conversations
            memories = memories or store.memories
            if skills is None:
                skills = SkillRegistry(store.skills)
                skills.initialize_defaults()

        self.conversations = conversations
        self.memories = memories
        self.skills = skills
        self.tool_registry = tool_registry or create_default_registry(memories=memories)

        context = self.settings.context
        self.memory_manager = memory_manager or MemoryManager(
            conversations,
            memories,
            self.llm,
            max_messages=context.max_messages,
            max_tokens=context.max_tokens,
            summarize_when=context.summarize_when,
            keep_recent=context.keep_recent,
            summary_timeout=context.summary_timeout_seconds,
        )

        self.confirm = confirm
        self.max_tool_iterations = self.settings.agent.max_tool_iterations
        self.conversation_id = DEFAULT_CONVERSATION

        logger.info(
            "Agent ready",
            name=self.settings.agent.name,
            provider=self.llm.provider_name,
            model=self.llm.model,
            tools=len(self.tool_registry.list_tools()),
        )

    def set_conversation(self, conversation_id: str) -> Conversation:
        """Make ``conversation_id`` current, creating it if needed."""
        conversation_id = conversation_id or DEFAULT_CONVERSATION
        try:
            conversation = self.conversations.load(conversation_id)
            logger.debug("conversation loaded", id=conversation_id)
        except NotFoundError:
            logger.info("creating new conversation", id=conversation_id)
            conversation = Conversation(id=conversation_id)
            self.conversations.save(conversation)

        self.conversation_id = conversation_id
        return conversation

    def build_system_prompt(self, user_input: str, now: datetime | None = None) -> str:
        now = now or datetime.now().astimezone()
        prompt = self.settings.agent.system_prompt
        prompt += f"\n\nCurrent date and time: {format_timestamp(now)}"
        return self.skills.enhance_prompt(user_input, prompt)

    async def _confirm(self, call: ToolCall) -> bool:
        if self.confirm is None:
            return True
        if self.settings.agent.auto_approve_safe_tools and self.tool_registry.is_safe_tool(call.name):
            return True
        allowed = self.confirm(call)
        if inspect.isawaitable(allowed):
            allowed = await allowed
        return bool(allowed)

    async def converse(
        self,
        conversation_id: str,
        user_input: str,
        on_chunk: ChunkFunc | None = None,
        stream: bool = False,
    ) -> str:
        """Run one turn and return the final answer.

        Raises:
            ToolDenied: the user refused a tool call; nothing was stored.
            IterationLimitExceeded: the model kept calling tools.
            TurnTimeout: the turn ran past ``agent.turn_timeout_seconds``.
            ProviderError: the model call failed.
        """
        timeout = self.settings.agent.turn_timeout_seconds
        try:
            return await asyncio.wait_for(
                self._run_turn(conversation_id or DEFAULT_CONVERSATION, user_input, on_chunk, stream),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            logger.error("turn timed out", conversation_id=conversation_id, timeout=timeout)
            raise TurnTimeout(f"turn timed out after {timeout:g} seconds") from None

    async def _run_turn(
        self,
        conversation_id: str,
        user_input: str,
        on_chunk: ChunkFunc | None,
        stream: bool,
    ) -> str:
        logger.debug("chat request started", conversation_id=conversation_id, input_length=len(user_input))
        start = time.monotonic()

        try:
            conversation = self.conversations.load(conversation_id)
        except NotFoundError:
            conversation = Conversation(id=conversation_id)

        context = self.memory_manager.build_context(conversation, user_input)
        messages = [LLMMessage(role="system", content=self.build_system_prompt(user_input)), *context]
        logger.debug("context built", message_count=len(messages))

        if stream:
            reply, iterations = await self._stream_reply(messages, on_chunk), 1
        else:
            reply, iterations = await self._tool_loop(messages)
            if on_chunk is not None and reply:
                on_chunk(reply)

        await self.memory_manager.append_turn(conversation_id, user_input, reply)

        logger.info(
            "chat completed",
            conversation_id=conversation_id,
            response_length=len(reply),
            iterations=iterations,
            duration_ms=int((time.monotonic() - start) * 1000),
        )
        return reply

    async def _stream_reply(self, messages: list[LLMMessage], on_chunk: ChunkFunc | None) -> str:
        chunks = []
        try:
            async for chunk in self.llm.stream(messages):
                chunks.append(chunk)
                if on_chunk is not None:
                    on_chunk(chunk)
        except ProviderError:
            raise
        except Exception as e:
            raise ProviderError(str(e)) from e
        return "".join(chunks)

    async def _tool_loop(self, messages: list[LLMMessage]) -> tuple[str, int]:
        tools = self.tool_registry.get_definitions() or None

        for iteration in range(1, self.max_tool_iterations + 1):
            logger.debug("agent loop iteration", iteration=iteration)
            try:
                response = await self.llm.generate(messages, tools=tools)
            except ProviderError:
                raise
            except Exception as e:
                logger.error("LLM generation error", error=str(e))
                raise ProviderError(str(e)) from e

            if not response.has_tool_calls:
                return response.content, iteration

            # Calls without a function name cannot be answered, so drop them
            calls = [c for c in response.tool_calls if c.name]
            logger.info("processing tool calls", count=len(calls))
            messages.append(
                LLMMessage(role="assistant", content=response.content, tool_calls=calls or None)
            )

            for call in calls:
                messages.append(await self._run_tool_call(call))

        raise IterationLimitExceeded(self.max_tool_iterations)

    async def _run_tool_call(self, call: ToolCall) -> LLMMessage:
        try:
            parsed = parse_tool_call(call.id, call.name, call.arguments)
        except ToolParseError as e:
            logger.error("failed to parse tool call", tool=call.name, error=str(e))
            return LLMMessage(
                role="tool",
                content=f"Error parsing tool arguments: {e}",
                tool_call_id=call.id,
                name=call.name,
            )

        if not await self._confirm(parsed):
            logger.info("tool call denied", tool=call.name)
            raise ToolDenied(call.name)

        result = await self.tool_registry.execute(parsed)
        content = result.to_content()
        logger.info("tool executed", tool=call.name, success=result.success, output_length=len(content))
        return LLMMessage(role="tool", content=content, tool_call_id=call.id, name=call.name)

    async def chat(self, user_input: str) -> str:
        """Run a turn on the current conversation."""
        return await self.converse(self.conversation_id, user_input)

    async def chat_stream(self, user_input: str, on_chunk: ChunkFunc, stream: bool = False) -> str:
        """Run a turn on the current conversation, passing output to ``on_chunk``."""
        return await self.converse(self.conversation_id, user_input, on_chunk=on_chunk, stream=stream)

    # Management passthroughs

    def list_conversations(self) -> list[str]:
        return self.conversations.list_ids()

    def delete_conversation(self, conversation_id: str) -> None:
        self.conversations.delete(conversation_id)

    def add_memory(self, content: str, memory_type: str = "fact") -> MemoryItem:
        return self.memory_manager.add_memory(content, memory_type)

    def list_memories(self) -> list[MemoryItem]:
        return self.memory_manager.list_memories()

    def delete_memory(self, memory_id: str) -> None:
        self.memory_manager.delete_memory(memory_id)

    def list_skills(self) -> list[Skill]:
        return self.skills.list()

    def register_skill(self, skill: Skill) -> None:
        self.skills.register(skill)

    def unregister_skill(self, skill_id: str) -> None:
        self.skills.unregister(skill_id)

    def list_tools(self) -> list[BaseTool]:
        return self.tool_registry.list_tools()

    async def close(self, timeout: float | None = None) -> None:
        """Let background summarization finish before shutting down."""
        if timeout is None:
            timeout = self.settings.context.summary_timeout_seconds * 2
        await self.memory_manager.wait_for_background(timeout=timeout)
