"""
Tests for the context and memory manager.
"""

import asyncio
from unittest.mock import patch

import pytest

from igent.errors import NotFoundError, ProviderError, StorageError
from igent.llm.base import LLMMessage, LLMResponse
from igent.memory import MemoryManager, format_transcript, parse_extracted_memories
from igent.memory.manager import EXTRACT_INSTRUCTION, SUMMARIZE_INSTRUCTION
from igent.storage import Conversation, MemoryItem


def make_manager(store, llm, **kwargs) -> MemoryManager:
    return MemoryManager(store.conversations, store.memories, llm, **kwargs)


def numbered(count: int) -> list[LLMMessage]:
    roles = ("user", "assistant")
    return [LLMMessage(role=roles[i % 2], content=f"message {i}") for i in range(count)]


def test_build_context_order(store, mock_llm):
    """Test memories, then summary, then history, then the new user message."""
    store.memories.save(MemoryItem(content="The project deadline is Friday", type="fact", relevance=1.0))
    conversation = Conversation(id="c", summary="We planned a release.", messages=numbered(2))
    manager = make_manager(store, mock_llm)

    context = manager.build_context(conversation, "what is the deadline")

    assert [m.role for m in context] == ["system", "system", "user", "assistant", "user"]
    assert context[0].content == "Relevant context from memory:\n- [fact] The project deadline is Friday"
    assert context[1].content == "Previous conversation summary: We planned a release."
    assert context[-1] == LLMMessage(role="user", content="what is the deadline")

    # Words are split on whitespace, so trailing punctuation stops a match
    assert manager.recall("When is the deadline?") == []


def test_build_context_minimal(store, mock_llm):
    """Test an empty conversation yields just the user message."""
    manager = make_manager(store, mock_llm)

    context = manager.build_context(Conversation(id="c"), "hi")

    assert context == [LLMMessage(role="user", content="hi")]


def test_recall_thresholds(store, mock_llm):
    """Test stored relevance floor, score threshold and short-word filtering."""
    store.memories.save(MemoryItem(content="coffee is great", relevance=0.2))
    store.memories.save(MemoryItem(content="coffee beans", relevance=0.4))
    store.memories.save(MemoryItem(content="coffee with milk", relevance=0.6))
    store.memories.save(MemoryItem(content="the cat sat", relevance=1.0))
    manager = make_manager(store, mock_llm)

    recalled = manager.recall("coffee the cat")

    # 0.2 is below the relevance floor, 0.4 scores 0.08, short words never match
    assert [m.content for m in recalled] == ["coffee with milk"]


def test_recall_sorted_by_stored_relevance(store, mock_llm):
    """Test ordering uses stored relevance rather than match score."""
    store.memories.save(MemoryItem(content="python packaging tips", relevance=0.6))
    store.memories.save(MemoryItem(content="python", relevance=0.9))
    manager = make_manager(store, mock_llm)

    recalled = manager.recall("python packaging tips")

    assert [m.content for m in recalled] == ["python", "python packaging tips"]


def test_recall_capped_at_five(store, mock_llm):
    """Test at most five memories are recalled."""
    for i in range(7):
        store.memories.save(MemoryItem(content=f"travel note {i}", relevance=0.5 + i * 0.05))
    manager = make_manager(store, mock_llm)

    recalled = manager.recall("travel plans")

    assert len(recalled) == 5
    assert recalled[0].content == "travel note 6"


def test_recall_storage_failure_is_skipped(store, mock_llm):
    """Test a broken memory store does not break context assembly."""
    manager = make_manager(store, mock_llm)

    with patch.object(store.memories, "load_all", side_effect=StorageError("disk gone")):
        context = manager.build_context(Conversation(id="c"), "anything")

    assert context == [LLMMessage(role="user", content="anything")]


def test_window_respects_token_budget(store, mock_llm):
    """Test the history window stops at the token budget and keeps order."""
    # 40 chars = 14 tokens per message; "hi" = 4 tokens; budget = 560 - 4 - 500 = 56
    history = [LLMMessage(role="user", content=f"{i}" * 40) for i in range(10)]
    manager = make_manager(store, mock_llm, max_tokens=560)

    context = manager.build_context(Conversation(id="c", messages=history), "hi")

    assert context[:-1] == history[-4:]
    assert context[-1].content == "hi"


def test_window_respects_message_cap(store, mock_llm):
    """Test the history window never exceeds max_messages."""
    manager = make_manager(store, mock_llm, max_messages=3)

    context = manager.build_context(Conversation(id="c", messages=numbered(8)), "hi")

    assert [m.content for m in context] == ["message 5", "message 6", "message 7", "hi"]


def test_window_budget_too_small(store, mock_llm):
    """Test an exhausted budget still sends the user message."""
    manager = make_manager(store, mock_llm, max_tokens=100)

    context = manager.build_context(Conversation(id="c", messages=numbered(4)), "hi")

    assert context == [LLMMessage(role="user", content="hi")]


@pytest.mark.asyncio
async def test_summarization_and_extraction(store, mock_llm):
    """Test a conversation over the threshold is summarized and facts extracted."""
    conversation = Conversation(id="c", messages=numbered(6))
    store.conversations.save(conversation)
    mock_llm.generate.side_effect = [
        LLMResponse(content="They talked about tea."),
        LLMResponse(content=(
            "fact: User likes tea\n"
            "preference: Short answers\n"
            "no colon here\n"
            "weird: thing\n"
            "fact:   \n"
        )),
    ]
    manager = make_manager(store, mock_llm, summarize_when=5)

    manager.build_context(conversation, "hello")
    await manager.wait_for_background()

    stored = store.conversations.load("c")
    assert stored.summary == "They talked about tea."
    assert [m.content for m in stored.messages] == ["message 3", "message 4", "message 5"]

    summary_prompt = mock_llm.generate.call_args_list[0].args[0]
    assert summary_prompt[0].content == SUMMARIZE_INSTRUCTION
    assert summary_prompt[1].content == format_transcript(numbered(3))
    assert mock_llm.generate.call_args_list[1].args[0][0].content == EXTRACT_INSTRUCTION

    memories = sorted(store.memories.load_all(), key=lambda m: m.content)
    assert [(m.type, m.content) for m in memories] == [
        ("preference", "Short answers"),
        ("fact", "User likes tea"),
        ("fact", "thing"),
    ]
    assert all(m.relevance == 0.7 for m in memories)


@pytest.mark.asyncio
async def test_summarization_keeps_recent_messages(store, mock_llm):
    """Test long conversations keep the ten most recent messages."""
    store.conversations.save(Conversation(id="c", messages=numbered(30)))
    mock_llm.generate.side_effect = [LLMResponse(content="summary"), LLMResponse(content="")]
    manager = make_manager(store, mock_llm, summarize_when=30)

    await manager.summarize_conversation("c")

    stored = store.conversations.load("c")
    assert len(stored.messages) == 10
    assert stored.messages[0].content == "message 20"


@pytest.mark.asyncio
async def test_summarization_keeps_ten_when_just_over(store, mock_llm):
    """Test a conversation a little over ten messages still keeps ten."""
    store.conversations.save(Conversation(id="c", messages=numbered(14)))
    mock_llm.generate.side_effect = [LLMResponse(content="summary"), LLMResponse(content="")]
    manager = make_manager(store, mock_llm, summarize_when=12)

    batch = await manager.summarize_conversation("c")

    stored = store.conversations.load("c")
    assert len(batch) == 4
    assert len(stored.messages) == 10
    assert stored.messages[0].content == "message 4"
    assert stored.summary == "summary"


def test_build_context_without_event_loop(store, mock_llm):
    """Test context assembly outside an event loop skips summarization."""
    conversation = Conversation(id="c", messages=numbered(6))
    store.conversations.save(conversation)
    manager = make_manager(store, mock_llm, summarize_when=5)

    context = manager.build_context(conversation, "hello")

    assert context[-1] == LLMMessage(role="user", content="hello")
    assert len(context) == 7
    assert manager.schedule_summarization("c") is False
    assert not manager.is_summarizing("c")
    mock_llm.generate.assert_not_called()


@pytest.mark.asyncio
async def test_summarization_below_threshold_is_noop(store, mock_llm):
    """Test nothing happens below the threshold."""
    manager = make_manager(store, mock_llm, summarize_when=5)

    manager.build_context(Conversation(id="c", messages=numbered(4)), "hello")
    await manager.wait_for_background()

    mock_llm.generate.assert_not_awaited()


@pytest.mark.asyncio
async def test_summarization_failure_leaves_conversation(store, mock_llm):
    """Test a failed summary changes nothing and extracts nothing."""
    conversation = Conversation(id="c", messages=numbered(6))
    store.conversations.save(conversation)
    mock_llm.generate.side_effect = ProviderError("down")
    manager = make_manager(store, mock_llm, summarize_when=5)

    manager.build_context(conversation, "hello")
    await manager.wait_for_background()

    stored = store.conversations.load("c")
    assert stored.summary == ""
    assert stored.messages == conversation.messages
    assert mock_llm.generate.await_count == 1
    assert store.memories.load_all() == []


@pytest.mark.asyncio
async def test_extraction_failure_keeps_summary(store, mock_llm):
    """Test an extraction failure does not undo the summary."""
    store.conversations.save(Conversation(id="c", messages=numbered(6)))
    mock_llm.generate.side_effect = [LLMResponse(content="summary"), ProviderError("down")]
    manager = make_manager(store, mock_llm, summarize_when=5)

    assert manager.schedule_summarization("c") is True
    await manager.wait_for_background()

    assert store.conversations.load("c").summary == "summary"
    assert store.memories.load_all() == []


@pytest.mark.asyncio
async def test_summarization_single_flight(store, mock_llm):
    """Test only one summarization runs per conversation at a time."""
    store.conversations.save(Conversation(id="c", messages=numbered(6)))
    release = asyncio.Event()

    async def blocked(*args, **kwargs):
        await release.wait()
        return LLMResponse(content="summary")

    mock_llm.generate.side_effect = blocked
    manager = make_manager(store, mock_llm, summarize_when=5)

    assert manager.schedule_summarization("c") is True
    assert manager.schedule_summarization("c") is False
    assert manager.is_summarizing("c")

    release.set()
    await manager.wait_for_background()

    assert not manager.is_summarizing("c")
    # One summary call plus one extraction call
    assert mock_llm.generate.await_count == 2


@pytest.mark.asyncio
async def test_turn_appended_during_summarization_is_kept(store, mock_llm):
    """Test messages stored while a summary is in flight survive it."""
    store.conversations.save(Conversation(id="c", messages=numbered(6)))
    release = asyncio.Event()

    async def blocked(*args, **kwargs):
        await release.wait()
        return LLMResponse(content="summary")

    mock_llm.generate.side_effect = blocked
    manager = make_manager(store, mock_llm, summarize_when=5)

    manager.schedule_summarization("c")
    await asyncio.sleep(0)
    await manager.append_turn("c", "new question", "new answer")
    release.set()
    await manager.wait_for_background()

    stored = store.conversations.load("c")
    assert stored.summary == "summary"
    assert [m.content for m in stored.messages] == [
        "message 3", "message 4", "message 5", "new question", "new answer",
    ]


@pytest.mark.asyncio
async def test_summarization_skipped_when_history_replaced(store, mock_llm):
    """Test the summary is discarded if the summarized messages are gone."""
    store.conversations.save(Conversation(id="c", messages=numbered(6)))
    release = asyncio.Event()

    async def blocked(*args, **kwargs):
        await release.wait()
        return LLMResponse(content="summary")

    mock_llm.generate.side_effect = blocked
    manager = make_manager(store, mock_llm, summarize_when=5)

    task = asyncio.create_task(manager.summarize_conversation("c"))
    await asyncio.sleep(0)
    store.conversations.save(Conversation(id="c", messages=numbered(1)))
    release.set()

    assert await task == []
    stored = store.conversations.load("c")
    assert stored.summary == ""
    assert len(stored.messages) == 1


@pytest.mark.asyncio
async def test_append_turn_creates_conversation(store, mock_llm):
    """Test append_turn stores a user and assistant message."""
    manager = make_manager(store, mock_llm)

    await manager.append_turn("fresh", "hello", "hi there")

    stored = store.conversations.load("fresh")
    assert stored.messages == [
        LLMMessage(role="user", content="hello"),
        LLMMessage(role="assistant", content="hi there"),
    ]


def test_parse_extracted_memories():
    """Test extraction lines are split at the first colon."""
    items = parse_extracted_memories("Context: note: with colon\n\n  fact: trimmed  \nbad line")

    assert [(m.type, m.content, m.relevance) for m in items] == [
        ("context", "note: with colon", 0.7),
        ("fact", "trimmed", 0.7),
    ]
    assert items[0].id != items[1].id


def test_add_memory(store, mock_llm):
    """Test manual memories are stored with full relevance."""
    manager = make_manager(store, mock_llm)

    memory = manager.add_memory("User's name is Alice", "preference")

    assert memory.relevance == 1.0
    assert store.memories.load(memory.id) == memory


def test_add_memory_unknown_type(store, mock_llm):
    """Test unknown memory types fall back to fact."""
    manager = make_manager(store, mock_llm)

    assert manager.add_memory("something", "opinion").type == "fact"


def test_update_search_delete_memory(store, mock_llm):
    """Test updating, searching and deleting memories."""
    manager = make_manager(store, mock_llm)
    memory = manager.add_memory("Likes Coffee")

    updated = manager.update_memory(memory.id, content="Likes tea", relevance=1.5)
    assert updated.content == "Likes tea"
    assert updated.relevance == 1.0

    assert [m.id for m in manager.search_memories("TEA")] == [memory.id]
    assert manager.search_memories("coffee") == []

    manager.delete_memory(memory.id)
    assert manager.list_memories() == []
    with pytest.raises(NotFoundError):
        manager.delete_memory(memory.id)
