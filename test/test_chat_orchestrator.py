from datetime import date, datetime

import pytest

from astra.errors import RemoteFailure, ValidationError
from astra.models import TaskStatus
from board.repository import TaskRepository
from chat.history import ChatHistoryRepository
from chat.orchestrator import (
    APOLOGY_MESSAGE,
    CAPABILITY_MESSAGE,
    EMPTY_COMPLETION_MESSAGE,
    GREETING_COMMANDS_ONLY,
    GREETING_WITH_COMPLETION,
    SIGN_IN_MESSAGE,
    SYSTEM_PROMPT,
    ChatOrchestrator,
    ChatRoute,
)
from scheduling.event_repository import EventRepository


def _orchestrator(store, completion=None, context_window=5):
    return ChatOrchestrator(
        ChatHistoryRepository(store),
        TaskRepository(store),
        EventRepository(store),
        completion=completion,
        context_window=context_window,
    )


@pytest.mark.asyncio
async def test_free_text_without_provider_gets_capability_message(store):
    chat = _orchestrator(store)

    reply = await chat.submit("u1", "What should I do today?")

    assert reply.route == ChatRoute.FALLBACK
    assert reply.text == CAPABILITY_MESSAGE
    history = await chat.load_history("u1")
    assert [(m.text, m.is_user) for m in history] == [
        ("What should I do today?", True),
        (CAPABILITY_MESSAGE, False),
    ]


@pytest.mark.asyncio
async def test_add_task_command_creates_task_and_bypasses_provider(store, fake_completion_factory):
    provider = fake_completion_factory("should not be used")
    chat = _orchestrator(store, completion=provider)

    reply = await chat.submit("u1", "add task Study for exam")

    assert reply.route == ChatRoute.COMMAND
    assert reply.text == 'Task "Study for exam" has been added to your to-do list.'
    assert provider.calls == []
    board = await TaskRepository(store).load("u1")
    todo = board.column(TaskStatus.TODO).tasks
    assert [t.content for t in todo] == ["Study for exam"]


@pytest.mark.asyncio
async def test_schedule_command_creates_event(store):
    chat = _orchestrator(store)

    reply = await chat.submit("u1", 'schedule on 2025-03-20 "Team Meeting"')

    assert reply.text == 'Event "Team Meeting" has been scheduled for 3/20/2025.'
    events = await EventRepository(store).list_month("u1", date(2025, 3, 1))
    assert [(e.title, e.date) for e in events] == [("Team Meeting", datetime(2025, 3, 20, 12, 0))]


@pytest.mark.asyncio
async def test_invalid_command_reply_is_persisted(store):
    chat = _orchestrator(store)

    reply = await chat.submit("u1", 'schedule on 2025-13-20 "Bad"')

    assert reply.route == ChatRoute.INVALID_COMMAND
    assert reply.text == "Invalid date format. Please use YYYY-MM-DD format."
    assert reply.reply_message is not None
    assert ("insert", "events") not in store.calls


@pytest.mark.asyncio
async def test_failed_task_creation_is_reported_in_reply(store):
    store.fail_on.add(("insert", "tasks"))
    chat = _orchestrator(store)

    reply = await chat.submit("u1", "add task Water plants")

    assert reply.route == ChatRoute.COMMAND
    assert reply.text.startswith("Failed to add task:")


@pytest.mark.asyncio
async def test_provider_reply_is_returned_and_persisted(store, fake_completion_factory):
    provider = fake_completion_factory("Try a 25 minute focus block.")
    chat = _orchestrator(store, completion=provider)

    reply = await chat.submit("u1", "How do I focus?")

    assert reply.route == ChatRoute.COMPLETION
    assert reply.text == "Try a 25 minute focus block."
    messages = provider.calls[0]
    assert messages[0] == {"role": "system", "content": SYSTEM_PROMPT}
    assert messages[-1] == {"role": "user", "content": "How do I focus?"}


@pytest.mark.asyncio
async def test_provider_failure_yields_apology(store, fake_completion_factory):
    provider = fake_completion_factory(error=RuntimeError("boom"))
    chat = _orchestrator(store, completion=provider)

    reply = await chat.submit("u1", "hello")

    assert reply.route == ChatRoute.APOLOGY
    assert reply.text == APOLOGY_MESSAGE
    history = await chat.load_history("u1")
    assert history[-1].text == APOLOGY_MESSAGE


@pytest.mark.asyncio
async def test_empty_provider_reply_is_replaced(store, fake_completion_factory):
    chat = _orchestrator(store, completion=fake_completion_factory("   "))
    reply = await chat.submit("u1", "hello")
    assert reply.text == EMPTY_COMPLETION_MESSAGE


@pytest.mark.asyncio
async def test_context_is_limited_to_recent_messages(store, fake_completion_factory):
    provider = fake_completion_factory("ok")
    chat = _orchestrator(store, completion=provider, context_window=5)

    for i in range(4):
        await chat.submit("u1", f"message {i}")
    await chat.submit("u1", "latest")

    messages = provider.calls[-1]
    # system prompt + 5 prior messages + the new one
    assert len(messages) == 7
    assert messages[1:-1] == [
        {"role": "assistant", "content": "ok"},
        {"role": "user", "content": "message 2"},
        {"role": "assistant", "content": "ok"},
        {"role": "user", "content": "message 3"},
        {"role": "assistant", "content": "ok"},
    ]


@pytest.mark.asyncio
async def test_signed_out_user_is_asked_to_sign_in(store, fake_completion_factory):
    provider = fake_completion_factory()
    chat = _orchestrator(store, completion=provider)

    reply = await chat.submit(None, "add task x")

    assert reply.route == ChatRoute.SIGN_IN
    assert reply.text == SIGN_IN_MESSAGE
    assert store.calls == []
    assert provider.calls == []


@pytest.mark.asyncio
async def test_blank_message_is_rejected(store):
    with pytest.raises(ValidationError):
        await _orchestrator(store).submit("u1", "   ")
    assert store.calls == []


@pytest.mark.asyncio
async def test_user_message_failure_propagates(store):
    store.fail_on.add(("insert", "chat_history"))
    with pytest.raises(RemoteFailure):
        await _orchestrator(store).submit("u1", "add task x")
    assert ("insert", "tasks") not in store.calls


@pytest.mark.asyncio
async def test_greeting_depends_on_provider(store, fake_completion_factory):
    assert (await _orchestrator(store).load_history("u1"))[0].text == GREETING_COMMANDS_ONLY
    with_provider = _orchestrator(store, completion=fake_completion_factory())
    assert (await with_provider.load_history(None))[0].text == GREETING_WITH_COMPLETION


@pytest.mark.asyncio
async def test_history_is_per_user(store):
    chat = _orchestrator(store)
    await chat.submit("u1", "mine")
    history = await chat.load_history("u2")
    assert len(history) == 1
    assert history[0].text == GREETING_COMMANDS_ONLY


@pytest.mark.asyncio
async def test_cached_conversation_never_exceeds_context_window(store, fake_completion_factory):
    provider = fake_completion_factory("ok")
    chat = _orchestrator(store, completion=provider, context_window=3)

    for i in range(6):
        await chat.submit("u1", f"message {i}")
        assert len(chat._conversations["u1"]) <= 3

    assert [m["content"] for m in provider.calls[-1][1:-1]] == ["ok", "message 4", "ok"]
    history = await chat.load_history("u1")
    assert len(history) == 12
    assert len(chat._conversations["u1"]) == 3


@pytest.mark.asyncio
async def test_conversation_cache_evicts_least_recent_user(store):
    chat = ChatOrchestrator(
        ChatHistoryRepository(store),
        TaskRepository(store),
        EventRepository(store),
        max_cached_conversations=2,
    )

    for user in ("u1", "u2", "u1", "u3"):
        await chat.submit(user, "hello")

    assert list(chat._conversations) == ["u1", "u3"]
