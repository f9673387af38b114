"""
Chat message pipeline.

    received -> user message persisted -> command executed | completion | fallback
             -> response persisted -> returned

The user's message is always stored before any reply is computed, so a
failure mid-flight can lose the reply but never the user's own input.
"""

from __future__ import annotations

import logging
import time
from collections import OrderedDict, deque
from dataclasses import dataclass
from enum import Enum
from typing import Deque, Iterable, List, Optional

from astra.errors import RemoteFailure, ValidationError
from astra.models import ChatMessage, TaskStatus
from board.repository import TaskRepository
from chat.history import ChatHistoryRepository
from chat.interpreter import CreateTask, ScheduleEvent, interpret
from llm.providers.base import CompletionMessage, CompletionProvider
from scheduling.event_repository import EventRepository

logger = logging.getLogger(__name__)

DEFAULT_CONTEXT_WINDOW = 5
DEFAULT_CACHED_CONVERSATIONS = 1000

SYSTEM_PROMPT = """You are ASTRA AI, a helpful, friendly and polite virtual assistant. Your role is to:
1. Answer the user's questions on any topic; try to answer yourself before pointing to other websites.
2. Help manage the user's to-do list and schedule events.
3. Motivate and encourage productivity; suggest a plan when the user is working on something.
4. Keep responses clear and easy to read, with line breaks and indentation.
5. Avoid harmful, biased or offensive responses; redirect out-of-scope requests to a supported feature.

Tell users about the available commands:
- "Add task [description]" adds a new task to the to-do list
- 'Schedule on YYYY-MM-DD "Event Title"' schedules a new event"""

CAPABILITY_MESSAGE = (
    "I can only understand specific commands. Try:\n"
    "- Add task <task description>\n"
    '- Schedule on YYYY-MM-DD "Event Title"'
)
APOLOGY_MESSAGE = "Sorry, I'm having trouble connecting to my brain right now."
EMPTY_COMPLETION_MESSAGE = "I couldn't process that request."
SIGN_IN_MESSAGE = "Please sign in to use commands."

GREETING_WITH_COMPLETION = (
    "Hi! I'm your AI virtual assistant. I can help you with answering questions, "
    "task management and scheduling events. How can I assist you today?"
)
GREETING_COMMANDS_ONLY = (
    "Hi! I'm your command assistant. I can help you manage tasks and schedule "
    "events. Try commands like:\n"
    "- Add task Study for exam\n"
    '- Schedule on 2025-03-20 "Team Meeting"'
)


class ChatRoute(str, Enum):
    COMMAND = "command"
    INVALID_COMMAND = "invalid_command"
    COMPLETION = "completion"
    APOLOGY = "apology"
    FALLBACK = "fallback"
    SIGN_IN = "sign_in"


@dataclass(frozen=True)
class ChatReply:
    text: str
    route: ChatRoute
    user_message: Optional[ChatMessage] = None
    reply_message: Optional[ChatMessage] = None


def _format_day(value) -> str:
    return f"{value.month}/{value.day}/{value.year}"


class ChatOrchestrator:
    def __init__(
        self,
        history: ChatHistoryRepository,
        tasks: TaskRepository,
        events: EventRepository,
        completion: Optional[CompletionProvider] = None,
        context_window: int = DEFAULT_CONTEXT_WINDOW,
        max_cached_conversations: int = DEFAULT_CACHED_CONVERSATIONS,
    ):
        self.history = history
        self.tasks = tasks
        self.events = events
        self.completion = completion
        self.context_window = context_window
        self.max_cached_conversations = max_cached_conversations

        # Most recent messages per user, at most `context_window` each; least
        # recently used users are evicted first.
        self._conversations: "OrderedDict[str, Deque[ChatMessage]]" = OrderedDict()

    def greeting(self) -> ChatMessage:
        text = GREETING_WITH_COMPLETION if self.completion else GREETING_COMMANDS_ONLY
        return ChatMessage(text=text, is_user=False)

    def _remember(self, user: str, messages: Iterable[ChatMessage]) -> Deque[ChatMessage]:
        recent = deque(messages, maxlen=max(0, self.context_window))
        self._conversations[user] = recent
        self._conversations.move_to_end(user)
        while len(self._conversations) > self.max_cached_conversations:
            self._conversations.popitem(last=False)
        return recent

    async def _conversation(self, user: str) -> Deque[ChatMessage]:
        if user in self._conversations:
            self._conversations.move_to_end(user)
            return self._conversations[user]
        return self._remember(user, await self.history.list(user))

    async def load_history(self, user: Optional[str]) -> List[ChatMessage]:
        """Conversation of `user`; a greeting when there is nothing yet."""
        if not user:
            return [self.greeting()]
        # Always re-read: other clients may have appended messages.
        messages = await self.history.list(user)
        self._remember(user, messages)
        return messages or [self.greeting()]

    async def submit(self, user: Optional[str], text: str) -> ChatReply:
        if not text or not text.strip():
            raise ValidationError("Message must not be empty.")
        if not user:
            return ChatReply(text=SIGN_IN_MESSAGE, route=ChatRoute.SIGN_IN)

        conversation = await self._conversation(user)
        prior = list(conversation)

        user_message = await self.history.append(user, text, is_user=True)
        conversation.append(user_message)

        response, route = await self._respond(user, text, prior, user_message)

        reply_message = await self.history.append(user, response, is_user=False)
        conversation.append(reply_message)

        logger.info(f"Chat reply for user {user} via {route.value}")
        return ChatReply(
            text=response,
            route=route,
            user_message=user_message,
            reply_message=reply_message,
        )

    async def _respond(
        self,
        user: str,
        text: str,
        prior: List[ChatMessage],
        user_message: ChatMessage,
    ) -> tuple[str, ChatRoute]:
        try:
            command = interpret(text)
        except ValidationError as e:
            return e.message, ChatRoute.INVALID_COMMAND

        if isinstance(command, CreateTask):
            return await self._create_task(user, command), ChatRoute.COMMAND
        if isinstance(command, ScheduleEvent):
            return await self._schedule_event(user, command), ChatRoute.COMMAND

        if self.completion is None:
            return CAPABILITY_MESSAGE, ChatRoute.FALLBACK

        return await self._delegate(prior, user_message)

    async def _create_task(self, user: str, command: CreateTask) -> str:
        try:
            await self.tasks.create(user, TaskStatus.TODO, command.content)
        except RemoteFailure as e:
            logger.error(f"Error adding task from chat: {e}")
            return f"Failed to add task: {e.message}"
        return f'Task "{command.content}" has been added to your to-do list.'

    async def _schedule_event(self, user: str, command: ScheduleEvent) -> str:
        try:
            await self.events.add(user, command.title, command.date)
        except RemoteFailure as e:
            logger.error(f"Error scheduling event from chat: {e}")
            return f"Failed to schedule event: {e.message}"
        return f'Event "{command.title}" has been scheduled for {_format_day(command.date)}.'

    def build_context(
        self, prior: List[ChatMessage], user_message: ChatMessage
    ) -> List[CompletionMessage]:
        window = prior[-self.context_window:] if self.context_window > 0 else []
        messages: List[CompletionMessage] = [{"role": "system", "content": SYSTEM_PROMPT}]
        messages.extend({"role": m.role, "content": m.text} for m in window)
        messages.append({"role": "user", "content": user_message.text})
        return messages

    async def _delegate(
        self, prior: List[ChatMessage], user_message: ChatMessage
    ) -> tuple[str, ChatRoute]:
        messages = self.build_context(prior, user_message)
        start = time.time()
        try:
            content = await self.completion.complete(messages)
        except Exception as e:
            logger.error(f"Error calling completion provider: {e}")
            return APOLOGY_MESSAGE, ChatRoute.APOLOGY
        finally:
            logger.debug(f"Completion round took {time.time() - start:.2f}s")

        if not content or not content.strip():
            return EMPTY_COMPLETION_MESSAGE, ChatRoute.COMPLETION
        return content, ChatRoute.COMPLETION
