from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Optional

from astra.config import Settings
from auth.session import LocalSession
from board.controller import BoardController
from board.repository import TaskRepository
from chat.history import ChatHistoryRepository
from chat.orchestrator import ChatOrchestrator
from llm.providers.base import CompletionProvider
from scheduling.event_repository import EventRepository
from storage.remote_store import RemoteStore

logger = logging.getLogger(__name__)


class BoardRegistry:
    """
    One BoardController per signed-in user, created on first use.

    At most `max_boards` controllers stay open; the least recently used one is
    closed when a new user would exceed that.
    """

    def __init__(self, repository: TaskRepository, max_boards: int = 1000):
        self.repository = repository
        self.max_boards = max_boards
        self._boards: "OrderedDict[str, BoardController]" = OrderedDict()

    async def get(self, user: str) -> BoardController:
        controller = self._boards.get(user)
        if controller is not None:
            self._boards.move_to_end(user)
            return controller

        controller = BoardController(self.repository, LocalSession(user))
        self._boards[user] = controller
        while len(self._boards) > max(1, self.max_boards):
            evicted_user, evicted = self._boards.popitem(last=False)
            logger.debug(f"Closing idle board of user {evicted_user}")
            await evicted.close()
        return controller

    async def close_all(self) -> None:
        for controller in self._boards.values():
            await controller.close()
        self._boards.clear()

    def __len__(self) -> int:
        return len(self._boards)


@dataclass
class AppServices:
    """Everything the routers need, constructed once and injected."""

    settings: Settings
    store: RemoteStore
    tasks: TaskRepository
    events: EventRepository
    history: ChatHistoryRepository
    chat: ChatOrchestrator
    boards: BoardRegistry
    completion: Optional[CompletionProvider] = None

    async def close(self) -> None:
        await self.boards.close_all()
        await self.store.close()


def build_services(
    settings: Settings,
    store: RemoteStore,
    completion: Optional[CompletionProvider] = None,
) -> AppServices:
    tasks = TaskRepository(store)
    events = EventRepository(store)
    history = ChatHistoryRepository(store)
    chat = ChatOrchestrator(
        history,
        tasks,
        events,
        completion=completion,
        context_window=settings.chat_context_window,
        max_cached_conversations=settings.max_cached_users,
    )
    logger.info(
        f"Services ready (store={type(store).__name__}, "
        f"completion={type(completion).__name__ if completion else 'disabled'})"
    )
    return AppServices(
        settings=settings,
        store=store,
        tasks=tasks,
        events=events,
        history=history,
        chat=chat,
        boards=BoardRegistry(tasks, max_boards=settings.max_cached_users),
        completion=completion,
    )
