from __future__ import annotations

import logging
from typing import List

from astra.errors import RemoteFailure
from astra.models import ChatMessage
from storage.remote_store import Order, RemoteStore, owner_filter

logger = logging.getLogger(__name__)

TABLE = "chat_history"


class ChatHistoryRepository:
    """Append-only chat log per user."""

    def __init__(self, store: RemoteStore):
        self.store = store

    async def append(self, user: str, text: str, is_user: bool) -> ChatMessage:
        row = await self.store.insert(
            TABLE, {"message": text, "is_user": is_user, "user_id": user}
        )
        return ChatMessage.from_row(row)

    async def list(self, user: str) -> List[ChatMessage]:
        """Full history, oldest first; empty (logged) when the read fails."""
        try:
            rows = await self.store.select(
                TABLE, [owner_filter(user)], order=[Order("created_at"), Order("id")]
            )
        except RemoteFailure as e:
            logger.error(f"Error fetching chat history for user {user}: {e}")
            return []
        return [ChatMessage.from_row(r) for r in rows]
