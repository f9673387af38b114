from __future__ import annotations
from typing import List

from llm.providers.base import CompletionMessage, CompletionProvider


class MockProvider(CompletionProvider):
    """
    Offline provider for local runs and demos: answers deterministically
    from the last user message, no network.
    """

    def __init__(self):
        self.calls: List[List[CompletionMessage]] = []

    async def complete(self, messages: List[CompletionMessage]) -> str:
        self.calls.append(list(messages))

        last_user = next(
            (m["content"] for m in reversed(messages) if m.get("role") == "user"),
            "",
        )
        lower = last_user.lower()

        if "plan" in lower:
            return "Here is a simple plan:\n1. Break the work into small steps\n2. Add each step as a task\n3. Start with the first one today"
        if "hello" in lower or "hi" == lower.strip():
            return "Hi! How can I help you today?"

        return f"You said: {last_user}"
