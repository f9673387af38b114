from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Dict, List

CompletionMessage = Dict[str, str]
# OpenAI-style chat messages: {"role": "system" | "user" | "assistant", "content": "..."}


class CompletionProvider(ABC):
    @abstractmethod
    async def complete(self, messages: List[CompletionMessage]) -> str:
        """
        One stateless request/response round. Returns the reply TEXT; any
        transport or API error is raised to the caller.
        """
        raise NotImplementedError
