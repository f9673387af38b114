from __future__ import annotations
import os
from typing import List

import httpx
from .base import CompletionMessage, CompletionProvider


class OllamaProvider(CompletionProvider):
    def __init__(
        self,
        *,
        temperature: float = 0.7,
        max_tokens: int = 500,
        timeout_s: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.model = os.getenv("OLLAMA_MODEL", "llama3.1").strip()
        self.base_url = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434").strip()
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout_s = timeout_s
        self._transport = transport

    async def complete(self, messages: List[CompletionMessage]) -> str:
        url = f"{self.base_url}/api/chat"
        payload = {
            "model": self.model,
            "stream": False,
            "messages": messages,
            "options": {"temperature": self.temperature, "num_predict": self.max_tokens},
        }

        async with httpx.AsyncClient(timeout=self.timeout_s, transport=self._transport) as client:
            r = await client.post(url, json=payload)
            r.raise_for_status()
            data = r.json()

        return (data.get("message") or {}).get("content") or ""
