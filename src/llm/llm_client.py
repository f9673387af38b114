import logging
from typing import Optional

from astra.config import Settings
from llm.providers.base import CompletionProvider

logger = logging.getLogger(__name__)


def build_completion_provider(settings: Settings) -> Optional[CompletionProvider]:
    """Select the completion provider named by LLM_PROVIDER.

    Returns None when conversational delegation is disabled ("none") or the
    chosen provider cannot be configured; chat then answers with the fixed
    capability message instead.
    """
    name = settings.llm_provider
    if not settings.completion_enabled:
        return None

    kwargs = dict(
        temperature=settings.llm_temperature,
        max_tokens=settings.llm_max_tokens,
        timeout_s=settings.llm_timeout_s,
    )

    try:
        if name == "openai":
            from llm.providers.openai_provider import OpenAIProvider

            return OpenAIProvider(**kwargs)
        if name == "ollama":
            from llm.providers.ollama_provider import OllamaProvider

            return OllamaProvider(**kwargs)
        if name == "mock":
            from llm.providers.mock_provider import MockProvider

            return MockProvider()
    except RuntimeError as e:
        logger.warning(f"Completion provider {name!r} disabled: {e}")
        return None

    logger.warning(f"Unknown LLM_PROVIDER {name!r}; conversational replies disabled")
    return None
