"""
LanguageModelClient adapter over LangChain's ChatOpenAI.

Each rewrite is one [SystemMessage, HumanMessage] exchange bounded by
`rewrite_timeout_seconds`. Errors are not caught here: the variant generator
owns the retry / local-fallback decision.
"""

from __future__ import annotations

import asyncio
import logging
import time

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage

from docsynth.core.config import get_settings

logger = logging.getLogger(__name__)

REWRITE_SYSTEM_PROMPT = (
    "Rewrite the following sentence with similar meaning but different wording. "
    "Produce one rewritten variant only, no explanation."
)


def build_chat_model() -> BaseChatModel:
    """Configured ChatOpenAI instance for sentence rewriting."""
    from langchain_openai import ChatOpenAI

    settings = get_settings()
    return ChatOpenAI(
        model=settings.llm_model,
        api_key=settings.openai_api_key,
        temperature=settings.llm_temperature,
        max_tokens=settings.rewrite_max_tokens,
        timeout=settings.rewrite_timeout_seconds,
        max_retries=0,   # retries go through jobs.retry
    )


class ChatRewriteClient:
    """
    Usage:
        client = ChatRewriteClient()
        variant = await client.rewrite("The tenant shall pay rent monthly.")
    """

    def __init__(
        self,
        llm:     BaseChatModel | None = None,
        timeout: float | None = None,
    ) -> None:
        self._llm     = llm
        self._timeout = timeout if timeout is not None else get_settings().rewrite_timeout_seconds

    @property
    def llm(self) -> BaseChatModel:
        if self._llm is None:
            self._llm = build_chat_model()
        return self._llm

    async def rewrite(self, sentence: str) -> str:
        messages = [
            SystemMessage(content=REWRITE_SYSTEM_PROMPT),
            HumanMessage(content=sentence),
        ]
        t0 = time.monotonic()
        result = await asyncio.wait_for(self.llm.ainvoke(messages), timeout=self._timeout)

        content = result.content if isinstance(result.content, str) else ""
        logger.debug(
            "Rewrite | chars_in=%d chars_out=%d latency_ms=%.0f",
            len(sentence), len(content), (time.monotonic() - t0) * 1000,
        )
        return content.strip()
