"""Model client: role-tagged messages in, one completion text out.

``StructuredExtractor`` only talks to an object with ``complete`` /
``acomplete`` methods, so tests can hand it a scripted stub instead of a
real provider.
"""

from __future__ import annotations

import logging
from typing import Any, List, Literal, Optional, Sequence

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from pydantic import BaseModel

from quizgen.services.llm_service.errors import CompletionTransportError
from quizgen.services.llm_service.llm import get_llm

logger = logging.getLogger(__name__)


class ChatMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str


_MESSAGE_TYPES = {
    "system": SystemMessage,
    "user": HumanMessage,
    "assistant": AIMessage,
}


def to_langchain_messages(messages: Sequence[ChatMessage]) -> List[BaseMessage]:
    return [_MESSAGE_TYPES[m.role](content=m.content) for m in messages]


def response_text(response: Any) -> str:
    """Pull the text out of a chat-model or plain-LLM response."""
    content = getattr(response, "content", response)
    if isinstance(content, list):
        # Some providers return content as a list of parts
        parts = []
        for part in content:
            if isinstance(part, dict):
                parts.append(str(part.get("text", "")))
            else:
                parts.append(str(part))
        return "".join(parts)
    return str(content)


class ChatModelClient:
    """Completion client backed by the LangChain provider factory.

    The underlying provider instances are cached and read-only after
    construction, so one client can serve concurrent extractions.
    """

    def __init__(self, provider: Optional[str] = None, max_tokens: Optional[int] = None):
        self.provider = provider
        self.max_tokens = max_tokens

    def _llm(self, model: Optional[str], temperature: float, timeout: Optional[float]):
        return get_llm(
            temperature=temperature,
            model=model,
            timeout=timeout,
            max_tokens=self.max_tokens,
            provider=self.provider,
        )

    def complete(
        self,
        messages: Sequence[ChatMessage],
        *,
        temperature: float,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> str:
        """Request exactly one completion and return its text.

        Raises:
            CompletionTransportError: On any provider failure.
        """
        try:
            llm = self._llm(model, temperature, timeout)
            response = llm.invoke(to_langchain_messages(messages))
        except Exception as exc:
            logger.warning(f"Completion request failed: {type(exc).__name__}: {exc}")
            raise CompletionTransportError(f"{type(exc).__name__}: {exc}") from exc
        return response_text(response).strip()

    async def acomplete(
        self,
        messages: Sequence[ChatMessage],
        *,
        temperature: float,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> str:
        """Async version of :meth:`complete`. Cancellation propagates untouched."""
        try:
            llm = self._llm(model, temperature, timeout)
            response = await llm.ainvoke(to_langchain_messages(messages))
        except Exception as exc:
            logger.warning(f"Async completion request failed: {type(exc).__name__}: {exc}")
            raise CompletionTransportError(f"{type(exc).__name__}: {exc}") from exc
        return response_text(response).strip()
