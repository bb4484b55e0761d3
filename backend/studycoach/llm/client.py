"""
LLM invocation layer.

Stateless wrapper around Gemini chat models: complexity-based model choice,
per-call timeout and uniform retry with exponential backoff.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_google_genai import ChatGoogleGenerativeAI

from studycoach.core.errors import LLMError, LLMTimeoutError

logger = logging.getLogger(__name__)

ChatFactory = Callable[[str, float, int], BaseChatModel]


@dataclass
class LLMResponse:
    content: str
    model: str
    latency_ms: int


class LLMClient:
    """
    `messages` are plain dicts: {"role": "system" | "user" | "assistant", "content": str}.
    `chat_factory(model, temperature, max_tokens)` builds the chat model; the
    default builds ChatGoogleGenerativeAI.
    """

    def __init__(self, api_key: str = "", model: str = "gemini-2.5-flash",
                 fast_model: str = "gemini-2.5-flash-lite", timeout_seconds: float = 30.0,
                 retry_attempts: int = 2, complexity_threshold: float = 0.4,
                 default_max_tokens: int = 1024, default_temperature: float = 0.7,
                 backoff_seconds: float = 0.5, chat_factory: Optional[ChatFactory] = None):
        self.api_key = api_key
        self.model = model
        self.fast_model = fast_model
        self.timeout_seconds = timeout_seconds
        self.retry_attempts = max(1, retry_attempts)
        self.complexity_threshold = complexity_threshold
        self.default_max_tokens = default_max_tokens
        self.default_temperature = default_temperature
        self.backoff_seconds = backoff_seconds
        self._chat_factory = chat_factory
        self._models: Dict[Tuple[str, float, int], BaseChatModel] = {}
        self.request_count = 0
        self.failure_count = 0

    @classmethod
    def from_settings(cls, settings, chat_factory: Optional[ChatFactory] = None) -> "LLMClient":
        return cls(
            api_key=settings.GOOGLE_API_KEY,
            model=settings.GEMINI_MODEL,
            fast_model=settings.GEMINI_FAST_MODEL,
            timeout_seconds=settings.LLM_TIMEOUT_SECONDS,
            retry_attempts=settings.LLM_RETRY_ATTEMPTS,
            complexity_threshold=settings.LLM_COMPLEXITY_THRESHOLD,
            chat_factory=chat_factory,
        )

    def _build_chat(self, model: str, temperature: float, max_tokens: int) -> BaseChatModel:
        if self._chat_factory is not None:
            return self._chat_factory(model, temperature, max_tokens)
        if not self.api_key:
            raise LLMError("GOOGLE_API_KEY is not configured")
        return ChatGoogleGenerativeAI(
            model=model,
            temperature=temperature,
            max_output_tokens=max_tokens,
            google_api_key=self.api_key,
        )

    def _chat(self, model: str, temperature: float, max_tokens: int) -> BaseChatModel:
        key = (model, temperature, max_tokens)
        if key not in self._models:
            self._models[key] = self._build_chat(model, temperature, max_tokens)
        return self._models[key]

    @staticmethod
    def to_langchain(messages: List[Dict[str, str]]) -> List[BaseMessage]:
        converted: List[BaseMessage] = []
        for message in messages:
            role = message.get("role", "user")
            content = message.get("content", "")
            if role == "system":
                converted.append(SystemMessage(content=content))
            elif role == "assistant":
                converted.append(AIMessage(content=content))
            else:
                converted.append(HumanMessage(content=content))
        return converted

    @staticmethod
    def _text(content: Any) -> str:
        # Gemini may return a list of content parts
        if isinstance(content, list):
            parts = []
            for part in content:
                if isinstance(part, dict):
                    parts.append(str(part.get("text", "")))
                else:
                    parts.append(str(part))
            return "".join(parts)
        return str(content or "")

    def select_model(self, complexity: float) -> str:
        return self.fast_model if complexity < self.complexity_threshold else self.model

    async def call(self, messages: List[Dict[str, str]], model: Optional[str] = None,
                   max_tokens: Optional[int] = None, temperature: Optional[float] = None,
                   timeout: Optional[float] = None) -> LLMResponse:
        model = model or self.model
        max_tokens = max_tokens or self.default_max_tokens
        temperature = self.default_temperature if temperature is None else temperature
        timeout = timeout or self.timeout_seconds

        chat = self._chat(model, temperature, max_tokens)
        lc_messages = self.to_langchain(messages)
        self.request_count += 1

        last_error: Optional[Exception] = None
        for attempt in range(1, self.retry_attempts + 1):
            start_time = time.time()
            try:
                response = await asyncio.wait_for(chat.ainvoke(lc_messages), timeout=timeout)
                latency_ms = int((time.time() - start_time) * 1000)
                print(f"[LLM] {model} responded in {latency_ms}ms (attempt {attempt})")
                return LLMResponse(content=self._text(response.content), model=model, latency_ms=latency_ms)
            except asyncio.TimeoutError:
                last_error = LLMTimeoutError(f"{model} timed out after {timeout}s")
                logger.warning(f"LLM timeout on attempt {attempt}/{self.retry_attempts} ({model})")
            except Exception as e:
                last_error = LLMError(f"{model} call failed: {e}")
                logger.warning(f"LLM error on attempt {attempt}/{self.retry_attempts} ({model}): {e}")

            if attempt < self.retry_attempts:
                await asyncio.sleep(self.backoff_seconds * (2 ** (attempt - 1)))

        self.failure_count += 1
        raise last_error

    async def call_with_complexity(self, messages: List[Dict[str, str]], complexity: float,
                                   max_tokens: Optional[int] = None) -> LLMResponse:
        return await self.call(messages, model=self.select_model(complexity), max_tokens=max_tokens)

    def stats(self) -> Dict[str, Any]:
        return {
            "requests": self.request_count,
            "failures": self.failure_count,
            "model": self.model,
            "fast_model": self.fast_model,
        }
