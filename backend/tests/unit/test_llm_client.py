"""
Unit tests for the LLM invocation layer.
"""
import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from conftest import FakeChatModel, make_llm
from studycoach.core.errors import LLMError, LLMTimeoutError
from studycoach.llm.client import LLMClient

MESSAGES = [
    {"role": "system", "content": "너는 코치야"},
    {"role": "user", "content": "안녕"},
]


class TestCall:

    async def test_success(self):
        chat = FakeChatModel(replies=["안녕하세요!"])
        client = make_llm(chat)
        response = await client.call(MESSAGES)
        assert response.content == "안녕하세요!"
        assert response.model == client.model
        assert client.stats()["requests"] == 1
        assert client.stats()["failures"] == 0

    async def test_retry_then_success(self):
        chat = FakeChatModel(replies=["두 번째에 성공"], error=RuntimeError("503"), failures=1)
        client = make_llm(chat)
        response = await client.call(MESSAGES)
        assert response.content == "두 번째에 성공"
        assert len(chat.calls) == 2

    async def test_exhausted_retries_raise_llm_error(self):
        chat = FakeChatModel(error=RuntimeError("boom"))
        client = make_llm(chat, retry_attempts=3)
        with pytest.raises(LLMError):
            await client.call(MESSAGES)
        assert len(chat.calls) == 3
        assert client.failure_count == 1

    async def test_timeout(self):
        chat = FakeChatModel(delay=0.5)
        client = make_llm(chat, timeout_seconds=0.01)
        with pytest.raises(LLMTimeoutError):
            await client.call(MESSAGES)
        assert len(chat.calls) == 2

    async def test_missing_api_key(self):
        client = LLMClient(api_key="")
        with pytest.raises(LLMError):
            await client.call(MESSAGES)

    async def test_complexity_picks_model(self):
        chat = FakeChatModel()
        client = make_llm(chat, model="big", fast_model="small", complexity_threshold=0.4)
        assert (await client.call_with_complexity(MESSAGES, 0.1)).model == "small"
        assert (await client.call_with_complexity(MESSAGES, 0.8)).model == "big"


class TestConversion:

    def test_to_langchain(self):
        converted = LLMClient.to_langchain(MESSAGES + [{"role": "assistant", "content": "응"}])
        assert isinstance(converted[0], SystemMessage)
        assert isinstance(converted[1], HumanMessage)
        assert isinstance(converted[2], AIMessage)

    def test_content_parts_are_joined(self):
        assert LLMClient._text([{"type": "text", "text": "안녕"}, "하세요"]) == "안녕하세요"
        assert LLMClient._text(None) == ""
