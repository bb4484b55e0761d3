"""
Pytest configuration and shared fixtures.

The LLM is replaced by a scripted chat model and storage by the in-memory
repository, so every test runs offline.
"""
import asyncio
from datetime import date, datetime, timedelta
from typing import List, Optional

import pytest
from fastapi.testclient import TestClient
from langchain_core.messages import AIMessage

from studycoach.api.deps import Container, get_container
from studycoach.core.config import Settings
from studycoach.core.models import Subject
from studycoach.core.registry import StudentRegistry
from studycoach.core.storage import InMemoryRepository
from studycoach.llm.client import LLMClient
from studycoach.memory.models import Emotion, LearningMemory, MemoryKind

# 2025-03-03 is a Monday
MONDAY = date(2025, 3, 3)
FRIDAY = date(2025, 3, 7)


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Supervisor and API tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)


class FakeChatModel:
    """
    Stands in for a chat model: replies are popped in order, then
    `default` is returned. `failures` calls raise `error` before replies start.
    """

    def __init__(self, replies: Optional[List[str]] = None, default: str = "좋아요, 같이 해봐요! 😊",
                 error: Optional[Exception] = None, failures: int = 0, delay: float = 0.0):
        self.replies = list(replies or [])
        self.default = default
        self.error = error
        self.failures = failures
        self.delay = delay
        self.calls = []

    async def ainvoke(self, messages):
        self.calls.append(messages)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None and (self.failures == 0 or len(self.calls) <= self.failures):
            raise self.error
        content = self.replies.pop(0) if self.replies else self.default
        return AIMessage(content=content)


def make_llm(chat: FakeChatModel, **kwargs) -> LLMClient:
    options = {"timeout_seconds": 5.0, "retry_attempts": 2, "backoff_seconds": 0}
    options.update(kwargs)
    return LLMClient(api_key="", chat_factory=lambda model, temperature, max_tokens: chat, **options)


def make_memory(student_id: str = "s1", kind: MemoryKind = MemoryKind.LEARNING,
                subject: Subject = Subject.MATH, content: str = "이차함수 개념을 배웠어",
                created_at: Optional[datetime] = None, topic: str = "이차함수",
                emotion: Emotion = Emotion.NEUTRAL, importance: float = 0.5,
                memory_id: Optional[str] = None) -> LearningMemory:
    created_at = created_at or datetime(2025, 3, 3, 9, 0)
    return LearningMemory(
        id=memory_id or f"m-{kind.value}-{topic}-{created_at.isoformat()}",
        student_id=student_id,
        kind=kind,
        subject=subject,
        title=f"{kind.value}: {content[:20]}",
        content=content,
        importance=importance,
        created_at=created_at,
        topic=topic,
        emotion=emotion,
    )


@pytest.fixture
def repository():
    return InMemoryRepository()


@pytest.fixture
def registry(repository):
    return StudentRegistry(repository)


@pytest.fixture
def fake_chat():
    return FakeChatModel()


@pytest.fixture
def llm(fake_chat):
    return make_llm(fake_chat)


@pytest.fixture
def container(repository, llm):
    return Container(Settings(), repository=repository, llm=llm)


@pytest.fixture
def client(container):
    from studycoach.main import app

    app.dependency_overrides[get_container] = lambda: container
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def student(container):
    return container.registry.create_student(name="민지", student_id="s1", grade="중2",
                                             enrolled_subjects=[Subject.MATH])


@pytest.fixture
def math_plan(container, student):
    """Three 30-minute units, 60 minutes a day: two quests on Monday, one on Tuesday"""
    plan = container.registry.create_plan(
        student.id,
        subject=Subject.MATH,
        title="수학 기초 다지기",
        start_date=MONDAY,
        end_date=MONDAY + timedelta(days=11),
        unit_titles=["일차함수", "이차함수", "방정식"],
        daily_minutes=60,
        unit_minutes=[30, 30, 30],
    )
    container.quests.ensure_plan_quests(plan)
    return plan
