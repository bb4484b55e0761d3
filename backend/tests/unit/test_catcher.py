"""
Unit tests for the memory catcher.
"""
from datetime import datetime

import pytest

from studycoach.core.models import Subject
from studycoach.memory.catcher import MemoryCatcher
from studycoach.memory.models import Emotion, MemoryKind

NOW = datetime(2025, 3, 3, 19, 30)


@pytest.fixture
def catcher():
    return MemoryCatcher()


class TestDetection:

    @pytest.mark.parametrize("content, kind", [
        ("이차함수 문제를 계속 틀려서 너무 어려워", MemoryKind.STRUGGLE),
        ("오답 노트를 정리했어", MemoryKind.WRONG_ANSWER),
        ("아하 그래서 근의 공식이 이렇게 나오는구나", MemoryKind.INSIGHT),
        ("영어는 아침에 하기로 결정했어", MemoryKind.DECISION),
        ("나는 항상 부호를 헷갈려", MemoryKind.PATTERN),
        ("오늘 수학 공부했어", MemoryKind.LEARNING),
    ])
    def test_detect_kind(self, content, kind):
        assert MemoryCatcher.detect_kind(content) == kind

    def test_detect_kind_none_for_small_talk(self):
        assert MemoryCatcher.detect_kind("안녕") is None

    @pytest.mark.parametrize("content, subject", [
        ("미적분 너무 어려워", Subject.MATH),
        ("영어 단어 외웠어", Subject.ENGLISH),
        ("비문학 지문이 길어", Subject.KOREAN),
        ("화학 실험 보고서", Subject.SCIENCE),
        ("세계 역사 연표", Subject.SOCIAL),
    ])
    def test_detect_subject(self, content, subject):
        assert MemoryCatcher.detect_subject(content) == subject

    def test_detect_emotion(self):
        assert MemoryCatcher.detect_emotion("너무 피곤해") == Emotion.TIRED
        assert MemoryCatcher.detect_emotion("오늘 날씨") is None

    def test_extract_topic(self):
        assert MemoryCatcher.extract_topic("이차함수 문제를 풀었어") == "이차함수"
        assert MemoryCatcher.extract_topic("그냥 했어") == "일반"


class TestScoring:

    def test_struggle_importance_and_confidence(self, catcher):
        content = "이차함수 문제를 계속 틀려서 너무 어려워"
        assert catcher.importance(content, MemoryKind.STRUGGLE) == pytest.approx(0.85)
        assert MemoryCatcher.confidence(content, MemoryKind.STRUGGLE) == pytest.approx(0.8)

    def test_low_importance_kind(self, catcher):
        assert catcher.importance("좋아하는 방식", MemoryKind.PREFERENCE) == pytest.approx(0.5)

    def test_difficulty_bounds(self):
        assert MemoryCatcher.estimate_difficulty("매우 어려워 복잡해") == 5
        assert MemoryCatcher.estimate_difficulty("매우 쉬워") == 1

    def test_title_truncates(self):
        title = MemoryCatcher.title("가" * 40, MemoryKind.LEARNING)
        assert title == "📚 학습: " + "가" * 30 + "..."


class TestExtract:

    def test_only_user_turns_are_captured(self, catcher):
        messages = [
            {"role": "assistant", "content": "어떤 부분이 어려워?"},
            {"role": "user", "content": "이차함수 문제를 계속 틀려서 너무 어려워"},
            {"role": "user", "content": "안녕"},
            {"role": "user", "content": "   "},
        ]
        memories = catcher.extract("s1", messages, conversation_id="c1", now=NOW)
        assert len(memories) == 1
        memory = memories[0]
        assert memory.kind == MemoryKind.STRUGGLE
        assert memory.subject == Subject.MATH
        assert memory.topic == "이차함수"
        assert memory.created_at == NOW
        assert memory.source_conversation_id == "c1"
        assert memory.is_high_importance

    def test_current_subject_used_when_message_has_none(self, catcher):
        memories = catcher.extract("s1", [{"role": "user", "content": "오늘 공부했어"}],
                                   current_subject=Subject.ENGLISH, now=NOW)
        assert memories[0].subject == Subject.ENGLISH

    def test_general_subject_fallback(self, catcher):
        memories = catcher.extract("s1", [{"role": "user", "content": "오늘 공부했어"}], now=NOW)
        assert memories[0].subject == Subject.GENERAL

    def test_min_confidence_filters(self):
        strict = MemoryCatcher(min_confidence=0.95)
        assert strict.extract("s1", [{"role": "user", "content": "오늘 공부했어"}], now=NOW) == []
