"""
Unit tests for memory candidate selection and six-factor re-ranking.
"""
from datetime import datetime, timedelta

import pytest

from conftest import make_memory
from studycoach.core.models import Subject
from studycoach.memory.models import BurnoutLevel, Emotion, MemoryKind
from studycoach.memory.retriever import MemoryRetriever, RerankWeights, tokenize

NOW = datetime(2025, 3, 7, 20, 0)


@pytest.fixture
def retriever():
    return MemoryRetriever()


class TestTokenize:

    def test_hangul_bigrams(self):
        assert tokenize("이차함수") == ["이차함수", "이차", "차함", "함수"]

    def test_short_words_and_latin(self):
        assert tokenize("SM2 수학") == ["sm2", "수학"]


class TestRerankWeights:

    def test_defaults_sum_to_one(self):
        weights = RerankWeights()
        assert weights.relevance == pytest.approx(0.25)

    def test_must_sum_to_one(self):
        with pytest.raises(ValueError):
            RerankWeights(0.5, 0.5, 0.5, 0.0, 0.0, 0.0)

    def test_no_negative_weights(self):
        with pytest.raises(ValueError):
            RerankWeights(-0.1, 0.35, 0.2, 0.1, 0.15, 0.3)

    def test_from_list(self):
        weights = RerankWeights.from_list([0.1, 0.4, 0.2, 0.1, 0.1, 0.1])
        assert weights.relevance == pytest.approx(0.4)


class TestCandidateSelection:

    def test_subject_filter_keeps_general(self, retriever):
        memories = [
            make_memory(subject=Subject.MATH, topic="a"),
            make_memory(subject=Subject.ENGLISH, topic="b"),
            make_memory(subject=Subject.GENERAL, topic="c"),
        ]
        selected = retriever.select_candidates(memories, Subject.MATH, NOW)
        assert [m.topic for m in selected] == ["a", "c"]

    def test_general_filter_keeps_everything(self, retriever):
        memories = [make_memory(subject=Subject.ENGLISH, topic="b")]
        assert len(retriever.select_candidates(memories, Subject.GENERAL, NOW)) == 1

    def test_old_low_importance_memories_age_out(self, retriever):
        old = NOW - timedelta(days=120)
        memories = [
            make_memory(kind=MemoryKind.LEARNING, created_at=old, topic="old-learning"),
            make_memory(kind=MemoryKind.STRUGGLE, created_at=old, topic="old-struggle"),
        ]
        selected = retriever.select_candidates(memories, None, NOW)
        assert [m.topic for m in selected] == ["old-struggle"]


class TestRerank:

    def test_relevant_memory_ranks_first(self, retriever):
        relevant = make_memory(kind=MemoryKind.WRONG_ANSWER, content="이차함수 그래프 문제를 틀렸어",
                               topic="이차함수", created_at=NOW - timedelta(days=2))
        unrelated = make_memory(kind=MemoryKind.PREFERENCE, content="영어 단어는 아침이 좋아",
                                subject=Subject.ENGLISH, topic="단어", created_at=NOW - timedelta(days=1))
        ranked = retriever.retrieve("이차함수 틀린 문제 다시 보기", [unrelated, relevant], now=NOW)
        assert ranked[0].memory.id == relevant.id
        assert ranked[0].factors["relevance"] > ranked[1].factors["relevance"]

    def test_elevated_burnout_doubles_emotional_weight(self, retriever):
        struggle = make_memory(kind=MemoryKind.STRUGGLE, created_at=NOW)
        low = retriever.rerank("수학", [struggle], BurnoutLevel.LOW, {}, {}, NOW)[0]
        high = retriever.rerank("수학", [struggle], BurnoutLevel.HIGH, {}, {}, NOW)[0]
        assert low.factors["emotional"] == 1.0
        assert high.score - low.score == pytest.approx(0.10)

    def test_negative_emotion_memory_half_salience(self, retriever):
        tired = make_memory(kind=MemoryKind.EMOTION, emotion=Emotion.TIRED, created_at=NOW)
        ranked = retriever.rerank("", [tired], BurnoutLevel.LOW, {}, {}, NOW)
        assert ranked[0].factors["emotional"] == 0.5

    def test_mastery_gap_and_frequency(self, retriever):
        memory = make_memory(topic="이차함수", created_at=NOW)
        ranked = retriever.rerank("", [memory], BurnoutLevel.LOW, {"이차함수": 1.0}, {memory.id: 20}, NOW)
        assert ranked[0].factors["mastery_gap"] == pytest.approx(0.75)
        assert ranked[0].factors["frequency"] == pytest.approx(1.0)
        assert ranked[0].factors["recency"] == pytest.approx(1.0)

    def test_recency_half_life(self, retriever):
        memory = make_memory(created_at=NOW - timedelta(days=14))
        ranked = retriever.rerank("", [memory], BurnoutLevel.LOW, {}, {}, NOW)
        assert ranked[0].factors["recency"] == pytest.approx(0.5)

    def test_ties_break_on_id(self, retriever):
        older = make_memory(kind=MemoryKind.LEARNING, created_at=NOW - timedelta(days=3), topic="x",
                            memory_id="a")
        newer = make_memory(kind=MemoryKind.LEARNING, created_at=NOW - timedelta(days=3), topic="x",
                            memory_id="b")
        ranked = retriever.rerank("", [newer, older], BurnoutLevel.LOW, {}, {}, NOW)
        # Same score and timestamp: id breaks the tie
        assert [r.memory.id for r in ranked] == ["a", "b"]


class TestRetrieve:

    def test_empty_store(self, retriever):
        assert retriever.retrieve("수학", [], now=NOW) == []

    def test_top_k(self):
        retriever = MemoryRetriever(top_k=2, char_budget=10_000)
        memories = [make_memory(topic=f"t{i}", created_at=NOW - timedelta(hours=i)) for i in range(5)]
        assert len(retriever.retrieve("수학", memories, now=NOW)) == 2

    def test_same_inputs_same_order(self, retriever):
        memories = [
            make_memory(kind=kind, topic=f"t{i}", content=f"이차함수 {i}번 문제", created_at=NOW - timedelta(hours=i),
                        emotion=Emotion.FRUSTRATED if i % 2 else Emotion.NEUTRAL)
            for i, kind in enumerate([MemoryKind.LEARNING, MemoryKind.STRUGGLE, MemoryKind.GAP, MemoryKind.INSIGHT])
        ]
        options = dict(burnout_risk=BurnoutLevel.MEDIUM, mastery={"t1": 2.0}, retrieval_counts={memories[0].id: 3},
                       now=NOW)

        first = retriever.retrieve("이차함수 문제", memories, **options)
        second = retriever.retrieve("이차함수 문제", memories, **options)

        assert [(r.memory.id, r.score, r.factors) for r in first] == \
            [(r.memory.id, r.score, r.factors) for r in second]
        assert len(first) == 4

    def test_char_budget(self):
        retriever = MemoryRetriever(char_budget=5)
        assert retriever.retrieve("수학", [make_memory(created_at=NOW)], now=NOW) == []

    def test_retrieve_does_not_raise(self, retriever):
        broken = make_memory(created_at=NOW)
        object.__setattr__(broken, "importance", "not-a-number")
        assert retriever.retrieve("수학", [broken], now=NOW) == []
