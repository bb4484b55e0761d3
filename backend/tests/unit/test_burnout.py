"""
Unit tests for the burnout monitor.
"""
from datetime import datetime, timedelta

import pytest

from conftest import make_memory
from studycoach.memory.burnout import BurnoutMonitor
from studycoach.memory.models import BurnoutLevel, Emotion, EmotionRecord, MemoryKind

NOW = datetime(2025, 3, 7, 20, 0)


def emotional(emotion: Emotion, hours_ago: int, kind: MemoryKind = MemoryKind.EMOTION):
    return make_memory(kind=kind, emotion=emotion, created_at=NOW - timedelta(hours=hours_ago),
                       content=f"{emotion.value} {hours_ago}")


class TestBurnoutAssessment:

    @pytest.fixture
    def monitor(self):
        return BurnoutMonitor()

    def test_no_signals_is_low(self, monitor):
        indicator = monitor.assess("s1", [], now=NOW)
        assert indicator.level == BurnoutLevel.LOW
        assert indicator.score == 0.0
        assert indicator.warning_signals == []

    def test_repeated_frustration_is_high(self, monitor):
        memories = [emotional(Emotion.FRUSTRATED, h) for h in (30, 20, 10)]
        indicator = monitor.assess("s1", memories, now=NOW)
        assert indicator.score == pytest.approx(0.9)
        assert indicator.level == BurnoutLevel.HIGH
        assert "연속 3회 이상 좌절감을 느끼고 있어요." in indicator.warning_signals
        assert indicator.coping_strategies[0].startswith("⚠️")

    def test_single_record_is_scaled_by_evidence(self, monitor):
        indicator = monitor.assess("s1", [emotional(Emotion.FRUSTRATED, 1)], now=NOW)
        assert indicator.score == pytest.approx(0.3)
        assert indicator.level == BurnoutLevel.LOW

    def test_memories_outside_window_ignored(self, monitor):
        old = [emotional(Emotion.FRUSTRATED, 24 * 10 + h) for h in range(3)]
        assert monitor.assess("s1", old, now=NOW).level == BurnoutLevel.LOW

    def test_behaviour_only(self, monitor):
        indicator = monitor.assess("s1", [], consecutive_missed_days=3, completion_rate_7d=0.0, now=NOW)
        assert indicator.score == pytest.approx(1.0)
        assert indicator.level == BurnoutLevel.HIGH
        assert "3일 연속으로 퀘스트를 놓쳤어요." in indicator.warning_signals

    def test_emotion_and_behaviour_are_averaged(self, monitor):
        memories = [emotional(Emotion.FRUSTRATED, h) for h in (30, 20, 10)]
        indicator = monitor.assess("s1", memories, consecutive_missed_days=0,
                                   completion_rate_7d=1.0, now=NOW)
        assert indicator.score == pytest.approx(0.45)
        assert indicator.level == BurnoutLevel.MEDIUM

    def test_struggle_without_emotion_counts_as_frustration(self):
        struggle = make_memory(kind=MemoryKind.STRUGGLE, created_at=NOW)
        neutral = make_memory(kind=MemoryKind.LEARNING, created_at=NOW)
        records = BurnoutMonitor.emotion_records([struggle, neutral])
        assert [r.emotion for r in records] == [Emotion.FRUSTRATED]

    def test_negative_memory_ratio(self, monitor):
        memories = [
            make_memory(kind=MemoryKind.STRUGGLE, created_at=NOW - timedelta(hours=1)),
            make_memory(kind=MemoryKind.LEARNING, created_at=NOW - timedelta(hours=2)),
        ]
        assert monitor.assess("s1", memories, now=NOW).negative_memory_ratio == pytest.approx(0.5)


class TestBurnoutScores:

    def test_behaviour_score_absent_without_signals(self):
        assert BurnoutMonitor.behaviour_score(0, None) is None

    def test_behaviour_score_missed_days_only(self):
        assert BurnoutMonitor.behaviour_score(2, None) == pytest.approx(2 / 3)

    def test_positive_emotions_floor_at_zero(self):
        records = [EmotionRecord(Emotion.MOTIVATED, NOW) for _ in range(3)]
        assert BurnoutMonitor.emotion_score(records) == 0.0

    def test_level_thresholds(self):
        monitor = BurnoutMonitor()
        assert monitor.level_for(0.39) == BurnoutLevel.LOW
        assert monitor.level_for(0.4) == BurnoutLevel.MEDIUM
        assert monitor.level_for(0.7) == BurnoutLevel.HIGH


class TestRecommendations:

    @pytest.mark.parametrize("level, expected", [
        (BurnoutLevel.HIGH, "STOP_TODAY"),
        (BurnoutLevel.MEDIUM, "TAKE_BREAK"),
        (BurnoutLevel.LOW, "CONTINUE"),
    ])
    def test_should_continue(self, level, expected):
        indicator = BurnoutMonitor().assess("s1", [], now=NOW)
        indicator.level = level
        assert BurnoutMonitor.should_continue(indicator)["recommendation"] == expected

    def test_emotion_trend_needs_data(self):
        assert BurnoutMonitor().emotion_trend([])["trend"] == "STABLE"

    def test_emotion_trend_declining(self):
        records = [EmotionRecord(Emotion.MOTIVATED, NOW)] * 3 + [EmotionRecord(Emotion.FRUSTRATED, NOW)] * 3
        assert BurnoutMonitor().emotion_trend(records)["trend"] == "DECLINING"

    def test_emotion_trend_improving(self):
        records = [EmotionRecord(Emotion.TIRED, NOW)] * 3 + [EmotionRecord(Emotion.CONFIDENT, NOW)] * 3
        assert BurnoutMonitor().emotion_trend(records)["trend"] == "IMPROVING"
