"""
Unit tests for the keyword intent router.
"""
import pytest

from studycoach.agents.base import AgentRole
from studycoach.memory.models import BurnoutLevel
from studycoach.router.intent import classify, complexity_of, confidence_of, detect_intent


class TestIntentDetection:

    @pytest.mark.parametrize("message, intent, role", [
        ("오늘 뭐 공부해?", "SCHEDULE_QUERY", AgentRole.COACH),
        ("내일로 미뤄줘", "SCHEDULE_CHANGE", AgentRole.COACH),
        ("수학 공부를 새로 시작하고 싶어요. 저는 중2예요", "ENROLLMENT", AgentRole.ADMISSION),
        ("학습 계획 좀 짜줘", "STUDY_PLAN", AgentRole.PLANNER),
        ("이차함수가 왜 이렇게 되는지 설명해줘", "QUESTION", AgentRole.COACH),
        ("진도 어디까지 나갔어?", "PROGRESS", AgentRole.ANALYST),
        ("요즘 너무 피곤하고 스트레스 받아", "EMOTIONAL", AgentRole.COACH),
        ("어제 시험 채점 결과 피드백 줘", "FEEDBACK", AgentRole.ANALYST),
    ])
    def test_routes(self, message, intent, role):
        decision = classify(message)
        assert decision.intent == intent
        assert decision.role == role
        assert not decision.overridden

    def test_schedule_query_matches_both_patterns(self):
        assert detect_intent("오늘 뭐 공부해?") == ("SCHEDULE_QUERY", 2)

    def test_tie_goes_to_first_declared_intent(self):
        # One STUDY_PLAN pattern and one PROGRESS pattern
        assert detect_intent("진도 계획")[0] == "STUDY_PLAN"

    def test_no_match(self):
        assert detect_intent("안녕") == ("GENERAL", 0)


class TestOverrides:

    def test_high_burnout_forces_coach(self):
        decision = classify("진도 어디까지 나갔어?", burnout_level=BurnoutLevel.HIGH)
        assert decision.role == AgentRole.COACH
        assert decision.overridden
        assert decision.intent == "PROGRESS"

    def test_medium_burnout_does_not_override(self):
        decision = classify("진도 어디까지 나갔어?", burnout_level=BurnoutLevel.MEDIUM)
        assert decision.role == AgentRole.ANALYST

    def test_level_test_keeps_admission(self):
        decision = classify("학습 계획 좀 짜줘", level_test_active=True)
        assert decision.role == AgentRole.ADMISSION
        assert decision.overridden


class TestFallbacks:

    def test_follow_up_stays_with_previous_agent(self):
        history = [
            {"role": "user", "content": "진도 어때?"},
            {"role": "assistant", "content": "잘하고 있어요", "agent_role": "ANALYST"},
        ]
        decision = classify("응", recent_history=history)
        assert decision.role == AgentRole.ANALYST
        assert decision.intent == "FOLLOW_UP"

    def test_follow_up_without_history_goes_to_coach(self):
        decision = classify("응")
        assert decision.role == AgentRole.COACH
        assert decision.intent == "GENERAL"

    def test_unmatched_message_defaults_to_coach(self):
        decision = classify("안녕", recent_history=[{"role": "assistant", "agent_role": "PLANNER"}])
        assert decision.role == AgentRole.COACH
        assert decision.confidence == 0.5

    def test_empty_message(self):
        assert classify("").role == AgentRole.COACH


class TestScores:

    def test_complexity_keywords(self):
        assert complexity_of("왜 이렇게 되는지 설명해줘") == pytest.approx(0.35)
        assert complexity_of("안녕") == pytest.approx(0.05)

    def test_complexity_is_capped(self):
        assert complexity_of("구현 설계 분석 최적화 종합 비교" * 10) == 1.0

    def test_confidence(self):
        assert confidence_of("짧은 말", 2) == pytest.approx(0.8)
        assert confidence_of("이 문장은 스무 글자를 확실하게 넘는 꽤 긴 문장입니다", 1) == pytest.approx(0.75)
        assert confidence_of("짧은 말", 5) == 0.95

    def test_route_decision_dict(self):
        payload = classify("오늘 뭐 공부해?").to_dict()
        assert payload["role"] == "COACH"
        assert payload["confidence"] == pytest.approx(0.8)
