"""
Planner agent - study plan design and plan suggestions
"""
import re
from typing import Any, Dict, List

from studycoach.agents.base import AgentContext, AgentRequest, AgentRole, BaseAgent
from studycoach.core.models import Subject
from studycoach.llm.client import LLMClient
from studycoach.memory.catcher import MemoryCatcher

PLANNER_SYSTEM_PROMPT = """당신은 학습 계획 전문가 AI입니다.

## 역할
- 학생의 목표, 기간, 하루 학습 가능 시간을 바탕으로 현실적인 계획 제안
- 단원을 하루 분량으로 나누고 복습 일정을 함께 고려
- 이미 진행 중인 계획과 겹치지 않게 조정

## 원칙
- 무리한 계획보다 지속 가능한 계획
- 주말 포함 여부와 마감일을 꼭 확인
- 계획은 간결한 목록으로 제시"""

DAYS_PATTERN = re.compile(r"(\d+)\s*(일|주)")
MINUTES_PATTERN = re.compile(r"(?:하루|매일)\s*(\d+)\s*(분|시간)")


class PlannerAgent(BaseAgent):
    system_prompt = PLANNER_SYSTEM_PROMPT
    max_tokens = 1536

    def __init__(self, llm: LLMClient):
        super().__init__(AgentRole.PLANNER, llm)

    def extra_context(self, context: AgentContext) -> str:
        if not context.active_plans:
            return "## 진행 중인 계획\n없음"
        lines = ["## 진행 중인 계획"]
        for plan in context.active_plans:
            lines.append(
                f"- {plan.title} ({plan.subject.value}): {plan.start_date} ~ {plan.end_date}, "
                f"{len(plan.units)}개 단원, 하루 {plan.daily_minutes}분"
                + (" (주말 제외)" if plan.exclude_weekends else "")
            )
        return "\n".join(lines)

    def actions_for(self, request: AgentRequest, context: AgentContext) -> List[Dict[str, Any]]:
        subject = MemoryCatcher.detect_subject(request.message) or Subject.GENERAL
        suggestion: Dict[str, Any] = {
            "subject": subject.value,
            "title": f"{subject.value} 학습 계획",
            "exclude_weekends": "주말" in request.message and ("제외" in request.message or "빼" in request.message),
        }

        days = DAYS_PATTERN.search(request.message)
        if days:
            suggestion["total_days"] = int(days.group(1)) * (7 if days.group(2) == "주" else 1)
        minutes = MINUTES_PATTERN.search(request.message)
        if minutes:
            suggestion["daily_minutes"] = int(minutes.group(1)) * (60 if minutes.group(2) == "시간" else 1)

        self.log_action("suggest", f"CREATE_PLAN {suggestion}")
        return [{"type": "CREATE_PLAN", "data": suggestion}]

    def follow_ups(self, request: AgentRequest, context: AgentContext) -> List[str]:
        return ["하루에 몇 분 공부할 수 있어요?", "주말에도 공부할 건가요?", "마감일이 언제예요?"]
