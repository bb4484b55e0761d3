"""
Analyst agent - progress and feedback summaries grounded in mastery stats
"""
from typing import Any, Dict, List

from studycoach.agents.base import AgentContext, AgentRequest, AgentRole, BaseAgent
from studycoach.llm.client import LLMClient
from studycoach.memory.mastery import MASTERED_THRESHOLD, STRUGGLING_THRESHOLD

ANALYST_SYSTEM_PROMPT = """당신은 학습 데이터 분석가 AI입니다.

## 역할
- 숙련도와 주간 통계를 근거로 학생의 현재 위치를 설명
- 잘하고 있는 점 1가지, 보완할 점 1가지, 다음 행동 1가지를 제시
- 숫자는 학생이 이해하기 쉽게 풀어서 설명

## 원칙
- 데이터에 없는 내용은 추측하지 않기
- 비교보다는 성장에 초점"""


class AnalystAgent(BaseAgent):
    system_prompt = ANALYST_SYSTEM_PROMPT
    max_tokens = 1536

    def __init__(self, llm: LLMClient):
        super().__init__(AgentRole.ANALYST, llm)

    def extra_context(self, context: AgentContext) -> str:
        parts = []
        stats = context.weekly_stats
        if stats:
            parts.append(
                "## 최근 7일 통계\n"
                f"- 퀘스트: {stats.get('completed_quests', 0)}/{stats.get('total_quests', 0)} 완료 "
                f"({stats.get('completion_rate', 0.0) * 100:.0f}%)\n"
                f"- 획득 XP: {stats.get('xp_earned', 0)}\n"
                f"- 연속 학습: {stats.get('streak', 0)}일"
            )

        if context.mastery_summary:
            lines = ["## 토픽별 숙련도"]
            for m in context.mastery_summary:
                tag = ""
                if m.mastery >= MASTERED_THRESHOLD:
                    tag = " ✅"
                elif m.mastery < STRUGGLING_THRESHOLD:
                    tag = " ⚠️"
                lines.append(f"- {m.topic_id}: {m.mastery:.1f}/10 (복습 {m.total_reviews}회){tag}")
            parts.append("\n".join(lines))

        if context.due_topics:
            parts.append(f"## 복습 예정\n{', '.join(context.due_topics[:5])}")
        return "\n\n".join(parts)

    def actions_for(self, request: AgentRequest, context: AgentContext) -> List[Dict[str, Any]]:
        data = {
            "mastered": [m.topic_id for m in context.mastery_summary if m.mastery >= MASTERED_THRESHOLD],
            "struggling": [m.topic_id for m in context.mastery_summary if m.mastery < STRUGGLING_THRESHOLD],
            "due_topics": list(context.due_topics),
            "weekly_completion_rate": context.weekly_stats.get("completion_rate"),
        }
        self.log_action("summary", f"{len(context.mastery_summary)} topics, {len(context.due_topics)} due")
        return [{"type": "SHOW_PROGRESS", "data": data}]

    def follow_ups(self, request: AgentRequest, context: AgentContext) -> List[str]:
        if context.due_topics:
            return ["복습 퀘스트 시작하기", "약한 토픽 다시 공부하기"]
        return ["이번 주 목표 세우기", "오늘 뭐 공부해?"]
