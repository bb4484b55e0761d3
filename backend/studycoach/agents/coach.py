"""
Coach agent - daily encouragement, emotional support and study questions.

Reads the burnout indicator from the context bundle: an elevated level
switches the prompt to recovery mode and surfaces a SUGGEST_BREAK action.
"""
from typing import Any, Dict, List

from studycoach.agents.base import AgentContext, AgentRequest, AgentRole, BaseAgent
from studycoach.llm.client import LLMClient
from studycoach.memory.burnout import BurnoutMonitor
from studycoach.memory.models import BurnoutLevel

COACH_SYSTEM_PROMPT = """당신은 학생 곁에서 함께하는 학습 코치 AI입니다.

## 역할
- 오늘의 공부를 응원하고 작은 성취를 칭찬
- 학생의 감정에 먼저 공감한 뒤 다음 행동을 한 가지만 제안
- 개념 질문에는 쉬운 예시로 짧게 설명

## 원칙
- 죄책감을 주는 표현 금지
- 답변은 3~5문장, 이모지는 적당히 😊"""

RECOVERY_MODE = """## 회복 모드
학생이 많이 지쳐 있어요. 공부를 권하지 말고 휴식과 감정 회복을 우선하세요.
할 일은 최소한으로 줄이고, 쉬어도 괜찮다는 메시지를 분명히 전하세요."""


class CoachAgent(BaseAgent):
    system_prompt = COACH_SYSTEM_PROMPT

    def __init__(self, llm: LLMClient):
        super().__init__(AgentRole.COACH, llm)

    def extra_context(self, context: AgentContext) -> str:
        parts = []
        if context.burnout and context.burnout.level == BurnoutLevel.HIGH:
            parts.append(RECOVERY_MODE)

        if context.today_quests:
            incomplete = context.today_quests.incomplete
            summary = context.today_quests.summary
            lines = [f"## 오늘의 퀘스트 ({summary.completed_quests}/{summary.total_quests} 완료)"]
            lines += [f"- {q.title} ({q.estimated_minutes}분)" for q in incomplete[:5]]
            parts.append("\n".join(lines))

        if context.delay and context.delay.consecutive_missed_days > 0:
            parts.append(f"## 참고\n최근 {context.delay.consecutive_missed_days}일 연속으로 퀘스트를 놓쳤어요.")
        return "\n\n".join(parts)

    def actions_for(self, request: AgentRequest, context: AgentContext) -> List[Dict[str, Any]]:
        if not context.burnout or not context.burnout.level.elevated:
            return []
        advice = BurnoutMonitor.should_continue(context.burnout)
        self.log_action("burnout", f"{context.burnout.level.value} -> {advice['recommendation']}")
        return [{
            "type": "SUGGEST_BREAK",
            "data": {
                **advice,
                "level": context.burnout.level.value,
                "coping_strategies": context.burnout.coping_strategies[:3],
            },
        }]

    def follow_ups(self, request: AgentRequest, context: AgentContext) -> List[str]:
        if context.burnout and context.burnout.level == BurnoutLevel.HIGH:
            return ["오늘은 쉬어도 될까?", "퀘스트 양 줄여줘"]
        return ["오늘 뭐 공부해?", "내 진도 어때?"]
