"""
Admission agent - onboarding conversation and profile capture
"""
import re
from typing import Any, Dict, List, Optional

from studycoach.agents.base import AgentContext, AgentRequest, AgentRole, BaseAgent
from studycoach.llm.client import LLMClient
from studycoach.memory.catcher import SUBJECT_PATTERNS

ADMISSION_SYSTEM_PROMPT = """당신은 학습 상담 전문가 AI입니다.

## 역할
- 학생의 학년, 수강 과목, 목표 시험, 학습 습관을 자연스럽게 파악
- 한 번에 한두 가지만 질문
- 파악한 정보는 짧게 확인하고 다음 질문으로 이동

## 대화 스타일
- 친근하고 따뜻한 어조, 이모지는 적당히 😊
- 부담 주지 않기"""

GRADE_PATTERN = re.compile(r"(중|고)\s*([1-3])|(중학교|고등학교)\s*([1-3])\s*학년|([1-6])\s*학년")


def detect_grade(message: str) -> Optional[str]:
    match = GRADE_PATTERN.search(message)
    if not match:
        return None
    if match.group(1):
        return f"{match.group(1)}{match.group(2)}"
    if match.group(3):
        return f"{match.group(3)[0]}{match.group(4)}"
    return f"{match.group(5)}학년"


class AdmissionAgent(BaseAgent):
    system_prompt = ADMISSION_SYSTEM_PROMPT

    def __init__(self, llm: LLMClient):
        super().__init__(AgentRole.ADMISSION, llm)

    def extra_context(self, context: AgentContext) -> str:
        missing = []
        if context.profile.grade == "미설정":
            missing.append("학년")
        if not context.profile.enrolled_subjects:
            missing.append("수강 과목")
        if not context.profile.target_exam:
            missing.append("목표 시험")
        if not missing:
            return "## 상담 단계\n기본 정보가 모두 있어요. 학습 습관과 목표를 구체화하세요."
        return f"## 아직 모르는 정보\n{', '.join(missing)}"

    def actions_for(self, request: AgentRequest, context: AgentContext) -> List[Dict[str, Any]]:
        updates: Dict[str, Any] = {}
        grade = detect_grade(request.message)
        if grade and grade != context.profile.grade:
            updates["grade"] = grade

        subjects = [s.value for s, p in SUBJECT_PATTERNS.items() if p.search(request.message)]
        new_subjects = [s for s in subjects if s not in {e.value for e in context.profile.enrolled_subjects}]
        if new_subjects:
            updates["enrolled_subjects"] = new_subjects

        if not updates:
            return []
        self.log_action("profile", f"update {sorted(updates)}")
        return [{"type": "UPDATE_PROFILE", "data": updates}]

    def follow_ups(self, request: AgentRequest, context: AgentContext) -> List[str]:
        if not context.active_plans:
            return ["학습 계획을 같이 세워볼까요?", "어떤 과목이 제일 걱정돼요?"]
        return ["오늘 퀘스트 확인하기", "목표 시험을 알려줄래요?"]
