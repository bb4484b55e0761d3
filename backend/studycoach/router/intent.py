"""
Intent router.

Pure keyword classifier mapping a student's message to one agent role.
HIGH burnout forces the coach regardless of keywords; an active level test
sends the student to admission; otherwise the intent with the most
matching patterns wins, ties going to the intent declared first.
"""

import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Pattern, Sequence, Tuple

from studycoach.agents.base import AgentRole
from studycoach.memory.models import BurnoutLevel

logger = logging.getLogger(__name__)


def _compile(*patterns: str) -> List[Pattern]:
    return [re.compile(p, re.IGNORECASE) for p in patterns]


# Declaration order is the tie-break order
INTENT_PATTERNS: Dict[str, List[Pattern]] = {
    "SCHEDULE_QUERY": _compile(
        r"오늘.*(뭐|무엇|뭘).*(공부|해|하)",
        r"오늘.*(퀘스트|할\s*일|공부|일정)",
    ),
    "SCHEDULE_CHANGE": _compile(
        r"미뤄|미룰|미루|연기|옮겨|뒤로\s*(빼|밀)",
        r"(내일|모레|다음\s*주|주말)로|(\d+\s*일|하루|이틀|사흘|나흘).*(미뤄|미루|연기|뒤로)",
    ),
    "ENROLLMENT": _compile(
        r"등록|가입|신청|시작하고|새로|처음",
        r"어떻게.*시작|어디서.*시작",
    ),
    "STUDY_PLAN": _compile(
        r"계획|스케줄|커리큘럼|로드맵",
        r"뭐.*공부|어떤.*순서|얼마나.*걸려",
    ),
    "QUESTION": _compile(
        r"뭐야|무엇|어떻게|왜|설명|알려",
        r"이해.*안|모르겠|헷갈|문제.*풀어",
    ),
    "PROGRESS": _compile(
        r"진도|진행|얼마나|어디까지|완료|끝났",
        r"지금.*상태|현재.*위치",
    ),
    "MOTIVATION": _compile(
        r"자신.*없|할\s*수.*있을까|포기|힘들|어려",
        r"동기|의욕|응원|격려|힘내",
    ),
    "EMOTIONAL": _compile(
        r"기분|느낌|스트레스|불안|걱정|우울",
        r"피곤|지쳐|싫어|귀찮",
    ),
    "FEEDBACK": _compile(
        r"피드백|리뷰|평가|채점|맞았|틀렸",
        r"어땠|잘했|못했|개선",
    ),
}

INTENT_TO_ROLE: Dict[str, AgentRole] = {
    "SCHEDULE_QUERY": AgentRole.COACH,
    "SCHEDULE_CHANGE": AgentRole.COACH,
    "ENROLLMENT": AgentRole.ADMISSION,
    "STUDY_PLAN": AgentRole.PLANNER,
    "QUESTION": AgentRole.COACH,
    "PROGRESS": AgentRole.ANALYST,
    "MOTIVATION": AgentRole.COACH,
    "EMOTIONAL": AgentRole.COACH,
    "FEEDBACK": AgentRole.ANALYST,
}

COMPLEXITY_KEYWORDS: Dict[str, float] = {
    "구현": 0.35,
    "설계": 0.35,
    "분석": 0.30,
    "최적화": 0.30,
    "종합": 0.30,
    "비교": 0.25,
    "증명": 0.25,
    "만들어": 0.20,
    "왜": 0.20,
    "어떻게": 0.20,
    "설명": 0.15,
    "뭐야": 0.10,
    "안녕": 0.05,
    "네": 0.05,
    "아니": 0.05,
}

FOLLOW_UPS = {"응", "네", "넹", "예", "ㅇㅇ", "그래", "좋아", "알겠어", "오케이", "ok", "아니", "아니요", "아니야"}

GENERAL_INTENT = "GENERAL"


@dataclass
class RouteDecision:
    role: AgentRole
    intent: str
    confidence: float
    complexity: float
    reasoning: str
    overridden: bool = False
    matched_patterns: int = 0

    def to_dict(self) -> Dict:
        return {
            "role": self.role.value,
            "intent": self.intent,
            "confidence": round(self.confidence, 4),
            "complexity": round(self.complexity, 4),
            "reasoning": self.reasoning,
            "overridden": self.overridden,
        }


def match_counts(message: str) -> Dict[str, int]:
    return {
        intent: sum(1 for p in patterns if p.search(message))
        for intent, patterns in INTENT_PATTERNS.items()
    }


def detect_intent(message: str) -> Tuple[str, int]:
    best_intent, best_score = GENERAL_INTENT, 0
    for intent, score in match_counts(message).items():
        if score > best_score:
            best_intent, best_score = intent, score
    return best_intent, best_score


def complexity_of(message: str) -> float:
    lowered = message.lower()
    score = sum(weight for keyword, weight in COMPLEXITY_KEYWORDS.items() if keyword in lowered)
    if len(message) > 100:
        score += 0.1
    if len(message) > 200:
        score += 0.1
    score += min(message.count("?") * 0.05, 0.1)
    return max(0.0, min(1.0, score))


def confidence_of(message: str, matched: int) -> float:
    confidence = 0.5 + matched * 0.15
    if len(message) > 20:
        confidence += 0.1
    return min(0.95, confidence)


def _previous_role(recent_history: Sequence[Dict]) -> Optional[AgentRole]:
    for turn in reversed(list(recent_history)):
        role = turn.get("agent_role")
        if role:
            return AgentRole(role)
    return None


def classify(message: str, recent_history: Sequence[Dict] = (),
             burnout_level: BurnoutLevel = BurnoutLevel.LOW,
             level_test_active: bool = False) -> RouteDecision:
    """Never raises: anything unclassifiable goes to the coach"""
    text = (message or "").strip()
    try:
        complexity = complexity_of(text)
        intent, matched = detect_intent(text)

        if burnout_level == BurnoutLevel.HIGH:
            return RouteDecision(
                role=AgentRole.COACH, intent=intent, confidence=0.95, complexity=complexity,
                reasoning=f"Burnout HIGH: coach forced (keyword intent was {intent})",
                overridden=True, matched_patterns=matched,
            )

        if level_test_active:
            return RouteDecision(
                role=AgentRole.ADMISSION, intent=intent, confidence=0.9, complexity=complexity,
                reasoning="Level test in progress: admission keeps the conversation",
                overridden=True, matched_patterns=matched,
            )

        if matched == 0:
            previous = _previous_role(recent_history) if text.lower() in FOLLOW_UPS else None
            if previous is not None:
                return RouteDecision(
                    role=previous, intent="FOLLOW_UP", confidence=0.6, complexity=complexity,
                    reasoning=f"Short follow-up: staying with {previous.value}",
                )
            return RouteDecision(
                role=AgentRole.COACH, intent=GENERAL_INTENT, confidence=0.5, complexity=complexity,
                reasoning="No keyword matched: default coach",
            )

        role = INTENT_TO_ROLE[intent]
        return RouteDecision(
            role=role, intent=intent, confidence=confidence_of(text, matched), complexity=complexity,
            reasoning=f"Intent: {intent} ({matched} patterns), complexity {complexity * 100:.0f}%, agent {role.value}",
            matched_patterns=matched,
        )
    except Exception as e:
        logger.error(f"Intent classification failed, defaulting to coach: {e}")
        return RouteDecision(
            role=AgentRole.COACH, intent=GENERAL_INTENT, confidence=0.5, complexity=0.0,
            reasoning="Classification error: default coach",
        )
