"""
Memory Catcher - extracts learning memories from student messages
"""
from typing import Dict, List, Optional, Pattern
from datetime import datetime
import re
import uuid

from studycoach.core.models import Subject
from studycoach.memory.models import Emotion, LearningMemory, MemoryKind, HIGH_IMPORTANCE_KINDS


def _compile(*patterns: str) -> List[Pattern]:
    return [re.compile(p, re.IGNORECASE) for p in patterns]


# Checked in declaration order; the first kind with a matching pattern wins
KIND_PATTERNS: Dict[MemoryKind, List[Pattern]] = {
    MemoryKind.CORRECTION: _compile(r"아니[야요]?,?\s*(그게 아니라|말고|틀렸어)", r"수정해|고쳐|바꿔", r"오답.*교정"),
    MemoryKind.DECISION: _compile(r"결정했[어요다]|선택했[어요다]", r"(으로|로)\s*(하기로|결정)", r"이걸로\s*(할게|하자)"),
    MemoryKind.INSIGHT: _compile(r"깨달았[어요다]|알았[어요다]|이해했[어요다]", r"아하|그렇구나|이래서", r"드디어.*알겠"),
    MemoryKind.PATTERN: _compile(r"항상|매번|습관적으로", r"이런\s*식으로|이\s*패턴", r"나는.*경향"),
    MemoryKind.WRONG_ANSWER: _compile(r"틀렸[어요다]|오답|실수했", r"맞히지.*못|틀린\s*이유", r"왜\s*틀렸"),
    MemoryKind.STRUGGLE: _compile(r"어려워|힘들어|못\s*하겠", r"계속.*틀려|반복.*실패", r"포기|지쳐"),
    MemoryKind.GAP: _compile(r"모르겠|어렵|이해.*안", r"헷갈|혼란|막막", r"부족|약한|취약"),
    MemoryKind.LEARNING: _compile(r"배웠|공부했|학습했", r"이것.*기억|외웠", r"새로.*알게"),
    MemoryKind.MASTERY: _compile(r"완벽|자신\s*있|할\s*수\s*있", r"이건\s*알|다\s*알", r"쉬워|문제\s*없"),
    MemoryKind.STRATEGY: _compile(r"이렇게.*풀[어면]|방법|전략", r"접근.*방식|순서대로", r"먼저.*그다음"),
    MemoryKind.PREFERENCE: _compile(r"좋아|선호|편해", r"싫어|불편|귀찮", r"이게\s*더\s*나"),
    MemoryKind.EMOTION: _compile(r"기분|느낌|감정", r"스트레스|불안|걱정", r"기뻐|뿌듯|자랑스러"),
    MemoryKind.PLAN_PERFORMANCE: _compile(r"플랜.*완료|계획.*끝|학습.*마무리", r"진행.*완료|달성.*목표"),
    MemoryKind.REVIEW_PATTERN: _compile(r"리뷰.*패턴|개선.*필요|반복.*문제", r"학습.*패턴|효과.*검증"),
}

SUBJECT_PATTERNS: Dict[Subject, Pattern] = {
    Subject.KOREAN: re.compile(r"국어|문학|비문학|화법|작문"),
    Subject.MATH: re.compile(r"수학|미적분|확률|통계|기하|대수|함수|방정식"),
    Subject.ENGLISH: re.compile(r"영어|영문|단어|리스닝|스피킹"),
    Subject.SCIENCE: re.compile(r"과학|물리|화학|생물|지구과학|실험"),
    Subject.SOCIAL: re.compile(r"사회|역사|지리|경제|정치|윤리"),
}

EMOTION_PATTERNS: Dict[Emotion, Pattern] = {
    Emotion.FRUSTRATED: re.compile(r"짜증|화나|답답|왜.*안"),
    Emotion.TIRED: re.compile(r"피곤|지쳐|힘들어|졸려"),
    Emotion.CONFUSED: re.compile(r"헷갈|혼란|모르겠|이해.*안"),
    Emotion.CONFIDENT: re.compile(r"자신\s*있|할\s*수\s*있|쉬워|완벽"),
    Emotion.MOTIVATED: re.compile(r"열심히|해볼|도전|흥미"),
    Emotion.CURIOUS: re.compile(r"궁금|알고\s*싶"),
}

TITLE_PREFIX: Dict[MemoryKind, str] = {
    MemoryKind.CORRECTION: "🔄 교정: ",
    MemoryKind.DECISION: "📌 결정: ",
    MemoryKind.INSIGHT: "💡 통찰: ",
    MemoryKind.PATTERN: "🔁 패턴: ",
    MemoryKind.GAP: "⚠️ 격차: ",
    MemoryKind.LEARNING: "📚 학습: ",
    MemoryKind.MASTERY: "✅ 숙달: ",
    MemoryKind.STRUGGLE: "😓 어려움: ",
    MemoryKind.WRONG_ANSWER: "❌ 오답: ",
    MemoryKind.STRATEGY: "🎯 전략: ",
    MemoryKind.PREFERENCE: "❤️ 선호: ",
    MemoryKind.EMOTION: "💭 감정: ",
    MemoryKind.PLAN_PERFORMANCE: "📊 성과: ",
    MemoryKind.REVIEW_PATTERN: "🔍 리뷰패턴: ",
}

TOPIC_PATTERN = re.compile(r"([가-힣A-Za-z0-9]+)\s*(문제|단원|개념|공식|이론)")


class MemoryCatcher:
    """Classifies user turns into memory kinds with keyword patterns"""

    def __init__(self, min_confidence: float = 0.6):
        self.min_confidence = min_confidence

    def extract(self, student_id: str, messages: List[Dict[str, str]],
                current_subject: Optional[Subject] = None,
                conversation_id: Optional[str] = None,
                now: Optional[datetime] = None) -> List[LearningMemory]:
        """
        Extract memories from the user turns of a conversation.

        Args:
            messages: [{"role": "user" | "assistant", "content": str}, ...]
        """
        now = now or datetime.now()
        memories = []
        for message in messages:
            if message.get("role") != "user":
                continue
            content = message.get("content", "").strip()
            if not content:
                continue

            kind = self.detect_kind(content)
            if kind is None:
                continue

            confidence = self.confidence(content, kind)
            if confidence < self.min_confidence:
                continue

            memories.append(LearningMemory(
                id=uuid.uuid4().hex,
                student_id=student_id,
                kind=kind,
                subject=self.detect_subject(content) or current_subject or Subject.GENERAL,
                title=self.title(content, kind),
                content=content,
                importance=self.importance(content, kind),
                created_at=now,
                topic=self.extract_topic(content),
                emotion=self.detect_emotion(content) or Emotion.NEUTRAL,
                confidence=confidence,
                source_conversation_id=conversation_id,
            ))
        return memories

    @staticmethod
    def detect_kind(content: str) -> Optional[MemoryKind]:
        for kind, patterns in KIND_PATTERNS.items():
            if any(p.search(content) for p in patterns):
                return kind
        return None

    @staticmethod
    def detect_subject(content: str) -> Optional[Subject]:
        for subject, pattern in SUBJECT_PATTERNS.items():
            if pattern.search(content):
                return subject
        return None

    @staticmethod
    def detect_emotion(content: str) -> Optional[Emotion]:
        for emotion, pattern in EMOTION_PATTERNS.items():
            if pattern.search(content):
                return emotion
        return None

    @staticmethod
    def confidence(content: str, kind: MemoryKind) -> float:
        matches = sum(1 for p in KIND_PATTERNS[kind] if p.search(content))
        score = 0.6 + min(matches * 0.1, 0.2)
        if len(content) > 50:
            score += 0.05
        if len(content) > 100:
            score += 0.05
        return min(score, 0.9)

    @staticmethod
    def estimate_difficulty(content: str) -> int:
        """1 (easy) to 5 (hard)"""
        difficulty = 3
        if re.search(r"어려|힘들|복잡|심화", content):
            difficulty += 1
        if re.search(r"매우\s*(어려|힘들)", content):
            difficulty += 1
        if re.search(r"쉬워|간단|기초|기본", content):
            difficulty -= 1
        if re.search(r"매우\s*(쉬워|간단)", content):
            difficulty -= 1
        return max(1, min(5, difficulty))

    def importance(self, content: str, kind: MemoryKind) -> float:
        if kind in (MemoryKind.STRUGGLE, MemoryKind.WRONG_ANSWER):
            base = 0.75
        elif kind in HIGH_IMPORTANCE_KINDS:
            base = 0.8
        else:
            base = 0.5
        if self.estimate_difficulty(content) >= 4:
            base += 0.1
        return round(min(base, 1.0), 2)

    @staticmethod
    def title(content: str, kind: MemoryKind) -> str:
        summary = content[:30] + ("..." if len(content) > 30 else "")
        return f"{TITLE_PREFIX[kind]}{summary}"

    @staticmethod
    def extract_topic(content: str) -> str:
        match = TOPIC_PATTERN.search(content)
        return match.group(1) if match else "일반"
