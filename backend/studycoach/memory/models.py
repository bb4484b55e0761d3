"""
Memory Lane records: captured learning memories, ranked retrieval results,
per-topic mastery state and the derived burnout indicator.
"""
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from studycoach.core.models import Subject


class MemoryKind(Enum):
    CORRECTION = "CORRECTION"
    DECISION = "DECISION"
    INSIGHT = "INSIGHT"
    PATTERN = "PATTERN"
    GAP = "GAP"
    LEARNING = "LEARNING"
    MASTERY = "MASTERY"
    STRUGGLE = "STRUGGLE"
    WRONG_ANSWER = "WRONG_ANSWER"
    STRATEGY = "STRATEGY"
    PREFERENCE = "PREFERENCE"
    EMOTION = "EMOTION"
    PLAN_PERFORMANCE = "PLAN_PERFORMANCE"
    REVIEW_PATTERN = "REVIEW_PATTERN"


# Kinds that are never aged out of the candidate window
HIGH_IMPORTANCE_KINDS = frozenset({
    MemoryKind.CORRECTION,
    MemoryKind.DECISION,
    MemoryKind.GAP,
    MemoryKind.MASTERY,
    MemoryKind.STRUGGLE,
    MemoryKind.WRONG_ANSWER,
    MemoryKind.PLAN_PERFORMANCE,
    MemoryKind.REVIEW_PATTERN,
})

NEGATIVE_EMOTION_KINDS = frozenset({MemoryKind.STRUGGLE, MemoryKind.WRONG_ANSWER})


class Emotion(Enum):
    CONFIDENT = "CONFIDENT"
    CONFUSED = "CONFUSED"
    FRUSTRATED = "FRUSTRATED"
    CURIOUS = "CURIOUS"
    TIRED = "TIRED"
    MOTIVATED = "MOTIVATED"
    NEUTRAL = "NEUTRAL"


NEGATIVE_EMOTIONS = frozenset({Emotion.FRUSTRATED, Emotion.TIRED, Emotion.CONFUSED})
POSITIVE_EMOTIONS = frozenset({Emotion.MOTIVATED, Emotion.CONFIDENT, Emotion.CURIOUS})


class BurnoutLevel(Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"

    @property
    def elevated(self) -> bool:
        return self is not BurnoutLevel.LOW


@dataclass(frozen=True)
class LearningMemory:
    id: str
    student_id: str
    kind: MemoryKind
    subject: Subject
    title: str
    content: str
    importance: float
    created_at: datetime
    topic: str = "일반"
    emotion: Emotion = Emotion.NEUTRAL
    confidence: float = 1.0
    source_conversation_id: Optional[str] = None

    @property
    def is_high_importance(self) -> bool:
        return self.kind in HIGH_IMPORTANCE_KINDS

    @property
    def is_negative(self) -> bool:
        return self.kind in NEGATIVE_EMOTION_KINDS or (
            self.kind == MemoryKind.EMOTION and self.emotion in NEGATIVE_EMOTIONS
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "student_id": self.student_id,
            "kind": self.kind.value,
            "subject": self.subject.value,
            "title": self.title,
            "content": self.content,
            "importance": self.importance,
            "created_at": self.created_at.isoformat(),
            "topic": self.topic,
            "emotion": self.emotion.value,
            "confidence": self.confidence,
            "source_conversation_id": self.source_conversation_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LearningMemory":
        return cls(
            id=data["id"],
            student_id=data["student_id"],
            kind=MemoryKind(data["kind"]),
            subject=Subject(data["subject"]),
            title=data["title"],
            content=data["content"],
            importance=float(data["importance"]),
            created_at=datetime.fromisoformat(data["created_at"]),
            topic=data.get("topic", "일반"),
            emotion=Emotion(data.get("emotion", "NEUTRAL")),
            confidence=float(data.get("confidence", 1.0)),
            source_conversation_id=data.get("source_conversation_id"),
        )


@dataclass
class RetrievedMemory:
    memory: LearningMemory
    score: float
    factors: Dict[str, float] = field(default_factory=dict)

    @property
    def rendered(self) -> str:
        return f"{self.memory.title} ({self.score * 100:.0f}%)"

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.memory.to_dict(),
            "score": round(self.score, 4),
            "factors": {k: round(v, 4) for k, v in self.factors.items()},
        }


@dataclass
class TopicMastery:
    student_id: str
    topic_id: str
    subject: Subject = Subject.GENERAL
    mastery: float = 0.0
    easiness: float = 2.5
    interval: int = 1
    repetitions: int = 0
    next_due: Optional[date] = None
    last_reviewed: Optional[date] = None
    total_reviews: int = 0
    successful_reviews: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "student_id": self.student_id,
            "topic_id": self.topic_id,
            "subject": self.subject.value,
            "mastery": self.mastery,
            "easiness": self.easiness,
            "interval": self.interval,
            "repetitions": self.repetitions,
            "next_due": self.next_due.isoformat() if self.next_due else None,
            "last_reviewed": self.last_reviewed.isoformat() if self.last_reviewed else None,
            "total_reviews": self.total_reviews,
            "successful_reviews": self.successful_reviews,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TopicMastery":
        return cls(
            student_id=data["student_id"],
            topic_id=data["topic_id"],
            subject=Subject(data.get("subject", "GENERAL")),
            mastery=float(data["mastery"]),
            easiness=float(data["easiness"]),
            interval=int(data["interval"]),
            repetitions=int(data["repetitions"]),
            next_due=date.fromisoformat(data["next_due"]) if data.get("next_due") else None,
            last_reviewed=date.fromisoformat(data["last_reviewed"]) if data.get("last_reviewed") else None,
            total_reviews=int(data.get("total_reviews", 0)),
            successful_reviews=int(data.get("successful_reviews", 0)),
        )


@dataclass
class EmotionRecord:
    emotion: Emotion
    timestamp: datetime


@dataclass
class BurnoutIndicator:
    student_id: str
    level: BurnoutLevel
    score: float
    consecutive_missed_days: int = 0
    completion_rate_7d: Optional[float] = None
    negative_memory_ratio: float = 0.0
    warning_signals: List[str] = field(default_factory=list)
    coping_strategies: List[str] = field(default_factory=list)
    assessed_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "student_id": self.student_id,
            "level": self.level.value,
            "score": round(self.score, 4),
            "consecutive_missed_days": self.consecutive_missed_days,
            "completion_rate_7d": self.completion_rate_7d,
            "negative_memory_ratio": round(self.negative_memory_ratio, 4),
            "warning_signals": list(self.warning_signals),
            "coping_strategies": list(self.coping_strategies),
            "assessed_at": self.assessed_at.isoformat(),
        }
