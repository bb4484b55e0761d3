"""
Quest engine records: daily quests, the generated day set, and the
reschedule context/decision pair.
"""
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from studycoach.core.models import Subject


class QuestType(Enum):
    STUDY = "STUDY"
    REVIEW = "REVIEW"
    STREAK = "STREAK"


class QuestStatus(Enum):
    AVAILABLE = "AVAILABLE"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    EXPIRED = "EXPIRED"


class QuestDifficulty(Enum):
    EASY = "EASY"
    MEDIUM = "MEDIUM"
    HARD = "HARD"
    EXTREME = "EXTREME"


XP_BY_DIFFICULTY = {
    QuestDifficulty.EASY: 10,
    QuestDifficulty.MEDIUM: 25,
    QuestDifficulty.HARD: 50,
    QuestDifficulty.EXTREME: 100,
}


class RescheduleStrategy(Enum):
    WEEKEND_SPILLOVER = "WEEKEND_SPILLOVER"
    STACK_NEXT_DAY = "STACK_NEXT_DAY"
    EXTEND_DEADLINE = "EXTEND_DEADLINE"
    REDUCE_LOAD = "REDUCE_LOAD"


class RescheduleState(Enum):
    REQUESTED = "REQUESTED"
    EVALUATED = "EVALUATED"
    APPLIED = "APPLIED"
    REJECTED = "REJECTED"


class Feasibility(Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class CrisisLevel(Enum):
    NONE = "NONE"
    WARNING = "WARNING"
    CONCERN = "CONCERN"
    CRISIS = "CRISIS"


@dataclass
class DailyQuest:
    id: str
    student_id: str
    date: date
    quest_type: QuestType
    title: str
    subject: Subject = Subject.GENERAL
    estimated_minutes: int = 30
    plan_id: Optional[str] = None
    day: int = 0                        # 1-based plan study day, 0 for non-plan quests
    topic_id: Optional[str] = None
    description: str = ""
    status: QuestStatus = QuestStatus.AVAILABLE
    difficulty: QuestDifficulty = QuestDifficulty.MEDIUM
    xp_reward: int = 0
    completed_at: Optional[datetime] = None
    parent_quest_id: Optional[str] = None

    @property
    def completed(self) -> bool:
        return self.status == QuestStatus.COMPLETED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "student_id": self.student_id,
            "date": self.date.isoformat(),
            "quest_type": self.quest_type.value,
            "title": self.title,
            "subject": self.subject.value,
            "estimated_minutes": self.estimated_minutes,
            "plan_id": self.plan_id,
            "day": self.day,
            "topic_id": self.topic_id,
            "description": self.description,
            "status": self.status.value,
            "difficulty": self.difficulty.value,
            "xp_reward": self.xp_reward,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "parent_quest_id": self.parent_quest_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DailyQuest":
        completed_at = data.get("completed_at")
        return cls(
            id=data["id"],
            student_id=data["student_id"],
            date=date.fromisoformat(data["date"]),
            quest_type=QuestType(data["quest_type"]),
            title=data["title"],
            subject=Subject(data.get("subject", "GENERAL")),
            estimated_minutes=int(data.get("estimated_minutes", 30)),
            plan_id=data.get("plan_id"),
            day=int(data.get("day", 0)),
            topic_id=data.get("topic_id"),
            description=data.get("description", ""),
            status=QuestStatus(data.get("status", "AVAILABLE")),
            difficulty=QuestDifficulty(data.get("difficulty", "MEDIUM")),
            xp_reward=int(data.get("xp_reward", 0)),
            completed_at=datetime.fromisoformat(completed_at) if completed_at else None,
            parent_quest_id=data.get("parent_quest_id"),
        )


@dataclass
class QuestSummary:
    total_quests: int = 0
    completed_quests: int = 0
    in_progress_quests: int = 0
    available_quests: int = 0
    total_xp_available: int = 0
    earned_xp: int = 0
    estimated_total_minutes: int = 0
    streak_days: int = 0
    completion_rate: float = 0.0

    @classmethod
    def of(cls, quests: List[DailyQuest], streak: int = 0) -> "QuestSummary":
        completed = [q for q in quests if q.status == QuestStatus.COMPLETED]
        return cls(
            total_quests=len(quests),
            completed_quests=len(completed),
            in_progress_quests=sum(1 for q in quests if q.status == QuestStatus.IN_PROGRESS),
            available_quests=sum(1 for q in quests if q.status == QuestStatus.AVAILABLE),
            total_xp_available=sum(q.xp_reward for q in quests),
            earned_xp=sum(q.xp_reward for q in completed),
            estimated_total_minutes=sum(q.estimated_minutes for q in quests),
            streak_days=streak,
            completion_rate=len(completed) / len(quests) if quests else 0.0,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_quests": self.total_quests,
            "completed_quests": self.completed_quests,
            "in_progress_quests": self.in_progress_quests,
            "available_quests": self.available_quests,
            "total_xp_available": self.total_xp_available,
            "earned_xp": self.earned_xp,
            "estimated_total_minutes": self.estimated_total_minutes,
            "streak_days": self.streak_days,
            "completion_rate": round(self.completion_rate, 4),
        }


@dataclass
class TodayQuests:
    student_id: str
    date: date
    review_quests: List[DailyQuest] = field(default_factory=list)
    main_quests: List[DailyQuest] = field(default_factory=list)
    bonus_quests: List[DailyQuest] = field(default_factory=list)
    summary: QuestSummary = field(default_factory=QuestSummary)
    daily_message: str = ""
    coach_tip: str = ""

    @property
    def all_quests(self) -> List[DailyQuest]:
        return self.review_quests + self.main_quests + self.bonus_quests

    @property
    def incomplete(self) -> List[DailyQuest]:
        return [q for q in self.all_quests if not q.completed and q.quest_type != QuestType.STREAK]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "student_id": self.student_id,
            "date": self.date.isoformat(),
            "review_quests": [q.to_dict() for q in self.review_quests],
            "main_quests": [q.to_dict() for q in self.main_quests],
            "bonus_quests": [q.to_dict() for q in self.bonus_quests],
            "summary": self.summary.to_dict(),
            "daily_message": self.daily_message,
            "coach_tip": self.coach_tip,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TodayQuests":
        """Rebuild from a client payload; the summary is recomputed from the quests"""
        review = [DailyQuest.from_dict(q) for q in data.get("review_quests", [])]
        main = [DailyQuest.from_dict(q) for q in data.get("main_quests", [])]
        bonus = [DailyQuest.from_dict(q) for q in data.get("bonus_quests", [])]
        streak = int(data.get("summary", {}).get("streak_days", 0))
        return cls(
            student_id=data["student_id"],
            date=date.fromisoformat(data["date"]),
            review_quests=review,
            main_quests=main,
            bonus_quests=bonus,
            summary=QuestSummary.of(review + main + bonus, streak),
            daily_message=data.get("daily_message", ""),
            coach_tip=data.get("coach_tip", ""),
        )


@dataclass
class DayLoad:
    quest_count: int = 0
    minutes: int = 0

    def plus(self, minutes: int) -> "DayLoad":
        return DayLoad(self.quest_count + 1, self.minutes + minutes)


@dataclass
class RescheduleContext:
    """
    Everything the reschedule procedure looks at. `day_loads` maps a date to
    the incomplete work already scheduled on it (the quest being moved
    excluded).
    """
    today: date
    average_daily_minutes: float
    end_date: date
    exclude_weekends: bool = False
    total_days: int = 0
    hard_end_date: Optional[date] = None
    remaining_days: int = 0
    slack_days: int = 0
    day_loads: Dict[date, DayLoad] = field(default_factory=dict)
    completion_rate_7d: Optional[float] = None
    consecutive_missed_days: int = 0

    def load_on(self, day: date) -> DayLoad:
        return self.day_loads.get(day, DayLoad())

    @property
    def slack_ratio(self) -> float:
        if self.remaining_days <= 0:
            return 0.0
        return self.slack_days / self.remaining_days

    def to_dict(self) -> Dict[str, Any]:
        return {
            "today": self.today.isoformat(),
            "average_daily_minutes": self.average_daily_minutes,
            "end_date": self.end_date.isoformat(),
            "exclude_weekends": self.exclude_weekends,
            "total_days": self.total_days,
            "hard_end_date": self.hard_end_date.isoformat() if self.hard_end_date else None,
            "remaining_days": self.remaining_days,
            "slack_days": self.slack_days,
            "day_loads": {
                d.isoformat(): {"quest_count": load.quest_count, "minutes": load.minutes}
                for d, load in sorted(self.day_loads.items())
            },
            "completion_rate_7d": self.completion_rate_7d,
            "consecutive_missed_days": self.consecutive_missed_days,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RescheduleContext":
        hard_end = data.get("hard_end_date")
        return cls(
            today=date.fromisoformat(data["today"]),
            average_daily_minutes=float(data["average_daily_minutes"]),
            end_date=date.fromisoformat(data["end_date"]),
            exclude_weekends=bool(data.get("exclude_weekends", False)),
            total_days=int(data.get("total_days", 0)),
            hard_end_date=date.fromisoformat(hard_end) if hard_end else None,
            remaining_days=int(data.get("remaining_days", 0)),
            slack_days=int(data.get("slack_days", 0)),
            day_loads={
                date.fromisoformat(d): DayLoad(int(v.get("quest_count", 0)), int(v.get("minutes", 0)))
                for d, v in (data.get("day_loads") or {}).items()
            },
            completion_rate_7d=data.get("completion_rate_7d"),
            consecutive_missed_days=int(data.get("consecutive_missed_days", 0)),
        )


@dataclass
class RescheduleDecision:
    quest_id: str
    student_id: str
    strategy: RescheduleStrategy
    original_date: date
    new_date: date
    feasibility: Feasibility
    feasibility_score: float
    confidence: float
    rationale: str
    plan_id: Optional[str] = None
    state: RescheduleState = RescheduleState.EVALUATED
    split_dates: List[date] = field(default_factory=list)
    split_minutes: List[int] = field(default_factory=list)
    new_end_date: Optional[date] = None
    coach_message: str = ""
    message_actions: List[Dict[str, Any]] = field(default_factory=list)
    id: str = ""

    def to_option(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "quest_id": self.quest_id,
            "strategy": self.strategy.value,
            "new_date": self.new_date.isoformat(),
            "feasibility": self.feasibility.value,
            "confidence": round(self.confidence, 4),
            "rationale": self.rationale,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.to_option(),
            "student_id": self.student_id,
            "plan_id": self.plan_id,
            "original_date": self.original_date.isoformat(),
            "feasibility_score": round(self.feasibility_score, 4),
            "state": self.state.value,
            "split_dates": [d.isoformat() for d in self.split_dates],
            "split_minutes": list(self.split_minutes),
            "new_end_date": self.new_end_date.isoformat() if self.new_end_date else None,
            "coach_message": self.coach_message,
            "message_actions": list(self.message_actions),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RescheduleDecision":
        new_end = data.get("new_end_date")
        return cls(
            quest_id=data["quest_id"],
            student_id=data["student_id"],
            strategy=RescheduleStrategy(data["strategy"]),
            original_date=date.fromisoformat(data["original_date"]),
            new_date=date.fromisoformat(data["new_date"]),
            feasibility=Feasibility(data["feasibility"]),
            feasibility_score=float(data["feasibility_score"]),
            confidence=float(data["confidence"]),
            rationale=data.get("rationale", ""),
            plan_id=data.get("plan_id"),
            state=RescheduleState(data.get("state", "EVALUATED")),
            split_dates=[date.fromisoformat(d) for d in data.get("split_dates", [])],
            split_minutes=[int(m) for m in data.get("split_minutes", [])],
            new_end_date=date.fromisoformat(new_end) if new_end else None,
            coach_message=data.get("coach_message", ""),
            message_actions=list(data.get("message_actions", [])),
            id=data.get("id", ""),
        )


@dataclass
class DelayAnalysis:
    student_id: str
    expired_quests: List[DailyQuest]
    consecutive_missed_days: int
    crisis_level: CrisisLevel
    notification: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "student_id": self.student_id,
            "expired_quests": [q.to_dict() for q in self.expired_quests],
            "expired_count": len(self.expired_quests),
            "consecutive_missed_days": self.consecutive_missed_days,
            "crisis_level": self.crisis_level.value,
            "notification": self.notification,
        }
