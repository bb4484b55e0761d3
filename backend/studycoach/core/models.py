# backend/studycoach/core/models.py
"""
Student-facing records shared by every component: subjects, profiles and
study plans, plus the calendar helpers the quest engine relies on.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional
import uuid


class Subject(Enum):
    KOREAN = "KOREAN"
    MATH = "MATH"
    ENGLISH = "ENGLISH"
    SCIENCE = "SCIENCE"
    SOCIAL = "SOCIAL"
    GENERAL = "GENERAL"


class PlanStatus(Enum):
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    COMPLETED = "COMPLETED"


def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def is_weekend(day: date) -> bool:
    return day.weekday() >= 5


def next_study_day(after: date, exclude_weekends: bool) -> date:
    """First day strictly after `after` that the plan may schedule work on"""
    candidate = after + timedelta(days=1)
    while exclude_weekends and is_weekend(candidate):
        candidate += timedelta(days=1)
    return candidate


@dataclass
class LearningStyle:
    preferred_pace: str = "MEDIUM"      # SLOW | MEDIUM | FAST
    attention_span: str = "MEDIUM"      # SHORT | MEDIUM | LONG
    needs_repetition: bool = False
    prefers_challenges: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "preferred_pace": self.preferred_pace,
            "attention_span": self.attention_span,
            "needs_repetition": self.needs_repetition,
            "prefers_challenges": self.prefers_challenges,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LearningStyle":
        return cls(**data)


@dataclass
class StudentProfile:
    id: str
    name: str
    grade: str = "미설정"
    target_exam: Optional[str] = None
    enrolled_subjects: List[Subject] = field(default_factory=list)
    goals: List[str] = field(default_factory=list)
    learning_style: Optional[LearningStyle] = None
    created_at: datetime = field(default_factory=datetime.now)
    last_active_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "grade": self.grade,
            "target_exam": self.target_exam,
            "enrolled_subjects": [s.value for s in self.enrolled_subjects],
            "goals": list(self.goals),
            "learning_style": self.learning_style.to_dict() if self.learning_style else None,
            "created_at": self.created_at.isoformat(),
            "last_active_at": self.last_active_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StudentProfile":
        style = data.get("learning_style")
        return cls(
            id=data["id"],
            name=data["name"],
            grade=data.get("grade", "미설정"),
            target_exam=data.get("target_exam"),
            enrolled_subjects=[Subject(s) for s in data.get("enrolled_subjects", [])],
            goals=list(data.get("goals", [])),
            learning_style=LearningStyle.from_dict(style) if style else None,
            created_at=datetime.fromisoformat(data["created_at"]),
            last_active_at=datetime.fromisoformat(data["last_active_at"]),
        )


@dataclass
class StudyUnit:
    id: str
    order: int
    title: str
    estimated_minutes: int = 30
    range: str = ""
    topic_id: Optional[str] = None

    @property
    def topic(self) -> str:
        return self.topic_id or self.title

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "order": self.order,
            "title": self.title,
            "estimated_minutes": self.estimated_minutes,
            "range": self.range,
            "topic_id": self.topic_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StudyUnit":
        return cls(**data)


@dataclass
class StudyPlan:
    id: str
    student_id: str
    subject: Subject
    title: str
    start_date: date
    end_date: date
    units: List[StudyUnit] = field(default_factory=list)
    daily_minutes: int = 60
    exclude_weekends: bool = False
    hard_end_date: Optional[date] = None
    status: PlanStatus = PlanStatus.ACTIVE

    @property
    def deadline(self) -> date:
        """Latest date the plan may be stretched to"""
        return self.hard_end_date or self.end_date

    @property
    def total_minutes(self) -> int:
        return sum(u.estimated_minutes for u in self.units)

    @property
    def total_days(self) -> int:
        return self.study_days_between(self.start_date, self.end_date)

    @property
    def average_daily_minutes(self) -> float:
        days = self.total_days
        if days <= 0:
            return float(self.daily_minutes)
        return self.total_minutes / days

    @property
    def topic_ids(self) -> List[str]:
        return [u.topic for u in self.units]

    def study_days_between(self, start: date, end: date) -> int:
        """Count of schedulable days in [start, end]"""
        if end < start:
            return 0
        count = 0
        current = start
        while current <= end:
            if not (self.exclude_weekends and is_weekend(current)):
                count += 1
            current += timedelta(days=1)
        return count

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "student_id": self.student_id,
            "subject": self.subject.value,
            "title": self.title,
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "units": [u.to_dict() for u in self.units],
            "daily_minutes": self.daily_minutes,
            "exclude_weekends": self.exclude_weekends,
            "hard_end_date": self.hard_end_date.isoformat() if self.hard_end_date else None,
            "status": self.status.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StudyPlan":
        hard_end = data.get("hard_end_date")
        return cls(
            id=data["id"],
            student_id=data["student_id"],
            subject=Subject(data["subject"]),
            title=data["title"],
            start_date=date.fromisoformat(data["start_date"]),
            end_date=date.fromisoformat(data["end_date"]),
            units=[StudyUnit.from_dict(u) for u in data.get("units", [])],
            daily_minutes=data.get("daily_minutes", 60),
            exclude_weekends=data.get("exclude_weekends", False),
            hard_end_date=date.fromisoformat(hard_end) if hard_end else None,
            status=PlanStatus(data.get("status", "ACTIVE")),
        )
