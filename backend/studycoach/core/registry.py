# backend/studycoach/core/registry.py
"""
Student registry: profiles and study plans on top of a Repository.
"""

import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from studycoach.core.errors import DomainError, NotFoundError
from studycoach.core.models import (
    LearningStyle, PlanStatus, StudentProfile, StudyPlan, StudyUnit, Subject, new_id
)
from studycoach.core.storage import Repository

logger = logging.getLogger(__name__)


class StudentRegistry:
    """Owns StudentProfile and StudyPlan records. Profiles are never deleted implicitly."""

    def __init__(self, repository: Repository, max_plans_per_student: int = 10,
                 default_unit_minutes: int = 30):
        self.repo = repository
        self.max_plans_per_student = max_plans_per_student
        self.default_unit_minutes = default_unit_minutes

    # ===== Profiles =====

    def create_student(self, name: str, student_id: Optional[str] = None, grade: str = "미설정",
                       target_exam: Optional[str] = None,
                       enrolled_subjects: Optional[List[Subject]] = None,
                       goals: Optional[List[str]] = None) -> StudentProfile:
        profile = StudentProfile(
            id=student_id or new_id("student"),
            name=name,
            grade=grade,
            target_exam=target_exam,
            enrolled_subjects=list(enrolled_subjects or []),
            goals=list(goals or []),
        )
        self.repo.put(f"profile:{profile.id}", profile.to_dict())
        self.repo.put(f"plans:{profile.id}", [])
        logger.info(f"Created student {profile.id}")
        return profile

    def get_student(self, student_id: str) -> Optional[StudentProfile]:
        data = self.repo.get(f"profile:{student_id}")
        return StudentProfile.from_dict(data) if data else None

    def require_student(self, student_id: str) -> StudentProfile:
        profile = self.get_student(student_id)
        if profile is None:
            raise NotFoundError(f"Unknown student {student_id}")
        return profile

    def ensure_student(self, student_id: str, name: str = "학생") -> StudentProfile:
        """Load the profile, creating it on first contact"""
        return self.get_student(student_id) or self.create_student(name=name, student_id=student_id)

    def update_student(self, student_id: str, updates: Dict[str, Any]) -> StudentProfile:
        profile = self.require_student(student_id)
        for key, value in updates.items():
            if key in ("id", "created_at"):
                continue
            if not hasattr(profile, key):
                raise DomainError(f"Unknown profile field: {key}")
            setattr(profile, key, value)
        profile.last_active_at = datetime.now()
        self.repo.put(f"profile:{student_id}", profile.to_dict())
        return profile

    def set_learning_style(self, student_id: str, style: LearningStyle) -> StudentProfile:
        return self.update_student(student_id, {"learning_style": style})

    def enroll_subject(self, student_id: str, subject: Subject) -> StudentProfile:
        profile = self.require_student(student_id)
        if subject in profile.enrolled_subjects:
            return profile
        return self.update_student(student_id, {"enrolled_subjects": profile.enrolled_subjects + [subject]})

    def touch(self, student_id: str) -> None:
        profile = self.get_student(student_id)
        if profile:
            profile.last_active_at = datetime.now()
            self.repo.put(f"profile:{student_id}", profile.to_dict())

    # ===== Plans =====

    def create_plan(self, student_id: str, subject: Subject, title: str, start_date: date,
                    end_date: date, unit_titles: List[str], daily_minutes: int = 60,
                    exclude_weekends: bool = False, hard_end_date: Optional[date] = None,
                    unit_minutes: Optional[List[int]] = None,
                    topic_ids: Optional[List[str]] = None) -> StudyPlan:
        self.require_student(student_id)
        plans = self._load_plans(student_id)
        if len(plans) >= self.max_plans_per_student:
            raise DomainError(f"Student {student_id} already has {len(plans)} plans")
        if end_date < start_date:
            raise DomainError("Plan end date precedes its start date")

        plan_id = new_id("plan")
        units = []
        for i, unit_title in enumerate(unit_titles):
            units.append(StudyUnit(
                id=f"{plan_id}-u{i + 1}",
                order=i + 1,
                title=unit_title,
                estimated_minutes=unit_minutes[i] if unit_minutes else self.default_unit_minutes,
                topic_id=topic_ids[i] if topic_ids else None,
            ))

        plan = StudyPlan(
            id=plan_id,
            student_id=student_id,
            subject=subject,
            title=title,
            start_date=start_date,
            end_date=end_date,
            units=units,
            daily_minutes=daily_minutes,
            exclude_weekends=exclude_weekends,
            hard_end_date=hard_end_date,
        )
        plans.append(plan)
        self._save_plans(student_id, plans)
        logger.info(f"Created plan {plan_id} for {student_id}: {len(units)} units")
        return plan

    def add_plan(self, plan: StudyPlan) -> StudyPlan:
        plans = [p for p in self._load_plans(plan.student_id) if p.id != plan.id]
        plans.append(plan)
        self._save_plans(plan.student_id, plans)
        return plan

    def get_plan(self, student_id: str, plan_id: str) -> StudyPlan:
        for plan in self._load_plans(student_id):
            if plan.id == plan_id:
                return plan
        raise NotFoundError(f"Unknown plan {plan_id} for student {student_id}")

    def get_plans(self, student_id: str) -> List[StudyPlan]:
        return self._load_plans(student_id)

    def get_active_plans(self, student_id: str) -> List[StudyPlan]:
        return [p for p in self._load_plans(student_id) if p.status == PlanStatus.ACTIVE]

    def set_plan_end_date(self, student_id: str, plan_id: str, end_date: date) -> StudyPlan:
        plan = self.get_plan(student_id, plan_id)
        if end_date > plan.deadline:
            raise DomainError(f"End date {end_date} is past the plan deadline {plan.deadline}")
        if plan.hard_end_date is None:
            plan.hard_end_date = plan.end_date
        plan.end_date = end_date
        return self.add_plan(plan)

    def set_plan_status(self, student_id: str, plan_id: str, status: PlanStatus) -> StudyPlan:
        plan = self.get_plan(student_id, plan_id)
        plan.status = status
        return self.add_plan(plan)

    def active_topic_ids(self, student_id: str) -> List[str]:
        topics: List[str] = []
        for plan in self.get_active_plans(student_id):
            topics.extend(t for t in plan.topic_ids if t not in topics)
        return topics

    def _load_plans(self, student_id: str) -> List[StudyPlan]:
        return [StudyPlan.from_dict(p) for p in (self.repo.get(f"plans:{student_id}") or [])]

    def _save_plans(self, student_id: str, plans: List[StudyPlan]) -> None:
        self.repo.put(f"plans:{student_id}", [p.to_dict() for p in plans])
