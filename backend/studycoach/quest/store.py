"""
Quest persistence on top of a Repository
"""

import logging
from datetime import date
from typing import Iterable, List, Optional

from studycoach.core.errors import InvalidTransitionError, NotFoundError
from studycoach.core.storage import Repository
from studycoach.quest.models import DailyQuest, QuestStatus

logger = logging.getLogger(__name__)


class QuestStore:
    """
    Stores a student's quests under ``quests:{student_id}``.

    `save` refuses to change a quest's date: dates only move through
    `move`, which the rescheduler calls when it applies a decision.
    """

    def __init__(self, repository: Repository):
        self.repo = repository

    def list_for_student(self, student_id: str) -> List[DailyQuest]:
        return [DailyQuest.from_dict(q) for q in (self.repo.get(f"quests:{student_id}") or [])]

    def add_many(self, student_id: str, quests: Iterable[DailyQuest]) -> List[DailyQuest]:
        """Append quests whose ids are not stored yet; returns the ones added"""
        records = self.repo.get(f"quests:{student_id}") or []
        known = {r["id"] for r in records}
        added = []
        for quest in quests:
            if quest.id in known:
                continue
            records.append(quest.to_dict())
            known.add(quest.id)
            added.append(quest)
        if added:
            self.repo.put(f"quests:{student_id}", records)
            logger.info(f"Stored {len(added)} quests for {student_id}")
        return added

    def get(self, student_id: str, quest_id: str) -> DailyQuest:
        for quest in self.list_for_student(student_id):
            if quest.id == quest_id:
                return quest
        raise NotFoundError(f"Unknown quest {quest_id} for student {student_id}")

    def find_by_day(self, student_id: str, plan_id: str, day: int) -> List[DailyQuest]:
        return [q for q in self.list_for_student(student_id) if q.plan_id == plan_id and q.day == day]

    def quests_on(self, student_id: str, day: date, plan_id: Optional[str] = None) -> List[DailyQuest]:
        return [
            q for q in self.list_for_student(student_id)
            if q.date == day and (plan_id is None or q.plan_id == plan_id)
        ]

    def for_plan(self, student_id: str, plan_id: str) -> List[DailyQuest]:
        return [q for q in self.list_for_student(student_id) if q.plan_id == plan_id]

    def save(self, quest: DailyQuest) -> DailyQuest:
        records = self.repo.get(f"quests:{quest.student_id}") or []
        for i, record in enumerate(records):
            if record["id"] != quest.id:
                continue
            if record["date"] != quest.date.isoformat():
                raise InvalidTransitionError(f"Quest {quest.id} date changes must go through reschedule")
            records[i] = quest.to_dict()
            self.repo.put(f"quests:{quest.student_id}", records)
            return quest
        raise NotFoundError(f"Unknown quest {quest.id} for student {quest.student_id}")

    def move(self, student_id: str, quest_id: str, new_date: date,
             estimated_minutes: Optional[int] = None, reopen: bool = True) -> DailyQuest:
        """Single date mutation of one quest"""
        records = self.repo.get(f"quests:{student_id}") or []
        for i, record in enumerate(records):
            if record["id"] != quest_id:
                continue
            quest = DailyQuest.from_dict(record)
            quest.date = new_date
            if estimated_minutes is not None:
                quest.estimated_minutes = estimated_minutes
            if reopen and not quest.completed:
                quest.status = QuestStatus.AVAILABLE
            records[i] = quest.to_dict()
            self.repo.put(f"quests:{student_id}", records)
            return quest
        raise NotFoundError(f"Unknown quest {quest_id} for student {student_id}")
