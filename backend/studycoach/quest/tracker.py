"""
Quest tracking: completion, streaks, XP and the rolling behaviour signals
(7-day completion rate, consecutive missed study days) the burnout monitor
and the rescheduler read.
"""

import logging
from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence

from studycoach.core.locks import StudentLocks
from studycoach.quest.models import DailyQuest, QuestStatus, QuestType
from studycoach.quest.store import QuestStore

logger = logging.getLogger(__name__)

MISSED_LOOKBACK_DAYS = 30


def _countable(quest: DailyQuest) -> bool:
    return quest.quest_type != QuestType.STREAK


def completion_rate(quests: Sequence[DailyQuest], start: date, end: date) -> Optional[float]:
    """Share of quests dated in [start, end] that are completed; None without quests"""
    window = [q for q in quests if _countable(q) and start <= q.date <= end]
    if not window:
        return None
    return sum(1 for q in window if q.completed) / len(window)


def consecutive_missed_days(quests: Sequence[DailyQuest], today: date) -> int:
    """
    Study days before today, counted back from yesterday, on which quests
    were scheduled and none was completed. Days with nothing scheduled are
    skipped; the first day with a completion ends the run.
    """
    by_date: Dict[date, List[DailyQuest]] = defaultdict(list)
    for quest in quests:
        if _countable(quest) and quest.date < today:
            by_date[quest.date].append(quest)

    missed = 0
    for offset in range(1, MISSED_LOOKBACK_DAYS + 1):
        day = today - timedelta(days=offset)
        scheduled = by_date.get(day)
        if not scheduled:
            continue
        if any(q.completed for q in scheduled):
            break
        missed += 1
    return missed


class QuestTracker:

    def __init__(self, store: QuestStore, locks: Optional[StudentLocks] = None):
        self.store = store
        self.locks = locks or StudentLocks()

    async def complete_quest(self, student_id: str, quest_id: str,
                             now: Optional[datetime] = None) -> Optional[Dict[str, Any]]:
        """Mark a quest completed. Completing an already completed quest returns None."""
        now = now or datetime.now()
        async with self.locks.hold(student_id):
            quest = self.store.get(student_id, quest_id)
            if quest.completed:
                return None
            quest.status = QuestStatus.COMPLETED
            quest.completed_at = now
            self.store.save(quest)

        print(f"[QUEST] {student_id} completed {quest.id} (+{quest.xp_reward} XP)")
        remaining = [
            q for q in self.store.quests_on(student_id, quest.date)
            if not q.completed and _countable(q)
        ]
        return {
            "quest": quest.to_dict(),
            "earned_xp": quest.xp_reward,
            "total_xp": self.total_xp(student_id),
            "streak": self.streak(student_id, now.date()),
            "next_quest": remaining[0].to_dict() if remaining else None,
            "celebration_message": self.celebration_message(quest, not remaining),
        }

    async def start_quest(self, student_id: str, quest_id: str) -> DailyQuest:
        async with self.locks.hold(student_id):
            quest = self.store.get(student_id, quest_id)
            if quest.status == QuestStatus.AVAILABLE:
                quest.status = QuestStatus.IN_PROGRESS
                self.store.save(quest)
            return quest

    async def expire_overdue(self, student_id: str, today: date) -> List[DailyQuest]:
        """Mark incomplete quests dated before today as EXPIRED"""
        expired = []
        async with self.locks.hold(student_id):
            for quest in self.store.list_for_student(student_id):
                if quest.date < today and quest.status in (QuestStatus.AVAILABLE, QuestStatus.IN_PROGRESS):
                    quest.status = QuestStatus.EXPIRED
                    self.store.save(quest)
                    expired.append(quest)
        if expired:
            logger.info(f"Expired {len(expired)} overdue quests for {student_id}")
        return expired

    # ===== Derived signals =====

    def streak(self, student_id: str, today: Optional[date] = None) -> int:
        """Consecutive days with at least one completion, ending today or yesterday"""
        today = today or date.today()
        active_days = {
            q.completed_at.date() for q in self.store.list_for_student(student_id)
            if q.completed and q.completed_at
        }
        current = today if today in active_days else today - timedelta(days=1)
        streak = 0
        while current in active_days:
            streak += 1
            current -= timedelta(days=1)
        return streak

    def total_xp(self, student_id: str) -> int:
        return sum(q.xp_reward for q in self.store.list_for_student(student_id) if q.completed)

    def completion_rate_7d(self, student_id: str, today: Optional[date] = None) -> Optional[float]:
        """Rolling rate over the seven days before today"""
        today = today or date.today()
        return completion_rate(
            self.store.list_for_student(student_id), today - timedelta(days=7), today - timedelta(days=1)
        )

    def consecutive_missed_days(self, student_id: str, today: Optional[date] = None) -> int:
        return consecutive_missed_days(self.store.list_for_student(student_id), today or date.today())

    def progress(self, student_id: str, plan_id: str) -> Dict[str, Any]:
        quests = [q for q in self.store.for_plan(student_id, plan_id) if q.quest_type == QuestType.STUDY]
        done = sum(1 for q in quests if q.completed)
        return {
            "plan_id": plan_id,
            "total": len(quests),
            "completed": done,
            "percent": round(done / len(quests) * 100, 1) if quests else 0.0,
        }

    def weekly_stats(self, student_id: str, today: Optional[date] = None) -> Dict[str, Any]:
        today = today or date.today()
        start = today - timedelta(days=6)
        quests = [
            q for q in self.store.list_for_student(student_id)
            if _countable(q) and start <= q.date <= today
        ]
        by_subject: Dict[str, Dict[str, int]] = {}
        for quest in quests:
            entry = by_subject.setdefault(quest.subject.value, {"total": 0, "completed": 0, "xp": 0})
            entry["total"] += 1
            if quest.completed:
                entry["completed"] += 1
                entry["xp"] += quest.xp_reward
        completed = sum(1 for q in quests if q.completed)
        return {
            "from": start.isoformat(),
            "to": today.isoformat(),
            "total_quests": len(quests),
            "completed_quests": completed,
            "completion_rate": round(completed / len(quests), 4) if quests else 0.0,
            "xp_earned": sum(q.xp_reward for q in quests if q.completed),
            "by_subject": by_subject,
            "streak": self.streak(student_id, today),
        }

    @staticmethod
    def celebration_message(quest: DailyQuest, day_cleared: bool) -> str:
        if day_cleared:
            return "🎉 오늘의 퀘스트를 모두 완료했어요! 정말 멋져요!"
        if quest.quest_type == QuestType.REVIEW:
            return "📚 복습 완료! 기억이 한층 단단해졌어요."
        return f"✅ '{quest.title}' 완료! +{quest.xp_reward} XP"
