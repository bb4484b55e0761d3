"""
Quest generation.

Lays a plan's units out on study days, and builds a single day's quest set
in which due review topics take priority over new-unit work within the
daily minutes budget.
"""

import logging
from datetime import date
from typing import Dict, List, Optional, Sequence

from studycoach.core.models import StudyPlan, Subject, is_weekend, next_study_day
from studycoach.memory.models import TopicMastery
from studycoach.quest.models import (
    DailyQuest, QuestDifficulty, QuestSummary, QuestType, TodayQuests, XP_BY_DIFFICULTY
)

logger = logging.getLogger(__name__)

REVIEW_MINUTES = 15
STREAK_MIN_DAYS = 3
STREAK_BONUS_MULTIPLIER = 1.5

DEFAULT_TIPS = [
    "💡 Tip: 25분 집중 후 5분 휴식하는 뽀모도로 기법을 활용해보세요!",
    "💡 Tip: 어려운 퀘스트는 아침에, 쉬운 퀘스트는 저녁에 하면 효율적이에요.",
    "💡 Tip: 완료한 퀘스트를 체크하는 것만으로도 성취감이 올라가요!",
    "💡 Tip: 학습 전 간단한 스트레칭으로 집중력을 높여보세요.",
]


def mastery_difficulty(score: float) -> QuestDifficulty:
    """Lower mastery means a harder review"""
    if score >= 8:
        return QuestDifficulty.EASY
    if score >= 5:
        return QuestDifficulty.MEDIUM
    if score >= 3:
        return QuestDifficulty.HARD
    return QuestDifficulty.EXTREME


def progress_difficulty(progress: float) -> QuestDifficulty:
    if progress < 0.3:
        return QuestDifficulty.EASY
    if progress < 0.6:
        return QuestDifficulty.MEDIUM
    if progress < 0.9:
        return QuestDifficulty.HARD
    return QuestDifficulty.EXTREME


def study_xp(minutes: int) -> int:
    return 20 + (minutes // 10) * 5


class QuestGenerator:

    def __init__(self, review_minutes: int = REVIEW_MINUTES, max_review_quests: int = 5):
        self.review_minutes = review_minutes
        self.max_review_quests = max_review_quests

    def build_plan_quests(self, plan: StudyPlan) -> List[DailyQuest]:
        """
        Pack the plan's units onto consecutive study days starting at
        start_date. A day takes units while they fit in daily_minutes, and
        always takes at least one.
        """
        quests: List[DailyQuest] = []
        if not plan.units:
            return quests

        current = plan.start_date
        if plan.exclude_weekends and is_weekend(current):
            current = next_study_day(current, True)

        units = sorted(plan.units, key=lambda u: u.order)
        day_number = 1
        used = 0
        for index, unit in enumerate(units):
            if used > 0 and used + unit.estimated_minutes > plan.daily_minutes:
                current = next_study_day(current, plan.exclude_weekends)
                day_number += 1
                used = 0

            progress = index / len(units)
            quests.append(DailyQuest(
                id=f"quest-{plan.id}-d{day_number}-u{unit.order}",
                student_id=plan.student_id,
                date=current,
                quest_type=QuestType.STUDY,
                title=f"📖 {unit.title}",
                subject=plan.subject,
                estimated_minutes=unit.estimated_minutes,
                plan_id=plan.id,
                day=day_number,
                topic_id=unit.topic,
                description=f"{plan.title}의 {unit.order}번째 학습입니다." + (f" ({unit.range})" if unit.range else ""),
                difficulty=progress_difficulty(progress),
                xp_reward=study_xp(unit.estimated_minutes),
            ))
            used += unit.estimated_minutes

        if quests[-1].date > plan.end_date:
            logger.warning(
                f"Plan {plan.id} units run to {quests[-1].date}, past its end date {plan.end_date}"
            )
        print(f"[QUEST] Built {len(quests)} quests over {day_number} days for plan {plan.id}")
        return quests

    def generate_day(self, student_id: str, day: date, plan_quests: Sequence[DailyQuest],
                     due_topics: Sequence[str], mastery: Optional[Dict[str, TopicMastery]] = None,
                     budget_minutes: int = 120, streak: int = 0,
                     student_name: str = "학생") -> TodayQuests:
        mastery = mastery or {}
        used = 0

        review_quests: List[DailyQuest] = []
        for topic in due_topics:
            if len(review_quests) >= self.max_review_quests:
                break
            if used + self.review_minutes > budget_minutes:
                break
            state = mastery.get(topic)
            difficulty = mastery_difficulty(state.mastery if state else 0.0)
            review_quests.append(DailyQuest(
                id=f"review-{student_id}-{day.isoformat()}-{topic}",
                student_id=student_id,
                date=day,
                quest_type=QuestType.REVIEW,
                title=f"📚 복습: {topic}",
                subject=state.subject if state else Subject.GENERAL,
                estimated_minutes=self.review_minutes,
                topic_id=topic,
                description="이전에 배운 내용을 복습해요. 기억을 강화하면 오래 남아요!",
                difficulty=difficulty,
                xp_reward=XP_BY_DIFFICULTY[difficulty],
            ))
            used += self.review_minutes

        main_quests: List[DailyQuest] = []
        todays = sorted((q for q in plan_quests if q.date == day), key=lambda q: (q.day, q.id))
        for quest in todays:
            fits = used + quest.estimated_minutes <= budget_minutes
            # A day never ends empty when plan work exists
            if fits or (not review_quests and not main_quests):
                main_quests.append(quest)
                used += quest.estimated_minutes

        bonus_quests: List[DailyQuest] = []
        if streak >= STREAK_MIN_DAYS:
            bonus_quests.append(DailyQuest(
                id=f"streak-{student_id}-{day.isoformat()}",
                student_id=student_id,
                date=day,
                quest_type=QuestType.STREAK,
                title=f"🔥 {streak + 1}일 연속 학습 도전!",
                estimated_minutes=0,
                description=f"오늘도 학습을 완료하면 {streak + 1}일 연속 달성!",
                difficulty=QuestDifficulty.HARD if streak >= 7 else QuestDifficulty.MEDIUM,
                xp_reward=int(streak * 10 * STREAK_BONUS_MULTIPLIER),
            ))

        summary = QuestSummary.of(review_quests + main_quests + bonus_quests, streak)
        return TodayQuests(
            student_id=student_id,
            date=day,
            review_quests=review_quests,
            main_quests=main_quests,
            bonus_quests=bonus_quests,
            summary=summary,
            daily_message=self.daily_message(student_name, streak, summary),
            coach_tip=self.coach_tip(day, len(due_topics)),
        )

    @staticmethod
    def daily_message(name: str, streak: int, summary: QuestSummary) -> str:
        if streak >= 7:
            return f"🎉 {name}, {streak}일 연속 학습 중이에요! 대단해요! 오늘도 함께 달려봐요! 💪"
        if streak >= 3:
            return f"🔥 {name}, {streak}일째 연속 학습 중! 이 기세를 유지해요!"
        if summary.total_quests > 0:
            return f"{name}, 오늘 {summary.total_quests}개의 퀘스트가 기다리고 있어요. 화이팅! 📚"
        return f"{name}, 오늘은 예정된 퀘스트가 없어요. 가볍게 복습해볼까요? 😊"

    @staticmethod
    def coach_tip(day: date, due_count: int) -> str:
        if due_count >= 5:
            return "💡 Tip: 오늘은 복습 퀘스트를 먼저 완료해보세요. 기억 강화에 최적의 시간이에요!"
        return DEFAULT_TIPS[day.toordinal() % len(DEFAULT_TIPS)]

