"""
Quest service: materialises plan quests into the store and assembles the
persisted view of a student's day. Shared by the supervisor and the API.
"""

import logging
from datetime import date
from typing import List, Optional

from studycoach.core.errors import NotFoundError
from studycoach.core.models import StudyPlan
from studycoach.core.registry import StudentRegistry
from studycoach.memory.mastery import MasteryManager
from studycoach.quest.delay import DelayAnalyzer
from studycoach.quest.generator import QuestGenerator
from studycoach.quest.models import DailyQuest, DelayAnalysis, QuestSummary, QuestType, TodayQuests
from studycoach.quest.store import QuestStore
from studycoach.quest.tracker import QuestTracker

logger = logging.getLogger(__name__)

DEFAULT_BUDGET_MINUTES = 120


class QuestService:

    def __init__(self, registry: StudentRegistry, store: QuestStore, tracker: QuestTracker,
                 mastery: MasteryManager, generator: Optional[QuestGenerator] = None,
                 delay_analyzer: Optional[DelayAnalyzer] = None):
        self.registry = registry
        self.store = store
        self.tracker = tracker
        self.mastery = mastery
        self.generator = generator or QuestGenerator()
        self.delay_analyzer = delay_analyzer or DelayAnalyzer()

    def ensure_plan_quests(self, plan: StudyPlan) -> List[DailyQuest]:
        """Lay the plan out once; later calls only add quests that are missing"""
        if not plan.units:
            return []
        added = self.store.add_many(plan.student_id, self.generator.build_plan_quests(plan))
        if added:
            logger.info(f"Stored {len(added)} quests for plan {plan.id}")
        return added

    def today(self, student_id: str, day: date) -> TodayQuests:
        profile = self.registry.require_student(student_id)
        plans = self.registry.get_active_plans(student_id)
        for plan in plans:
            self.ensure_plan_quests(plan)

        plan_ids = {p.id for p in plans}
        plan_quests = [
            q for q in self.store.quests_on(student_id, day)
            if q.quest_type == QuestType.STUDY and q.plan_id in plan_ids
        ]
        states = {m.topic_id: m for m in self.mastery.all_for_student(student_id)}
        streak = self.tracker.streak(student_id, day)
        budget = sum(p.daily_minutes for p in plans) or DEFAULT_BUDGET_MINUTES

        generated = self.generator.generate_day(
            student_id, day, plan_quests,
            due_topics=self.mastery.due_topics(student_id, day),
            mastery=states,
            budget_minutes=budget,
            streak=streak,
            student_name=profile.name,
        )
        self.store.add_many(student_id, generated.review_quests + generated.bonus_quests)

        # Stored copies carry the real status of quests generated earlier today
        stored = {q.id: q for q in self.store.quests_on(student_id, day)}
        generated.review_quests = [stored.get(q.id, q) for q in generated.review_quests]
        generated.main_quests = [stored.get(q.id, q) for q in generated.main_quests]
        generated.bonus_quests = [stored.get(q.id, q) for q in generated.bonus_quests]
        generated.summary = QuestSummary.of(generated.all_quests, streak)
        return generated

    def delay_analysis(self, student_id: str, today: date) -> DelayAnalysis:
        return self.delay_analyzer.analyze(student_id, self.store.list_for_student(student_id), today)

    def plan_for(self, quest: DailyQuest) -> StudyPlan:
        if not quest.plan_id:
            raise NotFoundError(f"Quest {quest.id} does not belong to a plan")
        return self.registry.get_plan(quest.student_id, quest.plan_id)
