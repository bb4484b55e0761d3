"""
Unit tests for quest generation, tracking and delay analysis.
"""
from datetime import date, datetime, timedelta

import pytest

from studycoach.core.errors import InvalidTransitionError, NotFoundError
from studycoach.core.models import StudyPlan, StudyUnit, Subject
from studycoach.memory.models import TopicMastery
from studycoach.quest.delay import DelayAnalyzer
from studycoach.quest.generator import QuestGenerator, mastery_difficulty, study_xp
from studycoach.quest.models import (
    CrisisLevel, DailyQuest, QuestDifficulty, QuestStatus, QuestType, TodayQuests
)
from studycoach.quest.store import QuestStore
from studycoach.quest.tracker import QuestTracker, completion_rate, consecutive_missed_days

MONDAY = date(2025, 3, 3)
SATURDAY = date(2025, 3, 8)


def make_plan(units=(30, 30, 30), daily_minutes=60, start=MONDAY, exclude_weekends=False) -> StudyPlan:
    return StudyPlan(
        id="plan-1",
        student_id="s1",
        subject=Subject.MATH,
        title="수학 기초",
        start_date=start,
        end_date=start + timedelta(days=13),
        units=[StudyUnit(id=f"u{i + 1}", order=i + 1, title=f"단원{i + 1}", estimated_minutes=m)
               for i, m in enumerate(units)],
        daily_minutes=daily_minutes,
        exclude_weekends=exclude_weekends,
    )


def quest(qid: str, day: date, status: QuestStatus = QuestStatus.AVAILABLE, minutes: int = 30,
          quest_type: QuestType = QuestType.STUDY, completed_at=None) -> DailyQuest:
    return DailyQuest(id=qid, student_id="s1", date=day, quest_type=quest_type, title=qid,
                      estimated_minutes=minutes, plan_id="plan-1", status=status, xp_reward=25,
                      completed_at=completed_at)


class TestBuildPlanQuests:

    def test_units_packed_by_daily_minutes(self):
        quests = QuestGenerator().build_plan_quests(make_plan())
        assert [(q.date, q.day) for q in quests] == [(MONDAY, 1), (MONDAY, 1), (MONDAY + timedelta(days=1), 2)]
        assert quests[0].id == "quest-plan-1-d1-u1"
        assert quests[0].topic_id == "단원1"
        assert quests[0].xp_reward == study_xp(30)

    def test_oversized_unit_still_gets_a_day(self):
        quests = QuestGenerator().build_plan_quests(make_plan(units=(90, 20), daily_minutes=60))
        assert [q.day for q in quests] == [1, 2]

    def test_weekend_start_moves_to_monday(self):
        quests = QuestGenerator().build_plan_quests(make_plan(start=SATURDAY, exclude_weekends=True))
        assert quests[0].date == SATURDAY + timedelta(days=2)

    def test_weekends_skipped_between_days(self):
        friday = MONDAY + timedelta(days=4)
        quests = QuestGenerator().build_plan_quests(
            make_plan(units=(60, 60), start=friday, exclude_weekends=True)
        )
        assert quests[1].date == friday + timedelta(days=3)

    def test_empty_plan(self):
        assert QuestGenerator().build_plan_quests(make_plan(units=())) == []


class TestGenerateDay:

    @pytest.fixture
    def plan_quests(self):
        return QuestGenerator().build_plan_quests(make_plan())

    def test_reviews_take_priority_within_budget(self, plan_quests):
        mastery = {"t1": TopicMastery(student_id="s1", topic_id="t1", subject=Subject.MATH, mastery=9.0)}
        today = QuestGenerator().generate_day("s1", MONDAY, plan_quests, ["t1", "t2"], mastery,
                                              budget_minutes=60)
        assert [q.topic_id for q in today.review_quests] == ["t1", "t2"]
        assert today.review_quests[0].difficulty == QuestDifficulty.EASY
        assert today.review_quests[1].difficulty == QuestDifficulty.EXTREME
        assert today.review_quests[0].subject == Subject.MATH
        assert len(today.main_quests) == 1
        assert today.summary.estimated_total_minutes == 60

    def test_day_with_plan_work_is_never_empty(self, plan_quests):
        today = QuestGenerator().generate_day("s1", MONDAY, plan_quests, [], budget_minutes=10)
        assert len(today.main_quests) == 1

    def test_only_todays_plan_quests(self, plan_quests):
        today = QuestGenerator().generate_day("s1", MONDAY + timedelta(days=1), plan_quests, [])
        assert [q.topic_id for q in today.main_quests] == ["단원3"]

    def test_streak_bonus(self, plan_quests):
        today = QuestGenerator().generate_day("s1", MONDAY, plan_quests, [], streak=3)
        assert len(today.bonus_quests) == 1
        assert today.bonus_quests[0].xp_reward == 45
        assert "🔥" in today.daily_message

    def test_no_quests_message(self):
        today = QuestGenerator().generate_day("s1", MONDAY, [], [], student_name="민지")
        assert today.summary.total_quests == 0
        assert today.daily_message.startswith("민지, 오늘은 예정된 퀘스트가 없어요")

    def test_many_due_topics_tip(self, plan_quests):
        today = QuestGenerator().generate_day("s1", MONDAY, plan_quests, [f"t{i}" for i in range(5)])
        assert "복습 퀘스트를 먼저" in today.coach_tip

    def test_round_trip_through_client_payload(self, plan_quests):
        today = QuestGenerator().generate_day("s1", MONDAY, plan_quests, ["t1"])
        rebuilt = TodayQuests.from_dict(today.to_dict())
        assert [q.id for q in rebuilt.all_quests] == [q.id for q in today.all_quests]
        assert rebuilt.summary.total_quests == today.summary.total_quests

    @pytest.mark.parametrize("score, difficulty", [
        (9, QuestDifficulty.EASY), (6, QuestDifficulty.MEDIUM),
        (3.5, QuestDifficulty.HARD), (1, QuestDifficulty.EXTREME),
    ])
    def test_mastery_difficulty(self, score, difficulty):
        assert mastery_difficulty(score) == difficulty


class TestQuestStore:

    @pytest.fixture
    def store(self, repository):
        return QuestStore(repository)

    def test_add_many_skips_known_ids(self, store):
        assert len(store.add_many("s1", [quest("q1", MONDAY)])) == 1
        assert store.add_many("s1", [quest("q1", MONDAY), quest("q2", MONDAY)])[0].id == "q2"
        assert len(store.list_for_student("s1")) == 2

    def test_save_refuses_date_change(self, store):
        store.add_many("s1", [quest("q1", MONDAY)])
        moved = quest("q1", MONDAY + timedelta(days=1))
        with pytest.raises(InvalidTransitionError):
            store.save(moved)

    def test_move_reopens_quest(self, store):
        store.add_many("s1", [quest("q1", MONDAY, status=QuestStatus.EXPIRED)])
        moved = store.move("s1", "q1", MONDAY + timedelta(days=2), estimated_minutes=15)
        assert moved.status == QuestStatus.AVAILABLE
        assert store.get("s1", "q1").date == MONDAY + timedelta(days=2)
        assert store.get("s1", "q1").estimated_minutes == 15

    def test_unknown_quest(self, store):
        with pytest.raises(NotFoundError):
            store.get("s1", "missing")


class TestQuestTracker:

    @pytest.fixture
    def store(self, repository):
        store = QuestStore(repository)
        store.add_many("s1", [quest("q1", MONDAY), quest("q2", MONDAY)])
        return store

    @pytest.fixture
    def tracker(self, store):
        return QuestTracker(store)

    async def test_complete_quest(self, tracker):
        result = await tracker.complete_quest("s1", "q1", datetime(2025, 3, 3, 18, 0))
        assert result["earned_xp"] == 25
        assert result["total_xp"] == 25
        assert result["streak"] == 1
        assert result["next_quest"]["id"] == "q2"

    async def test_complete_twice_is_noop(self, tracker):
        await tracker.complete_quest("s1", "q1", datetime(2025, 3, 3, 18, 0))
        assert await tracker.complete_quest("s1", "q1", datetime(2025, 3, 3, 19, 0)) is None
        assert tracker.total_xp("s1") == 25

    async def test_clearing_the_day(self, tracker):
        await tracker.complete_quest("s1", "q1", datetime(2025, 3, 3, 18, 0))
        result = await tracker.complete_quest("s1", "q2", datetime(2025, 3, 3, 19, 0))
        assert result["next_quest"] is None
        assert result["celebration_message"].startswith("🎉")

    async def test_start_quest(self, tracker):
        assert (await tracker.start_quest("s1", "q1")).status == QuestStatus.IN_PROGRESS

    async def test_expire_overdue(self, tracker):
        expired = await tracker.expire_overdue("s1", MONDAY + timedelta(days=1))
        assert {q.id for q in expired} == {"q1", "q2"}
        assert all(q.status == QuestStatus.EXPIRED for q in expired)

    def test_streak_counts_back_from_yesterday(self, repository):
        store = QuestStore(repository)
        store.add_many("s1", [
            quest(f"q{i}", MONDAY + timedelta(days=i), status=QuestStatus.COMPLETED,
                  completed_at=datetime.combine(MONDAY + timedelta(days=i), datetime.min.time()))
            for i in range(3)
        ])
        tracker = QuestTracker(store)
        assert tracker.streak("s1", MONDAY + timedelta(days=3)) == 3
        assert tracker.streak("s1", MONDAY + timedelta(days=5)) == 0

    def test_progress_and_weekly_stats(self, tracker, store):
        done = store.get("s1", "q1")
        done.status = QuestStatus.COMPLETED
        done.completed_at = datetime(2025, 3, 3, 18, 0)
        store.save(done)
        assert tracker.progress("s1", "plan-1")["percent"] == 50.0
        stats = tracker.weekly_stats("s1", MONDAY)
        assert stats["completion_rate"] == 0.5
        assert stats["by_subject"]["GENERAL"] == {"total": 2, "completed": 1, "xp": 25}


class TestBehaviourSignals:

    def test_completion_rate_window(self):
        quests = [
            quest("a", MONDAY, status=QuestStatus.COMPLETED),
            quest("b", MONDAY),
            quest("c", MONDAY + timedelta(days=10), status=QuestStatus.COMPLETED),
            quest("streak", MONDAY, quest_type=QuestType.STREAK),
        ]
        assert completion_rate(quests, MONDAY, MONDAY + timedelta(days=6)) == 0.5
        assert completion_rate([], MONDAY, MONDAY) is None

    def test_consecutive_missed_days(self):
        quests = [
            quest("done", MONDAY, status=QuestStatus.COMPLETED),
            quest("miss1", MONDAY + timedelta(days=1)),
            quest("miss2", MONDAY + timedelta(days=3)),
            quest("today", MONDAY + timedelta(days=4)),
        ]
        # Day 2 had nothing scheduled and is skipped
        assert consecutive_missed_days(quests, MONDAY + timedelta(days=4)) == 2


class TestDelayAnalyzer:

    @pytest.mark.parametrize("missed, expired, level", [
        (0, 0, CrisisLevel.NONE),
        (1, 1, CrisisLevel.WARNING),
        (0, 3, CrisisLevel.CONCERN),
        (2, 2, CrisisLevel.CONCERN),
        (3, 3, CrisisLevel.CRISIS),
    ])
    def test_crisis_level(self, missed, expired, level):
        assert DelayAnalyzer.crisis_level(missed, expired) == level

    def test_analysis_with_notification(self):
        quests = [quest(f"q{i}", MONDAY + timedelta(days=i)) for i in range(3)]
        analysis = DelayAnalyzer().analyze("s1", quests, MONDAY + timedelta(days=3))
        assert analysis.crisis_level == CrisisLevel.CRISIS
        assert analysis.notification["type"] == "CRISIS"
        assert analysis.notification["quest_ids"] == ["q0", "q1", "q2"]

    def test_no_delay_no_notification(self):
        analysis = DelayAnalyzer().analyze("s1", [quest("q", MONDAY)], MONDAY)
        assert analysis.notification is None
        assert analysis.to_dict()["expired_count"] == 0
