"""
Adaptive reschedule.

Decides where a missed or postponed quest goes. Strategies are tried in a
fixed order and the first one whose condition holds with a feasibility at
or above FEASIBILITY_FLOOR wins:

  0. completed quest               -> QuestCompletedError, nothing moves
  1. REDUCE_LOAD (override)        -> 7-day completion < 50% and >= 2 missed days
  2. WEEKEND_SPILLOVER             -> next day is a weekend, plan skips weekends, slack <= 20%
  3. STACK_NEXT_DAY                -> slack left and next study day stays under 1.5x the average load
  4. EXTEND_DEADLINE               -> unused slack and room before the hard end date
  5. REDUCE_LOAD (fallback)        -> confidence 0.3

Every candidate date lies strictly after max(today, original date), so a
decision never keeps the quest where it was.

Lifecycle: REQUESTED -> EVALUATED -> APPLIED | REJECTED.

Evaluated decisions are recorded per student; apply only accepts a decision
that matches the latest one issued for its quest, so clients cannot pick
their own dates.
"""

import logging
import math
from dataclasses import replace
from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Sequence, Tuple

from studycoach.core.errors import InvalidTransitionError, QuestCompletedError, StaleDecisionError
from studycoach.core.locks import StudentLocks
from studycoach.core.models import StudyPlan, is_weekend, new_id, next_study_day
from studycoach.core.registry import StudentRegistry
from studycoach.core.storage import InMemoryRepository, Repository
from studycoach.quest.models import (
    DailyQuest, DayLoad, Feasibility, QuestStatus, QuestType, RescheduleContext,
    RescheduleDecision, RescheduleState, RescheduleStrategy
)
from studycoach.quest.store import QuestStore
from studycoach.quest.tracker import QuestTracker

logger = logging.getLogger(__name__)

LOAD_CEILING = 1.5
SLACK_SCARCITY = 0.2
FEASIBILITY_FLOOR = 0.15
FALLBACK_CONFIDENCE = 0.3

WEEKDAYS_KO = ["월", "화", "수", "목", "금", "토", "일"]


def korean_date(day: date) -> str:
    return f"{day.month}월 {day.day}일({WEEKDAYS_KO[day.weekday()]})"


def feasibility_level(score: float) -> Feasibility:
    if score >= 0.75:
        return Feasibility.HIGH
    if score >= 0.4:
        return Feasibility.MEDIUM
    return Feasibility.LOW


def confidence_for(score: float) -> float:
    return max(0.0, min(1.0, 0.4 + 0.5 * score))


class AdaptiveRescheduler:

    def __init__(self, locks: Optional[StudentLocks] = None, repository: Optional[Repository] = None):
        self.locks = locks or StudentLocks()
        self.repo = repository or InMemoryRepository()

    # ===== Evaluation =====

    def evaluate(self, quest: DailyQuest, context: RescheduleContext) -> RescheduleDecision:
        if quest.completed:
            logger.warning(f"Rejected reschedule of completed quest {quest.id}")
            raise QuestCompletedError(quest.id)

        base = max(context.today, quest.date)
        average = context.average_daily_minutes if context.average_daily_minutes > 0 else max(quest.estimated_minutes, 1)

        decision = self._reduce_load_override(quest, context, base, average)
        if decision is None:
            for strategy in (self._weekend_spillover, self._stack_next_day, self._extend_deadline):
                decision = strategy(quest, context, base, average)
                if decision is not None:
                    break
        if decision is None:
            decision = self._reduce_load_fallback(quest, context, base, average)

        decision.coach_message, decision.message_actions = self.coach_response(quest, decision)
        self._issue(decision, context.today)
        print(
            f"[RESCHEDULE] {quest.id}: {decision.strategy.value} {decision.original_date} -> "
            f"{decision.new_date} (feasibility={decision.feasibility_score:.2f}, "
            f"confidence={decision.confidence:.2f})"
        )
        return decision

    def _decision(self, quest: DailyQuest, strategy: RescheduleStrategy, new_date: date,
                  score: float, rationale: str, confidence: Optional[float] = None,
                  **extra) -> RescheduleDecision:
        return RescheduleDecision(
            id=new_id("rs"),
            quest_id=quest.id,
            student_id=quest.student_id,
            plan_id=quest.plan_id,
            strategy=strategy,
            original_date=quest.date,
            new_date=new_date,
            feasibility=feasibility_level(score),
            feasibility_score=round(score, 4),
            confidence=round(confidence_for(score) if confidence is None else confidence, 4),
            rationale=rationale,
            state=RescheduleState.EVALUATED,
            **extra,
        )

    def _split(self, quest: DailyQuest, context: RescheduleContext,
               base: date) -> Tuple[List[date], List[int]]:
        first = next_study_day(base, context.exclude_weekends)
        second = next_study_day(first, context.exclude_weekends)
        minutes = quest.estimated_minutes
        halves = [math.ceil(minutes / 2), minutes // 2]
        if halves[1] == 0:
            return [first], [minutes]
        return [first, second], halves

    def _split_feasibility(self, context: RescheduleContext, dates: List[date],
                           minutes: List[int], average: float) -> float:
        worst = max(context.load_on(d).minutes + m for d, m in zip(dates, minutes))
        return max(0.1, min(1.0, 1 - worst / (LOAD_CEILING * average)))

    def _reduce_load_override(self, quest, context, base, average) -> Optional[RescheduleDecision]:
        rate = context.completion_rate_7d
        missed = context.consecutive_missed_days
        if rate is None or rate >= 0.5 or missed < 2:
            return None

        dates, minutes = self._split(quest, context, base)
        severity = min(1.0, 0.5 * min(1.0, (missed - 2) / 3) + 0.5 * (0.5 - rate) / 0.5)
        return self._decision(
            quest, RescheduleStrategy.REDUCE_LOAD, dates[0],
            self._split_feasibility(context, dates, minutes, average),
            f"최근 7일 완료율 {rate * 100:.0f}%, {missed}일 연속 미학습이라 분량을 나눠 배치합니다.",
            confidence=0.6 + 0.35 * severity,
            split_dates=dates,
            split_minutes=minutes,
        )

    def _weekend_spillover(self, quest, context, base, average) -> Optional[RescheduleDecision]:
        following = base + timedelta(days=1)
        if not (is_weekend(following) and context.exclude_weekends):
            return None
        if context.slack_ratio > SLACK_SCARCITY:
            return None

        # Weekend days strictly after base; Saturday first so it wins ties
        candidates = [following]
        if following.weekday() == 5:
            candidates.append(following + timedelta(days=1))
        target = min(candidates, key=lambda d: (context.load_on(d).minutes, d))
        load = context.load_on(target)

        if load.quest_count == 0:
            score = 1.0
        else:
            score = max(0.1, 1 - load.minutes / (LOAD_CEILING * average))
        if score < FEASIBILITY_FLOOR:
            return None
        return self._decision(
            quest, RescheduleStrategy.WEEKEND_SPILLOVER, target, score,
            f"남은 여유일이 {context.slack_days}일뿐이라 주말({korean_date(target)}, "
            f"기존 {load.quest_count}개/{load.minutes}분)에 배치합니다.",
        )

    def _stack_next_day(self, quest, context, base, average) -> Optional[RescheduleDecision]:
        if context.slack_days <= 0:
            return None
        target = next_study_day(base, context.exclude_weekends)
        load = context.load_on(target)
        if load.minutes + quest.estimated_minutes >= LOAD_CEILING * average:
            return None
        score = 1 / (1 + load.quest_count)
        if score < FEASIBILITY_FLOOR:
            return None
        return self._decision(
            quest, RescheduleStrategy.STACK_NEXT_DAY, target, score,
            f"{korean_date(target)}에 기존 {load.quest_count}개({load.minutes}분)와 함께 배치해도 "
            f"평균 학습량의 1.5배를 넘지 않습니다.",
        )

    def _extend_deadline(self, quest, context, base, average) -> Optional[RescheduleDecision]:
        if context.slack_days <= 0 or context.hard_end_date is None:
            return None
        new_end = next_study_day(context.end_date, context.exclude_weekends)
        if new_end > context.hard_end_date or new_end <= base:
            return None
        score = min(1.0, context.slack_ratio / SLACK_SCARCITY)
        if score < FEASIBILITY_FLOOR:
            return None
        return self._decision(
            quest, RescheduleStrategy.EXTEND_DEADLINE, new_end, score,
            f"다음 학습일이 가득 차 있어 마감일을 {korean_date(new_end)}로 하루 늘립니다.",
            new_end_date=new_end,
        )

    def _reduce_load_fallback(self, quest, context, base, average) -> RescheduleDecision:
        dates, minutes = self._split(quest, context, base)
        logger.info(f"No strategy cleared the feasibility floor for {quest.id}; splitting the load")
        return self._decision(
            quest, RescheduleStrategy.REDUCE_LOAD, dates[0],
            self._split_feasibility(context, dates, minutes, average),
            "적합한 날짜가 없어 분량을 나눠 가장 가까운 학습일에 배치합니다.",
            confidence=FALLBACK_CONFIDENCE,
            split_dates=dates,
            split_minutes=minutes,
        )

    def batch_reschedule(self, quests: Sequence[DailyQuest], context: RescheduleContext) -> List[RescheduleDecision]:
        """Evaluate quests in order; each decision adds its load to the target day(s) for the next"""
        loads = dict(context.day_loads)
        decisions = []
        for quest in quests:
            ctx = replace(context, day_loads=dict(loads))
            decision = self.evaluate(quest, ctx)
            decisions.append(decision)
            targets = (
                zip(decision.split_dates, decision.split_minutes)
                if decision.split_dates else [(decision.new_date, quest.estimated_minutes)]
            )
            for day, minutes in targets:
                loads[day] = loads.get(day, DayLoad()).plus(minutes)
        return decisions

    # ===== Application =====

    async def apply(self, decision: RescheduleDecision, store: QuestStore,
                    registry: Optional[StudentRegistry] = None) -> DailyQuest:
        """
        Move the quest under the student's lock. The stored copy of the
        decision supplies the dates; completion and the quest's current date
        are re-checked first.
        """
        if decision.state != RescheduleState.EVALUATED:
            raise InvalidTransitionError(f"Cannot apply a {decision.state.value} decision")

        async with self.locks.hold(decision.student_id):
            issued = self._issued(decision)
            quest = store.get(decision.student_id, decision.quest_id)
            if quest.completed:
                decision.state = RescheduleState.REJECTED
                self._withdraw(decision)
                raise QuestCompletedError(quest.id)
            if quest.date != issued.original_date:
                self._withdraw(decision)
                raise StaleDecisionError(
                    f"Quest {quest.id} is on {quest.date}, not {issued.original_date}; evaluate it again"
                )

            if issued.strategy == RescheduleStrategy.REDUCE_LOAD and issued.split_dates:
                moved = store.move(quest.student_id, quest.id, issued.split_dates[0],
                                   estimated_minutes=issued.split_minutes[0])
                if len(issued.split_dates) > 1:
                    store.add_many(quest.student_id, [self._second_half(quest, issued)])
            else:
                moved = store.move(quest.student_id, quest.id, issued.new_date)

            if (issued.strategy == RescheduleStrategy.EXTEND_DEADLINE and registry is not None
                    and issued.plan_id and issued.new_end_date):
                registry.set_plan_end_date(issued.student_id, issued.plan_id, issued.new_end_date)

            decision.state = RescheduleState.APPLIED
            self._withdraw(decision)

        logger.info(f"Applied {issued.strategy.value} to {decision.quest_id}: now on {moved.date}")
        return moved

    @staticmethod
    def _second_half(quest: DailyQuest, decision: RescheduleDecision) -> DailyQuest:
        return DailyQuest(
            id=f"{quest.id}-part2",
            student_id=quest.student_id,
            date=decision.split_dates[1],
            quest_type=quest.quest_type,
            title=f"{quest.title} (2/2)",
            subject=quest.subject,
            estimated_minutes=decision.split_minutes[1],
            plan_id=quest.plan_id,
            day=quest.day,
            topic_id=quest.topic_id,
            description=quest.description,
            status=QuestStatus.AVAILABLE,
            difficulty=quest.difficulty,
            xp_reward=quest.xp_reward // 2,
            parent_quest_id=quest.id,
        )

    def reject(self, decision: RescheduleDecision) -> RescheduleDecision:
        if decision.state != RescheduleState.EVALUATED:
            raise InvalidTransitionError(f"Cannot reject a {decision.state.value} decision")
        decision.state = RescheduleState.REJECTED
        self._withdraw(decision)
        return decision

    # ===== Issued decisions =====

    @staticmethod
    def _ledger_key(student_id: str) -> str:
        return f"reschedule:{student_id}"

    @staticmethod
    def _terms(decision: RescheduleDecision) -> Tuple:
        return (
            decision.quest_id, decision.student_id, decision.plan_id, decision.strategy,
            decision.original_date, decision.new_date, list(decision.split_dates),
            list(decision.split_minutes), decision.new_end_date,
        )

    def _issue(self, decision: RescheduleDecision, today: date):
        """Record the decision; it supersedes any earlier one for the same quest"""
        key = self._ledger_key(decision.student_id)
        ledger = {
            decision_id: entry for decision_id, entry in (self.repo.get(key) or {}).items()
            if entry["decision"]["quest_id"] != decision.quest_id
        }
        ledger[decision.id] = {"decision": decision.to_dict(), "evaluated_on": today.isoformat()}
        self.repo.put(key, ledger)

    def _issued(self, decision: RescheduleDecision) -> RescheduleDecision:
        entry = (self.repo.get(self._ledger_key(decision.student_id)) or {}).get(decision.id)
        if entry is None:
            raise StaleDecisionError(
                f"Decision {decision.id or '(no id)'} for quest {decision.quest_id} was not issued or has been superseded"
            )
        issued = RescheduleDecision.from_dict(entry["decision"])
        if self._terms(issued) != self._terms(decision):
            raise StaleDecisionError(f"Decision {decision.id} does not match the evaluated one")

        base = max(date.fromisoformat(entry["evaluated_on"]), issued.original_date)
        if any(day <= base for day in (issued.split_dates or [issued.new_date])):
            raise StaleDecisionError(f"Decision {decision.id} does not move quest {decision.quest_id} forward")
        return issued

    def _withdraw(self, decision: RescheduleDecision):
        key = self._ledger_key(decision.student_id)
        ledger = self.repo.get(key) or {}
        if ledger.pop(decision.id, None) is not None:
            self.repo.put(key, ledger)

    # ===== Context =====

    @staticmethod
    def build_context(plan: StudyPlan, quest: DailyQuest, store: QuestStore,
                      tracker: QuestTracker, today: date) -> RescheduleContext:
        quests = store.list_for_student(quest.student_id)
        loads: Dict[date, DayLoad] = {}
        for other in quests:
            if other.id == quest.id or other.completed or other.quest_type == QuestType.STREAK:
                continue
            if other.date >= today:
                loads[other.date] = loads.get(other.date, DayLoad()).plus(other.estimated_minutes)

        occupied = {
            max(today, q.date) for q in quests
            if q.plan_id == plan.id and not q.completed and q.quest_type != QuestType.STREAK
        }
        occupied.add(max(today, quest.date))
        available = plan.study_days_between(today, plan.deadline)

        return RescheduleContext(
            today=today,
            average_daily_minutes=plan.average_daily_minutes,
            end_date=plan.end_date,
            exclude_weekends=plan.exclude_weekends,
            total_days=plan.total_days,
            hard_end_date=plan.hard_end_date,
            remaining_days=plan.study_days_between(today, plan.end_date),
            slack_days=max(0, available - len(occupied)),
            day_loads=loads,
            completion_rate_7d=tracker.completion_rate_7d(quest.student_id, today),
            consecutive_missed_days=tracker.consecutive_missed_days(quest.student_id, today),
        )

    # ===== Messaging =====

    @staticmethod
    def coach_response(quest: DailyQuest, decision: RescheduleDecision) -> Tuple[str, List[Dict[str, Any]]]:
        title = quest.title
        when = korean_date(decision.new_date)
        accept = {
            "id": f"accept-{quest.id}",
            "type": "APPLY_RESCHEDULE",
            "label": "👍 좋아요",
            "data": {"quest_id": quest.id, "strategy": decision.strategy.value,
                     "new_date": decision.new_date.isoformat()},
        }
        actions = [accept]

        if decision.strategy == RescheduleStrategy.WEEKEND_SPILLOVER:
            message = (f"📅 \"{title}\"을 **{when}(주말)**로 옮길게요!\n\n"
                       f"평일에 너무 몰리지 않게 주말에 배치했어요. 부담 없이 해보자! 💪")
            actions.append({
                "id": f"weekday-{quest.id}",
                "type": "RESCHEDULE_QUEST",
                "label": "평일로 변경",
                "data": {"quest_id": quest.id,
                         "new_date": next_study_day(decision.new_date, True).isoformat()},
            })
        elif decision.strategy == RescheduleStrategy.STACK_NEXT_DAY:
            message = (f"📚 \"{title}\"을 **{when}**에 추가할게요!\n\n"
                       f"조금 바쁠 수 있지만 할 수 있어! 💪")
        elif decision.strategy == RescheduleStrategy.EXTEND_DEADLINE:
            message = (f"🗓️ 일정이 빠듯해서 마감을 하루 늘려 \"{title}\"을 **{when}**에 배치할게요.\n\n"
                       f"천천히 꾸준히 가보자! 😊")
        else:
            split = " + ".join(f"{korean_date(d)} {m}분" for d, m in zip(decision.split_dates, decision.split_minutes))
            message = (f"😊 요즘 많이 바빴지? \"{title}\" 분량을 나눠서 {split}로 배치할게요.\n\n"
                       f"무리하지 말고 천천히 해봐요! 💕")
            accept["label"] = "👍 고마워요"

        actions.append({
            "id": f"custom-date-{quest.id}",
            "type": "NAVIGATE",
            "label": "직접 날짜 선택",
            "data": {"navigate_to": f"/plans/{quest.plan_id}/reschedule"},
        })
        return message, actions
