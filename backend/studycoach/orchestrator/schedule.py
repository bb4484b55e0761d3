"""
Engine-side answers to schedule messages: today's quest listing and
reschedule options for "내일로 미뤄줘" / "3일 미뤄" style requests.
"""

import logging
import re
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from studycoach.core.errors import DomainError
from studycoach.quest.models import DailyQuest, QuestType, RescheduleDecision, TodayQuests
from studycoach.quest.rescheduler import AdaptiveRescheduler, korean_date
from studycoach.quest.service import QuestService

logger = logging.getLogger(__name__)

CANNOT_MOVE_MESSAGE = "이 퀘스트들은 지금 옮길 수 없어요. 😥 학습 계획을 다시 확인한 뒤 시도해볼까요?"

NAMED_OFFSETS = {
    "내일": 1,
    "하루": 1,
    "모레": 2,
    "이틀": 2,
    "글피": 3,
    "사흘": 3,
    "나흘": 4,
    "다음 주": 7,
    "다음주": 7,
}

DAYS_PATTERN = re.compile(r"(\d+)\s*일")


@dataclass
class ScheduleChange:
    days: int
    explicit: bool

    def target(self, today: date) -> date:
        return today + timedelta(days=self.days)


def parse_schedule_change(message: str) -> ScheduleChange:
    """How far the student asked to push things; one day when unspecified"""
    match = DAYS_PATTERN.search(message)
    if match and int(match.group(1)) > 0:
        return ScheduleChange(days=int(match.group(1)), explicit=True)
    for word, days in NAMED_OFFSETS.items():
        if word in message:
            return ScheduleChange(days=days, explicit=True)
    return ScheduleChange(days=1, explicit=False)


def render_today(today_quests: Optional[TodayQuests]) -> str:
    if today_quests is None or not today_quests.all_quests:
        return "오늘은 예정된 퀘스트가 없어요. 새 학습 계획을 세워볼까요? 😊"

    lines = [today_quests.daily_message, ""]
    if today_quests.review_quests:
        lines.append("**📚 복습**")
        lines += [_line(q) for q in today_quests.review_quests]
    if today_quests.main_quests:
        lines.append("**📖 오늘의 학습**")
        lines += [_line(q) for q in today_quests.main_quests]
    if today_quests.bonus_quests:
        lines.append("**🔥 보너스**")
        lines += [_line(q) for q in today_quests.bonus_quests]

    summary = today_quests.summary
    lines.append("")
    lines.append(f"총 {summary.total_quests}개, 약 {summary.estimated_total_minutes}분 · "
                 f"{summary.completed_quests}개 완료")
    if today_quests.coach_tip:
        lines.append(today_quests.coach_tip)
    return "\n".join(lines)


def _line(quest: DailyQuest) -> str:
    check = "✅" if quest.completed else "⬜"
    minutes = f" ({quest.estimated_minutes}분)" if quest.estimated_minutes else ""
    return f"{check} {quest.title}{minutes}"


def today_actions(today_quests: Optional[TodayQuests]) -> List[Dict[str, Any]]:
    if today_quests is None:
        return []
    return [
        {
            "id": f"start-{q.id}",
            "type": "START_QUEST",
            "label": f"▶️ {q.title}",
            "data": {"quest_id": q.id},
        }
        for q in today_quests.incomplete[:3]
    ]


def reschedule_options(message: str, today_quests: Optional[TodayQuests], service: QuestService,
                       rescheduler: AdaptiveRescheduler, today: date) -> Dict[str, Any]:
    """
    Evaluate today's incomplete plan quests without moving anything.
    Returns the coach message, message actions and one option per quest.
    """
    change = parse_schedule_change(message)
    pending = [
        q for q in (today_quests.incomplete if today_quests else [])
        if q.quest_type == QuestType.STUDY and q.plan_id
    ]
    if not pending:
        return {
            "message": "오늘 미룰 학습 퀘스트가 없어요. 이미 다 끝냈거나 예정된 퀘스트가 없어요! 🙌",
            "message_actions": [],
            "options": [],
        }

    by_plan: Dict[str, List[DailyQuest]] = {}
    for quest in pending:
        by_plan.setdefault(quest.plan_id, []).append(quest)

    decisions: List[RescheduleDecision] = []
    moved: List[DailyQuest] = []
    for plan_id, quests in by_plan.items():
        try:
            plan = service.registry.get_plan(quests[0].student_id, plan_id)
            context = rescheduler.build_context(plan, quests[0], service.store, service.tracker, today)
            decisions.extend(rescheduler.batch_reschedule(quests, context))
        except DomainError as e:
            logger.warning(f"Skipping {len(quests)} quest(s) of plan {plan_id}: {e}")
            continue
        moved.extend(quests)

    if not decisions:
        return {"message": CANNOT_MOVE_MESSAGE, "message_actions": [], "options": []}

    options = [d.to_dict() for d in decisions]
    if len(decisions) == 1:
        message = decisions[0].coach_message
        actions = list(decisions[0].message_actions)
    else:
        lines = [f"오늘 남은 퀘스트 {len(decisions)}개를 이렇게 옮겨볼게요:"]
        lines += [f"- {q.title} → {korean_date(d.new_date)}" for q, d in zip(moved, decisions)]
        message = "\n".join(lines)
        actions = [{
            "id": "accept-all",
            "type": "APPLY_RESCHEDULE",
            "label": "👍 모두 적용",
            "data": {"quest_ids": [d.quest_id for d in decisions]},
        }]

    if change.explicit:
        requested = change.target(today)
        actions.append({
            "id": f"requested-{requested.isoformat()}",
            "type": "RESCHEDULE_QUEST",
            "label": f"{korean_date(requested)}로 옮기기",
            "data": {"quest_ids": [d.quest_id for d in decisions], "new_date": requested.isoformat()},
        })

    logger.info(f"Prepared {len(options)} reschedule options (requested +{change.days}d)")
    return {"message": message, "message_actions": actions, "options": options}
