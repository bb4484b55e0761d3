"""
Delay analysis: overdue quests, missed-day runs and the resulting crisis level
"""

from datetime import date
from typing import Any, Dict, List, Optional, Sequence

from studycoach.quest.models import CrisisLevel, DailyQuest, DelayAnalysis, QuestStatus, QuestType
from studycoach.quest.tracker import consecutive_missed_days


class DelayAnalyzer:

    def analyze(self, student_id: str, quests: Sequence[DailyQuest], today: date) -> DelayAnalysis:
        expired = sorted(
            (
                q for q in quests
                if q.quest_type != QuestType.STREAK and q.date < today
                and q.status in (QuestStatus.AVAILABLE, QuestStatus.IN_PROGRESS, QuestStatus.EXPIRED)
            ),
            key=lambda q: (q.date, q.id),
        )
        missed = consecutive_missed_days(quests, today)
        level = self.crisis_level(missed, len(expired))
        analysis = DelayAnalysis(
            student_id=student_id,
            expired_quests=expired,
            consecutive_missed_days=missed,
            crisis_level=level,
        )
        analysis.notification = self.notification(analysis)
        if level is not CrisisLevel.NONE:
            print(f"[DELAY] {student_id}: {level.value} ({missed} missed days, {len(expired)} overdue)")
        return analysis

    @staticmethod
    def crisis_level(consecutive_missed: int, expired_count: int) -> CrisisLevel:
        if consecutive_missed >= 3:
            return CrisisLevel.CRISIS
        if consecutive_missed >= 2 or expired_count >= 3:
            return CrisisLevel.CONCERN
        if consecutive_missed >= 1 or expired_count >= 1:
            return CrisisLevel.WARNING
        return CrisisLevel.NONE

    def notification(self, analysis: DelayAnalysis) -> Optional[Dict[str, Any]]:
        level = analysis.crisis_level
        if level is CrisisLevel.NONE:
            return None
        return {
            "type": {CrisisLevel.CRISIS: "CRISIS", CrisisLevel.CONCERN: "OVERDUE"}.get(level, "REMINDER"),
            "urgency": {CrisisLevel.CRISIS: "URGENT", CrisisLevel.CONCERN: "HIGH"}.get(level, "MEDIUM"),
            "title": self._title(analysis),
            "message": self._message(analysis),
            "quest_ids": [q.id for q in analysis.expired_quests],
            "actions": self._actions(level),
        }

    @staticmethod
    def _title(analysis: DelayAnalysis) -> str:
        if analysis.crisis_level is CrisisLevel.CRISIS:
            return f"{analysis.consecutive_missed_days}일째 쉬고 있구나 💙"
        if analysis.crisis_level is CrisisLevel.CONCERN:
            return "밀린 퀘스트가 있어요 📚"
        return "어제 못 한 거 있어!"

    @staticmethod
    def _message(analysis: DelayAnalysis) -> str:
        if analysis.crisis_level is CrisisLevel.CRISIS:
            return "요즘 바빴구나... 괜찮아 😢\n10분만 해볼까? 아니어도 괜찮아."
        if analysis.crisis_level is CrisisLevel.CONCERN:
            return f"{len(analysis.expired_quests)}개 밀렸는데, 같이 조금씩 정리해볼까?"
        return "오늘 30분만 해볼까?"

    @staticmethod
    def _actions(level: CrisisLevel) -> List[Dict[str, str]]:
        if level is CrisisLevel.CRISIS:
            return [
                {"label": "10분만 해볼게", "action": "START_NOW"},
                {"label": "코치랑 얘기하기", "action": "TALK_TO_COACH"},
            ]
        return [
            {"label": "지금 시작!", "action": "START_NOW"},
            {"label": "내일 할게", "action": "RESCHEDULE"},
            {"label": "오늘은 쉴래", "action": "SKIP_TODAY"},
        ]
