# backend/studycoach/api/progress.py
from datetime import date, datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Depends

from studycoach.api.deps import Container, get_container, http_error
from studycoach.core.errors import StudyCoachError

router = APIRouter()


@router.get("/{student_id}")
async def get_student_progress(student_id: str, today: Optional[date] = None,
                               container: Container = Depends(get_container)):
    """Burnout state, weekly stats, delay analysis and per-plan progress"""
    try:
        today = today or date.today()
        container.registry.require_student(student_id)
        tracker = container.tracker

        burnout = container.burnout_monitor.assess(
            student_id,
            container.lane.memories(student_id),
            consecutive_missed_days=tracker.consecutive_missed_days(student_id, today),
            completion_rate_7d=tracker.completion_rate_7d(student_id, today),
        )
        since = datetime.combine(today - timedelta(days=7), datetime.min.time())
        emotions = container.lane.emotion_history(student_id, since=since)
        delay = container.quests.delay_analysis(student_id, today)

        plans = [
            {"plan_id": plan.id, "title": plan.title, "end_date": plan.end_date.isoformat(),
             **tracker.progress(student_id, plan.id)}
            for plan in container.registry.get_active_plans(student_id)
        ]
        return {
            "success": True,
            "student_id": student_id,
            "burnout": burnout.to_dict(),
            "recommendation": container.burnout_monitor.should_continue(burnout),
            "emotion_trend": container.burnout_monitor.emotion_trend(emotions),
            "weekly_stats": tracker.weekly_stats(student_id, today),
            "delay": delay.to_dict(),
            "total_xp": tracker.total_xp(student_id),
            "streak": tracker.streak(student_id, today),
            "plans": plans,
            "recommendations": container.mastery.recommendations(student_id, today),
        }
    except StudyCoachError as e:
        raise http_error(e)
