# backend/studycoach/api/quests.py
from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends

from studycoach.api.deps import Container, get_container, http_error
from studycoach.core.errors import StudyCoachError

router = APIRouter()


@router.post("/{student_id}/generate")
async def generate_today(student_id: str, day: Optional[date] = None,
                         container: Container = Depends(get_container)):
    """Today's quests: due reviews first, then plan work within the budget"""
    try:
        async with container.locks.hold(student_id):
            today_quests = container.quests.today(student_id, day or date.today())
    except StudyCoachError as e:
        raise http_error(e)
    return {"success": True, "quests": today_quests.to_dict()}


@router.post("/{student_id}/expire")
async def expire_overdue(student_id: str, today: Optional[date] = None,
                         container: Container = Depends(get_container)):
    try:
        today = today or date.today()
        expired = await container.tracker.expire_overdue(student_id, today)
        delay = container.quests.delay_analysis(student_id, today)
    except StudyCoachError as e:
        raise http_error(e)
    return {"success": True, "expired": [q.to_dict() for q in expired], "delay": delay.to_dict()}


@router.post("/{student_id}/{quest_id}/start")
async def start_quest(student_id: str, quest_id: str, container: Container = Depends(get_container)):
    try:
        quest = await container.tracker.start_quest(student_id, quest_id)
    except StudyCoachError as e:
        raise http_error(e)
    return {"success": True, "quest": quest.to_dict()}


@router.post("/{student_id}/{quest_id}/complete")
async def complete_quest(student_id: str, quest_id: str, container: Container = Depends(get_container)):
    try:
        result = await container.tracker.complete_quest(student_id, quest_id, datetime.now())
    except StudyCoachError as e:
        raise http_error(e)
    if result is None:
        return {"success": True, "already_completed": True}
    return {"success": True, "already_completed": False, **result}
