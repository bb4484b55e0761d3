# backend/studycoach/api/reschedule.py
from datetime import date
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from studycoach.api.deps import Container, get_container, http_error
from studycoach.core.errors import QuestCompletedError, StudyCoachError
from studycoach.quest.models import RescheduleContext, RescheduleDecision

router = APIRouter()


class EvaluateRequest(BaseModel):
    student_id: str
    plan_id: str
    quest_day: int
    quest_id: Optional[str] = None
    target_context: Optional[Dict[str, Any]] = None
    today: Optional[date] = None


class DecisionRequest(BaseModel):
    decision: Dict[str, Any]


@router.post("/evaluate")
async def evaluate(req: EvaluateRequest, container: Container = Depends(get_container)):
    """Pick a strategy for one quest of a plan day; nothing is moved yet"""
    try:
        today = req.today or date.today()
        candidates = container.quest_store.find_by_day(req.student_id, req.plan_id, req.quest_day)
        if req.quest_id:
            candidates = [q for q in candidates if q.id == req.quest_id]
        if not candidates:
            raise HTTPException(status_code=404, detail=f"No quest on day {req.quest_day} of plan {req.plan_id}")
        pending = [q for q in candidates if not q.completed]
        if not pending:
            raise QuestCompletedError(candidates[0].id)
        quest = pending[0]

        if req.target_context:
            context = RescheduleContext.from_dict(req.target_context)
        else:
            plan = container.registry.get_plan(req.student_id, req.plan_id)
            context = container.rescheduler.build_context(
                plan, quest, container.quest_store, container.tracker, today
            )
        decision = container.rescheduler.evaluate(quest, context)
    except StudyCoachError as e:
        raise http_error(e)

    return {
        "success": True,
        "decision": decision.to_dict(),
        "coach_message": decision.coach_message,
        "message_actions": decision.message_actions,
        "context": context.to_dict(),
    }


@router.post("/apply")
async def apply(req: DecisionRequest, container: Container = Depends(get_container)):
    """Apply a previously evaluated decision under the student's lock"""
    try:
        decision = RescheduleDecision.from_dict(req.decision)
        quest = await container.rescheduler.apply(decision, container.quest_store, container.registry)
    except StudyCoachError as e:
        raise http_error(e)
    except (KeyError, ValueError) as e:
        raise HTTPException(status_code=422, detail=f"Malformed decision: {e}")

    return {"success": True, "decision": decision.to_dict(), "quest": quest.to_dict()}


@router.post("/reject")
async def reject(req: DecisionRequest, container: Container = Depends(get_container)):
    try:
        decision = container.rescheduler.reject(RescheduleDecision.from_dict(req.decision))
    except StudyCoachError as e:
        raise http_error(e)
    except (KeyError, ValueError) as e:
        raise HTTPException(status_code=422, detail=f"Malformed decision: {e}")
    return {"success": True, "decision": decision.to_dict()}
